import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .domain.scheduling.repository import ProviderRepository
from .models import Provider

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_current_provider(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Provider:
    """
    Resolve the calling provider from an API bearer token.

    Login and token issuance live outside this service; only the SHA-256 of
    each provider's token is stored.
    """
    token = credentials.credentials
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    provider = ProviderRepository.get_by_api_token(db, token)
    if not provider:
        logger.warning("❌ Rejected request with unknown provider token")
        raise HTTPException(status_code=401, detail="Invalid token")

    return provider
