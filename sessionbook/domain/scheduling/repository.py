"""Provider repository - Database operations for providers and their schedules"""

import hashlib
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Provider


def hash_api_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class ProviderRepository:
    """Repository for provider database operations"""

    @staticmethod
    def get_by_slug(db: Session, slug: str) -> Optional[Provider]:
        return db.query(Provider).filter(Provider.slug == slug).first()

    @staticmethod
    def get_by_id(db: Session, provider_id: int) -> Optional[Provider]:
        return db.query(Provider).filter(Provider.id == provider_id).first()

    @staticmethod
    def get_by_api_token(db: Session, token: str) -> Optional[Provider]:
        return db.query(Provider).filter(Provider.api_token_hash == hash_api_token(token)).first()

    @staticmethod
    def claim_booking_lock(db: Session, provider_id: int) -> int:
        """
        Bump the provider's booking sequence.

        The UPDATE row lock is held until the surrounding transaction ends, so
        concurrent booking transactions for one provider run one at a time.
        Returns the number of rows touched (0 = unknown provider).
        """
        return (
            db.query(Provider)
            .filter(Provider.id == provider_id)
            .update(
                {Provider.booking_sequence: Provider.booking_sequence + 1},
                synchronize_session=False,
            )
        )

    @staticmethod
    def update_provider(db: Session, provider: Provider, **updates) -> Provider:
        """Apply updates; the caller commits"""
        for key, value in updates.items():
            if hasattr(provider, key):
                setattr(provider, key, value)
        db.flush()
        return provider
