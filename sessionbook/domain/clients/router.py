"""Client router - FastAPI endpoints for client operations"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_provider
from ...database import get_db
from ...models import Client, Provider
from .schemas import ClientResponse, ClientUpdate
from .service import ClientService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/providers/me/clients", tags=["Clients"])


def get_client_service(db: Session = Depends(get_db)) -> ClientService:
    """Dependency injection for ClientService"""
    return ClientService(db)


def to_client_response(client: Client) -> ClientResponse:
    return ClientResponse(
        id=client.id,
        name=client.name,
        email=client.email,
        phone=client.phone,
        sessionPrice=client.session_price,
        joinedAt=client.joined_at,
        lastSessionDate=client.last_session_date,
        completedSessions=client.completed_sessions,
    )


@router.get("", response_model=list[ClientResponse])
async def get_clients(
    current_provider: Provider = Depends(get_current_provider),
    service: ClientService = Depends(get_client_service),
):
    """Get all clients of the current provider"""
    return [to_client_response(c) for c in service.get_clients(current_provider)]


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    current_provider: Provider = Depends(get_current_provider),
    service: ClientService = Depends(get_client_service),
):
    return to_client_response(service.get_client(client_id, current_provider))


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    data: ClientUpdate,
    current_provider: Provider = Depends(get_current_provider),
    service: ClientService = Depends(get_client_service),
):
    """Update a client's name, phone or session price"""
    return to_client_response(service.update_client(client_id, data, current_provider))
