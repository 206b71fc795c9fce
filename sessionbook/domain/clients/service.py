"""Client service - Business logic for client operations"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import resolve_session_price
from ...errors import ConflictError, DependencyError, NotFoundError
from ...models import Client, Provider
from .repository import ClientRepository
from .schemas import ClientUpdate

logger = logging.getLogger(__name__)


class ClientService:
    """Service layer for client business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClientRepository()

    def get_clients(self, provider: Provider) -> list[Client]:
        return self.repo.get_clients(self.db, provider.id)

    def get_client(self, client_id: int, provider: Provider) -> Client:
        client = self.repo.get_client_by_id(self.db, client_id, provider.id)
        if not client:
            raise NotFoundError("Client not found")
        return client

    def update_client(self, client_id: int, data: ClientUpdate, provider: Provider) -> Client:
        """
        Edit a client profile. Existing bookings keep the name and phone they
        were made with.
        """
        client = self.get_client(client_id, provider)

        updates = {}
        if data.name is not None:
            updates["name"] = data.name
        if "phone" in data.model_fields_set:
            updates["phone"] = data.phone
        if data.sessionPrice is not None:
            updates["session_price"] = data.sessionPrice

        try:
            self.repo.update_client(self.db, client, **updates)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update client {client_id}: {e}")
            raise DependencyError("Could not save client") from e

        self.db.refresh(client)
        logger.info(f"✅ Client {client.id} updated: {sorted(updates)}")
        return client

    def resolve_client(
        self, provider: Provider, name: str, email: str, phone: Optional[str] = None
    ) -> tuple[Client, bool]:
        """
        Find the provider's client by email or create one. Does not commit.

        An existing client keeps its stored name, phone and price - values in
        the current request never overwrite the profile. Creation runs in a
        SAVEPOINT so that losing a race on the (provider, email) unique
        constraint turns into a plain lookup instead of an error.

        Returns (client, created)
        """
        email = email.strip().lower()

        client = self.repo.get_client_by_email(self.db, provider.id, email)
        if client:
            logger.info(f"👤 Reusing client {client.id} for {email}")
            return client, False

        try:
            with self.db.begin_nested():
                client = self.repo.create_client(
                    self.db,
                    provider.id,
                    email=email,
                    name=name.strip(),
                    phone=phone,
                    session_price=resolve_session_price(provider_price=provider.session_price),
                    completed_sessions=0,
                )
            logger.info(f"✅ Created client {client.id} for {email} (provider {provider.id})")
            return client, True
        except IntegrityError:
            logger.info(f"ℹ️ Client {email} was created concurrently, looking it up")

        client = self.repo.get_client_by_email(self.db, provider.id, email)
        if not client:
            raise ConflictError("Client could not be created", code="client_exists")
        return client, False
