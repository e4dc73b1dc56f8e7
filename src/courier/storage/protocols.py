"""Collaborator interfaces consumed by the delivery engine.

The dispatcher only talks to storage through these protocols, so any
transactional store with single-row operations can back it. The Qdrant
implementation lives in :mod:`courier.storage.client`.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from courier.models import WebhookDelivery, WebhookEndpoint


@runtime_checkable
class EndpointRegistry(Protocol):
    """Read access to tenant-configured endpoints."""

    @abstractmethod
    async def find_enabled_endpoints(self, organization_id: str) -> list[WebhookEndpoint]:
        """Return enabled endpoints of an organization (any subscription)."""
        ...

    @abstractmethod
    async def get_endpoint(self, endpoint_id: str) -> WebhookEndpoint | None:
        """Return an endpoint by ID, enabled or not."""
        ...


@runtime_checkable
class DeliveryLedger(Protocol):
    """Persistent record of delivery attempt sequences.

    Every operation touches a single row; no multi-row transactions
    are required.
    """

    @abstractmethod
    async def create_delivery(self, delivery: WebhookDelivery) -> str:
        """Insert a new delivery row and return its ID."""
        ...

    @abstractmethod
    async def update_delivery(self, delivery: WebhookDelivery) -> str:
        """Overwrite the mutable fields of an existing delivery row."""
        ...

    @abstractmethod
    async def find_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        """Return a delivery by ID."""
        ...

    @abstractmethod
    async def find_due_retries(self, now: datetime, limit: int = 100) -> list[WebhookDelivery]:
        """Return retrying deliveries whose next_retry_at is at or before ``now``."""
        ...

    @abstractmethod
    async def list_deliveries(
        self,
        endpoint_id: str,
        limit: int = 20,
        offset: int = 0,
        status: str | None = None,
    ) -> list[WebhookDelivery]:
        """Return a page of an endpoint's deliveries, newest first."""
        ...


__all__ = ["DeliveryLedger", "EndpointRegistry"]
