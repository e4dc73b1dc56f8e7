"""Qdrant storage client for Courier.

This module provides the CourierStorage class that combines the endpoint
registry and the delivery ledger through mixins.

Example:
    ```python
    from courier.storage import CourierStorage

    async with CourierStorage() as storage:
        endpoints = await storage.find_enabled_endpoints("org_123")
        delivery = await storage.find_delivery("dlv_a1b2c3d4e5f6a7b8")
    ```
"""

from __future__ import annotations

from .base import StorageBase
from .deliveries import DeliveryLedgerMixin
from .endpoints import EndpointMixin


class CourierStorage(EndpointMixin, DeliveryLedgerMixin, StorageBase):
    """Async Qdrant storage for webhook endpoints and deliveries.

    Implements both collaborator protocols used by the dispatcher:
    - EndpointRegistry: find_enabled_endpoints, get_endpoint
    - DeliveryLedger: create_delivery, update_delivery, find_delivery,
      find_due_retries

    Attributes:
        client: Async Qdrant client instance.
    """

    async def __aenter__(self) -> CourierStorage:
        """Async context manager entry."""
        await self.initialize()
        return self


__all__ = ["CourierStorage"]
