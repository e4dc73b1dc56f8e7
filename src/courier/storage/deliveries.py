"""Delivery ledger operations for Courier storage.

One point per delivery. Rows are created once and updated in place;
the engine never deletes them.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from .retry import qdrant_retry

# Upper bound on offset + limit when paging an endpoint's deliveries
MAX_SCAN = 10000

if TYPE_CHECKING:
    from courier.models import WebhookDelivery


class DeliveryLedgerMixin:
    """Mixin providing delivery ledger operations for CourierStorage.

    This mixin expects the following from the base class:
    - client: AsyncQdrantClient
    - _collection_name(kind) -> str
    - _upsert(kind, record_id, record)
    - _retrieve(kind, record_id) -> payload | None
    - _payload_to_model(payload, model_class)
    """

    client: Any
    _collection_name: Any
    _upsert: Any
    _retrieve: Any
    _payload_to_model: Any

    @qdrant_retry
    async def create_delivery(self, delivery: WebhookDelivery) -> str:
        """Insert a new delivery row.

        Args:
            delivery: WebhookDelivery in its initial pending state.

        Returns:
            The delivery ID.
        """
        await self._upsert("deliveries", delivery.id, delivery)
        return delivery.id

    @qdrant_retry
    async def update_delivery(self, delivery: WebhookDelivery) -> str:
        """Persist the current state of a delivery (last write wins).

        Args:
            delivery: WebhookDelivery with updated fields.

        Returns:
            The delivery ID.
        """
        await self._upsert("deliveries", delivery.id, delivery)
        return delivery.id

    @qdrant_retry
    async def find_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        """Get a delivery by ID."""
        from courier.models import WebhookDelivery

        payload = await self._retrieve("deliveries", delivery_id)
        if payload is None:
            return None
        delivery: WebhookDelivery = self._payload_to_model(payload, WebhookDelivery)
        return delivery

    @qdrant_retry
    async def find_due_retries(
        self,
        now: datetime,
        limit: int = 100,
    ) -> list[WebhookDelivery]:
        """Get retrying deliveries whose next attempt is due.

        Used by the sweeper to resume retries from persisted state,
        including attempts whose in-flight lease has expired.

        Args:
            now: Reference time.
            limit: Maximum entries to return.

        Returns:
            Due deliveries, oldest due first.
        """
        from courier.models import WebhookDelivery

        results, _ = await self.client.scroll(
            collection_name=self._collection_name("deliveries"),
            scroll_filter=models.Filter(
                must=[
                    models.FieldCondition(
                        key="status",
                        match=models.MatchValue(value="retrying"),
                    ),
                    models.FieldCondition(
                        key="next_retry_ts",
                        range=models.Range(lte=now.timestamp()),
                    ),
                ]
            ),
            limit=limit,
            order_by=models.OrderBy(key="next_retry_ts", direction=models.Direction.ASC),
            with_payload=True,
        )

        return [
            self._payload_to_model(dict(r.payload), WebhookDelivery)
            for r in results
            if r.payload is not None
        ]

    @qdrant_retry
    async def list_deliveries(
        self,
        endpoint_id: str,
        limit: int = 20,
        offset: int = 0,
        status: str | None = None,
    ) -> list[WebhookDelivery]:
        """List deliveries of an endpoint, newest first.

        Qdrant has no offset for ordered scrolls, so the rows before the
        page are read and skipped; callers keep offset + limit within
        MAX_SCAN.

        Args:
            endpoint_id: Endpoint to list deliveries for.
            limit: Page size.
            offset: Entries to skip.
            status: Optional status filter.

        Returns:
            A page of WebhookDelivery sorted by created_at descending.
        """
        from courier.models import WebhookDelivery

        filters: list[models.FieldCondition] = [
            models.FieldCondition(
                key="endpoint_id",
                match=models.MatchValue(value=endpoint_id),
            )
        ]
        if status is not None:
            filters.append(
                models.FieldCondition(
                    key="status",
                    match=models.MatchValue(value=status),
                )
            )

        results, _ = await self.client.scroll(
            collection_name=self._collection_name("deliveries"),
            scroll_filter=models.Filter(must=filters),
            limit=min(offset + limit, MAX_SCAN),
            order_by=models.OrderBy(key="created_ts", direction=models.Direction.DESC),
            with_payload=True,
        )

        return [
            self._payload_to_model(dict(r.payload), WebhookDelivery)
            for r in results[offset:]
            if r.payload is not None
        ]
