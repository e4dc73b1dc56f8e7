"""Endpoint registry operations for Courier storage.

Endpoint management (create/update/delete, secret rotation) belongs to the
management API. The delivery engine only reads endpoints; ``store_endpoint``
exists so that API and tests can seed the registry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from qdrant_client import models

from .retry import qdrant_retry

if TYPE_CHECKING:
    from courier.models import WebhookEndpoint


class EndpointMixin:
    """Mixin providing endpoint registry reads for CourierStorage.

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
    async def store_endpoint(self, endpoint: WebhookEndpoint) -> str:
        """Store an endpoint record.

        Args:
            endpoint: WebhookEndpoint to store.

        Returns:
            The endpoint ID.
        """
        await self._upsert("endpoints", endpoint.id, endpoint)
        return endpoint.id

    @qdrant_retry
    async def get_endpoint(self, endpoint_id: str) -> WebhookEndpoint | None:
        """Get an endpoint by ID, whether enabled or not."""
        from courier.models import WebhookEndpoint

        payload = await self._retrieve("endpoints", endpoint_id)
        if payload is None:
            return None
        endpoint: WebhookEndpoint = self._payload_to_model(payload, WebhookEndpoint)
        return endpoint

    @qdrant_retry
    async def find_enabled_endpoints(
        self,
        organization_id: str,
        limit: int = 1000,
    ) -> list[WebhookEndpoint]:
        """List enabled endpoints of an organization.

        Subscription filtering happens in the dispatcher, since wildcard
        subscriptions cannot be expressed as a payload match.

        Args:
            organization_id: Organization to list endpoints for.
            limit: Maximum endpoints to return.

        Returns:
            Enabled WebhookEndpoints of the organization.
        """
        from courier.models import WebhookEndpoint

        results, _ = await self.client.scroll(
            collection_name=self._collection_name("endpoints"),
            scroll_filter=models.Filter(
                must=[
                    models.FieldCondition(
                        key="organization_id",
                        match=models.MatchValue(value=organization_id),
                    ),
                    models.FieldCondition(
                        key="enabled",
                        match=models.MatchValue(value=True),
                    ),
                ]
            ),
            limit=limit,
            with_payload=True,
        )

        return [
            self._payload_to_model(dict(r.payload), WebhookEndpoint)
            for r in results
            if r.payload is not None
        ]
