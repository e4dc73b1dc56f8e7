"""Unit tests for Courier storage layer.

These tests use qdrant-client's local in-memory mode for fast, isolated testing.
No external Qdrant server is required.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from qdrant_client import models
from tenacity import wait_none

from courier.exceptions import StorageError
from courier.models import WebhookDelivery, WebhookEndpoint, WebhookEvent
from courier.storage import CourierStorage, DeliveryLedger, EndpointRegistry
from courier.storage.retry import qdrant_retry

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def make_delivery(endpoint_id: str = "whk_1", **overrides) -> WebhookDelivery:
    event = WebhookEvent(type="menu.published", data={"menu": {"id": "m1"}})
    delivery = WebhookDelivery.for_event(endpoint_id, event)
    for key, value in overrides.items():
        setattr(delivery, key, value)
    return delivery


class TestStorageInit:
    """Tests for storage initialization."""

    async def test_creates_collections(self, storage: CourierStorage):
        """initialize() should create the endpoint and delivery collections."""
        collections = await storage.client.get_collections()
        names = {c.name for c in collections.collections}

        assert "test_webhook_endpoints" in names
        assert "test_webhook_deliveries" in names

    async def test_initialize_is_idempotent(self, storage: CourierStorage):
        """Re-initializing should keep existing collections."""
        await storage.initialize()
        collections = await storage.client.get_collections()
        assert len(collections.collections) == 2

    def test_client_requires_initialize(self):
        """Using storage before initialize() should raise StorageError."""
        store = CourierStorage(prefix="test")
        with pytest.raises(StorageError):
            _ = store.client

    def test_implements_protocols(self, storage: CourierStorage):
        """CourierStorage should satisfy both collaborator protocols."""
        assert isinstance(storage, EndpointRegistry)
        assert isinstance(storage, DeliveryLedger)

    async def test_creates_range_indexes(self):
        """Ordered ledger scrolls need FLOAT indexes on the derived timestamps."""
        client = AsyncMock()
        client.get_collections.return_value = MagicMock(collections=[])
        store = CourierStorage(prefix="idx")
        store._client = client

        await store.initialize()

        float_fields = {
            (c.kwargs["collection_name"], c.kwargs["field_name"])
            for c in client.create_payload_index.await_args_list
            if c.kwargs["field_schema"] == models.PayloadSchemaType.FLOAT
        }
        assert float_fields == {
            ("idx_webhook_deliveries", "created_ts"),
            ("idx_webhook_deliveries", "next_retry_ts"),
        }

    def test_point_ids_are_deterministic(self):
        """The same record should always map to the same point."""
        first = CourierStorage._point_id("deliveries", "dlv_1")
        assert first == CourierStorage._point_id("deliveries", "dlv_1")
        assert first != CourierStorage._point_id("endpoints", "dlv_1")


class TestEndpointRegistry:
    """Tests for endpoint reads."""

    async def test_store_and_get(self, storage: CourierStorage, make_endpoint):
        """Stored endpoints should round-trip."""
        endpoint = make_endpoint(events=["*"], description="Primary")
        await storage.store_endpoint(endpoint)

        found = await storage.get_endpoint(endpoint.id)
        assert found == endpoint

    async def test_get_missing(self, storage: CourierStorage):
        assert await storage.get_endpoint("whk_missing") is None

    async def test_get_returns_disabled(self, storage: CourierStorage, make_endpoint):
        """get_endpoint should not hide disabled endpoints."""
        endpoint = make_endpoint(enabled=False)
        await storage.store_endpoint(endpoint)

        found = await storage.get_endpoint(endpoint.id)
        assert found is not None
        assert found.enabled is False

    async def test_find_enabled_endpoints(self, storage: CourierStorage, make_endpoint):
        """Only enabled endpoints of the organization should be returned."""
        enabled = make_endpoint()
        disabled = make_endpoint(enabled=False)
        other_org = make_endpoint(organization_id="org_2")
        for endpoint in (enabled, disabled, other_org):
            await storage.store_endpoint(endpoint)

        found = await storage.find_enabled_endpoints("org_1")

        assert [e.id for e in found] == [enabled.id]
        assert isinstance(found[0], WebhookEndpoint)


class TestDeliveryLedger:
    """Tests for delivery ledger operations."""

    async def test_create_and_find(self, storage: CourierStorage):
        delivery = make_delivery()
        assert await storage.create_delivery(delivery) == delivery.id

        found = await storage.find_delivery(delivery.id)
        assert found == delivery

    async def test_find_missing(self, storage: CourierStorage):
        assert await storage.find_delivery("dlv_missing") is None

    async def test_update_overwrites(self, storage: CourierStorage):
        """update_delivery should replace the row in place."""
        delivery = make_delivery()
        await storage.create_delivery(delivery)

        delivery.begin_attempt(NOW, lease_seconds=60)
        delivery.mark_success(NOW, http_status=200, response_body="ok")
        await storage.update_delivery(delivery)

        found = await storage.find_delivery(delivery.id)
        assert found is not None
        assert found.status == "success"
        assert found.attempts == 1
        assert found.http_status == 200

    async def test_find_due_retries(self, storage: CourierStorage):
        """Only retrying rows with next_retry_at <= now should be due."""
        due = make_delivery(status="retrying", attempts=1, next_retry_at=NOW - timedelta(minutes=5))
        later = make_delivery(
            status="retrying", attempts=1, next_retry_at=NOW + timedelta(minutes=5)
        )
        finished = make_delivery(status="success", attempts=1)
        pending = make_delivery()
        for delivery in (due, later, finished, pending):
            await storage.create_delivery(delivery)

        found = await storage.find_due_retries(NOW)

        assert [d.id for d in found] == [due.id]

    async def test_find_due_retries_ordered_and_limited(self, storage: CourierStorage):
        """Due rows should come oldest first, capped by limit."""
        rows = [
            make_delivery(status="retrying", attempts=1, next_retry_at=NOW - timedelta(minutes=m))
            for m in (1, 10, 5)
        ]
        for delivery in rows:
            await storage.create_delivery(delivery)

        found = await storage.find_due_retries(NOW, limit=10)
        assert [d.id for d in found] == [rows[1].id, rows[2].id, rows[0].id]

        oldest = await storage.find_due_retries(NOW, limit=2)
        assert [d.id for d in oldest] == [rows[1].id, rows[2].id]

    async def test_list_deliveries_newest_first(self, storage: CourierStorage):
        """Listing should be scoped to the endpoint and sorted newest first."""
        rows = [make_delivery(created_at=NOW + timedelta(minutes=i)) for i in range(5)]
        other = make_delivery(endpoint_id="whk_2")
        for delivery in (*rows, other):
            await storage.create_delivery(delivery)

        page = await storage.list_deliveries("whk_1", limit=2, offset=1)

        assert [d.id for d in page] == [rows[3].id, rows[2].id]

    async def test_list_deliveries_first_page_is_newest(self, storage: CourierStorage):
        """A one-row page should hold the newest delivery whatever the insert order."""
        rows = [make_delivery(created_at=NOW + timedelta(minutes=m)) for m in (3, 40, 7, 25, 1)]
        for delivery in rows:
            await storage.create_delivery(delivery)

        [newest] = await storage.list_deliveries("whk_1", limit=1)
        assert newest.id == rows[1].id

        assert await storage.list_deliveries("whk_1", limit=5, offset=5) == []

    async def test_list_deliveries_status_filter(self, storage: CourierStorage):
        failed = make_delivery(status="failed", attempts=5)
        ok = make_delivery(status="success", attempts=1)
        await storage.create_delivery(failed)
        await storage.create_delivery(ok)

        page = await storage.list_deliveries("whk_1", status="failed")

        assert [d.id for d in page] == [failed.id]


class TestQdrantRetry:
    """Tests for the storage retry decorator."""

    async def test_retries_transient_errors(self):
        """Connection errors should be retried up to three attempts."""
        calls = 0

        @qdrant_retry
        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise httpx.ConnectError("connection refused")
            return "ok"

        assert await flaky.retry_with(wait=wait_none())() == "ok"
        assert calls == 3

    async def test_gives_up_and_reraises(self):
        calls = 0

        @qdrant_retry
        async def down() -> None:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("connection refused")

        with pytest.raises(httpx.ConnectError):
            await down.retry_with(wait=wait_none())()
        assert calls == 3

    async def test_other_errors_not_retried(self):
        calls = 0

        @qdrant_retry
        async def broken() -> None:
            nonlocal calls
            calls += 1
            raise ValueError("bad payload")

        with pytest.raises(ValueError):
            await broken()
        assert calls == 1
