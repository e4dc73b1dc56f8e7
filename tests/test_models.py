"""Unit tests for Courier webhook models."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from courier.models import (
    ALL_EVENT_TYPES,
    EVENT_TYPE_DESCRIPTIONS,
    MAX_DIAGNOSTIC_CHARS,
    TestDeliveryResult,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookEvent,
    generate_id,
    truncate,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def make_delivery(**overrides) -> WebhookDelivery:
    event = WebhookEvent(type="menu.published", data={"menu": {"id": "m1"}})
    fields = {"endpoint_id": "whk_1", "event_type": event.type, "payload": event}
    fields.update(overrides)
    return WebhookDelivery(**fields)


class TestHelpers:
    """Tests for model helpers."""

    def test_generate_id_prefix(self):
        """IDs should carry the prefix and 16 hex chars."""
        value = generate_id("dlv")
        assert value.startswith("dlv_")
        assert len(value) == len("dlv_") + 16

    def test_truncate(self):
        """truncate should cut long strings and pass None through."""
        assert truncate("x" * 2000) == "x" * 1000
        assert truncate("short", 3) == "sho"
        assert truncate(None) is None


class TestEventVocabulary:
    """Tests for the event type vocabulary."""

    def test_seventeen_event_types(self):
        """Every event type should have a description."""
        assert len(ALL_EVENT_TYPES) == 17
        assert set(ALL_EVENT_TYPES) == set(EVENT_TYPE_DESCRIPTIONS)
        assert "qr_code.scanned" in ALL_EVENT_TYPES


class TestWebhookEndpoint:
    """Tests for WebhookEndpoint model."""

    def test_defaults(self):
        """Endpoints should get an ID and be enabled by default."""
        endpoint = WebhookEndpoint(
            organization_id="org_1",
            url="https://example.com/hook",
            secret="s3cret",
            events=["menu.created"],
        )
        assert endpoint.id.startswith("whk_")
        assert endpoint.enabled is True

    def test_rejects_invalid_url(self):
        """Malformed URLs should be rejected at the boundary."""
        with pytest.raises(ValidationError):
            WebhookEndpoint(
                organization_id="org_1", url="not a url", secret="s", events=["menu.created"]
            )

    def test_rejects_empty_secret(self):
        """An empty secret should be rejected."""
        with pytest.raises(ValidationError):
            WebhookEndpoint(
                organization_id="org_1",
                url="https://example.com/hook",
                secret="",
                events=["menu.created"],
            )

    def test_rejects_unknown_event_type(self):
        """Event types outside the vocabulary should be rejected."""
        with pytest.raises(ValidationError, match="Invalid event types"):
            WebhookEndpoint(
                organization_id="org_1",
                url="https://example.com/hook",
                secret="s",
                events=["menu.exploded"],
            )

    def test_rejects_empty_events(self):
        """An endpoint must subscribe to something."""
        with pytest.raises(ValidationError):
            WebhookEndpoint(
                organization_id="org_1", url="https://example.com/hook", secret="s", events=[]
            )

    def test_subscribes_to_listed_event(self):
        """Listed event types should match; others should not."""
        endpoint = WebhookEndpoint(
            organization_id="org_1",
            url="https://example.com/hook",
            secret="s",
            events=["menu.created", "menu.deleted"],
        )
        assert endpoint.subscribes_to("menu.created")
        assert not endpoint.subscribes_to("venue.created")

    def test_wildcard_subscribes_to_everything(self):
        """The wildcard should match every event type, including test.ping."""
        endpoint = WebhookEndpoint(
            organization_id="org_1", url="https://example.com/hook", secret="s", events=["*"]
        )
        assert all(endpoint.subscribes_to(e) for e in ALL_EVENT_TYPES)
        assert endpoint.subscribes_to("test.ping")

    def test_disabled_subscribes_to_nothing(self):
        """Disabled endpoints should not match any event."""
        endpoint = WebhookEndpoint(
            organization_id="org_1",
            url="https://example.com/hook",
            secret="s",
            events=["*"],
            enabled=False,
        )
        assert not endpoint.subscribes_to("menu.created")


class TestWebhookEvent:
    """Tests for WebhookEvent model."""

    def test_body_shape(self):
        """The body should be JSON with id, type, timestamp, and data."""
        event = WebhookEvent(type="menu.deleted", data={"menuId": "m1"})
        body = json.loads(event.to_body())

        assert set(body) == {"id", "type", "timestamp", "data"}
        assert body["type"] == "menu.deleted"
        assert body["data"] == {"menuId": "m1"}

    def test_body_is_stable(self):
        """Serializing the same event twice should give identical bytes."""
        event = WebhookEvent(type="menu.deleted", data={"menuId": "m1"})
        assert event.to_body() == event.to_body()

    def test_frozen(self):
        """Events are immutable once created."""
        event = WebhookEvent(type="menu.deleted")
        with pytest.raises(ValidationError):
            event.type = "menu.created"  # type: ignore[misc]


class TestWebhookDelivery:
    """Tests for the delivery state machine."""

    def test_for_event(self):
        """A new delivery should be pending with no attempts."""
        event = WebhookEvent(type="venue.created")
        delivery = WebhookDelivery.for_event("whk_1", event, max_attempts=5)

        assert delivery.id.startswith("dlv_")
        assert delivery.status == "pending"
        assert delivery.attempts == 0
        assert delivery.event_type == "venue.created"
        assert delivery.payload == event

    def test_attempts_cannot_exceed_max(self):
        """attempts > max_attempts should fail validation."""
        with pytest.raises(ValidationError):
            make_delivery(attempts=6, max_attempts=5)

    def test_begin_attempt(self):
        """begin_attempt should count the attempt and hold a lease."""
        delivery = make_delivery()
        delivery.begin_attempt(NOW, lease_seconds=60)

        assert delivery.status == "retrying"
        assert delivery.attempts == 1
        assert delivery.next_retry_at == NOW + timedelta(seconds=60)

    def test_begin_attempt_rejects_terminal(self):
        """Terminal deliveries cannot start new attempts."""
        delivery = make_delivery()
        delivery.mark_success(NOW, http_status=200)

        with pytest.raises(ValueError, match="already success"):
            delivery.begin_attempt(NOW, lease_seconds=60)

    def test_begin_attempt_rejects_exhausted(self):
        """No attempt may start once attempts reach max_attempts."""
        delivery = make_delivery(status="retrying", attempts=5, max_attempts=5)

        with pytest.raises(ValueError, match="no attempts left"):
            delivery.begin_attempt(NOW, lease_seconds=60)

    def test_mark_success(self):
        """Success should be terminal and clear scheduling fields."""
        delivery = make_delivery()
        delivery.begin_attempt(NOW, lease_seconds=60)
        delivery.mark_success(NOW, http_status=204, response_body="")

        assert delivery.status == "success"
        assert delivery.is_terminal
        assert delivery.http_status == 204
        assert delivery.next_retry_at is None
        assert delivery.completed_at == NOW

    def test_mark_retrying_requires_future(self):
        """next_retry_at must lie after now."""
        delivery = make_delivery()
        with pytest.raises(ValueError):
            delivery.mark_retrying(NOW, next_retry_at=NOW, error="HTTP 500")

    def test_mark_retrying_truncates_diagnostics(self):
        """Response bodies and errors should be cut to the diagnostic limit."""
        delivery = make_delivery()
        delivery.mark_retrying(
            NOW,
            next_retry_at=NOW + timedelta(minutes=1),
            error="e" * 5000,
            http_status=500,
            response_body="b" * 5000,
        )

        assert delivery.status == "retrying"
        assert len(delivery.error_message or "") == MAX_DIAGNOSTIC_CHARS
        assert len(delivery.response_body or "") == MAX_DIAGNOSTIC_CHARS

    def test_is_due(self):
        """Only retrying deliveries past next_retry_at are due."""
        delivery = make_delivery()
        delivery.mark_retrying(NOW, next_retry_at=NOW + timedelta(minutes=1), error="x")

        assert not delivery.is_due(NOW)
        assert delivery.is_due(NOW + timedelta(minutes=1))
        assert not make_delivery().is_due(NOW)

    def test_mark_failed(self):
        """Failed should be terminal with no next retry."""
        delivery = make_delivery(status="retrying", attempts=5)
        delivery.mark_failed(NOW, error="HTTP 500", http_status=500)

        assert delivery.status == "failed"
        assert delivery.is_terminal
        assert delivery.next_retry_at is None
        assert delivery.completed_at == NOW

    def test_reset_for_manual_retry(self):
        """Manual retry should start a fresh cycle from any status."""
        delivery = make_delivery(status="retrying", attempts=5)
        delivery.mark_failed(NOW, error="HTTP 500", http_status=500, response_body="boom")

        delivery.reset_for_manual_retry(NOW + timedelta(hours=1))

        assert delivery.status == "pending"
        assert delivery.attempts == 0
        assert delivery.http_status is None
        assert delivery.response_body is None
        assert delivery.error_message is None
        assert delivery.completed_at is None

    def test_json_round_trip(self):
        """Deliveries should survive payload serialization."""
        delivery = make_delivery()
        delivery.begin_attempt(NOW, lease_seconds=60)

        restored = WebhookDelivery.model_validate(delivery.model_dump(mode="json"))
        assert restored == delivery


class TestTestDeliveryResult:
    """Tests for TestDeliveryResult."""

    def test_defaults(self):
        result = TestDeliveryResult(delivery_id="dlv_1", success=False, error="timeout")
        assert result.http_status is None
        assert result.response_body is None
