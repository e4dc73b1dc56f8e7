"""Webhook models for outbound event notifications.

Provides endpoint registration records, event payloads, and the delivery
ledger row with its state machine:

    pending -> retrying -> {success, failed}

Terminal states are only left through an explicit manual retry, which
resets the delivery to pending.
"""

from datetime import datetime, timedelta
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

from .base import generate_id, truncate, utc_now

# Event types that can trigger webhooks
EventType = Literal[
    "menu.created",
    "menu.updated",
    "menu.published",
    "menu.deleted",
    "venue.created",
    "venue.updated",
    "venue.deleted",
    "qr_code.created",
    "qr_code.scanned",
    "qr_code.deleted",
    "subscription.created",
    "subscription.updated",
    "subscription.canceled",
    "subscription.renewed",
    "organization.updated",
    "team.member_added",
    "team.member_removed",
]

EVENT_TYPE_DESCRIPTIONS: dict[str, str] = {
    "menu.created": "Triggered when a new menu is created",
    "menu.updated": "Triggered when a menu is updated",
    "menu.published": "Triggered when a menu is published",
    "menu.deleted": "Triggered when a menu is deleted",
    "venue.created": "Triggered when a new venue is created",
    "venue.updated": "Triggered when a venue is updated",
    "venue.deleted": "Triggered when a venue is deleted",
    "qr_code.created": "Triggered when a QR code is created",
    "qr_code.scanned": "Triggered when a QR code is scanned",
    "qr_code.deleted": "Triggered when a QR code is deleted",
    "subscription.created": "Triggered when a subscription is created",
    "subscription.updated": "Triggered when a subscription is updated",
    "subscription.canceled": "Triggered when a subscription is canceled",
    "subscription.renewed": "Triggered when a subscription is renewed",
    "organization.updated": "Triggered when organization settings are updated",
    "team.member_added": "Triggered when a team member is added",
    "team.member_removed": "Triggered when a team member is removed",
}

# All available event types for subscription
ALL_EVENT_TYPES: list[str] = list(EVENT_TYPE_DESCRIPTIONS)

# Subscribing to "*" matches every event type, including ones added later
WILDCARD_EVENT = "*"

# Event type used by synchronous test deliveries
TEST_EVENT_TYPE = "test.ping"

# Delivery status
DeliveryStatus = Literal["pending", "retrying", "success", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"success", "failed"})

# Response bodies and error messages kept on the ledger are cut to this size
MAX_DIAGNOSTIC_CHARS = 1000


class WebhookEndpoint(BaseModel):
    """A tenant-configured URL subscribed to one or more event types.

    Endpoints are managed outside the delivery engine; the engine only
    reads them. Validation here is the boundary that keeps malformed URLs
    and empty secrets from ever reaching a delivery attempt.

    Attributes:
        id: Unique identifier for this endpoint.
        organization_id: Owning organization.
        url: HTTP(S) URL receiving POSTed events.
        secret: Shared secret for HMAC-SHA256 signatures.
        events: Subscribed event types, or "*" for all.
        enabled: Disabled endpoints never receive new deliveries.
        description: Optional human-readable description.
        created_at: When the endpoint was registered.
        updated_at: When the endpoint was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    organization_id: str = Field(min_length=1, description="Owning organization")
    url: HttpUrl = Field(description="Endpoint receiving webhook events")
    secret: str = Field(min_length=1, description="Shared secret for HMAC-SHA256 signatures")
    events: list[str] = Field(min_length=1, description="Subscribed event types or '*'")
    enabled: bool = Field(default=True, description="Whether the endpoint is active")
    description: str | None = Field(default=None, description="Human-readable description")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("events")
    @classmethod
    def validate_events(cls, value: list[str]) -> list[str]:
        """Reject event types outside the vocabulary."""
        invalid = [e for e in value if e != WILDCARD_EVENT and e not in EVENT_TYPE_DESCRIPTIONS]
        if invalid:
            raise ValueError(f"Invalid event types: {', '.join(invalid)}")
        return value

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this endpoint should receive the given event type."""
        return self.enabled and (WILDCARD_EVENT in self.events or event_type in self.events)


class WebhookEvent(BaseModel):
    """Event payload POSTed to webhook endpoints.

    The serialized form is the request body and the exact byte sequence
    covered by the signature: ``{"id", "type", "timestamp", "data"}``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()), description="Event identifier")
    type: str = Field(min_length=1, description="Event type, e.g. menu.published")
    timestamp: datetime = Field(default_factory=utc_now, description="When the event occurred")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")

    def to_body(self) -> bytes:
        """Canonical request body."""
        return self.model_dump_json().encode("utf-8")


class WebhookDelivery(BaseModel):
    """One endpoint's attempt sequence for one event.

    This is the unit of retry and observability. The payload never changes
    after creation; only the status and diagnostic fields move.

    Attributes:
        id: Unique identifier for this delivery.
        endpoint_id: Owning endpoint.
        event_type: The event's type (duplicated for filtering).
        payload: Snapshot of the event being delivered.
        status: pending, retrying, success, or failed.
        attempts: Delivery attempts made so far.
        max_attempts: Ceiling for automatic attempts.
        http_status: Status code of the last response, if any.
        response_body: Last response body (truncated).
        error_message: Last failure reason (truncated).
        next_retry_at: When the next attempt is due (only while retrying).
        completed_at: When the delivery reached success or failed.
        created_at: When the delivery was created.
        updated_at: When the delivery last changed.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    endpoint_id: str = Field(description="ID of the owning endpoint")
    event_type: str = Field(description="Event type being delivered")
    payload: WebhookEvent = Field(description="Event snapshot")
    status: DeliveryStatus = Field(default="pending", description="Delivery status")
    attempts: int = Field(default=0, ge=0, description="Attempts made so far")
    max_attempts: int = Field(default=5, ge=1, description="Maximum automatic attempts")
    http_status: int | None = Field(default=None, description="Last HTTP status code")
    response_body: str | None = Field(default=None, description="Last response body (truncated)")
    error_message: str | None = Field(default=None, description="Last error (truncated)")
    next_retry_at: datetime | None = Field(default=None, description="When next attempt is due")
    completed_at: datetime | None = Field(default=None, description="When delivery finished")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def validate_attempts(self) -> "WebhookDelivery":
        """attempts may never exceed max_attempts."""
        if self.attempts > self.max_attempts:
            raise ValueError(
                f"attempts ({self.attempts}) exceeds max_attempts ({self.max_attempts})"
            )
        return self

    @classmethod
    def for_event(
        cls, endpoint_id: str, event: WebhookEvent, max_attempts: int = 5
    ) -> "WebhookDelivery":
        """Create a pending delivery of an event to one endpoint."""
        return cls(
            endpoint_id=endpoint_id,
            event_type=event.type,
            payload=event,
            max_attempts=max_attempts,
        )

    @property
    def is_terminal(self) -> bool:
        """Whether the delivery reached success or failed."""
        return self.status in TERMINAL_STATUSES

    @property
    def attempts_exhausted(self) -> bool:
        """Whether no automatic attempts remain."""
        return self.attempts >= self.max_attempts

    def is_due(self, now: datetime) -> bool:
        """Whether a retrying delivery should be attempted at ``now``."""
        return (
            self.status == "retrying"
            and self.next_retry_at is not None
            and self.next_retry_at <= now
        )

    def begin_attempt(self, now: datetime, lease_seconds: float) -> "WebhookDelivery":
        """Record the start of an attempt before the request goes out.

        The delivery stays ``retrying`` while in flight; ``next_retry_at``
        holds a lease so a sweeper can recover the attempt if this process
        dies before recording an outcome.
        """
        if self.is_terminal:
            raise ValueError(f"Delivery {self.id} is already {self.status}")
        if self.attempts_exhausted:
            raise ValueError(f"Delivery {self.id} has no attempts left")
        self.status = "retrying"
        self.attempts += 1
        self.next_retry_at = now + timedelta(seconds=lease_seconds)
        self.updated_at = now
        return self

    def mark_success(
        self,
        now: datetime,
        http_status: int,
        response_body: str | None = None,
    ) -> "WebhookDelivery":
        """Mark delivery as successful (terminal)."""
        self.status = "success"
        self.http_status = http_status
        self.response_body = truncate(response_body, MAX_DIAGNOSTIC_CHARS)
        self.error_message = None
        self.next_retry_at = None
        self.completed_at = now
        self.updated_at = now
        return self

    def mark_retrying(
        self,
        now: datetime,
        next_retry_at: datetime,
        error: str,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> "WebhookDelivery":
        """Schedule the next attempt after a failure."""
        if next_retry_at <= now:
            raise ValueError("next_retry_at must be in the future")
        self.status = "retrying"
        self.http_status = http_status
        self.response_body = truncate(response_body, MAX_DIAGNOSTIC_CHARS)
        self.error_message = truncate(error, MAX_DIAGNOSTIC_CHARS)
        self.next_retry_at = next_retry_at
        self.updated_at = now
        return self

    def mark_failed(
        self,
        now: datetime,
        error: str,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> "WebhookDelivery":
        """Mark delivery as failed (terminal, no more automatic retries)."""
        self.status = "failed"
        self.http_status = http_status
        self.response_body = truncate(response_body, MAX_DIAGNOSTIC_CHARS)
        self.error_message = truncate(error, MAX_DIAGNOSTIC_CHARS)
        self.next_retry_at = None
        self.completed_at = now
        self.updated_at = now
        return self

    def reset_for_manual_retry(self, now: datetime) -> "WebhookDelivery":
        """Start a fresh retry cycle requested by an operator."""
        self.status = "pending"
        self.attempts = 0
        self.http_status = None
        self.response_body = None
        self.error_message = None
        self.next_retry_at = None
        self.completed_at = None
        self.updated_at = now
        return self


class TestDeliveryResult(BaseModel):
    """Outcome of a synchronous test delivery."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(extra="forbid")

    delivery_id: str
    success: bool
    http_status: int | None = None
    response_body: str | None = None
    error: str | None = None


__all__ = [
    "ALL_EVENT_TYPES",
    "DeliveryStatus",
    "EVENT_TYPE_DESCRIPTIONS",
    "EventType",
    "MAX_DIAGNOSTIC_CHARS",
    "TERMINAL_STATUSES",
    "TEST_EVENT_TYPE",
    "TestDeliveryResult",
    "WILDCARD_EVENT",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WebhookEvent",
]
