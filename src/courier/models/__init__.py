"""Models for Courier webhook delivery.

Entities:
    - WebhookEndpoint: Tenant-configured URL and its subscriptions (read-only here)
    - WebhookEvent: Immutable event payload POSTed to endpoints
    - WebhookDelivery: Ledger row tracking one endpoint's attempts for one event

Supporting Types:
    - EventType, ALL_EVENT_TYPES, EVENT_TYPE_DESCRIPTIONS: Event vocabulary
    - DeliveryStatus: pending, retrying, success, failed
    - TestDeliveryResult: Outcome of a synchronous test delivery
"""

from .base import generate_id, truncate, utc_now
from .webhook import (
    ALL_EVENT_TYPES,
    EVENT_TYPE_DESCRIPTIONS,
    MAX_DIAGNOSTIC_CHARS,
    TERMINAL_STATUSES,
    TEST_EVENT_TYPE,
    WILDCARD_EVENT,
    DeliveryStatus,
    EventType,
    TestDeliveryResult,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookEvent,
)

__all__ = [
    # Helpers
    "generate_id",
    "truncate",
    "utc_now",
    # Event vocabulary
    "ALL_EVENT_TYPES",
    "EVENT_TYPE_DESCRIPTIONS",
    "EventType",
    "TEST_EVENT_TYPE",
    "WILDCARD_EVENT",
    # Delivery
    "DeliveryStatus",
    "MAX_DIAGNOSTIC_CHARS",
    "TERMINAL_STATUSES",
    "TestDeliveryResult",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WebhookEvent",
]
