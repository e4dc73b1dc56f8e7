"""Courier: outbound webhook delivery.

Notifies tenant-configured HTTP endpoints about domain events with
HMAC-SHA256 signatures, bounded automatic retries, and a persistent
delivery ledger.

Quick Start:
    from courier.service import CourierService

    async with CourierService.create() as courier:
        delivery_ids = await courier.dispatcher.dispatch(
            "org_123",
            "menu.published",
            {"menu": {"id": "menu_1", "name": "Lunch"}},
        )

Delivery lifecycle:
    - pending: created, first attempt not yet recorded
    - retrying: an attempt is in flight or the next one is scheduled
    - success: an endpoint answered 2xx (terminal)
    - failed: attempts exhausted or endpoint gone (terminal)
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    CourierError,
    DeliveryError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Models
from .models import (
    ALL_EVENT_TYPES,
    TestDeliveryResult,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookEvent,
)

# Service
from .service import CourierService

# Storage
from .storage import CourierStorage

# Webhooks
from .webhooks import RetryScheduler, WebhookDispatcher, generate_secret, sign, verify

__all__ = [
    "__version__",
    # Config
    "Settings",
    "settings",
    # Exceptions
    "ConfigurationError",
    "CourierError",
    "DeliveryError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    # Models
    "ALL_EVENT_TYPES",
    "TestDeliveryResult",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WebhookEvent",
    # Service
    "CourierService",
    # Storage
    "CourierStorage",
    # Webhooks
    "RetryScheduler",
    "WebhookDispatcher",
    "generate_secret",
    "sign",
    "verify",
]
