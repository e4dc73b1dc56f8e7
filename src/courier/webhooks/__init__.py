"""Webhook delivery engine for Courier.

Provides HMAC-signed fan-out delivery with a fixed backoff retry schedule.

Example:
    ```python
    from courier.webhooks import WebhookDispatcher, events

    dispatcher = WebhookDispatcher(storage, storage, http_client)

    # Dispatch directly
    await dispatcher.dispatch("org_1", "menu.published", {"menu": menu})

    # Or through an event helper
    await events.emit_qr_code_scanned(dispatcher, "org_1", "qr_1", {"city": "Lisbon"})
    ```
"""

from . import events
from .delivery import AttemptOutcome, WebhookDispatcher
from .scheduler import RetryScheduler, backoff_delay
from .signing import generate_secret, sign, verify

__all__ = [
    "AttemptOutcome",
    "RetryScheduler",
    "WebhookDispatcher",
    "backoff_delay",
    "events",
    "generate_secret",
    "sign",
    "verify",
]
