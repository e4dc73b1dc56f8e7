"""Storage backends for Courier.

Persists webhook endpoints and the delivery ledger to Qdrant.

Example:
    ```python
    from courier.storage import CourierStorage

    async with CourierStorage() as storage:
        await storage.create_delivery(delivery)
        due = await storage.find_due_retries(now)
    ```
"""

from .base import COLLECTION_NAMES
from .client import CourierStorage
from .protocols import DeliveryLedger, EndpointRegistry

__all__ = [
    "COLLECTION_NAMES",
    "CourierStorage",
    "DeliveryLedger",
    "EndpointRegistry",
]
