"""Courier service wiring.

Bundles storage, the shared HTTP client, and the dispatcher behind one
lifecycle, for the API process and for applications embedding the engine.

Example:
    ```python
    from courier.service import CourierService

    async with CourierService.create() as courier:
        await courier.dispatcher.dispatch("org_1", "menu.published", {"menu": menu})
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from courier.config import Settings
from courier.exceptions import ConfigurationError
from courier.storage import CourierStorage
from courier.webhooks import WebhookDispatcher


@dataclass
class CourierService:
    """Webhook delivery service.

    Attributes:
        storage: Endpoint registry and delivery ledger (Qdrant).
        http_client: Process-scoped client shared by all deliveries.
        settings: Configuration settings.
        dispatcher: Fan-out, attempt, and retry engine.
    """

    storage: CourierStorage
    http_client: httpx.AsyncClient
    settings: Settings
    dispatcher: WebhookDispatcher = field(init=False)

    def __post_init__(self) -> None:
        self.dispatcher = WebhookDispatcher(
            registry=self.storage,
            ledger=self.storage,
            http_client=self.http_client,
            settings=self.settings,
        )

    @classmethod
    def create(cls, settings: Settings | None = None) -> CourierService:
        """Create a CourierService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.

        Returns:
            Configured CourierService instance.

        Raises:
            ConfigurationError: If sweep mode is selected with the sweeper disabled.
        """
        if settings is None:
            settings = Settings()
        if settings.retry_mode == "sweep" and not settings.sweep_enabled:
            raise ConfigurationError(
                "COURIER_RETRY_MODE=sweep requires COURIER_SWEEP_ENABLED=true: "
                "without timers or a sweeper no retry would ever run"
            )

        return cls(
            storage=CourierStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
            ),
            http_client=httpx.AsyncClient(
                timeout=settings.webhook_timeout_seconds,
                follow_redirects=False,
            ),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Initialize storage and start the retry sweeper if enabled."""
        await self.storage.initialize()
        if self.settings.sweep_enabled:
            self.dispatcher.scheduler.start_sweeper()

    async def close(self) -> None:
        """Stop background work, then release the HTTP client and storage."""
        await self.dispatcher.close()
        await self.http_client.aclose()
        await self.storage.close()

    async def __aenter__(self) -> CourierService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


__all__ = ["CourierService"]
