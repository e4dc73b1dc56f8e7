"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from qdrant_client import AsyncQdrantClient

from courier.config import Settings
from courier.models import WebhookEndpoint
from courier.storage import CourierStorage

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with sub-second backoff so retry chains finish in tests."""
    return Settings(
        env="test",
        webhook_retry_backoff_seconds=[0.01, 0.01, 0.01, 0.01, 0.01],
        webhook_timeout_seconds=5.0,
        retry_mode="timer",
        sweep_enabled=False,
    )


@pytest.fixture
def sweep_settings() -> Settings:
    """Settings that leave retries to the ledger sweep."""
    return Settings(
        env="test",
        webhook_timeout_seconds=5.0,
        retry_mode="sweep",
    )


@pytest.fixture
def make_endpoint() -> Callable[..., WebhookEndpoint]:
    """Factory for enabled endpoints of org_1."""

    def factory(**overrides: Any) -> WebhookEndpoint:
        fields: dict[str, Any] = {
            "organization_id": "org_1",
            "url": "https://hooks.example.com/webhook",
            "secret": "whsec_test_secret",
            "events": ["menu.published"],
        }
        fields.update(overrides)
        return WebhookEndpoint(**fields)

    return factory


@pytest.fixture
async def storage():
    """Create an in-memory storage instance for testing.

    Uses qdrant-client's local mode with in-memory storage.
    """
    store = CourierStorage(prefix="test")
    store._client = AsyncQdrantClient(location=":memory:")
    await store.initialize()

    yield store

    await store.close()
