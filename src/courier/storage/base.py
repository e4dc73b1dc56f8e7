"""Base storage class and helpers.

Contains client lifecycle, collection management, and payload conversion
shared by the endpoint registry and the delivery ledger.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from courier.config import settings
from courier.exceptions import StorageError

ModelT = TypeVar("ModelT", bound=BaseModel)

# Collection suffixes by record kind
COLLECTION_NAMES = {
    "endpoints": "webhook_endpoints",
    "deliveries": "webhook_deliveries",
}

# Records are looked up by payload filters only. Qdrant still requires a
# vector per point, so every point carries the same one-dimensional vector.
PLACEHOLDER_VECTOR = [1.0]

# Payload keys derived for range filters and stripped before validation
DERIVED_KEYS = ("next_retry_ts", "created_ts")

KEYWORD_INDEXES = {
    "endpoints": ("organization_id",),
    "deliveries": ("endpoint_id", "status", "event_type"),
}

# Range indexes back the order_by scrolls of the delivery ledger
FLOAT_INDEXES: dict[str, tuple[str, ...]] = {
    "endpoints": (),
    "deliveries": DERIVED_KEYS,
}


class StorageBase:
    """Base class for Courier storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Point ID derivation
    - Payload serialization/deserialization
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
    ) -> None:
        """Initialize storage client settings.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise StorageError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist."""
        if self._client is None:
            self._client = AsyncQdrantClient(
                url=self._url,
                api_key=self._api_key,
            )
        await self._ensure_collections()
        self._collections_initialized = True

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    async def __aenter__(self) -> StorageBase:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def _collection_name(self, kind: str) -> str:
        """Get full collection name with prefix."""
        return f"{self._prefix}_{COLLECTION_NAMES[kind]}"

    @staticmethod
    def _point_id(kind: str, record_id: str) -> str:
        """Convert a record ID to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(f"{kind}/{record_id}".encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            collection_name = self._collection_name(kind)
            if collection_name in existing:
                continue

            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            await self._create_indexes(kind, collection_name)

    async def _create_indexes(self, kind: str, collection_name: str) -> None:
        """Create payload indexes for filtering and ordering."""
        for field_name in KEYWORD_INDEXES[kind]:
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.KEYWORD,
            )
        for field_name in FLOAT_INDEXES[kind]:
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.FLOAT,
            )

    @staticmethod
    def _timestamp(value: datetime | None) -> float | None:
        return value.timestamp() if value is not None else None

    def _model_to_payload(self, record: BaseModel) -> dict[str, Any]:
        """Convert a model to a Qdrant payload with derived filter keys."""
        data = record.model_dump(mode="json")

        next_retry_at = getattr(record, "next_retry_at", None)
        if "status" in data:
            data["next_retry_ts"] = self._timestamp(next_retry_at)
        created_at = getattr(record, "created_at", None)
        if created_at is not None:
            data["created_ts"] = self._timestamp(created_at)
        return data

    def _payload_to_model(self, payload: dict[str, Any], model_class: type[ModelT]) -> ModelT:
        """Convert a Qdrant payload back to a model."""
        data = {k: v for k, v in payload.items() if k not in DERIVED_KEYS}
        return model_class.model_validate(data)

    async def _upsert(self, kind: str, record_id: str, record: BaseModel) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(kind, record_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=self._model_to_payload(record),
                )
            ],
        )

    async def _retrieve(self, kind: str, record_id: str) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._point_id(kind, record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return dict(results[0].payload)
