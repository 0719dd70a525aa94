"""Base storage class and helpers.

Contains client lifecycle, collection management, per-record locks and
payload conversion shared by the subscription and delivery mixins.
"""

from __future__ import annotations

import asyncio
import hashlib
import weakref
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from hookrelay.config import settings

RecordT = TypeVar("RecordT", bound=BaseModel)

# Collection suffixes by record type
COLLECTION_NAMES = {
    "subscriptions": "subscriptions",
    "deliveries": "deliveries",
}

# Records are looked up by id and payload filters only; the vector is a placeholder
PLACEHOLDER_VECTOR_DIM = 1

# Payload-only numeric mirrors of datetime fields, used for range filters and sorting
_TIMESTAMP_MIRRORS = {
    "next_retry_at": "next_retry_ts",
    "created_at": "created_ts",
}

_KEYWORD_INDEXES = {
    "subscriptions": ("project_id", "is_active"),
    "deliveries": ("project_id", "subscription_id", "status"),
}

_FLOAT_INDEXES = {
    "subscriptions": (),
    "deliveries": ("next_retry_ts", "created_ts"),
}


class StorageBase:
    """Base class for hookrelay storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and payload indexing
    - Key building and point ID conversion
    - Process-local per-record locks for read-modify-write updates
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        max_scroll_limit: int | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            max_scroll_limit: Cap for list scrolls. Defaults to settings value.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._max_scroll_limit = max_scroll_limit or settings.storage_max_scroll_limit
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist."""
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

    def _collection_name(self, record_type: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(record_type, record_type)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _build_key(record_id: str, project_id: str | None = None) -> str:
        """Build a tenancy key for storage.

        Project-scoped keys are {project_id}/{record_id}, so the same id under
        another project resolves to a different point.
        """
        if project_id:
            return f"{project_id}/{record_id}"
        return record_id

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a storage key to a deterministic UUID-format Qdrant point ID."""
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    def _lock_for(self, key: str) -> asyncio.Lock:
        """Get the lock guarding one record, creating it on first use."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist with their payload indexes."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for record_type in COLLECTION_NAMES:
            collection_name = self._collection_name(record_type)
            if collection_name in existing:
                continue
            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=PLACEHOLDER_VECTOR_DIM,
                    distance=models.Distance.DOT,
                ),
            )
            await self._create_indexes(record_type, collection_name)

    async def _create_indexes(self, record_type: str, collection_name: str) -> None:
        """Create payload indexes for efficient filtering."""
        for field_name in _KEYWORD_INDEXES[record_type]:
            schema = (
                models.PayloadSchemaType.BOOL
                if field_name == "is_active"
                else models.PayloadSchemaType.KEYWORD
            )
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=schema,
            )
        for field_name in _FLOAT_INDEXES[record_type]:
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.FLOAT,
            )

    async def _upsert(self, record_type: str, key: str, record: BaseModel) -> None:
        """Write one record as a Qdrant point."""
        await self.client.upsert(
            collection_name=self._collection_name(record_type),
            points=[
                models.PointStruct(
                    id=self._key_to_point_id(key),
                    vector=[0.0] * PLACEHOLDER_VECTOR_DIM,
                    payload=self._record_to_payload(record),
                )
            ],
        )

    async def _retrieve(
        self, record_type: str, key: str, record_class: type[RecordT]
    ) -> RecordT | None:
        """Read one record by key, or None if absent."""
        results = await self.client.retrieve(
            collection_name=self._collection_name(record_type),
            ids=[self._key_to_point_id(key)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return self._payload_to_record(results[0].payload, record_class)

    async def _scroll_all(
        self,
        record_type: str,
        scroll_filter: models.Filter,
        record_class: type[RecordT],
    ) -> list[RecordT]:
        """Scroll every record matching a filter, up to the configured cap."""
        records: list[RecordT] = []
        offset: Any = None
        while len(records) < self._max_scroll_limit:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(record_type),
                scroll_filter=scroll_filter,
                limit=min(256, self._max_scroll_limit - len(records)),
                offset=offset,
                with_payload=True,
            )
            records.extend(
                self._payload_to_record(p.payload, record_class)
                for p in points
                if p.payload is not None
            )
            if offset is None:
                break
        return records

    @staticmethod
    def _record_to_payload(record: BaseModel) -> dict[str, Any]:
        """Convert a record model to a Qdrant payload."""
        data = record.model_dump(mode="json")
        for field_name, mirror in _TIMESTAMP_MIRRORS.items():
            if field_name not in data:
                continue
            value = getattr(record, field_name)
            data[mirror] = value.timestamp() if isinstance(value, datetime) else None
        return data

    @staticmethod
    def _payload_to_record(payload: dict[str, Any], record_class: type[RecordT]) -> RecordT:
        """Convert a Qdrant payload back to a record model."""
        data = dict(payload)
        for mirror in _TIMESTAMP_MIRRORS.values():
            data.pop(mirror, None)
        return record_class.model_validate(data)
