"""Base storage class and helpers.

Contains initialization, collection management, and shared utilities. All
collections hold payload-only documents: points carry a fixed one-dimension
placeholder vector because nothing here is searched by similarity.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from exposure_chain.config import settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

COLLECTION_NAMES = {
    "interactions": "interactions",
    "identities": "identities",
    "notifications": "notifications",
    "reports": "reports",
}

# Keyword payload indexes per collection
KEYWORD_INDEXES: dict[str, tuple[str, ...]] = {
    "interactions": ("partner_identity", "owner_id"),
    "identities": ("interaction_identity", "notification_identity", "push_token"),
    "notifications": ("id", "report_id", "recipient_id", "chain_members", "type"),
    "reports": ("id", "reporter_id"),
}

DATETIME_INDEXES: dict[str, tuple[str, ...]] = {
    "interactions": ("recorded_at",),
    "notifications": ("received_at",),
}

PLACEHOLDER_DIM = 1
SCROLL_PAGE_SIZE = 256


class StorageBase:
    """Base class for exposure-chain storage.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Point ID derivation and payload conversion
    - Paginated scrolling
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        in_query_limit: int | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize storage.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            in_query_limit: Values per batched identity lookup.
            client: Pre-built client, mainly for tests.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._in_query_limit = in_query_limit or settings.identity_in_query_limit
        self._client: AsyncQdrantClient | None = client
        self._collections_initialized = False

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Create the client if needed and ensure collections exist."""
        if self._client is None:
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()
        self._collections_initialized = True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    async def __aenter__(self) -> StorageBase:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _collection_name(self, kind: str) -> str:
        suffix = COLLECTION_NAMES.get(kind, kind)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Deterministic UUID-format point id for a document key."""
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            collection_name = self._collection_name(kind)
            if collection_name in existing:
                continue
            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=PLACEHOLDER_DIM,
                    distance=models.Distance.DOT,
                ),
            )
            await self._create_indexes(kind, collection_name)
            logger.info("Created collection %s", collection_name)

    async def _create_indexes(self, kind: str, collection_name: str) -> None:
        for field_name in KEYWORD_INDEXES.get(kind, ()):
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.KEYWORD,
            )
        for field_name in DATETIME_INDEXES.get(kind, ()):
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.DATETIME,
            )

    def _point(self, key: str, payload: dict[str, Any]) -> models.PointStruct:
        return models.PointStruct(
            id=self._key_to_point_id(key),
            vector=[0.0] * PLACEHOLDER_DIM,
            payload=payload,
        )

    @staticmethod
    def _model_to_payload(model: BaseModel, exclude_none: bool = False) -> dict[str, Any]:
        return model.model_dump(mode="json", exclude_none=exclude_none)

    @staticmethod
    def _payload_to_model(payload: dict[str, Any], model_class: type[ModelT]) -> ModelT:
        return model_class.model_validate(payload)

    async def _scroll_all(
        self,
        collection: str,
        conditions: list[models.FieldCondition],
    ) -> list[dict[str, Any]]:
        """Every payload matching all conditions, following scroll pages."""
        payloads: list[dict[str, Any]] = []
        offset: Any = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=collection,
                scroll_filter=models.Filter(must=conditions),
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            payloads.extend(p.payload for p in points if p.payload is not None)
            if offset is None:
                return payloads
