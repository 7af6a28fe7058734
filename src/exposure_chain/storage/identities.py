"""User identity storage operations."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from qdrant_client import models

from exposure_chain.models import UserIdentity

from .retry import storage_operation

logger = logging.getLogger(__name__)


def _chunks(values: list[str], size: int) -> Iterable[list[str]]:
    for i in range(0, len(values), size):
        yield values[i : i + size]


class IdentityMixin:
    """Mixin providing identity lookups for ExposureStorage.

    Identity points are keyed by interaction identity. Batched lookups are
    split into chunks of ``_in_query_limit`` values.
    """

    _collection_name: Any
    _key_to_point_id: Any
    _point: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _scroll_all: Any
    _in_query_limit: int
    client: Any

    @storage_operation
    async def store_identity(self, identity: UserIdentity) -> str:
        await self.client.upsert(
            collection_name=self._collection_name("identities"),
            points=[
                self._point(identity.interaction_identity, self._model_to_payload(identity))
            ],
        )
        return identity.interaction_identity

    @storage_operation
    async def get_identity(self, interaction_identity: str) -> UserIdentity | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name("identities"),
            ids=[self._key_to_point_id(interaction_identity)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        identity: UserIdentity = self._payload_to_model(results[0].payload, UserIdentity)
        return identity

    async def _get_identities_by(self, field: str, values: list[str]) -> dict[str, UserIdentity]:
        unique = list(dict.fromkeys(values))
        found: dict[str, UserIdentity] = {}
        for chunk in _chunks(unique, self._in_query_limit):
            payloads = await self._scroll_all(
                self._collection_name("identities"),
                [models.FieldCondition(key=field, match=models.MatchAny(any=chunk))],
            )
            for payload in payloads:
                identity: UserIdentity = self._payload_to_model(payload, UserIdentity)
                found[getattr(identity, field)] = identity
        return found

    @storage_operation
    async def get_identities(self, interaction_identities: list[str]) -> dict[str, UserIdentity]:
        """Batch lookup keyed by interaction identity; absent ids are omitted."""
        return await self._get_identities_by("interaction_identity", interaction_identities)

    @storage_operation
    async def get_identities_by_notification_identity(
        self, notification_identities: list[str]
    ) -> dict[str, UserIdentity]:
        """Batch lookup keyed by notification identity; absent ids are omitted."""
        return await self._get_identities_by("notification_identity", notification_identities)

    @storage_operation
    async def clear_push_tokens(self, tokens: list[str]) -> int:
        """Remove stale push tokens from whichever identities hold them.

        Returns:
            Number of identities updated.
        """
        tokens = [t for t in dict.fromkeys(tokens) if t]
        if not tokens:
            return 0

        collection = self._collection_name("identities")
        cleared = 0
        for chunk in _chunks(tokens, self._in_query_limit):
            payloads = await self._scroll_all(
                collection,
                [models.FieldCondition(key="push_token", match=models.MatchAny(any=chunk))],
            )
            point_ids = [self._key_to_point_id(p["interaction_identity"]) for p in payloads]
            if not point_ids:
                continue
            await self.client.set_payload(
                collection_name=collection,
                payload={"push_token": None},
                points=point_ids,
            )
            cleared += len(point_ids)

        logger.info("Cleared %d stale push tokens", cleared)
        return cleared
