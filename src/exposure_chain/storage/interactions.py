"""Interaction storage operations.

The propagation core only reads interactions; ``store_interaction`` exists for
the recording layer's tooling and for fixtures.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from qdrant_client import models

from exposure_chain.models import Interaction

from .retry import storage_operation


class InteractionMixin:
    """Mixin providing interaction reads for ExposureStorage.

    Expects from the base class:
    - _collection_name(kind) -> str
    - _point(key, payload) -> PointStruct
    - _model_to_payload / _payload_to_model
    - _scroll_all(collection, conditions) -> list[payload]
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _point: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _scroll_all: Any
    client: Any

    @storage_operation
    async def store_interaction(self, interaction: Interaction) -> str:
        await self.client.upsert(
            collection_name=self._collection_name("interactions"),
            points=[self._point(interaction.id, self._model_to_payload(interaction))],
        )
        return interaction.id

    @storage_operation
    async def find_interactions_with_partner(
        self,
        partner_identity: str,
        start: datetime,
        end: datetime,
    ) -> list[Interaction]:
        """Interactions recorded by others naming ``partner_identity``.

        Only the owner's own record makes them a contact of the partner.

        Args:
            partner_identity: Interaction-family hash of the partner.
            start: Inclusive lower bound on ``recorded_at``.
            end: Inclusive upper bound on ``recorded_at``.
        """
        payloads = await self._scroll_all(
            self._collection_name("interactions"),
            [
                models.FieldCondition(
                    key="partner_identity",
                    match=models.MatchValue(value=partner_identity),
                ),
                models.FieldCondition(
                    key="recorded_at",
                    range=models.DatetimeRange(gte=start, lte=end),
                ),
            ],
        )
        return [self._payload_to_model(p, Interaction) for p in payloads]
