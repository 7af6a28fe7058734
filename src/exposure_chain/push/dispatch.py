"""Push dispatch with stale-token pruning.

Wraps a transport and the identity store: sends through a ``PushBatcher`` and
clears every token the transport reports as invalid or unregistered.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from exposure_chain.batch import PendingPush, PushBatcher, PushBatchResult
from exposure_chain.config import PUSH_MULTICAST_LIMIT
from exposure_chain.exceptions import ExposureChainError
from exposure_chain.models import NotificationType

if TYPE_CHECKING:
    from exposure_chain.storage import ExposureStorage

    from .base import PushTransport

logger = logging.getLogger(__name__)


class PushDispatcher:
    """Sends pushes and prunes invalid tokens.

    A dispatcher without a transport accepts everything and sends nothing.

    Example:
        ```python
        dispatcher = PushDispatcher(transport, storage)
        await dispatcher.send_to_recipients(recipient_ids, NotificationType.UPDATE)
        ```
    """

    def __init__(
        self,
        transport: PushTransport | None,
        storage: ExposureStorage,
        max_multicast_size: int = PUSH_MULTICAST_LIMIT,
    ) -> None:
        self._transport = transport
        self._storage = storage
        self._max_multicast_size = max_multicast_size

    @property
    def enabled(self) -> bool:
        return self._transport is not None

    async def send(self, pushes: Iterable[PendingPush]) -> PushBatchResult:
        if self._transport is None:
            return PushBatchResult()

        batcher = PushBatcher(self._transport, max_multicast_size=self._max_multicast_size)
        for push in pushes:
            batcher.add(push)
        if not len(batcher):
            return PushBatchResult()

        result = await batcher.send()
        invalid = batcher.invalid_tokens(result)
        if invalid:
            try:
                await self._storage.clear_push_tokens(invalid)
            except ExposureChainError as e:
                logger.error("Failed to clear %d invalid push tokens: %s", len(invalid), e)
        return result

    async def send_to_recipients(
        self,
        recipient_ids: Iterable[str],
        notification_type: NotificationType,
        data: dict[str, str] | None = None,
    ) -> PushBatchResult:
        """Push one payload to recipients given by notification identity."""
        if self._transport is None:
            return PushBatchResult()
        unique = list(dict.fromkeys(recipient_ids))
        if not unique:
            return PushBatchResult()

        identities = await self._storage.get_identities_by_notification_identity(unique)
        pushes = [
            PendingPush.for_type(identity.push_token or "", notification_type, data)
            for identity in identities.values()
        ]
        logger.info(
            "Sending %s push to %d of %d recipients",
            notification_type.value,
            sum(1 for p in pushes if p.token.strip()),
            len(unique),
        )
        return await self.send(pushes)
