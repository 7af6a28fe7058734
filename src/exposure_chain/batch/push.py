"""Batched push delivery.

Queued pushes with identical payloads are sent together, in multicasts no
larger than the transport's per-request limit. A failed multicast does not
stop the ones after it.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from exposure_chain.config import PUSH_MULTICAST_LIMIT
from exposure_chain.exceptions import BatcherStateError
from exposure_chain.push.base import PushMessage, PushTransport

from .types import PendingPush, PushBatchResult

logger = logging.getLogger(__name__)


class PushBatcher:
    """Single-use accumulator for push sends."""

    def __init__(
        self,
        transport: PushTransport,
        max_multicast_size: int = PUSH_MULTICAST_LIMIT,
    ) -> None:
        if max_multicast_size < 1:
            raise ValueError("max_multicast_size must be at least 1")
        self._transport = transport
        self._max_multicast_size = min(
            max_multicast_size, PUSH_MULTICAST_LIMIT, transport.max_tokens_per_request
        )
        self._pending: list[PendingPush] = []
        self._sent = False

    @property
    def max_multicast_size(self) -> int:
        return self._max_multicast_size

    @property
    def pending(self) -> Sequence[PendingPush]:
        return tuple(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def add(self, item: PendingPush) -> None:
        """Queue a push; items without a usable token are dropped."""
        if self._sent:
            raise BatcherStateError("PushBatcher: cannot add after send()")
        if item.token and item.token.strip():
            self._pending.append(item)

    def clear(self) -> None:
        self._pending = []
        self._sent = False

    def _groups(self) -> list[list[int]]:
        """Indices into the queue, grouped by payload, first-seen order."""
        groups: dict[tuple[object, ...], list[int]] = {}
        for index, item in enumerate(self._pending):
            groups.setdefault(item.payload_key, []).append(index)
        return list(groups.values())

    async def send(self) -> PushBatchResult:
        """Send everything queued.

        Returns:
            Totals plus the queue indices of tokens the transport reported as
            invalid or unregistered. A second call returns an empty result.
        """
        if self._sent:
            logger.warning("PushBatcher: send() called more than once")
            return PushBatchResult()
        self._sent = True

        if not self._pending:
            return PushBatchResult()

        groups = self._groups()
        result = PushBatchResult()
        logger.info("Sending %d pushes in %d payload group(s)", len(self._pending), len(groups))

        size = self._max_multicast_size
        for indices in groups:
            for start in range(0, len(indices), size):
                chunk = indices[start : start + size]
                first = self._pending[chunk[0]]
                message = PushMessage(
                    tokens=[self._pending[i].token for i in chunk],
                    type=first.type,
                    title_loc_key=first.title_loc_key,
                    body_loc_key=first.body_loc_key,
                    data=first.data,
                )
                result.multicast_count += 1
                try:
                    response = await self._transport.send_multicast(message)
                except Exception as e:
                    result.failure_count += len(chunk)
                    logger.error(
                        "Multicast of %d %s pushes failed: %s", len(chunk), first.type.value, e
                    )
                    continue

                result.success_count += response.success_count
                result.failure_count += response.failure_count
                for position, send_response in enumerate(response.responses):
                    if send_response.is_invalid_token and position < len(chunk):
                        result.invalid_token_indices.append(chunk[position])

        logger.info(
            "Push send complete: %d succeeded, %d failed, %d invalid tokens",
            result.success_count,
            result.failure_count,
            len(result.invalid_token_indices),
        )
        return result

    def invalid_tokens(self, result: PushBatchResult) -> list[str]:
        return [
            self._pending[i].token for i in result.invalid_token_indices if i < len(self._pending)
        ]
