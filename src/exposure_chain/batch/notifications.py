"""Batched notification writes.

Queued notifications are written in groups no larger than the store's
per-request limit. Groups are independent: a failed group marks only its own
items failed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from exposure_chain.config import STORE_WRITE_LIMIT
from exposure_chain.exceptions import BatcherStateError
from exposure_chain.models import Notification

from .types import BatchResult, PendingNotification

logger = logging.getLogger(__name__)


class NotificationWriter(Protocol):
    async def create_notifications(self, notifications: list[Notification]) -> list[str]:
        """Write all documents in one request; raise if any is not written."""
        ...


class NotificationBatcher:
    """Single-use accumulator for notification writes.

    After ``commit()`` the batcher rejects further items until ``clear()``.

    Example:
        ```python
        batcher = NotificationBatcher(storage, max_batch_size=500)
        batcher.add(PendingNotification(notification, correlation_key=node_id))
        result = await batcher.commit()
        ids = batcher.created_id_map(result)
        ```
    """

    def __init__(self, writer: NotificationWriter, max_batch_size: int = STORE_WRITE_LIMIT) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self._writer = writer
        self._max_batch_size = min(max_batch_size, STORE_WRITE_LIMIT)
        self._pending: list[PendingNotification] = []
        self._committed = False

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def pending(self) -> Sequence[PendingNotification]:
        return tuple(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def add(self, item: PendingNotification) -> None:
        if self._committed:
            raise BatcherStateError("NotificationBatcher: cannot add after commit()")
        self._pending.append(item)

    def clear(self) -> None:
        self._pending = []
        self._committed = False

    def _groups(self) -> list[list[PendingNotification]]:
        size = self._max_batch_size
        return [self._pending[i : i + size] for i in range(0, len(self._pending), size)]

    async def commit(self) -> BatchResult:
        """Write every queued notification.

        Returns:
            Per-item outcome. A second call without ``clear()`` writes nothing
            and returns an empty result.
        """
        if self._committed:
            logger.warning("NotificationBatcher: commit() called more than once")
            return BatchResult()
        self._committed = True

        if not self._pending:
            return BatchResult()

        total = len(self._pending)
        created_ids: list[str | None] = [None] * total
        errors: list[str | None] = [None] * total
        groups = self._groups()
        success = failure = 0

        logger.info("Committing %d notifications in %d group(s)", total, len(groups))

        for group_index, group in enumerate(groups):
            offset = group_index * self._max_batch_size
            try:
                ids = await self._writer.create_notifications([p.notification for p in group])
            except Exception as e:
                message = str(e) or type(e).__name__
                for i in range(len(group)):
                    errors[offset + i] = message
                failure += len(group)
                logger.error(
                    "Notification group %d/%d failed (%d items): %s",
                    group_index + 1,
                    len(groups),
                    len(group),
                    message,
                )
                continue

            for i, created in enumerate(ids):
                created_ids[offset + i] = created
            success += len(group)
            logger.debug("Notification group %d/%d committed", group_index + 1, len(groups))

        logger.info("Notification commit complete: %d succeeded, %d failed", success, failure)
        return BatchResult(
            success_count=success,
            failure_count=failure,
            created_ids=created_ids,
            errors=errors,
            group_count=len(groups),
        )

    def created_id_map(self, result: BatchResult) -> dict[str, str | None]:
        """Map each correlation key to its written id, or None if it failed."""
        return {
            item.correlation_key: result.created_ids[i] if i < len(result.created_ids) else None
            for i, item in enumerate(self._pending)
        }

    def error_map(self, result: BatchResult) -> dict[str, str]:
        return {
            item.correlation_key: error
            for item, error in zip(self._pending, result.errors, strict=False)
            if error is not None
        }
