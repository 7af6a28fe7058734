"""Notification storage operations.

Notifications are written with a derived ``chain_members`` payload field, the
union of every recorded path, so containment queries cover all paths and not
only the primary one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any
from weakref import WeakValueDictionary

import pydantic
from qdrant_client import models

from exposure_chain.config import STORE_WRITE_LIMIT
from exposure_chain.exceptions import ChainIntegrityError
from exposure_chain.models import Notification, NotificationType

from .retry import storage_operation

logger = logging.getLogger(__name__)

NotificationMutation = Callable[[Notification], bool]


class NotificationMixin:
    """Mixin providing notification operations for ExposureStorage."""

    _collection_name: Any
    _key_to_point_id: Any
    _point: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _scroll_all: Any
    client: Any

    _notification_locks: WeakValueDictionary[str, asyncio.Lock]

    def _notification_lock(self, notification_id: str) -> asyncio.Lock:
        lock = self._notification_locks.get(notification_id)
        if lock is None:
            lock = asyncio.Lock()
            self._notification_locks[notification_id] = lock
        return lock

    def _notification_point(self, notification: Notification) -> models.PointStruct:
        # Undisclosed fields are left out of the document rather than stored as null
        payload = self._model_to_payload(notification, exclude_none=True)
        payload["chain_members"] = notification.chain_members
        return self._point(notification.id, payload)

    def _load_notifications(self, payloads: list[dict[str, Any]]) -> list[Notification]:
        """Parse payloads, skipping documents whose chain data is inconsistent."""
        loaded: list[Notification] = []
        for payload in payloads:
            payload.pop("chain_members", None)
            try:
                loaded.append(self._payload_to_model(payload, Notification))
            except pydantic.ValidationError as e:
                logger.warning(
                    "Skipping malformed notification %s: %s",
                    payload.get("id", "<unknown>"),
                    e.errors()[0].get("msg") if e.errors() else e,
                )
        return loaded

    @storage_operation
    async def create_notification(self, notification: Notification) -> str:
        await self.client.upsert(
            collection_name=self._collection_name("notifications"),
            points=[self._notification_point(notification)],
            wait=True,
        )
        return notification.id

    @storage_operation
    async def create_notifications(self, notifications: list[Notification]) -> list[str]:
        """Write up to the store's per-request limit in a single upsert.

        The request is atomic: either all documents are written or the call
        raises.
        """
        if len(notifications) > STORE_WRITE_LIMIT:
            raise ValueError(
                f"Cannot write {len(notifications)} notifications in one request "
                f"(limit {STORE_WRITE_LIMIT})"
            )
        if not notifications:
            return []
        await self.client.upsert(
            collection_name=self._collection_name("notifications"),
            points=[self._notification_point(n) for n in notifications],
            wait=True,
        )
        return [n.id for n in notifications]

    async def save_notifications(self, notifications: list[Notification]) -> int:
        """Overwrite existing notifications in chunks of the write limit."""
        for i in range(0, len(notifications), STORE_WRITE_LIMIT):
            await self.create_notifications(notifications[i : i + STORE_WRITE_LIMIT])
        return len(notifications)

    @storage_operation
    async def get_notification(self, notification_id: str) -> Notification | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name("notifications"),
            ids=[self._key_to_point_id(notification_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        loaded = self._load_notifications([results[0].payload])
        return loaded[0] if loaded else None

    async def merge_notification(
        self,
        notification_id: str,
        mutate: NotificationMutation,
    ) -> Notification | None:
        """Atomic read-modify-write of a single notification.

        ``mutate`` edits the document in place and returns whether it changed
        anything. Concurrent merges of the same document in this process are
        serialized.

        Returns:
            The stored document after the merge, or None if it does not exist.

        Raises:
            ChainIntegrityError: If the mutation left paths and visualization
                out of step. Nothing is written.
        """
        async with self._notification_lock(notification_id):
            notification = await self.get_notification(notification_id)
            if notification is None:
                logger.info("Notification %s not found for merge", notification_id)
                return None
            if mutate(notification):
                try:
                    notification.check_integrity()
                except ValueError as e:
                    raise ChainIntegrityError(notification_id, str(e)) from e
                notification.touch()
                await self.create_notification(notification)
            return notification

    async def _find_notifications(self, conditions: list[models.FieldCondition]) -> list[Notification]:
        payloads = await self._scroll_all(self._collection_name("notifications"), conditions)
        return self._load_notifications(payloads)

    @storage_operation
    async def find_notifications_by_report(self, report_id: str) -> list[Notification]:
        return await self._find_notifications(
            [models.FieldCondition(key="report_id", match=models.MatchValue(value=report_id))]
        )

    @storage_operation
    async def find_notifications_by_chain_member(self, chain_identity: str) -> list[Notification]:
        """Notifications whose recorded paths include ``chain_identity`` anywhere."""
        return await self._find_notifications(
            [
                models.FieldCondition(
                    key="chain_members",
                    match=models.MatchValue(value=chain_identity.lower()),
                )
            ]
        )

    @storage_operation
    async def find_notifications_by_recipient(
        self,
        recipient_id: str,
        notification_type: NotificationType | None = None,
    ) -> list[Notification]:
        conditions = [
            models.FieldCondition(key="recipient_id", match=models.MatchValue(value=recipient_id))
        ]
        if notification_type is not None:
            conditions.append(
                models.FieldCondition(
                    key="type",
                    match=models.MatchValue(value=notification_type.value),
                )
            )
        return await self._find_notifications(conditions)

    @storage_operation
    async def count_notifications_by_report(self, report_id: str) -> int:
        result = await self.client.count(
            collection_name=self._collection_name("notifications"),
            count_filter=models.Filter(
                must=[
                    models.FieldCondition(
                        key="report_id",
                        match=models.MatchValue(value=report_id),
                    )
                ]
            ),
            exact=True,
        )
        return int(result.count)
