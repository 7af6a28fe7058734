"""Propagating test results along existing chains.

When someone who sits on other people's chains reports a result, their node
is flipped in every notification whose recorded paths contain them. Reversal
after a report is deleted restores only nodes still in the reverted status.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from exposure_chain.chains.sti import (
    normalize_sti_types,
    overlapping_sti_types,
    sti_types_match,
)
from exposure_chain.chains.visualization import (
    apply_member_status,
    apply_recipient_status,
    member_index,
)
from exposure_chain.config import PUSH_MULTICAST_LIMIT
from exposure_chain.hashing import chain_identity, notification_identity
from exposure_chain.models import (
    Notification,
    NotificationType,
    TestStatus,
    UserIdentity,
    utc_now,
)
from exposure_chain.push.dispatch import PushDispatcher

if TYPE_CHECKING:
    from exposure_chain.push import PushTransport
    from exposure_chain.storage import ExposureStorage

logger = logging.getLogger(__name__)

Account = str | UserIdentity

# Decides how one notification changes; returns True if it changed.
_Update = Callable[[Notification], bool]


def _chain_id(account: Account) -> str:
    if isinstance(account, UserIdentity):
        return account.chain_identity
    return chain_identity(account)


def _notification_id(account: Account) -> str:
    if isinstance(account, UserIdentity):
        return account.notification_identity
    return notification_identity(account)


def is_intermediary(notification: Notification, member: str) -> bool:
    """Whether ``member`` sits strictly between reporter and recipient on any path."""
    for path in notification.chain_paths:
        index = member_index(path, member)
        if index is not None and 0 < index < len(path) - 1:
            return True
    return False


def is_recipient(notification: Notification, member: str) -> bool:
    index = member_index(notification.chain_path, member)
    return index is not None and index == len(notification.chain_path) - 1


class ChainUpdatePropagator:
    """Applies result changes to notifications already delivered.

    Example:
        ```python
        updater = ChainUpdatePropagator(storage, transport)
        await updater.propagate_negative(account_id, ["CHLAMYDIA"])
        # later, the negative report is deleted
        await updater.revert_status(account_id)
        ```
    """

    def __init__(
        self,
        storage: ExposureStorage,
        transport: PushTransport | None = None,
        push_multicast_size: int = PUSH_MULTICAST_LIMIT,
    ) -> None:
        self.storage = storage
        self.dispatcher = PushDispatcher(
            transport, storage, max_multicast_size=push_multicast_size
        )

    async def propagate_negative(
        self,
        account: Account,
        sti_types: Sequence[str] | None = None,
    ) -> int:
        """Flip the account's node to NEGATIVE wherever it appears upstream.

        With ``sti_types``, notifications for other STIs are left alone.
        """
        reported = normalize_sti_types(sti_types or [])

        def update(notification: Notification, member: str) -> bool:
            if not sti_types_match(notification.sti_types, reported):
                return False
            return apply_member_status(notification, member, TestStatus.NEGATIVE)

        return await self._update_chains(account, update, "negative")

    async def propagate_positive(self, account: Account, sti_types: Sequence[str]) -> int:
        """Flip the account's node to POSITIVE wherever it appears upstream.

        The node also records which of the notification's disclosed types
        were among those reported.
        """
        reported = normalize_sti_types(sti_types)

        def update(notification: Notification, member: str) -> bool:
            if not sti_types_match(notification.sti_types, reported):
                return False
            overlap = overlapping_sti_types(notification.sti_types, reported)
            return apply_member_status(notification, member, TestStatus.POSITIVE, overlap)

        return await self._update_chains(account, update, "positive")

    async def revert_status(
        self,
        account: Account,
        reverted_status: TestStatus = TestStatus.NEGATIVE,
    ) -> int:
        """Return nodes currently in ``reverted_status`` to UNKNOWN.

        Nodes that have since moved to another status are left as they are.
        Every recipient whose notification changed is pushed, not only those
        with the account as an intermediary.
        """

        def update(notification: Notification, member: str) -> bool:
            return apply_member_status(
                notification, member, TestStatus.UNKNOWN, only_if=reverted_status
            )

        return await self._update_chains(account, update, "revert", push_all=True)

    async def _update_chains(
        self,
        account: Account,
        update: Callable[[Notification, str], bool],
        action: str,
        push_all: bool = False,
    ) -> int:
        member = _chain_id(account)
        notifications = await self.storage.find_notifications_by_chain_member(member)

        updated: list[Notification] = []
        push_recipients: list[str] = []
        for notification in notifications:
            if notification.is_deleted or is_recipient(notification, member):
                continue
            if not update(notification, member):
                continue
            try:
                notification.check_integrity()
            except ValueError as e:
                logger.warning("Skipping notification %s: %s", notification.id, e)
                continue
            notification.is_read = False
            notification.touch()
            updated.append(notification)
            if push_all or is_intermediary(notification, member):
                push_recipients.append(notification.recipient_id)

        if not updated:
            logger.info("Chain update (%s): no notifications changed", action)
            return 0

        await self.storage.save_notifications(updated)
        logger.info(
            "Chain update (%s): %d of %d notifications changed",
            action,
            len(updated),
            len(notifications),
        )
        await self.dispatcher.send_to_recipients(push_recipients, NotificationType.UPDATE)
        return len(updated)

    async def update_own_notifications(
        self,
        recipient: Account,
        status: TestStatus,
        sti_types: Sequence[str] | None = None,
        notification_id: str | None = None,
    ) -> int:
        """Set the recipient's own node on notifications they received.

        With ``notification_id`` only that notification is updated, and only
        if it belongs to the recipient. Otherwise every live EXPOSURE
        notification whose STI types match is updated. Recipients are not
        pushed about their own change.
        """
        recipient_id = _notification_id(recipient)
        reported = normalize_sti_types(sti_types or [])

        if notification_id is not None:
            notification = await self.storage.get_notification(notification_id)
            if notification is None:
                logger.info("Notification %s not found", notification_id)
                return 0
            if notification.recipient_id != recipient_id:
                logger.warning("Notification %s does not belong to reporter", notification_id)
                return 0
            candidates = [notification]
        else:
            candidates = await self.storage.find_notifications_by_recipient(
                recipient_id, NotificationType.EXPOSURE
            )

        updated: list[Notification] = []
        for notification in candidates:
            if notification.is_deleted:
                continue
            if notification_id is None and not sti_types_match(notification.sti_types, reported):
                continue
            overlap = (
                overlapping_sti_types(notification.sti_types, reported)
                if status == TestStatus.POSITIVE
                else None
            )
            if apply_recipient_status(notification, status, overlap):
                notification.touch()
                updated.append(notification)

        if updated:
            await self.storage.save_notifications(updated)
        logger.info("Updated own status to %s on %d notifications", status.value, len(updated))
        return len(updated)

    async def retract_report(self, report_id: str) -> int:
        """Soft-delete every live notification of a report and tell recipients."""
        notifications = await self.storage.find_notifications_by_report(report_id)
        now = utc_now()

        retracted: list[Notification] = []
        for notification in notifications:
            if notification.is_deleted:
                continue
            notification.deleted_at = now
            notification.updated_at = now
            notification.is_read = False
            retracted.append(notification)

        if not retracted:
            return 0

        await self.storage.save_notifications(retracted)
        logger.info("Retracted %d notifications of report %s", len(retracted), report_id)
        await self.dispatcher.send_to_recipients(
            [n.recipient_id for n in retracted], NotificationType.REPORT_DELETED
        )
        return len(retracted)

    async def find_linked_report_id(
        self,
        recipient: Account,
        sti_types: Sequence[str] | None = None,
    ) -> str | None:
        """Report behind the most recent matching exposure the account received."""
        notifications = await self.storage.find_notifications_by_recipient(
            _notification_id(recipient), NotificationType.EXPOSURE
        )
        reported = normalize_sti_types(sti_types or [])
        matching = [
            n
            for n in notifications
            if not n.is_deleted and sti_types_match(n.sti_types, reported)
        ]
        if not matching:
            return None
        return max(matching, key=lambda n: n.received_at).report_id
