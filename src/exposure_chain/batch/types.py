"""Queued items and results for the notification and push batchers."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from exposure_chain.models import Notification, NotificationType
from exposure_chain.push.base import LOC_KEYS


@dataclass
class PendingNotification:
    """A notification waiting to be written.

    ``correlation_key`` ties the result back to the traversal node that
    produced it (the recipient's interaction identity).
    """

    notification: Notification
    correlation_key: str


@dataclass
class PendingPush:
    token: str
    type: NotificationType
    title_loc_key: str
    body_loc_key: str
    data: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_type(
        cls,
        token: str,
        notification_type: NotificationType,
        data: dict[str, str] | None = None,
    ) -> PendingPush:
        title, body = LOC_KEYS[notification_type]
        return cls(
            token=token,
            type=notification_type,
            title_loc_key=title,
            body_loc_key=body,
            data=dict(data or {}),
        )

    @property
    def payload_key(self) -> tuple[object, ...]:
        """Items with equal keys render to the same payload."""
        return (
            self.type,
            self.title_loc_key,
            self.body_loc_key,
            tuple(sorted(self.data.items())),
        )


class BatchResult(BaseModel):
    """Outcome of ``NotificationBatcher.commit``.

    ``created_ids`` and ``errors`` are index-aligned with the queued items;
    exactly one of the two is set per item.
    """

    success_count: int = 0
    failure_count: int = 0
    created_ids: list[str | None] = Field(default_factory=list)
    errors: list[str | None] = Field(default_factory=list)
    group_count: int = 0


class PushBatchResult(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    invalid_token_indices: list[int] = Field(default_factory=list)
    multicast_count: int = 0
