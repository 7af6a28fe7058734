"""Write and send batching for propagation runs."""

from .notifications import NotificationBatcher, NotificationWriter
from .push import PushBatcher
from .types import BatchResult, PendingNotification, PendingPush, PushBatchResult

__all__ = [
    "BatchResult",
    "NotificationBatcher",
    "NotificationWriter",
    "PendingNotification",
    "PendingPush",
    "PushBatchResult",
    "PushBatcher",
]
