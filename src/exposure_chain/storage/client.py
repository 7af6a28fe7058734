"""Qdrant document store for exposure-chain.

Combines all collection operations through mixins.

Example:
    ```python
    from exposure_chain.storage import ExposureStorage

    async with ExposureStorage() as storage:
        contacts = await storage.find_interactions_with_partner(partner, start, end)
        count = await storage.count_notifications_by_report(report_id)
    ```
"""

from __future__ import annotations

import logging
from typing import Any
from weakref import WeakValueDictionary

from .base import StorageBase
from .identities import IdentityMixin
from .interactions import InteractionMixin
from .notifications import NotificationMixin
from .reports import ReportMixin

logger = logging.getLogger(__name__)


class ExposureStorage(
    InteractionMixin,
    IdentityMixin,
    NotificationMixin,
    ReportMixin,
    StorageBase,
):
    """Async Qdrant storage for interactions, identities, notifications and reports.

    This class combines functionality from multiple mixins:
    - InteractionMixin: find_interactions_with_partner, store_interaction
    - IdentityMixin: get_identity, get_identities, clear_push_tokens, ...
    - NotificationMixin: create/save/merge/find/count notifications
    - ReportMixin: store_report, get_report, update_report_status, delete_report
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._notification_locks = WeakValueDictionary()
