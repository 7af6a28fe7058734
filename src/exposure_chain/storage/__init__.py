"""Storage backend for exposure-chain.

Persists documents to Qdrant as payload-only points.

Example:
    ```python
    from exposure_chain.storage import ExposureStorage

    async with ExposureStorage() as storage:
        notification = await storage.get_notification(notification_id)
    ```
"""

from .base import COLLECTION_NAMES, StorageBase
from .client import ExposureStorage
from .retry import qdrant_retry, storage_operation

__all__ = [
    "COLLECTION_NAMES",
    "ExposureStorage",
    "StorageBase",
    "qdrant_retry",
    "storage_operation",
]
