"""Document models for exposure-chain.

Documents:
    - Interaction: proximity encounter recorded by its owner (read-only)
    - UserIdentity: delivery metadata keyed by interaction identity (read-only)
    - Report: a submitted test result
    - Notification: one recipient's view of one report's chain
"""

from .base import (
    NotificationType,
    PrivacyLevel,
    ReportStatus,
    TestResult,
    TestStatus,
    generate_id,
    utc_now,
)
from .interaction import Interaction, UserIdentity
from .notification import (
    SOMEONE,
    YOU,
    ChainNode,
    ChainVisualization,
    MaskedLabel,
    NamedLabel,
    NodeLabel,
    Notification,
)
from .report import Report

__all__ = [
    "SOMEONE",
    "YOU",
    "ChainNode",
    "ChainVisualization",
    "Interaction",
    "MaskedLabel",
    "NamedLabel",
    "NodeLabel",
    "Notification",
    "NotificationType",
    "PrivacyLevel",
    "Report",
    "ReportStatus",
    "TestResult",
    "TestStatus",
    "UserIdentity",
    "generate_id",
    "utc_now",
]
