"""exposure-chain: anonymous exposure notification along contact chains.

When someone reports a positive STI test, everyone reachable through recorded
interactions within the incubation window is told, hop by hop, without anyone
learning who reported or who else was notified.

Quick Start:
    from exposure_chain.service import ReportProcessor

    async with ReportProcessor.create() as processor:
        status = await processor.process_report(report_id, report_document)

        # Later, the reporter withdraws it
        await processor.delete_report(account_id, report_id)

Documents:
    - Interaction: one person's record of meeting another (read-only)
    - UserIdentity: push token and pseudonyms for one account (read-only)
    - Report: a submitted positive or negative test result
    - Notification: one recipient's view of one report's chain
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, StiIncubationTable, settings

# Exceptions
from .exceptions import (
    AuthorizationError,
    BatcherStateError,
    ChainIntegrityError,
    ConfigurationError,
    ExposureChainError,
    NotFoundError,
    PushDeliveryError,
    StorageError,
    ValidationError,
)

# Hashing
from .hashing import (
    HashDomain,
    chain_identity,
    hash_identity,
    interaction_identity,
    notification_identity,
    report_identity,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
)

# Models
from .models import (
    ChainNode,
    ChainVisualization,
    Interaction,
    Notification,
    NotificationType,
    PrivacyLevel,
    Report,
    ReportStatus,
    TestResult,
    TestStatus,
    UserIdentity,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "StiIncubationTable",
    "settings",
    # Exceptions
    "AuthorizationError",
    "BatcherStateError",
    "ChainIntegrityError",
    "ConfigurationError",
    "ExposureChainError",
    "NotFoundError",
    "PushDeliveryError",
    "StorageError",
    "ValidationError",
    # Hashing
    "HashDomain",
    "chain_identity",
    "hash_identity",
    "interaction_identity",
    "notification_identity",
    "report_identity",
    # Logging
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "logger",
    "unbind_context",
    # Models
    "ChainNode",
    "ChainVisualization",
    "Interaction",
    "Notification",
    "NotificationType",
    "PrivacyLevel",
    "Report",
    "ReportStatus",
    "TestResult",
    "TestStatus",
    "UserIdentity",
]
