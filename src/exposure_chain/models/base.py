"""Base models and shared types for exposure-chain documents."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4


class TestResult(str, Enum):
    """Outcome a reporter submits."""

    POSITIVE = "positive"
    NEGATIVE = "negative"


class TestStatus(str, Enum):
    """Status of one person as shown on a chain node."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    UNKNOWN = "unknown"


class PrivacyLevel(str, Enum):
    """What a positive report discloses to notified contacts."""

    FULL = "full"
    STI_ONLY = "sti_only"
    DATE_ONLY = "date_only"
    ANONYMOUS = "anonymous"

    @property
    def discloses_sti(self) -> bool:
        return self in (PrivacyLevel.FULL, PrivacyLevel.STI_ONLY)

    @property
    def discloses_date(self) -> bool:
        return self in (PrivacyLevel.FULL, PrivacyLevel.DATE_ONLY)


class NotificationType(str, Enum):
    EXPOSURE = "exposure"
    UPDATE = "update"
    REPORT_DELETED = "report_deleted"


class ReportStatus(str, Enum):
    """Processing state of a report document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_id(prefix: str) -> str:
    """Generate a unique ID with a type prefix."""
    return f"{prefix}_{uuid4().hex[:12]}"


def utc_now() -> datetime:
    return datetime.now(UTC)
