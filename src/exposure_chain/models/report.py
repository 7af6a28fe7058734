"""Exposure report documents."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .base import PrivacyLevel, ReportStatus, TestResult, generate_id, utc_now


class Report(BaseModel):
    """A test result submitted by one account.

    POSITIVE reports carry ``sti_types``, ``test_date`` and ``privacy_level``
    and start a propagation run. NEGATIVE reports answer an earlier exposure
    notification (``notification_id``) and flip the reporter's node to
    NEGATIVE wherever it appears.

    Attributes:
        reporter_id: Report-family hash of the reporter, used for ownership.
        reporter_interaction_identity: Interaction-family hash of the
            reporter; the traversal root.
        linked_report_id: Earlier report whose chain this one continues.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("rpt"))
    reporter_id: str
    reporter_interaction_identity: str
    reporter_display_name: str = "Someone"
    test_result: TestResult
    sti_types: list[str] = Field(default_factory=list)
    test_date: datetime | None = None
    privacy_level: PrivacyLevel | None = None
    exposure_window_end: datetime | None = None
    linked_report_id: str | None = None
    notification_id: str | None = None

    status: ReportStatus = ReportStatus.PENDING
    reported_at: datetime = Field(default_factory=utc_now)
    processed_at: datetime | None = None
    error: str | None = None
