"""Report processing service.

Entry point for the triggers that fire when a report document is created or
deleted. Validates the report, runs propagation and chain updates, and keeps
the report's processing status current.

Example:
    ```python
    from exposure_chain.service import ReportProcessor

    async with ReportProcessor.create() as processor:
        status = await processor.process_report(
            "rpt_abc",
            {
                "reporter_id": reporter_hash,
                "reporter_interaction_identity": interaction_hash,
                "test_result": "positive",
                "sti_types": '["CHLAMYDIA"]',
                "test_date": "2026-10-01T00:00:00Z",
                "privacy_level": "full",
            },
        )
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from exposure_chain.chains.sti import normalize_sti_types, parse_sti_types
from exposure_chain.chains.updates import ChainUpdatePropagator
from exposure_chain.config import Settings
from exposure_chain.exceptions import (
    AuthorizationError,
    ExposureChainError,
    NotFoundError,
    ValidationError,
)
from exposure_chain.hashing import report_identity
from exposure_chain.logging import bind_context, configure_logging, unbind_context
from exposure_chain.models import (
    Report,
    ReportStatus,
    TestResult,
    TestStatus,
    UserIdentity,
    utc_now,
)
from exposure_chain.propagation import (
    DEFAULT_REPORTER_NAME,
    PropagationConfig,
    PropagationEngine,
    PropagationRequest,
)
from exposure_chain.push import FcmTransport, PushTransport
from exposure_chain.storage import ExposureStorage

logger = logging.getLogger(__name__)


class DeletionResult(BaseModel):
    """Outcome of deleting a report.

    Attributes:
        notifications_updated: Notifications retracted (positive reports) or
            reverted (negative reports).
    """

    model_config = ConfigDict(extra="forbid")

    report_id: str
    test_result: TestResult
    notifications_updated: int = Field(default=0, ge=0)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


@dataclass
class ReportProcessor:
    """Processes report creation and deletion.

    Attributes:
        storage: Document store.
        transport: Push transport; None disables pushes.
        settings: Configuration settings.
    """

    storage: ExposureStorage
    transport: PushTransport | None
    settings: Settings
    engine: PropagationEngine = field(init=False, repr=False)
    updater: ChainUpdatePropagator = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.engine = PropagationEngine(
            self.storage,
            self.transport,
            PropagationConfig.from_settings(self.settings),
        )
        self.updater = ChainUpdatePropagator(
            self.storage,
            self.transport,
            push_multicast_size=self.settings.effective_multicast_size,
        )

    @classmethod
    def create(cls, settings: Settings | None = None) -> ReportProcessor:
        """Create a processor with Qdrant storage and, when configured, FCM."""
        if settings is None:
            settings = Settings()
        configure_logging(settings.log_level, settings.log_format)

        transport: PushTransport | None = None
        if settings.fcm_project_id:
            transport = FcmTransport.from_settings(settings)

        return cls(
            storage=ExposureStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
                in_query_limit=settings.identity_in_query_limit,
            ),
            transport=transport,
            settings=settings,
        )

    async def initialize(self) -> None:
        await self.storage.initialize()

    async def close(self) -> None:
        if self.transport is not None:
            await self.transport.close()
        await self.storage.close()

    async def __aenter__(self) -> ReportProcessor:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def validate_report(
        self,
        data: Mapping[str, Any],
        now: datetime | None = None,
    ) -> Report:
        """Validate a raw report document.

        ``sti_types`` may be a list or a JSON array string. A blank display
        name falls back to "Someone"; long names are truncated.

        Raises:
            ValidationError: On the first invalid field.
        """
        now = now or utc_now()
        fields = dict(data)

        for key in ("reporter_id", "reporter_interaction_identity"):
            value = str(fields.get(key) or "").strip()
            if not value:
                raise ValidationError(key, "is required")
            if len(value) > self.settings.max_reporter_id_length:
                raise ValidationError(
                    key, f"must be at most {self.settings.max_reporter_id_length} characters"
                )
            fields[key] = value

        raw_result = fields.get("test_result")
        try:
            test_result = TestResult(str(raw_result).strip().lower())
        except ValueError:
            raise ValidationError("test_result", f"unknown test result {raw_result!r}") from None
        fields["test_result"] = test_result

        name = str(fields.get("reporter_display_name") or "").strip()
        fields["reporter_display_name"] = (
            name[: self.settings.max_username_length] or DEFAULT_REPORTER_NAME
        )

        sti_types = normalize_sti_types(parse_sti_types(fields.get("sti_types")))
        if len(sti_types) > self.settings.max_sti_types:
            raise ValidationError(
                "sti_types", f"at most {self.settings.max_sti_types} STI types allowed"
            )
        fields["sti_types"] = sti_types

        if test_result == TestResult.POSITIVE:
            if not sti_types:
                raise ValidationError("sti_types", "a positive report needs at least one STI type")
            if not fields.get("test_date"):
                raise ValidationError("test_date", "a positive report needs a test date")
            if not fields.get("privacy_level"):
                raise ValidationError("privacy_level", "a positive report needs a privacy level")

        try:
            report = Report.model_validate(fields)
        except pydantic.ValidationError as e:
            error = e.errors()[0]
            location = ".".join(str(part) for part in error["loc"]) or "report"
            raise ValidationError(location, error["msg"]) from e

        if report.test_date is not None:
            report.test_date = _as_utc(report.test_date)
        if report.exposure_window_end is not None:
            report.exposure_window_end = _as_utc(report.exposure_window_end)

        if test_result == TestResult.POSITIVE and report.test_date is not None:
            if report.test_date > now:
                raise ValidationError("test_date", "cannot be in the future")
            if report.test_date < now - timedelta(days=self.settings.retention_days):
                raise ValidationError(
                    "test_date",
                    f"must be within the last {self.settings.retention_days} days",
                )
        return report

    async def process_report(
        self,
        report_id: str,
        data: Mapping[str, Any],
        now: datetime | None = None,
    ) -> ReportStatus:
        """Validate and process a newly created report.

        Invalid input marks the report FAILED and returns. Individual
        notification or push failures still end in COMPLETED.

        Raises:
            ExposureChainError: If processing could not run at all (for
                example the store is unreachable). The report is marked
                FAILED first when possible, and the caller may retry.
        """
        bind_context(report_id=report_id)
        try:
            try:
                report = self.validate_report({**data, "id": report_id}, now=now)
            except ValidationError as e:
                logger.warning("Rejecting report: %s", e)
                await self._mark_failed(report_id, str(e))
                return ReportStatus.FAILED

            report.status = ReportStatus.PROCESSING
            await self.storage.store_report(report)

            try:
                reporter = await self.storage.get_identity(report.reporter_interaction_identity)
                if reporter is None:
                    raise ValidationError(
                        "reporter_interaction_identity", "no identity registered for reporter"
                    )
                if report.test_result == TestResult.POSITIVE:
                    await self._process_positive(report, reporter, now)
                else:
                    await self._process_negative(report, reporter)
            except ValidationError as e:
                logger.warning("Rejecting report: %s", e)
                await self._mark_failed(report_id, str(e))
                return ReportStatus.FAILED
            except ExposureChainError as e:
                logger.error("Report processing failed: %s", e)
                await self._mark_failed(report_id, str(e))
                raise

            await self.storage.update_report_status(
                report_id, ReportStatus.COMPLETED, processed_at=utc_now()
            )
            return ReportStatus.COMPLETED
        finally:
            unbind_context("report_id")

    async def _process_positive(
        self,
        report: Report,
        reporter: UserIdentity,
        now: datetime | None,
    ) -> None:
        if report.test_date is None:
            raise ValidationError("test_date", "a positive report needs a test date")
        if report.privacy_level is None:
            raise ValidationError("privacy_level", "a positive report needs a privacy level")
        result = await self.engine.run(
            PropagationRequest(
                report_id=report.id,
                reporter_interaction_identity=report.reporter_interaction_identity,
                reporter_display_name=report.reporter_display_name,
                sti_types=report.sti_types,
                test_date=report.test_date,
                privacy_level=report.privacy_level,
                linked_report_id=report.linked_report_id,
                exposure_window_end=report.exposure_window_end,
            ),
            now=now,
        )
        own = await self.updater.update_own_notifications(
            reporter, TestStatus.POSITIVE, report.sti_types
        )
        upstream = await self.updater.propagate_positive(reporter, report.sti_types)
        logger.info(
            "Positive report processed: %d notified, %d own and %d upstream chains updated",
            result.notification_count,
            own,
            upstream,
        )

    async def _process_negative(self, report: Report, reporter: UserIdentity) -> None:
        own = 0
        if report.notification_id:
            own = await self.updater.update_own_notifications(
                reporter,
                TestStatus.NEGATIVE,
                report.sti_types,
                notification_id=report.notification_id,
            )
        upstream = await self.updater.propagate_negative(reporter, report.sti_types or None)
        logger.info(
            "Negative report processed: %d own and %d upstream chains updated", own, upstream
        )

    async def _mark_failed(self, report_id: str, error: str) -> None:
        try:
            await self.storage.update_report_status(report_id, ReportStatus.FAILED, error=error)
        except ExposureChainError as e:
            logger.error("Could not mark report failed: %s", e)

    async def delete_report(self, account_id: str, report_id: str) -> DeletionResult:
        """Delete a report the account owns and undo its effects.

        Positive reports retract every notification they created. Negative
        reports revert the account's NEGATIVE nodes to UNKNOWN.

        Raises:
            NotFoundError: If the report does not exist.
            AuthorizationError: If the account did not submit the report.
        """
        report = await self.storage.get_report(report_id)
        if report is None:
            raise NotFoundError("report", report_id)
        if report.reporter_id.strip().lower() != report_identity(account_id):
            raise AuthorizationError(f"Report {report_id} belongs to another account")

        bind_context(report_id=report_id)
        try:
            if report.test_result == TestResult.POSITIVE:
                updated = await self.updater.retract_report(report_id)
            else:
                updated = await self.updater.revert_status(account_id, TestStatus.NEGATIVE)
                if report.notification_id:
                    await self.updater.update_own_notifications(
                        account_id,
                        TestStatus.UNKNOWN,
                        notification_id=report.notification_id,
                    )
            await self.storage.delete_report(report_id)
            logger.info(
                "Deleted %s report, %d notifications updated",
                report.test_result.value,
                updated,
            )
        finally:
            unbind_context("report_id")

        return DeletionResult(
            report_id=report_id,
            test_result=report.test_result,
            notifications_updated=updated,
        )

    async def find_linked_report_id(
        self,
        account_id: str,
        sti_types: list[str] | str | None = None,
    ) -> str | None:
        """Report a new positive report from ``account_id`` should link to."""
        return await self.updater.find_linked_report_id(
            account_id, normalize_sti_types(parse_sti_types(sti_types))
        )


__all__ = ["DeletionResult", "ReportProcessor"]
