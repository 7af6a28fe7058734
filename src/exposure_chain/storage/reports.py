"""Report storage operations."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from qdrant_client import models

from exposure_chain.models import Report, ReportStatus

from .retry import storage_operation


class ReportMixin:
    """Mixin providing report operations for ExposureStorage."""

    _collection_name: Any
    _key_to_point_id: Any
    _point: Any
    _model_to_payload: Any
    _payload_to_model: Any
    client: Any

    @storage_operation
    async def store_report(self, report: Report) -> str:
        await self.client.upsert(
            collection_name=self._collection_name("reports"),
            points=[self._point(report.id, self._model_to_payload(report))],
            wait=True,
        )
        return report.id

    @storage_operation
    async def get_report(self, report_id: str) -> Report | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name("reports"),
            ids=[self._key_to_point_id(report_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        report: Report = self._payload_to_model(results[0].payload, Report)
        return report

    @storage_operation
    async def update_report_status(
        self,
        report_id: str,
        status: ReportStatus,
        processed_at: datetime | None = None,
        error: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {"status": status.value, "error": error}
        if processed_at is not None:
            payload["processed_at"] = processed_at.isoformat()
        await self.client.set_payload(
            collection_name=self._collection_name("reports"),
            payload=payload,
            points=[self._key_to_point_id(report_id)],
        )

    @storage_operation
    async def delete_report(self, report_id: str) -> None:
        await self.client.delete(
            collection_name=self._collection_name("reports"),
            points_selector=models.PointIdsList(points=[self._key_to_point_id(report_id)]),
        )
