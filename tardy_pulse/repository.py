"""Late-report persistence with cache invalidation on every write."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .cache import StatsCache
from .db import Database, Row
from .exceptions import NotFoundError, StaleReportError
from .models import LateReport, NewLateReport, ReportPatch, ReportStatus


def _to_report(row: Row) -> LateReport:
    return LateReport(
        id=row["id"],
        user_id=row["user_id"],
        group_id=row["group_id"],
        employee_name=row["employee_name"],
        is_before_nine=bool(row["is_before_nine"]),
        report_time=row["report_time"],
        reason=row["reason"],
        status=ReportStatus(row["status"]),
        admin_notified=bool(row["admin_notified"]),
        version=row["version"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ReportRepository:
    def __init__(self, database: Database, cache: StatsCache) -> None:
        self.database = database
        self.cache = cache

    def create(self, report: NewLateReport) -> LateReport:
        report_id = self.database.insert_late_report(
            {
                "user_id": report.user_id,
                "group_id": report.group_id,
                "employee_name": report.employee_name,
                "is_before_nine": int(report.is_before_nine),
                "report_time": report.report_time,
                "reason": report.reason,
            }
        )
        self._invalidate(report.user_id)
        created = self.get(report_id)
        if created is None:
            raise NotFoundError(f"Late report {report_id} was not found after insert")
        return created

    def get(self, report_id: int) -> Optional[LateReport]:
        row = self.database.get_late_report(report_id)
        return _to_report(row) if row else None

    def update(
        self,
        report_id: int,
        patch: ReportPatch,
        expected_version: Optional[int] = None,
    ) -> Optional[LateReport]:
        """Apply ``patch``; None when the report does not exist.

        Raises ``StaleReportError`` when ``expected_version`` is given and the
        stored row has moved on.
        """

        current = self.database.get_late_report(report_id)
        if current is None:
            return None

        changed = self.database.update_late_report(report_id, patch.columns(), expected_version)
        if changed == 0 and expected_version is not None:
            raise StaleReportError(report_id, expected_version)

        self._invalidate(current["user_id"])
        return self.get(report_id)

    def list_recent(self, limit: int) -> List[Dict[str, Any]]:
        return [dict(row) for row in self.database.get_recent_late_reports(limit)]

    # region Aggregate query shapes
    def periodic_rows(self, start: str, end: str) -> Dict[str, Any]:
        return {
            "totals": self.database.get_periodic_totals(start, end),
            "reasons": self.database.get_periodic_reasons(start, end),
            "users": self.database.get_periodic_users(start, end),
        }

    def user_rows(self, user_id: int, limit: int) -> Dict[str, Any]:
        return {
            "user": self.database.get_user(user_id),
            "totals": self.database.get_user_totals(user_id),
            "reasons": self.database.get_user_reasons(user_id),
            "recent": self.database.get_user_recent_reports(user_id, limit),
        }

    # endregion

    def _invalidate(self, user_id: int) -> None:
        self.cache.invalidate_user(user_id)
        self.cache.invalidate_periodic()


__all__ = ["ReportRepository"]
