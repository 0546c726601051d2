"""Late-report conversation: detection, reason collection, confirm and cancel."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx

from .admin import LATE_REPORT_FEATURE
from .config import Settings
from .db import Database
from .detection import detect_late_keywords, extract_late_reason
from .exceptions import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationError
from .messages import format_admin_notice
from .models import (
    Group,
    LateReport,
    NewLateReport,
    ReasonChoice,
    ReportPatch,
    ReportStatus,
    SessionFlow,
    User,
    WorkflowResult,
)
from .periods import format_local, is_before_nine, local_now
from .repository import ReportRepository
from .sessions import SessionStore
from .telegram_client import TelegramApiError

logger = logging.getLogger(__name__)

OTHER_REASON = "other"
MAX_RECENT_REPORTS = 50

# Reason texts are stored in Chinese, like the detection keywords.
PRESET_REASONS: Dict[str, ReasonChoice] = {
    "traffic": ReasonChoice("traffic", "Traffic", "交通問題（塞車、公車延誤、交通意外等）"),
    "health": ReasonChoice("health", "Feeling unwell", "身體不適（感冒、頭痛、身體不舒服等）"),
    "family": ReasonChoice("family", "Family matters", "家庭事務（照顧家人、家中突發狀況等）"),
    "emergency": ReasonChoice("emergency", "Emergency", "緊急事件（突發狀況需要處理）"),
    "overslept": ReasonChoice("overslept", "Overslept", "睡過頭（鬧鐘沒響、晚睡導致起晚等）"),
}


class Notifier(Protocol):
    async def send_message(self, chat_id: int | str, text: str) -> Any: ...


def reason_choices() -> List[ReasonChoice]:
    return [*PRESET_REASONS.values(), ReasonChoice(OTHER_REASON, "Other reason")]


class LateReportWorkflow:
    """State machine for one late report, from detection to a terminal status.

    ``pending`` reports may loop through awaiting-reason (a ``late_reason``
    session for the reporting user) any number of times; ``processed`` and
    ``cancelled`` are final. Every write is conditional on the version that
    was read, so a concurrent confirm and cancel cannot both land.
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        repository: ReportRepository,
        sessions: SessionStore,
        notifier: Notifier,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        self.database = database
        self.repository = repository
        self.sessions = sessions
        self.notifier = notifier
        self._now = now or (lambda: local_now(settings.timezone))

    def needs_reason(self, reason: Optional[str]) -> bool:
        return not reason or len(reason) < self.settings.reason_adequate_length

    # region Free text
    def handle_text(self, user: User, text: str, group: Optional[Group] = None) -> Optional[WorkflowResult]:
        """Route a free-text message; None when it is not for this workflow."""

        session = self.sessions.get(user.id)
        if session is not None:
            if session.flow is SessionFlow.LATE_REASON:
                return self.submit_custom_reason(user, session.target_id, text)
            return self.submit_display_name(user, text)

        if group is None:
            return None
        return self.detect(user, group, text)

    def detect(self, user: User, group: Group, text: str) -> Optional[WorkflowResult]:
        if not group.is_active or not self.database.has_group_feature(group.id, LATE_REPORT_FEATURE):
            return None
        if not detect_late_keywords(text):
            return None

        reported_at = self._now()
        reason = extract_late_reason(text)
        report = self.repository.create(
            NewLateReport(
                user_id=user.id,
                group_id=group.id,
                employee_name=user.employee_name,
                is_before_nine=is_before_nine(reported_at),
                report_time=format_local(reported_at),
                reason=reason,
            )
        )
        logger.info(
            "Late report %s detected for user %s in group %s (before nine: %s, reason: %s)",
            report.id,
            user.telegram_id,
            group.telegram_id,
            report.is_before_nine,
            bool(reason),
        )
        if self.needs_reason(report.reason):
            return WorkflowResult("needs_reason", report, choices=reason_choices())
        return WorkflowResult("detected", report)

    def submit_custom_reason(self, user: User, report_id: Optional[int], text: str) -> WorkflowResult:
        reason = text.strip()
        low = self.settings.custom_reason_min_length
        high = self.settings.custom_reason_max_length
        if not low <= len(reason) <= high:
            logger.info("Rejected custom reason of length %s from user %s", len(reason), user.telegram_id)
            return WorkflowResult("rejected", detail=f"The reason must be {low}-{high} characters long.")

        try:
            report = self._pending(report_id)
        except (NotFoundError, InvalidTransitionError):
            self.sessions.clear(user.id, SessionFlow.LATE_REASON)
            raise

        updated = self.repository.update(report.id, ReportPatch(reason=reason), expected_version=report.version)
        self.sessions.clear(user.id, SessionFlow.LATE_REASON)
        logger.info("Late report %s reason updated by user %s", report.id, user.telegram_id)
        return WorkflowResult("reason_updated", updated)

    # endregion

    # region Button actions
    def select_reason(self, report_id: int, user: User, choice: str) -> WorkflowResult:
        report = self._pending(report_id)
        if choice == OTHER_REASON:
            self.sessions.start(user.id, SessionFlow.LATE_REASON, report.id)
            return WorkflowResult("awaiting_reason", report)

        preset = PRESET_REASONS.get(choice)
        if preset is None:
            raise ValidationError(f"Unknown reason choice {choice!r}")

        updated = self.repository.update(report.id, ReportPatch(reason=preset.reason), expected_version=report.version)
        self._release_session(user.id, report.id)
        return WorkflowResult("reason_updated", updated)

    def request_edit(self, report_id: int) -> WorkflowResult:
        report = self._pending(report_id)
        return WorkflowResult("needs_reason", report, choices=reason_choices())

    async def confirm(self, report_id: int, user: User) -> WorkflowResult:
        report = self._pending(report_id)
        if not report.reason or not report.reason.strip():
            raise ValidationError("Please give a reason before confirming the report.")

        updated = self.repository.update(
            report.id,
            ReportPatch(status=ReportStatus.PROCESSED, admin_notified=True),
            expected_version=report.version,
        )
        if updated is None:
            raise NotFoundError(f"Late report {report.id} disappeared while confirming")
        self._release_session(user.id, report.id)
        notified = await self._notify_admins(updated)
        logger.info(
            "Late report %s confirmed by user %s, %s admins notified",
            report.id,
            user.telegram_id,
            notified,
        )
        return WorkflowResult("confirmed", updated, notified=notified)

    def cancel(self, report_id: int, user: User) -> WorkflowResult:
        report = self._pending(report_id)
        updated = self.repository.update(
            report.id,
            ReportPatch(status=ReportStatus.CANCELLED),
            expected_version=report.version,
        )
        self._release_session(user.id, report.id)
        logger.info("Late report %s cancelled by user %s", report.id, user.telegram_id)
        return WorkflowResult("cancelled", updated)

    # endregion

    # region Display name
    def begin_display_name_update(self, user: User) -> WorkflowResult:
        self.sessions.start(user.id, SessionFlow.DISPLAY_NAME)
        return WorkflowResult("awaiting_display_name")

    def cancel_display_name_update(self, user: User) -> WorkflowResult:
        self.sessions.clear(user.id, SessionFlow.DISPLAY_NAME)
        return WorkflowResult("display_name_cancelled")

    def submit_display_name(self, user: User, text: str) -> WorkflowResult:
        name = text.strip()
        high = self.settings.display_name_max_length
        if not 1 <= len(name) <= high:
            return WorkflowResult("rejected", detail=f"The display name must be 1-{high} characters long.")

        self.database.update_display_name(user.id, name)
        self.sessions.clear(user.id, SessionFlow.DISPLAY_NAME)
        logger.info("User %s renamed from %r to %r", user.telegram_id, user.display_name, name)
        return WorkflowResult("display_name_updated", detail=name)

    # endregion

    def list_recent(self, limit: int = 10, *, is_privileged: bool) -> List[Dict[str, Any]]:
        if not is_privileged:
            raise AuthorizationError("Only admins can view late reports.")
        if not 1 <= limit <= MAX_RECENT_REPORTS:
            raise ValidationError(f"You can view between 1 and {MAX_RECENT_REPORTS} reports.")
        return self.repository.list_recent(limit)

    def _pending(self, report_id: Optional[int]) -> LateReport:
        report = self.repository.get(report_id) if report_id is not None else None
        if report is None:
            raise NotFoundError(f"Late report {report_id} not found")
        if report.status.is_terminal:
            raise InvalidTransitionError(f"Late report {report.id} is already {report.status.value}")
        return report

    def _release_session(self, user_id: int, report_id: int) -> None:
        session = self.sessions.get(user_id)
        if session and session.flow is SessionFlow.LATE_REASON and session.target_id == report_id:
            self.sessions.clear(user_id, SessionFlow.LATE_REASON)

    async def _notify_admins(self, report: LateReport) -> int:
        group = self.database.get_group(report.group_id)
        notice = format_admin_notice(report, group["title"] if group else None)
        notified = 0
        for admin in self.database.get_privileged_users():
            try:
                await self.notifier.send_message(admin["telegram_id"], notice)
            except (TelegramApiError, httpx.HTTPError) as exc:
                logger.warning("Failed to notify admin %s about report %s: %s", admin["telegram_id"], report.id, exc)
                continue
            notified += 1
        return notified


__all__ = [
    "LateReportWorkflow",
    "LATE_REPORT_FEATURE",
    "OTHER_REASON",
    "PRESET_REASONS",
    "reason_choices",
]
