"""Dataclasses representing Tardy Pulse domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ReportStatus(str, Enum):
    """Lifecycle of a late report. Only PENDING may change."""

    PENDING = "pending"
    PROCESSED = "processed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ReportStatus.PENDING


class SessionFlow(str, Enum):
    """What the next free-text message of a user answers."""

    LATE_REASON = "late_reason"
    DISPLAY_NAME = "display_name"


PRIVILEGED_USER_TYPES = frozenset({"admin", "superadmin"})


@dataclass(slots=True)
class User:
    id: int
    telegram_id: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    display_name: str | None = None
    user_type: str = "user"
    is_active: bool = True

    @property
    def is_privileged(self) -> bool:
        return self.user_type in PRIVILEGED_USER_TYPES

    @property
    def is_superadmin(self) -> bool:
        return self.user_type == "superadmin"

    @property
    def employee_name(self) -> str:
        return self.display_name or self.first_name or f"user{self.telegram_id[-4:]}"


@dataclass(slots=True)
class Group:
    id: int
    telegram_id: str
    title: str
    type: str = "group"
    is_active: bool = False


@dataclass(slots=True)
class LateReport:
    id: int
    user_id: int
    group_id: int
    employee_name: str
    is_before_nine: bool
    report_time: str
    reason: str | None
    status: ReportStatus
    admin_notified: bool
    version: int
    created_at: str
    updated_at: str


@dataclass(frozen=True, slots=True)
class NewLateReport:
    user_id: int
    group_id: int
    employee_name: str
    is_before_nine: bool
    report_time: str
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class ReportPatch:
    """Fields of a late report that may change after creation."""

    reason: Optional[str] = None
    status: Optional[ReportStatus] = None
    admin_notified: Optional[bool] = None

    def columns(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if self.reason is not None:
            values["reason"] = self.reason
        if self.status is not None:
            values["status"] = self.status.value
        if self.admin_notified is not None:
            values["admin_notified"] = int(self.admin_notified)
        return values


@dataclass(slots=True)
class ConversationSession:
    user_id: int
    flow: SessionFlow
    target_id: int | None
    expires_at: float


@dataclass(slots=True)
class ReasonChoice:
    key: str
    label: str
    reason: str | None = None


@dataclass(slots=True)
class WorkflowResult:
    """Outcome of one workflow step, rendered by the chat transport."""

    outcome: str
    report: LateReport | None = None
    choices: list[ReasonChoice] = field(default_factory=list)
    notified: int = 0
    detail: str | None = None


__all__ = [
    "ReportStatus",
    "SessionFlow",
    "PRIVILEGED_USER_TYPES",
    "User",
    "Group",
    "LateReport",
    "NewLateReport",
    "ReportPatch",
    "ConversationSession",
    "ReasonChoice",
    "WorkflowResult",
]
