"""Plain-text rendering of late reports for chat replies and admin notices."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from .models import Group, LateReport, ReportStatus, User

STATUS_LABELS = {
    ReportStatus.PENDING.value: "pending confirmation",
    ReportStatus.PROCESSED.value: "confirmed",
    ReportStatus.CANCELLED.value: "cancelled",
}


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def format_report(report: LateReport) -> str:
    lines = [
        f"Employee: {report.employee_name}",
        f"Reported at: {report.report_time}",
        f"Notified before 09:00: {_yes_no(report.is_before_nine)}",
        f"Reason: {report.reason or 'not given'}",
    ]
    return "\n".join(lines)


def format_admin_notice(report: LateReport, group_title: Optional[str]) -> str:
    return "\n".join(
        [
            "Late report",
            "",
            format_report(report),
            f"Group: {group_title or 'unknown group'}",
            f"Report #{report.id}, status: {STATUS_LABELS[report.status.value]}",
        ]
    )


def format_recent_reports(reports: Iterable[Dict[str, Any]]) -> str:
    reports = list(reports)
    if not reports:
        return "No late reports yet."
    lines = [f"Latest {len(reports)} late reports", ""]
    for report in reports:
        lines.append(
            f"[{STATUS_LABELS.get(report['status'], 'unknown')}] "
            f"{report.get('user_name') or report['employee_name']} ({report.get('group_title') or '-'})"
        )
        lines.append(
            f"  {report['report_time']} | before 09:00: {_yes_no(bool(report['is_before_nine']))}"
            f" | {report['reason'] or 'no reason'}"
        )
    return "\n".join(lines)


ROLE_LABELS = {
    "superadmin": "superadmin",
    "admin": "admin",
    "user": "member",
}
DEFAULT_WELCOME = "Welcome to Tardy Pulse!"
SUPERADMIN_COMMANDS = (
    "/enable_group [group id] - activate a group",
    "/disable_group [group id] - deactivate a group",
    "/group_modules [group id] - switch group features",
    "/promote <telegram id> [admin|superadmin] - grant a role",
    "/demote <telegram id> - back to member",
    "/set_welcome <message> - change the /start greeting",
)


def format_welcome(user: User, welcome_message: Optional[str] = None) -> str:
    return "\n".join(
        [
            welcome_message or DEFAULT_WELCOME,
            "",
            f"Hello, {user.employee_name}!",
            f"Your Telegram ID: {user.telegram_id}",
            f"Role: {ROLE_LABELS.get(user.user_type, 'member')}",
            "",
            "Send /help to see what I can do.",
        ]
    )


def format_help(user: User, group: Optional[Group] = None, late_reports_enabled: bool = False) -> str:
    """Command overview; admin sections only show up for privileged users."""

    lines = [
        "Tardy Pulse commands",
        "",
        "/start - welcome message",
        "/help - this overview",
        "/info - your profile and display name",
        "/name - change the name used in late reports",
    ]
    if user.is_privileged:
        lines += ["", "Admin", "/late_reports [n] - latest late reports"]
    if user.is_superadmin:
        lines += ["", "Superadmin", "/superadmin - admin panel", *SUPERADMIN_COMMANDS]
    if group is not None and group.is_active and late_reports_enabled:
        lines += [
            "",
            "Late reports",
            "Say you will be late in this group (e.g. 遲到, 晚到, 塞車) and I will record it and notify the admins.",
        ]
    return "\n".join(lines)


def format_profile(user: User) -> str:
    return "\n".join(
        [
            "Your profile",
            "",
            f"Telegram ID: {user.telegram_id}",
            f"Username: @{user.username}" if user.username else "Username: not set",
            f"Display name: {user.employee_name}",
            f"Role: {ROLE_LABELS.get(user.user_type, 'member')}",
        ]
    )


def format_admin_panel(user: User) -> str:
    return "\n".join(
        [
            "Superadmin panel",
            f"Signed in as {user.employee_name} ({user.telegram_id})",
            "",
            *SUPERADMIN_COMMANDS,
            "",
            "Group commands default to the current group when sent inside one.",
        ]
    )


def format_group_features(group: Group, features: Dict[str, bool], labels: Dict[str, str]) -> str:
    lines = [
        f"Group: {group.title} ({group.telegram_id})",
        f"Status: {'active' if group.is_active else 'inactive'}",
        "",
    ]
    for feature, enabled in features.items():
        lines.append(f"{labels.get(feature, feature)}: {'on' if enabled else 'off'}")
    return "\n".join(lines)


__all__ = [
    "format_report",
    "format_admin_notice",
    "format_recent_reports",
    "format_welcome",
    "format_help",
    "format_profile",
    "format_admin_panel",
    "format_group_features",
    "STATUS_LABELS",
    "ROLE_LABELS",
]
