from tardy_pulse.messages import (
    STATUS_LABELS,
    format_help,
    format_profile,
    format_recent_reports,
    format_welcome,
)
from tardy_pulse.models import Group, ReportStatus, User


def _row(status, **overrides):
    row = {
        "status": status,
        "user_name": "Alice",
        "employee_name": "Alice",
        "group_title": "Front office",
        "report_time": "2026-10-19T08:30:00.000",
        "is_before_nine": 1,
        "reason": "Flat tyre",
    }
    row.update(overrides)
    return row


def test_status_labels_are_human_readable():
    assert STATUS_LABELS == {
        ReportStatus.PENDING.value: "pending confirmation",
        ReportStatus.PROCESSED.value: "confirmed",
        ReportStatus.CANCELLED.value: "cancelled",
    }


def test_recent_reports_show_status_labels():
    text = format_recent_reports([_row("processed"), _row("pending", reason=None)])

    assert "[confirmed] Alice (Front office)" in text
    assert "[pending confirmation] Alice (Front office)" in text
    assert "no reason" in text


def test_help_only_lists_what_the_user_may_run():
    member = User(id=1, telegram_id="1001", first_name="Alice")
    chief = User(id=2, telegram_id="9002", first_name="Chief", user_type="superadmin")
    group = Group(id=1, telegram_id="-1001", title="Front office", is_active=True)

    member_help = format_help(member, group, late_reports_enabled=True)
    chief_help = format_help(chief)

    assert "/info" in member_help
    assert "/enable_group" not in member_help
    assert "遲到" in member_help
    assert "/enable_group [group id]" in chief_help
    assert "/late_reports" in chief_help


def test_profile_and_welcome_show_role_and_name():
    user = User(id=1, telegram_id="1001", username="alice", first_name="Alice", display_name="Ali", user_type="admin")

    profile = format_profile(user)
    welcome = format_welcome(user, "Good morning team")

    assert "Display name: Ali" in profile
    assert "Username: @alice" in profile
    assert "Role: admin" in profile
    assert welcome.startswith("Good morning team")
    assert "Hello, Ali!" in welcome
