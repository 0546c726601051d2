import asyncio

import pytest

from tardy_pulse.admin import AdminService
from tardy_pulse.bot import UpdateDispatcher, render
from tardy_pulse.models import ReportStatus, WorkflowResult

GROUP_CHAT = {"id": -1001, "type": "supergroup", "title": "Front office"}
ALICE = {"id": 1001, "first_name": "Alice", "username": "alice"}
CHIEF = {"id": 9002, "first_name": "Chief"}
ALICE_PRIVATE = {"id": 1001, "type": "private"}
CHIEF_PRIVATE = {"id": 9002, "type": "private"}


@pytest.fixture()
def dispatcher(database, workflow, notifier):
    return UpdateDispatcher(database, workflow, notifier, AdminService(database, ("9002",)))


def _message(text, chat=GROUP_CHAT, sender=ALICE):
    return {"update_id": 1, "message": {"message_id": 7, "chat": chat, "from": sender, "text": text}}


def _callback(data, sender=ALICE, chat=GROUP_CHAT):
    return {
        "update_id": 2,
        "callback_query": {
            "id": "cb-1",
            "from": sender,
            "data": data,
            "message": {"message_id": 8, "chat": chat},
        },
    }


def test_late_notice_in_enabled_group_gets_reason_buttons(dispatcher, notifier, make_group, repository):
    make_group()

    asyncio.run(dispatcher.handle_update(_message("late today")))

    chat_id, text, markup = notifier.sent[0]
    report = repository.list_recent(1)[0]
    assert chat_id == -1001
    assert "Alice" in text
    callbacks = [button["callback_data"] for row in markup["inline_keyboard"] for button in row]
    assert f"late_reason_{report['id']}_traffic" in callbacks
    assert f"cancel_late_{report['id']}" in callbacks


def test_unknown_group_is_registered_but_inactive(dispatcher, notifier, database):
    asyncio.run(dispatcher.handle_update(_message("late today")))

    assert notifier.sent == []
    assert database.get_user_by_telegram_id("1001")["display_name"] == "Alice"


def test_buttons_drive_the_report_to_processed(dispatcher, notifier, make_group, repository):
    make_group()
    asyncio.run(dispatcher.handle_update(_message("late today")))
    report_id = repository.list_recent(1)[0]["id"]

    asyncio.run(dispatcher.handle_update(_callback(f"late_reason_{report_id}_health")))
    asyncio.run(dispatcher.handle_update(_callback(f"confirm_late_{report_id}")))

    assert notifier.answered == ["cb-1", "cb-1"]
    assert repository.get(report_id).status is ReportStatus.PROCESSED
    assert notifier.edited[-1][2].startswith(f"Late report #{report_id} submitted")


def test_workflow_errors_are_shown_to_the_user(dispatcher, notifier, make_group, repository):
    make_group()
    asyncio.run(dispatcher.handle_update(_message("late today")))
    report_id = repository.list_recent(1)[0]["id"]
    asyncio.run(dispatcher.handle_update(_callback(f"cancel_late_{report_id}")))

    asyncio.run(dispatcher.handle_update(_callback(f"confirm_late_{report_id}")))

    assert "already cancelled" in notifier.edited[-1][2]


def test_recent_reports_command_is_admin_only(dispatcher, notifier, make_user):
    make_user("9001", "Boss", user_type="admin")
    private = {"id": 9001, "type": "private"}

    asyncio.run(dispatcher.handle_update(_message("/late_reports", chat={"id": 1001, "type": "private"})))
    asyncio.run(
        dispatcher.handle_update(_message("/late_reports 5", chat=private, sender={"id": 9001, "first_name": "Boss"}))
    )

    assert notifier.sent[0][1] == "Only admins can view late reports."
    assert notifier.sent[1][1] == "No late reports yet."


def test_name_command_then_reply_sets_display_name(dispatcher, notifier, database):
    private = {"id": 1001, "type": "private"}

    asyncio.run(dispatcher.handle_update(_message("/name", chat=private)))
    asyncio.run(dispatcher.handle_update(_message("Ali", chat=private)))

    assert notifier.sent[-1][1] == "Display name updated to: Ali"
    assert database.get_user_by_telegram_id("1001")["display_name"] == "Ali"


def test_render_falls_back_to_detail():
    assert render(WorkflowResult("rejected", detail="too short")) == ("too short", None)


def _buttons(markup):
    return [button for row in markup["inline_keyboard"] for button in row]


def test_configured_superadmin_sets_up_a_group_from_scratch(dispatcher, notifier, database, repository):
    asyncio.run(dispatcher.handle_update(_message("/enable_group -1001", chat=CHIEF_PRIVATE, sender=CHIEF)))
    asyncio.run(dispatcher.handle_update(_message("/group_modules -1001", chat=CHIEF_PRIVATE, sender=CHIEF)))

    assert database.get_user_by_telegram_id("9002")["user_type"] == "superadmin"
    assert notifier.sent[0][1] == "unknown group (-1001) is now enabled."
    toggle = _buttons(notifier.sent[1][2])[0]
    assert toggle["text"] == "Late reports: off"
    assert toggle["callback_data"].endswith("_late_report_true")

    asyncio.run(dispatcher.handle_update(_callback(toggle["callback_data"], sender=CHIEF, chat=CHIEF_PRIVATE)))
    asyncio.run(dispatcher.handle_update(_message("Sorry, I'm late because of traffic")))

    assert _buttons(notifier.edited[-1][3])[0]["text"] == "Late reports: on"
    report = repository.list_recent(1)[0]
    assert report["group_title"] == "Front office"
    assert report["reason"] == "because of traffic"
    assert notifier.sent[-1][0] == -1001


def test_enable_group_defaults_to_the_current_group(dispatcher, notifier, database):
    asyncio.run(dispatcher.handle_update(_message("/enable_group", sender=CHIEF)))
    asyncio.run(dispatcher.handle_update(_message("/disable_group@tardy_pulse_bot", sender=CHIEF)))

    assert notifier.sent[0][1] == "Front office (-1001) is now enabled."
    assert notifier.sent[1][1] == "Front office (-1001) is now disabled."
    assert database.get_group_by_telegram_id("-1001")["is_active"] == 0


@pytest.mark.parametrize(
    "command",
    ["/superadmin", "/enable_group -1001", "/group_modules -1001", "/promote 1001", "/set_welcome hi"],
)
def test_admin_commands_refuse_regular_users(dispatcher, notifier, database, command):
    asyncio.run(dispatcher.handle_update(_message(command, chat=ALICE_PRIVATE)))

    assert notifier.sent[0][1] == "Insufficient permissions: superadmin only."
    assert database.get_group_by_telegram_id("-1001") is None


def test_module_toggle_callback_is_superadmin_only(dispatcher, notifier, make_group, database):
    group = make_group(feature=False)

    asyncio.run(dispatcher.handle_update(_callback(f"toggle_module_{group.id}_late_report_true")))

    assert notifier.edited[-1][2] == "Insufficient permissions: superadmin only."
    assert database.has_group_feature(group.id, "late_report") is False


def test_promote_and_demote(dispatcher, notifier, database):
    asyncio.run(dispatcher.handle_update(_message("/start", chat=ALICE_PRIVATE)))
    asyncio.run(dispatcher.handle_update(_message("/promote 1001", chat=CHIEF_PRIVATE, sender=CHIEF)))
    asyncio.run(dispatcher.handle_update(_message("/late_reports", chat=ALICE_PRIVATE)))
    asyncio.run(dispatcher.handle_update(_message("/demote 1001", chat=CHIEF_PRIVATE, sender=CHIEF)))

    assert notifier.sent[1][1] == "Alice is now admin."
    assert notifier.sent[2][1] == "No late reports yet."
    assert notifier.sent[3][1] == "Alice is now member."
    assert database.get_user_by_telegram_id("1001")["user_type"] == "user"


def test_promote_unknown_user_and_bad_role(dispatcher, notifier):
    asyncio.run(dispatcher.handle_update(_message("/promote 5555", chat=CHIEF_PRIVATE, sender=CHIEF)))
    asyncio.run(dispatcher.handle_update(_message("/promote 9002 owner", chat=CHIEF_PRIVATE, sender=CHIEF)))

    assert notifier.sent[0][1] == "User 5555 has not talked to the bot yet."
    assert notifier.sent[1][1] == "The role must be admin or superadmin."


def test_start_uses_the_configured_welcome(dispatcher, notifier):
    asyncio.run(dispatcher.handle_update(_message("/set_welcome Good morning, team", chat=CHIEF_PRIVATE, sender=CHIEF)))
    asyncio.run(dispatcher.handle_update(_message("/start", chat=ALICE_PRIVATE)))

    assert notifier.sent[0][1] == "Welcome message updated."
    welcome = notifier.sent[1][1]
    assert welcome.startswith("Good morning, team")
    assert "Hello, Alice!" in welcome
    assert "Role: member" in welcome


def test_help_is_role_aware(dispatcher, notifier, make_group):
    make_group()

    asyncio.run(dispatcher.handle_update(_message("/help")))
    asyncio.run(dispatcher.handle_update(_message("/help", chat=CHIEF_PRIVATE, sender=CHIEF)))

    member_help, chief_help = notifier.sent[0][1], notifier.sent[1][1]
    assert "Late reports" in member_help
    assert "/group_modules" not in member_help
    assert "/group_modules [group id]" in chief_help


def test_info_shows_profile_with_rename_button(dispatcher, notifier, database):
    asyncio.run(dispatcher.handle_update(_message("/info", chat=ALICE_PRIVATE)))

    text, markup = notifier.sent[0][1], notifier.sent[0][2]
    assert "Display name: Alice" in text
    assert "Role: member" in text
    assert _buttons(markup) == [{"text": "Change display name", "callback_data": "update_display_name"}]

    asyncio.run(dispatcher.handle_update(_callback("update_display_name", chat=ALICE_PRIVATE)))
    asyncio.run(dispatcher.handle_update(_message("Ally", chat=ALICE_PRIVATE)))

    assert database.get_user_by_telegram_id("1001")["display_name"] == "Ally"
