"""Routes Telegram updates into the late-report workflow and renders replies."""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import Any, Dict, Optional, Tuple

from .admin import KNOWN_FEATURES, LATE_REPORT_FEATURE, AdminService
from .db import Database
from .exceptions import TardyPulseError
from .messages import (
    ROLE_LABELS,
    format_admin_panel,
    format_group_features,
    format_help,
    format_profile,
    format_recent_reports,
    format_report,
    format_welcome,
)
from .models import Group, User, WorkflowResult
from .telegram_client import InlineKeyboard, TelegramClient, inline_keyboard
from .workflow import LateReportWorkflow

logger = logging.getLogger(__name__)

GROUP_CHAT_TYPES = {"group", "supergroup"}
GENERIC_FAILURE = "Something went wrong, please try again later."

REASON_CALLBACK = re.compile(r"^late_reason_(\d+)_(\w+)$")
CONFIRM_CALLBACK = re.compile(r"^confirm_late_(\d+)$")
CANCEL_CALLBACK = re.compile(r"^cancel_late_(\d+)$")
EDIT_CALLBACK = re.compile(r"^edit_reason_(\d+)$")
TOGGLE_MODULE_CALLBACK = re.compile(r"^toggle_module_(\d+)_(\w+)_(true|false)$")

Reply = Tuple[str, Optional[Dict[str, Any]]]


def _button(text: str, data: str) -> Dict[str, str]:
    return {"text": text, "callback_data": data}


def _report_actions(report_id: int) -> InlineKeyboard:
    return [
        [_button("Confirm", f"confirm_late_{report_id}"), _button("Change reason", f"edit_reason_{report_id}")],
        [_button("Cancel report", f"cancel_late_{report_id}")],
    ]


def _module_actions(group_id: int, features: Dict[str, bool]) -> InlineKeyboard:
    rows: InlineKeyboard = []
    for feature, enabled in features.items():
        label = f"{KNOWN_FEATURES.get(feature, feature)}: {'on' if enabled else 'off'}"
        rows.append([_button(label, f"toggle_module_{group_id}_{feature}_{str(not enabled).lower()}")])
    return rows


def render(result: WorkflowResult) -> Reply:
    """Turn a workflow result into reply text and an optional inline keyboard."""

    report = result.report
    if result.outcome == "needs_reason" and report:
        rows: InlineKeyboard = []
        buttons = [_button(c.label, f"late_reason_{report.id}_{c.key}") for c in result.choices]
        for index in range(0, len(buttons), 2):
            rows.append(buttons[index:index + 2])
        rows.append([_button("Cancel report", f"cancel_late_{report.id}")])
        text = (
            f"Late report\n\n{format_report(report)}\n\n"
            "Please pick a reason below or reply with more detail."
        )
        return text, inline_keyboard(rows)
    if result.outcome in {"detected", "reason_updated"} and report:
        text = f"Late report\n\n{format_report(report)}\n\nPlease check the details and confirm."
        return text, inline_keyboard(_report_actions(report.id))
    if result.outcome == "awaiting_reason" and report:
        text = "Please reply with the reason you will be late, e.g. \"my kid has a fever and needs a doctor\"."
        return text, inline_keyboard([[_button("Cancel", f"cancel_late_{report.id}")]])
    if result.outcome == "confirmed" and report:
        text = (
            f"Late report #{report.id} submitted\n\n{format_report(report)}\n\n"
            f"{result.notified} admins notified."
        )
        return text, None
    if result.outcome == "cancelled":
        return "Late report cancelled. Mention it in the group again to report anew.", None
    if result.outcome == "awaiting_display_name":
        text = "Reply with the display name to use in late reports."
        return text, inline_keyboard([[_button("Cancel", "cancel_update_name")]])
    if result.outcome == "display_name_updated":
        return f"Display name updated to: {result.detail}", None
    if result.outcome == "display_name_cancelled":
        return "Display name update cancelled.", None
    return result.detail or GENERIC_FAILURE, None


class UpdateDispatcher:
    """Handles one Telegram update per call; failures never escape a handler."""

    def __init__(
        self,
        database: Database,
        workflow: LateReportWorkflow,
        client: TelegramClient,
        admin: Optional[AdminService] = None,
    ) -> None:
        self.database = database
        self.workflow = workflow
        self.client = client
        self.admin = admin or AdminService(database)

    async def handle_update(self, update: Dict[str, Any]) -> None:
        if "callback_query" in update:
            await self._handle_callback(update["callback_query"])
            return
        message = update.get("message") or {}
        if message.get("text") and message.get("from"):
            await self._handle_message(message)

    # region Context resolution
    def _resolve_user(self, sender: Dict[str, Any]) -> User:
        telegram_id = str(sender["id"])
        row = self.database.upsert_user(
            {
                "telegram_id": telegram_id,
                "username": sender.get("username"),
                "first_name": sender.get("first_name"),
                "last_name": sender.get("last_name"),
                "display_name": sender.get("first_name") or sender.get("username") or f"user{telegram_id[-4:]}",
            }
        )
        user = User(
            id=row["id"],
            telegram_id=row["telegram_id"],
            username=row["username"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            display_name=row["display_name"],
            user_type=row["user_type"],
            is_active=bool(row["is_active"]),
        )
        return self.admin.bootstrap(user)

    def _resolve_group(self, chat: Dict[str, Any]) -> Optional[Group]:
        if chat.get("type") not in GROUP_CHAT_TYPES:
            return None
        row = self.database.upsert_group(
            {"telegram_id": str(chat["id"]), "title": chat.get("title") or "unknown group", "type": chat["type"]}
        )
        return Group(
            id=row["id"],
            telegram_id=row["telegram_id"],
            title=row["title"],
            type=row["type"],
            is_active=bool(row["is_active"]),
        )

    # endregion

    async def _handle_message(self, message: Dict[str, Any]) -> None:
        chat = message["chat"]
        sender = message["from"]
        text: str = message["text"]
        try:
            user = self._resolve_user(sender)
            group = self._resolve_group(chat)
            if text.startswith("/"):
                reply = self._handle_command(user, group, text)
            else:
                result = self.workflow.handle_text(user, text, group)
                reply = render(result) if result else None
        except TardyPulseError as exc:
            reply = (str(exc), None)
        except sqlite3.Error:
            logger.exception("Failed to handle message from %s in chat %s", sender.get("id"), chat.get("id"))
            reply = (GENERIC_FAILURE, None)

        if reply:
            text_out, markup = reply
            await self.client.send_message(chat["id"], text_out, reply_markup=markup)

    # region Commands
    def _handle_command(self, user: User, group: Optional[Group], text: str) -> Optional[Reply]:
        parts = text.split()
        command = parts[0][1:].split("@", 1)[0]
        args = parts[1:]
        if command == "start":
            return format_welcome(user, self.admin.welcome_message()), None
        if command == "help":
            enabled = group is not None and self.database.has_group_feature(group.id, LATE_REPORT_FEATURE)
            return format_help(user, group, late_reports_enabled=enabled), None
        if command == "info":
            markup = inline_keyboard([[_button("Change display name", "update_display_name")]])
            return format_profile(user), markup
        if command == "name":
            return render(self.workflow.begin_display_name_update(user))
        if command == "late_reports":
            limit = 10
            if args:
                try:
                    limit = int(args[0])
                except ValueError:
                    return "Usage: /late_reports [number of reports]", None
            reports = self.workflow.list_recent(limit, is_privileged=user.is_privileged)
            return format_recent_reports(reports), None
        return self._handle_admin_command(user, group, command, args, text)

    def _handle_admin_command(
        self,
        user: User,
        group: Optional[Group],
        command: str,
        args: list[str],
        text: str,
    ) -> Optional[Reply]:
        if command == "superadmin":
            self.admin.require_superadmin(user)
            return format_admin_panel(user), None
        if command in {"enable_group", "disable_group"}:
            self.admin.require_superadmin(user)
            target = args[0] if args else (group.telegram_id if group else None)
            if target is None:
                return f"Usage: /{command} [group id]", None
            updated = self.admin.set_group_active(user, target, command == "enable_group")
            state = "enabled" if updated.is_active else "disabled"
            return f"{updated.title} ({updated.telegram_id}) is now {state}.", None
        if command == "group_modules":
            self.admin.require_superadmin(user)
            target = args[0] if args else (group.telegram_id if group else None)
            if target is None:
                return "Usage: /group_modules [group id]", None
            found, features = self.admin.group_features(user, target)
            return self._modules_reply(found, features)
        if command == "promote":
            self.admin.require_superadmin(user)
            if not args:
                return "Usage: /promote <telegram id> [admin|superadmin]", None
            row = self.admin.promote(user, args[0], args[1] if len(args) > 1 else "admin")
            return f"{row['display_name'] or row['telegram_id']} is now {ROLE_LABELS[row['user_type']]}.", None
        if command == "demote":
            self.admin.require_superadmin(user)
            if not args:
                return "Usage: /demote <telegram id>", None
            row = self.admin.demote(user, args[0])
            return f"{row['display_name'] or row['telegram_id']} is now {ROLE_LABELS[row['user_type']]}.", None
        if command == "set_welcome":
            self.admin.set_welcome_message(user, text.split(maxsplit=1)[1] if args else "")
            return "Welcome message updated.", None
        return None

    def _modules_reply(self, group: Group, features: Dict[str, bool]) -> Reply:
        text = format_group_features(group, features, KNOWN_FEATURES)
        return text, inline_keyboard(_module_actions(group.id, features))

    # endregion

    async def _handle_callback(self, query: Dict[str, Any]) -> None:
        await self.client.answer_callback_query(query["id"])
        message = query.get("message") or {}
        chat_id = (message.get("chat") or {}).get("id")
        data = query.get("data") or ""
        try:
            user = self._resolve_user(query["from"])
            reply = await self._dispatch_callback(user, data)
        except TardyPulseError as exc:
            reply = (str(exc), None)
        except sqlite3.Error:
            logger.exception("Failed to handle callback %r from %s", data, query["from"].get("id"))
            reply = (GENERIC_FAILURE, None)

        if reply and chat_id is not None:
            text_out, markup = reply
            await self.client.edit_message_text(chat_id, message["message_id"], text_out, reply_markup=markup)

    async def _dispatch_callback(self, user: User, data: str) -> Optional[Reply]:
        if match := REASON_CALLBACK.match(data):
            return render(self.workflow.select_reason(int(match.group(1)), user, match.group(2)))
        if match := CONFIRM_CALLBACK.match(data):
            return render(await self.workflow.confirm(int(match.group(1)), user))
        if match := CANCEL_CALLBACK.match(data):
            return render(self.workflow.cancel(int(match.group(1)), user))
        if match := EDIT_CALLBACK.match(data):
            return render(self.workflow.request_edit(int(match.group(1))))
        if match := TOGGLE_MODULE_CALLBACK.match(data):
            group = self.admin.set_group_feature(user, int(match.group(1)), match.group(2), match.group(3) == "true")
            _, features = self.admin.group_features(user, group.telegram_id)
            return self._modules_reply(group, features)
        if data == "update_display_name":
            return render(self.workflow.begin_display_name_update(user))
        if data == "cancel_update_name":
            return render(self.workflow.cancel_display_name_update(user))
        return None


__all__ = ["UpdateDispatcher", "render"]
