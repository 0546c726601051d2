"""Privileged operations: group activation, group features and user roles."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from .db import Database, Row
from .exceptions import AuthorizationError, NotFoundError, ValidationError
from .models import Group, PRIVILEGED_USER_TYPES, User

logger = logging.getLogger(__name__)

LATE_REPORT_FEATURE = "late_report"
KNOWN_FEATURES: Dict[str, str] = {LATE_REPORT_FEATURE: "Late reports"}
WELCOME_SETTING = "welcome_message"


def _to_group(row: Row) -> Group:
    return Group(
        id=row["id"],
        telegram_id=row["telegram_id"],
        title=row["title"],
        type=row["type"],
        is_active=bool(row["is_active"]),
    )


class AdminService:
    """Role checks and writes behind the superadmin chat commands.

    Telegram ids listed in ``superadmin_telegram_ids`` are promoted the first
    time they talk to the bot, which is how a fresh database gets its first
    superadmin.
    """

    def __init__(self, database: Database, superadmin_telegram_ids: Iterable[str] = ()) -> None:
        self.database = database
        self.superadmin_telegram_ids = frozenset(str(value) for value in superadmin_telegram_ids)

    def bootstrap(self, user: User) -> User:
        if user.telegram_id not in self.superadmin_telegram_ids or user.is_superadmin:
            return user
        self.database.set_user_type(user.id, "superadmin")
        logger.info("Promoted configured superadmin %s (was %s)", user.telegram_id, user.user_type)
        user.user_type = "superadmin"
        return user

    # region Groups
    def find_group(self, group_telegram_id: str) -> Group:
        """Look a group up by chat id, registering it if the bot has not seen it yet.

        The title is a placeholder until the first message from that chat
        refreshes it.
        """

        telegram_id = str(group_telegram_id).strip()
        try:
            int(telegram_id)
        except ValueError as exc:
            raise ValidationError(f"{group_telegram_id!r} is not a Telegram group ID") from exc
        row = self.database.get_group_by_telegram_id(telegram_id)
        if row is None:
            row = self.database.upsert_group({"telegram_id": telegram_id, "title": "unknown group"})
            logger.info("Registered group %s ahead of its first message", telegram_id)
        return _to_group(row)

    def set_group_active(self, actor: User, group_telegram_id: str, active: bool) -> Group:
        self.require_superadmin(actor)
        group = self.find_group(group_telegram_id)
        self.database.set_group_active(group.id, active)
        group.is_active = active
        logger.info(
            "Group %s %s by %s", group.telegram_id, "enabled" if active else "disabled", actor.telegram_id
        )
        return group

    def group_features(self, actor: User, group_telegram_id: str) -> tuple[Group, Dict[str, bool]]:
        self.require_superadmin(actor)
        group = self.find_group(group_telegram_id)
        stored = self.database.get_group_features(group.id)
        return group, {feature: stored.get(feature, False) for feature in KNOWN_FEATURES}

    def set_group_feature(self, actor: User, group_id: int, feature: str, enabled: bool) -> Group:
        self.require_superadmin(actor)
        if feature not in KNOWN_FEATURES:
            raise ValidationError(f"Unknown feature {feature!r}")
        row = self.database.get_group(group_id)
        if row is None:
            raise NotFoundError(f"Group {group_id} not found")
        self.database.set_group_feature(group_id, feature, enabled)
        logger.info(
            "Feature %s %s for group %s by %s",
            feature,
            "enabled" if enabled else "disabled",
            row["telegram_id"],
            actor.telegram_id,
        )
        return _to_group(row)

    # endregion

    # region Users
    def promote(self, actor: User, telegram_id: str, user_type: str = "admin") -> Row:
        self.require_superadmin(actor)
        if user_type not in PRIVILEGED_USER_TYPES:
            raise ValidationError("The role must be admin or superadmin.")
        return self._set_user_type(actor, telegram_id, user_type)

    def demote(self, actor: User, telegram_id: str) -> Row:
        self.require_superadmin(actor)
        if str(telegram_id) == actor.telegram_id:
            raise ValidationError("You cannot demote yourself.")
        return self._set_user_type(actor, telegram_id, "user")

    def _set_user_type(self, actor: User, telegram_id: str, user_type: str) -> Row:
        row = self.database.get_user_by_telegram_id(str(telegram_id))
        if row is None:
            raise NotFoundError(f"User {telegram_id} has not talked to the bot yet.")
        self.database.set_user_type(row["id"], user_type)
        logger.info("User %s set to %s by %s", telegram_id, user_type, actor.telegram_id)
        return self.database.get_user(row["id"])

    # endregion

    def welcome_message(self) -> Optional[str]:
        return self.database.get_setting(WELCOME_SETTING)

    def set_welcome_message(self, actor: User, text: str) -> None:
        self.require_superadmin(actor)
        if not text.strip():
            raise ValidationError("Usage: /set_welcome <message>")
        self.database.set_setting(WELCOME_SETTING, text.strip())

    @staticmethod
    def require_superadmin(actor: User) -> None:
        if not actor.is_superadmin:
            raise AuthorizationError("Insufficient permissions: superadmin only.")


__all__ = ["AdminService", "KNOWN_FEATURES", "LATE_REPORT_FEATURE", "WELCOME_SETTING"]
