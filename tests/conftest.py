from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

import pytest

from tardy_pulse.cache import StatsCache
from tardy_pulse.config import Settings
from tardy_pulse.db import Database
from tardy_pulse.models import Group, NewLateReport, ReportPatch, ReportStatus, User
from tardy_pulse.repository import ReportRepository
from tardy_pulse.sessions import SessionStore
from tardy_pulse.stats import StatsAggregator, StatsService
from tardy_pulse.telegram_client import TelegramApiError
from tardy_pulse.workflow import LATE_REPORT_FEATURE, LateReportWorkflow

NOW = datetime(2026, 10, 19, 8, 30, 0)


class FakeClock:
    def __init__(self, start: float = 1_800_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeNotifier:
    """Stands in for TelegramClient; records every outbound call."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.sent: list[tuple[Any, str, Any]] = []
        self.edited: list[tuple[Any, int, str, Any]] = []
        self.answered: list[str] = []
        self.webhooks: list[tuple[str, Any]] = []

    async def send_message(self, chat_id, text, *, reply_markup=None):
        if str(chat_id) in self.failing:
            raise TelegramApiError("sendMessage", "Forbidden: bot was blocked by the user")
        self.sent.append((chat_id, text, reply_markup))
        return {"message_id": len(self.sent)}

    async def edit_message_text(self, chat_id, message_id, text, *, reply_markup=None):
        self.edited.append((chat_id, message_id, text, reply_markup))
        return {"message_id": message_id}

    async def answer_callback_query(self, callback_query_id, text=None):
        self.answered.append(callback_query_id)
        return True

    async def set_webhook(self, url, secret_token=None):
        self.webhooks.append((url, secret_token))
        return True

    async def close(self) -> None:
        return None


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(telegram_bot_token="test-token", database_path=tmp_path / "tardy.db")


@pytest.fixture()
def database(settings) -> Database:
    return Database(settings.database_path)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(database, clock) -> StatsCache:
    return StatsCache(database, clock=clock)


@pytest.fixture()
def repository(database, cache) -> ReportRepository:
    return ReportRepository(database, cache)


@pytest.fixture()
def sessions(database, clock, settings) -> SessionStore:
    return SessionStore(database, ttl_seconds=settings.session_ttl_seconds, clock=clock)


@pytest.fixture()
def stats_service(settings, database, cache, repository) -> StatsService:
    return StatsService(settings, database, cache, StatsAggregator(repository), now=lambda: NOW)


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def workflow(settings, database, repository, sessions, notifier) -> LateReportWorkflow:
    return LateReportWorkflow(settings, database, repository, sessions, notifier, now=lambda: NOW)


@pytest.fixture()
def make_user(database) -> Callable[..., User]:
    def _make(telegram_id: str, name: str, user_type: str = "user") -> User:
        row = database.upsert_user(
            {
                "telegram_id": telegram_id,
                "first_name": name,
                "display_name": name,
                "user_type": user_type,
            }
        )
        return User(
            id=row["id"],
            telegram_id=row["telegram_id"],
            first_name=row["first_name"],
            display_name=row["display_name"],
            user_type=row["user_type"],
        )

    return _make


@pytest.fixture()
def make_group(database) -> Callable[..., Group]:
    def _make(telegram_id: str = "-1001", title: str = "Front office", active: bool = True, feature: bool = True) -> Group:
        row = database.upsert_group({"telegram_id": telegram_id, "title": title, "type": "supergroup"})
        database.set_group_active(row["id"], active)
        database.set_group_feature(row["id"], LATE_REPORT_FEATURE, feature)
        return Group(id=row["id"], telegram_id=row["telegram_id"], title=title, type="supergroup", is_active=active)

    return _make


@pytest.fixture()
def add_report(repository) -> Callable[..., Any]:
    """Insert a report directly, optionally moving it to a final status."""

    def _add(
        user: User,
        group: Group,
        report_time: str,
        *,
        before_nine: bool = True,
        reason: str | None = "Traffic jam on the bridge",
        status: ReportStatus = ReportStatus.PROCESSED,
    ):
        report = repository.create(
            NewLateReport(
                user_id=user.id,
                group_id=group.id,
                employee_name=user.employee_name,
                is_before_nine=before_nine,
                report_time=report_time,
                reason=reason,
            )
        )
        if status is not ReportStatus.PENDING:
            report = repository.update(report.id, ReportPatch(status=status))
        return report

    return _add
