"""Late-report statistics and the cached read path in front of them."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .cache import CacheKey, StatsCache
from .config import Settings
from .db import Database
from .periods import calculate_date_range, local_now
from .repository import ReportRepository

logger = logging.getLogger(__name__)

UNKNOWN_USER_LABEL = "unknown user"
CACHE_TTL_SETTING = "stats_cache_ttl"


def _split_totals(row: Any) -> tuple[int, int, int]:
    total = (row["total"] if row else 0) or 0
    on_time = (row["on_time"] if row else 0) or 0
    return total, on_time, total - on_time


def on_time_percentage(on_time: int, total: int) -> int:
    return round(on_time / total * 100) if total else 0


class StatsAggregator:
    """Computes aggregates over processed late reports."""

    def __init__(self, repository: ReportRepository) -> None:
        self.repository = repository

    def periodic_stats(self, period: str, start: str, end: str) -> Dict[str, Any]:
        rows = self.repository.periodic_rows(start, end)
        total, on_time, late = _split_totals(rows["totals"])

        by_user: List[Dict[str, Any]] = []
        for row in rows["users"]:
            user_total = row["total"] or 0
            user_on_time = row["on_time"] or 0
            by_user.append(
                {
                    "user_id": row["user_id"],
                    "user_name": row["user_name"] or UNKNOWN_USER_LABEL,
                    "total": user_total,
                    "on_time": user_on_time,
                    "late": user_total - user_on_time,
                }
            )

        return {
            "period": period,
            "start_date": start,
            "end_date": end,
            "total_reports": total,
            "on_time_reports": on_time,
            "late_reports": late,
            "by_reason": {row["reason"]: row["count"] for row in rows["reasons"]},
            "by_user": by_user,
        }

    def user_stats(self, user_id: int, limit: int) -> Dict[str, Any]:
        rows = self.repository.user_rows(user_id, limit)
        total, on_time, late = _split_totals(rows["totals"])
        user = rows["user"]

        recent_reports = []
        for row in rows["recent"]:
            report = dict(row)
            report["is_before_nine"] = bool(report["is_before_nine"])
            report["admin_notified"] = bool(report["admin_notified"])
            report.pop("version", None)
            recent_reports.append(report)

        return {
            "user_id": user_id,
            "user_name": (user["display_name"] if user else None) or UNKNOWN_USER_LABEL,
            "total_reports": total,
            "on_time_reports": on_time,
            "late_reports": late,
            "on_time_percentage": on_time_percentage(on_time, total),
            "by_reason": {row["reason"]: row["count"] for row in rows["reasons"]},
            "recent_reports": recent_reports,
        }


class StatsService:
    """Serves statistics through the stats cache, computing on a miss."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        cache: StatsCache,
        aggregator: StatsAggregator,
        now: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.settings = settings
        self.database = database
        self.cache = cache
        self.aggregator = aggregator
        self._now = now or (lambda: local_now(settings.timezone))

    def periodic_ttl(self) -> int:
        override = self.database.get_setting(CACHE_TTL_SETTING)
        if override:
            try:
                return int(override)
            except ValueError:
                logger.warning("Ignoring non-integer %s setting %r", CACHE_TTL_SETTING, override)
        return self.settings.stats_cache_ttl

    def get_periodic_stats(
        self,
        period: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        window = calculate_date_range(period, start_date, end_date, now=self._now())
        key = CacheKey.periodic(period, window.start, window.end)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        stats = self.aggregator.periodic_stats(period, window.start, window.end)
        self.cache.set(key, stats, self.periodic_ttl())
        return stats

    def get_user_stats(self, user_id: int, limit: int = 30) -> Dict[str, Any]:
        key = CacheKey.for_user(user_id, limit)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        stats = self.aggregator.user_stats(user_id, limit)
        self.cache.set(key, stats, self.settings.user_stats_cache_ttl)
        return stats

    def clear_cache(self) -> Dict[str, int]:
        expired = self.cache.delete_expired()
        periodic = self.cache.invalidate_periodic()
        logger.info("Stats cache cleared: %s expired, %s periodic entries", expired, periodic)
        return {"expired": expired, "periodic": periodic}


__all__ = ["StatsAggregator", "StatsService", "on_time_percentage", "UNKNOWN_USER_LABEL"]
