"""MCP server exposing Tardy Pulse late-report statistics as tools."""

from __future__ import annotations

from typing import Optional

from mcp.server.fastmcp import FastMCP

from .cache import StatsCache
from .config import load_settings
from .db import Database
from .repository import ReportRepository
from .stats import StatsAggregator, StatsService


def create_mcp(service: StatsService) -> FastMCP:
    mcp = FastMCP("tardy-pulse")

    @mcp.tool()
    async def get_late_report_stats(
        period: str = "daily",
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> dict:
        """Return late-report statistics for a daily, weekly or monthly window."""

        return service.get_periodic_stats(period, start_date, end_date)

    @mcp.tool()
    async def get_user_late_stats(user_id: int, limit: int = 30) -> dict:
        """Return lifetime late-report statistics and recent reports for one user."""

        if user_id <= 0:
            raise ValueError("Invalid user ID")
        return service.get_user_stats(user_id, limit)

    @mcp.tool()
    async def clear_stats_cache() -> dict:
        """Purge expired cache entries and every periodic statistics entry."""

        return service.clear_cache()

    return mcp


def build_service() -> StatsService:
    settings = load_settings()
    database = Database(settings.database_path)
    cache = StatsCache(database)
    return StatsService(settings, database, cache, StatsAggregator(ReportRepository(database, cache)))


def run() -> None:  # pragma: no cover - stdio transport
    create_mcp(build_service()).run()


if __name__ == "__main__":  # pragma: no cover
    run()


__all__ = ["create_mcp", "build_service", "run"]
