"""FastAPI application exposing the Tardy Pulse stats API and Telegram webhook."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .admin import AdminService
from .bot import UpdateDispatcher
from .cache import StatsCache
from .config import Settings, load_settings
from .db import Database
from .periods import PERIODS
from .repository import ReportRepository
from .sessions import SessionStore
from .stats import StatsAggregator, StatsService
from .telegram_client import TelegramApiError, TelegramClient
from .workflow import LateReportWorkflow

logger = logging.getLogger(__name__)

DEFAULT_USER_LIMIT = 30
MAX_USER_LIMIT = 100


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "message": message},
    )


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    client: Optional[TelegramClient] = None,
) -> FastAPI:
    settings = settings or load_settings()
    database = database or Database(settings.database_path)
    client = client or TelegramClient(settings.telegram_bot_token)

    cache = StatsCache(database)
    repository = ReportRepository(database, cache)
    service = StatsService(settings, database, cache, StatsAggregator(repository))
    workflow = LateReportWorkflow(
        settings,
        database,
        repository,
        SessionStore(database, ttl_seconds=settings.session_ttl_seconds),
        client,
    )
    admin = AdminService(database, settings.superadmin_telegram_ids)
    dispatcher = UpdateDispatcher(database, workflow, client, admin)

    app = FastAPI(title="Tardy Pulse API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.stats_service = service
    app.state.workflow = workflow

    @app.on_event("startup")
    async def register_webhook() -> None:
        if settings.webhook_url:
            await client.set_webhook(settings.webhook_url, settings.webhook_secret)
            logger.info("Registered Telegram webhook at %s", settings.webhook_url)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - io bound
        await client.close()

    def get_service() -> StatsService:
        return service

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail), str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(422, "Invalid request", str(exc.errors()))

    async def verify_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")) -> None:
        if settings.api_key and x_api_key != settings.api_key:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid api key")

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/stats/late-reports/user/{user_id}")
    async def get_user_stats(
        user_id: str,
        limit: Optional[str] = None,
        svc: StatsService = Depends(get_service),
    ) -> Any:
        try:
            parsed_id = int(user_id)
        except ValueError:
            parsed_id = 0
        if parsed_id <= 0:
            return error_response(status.HTTP_400_BAD_REQUEST, "Invalid user ID", f"{user_id!r} is not a positive integer")

        parsed_limit = DEFAULT_USER_LIMIT
        if limit is not None:
            try:
                parsed_limit = int(limit)
            except ValueError:
                parsed_limit = 0
            if not 1 <= parsed_limit <= MAX_USER_LIMIT:
                return error_response(
                    status.HTTP_400_BAD_REQUEST, "Invalid limit", f"limit must be between 1 and {MAX_USER_LIMIT}"
                )

        try:
            data = svc.get_user_stats(parsed_id, parsed_limit)
        except sqlite3.Error as exc:
            logger.exception("Failed to fetch stats for user %s", parsed_id)
            return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch user stats", str(exc))
        return {"success": True, "data": data}

    @app.get("/api/stats/late-reports/{period}")
    async def get_periodic_stats(
        period: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        svc: StatsService = Depends(get_service),
    ) -> Any:
        if period not in PERIODS:
            return error_response(
                status.HTTP_404_NOT_FOUND, "Unknown period", f"period must be one of: {', '.join(PERIODS)}"
            )
        try:
            data = svc.get_periodic_stats(period, start_date, end_date)
        except sqlite3.Error as exc:
            logger.exception("Failed to fetch %s stats", period)
            return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to fetch {period} stats", str(exc))
        return {"success": True, "data": data}

    @app.post("/api/stats/clear-cache")
    async def clear_cache(
        _: None = Depends(verify_api_key),
        svc: StatsService = Depends(get_service),
    ) -> Any:
        try:
            svc.clear_cache()
        except sqlite3.Error as exc:
            logger.exception("Failed to clear stats cache")
            return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to clear cache", str(exc))
        return {"success": True, "message": "Cache cleared successfully"}

    @app.post("/webhook")
    async def telegram_webhook(
        request: Request,
        secret: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
    ) -> Any:
        if settings.webhook_secret and secret != settings.webhook_secret:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid webhook secret")
        update: Dict[str, Any] = await request.json()
        try:
            await dispatcher.handle_update(update)
        except (TelegramApiError, httpx.HTTPError) as exc:
            logger.error("Telegram reply failed for update %s: %s", update.get("update_id"), exc)
        return {"ok": True}

    return app


__all__ = ["create_app", "error_response"]
