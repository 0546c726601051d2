"""Configuration helpers for Tardy Pulse."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


@dataclass(slots=True)
class Settings:
    """Runtime configuration values loaded from environment variables."""

    telegram_bot_token: str
    database_path: Path
    webhook_secret: Optional[str] = None
    api_key: Optional[str] = None
    webhook_url: Optional[str] = None
    superadmin_telegram_ids: Tuple[str, ...] = ()
    timezone: str = "Asia/Taipei"
    stats_cache_ttl: int = 3600
    user_stats_cache_ttl: int = 900
    session_ttl_seconds: int = 600
    # Product-tuned thresholds for the late-report conversation.
    reason_adequate_length: int = 10
    custom_reason_min_length: int = 5
    custom_reason_max_length: int = 200
    display_name_max_length: int = 50


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {value!r}") from exc


def _id_list_env(name: str) -> Tuple[str, ...]:
    value = os.getenv(name) or ""
    return tuple(part.strip() for part in value.split(",") if part.strip())


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from the environment, optionally from a specific file."""

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    db_path = Path(os.getenv("DATABASE_PATH", "tardy_pulse.db")).expanduser()

    bot_token = os.getenv("TELEGRAM_BOT_TOKEN")
    if not bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN must be configured")

    return Settings(
        telegram_bot_token=bot_token,
        database_path=db_path,
        webhook_secret=os.getenv("WEBHOOK_SECRET") or None,
        api_key=os.getenv("API_KEY") or None,
        webhook_url=os.getenv("WEBHOOK_URL") or None,
        superadmin_telegram_ids=_id_list_env("SUPERADMIN_TELEGRAM_IDS"),
        timezone=os.getenv("TIMEZONE", "Asia/Taipei"),
        stats_cache_ttl=_int_env("STATS_CACHE_TTL", 3600),
        user_stats_cache_ttl=_int_env("USER_STATS_CACHE_TTL", 900),
        session_ttl_seconds=_int_env("SESSION_TTL_SECONDS", 600),
        reason_adequate_length=_int_env("REASON_ADEQUATE_LENGTH", 10),
        custom_reason_min_length=_int_env("CUSTOM_REASON_MIN_LENGTH", 5),
        custom_reason_max_length=_int_env("CUSTOM_REASON_MAX_LENGTH", 200),
        display_name_max_length=_int_env("DISPLAY_NAME_MAX_LENGTH", 50),
    )


__all__ = ["Settings", "load_settings"]
