"""Read-through cache for computed statistics, stored in the ``stats_cache`` table."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple
from urllib.parse import quote

from .db import Database

logger = logging.getLogger(__name__)

PERIODIC_NAMESPACE = "late_stats"
USER_NAMESPACE = "user_stats"
_SEPARATOR = ":"


def _encode_part(value: Any) -> str:
    if value is None:
        return "*"
    return quote(str(value), safe="")


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Deterministic cache key: a namespace plus an ordered parameter tuple.

    Every part is percent-encoded before joining, so the separator never
    appears inside a part and two different tuples never encode alike.
    """

    namespace: str
    params: Tuple[Any, ...] = ()

    def encode(self) -> str:
        parts = [quote(self.namespace, safe="")] + [_encode_part(p) for p in self.params]
        return _SEPARATOR.join(parts)

    def prefix(self) -> str:
        """Prefix shared by every key that extends this one."""

        return self.encode() + _SEPARATOR

    @classmethod
    def periodic(cls, period: str, start_date: Optional[str], end_date: Optional[str]) -> "CacheKey":
        return cls(PERIODIC_NAMESPACE, (period, start_date, end_date))

    @classmethod
    def for_user(cls, user_id: int, limit: int) -> "CacheKey":
        return cls(USER_NAMESPACE, (int(user_id), int(limit)))

    def __str__(self) -> str:
        return self.encode()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class StatsCache:
    """Key to JSON store with per-entry expiry checked at read time."""

    def __init__(self, database: Database, clock: Callable[[], float] = time.time) -> None:
        self.database = database
        self._clock = clock

    def get(self, key: CacheKey | str) -> Optional[Any]:
        """Return the cached payload, or None for a miss (absent, expired or corrupt)."""

        row = self.database.get_cache_entry(str(key), self._clock())
        if row is None:
            return None
        try:
            return json.loads(row["data"])
        except (TypeError, ValueError):
            logger.warning("Discarding corrupt stats cache entry %s", key)
            return None

    def set(self, key: CacheKey | str, value: Any, ttl_seconds: int) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        self.database.put_cache_entry(str(key), payload, self._clock() + ttl_seconds)

    def delete_expired(self) -> int:
        return self.database.delete_expired_cache_entries(self._clock())

    def delete_prefix(self, prefix: str) -> int:
        return self.database.delete_cache_entries_like(_escape_like(prefix) + "%")

    def delete_matching(self, fragment: str) -> int:
        return self.database.delete_cache_entries_like("%" + _escape_like(fragment) + "%")

    # region Invalidation helpers
    def invalidate_user(self, user_id: int) -> int:
        return self.delete_prefix(CacheKey(USER_NAMESPACE, (int(user_id),)).prefix())

    def invalidate_periodic(self) -> int:
        return self.delete_prefix(CacheKey(PERIODIC_NAMESPACE).prefix())

    # endregion


__all__ = ["CacheKey", "StatsCache", "PERIODIC_NAMESPACE", "USER_NAMESPACE"]
