"""SQLite persistence layer for Tardy Pulse."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

Connection = sqlite3.Connection
Row = sqlite3.Row

NO_REASON_LABEL = "no reason given"
MUTABLE_REPORT_COLUMNS = frozenset({"reason", "status", "admin_notified"})


class Database:
    """Lightweight wrapper around SQLite operations."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _initialize(self) -> None:
        with self.connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_id TEXT NOT NULL UNIQUE,
                    username TEXT,
                    first_name TEXT,
                    last_name TEXT,
                    display_name TEXT,
                    user_type TEXT NOT NULL DEFAULT 'user',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS groups (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_id TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    type TEXT NOT NULL DEFAULT 'group',
                    is_active INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS group_features (
                    group_id INTEGER NOT NULL,
                    feature TEXT NOT NULL,
                    is_enabled INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(group_id, feature),
                    FOREIGN KEY(group_id) REFERENCES groups(id)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS late_reports (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    group_id INTEGER NOT NULL,
                    employee_name TEXT NOT NULL,
                    is_before_nine INTEGER NOT NULL,
                    report_time TEXT NOT NULL,
                    reason TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    admin_notified INTEGER NOT NULL DEFAULT 0,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(user_id) REFERENCES users(id),
                    FOREIGN KEY(group_id) REFERENCES groups(id)
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_late_reports_time ON late_reports(status, report_time)"
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS stats_cache (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    cache_key TEXT NOT NULL UNIQUE,
                    data TEXT NOT NULL,
                    expires_at REAL NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS conversation_sessions (
                    user_id INTEGER PRIMARY KEY,
                    flow TEXT NOT NULL,
                    target_id INTEGER,
                    expires_at REAL NOT NULL,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.commit()

    # region Users
    def upsert_user(self, user: Dict[str, Any]) -> Row:
        """Insert a user by telegram id, refreshing profile fields on conflict.

        ``display_name`` and ``user_type`` are only written on first insert so
        that later profile syncs never undo a chosen name or a promotion.
        """

        record = {
            "username": None,
            "first_name": None,
            "last_name": None,
            "display_name": None,
            "user_type": "user",
            **user,
        }
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO users (telegram_id, username, first_name, last_name, display_name, user_type)
                VALUES (:telegram_id, :username, :first_name, :last_name, :display_name, :user_type)
                ON CONFLICT(telegram_id) DO UPDATE SET
                    username=excluded.username,
                    first_name=excluded.first_name,
                    last_name=excluded.last_name,
                    updated_at=CURRENT_TIMESTAMP
                """,
                record,
            )
            conn.commit()
            cursor = conn.execute(
                "SELECT * FROM users WHERE telegram_id = ?", (record["telegram_id"],)
            )
            return cursor.fetchone()

    def get_user(self, user_id: int) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            return cursor.fetchone()

    def get_user_by_telegram_id(self, telegram_id: str) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM users WHERE telegram_id = ?", (telegram_id,))
            return cursor.fetchone()

    def update_display_name(self, user_id: int, display_name: str) -> None:
        with self.connect() as conn:
            conn.execute(
                "UPDATE users SET display_name = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (display_name, user_id),
            )
            conn.commit()

    def set_user_type(self, user_id: int, user_type: str) -> None:
        with self.connect() as conn:
            conn.execute(
                "UPDATE users SET user_type = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (user_type, user_id),
            )
            conn.commit()

    def get_privileged_users(self) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM users
                WHERE user_type IN ('superadmin', 'admin') AND is_active = 1
                ORDER BY id
                """
            )
            return cursor.fetchall()

    # endregion

    # region Groups
    def upsert_group(self, group: Dict[str, Any]) -> Row:
        record = {"type": "group", **group}
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO groups (telegram_id, title, type)
                VALUES (:telegram_id, :title, :type)
                ON CONFLICT(telegram_id) DO UPDATE SET
                    title=excluded.title,
                    type=excluded.type,
                    updated_at=CURRENT_TIMESTAMP
                """,
                record,
            )
            conn.commit()
            cursor = conn.execute(
                "SELECT * FROM groups WHERE telegram_id = ?", (record["telegram_id"],)
            )
            return cursor.fetchone()

    def get_group(self, group_id: int) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM groups WHERE id = ?", (group_id,))
            return cursor.fetchone()

    def get_group_by_telegram_id(self, telegram_id: str) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM groups WHERE telegram_id = ?", (telegram_id,))
            return cursor.fetchone()

    def set_group_active(self, group_id: int, active: bool) -> None:
        with self.connect() as conn:
            conn.execute(
                "UPDATE groups SET is_active = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (int(active), group_id),
            )
            conn.commit()

    def set_group_feature(self, group_id: int, feature: str, enabled: bool) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO group_features (group_id, feature, is_enabled)
                VALUES (?, ?, ?)
                ON CONFLICT(group_id, feature) DO UPDATE SET is_enabled=excluded.is_enabled
                """,
                (group_id, feature, int(enabled)),
            )
            conn.commit()

    def has_group_feature(self, group_id: int, feature: str) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT is_enabled FROM group_features WHERE group_id = ? AND feature = ?",
                (group_id, feature),
            )
            row = cursor.fetchone()
            return bool(row and row["is_enabled"])

    def get_group_features(self, group_id: int) -> Dict[str, bool]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT feature, is_enabled FROM group_features WHERE group_id = ? ORDER BY feature",
                (group_id,),
            )
            return {row["feature"]: bool(row["is_enabled"]) for row in cursor.fetchall()}

    # endregion

    # region Settings
    def get_setting(self, key: str) -> Optional[str]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO settings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            conn.commit()

    # endregion

    # region Late reports
    def insert_late_report(self, record: Dict[str, Any]) -> int:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO late_reports (user_id, group_id, employee_name, is_before_nine, report_time, reason)
                VALUES (:user_id, :group_id, :employee_name, :is_before_nine, :report_time, :reason)
                """,
                record,
            )
            conn.commit()
            return int(cursor.lastrowid)

    def get_late_report(self, report_id: int) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT * FROM late_reports WHERE id = ?", (report_id,))
            return cursor.fetchone()

    def update_late_report(
        self,
        report_id: int,
        values: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        """Apply ``values`` and bump the version; return the number of rows changed.

        With ``expected_version`` the write only lands if the row is still at
        that version.
        """

        unknown = set(values) - MUTABLE_REPORT_COLUMNS
        if unknown:
            raise ValueError(f"late report columns are not updatable: {sorted(unknown)}")

        assignments = [f"{column} = :{column}" for column in sorted(values)]
        assignments.append("version = version + 1")
        assignments.append("updated_at = CURRENT_TIMESTAMP")
        query = f"UPDATE late_reports SET {', '.join(assignments)} WHERE id = :report_id"
        params: Dict[str, Any] = {**values, "report_id": report_id}
        if expected_version is not None:
            query += " AND version = :expected_version"
            params["expected_version"] = expected_version

        with self.connect() as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount

    def get_recent_late_reports(self, limit: int) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT lr.*, u.display_name AS user_name, g.title AS group_title
                FROM late_reports lr
                JOIN users u ON lr.user_id = u.id
                JOIN groups g ON lr.group_id = g.id
                ORDER BY lr.created_at DESC, lr.id DESC
                LIMIT ?
                """,
                (limit,),
            )
            return cursor.fetchall()

    def get_periodic_totals(self, start: str, end: str) -> Row:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       SUM(CASE WHEN is_before_nine = 1 THEN 1 ELSE 0 END) AS on_time
                FROM late_reports
                WHERE status = 'processed'
                  AND report_time >= ?
                  AND report_time <= ?
                """,
                (start, end),
            )
            return cursor.fetchone()

    def get_periodic_reasons(self, start: str, end: str) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT COALESCE(NULLIF(TRIM(reason), ''), ?) AS reason,
                       COUNT(*) AS count
                FROM late_reports
                WHERE status = 'processed'
                  AND report_time >= ?
                  AND report_time <= ?
                GROUP BY 1
                ORDER BY count DESC, reason
                """,
                (NO_REASON_LABEL, start, end),
            )
            return cursor.fetchall()

    def get_periodic_users(self, start: str, end: str) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT lr.user_id,
                       u.display_name AS user_name,
                       COUNT(*) AS total,
                       SUM(CASE WHEN lr.is_before_nine = 1 THEN 1 ELSE 0 END) AS on_time
                FROM late_reports lr
                LEFT JOIN users u ON lr.user_id = u.id
                WHERE lr.status = 'processed'
                  AND lr.report_time >= ?
                  AND lr.report_time <= ?
                GROUP BY lr.user_id, u.display_name
                ORDER BY total DESC, lr.user_id
                """,
                (start, end),
            )
            return cursor.fetchall()

    def get_user_totals(self, user_id: int) -> Row:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       SUM(CASE WHEN is_before_nine = 1 THEN 1 ELSE 0 END) AS on_time
                FROM late_reports
                WHERE user_id = ? AND status = 'processed'
                """,
                (user_id,),
            )
            return cursor.fetchone()

    def get_user_reasons(self, user_id: int) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT COALESCE(NULLIF(TRIM(reason), ''), ?) AS reason,
                       COUNT(*) AS count
                FROM late_reports
                WHERE user_id = ? AND status = 'processed'
                GROUP BY 1
                ORDER BY count DESC, reason
                """,
                (NO_REASON_LABEL, user_id),
            )
            return cursor.fetchall()

    def get_user_recent_reports(self, user_id: int, limit: int) -> List[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT lr.*, g.title AS group_title
                FROM late_reports lr
                LEFT JOIN groups g ON lr.group_id = g.id
                WHERE lr.user_id = ? AND lr.status = 'processed'
                ORDER BY lr.report_time DESC, lr.id DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
            return cursor.fetchall()

    # endregion

    # region Stats cache
    def get_cache_entry(self, cache_key: str, now: float) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT data, expires_at FROM stats_cache WHERE cache_key = ? AND expires_at > ?",
                (cache_key, now),
            )
            return cursor.fetchone()

    def put_cache_entry(self, cache_key: str, data: str, expires_at: float) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO stats_cache (cache_key, data, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(cache_key) DO UPDATE SET
                    data=excluded.data,
                    expires_at=excluded.expires_at,
                    created_at=CURRENT_TIMESTAMP
                """,
                (cache_key, data, expires_at),
            )
            conn.commit()

    def delete_expired_cache_entries(self, now: float) -> int:
        with self.connect() as conn:
            cursor = conn.execute("DELETE FROM stats_cache WHERE expires_at <= ?", (now,))
            conn.commit()
            return cursor.rowcount

    def delete_cache_entries_like(self, pattern: str) -> int:
        with self.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM stats_cache WHERE cache_key LIKE ? ESCAPE '\\'",
                (pattern,),
            )
            conn.commit()
            return cursor.rowcount

    # endregion

    # region Conversation sessions
    def put_session(self, user_id: int, flow: str, target_id: Optional[int], expires_at: float) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO conversation_sessions (user_id, flow, target_id, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    flow=excluded.flow,
                    target_id=excluded.target_id,
                    expires_at=excluded.expires_at,
                    created_at=CURRENT_TIMESTAMP
                """,
                (user_id, flow, target_id, expires_at),
            )
            conn.commit()

    def get_session(self, user_id: int) -> Optional[Row]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT * FROM conversation_sessions WHERE user_id = ?", (user_id,)
            )
            return cursor.fetchone()

    def delete_session(self, user_id: int, flow: Optional[str] = None) -> int:
        query = "DELETE FROM conversation_sessions WHERE user_id = ?"
        params: List[Any] = [user_id]
        if flow is not None:
            query += " AND flow = ?"
            params.append(flow)
        with self.connect() as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount

    # endregion


__all__ = ["Database", "NO_REASON_LABEL", "MUTABLE_REPORT_COLUMNS"]
