"""Per-user conversation sessions: what the next free-text message answers."""

from __future__ import annotations

import time
from typing import Callable, Optional

from .db import Database
from .models import ConversationSession, SessionFlow


class SessionStore:
    """One authoritative session per user, overwritten by each new prompt."""

    def __init__(
        self,
        database: Database,
        ttl_seconds: int = 600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.database = database
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def start(self, user_id: int, flow: SessionFlow, target_id: Optional[int] = None) -> ConversationSession:
        session = ConversationSession(
            user_id=user_id,
            flow=flow,
            target_id=target_id,
            expires_at=self._clock() + self.ttl_seconds,
        )
        self.database.put_session(user_id, flow.value, target_id, session.expires_at)
        return session

    def get(self, user_id: int) -> Optional[ConversationSession]:
        row = self.database.get_session(user_id)
        if row is None:
            return None
        if row["expires_at"] <= self._clock():
            self.database.delete_session(user_id)
            return None
        return ConversationSession(
            user_id=row["user_id"],
            flow=SessionFlow(row["flow"]),
            target_id=row["target_id"],
            expires_at=row["expires_at"],
        )

    def clear(self, user_id: int, flow: Optional[SessionFlow] = None) -> bool:
        return self.database.delete_session(user_id, flow.value if flow else None) > 0


__all__ = ["SessionStore"]
