from __future__ import annotations

import logging
import secrets
import threading
import time
from typing import Callable

from photocheck.services.wizard import WizardSession, WizardStep

LOG = logging.getLogger("photocheck.sessions")

SESSION_COOKIE = "photocheck_session"


class SessionStore:
    """In-memory wizard sessions keyed by cookie value. Nothing is persisted."""

    def __init__(
        self,
        *,
        idle_seconds: float = 30 * 60,
        notification_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._idle_seconds = idle_seconds
        self._notification_seconds = notification_seconds
        self._clock = clock
        self._sessions: dict[str, WizardSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict_idle(self, now: float) -> None:
        stale = [
            session_id
            for session_id, session in self._sessions.items()
            if now - session.last_seen > self._idle_seconds and session.step is not WizardStep.ANALYZING
        ]
        for session_id in stale:
            del self._sessions[session_id]
        if stale:
            LOG.info("sessions_evicted count=%d remaining=%d", len(stale), len(self._sessions))

    def get(self, session_id: str | None) -> WizardSession | None:
        if not session_id:
            return None
        with self._lock:
            self._evict_idle(self._clock())
            session = self._sessions.get(session_id)
        if session is not None:
            session.touch()
        return session

    def create(self) -> WizardSession:
        session = WizardSession(
            secrets.token_urlsafe(24),
            notification_seconds=self._notification_seconds,
            clock=self._clock,
        )
        with self._lock:
            self._evict_idle(self._clock())
            self._sessions[session.session_id] = session
        return session

    def get_or_create(self, session_id: str | None) -> tuple[WizardSession, bool]:
        session = self.get(session_id)
        if session is not None:
            return session, False
        return self.create(), True
