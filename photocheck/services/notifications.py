from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Callable

from photocheck.schemas import NotificationLevel

DEFAULT_LIFETIME_SECONDS = 5.0

_ids = itertools.count(1)


@dataclass(frozen=True)
class Notification:
    id: int
    message: str
    level: NotificationLevel
    created_at: float
    lifetime_seconds: float

    def expired(self, now: float) -> bool:
        # A lifetime of zero keeps the notification until it is replaced or cleared.
        return self.lifetime_seconds > 0 and now - self.created_at >= self.lifetime_seconds


class NotificationCenter:
    def __init__(
        self,
        lifetime_seconds: float = DEFAULT_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lifetime_seconds = lifetime_seconds
        self._clock = clock
        self._current: Notification | None = None

    def show(self, message: str, level: NotificationLevel = "info") -> Notification:
        self._current = Notification(
            id=next(_ids),
            message=message,
            level=level,
            created_at=self._clock(),
            lifetime_seconds=self._lifetime_seconds,
        )
        return self._current

    def current(self) -> Notification | None:
        if self._current is not None and self._current.expired(self._clock()):
            self._current = None
        return self._current

    def dismiss(self, notification_id: int) -> None:
        if self._current is not None and self._current.id == notification_id:
            self._current = None

    def clear(self) -> None:
        self._current = None
