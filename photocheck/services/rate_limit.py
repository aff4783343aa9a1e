from __future__ import annotations

import datetime as dt
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class _Bucket:
    tokens: float
    refilled_at: float
    day_ordinal: int
    daily_count: int = 0

    def refill(self, now_mono: float, day_ordinal: int, capacity: float, per_second: float) -> None:
        elapsed = max(0.0, now_mono - self.refilled_at)
        self.tokens = min(capacity, self.tokens + elapsed * per_second)
        self.refilled_at = now_mono
        if self.day_ordinal != day_ordinal:
            self.day_ordinal = day_ordinal
            self.daily_count = 0

    def take(self) -> None:
        self.tokens -= 1.0
        self.daily_count += 1


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    reason: str | None
    retry_after: int | None
    minute_remaining: int
    daily_remaining: int
    limited_by: str | None = None


class AnalysisRateLimiter:
    """Token buckets with a daily cap, guarding paid analysis calls.

    A single check may span several scopes (client address, wizard session).
    The run is admitted only when every scope has budget left, and only then
    is a token spent from each of them.
    """

    def __init__(
        self,
        rate_per_min: int,
        burst: int,
        daily_limit: int,
        *,
        monotonic: Callable[[], float] = time.monotonic,
        utcnow: Callable[[], dt.datetime] = lambda: dt.datetime.now(dt.timezone.utc),
    ) -> None:
        self.rate_per_min = max(1, rate_per_min)
        self.burst = max(1, burst)
        self.daily_limit = max(1, daily_limit)
        self._tokens_per_second = self.rate_per_min / 60.0
        self._monotonic = monotonic
        self._utcnow = utcnow
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _seconds_until_utc_midnight(now_utc: dt.datetime) -> int:
        tomorrow = (now_utc + dt.timedelta(days=1)).date()
        midnight = dt.datetime.combine(tomorrow, dt.time.min, tzinfo=dt.timezone.utc)
        return max(1, int((midnight - now_utc).total_seconds()))

    def _denial(self, key: str, bucket: _Bucket, now_utc: dt.datetime) -> RateDecision | None:
        if bucket.daily_count >= self.daily_limit:
            return RateDecision(
                allowed=False,
                reason="daily_limit",
                retry_after=self._seconds_until_utc_midnight(now_utc),
                minute_remaining=max(0, int(math.floor(bucket.tokens))),
                daily_remaining=0,
                limited_by=key,
            )
        if bucket.tokens < 1.0:
            return RateDecision(
                allowed=False,
                reason="rate_limit",
                retry_after=max(1, int(math.ceil((1.0 - bucket.tokens) / self._tokens_per_second))),
                minute_remaining=0,
                daily_remaining=max(0, self.daily_limit - bucket.daily_count),
                limited_by=key,
            )
        return None

    def check(self, *keys: str) -> RateDecision:
        if not keys:
            raise ValueError("At least one rate-limit key is required.")
        now_mono = self._monotonic()
        now_utc = self._utcnow()
        day_ordinal = now_utc.date().toordinal()

        with self._lock:
            scoped: list[tuple[str, _Bucket]] = []
            for key in dict.fromkeys(keys):
                bucket = self._buckets.setdefault(
                    key,
                    _Bucket(tokens=float(self.burst), refilled_at=now_mono, day_ordinal=day_ordinal),
                )
                bucket.refill(now_mono, day_ordinal, float(self.burst), self._tokens_per_second)
                scoped.append((key, bucket))

            denials = [d for d in (self._denial(key, bucket, now_utc) for key, bucket in scoped) if d]
            if denials:
                # Longest wait wins.
                return max(denials, key=lambda decision: decision.retry_after or 0)

            for _, bucket in scoped:
                bucket.take()
            return RateDecision(
                allowed=True,
                reason=None,
                retry_after=None,
                minute_remaining=min(max(0, int(math.floor(bucket.tokens))) for _, bucket in scoped),
                daily_remaining=min(max(0, self.daily_limit - bucket.daily_count) for _, bucket in scoped),
            )

    def headers(self, decision: RateDecision) -> dict[str, str]:
        return {
            "X-RateLimit-Limit-Minute": str(self.rate_per_min),
            "X-RateLimit-Remaining-Minute": str(max(0, decision.minute_remaining)),
            "X-RateLimit-Limit-Day": str(self.daily_limit),
            "X-RateLimit-Remaining-Day": str(max(0, decision.daily_remaining)),
        }


def client_key(client_ip: str) -> str:
    return f"ip:{client_ip}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"
