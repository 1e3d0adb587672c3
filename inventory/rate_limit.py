from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from inventory.errors import RateLimited
from inventory.settings import Settings


@dataclass(frozen=True, slots=True)
class RateLimitState:
    limit: int
    remaining: int
    reset_after_seconds: int
    window_seconds: int
    exceeded: bool

    def headers(self) -> dict[str, str]:
        headers = {
            "RateLimit-Policy": f"{self.limit};w={self.window_seconds}",
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after_seconds),
        }
        if self.exceeded:
            headers["Retry-After"] = str(self.reset_after_seconds)
        return headers


class FixedWindowRateLimiter:
    """Counts hits per key inside fixed windows starting at the key's first hit."""

    def __init__(
        self,
        *,
        name: str,
        limit: int,
        window_seconds: int,
        message: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[float, int]] = {}
        self._swept_at: float | None = None

    def _prune(self, now: float) -> None:
        # Full sweep at most once per window; the caller holds the lock.
        if self._swept_at is not None and now - self._swept_at < self.window_seconds:
            return
        self._swept_at = now
        expired = [
            key for key, (started_at, _count) in self._windows.items() if now - started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]

    def _current(self, key: str, now: float) -> tuple[float, int]:
        self._prune(now)
        window = self._windows.get(key)
        if window is None or now - window[0] >= self.window_seconds:
            window = (now, 0)
            self._windows[key] = window
        return window

    def _state(self, started_at: float, count: int, now: float, *, exceeded: bool) -> RateLimitState:
        reset_after = max(0, math.ceil(started_at + self.window_seconds - now))
        return RateLimitState(
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_after_seconds=reset_after,
            window_seconds=self.window_seconds,
            exceeded=exceeded,
        )

    def hit(self, key: str) -> RateLimitState:
        """Consume one unit of quota; the returned state says whether it was over the limit."""
        now = self._clock()
        with self._lock:
            started_at, count = self._current(key, now)
            if count >= self.limit:
                return self._state(started_at, count, now, exceeded=True)
            count += 1
            self._windows[key] = (started_at, count)
            return self._state(started_at, count, now, exceeded=False)

    def peek(self, key: str) -> RateLimitState:
        now = self._clock()
        with self._lock:
            started_at, count = self._current(key, now)
            return self._state(started_at, count, now, exceeded=count >= self.limit)

    def ensure_allowed(self, key: str) -> RateLimitState:
        state = self.peek(key)
        if state.exceeded:
            raise RateLimited(self.message, headers=state.headers())
        return state

    def consume(self, key: str) -> RateLimitState:
        state = self.hit(key)
        if state.exceeded:
            raise RateLimited(self.message, headers=state.headers())
        return state

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._windows)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)


@dataclass(slots=True)
class RateLimiters:
    api: FixedWindowRateLimiter
    login: FixedWindowRateLimiter
    qr_scan: FixedWindowRateLimiter

    def reset(self) -> None:
        self.api.reset()
        self.login.reset()
        self.qr_scan.reset()


def build_rate_limiters(settings: Settings, *, clock: Callable[[], float] = time.monotonic) -> RateLimiters:
    return RateLimiters(
        api=FixedWindowRateLimiter(
            name="api",
            limit=settings.api_rate_limit_max,
            window_seconds=settings.api_rate_limit_window_seconds,
            message="Too many requests. Please try again later.",
            clock=clock,
        ),
        login=FixedWindowRateLimiter(
            name="login",
            limit=settings.login_rate_limit_max,
            window_seconds=settings.login_rate_limit_window_seconds,
            message=(
                "Too many login attempts. "
                f"Please try again in {max(1, settings.login_rate_limit_window_seconds // 60)} minutes."
            ),
            clock=clock,
        ),
        qr_scan=FixedWindowRateLimiter(
            name="qr_scan",
            limit=settings.qr_rate_limit_max,
            window_seconds=settings.qr_rate_limit_window_seconds,
            message="Too many QR scans. Please try again in a few minutes.",
            clock=clock,
        ),
    )
