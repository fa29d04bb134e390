import time
from dataclasses import dataclass
from typing import Callable, Dict, List

from fastapi import HTTPException


class RateLimiter:
    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window = float(window_seconds)
        self.clock = clock
        self.hits: Dict[str, List[float]] = {}
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        # Drops keys with no hit inside the window, at most once per window.
        if now - self._last_sweep < self.window:
            return
        self._last_sweep = now
        window_start = now - self.window
        stale = [key for key, entries in self.hits.items() if not entries or entries[-1] < window_start]
        for key in stale:
            del self.hits[key]

    def check(self, key: str) -> None:
        now = self.clock()
        self._sweep(now)
        window_start = now - self.window
        entries = self.hits.get(key, [])
        entries = [ts for ts in entries if ts >= window_start]

        if len(entries) >= self.limit:
            oldest_in_window = min(entries) if entries else now
            retry_after = int(max(1, oldest_in_window + self.window - now))
            raise HTTPException(
                status_code=429,
                detail={
                    "code": "RATE_LIMITED",
                    "message": "Too many requests, try again later.",
                    "retry_after_seconds": retry_after,
                },
            )

        entries.append(now)
        self.hits[key] = entries

    def clear(self, key: str) -> None:
        if key in self.hits:
            del self.hits[key]

    def reset(self) -> None:
        self.hits.clear()


@dataclass
class LockoutEntry:
    failures: int = 0
    locked_until: float | None = None
    last_failure_at: float = 0.0


class LoginLockout:
    """Counts consecutive failed logins per key and locks the key after `max_failures`.

    Failures idle for longer than the lock window are forgotten. State is
    process-local; a multi-instance deployment needs a shared TTL store.
    """

    def __init__(
        self,
        max_failures: int,
        lock_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_failures = max_failures
        self.lock_seconds = float(lock_seconds)
        self.clock = clock
        self.entries: Dict[str, LockoutEntry] = {}
        self._last_sweep = clock()

    def _is_stale(self, entry: LockoutEntry, now: float) -> bool:
        locked = entry.locked_until is not None and entry.locked_until > now
        return not locked and entry.last_failure_at <= now - self.lock_seconds

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.lock_seconds:
            return
        self._last_sweep = now
        stale = [key for key, entry in self.entries.items() if self._is_stale(entry, now)]
        for key in stale:
            del self.entries[key]

    def retry_after(self, key: str) -> int | None:
        now = self.clock()
        self._sweep(now)
        entry = self.entries.get(key)
        if not entry or entry.locked_until is None:
            return None
        remaining = entry.locked_until - now
        if remaining <= 0:
            del self.entries[key]
            return None
        return int(max(1, remaining))

    def check(self, key: str) -> None:
        retry_after = self.retry_after(key)
        if retry_after is not None:
            raise HTTPException(
                status_code=429,
                detail={
                    "code": "LOGIN_LOCKED",
                    "message": "Too many failed attempts, try again later.",
                    "retry_after_seconds": retry_after,
                },
            )

    def register_failure(self, key: str) -> bool:
        """Returns True when this failure locked the key."""
        now = self.clock()
        self._sweep(now)
        entry = self.entries.get(key)
        if entry is None or self._is_stale(entry, now):
            entry = self.entries[key] = LockoutEntry()
        entry.failures += 1
        entry.last_failure_at = now
        if entry.failures >= self.max_failures:
            entry.failures = 0
            entry.locked_until = now + self.lock_seconds
            return True
        return False

    def clear(self, key: str) -> None:
        self.entries.pop(key, None)

    def failures(self, key: str) -> int:
        entry = self.entries.get(key)
        return entry.failures if entry else 0

    def reset(self) -> None:
        self.entries.clear()

from career_quest.core.config import settings


login_rate_limiter = RateLimiter(
    limit=settings.quest_login_rate_limit,
    window_seconds=settings.quest_login_rate_window_seconds,
)
quest_rate_limiter = RateLimiter(
    limit=settings.quest_request_rate_limit,
    window_seconds=settings.quest_request_rate_window_seconds,
)
login_lockout = LoginLockout(
    max_failures=settings.quest_login_max_failures,
    lock_seconds=settings.quest_login_lock_seconds,
)
