from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger("inventory.client")

TOKEN_CACHE_SECONDS = 1.0


class SessionTokenStorage:
    """Holds the session token either for the process lifetime or on disk.

    ``remember=True`` writes the token to ``path`` so a later process picks it
    up; otherwise it only lives in memory and any previously remembered token
    is removed.
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else None
        self._memory_token: str | None = None

    def save(self, token: str, *, remember: bool = False) -> None:
        if remember and self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps({"session_id": token}), encoding="utf-8")
            self._memory_token = None
            return
        self._memory_token = token
        self._remove_file()

    def load(self) -> str | None:
        if self._memory_token:
            return self._memory_token
        if self.path is None or not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("session_token_file_unreadable", extra={"path": str(self.path)})
            return None
        token = payload.get("session_id") if isinstance(payload, dict) else None
        return str(token) if token else None

    def clear(self) -> None:
        self._memory_token = None
        self._remove_file()

    def _remove_file(self) -> None:
        if self.path is not None:
            self.path.unlink(missing_ok=True)


class SessionContext:
    """Token source for one client instance.

    Reads from storage are reused for ``cache_seconds`` so a burst of requests
    does not hit the disk for every call.
    """

    def __init__(
        self,
        storage: SessionTokenStorage | None = None,
        *,
        cache_seconds: float = TOKEN_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.storage = storage or SessionTokenStorage()
        self.cache_seconds = cache_seconds
        self._clock = clock
        self._cached_token: str | None = None
        self._read_at: float | None = None

    def token(self) -> str | None:
        now = self._clock()
        if self._read_at is not None and now - self._read_at < self.cache_seconds:
            return self._cached_token
        self._cached_token = self.storage.load()
        self._read_at = now
        return self._cached_token

    def login(self, token: str, *, remember: bool = False) -> None:
        self.storage.save(token, remember=remember)
        self.invalidate()

    def logout(self) -> None:
        self.storage.clear()
        self.invalidate()

    def invalidate(self) -> None:
        self._cached_token = None
        self._read_at = None
