# fantasy_link/services/ttl_store.py
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLStore:
    """
    In-process keyed store with per-entry expiry and consume-once reads.

    Holds short-lived OAuth artifacts (authorization states, pending codes) that
    must never reach the persistent user store.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time):
        # value = (expires_at_epoch, data)
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        now = self._clock()
        with self._lock:
            self._purge(now)
            self._entries[key] = (now + ttl_seconds, value)

    def take_once(self, key: str) -> Optional[Any]:
        """Remove and return the value; None if absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            return None
        exp_at, data = entry
        if exp_at <= now:
            return None
        return data

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge(self._clock())

    def _purge(self, now: float) -> int:
        expired = [k for k, (exp_at, _) in self._entries.items() if exp_at <= now]
        for k in expired:
            self._entries.pop(k, None)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
