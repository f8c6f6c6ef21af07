from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Tuple

from quickmail.auth.util import random_token


class FragmentStore:
    """
    One-time storage for rendered message bodies.

    A body is saved under an unguessable key and handed out exactly once; the
    page loads it through `/fragment?key=...`. Bodies nobody fetches expire after
    ttl_seconds, and at most max_entries are held (oldest evicted first).
    """

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_seconds: int = 600,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._lock = threading.Lock()
        self._fragments: Dict[str, Tuple[datetime, str]] = {}
        self._max_entries = max(1, max_entries)
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def _purge(self, now: datetime) -> None:
        # Insertion order is save order, so expired entries sit at the front.
        for key, (saved_at, _) in list(self._fragments.items()):
            if now - saved_at < self._ttl:
                break
            del self._fragments[key]

    def save(self, value: str) -> str:
        key = random_token(64)
        with self._lock:
            now = self._clock()
            self._purge(now)
            while len(self._fragments) >= self._max_entries:
                del self._fragments[next(iter(self._fragments))]
            self._fragments[key] = (now, value)
        return key

    def pop(self, key: str) -> str:
        """Return and forget the fragment for `key` ("" if unknown, expired or already read)."""
        with self._lock:
            entry = self._fragments.pop(key, None)
            if entry is None:
                return ""
            saved_at, value = entry
            if self._clock() - saved_at >= self._ttl:
                return ""
            return value

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._fragments)


# Global fragment store instance
_global_store: FragmentStore | None = None


def get_fragment_store() -> FragmentStore:
    global _global_store
    if _global_store is None:
        _global_store = FragmentStore()
    return _global_store
