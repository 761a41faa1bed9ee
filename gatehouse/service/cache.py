from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """Thread-safe key/value cache whose entries expire a fixed time after insertion.

    There is no size bound; memory is bounded by the distinct keys written
    within one TTL window. Expired entries behave exactly like missing ones
    and are dropped when read or on ``purge_expired``.
    """

    def __init__(
        self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be zero or positive")
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[K, Tuple[V, float]] = {}
        self._lock = threading.Lock()

    def put(self, key: K, value: V) -> None:
        expires_at = self._clock() + self.ttl_seconds
        with self._lock:
            self._entries[key] = (value, expires_at)

    def get(self, key: K) -> Optional[V]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= now:
                del self._entries[key]
                return None
            return value

    def remove(self, key: K) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def remove_where(self, predicate: Callable[[V], bool]) -> int:
        """Drop every entry whose value satisfies ``predicate``; return the count."""
        with self._lock:
            doomed = [k for k, (value, _) in self._entries.items() if predicate(value)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
