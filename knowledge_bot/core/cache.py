from __future__ import annotations

import time
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """
    In-memory cache whose entries expire ``ttl_seconds`` after they were stored.

    Entries remember their insertion time so callers can report cache age.
    Uses ``time.monotonic()`` for steady time measurement.
    """

    def __init__(self, ttl_seconds: float) -> None:
        self._ttl = float(ttl_seconds)
        self._store: Dict[K, Tuple[float, V]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get_with_age(self, key: K) -> Optional[Tuple[V, float]]:
        """Return ``(value, age_seconds)`` for a live entry, dropping it when expired."""
        item = self._store.get(key)
        if item is None:
            return None
        stored_at, value = item
        age = time.monotonic() - stored_at
        if age >= self._ttl:
            self._store.pop(key, None)
            return None
        return value, age

    def get(self, key: K) -> Optional[V]:
        hit = self.get_with_age(key)
        return hit[0] if hit else None

    def set(self, key: K, value: V) -> None:
        now = time.monotonic()
        self._prune(now)
        self._store[key] = (now, value)

    def _prune(self, now: float) -> None:
        expired = [k for k, (stored_at, _) in self._store.items() if now - stored_at >= self._ttl]
        for k in expired:
            del self._store[k]

    def delete(self, key: K) -> bool:
        return self._store.pop(key, None) is not None

    def clear(self) -> None:
        self._store.clear()

    def ages(self) -> List[Tuple[K, float, bool]]:
        """Snapshot of ``(key, age_seconds, still_valid)`` for every stored entry."""
        now = time.monotonic()
        return [(k, now - stored_at, (now - stored_at) < self._ttl) for k, (stored_at, _) in self._store.items()]

    def __len__(self) -> int:
        return len(self._store)
