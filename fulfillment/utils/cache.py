import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    inserted_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


class TTLCache:
    """
    Process-local key -> (value, inserted_at, ttl) store.

    Expired entries are dropped lazily on read and eagerly by ``sweep``.
    Not shared between processes: each instance only sees its own writes.
    """

    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.RLock()
        self._clock = clock
        self.default_ttl = default_ttl
        self._sweeper: Optional[threading.Timer] = None
        self._sweep_interval: Optional[float] = None
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.expired(self._clock())

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(
                value=value,
                inserted_at=self._clock(),
                ttl=self.default_ttl if ttl is None else ttl,
            )

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every key matching ``predicate``; returns how many went."""
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} expired entries")
        return len(expired)

    def keys(self):
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "keys": [repr(k) for k in self._entries],
            }

    # -------------------------
    # periodic sweep
    # -------------------------

    def start_sweeper(self, interval: float) -> None:
        self.stop_sweeper()
        self._sweep_interval = interval
        self._schedule()

    def _schedule(self) -> None:
        timer = threading.Timer(self._sweep_interval, self._run_sweeper)
        timer.daemon = True
        self._sweeper = timer
        timer.start()

    def _run_sweeper(self) -> None:
        try:
            self.sweep()
        except Exception:
            logger.exception("Cache sweep failed")
        with self._lock:
            if self._sweep_interval is not None:
                self._schedule()

    def stop_sweeper(self) -> None:
        with self._lock:
            self._sweep_interval = None
            if self._sweeper is not None:
                self._sweeper.cancel()
                self._sweeper = None
