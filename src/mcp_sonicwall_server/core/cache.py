"""Short-lived in-memory result cache keyed by query shape."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL = 300.0
SWEEP_INTERVAL = 60.0

# Per-operation TTLs in seconds.
TTL_THREATS = 60.0
TTL_LOGS = 120.0
TTL_STATS = 300.0


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


def make_cache_key(operation: str, params: Mapping[str, Any] | None = None) -> str:
    """Operation name plus a deterministic serialization of its parameters."""
    payload = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
    return f"{operation}:{payload}"


class ResultCache:
    """TTL cache with lazy eviction on read and a periodic background sweep."""

    def __init__(
        self,
        *,
        default_ttl: float = DEFAULT_TTL,
        sweep_interval: float = SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be > 0")
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be > 0")
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._hits = 0
        self._misses = 0
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default
        if self._clock() >= entry.expires_at:
            # Only evict what we looked at; a concurrent set may have replaced it.
            if self._entries.get(key) is entry:
                del self._entries[key]
            self._misses += 1
            return default
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Drop expired entries; return how many were removed."""
        now = self._clock()
        expired = [(k, e) for k, e in list(self._entries.items()) if now >= e.expires_at]
        removed = 0
        for key, entry in expired:
            if self._entries.get(key) is entry:
                del self._entries[key]
                removed += 1
        if removed:
            logger.debug("Cache sweep removed %d expired entries", removed)
        return removed

    def stats(self) -> dict[str, int]:
        return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop (idempotent)."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        task = self._sweeper
        self._sweeper = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
