"""
Bounded in-memory TTL store.

Keys are spread over a fixed number of shards, each with its own lock, so
concurrent requests for different clients rarely contend. Every entry has an
expiry; a sweep of expired entries runs at most once per ``sweep_interval``
on each shard. When a shard is full the entry closest to expiry is evicted.

Used for per-IP request pacing and for caching judge results. Data is lost
on process restart.
"""

import threading
import time
import zlib
from typing import Any, Dict, Optional, Tuple


class _Shard:
    def __init__(self, now: float):
        self.lock = threading.Lock()
        self.data: Dict[str, Tuple[Any, float]] = {}
        self.last_sweep = now


class TTLStore:
    """
    Thread-safe key/value store with per-entry TTL and a size bound.

    Args:
        default_ttl: seconds an entry lives when set() gets no ttl
        max_entries: upper bound on live entries across all shards
        shards: number of independently locked partitions
        sweep_interval: minimum seconds between expiry sweeps of a shard
    """

    def __init__(self, default_ttl: float = 600, max_entries: int = 10000,
                 shards: int = 16, sweep_interval: float = 60, clock=time.monotonic):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self.default_ttl = default_ttl
        self.max_per_shard = max(1, max_entries // shards)
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._shards = [_Shard(clock()) for _ in range(shards)]

    def _shard(self, key: str) -> _Shard:
        return self._shards[zlib.crc32(key.encode("utf-8")) % len(self._shards)]

    def get(self, key: str) -> Optional[Any]:
        """Return the value for key, or None if missing or expired."""
        shard = self._shard(key)
        now = self._clock()
        with shard.lock:
            self._maybe_sweep(shard, now)
            entry = shard.data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if now >= expires_at:
                del shard.data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        shard = self._shard(key)
        now = self._clock()
        expires_at = now + (self.default_ttl if ttl is None else ttl)
        with shard.lock:
            self._maybe_sweep(shard, now)
            if key not in shard.data and len(shard.data) >= self.max_per_shard:
                self._sweep(shard, now)
                if len(shard.data) >= self.max_per_shard:
                    oldest = min(shard.data, key=lambda k: shard.data[k][1])
                    del shard.data[oldest]
            shard.data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        shard = self._shard(key)
        with shard.lock:
            shard.data.pop(key, None)

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.data.clear()

    def __len__(self):
        now = self._clock()
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += sum(1 for _, expires_at in shard.data.values() if expires_at > now)
        return total

    def _maybe_sweep(self, shard: _Shard, now: float) -> None:
        if now - shard.last_sweep >= self.sweep_interval:
            self._sweep(shard, now)

    @staticmethod
    def _sweep(shard: _Shard, now: float) -> None:
        shard.last_sweep = now
        expired = [k for k, (_, expires_at) in shard.data.items() if expires_at <= now]
        for key in expired:
            del shard.data[key]

    def get_stats(self) -> dict:
        """Entry counts for monitoring."""
        now = self._clock()
        total = expired = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.data)
                expired += sum(1 for _, expires_at in shard.data.values() if expires_at <= now)
        return {"total_keys": total, "expired_keys": expired, "active_keys": total - expired}
