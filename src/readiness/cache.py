"""TTL cache for whitelists with pluggable async loaders.

At most one load per key is in flight at any time: concurrent callers of
``get_or_load`` for the same missing key await the same task. Waiters are
shielded, so cancelling one caller does not cancel the shared load.

Expired entries are treated as absent by ``get``/``has`` but stay in the
store until ``clear_expired`` purges them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

import readiness.errors as errors

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Iterable[str]]]

DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass
class CacheEntry:
    key: str
    data: frozenset[str]
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl

    def remaining(self, now: float) -> float:
        return max(0.0, self.created_at + self.ttl - now)


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    valid_entries: int
    expired_entries: int
    registered_loaders: int
    pending_loads: int


class WhitelistCache:
    """Named sets of allowed values with TTL expiry and loader de-duplication.

    Args:
        default_ttl: TTL in seconds for entries stored without an explicit TTL.
        load_timeout: Upper bound in seconds for a single loader call.
            None waits indefinitely.
        clock: Returns the current time in seconds. Injectable for tests.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        load_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_ttl = default_ttl
        self.load_timeout = load_timeout
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._loaders: dict[str, Loader] = {}
        self._inflight: dict[str, asyncio.Task[frozenset[str]]] = {}

    # ------------------------------------------------------------------
    # Synchronous store
    # ------------------------------------------------------------------

    def set(self, key: str, values: Iterable[str], ttl: float | None = None) -> frozenset[str]:
        data = frozenset(values)
        self._entries[key] = CacheEntry(
            key=key,
            data=data,
            created_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        return data

    def get(self, key: str) -> frozenset[str] | None:
        """Return the cached set, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry.data

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def remove(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def clear_expired(self) -> int:
        """Purge expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Purged %d expired whitelist(s)", len(expired))
        return len(expired)

    def contains(self, key: str, value: str) -> bool | None:
        """Membership test. None when the whitelist itself is not cached."""
        data = self.get(key)
        if data is None:
            return None
        return value in data

    def remaining_ttl(self, key: str) -> float:
        """Seconds until the entry expires. 0 if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return 0.0
        return entry.remaining(self._clock())

    def keys(self) -> list[str]:
        return list(self._entries)

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    def register_loader(self, key: str, loader: Loader) -> None:
        self._loaders[key] = loader

    def has_loader(self, key: str) -> bool:
        return key in self._loaders

    @property
    def loader_keys(self) -> list[str]:
        return list(self._loaders)

    async def get_or_load(self, key: str) -> frozenset[str]:
        """Return the cached set, loading it at most once if missing.

        Raises:
            LoaderNotRegisteredError: Nothing cached and no loader registered.
            WhitelistLoadError: The loader failed or timed out.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("Whitelist cache hit: %s", key)
            return cached

        task = self._inflight.get(key)
        if task is None:
            loader = self._loaders.get(key)
            if loader is None:
                raise errors.LoaderNotRegisteredError(key)
            task = asyncio.ensure_future(self._load(key, loader))
            self._inflight[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            logger.debug("Joining in-flight load for whitelist: %s", key)

        return await asyncio.shield(task)

    async def refresh(self, key: str) -> frozenset[str]:
        """Drop the cached entry and reload it."""
        self.remove(key)
        return await self.get_or_load(key)

    def cancel_loads(self) -> int:
        """Cancel every in-flight load. Returns the number cancelled."""
        pending = [task for task in self._inflight.values() if not task.done()]
        for task in pending:
            task.cancel()
        return len(pending)

    async def _load(self, key: str, loader: Loader) -> frozenset[str]:
        logger.debug("Loading whitelist: %s", key)
        started = self._clock()
        try:
            if self.load_timeout is None:
                values = await loader()
            else:
                values = await asyncio.wait_for(loader(), timeout=self.load_timeout)
        except asyncio.TimeoutError as exc:
            raise errors.WhitelistLoadError(
                key, f"Loader did not complete within {self.load_timeout:g}s"
            ) from exc
        except errors.ReadinessError:
            raise
        except Exception as exc:
            raise errors.WhitelistLoadError(key, f"Loader failed: {exc}") from exc

        data = self.set(key, values)
        logger.debug("Loaded whitelist %s (%d values) in %.3fs", key, len(data), self._clock() - started)
        return data

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception as retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    # ------------------------------------------------------------------
    # Introspection and snapshot
    # ------------------------------------------------------------------

    def get_stats(self) -> CacheStats:
        now = self._clock()
        expired = sum(1 for entry in self._entries.values() if entry.is_expired(now))
        return CacheStats(
            total_entries=len(self._entries),
            valid_entries=len(self._entries) - expired,
            expired_entries=expired,
            registered_loaders=len(self._loaders),
            pending_loads=len(self._inflight),
        )

    def to_dict(self) -> dict[str, dict]:
        """In-memory snapshot: sorted values plus timestamp and TTL per key."""
        return {
            key: {"data": sorted(entry.data), "timestamp": entry.created_at, "ttl": entry.ttl}
            for key, entry in self._entries.items()
        }

    def restore(self, snapshot: dict[str, dict]) -> None:
        """Load entries from ``to_dict`` output, keeping timestamps and TTLs."""
        for key, entry in snapshot.items():
            self._entries[key] = CacheEntry(
                key=key,
                data=frozenset(entry["data"]),
                created_at=entry["timestamp"],
                ttl=entry["ttl"],
            )
