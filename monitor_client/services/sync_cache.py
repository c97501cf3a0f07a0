from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from monitor_client.errors import ClientError
from monitor_client.schemas.common import utc_now

logger = logging.getLogger(__name__)


class CacheStatus(str, Enum):
    """Lifecycle of one cache entry."""

    idle = "idle"
    loading = "loading"
    ready = "ready"
    stale = "stale"
    error = "error"


@dataclass(frozen=True)
class CacheKey:
    """Logical key: an entity kind, optionally parameterized."""

    name: str
    params: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def of(cls, name: str, **params: Any) -> "CacheKey":
        return cls(name, tuple(sorted(params.items())))

    def __str__(self) -> str:
        if not self.params:
            return self.name
        args = ",".join(f"{k}={v}" for k, v in self.params)
        return f"{self.name}({args})"


SERVICES = CacheKey("services")
ALERTS = CacheKey("alerts")
USERS = CacheKey("users")
SETTINGS = CacheKey("settings")


@dataclass(frozen=True)
class CacheSnapshot:
    """What a subscriber sees for a key at one point in time."""

    key: CacheKey
    status: CacheStatus
    data: Any = None
    last_fetched_at: Optional[datetime] = None
    error: Optional[BaseException] = None
    generation: int = 0

    @property
    def has_data(self) -> bool:
        return self.data is not None

    @property
    def is_stale(self) -> bool:
        """True when visible data is known to be out of date (invalidated, or the last refresh failed)."""
        return self.has_data and self.status in (CacheStatus.stale, CacheStatus.error)


Fetcher = Callable[..., Awaitable[Any]]
Listener = Callable[[CacheSnapshot], None]


@dataclass(frozen=True)
class _KeyPolicy:
    fetcher: Fetcher
    poll_interval: Optional[float] = None


@dataclass
class _Entry:
    key: CacheKey
    status: CacheStatus = CacheStatus.idle
    data: Any = None
    last_fetched_at: Optional[datetime] = None
    error: Optional[BaseException] = None

    # Bumped whenever a fetch starts; responses from older generations are dropped.
    generation: int = 0
    task: Optional[asyncio.Task] = None
    refetch_pending: bool = False

    subscribers: int = 0
    listeners: List[Listener] = field(default_factory=list)
    poll_task: Optional[asyncio.Task] = None
    poll_stop: Optional[asyncio.Event] = None


class Subscription:
    """Handle returned by SyncCache.subscribe(); unsubscribing is idempotent."""

    def __init__(self, cache: "SyncCache", key: CacheKey, listener: Optional[Listener]):
        self._cache = cache
        self._key = key
        self._listener = listener
        self._active = True

    @property
    def key(self) -> CacheKey:
        return self._key

    @property
    def active(self) -> bool:
        return self._active

    def snapshot(self) -> CacheSnapshot:
        return self._cache.get(self._key)

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._cache._release(self._key, self._listener)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.unsubscribe()


class SyncCache:
    """
    Keyed store of server-owned collections with per-key freshness policy.

    - On-demand keys are fetched on first subscription and again only when invalidated.
    - Polled keys are additionally re-fetched every poll_interval seconds while
      at least one subscriber holds them.
    - At most one fetch runs per key. Invalidation during a fetch is coalesced into
      exactly one follow-up fetch; a forced fetch supersedes the running one and the
      superseded response is discarded by generation check.
    - A failed fetch keeps the previous data visible and moves the entry to 'error'.

    Must be used from within a running event loop.
    """

    def __init__(self) -> None:
        self._policies: Dict[str, _KeyPolicy] = {}
        self._entries: Dict[CacheKey, _Entry] = {}
        self._closed = False

    # PUBLIC_INTERFACE
    def register(self, name: str, fetcher: Fetcher, poll_interval: Optional[float] = None) -> None:
        """Register the fetcher (called with the key's params as kwargs) and freshness policy for a kind."""
        if poll_interval is not None and poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._policies[name] = _KeyPolicy(fetcher=fetcher, poll_interval=poll_interval)

    def _policy(self, key: CacheKey) -> _KeyPolicy:
        try:
            return self._policies[key.name]
        except KeyError:
            raise KeyError(f"no fetcher registered for cache key '{key.name}'") from None

    def _entry(self, key: CacheKey) -> _Entry:
        entry = self._entries.get(key)
        if entry is None:
            self._policy(key)
            entry = _Entry(key=key)
            self._entries[key] = entry
        return entry

    @staticmethod
    def _snapshot(entry: _Entry) -> CacheSnapshot:
        return CacheSnapshot(
            key=entry.key,
            status=entry.status,
            data=entry.data,
            last_fetched_at=entry.last_fetched_at,
            error=entry.error,
            generation=entry.generation,
        )

    def _notify(self, entry: _Entry) -> None:
        snap = self._snapshot(entry)
        for listener in list(entry.listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("Cache listener failed for key=%s", entry.key)

    def _set_status(self, entry: _Entry, status: CacheStatus) -> None:
        entry.status = status
        self._notify(entry)

    # PUBLIC_INTERFACE
    def get(self, key: CacheKey) -> CacheSnapshot:
        """Current snapshot for a key (idle and empty if never fetched)."""
        entry = self._entries.get(key)
        if entry is None:
            self._policy(key)
            return CacheSnapshot(key=key, status=CacheStatus.idle)
        return self._snapshot(entry)

    # PUBLIC_INTERFACE
    def subscribe(self, key: CacheKey, listener: Optional[Listener] = None) -> Subscription:
        """
        Start watching a key.

        The listener (if any) receives the current snapshot immediately and then every
        state transition. The first subscriber triggers a fetch unless data is ready or
        loading, and starts the poller for polled kinds.
        """
        if self._closed:
            raise RuntimeError("cache is closed")
        entry = self._entry(key)
        policy = self._policy(key)

        entry.subscribers += 1
        if listener is not None:
            entry.listeners.append(listener)
            try:
                listener(self._snapshot(entry))
            except Exception:
                logger.exception("Cache listener failed for key=%s", key)

        if entry.subscribers == 1 and policy.poll_interval is not None:
            self._start_poller(entry, policy.poll_interval)

        if entry.task is None and entry.status not in (CacheStatus.ready, CacheStatus.loading):
            self._start_fetch(entry)

        return Subscription(self, key, listener)

    def _release(self, key: CacheKey, listener: Optional[Listener]) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        if listener is not None and listener in entry.listeners:
            entry.listeners.remove(listener)
        entry.subscribers = max(0, entry.subscribers - 1)
        if entry.subscribers == 0:
            # In-flight fetches are left to finish; their result is still cached.
            self._stop_poller(entry)

    # PUBLIC_INTERFACE
    def subscriber_count(self, key: CacheKey) -> int:
        entry = self._entries.get(key)
        return entry.subscribers if entry else 0

    # PUBLIC_INTERFACE
    def invalidate(self, key: CacheKey) -> None:
        """Mark a key stale; re-fetch now if it is subscribed (coalesced with any running fetch)."""
        entry = self._entries.get(key)
        if entry is None:
            return

        if entry.task is not None:
            entry.refetch_pending = True
            return

        if entry.status != CacheStatus.idle:
            self._set_status(entry, CacheStatus.stale)
        if entry.subscribers > 0:
            self._start_fetch(entry)

    # PUBLIC_INTERFACE
    def invalidate_kind(self, name: str) -> None:
        """Invalidate every key of a kind, whatever its params."""
        for key in [k for k in self._entries if k.name == name]:
            self.invalidate(key)

    # PUBLIC_INTERFACE
    def patch(self, key: CacheKey, update: Callable[[Any], Any]) -> bool:
        """
        Replace cached data with update(data) without a round trip.

        Only applies to a settled entry that holds data; if a fetch is running the key
        is invalidated instead (the running fetch may predate the change). A 'stale' or
        'error' status is kept: only the patched entity is confirmed, so the next
        subscriber still re-fetches. Returns True when the patch was applied.
        """
        entry = self._entries.get(key)
        if entry is None or entry.data is None:
            return False
        if entry.task is not None:
            self.invalidate(key)
            return False
        entry.data = update(entry.data)
        self._notify(entry)
        return True

    # PUBLIC_INTERFACE
    async def fetch(self, key: CacheKey, force: bool = False) -> CacheSnapshot:
        """
        Fetch a key now (no subscription needed) and return the settled snapshot.

        Joins a running fetch unless force=True, in which case a new generation
        supersedes it.
        """
        if self._closed:
            raise RuntimeError("cache is closed")
        entry = self._entry(key)
        if entry.task is None or force:
            self._start_fetch(entry)
        await self.wait_until_settled(key)
        return self._snapshot(entry)

    # PUBLIC_INTERFACE
    async def wait_until_settled(self, key: CacheKey) -> None:
        """Wait until no fetch (including coalesced follow-ups) is running for a key."""
        entry = self._entries.get(key)
        while entry is not None and entry.task is not None:
            await asyncio.wait({entry.task})

    def _start_fetch(self, entry: _Entry) -> asyncio.Task:
        entry.generation += 1
        entry.refetch_pending = False
        self._set_status(entry, CacheStatus.loading)
        task = asyncio.create_task(self._fetch_loop(entry, entry.generation), name=f"cache-fetch:{entry.key}")
        entry.task = task
        return task

    async def _fetch_loop(self, entry: _Entry, generation: int) -> None:
        try:
            while True:
                await self._fetch_once(entry, generation)
                if entry.generation != generation or not entry.refetch_pending:
                    return
                entry.refetch_pending = False
                if entry.subscribers == 0:
                    # Nobody is watching; the next subscriber re-fetches.
                    self._set_status(entry, CacheStatus.stale)
                    return
                entry.generation += 1
                generation = entry.generation
                self._set_status(entry, CacheStatus.loading)
        finally:
            if entry.task is asyncio.current_task():
                entry.task = None

    async def _fetch_once(self, entry: _Entry, generation: int) -> None:
        policy = self._policy(entry.key)
        try:
            data = await policy.fetcher(**dict(entry.key.params))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if entry.generation != generation:
                logger.debug("Dropping failed fetch for key=%s from superseded generation %s", entry.key, generation)
                return
            if isinstance(exc, ClientError):
                logger.warning(
                    "Fetch failed for key=%s (keeping %s data): %s",
                    entry.key,
                    "previous" if entry.data is not None else "no",
                    exc,
                )
            else:
                logger.exception("Unexpected error fetching key=%s", entry.key)
            entry.error = exc
            self._set_status(entry, CacheStatus.error)
            return

        if entry.generation != generation:
            logger.debug("Dropping response for key=%s from superseded generation %s", entry.key, generation)
            return

        entry.data = data
        entry.error = None
        entry.last_fetched_at = utc_now()
        self._set_status(entry, CacheStatus.ready)

    def _start_poller(self, entry: _Entry, interval: float) -> None:
        self._stop_poller(entry)
        stop = asyncio.Event()
        entry.poll_stop = stop
        entry.poll_task = asyncio.create_task(self._poll_loop(entry, interval, stop), name=f"cache-poll:{entry.key}")

    def _stop_poller(self, entry: _Entry) -> None:
        if entry.poll_stop is not None:
            entry.poll_stop.set()
        entry.poll_stop = None
        entry.poll_task = None

    async def _poll_loop(self, entry: _Entry, interval: float, stop: asyncio.Event) -> None:
        logger.info("Poller started for key=%s (interval=%ss)", entry.key, interval)
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break
            # A tick that lands on a running fetch is skipped rather than queued.
            if entry.task is None:
                self._start_fetch(entry)
        logger.info("Poller stopped for key=%s", entry.key)

    # PUBLIC_INTERFACE
    async def close(self) -> None:
        """Tear down: stop pollers, cancel in-flight fetches, drop listeners."""
        self._closed = True
        tasks: List[asyncio.Task] = []
        for entry in self._entries.values():
            if entry.poll_task is not None:
                tasks.append(entry.poll_task)
            self._stop_poller(entry)
            if entry.task is not None:
                entry.task.cancel()
                tasks.append(entry.task)
            entry.listeners.clear()
            entry.subscribers = 0
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
