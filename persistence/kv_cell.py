from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from .interfaces import KeyValueDocumentStore

logger = logging.getLogger(__name__)

Subscriber = Callable[[Any], None]
Sleep = Callable[[float], Awaitable[None]]

_MISSING = object()


class CellState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass(frozen=True)
class RetryPolicy:
    """`retries` extra attempts after the first, `delay` seconds apart."""

    retries: int = 3
    delay: float = 1.0

    @property
    def max_attempts(self) -> int:
        return 1 + max(0, self.retries)


class KVCache:
    """
    In-memory mirror of a remote key-value store with per-key subscribers.

    - read() never blocks: it returns the cached value, or the caller's default
      while a single background load runs for that key.
    - write() updates the cache and notifies subscribers before it schedules
      persistence, so local readers always see a write first.
    - Once populated, a key is only changed by local writes (no polling).

    Must be used from within a running event loop. Cache and subscriber
    mutation is guarded by a lock; callbacks run outside it.
    """

    def __init__(
        self,
        store: KeyValueDocumentStore,
        *,
        retry: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store
        self._retry = retry or RetryPolicy()
        self._sleep = sleep
        self._lock = threading.RLock()
        self._values: dict[str, Any] = {}
        self._subscribers: dict[str, set[Subscriber]] = {}
        self._loads: dict[str, asyncio.Task[Any]] = {}
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def store(self) -> KeyValueDocumentStore:
        return self._store

    def state(self, key: str) -> CellState:
        with self._lock:
            if key in self._values:
                return CellState.LOADED
            if key in self._loads:
                return CellState.LOADING
            return CellState.UNLOADED

    def peek(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    # -- subscribers -------------------------------------------------------------

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        """Register callback for key; returns a function that unregisters it."""
        with self._lock:
            self._subscribers.setdefault(key, set()).add(callback)

        def _unsubscribe() -> None:
            with self._lock:
                subs = self._subscribers.get(key)
                if subs is None:
                    return
                subs.discard(callback)
                if not subs:
                    self._subscribers.pop(key, None)

        return _unsubscribe

    def subscriber_count(self, key: str) -> int:
        with self._lock:
            return len(self._subscribers.get(key, ()))

    def _notify(self, key: str, value: Any) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(key, ()))
        for cb in callbacks:
            try:
                cb(value)
            except Exception:
                logger.exception("KV subscriber for %r raised", key)

    # -- reads -------------------------------------------------------------------

    def read(self, key: str, default: Any = None) -> Any:
        with self._lock:
            value = self._values.get(key, _MISSING)
        if value is not _MISSING:
            return value
        self.load(key)
        return default

    def load(self, key: str) -> asyncio.Task[Any] | None:
        """
        Start (or join) the background fetch for an unloaded key.

        Returns None when the key is already cached.
        """
        with self._lock:
            if key in self._values:
                return None
            task = self._loads.get(key)
            if task is None:
                task = asyncio.get_running_loop().create_task(self._fetch(key))
                self._loads[key] = task
            return task

    async def _fetch(self, key: str) -> Any:
        try:
            value = await self._store.get(key)
        except Exception:
            logger.exception("KV load %r failed", key)
            value = None
        finally:
            with self._lock:
                self._loads.pop(key, None)

        if value is None:
            # Stays unloaded; a later read() retries.
            return None

        with self._lock:
            if key in self._values:
                # A local write landed while loading; it wins.
                return self._values[key]
            self._values[key] = value
        self._notify(key, value)
        return value

    async def get(self, key: str, default: Any = None) -> Any:
        """Awaitable read: cached value, else the loaded value, else default."""
        task = self.load(key)
        if task is not None:
            await task
        return self.peek(key, default)

    # -- writes ------------------------------------------------------------------

    def write(self, key: str, value_or_updater: Any, *, default: Any = None) -> asyncio.Task[bool]:
        """
        Optimistically set key and persist in the background.

        A callable is applied to the last known value (cache, else `default`).
        The returned task resolves to True once the store acknowledged the
        write, or False after the retry policy is exhausted; the cached value
        is not rolled back either way.
        """
        with self._lock:
            if callable(value_or_updater):
                value = value_or_updater(self._values.get(key, default))
            else:
                value = value_or_updater
            self._values[key] = value
        self._notify(key, value)

        task = asyncio.get_running_loop().create_task(self._persist(key, value))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _persist(self, key: str, value: Any) -> bool:
        attempts = self._retry.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                if await self._store.set(key, value):
                    if attempt > 1:
                        logger.info("KV persist %r succeeded on attempt %d", key, attempt)
                    return True
            except Exception:
                logger.exception("KV persist %r raised (attempt %d/%d)", key, attempt, attempts)
            if attempt < attempts:
                await self._sleep(self._retry.delay)
        logger.error("KV persist %r failed after %d attempts; value kept in memory only", key, attempts)
        return False

    async def delete(self, key: str) -> bool:
        """Drop key from the cache and the store. Subscribers keep their last value."""
        with self._lock:
            self._values.pop(key, None)
        return await self._store.delete(key)

    async def drain(self) -> None:
        """Wait for in-flight persistence tasks."""
        pending = list(self._pending)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def bind(self, key: str, default: Any = None) -> "KVBinding":
        return KVBinding(self, key, default)


class KVBinding:
    """
    One consumer's view of a key: holds the current value, follows every
    update to the key, and writes through the shared cache.
    """

    def __init__(self, cache: KVCache, key: str, default: Any = None):
        self._cache = cache
        self.key = key
        self.default = default
        self.value = cache.read(key, default)
        self._unsubscribe: Callable[[], None] | None = cache.subscribe(key, self._on_update)

    def _on_update(self, value: Any) -> None:
        self.value = value

    def set(self, value_or_updater: Any) -> asyncio.Task[bool]:
        return self._cache.write(self.key, value_or_updater, default=self.value)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> "KVBinding":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
