"""Version-validated bundle cache with single-flight computation.

Purpose
-------
Avoid repeated parse/merge work for requests whose backing documents did not
change, and collapse concurrent misses for the same key into one backend
fetch.

Contents
    - ``BundleCache``: the cache; ``get_or_compute`` is its only hot path.

System Role
-----------
Owned by :class:`layered_config_server.core.ConfigService`. A cached bundle is
served only while a fresh probe of the backend reports the version the entry
was stored under. Failures are handed to every waiter and never stored.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from typing import Callable

from ..domain.model import CacheEntry, RequestKey, ResolvedBundle
from ..observability import log_debug

VersionProbe = Callable[[], str]
Compute = Callable[[], ResolvedBundle]


class BundleCache:
    """Memorise bundles keyed by ``(application, profile, label)``.

    Parameters
    ----------
    max_entries:
        Optional least-recently-used bound; ``0`` keeps every key.
    probe_interval:
        Seconds during which a validated entry is served without probing the
        backend again; ``0`` probes on every request.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        *,
        max_entries: int = 0,
        probe_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max_entries
        self._probe_interval = probe_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[RequestKey, CacheEntry] = OrderedDict()
        self._inflight: dict[RequestKey, Future[ResolvedBundle]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def entry(self, key: RequestKey) -> CacheEntry | None:
        """Return the stored entry for *key* without validating it."""

        with self._lock:
            return self._entries.get(key)

    def invalidate(self, key: RequestKey | None = None) -> None:
        """Drop *key*, or every entry when *key* is ``None``."""

        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def get_or_compute(self, key: RequestKey, probe: VersionProbe, compute: Compute) -> ResolvedBundle:
        """Return the bundle for *key*, computing it at most once concurrently.

        Why
        ----
        Many workers may ask for the same key at once; only one of them should
        reach the backend while the rest wait on its result.

        What
        ----
        1. Serve a recently validated entry without probing (``probe_interval``).
        2. Probe the backend version; serve the entry when versions match.
        3. Otherwise attach to an in-flight computation for *key*, or start one.

        Raises
        ------
        Whatever *probe* or *compute* raises; waiters attached to a failed
        computation receive the same exception instance.
        """

        fresh = self._recently_validated(key)
        if fresh is not None:
            return fresh

        version = probe()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.backend_version == version:
                self._touch(key, entry)
                log_debug("cache_hit", key=list(key), version=version)
                return entry.bundle
            future = self._inflight.get(key)
            leader = future is None
            if future is None:
                future = Future()
                self._inflight[key] = future

        if not leader:
            log_debug("cache_wait", key=list(key), version=version)
            return future.result()

        log_debug("cache_miss", key=list(key), version=version)
        try:
            bundle = compute()
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(exc)
            raise
        with self._lock:
            self._store(key, bundle, version)
            self._inflight.pop(key, None)
        future.set_result(bundle)
        return bundle

    def _recently_validated(self, key: RequestKey) -> ResolvedBundle | None:
        if self._probe_interval <= 0:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() - entry.probed_at >= self._probe_interval:
                return None
            self._entries.move_to_end(key)
            return entry.bundle

    def _touch(self, key: RequestKey, entry: CacheEntry) -> None:
        """Refresh the validation time and LRU position of *entry* (lock held)."""

        self._entries[key] = CacheEntry(
            key=key,
            bundle=entry.bundle,
            backend_version=entry.backend_version,
            created_at=entry.created_at,
            probed_at=self._clock(),
        )
        self._entries.move_to_end(key)

    def _store(self, key: RequestKey, bundle: ResolvedBundle, version: str) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(key=key, bundle=bundle, backend_version=version, created_at=now, probed_at=now)
        self._entries.move_to_end(key)
        while self._max_entries and len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            log_debug("cache_evicted", key=list(evicted))


__all__ = ["BundleCache", "VersionProbe", "Compute"]
