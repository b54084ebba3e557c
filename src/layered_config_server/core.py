"""Composition root for ``layered_config_server``.

Purpose
-------
Wire a source backend, the resolver, the merge engine, and the cache into the
single service object the HTTP frontend and the CLI talk to.

Contents
--------
* :class:`ConfigService` – ``resolve`` a request into a bundle, report health.
* :func:`build_backend` – select the backend variant from settings.
* :func:`build_service` – construct a fully wired service from settings.

System Role
-----------
Data flow per request: cache probe -> (miss) backend fetch -> resolver ->
merge -> cache store. Backend I/O runs on a small thread pool so a stalled
store surfaces as :class:`SourceUnavailable` after ``fetch_timeout`` instead of
hanging the request.
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import Callable, Mapping, TypeVar

from .adapters.backends.git import GitBackend
from .adapters.backends.native import FilesystemBackend
from .application.cache import BundleCache
from .application.merge import merge
from .application.ports import SourceBackend
from .application.resolver import resolve
from .domain.errors import DocumentNotFound, SourceUnavailable
from .domain.model import ConfigRequest, ResolvedBundle
from .observability import log_debug, log_error, log_info, make_event
from .settings import ServerSettings

T = TypeVar("T")

STATUS_UP = "UP"
STATUS_DOWN = "DOWN"


class ConfigService:
    """Resolve configuration requests against one source backend.

    Parameters
    ----------
    backend:
        Any :class:`~layered_config_server.application.ports.SourceBackend`.
    cache:
        Bundle cache; a fresh unbounded cache when omitted.
    environ:
        Placeholder lookup; :data:`os.environ` when omitted.
    fetch_timeout:
        Seconds allowed for one probe or fetch.
    io_workers:
        Size of the backend I/O pool.
    """

    def __init__(
        self,
        backend: SourceBackend,
        *,
        cache: BundleCache | None = None,
        environ: Mapping[str, str] | None = None,
        fetch_timeout: float = 10.0,
        io_workers: int = 8,
    ) -> None:
        self.backend = backend
        self.cache = cache if cache is not None else BundleCache()
        self._environ = os.environ if environ is None else environ
        self.fetch_timeout = fetch_timeout
        self._pool = ThreadPoolExecutor(max_workers=io_workers, thread_name_prefix="config-io")

    def resolve(self, request: ConfigRequest) -> ResolvedBundle:
        """Return the bundle for *request*, served from cache when still current.

        Raises
        ------
        SourceUnavailable
            The store is unreachable or exceeded ``fetch_timeout``.
        DocumentNotFound
            No document applies to the application and profiles.
        MalformedDocument / PlaceholderResolutionError
            A document cannot be parsed or a placeholder cannot be resolved.

        Examples
        --------
        >>> from tempfile import TemporaryDirectory
        >>> tmp = TemporaryDirectory()
        >>> _ = (Path(tmp.name) / "application.yml").write_text("x: 1", encoding="utf-8")
        >>> _ = (Path(tmp.name) / "billing-dev.yml").write_text("x: 2", encoding="utf-8")
        >>> service = ConfigService(FilesystemBackend(tmp.name), environ={})
        >>> service.resolve(ConfigRequest("billing", "dev")).properties["x"]
        2
        >>> service.resolve(ConfigRequest("billing", "prod")).properties["x"]
        1
        >>> service.close()
        >>> tmp.cleanup()
        """

        application, label = request.application, request.label
        return self.cache.get_or_compute(
            request.key,
            lambda: self._bounded("probe", lambda: self.backend.probe(application, label)),
            lambda: self._compute(request),
        )

    def health(self) -> str:
        """Return ``"UP"`` when the backend is reachable, otherwise ``"DOWN"``."""

        try:
            reachable = self._bounded("check", self.backend.check)
        except SourceUnavailable as exc:
            log_error("health_check_failed", error=str(exc))
            return STATUS_DOWN
        return STATUS_UP if reachable else STATUS_DOWN

    def close(self) -> None:
        """Release the backend I/O pool without waiting for stalled calls."""

        self._pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> ConfigService:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def _compute(self, request: ConfigRequest) -> ResolvedBundle:
        documents, version = self._bounded("fetch", lambda: self.backend.fetch(request.application, request.label))
        ordered = resolve(request, documents)
        if not ordered:
            raise DocumentNotFound(
                f"No configuration documents for application '{request.application}' "
                f"and profiles {', '.join(request.profiles)}"
            )
        bundle = merge(request, ordered, version=version, environ=self._environ)
        log_info(
            "bundle_resolved",
            **make_event(request.application, request.label, {"profiles": list(request.profiles), "version": version, "sources": len(ordered)}),
        )
        return bundle

    def _bounded(self, operation: str, call: Callable[[], T]) -> T:
        future = self._pool.submit(call)
        try:
            return future.result(timeout=self.fetch_timeout)
        except FutureTimeout as exc:
            future.cancel()
            log_error("backend_timeout", operation=operation, timeout=self.fetch_timeout)
            raise SourceUnavailable(f"Backend {operation} exceeded {self.fetch_timeout}s") from exc


def build_backend(settings: ServerSettings) -> SourceBackend:
    """Return the backend variant selected by ``settings.backend``.

    Examples
    --------
    >>> from layered_config_server.settings import settings_from_mapping
    >>> type(build_backend(settings_from_mapping({}))).__name__
    'FilesystemBackend'
    """

    if settings.backend == "git":
        return GitBackend(
            settings.git.uri,
            Path(settings.git.basedir),
            search_paths=settings.git.search_paths,
            timeout=settings.fetch_timeout,
            refresh_interval=settings.git.refresh_interval,
        )
    return FilesystemBackend(Path(settings.native.root), search_paths=settings.native.search_paths)


def build_service(settings: ServerSettings, *, environ: Mapping[str, str] | None = None) -> ConfigService:
    """Return a :class:`ConfigService` wired according to *settings*."""

    backend = build_backend(settings)
    cache = BundleCache(max_entries=settings.cache.max_entries, probe_interval=settings.cache.probe_interval)
    log_debug("service_built", backend=settings.backend, fetch_timeout=settings.fetch_timeout)
    return ConfigService(backend, cache=cache, environ=environ, fetch_timeout=settings.fetch_timeout)


__all__ = ["ConfigService", "STATUS_UP", "STATUS_DOWN", "build_backend", "build_service"]
