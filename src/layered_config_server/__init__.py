"""Public package surface of ``layered_config_server``.

Exports the service composition helpers, the request/bundle value objects,
and the error taxonomy so ``import layered_config_server`` is enough for
embedding the resolver in another process.
"""

from __future__ import annotations

from .core import ConfigService, build_backend, build_service
from .domain.errors import (
    ConfigServerError,
    DocumentNotFound,
    MalformedDocument,
    NoSuchLabel,
    PlaceholderResolutionError,
    SettingsError,
    SourceUnavailable,
)
from .domain.model import ConfigRequest, PropertySource, ResolvedBundle, SourceDocument
from .observability import bind_trace_id, get_logger
from .settings import ServerSettings, load_settings

__all__ = [
    "ConfigService",
    "build_backend",
    "build_service",
    "ConfigServerError",
    "DocumentNotFound",
    "MalformedDocument",
    "NoSuchLabel",
    "PlaceholderResolutionError",
    "SettingsError",
    "SourceUnavailable",
    "ConfigRequest",
    "PropertySource",
    "ResolvedBundle",
    "SourceDocument",
    "bind_trace_id",
    "get_logger",
    "ServerSettings",
    "load_settings",
]
