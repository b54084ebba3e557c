"""Domain-level value objects for configuration requests and bundles.

Purpose
-------
Anchor the immutable types that flow from the service frontend down to the
source backends and back: the inbound :class:`ConfigRequest`, the raw
:class:`SourceDocument`, and the merged :class:`ResolvedBundle`. The module is
free of I/O.

Contents
--------
* :class:`ConfigRequest` – ``(application, profile, label)`` triple.
* :class:`SourceDocument` – one raw document plus the store version it came
  from.
* :class:`PropertySource` – one parsed, flattened document with its origin.
* :class:`ResolvedBundle` – ordered property sources plus the merged view.
* :class:`CacheEntry` – what the cache layer memorises per request key.

System Role
-----------
Every call to :meth:`layered_config_server.core.ConfigService.resolve`
returns a :class:`ResolvedBundle`; :meth:`ResolvedBundle.to_dict` is the body
the HTTP frontend and the CLI emit.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

DEFAULT_PROFILE = "default"
DEFAULT_LABEL = "main"

#: Escaped slash accepted in labels so branch names like ``feature/x`` fit in a
#: single path segment.
LABEL_SLASH_ESCAPE = "(_)"

RequestKey = tuple[str, str, str]


@dataclass(frozen=True, slots=True)
class ConfigRequest:
    """Identify one requested configuration bundle.

    Examples
    --------
    >>> request = ConfigRequest("billing", "dev, db,dev", "feature(_)x")
    >>> request.profiles
    ('dev', 'db')
    >>> request.label
    'feature/x'
    >>> request.key
    ('billing', 'dev,db', 'feature/x')
    """

    application: str
    profile: str = DEFAULT_PROFILE
    label: str = DEFAULT_LABEL

    def __post_init__(self) -> None:
        object.__setattr__(self, "label", self.label.replace(LABEL_SLASH_ESCAPE, "/"))

    @property
    def profiles(self) -> tuple[str, ...]:
        """Return the comma-separated profiles, trimmed and de-duplicated."""

        seen: list[str] = []
        for part in self.profile.split(","):
            name = part.strip()
            if name and name not in seen:
                seen.append(name)
        return tuple(seen) or (DEFAULT_PROFILE,)

    @property
    def key(self) -> RequestKey:
        """Return the normalised cache key for this request."""

        return (self.application, ",".join(self.profiles), self.label)


@dataclass(frozen=True, slots=True)
class SourceDocument:
    """One retrieved configuration file.

    ``name`` is the path relative to the store root (``config/app-dev.yml``)
    and drives resolution; ``location`` is the human-facing origin reported in
    responses.
    """

    name: str
    raw_content: bytes
    backend_version: str
    location: str = ""

    def __post_init__(self) -> None:
        if not self.location:
            object.__setattr__(self, "location", self.name)


@dataclass(frozen=True, slots=True)
class PropertySource:
    """A parsed document flattened into dotted keys."""

    origin: str
    properties: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.origin, "source": dict(self.properties)}


@dataclass(frozen=True, slots=True)
class ResolvedBundle:
    """Ordered property sources; earlier sources override later ones.

    Examples
    --------
    >>> bundle = ResolvedBundle(
    ...     application="billing",
    ...     profiles=("dev",),
    ...     label="main",
    ...     version="abc",
    ...     property_sources=(
    ...         PropertySource("billing-dev.yml", {"x": 2}),
    ...         PropertySource("application.yml", {"x": 1, "y": 3}),
    ...     ),
    ... )
    >>> bundle.properties
    {'x': 2, 'y': 3}
    >>> bundle.sources
    ('billing-dev.yml', 'application.yml')
    """

    application: str
    profiles: tuple[str, ...]
    label: str
    version: str
    property_sources: tuple[PropertySource, ...] = field(default_factory=tuple)

    @property
    def properties(self) -> dict[str, Any]:
        """Return the merged view where the first source defining a key wins."""

        merged: dict[str, Any] = {}
        for source in self.property_sources:
            for key, value in source.properties.items():
                merged.setdefault(key, value)
        return merged

    @property
    def sources(self) -> tuple[str, ...]:
        return tuple(source.origin for source in self.property_sources)

    def to_dict(self) -> dict[str, Any]:
        """Render the bundle as the JSON-ready response body."""

        return {
            "name": self.application,
            "profiles": list(self.profiles),
            "label": self.label,
            "version": self.version,
            "sources": list(self.sources),
            "properties": self.properties,
            "propertySources": [source.to_dict() for source in self.property_sources],
        }

    def to_json(self, *, indent: int | None = None) -> str:
        """Serialise :meth:`to_dict` deterministically."""

        return json.dumps(self.to_dict(), indent=indent, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A memorised bundle valid while the store reports ``backend_version``."""

    key: RequestKey
    bundle: ResolvedBundle
    backend_version: str
    created_at: float
    probed_at: float


__all__ = [
    "DEFAULT_PROFILE",
    "DEFAULT_LABEL",
    "LABEL_SLASH_ESCAPE",
    "RequestKey",
    "ConfigRequest",
    "SourceDocument",
    "PropertySource",
    "ResolvedBundle",
    "CacheEntry",
]
