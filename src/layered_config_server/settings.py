"""Server settings assembled from defaults, an optional file, and the environment.

Purpose
-------
Enumerate every startup input of the service (listen address, backend
selection, defaults, cache and timeout knobs) as one immutable object instead
of scattering ``os.environ`` lookups across the code base.

Contents
--------
* :class:`ServerSettings` and its sections.
* :func:`load_settings` – layer ``defaults -> settings file -> environment``.
* :func:`settings_from_mapping` – validate a nested mapping into settings.

System Role
-----------
Consumed by :func:`layered_config_server.core.build_service` and the CLI. The
settings file is parsed with the same document parsers the service uses for
configuration documents (TOML, YAML, JSON, properties).
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Final

from .adapters.env.default import EnvSettingsLoader
from .adapters.parsers.structured import parser_for
from .domain.errors import ConfigServerError, SettingsError
from .domain.model import DEFAULT_LABEL, DEFAULT_PROFILE
from .observability import log_debug

BACKEND_TYPES: Final[tuple[str, ...]] = ("native", "git")
DEFAULT_HOST: Final[str] = "0.0.0.0"
DEFAULT_PORT: Final[int] = 8888
DEFAULT_NATIVE_ROOT: Final[str] = "config"
DEFAULT_GIT_BASEDIR: Final[str] = ".config-server/repos"


@dataclass(frozen=True, slots=True)
class HTTPSettings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass(frozen=True, slots=True)
class NativeSettings:
    root: str = DEFAULT_NATIVE_ROOT
    search_paths: tuple[str, ...] = ("",)


@dataclass(frozen=True, slots=True)
class GitSettings:
    uri: str = ""
    basedir: str = DEFAULT_GIT_BASEDIR
    search_paths: tuple[str, ...] = ("",)
    refresh_interval: float = 0.0


@dataclass(frozen=True, slots=True)
class CacheSettings:
    probe_interval: float = 0.0
    max_entries: int = 0


@dataclass(frozen=True, slots=True)
class ServerSettings:
    """Every startup input of the service.

    Examples
    --------
    >>> settings = settings_from_mapping({"backend": {"type": "git"}, "git": {"uri": "file:///srv/config"}})
    >>> settings.backend, settings.git.uri, settings.server.port
    ('git', 'file:///srv/config', 8888)
    """

    server: HTTPSettings = field(default_factory=HTTPSettings)
    backend: str = "native"
    native: NativeSettings = field(default_factory=NativeSettings)
    git: GitSettings = field(default_factory=GitSettings)
    default_profile: str = DEFAULT_PROFILE
    default_label: str = DEFAULT_LABEL
    cache: CacheSettings = field(default_factory=CacheSettings)
    fetch_timeout: float = 10.0
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        """Return the settings as nested plain data (the CLI prints this)."""

        data = asdict(self)
        data["backend"] = {"type": data["backend"]}
        data["defaults"] = {"profile": data.pop("default_profile"), "label": data.pop("default_label")}
        return data


def load_settings(
    *,
    settings_file: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ServerSettings:
    """Return settings layered as defaults, then *settings_file*, then environment.

    Why
    ----
    Operators configure containers through the environment and workstations
    through a file; both must produce the same validated object.

    Raises
    ------
    SettingsError
        The settings file cannot be read or parsed, or a value is invalid.
    """

    layered: dict[str, Any] = {}
    if settings_file is not None:
        _overlay(layered, _read_settings_file(Path(settings_file)))
    _overlay(layered, EnvSettingsLoader(environ=environ).load())
    settings = settings_from_mapping(layered)
    log_debug("settings_loaded", backend=settings.backend, settings_file=str(settings_file) if settings_file else None)
    return settings


def settings_from_mapping(data: Mapping[str, Any]) -> ServerSettings:
    """Validate nested *data* into :class:`ServerSettings`.

    Recognised sections: ``server``, ``backend``, ``native``, ``git``,
    ``defaults``, ``cache`` plus top-level ``fetch_timeout`` and
    ``log_level``.
    """

    server = _section(data, "server")
    native = _section(data, "native")
    git = _section(data, "git")
    defaults = _section(data, "defaults")
    cache = _section(data, "cache")
    backend = _section(data, "backend")

    backend_type = _text(backend.get("type", "native"), "backend.type").lower()
    if backend_type not in BACKEND_TYPES:
        raise SettingsError(f"backend.type must be one of {', '.join(BACKEND_TYPES)}, got '{backend_type}'")
    git_uri = _text(git.get("uri", ""), "git.uri")
    if backend_type == "git" and not git_uri:
        raise SettingsError("git.uri is required when backend.type is 'git'")

    return ServerSettings(
        server=HTTPSettings(
            host=_text(server.get("host", DEFAULT_HOST), "server.host"),
            port=_number(server.get("port", DEFAULT_PORT), "server.port", int, minimum=0),
        ),
        backend=backend_type,
        native=NativeSettings(
            root=_text(native.get("root", DEFAULT_NATIVE_ROOT), "native.root"),
            search_paths=_paths(native.get("search_paths", ("",)), "native.search_paths"),
        ),
        git=GitSettings(
            uri=git_uri,
            basedir=_text(git.get("basedir", DEFAULT_GIT_BASEDIR), "git.basedir"),
            search_paths=_paths(git.get("search_paths", ("",)), "git.search_paths"),
            refresh_interval=_number(git.get("refresh_interval", 0.0), "git.refresh_interval", float, minimum=0),
        ),
        default_profile=_text(defaults.get("profile", DEFAULT_PROFILE), "defaults.profile"),
        default_label=_text(defaults.get("label", DEFAULT_LABEL), "defaults.label"),
        cache=CacheSettings(
            probe_interval=_number(cache.get("probe_interval", 0.0), "cache.probe_interval", float, minimum=0),
            max_entries=_number(cache.get("max_entries", 0), "cache.max_entries", int, minimum=0),
        ),
        fetch_timeout=_number(data.get("fetch_timeout", 10.0), "fetch_timeout", float, minimum=0.001),
        log_level=_text(data.get("log_level", "INFO"), "log_level").upper(),
    )


def _read_settings_file(path: Path) -> Mapping[str, Any]:
    parser = parser_for(path.name)
    if parser is None:
        raise SettingsError(f"Unsupported settings file format: {path}")
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise SettingsError(f"Cannot read settings file {path}: {exc}") from exc
    try:
        data = parser.parse(str(path), raw)
    except ConfigServerError as exc:
        raise SettingsError(f"Invalid settings file: {exc}") from exc
    if path.suffix.lower() == ".properties":
        nested: dict[str, Any] = {}
        for key, value in data.items():
            _overlay(nested, _nest(key.split("."), value))
        return nested
    return data


def _nest(parts: list[str], value: Any) -> dict[str, Any]:
    return {parts[0]: value} if len(parts) == 1 else {parts[0]: _nest(parts[1:], value)}


def _overlay(target: dict[str, Any], incoming: Mapping[str, Any]) -> None:
    """Recursively copy *incoming* over *target*; later layers win.

    Examples
    --------
    >>> base = {"server": {"host": "a", "port": 1}}
    >>> _overlay(base, {"server": {"port": 2}})
    >>> base
    {'server': {'host': 'a', 'port': 2}}
    """

    for key, value in incoming.items():
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            _overlay(existing, value)
        elif isinstance(value, Mapping):
            target[key] = {}
            _overlay(target[key], value)
        else:
            target[key] = value


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name, {})
    if name == "backend" and isinstance(value, str):
        return {"type": value}
    if not isinstance(value, Mapping):
        raise SettingsError(f"Settings section '{name}' must be a mapping")
    return value


def _text(value: Any, name: str) -> str:
    if value is None or isinstance(value, (Mapping, list, tuple)):
        raise SettingsError(f"{name} must be a string")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _number(value: Any, name: str, kind: type, *, minimum: float) -> Any:
    """Convert *value* (number or text) to *kind*, refusing lossy conversions.

    >>> _number("9000", "server.port", int, minimum=0), _number(" 2.5 ", "cache.probe_interval", float, minimum=0)
    (9000, 2.5)
    """

    if isinstance(value, bool):
        raise SettingsError(f"{name} must be a number, got {value!r}")
    try:
        parsed = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(parsed):
        raise SettingsError(f"{name} must be a finite number, got {value!r}")
    if kind is int:
        if not parsed.is_integer():
            raise SettingsError(f"{name} must be a whole number, got {value!r}")
        number: Any = value if isinstance(value, int) else int(parsed)
    else:
        number = parsed
    if number < minimum:
        raise SettingsError(f"{name} must be >= {minimum}, got {number}")
    return number


def _paths(value: Any, name: str) -> tuple[str, ...]:
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [_text(part, name).strip() for part in value]
    else:
        raise SettingsError(f"{name} must be a list or a comma-separated string")
    return tuple(items) or ("",)


__all__ = [
    "BACKEND_TYPES",
    "HTTPSettings",
    "NativeSettings",
    "GitSettings",
    "CacheSettings",
    "ServerSettings",
    "load_settings",
    "settings_from_mapping",
]
