"""Application-layer merge engine.

Purpose
-------
Turn the ordered documents chosen by the resolver into a
:class:`~layered_config_server.domain.model.ResolvedBundle`: parse each
document, flatten it into dotted keys, expand ``${NAME:default}``
placeholders, and keep the documents' precedence order. Free of I/O so the
same policy serves the HTTP frontend and the CLI.

Contents
    - ``merge``: public entry point driven by a simple loop.
    - ``flatten``: nested mappings/lists to dotted/indexed keys.
    - ``PlaceholderResolver``: expands placeholders against the environment,
      the bundle's own properties, and inline defaults.

System Role
-----------
Receives documents from :func:`layered_config_server.application.resolver.resolve`
(most specific first) and hands the bundle to the cache layer. Placeholder
lookup order is: environment variable (exact, then upper-snake), another
property of the bundle, then the inline default.
"""

from __future__ import annotations

import math
import os
import re
from collections.abc import Mapping
from typing import Any, Final, Iterable

from ..adapters.parsers.structured import parser_for
from ..domain.errors import MalformedDocument, PlaceholderResolutionError
from ..domain.model import ConfigRequest, PropertySource, ResolvedBundle, SourceDocument

_PREFIX: Final[str] = "${"
_SUFFIX: Final[str] = "}"
_SEPARATOR: Final[str] = ":"
_RELAXED: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9]")


def merge(
    request: ConfigRequest,
    documents: Iterable[SourceDocument],
    *,
    version: str,
    environ: Mapping[str, str] | None = None,
) -> ResolvedBundle:
    """Merge ordered *documents* into a bundle for *request*.

    Why
    ----
    Centralising merge semantics guarantees that a fixed set of inputs always
    yields an identical bundle.

    Parameters
    ----------
    documents:
        Documents ordered from highest to lowest precedence.
    version:
        Backend version the documents were read at; echoed in the bundle.
    environ:
        Environment lookup for placeholders. Defaults to :data:`os.environ`.

    Raises
    ------
    MalformedDocument
        A document cannot be parsed into key/value form.
    PlaceholderResolutionError
        A placeholder has no value and no default.

    Examples
    --------
    >>> docs = [
    ...     SourceDocument("billing-dev.yml", b"x: 2\\nurl: http://${HOST:localhost}/", "v1"),
    ...     SourceDocument("application.yml", b"x: 1\\ny: [a, b]", "v1"),
    ... ]
    >>> bundle = merge(ConfigRequest("billing", "dev"), docs, version="v1", environ={})
    >>> bundle.properties
    {'x': 2, 'url': 'http://localhost/', 'y[0]': 'a', 'y[1]': 'b'}
    """

    flattened: list[tuple[str, dict[str, Any]]] = []
    for document in documents:
        parser = parser_for(document.name)
        if parser is None:
            raise MalformedDocument(document.name, "unsupported document format")
        flattened.append((document.location, flatten(parser.parse(document.name, document.raw_content))))

    merged: dict[str, Any] = {}
    for _, properties in flattened:
        for key, value in properties.items():
            merged.setdefault(key, value)

    resolver = PlaceholderResolver(merged, os.environ if environ is None else environ)
    sources = tuple(
        PropertySource(origin, {key: resolver.expand(key, value) for key, value in properties.items()})
        for origin, properties in flattened
    )
    return ResolvedBundle(
        application=request.application,
        profiles=request.profiles,
        label=request.label,
        version=version,
        property_sources=sources,
    )


def flatten(data: Mapping[Any, Any]) -> dict[str, Any]:
    """Flatten nested mappings and lists into dotted/indexed keys.

    Empty containers flatten to ``""`` so their key remains visible.

    Examples
    --------
    >>> flatten({"db": {"hosts": ["a", {"name": "b"}], "opts": {}}, 1: True})
    {'db.hosts[0]': 'a', 'db.hosts[1].name': 'b', 'db.opts': '', '1': True}
    """

    result: dict[str, Any] = {}
    for key, value in data.items():
        _flatten_into(result, str(key), value)
    return result


def _flatten_into(target: dict[str, Any], path: str, value: Any) -> None:
    if isinstance(value, Mapping):
        if not value:
            target[path] = ""
        for key, child in value.items():
            _flatten_into(target, f"{path}.{key}", child)
    elif isinstance(value, (list, tuple)):
        if not value:
            target[path] = ""
        for index, child in enumerate(value):
            _flatten_into(target, f"{path}[{index}]", child)
    else:
        target[path] = _plain(value)


def _plain(value: Any) -> Any:
    """Keep JSON-native scalars; render everything else (dates, times, inf, nan) as text.

    >>> _plain(float("-inf")), _plain(1.5)
    ('-inf', 1.5)
    """

    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


class PlaceholderResolver:
    """Expand ``${NAME}`` / ``${NAME:default}`` placeholders.

    Lookup order per placeholder: environment variable *NAME*, environment
    variable in upper-snake form (``db.url`` -> ``DB_URL``), another property
    of the bundle (expanded recursively), then the default text (also
    expanded). Self-referencing chains raise
    :class:`~layered_config_server.domain.errors.PlaceholderResolutionError`.

    Examples
    --------
    >>> resolver = PlaceholderResolver({"host": "db", "url": "${host}:${PORT:5432}"}, {"PORT": "6543"})
    >>> resolver.expand("url", "${host}:${PORT:5432}")
    'db:6543'
    >>> resolver.expand("plain", "${unterminated")
    '${unterminated'
    """

    def __init__(self, properties: Mapping[str, Any], environ: Mapping[str, str]) -> None:
        self._properties = properties
        self._environ = environ
        self._resolved: dict[str, Any] = {}

    def expand(self, key: str, value: Any) -> Any:
        """Return *value* with placeholders expanded; non-strings pass through."""

        if not isinstance(value, str) or _PREFIX not in value:
            return value
        return self._expand_text(key, value, (key,))

    def _expand_text(self, key: str, text: str, visiting: tuple[str, ...]) -> str:
        out: list[str] = []
        index = 0
        while True:
            start = text.find(_PREFIX, index)
            if start < 0:
                out.append(text[index:])
                return "".join(out)
            end = _closing_brace(text, start + len(_PREFIX))
            if end < 0:
                out.append(text[index:])
                return "".join(out)
            out.append(text[index:start])
            out.append(self._lookup(key, text[start + len(_PREFIX) : end], visiting))
            index = end + len(_SUFFIX)

    def _lookup(self, key: str, expression: str, visiting: tuple[str, ...]) -> str:
        name, has_default, default = _split_expression(expression)
        name = self._expand_text(key, name, visiting) if _PREFIX in name else name
        for candidate in (name, _RELAXED.sub("_", name).upper()):
            if candidate in self._environ:
                return self._environ[candidate]
        if name in self._properties:
            return _as_text(self._property(key, name, visiting))
        if has_default:
            return self._expand_text(key, default, visiting)
        raise PlaceholderResolutionError(key, name)

    def _property(self, key: str, name: str, visiting: tuple[str, ...]) -> Any:
        if name in self._resolved:
            return self._resolved[name]
        if name in visiting:
            raise PlaceholderResolutionError(key, name, reason="circular reference " + " -> ".join((*visiting, name)))
        value = self._properties[name]
        if isinstance(value, str) and _PREFIX in value:
            value = self._expand_text(name, value, (*visiting, name))
        self._resolved[name] = value
        return value


def _closing_brace(text: str, start: int) -> int:
    """Return the index of the ``}`` closing a placeholder opened before *start*."""

    depth = 1
    index = start
    while index < len(text):
        if text.startswith(_PREFIX, index):
            depth += 1
            index += len(_PREFIX)
            continue
        if text[index] == _SUFFIX:
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


def _split_expression(expression: str) -> tuple[str, bool, str]:
    """Split ``NAME:default`` at the first separator outside nested placeholders.

    Examples
    --------
    >>> _split_expression("FOO:bar")
    ('FOO', True, 'bar')
    >>> _split_expression("FOO")
    ('FOO', False, '')
    >>> _split_expression("FOO:${BAR:x}")
    ('FOO', True, '${BAR:x}')
    """

    depth = 0
    index = 0
    while index < len(expression):
        if expression.startswith(_PREFIX, index):
            depth += 1
            index += len(_PREFIX)
            continue
        char = expression[index]
        if char == _SUFFIX and depth:
            depth -= 1
        elif char == _SEPARATOR and not depth:
            return expression[:index], True, expression[index + 1 :]
        index += 1
    return expression, False, ""


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


__all__ = ["merge", "flatten", "PlaceholderResolver"]
