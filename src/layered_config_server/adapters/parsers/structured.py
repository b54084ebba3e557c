"""Structured configuration document parsers.

Purpose
-------
Convert the raw bytes of a retrieved document into a Python mapping that the
merge engine understands. Parsers are small wrappers around
``yaml.safe_load``/``json``/``tomllib`` plus a Java-style ``.properties``
reader, so error reporting and logging live in one place.

Contents
--------
* :class:`BaseDocumentParser` – shared helpers for decoding and validating
  mapping outputs.
* :class:`YAMLDocumentParser` / :class:`JSONDocumentParser` /
  :class:`TOMLDocumentParser` / :class:`PropertiesDocumentParser`.
* :data:`SUPPORTED_SUFFIXES` – suffixes in precedence order for documents that
  share a stem.
* :func:`parser_for` – look up the parser for a document name.

System Role
-----------
Invoked by :func:`layered_config_server.application.merge.merge` for every
resolved document and by :mod:`layered_config_server.settings` for the
optional settings file. Every failure surfaces as
:class:`~layered_config_server.domain.errors.MalformedDocument` naming the
document and, where the parser reports one, the line and column.
"""

from __future__ import annotations

import json
import re
from pathlib import PurePosixPath
from typing import Final, Mapping

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[no-redef]

import yaml

from ...domain.errors import MalformedDocument
from ...observability import log_debug, log_error

_TOML_POSITION: Final[re.Pattern[str]] = re.compile(r"at line (\d+), column (\d+)")


class BaseDocumentParser:
    """Common utilities shared by the document parsers."""

    format: str = ""

    def _decode(self, name: str, raw: bytes) -> str:
        """Decode *raw* as UTF-8 (BOM tolerated) or raise ``MalformedDocument``.

        Examples
        --------
        >>> BaseDocumentParser()._decode("demo.yml", b"key: 1")
        'key: 1'
        """

        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            line = raw[: exc.start].count(b"\n") + 1
            raise MalformedDocument(name, f"invalid UTF-8 ({exc.reason})", line=line) from exc

    @staticmethod
    def _ensure_mapping(data: object, *, name: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise ``MalformedDocument``.

        Examples
        --------
        >>> BaseDocumentParser._ensure_mapping({"key": 1}, name="demo")
        {'key': 1}
        >>> BaseDocumentParser._ensure_mapping(42, name="demo")
        Traceback (most recent call last):
        ...
        layered_config_server.domain.errors.MalformedDocument: Malformed document demo: top level is int, not a mapping
        """

        if not isinstance(data, Mapping):
            raise MalformedDocument(name, f"top level is {type(data).__name__}, not a mapping")
        return data

    def _loaded(self, name: str, data: Mapping[str, object]) -> Mapping[str, object]:
        log_debug("document_parsed", document=name, format=self.format, keys=len(data))
        return data

    def _invalid(self, name: str, exc: Exception, *, line: int | None, column: int | None) -> MalformedDocument:
        log_error("document_invalid", document=name, format=self.format, line=line, error=str(exc))
        return MalformedDocument(name, _first_line(str(exc)), line=line, column=column)


class YAMLDocumentParser(BaseDocumentParser):
    """Parse YAML documents with ``yaml.safe_load``; an empty file is ``{}``."""

    format = "yaml"

    def parse(self, name: str, raw: bytes) -> Mapping[str, object]:
        """Return the mapping stored in YAML document *name*.

        Examples
        --------
        >>> YAMLDocumentParser().parse("demo.yml", b"server:\\n  port: 8080\\n")
        {'server': {'port': 8080}}
        """

        text = self._decode(name, raw)
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            line = mark.line + 1 if mark is not None else None
            column = mark.column + 1 if mark is not None else None
            raise self._invalid(name, exc, line=line, column=column) from exc
        if data is None:
            data = {}
        return self._loaded(name, self._ensure_mapping(data, name=name))


class JSONDocumentParser(BaseDocumentParser):
    """Parse JSON documents."""

    format = "json"

    def parse(self, name: str, raw: bytes) -> Mapping[str, object]:
        """Return the mapping stored in JSON document *name*.

        Examples
        --------
        >>> JSONDocumentParser().parse("demo.json", b'{"enabled": true}')
        {'enabled': True}
        """

        text = self._decode(name, raw)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise self._invalid(name, exc, line=exc.lineno, column=exc.colno) from exc
        return self._loaded(name, self._ensure_mapping(data, name=name))


class TOMLDocumentParser(BaseDocumentParser):
    """Parse TOML documents using the standard library parser."""

    format = "toml"

    def parse(self, name: str, raw: bytes) -> Mapping[str, object]:
        """Return the mapping stored in TOML document *name*.

        Examples
        --------
        >>> TOMLDocumentParser().parse("demo.toml", b'[db]\\nport = 5432\\n')
        {'db': {'port': 5432}}
        """

        text = self._decode(name, raw)
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            match = _TOML_POSITION.search(str(exc))
            line = int(match.group(1)) if match else None
            column = int(match.group(2)) if match else None
            raise self._invalid(name, exc, line=line, column=column) from exc
        return self._loaded(name, data)


class PropertiesDocumentParser(BaseDocumentParser):
    """Parse Java-style ``.properties`` documents.

    Supports ``=``, ``:`` and whitespace separators, ``#``/``!`` comments,
    backslash line continuations, and the ``\\t \\n \\r \\f \\uXXXX`` escapes.
    Later duplicates of a key replace earlier ones.
    """

    format = "properties"

    def parse(self, name: str, raw: bytes) -> Mapping[str, object]:
        """Return the key/value pairs stored in properties document *name*.

        Examples
        --------
        >>> PropertiesDocumentParser().parse("demo.properties", b"a.b = 1\\nc: two\\\\\\n   three\\n# note\\n")
        {'a.b': '1', 'c': 'twothree'}
        """

        text = self._decode(name, raw)
        data: dict[str, object] = {}
        for line_no, logical in _logical_lines(text):
            key, value = _split_pair(logical)
            data[_unescape(key, name, line_no)] = _unescape(value, name, line_no)
        return self._loaded(name, data)


def _logical_lines(text: str) -> list[tuple[int, str]]:
    """Join continuation lines and drop blanks/comments, keeping start line numbers."""

    result: list[tuple[int, str]] = []
    pending: str | None = None
    start = 0
    for number, natural in enumerate(text.splitlines(), start=1):
        stripped = natural.lstrip()
        if pending is None:
            if not stripped or stripped[0] in "#!":
                continue
            start = number
            pending = ""
        pending += stripped
        if _continues(pending):
            pending = pending[:-1]
            continue
        result.append((start, pending))
        pending = None
    if pending is not None:
        result.append((start, pending))
    return result


def _continues(line: str) -> bool:
    """Return ``True`` when *line* ends with an odd number of backslashes."""

    trailing = len(line) - len(line.rstrip("\\"))
    return trailing % 2 == 1


def _split_pair(line: str) -> tuple[str, str]:
    index = 0
    length = len(line)
    while index < length:
        char = line[index]
        if char == "\\":
            index += 2
            continue
        if char in "=: \t\f":
            break
        index += 1
    key = line[:index]
    rest = line[index:].lstrip(" \t\f")
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(" \t\f")
    return key, rest


_ESCAPES: Final[dict[str, str]] = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def _unescape(text: str, name: str, line: int) -> str:
    out: list[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char != "\\" or index + 1 >= len(text):
            out.append(char)
            index += 1
            continue
        marker = text[index + 1]
        if marker == "u":
            digits = text[index + 2 : index + 6]
            if len(digits) != 4 or not all(c in "0123456789abcdefABCDEF" for c in digits):
                raise MalformedDocument(name, f"malformed \\uXXXX escape '\\u{digits}'", line=line)
            out.append(chr(int(digits, 16)))
            index += 6
            continue
        out.append(_ESCAPES.get(marker, marker))
        index += 2
    return "".join(out)


def _first_line(message: str) -> str:
    return message.strip().splitlines()[0] if message.strip() else message


_YAML = YAMLDocumentParser()

PARSERS: Final[dict[str, BaseDocumentParser]] = {
    ".yml": _YAML,
    ".yaml": _YAML,
    ".properties": PropertiesDocumentParser(),
    ".json": JSONDocumentParser(),
    ".toml": TOMLDocumentParser(),
}

SUPPORTED_SUFFIXES: Final[tuple[str, ...]] = tuple(PARSERS)
"""Suffixes in precedence order for documents sharing the same stem."""


def parser_for(name: str) -> BaseDocumentParser | None:
    """Return the parser registered for *name*'s suffix, if any.

    Examples
    --------
    >>> type(parser_for("config/app-dev.YML")).__name__
    'YAMLDocumentParser'
    >>> parser_for("README.md") is None
    True
    """

    return PARSERS.get(PurePosixPath(name).suffix.lower())


__all__ = [
    "BaseDocumentParser",
    "YAMLDocumentParser",
    "JSONDocumentParser",
    "TOMLDocumentParser",
    "PropertiesDocumentParser",
    "PARSERS",
    "SUPPORTED_SUFFIXES",
    "parser_for",
]
