"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by backends, the merge engine, the
cache, and the HTTP/CLI surfaces. The hierarchy lives in the domain layer so
outer layers depend on it, never the other way round.

Contents
--------
* :class:`ConfigServerError` – umbrella base class carrying an error ``kind``.
* :class:`SourceUnavailable` – backing store unreachable or timed out
  (retryable).
* :class:`DocumentNotFound` – no candidate document matched the request.
* :class:`NoSuchLabel` – the requested label does not exist in the store.
* :class:`MalformedDocument` – a document could not be parsed into key/values.
* :class:`PlaceholderResolutionError` – a required ``${...}`` placeholder had
  neither a value nor a default.
* :class:`SettingsError` – server settings failed validation at startup.

System Role
-----------
The service frontend maps :attr:`ConfigServerError.kind` to HTTP status codes
and renders :meth:`ConfigServerError.to_dict` as the response body, so every
error raised below the frontend must belong to this family.
"""

from __future__ import annotations

from typing import Any, ClassVar


class ConfigServerError(Exception):
    """Base type for all exceptions emitted by ``layered_config_server``.

    Why
    ----
    Give the frontend a single family to catch while keeping the error kind
    machine-readable.
    """

    kind: ClassVar[str] = "ConfigServerError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        """Return structured fields that complement :attr:`message`."""

        return {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a JSON-ready body.

        Examples
        --------
        >>> SourceUnavailable("root missing").to_dict()
        {'error': 'SourceUnavailable', 'message': 'root missing'}
        """

        body: dict[str, Any] = {"error": self.kind, "message": self.message}
        body.update(self.details())
        return body


class SourceUnavailable(ConfigServerError):
    """The backing store could not be read, cloned, or answered too slowly."""

    kind = "SourceUnavailable"


class DocumentNotFound(ConfigServerError):
    """No configuration document matched the requested application.

    The frontend surfaces this as ``404``; callers that can fall back to an
    empty bundle may catch it instead.
    """

    kind = "DocumentNotFound"


class NoSuchLabel(DocumentNotFound):
    """The requested label (branch, tag, or commit) is unknown to the store."""

    kind = "NoSuchLabel"

    def __init__(self, label: str) -> None:
        super().__init__(f"No such label: {label}")
        self.label = label

    def details(self) -> dict[str, Any]:
        return {"label": self.label}


class MalformedDocument(ConfigServerError):
    """A document could not be parsed into key/value form.

    Attributes
    ----------
    source:
        Name of the offending document.
    line / column:
        One-based position of the failure when the parser reports one.
    """

    kind = "MalformedDocument"

    def __init__(self, source: str, cause: str, *, line: int | None = None, column: int | None = None) -> None:
        position = ""
        if line is not None:
            position = f" at line {line}" + (f", column {column}" if column is not None else "")
        super().__init__(f"Malformed document {source}{position}: {cause}")
        self.source = source
        self.line = line
        self.column = column

    def details(self) -> dict[str, Any]:
        return {"source": self.source, "line": self.line, "column": self.column}


class PlaceholderResolutionError(ConfigServerError):
    """A ``${NAME}`` placeholder had no value and no default."""

    kind = "PlaceholderResolutionError"

    def __init__(self, key: str, placeholder: str, *, reason: str = "no value and no default") -> None:
        super().__init__(f"Could not resolve placeholder '${{{placeholder}}}' in property '{key}': {reason}")
        self.key = key
        self.placeholder = placeholder

    def details(self) -> dict[str, Any]:
        return {"key": self.key, "placeholder": self.placeholder}


class SettingsError(ConfigServerError):
    """Server settings are missing or invalid."""

    kind = "SettingsError"


__all__ = [
    "ConfigServerError",
    "SourceUnavailable",
    "DocumentNotFound",
    "NoSuchLabel",
    "MalformedDocument",
    "PlaceholderResolutionError",
    "SettingsError",
]
