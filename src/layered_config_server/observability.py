"""Request-scoped structured logging for the configuration server.

Purpose
    Every log line the server emits is an event name plus a ``context``
    mapping. The context always carries the trace id of the HTTP request (or
    CLI invocation) being served, so a cache miss, the backend fetch it
    triggered and the resulting 4xx/5xx can be read together.

Contents
    - ``TRACE_ID``: request trace id, set by the HTTP middleware.
    - ``get_logger`` / ``configure_logging``: the ``layered_config_server``
      logger, silent unless ``serve`` (or an embedding host) adds a handler.
    - ``log_debug`` / ``log_info`` / ``log_warning`` / ``log_error``.
    - ``make_event``: standard ``application``/``label`` fields for
      per-request events.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any, Final, Mapping

TRACE_ID: ContextVar[str | None] = ContextVar("config_request_trace_id", default=None)

_LOGGER: Final[logging.Logger] = logging.getLogger("layered_config_server")
_LOGGER.addHandler(logging.NullHandler())

_LINE_FORMAT: Final[str] = "%(asctime)s %(levelname)-7s %(message)s %(context)s"


class _EnsureContext(logging.Filter):
    """Give foreign records (uvicorn, plain ``logger.info``) an empty context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context"):
            record.context = {}
        return True


def get_logger() -> logging.Logger:
    """Return the server's logger."""

    return _LOGGER


def configure_logging(level: str | int = "INFO") -> logging.Handler:
    """Send server events to stderr at *level* and return the new handler."""

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LINE_FORMAT))
    handler.addFilter(_EnsureContext())
    _LOGGER.addHandler(handler)
    _LOGGER.setLevel(level.upper() if isinstance(level, str) else level)
    return handler


def bind_trace_id(trace_id: str | None) -> None:
    """Set the trace id for the current request; ``None`` clears it.

    >>> bind_trace_id('req-7')
    >>> TRACE_ID.get()
    'req-7'
    >>> bind_trace_id(None)
    >>> TRACE_ID.get() is None
    True
    """

    TRACE_ID.set(trace_id)


def log_debug(event: str, **fields: Any) -> None:
    _log(logging.DEBUG, event, fields)


def log_info(event: str, **fields: Any) -> None:
    _log(logging.INFO, event, fields)


def log_warning(event: str, **fields: Any) -> None:
    _log(logging.WARNING, event, fields)


def log_error(event: str, **fields: Any) -> None:
    _log(logging.ERROR, event, fields)


def make_event(application: str, label: str | None, extra: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Return the fields shared by events about one application and label.

    Examples
    --------
    >>> make_event('billing', 'main', {'hit': True})
    {'application': 'billing', 'label': 'main', 'hit': True}
    """

    fields: dict[str, Any] = {"application": application, "label": label}
    fields.update(extra or {})
    return fields


def _log(level: int, event: str, fields: Mapping[str, Any]) -> None:
    if _LOGGER.isEnabledFor(level):
        _LOGGER.log(level, event, extra={"context": {"trace_id": TRACE_ID.get(), **fields}})


__all__ = [
    "TRACE_ID",
    "get_logger",
    "configure_logging",
    "bind_trace_id",
    "log_debug",
    "log_info",
    "log_warning",
    "log_error",
    "make_event",
]
