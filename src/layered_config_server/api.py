"""HTTP frontend exposing resolved configuration bundles.

Purpose
-------
Translate ``GET /{application}/{profile}[/{label}]`` requests into
:meth:`layered_config_server.core.ConfigService.resolve` calls and map the
domain error taxonomy onto HTTP status codes. The service is read-only: no
route mutates the backing store.

Contents
--------
* :func:`create_app` – FastAPI application factory.
* :data:`STATUS_BY_KIND` – error kind to HTTP status mapping.

System Role
-----------
Outermost layer. Handlers are synchronous, so FastAPI runs each request on
its worker thread pool; a slow backend fetch blocks only the request that
triggered it (and waiters for the same key).
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .core import STATUS_UP, ConfigService
from .domain.errors import ConfigServerError, DocumentNotFound
from .domain.model import DEFAULT_LABEL, ConfigRequest
from .observability import bind_trace_id, log_error, log_warning

TRACE_HEADER = "X-Request-ID"

STATUS_BY_KIND: dict[type[ConfigServerError], int] = {
    DocumentNotFound: 404,
}


def status_for(exc: ConfigServerError) -> int:
    """Return the HTTP status for *exc*; unmapped kinds are ``500``.

    Examples
    --------
    >>> from layered_config_server.domain.errors import NoSuchLabel, SourceUnavailable
    >>> status_for(NoSuchLabel("x")), status_for(SourceUnavailable("down"))
    (404, 500)
    """

    for kind, status in STATUS_BY_KIND.items():
        if isinstance(exc, kind):
            return status
    return 500


def create_app(service: ConfigService, *, default_label: str = DEFAULT_LABEL) -> FastAPI:
    """Create the FastAPI application serving *service*.

    Parameters
    ----------
    service:
        Wired :class:`ConfigService`; closed on application shutdown.
    default_label:
        Label used when the request path omits one.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        service.close()

    app = FastAPI(
        lifespan=lifespan,
        title="Layered Config Server",
        description="Versioned per-application, per-profile configuration",
        docs_url=None,
        redoc_url=None,
    )
    app.state.service = service

    @app.middleware("http")
    async def bind_request_trace(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        trace_id = request.headers.get(TRACE_HEADER) or uuid.uuid4().hex
        bind_trace_id(trace_id)
        try:
            response = await call_next(request)
        finally:
            bind_trace_id(None)
        response.headers[TRACE_HEADER] = trace_id
        return response

    @app.exception_handler(ConfigServerError)
    async def config_error_handler(request: Request, exc: ConfigServerError) -> JSONResponse:
        status = status_for(exc)
        log = log_warning if status < 500 else log_error
        log("request_failed", path=request.url.path, status=status, kind=exc.kind, error=exc.message)
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log_error("unexpected_error", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content={"error": "InternalError", "message": "An unexpected error occurred"})

    @app.get("/health")
    def health() -> JSONResponse:
        status = service.health()
        return JSONResponse(status_code=200 if status == STATUS_UP else 503, content={"status": status})

    @app.get("/{application}/{profile}")
    def environment(application: str, profile: str) -> JSONResponse:
        return _respond(service, ConfigRequest(application, profile, default_label))

    @app.get("/{application}/{profile}/{label}")
    def labelled_environment(application: str, profile: str, label: str) -> JSONResponse:
        return _respond(service, ConfigRequest(application, profile, label))

    return app


def _respond(service: ConfigService, request: ConfigRequest) -> JSONResponse:
    return JSONResponse(content=service.resolve(request).to_dict())


__all__ = ["create_app", "status_for", "STATUS_BY_KIND", "TRACE_HEADER"]
