"""FastAPI application for the taskgate gateway.

Serves the protocol operations under ``/mcp`` plus liveness and status
endpoints. Every error leaves as the same JSON envelope, produced by the
exception handlers and the error middleware registered here, which are
also the single place where failures are logged.
"""

from __future__ import annotations

import ipaddress
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from taskgate import __version__
from taskgate.auth.controller import AuthFlowController
from taskgate.auth.store import CredentialStore
from taskgate.backend.client import RTMClient, TaskBackend
from taskgate.core.config import Settings
from taskgate.core.errors import (
    InvalidRequestError,
    ParseError,
    ProtocolError,
    error_envelope,
    http_status_for,
    log_protocol_error,
    to_protocol_error,
)
from taskgate.core.types import HealthResponse, ServerInfo, StatusResponse
from taskgate.mcp.resources import ResourceHandlers
from taskgate.mcp.router import ProtocolRouter
from taskgate.mcp.timeline import TimelineDispatcher
from taskgate.mcp.tools import ToolHandlers
from taskgate.web.mcp_router import router as mcp_router

logger = logging.getLogger(__name__)

STATUS_SECRET_HEADER = "X-Status-Secret"


def _is_loopback(host: str | None) -> bool:
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def _error_response(request: Request, error: ProtocolError, cause: BaseException | None) -> JSONResponse:
    log_protocol_error(
        error,
        operation=f"{request.method} {request.url.path}",
        cause=cause,
    )
    request_id = getattr(request.state, "rpc_id", None)
    return JSONResponse(
        status_code=http_status_for(error.code),
        content=error_envelope(error, request_id),
    )


class UnexpectedErrorMiddleware(BaseHTTPMiddleware):
    """Converts exceptions no handler claimed into an InternalError envelope.

    The envelope is returned, never re-raised to the server.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return _error_response(request, to_protocol_error(exc), exc)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ProtocolError)
    async def protocol_error_handler(request: Request, exc: ProtocolError) -> JSONResponse:
        return _error_response(request, exc, exc.__cause__)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        body = exc.body if isinstance(exc.body, dict) else {}
        request.state.rpc_id = body.get("id")
        errors = exc.errors()
        if any(err.get("type") == "json_invalid" for err in errors):
            error: ProtocolError = ParseError("Request body is not valid JSON.")
        else:
            fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in errors]
            error = InvalidRequestError(
                "Request body does not have the expected shape.",
                {"fields": [f for f in fields if f]},
            )
        return _error_response(request, error, None)



def create_app(
    settings: Settings | None = None,
    backend: TaskBackend | None = None,
    store: CredentialStore | None = None,
    controller: AuthFlowController | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Uses the factory pattern so tests can create isolated app instances
    with a fake backend or a controller already in a given state.

    Args:
        settings: Application settings. Defaults to Settings().
        backend: Backend client. Defaults to an RTMClient from settings.
        store: Credential store. Defaults to the configured token path.
        controller: Auth controller. Defaults to one built from the above.

    Returns:
        A configured FastAPI instance.
    """
    if settings is None:
        settings = Settings()
    if backend is None:
        backend = RTMClient(settings.rtm)
        if not settings.rtm.has_credentials:
            logger.warning(
                "Remember The Milk API key or shared secret is not set; "
                "backend calls will fail until they are configured"
            )
    if store is None:
        store = CredentialStore(settings.auth.resolved_token_path)
    if controller is None:
        controller = AuthFlowController(backend, store)

    timeline = TimelineDispatcher(backend)
    protocol_router = ProtocolRouter(
        ServerInfo(name=settings.server.name, version=settings.server.version),
        controller,
        ResourceHandlers(controller, backend),
        ToolHandlers(controller, backend, timeline),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        status = await controller.restore()
        logger.info("%s %s started (%s)", settings.server.name, settings.server.version, status)
        try:
            yield
        finally:
            await backend.close()

    app = FastAPI(
        title="taskgate",
        description="Remember The Milk gateway for AI assistants",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.backend = backend
    app.state.credential_store = store
    app.state.auth_controller = controller
    app.state.protocol_router = protocol_router
    app.state.started_at = datetime.now(timezone.utc)
    app.state.instance_id = uuid.uuid4().hex[:12]

    app.add_middleware(UnexpectedErrorMiddleware)
    _register_exception_handlers(app)
    app.include_router(mcp_router)

    # --- Routes ---

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Liveness check."""
        return HealthResponse()

    @app.get("/status", response_model=StatusResponse)
    async def status(request: Request) -> Any:
        """Server and authentication status for local diagnostics."""
        secret = settings.server.status_secret
        host = request.client.host if request.client else None
        provided = request.headers.get(STATUS_SECRET_HEADER)
        if not (_is_loopback(host) or (secret and provided == secret)):
            return JSONResponse(status_code=403, content={"detail": "Forbidden"})

        started_at: datetime = app.state.started_at
        uptime = (datetime.now(timezone.utc) - started_at).total_seconds()
        return StatusResponse(
            server={
                "name": settings.server.name,
                "version": settings.server.version,
                "started_at": started_at.isoformat(),
                "uptime_seconds": round(uptime, 1),
                "instance_id": app.state.instance_id,
            },
            auth={
                **controller.snapshot().model_dump(mode="json"),
                "token_stored": store.exists(),
            },
        )

    return app
