"""Error taxonomy for the protocol surface.

Every failure inside a request resolves to exactly one :class:`ErrorCode`.
Each code has one HTTP status and one log severity. Errors are logged once,
when they are mapped for the response, and only BackendError and
InternalError carry a stack trace into the log. Nothing internal (stack
frames, file paths, exception reprs) is ever placed in the response body.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any

import httpx

from taskgate.auth.store import CredentialStoreError

logger = logging.getLogger(__name__)


class ErrorCode(IntEnum):
    """Protocol error codes, modeled on JSON-RPC 2.0."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    AUTH_ERROR = -31000
    RESOURCE_ERROR = -31001
    BACKEND_ERROR = -31002
    TOOL_ERROR = -31003
    VALIDATION_ERROR = -31004


_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.PARSE_ERROR: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.METHOD_NOT_FOUND: 404,
    ErrorCode.INVALID_PARAMS: 400,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.AUTH_ERROR: 401,
    ErrorCode.RESOURCE_ERROR: 404,
    ErrorCode.BACKEND_ERROR: 500,
    ErrorCode.TOOL_ERROR: 500,
    ErrorCode.VALIDATION_ERROR: 400,
}

_LOG_LEVEL: dict[ErrorCode, int] = {
    ErrorCode.PARSE_ERROR: logging.WARNING,
    ErrorCode.INVALID_REQUEST: logging.WARNING,
    ErrorCode.METHOD_NOT_FOUND: logging.INFO,
    ErrorCode.INVALID_PARAMS: logging.WARNING,
    ErrorCode.INTERNAL_ERROR: logging.ERROR,
    ErrorCode.AUTH_ERROR: logging.WARNING,
    ErrorCode.RESOURCE_ERROR: logging.INFO,
    ErrorCode.BACKEND_ERROR: logging.ERROR,
    ErrorCode.TOOL_ERROR: logging.ERROR,
    ErrorCode.VALIDATION_ERROR: logging.WARNING,
}

_WITH_STACK = frozenset({ErrorCode.BACKEND_ERROR, ErrorCode.INTERNAL_ERROR})


class ProtocolError(Exception):
    """Base class for every error that can reach a client."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        data: dict[str, Any] | None = None,
        *,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.data = data or {}
        # Log-only details, never serialized into the response.
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.data:
            body["data"] = self.data
        return body


class ParseError(ProtocolError):
    code = ErrorCode.PARSE_ERROR


class InvalidRequestError(ProtocolError):
    code = ErrorCode.INVALID_REQUEST


class MethodNotFoundError(ProtocolError):
    code = ErrorCode.METHOD_NOT_FOUND


class InvalidParamsError(ProtocolError):
    code = ErrorCode.INVALID_PARAMS


class InternalError(ProtocolError):
    code = ErrorCode.INTERNAL_ERROR


class AuthError(ProtocolError):
    code = ErrorCode.AUTH_ERROR


class ResourceNotFoundError(ProtocolError):
    code = ErrorCode.RESOURCE_ERROR


class BackendError(ProtocolError):
    code = ErrorCode.BACKEND_ERROR


class ToolError(ProtocolError):
    code = ErrorCode.TOOL_ERROR


class ValidationError(ProtocolError):
    code = ErrorCode.VALIDATION_ERROR


class AuthCause:
    """Values of ``data["cause"]`` on AuthError, for client guidance."""

    NOT_AUTHENTICATED = "not_authenticated"
    NO_FLOW = "no_flow"
    STALE_FLOW = "stale_flow"
    FLOW_REJECTED = "flow_rejected"
    INVALID_TOKEN = "invalid_token"


def missing_argument(name: str, *, tool: str | None = None) -> InvalidParamsError:
    data: dict[str, Any] = {"argument": name}
    if tool is not None:
        data["tool"] = tool
    return InvalidParamsError(f"Missing required argument: {name}", data)


def http_status_for(code: ErrorCode) -> int:
    return _HTTP_STATUS.get(code, 500)


def log_level_for(code: ErrorCode) -> int:
    return _LOG_LEVEL.get(code, logging.ERROR)


def to_protocol_error(exc: BaseException) -> ProtocolError:
    """Map any exception onto exactly one protocol error."""
    if isinstance(exc, ProtocolError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return BackendError(
            "Remember The Milk did not respond in time. Please try again.",
            {"reason": "timeout"},
            context={"exception": repr(exc)},
        )
    if isinstance(exc, httpx.HTTPError):
        return BackendError(
            "Could not reach Remember The Milk.",
            {"reason": "transport"},
            context={"exception": repr(exc)},
        )
    if isinstance(exc, CredentialStoreError):
        return InternalError(
            "The stored credential could not be accessed.",
            context={"exception": repr(exc)},
        )
    return InternalError(
        "An unexpected error occurred.",
        context={"exception": repr(exc)},
    )


def log_protocol_error(
    error: ProtocolError,
    *,
    operation: str,
    cause: BaseException | None = None,
) -> None:
    """Log a mapped error once, at the severity its code dictates."""
    level = log_level_for(error.code)
    exc_info: BaseException | None = None
    if error.code in _WITH_STACK:
        exc_info = cause if cause is not None else error
    logger.log(
        level,
        "%s failed with %s (%d): %s data=%s context=%s",
        operation,
        error.code.name,
        int(error.code),
        error.message,
        error.data,
        error.context,
        exc_info=exc_info,
    )


def error_envelope(error: ProtocolError, request_id: Any = None) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "error": error.to_dict(), "id": request_id}
