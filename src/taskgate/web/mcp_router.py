"""HTTP transport for the protocol operations under ``/mcp``."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from taskgate.core.errors import MethodNotFoundError
from taskgate.mcp.router import ProtocolRouter

router = APIRouter(prefix="/mcp")


class InitializeRequest(BaseModel):
    server_name: str | None = None
    server_version: str | None = None
    id: Any = None


class CallToolRequest(BaseModel):
    name: str = ""
    arguments: dict[str, Any] | None = Field(default=None)
    id: Any = None


def _protocol(request: Request) -> ProtocolRouter:
    return request.app.state.protocol_router


@router.post("/initialize")
async def initialize(request: Request, body: InitializeRequest | None = None) -> dict[str, Any]:
    """Negotiate server info and capabilities."""
    body = body or InitializeRequest()
    request.state.rpc_id = body.id
    return _protocol(request).initialize(body.server_name, body.server_version)


@router.get("/list_resources")
async def list_resources(request: Request) -> dict[str, Any]:
    return _protocol(request).list_resources()


@router.get("/read_resource")
async def read_resource(request: Request, name: str | None = None) -> dict[str, Any]:
    return await _protocol(request).read_resource(name)


@router.get("/list_tools")
async def list_tools(request: Request) -> dict[str, Any]:
    return _protocol(request).list_tools()


@router.post("/call_tool")
async def call_tool(request: Request, body: CallToolRequest) -> dict[str, Any]:
    request.state.rpc_id = body.id
    return await _protocol(request).call_tool(body.name, body.arguments)


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def unknown_operation(path: str, request: Request) -> dict[str, Any]:
    # Also reached for a known path with the wrong HTTP method.
    raise MethodNotFoundError(
        f"Unknown operation: {request.method} /mcp/{path}",
        {"method": request.method, "path": f"/mcp/{path}"},
    )
