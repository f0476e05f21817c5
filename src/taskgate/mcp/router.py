"""Protocol router: the single entry point for the five protocol operations.

The router decides what is visible for the current authentication status,
resolves names against the catalog, checks required arguments and turns
handler results into response bodies. Any failure leaves the router as a
:class:`ProtocolError`. Exceptions that are not already protocol errors
are mapped with ``raise ... from exc`` so the transport can log the
original stack once.
"""

from __future__ import annotations

import logging
from typing import Any

from taskgate.auth.controller import AuthFlowController
from taskgate.core.errors import (
    AuthCause,
    AuthError,
    InvalidParamsError,
    MethodNotFoundError,
    ProtocolError,
    ResourceNotFoundError,
    missing_argument,
    to_protocol_error,
)
from taskgate.core.types import ServerInfo
from taskgate.mcp import catalog
from taskgate.mcp.catalog import ResourceName, ToolDefinition, ToolName
from taskgate.mcp.resources import ResourceHandler, ResourceHandlers
from taskgate.mcp.tools import ToolHandler, ToolHandlers

logger = logging.getLogger(__name__)

CAPABILITIES: dict[str, dict[str, bool]] = {
    "resources": {"list": True, "read": True, "subscribe": False, "listChanged": False},
    "tools": {"list": True, "call": True, "listChanged": False},
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _not_authenticated(kind: str, name: str) -> AuthError:
    return AuthError(
        "Not authenticated with Remember The Milk. Read auth://rtm to get started.",
        {"cause": AuthCause.NOT_AUTHENTICATED, kind: name},
    )


class ProtocolRouter:
    """Gates, resolves and dispatches protocol requests."""

    def __init__(
        self,
        server_info: ServerInfo,
        controller: AuthFlowController,
        resources: ResourceHandlers,
        tools: ToolHandlers,
    ) -> None:
        self.server_info = server_info
        self._controller = controller
        self._resources: dict[ResourceName, ResourceHandler] = resources.table()
        self._tools: dict[ToolName, ToolHandler] = tools.table()

        missing = (set(ResourceName) - set(self._resources)) | (set(ToolName) - set(self._tools))
        if missing:
            names = ", ".join(sorted(str(name) for name in missing))
            raise RuntimeError(f"No handler registered for: {names}")

    # -- negotiate / list ----------------------------------------------------

    def initialize(
        self, client_name: str | None = None, client_version: str | None = None
    ) -> dict[str, Any]:
        if client_name:
            logger.info("Client %s %s connected", client_name, client_version or "")
        return {
            "server_info": self.server_info.model_dump(),
            "capabilities": {group: dict(flags) for group, flags in CAPABILITIES.items()},
        }

    def list_resources(self) -> dict[str, Any]:
        visible = catalog.visible_resources(self._controller.is_authenticated())
        return {"resources": [catalog.definition_dict(r) for r in visible]}

    def list_tools(self) -> dict[str, Any]:
        visible = catalog.visible_tools(self._controller.is_authenticated())
        return {"tools": [catalog.definition_dict(t) for t in visible]}

    # -- read / call ---------------------------------------------------------

    async def read_resource(self, name: str | None) -> dict[str, Any]:
        if not isinstance(name, str) or not name.strip():
            raise missing_argument("name")
        name = name.strip()

        resolved = catalog.resolve_resource(name)
        public = resolved is not None and resolved[0] in catalog.PUBLIC_RESOURCES
        if not public and not self._controller.is_authenticated():
            raise _not_authenticated("resource", name)
        if resolved is None:
            raise ResourceNotFoundError(
                f"Resource not found: {name}",
                {
                    "resource": name,
                    "available": [str(r.name) for r in catalog.RESOURCES],
                },
            )

        resource, args = resolved
        content = await self._guard(self._resources[resource](args))
        return {"content": content, "mime_type": catalog.get_resource(resource).mime_type}

    async def call_tool(self, name: str | None, arguments: Any = None) -> dict[str, Any]:
        if not isinstance(name, str) or not name.strip():
            raise missing_argument("name")
        name = name.strip()
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError(
                "Tool arguments must be an object.", {"tool": name}
            )

        tool = catalog.resolve_tool(name)
        public = tool is not None and tool in catalog.PUBLIC_TOOLS
        if not public and not self._controller.is_authenticated():
            raise _not_authenticated("tool", name)
        if tool is None:
            raise MethodNotFoundError(
                f"Tool not found: {name}",
                {"tool": name, "available": [str(t.name) for t in catalog.TOOLS]},
            )

        self._check_required(catalog.get_tool(tool), arguments)
        result = await self._guard(self._tools[tool](arguments))
        return {"result": result}

    # -- internal ------------------------------------------------------------

    @staticmethod
    def _check_required(definition: ToolDefinition, arguments: dict[str, Any]) -> None:
        for arg_name in definition.required_arguments:
            if _is_blank(arguments.get(arg_name)):
                raise missing_argument(arg_name, tool=str(definition.name))

    @staticmethod
    async def _guard(awaitable: Any) -> Any:
        try:
            return await awaitable
        except ProtocolError:
            raise
        except Exception as exc:
            raise to_protocol_error(exc) from exc
