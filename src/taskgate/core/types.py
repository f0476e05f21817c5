"""Core type definitions shared across taskgate modules."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class AuthStatus(StrEnum):
    """Authentication state of the backend connection."""

    UNAUTHENTICATED = "unauthenticated"
    FLOW_STARTED = "flow_started"
    AUTHENTICATED = "authenticated"


class ServerInfo(BaseModel):
    name: str
    version: str


class HealthResponse(BaseModel):
    """Liveness check response."""

    status: str = "healthy"


class StatusResponse(BaseModel):
    """Operational status for local diagnostics."""

    server: dict[str, Any] = Field(default_factory=dict)
    auth: dict[str, Any] = Field(default_factory=dict)
