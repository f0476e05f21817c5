"""Authentication data models."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from taskgate.core.types import AuthStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthFlow(BaseModel):
    """An in-flight authorization waiting for the human to approve it."""

    frob: str
    auth_url: str
    issued_at: datetime = Field(default_factory=_utcnow)


class TokenRecord(BaseModel):
    """The long-lived credential persisted by the credential store."""

    token: str
    user_id: str = ""
    username: str = ""
    full_name: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class AuthSnapshot(BaseModel):
    """Read-only view of the controller state for reporting."""

    status: AuthStatus
    username: str | None = None
    pending_flows: int = 0
    last_authenticated: datetime | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.status == AuthStatus.AUTHENTICATED


class ExchangeOutcome(BaseModel):
    """Result of completing an authorization."""

    username: str = ""
    already_authenticated: bool = False
