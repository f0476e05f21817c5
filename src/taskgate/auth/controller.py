"""Authentication state machine for the backend connection.

States move Unauthenticated -> FlowStarted -> Authenticated. Only an
explicit logout moves back to Unauthenticated. State lives on the
controller instance; there is no module-level auth state. A
``threading.Lock`` guards status, flow and account fields, and no await
happens while it is held.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone

from taskgate.auth.models import AuthFlow, AuthSnapshot, ExchangeOutcome, TokenRecord
from taskgate.auth.store import CredentialStore, CredentialStoreError
from taskgate.backend.client import TaskBackend
from taskgate.backend.models import AuthGrant
from taskgate.core.errors import AuthCause, AuthError, missing_argument
from taskgate.core.types import AuthStatus

logger = logging.getLogger(__name__)


def _redact(value: str) -> str:
    return f"{value[:6]}..." if len(value) > 6 else "***"


class AuthFlowController:
    """Owns the frob/token exchange and the derived authentication status."""

    def __init__(self, backend: TaskBackend, store: CredentialStore) -> None:
        self._backend = backend
        self._store = store
        self._lock = threading.Lock()
        self._status = AuthStatus.UNAUTHENTICATED
        self._flow: AuthFlow | None = None
        self._username: str | None = None
        self._last_authenticated: datetime | None = None
        # Frob of the exchange currently awaiting the backend, and its completion.
        self._exchanging: str | None = None
        self._exchange_done: asyncio.Event | None = None

    @classmethod
    def with_status(
        cls,
        backend: TaskBackend,
        store: CredentialStore,
        status: AuthStatus,
        *,
        token: str | None = None,
        username: str | None = None,
        flow: AuthFlow | None = None,
    ) -> AuthFlowController:
        """Build a controller already in ``status``, for tests and embedders.

        Nothing is read from or written to the store. When ``token`` is given
        it is installed as the backend's signing credential.
        """
        controller = cls(backend, store)
        controller._status = status
        controller._flow = flow
        controller._username = username
        if status == AuthStatus.AUTHENTICATED:
            controller._last_authenticated = datetime.now(timezone.utc)
        if token is not None:
            backend.set_token(token)
        return controller

    # -- read accessors ------------------------------------------------------

    @property
    def status(self) -> AuthStatus:
        with self._lock:
            return self._status

    def is_authenticated(self) -> bool:
        return self.status == AuthStatus.AUTHENTICATED

    def active_flow_count(self) -> int:
        with self._lock:
            return 1 if self._flow is not None else 0

    @property
    def current_flow(self) -> AuthFlow | None:
        with self._lock:
            return self._flow

    @property
    def username(self) -> str | None:
        with self._lock:
            return self._username

    def snapshot(self) -> AuthSnapshot:
        with self._lock:
            return AuthSnapshot(
                status=self._status,
                username=self._username,
                pending_flows=1 if self._flow is not None else 0,
                last_authenticated=self._last_authenticated,
            )

    # -- transitions ---------------------------------------------------------

    async def start_flow(self) -> AuthFlow:
        """Request a frob and make it the single in-flight flow.

        Any earlier flow that was never exchanged is discarded.
        """
        frob = await self._backend.get_frob()
        flow = AuthFlow(frob=frob, auth_url=self._backend.auth_url(frob))
        with self._lock:
            replaced = self._flow is not None
            self._flow = flow
            if self._status != AuthStatus.AUTHENTICATED:
                self._status = AuthStatus.FLOW_STARTED
        logger.info(
            "Started authorization flow frob=%s%s",
            _redact(frob),
            " (replaced pending flow)" if replaced else "",
        )
        return flow

    async def complete_flow(self, frob: str | None) -> ExchangeOutcome:
        """Exchange the in-flight frob for a long-lived token.

        Raises:
            InvalidParamsError: If ``frob`` is missing or blank.
            AuthError: If there is no flow, the frob belongs to a replaced
                flow, or the backend rejects the exchange.
        """
        if not isinstance(frob, str) or not frob.strip():
            raise missing_argument("frob", tool="authenticate")
        frob = frob.strip()

        with self._lock:
            if self._status == AuthStatus.AUTHENTICATED:
                return self._already_authenticated()
            pending = self._exchange_done if self._exchanging == frob else None
            if pending is None:
                self._consume_flow(frob)
                pending = self._exchange_done = asyncio.Event()
                self._exchanging = frob
                owner = True
            else:
                owner = False

        if not owner:
            # A retry of the exchange that is already talking to the backend.
            await pending.wait()
            with self._lock:
                if self._status == AuthStatus.AUTHENTICATED:
                    return self._already_authenticated()
            raise AuthError(
                "The authorization attempt for this frob did not complete. "
                "Read auth://rtm to start a new one.",
                {"cause": AuthCause.NO_FLOW},
            )

        try:
            return await self._exchange(frob)
        finally:
            with self._lock:
                self._exchanging = None
                self._exchange_done = None
            pending.set()

    def _consume_flow(self, frob: str) -> None:
        flow = self._flow
        if flow is None:
            raise AuthError(
                "There is no authorization in progress. Read auth://rtm to start one.",
                {"cause": AuthCause.NO_FLOW},
            )
        if flow.frob != frob:
            raise AuthError(
                "This frob belongs to an older authorization. "
                "Use the frob from the most recent auth://rtm read.",
                {"cause": AuthCause.STALE_FLOW},
            )
        # Consumed by this attempt whatever the outcome.
        self._flow = None

    def _already_authenticated(self) -> ExchangeOutcome:
        return ExchangeOutcome(username=self._username or "", already_authenticated=True)

    async def _exchange(self, frob: str) -> ExchangeOutcome:
        now = datetime.now(timezone.utc)
        try:
            grant = await self._backend.get_token(frob)
            await asyncio.to_thread(self._persist, grant, now)
        except Exception:
            with self._lock:
                if self._flow is None and self._status == AuthStatus.FLOW_STARTED:
                    self._status = AuthStatus.UNAUTHENTICATED
            raise

        self._backend.set_token(grant.token)

        with self._lock:
            self._status = AuthStatus.AUTHENTICATED
            self._username = grant.username
            self._last_authenticated = now
        logger.info("Authenticated as %s", grant.username or "unknown user")
        return ExchangeOutcome(username=grant.username)

    def _persist(self, grant: AuthGrant, now: datetime) -> None:
        existing = self._load_existing()
        self._store.save(
            TokenRecord(
                token=grant.token,
                user_id=grant.user_id,
                username=grant.username,
                full_name=grant.full_name,
                created_at=existing.created_at if existing is not None else now,
                updated_at=now,
            )
        )

    def _load_existing(self) -> TokenRecord | None:
        try:
            return self._store.load()
        except CredentialStoreError:
            logger.warning("Stored token file is unreadable; ignoring it")
            return None

    async def logout(self) -> None:
        """Forget the token on disk and in memory."""
        await asyncio.to_thread(self._store.delete)
        self._backend.set_token(None)
        with self._lock:
            self._status = AuthStatus.UNAUTHENTICATED
            self._flow = None
            self._username = None
        logger.info("Logged out")

    async def restore(self) -> AuthStatus:
        """Re-establish authentication from the stored token at startup.

        A token the backend rejects is deleted. A token that cannot be
        checked because the backend is unreachable is kept for next time.
        """
        record = await asyncio.to_thread(self._load_existing)
        if record is None:
            logger.info("No stored token at %s", self._store.path)
            return self.status

        self._backend.set_token(record.token)
        try:
            grant = await self._backend.check_token()
        except AuthError:
            logger.warning("Stored token was rejected; removing it")
            self._backend.set_token(None)
            await asyncio.to_thread(self._store.delete)
            return self.status
        except Exception as exc:
            logger.warning("Could not verify stored token: %s", exc)
            self._backend.set_token(None)
            return self.status

        with self._lock:
            self._status = AuthStatus.AUTHENTICATED
            self._username = grant.username or record.username
            self._last_authenticated = record.updated_at
        logger.info("Restored session for %s", self._username or "unknown user")
        return AuthStatus.AUTHENTICATED
