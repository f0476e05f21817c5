"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from taskgate.auth.controller import AuthFlowController
from taskgate.auth.store import CredentialStore
from taskgate.backend.models import AuthGrant, Note, TaskList, TaskSeries
from taskgate.core.config import AuthConfig, RTMConfig, ServerConfig, Settings
from taskgate.core.types import AuthStatus, ServerInfo
from taskgate.mcp.resources import ResourceHandlers
from taskgate.mcp.router import ProtocolRouter
from taskgate.mcp.timeline import TimelineDispatcher
from taskgate.mcp.tools import ToolHandlers

TEST_TOKEN = "token-abc123"


class FakeBackend:
    """In-memory backend that records every call in order.

    ``calls`` holds ``(method, args)`` tuples. Set ``failures[method]`` to an
    exception to make that method raise it.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, BaseException] = {}
        self.token: str | None = None
        self.frobs = iter(f"frob-{n}" for n in range(1, 100))
        self.grant = AuthGrant(token=TEST_TOKEN, user_id="42", username="milkman")
        self.lists: list[TaskList] = []
        self.series: list[TaskSeries] = []
        self.tags: list[str] = []
        self.timeline_value: str | None = None
        self.token_delay = 0.0
        self._timelines = 0
        self.closed = False

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        failure = self.failures.get(method)
        if failure is not None:
            raise failure

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def set_token(self, token: str | None) -> None:
        self.token = token

    async def get_frob(self) -> str:
        self._record("get_frob")
        return next(self.frobs)

    def auth_url(self, frob: str) -> str:
        return f"https://www.rememberthemilk.com/services/auth/?api_key=key&perms=delete&frob={frob}"

    async def get_token(self, frob: str) -> AuthGrant:
        if self.token_delay:
            await asyncio.sleep(self.token_delay)
        self._record("get_token", frob)
        return self.grant

    async def check_token(self) -> AuthGrant:
        self._record("check_token")
        return self.grant

    async def create_timeline(self) -> str:
        self._record("create_timeline")
        self._timelines += 1
        if self.timeline_value is not None:
            return self.timeline_value
        return f"tl-{self._timelines}"

    async def get_lists(self) -> list[TaskList]:
        self._record("get_lists")
        return self.lists

    async def get_tasks(self, filter: str = "", list_id: str | None = None) -> list[TaskSeries]:
        self._record("get_tasks", filter, list_id)
        return self.series

    async def get_tags(self) -> list[str]:
        self._record("get_tags")
        return self.tags

    async def add_task(self, timeline: str, name: str, list_id: str | None = None) -> TaskSeries | None:
        self._record("add_task", timeline, name, list_id)
        return None

    async def complete_task(self, timeline, list_id, taskseries_id, task_id):
        self._record("complete_task", timeline, list_id, taskseries_id, task_id)

    async def uncomplete_task(self, timeline, list_id, taskseries_id, task_id):
        self._record("uncomplete_task", timeline, list_id, taskseries_id, task_id)

    async def delete_task(self, timeline, list_id, taskseries_id, task_id):
        self._record("delete_task", timeline, list_id, taskseries_id, task_id)

    async def set_due_date(self, timeline, list_id, taskseries_id, task_id, due="", *, has_due_time=False):
        self._record("set_due_date", timeline, list_id, taskseries_id, task_id, due, has_due_time)

    async def set_priority(self, timeline, list_id, taskseries_id, task_id, priority):
        self._record("set_priority", timeline, list_id, taskseries_id, task_id, priority)

    async def add_tags(self, timeline, list_id, taskseries_id, task_id, tags):
        self._record("add_tags", timeline, list_id, taskseries_id, task_id, tags)

    async def remove_tags(self, timeline, list_id, taskseries_id, task_id, tags):
        self._record("remove_tags", timeline, list_id, taskseries_id, task_id, tags)

    async def add_note(self, timeline, list_id, taskseries_id, task_id, text, title=""):
        self._record("add_note", timeline, list_id, taskseries_id, task_id, text, title)
        return Note(id="n1", title=title, text=text)

    async def close(self) -> None:
        self.closed = True


TASK_IDS = {"list_id": "100", "taskseries_id": "200", "task_id": "300"}


def build_router(controller: AuthFlowController, backend: FakeBackend) -> ProtocolRouter:
    return ProtocolRouter(
        ServerInfo(name="taskgate", version="0.1.0"),
        controller,
        ResourceHandlers(controller, backend),
        ToolHandlers(controller, backend, TimelineDispatcher(backend)),
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path / "auth" / "token.json")


@pytest.fixture
def controller(backend, store) -> AuthFlowController:
    return AuthFlowController(backend, store)


@pytest.fixture
def authed_controller(backend, store) -> AuthFlowController:
    return AuthFlowController.with_status(
        backend, store, AuthStatus.AUTHENTICATED, token=TEST_TOKEN, username="milkman"
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        server=ServerConfig(name="taskgate", version="0.1.0"),
        rtm=RTMConfig(api_key="key", shared_secret="secret"),
        auth=AuthConfig(token_path=str(tmp_path / "token.json")),
    )
