"""Handlers that render each catalog resource."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from taskgate.auth.controller import AuthFlowController
from taskgate.backend.client import TaskBackend
from taskgate.mcp import formatting
from taskgate.mcp.catalog import ResourceName

logger = logging.getLogger(__name__)

ResourceHandler = Callable[[dict[str, str]], Awaitable[str]]

# Backend search filters and headings for the date-scoped task views.
TASK_VIEWS: dict[ResourceName, tuple[str, str]] = {
    ResourceName.TASKS_ALL: ("", "All Tasks"),
    ResourceName.TASKS_TODAY: ("due:today", "Tasks Due Today"),
    ResourceName.TASKS_TOMORROW: ("due:tomorrow", "Tasks Due Tomorrow"),
    ResourceName.TASKS_WEEK: ('dueWithin:"1 week of today"', "Tasks Due This Week"),
}


class ResourceHandlers:
    def __init__(self, controller: AuthFlowController, backend: TaskBackend) -> None:
        self._controller = controller
        self._backend = backend

    def table(self) -> dict[ResourceName, ResourceHandler]:
        handlers: dict[ResourceName, ResourceHandler] = {
            ResourceName.AUTH: self.read_auth,
            ResourceName.TASKS_IN_LIST: self.read_list_tasks,
            ResourceName.LISTS_ALL: self.read_lists,
            ResourceName.TAGS_ALL: self.read_tags,
        }
        for name in TASK_VIEWS:
            handlers[name] = self._task_view(name)
        return handlers

    async def read_auth(self, args: dict[str, str]) -> str:
        """Start a new authorization, or report that none is needed."""
        if self._controller.is_authenticated():
            return formatting.already_authenticated(self._controller.username)
        flow = await self._controller.start_flow()
        return formatting.auth_instructions(flow)

    def _task_view(self, name: ResourceName) -> ResourceHandler:
        filter_expr, title = TASK_VIEWS[name]

        async def read(args: dict[str, str]) -> str:
            series = await self._backend.get_tasks(filter_expr)
            return formatting.format_tasks(series, title)

        return read

    async def read_list_tasks(self, args: dict[str, str]) -> str:
        list_id = args["list_id"]
        series = await self._backend.get_tasks(list_id=list_id)
        list_name = list_id
        for task_list in await self._backend.get_lists():
            if task_list.id == list_id:
                list_name = task_list.name
                break
        return formatting.format_tasks(series, f"Tasks in List: {list_name}")

    async def read_lists(self, args: dict[str, str]) -> str:
        return formatting.format_lists(await self._backend.get_lists())

    async def read_tags(self, args: dict[str, str]) -> str:
        tags = await self._backend.get_tags()
        series = await self._backend.get_tasks("status:incomplete")
        return formatting.format_tags(tags, series)
