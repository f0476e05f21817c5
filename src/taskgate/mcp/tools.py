"""Handlers for each catalog tool.

Required arguments have already been checked by the router when a handler
runs. Handlers still validate argument types and values. Every task
mutation goes through the timeline dispatcher.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from taskgate.auth.controller import AuthFlowController
from taskgate.backend.client import TaskBackend
from taskgate.core.errors import ValidationError
from taskgate.mcp import formatting
from taskgate.mcp.catalog import ToolName
from taskgate.mcp.timeline import TimelineDispatcher

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[str]]

_PRIORITY_ALIASES = {
    "1": "1",
    "high": "1",
    "2": "2",
    "medium": "2",
    "3": "3",
    "low": "3",
    "n": "N",
    "none": "N",
    "0": "N",
}

_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no", ""}


def parse_priority(value: Any) -> str:
    """Normalize a priority argument to the backend's 1/2/3/N values."""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError(
            "Priority must be 1, 2, 3 or N (or high, medium, low, none).",
            {"argument": "priority"},
        )
    priority = _PRIORITY_ALIASES.get(str(value).strip().lower())
    if priority is None:
        raise ValidationError(
            f"Invalid priority {value!r}. Use 1, 2, 3 or N (or high, medium, low, none).",
            {"argument": "priority", "value": str(value)},
        )
    return priority


def parse_tags(value: Any) -> list[str]:
    """Accept a comma-separated string or a list of strings."""
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list) and all(isinstance(item, str) for item in value):
        items = value
    else:
        raise ValidationError(
            "Tags must be a comma-separated string or a list of strings.",
            {"argument": "tags"},
        )
    tags = [item.strip() for item in items if item.strip()]
    if not tags:
        raise ValidationError("At least one tag is required.", {"argument": "tags"})
    return tags


def parse_flag(value: Any, name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
        return value.strip().lower() in _TRUE_STRINGS
    raise ValidationError(f"Argument {name} must be true or false.", {"argument": name})


def text_arg(arguments: dict[str, Any], name: str) -> str:
    """Return an optional scalar argument as a stripped string."""
    value = arguments.get(name)
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError(f"Argument {name} must be a string.", {"argument": name})
    return str(value).strip()


class ToolHandlers:
    def __init__(
        self,
        controller: AuthFlowController,
        backend: TaskBackend,
        timeline: TimelineDispatcher,
    ) -> None:
        self._controller = controller
        self._backend = backend
        self._timeline = timeline

    def table(self) -> dict[ToolName, ToolHandler]:
        return {
            ToolName.AUTHENTICATE: self.authenticate,
            ToolName.AUTH_STATUS: self.auth_status,
            ToolName.LOGOUT: self.logout,
            ToolName.ADD_TASK: self.add_task,
            ToolName.COMPLETE_TASK: self.complete_task,
            ToolName.UNCOMPLETE_TASK: self.uncomplete_task,
            ToolName.DELETE_TASK: self.delete_task,
            ToolName.SET_DUE_DATE: self.set_due_date,
            ToolName.SET_PRIORITY: self.set_priority,
            ToolName.ADD_TAGS: self.add_tags,
            ToolName.REMOVE_TAGS: self.remove_tags,
            ToolName.ADD_NOTE: self.add_note,
        }

    # -- session -------------------------------------------------------------

    async def authenticate(self, arguments: dict[str, Any]) -> str:
        outcome = await self._controller.complete_flow(arguments.get("frob"))
        return formatting.authenticated(
            outcome.username, already=outcome.already_authenticated
        )

    async def auth_status(self, arguments: dict[str, Any]) -> str:
        return formatting.auth_status(self._controller.snapshot())

    async def logout(self, arguments: dict[str, Any]) -> str:
        confirm = arguments.get("confirm")
        if confirm is not None and not isinstance(confirm, bool):
            raise ValidationError(
                "Argument confirm must be the boolean true or false.",
                {"argument": "confirm"},
            )
        if not confirm:
            return formatting.logout_prompt()
        await self._controller.logout()
        return formatting.logged_out()

    # -- task mutations ------------------------------------------------------

    @staticmethod
    def _ids(arguments: dict[str, Any]) -> tuple[str, str, str]:
        return (
            text_arg(arguments, "list_id"),
            text_arg(arguments, "taskseries_id"),
            text_arg(arguments, "task_id"),
        )

    async def add_task(self, arguments: dict[str, Any]) -> str:
        name = text_arg(arguments, "name")
        list_id = text_arg(arguments, "list_id") or None
        due_date = text_arg(arguments, "due_date")
        # Smart Add picks the due date out of the name.
        smart_name = f"{name} ^{due_date}" if due_date else name

        series = await self._timeline.run(
            ToolName.ADD_TASK,
            lambda timeline: self._backend.add_task(timeline, smart_name, list_id),
        )
        return formatting.task_added(name, series)

    async def complete_task(self, arguments: dict[str, Any]) -> str:
        ids = self._ids(arguments)
        await self._timeline.run(
            ToolName.COMPLETE_TASK,
            lambda timeline: self._backend.complete_task(timeline, *ids),
        )
        return formatting.task_completed()

    async def uncomplete_task(self, arguments: dict[str, Any]) -> str:
        ids = self._ids(arguments)
        await self._timeline.run(
            ToolName.UNCOMPLETE_TASK,
            lambda timeline: self._backend.uncomplete_task(timeline, *ids),
        )
        return formatting.task_uncompleted()

    async def delete_task(self, arguments: dict[str, Any]) -> str:
        ids = self._ids(arguments)
        await self._timeline.run(
            ToolName.DELETE_TASK,
            lambda timeline: self._backend.delete_task(timeline, *ids),
        )
        return formatting.task_deleted()

    async def set_due_date(self, arguments: dict[str, Any]) -> str:
        ids = self._ids(arguments)
        due = text_arg(arguments, "due_date")
        has_due_time = parse_flag(arguments.get("has_due_time"), "has_due_time")
        await self._timeline.run(
            ToolName.SET_DUE_DATE,
            lambda timeline: self._backend.set_due_date(
                timeline, *ids, due, has_due_time=has_due_time
            ),
        )
        return formatting.due_date_set(due)

    async def set_priority(self, arguments: dict[str, Any]) -> str:
        ids = self._ids(arguments)
        priority = parse_priority(arguments.get("priority"))
        await self._timeline.run(
            ToolName.SET_PRIORITY,
            lambda timeline: self._backend.set_priority(timeline, *ids, priority),
        )
        return formatting.priority_set(priority)

    async def add_tags(self, arguments: dict[str, Any]) -> str:
        ids = self._ids(arguments)
        tags = parse_tags(arguments.get("tags"))
        await self._timeline.run(
            ToolName.ADD_TAGS,
            lambda timeline: self._backend.add_tags(timeline, *ids, tags),
        )
        return formatting.tags_changed(tags, added=True)

    async def remove_tags(self, arguments: dict[str, Any]) -> str:
        ids = self._ids(arguments)
        tags = parse_tags(arguments.get("tags"))
        await self._timeline.run(
            ToolName.REMOVE_TAGS,
            lambda timeline: self._backend.remove_tags(timeline, *ids, tags),
        )
        return formatting.tags_changed(tags, added=False)

    async def add_note(self, arguments: dict[str, Any]) -> str:
        ids = self._ids(arguments)
        text = text_arg(arguments, "note_text")
        title = text_arg(arguments, "note_title")
        await self._timeline.run(
            ToolName.ADD_NOTE,
            lambda timeline: self._backend.add_note(timeline, *ids, text, title),
        )
        return formatting.note_added(title)
