"""Static definitions of the resources and tools the gateway exposes.

Names are closed enums. The router builds its handler tables from them and
refuses to start if any name lacks a handler. Declaration order here is the
order clients see in listings.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

MARKDOWN = "text/markdown"

LIST_TASKS_PREFIX = "tasks://list/"


class ResourceName(StrEnum):
    AUTH = "auth://rtm"
    TASKS_ALL = "tasks://all"
    TASKS_TODAY = "tasks://today"
    TASKS_TOMORROW = "tasks://tomorrow"
    TASKS_WEEK = "tasks://week"
    TASKS_IN_LIST = "tasks://list/{list_id}"
    LISTS_ALL = "lists://all"
    TAGS_ALL = "tags://all"


class ToolName(StrEnum):
    AUTHENTICATE = "authenticate"
    AUTH_STATUS = "auth_status"
    LOGOUT = "logout"
    ADD_TASK = "add_task"
    COMPLETE_TASK = "complete_task"
    UNCOMPLETE_TASK = "uncomplete_task"
    DELETE_TASK = "delete_task"
    SET_DUE_DATE = "set_due_date"
    SET_PRIORITY = "set_priority"
    ADD_TAGS = "add_tags"
    REMOVE_TAGS = "remove_tags"
    ADD_NOTE = "add_note"


class ArgumentDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    required: bool = False


class ResourceDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: ResourceName
    description: str
    arguments: tuple[ArgumentDefinition, ...] = ()
    mime_type: str = MARKDOWN


class ToolDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: ToolName
    description: str
    arguments: tuple[ArgumentDefinition, ...] = ()

    @property
    def required_arguments(self) -> list[str]:
        return [arg.name for arg in self.arguments if arg.required]


def _arg(name: str, description: str, required: bool = False) -> ArgumentDefinition:
    return ArgumentDefinition(name=name, description=description, required=required)


_TASK_IDS = (
    _arg("list_id", "ID of the list containing the task", True),
    _arg("taskseries_id", "ID of the task series", True),
    _arg("task_id", "ID of the task", True),
)


RESOURCES: tuple[ResourceDefinition, ...] = (
    ResourceDefinition(
        name=ResourceName.AUTH,
        description="Start Remember The Milk authentication and get the authorization link",
    ),
    ResourceDefinition(name=ResourceName.TASKS_ALL, description="All tasks across all lists"),
    ResourceDefinition(name=ResourceName.TASKS_TODAY, description="Tasks due today"),
    ResourceDefinition(name=ResourceName.TASKS_TOMORROW, description="Tasks due tomorrow"),
    ResourceDefinition(name=ResourceName.TASKS_WEEK, description="Tasks due within the next 7 days"),
    ResourceDefinition(
        name=ResourceName.TASKS_IN_LIST,
        description="Tasks in a specific list",
        arguments=(_arg("list_id", "ID of the list", True),),
    ),
    ResourceDefinition(name=ResourceName.LISTS_ALL, description="All task lists"),
    ResourceDefinition(name=ResourceName.TAGS_ALL, description="All tags in use"),
)

TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name=ToolName.AUTHENTICATE,
        description="Complete authentication with the frob from auth://rtm",
        arguments=(_arg("frob", "The frob shown by the auth://rtm resource", True),),
    ),
    ToolDefinition(
        name=ToolName.AUTH_STATUS,
        description="Show the current Remember The Milk authentication status",
    ),
    ToolDefinition(
        name=ToolName.LOGOUT,
        description="Log out and remove the stored Remember The Milk token",
        arguments=(
            _arg("confirm", "Boolean true to confirm the logout; omitted or false returns a prompt"),
        ),
    ),
    ToolDefinition(
        name=ToolName.ADD_TASK,
        description="Add a new task",
        arguments=(
            _arg("name", "Name of the task; Smart Add syntax is understood", True),
            _arg("list_id", "ID of the list to add the task to"),
            _arg("due_date", "Due date such as 'today', 'tomorrow' or '2026-12-31'"),
        ),
    ),
    ToolDefinition(
        name=ToolName.COMPLETE_TASK,
        description="Mark a task as completed",
        arguments=_TASK_IDS,
    ),
    ToolDefinition(
        name=ToolName.UNCOMPLETE_TASK,
        description="Mark a completed task as incomplete",
        arguments=_TASK_IDS,
    ),
    ToolDefinition(
        name=ToolName.DELETE_TASK,
        description="Delete a task",
        arguments=_TASK_IDS,
    ),
    ToolDefinition(
        name=ToolName.SET_DUE_DATE,
        description="Set or clear the due date of a task",
        arguments=_TASK_IDS
        + (
            _arg("due_date", "New due date; leave empty to clear it"),
            _arg("has_due_time", "Whether the due date includes a time of day"),
        ),
    ),
    ToolDefinition(
        name=ToolName.SET_PRIORITY,
        description="Set the priority of a task",
        arguments=_TASK_IDS
        + (_arg("priority", "1/high, 2/medium, 3/low or N/none", True),),
    ),
    ToolDefinition(
        name=ToolName.ADD_TAGS,
        description="Add tags to a task",
        arguments=_TASK_IDS + (_arg("tags", "Comma-separated tags or a list of tags", True),),
    ),
    ToolDefinition(
        name=ToolName.REMOVE_TAGS,
        description="Remove tags from a task",
        arguments=_TASK_IDS + (_arg("tags", "Comma-separated tags or a list of tags", True),),
    ),
    ToolDefinition(
        name=ToolName.ADD_NOTE,
        description="Add a note to a task",
        arguments=_TASK_IDS
        + (
            _arg("note_text", "Body of the note", True),
            _arg("note_title", "Optional title of the note"),
        ),
    ),
)

# The only entries visible before authentication.
PUBLIC_RESOURCES = frozenset({ResourceName.AUTH})
PUBLIC_TOOLS = frozenset({ToolName.AUTHENTICATE})

_RESOURCE_INDEX = {definition.name: definition for definition in RESOURCES}
_TOOL_INDEX = {definition.name: definition for definition in TOOLS}


def visible_resources(authenticated: bool) -> list[ResourceDefinition]:
    return [r for r in RESOURCES if authenticated or r.name in PUBLIC_RESOURCES]


def visible_tools(authenticated: bool) -> list[ToolDefinition]:
    return [t for t in TOOLS if authenticated or t.name in PUBLIC_TOOLS]


def resolve_resource(uri: str) -> tuple[ResourceName, dict[str, str]] | None:
    """Match a requested URI to a resource name and its path arguments.

    Names match exactly, except list-scoped tasks, which match by prefix and
    carry the suffix as ``list_id``.
    """
    try:
        name = ResourceName(uri)
    except ValueError:
        name = None
    if name is not None and name != ResourceName.TASKS_IN_LIST:
        return name, {}
    if uri.startswith(LIST_TASKS_PREFIX):
        list_id = uri[len(LIST_TASKS_PREFIX):].strip()
        if list_id and "/" not in list_id and list_id != "{list_id}":
            return ResourceName.TASKS_IN_LIST, {"list_id": list_id}
    return None


def resolve_tool(name: str) -> ToolName | None:
    try:
        return ToolName(name)
    except ValueError:
        return None


def get_resource(name: ResourceName) -> ResourceDefinition:
    return _RESOURCE_INDEX[name]


def get_tool(name: ToolName) -> ToolDefinition:
    return _TOOL_INDEX[name]


def definition_dict(definition: ResourceDefinition | ToolDefinition) -> dict[str, object]:
    """Wire shape of a catalog entry."""
    return {
        "name": str(definition.name),
        "description": definition.description,
        "arguments": [arg.model_dump() for arg in definition.arguments],
    }

