"""Markdown rendering for every resource body and tool confirmation.

All user-facing text produced by the gateway comes from this module.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime

from taskgate.auth.models import AuthFlow, AuthSnapshot
from taskgate.backend.models import Task, TaskList, TaskSeries
from taskgate.core.types import AuthStatus

PRIORITY_LABELS = {"1": "High", "2": "Medium", "3": "Low", "N": "None"}
PRIORITY_SYMBOLS = {"1": "🔴", "2": "🟠", "3": "🔵", "N": "⚪"}


# --- Authentication ---


def auth_instructions(flow: AuthFlow) -> str:
    return (
        "# Authenticate with Remember The Milk\n\n"
        "## Step 1: Authorize this application\n\n"
        f"Open this link and approve access:\n\n{flow.auth_url}\n\n"
        "## Step 2: Complete authentication\n\n"
        "After approving, call the `authenticate` tool with this frob:\n\n"
        f"`{flow.frob}`\n\n"
        "Reading this resource again starts a new authorization and the frob "
        "above stops working.\n"
    )


def already_authenticated(username: str | None) -> str:
    who = f" as **{username}**" if username else ""
    return (
        "# Remember The Milk\n\n"
        f"✅ You are already authenticated{who}. "
        "All task resources and tools are available.\n"
    )


def authenticated(username: str, *, already: bool = False) -> str:
    who = f" as {username}" if username else ""
    if already:
        return f"Already authenticated{who}. No action was needed."
    return f"Authentication successful{who}. All task resources and tools are now available."


def auth_status(snapshot: AuthSnapshot) -> str:
    lines = ["# Remember The Milk Authentication Status", ""]
    if snapshot.status == AuthStatus.AUTHENTICATED:
        lines.append("✅ Authenticated")
        if snapshot.username:
            lines.append(f"- Username: {snapshot.username}")
        if snapshot.last_authenticated is not None:
            lines.append(f"- Since: {snapshot.last_authenticated.isoformat(timespec='seconds')}")
    else:
        lines.append("❌ Not authenticated")
        lines.append("")
        lines.append("Read the `auth://rtm` resource to start authenticating.")
    if snapshot.pending_flows:
        lines.append("")
        lines.append(
            "An authorization is waiting to be completed with the `authenticate` tool."
        )
    return "\n".join(lines) + "\n"


def logout_prompt() -> str:
    return (
        "This removes the stored Remember The Milk token and all task tools "
        "become unavailable. To continue, call this tool again with "
        "`confirm: true`."
    )


def logged_out() -> str:
    return (
        "You have been logged out of Remember The Milk. "
        "To reconnect, read the auth://rtm resource."
    )


# --- Tasks ---


def _parse_due(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_due(task: Task, today: date | None = None) -> str:
    due = _parse_due(task.due)
    if due is None:
        return task.due
    today = today or date.today()
    days = (due.date() - today).days
    if days == 0:
        label = "Today"
    elif days == 1:
        label = "Tomorrow"
    elif days == -1:
        label = "Yesterday (overdue)"
    elif days < 0:
        label = f"{due.date().isoformat()} (overdue)"
    else:
        label = due.date().isoformat()
    if task.has_due_time:
        label += f" {due.strftime('%H:%M')}"
    return label


def tasks_header(title: str | None = None) -> str:
    return f"# {title or 'All Tasks'}"


def _task_block(series: TaskSeries, task: Task, today: date | None) -> str:
    check = "[x]" if task.is_completed else "[ ]"
    symbol = PRIORITY_SYMBOLS.get(task.priority, PRIORITY_SYMBOLS["N"])
    notes = " 📝" if series.notes else ""
    lines = [f"- {check} {symbol} **{series.name}**{notes}"]

    meta = []
    if task.due:
        meta.append(f"Due: {format_due(task, today)}")
    if task.priority != "N":
        meta.append(f"Priority: {PRIORITY_LABELS.get(task.priority, task.priority)}")
    if series.tags:
        meta.append(f"Tags: {', '.join(sorted(series.tags))}")
    if meta:
        lines.append("  " + " | ".join(meta))

    lines.append(f"  ID: list={series.list_id}, taskseries={series.id}, task={task.id}")
    return "\n".join(lines)


def format_tasks(
    series: list[TaskSeries],
    title: str | None = None,
    today: date | None = None,
) -> str:
    blocks = []
    total = completed = 0
    for item in series:
        for task in item.tasks:
            if task.deleted:
                continue
            total += 1
            if task.is_completed:
                completed += 1
            blocks.append(_task_block(item, task, today))

    out = [tasks_header(title), ""]
    if not blocks:
        out.append("No tasks found.")
        return "\n".join(out) + "\n"

    out.append("\n\n".join(blocks))
    out.append("")
    noun = "task" if total == 1 else "tasks"
    out.append(
        f"{total} {noun} total, {completed} completed, {total - completed} remaining"
    )
    return "\n".join(out) + "\n"


# --- Lists and tags ---


def format_lists(lists: list[TaskList]) -> str:
    system_names = {"Inbox", "Sent"}
    active = sorted((item for item in lists if not item.deleted), key=lambda item: item.position)

    groups: dict[str, list[TaskList]] = {"Your Lists": [], "Smart Lists": [], "System Lists": []}
    for item in active:
        if item.smart:
            groups["Smart Lists"].append(item)
        elif item.locked or item.name in system_names:
            groups["System Lists"].append(item)
        else:
            groups["Your Lists"].append(item)

    out = ["# Task Lists", ""]
    if not active:
        out.append("No lists found.")
        return "\n".join(out) + "\n"

    for heading, items in groups.items():
        if not items:
            continue
        out.append(f"## {heading}")
        out.append("")
        for item in items:
            archived = " (archived)" if item.archived else ""
            out.append(f"- **{item.name}**{archived} (ID: {item.id})")
        out.append("")
    return "\n".join(out).rstrip("\n") + "\n"


def format_tags(tags: list[str], series: list[TaskSeries] | None = None) -> str:
    counts: Counter[str] = Counter()
    for item in series or []:
        if any(not task.deleted for task in item.tasks):
            counts.update(set(item.tags))

    names = sorted(set(tags) | set(counts))
    out = ["# Tags", ""]
    if not names:
        out.append("No tags found.")
        return "\n".join(out) + "\n"
    for name in names:
        n = counts.get(name, 0)
        out.append(f"- {name} ({n} task{'s' if n != 1 else ''})")
    return "\n".join(out) + "\n"


# --- Tool confirmations ---


def task_added(name: str, series: TaskSeries | None = None) -> str:
    message = f"Task '{name}' has been added successfully."
    if series is not None and series.tasks:
        task = series.tasks[0]
        message += (
            f" ID: list={series.list_id}, taskseries={series.id}, task={task.id}"
        )
    return message


def task_completed() -> str:
    return "Task has been marked as completed."


def task_uncompleted() -> str:
    return "Task has been marked as incomplete."


def task_deleted() -> str:
    return "Task has been deleted."


def due_date_set(due: str) -> str:
    if not due:
        return "Due date has been cleared."
    return f"Due date has been set to {due}."


def priority_set(priority: str) -> str:
    return f"Priority has been set to {PRIORITY_LABELS.get(priority, priority).lower()}."


def tags_changed(tags: list[str], *, added: bool) -> str:
    noun = "tag" if len(tags) == 1 else "tags"
    verb = "added to" if added else "removed from"
    return f"{len(tags)} {noun} ({', '.join(tags)}) {verb} the task."


def note_added(title: str = "") -> str:
    if title:
        return f"Note '{title}' has been added to the task."
    return "Note has been added to the task."
