"""Typed results returned by the Remember The Milk client."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AuthGrant(BaseModel):
    """Token and account details returned by getToken / checkToken."""

    token: str
    user_id: str = ""
    username: str = ""
    full_name: str = ""


class TaskList(BaseModel):
    id: str
    name: str
    deleted: bool = False
    locked: bool = False
    archived: bool = False
    smart: bool = False
    position: int = 0


class Note(BaseModel):
    id: str
    title: str = ""
    text: str = ""
    created: str = ""


class Task(BaseModel):
    """A single occurrence inside a task series."""

    id: str
    due: str = ""
    has_due_time: bool = False
    added: str = ""
    completed: str = ""
    deleted: str = ""
    priority: str = "N"
    postponed: int = 0
    estimate: str = ""

    @property
    def is_completed(self) -> bool:
        return bool(self.completed)


class TaskSeries(BaseModel):
    """A named task with its tags, notes and occurrences."""

    id: str
    name: str
    list_id: str
    url: str = ""
    location: str = ""
    tags: list[str] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)
