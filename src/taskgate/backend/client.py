"""Async client for the Remember The Milk REST API.

Requests are signed with the shared secret and always ask for the JSON
response format. The backend answers HTTP 200 even for failures and puts
the outcome in ``rsp.stat``, so every response is unwrapped by
:meth:`RTMClient._call` before any parsing happens.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlencode

import httpx

from taskgate.backend.models import AuthGrant, Note, Task, TaskList, TaskSeries
from taskgate.core.config import RTMConfig
from taskgate.core.errors import AuthCause, AuthError, BackendError

logger = logging.getLogger(__name__)

# Backend error codes with a meaning of their own.
RTM_INVALID_AUTH_TOKEN = 98
RTM_INVALID_FROB = 101

# Methods signed without the auth token.
_UNAUTHENTICATED_METHODS = frozenset({"rtm.auth.getFrob", "rtm.auth.getToken"})


def sign_params(params: dict[str, str], shared_secret: str) -> str:
    """MD5 hex digest of the secret followed by the sorted key/value pairs."""
    payload = shared_secret + "".join(f"{key}{params[key]}" for key in sorted(params))
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def _as_list(value: Any) -> list[Any]:
    # The JSON format collapses single-element arrays to objects and empty
    # collections to "" or [].
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


def _flag(value: Any) -> bool:
    return str(value) == "1"


def _parse_grant(auth: dict[str, Any]) -> AuthGrant:
    user = auth.get("user") or {}
    return AuthGrant(
        token=auth.get("token", ""),
        user_id=str(user.get("id", "")),
        username=user.get("username", ""),
        full_name=user.get("fullname", ""),
    )


def _parse_list(raw: dict[str, Any]) -> TaskList:
    return TaskList(
        id=str(raw.get("id", "")),
        name=raw.get("name", ""),
        deleted=_flag(raw.get("deleted")),
        locked=_flag(raw.get("locked")),
        archived=_flag(raw.get("archived")),
        smart=_flag(raw.get("smart")),
        position=int(raw.get("position") or 0),
    )


def _parse_tags(raw: Any) -> list[str]:
    if not isinstance(raw, dict):
        return []
    return [str(tag) for tag in _as_list(raw.get("tag"))]


def _parse_notes(raw: Any) -> list[Note]:
    if not isinstance(raw, dict):
        return []
    return [
        Note(
            id=str(note.get("id", "")),
            title=note.get("title", ""),
            text=note.get("$t", ""),
            created=note.get("created", ""),
        )
        for note in _as_list(raw.get("note"))
    ]


def _parse_task(raw: dict[str, Any]) -> Task:
    return Task(
        id=str(raw.get("id", "")),
        due=raw.get("due", ""),
        has_due_time=_flag(raw.get("has_due_time")),
        added=raw.get("added", ""),
        completed=raw.get("completed", ""),
        deleted=raw.get("deleted", ""),
        priority=raw.get("priority") or "N",
        postponed=int(raw.get("postponed") or 0),
        estimate=raw.get("estimate", ""),
    )


def _parse_series(raw: dict[str, Any], list_id: str) -> TaskSeries:
    return TaskSeries(
        id=str(raw.get("id", "")),
        name=raw.get("name", ""),
        list_id=list_id,
        url=raw.get("url", ""),
        location=raw.get("location_id", ""),
        tags=_parse_tags(raw.get("tags")),
        notes=_parse_notes(raw.get("notes")),
        tasks=[_parse_task(task) for task in _as_list(raw.get("task"))],
    )


def _parse_task_lists(container: Any) -> list[TaskSeries]:
    if not isinstance(container, dict):
        return []
    series: list[TaskSeries] = []
    for task_list in _as_list(container.get("list")):
        list_id = str(task_list.get("id", ""))
        for raw in _as_list(task_list.get("taskseries")):
            series.append(_parse_series(raw, list_id))
    return series


@runtime_checkable
class TaskBackend(Protocol):
    """What the gateway needs from the task backend."""

    def set_token(self, token: str | None) -> None: ...

    async def get_frob(self) -> str: ...

    def auth_url(self, frob: str) -> str: ...

    async def get_token(self, frob: str) -> AuthGrant: ...

    async def check_token(self) -> AuthGrant: ...

    async def create_timeline(self) -> str: ...

    async def get_lists(self) -> list[TaskList]: ...

    async def get_tasks(self, filter: str = "", list_id: str | None = None) -> list[TaskSeries]: ...

    async def get_tags(self) -> list[str]: ...

    async def add_task(
        self, timeline: str, name: str, list_id: str | None = None
    ) -> TaskSeries | None: ...

    async def complete_task(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str
    ) -> TaskSeries | None: ...

    async def uncomplete_task(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str
    ) -> TaskSeries | None: ...

    async def delete_task(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str
    ) -> TaskSeries | None: ...

    async def set_due_date(
        self,
        timeline: str,
        list_id: str,
        taskseries_id: str,
        task_id: str,
        due: str = "",
        *,
        has_due_time: bool = False,
    ) -> TaskSeries | None: ...

    async def set_priority(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str, priority: str
    ) -> TaskSeries | None: ...

    async def add_tags(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str, tags: list[str]
    ) -> TaskSeries | None: ...

    async def remove_tags(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str, tags: list[str]
    ) -> TaskSeries | None: ...

    async def add_note(
        self,
        timeline: str,
        list_id: str,
        taskseries_id: str,
        task_id: str,
        text: str,
        title: str = "",
    ) -> Note | None: ...

    async def close(self) -> None: ...


class RTMClient:
    """Signs, sends and unwraps Remember The Milk API calls."""

    def __init__(self, config: RTMConfig) -> None:
        self.config = config
        self._http = httpx.AsyncClient(timeout=httpx.Timeout(config.timeout_seconds))
        self._token: str | None = None
        self._token_lock = threading.Lock()

    # -- signing credential --------------------------------------------------

    def set_token(self, token: str | None) -> None:
        with self._token_lock:
            self._token = token or None

    @property
    def has_token(self) -> bool:
        with self._token_lock:
            return self._token is not None

    # -- auth ----------------------------------------------------------------

    async def get_frob(self) -> str:
        rsp = await self._call("rtm.auth.getFrob")
        frob = rsp.get("frob", "")
        if not frob:
            raise BackendError(
                "Remember The Milk returned an empty frob.",
                context={"method": "rtm.auth.getFrob"},
            )
        return frob

    def auth_url(self, frob: str) -> str:
        params = {
            "api_key": self.config.api_key,
            "perms": self.config.permissions,
            "frob": frob,
        }
        params["api_sig"] = sign_params(params, self.config.shared_secret)
        return f"{self.config.auth_endpoint}?{urlencode(params)}"

    async def get_token(self, frob: str) -> AuthGrant:
        try:
            rsp = await self._call("rtm.auth.getToken", {"frob": frob})
        except BackendError as exc:
            if exc.data.get("backend_code") == RTM_INVALID_FROB:
                raise AuthError(
                    "The authorization was not approved or has expired. "
                    "Read auth://rtm to start a new one.",
                    {"cause": AuthCause.FLOW_REJECTED},
                    context=exc.context,
                ) from exc
            raise
        grant = _parse_grant(rsp.get("auth") or {})
        if not grant.token:
            raise BackendError(
                "Remember The Milk returned no token.",
                context={"method": "rtm.auth.getToken"},
            )
        return grant

    async def check_token(self) -> AuthGrant:
        rsp = await self._call("rtm.auth.checkToken")
        return _parse_grant(rsp.get("auth") or {})

    # -- reads ---------------------------------------------------------------

    async def create_timeline(self) -> str:
        rsp = await self._call("rtm.timelines.create")
        return str(rsp.get("timeline") or "")

    async def get_lists(self) -> list[TaskList]:
        rsp = await self._call("rtm.lists.getList")
        lists = rsp.get("lists")
        if not isinstance(lists, dict):
            return []
        return [_parse_list(raw) for raw in _as_list(lists.get("list"))]

    async def get_tasks(self, filter: str = "", list_id: str | None = None) -> list[TaskSeries]:
        params: dict[str, str] = {}
        if filter:
            params["filter"] = filter
        if list_id:
            params["list_id"] = list_id
        rsp = await self._call("rtm.tasks.getList", params)
        return _parse_task_lists(rsp.get("tasks"))

    async def get_tags(self) -> list[str]:
        rsp = await self._call("rtm.tags.getList")
        tags = rsp.get("tags")
        if not isinstance(tags, dict):
            return []
        names = []
        for tag in _as_list(tags.get("tag")):
            names.append(tag.get("name", "") if isinstance(tag, dict) else str(tag))
        return [name for name in names if name]

    # -- mutations -----------------------------------------------------------

    async def add_task(
        self,
        timeline: str,
        name: str,
        list_id: str | None = None,
    ) -> TaskSeries | None:
        params = {"timeline": timeline, "name": name, "parse": "1"}
        if list_id:
            params["list_id"] = list_id
        return self._mutation_result(await self._call("rtm.tasks.add", params))

    async def complete_task(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str
    ) -> TaskSeries | None:
        return await self._task_call(
            "rtm.tasks.complete", timeline, list_id, taskseries_id, task_id
        )

    async def uncomplete_task(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str
    ) -> TaskSeries | None:
        return await self._task_call(
            "rtm.tasks.uncomplete", timeline, list_id, taskseries_id, task_id
        )

    async def delete_task(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str
    ) -> TaskSeries | None:
        return await self._task_call(
            "rtm.tasks.delete", timeline, list_id, taskseries_id, task_id
        )

    async def set_due_date(
        self,
        timeline: str,
        list_id: str,
        taskseries_id: str,
        task_id: str,
        due: str = "",
        *,
        has_due_time: bool = False,
    ) -> TaskSeries | None:
        extra = {"due": due}
        if due:
            extra["parse"] = "1"
            if has_due_time:
                extra["has_due_time"] = "1"
        return await self._task_call(
            "rtm.tasks.setDueDate", timeline, list_id, taskseries_id, task_id, extra
        )

    async def set_priority(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str, priority: str
    ) -> TaskSeries | None:
        return await self._task_call(
            "rtm.tasks.setPriority",
            timeline,
            list_id,
            taskseries_id,
            task_id,
            {"priority": priority},
        )

    async def add_tags(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str, tags: list[str]
    ) -> TaskSeries | None:
        return await self._task_call(
            "rtm.tasks.addTags",
            timeline,
            list_id,
            taskseries_id,
            task_id,
            {"tags": ",".join(tags)},
        )

    async def remove_tags(
        self, timeline: str, list_id: str, taskseries_id: str, task_id: str, tags: list[str]
    ) -> TaskSeries | None:
        return await self._task_call(
            "rtm.tasks.removeTags",
            timeline,
            list_id,
            taskseries_id,
            task_id,
            {"tags": ",".join(tags)},
        )

    async def add_note(
        self,
        timeline: str,
        list_id: str,
        taskseries_id: str,
        task_id: str,
        text: str,
        title: str = "",
    ) -> Note | None:
        rsp = await self._call(
            "rtm.tasks.notes.add",
            {
                "timeline": timeline,
                "list_id": list_id,
                "taskseries_id": taskseries_id,
                "task_id": task_id,
                "note_title": title,
                "note_text": text,
            },
        )
        notes = _parse_notes({"note": rsp.get("note")})
        return notes[0] if notes else None

    async def close(self) -> None:
        await self._http.aclose()

    # -- internal ------------------------------------------------------------

    async def _task_call(
        self,
        method: str,
        timeline: str,
        list_id: str,
        taskseries_id: str,
        task_id: str,
        extra: dict[str, str] | None = None,
    ) -> TaskSeries | None:
        params = {
            "timeline": timeline,
            "list_id": list_id,
            "taskseries_id": taskseries_id,
            "task_id": task_id,
        }
        params.update(extra or {})
        return self._mutation_result(await self._call(method, params))

    @staticmethod
    def _mutation_result(rsp: dict[str, Any]) -> TaskSeries | None:
        series = _parse_task_lists({"list": rsp.get("list")})
        return series[0] if series else None

    def _signed_params(self, method: str, params: dict[str, str] | None) -> dict[str, str]:
        signed = {
            key: str(value) for key, value in (params or {}).items() if value is not None
        }
        signed.update({"method": method, "api_key": self.config.api_key, "format": "json"})
        if method not in _UNAUTHENTICATED_METHODS:
            with self._token_lock:
                token = self._token
            if token:
                signed["auth_token"] = token
        signed["api_sig"] = sign_params(signed, self.config.shared_secret)
        return signed

    async def _call(self, method: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        """Send one signed request and return the ``rsp`` object on success."""
        if not self.config.has_credentials:
            raise BackendError(
                "Remember The Milk API key and shared secret are not configured.",
                {"reason": "not_configured"},
                context={"method": method},
            )

        logger.debug("Calling %s", method)
        resp = await self._http.get(
            self.config.api_endpoint, params=self._signed_params(method, params)
        )
        if resp.status_code != 200:
            raise BackendError(
                f"Remember The Milk returned HTTP {resp.status_code}.",
                {"method": method, "http_status": resp.status_code},
                context={"method": method},
            )

        try:
            rsp = resp.json()["rsp"]
        except (ValueError, KeyError, TypeError) as exc:
            raise BackendError(
                "Remember The Milk returned an unreadable response.",
                {"method": method},
                context={"method": method, "body": resp.text[:200]},
            ) from exc

        if not isinstance(rsp, dict):
            raise BackendError(
                "Remember The Milk returned an unreadable response.",
                {"method": method},
                context={"method": method, "body": resp.text[:200]},
            )

        if rsp.get("stat") == "ok":
            return rsp

        err = rsp.get("err")
        if not isinstance(err, dict):
            err = {}
        try:
            code = int(err.get("code", 0))
        except (TypeError, ValueError):
            code = 0
        message = err.get("msg", "Unknown error")

        if code == RTM_INVALID_AUTH_TOKEN and method not in _UNAUTHENTICATED_METHODS:
            raise AuthError(
                "The Remember The Milk token is no longer valid. "
                "Log out and read auth://rtm to authenticate again.",
                {"cause": AuthCause.INVALID_TOKEN, "backend_code": code},
                context={"method": method},
            )
        raise BackendError(
            f"Remember The Milk rejected {method}: {message}",
            {"method": method, "backend_code": code, "backend_message": message},
            context={"method": method, "params": sorted((params or {}).keys())},
        )
