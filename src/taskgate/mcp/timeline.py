"""Wraps each mutating backend call in a freshly created timeline."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from taskgate.backend.client import TaskBackend
from taskgate.core.errors import BackendError, ProtocolError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TimelineDispatcher:
    """Obtains one timeline per action and hands it to that action only.

    Timelines are never cached or shared between calls, so every change can
    be undone on its own in the backend.
    """

    def __init__(self, backend: TaskBackend) -> None:
        self._backend = backend

    async def run(self, action: str, mutation: Callable[[str], Awaitable[T]]) -> T:
        try:
            timeline = await self._backend.create_timeline()
        except ProtocolError:
            raise
        except Exception as exc:
            raise BackendError(
                "Could not start a Remember The Milk timeline.",
                {"action": action},
                context={"action": action, "exception": repr(exc)},
            ) from exc
        if not timeline:
            raise BackendError(
                "Remember The Milk returned an empty timeline.",
                {"action": action},
                context={"action": action},
            )

        logger.debug("Running %s on timeline %s", action, timeline)
        return await mutation(timeline)
