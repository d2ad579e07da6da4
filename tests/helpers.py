"""Shared test helpers and stub classes.

This module contains reusable test stubs that are used across multiple test files.
Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, Callable

from penwright.ai.types import TransformRequest
from penwright.events import Event, EventBus


class _ManualHandle:
    __slots__ = ("due", "callback", "cancelled")

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic clock for debounce tests.

    Example:
        scheduler = ManualScheduler()
        task = DebouncedTask(callback, 1.0, scheduler=scheduler)
        task.schedule()
        scheduler.advance(1.0)  # callback runs here
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: list[_ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self.now + delay, callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for handle in self._handles if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted(
            (handle for handle in self._handles if not handle.cancelled and handle.due <= self.now),
            key=lambda handle: handle.due,
        )
        for handle in due:
            self._handles.remove(handle)
            if not handle.cancelled:
                handle.cancelled = True
                handle.callback()
        self._handles = [handle for handle in self._handles if not handle.cancelled]


class FakeBackend:
    """Transform backend returning canned bodies in order.

    An entry that is an exception instance is raised instead of returned.
    """

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.requests: list[TransformRequest] = []
        self.closed = False

    async def send(self, request: TransformRequest) -> Any:
        self.requests.append(request)
        response = self.responses.pop(0) if self.responses else {"type": "reply", "result": "ok"}
        if isinstance(response, BaseException):
            raise response
        return response

    async def aclose(self) -> None:
        self.closed = True


class GatedBackend(FakeBackend):
    """Backend that holds every request until :attr:`release` is set."""

    def __init__(self, *responses: Any) -> None:
        super().__init__(*responses)
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def send(self, request: TransformRequest) -> Any:
        self.started.set()
        await self.release.wait()
        return await super().send(request)


class StaticSelection:
    def __init__(self, text: str = "") -> None:
        self.text = text

    def selected_text(self) -> str:
        return self.text


def collect(bus: EventBus, event_type: type[Event]) -> list[Any]:
    """Subscribe a recorder for ``event_type`` and return its list."""

    received: list[Any] = []
    bus.subscribe(event_type, received.append)
    return received


class FakeCompletions:
    """Stand-in for ``AsyncOpenAI().chat.completions``."""

    def __init__(self, *contents: Any) -> None:
        self.contents = list(contents)
        self.calls: list[dict[str, Any]] = []

    async def create(self, **payload: Any) -> SimpleNamespace:
        self.calls.append(payload)
        content = self.contents.pop(0) if self.contents else ""
        if isinstance(content, BaseException):
            raise content
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_openai_client(*contents: Any) -> SimpleNamespace:
    completions = FakeCompletions(*contents)
    closed: list[bool] = []

    async def close() -> None:
        closed.append(True)

    return SimpleNamespace(chat=SimpleNamespace(completions=completions), close=close, closed=closed)
