"""Cancel-and-reschedule tasks used by the debounced lanes.

Selection resolution, conversation persistence and document autosave each own
one :class:`DebouncedTask`. The task only needs a :class:`Scheduler`; the
default one runs on the asyncio loop, tests substitute a manual clock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

__all__ = ["Cancellable", "Scheduler", "AsyncioScheduler", "DebouncedTask"]

LOGGER = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Anything able to run ``callback`` once after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        ...


class AsyncioScheduler:
    """Scheduler backed by :meth:`asyncio.AbstractEventLoop.call_later`.

    Without an explicit loop the running loop is used, so scheduling outside
    a running loop raises :class:`RuntimeError`.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                raise RuntimeError(
                    "AsyncioScheduler needs a running event loop; pass an explicit scheduler "
                    "when driving the editor from synchronous code"
                ) from None
        return loop.call_later(max(0.0, delay), callback)


class DebouncedTask:
    """Runs ``callback`` once, ``delay`` seconds after the last :meth:`schedule`."""

    def __init__(
        self,
        callback: Callable[[], None],
        delay: float,
        *,
        scheduler: Scheduler | None = None,
        name: str = "debounced-task",
    ) -> None:
        self._callback = callback
        self._delay = max(0.0, float(delay))
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._handle: Cancellable | None = None
        self._name = name

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._scheduler.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        LOGGER.debug("%s: pending run canceled", self._name)

    def flush(self) -> bool:
        """Run a pending callback immediately; returns ``True`` when it ran."""

        if self._handle is None:
            return False
        self._handle.cancel()
        self._fire()
        return True

    def _fire(self) -> None:
        self._handle = None
        try:
            self._callback()
        except Exception:
            LOGGER.exception("%s: callback failed", self._name)
