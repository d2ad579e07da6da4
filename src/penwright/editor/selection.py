"""Selection tracking: from raw host selection events to document offsets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from ..events import EventBus, SelectionChanged
from ..services.scheduling import DebouncedTask, Scheduler
from .document_model import SelectionRange

__all__ = [
    "SelectionProvider",
    "SelectionState",
    "SelectionTracker",
    "resolve_selection",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_SELECTION_DEBOUNCE = 0.1

ContentSource = Callable[[], str]


class SelectionProvider(Protocol):
    """Capability implemented by the host UI to expose its live selection."""

    def selected_text(self) -> str:
        ...


@dataclass(slots=True, frozen=True)
class SelectionState:
    """Selected text plus its best-effort location in the document.

    ``range`` is ``None`` when nothing is selected or when the text could not
    be located in the raw document content.
    """

    text: str = ""
    range: SelectionRange | None = None
    ambiguous: bool = False

    @property
    def has_text(self) -> bool:
        return bool(self.text)

    @property
    def is_resolved(self) -> bool:
        return self.range is not None


def resolve_selection(content: str, selected_text: str) -> SelectionRange | None:
    """Locate ``selected_text`` in ``content`` by first occurrence."""

    if not selected_text:
        return None
    start = content.find(selected_text)
    if start < 0:
        return None
    return SelectionRange(start, start + len(selected_text))


class SelectionTracker:
    """Debounces selection events and resolves them against the document.

    Hosts that only know the selected *text* call
    :meth:`notify_selection_changed` on every raw event; bursts inside the
    debounce window are coalesced into one resolution. Hosts that know the
    real offsets call :meth:`report_offsets`, which is exact and immediate.
    The tracker never mutates the document.
    """

    def __init__(
        self,
        provider: SelectionProvider | None,
        content_source: ContentSource,
        *,
        debounce_seconds: float = DEFAULT_SELECTION_DEBOUNCE,
        scheduler: Scheduler | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._provider = provider
        self._content_source = content_source
        self._bus = event_bus
        self._state = SelectionState()
        self._cursor: int | None = None
        self._task = DebouncedTask(
            self._resolve,
            debounce_seconds,
            scheduler=scheduler,
            name="selection-tracker",
        )

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def cursor_offset(self) -> int | None:
        return self._cursor

    @property
    def pending(self) -> bool:
        return self._task.pending

    def notify_selection_changed(self) -> None:
        """Record a raw selection event from the host."""

        self._task.schedule()

    def flush(self) -> SelectionState:
        """Resolve a pending selection event now."""

        self._task.flush()
        return self._state

    def report_offsets(self, start: int, end: int) -> SelectionState:
        """Set the selection from exact offsets reported by the host."""

        self._task.cancel()
        content = self._content_source()
        length = len(content)
        start, end = sorted((max(0, min(int(start), length)), max(0, min(int(end), length))))
        if start == end:
            self._cursor = start
            return self._update(SelectionState())
        selection = SelectionRange(start, end)
        self._cursor = end
        return self._update(SelectionState(text=selection.slice(content), range=selection))

    def set_cursor(self, offset: int | None) -> None:
        self._cursor = None if offset is None else max(0, int(offset))

    def clear(self) -> None:
        self._task.cancel()
        self._update(SelectionState())

    def _resolve(self) -> None:
        if self._provider is None:
            return
        text = self._provider.selected_text() or ""
        if not text:
            self._update(SelectionState())
            return
        content = self._content_source()
        selection = resolve_selection(content, text)
        ambiguous = False
        if selection is None:
            LOGGER.debug("Selected text (%d chars) not found in document", len(text))
        else:
            ambiguous = content.find(text, selection.start + 1) >= 0
            if ambiguous:
                LOGGER.debug("Selected text occurs more than once; using first occurrence")
        self._update(SelectionState(text=text, range=selection, ambiguous=ambiguous))

    def _update(self, state: SelectionState) -> SelectionState:
        self._state = state
        if self._bus is not None:
            self._bus.publish(
                SelectionChanged(
                    text=state.text,
                    start=state.range.start if state.range else None,
                    end=state.range.end if state.range else None,
                    ambiguous=state.ambiguous,
                )
            )
        return state
