"""Tests for selection resolution and the debounced selection tracker."""

from __future__ import annotations

from penwright.editor.document_model import SelectionRange
from penwright.editor.selection import SelectionState, SelectionTracker, resolve_selection
from penwright.events import EventBus, SelectionChanged
from tests.helpers import ManualScheduler, StaticSelection, collect


class _CountingSelection(StaticSelection):
    def __init__(self, text: str = "") -> None:
        super().__init__(text)
        self.reads = 0

    def selected_text(self) -> str:
        self.reads += 1
        return self.text


def _tracker(
    provider: StaticSelection | None,
    content: str,
    scheduler: ManualScheduler,
    bus: EventBus | None = None,
) -> SelectionTracker:
    return SelectionTracker(provider, lambda: content, debounce_seconds=0.1, scheduler=scheduler, event_bus=bus)


def test_resolve_selection_finds_first_occurrence() -> None:
    assert resolve_selection("one two one", "one") == SelectionRange(0, 3)
    assert resolve_selection("one two one", "two") == SelectionRange(4, 7)


def test_resolve_selection_handles_missing_and_empty() -> None:
    assert resolve_selection("content", "") is None
    assert resolve_selection("content", "absent") is None


def test_burst_of_events_resolves_once(scheduler: ManualScheduler, event_bus: EventBus) -> None:
    provider = _CountingSelection("brown fox")
    changes = collect(event_bus, SelectionChanged)
    tracker = _tracker(provider, "The quick brown fox", scheduler, event_bus)

    for _ in range(5):
        tracker.notify_selection_changed()
        scheduler.advance(0.05)
    assert provider.reads == 0
    assert tracker.pending

    scheduler.advance(0.1)

    assert provider.reads == 1
    assert not tracker.pending
    assert tracker.state == SelectionState(text="brown fox", range=SelectionRange(10, 19))
    assert len(changes) == 1
    assert (changes[0].start, changes[0].end, changes[0].ambiguous) == (10, 19, False)


def test_repeated_text_is_flagged_ambiguous(scheduler: ManualScheduler) -> None:
    tracker = _tracker(StaticSelection("the"), "the cat and the hat", scheduler)
    tracker.notify_selection_changed()

    state = tracker.flush()

    assert state.range == SelectionRange(0, 3)
    assert state.ambiguous


def test_unresolvable_text_keeps_text_without_range(scheduler: ManualScheduler) -> None:
    tracker = _tracker(StaticSelection("rendered **bold**"), "plain content", scheduler)
    tracker.notify_selection_changed()

    state = tracker.flush()

    assert state.has_text
    assert not state.is_resolved


def test_empty_selection_clears_state(scheduler: ManualScheduler) -> None:
    provider = StaticSelection("quick")
    tracker = _tracker(provider, "The quick fox", scheduler)
    tracker.notify_selection_changed()
    tracker.flush()

    provider.text = ""
    tracker.notify_selection_changed()
    state = tracker.flush()

    assert state == SelectionState()


def test_flush_without_pending_event_keeps_state(scheduler: ManualScheduler) -> None:
    tracker = _tracker(StaticSelection("x"), "x", scheduler)

    assert tracker.flush() == SelectionState()


def test_report_offsets_is_exact_and_immediate(scheduler: ManualScheduler) -> None:
    content = "the cat and the hat"
    tracker = _tracker(StaticSelection("the"), content, scheduler)
    tracker.notify_selection_changed()

    state = tracker.report_offsets(12, 15)

    assert state == SelectionState(text="the", range=SelectionRange(12, 15))
    assert tracker.cursor_offset == 15
    assert not tracker.pending


def test_report_offsets_clamps_and_orders(scheduler: ManualScheduler) -> None:
    tracker = _tracker(None, "abcdef", scheduler)

    state = tracker.report_offsets(99, 2)

    assert state.range == SelectionRange(2, 6)
    assert state.text == "cdef"


def test_collapsed_offsets_only_move_the_cursor(scheduler: ManualScheduler) -> None:
    tracker = _tracker(None, "abcdef", scheduler)

    state = tracker.report_offsets(3, 3)

    assert not state.has_text
    assert tracker.cursor_offset == 3


def test_clear_cancels_pending_resolution(scheduler: ManualScheduler) -> None:
    provider = _CountingSelection("abc")
    tracker = _tracker(provider, "abc", scheduler)
    tracker.notify_selection_changed()

    tracker.clear()
    scheduler.advance(1.0)

    assert provider.reads == 0
    assert tracker.state == SelectionState()


def test_tracker_never_changes_content(scheduler: ManualScheduler) -> None:
    content = "unchanged body"
    tracker = _tracker(StaticSelection("body"), content, scheduler)
    tracker.notify_selection_changed()
    tracker.flush()
    tracker.set_cursor(4)

    assert content == "unchanged body"
    assert tracker.cursor_offset == 4
