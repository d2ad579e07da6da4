"""In-process event bus connecting the editor core to its host.

The core never talks to a UI directly. Selection changes, proposals ready for
review, persistence problems and similar facts are published here and the
host (the command line front end, a test, or a richer UI) subscribes to the
ones it cares about.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar
from weakref import WeakMethod

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events published on the :class:`EventBus`."""


# =============================================================================
# Document events
# =============================================================================


@dataclass(slots=True)
class DocumentModified(Event):
    """Emitted whenever the authoritative document content changes.

    Attributes:
        document_id: Identity key of the document.
        version_id: Version number after the change.
        source: What changed it (``"edit"``, ``"undo"``, ``"redo"``,
            ``"image"``, ``"patch"``).
    """

    document_id: str
    version_id: int
    source: str


@dataclass(slots=True)
class DocumentSaved(Event):
    """Emitted after the document was persisted through the article store."""

    document_id: str
    published: bool


@dataclass(slots=True)
class HistoryChanged(Event):
    """Emitted when the undo/redo stack depths change."""

    undo_depth: int
    redo_depth: int


@dataclass(slots=True)
class SelectionChanged(Event):
    """Emitted after a debounced selection event has been resolved.

    Attributes:
        text: The selected text as reported by the host.
        start: Resolved start offset, or ``None`` when unresolved.
        end: Resolved end offset, or ``None`` when unresolved.
        ambiguous: ``True`` when the text occurs more than once in the
            document so the first-occurrence match may be the wrong one.
    """

    text: str
    start: int | None
    end: int | None
    ambiguous: bool = False


# =============================================================================
# Transform & review events
# =============================================================================


@dataclass(slots=True)
class TransformRequested(Event):
    """Emitted when a request leaves for the AI collaborator."""

    request_id: str
    action: str
    is_partial: bool


@dataclass(slots=True)
class TransformFailed(Event):
    """Emitted when a transform request failed and was recorded in the log."""

    request_id: str
    reason: str
    message: str


@dataclass(slots=True)
class ProposalReady(Event):
    """Emitted when an edit proposal enters review."""

    request_id: str
    action: str
    is_partial: bool


@dataclass(slots=True)
class ProposalUpdated(Event):
    """Emitted when the user hand-edits the proposal under review."""

    request_id: str


@dataclass(slots=True)
class ProposalAccepted(Event):
    """Emitted after a proposal was merged into the document.

    Attributes:
        request_id: Identifier of the originating request.
        diverged: ``True`` when the live document had changed since the
            request was issued; edits made in between were replaced.
    """

    request_id: str
    diverged: bool


@dataclass(slots=True)
class ProposalRejected(Event):
    """Emitted after a proposal was discarded."""

    request_id: str


# =============================================================================
# Conversation & notice events
# =============================================================================


@dataclass(slots=True)
class ChatMessageAppended(Event):
    """Emitted for every message appended to the conversation log."""

    document_id: str
    message_id: str
    role: str
    is_error: bool = False


@dataclass(slots=True)
class ConversationCleared(Event):
    """Emitted after the user confirmed clearing the conversation log."""

    document_id: str


@dataclass(slots=True)
class NoticePosted(Event):
    """Emitted when a notice should be shown to the user.

    Persistence and upload failures are reported this way instead of being
    raised, so the document and chat remain editable.

    Attributes:
        message: The notice text to display.
        level: ``"info"``, ``"warning"`` or ``"error"``.
    """

    message: str
    level: str = "info"


class EventBus(Generic[E]):
    """Typed publish-subscribe bus.

    Bound-method handlers are held through :class:`weakref.WeakMethod` so a
    subscriber that goes away is dropped automatically; plain functions and
    lambdas are held strongly. Handlers run synchronously in subscription
    order and an exception in one handler is logged without stopping the
    others.

    Not thread-safe: the editor core has a single logical thread of control.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: defaultdict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        LOGGER.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        LOGGER.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))
        alive: list[_HandlerRef] = []
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                continue
            alive.append(handler_ref)
            try:
                handler(event)
            except Exception:
                LOGGER.exception(
                    "Handler %s raised for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
        if len(alive) != len(handlers):
            self._handlers[event_type] = [ref for ref in handlers if ref in alive]

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference otherwise."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, target: WeakMethod | Handler, is_weak: bool) -> None:
        self._ref = target
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "DocumentModified",
    "DocumentSaved",
    "HistoryChanged",
    "SelectionChanged",
    "TransformRequested",
    "TransformFailed",
    "ProposalReady",
    "ProposalUpdated",
    "ProposalAccepted",
    "ProposalRejected",
    "ChatMessageAppended",
    "ConversationCleared",
    "NoticePosted",
]
