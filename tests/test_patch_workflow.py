"""Tests for the request/review/accept state machine."""

from __future__ import annotations

import asyncio

import pytest

from penwright.ai.gateway import TransformGateway
from penwright.ai.types import ActionKind, EditProposal, Reply
from penwright.chat.conversation_log import ConversationLog
from penwright.chat.message_model import ChatMessage, ChatRole
from penwright.editor.document_model import DocumentState, SelectionRange
from penwright.editor.history import HistoryManager
from penwright.editor.selection import SelectionState
from penwright.events import (
    EventBus,
    ProposalAccepted,
    ProposalReady,
    ProposalRejected,
    TransformFailed,
)
from penwright.workflow.models import PendingProposal, WorkflowState
from penwright.workflow.patch_workflow import (
    AMBIGUOUS_SELECTION_NOTICE,
    UNRESOLVED_SELECTION_NOTICE,
    PatchWorkflow,
    WorkflowStateError,
)
from tests.helpers import FakeBackend, GatedBackend, ManualScheduler, collect


class _Harness:
    def __init__(self, content: str, backend: FakeBackend, bus: EventBus) -> None:
        self.document = DocumentState(content=content, document_id="doc")
        self.document.metadata.title = "A Title"
        self.history = HistoryManager()
        self.conversation = ConversationLog(None, scheduler=ManualScheduler(), event_bus=bus)
        self.conversation.load("doc")
        self.backend = backend
        self.workflow = PatchWorkflow(
            TransformGateway(backend),
            self.document,
            self.history,
            self.conversation,
            event_bus=bus,
        )


def _selection(content: str, text: str) -> SelectionState:
    start = content.index(text)
    return SelectionState(text=text, range=SelectionRange(start, start + len(text)))


def _edit(result: str) -> dict:
    return {"type": "edit", "result": result}


# ----------------------------------------------------------------------
# Proposal merge
# ----------------------------------------------------------------------


def test_ranged_merge_splices_into_snapshot() -> None:
    proposal = PendingProposal(
        request_id="r",
        action=ActionKind.IMPROVE,
        original_excerpt="brown",
        proposed_text="red",
        captured_range=SelectionRange(10, 15),
        snapshot_at_request="The quick brown fox",
    )

    assert proposal.is_partial
    assert proposal.merged_content() == "The quick red fox"


def test_whole_document_merge_is_verbatim() -> None:
    proposal = PendingProposal(
        request_id="r",
        action=ActionKind.SUMMARIZE,
        original_excerpt="long text",
        proposed_text="short",
        captured_range=None,
        snapshot_at_request="long text",
    )

    assert proposal.merged_content() == "short"


# ----------------------------------------------------------------------
# Scenarios
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_partial_improve_accept_then_undo(event_bus: EventBus) -> None:
    content = "The quick brown fox"
    harness = _Harness(content, FakeBackend(_edit("red")), event_bus)
    ready = collect(event_bus, ProposalReady)
    accepted = collect(event_bus, ProposalAccepted)

    result = await harness.workflow.request_transform(ActionKind.IMPROVE, _selection(content, "brown"))

    assert result == EditProposal("red")
    assert harness.workflow.state is WorkflowState.REVIEWING
    assert harness.document.content == content
    assert ready[0].is_partial
    sent = harness.backend.requests[0]
    assert (sent.input_text, sent.is_partial) == ("brown", True)

    harness.workflow.accept()

    assert harness.document.content == "The quick red fox"
    assert harness.history.undo_snapshots() == (content,)
    assert harness.workflow.state is WorkflowState.IDLE
    assert harness.workflow.pending is None
    assert accepted[0].diverged is False

    assert harness.history.undo(harness.document.content) == content


@pytest.mark.asyncio
async def test_whole_document_reply_leaves_document_untouched(event_bus: EventBus) -> None:
    harness = _Harness("Body text", FakeBackend({"type": "reply", "result": "Looks good to me."}), event_bus)

    result = await harness.workflow.send_chat("Is the intro clear?")

    assert result == Reply("Looks good to me.")
    assert harness.workflow.state is WorkflowState.IDLE
    assert harness.document.content == "Body text"
    last = harness.conversation.messages[-1]
    assert (last.role, last.is_reply, last.content) == (ChatRole.AI, True, "Looks good to me.")
    sent = harness.backend.requests[0]
    assert sent.action is ActionKind.CUSTOM
    assert sent.custom_prompt == "Is the intro clear?"
    assert not sent.is_partial


@pytest.mark.asyncio
async def test_reject_discards_without_history(event_bus: EventBus) -> None:
    harness = _Harness("Original", FakeBackend(_edit("Rewritten")), event_bus)
    rejected = collect(event_bus, ProposalRejected)
    await harness.workflow.request_transform("improve")

    harness.workflow.reject()

    assert harness.document.content == "Original"
    assert harness.history.undo_depth == 0
    assert harness.workflow.state is WorkflowState.IDLE
    assert len(rejected) == 1
    assert harness.conversation.messages[-1].content == "Discarded the proposed changes."


@pytest.mark.asyncio
async def test_failure_records_exactly_one_error(event_bus: EventBus) -> None:
    harness = _Harness("Text", FakeBackend({"error": "Failed to process AI request"}), event_bus)
    failures = collect(event_bus, TransformFailed)

    result = await harness.workflow.request_transform("summarize")

    assert result is None
    errors = [message for message in harness.conversation.messages if message.is_error]
    assert len(errors) == 1
    assert "Failed to process AI request" in errors[0].content
    assert harness.workflow.state is WorkflowState.IDLE
    assert harness.workflow.pending is None
    assert failures[0].reason == "collaborator"
    assert harness.document.content == "Text"


@pytest.mark.asyncio
async def test_invalid_request_is_reported_not_raised(event_bus: EventBus) -> None:
    harness = _Harness("Text", FakeBackend(), event_bus)

    result = await harness.workflow.request_transform("custom", custom_prompt=None)

    assert result is None
    assert harness.conversation.messages[-1].is_error
    assert harness.backend.requests == []


@pytest.mark.asyncio
async def test_stale_proposal_merges_against_snapshot(event_bus: EventBus) -> None:
    content = "Alpha beta gamma"
    harness = _Harness(content, FakeBackend(_edit("BETA")), event_bus)
    accepted = collect(event_bus, ProposalAccepted)
    await harness.workflow.request_transform("improve", _selection(content, "beta"))

    harness.document.update_content("Alpha beta gamma delta")
    assert harness.workflow.has_diverged()
    harness.workflow.accept()

    assert harness.document.content == "Alpha BETA gamma"
    assert harness.history.undo_snapshots() == ("Alpha beta gamma delta",)
    assert accepted[0].diverged is True


# ----------------------------------------------------------------------
# Guards
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_second_request_rejected_while_awaiting(event_bus: EventBus) -> None:
    backend = GatedBackend(_edit("first"))
    harness = _Harness("Text", backend, event_bus)

    first = asyncio.create_task(harness.workflow.request_transform("improve"))
    await backend.started.wait()
    assert harness.workflow.is_busy

    with pytest.raises(WorkflowStateError):
        await harness.workflow.request_transform("expand")

    backend.release.set()
    await first
    assert harness.workflow.state is WorkflowState.REVIEWING
    assert len(backend.requests) == 1


@pytest.mark.asyncio
async def test_second_request_rejected_while_reviewing(event_bus: EventBus) -> None:
    harness = _Harness("Text", FakeBackend(_edit("x"), _edit("y")), event_bus)
    await harness.workflow.request_transform("improve")

    with pytest.raises(WorkflowStateError):
        await harness.workflow.send_chat("another")

    assert harness.workflow.pending is not None
    assert harness.workflow.pending.proposed_text == "x"


@pytest.mark.asyncio
async def test_cancellation_returns_to_idle(event_bus: EventBus) -> None:
    backend = GatedBackend()
    harness = _Harness("Text", backend, event_bus)

    task = asyncio.create_task(harness.workflow.request_transform("improve"))
    await backend.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert harness.workflow.state is WorkflowState.IDLE
    assert harness.workflow.pending is None


@pytest.mark.asyncio
async def test_unloaded_conversation_leaves_workflow_idle() -> None:
    conversation = ConversationLog(None, scheduler=ManualScheduler())
    backend = FakeBackend(_edit("better"))
    workflow = PatchWorkflow(TransformGateway(backend), DocumentState(content="Text"), HistoryManager(), conversation)

    with pytest.raises(RuntimeError):
        await workflow.request_transform("improve")

    assert workflow.state is WorkflowState.IDLE
    assert backend.requests == []
    conversation.load("doc")
    assert isinstance(await workflow.request_transform("improve"), EditProposal)


class _Abort(BaseException):
    pass


@pytest.mark.asyncio
async def test_unexpected_abort_returns_to_idle(event_bus: EventBus) -> None:
    harness = _Harness("Text", FakeBackend(_Abort(), {"type": "reply", "result": "ok"}), event_bus)

    with pytest.raises(_Abort):
        await harness.workflow.request_transform("improve")

    assert harness.workflow.state is WorkflowState.IDLE
    assert isinstance(await harness.workflow.send_chat("again?"), Reply)


def test_review_operations_require_a_proposal(event_bus: EventBus) -> None:
    harness = _Harness("Text", FakeBackend(), event_bus)

    for operation in (harness.workflow.accept, harness.workflow.reject, harness.workflow.preview_diff):
        with pytest.raises(WorkflowStateError):
            operation()
    with pytest.raises(WorkflowStateError):
        harness.workflow.update_proposal("x")
    assert not harness.workflow.has_diverged()


@pytest.mark.asyncio
async def test_missing_gateway_is_a_state_error() -> None:
    conversation = ConversationLog(None, scheduler=ManualScheduler())
    conversation.load("doc")
    workflow = PatchWorkflow(None, DocumentState(content="x"), HistoryManager(), conversation)

    with pytest.raises(WorkflowStateError):
        await workflow.request_transform("improve")
    assert workflow.state is WorkflowState.IDLE


@pytest.mark.asyncio
async def test_empty_chat_message_rejected(event_bus: EventBus) -> None:
    harness = _Harness("Text", FakeBackend(), event_bus)

    with pytest.raises(ValueError):
        await harness.workflow.send_chat("   ")


# ----------------------------------------------------------------------
# Review editing and selection capture
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_edited_proposal_is_what_gets_merged(event_bus: EventBus) -> None:
    content = "one two three"
    harness = _Harness(content, FakeBackend(_edit("TWO")), event_bus)
    await harness.workflow.request_transform("improve", _selection(content, "two"))

    harness.workflow.update_proposal("2")
    spans = harness.workflow.preview_diff()
    harness.workflow.accept()

    assert "".join(span.text for span in spans if span.tag.value != "delete") == "2"
    assert harness.document.content == "one 2 three"


@pytest.mark.asyncio
async def test_unresolved_selection_falls_back_to_whole_document(event_bus: EventBus) -> None:
    harness = _Harness("Plain body", FakeBackend(_edit("New body")), event_bus)

    await harness.workflow.request_transform("improve", SelectionState(text="**rendered**"))

    sent = harness.backend.requests[0]
    assert (sent.input_text, sent.is_partial) == ("Plain body", False)
    assert UNRESOLVED_SELECTION_NOTICE in [message.content for message in harness.conversation.messages]
    harness.workflow.accept()
    assert harness.document.content == "New body"


@pytest.mark.asyncio
async def test_stale_range_is_re_resolved(event_bus: EventBus) -> None:
    harness = _Harness("xx target yy", FakeBackend(_edit("TARGET")), event_bus)
    stale = SelectionState(text="target", range=SelectionRange(0, 6))

    await harness.workflow.request_transform("improve", stale)
    harness.workflow.accept()

    assert harness.document.content == "xx TARGET yy"


@pytest.mark.asyncio
async def test_ambiguous_selection_is_noted(event_bus: EventBus) -> None:
    harness = _Harness("the cat and the hat", FakeBackend(_edit("THE")), event_bus)

    await harness.workflow.request_transform("improve", SelectionState(text="the"))
    harness.workflow.accept()

    assert AMBIGUOUS_SELECTION_NOTICE in [message.content for message in harness.conversation.messages]
    assert harness.document.content == "THE cat and the hat"


@pytest.mark.asyncio
async def test_generate_always_targets_whole_document(event_bus: EventBus) -> None:
    content = "Intro paragraph"
    harness = _Harness(content, FakeBackend(_edit("# Full article")), event_bus)

    await harness.workflow.request_transform("generate", _selection(content, "Intro"))

    sent = harness.backend.requests[0]
    assert not sent.is_partial
    assert sent.document_title == "A Title"


@pytest.mark.asyncio
async def test_context_excludes_current_message_and_errors(event_bus: EventBus) -> None:
    harness = _Harness("Body", FakeBackend({"type": "reply", "result": "ok"}), event_bus)
    harness.conversation.append(ChatMessage.user("earlier question"))
    harness.conversation.append(ChatMessage.system("AI request failed: boom", is_error=True))

    await harness.workflow.send_chat("new question")

    context = [message.content for message in harness.backend.requests[0].context_messages]
    assert context == ["earlier question"]


@pytest.mark.asyncio
async def test_user_message_describes_action(event_bus: EventBus) -> None:
    content = "Some words"
    harness = _Harness(content, FakeBackend(_edit("x")), event_bus)

    await harness.workflow.request_transform("custom", _selection(content, "words"), custom_prompt="Shout it")

    first = harness.conversation.messages[0]
    assert first.role is ChatRole.USER
    assert first.content == "Custom instruction: Shout it (selection)"
