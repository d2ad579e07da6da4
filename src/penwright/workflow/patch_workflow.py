"""Request, review, accept/reject state machine for AI edit proposals."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from ..ai.types import ActionKind, EditProposal, Reply, TransformError, TransformResult
from ..chat.message_model import ChatMessage
from ..editor.diffing import DiffSpan, compute_diff
from ..editor.document_model import DocumentState, SelectionRange
from ..editor.history import HistoryManager
from ..editor.selection import SelectionState, resolve_selection
from ..events import (
    DocumentModified,
    EventBus,
    HistoryChanged,
    ProposalAccepted,
    ProposalReady,
    ProposalRejected,
    ProposalUpdated,
    TransformFailed,
    TransformRequested,
)
from .models import PendingProposal, WorkflowState

if TYPE_CHECKING:  # pragma: no cover
    from ..ai.gateway import TransformGateway
    from ..chat.conversation_log import ConversationLog

__all__ = ["PatchWorkflow", "WorkflowStateError"]

LOGGER = logging.getLogger(__name__)

UNRESOLVED_SELECTION_NOTICE = (
    "The selected text could not be found in the article, so the whole article was sent instead."
)
AMBIGUOUS_SELECTION_NOTICE = (
    "The selected text appears more than once; the first occurrence was used."
)


class WorkflowStateError(RuntimeError):
    """Raised when an operation is not valid in the current workflow state."""


class PatchWorkflow:
    """Owns the single proposal slot and merges accepted proposals.

    States run ``IDLE -> AWAITING_RESPONSE -> REVIEWING -> IDLE``; replies
    and failures return straight to ``IDLE``. A new request is refused
    unless the workflow is idle, so at most one proposal exists at a time.

    Events Emitted:
        - TransformRequested / TransformFailed
        - ProposalReady / ProposalUpdated
        - ProposalAccepted / ProposalRejected
        - DocumentModified and HistoryChanged on accept
    """

    def __init__(
        self,
        gateway: TransformGateway | None,
        document: DocumentState,
        history: HistoryManager,
        conversation: ConversationLog,
        *,
        event_bus: EventBus | None = None,
    ) -> None:
        self._gateway = gateway
        self._document = document
        self._history = history
        self._conversation = conversation
        self._bus = event_bus
        self._state = WorkflowState.IDLE
        self._pending: PendingProposal | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def pending(self) -> PendingProposal | None:
        return self._pending

    @property
    def is_busy(self) -> bool:
        return self._state is WorkflowState.AWAITING_RESPONSE

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request_transform(
        self,
        action: ActionKind | str,
        selection: SelectionState | None = None,
        custom_prompt: str | None = None,
    ) -> TransformResult | None:
        """Run a quick action against the selection or the whole document.

        Returns the classified result, or ``None`` when the request failed
        (the failure is recorded in the conversation log).
        """

        kind = ActionKind.parse(action)
        self._ensure_idle()
        describe = kind.label
        if kind is ActionKind.CUSTOM and custom_prompt:
            describe = f"{describe}: {custom_prompt.strip()}"
        scope = "selection" if selection is not None and selection.has_text else "article"
        return await self._run(
            kind,
            selection,
            custom_prompt=custom_prompt,
            user_message=ChatMessage.user(f"{describe} ({scope})"),
        )

    async def send_chat(self, text: str, selection: SelectionState | None = None) -> TransformResult | None:
        """Send a free-form message; the collaborator may reply or propose an edit."""

        message = (text or "").strip()
        if not message:
            raise ValueError("Chat message must not be empty")
        self._ensure_idle()
        return await self._run(
            ActionKind.CUSTOM,
            selection,
            custom_prompt=message,
            user_message=ChatMessage.user(message),
        )

    async def _run(
        self,
        action: ActionKind,
        selection: SelectionState | None,
        *,
        custom_prompt: str | None,
        user_message: ChatMessage,
    ) -> TransformResult | None:
        gateway = self._require_gateway()
        snapshot = self._document.content
        captured_range, excerpt, notices = self._capture(action, selection, snapshot)
        request_id = uuid.uuid4().hex
        context = self._conversation.messages

        self._conversation.append(user_message)
        for notice in notices:
            self._conversation.append(ChatMessage.system(notice))
        self._state = WorkflowState.AWAITING_RESPONSE
        LOGGER.debug(
            "PatchWorkflow.request: id=%s, action=%s, partial=%s, version=%s",
            request_id,
            action.value,
            captured_range is not None,
            self._document.version_id,
        )
        self._publish(
            TransformRequested(request_id=request_id, action=action.value, is_partial=captured_range is not None)
        )

        try:
            result = await gateway.request(
                action,
                excerpt,
                is_partial=captured_range is not None,
                recent_context=context,
                custom_prompt=custom_prompt,
                document_title=self._document.metadata.title,
            )
        except TransformError as exc:
            self._fail(request_id, exc)
            return None
        except BaseException:
            LOGGER.debug("PatchWorkflow.request aborted: id=%s", request_id)
            self._state = WorkflowState.IDLE
            raise

        if isinstance(result, Reply):
            self._conversation.append(ChatMessage.ai(result.text, is_reply=True))
            self._state = WorkflowState.IDLE
            LOGGER.debug("PatchWorkflow.reply: id=%s", request_id)
            return result

        assert isinstance(result, EditProposal)
        self._pending = PendingProposal(
            request_id=request_id,
            action=action,
            original_excerpt=excerpt,
            proposed_text=result.text,
            captured_range=captured_range,
            snapshot_at_request=snapshot,
        )
        self._conversation.append(ChatMessage.ai(result.text, is_reply=False))
        self._state = WorkflowState.REVIEWING
        LOGGER.debug("PatchWorkflow.proposal: id=%s, chars=%d", request_id, len(result.text))
        self._publish(
            ProposalReady(request_id=request_id, action=action.value, is_partial=captured_range is not None)
        )
        return result

    def _capture(
        self,
        action: ActionKind,
        selection: SelectionState | None,
        snapshot: str,
    ) -> tuple[SelectionRange | None, str, list[str]]:
        if action is ActionKind.GENERATE or selection is None or not selection.has_text:
            return None, snapshot, []
        selected = selection.range
        if selected is not None and selected.fits(snapshot) and selected.slice(snapshot) == selection.text:
            notices = [AMBIGUOUS_SELECTION_NOTICE] if selection.ambiguous else []
            return selected, selection.text, notices
        resolved = resolve_selection(snapshot, selection.text)
        if resolved is None:
            LOGGER.debug("Selection could not be resolved; sending whole document")
            return None, snapshot, [UNRESOLVED_SELECTION_NOTICE]
        notices = []
        if snapshot.find(selection.text, resolved.start + 1) >= 0:
            notices.append(AMBIGUOUS_SELECTION_NOTICE)
        return resolved, selection.text, notices

    def _fail(self, request_id: str, exc: TransformError) -> None:
        LOGGER.warning("Transform request %s failed (%s): %s", request_id, exc.reason, exc)
        self._conversation.append(ChatMessage.system(f"AI request failed: {exc}", is_error=True))
        self._state = WorkflowState.IDLE
        self._publish(TransformFailed(request_id=request_id, reason=exc.reason, message=str(exc)))

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def update_proposal(self, text: str) -> PendingProposal:
        pending = self._require_review()
        pending.proposed_text = text
        self._publish(ProposalUpdated(request_id=pending.request_id))
        return pending

    def preview_diff(self) -> list[DiffSpan]:
        pending = self._require_review()
        return compute_diff(pending.original_excerpt, pending.proposed_text)

    def has_diverged(self) -> bool:
        """``True`` when the document changed after the request was issued."""

        if self._pending is None:
            return False
        return self._document.content != self._pending.snapshot_at_request

    def accept(self) -> PendingProposal:
        """Merge the proposal into the document as one undoable step."""

        pending = self._require_review()
        diverged = self.has_diverged()
        if diverged:
            LOGGER.warning(
                "Accepting proposal %s against a document that changed since the request",
                pending.request_id,
            )
        merged = pending.merged_content()
        self._history.push_undo(self._document.content)
        self._document.update_content(merged)
        self._pending = None
        self._state = WorkflowState.IDLE
        self._conversation.append(ChatMessage.system("Applied the proposed changes."))
        LOGGER.debug(
            "PatchWorkflow.accept: id=%s, diverged=%s, version=%s",
            pending.request_id,
            diverged,
            self._document.version_id,
        )
        self._publish(
            DocumentModified(
                document_id=self._document.document_id,
                version_id=self._document.version_id,
                source="patch",
            )
        )
        self._publish(HistoryChanged(undo_depth=self._history.undo_depth, redo_depth=self._history.redo_depth))
        self._publish(ProposalAccepted(request_id=pending.request_id, diverged=diverged))
        return pending

    def reject(self) -> PendingProposal:
        pending = self._require_review()
        self._pending = None
        self._state = WorkflowState.IDLE
        self._conversation.append(ChatMessage.system("Discarded the proposed changes."))
        LOGGER.debug("PatchWorkflow.reject: id=%s", pending.request_id)
        self._publish(ProposalRejected(request_id=pending.request_id))
        return pending

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        if self._state is WorkflowState.AWAITING_RESPONSE:
            raise WorkflowStateError("An AI request is already in progress")
        if self._state is WorkflowState.REVIEWING:
            raise WorkflowStateError("Accept or reject the pending proposal first")

    def _require_gateway(self) -> TransformGateway:
        if self._gateway is None:
            raise WorkflowStateError("No AI collaborator is configured")
        return self._gateway

    def _require_review(self) -> PendingProposal:
        if self._state is not WorkflowState.REVIEWING or self._pending is None:
            raise WorkflowStateError("There is no proposal under review")
        return self._pending

    def _publish(self, event) -> None:
        if self._bus is not None:
            self._bus.publish(event)
