"""State models for the patch review workflow."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from ..ai.types import ActionKind
from ..editor.document_model import SelectionRange

__all__ = ["PendingProposal", "WorkflowState"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    REVIEWING = "reviewing"


@dataclass(slots=True)
class PendingProposal:
    """An AI edit awaiting the author's decision.

    Attributes:
        request_id: Identifier of the request that produced the proposal.
        action: Action that was requested.
        original_excerpt: Text that was sent (selection or whole document).
        proposed_text: Replacement text; the author may edit it in review.
        captured_range: Offsets of the excerpt in ``snapshot_at_request``,
            or ``None`` when the whole document was sent.
        snapshot_at_request: Full document content when the request left.
        created_at: When the proposal entered review.
    """

    request_id: str
    action: ActionKind
    original_excerpt: str
    proposed_text: str
    captured_range: SelectionRange | None
    snapshot_at_request: str
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def is_partial(self) -> bool:
        return self.captured_range is not None

    def merged_content(self) -> str:
        """Document content after accepting, computed against the snapshot."""

        if self.captured_range is None:
            return self.proposed_text
        snapshot = self.snapshot_at_request
        start, end = self.captured_range.as_tuple()
        return snapshot[:start] + self.proposed_text + snapshot[end:]
