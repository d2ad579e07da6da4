"""Patch review workflow."""

from .models import PendingProposal, WorkflowState
from .patch_workflow import PatchWorkflow, WorkflowStateError

__all__ = ["PatchWorkflow", "PendingProposal", "WorkflowState", "WorkflowStateError"]
