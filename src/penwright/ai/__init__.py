"""AI collaborator integration: request types, backends and the transform gateway."""

from .gateway import MAX_CONTEXT_MESSAGES, TransformGateway
from .types import ActionKind, EditProposal, Reply, TransformError, TransformRequest

__all__ = [
    "ActionKind",
    "EditProposal",
    "MAX_CONTEXT_MESSAGES",
    "Reply",
    "TransformError",
    "TransformGateway",
    "TransformRequest",
]
