"""Editor package containing the document model, diffing and history."""

from . import diffing, document_model, history

__all__ = ["diffing", "document_model", "history"]
