"""File-backed persistence for per-document conversation logs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

from ..chat.message_model import ChatMessage
from ..utils.file_io import read_json, safe_filename, write_json_atomic

__all__ = ["ConversationStore"]

LOGGER = logging.getLogger(__name__)
_LOG_VERSION = 1


class ConversationStore:
    """Stores one JSON file per document id holding its full message list.

    Writes replace the whole log (last writer wins); there is no incremental
    append format.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, document_id: str) -> Path:
        return self._directory / safe_filename(document_id)

    def load(self, document_id: str) -> list[ChatMessage]:
        payload = read_json(self.path_for(document_id))
        if payload is None:
            return []
        entries: Any = payload.get("messages") if isinstance(payload, Mapping) else None
        if not isinstance(entries, list):
            raise ValueError(f"Conversation log for {document_id!r} has no message list")
        messages: list[ChatMessage] = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            try:
                messages.append(ChatMessage.from_dict(entry))
            except ValueError as exc:
                LOGGER.debug("Skipping unreadable chat message in %s: %s", document_id, exc)
        return messages

    def save(self, document_id: str, messages: Iterable[ChatMessage]) -> Path:
        payload = {
            "version": _LOG_VERSION,
            "document_id": document_id,
            "messages": [message.to_dict() for message in messages],
        }
        return write_json_atomic(self.path_for(document_id), payload)

    def delete(self, document_id: str) -> bool:
        path = self.path_for(document_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
