"""Autosave cache for unsaved article drafts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from ..utils.file_io import read_json, write_json_atomic

__all__ = ["Draft", "DraftCache"]

LOGGER = logging.getLogger(__name__)
_CACHE_FILENAME = "drafts.json"
_CACHE_VERSION = 1


@dataclass(slots=True)
class Draft:
    """Unsaved content of one document captured by the autosave lane."""

    document_id: str
    content: str
    title: str = ""
    saved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "title": self.title,
            "saved_at": self.saved_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, document_id: str, payload: Mapping[str, Any]) -> Draft | None:
        content = payload.get("content")
        if not isinstance(content, str):
            return None
        draft = cls(document_id=document_id, content=content, title=str(payload.get("title") or ""))
        saved_at = payload.get("saved_at")
        if isinstance(saved_at, str):
            try:
                draft.saved_at = datetime.fromisoformat(saved_at)
            except ValueError:
                pass
        return draft


class DraftCache:
    """Persistence adapter for drafts, kept apart from the saved articles.

    All drafts live in one JSON file keyed by document id.
    """

    def __init__(self, path: Path | str) -> None:
        path = Path(path).expanduser()
        self._path = path / _CACHE_FILENAME if path.suffix != ".json" else path
        self._drafts: dict[str, Draft] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Draft]:
        payload = self._read_payload()
        entries = payload.get("drafts")
        drafts: dict[str, Draft] = {}
        if isinstance(entries, Mapping):
            for key, entry in entries.items():
                if not isinstance(key, str) or not isinstance(entry, Mapping):
                    continue
                draft = Draft.from_dict(key, entry)
                if draft is not None:
                    drafts[key] = draft
        self._drafts = drafts
        self._loaded = True
        return dict(drafts)

    def save(self) -> Path:
        payload = {
            "version": _CACHE_VERSION,
            "drafts": {key: draft.to_dict() for key, draft in self._drafts.items()},
        }
        return write_json_atomic(self._path, payload)

    def get_draft(self, document_id: str) -> Draft | None:
        self._ensure_loaded()
        return self._drafts.get(document_id)

    def store_draft(self, document_id: str, content: str, *, title: str = "") -> Draft:
        self._ensure_loaded()
        draft = Draft(document_id=document_id, content=content, title=title)
        self._drafts[document_id] = draft
        self.save()
        LOGGER.debug("Draft stored: document_id=%s, chars=%d", document_id, len(content))
        return draft

    def pop_draft(self, document_id: str) -> Draft | None:
        self._ensure_loaded()
        draft = self._drafts.pop(document_id, None)
        if draft is not None:
            self.save()
            LOGGER.debug("Draft cleared: document_id=%s", document_id)
        return draft

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _read_payload(self) -> dict[str, Any]:
        try:
            data = read_json(self._path)
        except ValueError as exc:
            LOGGER.warning("Draft cache %s is not valid JSON: %s", self._path, exc)
            return {}
        if isinstance(data, Mapping):
            return dict(data)
        return {}
