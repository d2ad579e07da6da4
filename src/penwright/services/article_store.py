"""File-backed article persistence."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from ..editor.document_model import DocumentState, slugify
from ..utils.file_io import read_json, safe_filename, write_json_atomic

__all__ = ["ArticleStore", "ArticleValidationError"]

LOGGER = logging.getLogger(__name__)
_ARTICLE_VERSION = 1


class ArticleValidationError(ValueError):
    """Raised when an article is not complete enough to be saved."""


class ArticleStore:
    """Stores each article as ``<document_id>.json`` inside ``directory``."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, document_id: str) -> Path:
        return self._directory / safe_filename(document_id)

    def exists(self, document_id: str) -> bool:
        return self.path_for(document_id).exists()

    def load(self, document_id: str) -> DocumentState | None:
        """Return the last saved article, or ``None`` when there is none."""

        payload = read_json(self.path_for(document_id))
        if payload is None:
            return None
        if not isinstance(payload, Mapping):
            raise ValueError(f"Article {document_id!r} is not a JSON object")
        document = DocumentState.from_dict({**payload, "document_id": document_id})
        LOGGER.debug("Article loaded: document_id=%s, chars=%d", document_id, len(document.content))
        return document

    def save(self, document: DocumentState, *, publish: bool | None = None) -> Path:
        """Validate and persist ``document``; nothing is written on failure."""

        metadata = document.metadata
        if not metadata.title.strip():
            raise ArticleValidationError("Please enter a title")
        if not document.content.strip():
            raise ArticleValidationError("Please add some content")
        published = metadata.is_published if publish is None else publish
        slug = metadata.slug or slugify(metadata.title)
        payload = {"version": _ARTICLE_VERSION, **document.to_dict()}
        payload["metadata"].update(is_published=published, slug=slug)
        path = write_json_atomic(self.path_for(document.document_id), payload)
        # The live metadata only changes once the file is on disk.
        metadata.is_published = published
        metadata.slug = slug
        document.mark_saved()
        LOGGER.debug(
            "Article saved: document_id=%s, published=%s, version=%s",
            document.document_id,
            metadata.is_published,
            document.version_id,
        )
        return path

    def list_ids(self) -> list[str]:
        if not self._directory.exists():
            return []
        ids: list[str] = []
        for path in sorted(self._directory.glob("*.json")):
            try:
                payload = read_json(path)
            except ValueError:
                LOGGER.warning("Skipping unreadable article file %s", path)
                continue
            if isinstance(payload, Mapping) and isinstance(payload.get("document_id"), str):
                ids.append(payload["document_id"])
        return ids
