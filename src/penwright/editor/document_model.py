"""Dataclasses representing the article being edited."""

from __future__ import annotations

import hashlib
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


_SLUG_DROP_RE = re.compile(r"[^\w-]+")


def slugify(title: str) -> str:
    """Derive a URL slug from an article title."""

    return _SLUG_DROP_RE.sub("", title.lower().replace(" ", "-"))


def parse_tags(raw: str) -> list[str]:
    """Split a comma separated tag field, dropping blanks."""

    return [tag.strip() for tag in raw.split(",") if tag.strip()]


@dataclass(slots=True, frozen=True)
class SelectionRange:
    """Half-open ``[start, end)`` offsets into a document at one moment.

    A range is only guaranteed to be valid for the content it was captured
    against; it is not adjusted when the document changes afterwards.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        if isinstance(self.start, bool) or isinstance(self.end, bool):
            raise ValueError("SelectionRange offsets must be integers")
        if not isinstance(self.start, int) or not isinstance(self.end, int):
            raise ValueError("SelectionRange offsets must be integers")
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid selection range [{self.start}, {self.end})")

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def fits(self, text: str) -> bool:
        """Return ``True`` when the range lies inside ``text``."""

        return self.end <= len(text)

    def slice(self, text: str) -> str:
        return text[self.start : self.end]

    def as_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> SelectionRange | None:
        if not payload:
            return None
        return cls(int(payload["start"]), int(payload["end"]))


@dataclass(slots=True)
class ArticleMetadata:
    """Publishing metadata stored next to the article content."""

    title: str = ""
    slug: str = ""
    excerpt: str = ""
    cover_image: str = ""
    tags: list[str] = field(default_factory=list)
    is_published: bool = False
    is_premium: bool = False
    affiliate_url: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "slug": self.slug,
            "excerpt": self.excerpt,
            "cover_image": self.cover_image,
            "tags": list(self.tags),
            "is_published": self.is_published,
            "is_premium": self.is_premium,
            "affiliate_url": self.affiliate_url,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ArticleMetadata:
        tags = payload.get("tags") or []
        if isinstance(tags, str):
            tags = parse_tags(tags)
        metadata = cls(
            title=str(payload.get("title") or ""),
            slug=str(payload.get("slug") or ""),
            excerpt=str(payload.get("excerpt") or ""),
            cover_image=str(payload.get("cover_image") or ""),
            tags=[str(tag) for tag in tags],
            is_published=bool(payload.get("is_published", False)),
            is_premium=bool(payload.get("is_premium", False)),
            affiliate_url=str(payload.get("affiliate_url") or ""),
        )
        for name in ("created_at", "updated_at"):
            raw = payload.get(name)
            if isinstance(raw, str):
                try:
                    setattr(metadata, name, datetime.fromisoformat(raw))
                except ValueError:
                    pass
        return metadata

    def retitle(self, title: str, *, keep_slug: bool) -> None:
        """Change the title; new articles follow it with their slug."""

        self.title = title
        if not keep_slug:
            self.slug = slugify(title)


@dataclass(slots=True)
class DocumentState:
    """The single authoritative text buffer of an editor session."""

    content: str = ""
    metadata: ArticleMetadata = field(default_factory=ArticleMetadata)
    document_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    version_id: int = 1
    content_hash: str = field(default_factory=str)
    dirty: bool = False

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = _hash_text(self.content)

    def update_content(self, new_content: str) -> None:
        """Replace the content and mark the document dirty."""

        self.content = new_content
        self.dirty = True
        self.metadata.updated_at = _utcnow()
        self.version_id += 1
        self.content_hash = _hash_text(new_content)

    def mark_saved(self) -> None:
        self.dirty = False

    def version_signature(self) -> str:
        return f"{self.document_id}:{self.version_id}:{self.content_hash}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "content": self.content,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> DocumentState:
        metadata_payload = payload.get("metadata")
        metadata = (
            ArticleMetadata.from_dict(metadata_payload)
            if isinstance(metadata_payload, Mapping)
            else ArticleMetadata()
        )
        return cls(
            content=str(payload.get("content") or ""),
            metadata=metadata,
            document_id=str(payload["document_id"]),
        )


__all__ = [
    "ArticleMetadata",
    "DocumentState",
    "SelectionRange",
    "parse_tags",
    "slugify",
]
