"""Tests for the article document model."""

from __future__ import annotations

import pytest

from penwright.editor.document_model import (
    ArticleMetadata,
    DocumentState,
    SelectionRange,
    parse_tags,
    slugify,
)


@pytest.mark.parametrize(
    ("title", "slug"),
    [
        ("Hello World", "hello-world"),
        ("What's new in 2024?", "whats-new-in-2024"),
        ("Already-slugged", "already-slugged"),
    ],
)
def test_slugify(title: str, slug: str) -> None:
    assert slugify(title) == slug


def test_parse_tags_drops_blanks() -> None:
    assert parse_tags("python, ai,, writing ") == ["python", "ai", "writing"]


class TestSelectionRange:
    def test_slice_and_length(self) -> None:
        selection = SelectionRange(4, 9)

        assert selection.slice("The quick fox") == "quick"
        assert selection.length == 5
        assert not selection.is_empty

    @pytest.mark.parametrize(("start", "end"), [(-1, 2), (5, 3), (True, 2)])
    def test_invalid_offsets_rejected(self, start: int, end: int) -> None:
        with pytest.raises(ValueError):
            SelectionRange(start, end)

    def test_fits(self) -> None:
        assert SelectionRange(0, 3).fits("abc")
        assert not SelectionRange(0, 4).fits("abc")

    def test_dict_roundtrip(self) -> None:
        assert SelectionRange.from_dict(SelectionRange(1, 2).to_dict()) == SelectionRange(1, 2)
        assert SelectionRange.from_dict(None) is None


class TestDocumentState:
    def test_update_content_bumps_version_and_hash(self) -> None:
        document = DocumentState(content="draft")
        version, digest = document.version_id, document.content_hash

        document.update_content("final")

        assert document.content == "final"
        assert document.version_id == version + 1
        assert document.content_hash != digest
        assert document.dirty

    def test_mark_saved_clears_dirty(self) -> None:
        document = DocumentState()
        document.update_content("x")

        document.mark_saved()

        assert not document.dirty

    def test_serialization_roundtrip(self) -> None:
        metadata = ArticleMetadata(title="Title", slug="title", tags=["a", "b"], is_published=True)
        document = DocumentState(content="body", metadata=metadata, document_id="doc-1")

        restored = DocumentState.from_dict(document.to_dict())

        assert restored.document_id == "doc-1"
        assert restored.content == "body"
        assert restored.metadata.tags == ["a", "b"]
        assert restored.metadata.is_published
        assert restored.metadata.created_at == metadata.created_at

    def test_metadata_accepts_comma_separated_tags(self) -> None:
        metadata = ArticleMetadata.from_dict({"title": "T", "tags": "x, y"})

        assert metadata.tags == ["x", "y"]


def test_retitle_follows_slug_only_for_new_articles() -> None:
    metadata = ArticleMetadata(title="Old", slug="old")

    metadata.retitle("New Name", keep_slug=True)
    assert (metadata.title, metadata.slug) == ("New Name", "old")

    metadata.retitle("Fresh Start", keep_slug=False)
    assert metadata.slug == "fresh-start"
