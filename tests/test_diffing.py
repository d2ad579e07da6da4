"""Tests for the word-level diff renderer."""

from __future__ import annotations

import pytest

from penwright.editor.diffing import DiffSpan, DiffTag, compute_diff, diff_stats, render_inline, tokenize


def _rebuild(spans: list[DiffSpan], *, skip: DiffTag) -> str:
    return "".join(span.text for span in spans if span.tag is not skip)


def test_tokenize_keeps_whitespace_runs() -> None:
    text = "Hello,  big\nworld "
    tokens = tokenize(text)

    assert tokens == ["Hello,", "  ", "big", "\n", "world", " "]
    assert "".join(tokens) == text


def test_identical_strings_produce_one_equal_span() -> None:
    assert compute_diff("same text", "same text") == [DiffSpan(DiffTag.EQUAL, "same text")]


def test_both_empty_is_a_single_equal_span() -> None:
    assert compute_diff("", "") == [DiffSpan(DiffTag.EQUAL, "")]


def test_empty_original_is_pure_insert() -> None:
    assert compute_diff("", "brand new") == [DiffSpan(DiffTag.INSERT, "brand new")]


def test_empty_modified_is_pure_delete() -> None:
    assert compute_diff("old words", "") == [DiffSpan(DiffTag.DELETE, "old words")]


def test_replaced_word_is_delete_then_insert() -> None:
    spans = compute_diff("The cat sat", "The dog sat")

    assert spans == [
        DiffSpan(DiffTag.EQUAL, "The "),
        DiffSpan(DiffTag.DELETE, "cat"),
        DiffSpan(DiffTag.INSERT, "dog"),
        DiffSpan(DiffTag.EQUAL, " sat"),
    ]


def test_adjacent_spans_never_share_a_tag() -> None:
    spans = compute_diff("one two three four", "uno dos three cuatro")

    for left, right in zip(spans, spans[1:]):
        assert left.tag is not right.tag


@pytest.mark.parametrize(
    ("original", "modified"),
    [
        ("The quick brown fox", "The quick red fox jumps"),
        ("alpha\n\nbeta gamma", "alpha beta\n\ngamma delta"),
        ("  leading and trailing  ", "leading and trailing"),
        ("# Title\n\nSome *markdown* here.", "# New title\n\nSome **markdown** here!"),
        ("a a a a", "a b a b a"),
    ],
)
def test_spans_reconstruct_both_sides(original: str, modified: str) -> None:
    spans = compute_diff(original, modified)

    assert _rebuild(spans, skip=DiffTag.DELETE) == modified
    assert _rebuild(spans, skip=DiffTag.INSERT) == original


def test_inputs_are_not_mutated() -> None:
    original = "keep me"
    modified = "keep you"
    compute_diff(original, modified)

    assert (original, modified) == ("keep me", "keep you")


def test_diff_stats_counts_words() -> None:
    stats = diff_stats(compute_diff("one two three", "one 2 three four"))

    assert stats.inserted_words == 2
    assert stats.deleted_words == 1
    assert not stats.unchanged
    assert diff_stats(compute_diff("x", "x")).unchanged


def test_render_inline_marks_changes() -> None:
    rendered = render_inline(compute_diff("The cat sat", "The dog sat"))

    assert rendered == "The [-cat-]{+dog+} sat"
