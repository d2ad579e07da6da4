"""Word-level diff annotations for reviewing AI proposals."""

from __future__ import annotations

import re
from dataclasses import dataclass
from difflib import SequenceMatcher
from enum import Enum
from typing import Iterable, Sequence

__all__ = [
    "DiffSpan",
    "DiffStats",
    "DiffTag",
    "compute_diff",
    "diff_stats",
    "render_inline",
    "tokenize",
]

# Whitespace runs and non-whitespace runs; joining the tokens gives the input.
_TOKEN_RE = re.compile(r"\s+|\S+")


class DiffTag(str, Enum):
    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"


@dataclass(slots=True, frozen=True)
class DiffSpan:
    """One annotated run of text in a rendered diff."""

    tag: DiffTag
    text: str


@dataclass(slots=True, frozen=True)
class DiffStats:
    inserted_words: int
    deleted_words: int

    @property
    def unchanged(self) -> bool:
        return self.inserted_words == 0 and self.deleted_words == 0


def tokenize(text: str) -> list[str]:
    """Split ``text`` into alternating whitespace and word tokens."""

    return _TOKEN_RE.findall(text)


def compute_diff(original: str, modified: str) -> list[DiffSpan]:
    """Return the word-granularity diff from ``original`` to ``modified``.

    Concatenating the non-delete spans reproduces ``modified`` and the
    non-insert spans reproduce ``original``. The function is total: every
    pair of strings produces a diff.
    """

    if original == modified:
        return [DiffSpan(DiffTag.EQUAL, original)]
    if not original:
        return [DiffSpan(DiffTag.INSERT, modified)]
    if not modified:
        return [DiffSpan(DiffTag.DELETE, original)]

    before = tokenize(original)
    after = tokenize(modified)
    matcher = SequenceMatcher(a=before, b=after, autojunk=False)

    raw: list[DiffSpan] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            raw.append(DiffSpan(DiffTag.EQUAL, "".join(before[i1:i2])))
            continue
        if i2 > i1:
            raw.append(DiffSpan(DiffTag.DELETE, "".join(before[i1:i2])))
        if j2 > j1:
            raw.append(DiffSpan(DiffTag.INSERT, "".join(after[j1:j2])))
    return _coalesce(raw)


def _coalesce(spans: Iterable[DiffSpan]) -> list[DiffSpan]:
    merged: list[DiffSpan] = []
    for span in spans:
        if not span.text:
            continue
        if merged and merged[-1].tag is span.tag:
            merged[-1] = DiffSpan(span.tag, merged[-1].text + span.text)
        else:
            merged.append(span)
    return merged


def diff_stats(spans: Sequence[DiffSpan]) -> DiffStats:
    inserted = sum(len(span.text.split()) for span in spans if span.tag is DiffTag.INSERT)
    deleted = sum(len(span.text.split()) for span in spans if span.tag is DiffTag.DELETE)
    return DiffStats(inserted_words=inserted, deleted_words=deleted)


def render_inline(spans: Sequence[DiffSpan]) -> str:
    """Render spans as plain text with ``[-removed-]`` and ``{+added+}`` marks."""

    parts: list[str] = []
    for span in spans:
        if span.tag is DiffTag.INSERT:
            parts.append(f"{{+{span.text}+}}")
        elif span.tag is DiffTag.DELETE:
            parts.append(f"[-{span.text}-]")
        else:
            parts.append(span.text)
    return "".join(parts)
