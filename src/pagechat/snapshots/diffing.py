"""Line-level comparison of two snapshot texts."""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from typing import Sequence

from .models import DiffResult, LargeDiff, SmallDiff, Unchanged

__all__ = [
    "LineChangeStats",
    "count_line_changes",
    "changed_chunk_indices",
    "build_unified_patch",
    "classify_diff",
]

_FROM_LABEL = "previous"
_TO_LABEL = "current"


@dataclass(slots=True, frozen=True)
class LineChangeStats:
    """Changed vs. total lines, where ``total`` counts kept, removed and added lines."""

    changed: int
    total: int

    @property
    def ratio(self) -> float:
        if self.total == 0:
            return 0.0
        return self.changed / self.total


def count_line_changes(old_text: str, new_text: str) -> LineChangeStats:
    old_lines = old_text.splitlines(keepends=True)
    new_lines = new_text.splitlines(keepends=True)
    matcher = difflib.SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    changed = 0
    total = 0
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        removed = i2 - i1
        added = j2 - j1
        if tag == "equal":
            total += removed
            continue
        if tag in ("replace", "delete"):
            changed += removed
            total += removed
        if tag in ("replace", "insert"):
            changed += added
            total += added
    return LineChangeStats(changed=changed, total=total)


def changed_chunk_indices(old_chunks: Sequence[str], new_chunks: Sequence[str]) -> tuple[int, ...]:
    """Return positions whose chunk text differs, including positions only one side has."""

    span = max(len(old_chunks), len(new_chunks))
    changed: list[int] = []
    for index in range(span):
        old = old_chunks[index] if index < len(old_chunks) else None
        new = new_chunks[index] if index < len(new_chunks) else None
        if old != new:
            changed.append(index)
    return tuple(changed)


def build_unified_patch(old_text: str, new_text: str, *, context: int = 3) -> str:
    diff = difflib.unified_diff(
        old_text.splitlines(),
        new_text.splitlines(),
        fromfile=_FROM_LABEL,
        tofile=_TO_LABEL,
        lineterm="",
        n=max(0, int(context)),
    )
    return "\n".join(diff)


def classify_diff(
    old_text: str,
    new_text: str,
    old_chunks: Sequence[str],
    new_chunks: Sequence[str],
    *,
    threshold: float,
    context: int = 3,
) -> DiffResult:
    """Classify a text change as small (ratio <= ``threshold``) or large.

    A ratio exactly equal to the threshold is a small diff.
    """

    stats = count_line_changes(old_text, new_text)
    if stats.total == 0 or stats.changed == 0:
        return Unchanged()
    chunks = changed_chunk_indices(old_chunks, new_chunks)
    if stats.ratio > threshold:
        return LargeDiff(changed_lines=stats.changed, total_lines=stats.total, changed_chunks=chunks)
    patch = build_unified_patch(old_text, new_text, context=context)
    if not patch.strip():
        return Unchanged()
    return SmallDiff(
        patch=patch,
        changed_lines=stats.changed,
        total_lines=stats.total,
        changed_chunks=chunks,
    )
