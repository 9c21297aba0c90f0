"""Tests for line-change counting and diff classification."""

from __future__ import annotations

from pagechat.snapshots.diffing import (
    build_unified_patch,
    changed_chunk_indices,
    classify_diff,
    count_line_changes,
)
from pagechat.snapshots.models import LargeDiff, SmallDiff, Unchanged


def _lines(count: int, prefix: str = "line") -> str:
    return "\n".join(f"{prefix} {index}" for index in range(count)) + "\n"


# =============================================================================
# Line statistics
# =============================================================================


class TestCountLineChanges:
    def test_identical_text_has_no_changes(self):
        stats = count_line_changes("a\nb\n", "a\nb\n")

        assert stats.changed == 0
        assert stats.total == 2
        assert stats.ratio == 0.0

    def test_replaced_line_counts_both_sides(self):
        stats = count_line_changes("a\nb\nc\n", "a\nX\nc\n")

        assert stats.changed == 2
        assert stats.total == 4

    def test_appended_lines(self):
        stats = count_line_changes("a\n", "a\nb\nc\n")

        assert stats.changed == 2
        assert stats.total == 3

    def test_empty_inputs(self):
        stats = count_line_changes("", "")

        assert stats.total == 0
        assert stats.ratio == 0.0


class TestChangedChunkIndices:
    def test_positional_comparison(self):
        assert changed_chunk_indices(["a", "b", "c"], ["a", "B", "c"]) == (1,)

    def test_length_mismatch_marks_extra_positions(self):
        assert changed_chunk_indices(["a"], ["a", "b", "c"]) == (1, 2)
        assert changed_chunk_indices(["a", "b"], []) == (0, 1)


def test_unified_patch_uses_fixed_labels():
    patch = build_unified_patch("a\nb\n", "a\nc\n")

    assert patch.startswith("--- previous\n+++ current")
    assert "-b" in patch
    assert "+c" in patch


# =============================================================================
# Classification
# =============================================================================


class TestClassifyDiff:
    def test_small_change_carries_patch(self):
        old = _lines(20)
        new = old.replace("line 5\n", "line five\n")

        result = classify_diff(old, new, ["c0"], ["c0-new"], threshold=0.3)

        assert isinstance(result, SmallDiff)
        assert result.kind == "small_diff"
        assert result.changed_lines == 2
        assert result.total_lines == 21
        assert result.changed_chunks == (0,)
        assert "+line five" in result.patch

    def test_ratio_equal_to_threshold_is_small(self):
        # 14 kept lines, 3 removed and 3 added -> 6 / 20 = 0.3
        kept = _lines(14, "keep")
        old = kept + _lines(3, "old")
        new = kept + _lines(3, "new")

        result = classify_diff(old, new, [], [], threshold=0.3)

        assert isinstance(result, SmallDiff)
        assert result.changed_lines == 6
        assert result.total_lines == 20

    def test_ratio_over_threshold_is_large(self):
        old = _lines(4, "old")
        new = _lines(4, "new")

        result = classify_diff(old, new, ["x"], ["y"], threshold=0.3)

        assert isinstance(result, LargeDiff)
        assert result.kind == "large_diff"
        assert result.changed_lines == 8
        assert result.total_lines == 8
        assert result.changed_chunks == (0,)

    def test_no_line_changes_is_unchanged(self):
        assert isinstance(classify_diff("", "", [], [], threshold=0.3), Unchanged)
        assert isinstance(classify_diff("same\n", "same\n", [], [], threshold=0.3), Unchanged)
