"""Tests for segment identification and plain-string rewriting."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from phraselens.rewrite.cache import TextCache
from phraselens.rewrite.mappings import default_pattern_table
from phraselens.rewrite.patterns import (
    PatternEntry,
    PatternTable,
    build_pattern_table,
    compile_entry,
)
from phraselens.rewrite.segments import (
    MatchSegment,
    apply_segments,
    find_matching_segments,
    identify_segments,
    rewrite_text,
)
from tests.helpers.dom_builders import SCENARIO_TEXT

if TYPE_CHECKING:
    from collections.abc import Sequence


def _reconstruct(text: str, segments: Sequence[MatchSegment]) -> str:
    """Unmatched text plus each segment's original text, in order."""
    parts: list[str] = []
    cursor = 0
    for segment in segments:
        parts.append(text[cursor : segment.start_index])
        parts.append(segment.original_text)
        cursor = segment.end_index
    parts.append(text[cursor:])
    return "".join(parts)


class _ExplodingMatcher:
    """Stands in for a compiled regex whose search always fails."""

    pattern = "boom"

    def search(self, _text: str, _pos: int = 0) -> None:
        msg = "matcher exploded"
        raise RuntimeError(msg)


class TestMatchSegment:
    """Segment construction."""

    def test_length(self) -> None:
        assert MatchSegment("CNN", "Fake News CNN", 4, 7).length == 3

    @pytest.mark.parametrize(("start", "end"), [(-1, 3), (3, 3), (5, 2)])
    def test_invalid_range(self, start: int, end: int) -> None:
        with pytest.raises(ValueError, match="Invalid segment range"):
            MatchSegment("x", "y", start, end)


class TestIdentifySegments:
    """identify_segments contract."""

    def test_scenario(self, scenario_table: PatternTable) -> None:
        segments = identify_segments(SCENARIO_TEXT, scenario_table)

        assert segments == [
            MatchSegment("Hillary Clinton", "Crooked Hillary", 0, 15),
            MatchSegment("CNN", "Fake News CNN", 25, 28),
        ]
        assert SCENARIO_TEXT[15:25] == " spoke to "

    @pytest.mark.parametrize("text", ["", "C", "   ", "\n\t  \n"])
    def test_short_or_blank_text(self, scenario_table: PatternTable, text: str) -> None:
        assert identify_segments(text, scenario_table) == []

    def test_min_length_is_configurable(self, scenario_table: PatternTable) -> None:
        assert identify_segments("CNN", scenario_table, min_length=4) == []
        assert len(identify_segments("CNN", scenario_table, min_length=3)) == 1

    def test_case_insensitive(self, scenario_table: PatternTable) -> None:
        (segment,) = identify_segments("watch cnn", scenario_table)
        assert segment.original_text == "cnn"

    def test_prefilter_rejection_skips_every_matcher(self) -> None:
        calls: list[str] = []

        class CountingMatcher:
            pattern = "CNN"

            def search(self, text: str, pos: int = 0) -> None:
                calls.append(text)

        entry = PatternEntry(
            matcher=CountingMatcher(),  # type: ignore[arg-type]
            replacement="x",
            key_terms=("cnn",),
        )
        table = PatternTable({"cnn": entry}, trigger_terms=())

        assert identify_segments("nothing relevant", table) == []
        assert calls == []

    def test_bailout_never_changes_result(self) -> None:
        table = default_pattern_table()
        text = (
            "Joe Biden and Kamala Harris were on NBC News, then ABC, then CNN; "
            "the New York Times and WaPo covered COVID-19 over coffee."
        )
        fast = identify_segments(text, table, early_bailout=True)
        slow = identify_segments(text, table, early_bailout=False)
        assert fast == slow
        assert len(fast) == 9

        # "İ".lower() is two code points; the pre-check must still match
        dotted = build_pattern_table(
            {"city": (r"\bİstanbul\b", "Constantinople")}, trigger_terms=()
        )
        for text in ("İstanbul", "flights to İSTANBUL"):
            fast = identify_segments(text, dotted, early_bailout=True)
            assert fast == identify_segments(text, dotted, early_bailout=False)
            assert [s.original_text for s in fast] == [text[-8:]]

    def test_zero_width_matches_terminate(self) -> None:
        table = build_pattern_table({"xs": (r"x*", "X")})
        assert identify_segments("abc", table) == []
        assert identify_segments("axxb", table) == [MatchSegment("xx", "X", 1, 3)]

    def test_repeated_calls_are_independent(
        self, scenario_table: PatternTable
    ) -> None:
        first = identify_segments("CNN and CNN", scenario_table)
        second = identify_segments("CNN and CNN", scenario_table)
        assert first == second
        assert [s.start_index for s in first] == [0, 8]

    def test_failing_entry_is_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        table = PatternTable(
            {
                "bad": PatternEntry(
                    matcher=_ExplodingMatcher(),  # type: ignore[arg-type]
                    replacement="x",
                ),
                "cnn": compile_entry("cnn", r"\bCNN\b", "Fake News CNN"),
            }
        )
        with caplog.at_level(logging.ERROR):
            segments = identify_segments("CNN live", table)

        assert [s.original_text for s in segments] == ["CNN"]
        assert "Pattern 'bad' failed" in caplog.text


class TestOverlapResolution:
    """Sorted, non-overlapping output."""

    def test_longest_wins_on_equal_start(self) -> None:
        table = build_pattern_table(
            {
                "short": (r"\bNew York\b", "Big Apple"),
                "long": (r"\bNew York Times\b", "Failing Times"),
            }
        )
        (segment,) = identify_segments("Read the New York Times", table)
        assert segment.original_text == "New York Times"
        assert segment.replacement_text == "Failing Times"

    def test_table_order_breaks_exact_ties(self) -> None:
        table = build_pattern_table(
            {"first": (r"\bCNN\b", "One"), "second": (r"\bCNN\b", "Two")}
        )
        (segment,) = identify_segments("CNN", table)
        assert segment.replacement_text == "One"

    def test_later_overlapping_segment_dropped(self) -> None:
        table = build_pattern_table({"a": (r"abc", "X"), "b": (r"bcd", "Y")})
        segments = identify_segments("abcd", table)
        assert segments == [MatchSegment("abc", "X", 0, 3)]

    def test_invariants_on_busy_text(self) -> None:
        table = default_pattern_table()
        text = (
            "Hillary Clinton told CNN that Ted Cruz, Marco Rubio and Jeb Bush "
            "would appear on ABC News and MSNBC with Megyn Kelly and Chuck Todd."
        )
        segments = identify_segments(text, table)

        assert segments
        for left, right in zip(segments, segments[1:], strict=False):
            assert left.start_index < right.start_index
            assert left.end_index <= right.start_index
        for segment in segments:
            assert text[segment.start_index : segment.end_index] == (
                segment.original_text
            )
        assert _reconstruct(text, segments) == text


class TestFindMatchingSegments:
    """Single-entry scan."""

    def test_yields_every_match(self) -> None:
        entry = compile_entry("cnn", r"\bCNN\b", "F")
        spans = [
            (s.start_index, s.end_index)
            for s in find_matching_segments("CNN, cnn, Cnn", entry)
        ]
        assert spans == [(0, 3), (5, 8), (10, 13)]


class TestApplyAndRewrite:
    """Plain-string rewriting."""

    def test_apply_segments(self, scenario_table: PatternTable) -> None:
        segments = identify_segments(SCENARIO_TEXT, scenario_table)
        assert apply_segments(SCENARIO_TEXT, segments) == (
            "Crooked Hillary spoke to Fake News CNN"
        )

    def test_apply_no_segments_is_identity(self) -> None:
        assert apply_segments("unchanged", []) == "unchanged"

    def test_rewrite_text_uses_cache(self, scenario_table: PatternTable) -> None:
        cache = TextCache()

        first = rewrite_text(SCENARIO_TEXT, scenario_table, cache)
        second = rewrite_text(SCENARIO_TEXT, scenario_table, cache)

        assert first == second == "Crooked Hillary spoke to Fake News CNN"
        assert cache.hits == 1
        assert cache.misses == 1

    def test_rewrite_text_caches_no_match(self, scenario_table: PatternTable) -> None:
        cache = TextCache()
        assert rewrite_text("plain words", scenario_table, cache) == "plain words"
        assert cache.is_known_unchanged("plain words")
