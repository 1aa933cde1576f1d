"""Tests for turning segments into marker elements."""

from __future__ import annotations

import logging

import pytest

from phraselens.dom.html import serialize
from phraselens.dom.nodes import Element, Node, Text
from phraselens.rewrite.annotator import (
    annotate,
    create_marker,
    is_inside_marker,
    is_marker,
    iter_markers,
)
from phraselens.rewrite.marker_constants import (
    MARKER_CLASS,
    ORIGINAL_TEXT_ATTR,
    PROCESSED_ATTR,
)
from phraselens.rewrite.patterns import PatternTable
from phraselens.rewrite.segments import MatchSegment, identify_segments
from tests.helpers.dom_builders import SCENARIO_TEXT, element, original_text


def _marker_summary(root: Node) -> list[tuple[str | None, str]]:
    return [
        (m.get_attribute(ORIGINAL_TEXT_ATTR), m.text_content)
        for m in iter_markers(root)
    ]


class _FlakyParent(Element):
    """Element whose second replace_child call fails."""

    def __init__(self) -> None:
        super().__init__("p")
        self.replacements = 0

    def replace_child(self, new_child: Node, old_child: Node) -> Node:
        self.replacements += 1
        if self.replacements > 1:
            msg = "replace failed"
            raise RuntimeError(msg)
        return super().replace_child(new_child, old_child)


class TestAnnotate:
    """annotate() on a single text node."""

    def test_scenario(self, scenario_table: PatternTable) -> None:
        text = Text(SCENARIO_TEXT)
        parent = element("p", text)
        segments = identify_segments(SCENARIO_TEXT, scenario_table)

        assert annotate(text, segments) is True

        first, middle, last = parent.children
        assert is_marker(first)
        assert isinstance(middle, Text)
        assert middle.data == " spoke to "
        assert is_marker(last)
        assert _marker_summary(parent) == [
            ("Hillary Clinton", "Crooked Hillary"),
            ("CNN", "Fake News CNN"),
        ]

    def test_whole_text_match_gives_single_marker(
        self, scenario_table: PatternTable
    ) -> None:
        text = Text("CNN")
        parent = element("p", text)

        assert annotate(text, identify_segments("CNN", scenario_table))

        (marker,) = parent.children
        assert is_marker(marker)
        assert isinstance(marker, Element)
        assert marker.get_attribute(ORIGINAL_TEXT_ATTR) == "CNN"
        assert marker.text_content == "Fake News CNN"

    def test_no_empty_text_nodes_left(self, scenario_table: PatternTable) -> None:
        text = Text("CNN and CNN")
        parent = element("p", text)
        annotate(text, identify_segments("CNN and CNN", scenario_table))

        for child in parent.children:
            if isinstance(child, Text):
                assert child.data

    def test_original_text_round_trips(self, scenario_table: PatternTable) -> None:
        source = "Before CNN, after Hillary Clinton, end."
        text = Text(source)
        parent = element("div", text)
        segments = identify_segments(source, scenario_table)

        annotate(text, segments)

        markers = list(iter_markers(parent))
        assert [m.get_attribute(ORIGINAL_TEXT_ATTR) for m in markers] == [
            source[s.start_index : s.end_index] for s in segments
        ]
        assert original_text(parent) == source

    def test_marker_attributes(self, scenario_table: PatternTable) -> None:
        text = Text("CNN")
        parent = element("p", text)
        annotate(text, identify_segments("CNN", scenario_table))

        marker = parent.children[0]
        assert isinstance(marker, Element)
        assert marker.tag == "span"
        assert marker.class_list == [MARKER_CLASS]
        assert marker.get_attribute("tabindex") == "0"
        assert marker.has_attribute(PROCESSED_ATTR)

    def test_mark_processed_receives_leftovers(
        self, scenario_table: PatternTable
    ) -> None:
        text = Text("Watch CNN tonight")
        element("p", text)
        seen: list[str] = []

        annotate(
            text,
            identify_segments("Watch CNN tonight", scenario_table),
            mark_processed=lambda node: seen.append(node.data),
        )

        assert sorted(seen) == [" tonight", "Watch "]


class TestAnnotateNoOps:
    """Inputs that leave the tree untouched."""

    def test_detached_node(self) -> None:
        segment = MatchSegment("CNN", "X", 0, 3)
        assert annotate(Text("CNN"), [segment]) is False

    def test_empty_text(self) -> None:
        text = Text("")
        element("p", text)
        assert annotate(text, [MatchSegment("CNN", "X", 0, 3)]) is False

    def test_empty_segment_list(self) -> None:
        text = Text("CNN")
        parent = element("p", text)
        assert annotate(text, []) is False
        assert parent.children == [text]

    def test_not_a_text_node(self) -> None:
        segment = MatchSegment("CNN", "X", 0, 3)
        assert annotate(element("p", "CNN"), [segment]) is False

    def test_out_of_range_segment_skipped(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        text = Text("short")
        parent = element("p", text)

        with caplog.at_level(logging.WARNING):
            result = annotate(text, [MatchSegment("far away", "X", 10, 18)])

        assert result is False
        assert parent.children == [text]
        assert text.data == "short"
        assert "outside text of length 5" in caplog.text


class TestAnnotateFailure:
    """A failing tree operation keeps committed markers."""

    def test_partial_commit(
        self, scenario_table: PatternTable, caplog: pytest.LogCaptureFixture
    ) -> None:
        parent = _FlakyParent()
        text = Text(SCENARIO_TEXT)
        parent.append_child(text)

        with caplog.at_level(logging.ERROR):
            result = annotate(text, identify_segments(SCENARIO_TEXT, scenario_table))

        assert result is True
        assert _marker_summary(parent) == [("CNN", "Fake News CNN")]
        assert original_text(parent) == SCENARIO_TEXT
        assert "Failed to annotate" in caplog.text


class TestMarkers:
    """Marker helpers."""

    def test_marker_content_is_literal_text(self) -> None:
        marker = create_marker("<script>alert(1)</script>", "<b>nick</b>")

        (child,) = marker.children
        assert isinstance(child, Text)
        assert child.data == "<b>nick</b>"
        html = serialize(marker)
        assert "&lt;b&gt;nick&lt;/b&gt;" in html
        assert "<script>" not in html

    def test_is_marker_requires_class_and_attribute(self) -> None:
        assert not is_marker(Element("span", {"class": MARKER_CLASS}))
        assert not is_marker(Element("span", {ORIGINAL_TEXT_ATTR: "x"}))
        assert not is_marker(Text("x"))
        assert not is_marker(None)
        assert is_marker(create_marker("a", "b"))

    def test_is_inside_marker(self) -> None:
        marker = create_marker("a", "b")
        inner = marker.children[0]
        assert is_inside_marker(marker)
        assert is_inside_marker(inner)
        assert not is_inside_marker(element("p", "x"))
