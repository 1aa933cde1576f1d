"""Materialise match segments in the tree as marker elements.

Given a text node and the segments found in its data, each matched substring
is isolated with two ``split_text`` calls and swapped for a marker::

    "Hillary Clinton spoke to CNN"
        -> <span class="pl-rewritten" data-original-text="Hillary Clinton"
                 tabindex="0" data-pl-processed="true">Crooked Hillary</span>
           " spoke to "
           <span ... data-original-text="CNN" ...>Fake News CNN</span>

Segments are applied right to left, so offsets of segments still waiting are
never shifted by an earlier split.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from phraselens.dom.nodes import Element, Node, Text
from phraselens.rewrite.marker_constants import (
    MARKER_CLASS,
    MARKER_TAG,
    ORIGINAL_TEXT_ATTR,
    PROCESSED_ATTR,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    from phraselens.rewrite.segments import MatchSegment

logger = logging.getLogger(__name__)


def create_marker(original_text: str, replacement_text: str) -> Element:
    """Build a detached marker element.

    The replacement is assigned through ``text_content`` so it is always a
    single text child, never parsed as markup.
    """
    marker = Element(
        MARKER_TAG,
        {
            "class": MARKER_CLASS,
            ORIGINAL_TEXT_ATTR: original_text,
            "tabindex": "0",
            PROCESSED_ATTR: "true",
        },
    )
    marker.text_content = replacement_text
    return marker


def annotate(
    text_node: Node,
    segments: Sequence[MatchSegment],
    *,
    mark_processed: Callable[[Text], None] | None = None,
) -> bool:
    """Replace each segment of *text_node* with a marker.

    Args:
        text_node: The text node whose data the segments were computed from.
        segments: Segments for that data; validated against its current length.
        mark_processed: Called with every plain text fragment left behind by
            the splits, so the caller can skip them later.

    Returns:
        True if at least one marker was inserted.  When a tree operation fails
        part way, markers already committed stay and the rest are abandoned.
    """
    if not isinstance(text_node, Text) or text_node.parent is None:
        return False
    if not text_node.data or not segments:
        return False

    length = text_node.length
    valid: list[MatchSegment] = []
    for segment in segments:
        if not 0 <= segment.start_index < segment.end_index <= length:
            logger.warning(
                "Skipping segment [%d, %d) outside text of length %d",
                segment.start_index,
                segment.end_index,
                length,
            )
            continue
        valid.append(segment)
    if not valid:
        return False

    valid.sort(key=lambda s: s.start_index, reverse=True)

    modified = False
    leftovers: list[Text] = []
    # ``node`` holds the text left of the segments applied so far; None once
    # a segment starting at 0 has consumed it
    node: Text | None = text_node
    try:
        for segment in valid:
            if node is None or segment.end_index > node.length:
                logger.warning(
                    "Skipping overlapping segment [%d, %d)",
                    segment.start_index,
                    segment.end_index,
                )
                continue
            if segment.end_index < node.length:
                leftovers.append(node.split_text(segment.end_index))
            if segment.start_index > 0:
                matched = node.split_text(segment.start_index)
            else:
                matched, node = node, None
            parent = matched.parent
            if parent is None:
                msg = "Split text node lost its parent"
                raise RuntimeError(msg)
            marker = create_marker(matched.data, segment.replacement_text)
            parent.replace_child(marker, matched)
            modified = True
    except Exception:
        logger.exception("Failed to annotate text node %r", text_node)

    if node is not None and node.data:
        leftovers.append(node)
    if mark_processed is not None:
        for fragment in leftovers:
            if fragment.parent is not None:
                mark_processed(fragment)
    return modified


def is_marker(node: Node | None) -> bool:
    """True if *node* is a marker created by ``annotate``."""
    return (
        isinstance(node, Element)
        and node.tag == MARKER_TAG
        and MARKER_CLASS in node.class_list
        and node.has_attribute(ORIGINAL_TEXT_ATTR)
    )


def is_inside_marker(node: Node) -> bool:
    """True if *node* is a marker or has a marker ancestor."""
    if is_marker(node):
        return True
    return any(is_marker(ancestor) for ancestor in node.ancestors())


def iter_markers(root: Node) -> Iterator[Element]:
    """Yield every marker under *root* in tree order."""
    for node in root.iter_descendants():
        if isinstance(node, Element) and is_marker(node):
            yield node
