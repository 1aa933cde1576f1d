"""Segment identification: where in a string should phrases be replaced.

Nothing here touches the document tree.  ``identify_segments`` returns
sorted, non-overlapping ``MatchSegment`` values for one string; the annotator
turns them into markers, ``apply_segments`` turns them into a plain string.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from phraselens.rewrite.cache import TextCache
    from phraselens.rewrite.patterns import PatternEntry, PatternTable

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 2


@dataclass(frozen=True)
class MatchSegment:
    """One match, in offsets relative to the string it was found in."""

    original_text: str
    replacement_text: str
    start_index: int
    end_index: int

    def __post_init__(self) -> None:
        if self.start_index < 0 or self.start_index >= self.end_index:
            msg = (
                f"Invalid segment range [{self.start_index}, {self.end_index})"
                f" for {self.original_text!r}"
            )
            raise ValueError(msg)

    @property
    def length(self) -> int:
        return self.end_index - self.start_index


def find_matching_segments(text: str, entry: PatternEntry) -> Iterator[MatchSegment]:
    """Yield every match of *entry* in *text*, left to right.

    The scan position is local to this call, so the compiled matcher carries no
    state between invocations.  Zero-width matches yield nothing and advance
    the position by one.
    """
    matcher = entry.matcher
    pos = 0
    end = len(text)
    while pos <= end:
        match = matcher.search(text, pos)
        if match is None:
            return
        start, stop = match.span()
        if stop == start:
            pos = stop + 1
            continue
        yield MatchSegment(
            original_text=match.group(0),
            replacement_text=entry.replacement,
            start_index=start,
            end_index=stop,
        )
        pos = stop


def identify_segments(
    text: str,
    table: PatternTable,
    *,
    min_length: int = MIN_TEXT_LENGTH,
    early_bailout: bool = True,
) -> list[MatchSegment]:
    """Return the non-overlapping segments of *text* that should be replaced.

    Args:
        text: The string to scan.  Never modified.
        table: Compiled patterns.
        min_length: Shorter text is ignored.
        early_bailout: Use the table pre-check and per-entry key terms.
            Turning it off never changes the result, only the cost.

    Returns:
        Segments sorted by ``start_index`` with
        ``segments[i].end_index <= segments[i + 1].start_index``.
    """
    if not text or len(text) < min_length or text.isspace():
        return []
    if early_bailout and not table.may_match(text):
        return []

    ranked: list[tuple[int, int, int, MatchSegment]] = []
    for key, entry in table.items():
        if early_bailout and not entry.may_match(text):
            continue
        order = table.order_of(key)
        try:
            for segment in find_matching_segments(text, entry):
                ranked.append(
                    (segment.start_index, -segment.length, order, segment)
                )
        except Exception:
            # One bad entry must not abort the whole pass
            logger.exception("Pattern %r failed while scanning text", key)

    if not ranked:
        return []
    ranked.sort(key=lambda item: item[:3])
    return _resolve_overlaps(item[3] for item in ranked)


def _resolve_overlaps(ordered: Iterator[MatchSegment]) -> list[MatchSegment]:
    """Keep each segment that starts at or after the previous kept one ends.

    Input must already be sorted; on equal starts the first (longest, then
    earliest in the table) wins.
    """
    kept: list[MatchSegment] = []
    last_end = 0
    for segment in ordered:
        if segment.start_index >= last_end:
            kept.append(segment)
            last_end = segment.end_index
    return kept


def apply_segments(text: str, segments: Sequence[MatchSegment]) -> str:
    """Return *text* with each segment replaced by its replacement text."""
    parts: list[str] = []
    cursor = 0
    for segment in segments:
        parts.append(text[cursor : segment.start_index])
        parts.append(segment.replacement_text)
        cursor = segment.end_index
    parts.append(text[cursor:])
    return "".join(parts)


def rewrite_text(
    text: str,
    table: PatternTable,
    cache: TextCache | None = None,
    *,
    min_length: int = MIN_TEXT_LENGTH,
    early_bailout: bool = True,
) -> str:
    """Plain-string rewrite of *text*, memoised in *cache* when given."""
    if cache is not None:
        cached = cache.get(text)
        if cached is not None:
            return cached
    segments = identify_segments(
        text, table, min_length=min_length, early_bailout=early_bailout
    )
    result = apply_segments(text, segments) if segments else text
    if cache is not None:
        cache.put(text, result)
    return result
