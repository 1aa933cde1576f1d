"""Phrase matching and marker annotation."""

from phraselens.rewrite.annotator import annotate, is_marker, iter_markers
from phraselens.rewrite.cache import TextCache
from phraselens.rewrite.mappings import DEFAULT_MAPPINGS, default_pattern_table
from phraselens.rewrite.patterns import (
    PatternEntry,
    PatternTable,
    build_pattern_table,
    extract_key_terms,
)
from phraselens.rewrite.segments import (
    MatchSegment,
    apply_segments,
    find_matching_segments,
    identify_segments,
    rewrite_text,
)

__all__ = [
    "DEFAULT_MAPPINGS",
    "MatchSegment",
    "PatternEntry",
    "PatternTable",
    "TextCache",
    "annotate",
    "apply_segments",
    "build_pattern_table",
    "default_pattern_table",
    "extract_key_terms",
    "find_matching_segments",
    "identify_segments",
    "is_marker",
    "iter_markers",
    "rewrite_text",
]
