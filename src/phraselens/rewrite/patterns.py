"""Compiled pattern table with cheap literal pre-checks.

Each registry entry is compiled once into a case-insensitive regex.  From the
pattern source we also pull out *key terms*: literal substrings at least one of
which must occur in any text the pattern can match.  Texts that contain none
of an entry's key terms skip that entry's regex entirely.

When a branch of the pattern has no literal run it can guarantee (character
classes only, optional pieces, very short words), the entry gets no key terms
and is always run.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from phraselens.config import DEFAULT_TRIGGER_TERMS
from phraselens.errors import PatternError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Shortest literal worth using as a key term
MIN_KEY_TERM_LENGTH = 3

# Escapes that consume extra characters after the letter
_ESCAPE_ARG_LENGTHS = {"x": 2, "u": 4, "U": 8}

_QUANTIFIER_START = frozenset("?*+{")


@dataclass(frozen=True)
class PatternEntry:
    """One compiled registry entry."""

    matcher: re.Pattern[str]
    replacement: str
    key_terms: tuple[str, ...] = ()
    key_filter: re.Pattern[str] | None = field(
        default=None, compare=False, repr=False
    )

    def may_match(self, text: str) -> bool:
        """False only when *text* cannot contain a match."""
        if self.key_filter is None:
            return True
        return self.key_filter.search(text) is not None


# ---------------------------------------------------------------------------
# Key term extraction
# ---------------------------------------------------------------------------


def extract_key_terms(source: str, flags: int = 0) -> tuple[str, ...]:
    """Return the literal substrings one of which every match must contain.

    Args:
        source: Regex source as written in the registry.
        flags: ``re`` flags the pattern is compiled with.  Verbose patterns
            are not analysed.

    Returns:
        Terms in the case written in *source* (they are matched with
        ``re.IGNORECASE`` like the pattern), or an empty tuple when no safe
        set exists.
    """
    if flags & re.VERBOSE:
        return ()
    try:
        terms = _alternatives_terms(source)
    except (IndexError, ValueError):
        # Unbalanced source; compilation reports the real problem
        return ()
    if terms is None:
        return ()
    return tuple(dict.fromkeys(terms))


def _alternatives_terms(source: str) -> list[str] | None:
    """Union of the best candidate of every top-level alternative.

    None when any alternative has no candidate, since that alternative could
    then match without containing any of the collected terms.
    """
    terms: list[str] = []
    for branch in _split_alternatives(source):
        candidate = _best_candidate(branch)
        if candidate is None:
            return None
        terms.extend(candidate)
    return terms


def _best_candidate(branch: str) -> list[str] | None:
    best: list[str] | None = None
    best_score = 0
    for candidate in _branch_candidates(branch):
        score = min(len(term) for term in candidate)
        if score > best_score:
            best, best_score = candidate, score
    if best_score < MIN_KEY_TERM_LENGTH:
        return None
    return best


def _branch_candidates(branch: str) -> Iterator[list[str]]:  # noqa: PLR0912
    """Yield term lists any one of which is required by *branch*.

    A literal run gives a one-term list.  A mandatory group gives the union of
    its alternatives' terms.
    """
    run: list[str] = []

    def flush() -> Iterator[list[str]]:
        term = "".join(run).strip()
        run.clear()
        if term:
            yield [term]

    i = 0
    n = len(branch)
    while i < n:
        ch = branch[i]

        if ch == "\\":
            literal, i = _read_escape(branch, i)
            if literal is None:
                yield from flush()
                i = _skip_quantifier(branch, i)
                continue
            run.append(literal)
        elif ch == "[":
            yield from flush()
            i = _skip_quantifier(branch, _class_end(branch, i) + 1)
            continue
        elif ch == "(":
            yield from flush()
            end = _group_end(branch, i)
            body_start = _group_body_start(branch, i)
            after = end + 1
            optional = after < n and branch[after] in "?*{"
            i = _skip_quantifier(branch, after)
            if body_start is not None and not optional:
                terms = _alternatives_terms(branch[body_start:end])
                if terms:
                    yield terms
            continue
        elif ch in ".^$|)":
            yield from flush()
            i = _skip_quantifier(branch, i + 1)
            continue
        elif ch in _QUANTIFIER_START:
            # Stray quantifier with nothing to apply to
            yield from flush()
            i = _skip_quantifier(branch, i)
            continue
        else:
            run.append(ch)
            i += 1

        # A quantifier binds to the literal just appended
        if i < n and branch[i] in _QUANTIFIER_START:
            if branch[i] != "+":
                run.pop()
            yield from flush()
            i = _skip_quantifier(branch, i)

    yield from flush()


def _read_escape(source: str, i: int) -> tuple[str | None, int]:
    """Read the escape at *i*; return (literal char or None, next index)."""
    ch = source[i + 1]
    if not ch.isalnum():
        return ch, i + 2
    if ch in _ESCAPE_ARG_LENGTHS:
        return None, i + 2 + _ESCAPE_ARG_LENGTHS[ch]
    if ch == "N" and i + 2 < len(source) and source[i + 2] == "{":
        return None, source.index("}", i + 2) + 1
    if ch.isdigit():
        j = i + 1
        while j < len(source) and source[j].isdigit():
            j += 1
        return None, j
    return None, i + 2


def _skip_quantifier(source: str, i: int) -> int:
    if i >= len(source):
        return i
    if source[i] == "{":
        close = source.find("}", i)
        i = len(source) if close == -1 else close + 1
    elif source[i] in "?*+":
        i += 1
    else:
        return i
    # Lazy or possessive suffix
    if i < len(source) and source[i] in "?+":
        i += 1
    return i


def _class_end(source: str, i: int) -> int:
    """Index of the ``]`` closing the class that opens at *i*."""
    j = i + 1
    if j < len(source) and source[j] == "^":
        j += 1
    if j < len(source) and source[j] == "]":
        j += 1
    while source[j] != "]":
        j += 2 if source[j] == "\\" else 1
    return j


def _group_end(source: str, i: int) -> int:
    """Index of the ``)`` closing the group that opens at *i*."""
    depth = 0
    j = i
    while True:
        ch = source[j]
        if ch == "\\":
            j += 2
            continue
        if ch == "[":
            j = _class_end(source, j) + 1
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return j
        j += 1


def _group_body_start(source: str, i: int) -> int | None:
    """Start of a group's alternatives, or None for groups that match nothing.

    Lookarounds, inline flags, comments, conditionals and backreferences
    contribute no required text.
    """
    if source[i + 1] != "?":
        return i + 1
    marker = source[i + 2]
    if marker in ":>":
        return i + 3
    if marker == "P" and source[i + 3] == "<":
        return source.index(">", i + 4) + 1
    if marker == "<" and source[i + 3] not in "=!":
        return source.index(">", i + 3) + 1
    return None


def _split_alternatives(source: str) -> list[str]:
    """Split *source* on ``|`` outside groups, classes and escapes."""
    parts: list[str] = []
    depth = 0
    start = 0
    j = 0
    while j < len(source):
        ch = source[j]
        if ch == "\\":
            j += 2
            continue
        if ch == "[":
            j = _class_end(source, j) + 1
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "|" and depth == 0:
            parts.append(source[start:j])
            start = j + 1
        j += 1
    parts.append(source[start:])
    return parts


def _terms_filter(terms: Iterable[str]) -> re.Pattern[str] | None:
    unique = sorted(set(terms), key=lambda term: (-len(term), term))
    if not unique:
        return None
    return re.compile("|".join(re.escape(term) for term in unique), re.IGNORECASE)


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------


class PatternTable(Mapping[str, PatternEntry]):
    """Immutable, ordered mapping of identifier to compiled entry.

    Also holds the table-wide pre-check: a single regex over the trigger words
    and every entry's key terms.  Text it rejects cannot match any entry.
    """

    def __init__(
        self,
        entries: Mapping[str, PatternEntry],
        trigger_terms: Iterable[str] = DEFAULT_TRIGGER_TERMS,
    ) -> None:
        self._entries: dict[str, PatternEntry] = dict(entries)
        self._order = {key: idx for idx, key in enumerate(self._entries)}
        self.trigger_terms = tuple(trigger_terms)

        if any(not entry.key_terms for entry in self._entries.values()):
            # An entry without key terms could match anywhere
            self._prefilter: re.Pattern[str] | None = None
        else:
            terms = list(self.trigger_terms)
            for entry in self._entries.values():
                terms.extend(entry.key_terms)
            self._prefilter = _terms_filter(terms)

    def __getitem__(self, key: str) -> PatternEntry:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"PatternTable({len(self._entries)} entries)"

    @property
    def has_prefilter(self) -> bool:
        return self._prefilter is not None

    def order_of(self, key: str) -> int:
        """Position of *key* in the table (used for tie-breaks)."""
        return self._order[key]

    def may_match(self, text: str) -> bool:
        """Fast pre-check; False only when no entry can match *text*."""
        if self._prefilter is None:
            return True
        return self._prefilter.search(text) is not None


def compile_entry(key: str, source: str, replacement: str) -> PatternEntry:
    """Compile one registry entry, raising ``PatternError`` on bad input."""
    if not source:
        raise PatternError(key, "empty pattern")
    try:
        matcher = re.compile(source, re.IGNORECASE)
    except re.error as exc:
        raise PatternError(key, str(exc)) from exc
    key_terms = extract_key_terms(source, matcher.flags)
    return PatternEntry(
        matcher=matcher,
        replacement=replacement,
        key_terms=key_terms,
        key_filter=_terms_filter(key_terms),
    )


def build_pattern_table(
    mapping: Mapping[str, tuple[str, str]],
    *,
    trigger_terms: Iterable[str] = DEFAULT_TRIGGER_TERMS,
) -> PatternTable:
    """Compile ``{identifier: (pattern_source, replacement)}`` into a table.

    Raises:
        PatternError: If any pattern is empty or fails to compile.
    """
    entries: dict[str, PatternEntry] = {}
    for key, (source, replacement) in mapping.items():
        entries[key] = compile_entry(key, source, replacement)
        if not entries[key].key_terms:
            logger.debug("Pattern %r has no key terms; always evaluated", key)
    table = PatternTable(entries, trigger_terms)
    logger.debug(
        "Built pattern table: %d entries, prefilter=%s",
        len(table),
        table.has_prefilter,
    )
    return table
