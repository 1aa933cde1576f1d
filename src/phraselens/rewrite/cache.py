"""Bounded cache of rewritten strings.

Keys are raw text, values the fully rewritten text (equal to the key when
nothing matched).  When the cache grows past ``max_size`` the oldest
``max_size * trim_fraction`` entries go in one pass, so eviction cost is paid
rarely rather than on every insert.
"""

from __future__ import annotations

import logging
from itertools import islice

logger = logging.getLogger(__name__)


class TextCache:
    def __init__(self, max_size: int = 1000, trim_fraction: float = 0.25) -> None:
        if max_size < 1:
            msg = f"max_size must be positive, got {max_size}"
            raise ValueError(msg)
        if not 0 < trim_fraction <= 1:
            msg = f"trim_fraction must be in (0, 1], got {trim_fraction}"
            raise ValueError(msg)
        self.max_size = max_size
        self.trim_fraction = trim_fraction
        self._entries: dict[str, str] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: object) -> bool:
        return text in self._entries

    def get(self, text: str) -> str | None:
        result = self._entries.get(text)
        if result is None:
            self.misses += 1
        else:
            self.hits += 1
        return result

    def is_known_unchanged(self, text: str) -> bool:
        """True when *text* was seen before and nothing in it matched."""
        return self._entries.get(text) == text

    def put(self, text: str, rewritten: str) -> None:
        self._entries[text] = rewritten
        if len(self._entries) > self.max_size:
            self._trim()

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict[str, int]:
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
        }

    def _trim(self) -> None:
        count = max(1, int(self.max_size * self.trim_fraction))
        # dicts keep insertion order, so the first keys are the oldest
        for key in list(islice(self._entries, count)):
            del self._entries[key]
        logger.debug("Trimmed %d entries from text cache", count)
