"""Marker format constants for rewritten phrases.

A marker is the inline element that replaces one matched phrase.  Anything
that wants to reveal the original wording (a tooltip layer, the CLI, tests)
finds markers by ``MARKER_CLASS`` and reads ``ORIGINAL_TEXT_ATTR``.

Used by rewrite/annotator.py (creation) and engine/ (skipping).
"""

from __future__ import annotations

MARKER_TAG = "span"
MARKER_CLASS = "pl-rewritten"
ORIGINAL_TEXT_ATTR = "data-original-text"

# Set on every element the engine has handled, markers included
PROCESSED_ATTR = "data-pl-processed"

# Engine-owned bookkeeping element; never scanned, its changes never observed
CONTROL_ELEMENT_ID = "phraselens-kill-switch"
