"""Time-sliced tree walker.

The walker owns a queue of pending nodes.  ``run_slice`` pops nodes until the
queue is empty, ``chunk_size`` nodes have been handled or ``time_slice_ms`` has
elapsed, then returns so the caller can yield to its scheduler.  Children are
pushed at the head of the queue, so a single root is walked in tree order while
separately enqueued roots are served first come, first served.

Subtrees that never hold rewritable prose are not entered: non-content
elements, form controls, editable regions, hidden elements, markers and the
engine's control element.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import deque
from contextlib import nullcontext
from typing import TYPE_CHECKING

from phraselens.config import DEFAULT_SKIP_TAGS
from phraselens.dom.nodes import Document, Element, Node, Text
from phraselens.rewrite.annotator import is_marker
from phraselens.rewrite.marker_constants import CONTROL_ELEMENT_ID

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from contextlib import AbstractContextManager

    from phraselens.engine.tracking import ProcessedTracker

logger = logging.getLogger(__name__)

FORM_TAGS = frozenset(("input", "textarea", "select"))
_EDITABLE_VALUES = frozenset(("", "true", "plaintext-only"))
_DISPLAY_NONE = re.compile(r"(?:^|;)\s*display\s*:\s*none\b", re.IGNORECASE)


def _is_editable_element(element: Element) -> bool:
    if element.tag in FORM_TAGS:
        return True
    if not element.has_attribute("contenteditable"):
        return False
    value = element.get_attribute("contenteditable") or ""
    return value.strip().lower() in _EDITABLE_VALUES


def is_editable_node(node: Node) -> bool:
    """True if *node* or any ancestor is a form field or content-editable."""
    current: Node | None = node
    while current is not None:
        if isinstance(current, Element) and _is_editable_element(current):
            return True
        current = current.parent
    return False


def should_skip_element(
    element: Element, skip_tags: Iterable[str] = DEFAULT_SKIP_TAGS
) -> bool:
    """True if the walker must not descend into *element*."""
    if element.tag in skip_tags:
        return True
    if is_marker(element) or element.id == CONTROL_ELEMENT_ID:
        return True
    if _is_editable_element(element):
        return True
    style = element.get_attribute("style")
    return bool(style and _DISPLAY_NONE.search(style))


class ChunkedWalker:
    """Budgeted pre-order walk over one or more roots.

    Args:
        visit: Called for each unprocessed text node found.
        tracker: Processed-node records; processed text nodes are not visited.
        chunk_size: Maximum nodes handled per slice.
        time_slice_ms: Maximum wall time per slice.
        skip_tags: Element tags never descended into.
        guard: Factory for a context manager entered around each slice.
        should_continue: Checked before each node; False drops the queue.
    """

    def __init__(
        self,
        visit: Callable[[Text], object],
        tracker: ProcessedTracker,
        *,
        chunk_size: int = 50,
        time_slice_ms: float = 15.0,
        skip_tags: Iterable[str] = DEFAULT_SKIP_TAGS,
        guard: Callable[[], AbstractContextManager[object]] | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> None:
        self._visit = visit
        self._tracker = tracker
        self.chunk_size = chunk_size
        self.time_slice_ms = time_slice_ms
        self.skip_tags = frozenset(tag.lower() for tag in skip_tags)
        self._guard = guard
        self._should_continue = should_continue
        self._pending: deque[Node] = deque()
        self.slices_run = 0
        self.text_visits = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def clear(self) -> None:
        self._pending.clear()

    def enqueue(self, root: Node) -> bool:
        """Queue *root* behind any pending work.

        Returns False (and queues nothing) when *root* lies inside a subtree
        the walker never enters.
        """
        if self.in_skipped_subtree(root):
            logger.debug("Not queueing %r: inside a skipped subtree", root)
            return False
        self._pending.append(root)
        return True

    def in_skipped_subtree(self, node: Node) -> bool:
        """True if an ancestor of *node* is an element the walker never enters."""
        return any(
            isinstance(ancestor, Element)
            and should_skip_element(ancestor, self.skip_tags)
            for ancestor in node.ancestors()
        )

    def run_slice(self) -> bool:
        """Handle one budgeted slice; return True while work remains."""
        guard = self._guard() if self._guard is not None else nullcontext()
        with guard:
            self._run_budget()
        self.slices_run += 1
        return bool(self._pending)

    def drain_sync(self) -> int:
        """Run slices back to back; return the number of text nodes visited."""
        before = self.text_visits
        while self.run_slice():
            pass
        return self.text_visits - before

    async def drain(self) -> int:
        """Run slices, yielding to the event loop between them."""
        before = self.text_visits
        while self.run_slice():
            await asyncio.sleep(0)
        return self.text_visits - before

    # ------------------------------------------------------------------

    def _run_budget(self) -> None:
        pending = self._pending
        deadline = time.perf_counter() + self.time_slice_ms / 1000
        handled = 0
        while pending and handled < self.chunk_size:
            if self._should_continue is not None and not self._should_continue():
                logger.debug("Walker stopped with %d nodes pending", len(pending))
                pending.clear()
                return
            node = pending.popleft()
            handled += 1
            self._handle(node)
            if time.perf_counter() >= deadline:
                return

    def _handle(self, node: Node) -> None:
        if isinstance(node, Text):
            if node.parent is None or self._tracker.is_processed(node):
                return
            self.text_visits += 1
            self._visit(node)
            return
        if isinstance(node, Element):
            if should_skip_element(node, self.skip_tags):
                return
            self._tracker.mark_processed(node)
        elif not isinstance(node, Document):
            return
        # Head of the queue, original order: pre-order within this root
        self._pending.extendleft(reversed(node.children))
