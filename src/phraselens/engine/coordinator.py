"""Rewrite coordinator: initial sweep, change handling and the circuit breaker.

The coordinator owns everything with state: the run state, the text cache,
processed-node records, the walker and the change subscription.  Several
coordinators can live side by side (one per document) without sharing
anything but the read-only pattern table.

State machine::

    IDLE -> SWEEPING -> IDLE                 initial sweep / reprocess
    IDLE <-> HANDLING_MUTATION               change-driven work
    any  -> DISABLED                         breaker trips or disable()
    DISABLED -> IDLE                         enable() only

All writes to the tree happen inside ``ChangeSubscription.suspended()``, so
the coordinator never sees its own edits.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from phraselens.config import DEFAULT_TRIGGER_TERMS, Settings, get_settings
from phraselens.dom.html import (
    is_full_document,
    parse_html,
    serialize,
    serialize_children,
)
from phraselens.dom.nodes import Element, Text
from phraselens.engine.subscription import ChangeSubscription, SubscriptionState
from phraselens.engine.tracking import ProcessedTracker
from phraselens.engine.walker import ChunkedWalker, is_editable_node
from phraselens.errors import ErrorStats, protect, protect_async, timed
from phraselens.rewrite.annotator import annotate, is_inside_marker
from phraselens.rewrite.cache import TextCache
from phraselens.rewrite.mappings import DEFAULT_MAPPINGS, default_pattern_table
from phraselens.rewrite.marker_constants import PROCESSED_ATTR
from phraselens.rewrite.patterns import build_pattern_table
from phraselens.rewrite.segments import apply_segments, identify_segments

if TYPE_CHECKING:
    from collections.abc import Sequence

    from phraselens.config import EngineConfig
    from phraselens.dom.nodes import Node
    from phraselens.dom.observer import MutationRecord
    from phraselens.rewrite.patterns import PatternTable

logger = logging.getLogger(__name__)


def _default_table(config: EngineConfig) -> PatternTable:
    if config.trigger_terms == DEFAULT_TRIGGER_TERMS:
        return default_pattern_table()
    return build_pattern_table(DEFAULT_MAPPINGS, trigger_terms=config.trigger_terms)


class EngineState(StrEnum):
    IDLE = "idle"
    SWEEPING = "sweeping"
    HANDLING_MUTATION = "handling_mutation"
    DISABLED = "disabled"


@dataclass
class RunState:
    """Per-coordinator switches and counters."""

    enabled: bool = True
    operation_count: int = 0
    in_flight: bool = False
    breaker_tripped: bool = False


class RewriteCoordinator:
    """Keep a document's text rewritten as it changes.

    Args:
        table: Compiled patterns; defaults to the built-in registry.
        settings: Configuration; defaults to ``get_settings()``.
    """

    def __init__(
        self,
        table: PatternTable | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.engine_config = settings.engine
        self.table = table if table is not None else _default_table(self.engine_config)

        self.run_state = RunState()
        self.error_stats = ErrorStats()
        self.cache = TextCache(settings.cache.max_size, settings.cache.trim_fraction)
        self.tracker = ProcessedTracker()
        self.subscription = ChangeSubscription(
            self.handle_mutations,
            batch_size=settings.observer.batch_size,
            max_buffer_size=settings.observer.max_buffer_size,
            debounce_ms=settings.observer.debounce_ms,
            record_filter=self._is_relevant,
            stats=self.error_stats,
        )
        self.walker = ChunkedWalker(
            self._visit_text,
            self.tracker,
            chunk_size=self.engine_config.chunk_size,
            time_slice_ms=self.engine_config.time_slice_ms,
            skip_tags=self.engine_config.skip_tags,
            guard=self.subscription.suspended,
            should_continue=lambda: self.run_state.enabled,
        )
        self._protected_process = protect(
            self._process_text_node,
            "process text node",
            fallback=False,
            stats=self.error_stats,
        )
        self._drain = protect_async(
            self.walker.drain, "mutation drain", fallback=0, stats=self.error_stats
        )
        self._state = EngineState.IDLE
        self._root: Node | None = None
        self._drain_task: asyncio.Task[int] | None = None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        if not self.run_state.enabled:
            return EngineState.DISABLED
        return self._state

    @property
    def is_enabled(self) -> bool:
        return self.run_state.enabled

    def diagnostics(self) -> dict[str, Any]:
        return {
            "enabled": self.run_state.enabled,
            "state": str(self.state),
            "operation_count": self.run_state.operation_count,
            "max_operations": self.engine_config.max_operations,
            "breaker_tripped": self.run_state.breaker_tripped,
            "cache": self.cache.stats(),
            "tracked_text_nodes": len(self.tracker),
            "walker_pending": self.walker.pending_count,
            "subscription": {
                "state": str(self.subscription.state),
                "pending": self.subscription.pending_count,
                "batches": self.subscription.batches_processed,
            },
            "errors": self.error_stats.as_dict(),
        }

    # ------------------------------------------------------------------
    # Per-node pipeline
    # ------------------------------------------------------------------

    def process_text_node(self, node: Node) -> bool:
        """Rewrite one text node; True if markers were inserted."""
        if self.walker.in_skipped_subtree(node):
            return False
        with self.subscription.suspended():
            return self._protected_process(node)

    def _visit_text(self, node: Text) -> None:
        self._protected_process(node)

    def _process_text_node(self, node: Node) -> bool:
        if not self.run_state.enabled:
            return False
        if self.run_state.operation_count >= self.engine_config.max_operations:
            self._trip_breaker()
            return False
        if not isinstance(node, Text) or node.parent is None:
            return False
        if self.tracker.is_processed(node):
            return False
        if is_editable_node(node) or is_inside_marker(node):
            return False

        text = node.data
        if self.cache.is_known_unchanged(text):
            self.tracker.mark_processed(node)
            return False

        segments = identify_segments(
            text,
            self.table,
            min_length=self.engine_config.min_text_length,
            early_bailout=self.engine_config.early_bailout,
        )
        if not segments:
            self.cache.put(text, text)
            self.tracker.mark_processed(node)
            return False

        self.cache.put(text, apply_segments(text, segments))
        modified = annotate(node, segments, mark_processed=self.tracker.mark_processed)
        if modified:
            self._count_operation()
        return modified

    def _count_operation(self) -> None:
        self.run_state.operation_count += 1
        if self.run_state.operation_count >= self.engine_config.max_operations:
            self._trip_breaker()

    def _trip_breaker(self) -> None:
        if self.run_state.breaker_tripped:
            return
        self.run_state.breaker_tripped = True
        self.run_state.enabled = False
        logger.warning(
            "Circuit breaker tripped after %d operations; rewriting disabled",
            self.run_state.operation_count,
        )
        self.walker.clear()
        self.subscription.stop()

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def _begin_sweep(self, root: Node) -> bool:
        if not self.run_state.enabled:
            logger.debug("Sweep skipped: engine disabled")
            return False
        self._state = EngineState.SWEEPING
        self.run_state.in_flight = True
        self.walker.enqueue(root)
        return True

    def _end_sweep(self) -> None:
        self.run_state.in_flight = False
        self._state = EngineState.IDLE

    def process_page_sync(self, root: Node) -> int:
        """Sweep *root* to completion; return the number of rewritten nodes."""
        before = self.run_state.operation_count
        if not self._begin_sweep(root):
            return 0
        try:
            with timed("initial sweep"):
                self.walker.drain_sync()
        finally:
            self._end_sweep()
        return self.run_state.operation_count - before

    async def process_page(self, root: Node) -> int:
        """Sweep *root*, yielding to the loop between slices."""
        before = self.run_state.operation_count
        if not self._begin_sweep(root):
            return 0
        try:
            with timed("initial sweep"):
                await self.walker.drain()
        finally:
            self._end_sweep()
        return self.run_state.operation_count - before

    def start(self, root: Node) -> int:
        """Subscribe to *root* and sweep it synchronously."""
        self._root = root
        self.subscription.start(root)
        count = self.process_page_sync(root)
        logger.info("Initial sweep rewrote %d text nodes", count)
        return count

    async def start_async(self, root: Node) -> int:
        self._root = root
        self.subscription.start(root)
        count = await self.process_page(root)
        logger.info("Initial sweep rewrote %d text nodes", count)
        return count

    def stop(self) -> None:
        self.subscription.stop()
        self.walker.clear()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
        self._drain_task = None

    async def settle(self) -> None:
        """Wait until no change-driven work is pending."""
        while True:
            await self.subscription.settle()
            task = self._drain_task
            if task is None or task.done():
                return
            await asyncio.wait([task])

    # ------------------------------------------------------------------
    # Change handling
    # ------------------------------------------------------------------

    def _is_relevant(self, record: MutationRecord) -> bool:
        if is_inside_marker(record.target):
            return False
        if record.type == "characterData":
            return not self.tracker.is_processed(record.target)
        return any(self._wants_added(node) for node in record.added_nodes)

    def _wants_added(self, node: Node) -> bool:
        if node.parent is None or is_inside_marker(node):
            return False
        return not self.tracker.is_processed(node)

    def _wants_text(self, node: Text) -> bool:
        # Elements are checked by walker.enqueue; text skips the walker
        return self._wants_added(node) and not self.walker.in_skipped_subtree(node)

    def handle_mutations(self, records: Sequence[MutationRecord]) -> None:
        """React to a batch of change records."""
        if not self.run_state.enabled:
            return
        owns_state = self._state is EngineState.IDLE
        if owns_state:
            self._state = EngineState.HANDLING_MUTATION
        try:
            with self.subscription.suspended():
                for record in records:
                    if not self.run_state.enabled:
                        break
                    self._handle_record(record)
            if self.walker.has_pending and not self.run_state.in_flight:
                self._schedule_drain()
        finally:
            if owns_state and self._state is EngineState.HANDLING_MUTATION:
                self._state = EngineState.IDLE

    def _handle_record(self, record: MutationRecord) -> None:
        if record.type == "characterData":
            target = record.target
            if isinstance(target, Text) and self._wants_text(target):
                self._protected_process(target)
            return
        for node in record.added_nodes:
            if isinstance(node, Text):
                if self._wants_text(node):
                    self._protected_process(node)
            elif isinstance(node, Element) and self._wants_added(node):
                self.walker.enqueue(node)

    def _schedule_drain(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.walker.drain_sync()
            return
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain())

    # ------------------------------------------------------------------
    # Switches
    # ------------------------------------------------------------------

    def enable(self) -> None:
        """Turn rewriting back on, resetting the operation count and breaker."""
        was_tripped = self.run_state.breaker_tripped
        self.run_state.enabled = True
        self.run_state.operation_count = 0
        self.run_state.breaker_tripped = False
        self._state = EngineState.IDLE
        if self._root is not None:
            if self.subscription.state is SubscriptionState.PAUSED:
                self.subscription.resume()
            elif self.subscription.state is SubscriptionState.INACTIVE:
                self.subscription.start(self._root)
        logger.info("Rewriting enabled (breaker was tripped: %s)", was_tripped)

    def disable(self) -> None:
        self.run_state.enabled = False
        self.walker.clear()
        self.subscription.pause()
        logger.info("Rewriting disabled")

    def _prepare_reprocess(self, root: Node | None) -> Node | None:
        root = root if root is not None else self._root
        if root is None:
            return None
        if self.run_state.breaker_tripped:
            self.enable()
        if not self.run_state.enabled:
            return None
        self.tracker.reset(root)
        self.cache.clear()
        self.run_state.operation_count = 0
        return root

    def reprocess_all_sync(self, root: Node | None = None) -> int:
        """Forget what was processed and sweep again.  Markers are kept."""
        target = self._prepare_reprocess(root)
        if target is None:
            return 0
        return self.process_page_sync(target)

    async def reprocess_all(self, root: Node | None = None) -> int:
        target = self._prepare_reprocess(root)
        if target is None:
            return 0
        return await self.process_page(target)


def rewrite_html(
    markup: str,
    table: PatternTable | None = None,
    settings: Settings | None = None,
) -> str:
    """Rewrite every phrase in *markup* and return the marked-up HTML.

    Fragments come back as fragments (the body's inner HTML); whole documents
    come back whole.  Processed flags are bookkeeping and are not emitted.
    """
    document = parse_html(markup)
    root = document.body
    if root is None:
        return markup
    coordinator = RewriteCoordinator(table, settings=settings)
    coordinator.process_page_sync(root)

    skip = frozenset((PROCESSED_ATTR,))
    if is_full_document(markup):
        doctype = (
            "<!DOCTYPE html>" if markup.lstrip().lower().startswith("<!doctype") else ""
        )
        return doctype + serialize(document, skip_attributes=skip)
    return serialize_children(root, skip_attributes=skip)
