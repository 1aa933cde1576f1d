"""Buffered, debounced change subscription with an explicit critical section.

Wraps a single ``MutationObserver``.  Records are buffered and handed to the
callback in batches, either after ``debounce_ms`` of quiet on the running
event loop, immediately once the buffer overflows, or on ``flush()``.

``suspended()`` is the guard for the engine's own writes: inside it the
observer is disconnected, so nothing the engine does there is ever reported
back to it.  Records already queued when the section starts are moved into
the buffer first so external changes are not lost.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from enum import StrEnum
from typing import TYPE_CHECKING

from phraselens.dom.nodes import Element
from phraselens.dom.observer import MutationObserver, MutationRecord
from phraselens.errors import protect
from phraselens.rewrite.marker_constants import CONTROL_ELEMENT_ID

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from phraselens.dom.nodes import Node
    from phraselens.errors import ErrorStats

logger = logging.getLogger(__name__)


class SubscriptionState(StrEnum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    PAUSED = "paused"
    PROCESSING = "processing"


class ChangeSubscription:
    """Observe one root and feed filtered record batches to *callback*.

    Args:
        callback: Receives each batch (at most ``batch_size`` records).
        batch_size: Records per callback invocation.
        max_buffer_size: Buffer length that triggers processing immediately.
        debounce_ms: Quiet period before buffered records are processed.
        record_filter: Records for which it returns False are dropped.
        ignore_ids: Records targeting these elements (or their contents)
            are dropped.
        stats: Collector for errors raised by *callback*.
    """

    def __init__(
        self,
        callback: Callable[[list[MutationRecord]], object],
        *,
        batch_size: int = 20,
        max_buffer_size: int = 100,
        debounce_ms: float = 50.0,
        record_filter: Callable[[MutationRecord], bool] | None = None,
        ignore_ids: Iterable[str] = (CONTROL_ELEMENT_ID,),
        stats: ErrorStats | None = None,
    ) -> None:
        self._callback = protect(callback, "mutation batch", stats=stats)
        self.batch_size = batch_size
        self.max_buffer_size = max_buffer_size
        self.debounce_ms = debounce_ms
        self._record_filter = record_filter
        self._ignore_ids = frozenset(ignore_ids)

        self._observer = MutationObserver(self._on_records)
        self._target: Node | None = None
        self._state = SubscriptionState.INACTIVE
        self._buffer: list[MutationRecord] = []
        self._debounce_task: asyncio.Task[None] | None = None
        self._suspend_depth = 0
        self._reconnect_on_exit = False
        self.batches_processed = 0

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in (SubscriptionState.ACTIVE, SubscriptionState.PROCESSING)

    @property
    def pending_count(self) -> int:
        return len(self._buffer)

    @property
    def is_suspended(self) -> bool:
        return self._suspend_depth > 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, target: Node) -> None:
        if self._state is not SubscriptionState.INACTIVE:
            self.stop()
        self._target = target
        self._state = SubscriptionState.ACTIVE
        if self._suspend_depth:
            self._reconnect_on_exit = True
        else:
            self._connect()
        logger.debug("Change subscription started on %r", target)

    def stop(self) -> None:
        self._cancel_debounce()
        self._observer.disconnect()
        self._buffer.clear()
        self._target = None
        self._reconnect_on_exit = False
        self._state = SubscriptionState.INACTIVE
        logger.debug("Change subscription stopped")

    def pause(self) -> None:
        """Stop observing but keep buffered records for ``resume()``."""
        if not self.is_active:
            return
        self._cancel_debounce()
        self._buffer.extend(self._observer.take_records())
        self._observer.disconnect()
        self._reconnect_on_exit = False
        self._state = SubscriptionState.PAUSED

    def resume(self) -> None:
        if self._state is not SubscriptionState.PAUSED:
            return
        self._state = SubscriptionState.ACTIVE
        if self._suspend_depth:
            self._reconnect_on_exit = True
        else:
            self._connect()
        if self._buffer:
            self._schedule()

    def flush(self) -> None:
        """Deliver observer records and process the buffer synchronously."""
        if self._observer.is_connected:
            self._observer.flush()
        self._process_buffer()

    async def settle(self) -> None:
        """Wait until delivered records and any debounce timer have run."""
        await asyncio.sleep(0)
        while True:
            task = self._debounce_task
            if task is None or task.done():
                return
            await asyncio.wait([task])

    # ------------------------------------------------------------------
    # Critical section
    # ------------------------------------------------------------------

    @contextmanager
    def suspended(self) -> Iterator[None]:
        """Disconnect for the duration of the block.  Re-entrant.

        Only the outermost block disconnects and reconnects, and it reconnects
        only if the subscription was observing when the block began (and was
        not stopped or paused inside it).
        """
        outermost = self._suspend_depth == 0
        self._suspend_depth += 1
        if outermost and self._observer.is_connected:
            self._buffer.extend(self._observer.take_records())
            self._observer.disconnect()
            self._reconnect_on_exit = True
        try:
            yield
        finally:
            self._suspend_depth -= 1
            if self._suspend_depth == 0 and self._reconnect_on_exit:
                self._reconnect_on_exit = False
                if self.is_active:
                    self._connect()
                    if self._buffer:
                        self._schedule()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _connect(self) -> None:
        if self._target is None:
            return
        self._observer.observe(
            self._target, child_list=True, character_data=True, subtree=True
        )

    def _on_records(
        self, records: list[MutationRecord], _observer: MutationObserver
    ) -> None:
        self._buffer.extend(records)
        if len(self._buffer) > self.max_buffer_size:
            logger.debug(
                "Buffer overflow (%d records), processing now", len(self._buffer)
            )
            self._process_buffer()
        else:
            self._schedule()

    def _schedule(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No loop: buffered records wait for flush()
            return
        self._cancel_debounce()

        async def debounced() -> None:
            await asyncio.sleep(self.debounce_ms / 1000)
            self._debounce_task = None
            self._process_buffer()

        self._debounce_task = asyncio.create_task(debounced())

    def _cancel_debounce(self) -> None:
        task, self._debounce_task = self._debounce_task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def _process_buffer(self) -> None:
        self._cancel_debounce()
        if not self.is_active or self._state is SubscriptionState.PROCESSING:
            return
        while self._buffer and self.is_active:
            records, self._buffer = self._buffer, []
            relevant = [r for r in records if self._keep(r)]
            if not relevant:
                continue
            self._state = SubscriptionState.PROCESSING
            try:
                for start in range(0, len(relevant), self.batch_size):
                    if not self.is_active:
                        break
                    with self.suspended():
                        self._callback(relevant[start : start + self.batch_size])
                    self.batches_processed += 1
            finally:
                if self._state is SubscriptionState.PROCESSING:
                    self._state = SubscriptionState.ACTIVE

    def _keep(self, record: MutationRecord) -> bool:
        if self._ignore_ids and _within_ids(record.target, self._ignore_ids):
            return False
        if self._record_filter is not None and not self._record_filter(record):
            return False
        return True


def _within_ids(node: Node, ids: frozenset[str]) -> bool:
    current: Node | None = node
    while current is not None:
        if isinstance(current, Element) and current.id in ids:
            return True
        current = current.parent
    return False


def _current_task() -> asyncio.Task[object] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
