"""Change notification for the live document tree.

``MutationObserver`` mirrors the browser API closely enough for the
coordinator: records are queued per observer and delivered in one batch,
either on the next turn of the running asyncio loop or when the caller
flushes explicitly.  A disconnected observer receives nothing, and records
queued at the time of ``disconnect()`` are discarded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Callable

    from phraselens.dom.nodes import Node

logger = logging.getLogger(__name__)

MutationType = Literal["childList", "characterData"]


@dataclass(frozen=True, slots=True)
class MutationRecord:
    """One observed change.

    ``childList`` records target the parent whose children changed;
    ``characterData`` records target the edited text node.
    """

    type: MutationType
    target: Node
    added_nodes: tuple[Node, ...] = ()
    removed_nodes: tuple[Node, ...] = ()
    old_value: str | None = None


@dataclass(frozen=True, slots=True)
class ObserveOptions:
    child_list: bool = True
    character_data: bool = True
    subtree: bool = True

    def wants(self, record: MutationRecord) -> bool:
        if record.type == "childList":
            return self.child_list
        return self.character_data


class MutationObserver:
    """Collects mutation records for the subtrees it observes."""

    def __init__(
        self, callback: Callable[[list[MutationRecord], MutationObserver], None]
    ) -> None:
        self._callback = callback
        self._targets: list[Node] = []
        self._queue: list[MutationRecord] = []
        self._delivery_scheduled = False

    @property
    def is_connected(self) -> bool:
        return bool(self._targets)

    def observe(
        self,
        target: Node,
        *,
        child_list: bool = True,
        character_data: bool = True,
        subtree: bool = True,
    ) -> None:
        """Start (or reconfigure) observation of *target*."""
        options = ObserveOptions(
            child_list=child_list, character_data=character_data, subtree=subtree
        )
        target._registrations[self] = options
        if not any(t is target for t in self._targets):
            self._targets.append(target)

    def disconnect(self) -> None:
        """Stop observing everything and drop undelivered records."""
        for target in self._targets:
            target._registrations.pop(self, None)
        self._targets = []
        self._queue = []

    def take_records(self) -> list[MutationRecord]:
        records, self._queue = self._queue, []
        return records

    def flush(self) -> None:
        """Deliver queued records synchronously."""
        self._delivery_scheduled = False
        records = self.take_records()
        if records:
            self._callback(records, self)

    def _enqueue(self, record: MutationRecord) -> None:
        self._queue.append(record)
        if self._delivery_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: records wait for flush()/take_records()
            return
        self._delivery_scheduled = True
        loop.call_soon(self._deliver_scheduled)

    def _deliver_scheduled(self) -> None:
        if not self._delivery_scheduled:
            return
        try:
            self.flush()
        except Exception:
            logger.exception("Mutation observer callback failed")


def queue_mutation(record: MutationRecord) -> None:
    """Route *record* to every observer registered on the target or above it.

    Each observer receives the record at most once, even when it observes
    several ancestors of the target.
    """
    origin = record.target
    notified: set[int] = set()
    current: Node | None = origin
    while current is not None:
        for observer, options in tuple(current._registrations.items()):
            if id(observer) in notified:
                continue
            if current is not origin and not options.subtree:
                continue
            if not options.wants(record):
                continue
            notified.add(id(observer))
            observer._enqueue(record)
        current = current.parent
