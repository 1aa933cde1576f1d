"""Processed-node records.

Elements carry ``PROCESSED_ATTR``.  Text nodes cannot hold attributes, so the
tracker keeps a weak mapping from each handled text node to the data it had at
the time.  A text node whose data has since changed counts as unprocessed
again, which is how edits get picked up without a separate dirty flag.
"""

from __future__ import annotations

import weakref

from phraselens.dom.nodes import Element, Node, Text
from phraselens.rewrite.annotator import is_marker
from phraselens.rewrite.marker_constants import PROCESSED_ATTR


class ProcessedTracker:
    def __init__(self) -> None:
        self._texts: weakref.WeakKeyDictionary[Text, str] = (
            weakref.WeakKeyDictionary()
        )

    def __len__(self) -> int:
        return len(self._texts)

    def is_processed(self, node: Node) -> bool:
        if isinstance(node, Text):
            seen = self._texts.get(node)
            return seen is not None and seen == node.data
        if isinstance(node, Element):
            return node.has_attribute(PROCESSED_ATTR)
        return False

    def mark_processed(self, node: Node) -> None:
        if isinstance(node, Text):
            self._texts[node] = node.data
        elif isinstance(node, Element):
            node.set_attribute(PROCESSED_ATTR, "true")

    def forget(self, node: Node) -> None:
        if isinstance(node, Text):
            self._texts.pop(node, None)
        elif isinstance(node, Element) and not is_marker(node):
            node.remove_attribute(PROCESSED_ATTR)

    def reset(self, root: Node | None = None) -> None:
        """Forget everything (under *root* when given).

        Markers keep their flag: they are never reprocessed.
        """
        if root is None:
            self._texts.clear()
            return
        self.forget(root)
        for node in root.iter_descendants():
            self.forget(node)
