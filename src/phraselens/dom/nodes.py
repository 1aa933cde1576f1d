"""Live document tree with DOM-style mutation semantics.

The rewriting engine works on a mutable tree of elements and text nodes.
Every structural change (children added, removed or replaced) and every
text edit is reported to registered mutation observers, the same way a
browser DOM feeds a ``MutationObserver``.

Only the behaviour the engine depends on is modelled: attributes are plain
strings and are not observed, and there is no namespace support.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from phraselens.dom.observer import MutationRecord, queue_mutation

if TYPE_CHECKING:
    from collections.abc import Iterator

    from phraselens.dom.observer import MutationObserver, ObserveOptions


class Node:
    """Base class for every node in the tree."""

    ELEMENT_NODE = 1
    TEXT_NODE = 3
    COMMENT_NODE = 8
    DOCUMENT_NODE = 9

    node_type: int = 0

    def __init__(self) -> None:
        self.parent: Node | None = None
        self.children: list[Node] = []
        # Observer registrations keyed by observer (see dom.observer)
        self._registrations: dict[MutationObserver, ObserveOptions] = {}

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @property
    def next_sibling(self) -> Node | None:
        if self.parent is None:
            return None
        siblings = self.parent.children
        idx = _index_of(siblings, self)
        return siblings[idx + 1] if idx + 1 < len(siblings) else None

    def ancestors(self) -> Iterator[Node]:
        """Yield parent, grandparent, ... up to the root."""
        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def contains(self, other: Node | None) -> bool:
        """True if *other* is this node or one of its descendants."""
        while other is not None:
            if other is self:
                return True
            other = other.parent
        return False

    def iter_descendants(self) -> Iterator[Node]:
        """Yield all descendants in tree order (pre-order)."""
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    # ------------------------------------------------------------------
    # Text content
    # ------------------------------------------------------------------

    @property
    def text_content(self) -> str:
        return "".join(
            node.data for node in self.iter_descendants() if isinstance(node, Text)
        )

    @text_content.setter
    def text_content(self, value: str) -> None:
        """Replace all children with a single text node.

        The value is never interpreted as markup.
        """
        removed = tuple(self.children)
        for child in removed:
            child.parent = None
        self.children = []
        added: tuple[Node, ...] = ()
        if value:
            text = Text(value)
            text.parent = self
            self.children.append(text)
            added = (text,)
        if removed or added:
            queue_mutation(
                MutationRecord(
                    type="childList",
                    target=self,
                    added_nodes=added,
                    removed_nodes=removed,
                )
            )

    # ------------------------------------------------------------------
    # Child mutation
    # ------------------------------------------------------------------

    def append_child(self, child: Node) -> Node:
        return self.insert_before(child, None)

    def insert_before(self, child: Node, reference: Node | None) -> Node:
        """Insert *child* before *reference* (append when *reference* is None)."""
        if child is self or child.contains(self):
            msg = "Cannot insert a node into its own subtree"
            raise ValueError(msg)
        if reference is not None and reference.parent is not self:
            msg = "Reference node is not a child of this node"
            raise ValueError(msg)
        if child.parent is not None:
            child.parent.remove_child(child)
        idx = (
            len(self.children)
            if reference is None
            else _index_of(self.children, reference)
        )
        self.children.insert(idx, child)
        child.parent = self
        queue_mutation(
            MutationRecord(type="childList", target=self, added_nodes=(child,))
        )
        return child

    def remove_child(self, child: Node) -> Node:
        if child.parent is not self:
            msg = "Node is not a child of this node"
            raise ValueError(msg)
        del self.children[_index_of(self.children, child)]
        child.parent = None
        queue_mutation(
            MutationRecord(type="childList", target=self, removed_nodes=(child,))
        )
        return child

    def replace_child(self, new_child: Node, old_child: Node) -> Node:
        """Replace *old_child* with *new_child*, returning *old_child*."""
        if old_child.parent is not self:
            msg = "Node to replace is not a child of this node"
            raise ValueError(msg)
        if new_child is old_child:
            return old_child
        if new_child.contains(self):
            msg = "Cannot insert a node into its own subtree"
            raise ValueError(msg)
        if new_child.parent is not None:
            new_child.parent.remove_child(new_child)
        idx = _index_of(self.children, old_child)
        self.children[idx] = new_child
        old_child.parent = None
        new_child.parent = self
        queue_mutation(
            MutationRecord(
                type="childList",
                target=self,
                added_nodes=(new_child,),
                removed_nodes=(old_child,),
            )
        )
        return old_child


class Text(Node):
    """A leaf holding character data."""

    node_type = Node.TEXT_NODE

    def __init__(self, data: str = "") -> None:
        super().__init__()
        self._data = data

    def __repr__(self) -> str:
        preview = self._data if len(self._data) <= 30 else self._data[:27] + "..."
        return f"Text({preview!r})"

    @property
    def data(self) -> str:
        return self._data

    @data.setter
    def data(self, value: str) -> None:
        old = self._data
        self._data = value
        queue_mutation(
            MutationRecord(type="characterData", target=self, old_value=old)
        )

    @property
    def length(self) -> int:
        return len(self._data)

    @property
    def text_content(self) -> str:
        return self._data

    @text_content.setter
    def text_content(self, value: str) -> None:
        self.data = value

    def split_text(self, offset: int) -> Text:
        """Split at *offset*, keeping the head here and returning the tail.

        The tail is inserted as the next sibling when this node has a parent.
        It may be empty when *offset* equals the current length.
        """
        if offset < 0 or offset > len(self._data):
            msg = f"Offset {offset} outside text of length {len(self._data)}"
            raise IndexError(msg)
        tail = Text(self._data[offset:])
        self.data = self._data[:offset]
        if self.parent is not None:
            self.parent.insert_before(tail, self.next_sibling)
        return tail


class Element(Node):
    """A tagged node with string attributes."""

    node_type = Node.ELEMENT_NODE

    def __init__(self, tag: str, attrs: dict[str, str | None] | None = None) -> None:
        super().__init__()
        self.tag = tag.lower()
        self.attrs: dict[str, str | None] = dict(attrs or {})

    def __repr__(self) -> str:
        return f"<{self.tag} {self.attrs!r}>" if self.attrs else f"<{self.tag}>"

    def get_attribute(self, name: str) -> str | None:
        return self.attrs.get(name)

    def set_attribute(self, name: str, value: str) -> None:
        self.attrs[name] = value

    def has_attribute(self, name: str) -> bool:
        return name in self.attrs

    def remove_attribute(self, name: str) -> None:
        self.attrs.pop(name, None)

    @property
    def id(self) -> str | None:
        return self.attrs.get("id")

    @property
    def class_name(self) -> str:
        return self.attrs.get("class") or ""

    @class_name.setter
    def class_name(self, value: str) -> None:
        self.attrs["class"] = value

    @property
    def class_list(self) -> list[str]:
        return self.class_name.split()


class Document(Node):
    """Root of a tree."""

    node_type = Node.DOCUMENT_NODE

    @property
    def body(self) -> Element | None:
        for node in self.iter_descendants():
            if isinstance(node, Element) and node.tag == "body":
                return node
        return None


def _index_of(nodes: list[Node], target: Node) -> int:
    """Identity-based index (list.index would use __eq__)."""
    for idx, node in enumerate(nodes):
        if node is target:
            return idx
    msg = "Node not found among siblings"
    raise ValueError(msg)
