"""Live document tree, change notification and the HTML bridge."""

from phraselens.dom.html import parse_html, serialize, serialize_children
from phraselens.dom.nodes import Document, Element, Node, Text
from phraselens.dom.observer import MutationObserver, MutationRecord

__all__ = [
    "Document",
    "Element",
    "MutationObserver",
    "MutationRecord",
    "Node",
    "Text",
    "parse_html",
    "serialize",
    "serialize_children",
]
