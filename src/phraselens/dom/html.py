"""HTML bridge: parse markup into the live tree and serialise it back.

Parsing uses selectolax's Lexbor backend and walks its ``child``/``next``
links (which expose text nodes) to build ``phraselens.dom.nodes`` objects.
Comments and the doctype are dropped; everything else is kept verbatim.
"""

from __future__ import annotations

import html as html_module
import logging
from typing import Any

from selectolax.lexbor import LexborHTMLParser

from phraselens.dom.nodes import Document, Element, Node, Text

logger = logging.getLogger(__name__)

# Elements serialised without a closing tag
VOID_TAGS = frozenset(
    (
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    )
)

# Elements whose text children are emitted without escaping
RAW_TEXT_TAGS = frozenset(("script", "style"))

# selectolax pseudo-tags for non-element nodes
_TEXT_TAG = "-text"
_SKIP_TAGS = frozenset(("_comment", "!comment", "!doctype", "-doctype"))


def parse_html(markup: str) -> Document:
    """Parse *markup* into a new ``Document``.

    Fragments are wrapped in ``html``/``head``/``body`` by the parser, so the
    result always has a ``body`` unless the markup is empty.
    """
    document = Document()
    if not markup:
        return document

    tree = LexborHTMLParser(markup)
    root = tree.root
    if root is None:
        return document

    document.children.append(_convert(root, document))
    return document


def _convert(source: Any, parent: Node) -> Node:
    """Convert one selectolax node (and its subtree) without emitting records."""
    element = Element(source.tag, dict(source.attributes))
    element.parent = parent
    child = source.child
    while child is not None:
        tag = child.tag
        if tag == _TEXT_TAG:
            data = child.text_content or ""
            if data:
                text = Text(data)
                text.parent = element
                element.children.append(text)
        elif tag and tag not in _SKIP_TAGS and not tag.startswith(("_", "!", "-")):
            element.children.append(_convert(child, element))
        child = child.next
    return element


def serialize(node: Node, *, skip_attributes: frozenset[str] = frozenset()) -> str:
    """Serialise *node* (including its own tag) to HTML."""
    parts: list[str] = []
    _serialize_into(node, parts, skip_attributes, raw=False)
    return "".join(parts)


def serialize_children(
    node: Node, *, skip_attributes: frozenset[str] = frozenset()
) -> str:
    """Serialise the children of *node* (its inner HTML)."""
    parts: list[str] = []
    raw = isinstance(node, Element) and node.tag in RAW_TEXT_TAGS
    for child in node.children:
        _serialize_into(child, parts, skip_attributes, raw=raw)
    return "".join(parts)


def _serialize_into(
    node: Node, parts: list[str], skip_attributes: frozenset[str], *, raw: bool
) -> None:
    if isinstance(node, Text):
        parts.append(node.data if raw else html_module.escape(node.data, quote=False))
        return

    if isinstance(node, Element):
        parts.append(_open_tag(node, skip_attributes))
        if node.tag in VOID_TAGS:
            return
        child_raw = node.tag in RAW_TEXT_TAGS
        for child in node.children:
            _serialize_into(child, parts, skip_attributes, raw=child_raw)
        parts.append(f"</{node.tag}>")
        return

    # Document (or any other container)
    for child in node.children:
        _serialize_into(child, parts, skip_attributes, raw=False)


def _open_tag(element: Element, skip_attributes: frozenset[str]) -> str:
    attrs: list[str] = []
    for name, value in element.attrs.items():
        if name in skip_attributes:
            continue
        if value is None:
            attrs.append(f" {name}")
        else:
            attrs.append(f' {name}="{html_module.escape(value, quote=True)}"')
    return f"<{element.tag}{''.join(attrs)}>"


def is_full_document(markup: str) -> bool:
    """True if *markup* is a whole document rather than a fragment."""
    lower = markup.lstrip().lower()
    return lower.startswith("<!doctype") or lower.startswith("<html")
