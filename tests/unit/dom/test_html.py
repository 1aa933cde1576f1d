"""Tests for parsing markup into the live tree and serialising it back."""

from __future__ import annotations

from phraselens.dom.html import (
    is_full_document,
    parse_html,
    serialize,
    serialize_children,
)
from phraselens.dom.nodes import Element, Text


class TestParseHtml:
    """selectolax-backed parsing."""

    def test_fragment_lands_in_body(self) -> None:
        document = parse_html("<p>Hello <b>world</b></p>")

        body = document.body
        assert body is not None
        (paragraph,) = body.children
        assert isinstance(paragraph, Element)
        assert paragraph.tag == "p"
        assert paragraph.text_content == "Hello world"

    def test_entities_are_decoded(self) -> None:
        document = parse_html("<p>a &lt; b &amp; c</p>")
        assert document.body is not None
        assert document.body.text_content == "a < b & c"

    def test_attributes_kept(self) -> None:
        document = parse_html('<div id="x" class="a b">t</div>')
        assert document.body is not None
        target = document.body.children[0]
        assert isinstance(target, Element)
        assert target.id == "x"
        assert target.class_list == ["a", "b"]

    def test_comments_dropped(self) -> None:
        document = parse_html("<p>a<!-- hidden -->b</p>")
        assert document.body is not None
        paragraph = document.body.children[0]
        assert all(isinstance(child, Text) for child in paragraph.children)
        assert paragraph.text_content == "ab"

    def test_empty_markup(self) -> None:
        document = parse_html("")
        assert document.children == []
        assert document.body is None


class TestSerialize:
    """HTML output."""

    def test_text_is_escaped(self) -> None:
        el = Element("p")
        el.text_content = "<b>not bold</b> & more"
        assert serialize(el) == "<p>&lt;b&gt;not bold&lt;/b&gt; &amp; more</p>"

    def test_attribute_values_are_escaped(self) -> None:
        el = Element("span", {"title": 'say "hi"'})
        assert serialize(el) == '<span title="say &quot;hi&quot;"></span>'

    def test_void_elements_have_no_closing_tag(self) -> None:
        el = Element("p")
        el.append_child(Text("a"))
        el.append_child(Element("br"))
        el.append_child(Text("b"))
        assert serialize(el) == "<p>a<br>b</p>"

    def test_script_text_is_raw(self) -> None:
        script = Element("script")
        script.append_child(Text("if (a < b) {}"))
        assert serialize(script) == "<script>if (a < b) {}</script>"

    def test_skip_attributes(self) -> None:
        el = Element("span", {"class": "x", "data-secret": "1"})
        out = serialize(el, skip_attributes=frozenset({"data-secret"}))
        assert out == '<span class="x"></span>'

    def test_parse_serialize_round_trip(self) -> None:
        markup = '<p class="lead">Hi <em>there</em></p><ul><li>one</li></ul>'
        document = parse_html(markup)
        assert document.body is not None
        assert serialize_children(document.body) == markup


class TestIsFullDocument:
    """Fragment versus document detection."""

    def test_detection(self) -> None:
        assert is_full_document("<!DOCTYPE html><html></html>")
        assert is_full_document("  <html><body></body></html>")
        assert not is_full_document("<p>fragment</p>")
