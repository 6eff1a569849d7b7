"""Tests for the selection highlighter.

Most tests drive ``highlight()`` directly after selecting text; the
debounced path is covered separately.
"""

from __future__ import annotations

import json

import pytest

from talfred.api import Runtime
from talfred.dom.nodes import Selection, TextNode
from talfred.features.selection_highlighter import (
    DEFAULT_HIGHLIGHT_STYLE,
    HighlightOptions,
    HighlightState,
    SelectionHighlighter,
)

HELLO_PAGE = (
    '<p id="src">hello hi</p>'
    "<p>say hello world and hello again</p>"
)


def _spans(runtime: Runtime) -> list:
    return runtime.page.document.xpath("//span[@style]")


@pytest.fixture
def make_highlighter(make_runtime):
    """Runtime + highlighter over *body*, optionally with custom options."""

    def _make(body: str, **options: object) -> SelectionHighlighter:
        runtime = make_runtime(body)
        feature = runtime.register_feature(SelectionHighlighter)
        assert isinstance(feature, SelectionHighlighter)
        if options:
            feature.value = json.dumps(options)
        return feature

    return _make


class TestHighlightOptions:
    """Option parsing and defaults."""

    def test_defaults(self) -> None:
        options = HighlightOptions()
        assert options.highlight_style == DEFAULT_HIGHLIGHT_STYLE
        assert options.exclude_self is True
        assert options.exclude_parents == []
        assert options.no_highlight_within == [
            "input",
            "textarea",
            "[contentEditable]",
        ]

    def test_camel_case_aliases(self) -> None:
        options = HighlightOptions.model_validate_json(
            '{"highlightStyle": "color: red;", "excludeSelf": false}'
        )
        assert options.highlight_style == "color: red;"
        assert options.exclude_self is False

    def test_default_value_is_formatted_json(self) -> None:
        value = json.loads(SelectionHighlighter.default_value)
        assert value == {
            "highlightStyle": "background-color: yellow;",
            "excludeSelf": True,
            "excludeParents": [],
            "noHighlightWithin": ["input", "textarea", "[contentEditable]"],
        }
        assert SelectionHighlighter.default_value.startswith("{\n  ")

    @pytest.mark.asyncio
    async def test_validate(self, make_highlighter) -> None:
        feature = make_highlighter("")
        assert await feature.validate(None)
        assert await feature.validate('{"excludeParents": [".skip"]}')
        assert not await feature.validate("not json")
        assert not await feature.validate('{"excludeSelf": "sometimes"}')
        assert not await feature.validate('{"excludeParents": ["p[[["]}')
        assert not await feature.validate("[1, 2]")


class TestHighlight:
    """The annotation state machine."""

    def test_highlights_every_other_occurrence(self, make_highlighter) -> None:
        feature = make_highlighter(HELLO_PAGE)
        feature.page.select("hello")

        assert feature.highlight() == 2

        spans = _spans(feature.runtime)
        assert [s.text for s in spans] == ["hello", "hello"]
        assert all(s.get("style") == DEFAULT_HIGHLIGHT_STYLE for s in spans)
        assert feature.state is HighlightState.ANNOTATED
        assert feature.current_highlight_text == "hello"
        # The selected occurrence itself is left alone.
        assert feature.page.get_element_by_id("src").text == "hello hi"

    def test_exclude_self_disabled_is_idempotent(self, make_highlighter) -> None:
        feature = make_highlighter(
            "<p>say hello world and hello again</p>", excludeSelf=False
        )
        feature.page.select("hello")
        assert feature.highlight() == 2
        markup = feature.page.to_html()

        assert feature.page.selected_text() == "hello"
        assert feature.highlight() == 0
        assert feature.page.to_html() == markup
        assert feature.state is HighlightState.ANNOTATED

    def test_selection_follows_its_text_into_the_wrapper(
        self, make_highlighter
    ) -> None:
        feature = make_highlighter("<p>foo</p><p>foo</p>", excludeSelf=False)
        selection = feature.page.select("foo")
        feature.highlight()

        assert selection.node.owner in feature.annotated_nodes
        feature.reset_all()
        assert selection.node.owner is feature.page.body[0]
        assert feature.page.selected_text() == "foo"
        assert feature.highlight() == 2

    def test_selection_in_annotated_remainder_is_not_wrapped(
        self, make_highlighter
    ) -> None:
        feature = make_highlighter("<p>say hello world and hello again</p>")
        feature.page.select("hello")
        assert feature.highlight() == 1

        # "again" now sits in the tail of the wrapper added above.
        selection = feature.page.select("again")
        assert selection.node.owner is _spans(feature.runtime)[0]

        assert feature.highlight() == 0
        assert _spans(feature.runtime) == []
        assert feature.page.selected_text() == "again"
        assert feature.current_highlight_text == "again"

    def test_match_partly_overlapping_selection_is_skipped(
        self, make_highlighter
    ) -> None:
        feature = make_highlighter("<p>aaaa</p><p>aaa</p>", excludeSelf=False)
        p = feature.page.body[0]
        feature.page.set_selection(Selection(TextNode(p, "text"), 1, 4))

        assert feature.highlight() == 2
        assert p.text == "a"
        assert p[0].text == "aaa"
        assert feature.page.selected_text() == "aaa"
        assert feature.highlight() == 0

    def test_short_selection_resets(self, make_highlighter) -> None:
        feature = make_highlighter(HELLO_PAGE)
        original = feature.page.to_html()
        feature.page.select("hello")
        feature.highlight()

        feature.page.select("hi")
        assert feature.highlight() == 0

        assert _spans(feature.runtime) == []
        assert feature.state is HighlightState.IDLE
        assert feature.page.to_html() == original

    def test_empty_selection_resets(self, make_highlighter) -> None:
        feature = make_highlighter(HELLO_PAGE)
        feature.page.select("hello")
        feature.highlight()

        feature.page.clear_selection()
        feature.highlight()

        assert _spans(feature.runtime) == []
        assert feature.current_highlight_text == ""

    def test_same_selection_is_idempotent(self, make_highlighter) -> None:
        feature = make_highlighter(HELLO_PAGE)
        feature.page.select("hello")
        feature.highlight()
        markup = feature.page.to_html()

        assert feature.highlight() == 0
        assert feature.page.to_html() == markup

    def test_new_selection_replaces_previous(self, make_highlighter) -> None:
        feature = make_highlighter(
            '<p id="src">hello world</p><p>hello</p><p>world</p>'
        )
        feature.page.select("hello")
        feature.highlight()
        feature.page.select("world")

        assert feature.highlight() == 1
        assert [s.text for s in _spans(feature.runtime)] == ["world"]

    def test_single_occurrence_in_selected_node_is_not_wrapped(
        self, make_highlighter
    ) -> None:
        feature = make_highlighter("<p>foo</p><p>bar</p>")
        feature.page.select("foo")

        assert feature.highlight() == 0
        assert _spans(feature.runtime) == []
        assert feature.state is HighlightState.ANNOTATED

    def test_second_occurrence_in_selected_node_is_wrapped(
        self, make_highlighter
    ) -> None:
        feature = make_highlighter("<p>foo foo</p>")
        feature.page.select("foo")

        assert feature.highlight() == 1

        p = feature.page.body[0]
        assert p.text == "foo "
        assert p[0].text == "foo"
        # The live selection still reads the original text.
        assert feature.page.selected_text() == "foo"

    def test_exclude_self_disabled_wraps_selection_too(
        self, make_highlighter
    ) -> None:
        feature = make_highlighter("<p>foo</p><p>foo</p>", excludeSelf=False)
        feature.page.select("foo")
        assert feature.highlight() == 2

    def test_many_matches_in_one_node(self, make_highlighter) -> None:
        text = " ".join(["abc"] * 500)
        feature = make_highlighter(f"<p>abc</p><p>{text}</p>")
        original = feature.page.to_html()
        feature.page.select("abc")

        assert feature.highlight() == 500

        feature.reset_all()
        assert feature.page.to_html() == original

    def test_search_string_is_literal(self, make_highlighter) -> None:
        feature = make_highlighter("<p>a.*b</p><p>axxb a.*b</p>")
        feature.page.select("a.*b")
        assert feature.highlight() == 1

    def test_matches_text_with_entities(self, make_highlighter) -> None:
        feature = make_highlighter("<p>fish &amp; chips</p><p>fish &amp; chips</p>")
        feature.page.select("fish & chips")
        assert feature.highlight() == 1


class TestExclusions:
    """noHighlightWithin and excludeParents."""

    def test_selection_inside_textarea_does_nothing(self, make_highlighter) -> None:
        feature = make_highlighter("<textarea>hello</textarea><p>hello</p>")
        feature.page.select("hello")

        assert feature.highlight() == 0
        assert _spans(feature.runtime) == []
        assert feature.state is HighlightState.IDLE

    def test_selection_inside_contenteditable_does_nothing(
        self, make_highlighter
    ) -> None:
        feature = make_highlighter(
            '<div contenteditable="true"><b>hello</b></div><p>hello</p>'
        )
        feature.page.select("hello")
        assert feature.highlight() == 0

    def test_blocked_selection_keeps_previous_annotation(
        self, make_highlighter
    ) -> None:
        feature = make_highlighter(
            '<p id="src">hello</p><p>hello</p><textarea>world</textarea>'
        )
        feature.page.select("hello")
        feature.highlight()
        feature.page.select("world")

        assert feature.highlight() == 0
        assert feature.current_highlight_text == "hello"
        assert len(_spans(feature.runtime)) == 1

    def test_exclude_parents(self, make_highlighter) -> None:
        feature = make_highlighter(
            '<p id="src">hello</p><div class="skip"><p>hello</p></div><p>hello</p>',
            excludeParents=[".skip"],
        )
        feature.page.select("hello")

        assert feature.highlight() == 1
        (span,) = _spans(feature.runtime)
        assert span.getparent().getparent().tag == "body"

    def test_textarea_content_is_never_annotated(self, make_highlighter) -> None:
        feature = make_highlighter(
            '<p id="src">hello</p><textarea>hello</textarea>'
        )
        feature.page.select("hello")
        assert feature.highlight() == 0

    def test_custom_style(self, make_highlighter) -> None:
        feature = make_highlighter(
            "<p>hello</p><p>hello</p>", highlightStyle="color: red;"
        )
        feature.page.select("hello")
        feature.highlight()
        assert [s.get("style") for s in _spans(feature.runtime)] == ["color: red;"]


class TestShadowRoots:
    """Matches inside nested scoped sub-documents."""

    def test_highlights_inside_shadow_roots(self, make_highlighter, shadow) -> None:
        feature = make_highlighter('<p id="src">hello</p><div id="host"></div>')
        root = shadow(feature.page.get_element_by_id("host"), "<p>hello there</p>")
        nested = shadow(root[0], "<i>deep hello</i>")
        feature.page.select("hello")

        assert feature.highlight() == 2

        assert root.xpath(".//span[@style]")[0].text == "hello"
        assert nested.xpath(".//span[@style]")[0].text == "hello"

    def test_selection_inside_shadow_root(self, make_highlighter, shadow) -> None:
        feature = make_highlighter("<p>hello</p>")
        shadow(feature.page.body, "<p>hello</p>")
        feature.page.select("hello", occurrence=1)

        assert feature.highlight() == 1
        (span,) = _spans(feature.runtime)
        assert span.getparent().getparent() is feature.page.body


class TestRoundTrip:
    """Reset restores the document exactly."""

    def test_reset_restores_markup(self, make_highlighter, shadow) -> None:
        feature = make_highlighter(
            '<p id="src">hello</p>'
            "<div>a hello <b>bold hello</b> tail hello<br>hello</div>"
            '<div id="host"></div>'
        )
        shadow(feature.page.get_element_by_id("host"), "<p>shadow hello</p>")
        original = feature.page.to_html()
        feature.page.select("hello")

        assert feature.highlight() == 5
        assert feature.page.to_html() != original

        feature.reset_all()
        assert feature.page.to_html() == original
        assert feature.annotated_nodes == []
        assert feature.state is HighlightState.IDLE

    def test_text_content_unchanged_while_annotated(self, make_highlighter) -> None:
        feature = make_highlighter(HELLO_PAGE)
        before = feature.page.text_content()
        feature.page.select("hello")
        feature.highlight()
        assert feature.page.text_content() == before


class TestLifecycle:
    """Running through the runtime and the debounced listener."""

    @pytest.mark.asyncio
    async def test_selection_change_is_debounced(self, make_highlighter) -> None:
        feature = make_highlighter(HELLO_PAGE)
        await feature.runtime.reconcile({})
        assert feature.page.listener_count("selectionchange") == 1

        feature.page.select("hi")
        feature.page.select("hello")
        await feature.listener.join()

        assert feature.listener.invocations == 1
        assert len(_spans(feature.runtime)) == 2

    @pytest.mark.asyncio
    async def test_disabling_tears_down(self, make_highlighter) -> None:
        feature = make_highlighter(HELLO_PAGE)
        original = feature.page.to_html()
        await feature.runtime.reconcile({})
        feature.page.select("hello")
        await feature.listener.join()
        assert _spans(feature.runtime)

        await feature.runtime.reconcile({feature.name: {"enabled": False}})

        assert feature.page.listener_count("selectionchange") == 0
        assert feature.page.to_html() == original
        assert not feature.listener.pending

    @pytest.mark.asyncio
    async def test_new_options_apply_on_rerun(self, make_highlighter) -> None:
        feature = make_highlighter("<p>hello</p><p>hello</p>")
        await feature.runtime.reconcile({})
        value = json.dumps({"excludeSelf": False})

        selected = await feature.runtime.reconcile(
            {feature.name: {"enabled": True, "value": value}}
        )
        feature.page.select("hello")
        await feature.listener.join()

        assert selected == [feature]
        assert len(_spans(feature.runtime)) == 2
