"""Select any text and highlight all of its occurrences on the page.

State machine with two stable states:

- ``IDLE``: no annotations on the page.
- ``ANNOTATED``: every qualifying occurrence of the current search string is
  wrapped in a styled ``<span>``.

Every transition first unwraps whatever the previous pass produced, so the
document only ever carries wraps for the current search string and returns
to its original text when the feature goes idle or is torn down.
"""

from __future__ import annotations

import enum
import json
import logging
from typing import TYPE_CHECKING

from lxml import html as lxml_html
from lxml.cssselect import SelectorError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from talfred.api import Feature, FeatureKind
from talfred.debounce import Debouncer
from talfred.dom.walker import (
    SelectorChain,
    compile_selector,
    iter_scopes,
    scope_contains,
    text_nodes_under,
)

if TYPE_CHECKING:
    from lxml.html import HtmlElement

    from talfred.api import Runtime
    from talfred.dom.nodes import Selection, TextNode

logger = logging.getLogger(__name__)

# Selections of this many characters or fewer never start a search.
MIN_SEARCH_LENGTH = 2

DEFAULT_HIGHLIGHT_STYLE = "background-color: yellow;"


class HighlightOptions(BaseModel):
    """The feature's ``value`` payload."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    highlight_style: str = Field(
        default=DEFAULT_HIGHLIGHT_STYLE, alias="highlightStyle"
    )
    exclude_self: bool = Field(default=True, alias="excludeSelf")
    # Tested against every candidate text node; can be slow on big pages.
    exclude_parents: list[str] = Field(default_factory=list, alias="excludeParents")
    no_highlight_within: list[str] = Field(
        default_factory=lambda: ["input", "textarea", "[contentEditable]"],
        alias="noHighlightWithin",
    )


class HighlightState(enum.Enum):
    IDLE = "idle"
    ANNOTATED = "annotated"


class SelectionHighlighter(Feature):
    """Highlights every occurrence of the current selection."""

    name = "Select To Highlight"
    description = (
        "Select any text and highlight all occurrences on the page, "
        "`excludeParents` may have performance impact, so careful to use."
    )
    kind = FeatureKind.CONFIGURABLE
    default_enabled = True
    default_value = json.dumps(
        HighlightOptions().model_dump(by_alias=True), indent=2
    )

    def __init__(self, runtime: Runtime) -> None:
        super().__init__(runtime)
        self.current_highlight_text = ""
        self.annotated_nodes: list[HtmlElement] = []
        self.state = HighlightState.IDLE
        self.listener = Debouncer(
            self._on_selection_change,
            wait=runtime.config.debounce.selection_quiet_seconds,
        )

    @property
    def options(self) -> HighlightOptions:
        if not self.value:
            return HighlightOptions()
        return HighlightOptions.model_validate_json(self.value)

    @property
    def selected_text(self) -> str:
        return self.page.selected_text().strip()

    async def should_run(self) -> bool:
        return True

    async def run(self) -> None:
        self.page.add_event_listener("selectionchange", self.listener)
        self.on_teardown(self._teardown)

    def _teardown(self) -> None:
        self.page.remove_event_listener("selectionchange", self.listener)
        self.listener.cancel()
        self.reset_all()

    async def validate(self, value: str | None) -> bool:
        if not await super().validate(value):
            return False
        if value is None:
            return True
        try:
            options = HighlightOptions.model_validate_json(value)
            for selector in (*options.exclude_parents, *options.no_highlight_within):
                compile_selector(selector)
        except (ValidationError, SelectorError):
            return False
        return True

    def _on_selection_change(self, _event: object = None) -> None:
        self.highlight()

    # -- state machine -----------------------------------------------------

    def reset_all(self) -> None:
        """Unwrap every annotated node and go back to idle."""
        for node in self.annotated_nodes:
            self.page.unwrap(node)
        if self.annotated_nodes:
            logger.debug("Removed %d highlight(s)", len(self.annotated_nodes))
        self.annotated_nodes = []
        self.current_highlight_text = ""
        self.state = HighlightState.IDLE

    def highlight(self) -> int:
        """React to the current selection.

        Returns:
            Number of wraps added by this call.
        """
        text = self.selected_text
        # Empty or too short: nothing to search for.
        if len(text) <= MIN_SEARCH_LENGTH:
            self.reset_all()
            return 0

        if text == self.current_highlight_text:
            return 0

        options = self.options
        selection = self.page.selection
        if selection is not None and options.no_highlight_within:
            blocked = SelectorChain(options.no_highlight_within, self.page.document)
            if blocked.has_parent_in_chain(selection.anchor_node):
                return 0

        self.reset_all()

        excluded = SelectorChain(options.exclude_parents, self.page.document)
        added = 0
        for scope in iter_scopes(self.page.body):
            if not scope_contains(scope, text):
                continue
            candidates = text_nodes_under(
                scope,
                accept=(
                    (lambda n: not excluded.has_parent_in_chain(n))
                    if excluded
                    else None
                ),
            )
            for node in candidates:
                start = self._eligible_start(node, text, selection, options)
                if start is not None:
                    added += self._annotate(node, text, start, selection, options)

        self.current_highlight_text = text
        self.state = HighlightState.ANNOTATED
        logger.debug("Highlighted %d occurrence(s) of %r", added, text)
        return added

    @staticmethod
    def _eligible_start(
        node: TextNode,
        text: str,
        selection: Selection | None,
        options: HighlightOptions,
    ) -> int | None:
        """Offset in *node* from which matches may be wrapped, or None."""
        if not (options.exclude_self and selection is not None):
            return 0
        if not selection.contains_node(node):
            return 0
        data = node.data
        first = data.find(text)
        if first == -1 or data.find(text, first + len(text)) == -1:
            # The selection is the only occurrence in this node.
            return None
        return selection.end

    def _annotate(
        self,
        node: TextNode,
        text: str,
        start: int,
        selection: Selection | None,
        options: HighlightOptions,
    ) -> int:
        """Wrap every occurrence of *text* in *node* at or after *start*.

        Walks the remainder iteratively, so a node with thousands of matches
        does not recurse.  A match that only partly overlaps the selection is
        skipped so the selected characters stay in one run.
        """
        added = 0
        cursor = start
        current = node
        while True:
            data = current.data
            if not data:
                break
            if cursor == 0 and data.strip() == text:
                self._track(
                    self.page.wrap_text(current, 0, len(data), self._wrapper(options))
                )
                added += 1
                break
            index = data.find(text, cursor)
            if index == -1:
                break
            end = index + len(text)
            if (
                selection is not None
                and selection.overlaps(current, index, end)
                and (selection.start, selection.end) != (index, end)
            ):
                cursor = index + 1
                continue
            current = self.page.wrap_text(current, index, end, self._wrapper(options))
            self._track(current)
            added += 1
            cursor = 0
        return added

    def _track(self, remainder: TextNode) -> None:
        # The wrapper owns the remainder as its tail.
        self.annotated_nodes.append(remainder.owner)

    @staticmethod
    def _wrapper(options: HighlightOptions) -> HtmlElement:
        span = lxml_html.Element("span")
        span.set("style", options.highlight_style or DEFAULT_HIGHLIGHT_STYLE)
        return span
