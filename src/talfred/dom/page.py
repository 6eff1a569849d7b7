"""The live page features run against.

``Page`` bundles what a content script sees of a browser tab: a mutable
document, the current URL, the user's selection and a small event-listener
registry.  Listeners may be plain callables or coroutine functions; the
coroutines they return are scheduled on the running loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from lxml import html as lxml_html

from talfred.dom.nodes import Selection, unwrap
from talfred.dom.walker import INERT_TAGS, iter_scopes, text_nodes_under

if TYPE_CHECKING:
    from collections.abc import Callable

    from lxml.html import HtmlElement

    from talfred.dom.nodes import TextNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyEvent:
    """A keyboard event, as delivered to ``keydown`` listeners."""

    code: str
    meta_key: bool = False
    shift_key: bool = False
    ctrl_key: bool = False
    alt_key: bool = False


@dataclass(frozen=True)
class Event:
    """A generic page event."""

    type: str
    target: HtmlElement | None = None
    detail: Any = None


class Page:
    """A live document plus the browser state a content script relies on."""

    def __init__(self, html: str, url: str = "about:blank") -> None:
        self.document: HtmlElement = lxml_html.document_fromstring(html)
        self.url = url
        self.selection: Selection | None = None
        self._listeners: dict[
            tuple[str, HtmlElement | None], list[Callable[[Any], Any]]
        ] = {}

    # -- document ----------------------------------------------------------

    @property
    def body(self) -> HtmlElement:
        body = self.document.find("body")
        if body is None:
            body = lxml_html.Element("body")
            self.document.append(body)
        return body

    def get_element_by_id(self, element_id: str) -> HtmlElement | None:
        """Find an element by id anywhere, shadow roots included."""
        for element in self.document.iter():
            if element.get("id") == element_id:
                return element
        return None

    def to_html(self) -> str:
        return lxml_html.tostring(self.document, encoding="unicode")

    def text_content(self) -> str:
        return self.document.text_content()

    # -- mutation ----------------------------------------------------------
    # Text edits go through the page so the live selection follows them.

    def wrap_text(
        self, node: TextNode, start: int, end: int, wrapper: HtmlElement
    ) -> TextNode:
        """``node.wrap()`` that keeps the selection on the same characters."""
        remainder = node.wrap(start, end, wrapper)
        if self.selection is not None:
            self.selection.follow_wrap(node, start, end, wrapper)
        return remainder

    def unwrap(self, wrapper: HtmlElement) -> bool:
        """``unwrap()`` that keeps the selection on the same characters."""
        if self.selection is not None and wrapper.getparent() is not None:
            self.selection.follow_unwrap(wrapper)
        return unwrap(wrapper)

    # -- events ------------------------------------------------------------

    def add_event_listener(
        self,
        event_type: str,
        listener: Callable[[Any], Any],
        target: HtmlElement | None = None,
    ) -> None:
        listeners = self._listeners.setdefault((event_type, target), [])
        if listener not in listeners:
            listeners.append(listener)

    def remove_event_listener(
        self,
        event_type: str,
        listener: Callable[[Any], Any],
        target: HtmlElement | None = None,
    ) -> None:
        listeners = self._listeners.get((event_type, target), [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: str, target: HtmlElement | None = None) -> int:
        return len(self._listeners.get((event_type, target), []))

    def dispatch_event(
        self,
        event_type: str,
        event: Any = None,
        target: HtmlElement | None = None,
    ) -> list[asyncio.Future[Any]]:
        """Call every listener for *event_type* on *target*.

        Returns:
            Futures for listeners that returned awaitables, so callers can
            wait for them.  Synchronous listeners have already run.
        """
        if event is None:
            event = Event(type=event_type, target=target)
        pending: list[asyncio.Future[Any]] = []
        for listener in list(self._listeners.get((event_type, target), [])):
            result = listener(event)
            if inspect.isawaitable(result):
                pending.append(asyncio.ensure_future(result))
        return pending

    # -- browser actions ---------------------------------------------------

    def select(self, text: str, occurrence: int = 0) -> Selection:
        """Select the n-th occurrence of *text* and fire ``selectionchange``.

        Occurrences are counted across text runs in scope order, so a run
        containing *text* twice counts twice.

        Raises:
            LookupError: If there are not enough occurrences.
        """
        seen = 0
        for scope in iter_scopes(self.body):
            for node in text_nodes_under(scope, skip_tags=INERT_TAGS):
                data = node.data
                index = data.find(text)
                while index != -1:
                    if seen == occurrence:
                        selection = Selection(node, index, index + len(text))
                        self.set_selection(selection)
                        return selection
                    seen += 1
                    index = data.find(text, index + len(text))
        msg = f"occurrence {occurrence} of {text!r} not found"
        raise LookupError(msg)

    def set_selection(self, selection: Selection | None) -> None:
        self.selection = selection
        self.dispatch_event("selectionchange")

    def clear_selection(self) -> None:
        self.set_selection(None)

    def selected_text(self) -> str:
        return self.selection.text if self.selection is not None else ""

    def navigate(self, url: str) -> None:
        """Change the URL without reloading (history-style navigation)."""
        logger.debug("Navigating %s -> %s", self.url, url)
        self.url = url

    def press_key(
        self,
        code: str,
        *,
        meta: bool = False,
        shift: bool = False,
        ctrl: bool = False,
        alt: bool = False,
    ) -> list[asyncio.Future[Any]]:
        event = KeyEvent(
            code=code, meta_key=meta, shift_key=shift, ctrl_key=ctrl, alt_key=alt
        )
        return self.dispatch_event("keydown", event)

    def click(self, element: HtmlElement) -> list[asyncio.Future[Any]]:
        return self.dispatch_event(
            "click", Event(type="click", target=element), target=element
        )
