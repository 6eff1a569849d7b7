"""Scoped tree walking across nested shadow roots.

A shadow root is modelled as a ``<template shadowrootmode="...">`` child of
its host (the declarative shadow DOM form).  Ordinary traversal in this
module treats such a template as a scope boundary: it is neither entered nor
searched, but handed back as a new root for breadth-first expansion.
"""

# Pattern: Functional Core (pure traversal; callers own all mutation)

from __future__ import annotations

import logging
from collections import deque
from functools import lru_cache
from typing import TYPE_CHECKING

from lxml import html as lxml_html
from lxml.cssselect import CSSSelector

from talfred.dom.nodes import Slot, TextNode

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from lxml.html import HtmlElement

logger = logging.getLogger(__name__)

SHADOW_MODE_ATTR = "shadowrootmode"

# Containers whose text is not page content (or is inert) for annotation.
NON_CONTENT_TAGS = frozenset(
    ("script", "style", "noscript", "template", "textarea", "title")
)

# Selection may still land inside form fields, so only skip inert content.
INERT_TAGS = frozenset(("script", "style", "noscript", "template"))


# ---------------------------------------------------------------------------
# Shadow roots
# ---------------------------------------------------------------------------


def is_shadow_root(element: HtmlElement) -> bool:
    """Return True if *element* is a shadow root template."""
    return (
        isinstance(element.tag, str)
        and element.tag == "template"
        and element.get(SHADOW_MODE_ATTR) is not None
    )


def shadow_root_of(host: HtmlElement) -> HtmlElement | None:
    """Return the shadow root attached to *host*, if any."""
    for child in host:
        if is_shadow_root(child):
            return child
    return None


def attach_shadow(host: HtmlElement, mode: str = "open") -> HtmlElement:
    """Attach a new shadow root to *host* and return it.

    Raises:
        ValueError: If *host* already has a shadow root.
    """
    if shadow_root_of(host) is not None:
        msg = f"<{host.tag}> already hosts a shadow root"
        raise ValueError(msg)
    root = lxml_html.Element("template")
    root.set(SHADOW_MODE_ATTR, mode)
    host.insert(0, root)
    return root


# ---------------------------------------------------------------------------
# Scope traversal
# ---------------------------------------------------------------------------


def _iter_scope_elements(scope: HtmlElement) -> Iterator[HtmlElement]:
    """Yield every element of *scope* in document order.

    Templates (inert or shadow) are yielded but never entered.
    """
    stack = [iter(scope)]
    while stack:
        child = next(stack[-1], None)
        if child is None:
            stack.pop()
            continue
        yield child
        if isinstance(child.tag, str) and child.tag != "template":
            stack.append(iter(child))


def iter_scopes(root: HtmlElement) -> Iterator[HtmlElement]:
    """Breadth-first expansion of *root* and every nested shadow root.

    Each scope is yielded before its own shadow roots are discovered, so the
    caller may edit the scope's text in between.
    """
    queue: deque[HtmlElement] = deque([root])
    while queue:
        scope = queue.popleft()
        yield scope
        queue.extend(el for el in _iter_scope_elements(scope) if is_shadow_root(el))


def text_nodes_under(
    scope: HtmlElement,
    accept: Callable[[TextNode], bool] | None = None,
    skip_tags: frozenset[str] = NON_CONTENT_TAGS,
) -> list[TextNode]:
    """Collect the non-empty text runs of one scope in document order.

    Args:
        scope: The body, an element, or a shadow root.
        accept: Optional predicate; runs it rejects are left out.
        skip_tags: Elements whose own text is not collected.  Their tails
            still are, since the tail belongs to the parent.

    Returns:
        Text node handles, materialised before any caller mutation.
    """
    nodes: list[TextNode] = []

    def _add(owner: HtmlElement, slot: Slot) -> None:
        node = TextNode(owner, slot)
        if accept is None or accept(node):
            nodes.append(node)

    if scope.text:
        _add(scope, "text")

    stack: list[tuple[HtmlElement, Iterator[HtmlElement]]] = [(scope, iter(scope))]
    while stack:
        parent, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            # A tail follows all of its element's descendants.
            if parent is not scope and parent.tail:
                _add(parent, "tail")
            continue
        if isinstance(child.tag, str) and child.tag not in skip_tags:
            if child.text:
                _add(child, "text")
            stack.append((child, iter(child)))
        elif child.tail:
            _add(child, "tail")

    return nodes


def scope_text(scope: HtmlElement) -> str:
    """The text content of *scope*, excluding nested scopes."""
    return "".join(node.data for node in text_nodes_under(scope))


def scope_contains(scope: HtmlElement, needle: str) -> bool:
    """Containment test for one scope."""
    return bool(needle) and needle in scope_text(scope)


def contains_text(root: HtmlElement, needle: str) -> bool:
    """Return True if *needle* occurs in *root* or any nested scope."""
    return any(scope_contains(scope, needle) for scope in iter_scopes(root))


def collect_text_nodes(
    root: HtmlElement,
    needle: str,
    accept: Callable[[TextNode], bool] | None = None,
) -> list[TextNode]:
    """Ordered text runs from every scope under *root* that contains *needle*."""
    nodes: list[TextNode] = []
    for scope in iter_scopes(root):
        if scope_contains(scope, needle):
            nodes.extend(text_nodes_under(scope, accept))
    return nodes


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------


@lru_cache(maxsize=256)
def compile_selector(selector: str) -> CSSSelector:
    """Compile a CSS selector with HTML (case-insensitive) semantics.

    Raises:
        lxml.cssselect.SelectorError: If *selector* is not valid CSS.
    """
    return CSSSelector(selector, translator="html")


def _in_scope(element: HtmlElement, scope: HtmlElement) -> bool:
    """Return True if *element* sits under *scope* with no shadow root between."""
    parent = element.getparent()
    while parent is not None:
        if parent is scope:
            return True
        if is_shadow_root(parent):
            return False
        parent = parent.getparent()
    return False


def _scope_matches(
    compiled: CSSSelector, scope: HtmlElement, include_self: bool = False
) -> list[HtmlElement]:
    # XPath descends into template contents, so matches from nested scopes
    # are dropped here and found again when their own scope is searched.
    return [
        el
        for el in compiled(scope)
        if _in_scope(el, scope)
        or (include_self and el is scope and not is_shadow_root(el))
    ]


def query_selector_all(selector: str, root: HtmlElement) -> list[HtmlElement]:
    """querySelectorAll that also searches nested shadow roots."""
    compiled = compile_selector(selector)
    found: list[HtmlElement] = []
    for scope in iter_scopes(root):
        found.extend(_scope_matches(compiled, scope))
    return found


def query_selector(selector: str, root: HtmlElement) -> HtmlElement | None:
    """First match of *selector* in *root* or any nested shadow root."""
    compiled = compile_selector(selector)
    for scope in iter_scopes(root):
        matches = _scope_matches(compiled, scope)
        if matches:
            return matches[0]
    return None


class SelectorChain:
    """Ancestor-chain matcher for a fixed set of selectors.

    Matches are computed once per scope of the whole tree, so one instance
    can test many nodes cheaply.  A selector never matches across a shadow
    boundary, and the walk stops at a shadow root, the same way
    ``parentElement`` does in a browser.
    """

    def __init__(self, selectors: Iterable[str], root: HtmlElement) -> None:
        self.selectors = tuple(selectors)
        self._matches: set[HtmlElement] = set()
        if not self.selectors:
            return
        scopes = list(iter_scopes(root.getroottree().getroot()))
        for selector in self.selectors:
            compiled = compile_selector(selector)
            for scope in scopes:
                self._matches.update(
                    _scope_matches(compiled, scope, include_self=True)
                )

    def __bool__(self) -> bool:
        return bool(self.selectors)

    def has_parent_in_chain(self, node: TextNode | HtmlElement) -> bool:
        if isinstance(node, TextNode):
            element = node.parent
        else:
            element = node.getparent()
        while element is not None and not is_shadow_root(element):
            if element in self._matches:
                return True
            element = element.getparent()
        return False


def has_parent_in_chain(
    node: TextNode | HtmlElement,
    selectors: Iterable[str],
    root: HtmlElement,
) -> bool:
    """Return True if any ancestor of *node* matches one of *selectors*."""
    return SelectorChain(selectors, root).has_parent_in_chain(node)
