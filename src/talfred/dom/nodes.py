"""Text runs and selections over an lxml document.

lxml has no text nodes: text lives on ``element.text`` (before the first
child) and ``element.tail`` (after the element).  ``TextNode`` names one of
those slots so the rest of the package can treat it like a DOM text node.
Wrapping a range inserts a real element into the tree, which keeps its
identity until it is unwrapped again.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from lxml.html import HtmlElement

Slot = Literal["text", "tail"]


class TextNode:
    """Handle on one text run: ``owner.text`` or ``owner.tail``."""

    __slots__ = ("owner", "slot")

    def __init__(self, owner: HtmlElement, slot: Slot) -> None:
        self.owner = owner
        self.slot = slot

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TextNode):
            return NotImplemented
        return self.owner is other.owner and self.slot == other.slot

    def __hash__(self) -> int:
        return hash((id(self.owner), self.slot))

    def __repr__(self) -> str:
        return f"TextNode({self.owner.tag!r}.{self.slot}, {self.data!r})"

    @property
    def data(self) -> str:
        if self.slot == "text":
            return self.owner.text or ""
        return self.owner.tail or ""

    @data.setter
    def data(self, value: str) -> None:
        if self.slot == "text":
            self.owner.text = value or None
        else:
            self.owner.tail = value or None

    @property
    def parent(self) -> HtmlElement | None:
        """The element whose content this text belongs to."""
        if self.slot == "text":
            return self.owner
        return self.owner.getparent()

    def wrap(self, start: int, end: int, wrapper: HtmlElement) -> TextNode:
        """Move ``data[start:end]`` into *wrapper*, inserted in place.

        The text before the range stays in this slot, the text after it
        becomes the wrapper's tail.

        Returns:
            Handle on the remaining "after" text (the wrapper's tail).
        """
        data = self.data
        before, middle, after = data[:start], data[start:end], data[end:]

        wrapper.text = middle
        wrapper.tail = after or None

        if self.slot == "text":
            self.owner.text = before or None
            self.owner.insert(0, wrapper)
        else:
            parent = self.owner.getparent()
            if parent is None:
                msg = "cannot wrap the tail of a detached element"
                raise ValueError(msg)
            self.owner.tail = before or None
            parent.insert(parent.index(self.owner) + 1, wrapper)

        return TextNode(wrapper, "tail")


def unwrap(wrapper: HtmlElement) -> bool:
    """Replace *wrapper* with its text, merged into the neighbouring text.

    Returns False when the wrapper is no longer attached to a tree.
    """
    if wrapper.getparent() is None:
        return False
    # drop_tag concatenates text/tail into the previous sibling or parent,
    # which is the lxml equivalent of replaceWith + normalize().
    wrapper.drop_tag()
    return True


class Selection:
    """A live selection over a single text run.

    Attributes:
        node: The text run holding the selection.
        start: Start offset into ``node.data`` (inclusive).
        end: End offset into ``node.data`` (exclusive).
    """

    def __init__(self, node: TextNode, start: int, end: int) -> None:
        if not 0 <= start <= end:
            msg = f"invalid selection range {start}..{end}"
            raise ValueError(msg)
        self.node = node
        self.start = start
        self.end = end

    def __repr__(self) -> str:
        return f"Selection({self.node!r}, {self.start}, {self.end})"

    @property
    def text(self) -> str:
        return self.node.data[self.start : self.end]

    @property
    def anchor_node(self) -> TextNode:
        return self.node

    @property
    def is_collapsed(self) -> bool:
        return self.start == self.end

    def contains_node(self, node: TextNode) -> bool:
        return not self.is_collapsed and node == self.node

    def __str__(self) -> str:
        return self.text

    def overlaps(self, node: TextNode, start: int, end: int) -> bool:
        """Return True if ``node.data[start:end]`` shares text with this range."""
        return node == self.node and start < self.end and self.start < end

    # -- range tracking ----------------------------------------------------
    # A browser updates live ranges when the text under them is split or
    # merged; these keep the selection on the same characters across
    # ``TextNode.wrap()`` and ``unwrap()``.

    def follow_wrap(
        self, node: TextNode, start: int, end: int, wrapper: HtmlElement
    ) -> None:
        """Re-anchor after ``node.data[start:end]`` was moved into *wrapper*."""
        if node != self.node or self.end <= start:
            return
        if self.start >= end:
            self.node = TextNode(wrapper, "tail")
            self.start -= end
            self.end -= end
        elif start <= self.start and self.end <= end:
            self.node = TextNode(wrapper, "text")
            self.start -= start
            self.end -= start
        else:
            # A single-run range cannot straddle the new element.
            self.end = start
            self.start = min(self.start, start)

    def follow_unwrap(self, wrapper: HtmlElement) -> None:
        """Re-anchor before *wrapper* is dropped by ``unwrap()``.

        Must run while *wrapper* is still attached, since the offsets come
        from the text the merge will put in front of the selection.
        """
        if self.node.owner is not wrapper:
            return
        parent = wrapper.getparent()
        if parent is None:
            return
        if self.node.slot == "text":
            target = _merge_target(wrapper, parent)
            shift = len(target.data)
        elif len(wrapper):
            target = TextNode(wrapper[-1], "tail")
            shift = len(target.data)
        else:
            target = _merge_target(wrapper, parent)
            shift = len(target.data) + len(wrapper.text or "")
        self.node = target
        self.start += shift
        self.end += shift


def _merge_target(wrapper: HtmlElement, parent: HtmlElement) -> TextNode:
    # drop_tag appends the wrapper's text to the previous sibling's tail,
    # or to the parent's text when the wrapper is the first child.
    previous = wrapper.getprevious()
    if previous is not None:
        return TextNode(previous, "tail")
    return TextNode(parent, "text")
