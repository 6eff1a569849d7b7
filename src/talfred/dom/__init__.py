"""Live page model: document tree, text runs, selection and scoped walking."""

from talfred.dom.nodes import Selection, TextNode, unwrap
from talfred.dom.page import Event, KeyEvent, Page
from talfred.dom.walker import (
    SelectorChain,
    attach_shadow,
    collect_text_nodes,
    contains_text,
    has_parent_in_chain,
    iter_scopes,
    query_selector,
    query_selector_all,
    shadow_root_of,
    text_nodes_under,
)

__all__ = [
    "Event",
    "KeyEvent",
    "Page",
    "Selection",
    "SelectorChain",
    "TextNode",
    "attach_shadow",
    "collect_text_nodes",
    "contains_text",
    "has_parent_in_chain",
    "iter_scopes",
    "query_selector",
    "query_selector_all",
    "shadow_root_of",
    "text_nodes_under",
    "unwrap",
]
