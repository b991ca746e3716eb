"""
Render-side tree builder: markup in, canonical VNode tree out.

Markup is tokenized with Genshi's HTML parser, which already closes void
elements, expands minimized attributes and closes dangling tags at the end of
input. Whitespace-only text is dropped here with the same rule the live tree
uses, so sibling indices agree on both sides.
"""

from __future__ import annotations

import logging
from typing import Optional

from genshi.core import COMMENT, END, START, TEXT
from genshi.input import HTML, ParseError

from deltaui.vdom import (
    CommentNode,
    ElementNode,
    TextNode,
    VOID_ELEMENTS,
    VNode,
    fingerprint,
    is_blank,
)

logger = logging.getLogger(__name__)

# Wrapper used to parse fragments with several top-level nodes.
_FRAGMENT_TAG = "div"


def parse(markup: str) -> VNode:
    """Parse a markup fragment into a single root node.

    A fragment with exactly one top-level node returns that node; otherwise
    the nodes are wrapped in a `div`. Never raises: unparseable input yields an
    empty text node.
    """
    nodes = parse_fragment(markup)
    if not nodes:
        return TextNode("")
    if len(nodes) == 1:
        return nodes[0]
    return ElementNode(tag=_FRAGMENT_TAG, children=nodes)


def parse_fragment(markup: str, keep_whitespace: bool = False) -> Optional[list[VNode]]:
    """Parse markup into a list of top-level nodes, or None if it can't be read."""
    try:
        events = list(HTML(markup))
    except (ParseError, AssertionError, ValueError) as e:
        logger.debug("Unparseable markup (%s), falling back to empty text", e)
        return None
    return _build(events, keep_whitespace)


def markup_fingerprint(markup: str) -> str:
    return fingerprint(parse(markup))


def _build(events, keep_whitespace: bool) -> list[VNode]:
    root = ElementNode(tag=_FRAGMENT_TAG)
    stack: list[ElementNode] = [root]
    for kind, data, _pos in events:
        parent = stack[-1]
        if kind is START:
            tag, attrs = data
            node = ElementNode(
                tag=str(tag).lower(),
                attributes={str(name): value for name, value in attrs},
            )
            parent.children.append(node)
            if node.tag not in VOID_ELEMENTS:
                stack.append(node)
        elif kind is END:
            # Void elements were never pushed
            if str(data).lower() in VOID_ELEMENTS:
                continue
            if len(stack) > 1:
                stack.pop()
        elif kind is TEXT:
            last = parent.children[-1] if parent.children else None
            if isinstance(last, TextNode):
                last.content += data
            elif keep_whitespace or not is_blank(data):
                parent.children.append(TextNode(data))
        elif kind is COMMENT:
            parent.children.append(CommentNode(data))
    return root.children
