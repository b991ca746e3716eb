"""
Live display tree on the client side.

The patch applier mutates these nodes in place, so a node that no patch
touches keeps its identity (and whatever the user did to it, such as a typed
`value`). `build()` is the live-side tree builder: it turns a live tree back
into the canonical VNode shape using the same significance rule as the
markup parser.
"""

from __future__ import annotations

from html import escape
from typing import Optional

from deltaui.parser import parse_fragment
from deltaui.vdom import (
    VOID_ELEMENTS,
    CommentNode,
    ElementNode,
    TextNode,
    VNode,
    is_blank,
)

# Elements whose `value` is live state distinct from the `value` attribute.
INPUT_LIKE = frozenset(["input", "textarea", "select"])


class LiveNode:
    parent: Optional["LiveElement"]

    def __init__(self) -> None:
        self.parent = None

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)


class LiveText(LiveNode):
    def __init__(self, data: str) -> None:
        super().__init__()
        self.data = data

    def __repr__(self) -> str:  # pragma: no cover - trivial formatting
        return f"LiveText({self.data!r})"


class LiveComment(LiveNode):
    def __init__(self, data: str) -> None:
        super().__init__()
        self.data = data

    def __repr__(self) -> str:  # pragma: no cover - trivial formatting
        return f"LiveComment({self.data!r})"


class LiveElement(LiveNode):
    def __init__(
        self,
        tag: str,
        attributes: Optional[dict[str, str]] = None,
        children: Optional[list[LiveNode]] = None,
    ) -> None:
        super().__init__()
        self.tag = tag.lower()
        self.attributes: dict[str, str] = dict(attributes or {})
        self.child_nodes: list[LiveNode] = []
        # Live value for input-like elements; None means "follow the attribute"
        self._value: Optional[str] = None
        for child in children or []:
            self.append_child(child)

    def __repr__(self) -> str:  # pragma: no cover - trivial formatting
        return f"LiveElement({self.tag!r}, children={len(self.child_nodes)})"

    # --- attributes ---------------------------------------------------------

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name] = value

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    @property
    def value(self) -> str:
        if self._value is not None:
            return self._value
        if self.tag == "textarea":
            return "".join(
                c.data for c in self.child_nodes if isinstance(c, LiveText)
            )
        return self.attributes.get("value", "")

    @value.setter
    def value(self, value: str) -> None:
        self._value = value

    # --- children -----------------------------------------------------------

    def meaningful_children(self) -> list[LiveNode]:
        return [c for c in self.child_nodes if is_meaningful_live(c)]

    def append_child(self, node: LiveNode) -> LiveNode:
        return self.insert_before(node, None)

    def insert_before(self, node: LiveNode, reference: Optional[LiveNode]) -> LiveNode:
        """Insert `node` before `reference`, moving it if it is already attached."""
        if node is reference:
            return node
        if reference is not None and reference.parent is not self:
            raise ValueError("Reference node is not a child of this element")
        node.remove()
        if reference is None:
            self.child_nodes.append(node)
        else:
            self.child_nodes.insert(self._index_of(reference), node)
        node.parent = self
        return node

    def remove_child(self, node: LiveNode) -> LiveNode:
        self.child_nodes.pop(self._index_of(node))
        node.parent = None
        return node

    def replace_child(self, new: LiveNode, old: LiveNode) -> LiveNode:
        if new is old:
            return old
        new.remove()
        index = self._index_of(old)
        self.child_nodes[index] = new
        new.parent = self
        old.parent = None
        return old

    def _index_of(self, node: LiveNode) -> int:
        # Identity, not equality
        for i, child in enumerate(self.child_nodes):
            if child is node:
                return i
        raise ValueError("Node is not a child of this element")


def is_meaningful_live(node: LiveNode) -> bool:
    # Must match deltaui.vdom.is_meaningful
    return not (isinstance(node, LiveText) and is_blank(node.data))


# ----------------------------------------------------------------------------
# Conversions
# ----------------------------------------------------------------------------


def build(live: LiveNode) -> VNode:
    """Live tree -> canonical VNode tree."""
    if isinstance(live, LiveText):
        return TextNode(live.data)
    if isinstance(live, LiveComment):
        return CommentNode(live.data)
    assert isinstance(live, LiveElement)
    return ElementNode(
        tag=live.tag,
        attributes=dict(live.attributes),
        children=[build(c) for c in live.meaningful_children()],
    )


def to_live(node: VNode) -> LiveNode:
    """VNode -> freshly created live nodes."""
    if isinstance(node, TextNode):
        return LiveText(node.content)
    if isinstance(node, CommentNode):
        return LiveComment(node.content)
    return LiveElement(
        node.tag,
        attributes=node.attributes,
        children=[to_live(c) for c in node.children],
    )


def parse_live(markup: str) -> LiveNode:
    """Build a live tree from markup, keeping whitespace-only text nodes.

    The root selection rule is the same as `deltaui.parser.parse`, applied to
    meaningful top-level nodes.
    """
    nodes = parse_fragment(markup, keep_whitespace=True)
    if not nodes:
        return LiveText("")
    meaningful = [n for n in nodes if not (isinstance(n, TextNode) and is_blank(n.content))]
    if not meaningful:
        return LiveText("")
    if len(meaningful) == 1:
        return to_live(meaningful[0])
    return LiveElement("div", children=[to_live(n) for n in nodes])


def outer_html(node: LiveNode) -> str:
    if isinstance(node, LiveText):
        return escape(node.data, quote=False)
    if isinstance(node, LiveComment):
        return f"<!--{node.data}-->"
    assert isinstance(node, LiveElement)
    attrs = "".join(
        f' {name}="{escape(value, quote=True)}"'
        for name, value in node.attributes.items()
    )
    if node.tag in VOID_ELEMENTS:
        return f"<{node.tag}{attrs}>"
    inner = "".join(outer_html(c) for c in node.child_nodes)
    return f"<{node.tag}{attrs}>{inner}</{node.tag}>"
