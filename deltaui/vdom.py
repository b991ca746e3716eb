"""
Canonical virtual tree used on both sides of the wire.

A tree is made of three node kinds: elements, text and comments. Both tree
builders (markup on the server, live display tree on the client) produce this
shape, so trees coming from either side can be compared directly.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from html import escape
from typing import Literal, Optional, Sequence, Union


NodeKind = Literal["element", "text", "comment"]

# Elements that never have children.
VOID_ELEMENTS = frozenset(
    [
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
        "param",
        "source",
        "track",
        "wbr",
    ]
)

# Checked in order; the first attribute present provides the element key.
KEY_ATTRIBUTES = ("delta:key", "key")


@dataclass
class ElementNode:
    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: list["VNode"] = field(default_factory=list)
    key: Optional[str] = None

    kind: NodeKind = field(default="element", init=False, repr=False)

    def __post_init__(self):
        if self.key is None:
            self.key = key_from_attributes(self.attributes)
        if self.tag in VOID_ELEMENTS:
            self.children = []

    def __repr__(self) -> str:  # pragma: no cover - trivial formatting
        return (
            f"ElementNode(tag={self.tag!r}, key={self.key!r}, "
            f"attributes={self.attributes!r}, children={len(self.children)})"
        )


@dataclass
class TextNode:
    content: str
    kind: NodeKind = field(default="text", init=False, repr=False)


@dataclass
class CommentNode:
    content: str
    kind: NodeKind = field(default="comment", init=False, repr=False)


VNode = Union[ElementNode, TextNode, CommentNode]


def element(
    tag: str,
    attributes: Optional[dict[str, str]] = None,
    children: Optional[Sequence[VNode | str]] = None,
    key: Optional[str] = None,
) -> ElementNode:
    """Shorthand constructor. Plain strings in `children` become text nodes."""
    return ElementNode(
        tag=tag,
        attributes=dict(attributes or {}),
        children=[TextNode(c) if isinstance(c, str) else c for c in children or []],
        key=key,
    )


def text(content: str) -> TextNode:
    return TextNode(content)


def key_from_attributes(attributes: dict[str, str]) -> Optional[str]:
    for name in KEY_ATTRIBUTES:
        value = attributes.get(name)
        if value is not None:
            return value
    return None


# ----------------------------------------------------------------------------
# Significance
# ----------------------------------------------------------------------------


def is_blank(content: str) -> bool:
    # ASCII whitespace only, so text made of &nbsp; stays significant
    return content.strip(" \t\n\r\f") == ""


def is_meaningful(node: VNode) -> bool:
    """Whitespace-only text is insignificant and never addressed by a path."""
    return not (isinstance(node, TextNode) and is_blank(node.content))


def meaningful_children(node: VNode) -> list[VNode]:
    if not isinstance(node, ElementNode):
        return []
    return [child for child in node.children if is_meaningful(child)]


def same_kind(a: VNode, b: VNode) -> bool:
    if a.kind != b.kind:
        return False
    if isinstance(a, ElementNode) and isinstance(b, ElementNode):
        return a.tag == b.tag
    return True


def resolve(root: VNode, path: Sequence[int]) -> Optional[VNode]:
    """Walk `path` from `root` through meaningful children."""
    node: Optional[VNode] = root
    for index in path:
        if node is None:
            return None
        children = meaningful_children(node)
        if index < 0 or index >= len(children):
            return None
        node = children[index]
    return node


# ----------------------------------------------------------------------------
# Serialization helpers
# ----------------------------------------------------------------------------


def to_html(node: VNode) -> str:
    """Serialize a tree back to markup. Attribute order is preserved."""
    if isinstance(node, TextNode):
        return escape(node.content, quote=False)
    if isinstance(node, CommentNode):
        return f"<!--{node.content}-->"
    attrs = "".join(
        f' {name}="{escape(value, quote=True)}"'
        for name, value in node.attributes.items()
    )
    if node.tag in VOID_ELEMENTS:
        return f"<{node.tag}{attrs}>"
    inner = "".join(to_html(child) for child in node.children)
    return f"<{node.tag}{attrs}>{inner}</{node.tag}>"


def skeleton(node: VNode) -> str:
    """Structural outline of a tree: kinds, tags and keys, without content."""
    if isinstance(node, TextNode):
        return "#t"
    if isinstance(node, CommentNode):
        return "#c"
    key = f"@{node.key}" if node.key is not None else ""
    inner = ",".join(skeleton(child) for child in meaningful_children(node))
    return f"{node.tag}{key}({inner})"


def fingerprint(node: Optional[VNode]) -> str:
    """Structural identity marker of the rendered shape."""
    outline = skeleton(node) if node is not None else ""
    return hashlib.sha1(outline.encode("utf-8")).hexdigest()


def strip_insignificant(node: VNode) -> VNode:
    """Copy of `node` with whitespace-only text removed at every level."""
    if not isinstance(node, ElementNode):
        return node
    return ElementNode(
        tag=node.tag,
        attributes=dict(node.attributes),
        children=[strip_insignificant(c) for c in meaningful_children(node)],
        key=node.key,
    )
