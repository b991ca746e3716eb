"""
Client-side patch application.

Patches are applied in order against the live node that corresponds to the
old tree's managed root. Nodes no patch touches are left alone, so their
identity and any user edits survive. A patch whose path does not resolve is
skipped and reported in the result instead of raising: it means the live tree
and the server's idea of it have diverged, and the caller decides whether to
resync.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from deltaui.diff import Patch, is_full_replacement
from deltaui.dom import (
    INPUT_LIKE,
    LiveComment,
    LiveElement,
    LiveNode,
    LiveText,
    to_live,
)

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    # The managed root after application; differs from the input root when
    # the whole region was replaced, and is None when it was removed.
    root: Optional[LiveNode]
    applied: int = 0
    skipped: list[Patch] = field(default_factory=list)

    @property
    def diverged(self) -> bool:
        return bool(self.skipped)


class PatchSkipped(Exception):
    """Internal signal: the patch does not fit the live tree."""


def apply_patches(root: LiveNode, patches: Sequence[Patch]) -> ApplyResult:
    if is_full_replacement(patches):
        return ApplyResult(root=_replace_region(root, patches[0]), applied=1)

    result = ApplyResult(root=root)
    for patch in patches:
        try:
            result.root = _apply_patch(result.root, patch)
        except PatchSkipped as e:
            logger.warning(
                "Skipping %s patch at path %s: %s", patch["type"], patch["path"], e
            )
            result.skipped.append(patch)
        else:
            result.applied += 1
    return result


def resolve_path(root: Optional[LiveNode], path: Sequence[int]) -> Optional[LiveNode]:
    """Walk `path` by selecting the Nth meaningful child at each level."""
    node = root
    for index in path:
        if not isinstance(node, LiveElement):
            return None
        children = node.meaningful_children()
        if index < 0 or index >= len(children):
            return None
        node = children[index]
    return node


def _replace_region(root: LiveNode, patch: Patch) -> LiveNode:
    new_root = to_live(patch["data"]["node"])  # type: ignore[typeddict-item]
    if root.parent is not None:
        root.parent.replace_child(new_root, root)
    return new_root


def _apply_patch(root: Optional[LiveNode], patch: Patch) -> Optional[LiveNode]:
    kind = patch["type"]
    path = patch["path"]

    if kind == "create":
        node = to_live(patch["data"]["node"])
        if not path:
            if root is not None:
                raise PatchSkipped("managed root already exists")
            return node
        parent = resolve_path(root, path[:-1])
        if not isinstance(parent, LiveElement):
            raise PatchSkipped("parent not found")
        _insert_at(parent, node, path[-1])
        return root

    target = resolve_path(root, path)
    if target is None:
        raise PatchSkipped("target not found")

    if kind == "remove":
        target.remove()
        if target is root:
            return None
    elif kind == "replace":
        node = to_live(patch["data"]["node"])
        if target is root:
            if root.parent is not None:
                root.parent.replace_child(node, root)
            return node
        assert target.parent is not None
        target.parent.replace_child(node, target)
    elif kind == "update_text":
        if not isinstance(target, (LiveText, LiveComment)):
            raise PatchSkipped("target is not a text or comment node")
        target.data = patch["data"]["text"]
    elif kind == "update_attrs":
        if not isinstance(target, LiveElement):
            raise PatchSkipped("target is not an element")
        _update_attributes(target, patch["data"]["set"], patch["data"]["remove"])
    elif kind == "reorder":
        if not isinstance(target, LiveElement):
            raise PatchSkipped("target is not an element")
        _reorder(target, [(m["from"], m["to"]) for m in patch["data"]["moves"]])
    else:
        raise PatchSkipped(f"unknown patch type {kind!r}")
    return root


def _insert_at(parent: LiveElement, node: LiveNode, index: int) -> None:
    children = parent.meaningful_children()
    reference = children[index] if 0 <= index < len(children) else None
    parent.insert_before(node, reference)


def _update_attributes(
    element: LiveElement, to_set: dict[str, str], to_remove: Sequence[str]
) -> None:
    live_value = element.tag in INPUT_LIKE
    for name, value in to_set.items():
        element.set_attribute(name, value)
        if live_value and name == "value":
            element.value = value
    for name in to_remove:
        element.remove_attribute(name)
        if live_value and name == "value":
            # A server-directed reset must erase what the user typed
            element.value = ""


def _reorder(parent: LiveElement, moves: Sequence[tuple[int, int]]) -> None:
    """Apply moves one by one; indices refer to the list after prior moves."""
    count = len(parent.meaningful_children())
    for src, dest in moves:
        if not (0 <= src < count) or not (0 <= dest <= count):
            raise PatchSkipped(f"move {src}->{dest} out of range")
    for src, dest in moves:
        children = parent.meaningful_children()
        node = children[src]
        reference = children[dest] if dest < len(children) else None
        if reference is node:
            continue
        if reference is None:
            # Append after the last meaningful child, not after trailing whitespace
            last = children[-1]
            if last is node:
                continue
            reference = _next_sibling(last)
        parent.insert_before(node, reference)


def _next_sibling(node: LiveNode) -> Optional[LiveNode]:
    parent = node.parent
    assert parent is not None
    siblings = parent.child_nodes
    for i, child in enumerate(siblings):
        if child is node:
            return siblings[i + 1] if i + 1 < len(siblings) else None
    return None
