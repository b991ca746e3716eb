"""
Tree diffing for server-side delta rendering.

This module provides pure functions that compare two VNode trees and produce an
ordered patch list. Keyed children are reconciled by identity with a
longest-increasing-subsequence pass, so items that merely moved are moved
rather than destroyed and recreated.

Paths are lists of meaningful-child indices from the managed root down to the
target node, computed against the old tree. A `create` patch is the exception:
its last segment is the insertion index in the parent's child list as already
mutated by the preceding patches.

Within one parent, patches are emitted in this order:
  1. patches inside surviving children (old indices are still valid),
  2. removals, highest index first,
  3. at most one reorder of the survivors,
  4. creations, lowest new index first.
"""

from __future__ import annotations

from typing import Literal, Optional, Sequence, TypedDict, Union

from deltaui.vdom import (
    ElementNode,
    VNode,
    meaningful_children,
    same_kind,
)


PatchType = Literal[
    "create", "remove", "replace", "update_text", "update_attrs", "reorder"
]


class NodeData(TypedDict):
    node: VNode


class TextData(TypedDict):
    text: str


class AttributesData(TypedDict):
    set: dict[str, str]
    remove: list[str]


Move = TypedDict("Move", {"from": int, "to": int})


class ReorderData(TypedDict):
    moves: list[Move]


class EmptyData(TypedDict):
    pass


class CreatePatch(TypedDict):
    type: Literal["create"]
    path: list[int]
    data: NodeData


class RemovePatch(TypedDict):
    type: Literal["remove"]
    path: list[int]
    data: EmptyData


class ReplacePatch(TypedDict):
    type: Literal["replace"]
    path: list[int]
    data: NodeData


class UpdateTextPatch(TypedDict):
    type: Literal["update_text"]
    path: list[int]
    data: TextData


class UpdateAttributesPatch(TypedDict):
    type: Literal["update_attrs"]
    path: list[int]
    data: AttributesData


class ReorderPatch(TypedDict):
    type: Literal["reorder"]
    path: list[int]
    data: ReorderData


Patch = Union[
    CreatePatch,
    RemovePatch,
    ReplacePatch,
    UpdateTextPatch,
    UpdateAttributesPatch,
    ReorderPatch,
]

PATCH_TYPES: tuple[PatchType, ...] = (
    "create",
    "remove",
    "replace",
    "update_text",
    "update_attrs",
    "reorder",
)


# ----------------------------------------------------------------------------
# Patch constructors
# ----------------------------------------------------------------------------


def create(path: Sequence[int], node: VNode) -> CreatePatch:
    return {"type": "create", "path": list(path), "data": {"node": node}}


def remove(path: Sequence[int]) -> RemovePatch:
    return {"type": "remove", "path": list(path), "data": {}}


def replace(path: Sequence[int], node: VNode) -> ReplacePatch:
    return {"type": "replace", "path": list(path), "data": {"node": node}}


def update_text(path: Sequence[int], text: str) -> UpdateTextPatch:
    return {"type": "update_text", "path": list(path), "data": {"text": text}}


def update_attributes(
    path: Sequence[int], set: dict[str, str], remove: Sequence[str]
) -> UpdateAttributesPatch:
    return {
        "type": "update_attrs",
        "path": list(path),
        "data": {"set": dict(set), "remove": list(remove)},
    }


def reorder(path: Sequence[int], moves: Sequence[tuple[int, int]]) -> ReorderPatch:
    return {
        "type": "reorder",
        "path": list(path),
        "data": {"moves": [{"from": src, "to": dest} for src, dest in moves]},
    }


def full_replacement(node: VNode) -> list[Patch]:
    """Single patch replacing the entire managed region."""
    return [replace([], node)]


def is_full_replacement(patches: Sequence[Patch]) -> bool:
    return (
        len(patches) == 1
        and patches[0]["type"] in ("create", "replace")
        and not patches[0]["path"]
    )


# ----------------------------------------------------------------------------
# Diffing
# ----------------------------------------------------------------------------


def diff(
    old_node: Optional[VNode], new_node: Optional[VNode], path: Sequence[int] = ()
) -> list[Patch]:
    """
    Compare two trees occupying the same position and produce patches.

    Args:
        old_node: The previous tree (or None for an initial render)
        new_node: The new tree (or None for removal)
        path: Position of both trees below the managed root

    Returns:
        The ordered patch list. The same pair of trees always yields the same
        list.
    """
    patches: list[Patch] = []
    _diff_node(old_node, new_node, list(path), patches)
    return patches


def diff_attributes(
    old_attrs: dict[str, str], new_attrs: dict[str, str]
) -> Optional[AttributesData]:
    """Attribute changes between two elements, or None when there are none.

    Keys are sorted so the output does not depend on dict insertion order.
    """
    to_set = {
        name: new_attrs[name]
        for name in sorted(new_attrs)
        if old_attrs.get(name) != new_attrs[name]
    }
    to_remove = sorted(name for name in old_attrs if name not in new_attrs)
    if not to_set and not to_remove:
        return None
    return {"set": to_set, "remove": to_remove}


def _diff_node(
    old: Optional[VNode], new: Optional[VNode], path: list[int], out: list[Patch]
) -> None:
    if old is None and new is None:
        return
    if old is None:
        assert new is not None  # Type guard
        out.append(create(path, new))
        return
    if new is None:
        out.append(remove(path))
        return

    if not same_kind(old, new):
        out.append(replace(path, new))
        return

    if isinstance(old, ElementNode):
        assert isinstance(new, ElementNode)
        changes = diff_attributes(old.attributes, new.attributes)
        if changes is not None:
            out.append(update_attributes(path, changes["set"], changes["remove"]))
        _diff_children(old, new, path, out)
        return

    # Text and comments are atomic
    assert not isinstance(new, ElementNode)
    if old.content != new.content:
        out.append(update_text(path, new.content))


def _diff_children(
    old: ElementNode, new: ElementNode, path: list[int], out: list[Patch]
) -> None:
    old_children = meaningful_children(old)
    new_children = meaningful_children(new)
    if not old_children and not new_children:
        return

    keyed = any(_key_of(c) is not None for c in old_children) or any(
        _key_of(c) is not None for c in new_children
    )
    if keyed:
        _diff_keyed_children(old_children, new_children, path, out)
    else:
        _diff_positional_children(old_children, new_children, path, out)


def _diff_positional_children(
    old_children: list[VNode],
    new_children: list[VNode],
    path: list[int],
    out: list[Patch],
) -> None:
    """Unkeyed children: index is identity."""
    common = min(len(old_children), len(new_children))
    for i in range(common):
        _diff_node(old_children[i], new_children[i], path + [i], out)
    for i in reversed(range(common, len(old_children))):
        out.append(remove(path + [i]))
    for i in range(common, len(new_children)):
        out.append(create(path + [i], new_children[i]))


def _diff_keyed_children(
    old_children: list[VNode],
    new_children: list[VNode],
    path: list[int],
    out: list[Patch],
) -> None:
    """Keyed children: match by identity, then move the fewest survivors."""
    old_ids = _identities(old_children)
    new_ids = _identities(new_children)
    old_position = {ident: i for i, ident in enumerate(old_ids) if ident is not None}

    # (old index, new index) for every survivor, in old order
    matched: list[tuple[int, int]] = []
    for j, ident in enumerate(new_ids):
        if ident is not None and ident in old_position:
            matched.append((old_position[ident], j))
    matched.sort()

    for i, j in matched:
        _diff_node(old_children[i], new_children[j], path + [i], out)

    matched_old = {i for i, _ in matched}
    matched_new = {j for _, j in matched}

    for i in reversed(range(len(old_children))):
        if i not in matched_old:
            out.append(remove(path + [i]))

    moves = plan_moves([j for _, j in matched])
    if moves:
        out.append(reorder(path, moves))

    for j, child in enumerate(new_children):
        if j not in matched_new:
            out.append(create(path + [j], child))


def _key_of(node: VNode) -> Optional[str]:
    return node.key if isinstance(node, ElementNode) else None


def _identities(children: list[VNode]) -> list[Optional[tuple[str, object]]]:
    """Identity of each child for keyed matching.

    Keyed children are identified by key. Unkeyed children are identified by
    their ordinal among the unkeyed ones. A repeated identity is unmatchable
    (None), so its node is removed or created rather than guessed at.
    """
    seen: set[tuple[str, object]] = set()
    identities: list[Optional[tuple[str, object]]] = []
    ordinal = 0
    for child in children:
        key = _key_of(child)
        if key is None:
            ident: tuple[str, object] = ("#", ordinal)
            ordinal += 1
        else:
            ident = ("k", key)
        if ident in seen:
            identities.append(None)
        else:
            seen.add(ident)
            identities.append(ident)
    return identities


def plan_moves(order: list[int]) -> list[tuple[int, int]]:
    """
    Moves that sort `order` ascending, touching only items outside its LIS.

    `order[i]` is the target rank (any unique sortable value) of the item
    currently at index i. Each move `(src, dest)` takes the item at `src` and
    inserts it before the item currently at `dest` (appending when `dest`
    equals the length). Both indices refer to the list as left by the previous
    moves.
    """
    if len(order) < 2:
        return []
    stable = {order[i] for i in lis(order)}
    current = list(order)
    moves: list[tuple[int, int]] = []
    previous: Optional[int] = None
    for rank in sorted(order):
        if rank not in stable:
            src = current.index(rank)
            dest = 0 if previous is None else current.index(previous) + 1
            if src != dest:
                moves.append((src, dest))
                item = current.pop(src)
                current.insert(dest if dest < src else dest - 1, item)
        previous = rank
    return moves


def lis(seq: list[int]) -> list[int]:
    if not seq:
        return []
    # patience sorting style; store indices of seq
    tails: list[int] = []  # indices in seq forming tails
    prev: list[int] = [-1] * len(seq)
    for i, v in enumerate(seq):
        # binary search in tails on values of seq
        lo, hi = 0, len(tails)
        while lo < hi:
            mid = (lo + hi) // 2
            if seq[tails[mid]] < v:
                lo = mid + 1
            else:
                hi = mid
        if lo > 0:
            prev[i] = tails[lo - 1]
        if lo == len(tails):
            tails.append(i)
        else:
            tails[lo] = i
    # reconstruct LIS as indices into seq
    lis_indices: list[int] = []
    k = tails[-1] if tails else -1
    while k != -1:
        lis_indices.append(k)
        k = prev[k]
    lis_indices.reverse()
    return lis_indices


# ----------------------------------------------------------------------------
# Post-processing
# ----------------------------------------------------------------------------


def optimize_patches(patches: Sequence[Patch]) -> list[Patch]:
    """
    Drop patches that cannot have an effect.

    - attribute updates with nothing to set or remove
    - reorders without moves
    - anything addressed below a node removed or replaced earlier in the list
    """
    optimized: list[Patch] = []
    gone: list[list[int]] = []
    for patch in patches:
        kind = patch["type"]
        if kind == "update_attrs" and not (
            patch["data"]["set"] or patch["data"]["remove"]
        ):
            continue
        if kind == "reorder" and not patch["data"]["moves"]:
            continue
        if any(_is_descendant(patch["path"], p) for p in gone):
            continue
        if kind in ("remove", "replace"):
            gone.append(patch["path"])
        optimized.append(patch)
    return optimized


def _is_descendant(path: list[int], ancestor: list[int]) -> bool:
    return len(path) > len(ancestor) and path[: len(ancestor)] == ancestor


def patch_stats(patches: Sequence[Patch]) -> dict:
    """Total count, per-type counts and compact encoded size in bytes."""
    from deltaui.codec import dumps

    types: dict[str, int] = {}
    for patch in patches:
        types[patch["type"]] = types.get(patch["type"], 0) + 1
    return {
        "total": len(patches),
        "types": types,
        "size": len(dumps(patches, minify=True).encode("utf-8")),
    }
