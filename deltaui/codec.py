"""
Wire encoding for patch lists.

Two shapes carry the same information:

verbose::

    {"type": "update_attrs", "path": [0, 1], "data": {"set": {...}, "remove": [...]}}
    {"type": "element", "tag": "li", "attributes": {...}, "children": [...], "key": "a"}

compact::

    {"t": "a", "p": [0, 1], "d": {"s": {...}, "r": [...]}}
    {"t": "li", "a": {...}, "c": [...], "k": "a"}

`decode` detects the shape of every patch and node independently, so
payloads produced by older or newer engines are accepted. New producers should
prefer `encode_envelope`, which wraps the list with an explicit version.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence, cast

from deltaui.diff import (
    Patch,
    PatchType,
    create,
    remove,
    reorder,
    replace,
    update_attributes,
    update_text,
)
from deltaui.vdom import CommentNode, ElementNode, TextNode, VNode

WIRE_VERSION = 1

_COMPACT_TYPES: dict[PatchType, str] = {
    "create": "c",
    "remove": "r",
    "replace": "R",
    "update_text": "t",
    "update_attrs": "a",
    "reorder": "o",
}
_VERBOSE_TYPES: dict[str, PatchType] = {v: k for k, v in _COMPACT_TYPES.items()}


class PatchDecodeError(ValueError):
    pass


# ----------------------------------------------------------------------------
# Nodes
# ----------------------------------------------------------------------------


def encode_node(node: VNode, minify: bool = True) -> dict[str, Any]:
    if isinstance(node, TextNode):
        return {"x": node.content} if minify else {"type": "text", "text": node.content}
    if isinstance(node, CommentNode):
        return (
            {"m": node.content} if minify else {"type": "comment", "text": node.content}
        )

    if not minify:
        data: dict[str, Any] = {
            "type": "element",
            "tag": node.tag,
            "attributes": dict(node.attributes),
            "children": [encode_node(c, False) for c in node.children],
        }
        if node.key is not None:
            data["key"] = node.key
        return data

    data = {"t": node.tag}
    if node.attributes:
        data["a"] = dict(node.attributes)
    if node.children:
        data["c"] = [encode_node(c, True) for c in node.children]
    if node.key is not None:
        data["k"] = node.key
    return data


def decode_node(data: Any) -> VNode:
    if not isinstance(data, dict):
        raise PatchDecodeError(f"Expected a node object, got {type(data).__name__}")

    # Compact shapes
    if "x" in data:
        return TextNode(str(data["x"]))
    if "m" in data:
        return CommentNode(str(data["m"]))
    if "t" in data and "type" not in data:
        return ElementNode(
            tag=str(data["t"]),
            attributes=_decode_attributes(data.get("a")),
            children=[decode_node(c) for c in data.get("c") or []],
            key=data.get("k"),
        )

    kind = data.get("type")
    if kind == "text":
        return TextNode(str(data.get("text", "")))
    if kind == "comment":
        return CommentNode(str(data.get("text", "")))
    if kind == "element":
        return ElementNode(
            tag=str(data["tag"]),
            attributes=_decode_attributes(data.get("attributes")),
            children=[decode_node(c) for c in data.get("children") or []],
            key=data.get("key"),
        )
    raise PatchDecodeError(f"Unknown node shape: {sorted(data)}")


def _decode_attributes(value: Any) -> dict[str, str]:
    # PHP-style encoders emit [] for an empty map
    if not value:
        return {}
    if not isinstance(value, dict):
        raise PatchDecodeError("Attributes must be an object")
    return {str(k): str(v) for k, v in value.items()}


# ----------------------------------------------------------------------------
# Patches
# ----------------------------------------------------------------------------


def encode_patch(patch: Patch, minify: bool = True) -> dict[str, Any]:
    kind = patch["type"]
    data = cast(dict[str, Any], patch["data"])
    if kind in ("create", "replace"):
        payload: dict[str, Any] = {
            ("n" if minify else "node"): encode_node(data["node"], minify)
        }
    elif kind == "update_text":
        payload = {("x" if minify else "text"): data["text"]}
    elif kind == "update_attrs":
        if minify:
            payload = {"s": dict(data["set"]), "r": list(data["remove"])}
        else:
            payload = {"set": dict(data["set"]), "remove": list(data["remove"])}
    elif kind == "reorder":
        if minify:
            payload = {"m": [[m["from"], m["to"]] for m in data["moves"]]}
        else:
            payload = {"moves": [{"from": m["from"], "to": m["to"]} for m in data["moves"]]}
    else:
        payload = {}

    if minify:
        return {"t": _COMPACT_TYPES[kind], "p": list(patch["path"]), "d": payload}
    return {"type": kind, "path": list(patch["path"]), "data": payload}


def decode_patch(data: Any) -> Patch:
    if not isinstance(data, dict):
        raise PatchDecodeError(f"Expected a patch object, got {type(data).__name__}")

    if "type" in data:
        kind = data["type"]
        path = data.get("path")
        payload = data.get("data")
    elif "t" in data:
        kind = _VERBOSE_TYPES.get(data["t"], data["t"])
        path = data.get("p")
        payload = data.get("d")
    else:
        raise PatchDecodeError(f"Patch without a type: {sorted(data)}")

    path = _decode_path(path)
    payload = payload or {}
    if not isinstance(payload, dict):
        raise PatchDecodeError("Patch data must be an object")

    if kind in ("create", "replace"):
        node = decode_node(_pick(payload, "n", "node"))
        return create(path, node) if kind == "create" else replace(path, node)
    if kind == "remove":
        return remove(path)
    if kind == "update_text":
        return update_text(path, str(_pick(payload, "x", "text")))
    if kind == "update_attrs":
        to_set = _decode_attributes(_pick(payload, "s", "set", default={}))
        to_remove = _pick(payload, "r", "remove", default=[]) or []
        return update_attributes(path, to_set, [str(name) for name in to_remove])
    if kind == "reorder":
        moves = _pick(payload, "m", "moves", default=[]) or []
        return reorder(path, [_decode_move(m) for m in moves])
    raise PatchDecodeError(f"Unknown patch type: {kind!r}")


def _decode_path(path: Any) -> list[int]:
    if path is None:
        return []
    if not isinstance(path, list) or not all(
        isinstance(i, int) and not isinstance(i, bool) for i in path
    ):
        raise PatchDecodeError(f"Invalid patch path: {path!r}")
    return path


def _decode_move(move: Any) -> tuple[int, int]:
    if isinstance(move, dict):
        return int(move["from"]), int(move["to"])
    if isinstance(move, (list, tuple)) and len(move) == 2:
        return int(move[0]), int(move[1])
    raise PatchDecodeError(f"Invalid move: {move!r}")


_MISSING = object()


def _pick(payload: dict[str, Any], short: str, long: str, default: Any = _MISSING) -> Any:
    if short in payload:
        return payload[short]
    if long in payload:
        return payload[long]
    if default is _MISSING:
        raise PatchDecodeError(f"Missing patch field {long!r}")
    return default


# ----------------------------------------------------------------------------
# Lists and envelopes
# ----------------------------------------------------------------------------


def encode(patches: Sequence[Patch], minify: bool = True) -> list[dict[str, Any]]:
    return [encode_patch(p, minify) for p in patches]


def decode(wire: Any) -> list[Patch]:
    """Decode a patch list in either shape, bare or inside a versioned envelope."""
    if isinstance(wire, (str, bytes)):
        try:
            wire = json.loads(wire)
        except json.JSONDecodeError as e:
            raise PatchDecodeError(f"Invalid JSON: {e}") from e
    if wire is None:
        return []
    if isinstance(wire, dict):
        version = wire.get("v")
        if version != WIRE_VERSION:
            raise PatchDecodeError(f"Unsupported wire version: {version!r}")
        wire = wire.get("p") or []
    if not isinstance(wire, list):
        raise PatchDecodeError("Patch list must be an array")
    return [decode_patch(p) for p in wire]


def encode_envelope(patches: Sequence[Patch], minify: bool = True) -> dict[str, Any]:
    return {"v": WIRE_VERSION, "m": minify, "p": encode(patches, minify)}


def dumps(patches: Sequence[Patch], minify: bool = True, indent: Optional[int] = None) -> str:
    separators = (",", ":") if minify and indent is None else None
    return json.dumps(
        encode(patches, minify),
        ensure_ascii=False,
        separators=separators,
        indent=indent,
    )


def loads(text: str | bytes) -> list[Patch]:
    return decode(text)
