import json

import pytest

from deltaui.codec import (
    WIRE_VERSION,
    PatchDecodeError,
    decode,
    decode_node,
    dumps,
    encode,
    encode_envelope,
    encode_node,
    loads,
)
from deltaui.diff import (
    create,
    remove,
    reorder,
    replace,
    update_attributes,
    update_text,
)
from deltaui.vdom import CommentNode, TextNode, element

NODE = element(
    "li",
    {"key": "a", "class": "item"},
    ["text", CommentNode("anchor"), element("input", {"value": "x"})],
)

ALL_PATCHES = [
    create([0, 2], NODE),
    remove([1]),
    replace([], element("div", children=["fresh"])),
    update_text([0, 0], "hello"),
    update_attributes([3], {"class": "b"}, ["disabled"]),
    reorder([2], [(2, 0), (0, 3)]),
]


class TestRoundTrip:
    @pytest.mark.parametrize("minify", [True, False])
    def test_all_patch_types(self, minify):
        assert decode(encode(ALL_PATCHES, minify)) == ALL_PATCHES

    @pytest.mark.parametrize("minify", [True, False])
    def test_through_json(self, minify):
        assert loads(dumps(ALL_PATCHES, minify)) == ALL_PATCHES

    def test_empty(self):
        assert decode(encode([])) == []
        assert decode(None) == []


class TestShapes:
    def test_compact_patch(self):
        wire = encode([update_attributes([0, 1], {"class": "b"}, ["x"])], minify=True)
        assert wire == [{"t": "a", "p": [0, 1], "d": {"s": {"class": "b"}, "r": ["x"]}}]

    def test_compact_reorder_uses_pairs(self):
        wire = encode([reorder([], [(2, 0)])], minify=True)
        assert wire == [{"t": "o", "p": [], "d": {"m": [[2, 0]]}}]

    def test_verbose_patch(self):
        wire = encode([update_text([1, 0], "C")], minify=False)
        assert wire == [{"type": "update_text", "path": [1, 0], "data": {"text": "C"}}]

    def test_compact_nodes(self):
        assert encode_node(TextNode("x")) == {"x": "x"}
        assert encode_node(CommentNode("c")) == {"m": "c"}
        assert encode_node(element("br")) == {"t": "br"}
        assert encode_node(element("li", {"key": "k"}, ["a"])) == {
            "t": "li",
            "a": {"key": "k"},
            "c": [{"x": "a"}],
            "k": "k",
        }

    def test_verbose_nodes(self):
        assert encode_node(element("p", children=["a"]), minify=False) == {
            "type": "element",
            "tag": "p",
            "attributes": {},
            "children": [{"type": "text", "text": "a"}],
        }

    def test_mixed_shapes_are_detected_per_patch(self):
        wire = encode(ALL_PATCHES[:3], minify=True) + encode(ALL_PATCHES[3:], minify=False)
        assert decode(wire) == ALL_PATCHES

    def test_empty_attribute_list_is_accepted(self):
        node = decode_node({"t": "div", "a": [], "c": []})
        assert node == element("div")

    def test_key_defaults_to_attribute(self):
        node = decode_node({"t": "li", "a": {"delta:key": "z"}})
        assert node.key == "z"


class TestEnvelope:
    def test_envelope(self):
        envelope = encode_envelope(ALL_PATCHES, minify=True)
        assert envelope["v"] == WIRE_VERSION
        assert envelope["m"] is True
        assert decode(envelope) == ALL_PATCHES
        assert decode(json.dumps(envelope)) == ALL_PATCHES

    def test_unknown_version(self):
        with pytest.raises(PatchDecodeError):
            decode({"v": 99, "p": []})


class TestErrors:
    @pytest.mark.parametrize(
        "wire",
        [
            "{not json",
            {"p": []},
            [{"t": "zz", "p": [], "d": {}}],
            [{"type": "remove", "path": ["0"]}],
            [{"type": "create", "path": [0], "data": {}}],
            [{"t": "o", "p": [], "d": {"m": [[1]]}}],
            [42],
            "42",
        ],
    )
    def test_invalid_wire(self, wire):
        with pytest.raises(PatchDecodeError):
            decode(wire)
