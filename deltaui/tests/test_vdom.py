from deltaui.vdom import (
    CommentNode,
    ElementNode,
    TextNode,
    element,
    fingerprint,
    is_meaningful,
    meaningful_children,
    resolve,
    skeleton,
    strip_insignificant,
    text,
    to_html,
)


class TestNodes:
    def test_key_comes_from_delta_key_first(self):
        node = element("li", {"key": "b", "delta:key": "a"})
        assert node.key == "a"

    def test_key_falls_back_to_key_attribute(self):
        node = element("li", {"key": "b"})
        assert node.key == "b"
        # Still an ordinary attribute too
        assert node.attributes == {"key": "b"}

    def test_explicit_key_wins(self):
        node = element("li", {"key": "b"}, key="z")
        assert node.key == "z"

    def test_void_elements_have_no_children(self):
        node = ElementNode("br", children=[TextNode("x")])
        assert node.children == []

    def test_string_children_become_text(self):
        node = element("p", children=["hello", element("b", children=["x"])])
        assert node.children[0] == TextNode("hello")
        assert isinstance(node.children[1], ElementNode)


class TestSignificance:
    def test_whitespace_text_is_insignificant(self):
        assert not is_meaningful(TextNode("  \n\t"))
        assert is_meaningful(TextNode(" a "))
        assert is_meaningful(CommentNode(" "))
        assert is_meaningful(element("span"))

    def test_meaningful_children_skip_whitespace(self):
        node = element("div", children=["\n  ", element("a"), "  ", element("b")])
        assert [c.tag for c in meaningful_children(node)] == ["a", "b"]

    def test_resolve_uses_meaningful_indices(self):
        target = text("deep")
        node = element(
            "div", children=["\n", element("a"), " ", element("b", children=[target])]
        )
        assert resolve(node, [1, 0]) is target
        assert resolve(node, []) is node
        assert resolve(node, [2]) is None
        assert resolve(node, [0, 0]) is None

    def test_strip_insignificant(self):
        node = element("div", children=[" ", element("p", children=["\n", "x"]), " "])
        stripped = strip_insignificant(node)
        assert stripped == element("div", children=[element("p", children=["x"])])


class TestSerialization:
    def test_to_html_escapes(self):
        node = element(
            "p", {"title": 'say "hi"'}, ["a < b", element("br"), CommentNode(" c ")]
        )
        assert to_html(node) == '<p title="say &quot;hi&quot;">a &lt; b<br><!-- c --></p>'

    def test_skeleton_ignores_text_and_attribute_values(self):
        a = element("ul", {"class": "x"}, [element("li", {"key": "1"}, ["one"])])
        b = element("ul", {"class": "y"}, [element("li", {"key": "1"}, ["uno"])])
        assert skeleton(a) == skeleton(b) == "ul(li@1(#t))"
        assert fingerprint(a) == fingerprint(b)

    def test_fingerprint_changes_with_shape(self):
        a = element("ul", children=[element("li")])
        b = element("ul", children=[element("li"), element("li")])
        assert fingerprint(a) != fingerprint(b)
        assert len(fingerprint(a)) == 40
