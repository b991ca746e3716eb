from typing import ClassVar, Optional

import pytest

from deltaui.component import (
    Component,
    max_length,
    min_length,
    qualified_name,
    registered_components,
    required,
    resolve_component,
)
from deltaui.errors import MethodError, PropertyError, RequestError, ValidationError
from deltaui.tests.components import ContactForm, Counter, Notifications, Profile


class Base(Component):
    title: str = "untitled"
    _private: int = 0
    shared: ClassVar[int] = 3

    def rename(self, title):
        self.title = title


class Child(Base):
    title: str = "child"
    score: float = 0.0
    note: Optional[str] = None

    def bump(self):
        self.score += 1

    def _helper(self):
        pass


class TestComponentSpec:
    def test_properties_follow_annotations(self):
        spec = Child.spec()
        assert list(spec.properties) == ["title", "score", "note"]
        assert spec.properties["title"] == "child"

    def test_methods_exclude_lifecycle_and_private(self):
        spec = Child.spec()
        assert spec.methods == frozenset(["rename", "bump"])
        for name in ("mount", "render", "validate", "hydrate", "_helper"):
            assert name not in spec.methods

    def test_hidden_properties(self):
        spec = Profile.spec()
        assert spec.hidden == frozenset(["api_token"])
        assert spec.public == ["nickname"]
        profile = Profile()
        assert profile.get_state() == {"nickname": "anon"}
        assert profile.get_state(include_hidden=True)["api_token"] == "s3cret"

    def test_listeners(self):
        assert Notifications.spec().listeners == {"contact-sent": "notify"}

    def test_defaults_are_copied_per_instance(self):
        a, b = Notifications(), Notifications()
        a.messages.append("x")
        assert b.messages == []

    def test_ids(self):
        assert Counter().id.startswith("delta-")
        assert Counter(id="fixed").id == "fixed"


class TestRegistry:
    def test_resolve_by_full_and_short_name(self):
        assert resolve_component(qualified_name(Counter)) is Counter
        assert resolve_component("Counter") is Counter
        assert qualified_name(Counter) in registered_components()

    def test_unknown_component(self):
        with pytest.raises(RequestError) as info:
            resolve_component("Nope")
        assert info.value.status == 404


class TestDispatch:
    def test_update_property_coerces(self):
        child = Child()
        child.update_property("score", "2.5")
        assert child.score == 2.5
        child.update_property("title", None)
        assert child.title == ""
        child.update_property("note", None)
        assert child.note is None

    def test_bool_coercion(self):
        form = ContactForm()
        form.update_property("subscribed", "on")
        assert form.subscribed is True
        form.update_property("subscribed", "false")
        assert form.subscribed is False

    def test_invalid_number(self):
        with pytest.raises(PropertyError):
            Counter().update_property("count", "many")

    def test_unknown_and_hidden_properties(self):
        with pytest.raises(PropertyError, match="does not exist"):
            Counter().update_property("nope", 1)
        with pytest.raises(PropertyError, match="protected"):
            Profile().update_property("api_token", "x")

    def test_call_method(self):
        counter = Counter()
        counter.call_method("increment", [2])
        assert counter.count == 2

    @pytest.mark.parametrize("method", ["nope", "render", "_helper", "mount", "count"])
    def test_uncallable_methods(self, method):
        with pytest.raises(MethodError):
            Child().call_method(method, [])

    def test_restore_state_skips_hidden_and_unknown(self):
        profile = Profile()
        profile.restore_state({"nickname": "bob", "api_token": "stolen", "extra": 1})
        assert profile.nickname == "bob"
        assert profile.api_token == "s3cret"
        assert not hasattr(profile, "extra")

    def test_hooks_run_around_updates(self):
        seen = []

        class Hooked(Component):
            value: int = 0

            def updating(self, prop, value):
                seen.append(("updating", prop, value))

            def updated(self, prop):
                seen.append(("updated", prop))

        Hooked().update_property("value", "4")
        assert seen == [("updating", "value", 4), ("updated", "value")]


class TestValidation:
    def test_validate_collects_errors(self):
        form = ContactForm()
        form.email = "not-an-email"
        with pytest.raises(ValidationError) as info:
            form.validate()
        assert info.value.errors == {
            "name": ["This field is required."],
            "email": ["Must be a valid email address."],
        }
        assert form.errors == info.value.errors

    def test_validate_returns_values(self):
        form = ContactForm()
        form.name, form.email = "Al", "al@example.com"
        assert form.validate() == {"name": "Al", "email": "al@example.com"}
        assert form.errors == {}

    def test_validate_only(self):
        form = ContactForm()
        form.add_error("email", "stale")
        with pytest.raises(ValidationError):
            form.validate_only("name")
        assert form.errors == {"email": ["stale"], "name": ["This field is required."]}

    def test_length_rules(self):
        assert min_length(3)("ab") == "Must be at least 3 characters."
        assert min_length(3)("abc") is None
        assert max_length(2)("abc") is not None
        assert required()([]) is not None
        assert required()("x") is None


class TestRender:
    def test_template_escapes_state(self):
        counter = Counter()
        counter.label = "<b>"
        assert "&lt;b&gt;" in counter.render()

    def test_errors_are_available_to_templates(self):
        form = ContactForm()
        form.add_error("name", "Required!")
        html = form.render()
        assert '<span class="error">Required!</span>' in html

    def test_missing_template(self):
        class Bare(Component):
            pass

        with pytest.raises(NotImplementedError):
            Bare().render()

    def test_events_are_taken_once(self):
        counter = Counter()
        counter.celebrate()
        counter.dispatch("saved", 1)
        events, browser = counter.take_events()
        assert events == [{"event": "saved", "params": [1]}]
        assert browser == [{"event": "confetti", "data": {"count": 0}}]
        assert counter.take_events() == ([], [])
