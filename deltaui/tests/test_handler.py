import logging

import pytest

from deltaui.codec import WIRE_VERSION, decode
from deltaui.component import qualified_name
from deltaui.config import load_config
from deltaui.diff import is_full_replacement, update_text
from deltaui.dom import build, outer_html, parse_live
from deltaui.handler import RequestHandler
from deltaui.parser import parse
from deltaui.patch import apply_patches
from deltaui.tests.components import (
    Broken,
    ContactForm,
    Counter,
    Notifications,
    Profile,
    Search,
    Wizard,
)


@pytest.fixture
def handler():
    return RequestHandler()


async def mount(handler, component, **params):
    status, body = await handler.handle_mount(
        {"componentClass": qualified_name(component), "params": params}
    )
    assert status == 200, body
    return body


def call(initial, method, *params, **extra):
    return {
        "type": "call",
        "componentId": initial["id"],
        "componentClass": initial["componentClass"],
        "method": method,
        "params": list(params),
        "state": dict(initial["state"]),
        "fingerprint": initial["fingerprint"],
        "signature": initial["signature"],
        **extra,
    }


def update(initial, prop, value, **extra):
    return {
        "type": "update",
        "componentId": initial["id"],
        "componentClass": initial["componentClass"],
        "property": prop,
        "value": value,
        "state": dict(initial["state"]),
        "fingerprint": initial["fingerprint"],
        "signature": initial["signature"],
        **extra,
    }


class TestMount:
    @pytest.mark.asyncio
    async def test_initial_render(self, handler):
        initial = await mount(handler, Counter, count=5)
        assert initial["s"] is True
        assert initial["id"].startswith("delta-")
        assert initial["state"] == {"count": 5, "label": "Clicks"}
        assert "<span>5</span>" in initial["html"]
        assert handler.guard.signer.verify(
            initial["state"], initial["id"], initial["signature"]
        )

    @pytest.mark.asyncio
    async def test_listeners_are_announced(self, handler):
        initial = await mount(handler, Notifications)
        assert initial["listeners"] == {"contact-sent": "notify"}

    @pytest.mark.asyncio
    async def test_hidden_state_is_not_sent(self, handler):
        initial = await mount(handler, Profile)
        assert initial["state"] == {"nickname": "anon"}

    @pytest.mark.asyncio
    async def test_unknown_component(self, handler):
        status, body = await handler.handle_mount({"componentClass": "Missing"})
        assert status == 404
        assert body["s"] is False


class TestCall:
    @pytest.mark.asyncio
    async def test_increment_sends_one_text_patch(self, handler):
        initial = await mount(handler, Counter)
        status, body = await handler.handle(call(initial, "increment"))
        assert status == 200
        assert body["s"] is True
        c = body["c"]
        assert c["v"] == WIRE_VERSION
        assert decode(c["p"]) == [update_text([1, 0], "1")]
        assert c["st"] == {"count": 1, "label": "Clicks"}
        assert handler.guard.signer.verify(c["st"], initial["id"], c["sig"])
        assert "e" not in c

    @pytest.mark.asyncio
    async def test_async_methods_are_awaited(self, handler):
        initial = await mount(handler, Counter)
        _, body = await handler.handle(call(initial, "increment_later"))
        assert body["c"]["st"]["count"] == 1

    @pytest.mark.asyncio
    async def test_verbose_patches(self):
        handler = RequestHandler(load_config(minify_patches=False))
        initial = await mount(handler, Counter)
        _, body = await handler.handle(call(initial, "increment"))
        assert body["c"]["p"][0]["type"] == "update_text"

    @pytest.mark.asyncio
    async def test_nothing_changed(self, handler):
        initial = await mount(handler, Counter)
        _, body = await handler.handle(call(initial, "increment", 0))
        assert body["c"]["p"] == []

    @pytest.mark.asyncio
    async def test_browser_events(self, handler):
        initial = await mount(handler, Counter)
        _, body = await handler.handle(call(initial, "celebrate"))
        assert body["browserEvents"] == [{"event": "confetti", "data": {"count": 0}}]
        assert "events" not in body

    @pytest.mark.asyncio
    async def test_unknown_method(self, handler):
        initial = await mount(handler, Counter)
        status, body = await handler.handle(call(initial, "render"))
        assert status == 400
        assert body == {"s": False, "type": "method_error", "error": "Method [render] cannot be called."}

    @pytest.mark.asyncio
    async def test_redirect(self, handler):
        initial = await mount(handler, Wizard)
        status, body = await handler.handle(call(initial, "finish"))
        assert status == 200
        assert body == {"s": True, "redirect": {"url": "/done", "spa": False}}

    @pytest.mark.asyncio
    async def test_fingerprint_mismatch_replaces_everything(self, handler):
        initial = await mount(handler, Counter)
        _, body = await handler.handle(call(initial, "increment", fingerprint="stale"))
        patches = decode(body["c"]["p"])
        assert is_full_replacement(patches)
        assert patches[0]["data"]["node"] == parse(Counter(id="x").render().replace(">0<", ">1<"))


class TestUpdate:
    @pytest.mark.asyncio
    async def test_signed_update(self, handler):
        initial = await mount(handler, Counter)
        status, body = await handler.handle(update(initial, "label", "Taps"))
        assert status == 200
        assert decode(body["c"]["p"]) == [update_text([0, 0], "Taps")]
        assert body["c"]["st"] == {"count": 0, "label": "Taps"}

    @pytest.mark.asyncio
    async def test_value_is_coerced(self, handler):
        initial = await mount(handler, Counter)
        _, body = await handler.handle(update(initial, "count", "7"))
        assert body["c"]["st"]["count"] == 7

    @pytest.mark.asyncio
    async def test_tampered_state_is_rejected(self, handler):
        initial = await mount(handler, Counter)
        message = update(initial, "label", "Taps")
        message["state"]["count"] = 1000
        status, body = await handler.handle(message)
        assert status == 403
        assert body["type"] == "security_error"
        assert "c" not in body

    @pytest.mark.asyncio
    async def test_missing_signature(self, handler):
        initial = await mount(handler, Counter)
        status, body = await handler.handle(update(initial, "label", "x", signature=None))
        assert status == 403
        assert body["error"] == "Missing state signature"

    @pytest.mark.asyncio
    async def test_unknown_property(self, handler):
        initial = await mount(handler, Counter)
        status, body = await handler.handle(update(initial, "nope", 1))
        assert status == 400
        assert body["type"] == "property_error"

    @pytest.mark.asyncio
    async def test_hidden_property(self, handler):
        initial = await mount(handler, Profile)
        status, body = await handler.handle(update(initial, "api_token", "x"))
        assert status == 400
        assert body["type"] == "property_error"

    @pytest.mark.asyncio
    async def test_query_string(self, handler):
        initial = await mount(handler, Search)
        _, body = await handler.handle(update(initial, "query", "shoes"))
        assert body["c"]["q"] == {"query": "shoes"}


class TestInvalidRequests:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        [
            None,
            [],
            {"type": "delete", "componentId": "x", "state": {}},
            {"type": "call", "state": {}},
            {"type": "call", "componentId": "x", "state": "nope"},
        ],
    )
    async def test_malformed(self, handler, message):
        status, body = await handler.handle(message)
        assert status == 400
        assert body["s"] is False

    @pytest.mark.asyncio
    async def test_unknown_component_class(self, handler):
        initial = await mount(handler, Counter)
        status, _ = await handler.handle(call(initial, "increment", componentClass="Gone"))
        assert status == 404

    @pytest.mark.asyncio
    async def test_method_params_must_be_a_list(self, handler):
        initial = await mount(handler, Counter)
        status, _ = await handler.handle(call(initial, "increment", params={"by": 2}))
        assert status == 400


class TestServerErrors:
    @pytest.mark.asyncio
    async def test_opaque_by_default(self, handler, caplog):
        initial = await mount(handler, Broken)
        with caplog.at_level(logging.ERROR, logger="deltaui.errors"):
            status, body = await handler.handle(call(initial, "explode"))
        assert status == 500
        assert body == {
            "s": False,
            "type": "server_error",
            "error": "An error occurred while processing your request.",
        }
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_details_in_debug_mode(self):
        handler = RequestHandler(load_config(debug=True))
        initial = await mount(handler, Broken)
        status, body = await handler.handle(call(initial, "explode"))
        assert status == 500
        assert body["type"] == "exception"
        assert body["error"] == "boom"
        assert body["details"]["exception"] == "RuntimeError"
        assert "explode" in body["details"]["stack"]


class TestForms:
    @pytest.mark.asyncio
    async def test_validation_renders_errors_through_patches(self, handler):
        initial = await mount(handler, ContactForm)
        status, body = await handler.handle(call(initial, "submit"))
        assert status == 422
        assert body["s"] is False
        assert body["type"] == "validation_error"
        assert set(body["errors"]) == {"name", "email"}

        c = body["c"]
        assert c["st"] == initial["state"]
        assert c["e"] == body["errors"]
        live = parse_live(initial["html"])
        result = apply_patches(live, decode(c["p"]))
        assert not result.diverged
        assert outer_html(live).count('class="error"') == 2

        expected = ContactForm(id=initial["id"])
        expected.errors = body["errors"]
        assert build(live) == parse(expected.render())

    @pytest.mark.asyncio
    async def test_errors_clear_on_the_next_successful_call(self, handler):
        initial = await mount(handler, ContactForm)
        _, failed = await handler.handle(call(initial, "submit"))

        state = {"name": "Al", "email": "al@example.com", "subscribed": False, "sent": False}
        message = call(
            initial,
            "submit",
            state=state,
            errors=failed["errors"],
            fingerprint=failed["c"]["f"],
        )
        status, body = await handler.handle(message)
        assert status == 200
        kinds = [p["type"] for p in decode(body["c"]["p"])]
        assert kinds.count("remove") == 2
        assert "create" in kinds
        assert "e" not in body["c"]
        assert body["events"] == [{"event": "contact-sent", "params": ["al@example.com"]}]

    @pytest.mark.asyncio
    async def test_strict_mode_accepts_typed_form_fields(self):
        handler = RequestHandler(load_config(verify_state="strict"))
        initial = await mount(handler, ContactForm)
        state = {"name": "Al", "email": "al@example.com", "subscribed": True, "sent": False}
        status, body = await handler.handle(call(initial, "submit", state=state))
        assert status == 200, body
        assert body["c"]["st"]["sent"] is True

    @pytest.mark.asyncio
    async def test_strict_mode_rejects_unsigned_structures(self):
        handler = RequestHandler(load_config(verify_state="strict"))
        initial = await mount(handler, Notifications)
        state = {"messages": ["forged"]}
        status, body = await handler.handle(call(initial, "notify", "x", state=state))
        assert status == 403
        assert body["type"] == "security_error"
