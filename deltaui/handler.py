"""
Server side of the request/response contract.

`RequestHandler` is transport agnostic: it takes a decoded request message and
returns an HTTP status with the response body. The FastAPI routes and the
Socket.IO events in `deltaui.app` both delegate to it.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Mapping, Optional

from deltaui.codec import WIRE_VERSION, encode
from deltaui.component import Component, resolve_component
from deltaui.config import DeltaConfig, load_config
from deltaui.errors import (
    ComponentError,
    Redirect,
    RequestError,
    ValidationError,
    error_payload,
    error_status,
    log_unexpected,
)
from deltaui.messages import REQUEST_TYPES, ComponentUpdate, ResponseMessage
from deltaui.renderer import Renderer, RenderedUpdate, Snapshot
from deltaui.signing import StateGuard

logger = logging.getLogger(__name__)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class RequestHandler:
    def __init__(
        self,
        config: Optional[DeltaConfig] = None,
        guard: Optional[StateGuard] = None,
    ):
        self.config = config if config is not None else load_config()
        self.guard = guard or StateGuard.from_config(self.config)
        self.renderer = Renderer(self.guard.signer)

    @property
    def debug(self) -> bool:
        return bool(self.config.get("debug", False))

    @property
    def minify(self) -> bool:
        return bool(self.config.get("minify_patches", True))

    async def handle(self, message: Any) -> tuple[int, dict[str, Any]]:
        """Process a `call` or `update` request and build the response body."""
        try:
            return 200, dict(await self._handle(message))
        except Redirect as e:
            return 200, {"s": True, "redirect": {"url": e.url, "spa": e.spa}}
        except _ValidationResponse as e:
            return error_status(e), {"s": False, **error_payload(e), "c": e.update}
        except (ComponentError, RequestError) as e:
            logger.debug("Request rejected: %s", e)
            return error_status(e), {"s": False, **error_payload(e, self.debug)}
        except Exception as e:
            log_unexpected(e, {"request_type": _field(message, "type")})
            return 500, {"s": False, **error_payload(e, self.debug)}

    async def handle_mount(self, message: Any) -> tuple[int, dict[str, Any]]:
        """Mount a component from scratch and return its initial render."""
        try:
            if not isinstance(message, Mapping):
                raise RequestError("Invalid request")
            name = message.get("componentClass")
            if not name or not isinstance(name, str):
                raise RequestError("Invalid component class")
            params = message.get("params") or {}
            if not isinstance(params, Mapping):
                raise RequestError("Mount params must be an object")

            component = resolve_component(name)()
            await _maybe_await(component.mount(**params))
            return 200, {"s": True, **self.renderer.render_initial(component)}
        except Redirect as e:
            return 200, {"s": True, "redirect": {"url": e.url, "spa": e.spa}}
        except (ComponentError, RequestError) as e:
            return error_status(e), {"s": False, **error_payload(e, self.debug)}
        except Exception as e:
            log_unexpected(e, {"request_type": "mount"})
            return 500, {"s": False, **error_payload(e, self.debug)}

    async def _handle(self, message: Any) -> ResponseMessage:
        if not isinstance(message, Mapping):
            raise RequestError("Invalid request")
        request_type = message.get("type")
        component_id = message.get("componentId")
        state = message.get("state")
        if request_type not in REQUEST_TYPES:
            raise RequestError("Invalid request type")
        if not component_id or not isinstance(component_id, str):
            raise RequestError("Invalid request")
        if not isinstance(state, Mapping):
            raise RequestError("Invalid request")

        # Nothing from the request is used before the signature is checked
        self.guard.check(request_type, state, component_id, message.get("signature"))

        name = message.get("componentClass")
        if not name or not isinstance(name, str):
            raise RequestError("Component class not found", 404)
        component_class = resolve_component(name)

        component = await self._hydrate(component_class, component_id, state, message)
        snapshot = self.renderer.snapshot(component)

        try:
            if request_type == "call":
                method = message.get("method")
                if not method or not isinstance(method, str):
                    raise RequestError("Method not specified")
                params = message.get("params") or []
                if not isinstance(params, list):
                    raise RequestError("Method params must be a list")
                await _maybe_await(component.call_method(method, params))
            else:
                prop = message.get("property")
                if not prop or not isinstance(prop, str):
                    raise RequestError("Property not specified")
                await _maybe_await(component.update_property(prop, message.get("value")))
        except ValidationError as e:
            raise _ValidationResponse(
                e, await self._render_errors(component_class, message, snapshot, e)
            ) from e

        update = self.renderer.render_update(
            component, snapshot, message.get("fingerprint")
        )
        return self._response(update)

    async def _hydrate(
        self,
        component_class: type[Component],
        component_id: str,
        state: Mapping[str, Any],
        message: Mapping[str, Any],
    ) -> Component:
        component = component_class(id=component_id)
        component.restore_state(dict(state))
        errors = message.get("errors")
        if isinstance(errors, Mapping):
            component.errors = {str(k): list(v) for k, v in errors.items()}
        await _maybe_await(component.hydrate())
        return component

    async def _render_errors(
        self,
        component_class: type[Component],
        message: Mapping[str, Any],
        snapshot: Snapshot,
        error: ValidationError,
    ) -> ComponentUpdate:
        """Render the request's state with the error bag, leaving state untouched."""
        component = await self._hydrate(
            component_class, message["componentId"], message["state"], message
        )
        component.errors = {k: list(v) for k, v in error.errors.items()}
        update = self.renderer.render_update(
            component, snapshot, message.get("fingerprint")
        )
        return self._component_update(update)

    def _component_update(self, update: RenderedUpdate) -> ComponentUpdate:
        body: ComponentUpdate = {
            "v": WIRE_VERSION,
            "p": encode(update.patches, self.minify),
            "st": update.state,
            "f": update.fingerprint,
            "sig": update.signature,
        }
        if update.errors:
            body["e"] = update.errors
        if update.query_string:
            body["q"] = update.query_string
        return body

    def _response(self, update: RenderedUpdate) -> ResponseMessage:
        response: ResponseMessage = {"s": True, "c": self._component_update(update)}
        if update.events:
            response["events"] = update.events  # type: ignore[typeddict-item]
        if update.browser_events:
            response["browserEvents"] = update.browser_events  # type: ignore[typeddict-item]
        return response


class _ValidationResponse(ValidationError):
    """A validation failure that carries the re-rendered error UI."""

    def __init__(self, error: ValidationError, update: ComponentUpdate):
        super().__init__(error.errors, str(error))
        self.update = update


def _field(message: Any, name: str) -> Any:
    return message.get(name) if isinstance(message, Mapping) else None
