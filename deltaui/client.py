"""
Client runtime: live component instances and the request coordinator.

Every request for an instance bumps its sequence counter and supersedes the
previous pending request. A response is applied only while its sequence is
still the instance's latest, so responses land in "most recently issued wins"
order whatever order the network delivers them in.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Optional, Protocol

import httpx

from deltaui.codec import WIRE_VERSION, PatchDecodeError, decode
from deltaui.dom import LiveNode, parse_live
from deltaui.errors import TransportError
from deltaui.messages import ErrorPayload, InitialRender
from deltaui.patch import ApplyResult, apply_patches

logger = logging.getLogger(__name__)

RequestKind = Literal["call", "update"]
OutcomeStatus = Literal["applied", "stale", "validation", "error", "redirect"]


class Transport(Protocol):
    async def send(self, message: dict[str, Any]) -> dict[str, Any]: ...

    async def mount(self, message: dict[str, Any]) -> dict[str, Any]: ...


# ----------------------------------------------------------------------------
# Instances
# ----------------------------------------------------------------------------


@dataclass
class PendingRequest:
    component_id: str
    sequence: int
    kind: RequestKind
    task: "asyncio.Task[dict[str, Any]]"
    prop: Optional[str] = None


@dataclass
class ClientInstance:
    id: str
    component_class: str
    root: Optional[LiveNode]
    # Working state, including local edits not yet confirmed by the server
    state: dict[str, Any]
    # Last state confirmed and signed by the server
    authoritative: dict[str, Any]
    fingerprint: str
    signature: str
    sequence: int = 0
    pending: Optional[PendingRequest] = None
    errors: dict[str, list[str]] = field(default_factory=dict)
    listeners: dict[str, str] = field(default_factory=dict)


class ClientContext:
    """Registry of the live component instances on one page.

    Instances are added when their initial render is hydrated and dropped
    with `remove` or, on full navigation, `clear`.
    """

    def __init__(self):
        self.instances: dict[str, ClientInstance] = {}

    def hydrate(
        self, initial: InitialRender | dict[str, Any], root: Optional[LiveNode] = None
    ) -> ClientInstance:
        if root is None:
            root = parse_live(initial["html"])
        state = dict(initial.get("state") or {})
        instance = ClientInstance(
            id=initial["id"],
            component_class=initial["componentClass"],
            root=root,
            state=dict(state),
            authoritative=state,
            fingerprint=initial.get("fingerprint", ""),
            signature=initial.get("signature", ""),
            listeners=dict(initial.get("listeners") or {}),
        )
        self.instances[instance.id] = instance
        logger.debug("Hydrated %s (%s)", instance.id, instance.component_class)
        return instance

    def get(self, component_id: str) -> Optional[ClientInstance]:
        return self.instances.get(component_id)

    def remove(self, component_id: str) -> Optional[ClientInstance]:
        instance = self.instances.pop(component_id, None)
        if instance is not None and instance.pending is not None:
            instance.pending.task.cancel()
            instance.pending = None
        return instance

    def clear(self) -> None:
        for component_id in list(self.instances):
            self.remove(component_id)

    def listening(self, event: str) -> list[tuple[ClientInstance, str]]:
        return [
            (instance, instance.listeners[event])
            for instance in self.instances.values()
            if event in instance.listeners
        ]

    def __len__(self) -> int:
        return len(self.instances)

    def __contains__(self, component_id: object) -> bool:
        return component_id in self.instances


# ----------------------------------------------------------------------------
# Coordinator
# ----------------------------------------------------------------------------


@dataclass
class Outcome:
    status: OutcomeStatus
    sequence: int
    response: Optional[dict[str, Any]] = None
    applied: Optional[ApplyResult] = None
    error: Optional[ErrorPayload] = None

    @property
    def ok(self) -> bool:
        return self.status in ("applied", "redirect")

    @property
    def stale(self) -> bool:
        return self.status == "stale"

    @property
    def diverged(self) -> bool:
        return self.applied is not None and self.applied.diverged


DivergenceCallback = Callable[[ClientInstance, ApplyResult], Any]
EventCallback = Callable[[ClientInstance, dict[str, Any]], Any]
ErrorCallback = Callable[[ClientInstance, ErrorPayload], Any]


class RequestCoordinator:
    def __init__(
        self,
        context: ClientContext,
        transport: Transport,
        *,
        on_divergence: Optional[DivergenceCallback] = None,
        on_event: Optional[EventCallback] = None,
        on_browser_event: Optional[EventCallback] = None,
        on_redirect: Optional[EventCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        dispatch_events: bool = True,
    ):
        self.context = context
        self.transport = transport
        self.on_divergence = on_divergence
        self.on_event = on_event
        self.on_browser_event = on_browser_event
        self.on_redirect = on_redirect
        self.on_error = on_error
        self.dispatch_events = dispatch_events
        self._background: set[asyncio.Task] = set()

    async def mount(
        self, component_class: str, params: Optional[dict[str, Any]] = None
    ) -> ClientInstance:
        body = await self.transport.mount(
            {"componentClass": component_class, "params": params or {}}
        )
        if not body.get("s"):
            raise TransportError(body.get("error") or "Failed to mount component")
        return self.context.hydrate(body)

    def update_local(self, instance: ClientInstance, prop: str, value: Any) -> None:
        """Record a local edit without contacting the server."""
        instance.state[prop] = value

    async def update(self, instance: ClientInstance, prop: str, value: Any) -> Outcome:
        instance.state[prop] = value
        # The signature covers the authoritative state, not local edits
        message = self._message(instance, "update", dict(instance.authoritative))
        message["property"] = prop
        message["value"] = value
        return await self._issue(instance, "update", message, prop)

    async def call(self, instance: ClientInstance, method: str, *params: Any) -> Outcome:
        message = self._message(instance, "call", dict(instance.state))
        message["method"] = method
        message["params"] = list(params)
        return await self._issue(instance, "call", message)

    async def dispatch(self, event: str, *params: Any) -> list[Outcome]:
        """Call the listener method of every instance listening for `event`."""
        listening = self.context.listening(event)
        return list(
            await asyncio.gather(
                *(self.call(instance, method, *params) for instance, method in listening)
            )
        )

    async def drain(self) -> None:
        """Wait for event dispatches started by earlier responses."""
        while self._background:
            running = list(self._background)
            await asyncio.gather(*running, return_exceptions=True)
            self._background.difference_update(running)

    def _message(
        self, instance: ClientInstance, kind: RequestKind, state: dict[str, Any]
    ) -> dict[str, Any]:
        message: dict[str, Any] = {
            "type": kind,
            "componentId": instance.id,
            "componentClass": instance.component_class,
            "state": state,
            "fingerprint": instance.fingerprint,
            "signature": instance.signature,
        }
        if instance.errors:
            message["errors"] = instance.errors
        return message

    async def _issue(
        self,
        instance: ClientInstance,
        kind: RequestKind,
        message: dict[str, Any],
        prop: Optional[str] = None,
    ) -> Outcome:
        instance.sequence += 1
        sequence = instance.sequence
        previous = instance.pending
        if previous is not None and not previous.task.done():
            logger.debug(
                "Request %d for %s superseded by %d",
                previous.sequence,
                instance.id,
                sequence,
            )
            previous.task.cancel()

        task = asyncio.ensure_future(self.transport.send(message))
        instance.pending = PendingRequest(instance.id, sequence, kind, task, prop)
        try:
            body = await task
        except asyncio.CancelledError:
            removed = self.context.get(instance.id) is not instance
            if task.cancelled() and (sequence < instance.sequence or removed):
                logger.debug("Request %d for %s cancelled", sequence, instance.id)
                return Outcome("stale", sequence)
            raise
        except (httpx.HTTPError, TransportError):
            if sequence < instance.sequence:
                return Outcome("stale", sequence)
            raise
        finally:
            if instance.pending is not None and instance.pending.sequence == sequence:
                instance.pending = None

        if sequence < instance.sequence:
            logger.debug(
                "Discarding stale response %d for %s (current %d)",
                sequence,
                instance.id,
                instance.sequence,
            )
            return Outcome("stale", sequence, response=body)
        return self._apply(instance, kind, prop, body, sequence)

    def _apply(
        self,
        instance: ClientInstance,
        kind: RequestKind,
        prop: Optional[str],
        body: dict[str, Any],
        sequence: int,
    ) -> Outcome:
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected response body: {body!r}")

        if "redirect" in body:
            if self.on_redirect is not None:
                self.on_redirect(instance, body["redirect"])
            return Outcome("redirect", sequence, response=body)

        if not body.get("s"):
            error: ErrorPayload = {
                "type": body.get("type", "server_error"),
                "error": body.get("error", ""),
            }
            if "errors" in body:
                error["errors"] = body["errors"]
            if "details" in body:
                error["details"] = body["details"]

            if error["type"] == "validation_error":
                # Draw the error UI, keep state and signature as they are
                instance.errors = dict(error.get("errors") or {})
                applied = None
                update = body.get("c")
                if update:
                    applied = self._patch(instance, update)
                    instance.fingerprint = update.get("f", instance.fingerprint)
                return Outcome(
                    "validation", sequence, response=body, applied=applied, error=error
                )

            logger.debug(
                "Request %d for %s failed: %s", sequence, instance.id, error["error"]
            )
            if self.on_error is not None:
                self.on_error(instance, error)
            return Outcome("error", sequence, response=body, error=error)

        update = body.get("c") or {}
        applied = self._patch(instance, update)
        st = dict(update.get("st") or {})
        if kind == "update":
            previous = instance.authoritative
            unconfirmed = {
                name: value
                for name, value in instance.state.items()
                if name != prop and previous.get(name) != value
            }
            instance.authoritative = st
            instance.state = {**st, **unconfirmed}
        else:
            instance.authoritative = st
            instance.state = dict(st)
        instance.fingerprint = update.get("f", instance.fingerprint)
        instance.signature = update.get("sig", instance.signature)
        instance.errors = dict(update.get("e") or {})

        for event in body.get("browserEvents") or []:
            if self.on_browser_event is not None:
                self.on_browser_event(instance, event)
        for event in body.get("events") or []:
            if self.on_event is not None:
                self.on_event(instance, event)
            if self.dispatch_events:
                self._spawn(self.dispatch(event["event"], *event.get("params", [])))

        return Outcome("applied", sequence, response=body, applied=applied)

    def _patch(self, instance: ClientInstance, update: dict[str, Any]) -> ApplyResult:
        version = update.get("v", WIRE_VERSION)
        if version != WIRE_VERSION:
            raise PatchDecodeError(f"Unsupported wire version: {version!r}")
        patches = decode(update.get("p"))
        if instance.root is None:
            result = ApplyResult(root=None, skipped=list(patches))
        else:
            result = apply_patches(instance.root, patches)
            instance.root = result.root
        if result.diverged:
            logger.warning(
                "%d of %d patches did not apply to %s",
                len(result.skipped),
                len(patches),
                instance.id,
            )
            if self.on_divergence is not None:
                self.on_divergence(instance, result)
        return result

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Event dispatch failed: %s", exc, exc_info=exc)


# ----------------------------------------------------------------------------
# Transports
# ----------------------------------------------------------------------------


class HttpTransport:
    """Posts requests to the `/update` and `/mount` routes of a deltaui app."""

    def __init__(
        self,
        base_url: str,
        route_prefix: str = "/_delta",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.route_prefix = route_prefix
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=False,
            )
        return self._client

    async def send(self, message: dict[str, Any]) -> dict[str, Any]:
        return await self._post("/update", message)

    async def mount(self, message: dict[str, Any]) -> dict[str, Any]:
        return await self._post("/mount", message)

    async def _post(self, route: str, message: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.post(self.route_prefix + route, json=message)
        except httpx.RequestError as e:
            logger.error(f"deltaui request failed: {e}")
            raise TransportError(str(e)) from e
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid response ({response.status_code}): not JSON"
            ) from e
        if not isinstance(body, dict):
            raise TransportError(f"Invalid response ({response.status_code})")
        return body

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class LocalTransport:
    """Runs requests against an in-process RequestHandler.

    Messages go through JSON both ways, as they would over the network, so the
    client and the handler never share mutable state.
    """

    def __init__(self, handler):
        self.handler = handler

    async def send(self, message: dict[str, Any]) -> dict[str, Any]:
        _, body = await self.handler.handle(_wire(message))
        return _wire(body)

    async def mount(self, message: dict[str, Any]) -> dict[str, Any]:
        _, body = await self.handler.handle_mount(_wire(message))
        return _wire(body)


def _wire(message: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(message))
