from typing import Any, Literal, NotRequired, TypedDict

from deltaui.errors import ErrorType


# ====================
# Client requests
# ====================
class CallRequest(TypedDict):
    type: Literal["call"]
    componentId: str
    componentClass: str
    method: str
    params: list[Any]
    state: dict[str, Any]
    fingerprint: str
    signature: str
    errors: NotRequired[dict[str, list[str]]]


class UpdateRequest(TypedDict):
    type: Literal["update"]
    componentId: str
    componentClass: str
    property: str
    value: Any
    state: dict[str, Any]
    fingerprint: str
    signature: str
    errors: NotRequired[dict[str, list[str]]]


RequestMessage = CallRequest | UpdateRequest


class MountRequest(TypedDict):
    componentClass: str
    params: NotRequired[dict[str, Any]]


# ====================
# Server responses
# ====================
class ComponentUpdate(TypedDict):
    # Wire version of the patch list
    v: int
    # Encoded patches
    p: list[dict[str, Any]]
    # Authoritative state
    st: dict[str, Any]
    # Fingerprint
    f: str
    # Signature
    sig: str
    # Validation errors
    e: NotRequired[dict[str, list[str]]]
    # Query string bound properties
    q: NotRequired[dict[str, Any]]


class RedirectInfo(TypedDict):
    url: str
    spa: bool


class DispatchedEvent(TypedDict):
    event: str
    params: list[Any]


class BrowserEvent(TypedDict):
    event: str
    data: Any


class ResponseMessage(TypedDict):
    s: bool
    c: NotRequired[ComponentUpdate]
    redirect: NotRequired[RedirectInfo]
    events: NotRequired[list[DispatchedEvent]]
    browserEvents: NotRequired[list[BrowserEvent]]


class ErrorPayload(TypedDict):
    type: ErrorType
    error: str
    errors: NotRequired[dict[str, list[str]]]
    details: NotRequired[dict[str, Any]]


class ValidationFailure(ErrorPayload):
    # Re-rendered error UI, applied through the patch pipeline
    s: Literal[False]
    c: NotRequired[ComponentUpdate]


class InitialRender(TypedDict):
    id: str
    componentClass: str
    html: str
    state: dict[str, Any]
    fingerprint: str
    signature: str
    listeners: dict[str, str]


REQUEST_TYPES = ("call", "update")
