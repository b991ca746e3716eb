from __future__ import annotations

import logging
import traceback
from typing import Any, Literal, Optional

logger = logging.getLogger(__name__)

ErrorType = Literal[
    "validation_error",
    "method_error",
    "property_error",
    "security_error",
    "exception",
    "server_error",
]

# HTTP status returned alongside each error payload
ERROR_STATUS: dict[ErrorType, int] = {
    "validation_error": 422,
    "method_error": 400,
    "property_error": 400,
    "security_error": 403,
    "exception": 500,
    "server_error": 500,
}

OPAQUE_MESSAGE = "An error occurred while processing your request."


class DeltaError(Exception):
    """Base class for errors raised by deltaui."""


class ConfigError(DeltaError):
    pass


class RequestError(DeltaError):
    """Malformed request: missing fields, unknown type or unknown component."""

    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.status = status


class ComponentError(DeltaError):
    """An error reported back to the client with a specific wire type."""

    type: ErrorType = "exception"


class ValidationError(ComponentError):
    type = "validation_error"

    def __init__(
        self, errors: dict[str, list[str]], message: str = "Validation failed"
    ) -> None:
        super().__init__(message)
        self.errors = errors


class MethodError(ComponentError):
    type = "method_error"


class PropertyError(ComponentError):
    type = "property_error"


class SecurityError(ComponentError):
    type = "security_error"


class Redirect(DeltaError):
    """Raised by a component to end the request with a redirect."""

    def __init__(self, url: str, spa: bool = True) -> None:
        super().__init__(url)
        self.url = url
        self.spa = spa


class TransportError(DeltaError):
    """Client side: the request did not produce a usable response."""


def _format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def error_payload(exc: BaseException, debug: bool = False) -> dict[str, Any]:
    """Wire payload for an error raised while handling a request."""
    if isinstance(exc, ValidationError):
        return {"type": exc.type, "error": str(exc), "errors": exc.errors}
    if isinstance(exc, ComponentError):
        return {"type": exc.type, "error": str(exc)}
    if isinstance(exc, RequestError):
        return {"type": "exception", "error": str(exc)}

    if debug:
        return {
            "type": "exception",
            "error": str(exc),
            "details": {
                "exception": type(exc).__name__,
                "stack": _format_stack(exc),
            },
        }
    return {"type": "server_error", "error": OPAQUE_MESSAGE}


def error_status(exc: BaseException) -> int:
    if isinstance(exc, RequestError):
        return exc.status
    if isinstance(exc, ComponentError):
        return ERROR_STATUS[exc.type]
    return 500


def log_unexpected(exc: BaseException, details: Optional[dict[str, Any]] = None) -> None:
    logger.error(
        "deltaui error type=%s message=%s details=%s\n%s",
        type(exc).__name__,
        exc,
        details or {},
        _format_stack(exc),
    )


__all__ = [
    "ErrorType",
    "DeltaError",
    "ConfigError",
    "RequestError",
    "ComponentError",
    "ValidationError",
    "MethodError",
    "PropertyError",
    "SecurityError",
    "Redirect",
    "TransportError",
    "error_payload",
    "error_status",
    "log_unexpected",
]
