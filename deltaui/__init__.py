from deltaui.app import App
from deltaui.client import (
    ClientContext,
    ClientInstance,
    HttpTransport,
    LocalTransport,
    Outcome,
    RequestCoordinator,
)
from deltaui.codec import decode, dumps, encode, encode_envelope, loads
from deltaui.component import (
    Component,
    email,
    matches,
    max_length,
    min_length,
    on,
    required,
    resolve_component,
)
from deltaui.config import DeltaConfig, load_config
from deltaui.diff import diff, optimize_patches, patch_stats
from deltaui.errors import (
    ComponentError,
    ConfigError,
    DeltaError,
    MethodError,
    PropertyError,
    Redirect,
    RequestError,
    SecurityError,
    TransportError,
    ValidationError,
)
from deltaui.handler import RequestHandler
from deltaui.parser import parse
from deltaui.patch import ApplyResult, apply_patches
from deltaui.renderer import Renderer
from deltaui.signing import StateGuard, StateSigner
from deltaui.vdom import CommentNode, ElementNode, TextNode, VNode, element, fingerprint

__all__ = [
    "App",
    "ApplyResult",
    "ClientContext",
    "ClientInstance",
    "CommentNode",
    "Component",
    "ComponentError",
    "ConfigError",
    "DeltaConfig",
    "DeltaError",
    "ElementNode",
    "HttpTransport",
    "LocalTransport",
    "MethodError",
    "Outcome",
    "PropertyError",
    "Redirect",
    "Renderer",
    "RequestCoordinator",
    "RequestError",
    "RequestHandler",
    "SecurityError",
    "StateGuard",
    "StateSigner",
    "TextNode",
    "TransportError",
    "VNode",
    "ValidationError",
    "apply_patches",
    "decode",
    "diff",
    "dumps",
    "element",
    "email",
    "encode",
    "encode_envelope",
    "fingerprint",
    "load_config",
    "loads",
    "matches",
    "max_length",
    "min_length",
    "on",
    "optimize_patches",
    "parse",
    "patch_stats",
    "required",
    "resolve_component",
]
