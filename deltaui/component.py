"""
Server-side components.

A component is a class whose annotated attributes are its public state and
whose public methods can be invoked by the client:

```python
class Counter(Component):
    count: int = 0
    template = '<div><span>${count}</span><button>+</button></div>'

    def increment(self, by=1):
        self.count += by
```

The metaclass inspects each class once, when it is defined, and records what
the client is allowed to touch in a `ComponentSpec`. Requests are checked
against that table instead of being resolved by attribute lookup.
"""

from __future__ import annotations

import copy
import inspect
import logging
import re
import secrets
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Optional, Union

from mako.template import Template

from deltaui.errors import MethodError, PropertyError, Redirect, RequestError, ValidationError

logger = logging.getLogger(__name__)

Rule = Callable[[Any], Optional[str]]

_EMPTY_DEFAULTS: dict[type, Any] = {
    str: "",
    int: 0,
    float: 0.0,
    bool: False,
    list: [],
    dict: {},
}

# Class attributes with a meaning of their own, never state
_CLASS_OPTIONS = frozenset(["template", "hidden", "query_string"])


@dataclass
class ComponentSpec:
    """What the client may read, write and call on a component class."""

    name: str
    properties: dict[str, Any] = field(default_factory=dict)
    hints: dict[str, Any] = field(default_factory=dict)
    methods: frozenset[str] = frozenset()
    hidden: frozenset[str] = frozenset()
    query_string: tuple[str, ...] = ()
    listeners: dict[str, str] = field(default_factory=dict)
    template: Optional[Template] = None

    @property
    def public(self) -> list[str]:
        return [name for name in self.properties if name not in self.hidden]

    @classmethod
    def build(cls, component: type) -> "ComponentSpec":
        reserved: set[str] = set()
        for base in component.__mro__:
            if vars(base).get("__base_component__"):
                reserved.update(vars(base))

        properties: dict[str, Any] = {}
        annotations: dict[str, Any] = {}
        # Walk from the most generic class so subclasses override defaults
        for klass in reversed(component.__mro__):
            if vars(klass).get("__base_component__") or klass is object:
                continue
            for name, hint in inspect.get_annotations(klass).items():
                if name.startswith("_") or name in _CLASS_OPTIONS:
                    continue
                if _is_classvar(hint):
                    continue
                properties[name] = vars(klass).get(name, properties.get(name))
                annotations[name] = hint

        hints = _resolve_hints(component, annotations)

        methods = set()
        listeners: dict[str, str] = {}
        for name in dir(component):
            if name.startswith("_") or name in reserved or name in properties:
                continue
            value = getattr(component, name)
            if not isinstance(value, types.FunctionType):
                continue
            methods.add(name)
            for event in getattr(value, "__delta_listens__", ()):
                listeners[event] = name

        template = getattr(component, "template", None)
        return cls(
            name=qualified_name(component),
            properties=properties,
            hints=hints,
            methods=frozenset(methods),
            hidden=frozenset(getattr(component, "hidden", ())),
            query_string=tuple(getattr(component, "query_string", ())),
            listeners=listeners,
            template=(
                Template(template, default_filters=["h"])
                if isinstance(template, str)
                else None
            ),
        )


def _is_classvar(hint: Any) -> bool:
    if isinstance(hint, str):
        return hint.startswith(("ClassVar", "typing.ClassVar"))
    return typing.get_origin(hint) is ClassVar


def _resolve_hints(component: type, annotations: dict[str, Any]) -> dict[str, Any]:
    try:
        resolved = typing.get_type_hints(component)
    except (NameError, TypeError):
        logger.debug("Could not resolve type hints for %s", component.__name__)
        resolved = {}
    return {name: resolved.get(name, hint) for name, hint in annotations.items()}


def _empty_default(hint: Any) -> tuple[bool, Any]:
    """(found, value): the empty value for a non-optional builtin annotation."""
    origin = typing.get_origin(hint)
    if origin in (Union, types.UnionType):
        return False, None
    base = origin or hint
    if base in _EMPTY_DEFAULTS:
        return True, copy.copy(_EMPTY_DEFAULTS[base])
    return False, None


def _coerce(name: str, hint: Any, value: Any) -> Any:
    """Bring a value from the client in line with the declared scalar type."""
    if value is None:
        found, default = _empty_default(hint)
        return default if found else None
    if hint is bool and isinstance(value, str):
        return value.strip().lower() in ("1", "true", "on", "yes")
    if hint in (int, float) and isinstance(value, str):
        if value.strip() == "":
            return hint()
        try:
            return hint(value)
        except ValueError:
            raise PropertyError(
                f"Invalid value for property [{name}]: expected {hint.__name__}"
            ) from None
    if hint is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


# ----------------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------------

_REGISTRY: dict[str, type["Component"]] = {}


def qualified_name(component: type) -> str:
    return f"{component.__module__}.{component.__qualname__}"


def register(component: type["Component"]) -> None:
    full = qualified_name(component)
    _REGISTRY[full] = component
    short = component.__name__
    if short in _REGISTRY and _REGISTRY[short] is not component:
        logger.debug("Component name %s now refers to %s", short, full)
    _REGISTRY[short] = component


def resolve_component(name: str) -> type["Component"]:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise RequestError(f"Component class [{name}] does not exist.", 404) from None


def registered_components() -> dict[str, type["Component"]]:
    return {qualified_name(c): c for c in _REGISTRY.values()}


class ComponentMeta(type):
    _spec: ComponentSpec

    def __init__(cls, name: str, bases: tuple, namespace: dict, **kwargs):
        super().__init__(name, bases, namespace, **kwargs)
        if namespace.get("__base_component__"):
            cls._spec = ComponentSpec(name=qualified_name(cls))
            return
        cls._spec = ComponentSpec.build(cls)
        register(cls)  # type: ignore[arg-type]


def on(event: str):
    """Mark a method as a listener for events dispatched by other components."""

    def decorator(fn):
        fn.__delta_listens__ = (*getattr(fn, "__delta_listens__", ()), event)
        return fn

    return decorator


# ----------------------------------------------------------------------------
# Validation rules
# ----------------------------------------------------------------------------


def required(message: str = "This field is required.") -> Rule:
    def check(value: Any) -> Optional[str]:
        if value is None or value == "" or value == [] or value == {}:
            return message
        return None

    return check


def min_length(n: int, message: Optional[str] = None) -> Rule:
    def check(value: Any) -> Optional[str]:
        if value is not None and len(value) < n:
            return message or f"Must be at least {n} characters."
        return None

    return check


def max_length(n: int, message: Optional[str] = None) -> Rule:
    def check(value: Any) -> Optional[str]:
        if value is not None and len(value) > n:
            return message or f"May not be greater than {n} characters."
        return None

    return check


def matches(pattern: str, message: str = "The format is invalid.") -> Rule:
    compiled = re.compile(pattern)

    def check(value: Any) -> Optional[str]:
        if value and not compiled.search(str(value)):
            return message
        return None

    return check


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def email(message: str = "Must be a valid email address.") -> Rule:
    return matches(EMAIL_PATTERN, message)


# ----------------------------------------------------------------------------
# Component
# ----------------------------------------------------------------------------


class Component(metaclass=ComponentMeta):
    __base_component__ = True

    template: ClassVar[Optional[str]] = None
    hidden: ClassVar[tuple[str, ...]] = ()
    query_string: ClassVar[tuple[str, ...]] = ()

    def __init__(self, id: Optional[str] = None):
        self.id = id or f"delta-{secrets.token_hex(8)}"
        self.errors: dict[str, list[str]] = {}
        self._events: list[dict[str, Any]] = []
        self._browser_events: list[dict[str, Any]] = []
        for name, default in self._spec.properties.items():
            setattr(self, name, copy.deepcopy(default))

    @classmethod
    def spec(cls) -> ComponentSpec:
        return cls._spec

    # Lifecycle hooks
    # ---------------

    def mount(self, **params) -> Any:
        for name, value in params.items():
            if name in self._spec.properties:
                setattr(self, name, value)

    def hydrate(self) -> Any:
        pass

    def updating(self, prop: str, value: Any) -> Any:
        pass

    def updated(self, prop: str) -> Any:
        pass

    def rules(self) -> dict[str, list[Rule]]:
        return {}

    def render(self) -> str:
        template = self._spec.template
        if template is None:
            raise NotImplementedError(
                f"{type(self).__name__} must define `template` or override render()"
            )
        return template.render(
            **self.get_state(include_hidden=True),
            errors=self.errors,
            component=self,
        )

    # State
    # -----

    def get_state(self, include_hidden: bool = False) -> dict[str, Any]:
        spec = self._spec
        names = spec.properties if include_hidden else spec.public
        return {name: getattr(self, name) for name in names}

    def restore_state(self, state: dict[str, Any]) -> None:
        spec = self._spec
        for name, value in state.items():
            if name not in spec.properties or name in spec.hidden:
                continue
            setattr(self, name, _coerce(name, spec.hints.get(name), value))

    def query_params(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self._spec.query_string}

    # Dispatch (checked against the ComponentSpec)
    # --------

    def update_property(self, prop: str, value: Any) -> Any:
        spec = self._spec
        if prop not in spec.properties:
            raise PropertyError(f"Property [{prop}] does not exist on component.")
        if prop in spec.hidden:
            raise PropertyError(
                f"Property [{prop}] is protected and cannot be updated."
            )
        value = _coerce(prop, spec.hints.get(prop), value)
        self.updating(prop, value)
        setattr(self, prop, value)
        return self.updated(prop)

    def call_method(self, method: str, params: list[Any]) -> Any:
        if method not in self._spec.methods:
            raise MethodError(f"Method [{method}] cannot be called.")
        return getattr(self, method)(*params)

    # Validation
    # ----------

    def validate(self, rules: Optional[dict[str, list[Rule]]] = None) -> dict[str, Any]:
        """Run `rules` (or `self.rules()`) and raise ValidationError on failure.

        Returns the validated values.
        """
        rules = self.rules() if rules is None else rules
        self.reset_validation()
        for prop, checks in rules.items():
            value = getattr(self, prop, None)
            for check in checks:
                message = check(value)
                if message:
                    self.add_error(prop, message)
        if self.errors:
            raise ValidationError(dict(self.errors))
        return {prop: getattr(self, prop, None) for prop in rules}

    def validate_only(self, prop: str) -> None:
        checks = self.rules().get(prop, [])
        self.reset_validation(prop)
        for check in checks:
            message = check(getattr(self, prop, None))
            if message:
                self.add_error(prop, message)
        if prop in self.errors:
            raise ValidationError({prop: list(self.errors[prop])})

    def add_error(self, prop: str, message: str) -> None:
        self.errors.setdefault(prop, []).append(message)

    def reset_validation(self, prop: Optional[str] = None) -> None:
        if prop is None:
            self.errors = {}
        else:
            self.errors.pop(prop, None)

    # Side effects returned with the response
    # ---------------------------------------

    def redirect(self, url: str, spa: bool = True):
        raise Redirect(url, spa)

    def dispatch(self, event: str, *params: Any) -> None:
        self._events.append({"event": event, "params": list(params)})

    def dispatch_browser_event(self, event: str, data: Any = None) -> None:
        self._browser_events.append({"event": event, "data": data})

    def take_events(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        events, browser = self._events, self._browser_events
        self._events, self._browser_events = [], []
        return events, browser
