"""
Configuration, read from `DELTAUI_*` environment variables with keyword
overrides.
"""

from __future__ import annotations

import logging
import os
from typing import Literal, TypedDict, Unpack, cast

logger = logging.getLogger(__name__)

VerifyMode = Literal["strict", "property-updates", "none"]
VERIFY_MODES: tuple[VerifyMode, ...] = ("strict", "property-updates", "none")


class DeltaConfig(TypedDict, total=False):
    signing_key: str
    verify_state: VerifyMode
    lenient_form_verification: bool
    lenient_max_fields: int
    debug: bool
    minify_patches: bool
    route_prefix: str


DEFAULTS: DeltaConfig = {
    "signing_key": "",
    "verify_state": "property-updates",
    "lenient_form_verification": True,
    "lenient_max_fields": 20,
    "debug": False,
    "minify_patches": True,
    "route_prefix": "/_delta",
}

_ENV_VARS = {
    "signing_key": "DELTAUI_SIGNING_KEY",
    "verify_state": "DELTAUI_VERIFY_STATE",
    "lenient_form_verification": "DELTAUI_LENIENT_FORMS",
    "debug": "DELTAUI_DEBUG",
    "minify_patches": "DELTAUI_MINIFY_PATCHES",
    "route_prefix": "DELTAUI_ROUTE_PREFIX",
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(**overrides: Unpack[DeltaConfig]) -> DeltaConfig:
    config: DeltaConfig = dict(DEFAULTS)  # type: ignore[assignment]

    for name, var in _ENV_VARS.items():
        raw = os.environ.get(var)
        if raw is None:
            continue
        if isinstance(DEFAULTS[name], bool):  # type: ignore[literal-required]
            config[name] = _parse_bool(raw)  # type: ignore[literal-required]
        else:
            config[name] = raw  # type: ignore[literal-required]

    config.update(overrides)

    mode = str(config["verify_state"]).lower()
    if mode in ("true", "1"):
        mode = "strict"
    if mode not in VERIFY_MODES:
        logger.warning(
            "Unknown verify_state %r, using %r", mode, DEFAULTS["verify_state"]
        )
        mode = DEFAULTS["verify_state"]
    config["verify_state"] = cast(VerifyMode, mode)
    return config
