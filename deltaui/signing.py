"""
Tamper detection for component state that round-trips through the client.

State is canonicalized before signing so that harmless transport differences
(key order, empty strings arriving as null, 1.0 arriving as 1) don't
invalidate the signature. The MAC is HMAC-SHA256 keyed with the configured
secret and a salt.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from typing import Any, Literal, Mapping, Optional

from deltaui.config import DEFAULTS, DeltaConfig, VerifyMode
from deltaui.errors import ConfigError, SecurityError

logger = logging.getLogger(__name__)

RequestType = Literal["call", "update"]


def canonicalize(value: Any) -> Any:
    """Recursively sort mapping keys and normalize empty-equivalent scalars."""
    if isinstance(value, Mapping):
        return {str(k): canonicalize(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    if value == "":
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def canonical_json(state: Mapping[str, Any]) -> str:
    return json.dumps(
        canonicalize(state),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def decode_key(key: str) -> bytes:
    if key.startswith("base64:"):
        return base64.b64decode(key[len("base64:") :])
    return key.encode("utf-8")


class StateSigner:
    def __init__(
        self,
        secret: str | bytes,
        *,
        salt: str = "deltaui.state",
        digestmod: str = "sha256",
    ) -> None:
        if not secret:
            raise ConfigError(
                "No signing key configured. Set DELTAUI_SIGNING_KEY or pass signing_key."
            )
        self._secret = secret if isinstance(secret, bytes) else decode_key(secret)
        self._salt = salt.encode("utf-8")
        self._digest = getattr(hashlib, digestmod)

    def sign(self, state: Mapping[str, Any], component_id: str) -> str:
        payload = canonical_json(state) + "|" + component_id
        return hmac.new(
            self._secret + b"|" + self._salt, payload.encode("utf-8"), self._digest
        ).hexdigest()

    def verify(
        self, state: Mapping[str, Any], component_id: str, signature: Optional[str]
    ) -> bool:
        if not isinstance(signature, str) or not signature:
            return False
        expected = self.sign(state, component_id)
        return hmac.compare_digest(expected, signature)


def reset_scalars(state: Mapping[str, Any]) -> tuple[dict[str, Any], int]:
    """Reset every non-empty top-level scalar to its type's empty default.

    Returns the reset copy and how many fields changed.
    """
    reset = dict(state)
    count = 0
    for name, value in state.items():
        if isinstance(value, bool):
            if value:
                reset[name] = False
                count += 1
        elif isinstance(value, int):
            if value != 0:
                reset[name] = 0
                count += 1
        elif isinstance(value, float):
            if value != 0.0:
                reset[name] = 0.0
                count += 1
        elif isinstance(value, str):
            if value != "":
                reset[name] = None
                count += 1
    return reset, count


class StateGuard:
    """Applies the configured verification policy to incoming requests.

    - ``strict``: every request is verified
    - ``property-updates``: only single-property updates are verified; method
      calls are trusted
    - ``none``: nothing is verified

    A method call that fails verification gets one lenient retry with form
    scalars reset to their empty defaults, provided no more than
    `lenient_max_fields` fields had to be reset. This accepts forms whose
    fields were typed into after the last signed render.
    """

    def __init__(
        self,
        signer: StateSigner,
        mode: VerifyMode = "property-updates",
        *,
        lenient: bool = True,
        lenient_max_fields: int = 20,
    ) -> None:
        self.signer = signer
        self.mode = mode
        self.lenient = lenient
        self.lenient_max_fields = lenient_max_fields

    @classmethod
    def from_config(cls, config: DeltaConfig) -> "StateGuard":
        return cls(
            StateSigner(config.get("signing_key", "")),
            config.get("verify_state", DEFAULTS["verify_state"]),
            lenient=config.get("lenient_form_verification", True),
            lenient_max_fields=config.get("lenient_max_fields", 20),
        )

    def requires_verification(self, request_type: str) -> bool:
        if self.mode == "strict":
            return True
        if self.mode == "property-updates":
            return request_type == "update"
        return False

    def check(
        self,
        request_type: str,
        state: Mapping[str, Any],
        component_id: str,
        signature: Optional[str],
    ) -> None:
        """Raise SecurityError if the request's state can't be trusted."""
        if not self.requires_verification(request_type):
            return
        if not signature:
            raise SecurityError("Missing state signature")
        if self.signer.verify(state, component_id, signature):
            return
        if request_type == "call" and self.lenient:
            reset, count = reset_scalars(state)
            if 0 < count <= self.lenient_max_fields and self.signer.verify(
                reset, component_id, signature
            ):
                logger.debug(
                    "Accepted call for %s after resetting %d form fields",
                    component_id,
                    count,
                )
                return
        logger.warning(
            "Invalid state signature detected component_id=%s type=%s",
            component_id,
            request_type,
        )
        raise SecurityError(
            "Invalid state signature. State may have been tampered with."
        )
