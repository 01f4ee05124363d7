"""Deterministic request signing for the Crypto.com Exchange private API."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping, Sequence
from typing import Any


def canonicalize(params: Mapping[str, Any]) -> str:
    """Flatten params into the exchange's signing string.

    Keys are sorted at every level, ``None`` values are skipped, and array
    elements contribute their value only (no key prefix).
    """
    parts: list[str] = []
    for key in sorted(params):
        value = params[key]
        if value is None:
            continue
        parts.append(key)
        parts.append(_render(value))
    return "".join(parts)


def _render(value: Any) -> str:
    if isinstance(value, Mapping):
        return canonicalize(value)
    if _is_sequence(value):
        return "".join(_render(item) for item in value if item is not None)
    return _scalar(value)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _scalar(value: Any) -> str:
    # Match the string forms the exchange computes on its side.
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_signature_payload(
    method: str,
    request_id: int,
    api_key: str,
    params: Mapping[str, Any],
    nonce: int,
) -> str:
    """Concatenate method, id, api key, canonical params and nonce."""
    return f"{method}{request_id}{api_key}{canonicalize(params)}{nonce}"


def sign(
    method: str,
    request_id: int,
    api_key: str,
    params: Mapping[str, Any],
    nonce: int,
    api_secret: str,
) -> str:
    """HMAC-SHA256 of the signature payload as lowercase hex."""
    payload = build_signature_payload(method, request_id, api_key, params, nonce)
    return hmac.new(
        api_secret.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
