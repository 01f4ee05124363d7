"""Crypto.com Exchange client package."""

from supa_vault.exchange.client import ExchangeClient, ExchangeLike
from supa_vault.exchange.signing import build_signature_payload, canonicalize, sign

__all__ = [
    "ExchangeClient",
    "ExchangeLike",
    "build_signature_payload",
    "canonicalize",
    "sign",
]
