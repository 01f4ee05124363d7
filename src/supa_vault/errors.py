"""Error taxonomy and user-facing message normalization."""

from __future__ import annotations

import re

_MAX_MESSAGE_LEN = 160
REVERTED_MESSAGE = "Transaction reverted."
LOCK_REVERTED_MESSAGE = "Transaction reverted. Pool might already be locked."

_MESSAGE_MAPPINGS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"amount exceeds available capital", re.IGNORECASE),
        "Amount exceeds your available capital",
    ),
    (
        re.compile(r"insufficient funds", re.IGNORECASE),
        "Insufficient balance to cover this transaction",
    ),
    (
        re.compile(r"user rejected", re.IGNORECASE),
        "Transaction was rejected in your wallet",
    ),
)


class VaultError(Exception):
    """Base error for operator workflows."""


class ValidationError(VaultError):
    """Bad input or rejected payment. User-correctable."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ExchangeError(VaultError):
    """Exchange answered with a non-zero code or an unexpected shape."""

    def __init__(self, method: str, code: int, message: str) -> None:
        super().__init__(f"{method} failed with code {code}: {message}")
        self.method = method
        self.code = code
        self.message = message


class NetworkError(VaultError):
    """Transport failure talking to a remote service."""


class ContractError(VaultError):
    """Contract call reverted or could not be sent."""


class ConfigurationError(VaultError):
    """Missing credentials or keys."""


def humanize_error(
    error: BaseException | str,
    fallback: str = "Unknown error",
    reverted_message: str = REVERTED_MESSAGE,
) -> str:
    """Reduce an exception to a short, plain-language message."""
    if isinstance(error, ValidationError):
        return error.reason
    raw = error if isinstance(error, str) else str(error)
    if not raw:
        return fallback

    simplified = raw
    reverted = re.search(r"execution reverted(?::|: )?\s*(.*)$", simplified, re.IGNORECASE)
    if reverted:
        reason = reverted.group(1).strip()
        if not reason:
            return reverted_message
        simplified = reason

    reason_match = re.search(r'reason="([^"]+)"', simplified)
    if reason_match:
        simplified = reason_match.group(1)

    simplified = re.sub(r"^Error:\s*", "", simplified, flags=re.IGNORECASE)
    simplified = re.sub(r"^CALL_EXCEPTION.*?:\s*", "", simplified, flags=re.IGNORECASE)
    simplified = re.sub(r"\s*\(see .*$", "", simplified, flags=re.IGNORECASE)
    simplified = simplified.strip().strip("'\"")

    if not simplified:
        return fallback

    for pattern, message in _MESSAGE_MAPPINGS:
        if pattern.search(simplified):
            return message

    if len(simplified) > _MAX_MESSAGE_LEN:
        return f"{simplified[: _MAX_MESSAGE_LEN - 3].rstrip()}... (see server logs)"
    return simplified
