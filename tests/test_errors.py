import pytest

from supa_vault.errors import (
    LOCK_REVERTED_MESSAGE,
    REVERTED_MESSAGE,
    ContractError,
    ExchangeError,
    ValidationError,
    humanize_error,
)


def test_validation_error_returns_reason_verbatim() -> None:
    assert humanize_error(ValidationError("invalid signature")) == "invalid signature"


def test_bare_revert_uses_context_message() -> None:
    exc = ContractError("lockGlobal() tx 0xabc: execution reverted")
    assert humanize_error(exc) == REVERTED_MESSAGE
    assert humanize_error(exc, reverted_message=LOCK_REVERTED_MESSAGE) == LOCK_REVERTED_MESSAGE


def test_revert_with_reason_keeps_reason() -> None:
    exc = ContractError("execution reverted: Pool already locked")
    assert humanize_error(exc) == "Pool already locked"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("execution reverted: Amount exceeds available capital", "Amount exceeds your available capital"),
        ("insufficient funds for gas * price + value", "Insufficient balance to cover this transaction"),
        ("Error: user rejected transaction", "Transaction was rejected in your wallet"),
    ],
)
def test_known_messages_are_mapped(raw: str, expected: str) -> None:
    assert humanize_error(raw) == expected


def test_reason_field_is_extracted() -> None:
    raw = 'CALL_EXCEPTION: call failed (reason="Not operator", code=CALL_EXCEPTION)'
    assert humanize_error(raw) == "Not operator"


def test_long_messages_are_truncated() -> None:
    message = humanize_error(ExchangeError("private/create-order", 500, "x" * 400))
    assert len(message) <= 180
    assert message.endswith("... (see server logs)")


def test_empty_error_uses_fallback() -> None:
    assert humanize_error("", fallback="Failed to lock pool") == "Failed to lock pool"
