"""x402 payment requirements, headers and local EIP-3009 verification.

Verification is a pure signature check: no facilitator call and no on-chain
settlement. Replays inside the validity window are caught by ``NonceLedger``.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
import threading
import time
from collections.abc import Callable
from typing import Any

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import to_bytes, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from supa_vault.config import Settings
from supa_vault.errors import ValidationError
from supa_vault.utils.logging import get_logger

X402_VERSION = 1

TRANSFER_WITH_AUTHORIZATION_TYPES = {
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}


class PaymentRequirements(BaseModel):
    """What the payer must authorize before a lock attempt proceeds."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    scheme: str
    network: str
    pay_to: str = Field(alias="payTo")
    asset: str
    max_amount_required: str = Field(alias="maxAmountRequired")
    max_timeout_seconds: int = Field(alias="maxTimeoutSeconds")
    description: str
    mime_type: str = Field(default="application/json", alias="mimeType")

    @classmethod
    def from_settings(cls, settings: Settings, pay_to: str) -> "PaymentRequirements":
        return cls(
            scheme=settings.payment_scheme,
            network=settings.payment_network,
            pay_to=pay_to,
            asset=settings.wcro_address,
            max_amount_required=settings.payment_amount_wei,
            max_timeout_seconds=settings.payment_timeout_seconds,
            description=settings.payment_description,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class PaymentAuthorization(BaseModel):
    """Signed TransferWithAuthorization carried in the header payload."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    from_: str = Field(alias="from")
    to: str
    value: int = Field(ge=0)
    valid_after: int = Field(alias="validAfter", ge=0)
    valid_before: int = Field(alias="validBefore", ge=0)
    nonce: str = Field(pattern=r"^0x[0-9a-fA-F]{64}$")
    signature: str
    asset: str

    def typed_message(self) -> dict[str, Any]:
        return {
            "from": to_checksum_address(self.from_),
            "to": to_checksum_address(self.to),
            "value": self.value,
            "validAfter": self.valid_after,
            "validBefore": self.valid_before,
            "nonce": to_bytes(hexstr=self.nonce),
        }

    def to_wire(self) -> dict[str, Any]:
        payload = self.model_dump(by_alias=True)
        payload["value"] = str(self.value)
        return payload


class PaymentHeader(BaseModel):
    """Decoded ``X-Payment`` header."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    x402_version: int = Field(default=X402_VERSION, alias="x402Version")
    scheme: str
    network: str
    payload: PaymentAuthorization


def encode_payment_header(header: PaymentHeader) -> str:
    body = {
        "x402Version": header.x402_version,
        "scheme": header.scheme,
        "network": header.network,
        "payload": header.payload.to_wire(),
    }
    return base64.b64encode(json.dumps(body).encode("utf-8")).decode("ascii")


def decode_payment_header(raw: str) -> PaymentHeader:
    """Base64 + JSON decode; any failure is a malformed header."""
    try:
        decoded = base64.b64decode(raw.strip(), validate=True)
        return PaymentHeader.model_validate(json.loads(decoded))
    except (binascii.Error, ValueError, PydanticValidationError) as exc:
        raise ValidationError("malformed header") from exc


def build_typed_data(
    authorization: PaymentAuthorization,
    *,
    token_name: str,
    token_version: str,
    chain_id: int,
) -> SignableMessage:
    domain = {
        "name": token_name,
        "version": token_version,
        "chainId": chain_id,
        "verifyingContract": to_checksum_address(authorization.asset),
    }
    return encode_typed_data(
        domain_data=domain,
        message_types=TRANSFER_WITH_AUTHORIZATION_TYPES,
        message_data=authorization.typed_message(),
    )


def generate_nonce() -> str:
    """Random 32-byte authorization nonce."""
    return "0x" + secrets.token_hex(32)


def sign_payment_header(
    private_key: str,
    requirements: PaymentRequirements,
    settings: Settings,
    *,
    now: int | None = None,
    nonce: str | None = None,
) -> str:
    """Produce an ``X-Payment`` header the way the payer's wallet does."""
    account = Account.from_key(private_key)
    now = int(time.time()) if now is None else now
    unsigned = {
        "from": account.address,
        "to": requirements.pay_to,
        "value": int(requirements.max_amount_required),
        "validAfter": 0,
        "validBefore": now + requirements.max_timeout_seconds,
        "nonce": nonce or generate_nonce(),
        "asset": requirements.asset,
    }
    draft = PaymentAuthorization.model_validate({**unsigned, "signature": "0x"})
    signable = build_typed_data(
        draft,
        token_name=settings.payment_token_name,
        token_version=settings.payment_token_version,
        chain_id=settings.chain_id,
    )
    signed = Account.sign_message(signable, private_key=private_key)
    authorization = draft.model_copy(update={"signature": "0x" + bytes(signed.signature).hex()})
    return encode_payment_header(
        PaymentHeader(
            x402_version=X402_VERSION,
            scheme=requirements.scheme,
            network=requirements.network,
            payload=authorization,
        )
    )


class NonceLedger:
    """Consumed ``(from, nonce)`` pairs, kept until their ``validBefore``."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._spent: dict[tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def consume(self, payer: str, nonce: str, valid_before: int) -> bool:
        """Mark a nonce spent. Returns False if it was already spent."""
        key = (payer.lower(), nonce.lower())
        with self._lock:
            self._purge()
            if key in self._spent:
                return False
            self._spent[key] = valid_before
            return True

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return len(self._spent)

    def _purge(self) -> None:
        now = self._clock()
        expired = [key for key, until in self._spent.items() if until < now]
        for key in expired:
            del self._spent[key]


class PaymentVerifier:
    """Accept or reject an ``X-Payment`` header against the requirements."""

    def __init__(
        self,
        settings: Settings,
        ledger: NonceLedger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._ledger = ledger or NonceLedger(clock)
        self._clock = clock
        self._logger = get_logger("supa_vault.payment.x402")

    def verify(self, raw_header: str, requirements: PaymentRequirements) -> PaymentAuthorization:
        """Return the verified authorization or raise ``ValidationError``.

        The authorization window is ``validAfter <= now < validBefore``.
        """
        header = decode_payment_header(raw_header)
        auth = header.payload

        if auth.asset.lower() != requirements.asset.lower():
            raise self._reject("invalid asset", auth)

        recovered = self._recover_signer(auth)
        if recovered is None or recovered.lower() != auth.from_.lower():
            raise self._reject("invalid signature", auth)

        if auth.to.lower() != requirements.pay_to.lower():
            raise self._reject("invalid recipient", auth)
        if auth.value < int(requirements.max_amount_required):
            raise self._reject("insufficient amount", auth)

        now = int(self._clock())
        if auth.valid_before <= now:
            raise self._reject("authorization expired", auth)
        if auth.valid_after > now:
            raise self._reject("authorization not yet valid", auth)

        if not self._ledger.consume(auth.from_, auth.nonce, auth.valid_before):
            raise self._reject("nonce already used", auth)

        self._logger.info(
            "payment_verified",
            payer=auth.from_,
            value=str(auth.value),
            valid_before=auth.valid_before,
        )
        return auth

    def _recover_signer(self, auth: PaymentAuthorization) -> str | None:
        try:
            signable = build_typed_data(
                auth,
                token_name=self._settings.payment_token_name,
                token_version=self._settings.payment_token_version,
                chain_id=self._settings.chain_id,
            )
            return Account.recover_message(signable, signature=to_bytes(hexstr=auth.signature))
        except (ValueError, TypeError, BadSignature, KeyValidationError) as exc:
            self._logger.debug("signature_recovery_failed", error=str(exc))
            return None

    def _reject(self, reason: str, auth: PaymentAuthorization) -> ValidationError:
        self._logger.warning("payment_rejected", reason=reason, payer=auth.from_)
        return ValidationError(reason)
