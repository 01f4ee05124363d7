"""x402 payment gate."""

from supa_vault.payment.x402 import (
    NonceLedger,
    PaymentAuthorization,
    PaymentHeader,
    PaymentRequirements,
    PaymentVerifier,
    decode_payment_header,
    encode_payment_header,
    sign_payment_header,
)

__all__ = [
    "NonceLedger",
    "PaymentAuthorization",
    "PaymentHeader",
    "PaymentRequirements",
    "PaymentVerifier",
    "decode_payment_header",
    "encode_payment_header",
    "sign_payment_header",
]
