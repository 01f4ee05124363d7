"""Operator identity guard shared by the lock and close workflows."""

from __future__ import annotations

from supa_vault.contract.pool_contract import PoolContractLike
from supa_vault.errors import ConfigurationError


def assert_operator(contract: PoolContractLike) -> str:
    """Fail unless the signing wallet is the contract's operator.

    Must run immediately before any state-mutating contract call.
    """
    on_chain = contract.operator()
    signer = contract.signer_address
    if on_chain.lower() != signer.lower():
        raise ConfigurationError(f"Wallet {signer} is not the operator.")
    return signer
