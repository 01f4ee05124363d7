"""SupaCapitalPool contract collaborator."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from supa_vault.config import Settings
from supa_vault.errors import ConfigurationError, ContractError
from supa_vault.utils.logging import get_logger, log_contract_tx

WEI_PER_UNIT = Decimal(10) ** 18


def _view(name: str, outputs: list[dict[str, str]]) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [],
        "outputs": outputs,
    }


def _write(name: str, inputs: list[dict[str, str]], payable: bool = False) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "payable" if payable else "nonpayable",
        "inputs": inputs,
        "outputs": [],
    }


_UINT = [{"name": "", "type": "uint256"}]

POOL_ABI: list[dict[str, Any]] = [
    _view("operator", [{"name": "", "type": "address"}]),
    _view("totalAvailable", _UINT),
    _view("totalInPosition", _UINT),
    _view("totalTakerInPosition", _UINT),
    _view("totalAbsorberInPosition", _UINT),
    _write("lockGlobal", []),
    _write("unlockGlobal", []),
    _write("reportProfit", [], payable=True),
    _write("reportLoss", [{"name": "amount", "type": "uint256"}]),
]


def from_wei18(value: int) -> Decimal:
    """18-decimal fixed point to whole units."""
    return Decimal(value) / WEI_PER_UNIT


def to_wei18(value: Decimal | float | str) -> int:
    """Whole units to 18-decimal fixed point, truncated toward zero."""
    return int(Decimal(str(value)) * WEI_PER_UNIT)


class PoolContractLike(Protocol):
    """What the orchestrators need from the pool contract."""

    @property
    def signer_address(self) -> str: ...

    def operator(self) -> str: ...

    def total_available(self) -> int: ...

    def total_in_position(self) -> int: ...

    def total_taker_in_position(self) -> int: ...

    def total_absorber_in_position(self) -> int: ...

    def lock_global(self) -> str: ...

    def unlock_global(self) -> str: ...

    def report_profit(self, value_wei: int) -> str: ...

    def report_loss(self, amount_wei: int) -> str: ...


class PoolContract:
    """web3 binding for the pool. Writes are signed with the operator key."""

    def __init__(self, settings: Settings, web3: Web3 | None = None) -> None:
        if not settings.operator_private_key:
            raise ConfigurationError("Server configuration error: Missing operator private key")
        if not settings.pool_contract_address:
            raise ConfigurationError("Server configuration error: Missing pool contract address")

        self._settings = settings
        self._w3 = web3 or Web3(
            Web3.HTTPProvider(settings.rpc_url, request_kwargs={"timeout": settings.http_timeout})
        )
        self._account: LocalAccount = Account.from_key(settings.operator_private_key)
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(settings.pool_contract_address),
            abi=POOL_ABI,
        )
        self._logger = get_logger("supa_vault.contract.pool_contract")

    @property
    def signer_address(self) -> str:
        return self._account.address

    # ---- reads ----

    def operator(self) -> str:
        return self._read("operator")

    def total_available(self) -> int:
        return int(self._read("totalAvailable"))

    def total_in_position(self) -> int:
        return int(self._read("totalInPosition"))

    def total_taker_in_position(self) -> int:
        return int(self._read("totalTakerInPosition"))

    def total_absorber_in_position(self) -> int:
        return int(self._read("totalAbsorberInPosition"))

    # ---- writes ----

    def lock_global(self) -> str:
        return self._transact("lockGlobal")

    def unlock_global(self) -> str:
        return self._transact("unlockGlobal")

    def report_profit(self, value_wei: int) -> str:
        if value_wei <= 0:
            raise ValueError("profit must be positive")
        return self._transact("reportProfit", value=value_wei)

    def report_loss(self, amount_wei: int) -> str:
        if amount_wei <= 0:
            raise ValueError("loss must be positive")
        return self._transact("reportLoss", amount_wei)

    def _read(self, name: str) -> Any:
        try:
            return getattr(self._contract.functions, name)().call()
        except (Web3Exception, OSError) as exc:
            raise ContractError(f"{name}() read failed: {_reason(exc)}") from exc

    def _transact(self, name: str, *args: Any, value: int = 0) -> str:
        function = getattr(self._contract.functions, name)(*args)
        try:
            tx = function.build_transaction(
                {
                    "from": self._account.address,
                    "nonce": self._w3.eth.get_transaction_count(self._account.address, "pending"),
                    "chainId": self._settings.chain_id,
                    "value": value,
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._settings.tx_receipt_timeout
            )
        except (Web3Exception, OSError) as exc:
            self._logger.error("contract_tx_failed", function=name, error=_reason(exc))
            raise ContractError(f"{name}() failed: {_reason(exc)}") from exc

        hex_hash = Web3.to_hex(tx_hash)
        if receipt["status"] != 1:
            log_contract_tx(self._logger, function=name, tx_hash=hex_hash, status="reverted")
            raise ContractError(f"{name}() tx {hex_hash}: execution reverted")

        log_contract_tx(self._logger, function=name, tx_hash=hex_hash, value_wei=value)
        return hex_hash


def _reason(exc: BaseException) -> str:
    if isinstance(exc, ContractLogicError) and exc.message:
        return exc.message
    return str(exc)
