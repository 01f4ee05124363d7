"""Wire settings into concrete collaborators and orchestrators."""

from __future__ import annotations

from dataclasses import dataclass

from supa_vault.ai.openrouter_client import OpenRouterClient
from supa_vault.config import Settings
from supa_vault.contract.pool_contract import PoolContract, PoolContractLike
from supa_vault.exchange.client import ExchangeClient
from supa_vault.journal.store import JournalStore
from supa_vault.orchestrator.close import PositionCloseOrchestrator
from supa_vault.orchestrator.lock import PoolLockOrchestrator
from supa_vault.payment.x402 import PaymentVerifier


@dataclass(slots=True)
class Services:
    """Everything the HTTP surface and CLI call into."""

    contract: PoolContractLike
    store: JournalStore
    lock: PoolLockOrchestrator
    close: PositionCloseOrchestrator


def build_services(settings: Settings, verifier: PaymentVerifier | None = None) -> Services:
    """Build production collaborators. Raises ``ConfigurationError`` on missing keys."""
    contract = PoolContract(settings)
    exchange = ExchangeClient(settings)
    store = JournalStore(settings.journal_dir)
    lock = PoolLockOrchestrator(
        settings,
        exchange=exchange,
        contract=contract,
        ai_provider=OpenRouterClient(settings),
        verifier=verifier or PaymentVerifier(settings),
        store=store,
    )
    close = PositionCloseOrchestrator(
        settings,
        exchange=exchange,
        contract=contract,
        store=store,
    )
    return Services(contract=contract, store=store, lock=lock, close=close)
