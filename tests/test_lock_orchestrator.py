from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from eth_account import Account

from supa_vault.ai.openrouter_client import OpenRouterClient, OpenRouterError
from supa_vault.ai.schemas import AIDecision
from supa_vault.errors import ConfigurationError, ContractError, ExchangeError, NetworkError, ValidationError
from supa_vault.journal.store import JournalStore
from supa_vault.orchestrator.lock import LockState, PoolLockOrchestrator
from supa_vault.payment.x402 import PaymentVerifier, sign_payment_header

from conftest import (
    BULLISH_BUY,
    PAYER_KEY,
    STRANGER_KEY,
    TX_LOCK,
    FakeAI,
    FakeContract,
    FakeExchange,
    make_settings,
)

NOW = 1_760_000_000


def _build(
    tmp_path: Path,
    *,
    decision: AIDecision | None = BULLISH_BUY,
    ai_error: Exception | None = None,
    contract: FakeContract | None = None,
    exchange: FakeExchange | None = None,
    ai_provider: object | None = None,
):
    settings = make_settings(tmp_path)
    contract = contract or FakeContract()
    exchange = exchange or FakeExchange()
    ai = FakeAI(decision, ai_error)
    store = JournalStore(tmp_path / "journal")
    orchestrator = PoolLockOrchestrator(
        settings,
        exchange=exchange,
        contract=contract,
        ai_provider=ai_provider or ai,
        verifier=PaymentVerifier(settings, clock=lambda: NOW),
        store=store,
    )
    header = sign_payment_header(
        PAYER_KEY, orchestrator.payment_requirements(), settings, now=NOW
    )
    return orchestrator, header, contract, exchange, ai, store


def test_missing_header_returns_payment_requirements(tmp_path: Path) -> None:
    orchestrator, _, contract, exchange, ai, _ = _build(tmp_path)

    outcome = orchestrator.run(None)

    assert outcome.state == LockState.AWAITING_PAYMENT.value
    assert outcome.awaiting_payment
    assert outcome.payment_requirements["payTo"] == contract.signer_address
    assert outcome.payment_requirements["maxAmountRequired"] == "1000000000000000000"
    assert exchange.calls == []
    assert contract.calls == []
    assert ai.contexts == []


def test_buy_decision_places_order_then_locks(tmp_path: Path) -> None:
    orchestrator, header, contract, exchange, ai, store = _build(tmp_path)

    outcome = orchestrator.run(header)

    assert outcome.state == LockState.DONE.value
    assert outcome.tx_hash == TX_LOCK
    assert len(exchange.orders) == 1
    order = exchange.orders[0]
    assert (order.side, order.price, order.quantity) == ("BUY", "0.1005", "30.0")
    assert outcome.order_result["status"] == "placed"
    assert outcome.order_result["order_id"] == "5755600460443882762"

    names = contract.names()
    assert names.count("lockGlobal") == 1
    assert names.index("operator") < names.index("lockGlobal")
    assert outcome.states.index(LockState.PLACING_ORDER.value) < outcome.states.index(
        LockState.LOCKING_CONTRACT.value
    )

    assert ai.contexts[0].pool_total_cro == pytest.approx(100.0)
    assert ai.contexts[0].best_ask == pytest.approx(0.1005)
    assert outcome.message == (
        "AI Analyzed: BULLISH (momentum building). Order Executed. Pool Locked."
    )

    kinds = [row["kind"] for row in store.load_recent(10)]
    assert kinds == ["ai_status", "activity"]


@pytest.mark.parametrize(
    "decision",
    [
        AIDecision(status="BULLISH", action="HOLD", position_size_percent=20, reasoning="wait"),
        AIDecision(status="NEUTRAL", action="BUY", position_size_percent=20, reasoning="chop"),
    ],
)
def test_hold_or_neutral_neither_orders_nor_locks(tmp_path: Path, decision: AIDecision) -> None:
    orchestrator, header, contract, exchange, _, store = _build(tmp_path, decision=decision)

    outcome = orchestrator.run(header)

    assert exchange.orders == []
    assert "lockGlobal" not in contract.names()
    assert outcome.tx_hash is None
    assert LockState.SKIP_LOCK.value in outcome.states
    assert outcome.order_result == {"status": "skipped", "reason": "ai_hold"}
    assert outcome.message.endswith("Order Skipped. Pool remains Open.")
    assert [row["kind"] for row in store.load_recent(10)] == ["ai_status"]


def test_ai_failure_degrades_to_neutral_hold(tmp_path: Path) -> None:
    orchestrator, header, contract, exchange, _, _ = _build(
        tmp_path, decision=None, ai_error=OpenRouterError("OPENROUTER_API_KEY is required")
    )

    outcome = orchestrator.run(header)

    assert outcome.ai_analysis["status"] == "NEUTRAL"
    assert outcome.ai_analysis["reasoning"] == "AI Service Unavailable"
    assert "ai_unavailable" in outcome.warnings
    assert exchange.orders == []
    assert "lockGlobal" not in contract.names()


def test_order_failure_still_locks(tmp_path: Path) -> None:
    exchange = FakeExchange()
    exchange.fail_on["create_order"] = ExchangeError("private/create-order", 306, "INSUFFICIENT_AVAILABLE_BALANCE")
    orchestrator, header, contract, _, _, _ = _build(tmp_path, exchange=exchange)

    outcome = orchestrator.run(header)

    assert outcome.order_result["status"] == "failed"
    assert "INSUFFICIENT_AVAILABLE_BALANCE" in outcome.order_result["error"]
    assert "order_failed" in outcome.warnings
    assert outcome.tx_hash == TX_LOCK
    assert "Order Skipped. Pool Locked." in outcome.message


def test_market_data_failure_uses_defaults(tmp_path: Path) -> None:
    exchange = FakeExchange()
    exchange.fail_on["get_ticker"] = NetworkError("timeout")
    exchange.fail_on["get_instrument"] = NetworkError("timeout")
    orchestrator, header, contract, _, ai, _ = _build(tmp_path, exchange=exchange)

    outcome = orchestrator.run(header)

    assert {"ticker_unavailable", "instrument_spec_unavailable"} <= set(outcome.warnings)
    assert ai.contexts[0].market_data_available is False
    assert outcome.order_result == {"status": "skipped", "reason": "no_market_price"}
    assert exchange.orders == []
    assert outcome.tx_hash == TX_LOCK


def test_pool_read_failure_uses_request_stats(tmp_path: Path) -> None:
    contract = FakeContract()
    contract.fail_on["totalAvailable"] = ContractError("rpc down")
    orchestrator, header, _, exchange, ai, _ = _build(tmp_path, contract=contract)

    outcome = orchestrator.run(header, fallback_stats={"totalAvailable": 40, "totalInPosition": 10})

    assert "pool_snapshot_from_request" in outcome.warnings
    assert ai.contexts[0].pool_total_cro == pytest.approx(50.0)
    assert exchange.orders[0].quantity == "15.0"


def test_pool_read_failure_without_stats_propagates(tmp_path: Path) -> None:
    contract = FakeContract()
    contract.fail_on["totalInPosition"] = ContractError("rpc down")
    orchestrator, header, _, exchange, _, _ = _build(tmp_path, contract=contract)

    with pytest.raises(ContractError):
        orchestrator.run(header)
    assert exchange.orders == []


def test_invalid_payment_aborts_before_any_side_effect(tmp_path: Path) -> None:
    orchestrator, _, contract, exchange, ai, _ = _build(tmp_path)

    with pytest.raises(ValidationError, match="malformed header"):
        orchestrator.run("bm90LWEtaGVhZGVy")

    assert exchange.calls == []
    assert contract.calls == []
    assert ai.contexts == []


def test_replayed_payment_is_rejected(tmp_path: Path) -> None:
    orchestrator, header, contract, _, _, _ = _build(tmp_path)

    orchestrator.run(header)
    with pytest.raises(ValidationError, match="nonce already used"):
        orchestrator.run(header)
    assert contract.names().count("lockGlobal") == 1


def test_operator_mismatch_aborts_lock(tmp_path: Path) -> None:
    contract = FakeContract(operator=Account.from_key(STRANGER_KEY).address)
    orchestrator, header, _, _, _, _ = _build(tmp_path, contract=contract)

    with pytest.raises(ConfigurationError, match="is not the operator"):
        orchestrator.run(header)
    assert "lockGlobal" not in contract.names()


def test_lock_revert_propagates(tmp_path: Path) -> None:
    contract = FakeContract()
    contract.fail_on["lockGlobal"] = ContractError("lockGlobal() tx 0xabc: execution reverted")
    orchestrator, header, _, _, _, store = _build(tmp_path, contract=contract)

    with pytest.raises(ContractError):
        orchestrator.run(header)
    assert store.load_recent(10) == []


def test_unexpected_ai_error_degrades_to_neutral_hold(tmp_path: Path) -> None:
    orchestrator, header, contract, exchange, _, _ = _build(
        tmp_path, decision=None, ai_error=RuntimeError("boom")
    )

    outcome = orchestrator.run(header)

    assert outcome.ai_analysis["status"] == "NEUTRAL"
    assert "ai_unavailable" in outcome.warnings
    assert exchange.orders == []
    assert "lockGlobal" not in contract.names()


def test_ai_endpoint_returning_json_array_degrades_to_neutral_hold(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    ai_client = OpenRouterClient(
        make_settings(tmp_path, openrouter_api_key="or-key"),
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    orchestrator, header, contract, exchange, _, _ = _build(tmp_path, ai_provider=ai_client)

    outcome = orchestrator.run(header)

    assert outcome.state == LockState.DONE.value
    assert outcome.ai_analysis["status"] == "NEUTRAL"
    assert exchange.orders == []
    assert "lockGlobal" not in contract.names()
