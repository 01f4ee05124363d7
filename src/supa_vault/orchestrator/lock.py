"""Pool lock workflow: payment gate -> AI decision -> order -> contract lock."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from time import perf_counter
from typing import Any

from supa_vault.ai.provider import AIDecisionProvider
from supa_vault.ai.schemas import AIDecision, MarketContext
from supa_vault.config import Settings
from supa_vault.contract.pool_contract import PoolContractLike, from_wei18
from supa_vault.errors import ContractError, VaultError
from supa_vault.exchange.client import ExchangeLike
from supa_vault.exchange.schemas import InstrumentSpec, Ticker
from supa_vault.journal.store import JournalStore
from supa_vault.orchestrator.operator import assert_operator
from supa_vault.payment.x402 import PaymentRequirements, PaymentVerifier
from supa_vault.sizing.order_sizer import OrderSizer
from supa_vault.types import (
    ActivityRecord,
    ActivityType,
    LockOutcome,
    OrderRequest,
    PoolSnapshot,
    SizingResult,
)
from supa_vault.utils.logging import get_logger, log_degraded, log_order_execution


class LockState(str, Enum):
    """Workflow states for one lock attempt."""

    START = "START"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    VERIFYING = "VERIFYING"
    FAILED = "FAILED"
    FETCHING_MARKET_DATA = "FETCHING_MARKET_DATA"
    FETCHING_POOL_SNAPSHOT = "FETCHING_POOL_SNAPSHOT"
    REQUESTING_AI_DECISION = "REQUESTING_AI_DECISION"
    SIZING_ORDER = "SIZING_ORDER"
    PLACING_ORDER = "PLACING_ORDER"
    LOCKING_CONTRACT = "LOCKING_CONTRACT"
    SKIP_LOCK = "SKIP_LOCK"
    CONFIRMED = "CONFIRMED"
    RECORD_STATUS = "RECORD_STATUS"
    DONE = "DONE"


class PoolLockOrchestrator:
    """Single-attempt, non-reentrant lock pipeline.

    Market data, the AI call and status recording degrade to defaults.
    Payment verification, the operator check and ``lockGlobal`` abort the run.
    A second concurrent lock is rejected by the contract itself and is not
    retried here.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        exchange: ExchangeLike,
        contract: PoolContractLike,
        ai_provider: AIDecisionProvider,
        verifier: PaymentVerifier,
        store: JournalStore | None = None,
        sizer: OrderSizer | None = None,
    ) -> None:
        self._settings = settings
        self._exchange = exchange
        self._contract = contract
        self._ai = ai_provider
        self._verifier = verifier
        self._store = store
        self._sizer = sizer or OrderSizer()
        self._logger = get_logger("supa_vault.orchestrator.lock")

    def payment_requirements(self) -> PaymentRequirements:
        """Fresh requirements for this attempt; the operator wallet is paid."""
        return PaymentRequirements.from_settings(self._settings, self._contract.signer_address)

    def run(
        self,
        payment_header: str | None,
        fallback_stats: dict[str, Any] | None = None,
    ) -> LockOutcome:
        """Run one lock attempt. Hard failures propagate to the caller."""
        started = perf_counter()
        outcome = LockOutcome(state=LockState.START.value)
        self._enter(outcome, LockState.START)
        requirements = self.payment_requirements()

        if not payment_header:
            self._enter(outcome, LockState.AWAITING_PAYMENT)
            outcome.payment_requirements = requirements.to_wire()
            outcome.message = "Payment required"
            return outcome

        self._enter(outcome, LockState.VERIFYING)
        try:
            self._verifier.verify(payment_header, requirements)
        except VaultError:
            self._enter(outcome, LockState.FAILED)
            raise

        self._enter(outcome, LockState.FETCHING_MARKET_DATA)
        ticker, spec = self._fetch_market_data(outcome)

        self._enter(outcome, LockState.FETCHING_POOL_SNAPSHOT)
        snapshot = self._fetch_pool_snapshot(outcome, fallback_stats)

        self._enter(outcome, LockState.REQUESTING_AI_DECISION)
        decision = self._request_decision(outcome, ticker, snapshot)
        outcome.ai_analysis = decision.to_wire()

        self._enter(outcome, LockState.SIZING_ORDER)
        sizing = self._sizer.size(
            decision,
            snapshot,
            spec,
            best_bid=ticker.best_bid if ticker else 0.0,
            best_ask=ticker.best_ask if ticker else 0.0,
        )

        if sizing.skipped:
            outcome.order_result = {"status": "skipped", "reason": sizing.skip_reason}
        else:
            self._enter(outcome, LockState.PLACING_ORDER)
            outcome.order_result = self._place_order(outcome, sizing.order, sizing)

        self._enter(outcome, LockState.LOCKING_CONTRACT)
        if decision.is_hold:
            self._logger.info("lock_skipped", reason="ai_hold_or_neutral")
            self._enter(outcome, LockState.SKIP_LOCK)
        else:
            assert_operator(self._contract)
            outcome.tx_hash = self._contract.lock_global()
            self._enter(outcome, LockState.CONFIRMED)

        self._enter(outcome, LockState.RECORD_STATUS)
        self._record(outcome, decision, sizing)

        order_placed = (outcome.order_result or {}).get("status") == "placed"
        outcome.message = (
            f"AI Analyzed: {decision.status} ({decision.reasoning}). "
            f"Order {'Executed' if order_placed else 'Skipped'}. "
            f"Pool {'Locked' if outcome.tx_hash else 'remains Open'}."
        )
        self._enter(outcome, LockState.DONE)
        self._logger.info(
            "lock_workflow_completed",
            tx_hash=outcome.tx_hash,
            order_status=(outcome.order_result or {}).get("status"),
            warnings=outcome.warnings,
            elapsed_ms=round((perf_counter() - started) * 1000, 2),
        )
        return outcome

    def _enter(self, outcome: LockOutcome, state: LockState) -> None:
        outcome.state = state.value
        outcome.states.append(state.value)
        self._logger.debug("lock_state", state=state.value)

    def _fetch_market_data(self, outcome: LockOutcome) -> tuple[Ticker | None, InstrumentSpec]:
        instrument = self._settings.instrument_name
        with ThreadPoolExecutor(max_workers=2) as pool:
            ticker_future = pool.submit(self._exchange.get_ticker, instrument)
            spec_future = pool.submit(self._exchange.get_instrument, instrument)

        ticker: Ticker | None
        try:
            ticker = ticker_future.result()
        except VaultError as exc:
            ticker = None
            log_degraded(self._logger, dependency="ticker", fallback="no_quotes", error=str(exc))
            outcome.warnings.append("ticker_unavailable")

        try:
            spec = spec_future.result()
        except VaultError as exc:
            spec = InstrumentSpec.default(instrument)
            log_degraded(
                self._logger, dependency="instrument_spec", fallback="default_spec", error=str(exc)
            )
            outcome.warnings.append("instrument_spec_unavailable")
        return ticker, spec

    def _fetch_pool_snapshot(
        self,
        outcome: LockOutcome,
        fallback_stats: dict[str, Any] | None,
    ) -> PoolSnapshot:
        with ThreadPoolExecutor(max_workers=2) as pool:
            available_future = pool.submit(self._contract.total_available)
            in_position_future = pool.submit(self._contract.total_in_position)
        try:
            return PoolSnapshot(
                total_available=float(from_wei18(available_future.result())),
                total_in_position=float(from_wei18(in_position_future.result())),
            )
        except ContractError as exc:
            if not fallback_stats:
                raise
            log_degraded(
                self._logger, dependency="pool_snapshot", fallback="request_body", error=str(exc)
            )
            outcome.warnings.append("pool_snapshot_from_request")
            return PoolSnapshot(
                total_available=float(fallback_stats.get("totalAvailable") or 0),
                total_in_position=float(fallback_stats.get("totalInPosition") or 0),
            )

    def _request_decision(
        self,
        outcome: LockOutcome,
        ticker: Ticker | None,
        snapshot: PoolSnapshot,
    ) -> AIDecision:
        context = MarketContext(
            instrument=self._settings.instrument_name,
            price=ticker.last if ticker else 0.0,
            best_bid=ticker.best_bid if ticker else None,
            best_ask=ticker.best_ask if ticker else None,
            pool_total_cro=max(0.0, snapshot.total_value),
            pool_available_cro=max(0.0, snapshot.total_available),
            pool_in_position_cro=max(0.0, snapshot.total_in_position),
            market_data_available=ticker is not None,
        )
        try:
            return self._ai.evaluate(context)
        except Exception as exc:  # noqa: BLE001 - any AI failure degrades to HOLD.
            log_degraded(self._logger, dependency="ai_decision", fallback="neutral_hold", error=str(exc))
            outcome.warnings.append("ai_unavailable")
            return AIDecision.neutral_default()

    def _place_order(
        self,
        outcome: LockOutcome,
        order: OrderRequest,
        sizing: SizingResult,
    ) -> dict[str, Any]:
        try:
            ack = self._exchange.create_order(order)
        except VaultError as exc:
            self._logger.error("order_failed", instrument=order.instrument, error=str(exc))
            outcome.warnings.append("order_failed")
            return {"status": "failed", "error": str(exc), "order": order.to_params()}

        log_order_execution(
            self._logger,
            instrument=order.instrument,
            side=order.side,
            quantity=order.quantity,
            price=order.price,
            order_id=ack.order_id,
            adjustments=list(sizing.adjustments),
        )
        return {
            "status": "placed",
            "order_id": ack.order_id,
            "client_oid": ack.client_oid,
            "order": order.to_params(),
            "position_size_cro": sizing.position_size_cro,
        }

    def _record(self, outcome: LockOutcome, decision: AIDecision, sizing: SizingResult) -> None:
        if self._store is None:
            log_degraded(self._logger, dependency="status_store", fallback="skip_record")
            return
        order_result = outcome.order_result or {}
        bias = {"BULLISH": "Long", "BEARISH": "Short"}.get(decision.status, "Neutral")
        try:
            self._store.record_ai_status(
                {
                    "current_bias": bias,
                    "current_bias_desc": (
                        f"AI is {decision.status.lower()} on CRO based on current market conditions."
                    ),
                    "position_size": (
                        f"{decision.position_size_percent:g}% of pool · {decision.leverage:g}x leverage"
                    ),
                    "position_size_desc": (
                        f"Executed via Crypto.com: {order_result.get('order_id') or 'Order Placed'}"
                        if order_result.get("status") == "placed"
                        else "No order executed."
                    ),
                    "leverage": f"{decision.leverage:g}x",
                    "reasoning": decision.reasoning,
                }
            )
            if outcome.tx_hash:
                self._store.record_activity(
                    ActivityRecord(
                        activity_type=ActivityType.OPEN_TRADE,
                        role="OPERATOR",
                        amount=sizing.position_size_cro,
                        tx_hash=outcome.tx_hash,
                        description=f"Pool locked: AI {decision.status} {decision.action}",
                    )
                )
        except (OSError, ValueError, TypeError) as exc:
            log_degraded(self._logger, dependency="status_store", fallback="skip_record", error=str(exc))
            outcome.warnings.append("status_record_failed")
