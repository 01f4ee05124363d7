"""Position close workflow: cancel, close, report PnL, unlock."""

from __future__ import annotations

from decimal import Decimal
from time import perf_counter
from typing import Any

from supa_vault.config import Settings
from supa_vault.contract.pool_contract import PoolContractLike, to_wei18
from supa_vault.errors import VaultError
from supa_vault.exchange.client import ExchangeLike
from supa_vault.exchange.schemas import Position
from supa_vault.journal.store import JournalStore
from supa_vault.orchestrator.operator import assert_operator
from supa_vault.types import ActivityRecord, ActivityType, CloseOutcome
from supa_vault.utils.logging import get_logger, log_degraded, log_order_execution


class PositionCloseOrchestrator:
    """Inverse of the lock workflow.

    Exchange steps are best-effort. PnL reporting failures are logged and
    never block the unlock; the unlock itself and the operator check are hard.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        exchange: ExchangeLike,
        contract: PoolContractLike,
        store: JournalStore | None = None,
    ) -> None:
        self._settings = settings
        self._exchange = exchange
        self._contract = contract
        self._store = store
        self._logger = get_logger("supa_vault.orchestrator.close")

    def run(self) -> CloseOutcome:
        started = perf_counter()
        instrument = self._settings.instrument_name
        warnings: list[str] = []

        self._cancel_orders(instrument, warnings)
        position, position_known = self._fetch_position(instrument, warnings)
        pnl_quote = position.open_position_pnl if position else 0.0
        price = self._conversion_price(instrument, warnings)
        pnl_cro = pnl_quote / price
        self._logger.info(
            "pnl_computed",
            instrument=instrument,
            pnl_quote=pnl_quote,
            price=price,
            pnl_cro=pnl_cro,
        )

        close_result = self._close_position(instrument, position, position_known, warnings)

        assert_operator(self._contract)

        pnl_tx_hash = self._report_pnl(pnl_cro, warnings)
        tx_hash = self._contract.unlock_global()

        self._record(position, pnl_cro, tx_hash, close_result, warnings)

        self._logger.info(
            "close_workflow_completed",
            tx_hash=tx_hash,
            pnl_tx_hash=pnl_tx_hash,
            warnings=warnings,
            elapsed_ms=round((perf_counter() - started) * 1000, 2),
        )
        return CloseOutcome(
            message=f"Position Closed. Pool Unlocked ({tx_hash}).",
            tx_hash=tx_hash,
            pnl_cro=pnl_cro,
            pnl_tx_hash=pnl_tx_hash,
            close_result=close_result,
            warnings=warnings,
        )

    def _cancel_orders(self, instrument: str, warnings: list[str]) -> None:
        try:
            self._exchange.cancel_all_orders(instrument)
        except VaultError as exc:
            self._logger.warning("cancel_orders_failed", instrument=instrument, error=str(exc))
            warnings.append("cancel_orders_failed")

    def _fetch_position(self, instrument: str, warnings: list[str]) -> tuple[Position | None, bool]:
        """Return the open position (if any) and whether the read succeeded."""
        try:
            positions = self._exchange.get_positions(instrument)
        except VaultError as exc:
            self._logger.warning("positions_unavailable", instrument=instrument, error=str(exc))
            warnings.append("positions_unavailable")
            return None, False
        open_positions = [p for p in positions if p.quantity != 0]
        return (open_positions[0] if open_positions else None), True

    def _conversion_price(self, instrument: str, warnings: list[str]) -> float:
        """Live price for quote -> CRO conversion, static fallback otherwise."""
        try:
            price = self._exchange.get_ticker(instrument).last
        except VaultError as exc:
            price = 0.0
            self._logger.debug("ticker_failed", error=str(exc))
        if price > 0:
            return price
        fallback = self._settings.fallback_cro_price
        log_degraded(self._logger, dependency="price_feed", fallback="static_price", price=fallback)
        warnings.append("price_fallback_used")
        return fallback

    def _close_position(
        self,
        instrument: str,
        position: Position | None,
        position_known: bool,
        warnings: list[str],
    ) -> dict[str, Any]:
        """Market-close the position. An unknown position is closed blind."""
        if position_known and position is None:
            return {"message": "No open position"}
        try:
            ack = self._exchange.close_position(instrument)
        except VaultError as exc:
            self._logger.error("close_position_failed", instrument=instrument, error=str(exc))
            warnings.append("close_position_failed")
            return {"error": str(exc)}

        if position is None:
            self._logger.warning(
                "close_submitted_without_position", instrument=instrument, order_id=ack.order_id
            )
            return {"status": "close_submitted", "order_id": ack.order_id, "side": "UNKNOWN"}

        log_order_execution(
            self._logger,
            instrument=instrument,
            side="SELL" if position.side == "LONG" else "BUY",
            quantity=str(abs(position.quantity)),
            order_id=ack.order_id,
            status="close_submitted",
        )
        return {
            "status": "closed",
            "order_id": ack.order_id,
            "side": position.side,
            "quantity": abs(position.quantity),
        }

    def _report_pnl(self, pnl_cro: float, warnings: list[str]) -> str | None:
        amount_wei = to_wei18(Decimal(str(abs(pnl_cro))))
        if amount_wei == 0:
            return None
        function = "reportProfit" if pnl_cro > 0 else "reportLoss"
        try:
            if pnl_cro > 0:
                return self._contract.report_profit(amount_wei)
            return self._contract.report_loss(amount_wei)
        except Exception as exc:  # noqa: BLE001 - unlock must still be attempted.
            self._logger.exception("pnl_report_failed", function=function, amount_wei=amount_wei)
            warnings.append(f"{function}_failed: {exc}")
            return None

    def _record(
        self,
        position: Position | None,
        pnl_cro: float,
        tx_hash: str,
        close_result: dict[str, Any],
        warnings: list[str],
    ) -> None:
        if self._store is None:
            log_degraded(self._logger, dependency="activity_store", fallback="skip_record")
            return
        try:
            self._store.record_activity(
                ActivityRecord(
                    activity_type=ActivityType.CLOSE_TRADE,
                    role="OPERATOR",
                    amount=abs(position.quantity) if position else 0.0,
                    tx_hash=tx_hash,
                    description="Position closed and pool unlocked by operator",
                    pnl=pnl_cro,
                )
            )
            self._store.record_ai_status(
                {
                    "current_bias": "Neutral",
                    "current_bias_desc": "Position closed by Operator.",
                    "position_size": "0% of pool",
                    "position_size_desc": (
                        f"Closed via order: {close_result['order_id']}"
                        if close_result.get("order_id")
                        else "No assets to close."
                    ),
                    "leverage": "1x",
                    "reasoning": "Manual Close triggered by Admin.",
                }
            )
        except (OSError, ValueError, TypeError) as exc:
            log_degraded(self._logger, dependency="activity_store", fallback="skip_record", error=str(exc))
            warnings.append("activity_record_failed")
