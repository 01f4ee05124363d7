"""Turn an AI decision and pool size into a venue-compliant order."""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from supa_vault.ai.schemas import AIDecision
from supa_vault.exchange.schemas import InstrumentSpec
from supa_vault.types import OrderRequest, PoolSnapshot, SizingResult

_ZERO = Decimal("0")


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def _quantum(decimals: int) -> Decimal:
    return Decimal(1).scaleb(-decimals)


class OrderSizer:
    """Position sizing and venue rounding.

    Rounding is half-away-from-zero throughout. The minimum-quantity floor can
    make the order larger than the requested pool percentage.
    """

    def compute_position_size(self, snapshot: PoolSnapshot, position_size_percent: float) -> float:
        """Pool value times the requested percentage, in CRO."""
        if snapshot.total_value <= 0 or position_size_percent <= 0:
            return 0.0
        return snapshot.total_value * (position_size_percent / 100.0)

    def round_quantity(
        self, raw_quantity: float, spec: InstrumentSpec
    ) -> tuple[Decimal, tuple[str, ...]]:
        """Apply tick, precision, zero-fallback and minimum rules in order.

        A minimum that is not a tick multiple is raised to the next tick.
        """
        adjustments: list[str] = []
        raw = _dec(raw_quantity)
        tick = _dec(spec.qty_tick_size)
        minimum = _dec(spec.min_quantity)
        quantum = _quantum(spec.quantity_decimals)

        quantity = raw
        if tick > 0:
            quantity = (raw / tick).quantize(Decimal(1), rounding=ROUND_HALF_UP) * tick
            adjustments.append("tick_rounded")
        quantity = quantity.quantize(quantum, rounding=ROUND_HALF_UP)

        if quantity == 0 and raw > 0 and tick > 0 and minimum <= 0:
            quantity = tick.quantize(quantum, rounding=ROUND_HALF_UP)
            adjustments.append("zero_quantity_one_tick")

        if minimum > 0 and quantity < minimum:
            quantity = minimum.quantize(quantum, rounding=ROUND_HALF_UP)
            adjustments.append("min_quantity_floor")
            if tick > 0 and quantity % tick != 0:
                quantity = (quantity / tick).to_integral_value(rounding=ROUND_CEILING) * tick
                quantity = quantity.quantize(quantum, rounding=ROUND_HALF_UP)
                adjustments.append("min_raised_to_tick")

        return quantity, tuple(adjustments)

    def select_price(
        self,
        side: str,
        best_bid: float,
        best_ask: float,
        spec: InstrumentSpec,
    ) -> Decimal:
        """BUY lifts the ask, SELL hits the bid."""
        price = _dec(best_ask) if side == "BUY" else _dec(best_bid)
        return price.quantize(_quantum(spec.quote_decimals), rounding=ROUND_HALF_UP)

    def size(
        self,
        decision: AIDecision,
        snapshot: PoolSnapshot,
        spec: InstrumentSpec,
        *,
        best_bid: float,
        best_ask: float,
    ) -> SizingResult:
        """Build the order, or explain why none should be placed."""
        if decision.is_hold:
            return SizingResult(order=None, skip_reason="ai_hold")

        position_size_cro = self.compute_position_size(snapshot, decision.position_size_percent)
        if position_size_cro <= 0:
            return SizingResult(order=None, skip_reason="zero_position_size")

        quantity, adjustments = self.round_quantity(position_size_cro, spec)
        if quantity <= _ZERO:
            return SizingResult(
                order=None,
                position_size_cro=position_size_cro,
                skip_reason="zero_quantity_after_rounding",
                adjustments=adjustments,
            )

        side = decision.action
        price = self.select_price(side, best_bid, best_ask, spec)
        if price <= _ZERO:
            return SizingResult(
                order=None,
                position_size_cro=position_size_cro,
                skip_reason="no_market_price",
                adjustments=adjustments,
            )

        order = OrderRequest(
            instrument=spec.symbol,
            side=side,
            price=format(price, "f"),
            quantity=format(quantity, "f"),
        )
        return SizingResult(
            order=order,
            position_size_cro=position_size_cro,
            adjustments=adjustments,
        )
