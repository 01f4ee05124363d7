from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from eth_account import Account

from supa_vault.ai.schemas import AIDecision, MarketContext
from supa_vault.config import Settings
from supa_vault.exchange.schemas import InstrumentSpec, OrderAck, Position, Ticker
from supa_vault.types import OrderRequest

OPERATOR_KEY = "0x" + "4c" * 32
PAYER_KEY = "0x" + "8f" * 32
STRANGER_KEY = "0x" + "2a" * 32
TX_LOCK = "0x" + "aa" * 32
TX_UNLOCK = "0x" + "bb" * 32
TX_PNL = "0x" + "cc" * 32
WEI = 10**18


def make_settings(journal_dir: Path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "journal_dir": journal_dir,
        "cryptocom_api_key": "test-key",
        "cryptocom_api_secret": "test-secret",
        "operator_private_key": OPERATOR_KEY,
        "openrouter_api_key": "",
    }
    values.update(overrides)
    return Settings(**values)


class FakeContract:
    def __init__(
        self,
        *,
        total_available: int = 70 * WEI,
        total_in_position: int = 30 * WEI,
        operator: str | None = None,
    ) -> None:
        self._signer = Account.from_key(OPERATOR_KEY).address
        self.operator_address = operator or self._signer
        self.available = total_available
        self.in_position = total_in_position
        self.calls: list[tuple[str, Any]] = []
        self.fail_on: dict[str, Exception] = {}

    @property
    def signer_address(self) -> str:
        return self._signer

    def operator(self) -> str:
        self._call("operator")
        return self.operator_address

    def total_available(self) -> int:
        self._call("totalAvailable")
        return self.available

    def total_in_position(self) -> int:
        self._call("totalInPosition")
        return self.in_position

    def total_taker_in_position(self) -> int:
        return self.in_position // 2

    def total_absorber_in_position(self) -> int:
        return self.in_position - self.in_position // 2

    def lock_global(self) -> str:
        self._call("lockGlobal")
        return TX_LOCK

    def unlock_global(self) -> str:
        self._call("unlockGlobal")
        return TX_UNLOCK

    def report_profit(self, value_wei: int) -> str:
        self._call("reportProfit", value_wei)
        return TX_PNL

    def report_loss(self, amount_wei: int) -> str:
        self._call("reportLoss", amount_wei)
        return TX_PNL

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def _call(self, name: str, arg: Any = None) -> None:
        self.calls.append((name, arg))
        exc = self.fail_on.get(name)
        if exc is not None:
            raise exc


class FakeExchange:
    def __init__(
        self,
        *,
        ticker: Ticker | None = None,
        spec: InstrumentSpec | None = None,
        positions: list[Position] | None = None,
    ) -> None:
        self.ticker = ticker or Ticker(i="CROUSD-PERP", b=0.0995, k=0.1005, a=0.1)
        self.spec = spec or InstrumentSpec(
            symbol="CROUSD-PERP",
            quantity_decimals=1,
            quote_decimals=4,
            qty_tick_size=0.1,
            min_quantity=1.0,
        )
        self.positions = positions or []
        self.orders: list[OrderRequest] = []
        self.calls: list[str] = []
        self.fail_on: dict[str, Exception] = {}

    def cancel_all_orders(self, instrument: str) -> Any:
        self._call("cancel_all_orders")
        return {}

    def get_positions(self, instrument: str | None = None) -> list[Position]:
        self._call("get_positions")
        return list(self.positions)

    def create_order(self, order: OrderRequest) -> OrderAck:
        self._call("create_order")
        self.orders.append(order)
        return OrderAck(order_id="5755600460443882762")

    def close_position(self, instrument: str) -> OrderAck:
        self._call("close_position")
        return OrderAck(order_id="5755600460443882999")

    def get_ticker(self, instrument: str) -> Ticker:
        self._call("get_ticker")
        return self.ticker

    def get_instrument(self, instrument: str) -> InstrumentSpec:
        self._call("get_instrument")
        return self.spec

    def _call(self, name: str) -> None:
        self.calls.append(name)
        exc = self.fail_on.get(name)
        if exc is not None:
            raise exc


class FakeAI:
    def __init__(self, decision: AIDecision | None = None, error: Exception | None = None) -> None:
        self.decision = decision
        self.error = error
        self.contexts: list[MarketContext] = []

    def evaluate(self, context: MarketContext) -> AIDecision:
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        assert self.decision is not None
        return self.decision


BULLISH_BUY = AIDecision(
    status="BULLISH",
    action="BUY",
    position_size_percent=30,
    leverage=2,
    reasoning="momentum building",
)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)
