"""Typed views over Crypto.com Exchange response payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExchangeEnvelope(BaseModel):
    """Common ``{code, result|message}`` response wrapper."""

    model_config = ConfigDict(extra="ignore")

    code: int
    method: str | None = None
    message: str | None = None
    result: Any = None


class Ticker(BaseModel):
    """Top of book for one instrument."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    instrument: str = Field(alias="i")
    best_bid: float = Field(alias="b")
    best_ask: float = Field(alias="k")
    last: float = Field(alias="a")


class InstrumentSpec(BaseModel):
    """Venue constraints for order quantity and price."""

    model_config = ConfigDict(extra="ignore")

    symbol: str
    quantity_decimals: int = Field(ge=0)
    quote_decimals: int = Field(ge=0)
    qty_tick_size: float = Field(default=0.0, ge=0.0)
    min_quantity: float = Field(default=0.0, ge=0.0)

    @classmethod
    def default(cls, symbol: str) -> "InstrumentSpec":
        """Conservative constraints used when metadata cannot be fetched."""
        return cls(
            symbol=symbol,
            quantity_decimals=0,
            quote_decimals=5,
            qty_tick_size=1.0,
            min_quantity=1.0,
        )


class Position(BaseModel):
    """Open derivatives position."""

    model_config = ConfigDict(extra="ignore")

    instrument_name: str
    quantity: float = 0.0
    cost: float = 0.0
    open_position_pnl: float = 0.0
    open_pos_cost: float = 0.0

    @field_validator("quantity", "cost", "open_position_pnl", "open_pos_cost", mode="before")
    @classmethod
    def _none_as_zero(cls, v: Any) -> Any:
        return 0.0 if v is None or v == "" else v

    @property
    def side(self) -> str:
        if self.quantity > 0:
            return "LONG"
        if self.quantity < 0:
            return "SHORT"
        return "FLAT"

    @property
    def entry_price(self) -> float | None:
        if self.quantity == 0:
            return None
        return abs(self.open_pos_cost / self.quantity)


class OrderAck(BaseModel):
    """Order acknowledgement from create-order / close-position."""

    model_config = ConfigDict(extra="ignore")

    order_id: str | None = None
    client_oid: str | None = None

    @field_validator("order_id", "client_oid", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        return None if v is None else str(v)
