"""Shared domain types for the operator workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Literal

OrderSide = Literal["BUY", "SELL"]


class PoolRole(IntEnum):
    """Participant role as encoded by the pool contract enum."""

    TAKER = 0
    ABSORBER = 1


class ActivityType(str, Enum):
    """Kinds of pool activity kept in the audit trail."""

    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    OPEN_TRADE = "OPEN_TRADE"
    CLOSE_TRADE = "CLOSE_TRADE"


ActivityRole = PoolRole | Literal["OPERATOR"]


@dataclass(slots=True, frozen=True)
class PoolSnapshot:
    """Pool totals read from the contract, in whole CRO."""

    total_available: float
    total_in_position: float

    @property
    def total_value(self) -> float:
        return self.total_available + self.total_in_position


@dataclass(slots=True, frozen=True)
class OrderRequest:
    """Venue-compliant limit order, already rounded."""

    instrument: str
    side: OrderSide
    price: str
    quantity: str
    type: Literal["LIMIT"] = "LIMIT"

    def to_params(self) -> dict[str, Any]:
        return {
            "instrument_name": self.instrument,
            "side": self.side,
            "type": self.type,
            "price": self.price,
            "quantity": self.quantity,
        }


@dataclass(slots=True, frozen=True)
class SizingResult:
    """Order sizer outcome: an order, or a skip with its reason."""

    order: OrderRequest | None
    position_size_cro: float = 0.0
    skip_reason: str | None = None
    adjustments: tuple[str, ...] = ()

    @property
    def skipped(self) -> bool:
        return self.order is None


@dataclass(slots=True)
class ActivityRecord:
    """One append-only audit entry."""

    activity_type: ActivityType
    role: ActivityRole
    amount: float
    tx_hash: str | None = None
    description: str = ""
    asset: str = "CRO"
    pnl: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "activity_type": self.activity_type.value,
            "role": self.role.name if isinstance(self.role, PoolRole) else self.role,
            "amount": self.amount,
            "asset": self.asset,
            "tx_hash": self.tx_hash,
            "description": self.description,
            "pnl": self.pnl,
        }


@dataclass(slots=True)
class LockOutcome:
    """Result of one pool-lock attempt."""

    state: str
    message: str = ""
    tx_hash: str | None = None
    ai_analysis: dict[str, Any] | None = None
    order_result: dict[str, Any] | None = None
    payment_requirements: dict[str, Any] | None = None
    warnings: list[str] = field(default_factory=list)
    states: list[str] = field(default_factory=list)

    @property
    def awaiting_payment(self) -> bool:
        return self.payment_requirements is not None


@dataclass(slots=True)
class CloseOutcome:
    """Result of one position-close run."""

    message: str
    tx_hash: str
    pnl_cro: float
    pnl_tx_hash: str | None = None
    close_result: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
