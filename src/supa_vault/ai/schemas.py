"""AI input/output schemas and strict parsing helpers."""

from __future__ import annotations

import json
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class MarketContext(BaseModel):
    """What the model sees before deciding."""

    model_config = ConfigDict(extra="forbid")

    instrument: str
    price: float = Field(ge=0.0)
    best_bid: float | None = None
    best_ask: float | None = None
    pool_total_cro: float = Field(ge=0.0)
    pool_available_cro: float = Field(ge=0.0)
    pool_in_position_cro: float = Field(ge=0.0)
    market_data_available: bool = True


class AIDecision(BaseModel):
    """Strict trade decision. NEUTRAL always collapses to HOLD at 0% and 1x."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    status: Literal["BULLISH", "BEARISH", "NEUTRAL"]
    action: Literal["BUY", "SELL", "HOLD"] = "HOLD"
    position_size_percent: float = Field(default=0.0, ge=0.0, le=100.0, alias="positionSizePercent")
    leverage: float = Field(default=1.0, ge=1.0, le=5.0)
    reasoning: str = ""

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("status", "action"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip().upper()
        if data.get("status") == "NEUTRAL":
            data["action"] = "HOLD"
            data.pop("position_size_percent", None)
            data["positionSizePercent"] = 0.0
            data["leverage"] = 1.0
        return data

    @property
    def is_hold(self) -> bool:
        return self.action == "HOLD" or self.status == "NEUTRAL"

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def neutral_default(cls, reason: str = "AI Service Unavailable") -> "AIDecision":
        """Conservative decision used whenever the model cannot be trusted."""
        return cls(status="NEUTRAL", action="HOLD", reasoning=reason)

    @classmethod
    def parse_strict(cls, payload: dict[str, Any]) -> "AIDecision":
        """Parse a raw dict. Any violation maps to the neutral default."""
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            return cls.neutral_default(f"schema_validation_error: {exc.errors()[0]['msg']}")

    @classmethod
    def parse_response_text(cls, text: str) -> "AIDecision":
        """Parse model text response. Non-JSON/invalid JSON is neutral."""
        try:
            json_obj = _extract_json_obj(text)
        except ValueError as exc:
            return cls.neutral_default(str(exc))
        return cls.parse_strict(json_obj)


def _extract_json_obj(text: str) -> dict[str, Any]:
    """Extract the first JSON object from plain text or fenced content."""
    stripped = text.strip()
    candidates = []
    if stripped.startswith("{") and stripped.endswith("}"):
        candidates.append(stripped)
    fenced_match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", stripped, re.DOTALL)
    if fenced_match:
        candidates.append(fenced_match.group(1))
    brace_match = re.search(r"\{.*\}", stripped, re.DOTALL)
    if brace_match:
        candidates.append(brace_match.group(0))

    if not candidates:
        raise ValueError("model_response_not_json")

    decoded = json.loads(candidates[0])
    if isinstance(decoded, dict):
        return decoded
    raise ValueError("model_response_json_not_object")
