"""AI decision provider interface."""

from __future__ import annotations

from typing import Protocol

from supa_vault.ai.schemas import AIDecision, MarketContext


class AIDecisionProvider(Protocol):
    """Anything that turns a market context into one strict decision."""

    def evaluate(self, context: MarketContext) -> AIDecision:
        """Return one decision for the given context."""
