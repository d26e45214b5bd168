"""Abstract base class for trading policies.

Every participant's decision logic (human commands, autonomous bots) implements
this interface so the battle session can drive them interchangeably.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from models.instrument import MarketSnapshot
from models.portfolio import Participant, Portfolio
from models.trade import TradeIntent


class TradingPolicy(ABC):
    """Common interface for pluggable trading policies.

    Lifecycle:
        1. ``__init__``: receive the policy's configuration.
        2. ``decide``: called by the session whenever the policy's decision
           timer fires during its owner's phase.
        3. ``reset``: called when the battle restarts.
    """

    owner: Participant

    @abstractmethod
    def decide(self, snapshot: MarketSnapshot, portfolio: Portfolio) -> list[TradeIntent]:
        """Return zero or more trade intents for the current market.

        The session executes the intents in order through the owner's broker;
        a policy never writes to a portfolio itself.
        """

    def reset(self) -> None:
        """Forget any per-battle state."""

    def performance_metrics(self) -> dict[str, Any]:
        """Per-battle counters reported in the run summary; empty by default."""
        return {}
