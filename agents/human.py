"""Human policy: trades arrive as explicit commands from the player."""

from __future__ import annotations

from typing import Any, Literal

from agents.base import TradingPolicy
from models.instrument import MarketSnapshot
from models.portfolio import Participant, Portfolio
from models.trade import RejectionReason, TradeIntent


def check_order(side: Any, shares: Any) -> tuple[RejectionReason, str] | None:
    """Return ``(reason, message)`` if the command cannot become an intent.

    Share counts must be whole numbers; ``2.0`` is accepted, ``1.9`` is not.
    Sizes below one are left to the ledger.
    """
    if side not in ("buy", "sell"):
        return RejectionReason.INVALID_ORDER, f"Side must be 'buy' or 'sell', got {side!r}."
    if isinstance(shares, bool) or not isinstance(shares, (int, float)):
        return RejectionReason.INVALID_QUANTITY, f"Share count must be a whole number, got {shares!r}."
    if isinstance(shares, float) and not shares.is_integer():
        return RejectionReason.INVALID_QUANTITY, f"Share count must be a whole number, got {shares!r}."
    return None


class HumanPolicy(TradingPolicy):
    """No autonomous decisions; validates and forwards UI commands."""

    owner = Participant.HUMAN

    def decide(self, snapshot: MarketSnapshot, portfolio: Portfolio) -> list[TradeIntent]:
        return []

    def build_intent(self, symbol: str, side: Literal["buy", "sell"], shares: int) -> TradeIntent:
        """Turn a buy/sell button press into a trade intent.

        Raises ``ValueError`` for anything ``check_order`` refuses.
        """
        problem = check_order(side, shares)
        if problem is not None:
            raise ValueError(problem[1])
        return TradeIntent(owner=self.owner, symbol=symbol.upper(), side=side, shares=int(shares))
