"""Trade models: TradeIntent, ExecutedTrade, TradeResult, ScheduledTrade."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from models.portfolio import Participant, Portfolio


class RejectionReason(str, Enum):
    """Why the ledger or the battle refused a trade."""

    INVALID_ORDER = "invalid_order"
    INVALID_QUANTITY = "invalid_quantity"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_SHARES = "insufficient_shares"
    UNKNOWN_SYMBOL = "unknown_symbol"
    PHASE_INACTIVE = "phase_inactive"
    PORTFOLIO_FINALIZED = "portfolio_finalized"


class TradeIntent(BaseModel):
    """A request to buy or sell, produced by a policy or a UI command."""

    owner: Participant
    symbol: str
    side: Literal["buy", "sell"]
    shares: int
    reasoning: str = ""


class ExecutedTrade(BaseModel):
    """Single executed fill at the price of the tick it happened in."""

    trade_id: str
    owner: Participant
    symbol: str
    side: Literal["buy", "sell"]
    shares: int
    price: float
    day: int = 0
    reasoning: str = ""


class TradeResult(BaseModel):
    """Outcome of a trade operation.

    Trades are all-or-nothing. When rejected, ``reason`` is set, ``message``
    explains it and ``portfolio`` is the unchanged input portfolio.
    """

    status: Literal["accepted", "rejected"]
    reason: RejectionReason | None = None
    message: str = ""
    trade: ExecutedTrade | None = None
    portfolio: Portfolio | None = None

    @property
    def accepted(self) -> bool:
        return self.status == "accepted"


class ScheduledTrade(BaseModel):
    """A human command replayed by the headless runner at a given phase second."""

    at_second: float = Field(ge=0)
    symbol: str
    side: Literal["buy", "sell"]
    shares: int = Field(default=1, gt=0)
