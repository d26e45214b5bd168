"""Participant and portfolio state models."""

from enum import Enum

from pydantic import BaseModel, Field


class Participant(str, Enum):
    """The three contestants of a battle."""

    HUMAN = "human"
    AUTONOMOUS_BOT = "autonomous_bot"
    ROBO_ADVISOR = "robo_advisor"


# Equal returns go to the earliest entry.
TIE_BREAK_ORDER: list[Participant] = [
    Participant.HUMAN,
    Participant.AUTONOMOUS_BOT,
    Participant.ROBO_ADVISOR,
]


class Portfolio(BaseModel):
    """Cash and holdings (symbol -> shares) for one participant.

    Ledger operations never mutate a Portfolio in place; they return an
    updated copy. ``finalized`` is set once the owner's phase has ended.
    """

    owner: Participant
    cash: float = Field(ge=0)
    holdings: dict[str, int] = {}
    starting_value: float
    strategy_label: str | None = None
    finalized: bool = False

    @classmethod
    def opening(cls, owner: Participant, starting_cash: float) -> "Portfolio":
        """A fresh portfolio holding only cash."""
        return cls(owner=owner, cash=starting_cash, holdings={}, starting_value=starting_cash)
