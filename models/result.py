"""Battle phase and result models.

- ``BattlePhase``: the state machine's states.
- ``TrendPoint``: one value sample on a participant's equity curve.
- ``ParticipantResult``: final value and return for one participant.
- ``BattleResult``: computed once when the battle enters Results.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from models.portfolio import Participant


class BattlePhase(str, Enum):
    """Battle states, in the only order they may be visited."""

    SETUP = "setup"
    HUMAN = "human"
    AUTONOMOUS = "autonomous"
    ROBO_ADVISOR = "robo_advisor"
    RESULTS = "results"
    COMPLETE = "complete"


# Which participant may trade while a phase is active.
PHASE_OWNER: dict[BattlePhase, Participant] = {
    BattlePhase.HUMAN: Participant.HUMAN,
    BattlePhase.AUTONOMOUS: Participant.AUTONOMOUS_BOT,
    BattlePhase.ROBO_ADVISOR: Participant.ROBO_ADVISOR,
}


class TrendPoint(BaseModel):
    """Portfolio value at the end of a simulated day."""

    day: int
    value: float


class RoboAdvisorOutcome(BaseModel):
    """What the robo-advisor ended the battle with, and where it came from."""

    final_value: float
    strategy_label: str
    trend: list[TrendPoint] = []
    source: Literal["external", "fallback"]
    growth_rate: float | None = None  # Only set on the fallback path


class ParticipantResult(BaseModel):
    """Final valuation of one participant."""

    final_value: float
    return_percent: float
    strategy_label: str | None = None


class BattleResult(BaseModel):
    """Outcome of a battle.

    ``trends`` holds each participant's equity curve, day 0 first.
    """

    starting_cash: float
    per_participant: dict[Participant, ParticipantResult]
    winner: Participant
    trends: dict[Participant, list[TrendPoint]] = {}
    completed_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    model_config = {"frozen": True}

    @property
    def human_won(self) -> bool:
        return self.winner == Participant.HUMAN
