"""Phase clock: one ordered schedule for market ticks, bot decisions and expiry.

A trading phase has three recurring timers with different periods. Instead
of letting them race, the clock turns elapsed real time into a sorted list of
due events that the battle session applies one after another. Events that
fall on the same instant are ordered market tick, then bot decision, then
countdown expiry, so a bot always decides against the prices of the tick
that just happened and never trades at the moment the countdown hits zero.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

# Tolerance for accumulated float time when comparing against a schedule slot.
_EPS = 1e-9


class ClockEventKind(str, Enum):
    MARKET_TICK = "market_tick"
    BOT_DECISION = "bot_decision"
    COUNTDOWN_EXPIRED = "countdown_expired"


_ORDER = {
    ClockEventKind.MARKET_TICK: 0,
    ClockEventKind.BOT_DECISION: 1,
    ClockEventKind.COUNTDOWN_EXPIRED: 2,
}


@dataclass(frozen=True)
class ClockEvent:
    at: float
    kind: ClockEventKind


class PhaseClock:
    """Countdown plus periodic timers for one trading phase.

    ``budget_seconds`` is the phase's real-time allowance. Market ticks fire
    every ``tick_seconds`` up to and including the budget; bot decisions fire
    every ``decision_seconds`` strictly before it. Once expired or cancelled
    the clock emits nothing further.
    """

    def __init__(
        self,
        budget_seconds: float,
        tick_seconds: float,
        decision_seconds: float | None = None,
    ) -> None:
        if budget_seconds <= 0 or tick_seconds <= 0:
            raise ValueError("budget_seconds and tick_seconds must be positive.")
        if decision_seconds is not None and decision_seconds <= 0:
            raise ValueError("decision_seconds must be positive.")
        self._budget = budget_seconds
        self._tick = tick_seconds
        self._decision = decision_seconds
        self._elapsed = 0.0
        self._next_tick = 1
        self._next_decision = 1
        self._expired = False
        self._cancelled = False
        self._overflow = 0.0

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def seconds_remaining(self) -> float:
        return max(0.0, self._budget - self._elapsed)

    @property
    def display_seconds(self) -> int:
        """Whole seconds left, rounded up the way a countdown is shown."""
        return math.ceil(self.seconds_remaining - _EPS) if self.seconds_remaining > _EPS else 0

    @property
    def overflow(self) -> float:
        """Seconds past the budget in the advance that expired the clock."""
        return self._overflow

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return not (self._expired or self._cancelled)

    def cancel(self) -> None:
        """Stop every timer of this phase."""
        self._cancelled = True

    def advance(self, seconds: float) -> list[ClockEvent]:
        """Move the clock forward and return the events that became due, in order."""
        if seconds < 0:
            raise ValueError(f"Cannot advance by a negative duration ({seconds}).")
        if not self.running:
            return []

        target = self._elapsed + seconds
        end = min(target, self._budget)
        events: list[ClockEvent] = []

        while self._next_tick * self._tick <= end + _EPS:
            events.append(ClockEvent(self._next_tick * self._tick, ClockEventKind.MARKET_TICK))
            self._next_tick += 1

        if self._decision is not None:
            while (
                self._next_decision * self._decision <= end + _EPS
                and self._next_decision * self._decision < self._budget - _EPS
            ):
                events.append(ClockEvent(self._next_decision * self._decision, ClockEventKind.BOT_DECISION))
                self._next_decision += 1

        self._elapsed = end
        if end >= self._budget - _EPS:
            self._overflow = max(0.0, target - self._budget)
            self._elapsed = self._budget
            self._expired = True
            events.append(ClockEvent(self._budget, ClockEventKind.COUNTDOWN_EXPIRED))

        events.sort(key=lambda e: (e.at, _ORDER[e.kind]))
        return events
