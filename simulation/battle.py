"""Battle session: the phase state machine of one three-way battle.

Phases run strictly in order::

    setup -> human -> autonomous -> robo_advisor -> results -> complete

Only the owner of the active phase may trade, and only while its countdown
is running. Everything time-driven inside a trading phase (market ticks, bot
decisions, the countdown itself) comes out of one ``PhaseClock`` and is
applied here in order, so the session never has two timers racing over the
same state.

The session owns no event loop. A caller (``AsyncBattleRunner`` or a web
handler) feeds it elapsed real time through ``advance``.
"""

from __future__ import annotations

import logging
import random
from typing import Iterable

from agents.base import TradingPolicy
from agents.human import HumanPolicy, check_order
from agents.registry import create_bot_policy
from agents.robo_advisor import RoboAdvisorPolicy
from api_client.investease import ExternalSimulator
from api_client.profile_store import ProfileStore
from models.config import SessionConfig
from models.instrument import DEFAULT_INSTRUMENTS, InstrumentDef, MarketEvent, MarketSnapshot
from models.portfolio import Participant, Portfolio
from models.result import PHASE_OWNER, BattlePhase, BattleResult, RoboAdvisorOutcome, TrendPoint
from models.trade import ExecutedTrade, RejectionReason, TradeIntent, TradeResult
from simulation.clock import ClockEvent, ClockEventKind, PhaseClock
from simulation.ledger import Broker
from simulation.market import MarketModel
from simulation.results import evaluate

logger = logging.getLogger(__name__)

_TRADING_PHASES = (BattlePhase.HUMAN, BattlePhase.AUTONOMOUS)


class PhaseTransitionError(RuntimeError):
    """A phase operation was called in a state that does not allow it."""


class BattleSession:
    """One battle between a human, an autonomous bot and a robo-advisor.

    Collaborators are injectable so tests can fix prices, policies and the
    external services; by default they are built from *config*.
    """

    def __init__(
        self,
        config: SessionConfig,
        *,
        user_id: str = "anonymous",
        rng: random.Random | None = None,
        market: MarketModel | None = None,
        instrument_defs: Iterable[InstrumentDef] = DEFAULT_INSTRUMENTS,
        bot_policy: TradingPolicy | None = None,
        robo_policy: RoboAdvisorPolicy | None = None,
        simulator: ExternalSimulator | None = None,
        profile_store: ProfileStore | None = None,
    ) -> None:
        self.config = config
        self.user_id = user_id
        self._rng = rng or random.Random(config.seed)
        self._instrument_defs = list(instrument_defs)
        self._market = market or MarketModel(config.market, self._rng)
        if not self._market.instruments():
            self._market.initialize(self._instrument_defs)

        self._human = HumanPolicy()
        self._bot = bot_policy or create_bot_policy(config.bot, self._rng)
        self._robo = robo_policy or RoboAdvisorPolicy(config.robo_advisor, simulator, self._rng)
        self._profile_store = profile_store

        self._phase = BattlePhase.SETUP
        self._clock: PhaseClock | None = None
        self._closed = False
        # Bumped by restart() so an in-flight robo request can tell it is stale.
        self._generation = 0
        self._reset_state()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def phase(self) -> BattlePhase:
        return self._phase

    @property
    def current_day(self) -> int:
        """Simulated day within the active trading phase."""
        return self._day

    @property
    def seconds_remaining(self) -> int:
        return self._clock.display_seconds if self._clock is not None else 0

    @property
    def phase_elapsed(self) -> float:
        return self._clock.elapsed if self._clock is not None else 0.0

    @property
    def countdown_expired(self) -> bool:
        return self._clock is not None and self._clock.expired

    @property
    def trading_open(self) -> bool:
        return (
            self._phase in _TRADING_PHASES
            and self._clock is not None
            and self._clock.running
        )

    @property
    def robo_pending(self) -> bool:
        return self._robo_pending

    @property
    def robo_outcome(self) -> RoboAdvisorOutcome | None:
        return self._robo_outcome

    @property
    def result(self) -> BattleResult | None:
        return self._result

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bot_policy(self) -> TradingPolicy:
        return self._bot

    def snapshot(self) -> MarketSnapshot:
        return self._market.snapshot(day=self._day)

    def portfolio(self, owner: Participant) -> Portfolio:
        return self._brokers[owner].get_portfolio()

    def portfolios(self) -> dict[Participant, Portfolio]:
        return {p: b.get_portfolio() for p, b in self._brokers.items()}

    def trades(self, owner: Participant) -> list[ExecutedTrade]:
        return self._brokers[owner].get_trade_history()

    def trends(self) -> dict[Participant, list[TrendPoint]]:
        return {p: list(points) for p, points in self._trends.items()}

    def portfolio_value(self, owner: Participant) -> float:
        return self._brokers[owner].total_value(self._market.instrument_map())

    def status(self) -> dict:
        """Plain-dict view of the session for a UI or a log line."""
        return {
            "phase": self._phase.value,
            "day": self._day,
            "seconds_remaining": self.seconds_remaining,
            "trading_open": self.trading_open,
            "robo_pending": self._robo_pending,
            "values": {p.value: self.portfolio_value(p) for p in self._brokers},
        }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Setup -> Human."""
        self._ensure_open()
        self._require_phase(BattlePhase.SETUP, "start")
        logger.info(
            "Battle started for %s: %d days, $%.2f each, advance=%s.",
            self.user_id,
            self.config.battle.timeframe_days,
            self.config.battle.starting_cash,
            self.config.advance_policy,
        )
        self._enter_trading_phase(BattlePhase.HUMAN)

    def advance(self, elapsed_seconds: float) -> list[ClockEvent]:
        """Feed real elapsed time to the phase clock and apply what became due.

        Time past the countdown carries into the next phase's clock when the
        phase ended automatically. Under manual advancement the next
        countdown starts at ``proceed()``.
        """
        self._ensure_open()
        events: list[ClockEvent] = []
        remaining = elapsed_seconds
        while self._clock is not None:
            clock = self._clock
            due = clock.advance(remaining)
            for event in due:
                if event.kind is ClockEventKind.MARKET_TICK:
                    self._on_market_tick()
                elif event.kind is ClockEventKind.BOT_DECISION:
                    self._on_bot_decision()
                else:
                    self._on_countdown_expired()
            events.extend(due)
            remaining = clock.overflow
            if self._clock is clock or remaining <= 0:
                break
        return events

    def proceed(self) -> None:
        """Leave the current phase once it is finished (manual advancement)."""
        self._ensure_open()
        if self._phase in _TRADING_PHASES:
            if self._clock is None or not self._clock.expired:
                raise PhaseTransitionError(
                    f"Cannot leave the {self._phase.value} phase before its countdown expires."
                )
            self._end_trading_phase()
        elif self._phase is BattlePhase.ROBO_ADVISOR:
            if self._robo_pending or self._robo_outcome is None:
                raise PhaseTransitionError("The robo-advisor has not finished yet.")
            self._enter_results()
        else:
            raise PhaseTransitionError(f"Nothing to proceed from in the {self._phase.value} phase.")

    async def run_robo_advisor(self) -> RoboAdvisorOutcome:
        """Run the robo-advisor's turn and settle its portfolio."""
        self._ensure_open()
        self._require_phase(BattlePhase.ROBO_ADVISOR, "run the robo-advisor")
        if self._robo_pending:
            raise PhaseTransitionError("The robo-advisor request is already in flight.")
        if self._robo_outcome is not None:
            raise PhaseTransitionError("The robo-advisor has already run.")

        generation = self._generation
        self._robo_pending = True
        try:
            outcome = await self._robo.simulate(self.config.battle)
        finally:
            if generation == self._generation:
                self._robo_pending = False

        if self._closed or generation != self._generation:
            logger.info("Discarding robo-advisor outcome of an abandoned battle.")
            return outcome

        broker = self._brokers[Participant.ROBO_ADVISOR]
        broker.settle(outcome.final_value, outcome.strategy_label)
        self._trends[Participant.ROBO_ADVISOR] = list(outcome.trend)
        self._robo_outcome = outcome
        logger.info(
            "Robo-advisor settled at $%.2f (%s, %s).",
            outcome.final_value,
            outcome.strategy_label,
            outcome.source,
        )

        if self.config.advance_policy == "auto":
            self._enter_results()
        return outcome

    async def complete(self) -> BattleResult:
        """Results -> Complete, and hand the result to the profile store."""
        self._ensure_open()
        self._require_phase(BattlePhase.RESULTS, "complete")
        if self._result is None:
            raise PhaseTransitionError("No battle result has been computed.")
        self._phase = BattlePhase.COMPLETE
        logger.info("Battle complete; winner: %s.", self._result.winner.value)

        if self._profile_store is not None:
            try:
                await self._profile_store.record_battle_result(self.user_id, self._result)
            except Exception:
                logger.exception("Failed to record battle result for %s.", self.user_id)
        return self._result

    def restart(self) -> None:
        """Abandon the battle and return to Setup with fresh state."""
        self._ensure_open()
        self._cancel_clock()
        self._generation += 1
        self._phase = BattlePhase.SETUP
        self._market.initialize(self._instrument_defs)
        self._bot.reset()
        self._reset_state()
        logger.info("Battle restarted.")

    def close(self) -> None:
        """Cancel every timer; the session accepts no further calls."""
        self._cancel_clock()
        self._generation += 1
        self._closed = True

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    def submit_trade(self, owner: Participant, symbol: str, side: str, shares: int) -> TradeResult:
        """Execute a trade for *owner* if its phase is active and running."""
        self._ensure_open()
        broker = self._brokers[owner]
        if PHASE_OWNER.get(self._phase) is not owner or not self.trading_open:
            return TradeResult(
                status="rejected",
                reason=RejectionReason.PHASE_INACTIVE,
                message=f"{owner.value} cannot trade during the {self._phase.value} phase"
                + (" after the countdown expired." if self.countdown_expired else "."),
                portfolio=broker.get_portfolio(),
            )

        problem = check_order(side, shares)
        if problem is not None:
            reason, message = problem
            logger.warning("Rejected %s order: %s", owner.value, message)
            return TradeResult(
                status="rejected",
                reason=reason,
                message=message,
                portfolio=broker.get_portfolio(),
            )

        if owner is Participant.HUMAN:
            intent = self._human.build_intent(symbol, side, shares)  # type: ignore[arg-type]
        else:
            intent = TradeIntent(owner=owner, symbol=symbol, side=side, shares=int(shares))  # type: ignore[arg-type]
        return self._execute(intent)

    def submit_human_trade(self, symbol: str, side: str, shares: int) -> TradeResult:
        return self.submit_trade(Participant.HUMAN, symbol, side, shares)

    def queue_market_event(self, event: MarketEvent) -> None:
        """Apply *event* to the prices of the next market tick."""
        self._ensure_open()
        self._pending_events.append(event)
        logger.info("Queued market event '%s' (%s).", event.title, event.source)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _reset_state(self) -> None:
        cash = self.config.battle.starting_cash
        self._brokers: dict[Participant, Broker] = {p: Broker(p, cash) for p in Participant}
        self._trends: dict[Participant, list[TrendPoint]] = {p: [] for p in Participant}
        self._pending_events: list[MarketEvent] = []
        self._day = 0
        self._robo_pending = False
        self._robo_outcome: RoboAdvisorOutcome | None = None
        self._result: BattleResult | None = None

    def _enter_trading_phase(self, phase: BattlePhase) -> None:
        self._phase = phase
        self._day = 0
        decision = self.config.bot.decision_interval_seconds if phase is BattlePhase.AUTONOMOUS else None
        self._clock = PhaseClock(self.config.phase_seconds, self.config.seconds_per_day, decision)
        owner = PHASE_OWNER[phase]
        self._trends[owner] = [TrendPoint(day=0, value=self.portfolio_value(owner))]
        logger.info("Entering %s phase (%.0fs countdown).", phase.value, self.config.phase_seconds)

    def _end_trading_phase(self) -> None:
        owner = PHASE_OWNER[self._phase]
        broker = self._brokers[owner]
        broker.finalize(closing_prices=self._market.instrument_map())
        self._cancel_clock()
        logger.info(
            "%s phase over: %s finishes at $%.2f.",
            self._phase.value,
            owner.value,
            broker.total_value(broker.closing_prices or {}),
        )
        if self._phase is BattlePhase.HUMAN:
            self._enter_trading_phase(BattlePhase.AUTONOMOUS)
        else:
            self._phase = BattlePhase.ROBO_ADVISOR
            self._day = 0
            logger.info("Entering robo_advisor phase.")

    def _enter_results(self) -> None:
        self._phase = BattlePhase.RESULTS
        self._result = evaluate(
            {p: b.get_portfolio() for p, b in self._brokers.items()},
            self._market.instrument_map(),
            self.config.battle,
            trends=self._trends,
            closing_prices={
                p: b.closing_prices for p, b in self._brokers.items() if b.closing_prices is not None
            },
        )

    def _on_market_tick(self) -> None:
        event = self._pending_events.pop(0) if self._pending_events else None
        self._market.tick(event)
        self._day = min(self._day + 1, self.config.battle.timeframe_days)
        owner = PHASE_OWNER[self._phase]
        self._trends[owner].append(TrendPoint(day=self._day, value=self.portfolio_value(owner)))

    def _on_bot_decision(self) -> None:
        if self._phase is not BattlePhase.AUTONOMOUS or not self.trading_open:
            return
        broker = self._brokers[Participant.AUTONOMOUS_BOT]
        intents = self._bot.decide(self.snapshot(), broker.get_portfolio())
        for intent in intents:
            self._execute(intent)

    def _on_countdown_expired(self) -> None:
        logger.info("%s countdown expired on day %d.", self._phase.value, self._day)
        if self.config.advance_policy == "auto":
            self._end_trading_phase()

    def _execute(self, intent: TradeIntent) -> TradeResult:
        result = self._brokers[intent.owner].execute(
            intent, self._market.instrument_map(), day=self._day
        )
        if result.accepted:
            logger.info("Day %d: %s", self._day, result.message)
        return result

    def _cancel_clock(self) -> None:
        if self._clock is not None:
            self._clock.cancel()
        self._clock = None

    def _require_phase(self, phase: BattlePhase, action: str) -> None:
        if self._phase is not phase:
            raise PhaseTransitionError(
                f"Cannot {action} in the {self._phase.value} phase (requires {phase.value})."
            )

    def _ensure_open(self) -> None:
        if self._closed:
            raise PhaseTransitionError("The battle session is closed.")
