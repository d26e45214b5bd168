"""Tests for the battle session state machine.

Tests cover:
1. Phase order and automatic advancement at countdown expiry
2. Manual advancement: trading closes at expiry, proceed() moves on
3. Phase exclusivity: only the active phase's owner may trade
4. The human round-trip scenario (1.0% return)
5. Bot decisions see the prices of the tick that preceded them
6. Market events, trends and closing-price valuation
7. Robo-advisor turn, results, completion and profile-store failures
8. Illegal transitions, restart and close
9. Malformed orders come back as rejections
"""

from __future__ import annotations

import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from agents.robo_advisor import RoboAdvisorPolicy
from models.config import BattleConfig, BotConfig, SessionConfig
from models.instrument import Instrument, MarketEvent
from models.portfolio import Participant
from models.result import BattlePhase, RoboAdvisorOutcome
from models.trade import RejectionReason
from simulation.battle import BattleSession, PhaseTransitionError
from simulation.market import MarketModel

HUMAN = Participant.HUMAN
BOT = Participant.AUTONOMOUS_BOT
ROBO = Participant.ROBO_ADVISOR


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class _SequenceRandom:
    """Returns scripted uniform draws in order, then *default*."""

    def __init__(self, draws: list[float], default: float = 0.0) -> None:
        self._draws = list(draws)
        self._default = default

    def uniform(self, a: float, b: float) -> float:
        return self._draws.pop(0) if self._draws else self._default

    def choice(self, seq):
        return seq[0]

    def random(self) -> float:
        return 0.0


def _inst(symbol: str, price: float, sector: str = "Technology") -> Instrument:
    return Instrument(symbol=symbol, name=symbol, sector=sector, price=price, prior_price=price)


def _config(advance_policy: str = "auto", days: int = 3) -> SessionConfig:
    return SessionConfig(
        battle=BattleConfig(timeframe_days=days, starting_cash=10_000.0),
        bot=BotConfig(decision_interval_seconds=1.0),
        seconds_per_day=1.0,
        advance_policy=advance_policy,
    )


def _session(
    moves: list[float] | None = None,
    advance_policy: str = "auto",
    instruments: list[Instrument] | None = None,
    **kwargs,
) -> BattleSession:
    config = _config(advance_policy)
    market = MarketModel(config.market, _SequenceRandom(moves or []))
    market.load(instruments or [_inst("TECH", 100.0)])
    kwargs.setdefault("robo_policy", RoboAdvisorPolicy(config.robo_advisor, rng=_SequenceRandom([], default=0.025)))
    return BattleSession(config, rng=random.Random(0), market=market, **kwargs)


def _run_async(coro):
    return asyncio.run(coro)


def _play_to_robo(session: BattleSession) -> None:
    session.start()
    session.advance(3)
    session.advance(3)


# ---------------------------------------------------------------
# Phase order
# ---------------------------------------------------------------

class TestPhaseOrder:
    def test_starts_in_setup(self):
        assert _session().phase is BattlePhase.SETUP

    def test_auto_advances_through_trading_phases(self):
        session = _session()
        session.start()
        assert session.phase is BattlePhase.HUMAN
        assert session.seconds_remaining == 3
        session.advance(3)
        assert session.phase is BattlePhase.AUTONOMOUS
        assert session.current_day == 0
        assert session.seconds_remaining == 3
        session.advance(3)
        assert session.phase is BattlePhase.ROBO_ADVISOR

    def test_day_counts_ticks_within_phase(self):
        session = _session()
        session.start()
        session.advance(2)
        assert session.current_day == 2
        assert session.seconds_remaining == 1

    def test_time_past_expiry_carries_into_next_phase(self):
        session = _session()
        session.start()
        session.advance(4.5)
        assert session.phase is BattlePhase.AUTONOMOUS
        assert session.phase_elapsed == pytest.approx(1.5)
        assert session.current_day == 1
        assert session.portfolio(HUMAN).finalized

    def test_one_large_step_runs_both_trading_phases(self):
        session = _session()
        session.start()
        session.advance(7)
        assert session.phase is BattlePhase.ROBO_ADVISOR
        assert session.portfolio(BOT).finalized

    def test_manual_policy_does_not_carry_time(self):
        session = _session(advance_policy="manual")
        session.start()
        session.advance(4.5)
        session.proceed()
        assert session.phase is BattlePhase.AUTONOMOUS
        assert session.phase_elapsed == 0.0

    def test_full_battle_auto(self):
        session = _session()
        _play_to_robo(session)
        _run_async(session.run_robo_advisor())
        assert session.phase is BattlePhase.RESULTS
        result = _run_async(session.complete())
        assert session.phase is BattlePhase.COMPLETE
        assert set(result.per_participant) == {HUMAN, BOT, ROBO}


class TestManualAdvance:
    def test_waits_at_expiry(self):
        session = _session(advance_policy="manual")
        session.start()
        session.advance(10)
        assert session.phase is BattlePhase.HUMAN
        assert session.countdown_expired
        assert not session.trading_open
        result = session.submit_human_trade("TECH", "buy", 1)
        assert result.reason is RejectionReason.PHASE_INACTIVE

    def test_proceed_before_expiry_is_illegal(self):
        session = _session(advance_policy="manual")
        session.start()
        session.advance(1)
        with pytest.raises(PhaseTransitionError):
            session.proceed()

    def test_proceed_walks_all_phases(self):
        session = _session(advance_policy="manual")
        session.start()
        session.advance(3)
        session.proceed()
        assert session.phase is BattlePhase.AUTONOMOUS
        session.advance(3)
        session.proceed()
        assert session.phase is BattlePhase.ROBO_ADVISOR
        with pytest.raises(PhaseTransitionError):
            session.proceed()
        _run_async(session.run_robo_advisor())
        assert session.phase is BattlePhase.ROBO_ADVISOR
        session.proceed()
        assert session.phase is BattlePhase.RESULTS
        assert session.result is not None


# ---------------------------------------------------------------
# Trading
# ---------------------------------------------------------------

class TestPhaseExclusivity:
    def test_no_trading_in_setup(self):
        session = _session()
        result = session.submit_human_trade("TECH", "buy", 1)
        assert result.reason is RejectionReason.PHASE_INACTIVE

    def test_bot_cannot_trade_in_human_phase(self):
        session = _session()
        session.start()
        result = session.submit_trade(BOT, "TECH", "buy", 1)
        assert result.reason is RejectionReason.PHASE_INACTIVE
        assert session.portfolio(BOT).cash == 10_000.0

    def test_human_cannot_trade_after_own_phase(self):
        session = _session()
        session.start()
        session.advance(3)
        result = session.submit_human_trade("TECH", "buy", 1)
        assert result.reason is RejectionReason.PHASE_INACTIVE
        assert session.portfolio(HUMAN).finalized

    def test_robo_never_trades_instruments(self):
        session = _session()
        _play_to_robo(session)
        result = session.submit_trade(ROBO, "TECH", "buy", 1)
        assert result.reason is RejectionReason.PHASE_INACTIVE

    def test_unknown_symbol_rejected(self):
        session = _session()
        session.start()
        assert session.submit_human_trade("NOPE", "buy", 1).reason is RejectionReason.UNKNOWN_SYMBOL

    def test_symbol_is_case_insensitive_for_human(self):
        session = _session()
        session.start()
        assert session.submit_human_trade("tech", "buy", 1).accepted


class TestOrderValidation:
    @pytest.mark.parametrize("owner,advances", [(HUMAN, 0), (BOT, 1)])
    def test_bad_side_is_rejected_not_raised(self, owner, advances):
        session = _session()
        session.start()
        for _ in range(advances):
            session.advance(3)
        before = session.portfolio(owner)
        result = session.submit_trade(owner, "TECH", "hold", 1)
        assert result.status == "rejected"
        assert result.reason is RejectionReason.INVALID_ORDER
        assert result.portfolio == before
        assert session.portfolio(owner) == before
        assert session.trades(owner) == []

    @pytest.mark.parametrize("shares", [1.9, 0.5, "2", None, True])
    def test_non_whole_share_count_rejected(self, shares):
        session = _session()
        session.start()
        result = session.submit_human_trade("TECH", "buy", shares)
        assert result.reason is RejectionReason.INVALID_QUANTITY
        assert session.portfolio(HUMAN).cash == 10_000.0
        assert session.portfolio(HUMAN).holdings == {}

    def test_whole_float_share_count_accepted(self):
        session = _session()
        session.start()
        result = session.submit_human_trade("TECH", "buy", 2.0)
        assert result.accepted
        assert session.portfolio(HUMAN).holdings == {"TECH": 2}


class TestHumanScenario:
    def test_round_trip_returns_one_percent(self):
        session = _session(moves=[10.0])
        session.start()

        bought = session.submit_human_trade("TECH", "buy", 10)
        assert bought.accepted
        assert bought.portfolio.cash == pytest.approx(9_000.0)
        assert bought.portfolio.holdings == {"TECH": 10}

        session.advance(1)
        assert session.snapshot().by_symbol()["TECH"].price == pytest.approx(110.0)
        assert session.portfolio_value(HUMAN) == pytest.approx(10_100.0)

        sold = session.submit_human_trade("TECH", "sell", 10)
        assert sold.accepted
        assert sold.portfolio.cash == pytest.approx(10_100.0)
        assert sold.portfolio.holdings == {}

        session.advance(2)
        session.advance(3)
        _run_async(session.run_robo_advisor())
        assert session.result.per_participant[HUMAN].return_percent == pytest.approx(1.0)

    def test_trade_records_day(self):
        session = _session()
        session.start()
        session.advance(2)
        result = session.submit_human_trade("TECH", "buy", 1)
        assert result.trade.day == 2
        assert session.trades(HUMAN)[0].trade_id == result.trade.trade_id


class TestBotDecisions:
    def test_bot_trades_against_fresh_tick(self):
        # Human phase: three flat ticks. Autonomous day 1: TECH drops 3%.
        session = _session(moves=[0.0, 0.0, 0.0, -3.0])
        session.start()
        session.advance(3)
        session.advance(1)
        bot = session.portfolio(BOT)
        assert bot.holdings == {"TECH": 1}
        assert bot.cash == pytest.approx(10_000.0 - 97.0)
        assert session.trades(BOT)[0].price == pytest.approx(97.0)

    def test_bot_idle_during_human_phase(self):
        session = _session(moves=[-3.0, -3.0, -3.0])
        session.start()
        session.advance(3)
        assert session.trades(BOT) == []

    def test_bot_stops_at_phase_end(self):
        session = _session(moves=[0.0, 0.0, 0.0, 0.0, 0.0, -3.0])
        session.start()
        session.advance(3)
        session.advance(3)
        # The -3% move lands on the final tick, where no decision is scheduled.
        assert session.trades(BOT) == []
        assert session.portfolio(BOT).finalized


# ---------------------------------------------------------------
# Market events, trends, valuation
# ---------------------------------------------------------------

class TestMarketAndTrends:
    def test_queued_event_applies_on_next_tick(self):
        session = _session()
        session.start()
        session.queue_market_event(
            MarketEvent(title="Chip boom", impact="positive", affected_sectors=["Technology"], multiplier=1.05)
        )
        session.advance(1)
        assert session.snapshot().by_symbol()["TECH"].price == pytest.approx(105.0)
        session.advance(1)
        assert session.snapshot().by_symbol()["TECH"].price == pytest.approx(105.0)

    def test_trend_has_day_zero_and_one_point_per_tick(self):
        session = _session(moves=[10.0])
        session.start()
        session.submit_human_trade("TECH", "buy", 10)
        session.advance(3)
        trend = session.trends()[HUMAN]
        assert [p.day for p in trend] == [0, 1, 2, 3]
        assert trend[0].value == pytest.approx(10_000.0)
        assert trend[1].value == pytest.approx(10_100.0)

    def test_human_valued_at_own_closing_prices(self):
        # TECH rises 10% in the human phase, then halves in the autonomous phase.
        session = _session(moves=[10.0, 0.0, 0.0, -50.0])
        session.start()
        session.submit_human_trade("TECH", "buy", 10)
        session.advance(3)
        session.advance(3)
        _run_async(session.run_robo_advisor())
        assert session.result.per_participant[HUMAN].final_value == pytest.approx(10_100.0)


# ---------------------------------------------------------------
# Robo-advisor, results and completion
# ---------------------------------------------------------------

class TestRoboAdvisorTurn:
    def test_fallback_settles_portfolio(self):
        session = _session()
        _play_to_robo(session)
        outcome = _run_async(session.run_robo_advisor())
        assert outcome.source == "fallback"
        assert outcome.final_value == pytest.approx(10_250.0)
        robo = session.portfolio(ROBO)
        assert robo.cash == pytest.approx(10_250.0)
        assert robo.strategy_label.startswith("Fallback")
        assert session.result.winner is ROBO

    def test_pending_flag_while_in_flight(self):
        seen = []

        class _ObservingRobo:
            async def simulate(self, battle):
                seen.append(session.robo_pending)
                return RoboAdvisorOutcome(final_value=10_000.0, strategy_label="Flat", source="external")

        session = _session(robo_policy=_ObservingRobo())
        _play_to_robo(session)
        _run_async(session.run_robo_advisor())
        assert seen == [True]
        assert not session.robo_pending

    def test_cannot_run_twice(self):
        session = _session(advance_policy="manual")
        session.start()
        session.advance(3)
        session.proceed()
        session.advance(3)
        session.proceed()
        _run_async(session.run_robo_advisor())
        with pytest.raises(PhaseTransitionError):
            _run_async(session.run_robo_advisor())

    def test_outcome_discarded_after_restart(self):
        class _RestartingRobo:
            async def simulate(self, battle):
                session.restart()
                return RoboAdvisorOutcome(final_value=99_999.0, strategy_label="Stale", source="external")

        session = BattleSession(_config(), rng=random.Random(3), robo_policy=_RestartingRobo())
        _play_to_robo(session)
        _run_async(session.run_robo_advisor())
        assert session.phase is BattlePhase.SETUP
        assert session.portfolio(ROBO).cash == 10_000.0
        assert session.robo_outcome is None


class TestCompletion:
    def test_result_recorded_in_profile_store(self):
        store = AsyncMock()
        session = _session(profile_store=store, user_id="alice")
        _play_to_robo(session)
        _run_async(session.run_robo_advisor())
        result = _run_async(session.complete())
        store.record_battle_result.assert_awaited_once_with("alice", result)

    def test_store_failure_is_logged_not_raised(self, caplog):
        store = AsyncMock()
        store.record_battle_result.side_effect = RuntimeError("backend down")
        session = _session(profile_store=store)
        _play_to_robo(session)
        _run_async(session.run_robo_advisor())
        result = _run_async(session.complete())
        assert result.winner is not None
        assert session.phase is BattlePhase.COMPLETE
        assert "Failed to record battle result" in caplog.text

    def test_result_computed_once(self):
        session = _session()
        _play_to_robo(session)
        _run_async(session.run_robo_advisor())
        first = session.result
        _run_async(session.complete())
        assert session.result is first


# ---------------------------------------------------------------
# Illegal transitions, restart, close
# ---------------------------------------------------------------

class TestLifecycle:
    def test_start_twice_is_illegal(self):
        session = _session()
        session.start()
        with pytest.raises(PhaseTransitionError):
            session.start()

    def test_complete_before_results_is_illegal(self):
        session = _session()
        session.start()
        with pytest.raises(PhaseTransitionError):
            _run_async(session.complete())

    def test_complete_without_result_raises(self):
        session = _session()
        session._phase = BattlePhase.RESULTS
        with pytest.raises(PhaseTransitionError, match="No battle result"):
            _run_async(session.complete())

    def test_robo_outside_its_phase_is_illegal(self):
        session = _session()
        session.start()
        with pytest.raises(PhaseTransitionError):
            _run_async(session.run_robo_advisor())

    def test_restart_resets_everything(self):
        session = BattleSession(_config(), rng=random.Random(5))
        session.start()
        first_prices = session.snapshot().prices
        session.submit_human_trade("TECH", "buy", 1)
        session.restart()
        assert session.phase is BattlePhase.SETUP
        assert session.trades(HUMAN) == []
        assert session.portfolio(HUMAN).cash == 10_000.0
        assert session.advance(5) == []
        assert session.snapshot().prices != first_prices
        session.start()
        assert session.phase is BattlePhase.HUMAN

    def test_close_makes_session_unusable(self):
        session = _session()
        session.start()
        session.close()
        assert session.closed
        with pytest.raises(PhaseTransitionError):
            session.advance(1)
        with pytest.raises(PhaseTransitionError):
            session.submit_human_trade("TECH", "buy", 1)

    def test_advance_outside_trading_is_noop(self):
        session = _session()
        _play_to_robo(session)
        assert session.advance(10) == []
