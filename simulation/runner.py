"""Async battle runner: drives one battle in real time.

Lifecycle:
    1. Build the session and its collaborators from config.
    2. Ask the narrator for a market outlook.
    3. For each trading phase (human, autonomous):
        a. Optionally ask the narrator for a market event.
        b. Loop: sleep, feed elapsed time to the session, replay any due
           scripted human trades, until the phase ends.
    4. Run the robo-advisor.
    5. Complete the battle (records it in the profile store).
    6. Write result, trades, narrator trace and summary.

The clock and sleep functions are injectable so tests can run a full battle
without waiting for it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from api_client.investease import InvestEaseClient
from api_client.llm.narrator import MarketNarrator, Prediction
from api_client.profile_store import HttpProfileStore, InMemoryProfileStore, ProfileStore
from models.config import SessionConfig
from models.portfolio import Participant
from models.result import BattlePhase, BattleResult
from models.trade import ScheduledTrade
from simulation.battle import BattleSession
from simulation.sim_logging import BattleLogger, run_name_from_config_path

logger = logging.getLogger(__name__)


class AsyncBattleRunner:
    """Runs a single battle from Setup to Complete."""

    def __init__(
        self,
        config: SessionConfig,
        config_yaml_path: str | None = None,
        output_dir: str | None = "results",
        *,
        user_id: str = "anonymous",
        token: str | None = None,
        session: BattleSession | None = None,
        narrator: MarketNarrator | None = None,
        profile_store: ProfileStore | None = None,
        poll_seconds: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._config_yaml_path = config_yaml_path
        self._run_name = run_name_from_config_path(config_yaml_path)
        self._battle_logger = (
            BattleLogger(output_dir, config, self._run_name) if output_dir is not None else None
        )
        self._poll_seconds = poll_seconds
        self._clock = clock
        self._sleep = sleep

        if narrator is None and config.narrator.enabled:
            narrator = MarketNarrator(config.narrator)
        self._narrator = narrator
        self._prediction: Prediction | None = None

        if session is None:
            session = BattleSession(
                config,
                user_id=user_id,
                simulator=_build_simulator(config, token),
                profile_store=profile_store or _build_profile_store(config, token),
            )
        self._session = session

    @property
    def session(self) -> BattleSession:
        return self._session

    async def run(self) -> BattleResult:
        """Execute the full battle and return its result."""
        if self._battle_logger is not None:
            self._battle_logger.init_run(self._config_yaml_path)

        logger.info(
            "Starting battle '%s': %d days per phase, %.1fs per day.",
            self._run_name,
            self._config.battle.timeframe_days,
            self._config.seconds_per_day,
        )
        session = self._session
        try:
            session.start()
            self._prediction = await self._predict()
            await self._run_trading_phase(BattlePhase.HUMAN)
            await self._run_trading_phase(BattlePhase.AUTONOMOUS)

            await session.run_robo_advisor()
            if session.phase is BattlePhase.ROBO_ADVISOR:
                session.proceed()
            result = await session.complete()
        except BaseException:
            session.close()
            raise

        if self._battle_logger is not None:
            self._battle_logger.write_result(result)
            self._battle_logger.write_trades({p: session.trades(p) for p in Participant})
            if self._narrator is not None:
                self._battle_logger.write_narrator_trace(self._narrator.trace)
            self._battle_logger.finalize(self._build_summary(result))
            logger.info("Battle '%s' complete. Output: %s", self._run_name, self._battle_logger.run_dir)
        return result

    # ------------------------------------------------------------------
    # Phase execution
    # ------------------------------------------------------------------

    async def _run_trading_phase(self, phase: BattlePhase) -> None:
        session = self._session
        await self._narrate()

        script: list[ScheduledTrade] = []
        if phase is BattlePhase.HUMAN:
            script = sorted(self._config.human_script, key=lambda s: s.at_second)

        last = self._clock()
        while session.phase is phase:
            await self._sleep(self._poll_seconds)
            now = self._clock()
            session.advance(now - last)
            last = now

            while (
                script
                and session.phase is phase
                and session.trading_open
                and script[0].at_second <= session.phase_elapsed
            ):
                command = script.pop(0)
                result = session.submit_human_trade(command.symbol, command.side, command.shares)
                if not result.accepted:
                    logger.warning("Scripted %s of %s rejected: %s", command.side, command.symbol, result.message)

            if session.phase is phase and session.countdown_expired:
                # Manual advancement: nobody is at the keyboard to press "next".
                session.proceed()

    async def _predict(self) -> Prediction | None:
        if self._narrator is None:
            return None
        prediction = await asyncio.to_thread(
            self._narrator.predict, self._session.snapshot(), self._config.battle.timeframe_days
        )
        logger.info(
            "Narrator outlook: %+.2f%% (confidence %.2f).",
            prediction.prediction_percent,
            prediction.confidence,
        )
        return prediction

    async def _narrate(self) -> None:
        if self._narrator is None:
            return
        event = await asyncio.to_thread(self._narrator.generate_event, self._session.snapshot())
        if event is not None:
            self._session.queue_market_event(event)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def _build_summary(self, result: BattleResult) -> dict[str, Any]:
        """Build a lightweight summary dict for the run."""
        battle = self._config.battle
        participants = {}
        for participant, outcome in result.per_participant.items():
            participants[participant.value] = {
                "final_value": outcome.final_value,
                "return_pct": outcome.return_percent,
                "strategy_label": outcome.strategy_label,
                "total_trades": len(self._session.trades(participant)),
            }

        human_profit = result.per_participant[Participant.HUMAN].final_value - battle.starting_cash
        summary: dict[str, Any] = {
            "run_name": self._run_name,
            "winner": result.winner.value,
            "starting_cash": battle.starting_cash,
            "timeframe_days": battle.timeframe_days,
            "participants": participants,
        }
        if self._prediction is not None:
            summary["narrator_prediction"] = self._prediction.model_dump()
        bot_metrics = self._session.bot_policy.performance_metrics()
        if bot_metrics:
            summary["bot_metrics"] = bot_metrics
        if battle.goal_cost_target > 0:
            summary["goal"] = {
                "label": battle.goal_label,
                "cost_target": battle.goal_cost_target,
                "human_profit": human_profit,
                "progress_pct": max(0.0, human_profit) / battle.goal_cost_target * 100,
            }
        return summary


def _build_simulator(config: SessionConfig, token: str | None) -> InvestEaseClient | None:
    robo = config.robo_advisor
    if robo.base_url is None:
        return None
    return InvestEaseClient(
        robo.base_url,
        token,
        timeout=robo.timeout_seconds,
        client_name=robo.client_name,
        client_email=robo.client_email,
    )


def _build_profile_store(config: SessionConfig, token: str | None) -> ProfileStore:
    store = config.profile_store
    if store.base_url is None:
        return InMemoryProfileStore()
    return HttpProfileStore(store.base_url, token, timeout=store.timeout_seconds)
