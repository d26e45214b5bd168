"""Robo-advisor policy: delegates the whole turn to an external simulation.

The robo-advisor never trades instruments. It asks the simulation API for a
projected final value and adopts it as an all-cash final state. When the API
is missing, unreachable or answers with garbage, a local growth formula
stands in so the battle always reaches Results. The fallback's strategy label
always starts with "Fallback" so results make the difference visible.
"""

from __future__ import annotations

import logging
import math
import random

from agents.base import TradingPolicy
from api_client.investease import ExternalSimulationUnavailable, ExternalSimulator, SimulationResult
from models.config import BattleConfig, RoboAdvisorConfig
from models.instrument import MarketSnapshot
from models.portfolio import Participant, Portfolio
from models.result import RoboAdvisorOutcome, TrendPoint
from models.trade import TradeIntent

logger = logging.getLogger(__name__)

FALLBACK_STYLES = ["balanced", "conservative", "aggressive", "growth-focused"]


class RoboAdvisorPolicy(TradingPolicy):
    """Projects a final value through *simulator*, or falls back to a local formula."""

    owner = Participant.ROBO_ADVISOR

    def __init__(
        self,
        config: RoboAdvisorConfig | None = None,
        simulator: ExternalSimulator | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or RoboAdvisorConfig()
        self._simulator = simulator
        self._rng = rng or random.Random()

    def decide(self, snapshot: MarketSnapshot, portfolio: Portfolio) -> list[TradeIntent]:
        return []

    async def simulate(self, battle: BattleConfig) -> RoboAdvisorOutcome:
        """Return the robo-advisor's final state for *battle*. Never raises."""
        if self._simulator is None:
            logger.info("No simulation API configured; using fallback growth.")
            return self.fallback(battle)

        months = max(1, math.ceil(battle.timeframe_days / 30))
        try:
            result = await self._simulator.simulate_portfolio(battle.starting_cash, months)
        except ExternalSimulationUnavailable as exc:
            logger.warning("Simulation API unavailable, using fallback: %s", exc)
            return self.fallback(battle)
        except Exception:
            logger.exception("Unexpected simulation failure, using fallback.")
            return self.fallback(battle)

        return self._adopt(result, battle)

    def fallback(self, battle: BattleConfig) -> RoboAdvisorOutcome:
        """Local stand-in: fixed growth drawn once, plus a synthetic daily trend."""
        style = self._rng.choice(FALLBACK_STYLES)
        growth_rate = self._rng.uniform(self.config.fallback_growth_min, self.config.fallback_growth_max)
        final_value = battle.starting_cash * (1 + growth_rate)
        trend = fallback_trend(
            battle.starting_cash,
            final_value,
            battle.timeframe_days,
            noise_pct=self.config.daily_noise_pct,
            max_drawdown=self.config.max_drawdown,
            rng=self._rng,
        )
        label = f"Fallback {style.capitalize()} Strategy"
        logger.info(
            "Fallback robo-advisor: %s, growth %.2f%%, final $%.2f.",
            label,
            growth_rate * 100,
            final_value,
        )
        return RoboAdvisorOutcome(
            final_value=final_value,
            strategy_label=label,
            trend=trend,
            source="fallback",
            growth_rate=growth_rate,
        )

    @staticmethod
    def _adopt(result: SimulationResult, battle: BattleConfig) -> RoboAdvisorOutcome:
        if result.growth_trend:
            trend = [TrendPoint(day=i, value=p.value) for i, p in enumerate(result.growth_trend)]
        else:
            trend = [
                TrendPoint(day=0, value=battle.starting_cash),
                TrendPoint(day=battle.timeframe_days, value=result.final_value),
            ]
        return RoboAdvisorOutcome(
            final_value=result.final_value,
            strategy_label=result.strategy,
            trend=trend,
            source="external",
        )


def fallback_trend(
    start: float,
    final: float,
    days: int,
    *,
    noise_pct: float,
    max_drawdown: float,
    rng: random.Random,
) -> list[TrendPoint]:
    """Straight line from *start* (day 0) to *final* (day *days*) with bounded noise.

    Interior days deviate by at most ``noise_pct`` percent of the line value;
    no point falls below ``start * (1 - max_drawdown)``.
    """
    floor = start * (1 - max_drawdown)
    points: list[TrendPoint] = []
    for day in range(days + 1):
        value = start + (final - start) * day / days
        if 0 < day < days:
            value += value * rng.uniform(-noise_pct, noise_pct) / 100
        points.append(TrendPoint(day=day, value=max(floor, value)))
    return points
