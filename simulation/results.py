"""Results evaluator: final values, percentage returns and the winner."""

from __future__ import annotations

import logging
from typing import Mapping

from models.config import BattleConfig
from models.instrument import Instrument
from models.portfolio import TIE_BREAK_ORDER, Participant, Portfolio
from models.result import BattleResult, ParticipantResult, TrendPoint
from simulation.ledger import total_value

logger = logging.getLogger(__name__)


def return_percent(final_value: float, starting_cash: float) -> float:
    return (final_value - starting_cash) / starting_cash * 100


def pick_winner(returns: Mapping[Participant, float]) -> Participant:
    """Strict argmax over *returns*; equal returns go to the earlier participant
    in ``TIE_BREAK_ORDER``."""
    best: Participant | None = None
    for participant in TIE_BREAK_ORDER:
        if participant not in returns:
            continue
        if best is None or returns[participant] > returns[best]:
            best = participant
    if best is None:
        raise ValueError("Cannot pick a winner without any participant returns.")
    return best


def evaluate(
    portfolios: Mapping[Participant, Portfolio],
    instruments: Mapping[str, Instrument],
    config: BattleConfig,
    trends: Mapping[Participant, list[TrendPoint]] | None = None,
    closing_prices: Mapping[Participant, Mapping[str, Instrument]] | None = None,
) -> BattleResult:
    """Value every portfolio and build the immutable ``BattleResult``.

    Each participant is valued against its entry in *closing_prices* when one
    is given, else against *instruments*. The robo-advisor's settled
    portfolio is all cash, so the prices used for it do not matter.
    """
    if not portfolios:
        raise ValueError("evaluate() needs at least one portfolio.")

    closing_prices = closing_prices or {}
    per_participant: dict[Participant, ParticipantResult] = {}
    for participant in TIE_BREAK_ORDER:
        portfolio = portfolios.get(participant)
        if portfolio is None:
            continue
        prices = closing_prices.get(participant) or instruments
        final_value = total_value(portfolio, prices)
        per_participant[participant] = ParticipantResult(
            final_value=final_value,
            return_percent=return_percent(final_value, config.starting_cash),
            strategy_label=portfolio.strategy_label,
        )

    winner = pick_winner({p: r.return_percent for p, r in per_participant.items()})
    logger.info(
        "Battle result: winner=%s (%s)",
        winner.value,
        ", ".join(f"{p.value}={r.return_percent:+.2f}%" for p, r in per_participant.items()),
    )
    return BattleResult(
        starting_cash=config.starting_cash,
        per_participant=per_participant,
        winner=winner,
        trends={p: list(points) for p, points in (trends or {}).items()},
    )
