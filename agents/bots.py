"""Autonomous bot policies.

Both bots are deliberately simple heuristics, not optimisers:

* ``threshold``: buys dips and trims rallies using fixed percentage
  thresholds. This is the default autonomous bot.
* ``contrarian``: the "buy high, sell low" opponent, which chases the biggest
  riser and dumps its worst holding most of the time.
"""

from __future__ import annotations

import logging
import random

from agents.base import TradingPolicy
from agents.registry import register
from models.config import BotConfig
from models.instrument import Instrument, MarketSnapshot
from models.portfolio import Participant, Portfolio
from models.trade import TradeIntent

logger = logging.getLogger(__name__)


@register("threshold")
class ThresholdBotPolicy(TradingPolicy):
    """Buy a small lot on a sharp drop, sell part of the position on a sharp rise.

    Instruments are visited in snapshot order. Cash and holdings are tracked
    across the intents of one decision, so every intent returned is
    executable against the portfolio that was passed in.
    """

    owner = Participant.AUTONOMOUS_BOT

    def __init__(self, config: BotConfig | None = None, rng: random.Random | None = None) -> None:
        self.config = config or BotConfig()
        self._rng = rng or random.Random()

    def decide(self, snapshot: MarketSnapshot, portfolio: Portfolio) -> list[TradeIntent]:
        cash = portfolio.cash
        holdings = dict(portfolio.holdings)
        intents: list[TradeIntent] = []

        for inst in snapshot.instruments:
            held = holdings.get(inst.symbol, 0)

            if inst.change_percent < self.config.buy_threshold_pct:
                lot = self.config.buy_lot
                cost = lot * inst.price
                if cost <= cash:
                    intents.append(
                        TradeIntent(
                            owner=self.owner,
                            symbol=inst.symbol,
                            side="buy",
                            shares=lot,
                            reasoning=f"{inst.symbol} down {abs(inst.change_percent):.2f}%, buying the dip.",
                        )
                    )
                    cash -= cost
                    holdings[inst.symbol] = held + lot

            elif inst.change_percent > self.config.sell_threshold_pct and held > 0:
                shares = max(1, int(held * self.config.sell_fraction))
                intents.append(
                    TradeIntent(
                        owner=self.owner,
                        symbol=inst.symbol,
                        side="sell",
                        shares=shares,
                        reasoning=f"{inst.symbol} up {inst.change_percent:.2f}%, taking profit.",
                    )
                )
                cash += shares * inst.price
                holdings[inst.symbol] = held - shares

        return intents


@register("contrarian")
class ContrarianBotPolicy(TradingPolicy):
    """Makes bad trades on purpose: buys the top riser, sells the worst holding."""

    owner = Participant.AUTONOMOUS_BOT

    # Probability of taking the "bad" trade when one is available.
    BAD_DECISION_PROBABILITY = 0.9

    def __init__(self, config: BotConfig | None = None, rng: random.Random | None = None) -> None:
        self.config = config or BotConfig()
        self._rng = rng or random.Random()
        self._history: list[TradeIntent] = []

    def decide(self, snapshot: MarketSnapshot, portfolio: Portfolio) -> list[TradeIntent]:
        rising = _rising(snapshot.instruments)
        falling_owned = _falling_owned(snapshot.instruments, portfolio.holdings)
        top = rising[0] if rising else None

        if self._rng.random() < self.BAD_DECISION_PROBABILITY:
            if top is not None and portfolio.cash >= top.price:
                max_shares = int(portfolio.cash // top.price)
                shares = min(max_shares, self._rng.randint(2, 6))
                return self._record(
                    top.symbol,
                    "buy",
                    shares,
                    f"BUYING HIGH! {top.symbol} is up {top.change_percent:.2f}% - perfect time to buy at peak!",
                )

            if falling_owned:
                worst = falling_owned[0]
                owned = portfolio.holdings.get(worst.symbol, 0)
                shares = min(owned, self._rng.randint(2, 4))
                return self._record(
                    worst.symbol,
                    "sell",
                    shares,
                    f"SELLING LOW! {worst.symbol} is down {abs(worst.change_percent):.2f}% - time to panic sell!",
                )

        if top is not None and portfolio.cash >= top.price:
            return self._record(
                top.symbol,
                "buy",
                1,
                f"FALLBACK BUY! Buying {top.symbol} at ${top.price:.2f} because I need to trade something!",
            )

        logger.debug("Contrarian bot holding: nothing affordable to buy or sell.")
        return []

    def reset(self) -> None:
        self._history = []

    def performance_metrics(self) -> dict[str, int]:
        """Count how often the bot managed to buy high and sell low."""
        return {
            "total_trades": len(self._history),
            "buy_high_count": sum(
                1 for t in self._history if t.side == "buy" and "BUYING HIGH" in t.reasoning
            ),
            "sell_low_count": sum(
                1 for t in self._history if t.side == "sell" and "SELLING LOW" in t.reasoning
            ),
        }

    def _record(self, symbol: str, side: str, shares: int, reasoning: str) -> list[TradeIntent]:
        intent = TradeIntent(owner=self.owner, symbol=symbol, side=side, shares=shares, reasoning=reasoning)  # type: ignore[arg-type]
        self._history.append(intent)
        return [intent]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _rising(instruments: list[Instrument]) -> list[Instrument]:
    """Non-negative movers, biggest change first, then most expensive."""
    return sorted(
        (i for i in instruments if i.change_percent >= 0),
        key=lambda i: (-i.change_percent, -i.price),
    )


def _falling_owned(instruments: list[Instrument], holdings: dict[str, int]) -> list[Instrument]:
    """Held instruments, most negative change first, then cheapest."""
    return sorted(
        (i for i in instruments if holdings.get(i.symbol, 0) > 0),
        key=lambda i: (i.change_percent, i.price),
    )
