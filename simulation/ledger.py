"""Portfolio ledger: solvency rules, valuation and per-participant brokers.

The module-level functions are pure: they take a ``Portfolio`` and return a
``TradeResult`` carrying an updated copy, or a rejection with the input
portfolio untouched. ``Broker`` wraps them with the canonical state, price
resolution and trade history for one participant over one battle.
"""

from __future__ import annotations

import logging
import uuid
from typing import Literal, Mapping

from models.instrument import Instrument
from models.portfolio import Participant, Portfolio
from models.trade import ExecutedTrade, RejectionReason, TradeIntent, TradeResult

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Pure ledger operations
# ------------------------------------------------------------------

def buy(portfolio: Portfolio, symbol: str, shares: int, unit_price: float) -> TradeResult:
    """Debit ``shares * unit_price`` and credit the holding, or reject."""
    rejection = _check_tradable(portfolio, symbol, shares)
    if rejection is not None:
        return rejection

    cost = shares * unit_price
    if cost > portfolio.cash:
        return _rejected(
            portfolio,
            RejectionReason.INSUFFICIENT_FUNDS,
            f"Insufficient cash to buy {shares} shares of {symbol} at ${unit_price:.2f} "
            f"(cost ${cost:.2f}, available ${portfolio.cash:.2f}).",
        )

    holdings = dict(portfolio.holdings)
    holdings[symbol] = holdings.get(symbol, 0) + shares
    updated = portfolio.model_copy(update={"cash": portfolio.cash - cost, "holdings": holdings})
    return TradeResult(
        status="accepted",
        message=f"Bought {shares} {symbol} @ ${unit_price:.2f}.",
        portfolio=updated,
    )


def sell(portfolio: Portfolio, symbol: str, shares: int, unit_price: float) -> TradeResult:
    """Credit ``shares * unit_price`` and debit the holding, or reject."""
    rejection = _check_tradable(portfolio, symbol, shares)
    if rejection is not None:
        return rejection

    held = portfolio.holdings.get(symbol, 0)
    if shares > held:
        return _rejected(
            portfolio,
            RejectionReason.INSUFFICIENT_SHARES,
            f"Cannot sell {shares} shares of {symbol}; only {held} held.",
        )

    holdings = dict(portfolio.holdings)
    holdings[symbol] = held - shares
    if holdings[symbol] == 0:
        del holdings[symbol]
    updated = portfolio.model_copy(
        update={"cash": portfolio.cash + shares * unit_price, "holdings": holdings}
    )
    return TradeResult(
        status="accepted",
        message=f"Sold {shares} {symbol} @ ${unit_price:.2f}.",
        portfolio=updated,
    )


def total_value(portfolio: Portfolio, instruments: Mapping[str, Instrument]) -> float:
    """Cash plus every holding marked at its current price.

    A held symbol missing from *instruments* contributes nothing and is
    logged; it means the market and the portfolio are out of step.
    """
    value = portfolio.cash
    for symbol, shares in portfolio.holdings.items():
        inst = instruments.get(symbol)
        if inst is None:
            logger.warning(
                "No market data for %s held by %s; valuing %d share(s) at 0.",
                symbol,
                portfolio.owner.value,
                shares,
            )
            continue
        value += shares * inst.price
    return value


# ------------------------------------------------------------------
# Broker
# ------------------------------------------------------------------

class Broker:
    """Stateful ledger for one participant over one battle.

    Instantiate one ``Broker`` per participant. It owns the canonical
    portfolio, resolves execution prices from the current instruments and
    keeps the history of accepted trades.
    """

    def __init__(self, owner: Participant, starting_cash: float) -> None:
        self._portfolio = Portfolio.opening(owner, starting_cash)
        self._trade_history: list[ExecutedTrade] = []
        self._closing_prices: dict[str, Instrument] | None = None

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def owner(self) -> Participant:
        return self._portfolio.owner

    @property
    def finalized(self) -> bool:
        return self._portfolio.finalized

    @property
    def closing_prices(self) -> dict[str, Instrument] | None:
        """Instruments as they stood when the owner's phase ended."""
        return self._closing_prices

    def get_portfolio(self) -> Portfolio:
        """Return a copy of the current portfolio state."""
        return self._portfolio.model_copy(deep=True)

    def get_trade_history(self) -> list[ExecutedTrade]:
        """Return the full list of executed trades so far."""
        return list(self._trade_history)

    def execute(
        self,
        intent: TradeIntent,
        instruments: Mapping[str, Instrument],
        day: int = 0,
    ) -> TradeResult:
        """Validate and execute *intent* at the instrument's current price."""
        if intent.owner != self.owner:
            raise ValueError(
                f"Broker for {self.owner.value} cannot execute an intent for {intent.owner.value}."
            )

        inst = instruments.get(intent.symbol)
        if inst is None:
            return _rejected(
                self._portfolio,
                RejectionReason.UNKNOWN_SYMBOL,
                f"Unknown symbol {intent.symbol}. Allowed: {', '.join(sorted(instruments))}.",
            )

        operation = buy if intent.side == "buy" else sell
        result = operation(self._portfolio, intent.symbol, intent.shares, inst.price)
        if not result.accepted:
            logger.info("%s %s rejected: %s", self.owner.value, intent.side, result.message)
            return result

        trade = ExecutedTrade(
            trade_id=uuid.uuid4().hex[:12],
            owner=self.owner,
            symbol=intent.symbol,
            side=intent.side,
            shares=intent.shares,
            price=inst.price,
            day=day,
            reasoning=intent.reasoning,
        )
        self._portfolio = result.portfolio  # type: ignore[assignment]
        self._trade_history.append(trade)
        return result.model_copy(update={"trade": trade})

    def trade(
        self,
        side: Literal["buy", "sell"],
        symbol: str,
        shares: int,
        instruments: Mapping[str, Instrument],
        day: int = 0,
    ) -> TradeResult:
        """Shorthand for ``execute`` with an intent built from arguments."""
        intent = TradeIntent(owner=self.owner, symbol=symbol, side=side, shares=shares)
        return self.execute(intent, instruments, day=day)

    def total_value(self, instruments: Mapping[str, Instrument]) -> float:
        return total_value(self._portfolio, instruments)

    def finalize(self, closing_prices: Mapping[str, Instrument] | None = None) -> None:
        """Freeze the portfolio; every later trade is rejected."""
        if closing_prices is not None:
            self._closing_prices = {s: i.model_copy() for s, i in closing_prices.items()}
        self._portfolio = self._portfolio.model_copy(update={"finalized": True})

    def settle(self, final_value: float, strategy_label: str) -> None:
        """Replace the portfolio with an all-cash final state (robo-advisor)."""
        self._portfolio = self._portfolio.model_copy(
            update={
                "cash": max(0.0, final_value),
                "holdings": {},
                "strategy_label": strategy_label,
                "finalized": True,
            }
        )


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------

def _check_tradable(portfolio: Portfolio, symbol: str, shares: int) -> TradeResult | None:
    """Return a rejection for finalized portfolios and non-positive sizes."""
    if portfolio.finalized:
        return _rejected(
            portfolio,
            RejectionReason.PORTFOLIO_FINALIZED,
            f"Portfolio of {portfolio.owner.value} is final; no further trades.",
        )
    if shares <= 0:
        return _rejected(
            portfolio,
            RejectionReason.INVALID_QUANTITY,
            f"Order quantity must be positive, got {shares} for {symbol}.",
        )
    return None


def _rejected(portfolio: Portfolio, reason: RejectionReason, message: str) -> TradeResult:
    return TradeResult(status="rejected", reason=reason, message=message, portfolio=portfolio)
