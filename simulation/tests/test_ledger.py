"""Tests for the portfolio ledger and the per-participant broker.

Tests cover:
1. Buy/sell acceptance and every rejection reason
2. Rejections leave the portfolio untouched (all-or-nothing)
3. Solvency: cash and holdings never go negative
4. Valuation, including held symbols missing from the market
5. Broker: execution price, trade history, finalize and settle
"""

from __future__ import annotations

import logging

import pytest

from models.instrument import Instrument
from models.portfolio import Participant, Portfolio
from models.trade import RejectionReason, TradeIntent
from simulation.ledger import Broker, buy, sell, total_value


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _inst(symbol: str, price: float) -> Instrument:
    return Instrument(symbol=symbol, name=symbol, sector="Technology", price=price, prior_price=price)


def _instruments(**prices: float) -> dict[str, Instrument]:
    return {s: _inst(s, p) for s, p in prices.items()}


@pytest.fixture
def portfolio() -> Portfolio:
    return Portfolio.opening(Participant.HUMAN, 10_000.0)


# ---------------------------------------------------------------
# Pure operations
# ---------------------------------------------------------------

class TestBuy:
    def test_debits_cash_and_credits_holding(self, portfolio):
        result = buy(portfolio, "TECH", 10, 100.0)
        assert result.accepted
        assert result.portfolio.cash == pytest.approx(9_000.0)
        assert result.portfolio.holdings == {"TECH": 10}

    def test_input_portfolio_not_mutated(self, portfolio):
        buy(portfolio, "TECH", 10, 100.0)
        assert portfolio.cash == 10_000.0
        assert portfolio.holdings == {}

    def test_exact_cash_is_enough(self, portfolio):
        result = buy(portfolio, "TECH", 100, 100.0)
        assert result.accepted
        assert result.portfolio.cash == pytest.approx(0.0)

    def test_insufficient_funds(self, portfolio):
        result = buy(portfolio, "TECH", 101, 100.0)
        assert not result.accepted
        assert result.reason is RejectionReason.INSUFFICIENT_FUNDS
        assert result.portfolio == portfolio

    @pytest.mark.parametrize("shares", [0, -3])
    def test_invalid_quantity(self, portfolio, shares):
        result = buy(portfolio, "TECH", shares, 100.0)
        assert result.reason is RejectionReason.INVALID_QUANTITY


class TestSell:
    def test_credits_cash_and_drops_empty_holding(self, portfolio):
        bought = buy(portfolio, "TECH", 10, 100.0).portfolio
        result = sell(bought, "TECH", 10, 101.0)
        assert result.accepted
        assert result.portfolio.cash == pytest.approx(10_010.0)
        assert "TECH" not in result.portfolio.holdings

    def test_partial_sell_keeps_remainder(self, portfolio):
        bought = buy(portfolio, "TECH", 10, 100.0).portfolio
        result = sell(bought, "TECH", 4, 100.0)
        assert result.portfolio.holdings == {"TECH": 6}

    def test_insufficient_shares(self, portfolio):
        bought = buy(portfolio, "TECH", 2, 100.0).portfolio
        result = sell(bought, "TECH", 3, 100.0)
        assert result.reason is RejectionReason.INSUFFICIENT_SHARES
        assert result.portfolio.holdings == {"TECH": 2}

    def test_sell_unheld_symbol(self, portfolio):
        result = sell(portfolio, "OILC", 1, 50.0)
        assert result.reason is RejectionReason.INSUFFICIENT_SHARES

    def test_finalized_portfolio_rejects(self, portfolio):
        final = portfolio.model_copy(update={"finalized": True})
        assert buy(final, "TECH", 1, 1.0).reason is RejectionReason.PORTFOLIO_FINALIZED
        assert sell(final, "TECH", 1, 1.0).reason is RejectionReason.PORTFOLIO_FINALIZED


class TestTotalValue:
    def test_cash_plus_holdings(self, portfolio):
        held = buy(portfolio, "TECH", 10, 100.0).portfolio
        assert total_value(held, _instruments(TECH=120.0)) == pytest.approx(10_200.0)

    def test_idempotent(self, portfolio):
        held = buy(portfolio, "TECH", 3, 77.0).portfolio
        instruments = _instruments(TECH=80.0)
        assert total_value(held, instruments) == total_value(held, instruments)

    def test_missing_symbol_contributes_zero(self, portfolio, caplog):
        held = buy(portfolio, "TECH", 10, 100.0).portfolio
        with caplog.at_level(logging.WARNING, logger="simulation.ledger"):
            value = total_value(held, _instruments(OILC=50.0))
        assert value == pytest.approx(9_000.0)
        assert "No market data for TECH" in caplog.text

    def test_round_trip_at_same_price_restores_value(self, portfolio):
        instruments = _instruments(TECH=137.25)
        after = sell(buy(portfolio, "TECH", 7, 137.25).portfolio, "TECH", 7, 137.25).portfolio
        assert total_value(after, instruments) == pytest.approx(10_000.0)


# ---------------------------------------------------------------
# Broker
# ---------------------------------------------------------------

class TestBroker:
    def test_executes_at_current_price(self):
        broker = Broker(Participant.HUMAN, 10_000.0)
        result = broker.trade("buy", "TECH", 10, _instruments(TECH=100.0), day=2)
        assert result.accepted
        assert result.trade.price == 100.0
        assert result.trade.day == 2
        assert broker.get_portfolio().cash == pytest.approx(9_000.0)
        assert len(broker.get_trade_history()) == 1

    def test_rejected_trade_not_recorded(self):
        broker = Broker(Participant.HUMAN, 100.0)
        result = broker.trade("buy", "TECH", 2, _instruments(TECH=100.0))
        assert not result.accepted
        assert broker.get_trade_history() == []

    def test_unknown_symbol(self):
        broker = Broker(Participant.HUMAN, 100.0)
        result = broker.trade("buy", "NOPE", 1, _instruments(TECH=10.0))
        assert result.reason is RejectionReason.UNKNOWN_SYMBOL

    def test_owner_mismatch_raises(self):
        broker = Broker(Participant.HUMAN, 100.0)
        intent = TradeIntent(owner=Participant.AUTONOMOUS_BOT, symbol="TECH", side="buy", shares=1)
        with pytest.raises(ValueError):
            broker.execute(intent, _instruments(TECH=10.0))

    def test_get_portfolio_returns_copy(self):
        broker = Broker(Participant.HUMAN, 100.0)
        snapshot = broker.get_portfolio()
        snapshot.holdings["TECH"] = 99
        assert broker.get_portfolio().holdings == {}

    def test_finalize_blocks_trades_and_keeps_closing_prices(self):
        broker = Broker(Participant.HUMAN, 1_000.0)
        instruments = _instruments(TECH=10.0)
        broker.trade("buy", "TECH", 5, instruments)
        broker.finalize(closing_prices=instruments)
        assert broker.finalized
        assert broker.closing_prices["TECH"].price == 10.0
        result = broker.trade("sell", "TECH", 5, instruments)
        assert result.reason is RejectionReason.PORTFOLIO_FINALIZED

    def test_settle_is_all_cash(self):
        broker = Broker(Participant.ROBO_ADVISOR, 10_000.0)
        broker.settle(10_250.0, "Fallback Balanced Strategy")
        portfolio = broker.get_portfolio()
        assert portfolio.cash == 10_250.0
        assert portfolio.holdings == {}
        assert portfolio.finalized
        assert portfolio.strategy_label == "Fallback Balanced Strategy"

    def test_solvency_over_many_trades(self):
        broker = Broker(Participant.HUMAN, 500.0)
        instruments = _instruments(TECH=60.0, OILC=45.0)
        for side, symbol, shares in [
            ("buy", "TECH", 5), ("buy", "OILC", 5), ("sell", "TECH", 9),
            ("buy", "OILC", 1), ("sell", "OILC", 6), ("buy", "TECH", 8),
        ]:
            broker.trade(side, symbol, shares, instruments)
            portfolio = broker.get_portfolio()
            assert portfolio.cash >= 0
            assert all(q >= 0 for q in portfolio.holdings.values())
