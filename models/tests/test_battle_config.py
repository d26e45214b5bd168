"""Tests for the configuration and data models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from models import (
    DEFAULT_INSTRUMENTS,
    BattleConfig,
    Participant,
    Portfolio,
    RoboAdvisorConfig,
    SessionConfig,
    TradeResult,
)

EXAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "config" / "example.yaml"


class TestBattleConfig:
    def test_defaults(self):
        config = BattleConfig()
        assert config.timeframe_days == 30
        assert config.starting_cash == 10_000.0

    def test_frozen(self):
        config = BattleConfig()
        with pytest.raises(ValidationError):
            config.starting_cash = 1.0

    @pytest.mark.parametrize("field,value", [("timeframe_days", 0), ("starting_cash", 0), ("goal_cost_target", -1)])
    def test_rejects_invalid(self, field, value):
        with pytest.raises(ValidationError):
            BattleConfig(**{field: value})


class TestSessionConfig:
    def test_phase_seconds(self):
        config = SessionConfig(battle=BattleConfig(timeframe_days=6), seconds_per_day=2.5)
        assert config.phase_seconds == 15.0

    def test_advance_policy_validated(self):
        with pytest.raises(ValidationError):
            SessionConfig(advance_policy="sometimes")

    def test_from_yaml_example(self):
        config = SessionConfig.from_yaml(EXAMPLE_CONFIG)
        assert config.battle.timeframe_days == 5
        assert config.narrator.mock is True
        assert config.human_script[0].symbol == "TECH"
        assert config.robo_advisor.base_url is None

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SessionConfig.from_yaml(tmp_path / "nope.yaml")

    def test_from_yaml_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="Expected a YAML mapping"):
            SessionConfig.from_yaml(path)

    def test_from_yaml_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("battle:\n  starting_cash: -5\n")
        with pytest.raises(ValidationError):
            SessionConfig.from_yaml(path)

    def test_scripted_trade_needs_positive_shares(self):
        with pytest.raises(ValidationError):
            SessionConfig(human_script=[{"at_second": 1, "symbol": "TECH", "side": "buy", "shares": 0}])


class TestRoboAdvisorConfig:
    def test_growth_band_order(self):
        with pytest.raises(ValidationError):
            RoboAdvisorConfig(fallback_growth_min=0.05, fallback_growth_max=0.01)


class TestModels:
    def test_default_universe(self):
        symbols = [d.symbol for d in DEFAULT_INSTRUMENTS]
        assert symbols == ["TECH", "OILC", "MEDX", "FINT", "RETA", "AUTO", "REAL", "UTIL"]

    def test_opening_portfolio(self):
        portfolio = Portfolio.opening(Participant.HUMAN, 500.0)
        assert portfolio.cash == 500.0
        assert portfolio.starting_value == 500.0
        assert portfolio.holdings == {}
        assert not portfolio.finalized

    def test_negative_cash_invalid(self):
        with pytest.raises(ValidationError):
            Portfolio(owner=Participant.HUMAN, cash=-1.0, starting_value=0.0)

    def test_trade_result_accepted_flag(self):
        assert TradeResult(status="accepted").accepted
        assert not TradeResult(status="rejected").accepted
