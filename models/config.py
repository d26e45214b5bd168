"""Battle configuration models, loaded from YAML.

These live in ``models/`` because they are shared data contracts used by the
battle session, the trading policies, the runner and the CLI.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from models.trade import ScheduledTrade


class BattleConfig(BaseModel):
    """Player-chosen battle parameters. Immutable for the life of one battle."""

    timeframe_days: int = Field(default=30, gt=0, description="Simulated days per trading phase.")
    starting_cash: float = Field(default=10_000.0, gt=0, description="Opening cash for every participant.")
    goal_label: str = Field(default="", description="What the player is saving for, e.g. 'New laptop'.")
    goal_cost_target: float = Field(default=0.0, ge=0, description="Cost of the savings goal in dollars.")

    model_config = {"frozen": True}


class MarketConfig(BaseModel):
    """Price generation parameters for the market model."""

    min_start_price: float = Field(default=50.0, gt=0)
    max_start_price: float = Field(default=250.0, gt=0)
    max_tick_change_pct: float = Field(
        default=5.0,
        ge=0,
        description="Half-width of the uniform per-tick percentage move.",
    )
    min_price: float = Field(default=1.0, gt=0, description="Price floor applied after every move.")

    @model_validator(mode="after")
    def _check_band(self) -> MarketConfig:
        if self.max_start_price < self.min_start_price:
            raise ValueError("max_start_price must be >= min_start_price")
        return self


class BotConfig(BaseModel):
    """Configuration for the autonomous trading bot."""

    policy: str = Field(default="threshold", description="Registered bot policy name.")
    buy_threshold_pct: float = Field(default=-2.0, description="Buy when change_percent is below this.")
    sell_threshold_pct: float = Field(default=3.0, description="Sell when change_percent is above this.")
    buy_lot: int = Field(default=1, gt=0)
    sell_fraction: float = Field(default=0.5, gt=0, le=1)
    decision_interval_seconds: float = Field(default=3.0, gt=0)


class RoboAdvisorConfig(BaseModel):
    """Configuration for the robo-advisor and its external simulation API."""

    base_url: str | None = Field(
        default=None,
        description="Base URL of the InvestEase API proxy; None forces the local fallback.",
    )
    timeout_seconds: float = Field(default=10.0, gt=0)
    client_name: str = "InvestEase Simulator"
    client_email: str = "investease@rbc.com"
    fallback_growth_min: float = Field(default=0.015, ge=0)
    fallback_growth_max: float = Field(default=0.045, ge=0)
    daily_noise_pct: float = Field(default=1.0, ge=0)
    max_drawdown: float = Field(default=0.2, ge=0, lt=1)

    @model_validator(mode="after")
    def _check_band(self) -> RoboAdvisorConfig:
        if self.fallback_growth_max < self.fallback_growth_min:
            raise ValueError("fallback_growth_max must be >= fallback_growth_min")
        return self


class NarratorConfig(BaseModel):
    """LLM narrator settings. Disabled by default."""

    enabled: bool = False
    mock: bool = False
    llm_provider: str = Field(default="openai", description="'openai' or 'anthropic'.")
    llm_model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    max_retries: int = Field(default=3, ge=1)


class ProfileStoreConfig(BaseModel):
    """Where finished battles are recorded. No base_url keeps them in memory."""

    base_url: str | None = None
    timeout_seconds: float = Field(default=5.0, gt=0)


class SessionConfig(BaseModel):
    """Top-level configuration for one battle session, loaded from YAML.

    The run name is derived from the config file path at load time rather
    than being specified inside the YAML itself.
    """

    battle: BattleConfig = Field(default_factory=BattleConfig)
    market: MarketConfig = Field(default_factory=MarketConfig)
    bot: BotConfig = Field(default_factory=BotConfig)
    robo_advisor: RoboAdvisorConfig = Field(default_factory=RoboAdvisorConfig)
    narrator: NarratorConfig = Field(default_factory=NarratorConfig)
    profile_store: ProfileStoreConfig = Field(default_factory=ProfileStoreConfig)
    seconds_per_day: float = Field(
        default=5.0,
        gt=0,
        description="Real seconds per simulated day; one market tick per day.",
    )
    advance_policy: Literal["auto", "manual"] = Field(
        default="auto",
        description="'auto' ends a phase when its countdown expires; "
        "'manual' waits for an explicit proceed().",
    )
    seed: int | None = Field(default=None, description="Seed for every random draw in the battle.")
    human_script: list[ScheduledTrade] = Field(
        default_factory=list,
        description="Human commands replayed by the headless runner.",
    )

    @property
    def phase_seconds(self) -> float:
        """Real-time budget of one trading phase."""
        return self.battle.timeframe_days * self.seconds_per_day

    @classmethod
    def from_yaml(cls, path: str | Path) -> SessionConfig:
        """Load and validate a ``SessionConfig`` from a YAML file.

        Raises ``FileNotFoundError`` if the file does not exist and
        ``ValueError`` if the content is not a valid YAML mapping.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open(encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)

        if not isinstance(raw, dict):
            raise ValueError(
                f"Expected a YAML mapping in {path}, got {type(raw).__name__}."
            )

        return cls(**raw)
