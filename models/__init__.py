"""Data models for the three-way trading battle.

The simulation, the trading policies and the API clients all import from models.
"""

from models.config import (
    BattleConfig,
    BotConfig,
    MarketConfig,
    NarratorConfig,
    ProfileStoreConfig,
    RoboAdvisorConfig,
    SessionConfig,
)
from models.instrument import DEFAULT_INSTRUMENTS, Instrument, InstrumentDef, MarketEvent, MarketSnapshot
from models.portfolio import TIE_BREAK_ORDER, Participant, Portfolio
from models.result import PHASE_OWNER, BattlePhase, BattleResult, ParticipantResult, RoboAdvisorOutcome, TrendPoint
from models.trade import ExecutedTrade, RejectionReason, ScheduledTrade, TradeIntent, TradeResult

__all__ = [
    # config
    "BattleConfig",
    "BotConfig",
    "MarketConfig",
    "NarratorConfig",
    "ProfileStoreConfig",
    "RoboAdvisorConfig",
    "SessionConfig",
    # instrument
    "DEFAULT_INSTRUMENTS",
    "Instrument",
    "InstrumentDef",
    "MarketEvent",
    "MarketSnapshot",
    # portfolio
    "TIE_BREAK_ORDER",
    "Participant",
    "Portfolio",
    # result
    "PHASE_OWNER",
    "BattlePhase",
    "BattleResult",
    "ParticipantResult",
    "RoboAdvisorOutcome",
    "TrendPoint",
    # trade
    "ExecutedTrade",
    "RejectionReason",
    "ScheduledTrade",
    "TradeIntent",
    "TradeResult",
]
