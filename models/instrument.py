"""Instrument and market data models."""

from typing import Literal

from pydantic import BaseModel, Field


class InstrumentDef(BaseModel):
    """Static definition of a tradable instrument (no price)."""

    symbol: str
    name: str
    sector: str


class Instrument(BaseModel):
    """A simulated stock with its current and prior price.

    change_percent is in percent units (-3.0 means -3%) and is recomputed by
    the market model on every tick.
    """

    symbol: str
    name: str
    sector: str
    price: float = Field(gt=0)
    prior_price: float = Field(gt=0)
    change_percent: float = 0.0


class MarketSnapshot(BaseModel):
    """Read-only view of the market handed to trading policies."""

    day: int = 0
    instruments: list[Instrument]

    @property
    def prices(self) -> dict[str, float]:
        return {i.symbol: i.price for i in self.instruments}

    def by_symbol(self) -> dict[str, Instrument]:
        return {i.symbol: i for i in self.instruments}


class MarketEvent(BaseModel):
    """News or character event that moves the affected sectors on the next tick."""

    title: str
    description: str = ""
    impact: Literal["positive", "negative", "neutral", "mixed"] = "neutral"
    affected_sectors: list[str] = []
    multiplier: float = Field(default=1.0, gt=0)
    source: Literal["llm", "mock", "scripted"] = "scripted"


DEFAULT_INSTRUMENTS: list[InstrumentDef] = [
    InstrumentDef(symbol="TECH", name="TechGiant Inc", sector="Technology"),
    InstrumentDef(symbol="OILC", name="OilCorp", sector="Energy"),
    InstrumentDef(symbol="MEDX", name="MediXplore", sector="Healthcare"),
    InstrumentDef(symbol="FINT", name="FinTech Plus", sector="Finance"),
    InstrumentDef(symbol="RETA", name="RetailPro", sector="Consumer"),
    InstrumentDef(symbol="AUTO", name="AutoDrive", sector="Automotive"),
    InstrumentDef(symbol="REAL", name="RealEstate Co", sector="Real Estate"),
    InstrumentDef(symbol="UTIL", name="PowerGrid", sector="Utilities"),
]
