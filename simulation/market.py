"""Simulated market: owns the instruments and advances them one day per tick.

The model is cadence-agnostic. Whoever drives the battle decides when a
simulated day has passed and calls ``tick``; the model only knows how to move
prices. All randomness comes from the ``random.Random`` passed in, so a seeded
generator reproduces the same price path.
"""

from __future__ import annotations

import logging
import random
from typing import Iterable

from models.config import MarketConfig
from models.instrument import DEFAULT_INSTRUMENTS, Instrument, InstrumentDef, MarketEvent, MarketSnapshot

logger = logging.getLogger(__name__)


class MarketModel:
    """Holds the tradable instruments for one battle."""

    def __init__(self, config: MarketConfig | None = None, rng: random.Random | None = None) -> None:
        self._config = config or MarketConfig()
        self._rng = rng or random.Random()
        self._instruments: dict[str, Instrument] = {}
        self._day = 0

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(self, instrument_defs: Iterable[InstrumentDef] = DEFAULT_INSTRUMENTS) -> list[Instrument]:
        """Create instruments with random starting prices inside the configured band."""
        self._instruments = {}
        self._day = 0
        for definition in instrument_defs:
            if definition.symbol in self._instruments:
                raise ValueError(f"Duplicate instrument symbol '{definition.symbol}'.")
            price = self._rng.uniform(self._config.min_start_price, self._config.max_start_price)
            self._instruments[definition.symbol] = Instrument(
                symbol=definition.symbol,
                name=definition.name,
                sector=definition.sector,
                price=price,
                prior_price=price,
                change_percent=0.0,
            )
        logger.info("Market initialised with %d instruments.", len(self._instruments))
        return self.instruments()

    def load(self, instruments: Iterable[Instrument]) -> None:
        """Install instruments with fixed prices (fixtures, replays)."""
        self._instruments = {i.symbol: i.model_copy() for i in instruments}
        self._day = 0

    # ------------------------------------------------------------------
    # Price evolution
    # ------------------------------------------------------------------

    def tick(self, event: MarketEvent | None = None) -> list[Instrument]:
        """Advance every instrument by one simulated day.

        Each instrument moves by a uniform draw in
        ``[-max_tick_change_pct, +max_tick_change_pct]`` percent. If *event* is
        given, instruments in its affected sectors are additionally scaled by
        ``event.multiplier``. Prices never fall below ``min_price``.
        """
        band = self._config.max_tick_change_pct
        affected = set(event.affected_sectors) if event is not None else set()

        for symbol, inst in self._instruments.items():
            pct = self._rng.uniform(-band, band)
            new_price = inst.price * (1 + pct / 100)
            if inst.sector in affected:
                new_price *= event.multiplier  # type: ignore[union-attr]
            new_price = max(self._config.min_price, new_price)
            self._instruments[symbol] = inst.model_copy(
                update={
                    "prior_price": inst.price,
                    "price": new_price,
                    "change_percent": (new_price - inst.price) / inst.price * 100,
                }
            )

        self._day += 1
        if event is not None:
            logger.info(
                "Day %d: applied event '%s' (x%.3f) to %s.",
                self._day,
                event.title,
                event.multiplier,
                ", ".join(sorted(affected)) or "no sectors",
            )
        logger.debug("Day %d prices: %s", self._day, self.prices())
        return self.instruments()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def day(self) -> int:
        """Number of ticks applied since initialisation."""
        return self._day

    def instruments(self) -> list[Instrument]:
        return [i.model_copy() for i in self._instruments.values()]

    def instrument_map(self) -> dict[str, Instrument]:
        return {s: i.model_copy() for s, i in self._instruments.items()}

    def get(self, symbol: str) -> Instrument | None:
        inst = self._instruments.get(symbol)
        return inst.model_copy() if inst is not None else None

    def prices(self) -> dict[str, float]:
        return {s: i.price for s, i in self._instruments.items()}

    def snapshot(self, day: int | None = None) -> MarketSnapshot:
        return MarketSnapshot(day=self._day if day is None else day, instruments=self.instruments())
