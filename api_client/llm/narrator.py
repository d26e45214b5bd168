"""LLM market narrator: market-wide predictions and news events.

The narrator is optional flavour. Nothing in a battle waits on it being
right: a failed or unparseable completion yields no event and a neutral
prediction. Mock mode replays a fixed set of canned events so battles can be
run offline and reproducibly.
"""

from __future__ import annotations

import json
import logging
import random
import re
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from pydantic import BaseModel, Field

from api_client.llm.client import LangChainLLMClient, LLMClient
from api_client.llm.tracing import build_trace_entry
from models.config import NarratorConfig
from models.instrument import MarketEvent, MarketSnapshot

logger = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
_env = Environment(
    loader=FileSystemLoader(str(_PROMPTS_DIR)),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)

# Bounds applied to any multiplier an LLM proposes.
MIN_MULTIPLIER = 0.9
MAX_MULTIPLIER = 1.1

_IMPACTS = ("positive", "negative", "neutral", "mixed")
_DEFAULT_MULTIPLIER = {"positive": 1.05, "negative": 0.95, "neutral": 1.0, "mixed": 1.0}

MOCK_EVENTS: list[dict[str, Any]] = [
    {
        "title": "Tech Giant Reports Strong Earnings",
        "description": "Major technology company exceeds quarterly expectations, driving sector optimism.",
        "impact": "positive",
        "affected_sectors": ["Technology"],
        "multiplier": 1.05,
    },
    {
        "title": "Federal Reserve Hints at Rate Changes",
        "description": "Central bank signals potential policy shifts affecting market sentiment.",
        "impact": "negative",
        "affected_sectors": ["Finance"],
        "multiplier": 0.95,
    },
    {
        "title": "Oil Prices Surge on Supply Concerns",
        "description": "Energy sector sees significant gains as crude oil prices reach new highs.",
        "impact": "positive",
        "affected_sectors": ["Energy"],
        "multiplier": 1.08,
    },
    {
        "title": "The Oracle Speaks",
        "description": "Mysterious market guru predicts major sector rotation.",
        "impact": "mixed",
        "affected_sectors": ["Technology", "Healthcare"],
        "multiplier": 1.02,
    },
    {
        "title": "Healthcare Breakthrough Announced",
        "description": "Major pharmaceutical company announces promising drug trial results.",
        "impact": "positive",
        "affected_sectors": ["Healthcare"],
        "multiplier": 1.06,
    },
    {
        "title": "Market Bear Roars",
        "description": "Famous bear market analyst warns of overvaluation.",
        "impact": "negative",
        "affected_sectors": ["Technology", "Finance"],
        "multiplier": 0.98,
    },
]


class Prediction(BaseModel):
    """Narrator's outlook for the whole market over a timeframe."""

    prediction_percent: float = 0.0
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""


NEUTRAL_PREDICTION = Prediction(reasoning="No prediction available.")


class MarketNarrator:
    """Generates predictions and market events from an LLM or canned data."""

    def __init__(
        self,
        config: NarratorConfig | None = None,
        client: LLMClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or NarratorConfig()
        self._rng = rng or random.Random()
        if client is None and not self.config.mock:
            client = LangChainLLMClient(self.config)
        self._client = client
        self._trace: list[dict[str, Any]] = []

    @property
    def trace(self) -> list[dict[str, Any]]:
        return list(self._trace)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def generate_event(self, snapshot: MarketSnapshot) -> MarketEvent | None:
        """One news event affecting sectors present in *snapshot*, or None."""
        sectors = sorted({i.sector for i in snapshot.instruments})
        if self.config.mock:
            return self._mock_event(sectors)

        data = self._ask(
            "market_event",
            day=snapshot.day,
            instruments=snapshot.instruments,
            sectors=sectors,
            min_multiplier=MIN_MULTIPLIER,
            max_multiplier=MAX_MULTIPLIER,
        )
        event = event_from_payload(data, sectors)
        if event is None:
            logger.info("Narrator produced no usable market event.")
        return event

    def predict(self, snapshot: MarketSnapshot, timeframe_days: int) -> Prediction:
        """Expected market return over *timeframe_days*; neutral on failure."""
        if self.config.mock:
            changes = [i.change_percent for i in snapshot.instruments]
            momentum = sum(changes) / len(changes) if changes else 0.0
            return Prediction(
                prediction_percent=round(momentum * 0.5, 2),
                confidence=0.5,
                reasoning="[mock] Half of today's average move, carried forward.",
            )

        data = self._ask(
            "prediction",
            day=snapshot.day,
            instruments=snapshot.instruments,
            timeframe_days=timeframe_days,
        )
        try:
            percent = float(data["prediction_percent"])
            confidence = min(1.0, max(0.0, float(data.get("confidence", 0.0))))
        except (KeyError, TypeError, ValueError):
            logger.info("Narrator prediction unusable; returning neutral outlook.")
            return NEUTRAL_PREDICTION
        return Prediction(
            prediction_percent=percent,
            confidence=confidence,
            reasoning=str(data.get("reasoning", "")),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ask(self, prompt_id: str, **context: Any) -> dict:
        system = _env.get_template("narrator_system.txt").render()
        user = _env.get_template(f"{prompt_id}.txt").render(**context)
        try:
            raw = self._client.complete(system, user)  # type: ignore[union-attr]
        except Exception:
            logger.exception("Narrator LLM call for %s failed.", prompt_id)
            raw = ""
        data = _parse_json(raw)
        self._trace.append(
            build_trace_entry(self.config.llm_model, prompt_id, raw, parsed=bool(data))
        )
        return data

    def _mock_event(self, sectors: list[str]) -> MarketEvent | None:
        candidates = [e for e in MOCK_EVENTS if set(e["affected_sectors"]) & set(sectors)]
        if not candidates:
            return None
        chosen = self._rng.choice(candidates)
        return MarketEvent(**chosen, source="mock")


def event_from_payload(data: dict, known_sectors: list[str]) -> MarketEvent | None:
    """Build a ``MarketEvent`` from a parsed LLM reply, or None if it has no title.

    Unknown impacts become neutral, unknown sectors are dropped and the
    multiplier is clamped to ``[MIN_MULTIPLIER, MAX_MULTIPLIER]``.
    """
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        return None

    impact = data.get("impact")
    if impact not in _IMPACTS:
        impact = "neutral"

    raw_sectors = data.get("affected_sectors", data.get("affectedSectors", []))
    if not isinstance(raw_sectors, list):
        raw_sectors = []
    sectors = [s for s in raw_sectors if s in known_sectors]

    multiplier = data.get("multiplier")
    if isinstance(multiplier, (int, float)) and not isinstance(multiplier, bool) and multiplier > 0:
        multiplier = min(MAX_MULTIPLIER, max(MIN_MULTIPLIER, float(multiplier)))
    else:
        multiplier = _DEFAULT_MULTIPLIER[impact]

    return MarketEvent(
        title=title.strip(),
        description=str(data.get("description", "")),
        impact=impact,
        affected_sectors=sectors,
        multiplier=multiplier,
        source="llm",
    )


def _parse_json(text: str) -> dict:
    """Parse JSON from LLM response, handling markdown code blocks."""
    match = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
    json_str = match.group(1) if match else text
    json_str = json_str.strip()
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}
