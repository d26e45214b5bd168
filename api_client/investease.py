"""Client for the InvestEase portfolio simulation API.

The robo-advisor does not trade instrument by instrument; it asks this API
what a managed portfolio would be worth after the battle's timeframe. The API
has returned several response shapes over time, so every response goes
through ``normalize_simulation_response`` and nothing else in the codebase
sees the raw payload.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY = "RBC InvestEase AI Portfolio Management"


class ExternalSimulationUnavailable(Exception):
    """The simulation API failed, timed out, or answered with something unusable."""


class GrowthPoint(BaseModel):
    """One sample of the projected growth curve."""

    date: str | None = None
    value: float


class SimulationResult(BaseModel):
    """Canonical shape of one simulation result."""

    final_value: float
    strategy: str = DEFAULT_STRATEGY
    growth_trend: list[GrowthPoint] = []


class ExternalSimulator(Protocol):
    async def simulate_portfolio(self, starting_cash: float, months: int) -> SimulationResult:
        ...


# ------------------------------------------------------------------
# Response normalisation
# ------------------------------------------------------------------

_FINAL_VALUE_KEYS = ("projectedValue", "endingValue", "projected_value", "ending_value")


def normalize_simulation_response(payload: Any) -> SimulationResult:
    """Map any known response variant onto ``SimulationResult``.

    Accepts ``{"results": [{...}]}`` and reads the first result. The final
    value may be called ``projectedValue`` or ``endingValue`` (camel or snake
    case); ``growth_trend`` is optional and entries without a numeric value
    are skipped. Raises ``ExternalSimulationUnavailable`` when no usable
    final value can be found.
    """
    if not isinstance(payload, dict):
        raise ExternalSimulationUnavailable(
            f"Expected a JSON object, got {type(payload).__name__}."
        )

    results = payload.get("results")
    if not isinstance(results, list) or not results:
        raise ExternalSimulationUnavailable("Response contains no simulation results.")

    first = results[0]
    if not isinstance(first, dict):
        raise ExternalSimulationUnavailable("First simulation result is not an object.")

    final_value = None
    for key in _FINAL_VALUE_KEYS:
        candidate = first.get(key)
        if _is_number(candidate) and candidate > 0:
            final_value = float(candidate)
            break
    if final_value is None:
        raise ExternalSimulationUnavailable(
            f"No positive final value under any of {', '.join(_FINAL_VALUE_KEYS)}."
        )

    strategy = first.get("strategy")
    if not isinstance(strategy, str) or not strategy.strip():
        strategy = DEFAULT_STRATEGY

    trend: list[GrowthPoint] = []
    raw_trend = first.get("growth_trend")
    if isinstance(raw_trend, list):
        for point in raw_trend:
            if isinstance(point, dict) and _is_number(point.get("value")):
                date = point.get("date")
                trend.append(
                    GrowthPoint(date=str(date) if date is not None else None, value=float(point["value"]))
                )

    return SimulationResult(final_value=final_value, strategy=strategy, growth_trend=trend)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ------------------------------------------------------------------
# HTTP client
# ------------------------------------------------------------------

class InvestEaseClient:
    """Creates a throwaway client on the API and runs a simulation for it.

    *token* is the bearer token supplied by the auth layer; without one the
    API cannot be called and every request reports the service unavailable.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None,
        *,
        timeout: float = 10.0,
        client_name: str = "InvestEase Simulator",
        client_email: str = "investease@rbc.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._client_name = client_name
        self._client_email = client_email
        self._transport = transport

    async def simulate_portfolio(self, starting_cash: float, months: int) -> SimulationResult:
        """Create a client funded with *starting_cash* and simulate *months*."""
        if not self._token:
            raise ExternalSimulationUnavailable("No auth token available for the simulation API.")

        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            ) as http:
                client_id = await self._create_client(http, starting_cash)
                response = await http.post(
                    f"/client/{client_id}/simulate",
                    json={"months": months, "token": self._token},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            raise ExternalSimulationUnavailable(f"Simulation request failed: {exc}") from exc
        except ValueError as exc:
            raise ExternalSimulationUnavailable(f"Simulation response is not JSON: {exc}") from exc

        result = normalize_simulation_response(payload)
        logger.info(
            "Simulation for client %s: $%.2f (%s, %d trend points).",
            client_id,
            result.final_value,
            result.strategy,
            len(result.growth_trend),
        )
        return result

    async def _create_client(self, http: httpx.AsyncClient, cash: float) -> str:
        response = await http.post(
            "/clients",
            json={
                "name": self._client_name,
                "email": self._client_email,
                "cash": cash,
                "token": self._token,
            },
        )
        response.raise_for_status()
        data = response.json()
        client = data.get("client") if isinstance(data, dict) else None
        client_id = (client or {}).get("id") if isinstance(client, dict) else None
        if client_id is None and isinstance(data, dict):
            client_id = data.get("id")
        if client_id is None:
            raise ExternalSimulationUnavailable("Client creation response carries no id.")
        return str(client_id)
