"""User-profile store: records finished battles and awards achievements.

Recording is fire-and-forget from the battle's point of view. The session
awaits ``record_battle_result`` but logs and swallows any failure, so a store
outage never changes a battle's outcome.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from models.portfolio import Participant
from models.result import BattleResult

logger = logging.getLogger(__name__)

GAME_TYPE = "three-way-battle"


class ProfileStore(Protocol):
    async def record_battle_result(self, user_id: str, result: BattleResult) -> None:
        ...


def game_result_payload(result: BattleResult) -> dict[str, Any]:
    """The human's view of *result*, in the shape the profile backend stores."""
    human = result.per_participant[Participant.HUMAN]
    bot = result.per_participant.get(Participant.AUTONOMOUS_BOT)
    robo = result.per_participant.get(Participant.ROBO_ADVISOR)
    return {
        "score": human.final_value,
        "won": result.human_won,
        "gameType": GAME_TYPE,
        "rounds": 1,
        "aiScore": bot.final_value if bot else None,
        "investEaseScore": robo.final_value if robo else None,
        "humanReturn": human.return_percent,
        "aiReturn": bot.return_percent if bot else None,
        "investEaseReturn": robo.return_percent if robo else None,
        "timestamp": result.completed_at,
    }


# ------------------------------------------------------------------
# In-memory store
# ------------------------------------------------------------------

class Achievement(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    rarity: str
    earned_at: str


class UserStats(BaseModel):
    """Aggregate battle statistics for one user."""

    user_id: str
    games_played: int = 0
    games_won: int = 0
    total_score: float = 0.0
    best_score: float = 0.0
    total_profit: float = 0.0
    achievements: list[Achievement] = []

    @property
    def average_score(self) -> float:
        return self.total_score / self.games_played if self.games_played else 0.0

    @property
    def win_rate(self) -> float:
        """Percentage of battles won."""
        return self.games_won / self.games_played * 100 if self.games_played else 0.0


# id -> (name, description, icon, rarity)
_ACHIEVEMENTS = {
    "first_win": ("First Victory", "Win your first trading battle", "🏆", "common"),
    "profitable_trader": ("Profitable Trader", "Earn over $1,000 profit in a single game", "💰", "uncommon"),
    "master_trader": ("Master Trader", "Earn over $5,000 profit in a single game", "🎯", "rare"),
    "win_streak": ("Winning Streak", "Maintain an 80% win rate with at least 5 wins", "🔥", "epic"),
    "veteran": ("Veteran Trader", "Play 50 trading battles", "⭐", "rare"),
}


def earned_achievements(stats: UserStats, result: BattleResult) -> list[str]:
    """Ids of the achievements *stats* qualifies for after *result*."""
    profit = result.per_participant[Participant.HUMAN].final_value - result.starting_cash
    earned = []
    if result.human_won:
        earned.append("first_win")
    if profit > 1_000:
        earned.append("profitable_trader")
    if profit > 5_000:
        earned.append("master_trader")
    if stats.games_won >= 5 and stats.win_rate >= 80:
        earned.append("win_streak")
    if stats.games_played >= 50:
        earned.append("veteran")
    return earned


class InMemoryProfileStore:
    """Per-process user stats, for headless runs and tests."""

    def __init__(self) -> None:
        self._users: dict[str, UserStats] = {}

    async def record_battle_result(self, user_id: str, result: BattleResult) -> None:
        stats = self._users.get(user_id) or UserStats(user_id=user_id)
        score = result.per_participant[Participant.HUMAN].final_value
        stats = stats.model_copy(
            update={
                "games_played": stats.games_played + 1,
                "games_won": stats.games_won + (1 if result.human_won else 0),
                "total_score": stats.total_score + score,
                "best_score": max(stats.best_score, score),
                "total_profit": stats.total_profit + score - result.starting_cash,
            }
        )

        owned = {a.id for a in stats.achievements}
        now = datetime.now(timezone.utc).isoformat()
        new: list[Achievement] = []
        for achievement_id in earned_achievements(stats, result):
            if achievement_id in owned:
                continue
            name, description, icon, rarity = _ACHIEVEMENTS[achievement_id]
            new.append(
                Achievement(
                    id=achievement_id,
                    name=name,
                    description=description,
                    icon=icon,
                    rarity=rarity,
                    earned_at=now,
                )
            )
        if new:
            stats = stats.model_copy(update={"achievements": stats.achievements + new})
            logger.info("%s earned: %s", user_id, ", ".join(a.id for a in new))

        self._users[user_id] = stats

    def get_stats(self, user_id: str) -> UserStats | None:
        return self._users.get(user_id)

    def leaderboard(self, limit: int = 10) -> list[dict[str, Any]]:
        """Users ordered by best score, highest first."""
        ranked = sorted(self._users.values(), key=lambda s: s.best_score, reverse=True)
        return [
            {
                "user_id": s.user_id,
                "best_score": s.best_score,
                "games_played": s.games_played,
                "games_won": s.games_won,
                "win_rate": round(s.win_rate),
            }
            for s in ranked[:limit]
        ]


# ------------------------------------------------------------------
# HTTP store
# ------------------------------------------------------------------

class HttpProfileStore:
    """Posts results to the profile backend's ``/users/game-result`` endpoint."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport

    async def record_battle_result(self, user_id: str, result: BattleResult) -> None:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
        ) as http:
            response = await http.post("/users/game-result", json=game_result_payload(result))
            response.raise_for_status()
        logger.info("Recorded battle result for %s.", user_id)
