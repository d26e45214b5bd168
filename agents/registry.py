"""Bot policy registry: maps config strings to TradingPolicy subclasses.

Usage::

    from agents.registry import create_bot_policy

    bot = create_bot_policy(bot_config, rng)
"""

from __future__ import annotations

import random
from typing import Type

from agents.base import TradingPolicy
from models.config import BotConfig

# ---------------------------------------------------------------------------
# Registry mapping
# ---------------------------------------------------------------------------
_REGISTRY: dict[str, Type[TradingPolicy]] = {}


def register(name: str):
    """Decorator to register a bot ``TradingPolicy`` subclass under *name*."""

    def _decorator(cls: Type[TradingPolicy]) -> Type[TradingPolicy]:
        if name in _REGISTRY:
            raise ValueError(f"Bot policy '{name}' is already registered.")
        _REGISTRY[name] = cls
        return cls

    return _decorator


def available_policies() -> list[str]:
    _ensure_builtins_loaded()
    return sorted(_REGISTRY)


def create_bot_policy(config: BotConfig, rng: random.Random | None = None) -> TradingPolicy:
    """Instantiate the bot policy specified in *config*.

    Raises ``KeyError`` if ``config.policy`` is not registered.
    """
    # Lazy-import concrete implementations so they self-register.
    _ensure_builtins_loaded()

    key = config.policy
    if key not in _REGISTRY:
        available = ", ".join(sorted(_REGISTRY)) or "(none)"
        raise KeyError(f"Unknown bot policy '{key}'. Available: {available}.")
    return _REGISTRY[key](config, rng or random.Random())  # type: ignore[call-arg]


def _ensure_builtins_loaded() -> None:
    """Import built-in policy modules so their ``@register`` calls execute."""
    import agents.bots  # noqa: F401
