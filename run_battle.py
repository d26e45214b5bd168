#!/usr/bin/env python3
"""CLI entrypoint for a headless three-way trading battle.

Usage::

    python run_battle.py --config config/example.yaml
    python run_battle.py --config config/example.yaml --output-dir results/ --user-id alice

The battle loads a YAML configuration file, builds the session with its
policies and external clients, then runs it in real time. Human trades come
from the config's ``human_script``. The run name is derived automatically from
the config file name (e.g. ``example.yaml`` -> ``example``).

``INVESTEASE_API_TOKEN`` (and the LLM provider's API key) are read from the
environment or a ``.env`` file.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from models.config import SessionConfig
from simulation.runner import AsyncBattleRunner


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a three-way trading battle.",
    )
    parser.add_argument(
        "--config",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )
    parser.add_argument(
        "--output-dir",
        default="results",
        type=str,
        help="Directory where battle results will be written (default: results/).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO).",
    )
    parser.add_argument(
        "--user-id",
        default="anonymous",
        type=str,
        help="Player id under which the result is recorded (default: anonymous).",
    )
    return parser.parse_args()


def _setup_logging(level: str) -> None:
    """Configure root logger with a clean format."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


async def _main() -> None:
    args = _parse_args()
    _setup_logging(args.log_level)
    load_dotenv()  # auto-load .env file if present

    logger = logging.getLogger(__name__)
    logger.info("Loading config from '%s'...", args.config)

    config = SessionConfig.from_yaml(args.config)
    logger.info(
        "Config loaded: bot='%s', advance='%s', %d scripted human trade(s).",
        config.bot.policy,
        config.advance_policy,
        len(config.human_script),
    )

    runner = AsyncBattleRunner(
        config,
        config_yaml_path=args.config,
        output_dir=args.output_dir,
        user_id=args.user_id,
        token=os.environ.get("INVESTEASE_API_TOKEN"),
    )
    result = await runner.run()

    for participant, outcome in result.per_participant.items():
        logger.info(
            "%-15s $%10.2f  %+6.2f%%  %s",
            participant.value,
            outcome.final_value,
            outcome.return_percent,
            outcome.strategy_label or "",
        )
    logger.info("Winner: %s", result.winner.value)


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
