"""Battle output logging: persists the result, trade history and narrator trace.

The output directory structure is::

    {output_dir}/{run_name}/
    ├── config.yaml
    ├── battle_result.json
    ├── trades.json
    ├── narrator_trace.json
    └── summary.json
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any

import yaml

from models.config import SessionConfig
from models.portfolio import Participant
from models.result import BattleResult
from models.trade import ExecutedTrade

logger = logging.getLogger(__name__)


def run_name_from_config_path(config_path: str | Path | None) -> str:
    """Derive a run name from the configuration file path (stem without extension)."""
    if config_path is None:
        return "battle"
    return Path(config_path).stem


class BattleLogger:
    """Manages on-disk output for one battle.

    Call ``init_run`` once before the battle starts, then the ``write_*``
    methods as their data becomes available, and ``finalize`` last.
    """

    def __init__(
        self,
        output_dir: str,
        config: SessionConfig,
        run_name: str,
    ) -> None:
        self._run_dir = _unique_run_dir(Path(output_dir), run_name)
        self._config = config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init_run(self, config_yaml_path: str | None = None) -> None:
        """Create the run directory and store the config that produced it.

        The original YAML is copied when there is one; otherwise the
        in-memory config is dumped.
        """
        self._run_dir.mkdir(parents=True, exist_ok=True)
        dest = self._run_dir / "config.yaml"
        if config_yaml_path is not None:
            shutil.copy2(config_yaml_path, dest)
            logger.info("Copied config to %s", dest)
        else:
            dest.write_text(
                yaml.safe_dump(self._config.model_dump(mode="json"), sort_keys=False),
                encoding="utf-8",
            )

    def write_result(self, result: BattleResult) -> None:
        _write_json(self._run_dir / "battle_result.json", result.model_dump(mode="json"))
        logger.info("Wrote battle result to %s", self._run_dir)

    def write_trades(self, trades: dict[Participant, list[ExecutedTrade]]) -> None:
        """Persist every executed trade, grouped by participant."""
        _write_json(
            self._run_dir / "trades.json",
            {p.value: [t.model_dump(mode="json") for t in ts] for p, ts in trades.items()},
        )

    def write_narrator_trace(self, trace: list[dict[str, Any]]) -> None:
        if trace:
            _write_json(self._run_dir / "narrator_trace.json", trace)

    def finalize(self, summary: dict[str, Any] | None = None) -> None:
        if summary is not None:
            _write_json(self._run_dir / "summary.json", summary)
        logger.info("Battle output finalized at %s", self._run_dir)

    @property
    def run_dir(self) -> Path:
        return self._run_dir


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _unique_run_dir(output_dir: Path, run_name: str) -> Path:
    """Return a run directory that does not already exist.

    If ``output_dir/run_name`` is free, use it directly (first run keeps
    a clean name).  Otherwise append an incrementing suffix:
    ``run_name_001``, ``run_name_002``, etc.
    """
    candidate = output_dir / run_name
    if not candidate.exists():
        return candidate

    idx = 1
    while True:
        candidate = output_dir / f"{run_name}_{idx:03d}"
        if not candidate.exists():
            return candidate
        idx += 1


def _write_json(path: Path, data: Any) -> None:
    """Write *data* as pretty-printed JSON to *path*."""
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
