"""
Configuration loader for the stock count engine.

One YAML (or JSON) file carries the branch list, per-branch group goals and
the tuning knobs of auto-save, anomaly detection and validation:

    branches: [Centro, Norte]
    branch_goals: {Centro: 12, Norte: 8}
    autosave: {debounce_seconds: 2, min_interval_seconds: 5, max_retries: 3}
    anomaly: {units: 50, ratio: 0.5, value: 50000}
    validation: {high_quantity_limit: 10000, high_variance_ratio: 0.9}
"""

import json
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..core.autosave import AutoSaveConfig
from ..core.lifecycle import AnomalyThresholds
from ..core.quality import ValidationThresholds

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockCountConfig:
    """Top-level configuration surface."""

    branches: tuple[str, ...] = ()
    branch_goals: Mapping[str, int] = field(default_factory=dict)
    autosave: AutoSaveConfig = field(default_factory=AutoSaveConfig)
    anomaly: AnomalyThresholds = field(default_factory=AnomalyThresholds)
    validation: ValidationThresholds = field(default_factory=ValidationThresholds)


def _branch_key(name: str) -> str:
    return str(name).strip().lower()


class ConfigGoalProvider:
    """Group goal per branch; unknown branches get 0."""

    def __init__(self, goals: Mapping[str, int]):
        self._goals = {_branch_key(name): int(goal) for name, goal in goals.items()}

    def goal_for(self, branch: str) -> int:
        return self._goals.get(_branch_key(branch), 0)


def _load_mapping(path: Path) -> Mapping[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yml", ".yaml"}:
        payload = yaml.safe_load(text)
    else:
        payload = json.loads(text)
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Config {path} must map keys to values.")
    return payload


def parse_config(payload: Mapping[str, Any]) -> StockCountConfig:
    """Build a StockCountConfig from an already-parsed mapping."""
    autosave_block = payload.get("autosave") or {}
    anomaly_block = payload.get("anomaly") or {}
    validation_block = payload.get("validation") or {}
    goals = payload.get("branch_goals") or {}

    branches = [str(name).strip() for name in payload.get("branches") or []]
    for name in goals:
        if _branch_key(name) not in {_branch_key(b) for b in branches}:
            branches.append(str(name).strip())

    return StockCountConfig(
        branches=tuple(branches),
        branch_goals={str(name).strip(): int(goal or 0) for name, goal in goals.items()},
        autosave=AutoSaveConfig(
            debounce_seconds=float(autosave_block.get("debounce_seconds", AutoSaveConfig.debounce_seconds)),
            min_interval_seconds=float(
                autosave_block.get("min_interval_seconds", AutoSaveConfig.min_interval_seconds)
            ),
            max_retries=int(autosave_block.get("max_retries", AutoSaveConfig.max_retries)),
            retry_step_seconds=float(
                autosave_block.get("retry_step_seconds", AutoSaveConfig.retry_step_seconds)
            ),
        ),
        anomaly=AnomalyThresholds(
            units=int(anomaly_block.get("units", AnomalyThresholds.units)),
            ratio=float(anomaly_block.get("ratio", AnomalyThresholds.ratio)),
            value=float(anomaly_block.get("value", AnomalyThresholds.value)),
        ),
        validation=ValidationThresholds(
            high_quantity_limit=int(
                validation_block.get("high_quantity_limit", ValidationThresholds.high_quantity_limit)
            ),
            high_variance_ratio=float(
                validation_block.get("high_variance_ratio", ValidationThresholds.high_variance_ratio)
            ),
        ),
    )


def load_config(path: Path | str | None = None) -> StockCountConfig:
    """Load configuration from disk. No path means all defaults."""
    if path is None:
        return StockCountConfig()
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration not found at {config_path}")
    config = parse_config(_load_mapping(config_path))
    LOGGER.debug("Loaded config from %s: %d branch(es)", config_path, len(config.branches))
    return config


def goal_provider(config: StockCountConfig) -> ConfigGoalProvider:
    return ConfigGoalProvider(config.branch_goals)
