from __future__ import annotations

import asyncio
import json

import pytest

from stockcount.clients.config import ConfigGoalProvider, goal_provider, load_config, parse_config
from stockcount.clients.persistence import MemoryInventoryStore
from stockcount.core.autosave import AutoSaveConfig, SaveCoordinator
from stockcount.core.errors import IssueCode
from stockcount.core.models import InventoryRecord
from stockcount.core.quality import validate


def test_load_yaml_config(tmp_path):
    path = tmp_path / "stockcount.yml"
    path.write_text(
        "\n".join(
            [
                "branches: [Centro, Norte]",
                "branch_goals:",
                "  Centro: 12",
                "  Sur: 3",
                "autosave:",
                "  debounce_seconds: 1.5",
                "  max_retries: 5",
                "anomaly:",
                "  value: 20000",
                "validation:",
                "  high_quantity_limit: 500",
            ]
        ),
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.branches == ("Centro", "Norte", "Sur")
    assert config.autosave.debounce_seconds == 1.5
    assert config.autosave.max_retries == 5
    assert config.autosave.min_interval_seconds == 5.0
    assert config.anomaly.value == 20000.0
    assert config.anomaly.units == 50
    assert config.validation.high_quantity_limit == 500
    assert config.validation.as_kwargs()["high_variance_ratio"] == 0.9
    assert goal_provider(config).goal_for("centro") == 12


def test_load_json_config(tmp_path):
    path = tmp_path / "stockcount.json"
    path.write_text(json.dumps({"branch_goals": {"Norte": 4}}), encoding="utf-8")
    config = load_config(path)
    assert config.branch_goals == {"Norte": 4}
    assert config.autosave == AutoSaveConfig()


def test_defaults_without_a_file():
    config = load_config(None)
    assert config.branches == ()
    assert config.autosave.debounce_seconds == 2.0
    assert config.autosave.retry_step_seconds == 1.0


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yml")


def test_non_mapping_config_is_rejected(tmp_path):
    path = tmp_path / "bad.yml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_goal_lookup_is_trimmed_and_case_insensitive():
    goals = ConfigGoalProvider({" Centro ": 6})
    assert goals.goal_for("CENTRO") == 6
    assert goals.goal_for("centro  ") == 6
    assert goals.goal_for("Norte") == 0


def test_configured_validation_limit_applies_to_saves():
    config = parse_config(
        {
            "autosave": {"debounce_seconds": 0, "min_interval_seconds": 0},
            "validation": {"high_quantity_limit": 5},
        }
    )
    batch = [InventoryRecord("A", "Crema", 50, 50, 1.0)]

    async def scenario():
        coordinator = SaveCoordinator(
            "Centro", "Lab", MemoryInventoryStore(), config=config.autosave, thresholds=config.validation
        )
        return await coordinator.save_now(batch)

    outcome = asyncio.run(scenario())
    assert outcome.ok
    assert outcome.warnings
    assert IssueCode.HIGH_QUANTITY in validate(batch, **config.validation.as_kwargs()).codes()
