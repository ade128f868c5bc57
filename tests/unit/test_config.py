"""Tests for settings and rule configuration."""

from __future__ import annotations

import dataclasses

import pytest

from srpg_recruitment.config import Settings, get_settings
from srpg_recruitment.domain.rules_config import DEFAULT_RULES, RulesConfig
from srpg_recruitment.factory import create_orchestrator


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SRPG_RECRUITMENT_DATA_DIR", str(tmp_path / "saves"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_rules_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_RULES.npc.max_npcs_per_stage = 10  # type: ignore[misc]
    assert isinstance(DEFAULT_RULES, RulesConfig)


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("SRPG_RECRUITMENT_MAX_NPCS_PER_STAGE", "1")
    monkeypatch.setenv("SRPG_RECRUITMENT_DEFERRED_NOTIFICATIONS", "true")
    settings = get_settings()

    assert settings.data_dir == tmp_path / "saves"
    assert settings.data_dir.is_dir()
    rules = settings.to_rules()
    assert rules.npc.max_npcs_per_stage == 1
    assert rules.notifications.deferred is True
    assert rules.cache == DEFAULT_RULES.cache


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_defaults_match_rules():
    rules = Settings().to_rules()
    assert rules == DEFAULT_RULES


def test_factory_wires_settings(tmp_path):
    settings = Settings(max_npcs_per_stage=2, monitor_enabled=False)
    engine = create_orchestrator(settings=settings)

    assert engine.npc_manager.rules.max_npcs_per_stage == 2
    assert not engine.monitor.enabled
    assert engine.monitor.hooks is engine
    assert engine.roster_sink.path == tmp_path / "saves" / "roster.json"
