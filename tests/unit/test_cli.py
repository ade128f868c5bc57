"""Tests for the command line entrypoint."""

from __future__ import annotations

import json

import pytest

from srpg_recruitment.config import get_settings
from srpg_recruitment.domain.models import RecruitmentID, RosterEntry, StageID, UnitID
from srpg_recruitment.main import main
from srpg_recruitment.repository import JsonRosterRepository


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SRPG_RECRUITMENT_DATA_DIR", str(tmp_path / "saves"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _write_stage(path, recruitment):
    stage = {
        "id": "stage-1",
        "enemyUnits": [{"id": "enemy-1", "name": "Bandit", "maxHP": 90, "recruitment": recruitment}],
    }
    path.write_text(json.dumps(stage), encoding="utf-8")
    return path


def test_validate_clean_stage(tmp_path, capsys):
    stage = _write_stage(
        tmp_path / "stage.json",
        {"conditions": [{"id": "by-hero", "type": "specific_attacker", "parameters": {"attackerId": "hero"}}]},
    )
    assert main(["validate", str(stage)]) == 0
    out = capsys.readouterr().out
    assert "1 recruitable unit(s)" in out
    assert "enemy-1: by-hero" in out


def test_validate_reports_issues(tmp_path, capsys):
    stage = _write_stage(
        tmp_path / "stage.json",
        {"conditions": [{"id": "broken", "type": "turn_limit", "parameters": {"maxTurn": -1}}]},
    )
    assert main(["validate", str(stage)]) == 1
    assert "! enemy-1: malformed condition" in capsys.readouterr().out


def test_validate_unreadable_file(tmp_path, capsys):
    assert main(["validate", str(tmp_path / "missing.json")]) == 2
    assert "cannot read stage" in capsys.readouterr().err


def test_roster_listing(tmp_path, capsys):
    assert main(["roster"]) == 0
    assert "roster is empty" in capsys.readouterr().out

    JsonRosterRepository(tmp_path / "saves").save(
        [RosterEntry(UnitID("enemy-1"), RecruitmentID("r1"), StageID("stage-1"), recruited_at_turn=3)]
    )
    assert main(["roster"]) == 0
    assert "enemy-1  stage stage-1  turn 3" in capsys.readouterr().out


def test_validate_rejects_non_mapping_unit(tmp_path, capsys):
    stage = tmp_path / "stage.json"
    stage.write_text(json.dumps({"id": "stage-1", "enemyUnits": ["enemy-1"]}), encoding="utf-8")
    assert main(["validate", str(stage)]) == 2
    assert "enemy unit must be a mapping" in capsys.readouterr().err


def test_roster_marks_lost_characters(tmp_path, capsys):
    JsonRosterRepository(tmp_path / "saves").save(
        [RosterEntry(UnitID("enemy-1"), RecruitmentID("r1"), StageID("stage-1"), is_available=False)]
    )
    assert main(["roster"]) == 0
    assert "(lost)" in capsys.readouterr().out
