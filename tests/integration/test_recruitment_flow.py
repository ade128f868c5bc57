"""End-to-end recruitment flows through the orchestrator."""

from __future__ import annotations

from dataclasses import replace

import pytest

from srpg_recruitment.config import Settings
from srpg_recruitment.domain.enums import (
    Faction,
    RecruitmentAction,
    RecruitmentError,
    RecruitmentStatus,
)
from srpg_recruitment.domain.events import RecruitmentEvent
from srpg_recruitment.domain.models import StageData, Unit, UnitID
from srpg_recruitment.domain.rules_config import DEFAULT_RULES, NPCRules
from srpg_recruitment.factory import create_orchestrator
from srpg_recruitment.repository import JsonRosterRepository
from srpg_recruitment.services.recruitment_service import RecruitmentOrchestrator


def _attacker_block(attacker: str = "player-1") -> dict:
    return {
        "conditions": [
            {
                "id": "by-hero",
                "type": "specific_attacker",
                "description": "Defeat with the hero",
                "parameters": {"attackerId": attacker},
            }
        ],
        "priority": 80,
    }


def _stage(*enemies: Unit) -> StageData:
    return StageData.from_dict(
        {
            "id": "stage-1",
            "chapterId": "chapter-1",
            "enemyUnits": [
                {
                    "id": e.id,
                    "name": e.name,
                    "maxHP": e.max_hp,
                    "currentHP": e.current_hp,
                    "recruitment": e.recruitment,
                }
                for e in enemies
            ],
        }
    )


def _unit(unit_id: str, hp: int, max_hp: int, faction=Faction.ENEMY, recruitment=None) -> Unit:
    return Unit(UnitID(unit_id), unit_id, faction, hp, max_hp, recruitment=recruitment)


@pytest.fixture
def player_1() -> Unit:
    return _unit("player-1", 100, 100, Faction.PLAYER)


@pytest.fixture
def engine() -> RecruitmentOrchestrator:
    return RecruitmentOrchestrator()


def test_eligibility_depends_on_attacker(engine, player_1):
    stage = _stage(_unit("enemy-1", 90, 90, recruitment=_attacker_block()))
    engine.initialize(stage)
    [enemy] = stage.enemy_units

    assert engine.check_eligibility(player_1, enemy, damage=10).eligible
    player_2 = _unit("player-2", 100, 100, Faction.PLAYER)
    assert not engine.check_eligibility(player_2, enemy, damage=10).eligible


def test_hp_threshold_boundary(engine, player_1):
    block = {
        "conditions": [
            {"id": "weak", "type": "hp_threshold", "parameters": {"threshold": 0.3}},
        ]
    }
    stage = _stage(_unit("enemy-1", 30, 90, recruitment=block))
    engine.initialize(stage)
    [enemy] = stage.enemy_units

    assert engine.check_eligibility(player_1, enemy).conditions_met == [False]
    enemy.current_hp = 20
    assert engine.check_eligibility(player_1, enemy).conditions_met == [True]


def test_lethal_attempt_converts(engine, player_1):
    stage = _stage(_unit("enemy-1", 90, 90, recruitment=_attacker_block()))
    engine.initialize(stage)
    [enemy] = stage.enemy_units

    result = engine.process_attempt(player_1, enemy, damage=90, turn=1)
    assert result.next_action is RecruitmentAction.CONVERT_TO_NPC
    assert engine.is_npc(enemy)


def test_defeated_npc_is_not_recruited(engine, player_1):
    stage = _stage(_unit("enemy-1", 90, 90, recruitment=_attacker_block()))
    engine.initialize(stage)
    [enemy] = stage.enemy_units
    engine.process_attempt(player_1, enemy, damage=90, turn=1)

    damage = engine.handle_npc_damage(enemy, 200)
    assert damage.remaining_hp == 0

    outcome = engine.complete_recruitment([enemy])
    assert outcome.recruited == []
    assert [f.error for f in outcome.failed] == [RecruitmentError.NPC_ALREADY_DEFEATED]
    assert engine.get_definition(enemy).status is RecruitmentStatus.FAILED


def test_surviving_npc_is_recruited(engine, player_1):
    stage = _stage(_unit("enemy-1", 90, 90, recruitment=_attacker_block()))
    engine.initialize(stage)
    [enemy] = stage.enemy_units
    engine.process_attempt(player_1, enemy, damage=90, turn=1)
    engine.handle_npc_damage(enemy, 15)

    outcome = engine.complete_recruitment([enemy])
    [recruited] = outcome.recruited
    assert recruited.unit.faction is Faction.PLAYER
    assert recruited.unit.current_hp == 75
    assert [c.id for c in recruited.conditions] == ["by-hero"]
    assert engine.get_definition(enemy).status is RecruitmentStatus.RECRUITED
    assert not engine.is_npc(enemy)
    assert outcome.failed == []


def test_npc_cap_rejects_second_conversion(player_1):
    engine = RecruitmentOrchestrator(replace(DEFAULT_RULES, npc=NPCRules(max_npcs_per_stage=1)))
    stage = _stage(
        _unit("enemy-1", 20, 90, recruitment=_attacker_block()),
        _unit("enemy-2", 20, 90, recruitment=_attacker_block()),
    )
    engine.initialize(stage)
    first, second = stage.enemy_units

    assert engine.process_attempt(player_1, first, damage=20, turn=2).success
    blocked = engine.process_attempt(player_1, second, damage=20, turn=2)
    assert not blocked.success
    assert blocked.error is RecruitmentError.SYSTEM_ERROR
    assert engine.get_definition(second).status is RecruitmentStatus.FAILED
    assert engine.is_npc(first)
    assert not engine.is_npc(second)


def test_event_sequence_for_full_stage(engine, player_1):
    seen = []
    for event_type in RecruitmentEvent:
        engine.bus.on(event_type, lambda event: seen.append(event.type))
    stage = _stage(_unit("enemy-1", 10, 90, recruitment=_attacker_block()))
    engine.initialize(stage)
    [enemy] = stage.enemy_units
    engine.process_attempt(player_1, enemy, damage=10)
    engine.handle_npc_damage(enemy, 1)
    engine.complete_recruitment([enemy])

    assert seen == [
        RecruitmentEvent.INITIALIZED,
        RecruitmentEvent.ELIGIBILITY_CHECKED,
        RecruitmentEvent.CONVERTED_TO_NPC,
        RecruitmentEvent.NPC_DAMAGED,
        RecruitmentEvent.RECRUITMENT_COMPLETED,
        RecruitmentEvent.STAGE_COMPLETED,
    ]


def test_roster_persists_across_stages(tmp_path, player_1):
    settings = Settings(data_dir=tmp_path)
    engine = create_orchestrator(settings=settings)
    stage = _stage(_unit("enemy-1", 10, 90, recruitment=_attacker_block()))
    engine.initialize(stage)
    [enemy] = stage.enemy_units
    engine.process_attempt(player_1, enemy, damage=10)
    engine.complete_recruitment([enemy])

    [entry] = JsonRosterRepository(tmp_path).load()
    assert entry.character_id == "enemy-1"
    assert entry.chapter_id == "chapter-1"

    # A new session loads the roster and never offers the same character again.
    next_session = create_orchestrator(settings=settings)
    next_session.initialize(_stage(_unit("enemy-1", 90, 90, recruitment=_attacker_block())))
    assert next_session.recruitable_ids() == []


def _assert_npc_record_matches_status(engine, *units):
    for unit in units:
        definition = engine.get_definition(unit)
        in_npc_state = definition.status is RecruitmentStatus.NPC_STATE
        assert (definition.npc_state is not None) == in_npc_state
        assert engine.is_npc(unit) == in_npc_state
    assert not [i for i in engine.validate_recruitment_data() if "NPC record" in i.message]


def test_npc_record_tracks_status_through_a_stage(engine, player_1):
    stage = _stage(
        _unit("enemy-1", 10, 90, recruitment=_attacker_block()),
        _unit("enemy-2", 10, 90, recruitment=_attacker_block()),
    )
    engine.initialize(stage)
    survivor, casualty = stage.enemy_units
    _assert_npc_record_matches_status(engine, survivor, casualty)

    engine.check_eligibility(player_1, survivor, damage=5)
    _assert_npc_record_matches_status(engine, survivor, casualty)

    engine.process_attempt(player_1, survivor, damage=5, turn=1)
    assert engine.get_definition(survivor).status is RecruitmentStatus.CONDITIONS_MET
    _assert_npc_record_matches_status(engine, survivor, casualty)

    engine.process_attempt(player_1, survivor, damage=10, turn=2)
    engine.process_attempt(player_1, casualty, damage=10, turn=2)
    _assert_npc_record_matches_status(engine, survivor, casualty)

    engine.handle_npc_damage(survivor, 3)
    _assert_npc_record_matches_status(engine, survivor, casualty)

    engine.handle_npc_damage(casualty, 50)
    assert engine.get_definition(casualty).status is RecruitmentStatus.FAILED
    _assert_npc_record_matches_status(engine, survivor, casualty)

    outcome = engine.complete_recruitment([survivor, casualty])
    assert [r.unit.id for r in outcome.recruited] == ["enemy-1"]
    assert outcome.failed_unit_ids == ["enemy-2"]
    assert engine.get_definition(survivor).status is RecruitmentStatus.RECRUITED
    _assert_npc_record_matches_status(engine, survivor, casualty)
