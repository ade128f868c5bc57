"""Unit tests for recruitment domain models."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from srpg_recruitment.domain.conditions import NoCritical
from srpg_recruitment.domain.enums import Faction, RecruitmentStatus
from srpg_recruitment.domain.models import (
    InvalidTransitionError,
    NPCState,
    RecruitableDefinition,
    RecruitmentID,
    StageData,
    Unit,
    UnitID,
    UnitPatch,
)


def _definition() -> RecruitableDefinition:
    return RecruitableDefinition(character_id=UnitID("enemy-1"), conditions=[NoCritical("n", "")])


def _npc_state() -> NPCState:
    return NPCState(
        converted_at_turn=1,
        remaining_hp=40,
        is_protected=True,
        original_faction=Faction.ENEMY,
        recruitment_id=RecruitmentID("recruitment_enemy-1_s1_1"),
    )


class TestTransitions:
    def test_happy_path(self):
        definition = _definition()
        definition.transition(RecruitmentStatus.CONDITIONS_MET)
        definition.transition(RecruitmentStatus.NPC_STATE, _npc_state())
        assert definition.npc_state is not None
        definition.transition(RecruitmentStatus.RECRUITED)
        assert definition.status is RecruitmentStatus.RECRUITED
        assert definition.npc_state is None

    def test_npc_state_requires_record(self):
        definition = _definition()
        with pytest.raises(InvalidTransitionError):
            definition.transition(RecruitmentStatus.NPC_STATE)

    def test_cannot_regress(self):
        definition = _definition()
        definition.transition(RecruitmentStatus.NPC_STATE, _npc_state())
        with pytest.raises(InvalidTransitionError):
            definition.transition(RecruitmentStatus.CONDITIONS_MET)

    def test_terminal_states_are_final(self):
        definition = _definition()
        definition.transition(RecruitmentStatus.FAILED)
        with pytest.raises(InvalidTransitionError):
            definition.transition(RecruitmentStatus.RECRUITED)

    @given(st.lists(st.sampled_from(list(RecruitmentStatus)), max_size=8))
    def test_status_never_regresses(self, requested):
        definition = _definition()
        for status in requested:
            before = definition.status
            try:
                definition.transition(status, _npc_state())
            except InvalidTransitionError:
                assert definition.status is before
            assert definition.status.rank >= before.rank
            assert (definition.npc_state is not None) == (
                definition.status is RecruitmentStatus.NPC_STATE
            )


class TestUnitPatch:
    def test_only_set_fields_change(self):
        unit = Unit(UnitID("u"), "U", Faction.ENEMY, current_hp=50, max_hp=60)
        UnitPatch(faction=Faction.PLAYER, has_acted=True).apply(unit)
        assert unit.faction is Faction.PLAYER
        assert unit.has_acted is True
        assert unit.has_moved is False
        assert unit.current_hp == 50

    def test_zero_hp_is_applied(self):
        unit = Unit(UnitID("u"), "U", Faction.ENEMY, current_hp=50, max_hp=60)
        UnitPatch(current_hp=0).apply(unit)
        assert unit.current_hp == 0
        assert not unit.is_alive


class TestStageData:
    def test_from_camel_case_json(self):
        stage = StageData.from_dict(
            {
                "id": "stage-1",
                "chapterId": "chapter-1",
                "enemyUnits": [
                    {
                        "id": "enemy-1",
                        "name": "Bandit",
                        "maxHP": 90,
                        "currentHP": 45,
                        "recruitment": {"conditions": []},
                    },
                    {"id": "enemy-2", "max_hp": 30},
                ],
            }
        )
        assert stage.id == "stage-1"
        assert stage.chapter_id == "chapter-1"
        first, second = stage.enemy_units
        assert (first.current_hp, first.max_hp, first.faction) == (45, 90, Faction.ENEMY)
        assert first.recruitment == {"conditions": []}
        assert second.current_hp == 30
        assert second.name == "enemy-2"
        assert second.recruitment is None
