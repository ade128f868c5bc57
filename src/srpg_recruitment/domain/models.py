"""Dataclasses describing the recruitment domain.

Units and stages are owned by the battle layer; the engine only reads them and
returns :class:`UnitPatch` commands describing the changes a state transition
implies.  Everything the engine owns itself (definitions, NPC records) lives
here as plain in-memory dataclasses.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NewType

from .enums import Faction, IndicatorType, RecruitmentStatus, RewardType

if TYPE_CHECKING:
    from .conditions import Condition

# --- Strongly typed identifiers -------------------------------------------------

UnitID = NewType("UnitID", str)
StageID = NewType("StageID", str)
ChapterID = NewType("ChapterID", str)
RecruitmentID = NewType("RecruitmentID", str)


class InvalidTransitionError(RuntimeError):
    """Raised when a recruitment status would move backwards."""


# --- Battle-side inputs ---------------------------------------------------------


@dataclass(slots=True)
class Unit:
    """A unit on the battlefield as seen by the recruitment engine."""

    id: UnitID
    name: str
    faction: Faction
    current_hp: int
    max_hp: int
    has_acted: bool = False
    has_moved: bool = False
    recruitment: Mapping[str, object] | None = None

    @property
    def is_alive(self) -> bool:
        return self.current_hp > 0


@dataclass(frozen=True, slots=True)
class BattleResult:
    """Outcome of a single resolved attack."""

    damage: int = 0
    is_critical: bool = False
    damage_type: str | None = None
    weapon_type: str | None = None
    element: str | None = None


@dataclass(slots=True)
class RecruitmentContext:
    """Snapshot handed to condition predicates; rebuilt for every check."""

    attacker: Unit
    target: Unit
    damage: int = 0
    turn: int = 1
    allied_units: list[Unit] = field(default_factory=list)
    enemy_units: list[Unit] = field(default_factory=list)
    npc_units: list[Unit] = field(default_factory=list)
    battle_result: BattleResult | None = None


@dataclass(slots=True)
class StageData:
    """Stage description consumed at initialization."""

    id: StageID
    enemy_units: list[Unit] = field(default_factory=list)
    chapter_id: ChapterID | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> StageData:
        """Build a stage from its JSON representation."""

        if not isinstance(data, Mapping):
            raise TypeError(f"stage must be a mapping, got {type(data).__name__}")
        units = []
        for raw in data.get("enemyUnits", data.get("enemy_units", [])) or []:
            if not isinstance(raw, Mapping):
                raise TypeError(f"enemy unit must be a mapping, got {type(raw).__name__}")
            max_hp = int(raw.get("maxHP", raw.get("max_hp", 0)))
            units.append(
                Unit(
                    id=UnitID(str(raw["id"])),
                    name=str(raw.get("name", raw["id"])),
                    faction=Faction(raw.get("faction", Faction.ENEMY)),
                    current_hp=int(raw.get("currentHP", raw.get("current_hp", max_hp))),
                    max_hp=max_hp,
                    recruitment=raw.get("recruitment"),
                )
            )
        chapter = data.get("chapterId", data.get("chapter_id"))
        return cls(
            id=StageID(str(data["id"])),
            enemy_units=units,
            chapter_id=ChapterID(str(chapter)) if chapter is not None else None,
        )


# --- State owned by the engine --------------------------------------------------


@dataclass(slots=True)
class UnitPatch:
    """Changes a state transition wants applied to a live unit.

    ``None`` fields are left untouched.
    """

    faction: Faction | None = None
    has_acted: bool | None = None
    has_moved: bool | None = None
    current_hp: int | None = None

    def apply(self, unit: Unit) -> Unit:
        if self.faction is not None:
            unit.faction = self.faction
        if self.has_acted is not None:
            unit.has_acted = self.has_acted
        if self.has_moved is not None:
            unit.has_moved = self.has_moved
        if self.current_hp is not None:
            unit.current_hp = self.current_hp
        return unit


@dataclass(frozen=True, slots=True)
class NPCVisualState:
    """Presentation hints for the rendering layer."""

    indicator_visible: bool = True
    indicator_type: IndicatorType = IndicatorType.CROWN
    tint_color: int = 0x00FF00
    glow_effect: bool = True
    animation_speed: float = 0.8


@dataclass(slots=True)
class NPCState:
    """Record kept for a unit between conversion and resolution."""

    converted_at_turn: int
    remaining_hp: int
    is_protected: bool
    original_faction: Faction
    recruitment_id: RecruitmentID
    visual_state: NPCVisualState = field(default_factory=NPCVisualState)


@dataclass(frozen=True, slots=True)
class RecruitmentReward:
    """Reward granted when a recruitment completes."""

    type: RewardType
    amount: int
    description: str = ""
    target: str | None = None  # recruiter | party | recruited


@dataclass(slots=True)
class RecruitableDefinition:
    """Per-stage recruitment record for one enemy unit."""

    character_id: UnitID
    conditions: list[Condition]
    priority: int = 50
    status: RecruitmentStatus = RecruitmentStatus.AVAILABLE
    npc_state: NPCState | None = None
    description: str = ""
    rewards: list[RecruitmentReward] = field(default_factory=list)

    def transition(self, status: RecruitmentStatus, npc_state: NPCState | None = None) -> None:
        """Move to ``status``; ``npc_state`` is required for, and only kept in, ``NPC_STATE``."""

        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"{self.character_id}: {self.status} is terminal, cannot move to {status}"
            )
        if status.rank < self.status.rank:
            raise InvalidTransitionError(
                f"{self.character_id}: cannot move from {self.status} back to {status}"
            )
        if status is RecruitmentStatus.NPC_STATE and npc_state is None:
            raise InvalidTransitionError(f"{self.character_id}: NPC_STATE requires an NPC record")
        self.status = status
        self.npc_state = npc_state if status is RecruitmentStatus.NPC_STATE else None


@dataclass(slots=True)
class RecruitedUnit:
    """A unit whose recruitment became permanent at stage clear."""

    unit: Unit
    recruitment_id: RecruitmentID
    recruited_at_turn: int
    conditions: list[Condition]
    rewards: list[RecruitmentReward] = field(default_factory=list)


@dataclass(slots=True)
class RosterEntry:
    """Persisted form of a recruited character.

    ``is_available`` is cleared while the character is lost for the current
    chapter and restored when the chapter completes.
    """

    character_id: UnitID
    recruitment_id: RecruitmentID
    stage_id: StageID
    chapter_id: ChapterID | None = None
    recruited_at_turn: int = 0
    condition_ids: list[str] = field(default_factory=list)
    is_available: bool = True
