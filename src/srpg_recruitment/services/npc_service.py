"""NPC Lifecycle Service.

Owns the record of every unit currently held in NPC state: the transitional
state between a successful recruitment trigger and stage clear.  NPCs cannot
act, fight for the player side for targeting purposes and are the preferred
target of enemy AI.

The manager never touches a live unit.  Each transition returns a
:class:`~srpg_recruitment.domain.models.UnitPatch` that the caller applies.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from numbers import Real

from srpg_recruitment.domain.enums import Faction, RecruitmentError
from srpg_recruitment.domain.models import (
    NPCState,
    NPCVisualState,
    RecruitmentID,
    Unit,
    UnitID,
    UnitPatch,
)
from srpg_recruitment.domain.rules_config import NPCRules

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NPCConversionResult:
    """Outcome of converting a unit to NPC state."""

    success: bool
    npc_state: NPCState | None = None
    patch: UnitPatch | None = None
    error: RecruitmentError | None = None
    message: str = ""


@dataclass(slots=True)
class NPCDamageResult:
    """Outcome of applying damage to an NPC."""

    success: bool
    remaining_hp: int
    was_defeated: bool = False
    patch: UnitPatch | None = None
    npc_state: NPCState | None = None
    error: RecruitmentError | None = None
    message: str = ""


@dataclass(frozen=True, slots=True)
class NPCStatistics:
    """Derived, read-only view of the current NPC population."""

    total: int = 0
    average_remaining_hp: float = 0.0
    average_turns_since_conversion: float = 0.0
    protected: int = 0
    original_factions: dict[str, int] = field(default_factory=dict)


def _unit_id(unit_or_id: Unit | str) -> UnitID | None:
    if isinstance(unit_or_id, Unit):
        return unit_or_id.id or None
    if isinstance(unit_or_id, str) and unit_or_id:
        return UnitID(unit_or_id)
    return None


class NPCLifecycleManager:
    """State machine for units between conversion and resolution."""

    def __init__(self, rules: NPCRules | None = None) -> None:
        self.rules = rules or NPCRules()
        self._states: dict[UnitID, NPCState] = {}

    # --- Queries ------------------------------------------------------------------

    def is_npc(self, unit_or_id: Unit | str) -> bool:
        unit_id = _unit_id(unit_or_id)
        return unit_id is not None and unit_id in self._states

    def get_npc_state(self, unit_or_id: Unit | str) -> NPCState | None:
        unit_id = _unit_id(unit_or_id)
        return self._states.get(unit_id) if unit_id is not None else None

    def npc_unit_ids(self) -> list[UnitID]:
        return list(self._states)

    @property
    def npc_count(self) -> int:
        return len(self._states)

    def is_at_npc_limit(self) -> bool:
        return len(self._states) >= self.rules.max_npcs_per_stage

    def get_npc_priority(self, unit_or_id: Unit | str, current_turn: int | None = None) -> int:
        """AI attack priority: 0 for ordinary units, always positive for NPCs.

        NPCs start at ``base_priority``; recently converted and badly hurt NPCs
        get a bonus.  The total is scaled by ``priority_multiplier``.
        """

        state = self.get_npc_state(unit_or_id)
        if state is None:
            return 0

        priority = self.rules.base_priority
        if (
            current_turn is not None
            and current_turn - state.converted_at_turn < self.rules.recent_conversion_turns
        ):
            priority += self.rules.recent_conversion_bonus
        if state.remaining_hp < self.rules.low_hp_threshold:
            priority += self.rules.low_hp_bonus
        return max(1, round(priority * self.rules.priority_multiplier))

    # --- Transitions --------------------------------------------------------------

    def convert_to_npc(
        self, unit: Unit, recruitment_id: RecruitmentID, turn: int
    ) -> NPCConversionResult:
        """Place ``unit`` in NPC state.

        Args:
            unit: The unit that was just defeated with all conditions met
            recruitment_id: Identifier linking the NPC to its recruitment
            turn: Turn of the conversion (1-based)

        Returns:
            NPCConversionResult with the new record and the unit patch to apply
        """

        if not isinstance(unit, Unit) or not unit.id or unit.max_hp <= 0:
            return NPCConversionResult(
                False, error=RecruitmentError.INVALID_TARGET, message="malformed unit"
            )
        if unit.current_hp <= 0:
            return NPCConversionResult(
                False,
                error=RecruitmentError.INVALID_TARGET,
                message=f"unit {unit.id} has no HP left to hold as an NPC",
            )
        if not recruitment_id:
            return NPCConversionResult(
                False, error=RecruitmentError.SYSTEM_ERROR, message="missing recruitment id"
            )
        if isinstance(turn, bool) or not isinstance(turn, int) or turn < 1:
            return NPCConversionResult(
                False, error=RecruitmentError.SYSTEM_ERROR, message=f"invalid turn {turn!r}"
            )
        if unit.id in self._states:
            return NPCConversionResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message=f"unit {unit.id} is already an NPC",
            )
        if self.is_at_npc_limit():
            return NPCConversionResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message=f"maximum NPCs per stage ({self.rules.max_npcs_per_stage}) reached",
            )

        state = NPCState(
            converted_at_turn=turn,
            remaining_hp=unit.current_hp,
            is_protected=self.rules.enable_protection,
            original_faction=unit.faction,
            recruitment_id=recruitment_id,
            visual_state=NPCVisualState(),
        )
        self._states[unit.id] = state
        logger.debug("unit %s converted to NPC on turn %d", unit.id, turn)
        return NPCConversionResult(
            True,
            npc_state=state,
            patch=UnitPatch(faction=Faction.PLAYER, has_acted=True, has_moved=True),
        )

    def handle_npc_damage(self, unit: Unit, damage: int) -> NPCDamageResult:
        """Apply ``damage`` to an NPC; a drop to 0 HP removes the NPC record."""

        if not isinstance(unit, Unit) or not unit.id:
            return NPCDamageResult(
                False, 0, error=RecruitmentError.INVALID_TARGET, message="malformed unit"
            )
        if isinstance(damage, bool) or not isinstance(damage, Real) or damage < 0:
            return NPCDamageResult(
                False,
                unit.current_hp,
                error=RecruitmentError.SYSTEM_ERROR,
                message=f"invalid damage amount {damage!r}",
            )
        state = self._states.get(unit.id)
        if state is None:
            return NPCDamageResult(
                False,
                unit.current_hp,
                error=RecruitmentError.INVALID_TARGET,
                message=f"unit {unit.id} is not an NPC",
            )

        state.remaining_hp = max(0, int(state.remaining_hp - damage))
        defeated = state.remaining_hp == 0
        if defeated:
            del self._states[unit.id]
            logger.info("NPC %s was defeated; recruitment is lost", unit.id)
        return NPCDamageResult(
            True,
            state.remaining_hp,
            was_defeated=defeated,
            patch=UnitPatch(current_hp=state.remaining_hp),
            npc_state=state,
        )

    def remove_npc_state(self, unit_or_id: Unit | str) -> NPCState | None:
        """Forget an NPC; returns the removed record, if any."""

        unit_id = _unit_id(unit_or_id)
        if unit_id is None:
            return None
        return self._states.pop(unit_id, None)

    def clear(self) -> None:
        self._states.clear()

    # --- Diagnostics --------------------------------------------------------------

    def statistics(self, current_turn: int | None = None) -> NPCStatistics:
        if not self._states:
            return NPCStatistics()

        states = list(self._states.values())
        total = len(states)
        turns = 0.0
        if current_turn is not None:
            turns = sum(max(0, current_turn - s.converted_at_turn) for s in states) / total
        factions = Counter(str(s.original_faction) for s in states)
        return NPCStatistics(
            total=total,
            average_remaining_hp=sum(s.remaining_hp for s in states) / total,
            average_turns_since_conversion=turns,
            protected=sum(1 for s in states if s.is_protected),
            original_factions=dict(factions),
        )

    def validate_states(self) -> list[str]:
        """Describe every NPC record with out-of-range values."""

        problems: list[str] = []
        for unit_id, state in self._states.items():
            if state.remaining_hp < 0:
                problems.append(f"NPC {unit_id} has negative HP {state.remaining_hp}")
            if state.converted_at_turn < 1:
                problems.append(f"NPC {unit_id} has invalid conversion turn {state.converted_at_turn}")
            if state.visual_state.animation_speed <= 0:
                problems.append(f"NPC {unit_id} has non-positive animation speed")
        return problems
