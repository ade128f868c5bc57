"""Recruitment Service.

This module provides the :class:`RecruitmentOrchestrator`, the single entry
point the battle loop talks to.  It owns the per-stage recruitable
definitions and coordinates the condition cache, the NPC lifecycle manager,
the performance monitor and the event bus.

Every public operation returns a typed result; unexpected failures are
logged and reported as ``SYSTEM_ERROR`` instead of propagating into the
battle loop.

Conditions are evaluated against the pre-damage context: the target's HP is
the value before the triggering hit lands, and lethality is decided
separately from ``current_hp - damage``.
"""

from __future__ import annotations

import gc
import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from numbers import Real
from typing import Any

from srpg_recruitment.domain.conditions import (
    Condition,
    ConditionConfigError,
    ConditionSummary,
    evaluate_condition,
    is_supported,
    parse_conditions,
    summarize_results,
)
from srpg_recruitment.domain.enums import (
    Faction,
    Metric,
    RecruitmentAction,
    RecruitmentError,
    RecruitmentStatus,
    RewardType,
)
from srpg_recruitment.domain.events import EventBus, RecruitmentEvent
from srpg_recruitment.domain.models import (
    BattleResult,
    NPCState,
    RecruitableDefinition,
    RecruitedUnit,
    RecruitmentContext,
    RecruitmentID,
    RecruitmentReward,
    RosterEntry,
    StageData,
    Unit,
    UnitID,
    UnitPatch,
)
from srpg_recruitment.domain.rules_config import DEFAULT_RULES, RulesConfig
from srpg_recruitment.interfaces.battle import BattleContextProvider
from srpg_recruitment.interfaces.persistence import RosterSink
from srpg_recruitment.services.condition_cache import ConditionCache
from srpg_recruitment.services.npc_service import NPCDamageResult, NPCLifecycleManager
from srpg_recruitment.services.performance_monitor import PerformanceMonitor, TickReport

logger = logging.getLogger(__name__)


# --- Result types -----------------------------------------------------------------


@dataclass(slots=True)
class OperationResult:
    """Outcome of a lifecycle operation (initialize, roster load, shutdown)."""

    success: bool
    error: RecruitmentError | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RecruitmentResult:
    """Outcome of an eligibility check or a recruitment attempt."""

    success: bool
    conditions_met: list[bool] = field(default_factory=list)
    next_action: RecruitmentAction = RecruitmentAction.CONTINUE_BATTLE
    eligible: bool = False
    error: RecruitmentError | None = None
    message: str = ""
    npc_state: NPCState | None = None


@dataclass(frozen=True, slots=True)
class RecruitmentFailure:
    unit_id: UnitID
    error: RecruitmentError
    message: str = ""


@dataclass(slots=True)
class StageRecruitmentResult:
    """Everything decided at stage clear."""

    success: bool
    recruited: list[RecruitedUnit] = field(default_factory=list)
    failed: list[RecruitmentFailure] = field(default_factory=list)
    error: RecruitmentError | None = None
    message: str = ""

    @property
    def failed_unit_ids(self) -> list[UnitID]:
        return [failure.unit_id for failure in self.failed]


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """Non-fatal problem found in a stage's recruitment data."""

    unit_id: str
    message: str
    condition_id: str | None = None

    def __str__(self) -> str:
        where = f"{self.unit_id}/{self.condition_id}" if self.condition_id else self.unit_id
        return f"{where}: {self.message}"


@dataclass(frozen=True, slots=True)
class RecruitmentProgress:
    character_id: UnitID
    status: RecruitmentStatus
    summary: ConditionSummary

    @property
    def is_eligible(self) -> bool:
        return self.summary.all_satisfied


@dataclass(frozen=True, slots=True)
class RecruitmentStatistics:
    recruitable: int
    attempts: int
    conversions: int
    recruited: int
    failed: int
    npcs_saved: int
    npcs_lost: int
    active_npcs: int


# --- Orchestrator -----------------------------------------------------------------


class RecruitmentOrchestrator:
    """Stage-scoped façade over the recruitment engine.

    Collaborators are injected; anything omitted is built from ``rules``.
    The orchestrator also implements
    :class:`~srpg_recruitment.interfaces.OptimizationHooks` so the
    performance monitor can tune it.
    """

    def __init__(
        self,
        rules: RulesConfig | None = None,
        *,
        bus: EventBus | None = None,
        cache: ConditionCache | None = None,
        npc_manager: NPCLifecycleManager | None = None,
        monitor: PerformanceMonitor | None = None,
        context_provider: BattleContextProvider | None = None,
        roster_sink: RosterSink | None = None,
    ) -> None:
        self.rules = rules or DEFAULT_RULES
        notifications = self.rules.notifications
        if bus is None:
            bus = EventBus(deferred=notifications.deferred, history_limit=notifications.history_limit)
        self.bus = bus
        # ConditionCache defines __len__, so an empty one is falsy.
        self.cache = cache if cache is not None else ConditionCache(self.rules.cache)
        self.npc_manager = npc_manager if npc_manager is not None else NPCLifecycleManager(self.rules.npc)
        self.monitor = monitor if monitor is not None else PerformanceMonitor(self.rules.monitor, hooks=self)
        self.context_provider = context_provider
        self.roster_sink = roster_sink
        self.batch_size = notifications.batch_size

        self._stage: StageData | None = None
        self._initialized = False
        self._definitions: dict[UnitID, RecruitableDefinition] = {}
        self._rejected: list[ValidationIssue] = []
        self._defeated: list[UnitID] = []
        self._roster: dict[UnitID, RosterEntry] = {}
        # Roster changes not yet accepted by the sink; survive stage resets.
        self._unsaved: dict[UnitID, RosterEntry] = {}
        self._recruitment_counter = 0
        self._counters: Counter[str] = Counter()
        self._errors: Counter[RecruitmentError] = Counter()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def stage(self) -> StageData | None:
        return self._stage

    # --- Stage lifecycle ------------------------------------------------------------

    def initialize(self, stage: StageData) -> OperationResult:
        """Build the recruitable definitions for ``stage``.

        Any previous per-stage state (definitions, NPC records, cached
        condition results, defeated list) is discarded first.  Units with a
        missing, empty or malformed recruitment block are skipped and reported
        by :meth:`validate_recruitment_data`; they never abort stage load.

        Args:
            stage: Stage description with its enemy units

        Returns:
            OperationResult whose details list the recruitable ids and issues
        """

        try:
            self._reset_stage()
            self._stage = stage
            if not self.rules.recruitment.enable_recruitment:
                self._initialized = True
                logger.info("recruitment disabled; stage %s has no recruitable units", stage.id)
                return OperationResult(True, message="Recruitment is disabled")

            for unit in stage.enemy_units:
                definition = self._build_definition(unit)
                if definition is not None:
                    self._definitions[unit.id] = definition

            issues = self.validate_recruitment_data()
            self._initialized = True
            recruitable = list(self._definitions)
            self._emit(
                RecruitmentEvent.INITIALIZED,
                stage_id=stage.id,
                recruitable_ids=recruitable,
                issue_count=len(issues),
            )
            logger.info(
                "stage %s initialized with %d recruitable unit(s)", stage.id, len(recruitable)
            )
            return OperationResult(
                True,
                message=f"{len(recruitable)} recruitable unit(s) in stage {stage.id}",
                details={"recruitable_ids": recruitable, "issues": issues},
            )
        except Exception:
            return OperationResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message=self._system_error("stage initialization"),
            )

    def _reset_stage(self) -> None:
        self._definitions.clear()
        self._rejected.clear()
        self._defeated.clear()
        self.npc_manager.clear()
        self.cache.clear()
        self._stage = None
        self._initialized = False

    def _reject(self, unit_id: str, message: str, condition_id: str | None = None) -> None:
        self._rejected.append(ValidationIssue(unit_id, message, condition_id))

    def _build_definition(self, unit: Unit) -> RecruitableDefinition | None:
        block = unit.recruitment
        if block is None:
            return None
        if not isinstance(block, Mapping):
            self._reject(unit.id, "recruitment block is not a mapping")
            return None
        if unit.id in self._definitions:
            self._reject(unit.id, "duplicate unit id; only the first definition is used")
            return None

        raw_conditions = block.get("conditions") or []
        if not raw_conditions:
            self._reject(unit.id, "recruitment block has no conditions")
            return None
        try:
            conditions = parse_conditions(raw_conditions)
        except ConditionConfigError as exc:
            # One bad condition makes the whole unit non-recruitable.
            self._reject(unit.id, f"malformed condition: {exc}")
            return None
        duplicates = [cid for cid, n in Counter(c.id for c in conditions).items() if n > 1]
        if duplicates:
            # Cached results are keyed by condition id.
            self._reject(unit.id, f"duplicate condition id(s): {', '.join(duplicates)}")
            return None

        if unit.id in self._roster:
            logger.debug("unit %s is already on the roster; not recruitable again", unit.id)
            return None

        priority = block.get("priority", self.rules.recruitment.default_priority)
        if isinstance(priority, bool) or not isinstance(priority, int):
            self._reject(unit.id, f"priority {priority!r} is not an integer; using default")
            priority = self.rules.recruitment.default_priority

        return RecruitableDefinition(
            character_id=unit.id,
            conditions=conditions,
            priority=priority,
            description=str(block.get("description", "")),
            rewards=self._parse_rewards(unit.id, block.get("rewards") or []),
        )

    def _parse_rewards(self, unit_id: UnitID, raw: Iterable[object]) -> list[RecruitmentReward]:
        rewards = []
        for item in raw:
            try:
                if not isinstance(item, Mapping):
                    raise TypeError("reward is not a mapping")
                rewards.append(
                    RecruitmentReward(
                        type=RewardType(item["type"]),
                        amount=int(item.get("amount", 0)),
                        description=str(item.get("description", "")),
                        target=item.get("target"),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                self._reject(unit_id, f"ignoring malformed reward: {exc}")
        return rewards

    def validate_recruitment_data(self) -> list[ValidationIssue]:
        """Report problems in the current stage's recruitment data.

        Issues are logged as warnings and never raised.
        """

        issues = list(self._rejected)
        for unit_id, definition in self._definitions.items():
            if not definition.conditions:
                issues.append(ValidationIssue(unit_id, "definition has no conditions"))
            for condition in definition.conditions:
                if not is_supported(condition):
                    issues.append(
                        ValidationIssue(unit_id, "unsupported condition variant", condition.id)
                    )
            if definition.priority < 0:
                issues.append(ValidationIssue(unit_id, f"negative priority {definition.priority}"))
            if (definition.npc_state is None) == (definition.status is RecruitmentStatus.NPC_STATE):
                issues.append(
                    ValidationIssue(unit_id, f"NPC record inconsistent with status {definition.status}")
                )
        issues.extend(ValidationIssue("npc", problem) for problem in self.npc_manager.validate_states())

        for issue in issues:
            logger.warning("recruitment data issue: %s", issue)
        return issues

    # --- Eligibility ----------------------------------------------------------------

    def check_eligibility(
        self,
        attacker: Unit,
        target: Unit,
        context: RecruitmentContext | None = None,
        *,
        damage: int = 0,
        turn: int = 1,
        battle_result: BattleResult | None = None,
    ) -> RecruitmentResult:
        """Evaluate every condition of ``target`` without changing any state.

        Args:
            attacker: Unit delivering the attack
            target: Candidate for recruitment
            context: Prebuilt context; when omitted one is assembled from the
                keyword arguments and the battle context provider
            damage: Damage of the attack being considered
            turn: Current turn (1-based)
            battle_result: Resolved attack details, when known

        Returns:
            RecruitmentResult with per-condition results and the next action
        """

        try:
            definition, failure = self._active_definition(target)
            if failure is not None:
                return failure
            if context is None:
                context = self._build_context(attacker, target, damage, turn, battle_result)
            return self._evaluate(definition, context)
        except Exception:
            return RecruitmentResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message=self._system_error("eligibility check"),
            )

    def _active_definition(
        self, target: Unit
    ) -> tuple[RecruitableDefinition | None, RecruitmentResult | None]:
        if not self._initialized:
            return None, RecruitmentResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message="Recruitment engine has not been initialized for a stage",
            )
        if not isinstance(target, Unit) or not target.id:
            return None, RecruitmentResult(
                False, error=RecruitmentError.INVALID_TARGET, message="Malformed target unit"
            )
        definition = self._definitions.get(target.id)
        if definition is None:
            return None, RecruitmentResult(
                False,
                error=RecruitmentError.INVALID_TARGET,
                message=f"Unit {target.name or target.id} is not recruitable",
            )
        if definition.status.is_terminal:
            return None, RecruitmentResult(
                False,
                error=RecruitmentError.INVALID_TARGET,
                message=f"Recruitment of unit {target.id} is already {definition.status}",
            )
        return definition, None

    def _build_context(
        self,
        attacker: Unit,
        target: Unit,
        damage: int,
        turn: int,
        battle_result: BattleResult | None,
    ) -> RecruitmentContext:
        provider = self.context_provider
        return RecruitmentContext(
            attacker=attacker,
            target=target,
            damage=damage,
            turn=turn,
            allied_units=list(provider.allied_units()) if provider else [],
            enemy_units=list(provider.enemy_units()) if provider else [],
            npc_units=list(provider.npc_units()) if provider else [],
            battle_result=battle_result,
        )

    def _evaluate(
        self, definition: RecruitableDefinition, context: RecruitmentContext
    ) -> RecruitmentResult:
        with self.monitor.measure(Metric.CONDITION_CHECK_TIME):
            results = [
                self.cache.lookup(definition.character_id, condition, context, evaluate_condition)
                for condition in definition.conditions
            ]
        self.monitor.record(Metric.CACHE_HIT_RATIO, self.cache.statistics().hit_ratio)

        summary = summarize_results(results)
        eligible = summary.all_satisfied
        self._emit(
            RecruitmentEvent.ELIGIBILITY_CHECKED,
            unit_id=definition.character_id,
            eligible=eligible,
            conditions_met=results,
            progress=summary.percentage,
        )
        if eligible:
            return RecruitmentResult(
                True,
                conditions_met=results,
                next_action=RecruitmentAction.CONVERT_TO_NPC,
                eligible=True,
                message=f"All recruitment conditions met for {context.target.name}",
            )
        return RecruitmentResult(
            False,
            conditions_met=results,
            next_action=RecruitmentAction.CONTINUE_BATTLE,
            eligible=False,
            error=RecruitmentError.CONDITIONS_NOT_MET,
            message=f"Recruitment conditions not yet satisfied ({summary.percentage}% complete)",
        )

    # --- Attempts -------------------------------------------------------------------

    def process_attempt(
        self,
        attacker: Unit,
        target: Unit,
        damage: int,
        battle_result: BattleResult | None = None,
        turn: int = 1,
    ) -> RecruitmentResult:
        """Handle a resolved attack on a recruitable unit.

        Conversion happens only when every condition holds and the hit would
        be lethal.  A failed conversion marks the recruitment ``FAILED``.
        """

        try:
            definition, failure = self._active_definition(target)
            if failure is not None:
                self._errors[failure.error] += 1
                return failure
            if definition.status is RecruitmentStatus.NPC_STATE:
                self._errors[RecruitmentError.INVALID_TARGET] += 1
                return RecruitmentResult(
                    False,
                    error=RecruitmentError.INVALID_TARGET,
                    message=f"Unit {target.id} is already an NPC; route damage through handle_npc_damage",
                )
            if isinstance(damage, bool) or not isinstance(damage, Real) or damage < 0:
                self._errors[RecruitmentError.SYSTEM_ERROR] += 1
                return RecruitmentResult(
                    False,
                    error=RecruitmentError.SYSTEM_ERROR,
                    message=f"Invalid damage amount {damage!r}",
                )

            self._counters["attempts"] += 1
            context = self._build_context(attacker, target, damage, turn, battle_result)
            eligibility = self._evaluate(definition, context)
            if not eligibility.eligible:
                return eligibility

            if definition.status is RecruitmentStatus.AVAILABLE:
                definition.transition(RecruitmentStatus.CONDITIONS_MET)
            if target.current_hp - damage > 0:
                return RecruitmentResult(
                    False,
                    conditions_met=eligibility.conditions_met,
                    next_action=RecruitmentAction.CONTINUE_BATTLE,
                    eligible=True,
                    error=RecruitmentError.CONDITIONS_NOT_MET,
                    message="Target must be defeated to trigger recruitment",
                )

            return self._convert(definition, target, eligibility.conditions_met, turn)
        except Exception:
            return RecruitmentResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message=self._system_error("recruitment attempt"),
            )

    def _convert(
        self,
        definition: RecruitableDefinition,
        target: Unit,
        conditions_met: list[bool],
        turn: int,
    ) -> RecruitmentResult:
        recruitment_id = self._next_recruitment_id(target.id)
        with self.monitor.measure(Metric.NPC_CONVERSION_TIME):
            conversion = self.npc_manager.convert_to_npc(target, recruitment_id, turn)

        if not conversion.success:
            error = conversion.error or RecruitmentError.SYSTEM_ERROR
            definition.transition(RecruitmentStatus.FAILED)
            self._errors[error] += 1
            self._counters["failed"] += 1
            logger.warning("conversion of %s failed: %s", target.id, conversion.message)
            self._emit(
                RecruitmentEvent.RECRUITMENT_FAILED,
                unit_id=target.id,
                reason=error,
                message=conversion.message,
            )
            return RecruitmentResult(
                False,
                conditions_met=conditions_met,
                next_action=RecruitmentAction.RECRUITMENT_FAILED,
                eligible=True,
                error=error,
                message=conversion.message or "Failed to convert character to NPC",
            )

        conversion.patch.apply(target)
        definition.transition(RecruitmentStatus.NPC_STATE, conversion.npc_state)
        self._counters["conversions"] += 1
        self._emit(
            RecruitmentEvent.CONVERTED_TO_NPC,
            unit_id=target.id,
            recruitment_id=recruitment_id,
            turn=turn,
            npc_state=conversion.npc_state,
        )
        return RecruitmentResult(
            True,
            conditions_met=conditions_met,
            next_action=RecruitmentAction.CONVERT_TO_NPC,
            eligible=True,
            message=f"{target.name} has been converted to NPC state and can be recruited",
            npc_state=conversion.npc_state,
        )

    def _next_recruitment_id(self, unit_id: UnitID) -> RecruitmentID:
        self._recruitment_counter += 1
        stage_id = self._stage.id if self._stage is not None else "unknown"
        return RecruitmentID(f"recruitment_{unit_id}_{stage_id}_{self._recruitment_counter}")

    # --- NPC handling ---------------------------------------------------------------

    def handle_npc_damage(self, unit: Unit, damage: int) -> NPCDamageResult:
        """Apply damage to an NPC and fail its recruitment if it falls."""

        try:
            outcome = self.npc_manager.handle_npc_damage(unit, damage)
            if not outcome.success:
                self._errors[outcome.error or RecruitmentError.SYSTEM_ERROR] += 1
                return outcome

            outcome.patch.apply(unit)
            self._emit(
                RecruitmentEvent.NPC_DAMAGED,
                unit_id=unit.id,
                damage=damage,
                remaining_hp=outcome.remaining_hp,
            )
            if outcome.was_defeated:
                self._record_defeat(unit.id, outcome.npc_state)
            return outcome
        except Exception:
            return NPCDamageResult(
                False,
                getattr(unit, "current_hp", 0),
                error=RecruitmentError.SYSTEM_ERROR,
                message=self._system_error("NPC damage handling"),
            )

    def _record_defeat(self, unit_id: UnitID, npc_state: NPCState | None) -> None:
        definition = self._definitions.get(unit_id)
        if definition is not None and not definition.status.is_terminal:
            definition.transition(RecruitmentStatus.FAILED)
        self._defeated.append(unit_id)
        self._counters["failed"] += 1
        self._counters["npcs_lost"] += 1
        self._errors[RecruitmentError.NPC_ALREADY_DEFEATED] += 1
        self._emit(
            RecruitmentEvent.NPC_DEFEATED,
            unit_id=unit_id,
            recruitment_id=npc_state.recruitment_id if npc_state else None,
        )
        self._emit(
            RecruitmentEvent.RECRUITMENT_FAILED,
            unit_id=unit_id,
            reason=RecruitmentError.NPC_ALREADY_DEFEATED,
        )

    def get_npc_priority(self, unit: Unit | str, current_turn: int | None = None) -> int:
        try:
            return self.npc_manager.get_npc_priority(unit, current_turn)
        except Exception:
            self._system_error("NPC priority lookup")
            return 0

    def is_npc(self, unit_or_id: Unit | str) -> bool:
        return self.npc_manager.is_npc(unit_or_id)

    # --- Stage clear ----------------------------------------------------------------

    def complete_recruitment(
        self, units_in_play: Iterable[Unit], turn: int | None = None
    ) -> StageRecruitmentResult:
        """Finalize every NPC at stage clear.

        Surviving NPCs become permanent player units.  NPCs missing from
        ``units_in_play`` or at 0 HP fail, and so do NPCs defeated earlier in
        the stage.  Each NPC is finalized on its own, so an error on one never
        skips the others.

        Recruited units are forwarded to the roster sink.  If the sink fails
        the recruits are still returned and the stage event still fires, but
        the result reports ``SYSTEM_ERROR`` and the entries stay pending until
        :meth:`persist_roster` (or the next stage clear) saves them.

        Args:
            units_in_play: Every unit still on the field at stage clear
            turn: Turn of the stage clear; defaults to each NPC's conversion turn

        Returns:
            StageRecruitmentResult listing recruited units and failures
        """

        if not self._initialized:
            return StageRecruitmentResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message="Recruitment engine has not been initialized for a stage",
            )
        recruited: list[RecruitedUnit] = []
        failed: list[RecruitmentFailure] = []
        try:
            by_id = {unit.id: unit for unit in units_in_play}
        except Exception:
            return StageRecruitmentResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message=self._system_error("recruitment completion"),
            )

        for unit_id in self._defeated:
            failed.append(
                RecruitmentFailure(
                    unit_id,
                    RecruitmentError.NPC_ALREADY_DEFEATED,
                    "NPC was defeated before stage clear",
                )
            )
        self._defeated.clear()

        for unit_id in self.npc_manager.npc_unit_ids():
            try:
                outcome = self._finalize_npc(unit_id, by_id.get(unit_id), turn)
            except Exception:
                outcome = self._abandon_npc(unit_id)
            if isinstance(outcome, RecruitedUnit):
                recruited.append(outcome)
            else:
                failed.append(outcome)

        saved = self._store_recruits(recruited)
        self._emit(
            RecruitmentEvent.STAGE_COMPLETED,
            recruited_ids=[r.unit.id for r in recruited],
            failed_ids=[f.unit_id for f in failed],
            roster_saved=saved,
        )
        logger.info(
            "recruitment completed: %d recruited, %d failed", len(recruited), len(failed)
        )
        if not saved:
            return StageRecruitmentResult(
                False,
                recruited=recruited,
                failed=failed,
                error=RecruitmentError.SYSTEM_ERROR,
                message=f"{len(recruited)} recruited but the roster could not be saved",
            )
        return StageRecruitmentResult(
            True,
            recruited=recruited,
            failed=failed,
            message=f"{len(recruited)} recruited, {len(failed)} failed",
        )

    def _finalize_npc(
        self, unit_id: UnitID, unit: Unit | None, turn: int | None
    ) -> RecruitedUnit | RecruitmentFailure:
        definition = self._definitions.get(unit_id)
        state = self.npc_manager.remove_npc_state(unit_id)

        if unit is None:
            failure = RecruitmentFailure(
                unit_id, RecruitmentError.RECRUITMENT_FAILED, "NPC is no longer in play"
            )
        elif unit.current_hp <= 0:
            failure = RecruitmentFailure(
                unit_id, RecruitmentError.NPC_ALREADY_DEFEATED, "NPC was defeated"
            )
        elif definition is None or state is None:
            failure = RecruitmentFailure(
                unit_id, RecruitmentError.SYSTEM_ERROR, "no recruitment record for NPC"
            )
        else:
            UnitPatch(faction=Faction.PLAYER, has_acted=False, has_moved=False).apply(unit)
            definition.transition(RecruitmentStatus.RECRUITED)
            self._counters["recruited"] += 1
            self._counters["npcs_saved"] += 1
            self._emit(
                RecruitmentEvent.RECRUITMENT_COMPLETED,
                unit_id=unit_id,
                recruitment_id=state.recruitment_id,
                rewards=list(definition.rewards),
            )
            return RecruitedUnit(
                unit=unit,
                recruitment_id=state.recruitment_id,
                recruited_at_turn=turn if turn is not None else state.converted_at_turn,
                conditions=list(definition.conditions),
                rewards=list(definition.rewards),
            )

        return self._fail_npc(definition, failure)

    def _abandon_npc(self, unit_id: UnitID) -> RecruitmentFailure:
        message = self._system_error(f"finalizing NPC {unit_id}")
        self.npc_manager.remove_npc_state(unit_id)
        return self._fail_npc(
            self._definitions.get(unit_id),
            RecruitmentFailure(unit_id, RecruitmentError.SYSTEM_ERROR, message),
            count_error=False,
        )

    def _fail_npc(
        self,
        definition: RecruitableDefinition | None,
        failure: RecruitmentFailure,
        *,
        count_error: bool = True,
    ) -> RecruitmentFailure:
        if definition is not None and not definition.status.is_terminal:
            definition.transition(RecruitmentStatus.FAILED)
        self._counters["failed"] += 1
        if count_error:
            self._errors[failure.error] += 1
        self._emit(
            RecruitmentEvent.RECRUITMENT_FAILED,
            unit_id=failure.unit_id,
            reason=failure.error,
            message=failure.message,
        )
        return failure

    def _store_recruits(self, recruited: list[RecruitedUnit]) -> bool:
        stage = self._stage
        for r in recruited:
            entry = RosterEntry(
                character_id=r.unit.id,
                recruitment_id=r.recruitment_id,
                stage_id=stage.id,
                chapter_id=stage.chapter_id,
                recruited_at_turn=r.recruited_at_turn,
                condition_ids=[c.id for c in r.conditions],
            )
            self._roster[entry.character_id] = entry
            self._unsaved[entry.character_id] = entry
        return self._flush_roster()

    def _flush_roster(self) -> bool:
        if self.roster_sink is None:
            self._unsaved.clear()
            return True
        if not self._unsaved:
            return True
        try:
            self.roster_sink.append(list(self._unsaved.values()))
        except Exception:
            logger.exception("could not save %d roster entries; keeping them pending", len(self._unsaved))
            self._errors[RecruitmentError.SYSTEM_ERROR] += 1
            return False
        self._unsaved.clear()
        return True

    # --- Roster ---------------------------------------------------------------------

    def load_roster(self, entries: Iterable[RosterEntry]) -> OperationResult:
        """Accept a previously persisted roster.

        Characters on the roster are never offered for recruitment again; a
        definition that has not progressed yet is dropped immediately.
        """

        try:
            loaded = 0
            for entry in entries:
                self._roster[entry.character_id] = entry
                loaded += 1
                definition = self._definitions.get(entry.character_id)
                if definition is not None and definition.status is RecruitmentStatus.AVAILABLE:
                    del self._definitions[entry.character_id]
            return OperationResult(True, message=f"{loaded} roster entries loaded")
        except Exception:
            return OperationResult(
                False, error=RecruitmentError.SYSTEM_ERROR, message=self._system_error("roster load")
            )

    def persist_roster(self) -> OperationResult:
        """Retry saving roster changes the sink rejected earlier."""

        pending = list(self._unsaved)
        if self._flush_roster():
            return OperationResult(True, message=f"{len(pending)} roster entries saved")
        return OperationResult(
            False,
            error=RecruitmentError.SYSTEM_ERROR,
            message=f"{len(pending)} roster entries could not be saved",
            details={"pending_ids": pending},
        )

    def pending_roster_ids(self) -> list[UnitID]:
        return list(self._unsaved)

    def roster(self) -> list[RosterEntry]:
        return list(self._roster.values())

    def available_roster(self) -> list[RosterEntry]:
        """Recruited characters that can be deployed in the current chapter."""

        return [entry for entry in self._roster.values() if entry.is_available]

    def mark_character_lost(self, character_id: str) -> OperationResult:
        """Bench a recruited character for the rest of the current chapter.

        Args:
            character_id: Roster character that fell in battle

        Returns:
            OperationResult; ``INVALID_TARGET`` if the character is not on the roster
        """

        entry = self._roster.get(character_id)
        if entry is None:
            return OperationResult(
                False,
                error=RecruitmentError.INVALID_TARGET,
                message=f"{character_id} is not a recruited character",
            )
        if entry.is_available:
            entry.is_available = False
            self._unsaved[entry.character_id] = entry
            self._emit(
                RecruitmentEvent.CHARACTER_LOST,
                character_id=entry.character_id,
                chapter_id=self._stage.chapter_id if self._stage is not None else None,
            )
            logger.info("recruited character %s lost for this chapter", character_id)
        if not self._flush_roster():
            return OperationResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message=f"loss of {character_id} could not be saved",
            )
        return OperationResult(True, message=f"{character_id} marked as lost")

    def restore_lost_characters(self) -> OperationResult:
        """Make every lost character available again once a chapter completes."""

        restored = [entry for entry in self._roster.values() if not entry.is_available]
        for entry in restored:
            entry.is_available = True
            self._unsaved[entry.character_id] = entry
        restored_ids = [entry.character_id for entry in restored]
        if restored_ids:
            logger.info("restored %d lost character(s)", len(restored_ids))
        if not self._flush_roster():
            return OperationResult(
                False,
                error=RecruitmentError.SYSTEM_ERROR,
                message="restored availability could not be saved",
                details={"restored_ids": restored_ids},
            )
        return OperationResult(
            True,
            message=f"{len(restored_ids)} character(s) available again",
            details={"restored_ids": restored_ids},
        )

    # --- Queries --------------------------------------------------------------------

    def get_definition(self, unit_or_id: Unit | str) -> RecruitableDefinition | None:
        unit_id = unit_or_id.id if isinstance(unit_or_id, Unit) else unit_or_id
        return self._definitions.get(unit_id)

    def recruitable_ids(self) -> list[UnitID]:
        return list(self._definitions)

    def get_recruitment_conditions(self, unit_or_id: Unit | str) -> list[Condition]:
        definition = self.get_definition(unit_or_id)
        return list(definition.conditions) if definition else []

    def get_recruitment_progress(
        self,
        attacker: Unit,
        target: Unit,
        *,
        damage: int = 0,
        turn: int = 1,
        battle_result: BattleResult | None = None,
    ) -> RecruitmentProgress | None:
        """Per-condition progress for ``target``; ``None`` if it is not recruitable."""

        definition = self.get_definition(target)
        if definition is None:
            return None
        context = self._build_context(attacker, target, damage, turn, battle_result)
        results = [
            self.cache.lookup(definition.character_id, condition, context, evaluate_condition)
            for condition in definition.conditions
        ]
        return RecruitmentProgress(definition.character_id, definition.status, summarize_results(results))

    def statistics(self) -> RecruitmentStatistics:
        return RecruitmentStatistics(
            recruitable=len(self._definitions),
            attempts=self._counters["attempts"],
            conversions=self._counters["conversions"],
            recruited=self._counters["recruited"],
            failed=self._counters["failed"],
            npcs_saved=self._counters["npcs_saved"],
            npcs_lost=self._counters["npcs_lost"],
            active_npcs=self.npc_manager.npc_count,
        )

    def error_statistics(self) -> dict[RecruitmentError, int]:
        return dict(self._errors)

    def performance_metrics(self) -> dict[str, Any]:
        return {
            "cache": self.cache.statistics(),
            "metrics": self.monitor.metrics(),
            "npcs": self.npc_manager.statistics(),
            "summary": self.monitor.summary(),
            "pending_events": self.bus.pending_count,
            "batch_size": self.batch_size,
        }

    # --- Per-frame housekeeping -----------------------------------------------------

    def tick(self, now: float | None = None) -> TickReport:
        """Feed the monitor, let it react and deliver one batch of queued events."""

        self.monitor.record(Metric.MEMORY_USAGE, self.cache.estimated_bytes())
        report = self.monitor.tick(now)
        self.bus.flush(self.batch_size)
        return report

    def shutdown(self) -> OperationResult:
        """Deliver anything queued and drop all stage state."""

        delivered = self.bus.flush()
        self._reset_stage()
        self.monitor.reset()
        self.bus.clear()
        return OperationResult(True, message="Recruitment engine shut down", details={"delivered": delivered})

    # --- OptimizationHooks ----------------------------------------------------------

    def shrink_cache(self) -> None:
        capacity = self.cache.shrink()
        logger.info("condition cache capacity reduced to %d", capacity)

    def reduce_batch_size(self) -> None:
        self.batch_size = max(self.rules.notifications.min_batch_size, self.batch_size // 2)
        logger.info("notification batch size reduced to %d", self.batch_size)

    def defer_non_critical(self) -> None:
        if not self.bus.deferred:
            self.bus.deferred = True
            logger.info("recruitment notifications switched to deferred delivery")

    def cleanup_memory(self) -> None:
        removed = self.cache.trim()
        collected = gc.collect()
        logger.info("memory cleanup: %d cache entries dropped, %d objects collected", removed, collected)

    # --- Internals ------------------------------------------------------------------

    def _emit(self, event_type: RecruitmentEvent, **data: Any) -> None:
        self.bus.emit(event_type, **data)

    def _system_error(self, operation: str) -> str:
        logger.exception("unexpected error during %s", operation)
        self._errors[RecruitmentError.SYSTEM_ERROR] += 1
        return f"Unexpected error during {operation}"
