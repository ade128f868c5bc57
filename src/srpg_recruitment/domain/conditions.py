"""Recruitment conditions.

Each variant is an immutable record carrying its own typed parameters.  The
stage metadata shape ``{id, type, description, parameters}`` is turned into a
variant by :func:`parse_condition`, which rejects missing or ill-typed
parameters up front so evaluation never has to guess.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import ClassVar

from .enums import ConditionType
from .models import RecruitmentContext, UnitID

logger = logging.getLogger(__name__)


class ConditionConfigError(ValueError):
    """Raised when condition metadata cannot be turned into a condition."""


@dataclass(frozen=True, slots=True)
class SpecificAttacker:
    id: str
    description: str
    attacker_id: UnitID
    type: ClassVar[ConditionType] = ConditionType.SPECIFIC_ATTACKER


@dataclass(frozen=True, slots=True)
class HpThreshold:
    id: str
    description: str
    threshold: float
    type: ClassVar[ConditionType] = ConditionType.HP_THRESHOLD


@dataclass(frozen=True, slots=True)
class TurnLimit:
    id: str
    description: str
    max_turn: int
    type: ClassVar[ConditionType] = ConditionType.TURN_LIMIT


@dataclass(frozen=True, slots=True)
class DamageTypeMatch:
    id: str
    description: str
    damage_type: str
    type: ClassVar[ConditionType] = ConditionType.DAMAGE_TYPE


@dataclass(frozen=True, slots=True)
class WeaponTypeMatch:
    id: str
    description: str
    weapon_type: str
    type: ClassVar[ConditionType] = ConditionType.WEAPON_TYPE


@dataclass(frozen=True, slots=True)
class ElementMatch:
    id: str
    description: str
    element: str
    type: ClassVar[ConditionType] = ConditionType.ELEMENT_MATCH


@dataclass(frozen=True, slots=True)
class AllyPresent:
    id: str
    description: str
    required_ally_id: UnitID
    type: ClassVar[ConditionType] = ConditionType.ALLY_PRESENT


@dataclass(frozen=True, slots=True)
class NoCritical:
    id: str
    description: str
    type: ClassVar[ConditionType] = ConditionType.NO_CRITICAL


Condition = (
    SpecificAttacker
    | HpThreshold
    | TurnLimit
    | DamageTypeMatch
    | WeaponTypeMatch
    | ElementMatch
    | AllyPresent
    | NoCritical
)


# --- Parsing ----------------------------------------------------------------------


def _param(parameters: Mapping[str, object], *names: str) -> object | None:
    for name in names:
        if name in parameters:
            return parameters[name]
    return None


def _require_str(condition_id: str, parameters: Mapping[str, object], *names: str) -> str:
    value = _param(parameters, *names)
    if not isinstance(value, str) or not value.strip():
        raise ConditionConfigError(f"{condition_id}: {names[0]} must be a non-empty string")
    return value


def _parse_specific_attacker(cid: str, desc: str, params: Mapping[str, object]) -> Condition:
    return SpecificAttacker(cid, desc, UnitID(_require_str(cid, params, "attackerId", "attacker_id")))


def _parse_hp_threshold(cid: str, desc: str, params: Mapping[str, object]) -> Condition:
    threshold = _param(params, "threshold")
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ConditionConfigError(f"{cid}: threshold must be a number")
    if not 0 < threshold <= 1:
        raise ConditionConfigError(f"{cid}: threshold must be in (0, 1], got {threshold}")
    return HpThreshold(cid, desc, float(threshold))


def _parse_turn_limit(cid: str, desc: str, params: Mapping[str, object]) -> Condition:
    max_turn = _param(params, "maxTurn", "max_turn")
    if isinstance(max_turn, bool) or not isinstance(max_turn, int) or max_turn < 1:
        raise ConditionConfigError(f"{cid}: maxTurn must be a positive integer")
    return TurnLimit(cid, desc, max_turn)


def _parse_damage_type(cid: str, desc: str, params: Mapping[str, object]) -> Condition:
    return DamageTypeMatch(cid, desc, _require_str(cid, params, "damageType", "damage_type"))


def _parse_weapon_type(cid: str, desc: str, params: Mapping[str, object]) -> Condition:
    return WeaponTypeMatch(cid, desc, _require_str(cid, params, "weaponType", "weapon_type"))


def _parse_element(cid: str, desc: str, params: Mapping[str, object]) -> Condition:
    return ElementMatch(cid, desc, _require_str(cid, params, "element"))


def _parse_ally_present(cid: str, desc: str, params: Mapping[str, object]) -> Condition:
    ally = _require_str(cid, params, "requiredAllyId", "required_ally_id", "allyId")
    return AllyPresent(cid, desc, UnitID(ally))


def _parse_no_critical(cid: str, desc: str, _params: Mapping[str, object]) -> Condition:
    return NoCritical(cid, desc)


Parser = Callable[[str, str, Mapping[str, object]], Condition]

_PARSERS: dict[ConditionType, Parser] = {
    ConditionType.SPECIFIC_ATTACKER: _parse_specific_attacker,
    ConditionType.HP_THRESHOLD: _parse_hp_threshold,
    ConditionType.TURN_LIMIT: _parse_turn_limit,
    ConditionType.DAMAGE_TYPE: _parse_damage_type,
    ConditionType.WEAPON_TYPE: _parse_weapon_type,
    ConditionType.ELEMENT_MATCH: _parse_element,
    ConditionType.ALLY_PRESENT: _parse_ally_present,
    ConditionType.NO_CRITICAL: _parse_no_critical,
}


def parse_condition(data: Mapping[str, object]) -> Condition:
    """Build a typed condition from stage metadata.

    Raises:
        ConditionConfigError: if the id or type is missing/unknown, or the
            variant's parameters are missing or ill-typed.
    """

    if not isinstance(data, Mapping):
        raise ConditionConfigError(f"condition must be a mapping, got {type(data).__name__}")

    condition_id = data.get("id")
    if not isinstance(condition_id, str) or not condition_id.strip():
        raise ConditionConfigError("condition id must be a non-empty string")

    raw_type = data.get("type")
    try:
        condition_type = ConditionType(raw_type)
    except ValueError:
        raise ConditionConfigError(f"{condition_id}: unsupported condition type {raw_type!r}") from None

    parameters = data.get("parameters", {})
    if parameters is None:
        parameters = {}
    if not isinstance(parameters, Mapping):
        raise ConditionConfigError(f"{condition_id}: parameters must be a mapping")

    description = data.get("description") or ""
    if not isinstance(description, str):
        raise ConditionConfigError(f"{condition_id}: description must be a string")

    return _PARSERS[condition_type](condition_id, description, parameters)


def parse_conditions(items: Iterable[Mapping[str, object]]) -> list[Condition]:
    """Parse every entry, failing on the first invalid one."""

    return [parse_condition(item) for item in items]


# --- Evaluation -------------------------------------------------------------------


def _check_specific_attacker(condition: SpecificAttacker, context: RecruitmentContext) -> bool:
    return context.attacker.id == condition.attacker_id


def _check_hp_threshold(condition: HpThreshold, context: RecruitmentContext) -> bool:
    target = context.target
    if target.max_hp <= 0:
        return False
    return target.current_hp / target.max_hp <= condition.threshold


def _check_turn_limit(condition: TurnLimit, context: RecruitmentContext) -> bool:
    return context.turn <= condition.max_turn


def _check_damage_type(condition: DamageTypeMatch, context: RecruitmentContext) -> bool:
    result = context.battle_result
    return result is not None and result.damage_type == condition.damage_type


def _check_weapon_type(condition: WeaponTypeMatch, context: RecruitmentContext) -> bool:
    result = context.battle_result
    return result is not None and result.weapon_type == condition.weapon_type


def _check_element(condition: ElementMatch, context: RecruitmentContext) -> bool:
    result = context.battle_result
    return result is not None and result.element == condition.element


def _check_ally_present(condition: AllyPresent, context: RecruitmentContext) -> bool:
    return any(
        unit.id == condition.required_ally_id and unit.is_alive for unit in context.allied_units
    )


def _check_no_critical(_condition: NoCritical, context: RecruitmentContext) -> bool:
    result = context.battle_result
    return result is not None and not result.is_critical


_CHECKS: dict[type, Callable[[Condition, RecruitmentContext], bool]] = {
    SpecificAttacker: _check_specific_attacker,
    HpThreshold: _check_hp_threshold,
    TurnLimit: _check_turn_limit,
    DamageTypeMatch: _check_damage_type,
    WeaponTypeMatch: _check_weapon_type,
    ElementMatch: _check_element,
    AllyPresent: _check_ally_present,
    NoCritical: _check_no_critical,
}


def evaluate_condition(condition: Condition, context: RecruitmentContext) -> bool:
    """Evaluate ``condition``; unknown variants fail closed."""

    check = _CHECKS.get(type(condition))
    if check is None:
        logger.error(
            "unsupported recruitment condition %r (%s); treating as unsatisfied",
            getattr(condition, "id", None),
            type(condition).__name__,
        )
        return False
    return check(condition, context)


def is_supported(condition: object) -> bool:
    return type(condition) in _CHECKS


# --- Helpers ------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConditionSummary:
    """Aggregate view of a set of condition results."""

    total: int
    satisfied: int
    results: tuple[bool, ...]

    @property
    def remaining(self) -> int:
        return self.total - self.satisfied

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(self.satisfied / self.total * 100)

    @property
    def all_satisfied(self) -> bool:
        return self.total > 0 and self.satisfied == self.total


def summarize_results(results: Iterable[bool]) -> ConditionSummary:
    values = tuple(bool(r) for r in results)
    return ConditionSummary(total=len(values), satisfied=sum(values), results=values)


def summarize_conditions(
    conditions: Iterable[Condition], context: RecruitmentContext
) -> ConditionSummary:
    return summarize_results(evaluate_condition(c, context) for c in conditions)


# Cheap, frequently failing checks first.
_EVALUATION_ORDER = {
    ConditionType.TURN_LIMIT: 1,
    ConditionType.SPECIFIC_ATTACKER: 2,
    ConditionType.HP_THRESHOLD: 3,
    ConditionType.DAMAGE_TYPE: 4,
    ConditionType.ALLY_PRESENT: 5,
    ConditionType.WEAPON_TYPE: 6,
    ConditionType.NO_CRITICAL: 7,
    ConditionType.ELEMENT_MATCH: 8,
}


def sort_conditions_by_priority(conditions: Iterable[Condition]) -> list[Condition]:
    return sorted(conditions, key=lambda c: _EVALUATION_ORDER.get(c.type, 999))


def describe_condition(condition: Condition) -> str:
    """Return a player-facing description, falling back to a generated one."""

    if condition.description:
        return condition.description
    match condition:
        case SpecificAttacker(attacker_id=attacker_id):
            return f"Defeat with {attacker_id}"
        case HpThreshold(threshold=threshold):
            return f"Defeat at or below {round(threshold * 100)}% HP"
        case TurnLimit(max_turn=max_turn):
            return f"Defeat within {max_turn} turns"
        case DamageTypeMatch(damage_type=damage_type):
            return f"Defeat with {damage_type} damage"
        case WeaponTypeMatch(weapon_type=weapon_type):
            return f"Defeat with a {weapon_type}"
        case ElementMatch(element=element):
            return f"Defeat with the {element} element"
        case AllyPresent(required_ally_id=ally):
            return f"Defeat while {ally} is on the field"
        case NoCritical():
            return "Defeat without a critical hit"
    return condition.id
