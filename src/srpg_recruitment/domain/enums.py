"""Enumerations used across the recruitment domain."""

from __future__ import annotations

from enum import StrEnum


class Faction(StrEnum):
    """Side a unit fights for."""

    PLAYER = "player"
    ENEMY = "enemy"


class RecruitmentStatus(StrEnum):
    """Lifecycle of a recruitable character within a stage.

    The order of declaration is the order of progression; a definition never
    moves back to an earlier value.  ``RECRUITED`` and ``FAILED`` are terminal.
    """

    AVAILABLE = "available"
    CONDITIONS_MET = "conditions_met"
    NPC_STATE = "npc_state"
    RECRUITED = "recruited"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (RecruitmentStatus.RECRUITED, RecruitmentStatus.FAILED)


_STATUS_RANK = {
    RecruitmentStatus.AVAILABLE: 0,
    RecruitmentStatus.CONDITIONS_MET: 1,
    RecruitmentStatus.NPC_STATE: 2,
    RecruitmentStatus.RECRUITED: 3,
    RecruitmentStatus.FAILED: 3,
}


class RecruitmentAction(StrEnum):
    """Follow-up the battle system should take after a recruitment call."""

    CONTINUE_BATTLE = "continue_battle"
    CONVERT_TO_NPC = "convert_to_npc"
    RECRUITMENT_FAILED = "recruitment_failed"


class RecruitmentError(StrEnum):
    """Error kinds carried by recruitment results."""

    INVALID_TARGET = "invalid_target"
    SYSTEM_ERROR = "system_error"
    CONDITIONS_NOT_MET = "conditions_not_met"
    RECRUITMENT_FAILED = "recruitment_failed"
    NPC_ALREADY_DEFEATED = "npc_already_defeated"


class ConditionType(StrEnum):
    """Recruitment condition variants understood by the engine."""

    SPECIFIC_ATTACKER = "specific_attacker"
    HP_THRESHOLD = "hp_threshold"
    DAMAGE_TYPE = "damage_type"
    TURN_LIMIT = "turn_limit"
    ALLY_PRESENT = "ally_present"
    WEAPON_TYPE = "weapon_type"
    NO_CRITICAL = "no_critical"
    ELEMENT_MATCH = "element_match"


class IndicatorType(StrEnum):
    """Marker drawn above an NPC by the rendering layer."""

    CROWN = "crown"
    STAR = "star"
    HEART = "heart"
    CUSTOM = "custom"


class RewardType(StrEnum):
    """Reward categories granted on a successful recruitment."""

    EXPERIENCE = "experience"
    ITEM = "item"
    GOLD = "gold"
    SKILL_POINT = "skill_point"


class AlertSeverity(StrEnum):
    """Severity of a performance alert."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class Metric(StrEnum):
    """Metrics sampled by the performance monitor."""

    CONDITION_CHECK_TIME = "condition_check_time"
    NPC_CONVERSION_TIME = "npc_conversion_time"
    UI_UPDATE_TIME = "ui_update_time"
    MEMORY_USAGE = "memory_usage"
    FRAME_RATE_IMPACT = "frame_rate_impact"
    CACHE_HIT_RATIO = "cache_hit_ratio"


class OptimizationType(StrEnum):
    """Corrective actions the performance monitor can trigger."""

    SHRINK_CACHE = "shrink_cache"
    REDUCE_BATCH_SIZE = "reduce_batch_size"
    DEFER_OPERATIONS = "defer_operations"
    CLEANUP_MEMORY = "cleanup_memory"
