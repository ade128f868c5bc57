"""Declarative tuning for the recruitment engine."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RecruitmentRules:
    """Stage-level recruitment switches."""

    enable_recruitment: bool = True
    default_priority: int = 50


@dataclass(frozen=True, slots=True)
class NPCRules:
    """NPC conversion limits and AI weighting."""

    max_npcs_per_stage: int = 3
    base_priority: int = 1000
    priority_multiplier: float = 1.0
    recent_conversion_turns: int = 3
    recent_conversion_bonus: int = 50
    low_hp_threshold: int = 30
    low_hp_bonus: int = 30
    enable_protection: bool = True


@dataclass(frozen=True, slots=True)
class CacheRules:
    """Condition cache sizing."""

    capacity: int = 1000
    min_capacity: int = 100
    shrink_factor: float = 0.8


@dataclass(frozen=True, slots=True)
class NotificationRules:
    """Event delivery settings."""

    deferred: bool = False
    batch_size: int = 32
    min_batch_size: int = 1
    history_limit: int = 100


@dataclass(frozen=True, slots=True)
class PerformanceThresholds:
    """Limits above (or, for the hit ratio, below) which alerts are raised."""

    max_condition_check_ms: float = 2.0
    max_npc_conversion_ms: float = 5.0
    max_ui_update_ms: float = 16.0  # one frame at 60fps
    max_memory_bytes: int = 10 * 1024 * 1024
    max_frame_rate_impact: float = 0.1
    min_cache_hit_ratio: float = 0.7


@dataclass(frozen=True, slots=True)
class MonitorRules:
    """Performance monitor behaviour."""

    enabled: bool = True
    interval_seconds: float = 1.0
    sample_size: int = 60
    auto_optimize: bool = True
    enable_alerts: bool = True
    max_alerts: int = 50
    max_actions_per_tick: int = 3
    min_action_priority: int = 8
    # Averages above this share of an upper limit raise an INFO alert.
    near_limit_ratio: float = 0.8
    thresholds: PerformanceThresholds = PerformanceThresholds()


@dataclass(frozen=True, slots=True)
class RulesConfig:
    """Top-level configuration container for the engine."""

    recruitment: RecruitmentRules = RecruitmentRules()
    npc: NPCRules = NPCRules()
    cache: CacheRules = CacheRules()
    notifications: NotificationRules = NotificationRules()
    monitor: MonitorRules = MonitorRules()


DEFAULT_RULES = RulesConfig()
