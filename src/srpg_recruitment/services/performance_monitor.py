"""Performance Monitor for the recruitment engine.

Keeps rolling sample windows per metric and, on each tick, compares the
averages with the configured thresholds.  Breaches raise alerts and, when
auto-optimization is on, trigger a bounded number of corrective actions
through the injected :class:`~srpg_recruitment.interfaces.OptimizationHooks`.

The monitor is purely observational/corrective: it never blocks, retries or
rejects recruitment operations, and a disabled monitor does nothing at all.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from srpg_recruitment.domain.enums import AlertSeverity, Metric, OptimizationType
from srpg_recruitment.domain.rules_config import MonitorRules
from srpg_recruitment.interfaces.optimization import OptimizationHooks

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    AlertSeverity.INFO: logging.INFO,
    AlertSeverity.WARNING: logging.WARNING,
    AlertSeverity.CRITICAL: logging.CRITICAL,
}


@dataclass(frozen=True, slots=True)
class PerformanceAlert:
    severity: AlertSeverity
    metric: Metric
    current_value: float
    threshold_value: float
    message: str
    timestamp: float


@dataclass(slots=True)
class OptimizationAction:
    type: OptimizationType
    priority: int
    description: str
    execute: Callable[[], None]


@dataclass(frozen=True, slots=True)
class PerformanceSummary:
    status: str  # good | warning | critical
    score: int
    issues: list[str]
    recommendations: list[str]


@dataclass(frozen=True, slots=True)
class TickReport:
    """What a single monitoring tick observed and did."""

    ran: bool
    alerts: list[PerformanceAlert]
    executed: list[OptimizationType]


class PerformanceMonitor:
    """Rolling-window metrics with threshold alerts and self-tuning."""

    def __init__(
        self,
        rules: MonitorRules | None = None,
        hooks: OptimizationHooks | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rules = rules or MonitorRules()
        self.hooks = hooks
        self._clock = clock
        self._samples: dict[Metric, deque[float]] = {}
        self._averages: dict[Metric, float] = {}
        self._alerts: deque[PerformanceAlert] = deque(maxlen=self.rules.max_alerts)
        self._last_tick: float | None = None

    @property
    def enabled(self) -> bool:
        return self.rules.enabled

    # --- Sampling -----------------------------------------------------------------

    def record(self, metric: Metric, value: float) -> None:
        if not self.enabled:
            return
        window = self._samples.get(metric)
        if window is None:
            window = self._samples[metric] = deque(maxlen=self.rules.sample_size)
        window.append(float(value))

    @contextmanager
    def measure(self, metric: Metric) -> Iterator[None]:
        """Record the wall time of the ``with`` block, in milliseconds."""

        if not self.enabled:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(metric, (time.perf_counter() - start) * 1000.0)

    def sample_count(self, metric: Metric) -> int:
        return len(self._samples.get(metric, ()))

    def average(self, metric: Metric) -> float:
        return self._averages.get(metric, 0.0)

    def metrics(self) -> dict[Metric, float]:
        return dict(self._averages)

    # --- Tick ---------------------------------------------------------------------

    def tick(self, now: float | None = None) -> TickReport:
        """Recompute averages, raise alerts and run corrective actions.

        Calls arriving before ``interval_seconds`` has elapsed since the last
        evaluation are ignored.
        """

        if not self.enabled:
            return TickReport(False, [], [])
        now = self._clock() if now is None else now
        if self._last_tick is not None and now - self._last_tick < self.rules.interval_seconds:
            return TickReport(False, [], [])
        self._last_tick = now

        self._update_averages()
        alerts = self._check_thresholds(now) if self.rules.enable_alerts else []
        executed = self._auto_optimize() if self.rules.auto_optimize else []
        return TickReport(True, alerts, executed)

    def _update_averages(self) -> None:
        for metric, window in self._samples.items():
            if window:
                self._averages[metric] = sum(window) / len(window)

    def _breaches(self) -> list[tuple[Metric, float, float, AlertSeverity]]:
        t = self.rules.thresholds
        upper = [
            (Metric.CONDITION_CHECK_TIME, t.max_condition_check_ms, AlertSeverity.WARNING),
            (Metric.NPC_CONVERSION_TIME, t.max_npc_conversion_ms, AlertSeverity.WARNING),
            (Metric.UI_UPDATE_TIME, t.max_ui_update_ms, AlertSeverity.CRITICAL),
            (Metric.MEMORY_USAGE, float(t.max_memory_bytes), AlertSeverity.CRITICAL),
            (Metric.FRAME_RATE_IMPACT, t.max_frame_rate_impact, AlertSeverity.CRITICAL),
        ]
        breaches = []
        for metric, threshold, severity in upper:
            value = self._averages.get(metric)
            if value is None:
                continue
            if value > threshold:
                breaches.append((metric, value, threshold, severity))
            elif value > threshold * self.rules.near_limit_ratio:
                breaches.append((metric, value, threshold, AlertSeverity.INFO))
        ratio = self._averages.get(Metric.CACHE_HIT_RATIO)
        if ratio is not None and ratio < t.min_cache_hit_ratio:
            breaches.append((Metric.CACHE_HIT_RATIO, ratio, t.min_cache_hit_ratio, AlertSeverity.WARNING))
        return breaches

    def _check_thresholds(self, now: float) -> list[PerformanceAlert]:
        raised = []
        for metric, value, threshold, severity in self._breaches():
            if severity is AlertSeverity.INFO:
                message = f"{metric.value} approaching limit: {value:.2f} of {threshold}"
            else:
                comparison = "<" if metric is Metric.CACHE_HIT_RATIO else ">"
                message = f"{metric.value} out of bounds: {value:.2f} {comparison} {threshold}"
            alert = PerformanceAlert(
                severity=severity,
                metric=metric,
                current_value=value,
                threshold_value=threshold,
                message=message,
                timestamp=now,
            )
            self._alerts.append(alert)
            raised.append(alert)
            logger.log(_LOG_LEVELS[severity], "recruitment performance: %s", alert.message)
        return raised

    def plan_actions(self) -> list[OptimizationAction]:
        """Corrective actions warranted by the current averages, highest priority first."""

        if self.hooks is None:
            return []
        t = self.rules.thresholds
        avg = self._averages
        actions: list[OptimizationAction] = []
        if avg.get(Metric.FRAME_RATE_IMPACT, 0.0) > t.max_frame_rate_impact:
            actions.append(
                OptimizationAction(
                    OptimizationType.REDUCE_BATCH_SIZE,
                    10,
                    "reduce notification batch size",
                    self.hooks.reduce_batch_size,
                )
            )
        if avg.get(Metric.MEMORY_USAGE, 0.0) > t.max_memory_bytes * 0.8:
            actions.append(
                OptimizationAction(
                    OptimizationType.CLEANUP_MEMORY, 9, "clean up cached data", self._cleanup_memory
                )
            )
            actions.append(
                OptimizationAction(
                    OptimizationType.SHRINK_CACHE, 8, "shrink condition cache", self.hooks.shrink_cache
                )
            )
        if avg.get(Metric.UI_UPDATE_TIME, 0.0) > t.max_ui_update_ms:
            actions.append(
                OptimizationAction(
                    OptimizationType.DEFER_OPERATIONS,
                    8,
                    "defer non-critical notifications",
                    self.hooks.defer_non_critical,
                )
            )
        if avg.get(Metric.CONDITION_CHECK_TIME, 0.0) > t.max_condition_check_ms:
            actions.append(
                OptimizationAction(
                    OptimizationType.DEFER_OPERATIONS,
                    7,
                    "defer notifications during condition checks",
                    self.hooks.defer_non_critical,
                )
            )
        actions.sort(key=lambda action: action.priority, reverse=True)
        return actions

    def _auto_optimize(self) -> list[OptimizationType]:
        eligible = [a for a in self.plan_actions() if a.priority >= self.rules.min_action_priority]
        executed = []
        for action in eligible[: self.rules.max_actions_per_tick]:
            try:
                action.execute()
            except Exception:
                logger.exception("optimization %s failed", action.type.value)
                continue
            logger.info("recruitment performance: executed %s", action.description)
            executed.append(action.type)
        return executed

    def _cleanup_memory(self) -> None:
        if self.hooks is not None:
            self.hooks.cleanup_memory()
        keep = max(1, self.rules.sample_size // 2)
        for window in self._samples.values():
            while len(window) > keep:
                window.popleft()

    # --- Reporting ----------------------------------------------------------------

    def alerts(self, count: int | None = None) -> list[PerformanceAlert]:
        items = list(self._alerts)
        return items if count is None else items[-count:]

    def clear_alerts(self) -> None:
        self._alerts.clear()

    def summary(self) -> PerformanceSummary:
        t = self.rules.thresholds
        avg = self._averages
        checks = [
            (avg.get(Metric.CONDITION_CHECK_TIME, 0.0) > t.max_condition_check_ms, 15,
             "condition checking is slow", "enable condition result caching"),
            (avg.get(Metric.NPC_CONVERSION_TIME, 0.0) > t.max_npc_conversion_ms, 10,
             "NPC conversion is slow", "reduce work done per conversion"),
            (avg.get(Metric.UI_UPDATE_TIME, 0.0) > t.max_ui_update_ms, 20,
             "UI updates are causing frame drops", "defer non-critical notifications"),
            (avg.get(Metric.MEMORY_USAGE, 0.0) > t.max_memory_bytes, 25,
             "high memory usage", "shrink the condition cache"),
            (avg.get(Metric.FRAME_RATE_IMPACT, 0.0) > t.max_frame_rate_impact, 30,
             "significant frame rate impact", "reduce batch size"),
            (avg.get(Metric.CACHE_HIT_RATIO, 1.0) < t.min_cache_hit_ratio, 10,
             "low cache efficiency", "adjust cache capacity"),
        ]
        score = 100
        issues: list[str] = []
        recommendations: list[str] = []
        for breached, penalty, issue, recommendation in checks:
            if breached:
                score -= penalty
                issues.append(issue)
                recommendations.append(recommendation)
        score = max(0, score)
        status = "good" if score >= 80 else "warning" if score >= 60 else "critical"
        return PerformanceSummary(status, score, issues, recommendations)

    def reset(self) -> None:
        self._samples.clear()
        self._averages.clear()
        self._alerts.clear()
        self._last_tick = None
