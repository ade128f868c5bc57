"""Unit tests for the recruitment performance monitor."""

from __future__ import annotations

from srpg_recruitment.domain.enums import AlertSeverity, Metric, OptimizationType
from srpg_recruitment.domain.rules_config import MonitorRules, PerformanceThresholds
from srpg_recruitment.services.performance_monitor import PerformanceMonitor


class FakeHooks:
    """Records which optimization hooks were invoked."""

    def __init__(self):
        self.calls = []

    def shrink_cache(self):
        self.calls.append("shrink_cache")

    def reduce_batch_size(self):
        self.calls.append("reduce_batch_size")

    def defer_non_critical(self):
        self.calls.append("defer_non_critical")

    def cleanup_memory(self):
        self.calls.append("cleanup_memory")


class TestPerformanceMonitor:
    def setup_method(self):
        self.hooks = FakeHooks()
        self.monitor = PerformanceMonitor(MonitorRules(sample_size=3), self.hooks)

    def test_rolling_window_average(self):
        for value in (1.0, 1.0, 4.0, 4.0):
            self.monitor.record(Metric.CONDITION_CHECK_TIME, value)
        assert self.monitor.sample_count(Metric.CONDITION_CHECK_TIME) == 3
        self.monitor.tick(now=0.0)
        assert self.monitor.average(Metric.CONDITION_CHECK_TIME) == 3.0

    def test_measure_records_milliseconds(self):
        with self.monitor.measure(Metric.UI_UPDATE_TIME):
            pass
        assert self.monitor.sample_count(Metric.UI_UPDATE_TIME) == 1

    def test_interval_gates_ticks(self):
        assert self.monitor.tick(now=10.0).ran
        assert not self.monitor.tick(now=10.5).ran
        assert self.monitor.tick(now=11.0).ran

    def test_alert_severities(self, caplog):
        self.monitor.record(Metric.CONDITION_CHECK_TIME, 5.0)
        self.monitor.record(Metric.UI_UPDATE_TIME, 40.0)
        self.monitor.record(Metric.CACHE_HIT_RATIO, 0.2)
        report = self.monitor.tick(now=0.0)

        severities = {alert.metric: alert.severity for alert in report.alerts}
        assert severities == {
            Metric.CONDITION_CHECK_TIME: AlertSeverity.WARNING,
            Metric.UI_UPDATE_TIME: AlertSeverity.CRITICAL,
            Metric.CACHE_HIT_RATIO: AlertSeverity.WARNING,
        }
        assert len(self.monitor.alerts()) == 3
        assert "recruitment performance" in caplog.text

    def test_near_limit_average_raises_info(self):
        self.monitor.record(Metric.UI_UPDATE_TIME, 14.0)
        [alert] = self.monitor.tick(now=0.0).alerts

        assert alert.severity is AlertSeverity.INFO
        assert "approaching limit" in alert.message
        assert self.hooks.calls == []
        assert self.monitor.summary().status == "good"

    def test_alert_history_is_bounded(self):
        monitor = PerformanceMonitor(MonitorRules(max_alerts=2, interval_seconds=0.0))
        monitor.record(Metric.FRAME_RATE_IMPACT, 0.5)
        for step in range(3):
            monitor.tick(now=float(step))
        assert len(monitor.alerts()) == 2
        assert len(monitor.alerts(1)) == 1
        monitor.clear_alerts()
        assert monitor.alerts() == []

    def test_auto_optimize_runs_highest_priority_first(self):
        self.monitor.record(Metric.FRAME_RATE_IMPACT, 0.5)
        self.monitor.record(Metric.MEMORY_USAGE, 20 * 1024 * 1024)
        self.monitor.record(Metric.UI_UPDATE_TIME, 40.0)
        report = self.monitor.tick(now=0.0)

        assert report.executed == [
            OptimizationType.REDUCE_BATCH_SIZE,
            OptimizationType.CLEANUP_MEMORY,
            OptimizationType.SHRINK_CACHE,
        ]
        assert self.hooks.calls == ["reduce_batch_size", "cleanup_memory", "shrink_cache"]

    def test_low_priority_actions_are_not_executed(self):
        self.monitor.record(Metric.CONDITION_CHECK_TIME, 5.0)
        report = self.monitor.tick(now=0.0)
        assert report.executed == []
        assert [a.priority for a in self.monitor.plan_actions()] == [7]

    def test_failing_hook_is_logged_and_skipped(self, caplog):
        def broken():
            raise RuntimeError("boom")

        self.hooks.reduce_batch_size = broken
        self.monitor.record(Metric.FRAME_RATE_IMPACT, 0.5)
        self.monitor.record(Metric.UI_UPDATE_TIME, 40.0)
        report = self.monitor.tick(now=0.0)
        assert report.executed == [OptimizationType.DEFER_OPERATIONS]
        assert "optimization reduce_batch_size failed" in caplog.text

    def test_disabled_monitor_is_a_no_op(self):
        monitor = PerformanceMonitor(MonitorRules(enabled=False), self.hooks)
        monitor.record(Metric.FRAME_RATE_IMPACT, 9.0)
        with monitor.measure(Metric.UI_UPDATE_TIME):
            pass
        report = monitor.tick(now=0.0)
        assert not report.ran
        assert monitor.sample_count(Metric.FRAME_RATE_IMPACT) == 0
        assert self.hooks.calls == []

    def test_summary_scores(self):
        assert self.monitor.summary().status == "good"
        monitor = PerformanceMonitor(
            MonitorRules(thresholds=PerformanceThresholds(max_ui_update_ms=1.0))
        )
        monitor.record(Metric.UI_UPDATE_TIME, 2.0)
        monitor.record(Metric.FRAME_RATE_IMPACT, 0.5)
        monitor.tick(now=0.0)
        summary = monitor.summary()
        assert summary.score == 50
        assert summary.status == "critical"
        assert len(summary.issues) == len(summary.recommendations) == 2

    def test_reset(self):
        self.monitor.record(Metric.UI_UPDATE_TIME, 40.0)
        self.monitor.tick(now=0.0)
        self.monitor.reset()
        assert self.monitor.metrics() == {}
        assert self.monitor.alerts() == []
        assert self.monitor.tick(now=0.1).ran
