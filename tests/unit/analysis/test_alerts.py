import json
from unittest.mock import patch

import psutil
import pytest
import yaml

from gherkin_engine.analysis.alerts import (
    AlertConfig,
    AlertManager,
    AlertMetric,
    AlertOperator,
    AlertSeverity,
    AlertThreshold,
    PerformanceAlert,
    PerformanceMonitor,
    current_memory_mb,
)
from gherkin_engine.core import ConfigurationError
from gherkin_engine.core.results import ExecutionResult, FeatureInfo, ScenarioResult, Status, StepResult


def scenario(duration_ms, status=Status.PASSED, step_ms=(100,)):
    return ScenarioResult(
        name=f"Scenario {duration_ms}",
        duration_ms=duration_ms,
        steps=[StepResult(text=f"step {i}", keyword="When", status=status, duration_ms=ms)
               for i, ms in enumerate(step_ms)],
    )


class TestAlertOperator:
    """Test AlertOperator comparisons"""

    def test_comparisons(self):
        """Test each operator"""
        assert AlertOperator.GREATER_THAN.compare(2, 1)
        assert not AlertOperator.GREATER_THAN.compare(1, 1)
        assert AlertOperator.LESS_THAN.compare(1, 2)
        assert AlertOperator.EQUAL_TO.compare(0.1 + 0.2, 0.3)
        assert AlertOperator.NOT_EQUAL_TO.compare(1, 2)
        assert not AlertOperator.NOT_EQUAL_TO.compare(0.1 + 0.2, 0.3)


class TestPerformanceMonitor:
    """Test PerformanceMonitor"""

    def test_single_slow_scenario(self):
        """Test one 45s scenario triggers exactly one warning"""
        monitor = PerformanceMonitor()
        monitor.record_scenario(scenario(45000))

        alerts = monitor.evaluate_thresholds(AlertConfig())
        assert [a.threshold_name for a in alerts] == ["slow_scenario"]
        assert alerts[0].severity == AlertSeverity.WARNING
        assert alerts[0].value == 45000
        assert alerts[0].threshold_value == 30000
        assert "45000ms" in alerts[0].message
        assert not any(a.severity == AlertSeverity.CRITICAL for a in alerts)

    def test_very_slow_scenario(self):
        """Test crossing both duration thresholds"""
        monitor = PerformanceMonitor()
        monitor.record_scenario(scenario(70000))

        names = [a.threshold_name for a in monitor.evaluate_thresholds(AlertConfig())]
        assert names == ["slow_scenario", "very_slow_scenario"]

    def test_disabled_config(self):
        """Test disabled rule sets produce no alerts"""
        monitor = PerformanceMonitor()
        monitor.record_scenario(scenario(90000))

        assert monitor.evaluate_thresholds(AlertConfig(enabled=False)) == []
        assert monitor.alerts == []

    def test_failure_rate(self):
        """Test the failure rate metric"""
        monitor = PerformanceMonitor()
        for _ in range(3):
            monitor.record_scenario(scenario(100))
        monitor.record_scenario(scenario(100, Status.FAILED))

        assert monitor.get_metric_value(AlertMetric.FAILURE_RATE_PERCENT) == 25.0
        names = [a.threshold_name for a in monitor.evaluate_thresholds(AlertConfig())]
        assert names == ["high_failure_rate"]

    def test_step_metrics(self):
        """Test step durations are recorded with their scenario"""
        monitor = PerformanceMonitor()
        monitor.record_scenario(scenario(300, step_ms=(100, 200)))
        monitor.record_step(StepResult(text="extra", keyword="And", status=Status.PASSED, duration_ms=600))

        assert monitor.step_count == 3
        assert monitor.get_metric_value(AlertMetric.STEP_DURATION_MS) == 300.0

    def test_custom_metric(self):
        """Test custom metrics default to zero"""
        monitor = PerformanceMonitor()
        assert monitor.get_metric_value(AlertMetric.CUSTOM, "cache_misses") == 0.0

        monitor.set_metric("cache_misses", 12)
        config = AlertConfig(thresholds=[
            AlertThreshold(name="cache", metric=AlertMetric.CUSTOM, key="cache_misses",
                           operator=AlertOperator.GREATER_THAN, value=10),
        ])
        alerts = monitor.evaluate_thresholds(config)
        assert alerts[0].metric == "custom:cache_misses"
        assert alerts[0].value == 12.0

    def test_empty_monitor(self):
        """Test metrics of an empty session"""
        monitor = PerformanceMonitor()
        assert monitor.get_metric_value(AlertMetric.SCENARIO_DURATION_MS) == 0.0
        assert monitor.get_metric_value(AlertMetric.FAILURE_RATE_PERCENT) == 0.0
        assert monitor.evaluate_thresholds(AlertConfig()) == []

    def test_record_result(self):
        """Test recording a whole execution result"""
        result = ExecutionResult(
            feature=FeatureInfo(name="Checkout"),
            scenarios=[scenario(70000), scenario(100, Status.SKIPPED)],
        )
        monitor = PerformanceMonitor()
        monitor.record_result(result)

        summary = monitor.get_summary()
        assert summary.scenario_count == 2
        assert summary.scenarios_passed == 1
        assert summary.scenarios_skipped == 1
        assert summary.max_scenario_duration_ms == 70000

        alerts = monitor.evaluate_thresholds(AlertConfig())
        assert alerts[0].feature == "Checkout"

    def test_summary_string(self):
        """Test the one-line summary"""
        monitor = PerformanceMonitor()
        monitor.record_scenario(scenario(200, step_ms=(50, 150)))
        text = str(monitor.get_summary())

        assert "Scenarios: 1 (1 passed, 0 failed, 0 skipped)" in text
        assert "Steps: 2" in text
        assert "Avg Step: 100.0ms" in text
        assert "Alerts: 0" in text

    def test_memory_metric(self):
        """Test the memory metric reads the process size"""
        assert current_memory_mb() > 0

    def test_memory_unavailable(self):
        """Test the memory metric falls back to zero"""
        with patch('gherkin_engine.analysis.alerts.psutil.Process', side_effect=psutil.AccessDenied()):
            assert current_memory_mb() == 0.0


class TestAlertThreshold:
    """Test AlertThreshold parsing"""

    def test_from_dict_with_operator_name(self):
        """Test operators may be given by name"""
        threshold = AlertThreshold.from_dict({
            'name': 'slow',
            'metric': 'step_duration_ms',
            'operator': 'greater_than',
            'value': 500,
            'severity': 'critical',
        })
        assert threshold.operator == AlertOperator.GREATER_THAN
        assert threshold.severity == AlertSeverity.CRITICAL

    def test_custom_metric_prefix(self):
        """Test custom:<key> metric names"""
        threshold = AlertThreshold.from_dict({'name': 'c', 'metric': 'custom:retries', 'value': 1})
        assert threshold.metric == AlertMetric.CUSTOM
        assert threshold.key == "retries"

    def test_invalid_metric(self):
        """Test unknown metrics are configuration errors"""
        with pytest.raises(ConfigurationError):
            AlertThreshold.from_dict({'name': 'x', 'metric': 'cpu', 'value': 1})

    def test_missing_field(self):
        """Test missing fields are configuration errors"""
        with pytest.raises(ConfigurationError):
            AlertThreshold.from_dict({'name': 'x', 'metric': 'step_duration_ms'})

    def test_invalid_message_template(self):
        """Test templates with unknown placeholders are rejected"""
        with pytest.raises(ConfigurationError):
            AlertThreshold(name="x", metric=AlertMetric.STEP_DURATION_MS,
                           operator=AlertOperator.GREATER_THAN, value=1, message="{unknown}")


class TestAlertManager:
    """Test AlertManager"""

    @pytest.fixture
    def rules_file(self, tmp_path):
        path = tmp_path / "alerts.yaml"
        path.write_text(yaml.safe_dump([
            {
                'name': 'ci',
                'thresholds': [
                    {'name': 'slow_step', 'metric': 'step_duration_ms', 'operator': '>',
                     'value': 50, 'severity': 'info', 'message': 'Steps average {value:.0f}ms'},
                ],
            },
            {'name': 'off', 'enabled': False},
        ]))
        return path

    def test_from_config_file(self, rules_file):
        """Test loading named rule sets"""
        manager = AlertManager.from_config_file(rules_file)

        assert [c.name for c in manager.configs] == ["ci", "off"]
        assert manager.configs[1].enabled == False
        assert len(manager.configs[1].thresholds) == 4

    def test_evaluate(self, rules_file):
        """Test all rule sets are evaluated"""
        monitor = PerformanceMonitor()
        monitor.record_scenario(scenario(100, step_ms=(100,)))

        alerts = AlertManager.from_config_file(rules_file).evaluate(monitor)
        assert [a.message for a in alerts] == ["Steps average 100ms"]

    def test_malformed_file(self, tmp_path):
        """Test malformed rule files raise ConfigurationError"""
        path = tmp_path / "alerts.yaml"
        path.write_text("- name: [unclosed")
        with pytest.raises(ConfigurationError):
            AlertManager.from_config_file(path)

    def test_non_list_document(self, tmp_path):
        """Test scalar documents are rejected"""
        path = tmp_path / "alerts.json"
        path.write_text(json.dumps("nope"))
        with pytest.raises(ConfigurationError):
            AlertManager.from_config_file(path)

    def test_format_empty(self):
        """Test text output without alerts"""
        assert AlertManager().format_alerts([]) == "No performance alerts triggered\n"

    def test_format_text_and_json(self):
        """Test rendering of triggered alerts"""
        alert = PerformanceAlert(
            timestamp="2024-01-01T00:00:00+00:00",
            severity=AlertSeverity.WARNING,
            threshold_name="slow_scenario",
            message="Average scenario duration 45000ms exceeded 30000ms",
            metric="scenario_duration_ms",
            value=45000.0,
            threshold_value=30000.0,
            scenario="Pay",
        )
        manager = AlertManager()

        text = manager.format_alerts([alert])
        assert "=== Performance Alerts ===" in text
        assert "[Warning] slow_scenario: Average scenario duration 45000ms exceeded 30000ms" in text
        assert "(value: 45000.00, threshold: 30000.00)" in text
        assert "  Scenario: Pay" in text
        assert "Summary: 0 critical, 1 warning, 0 info" in text

        data = json.loads(manager.format_alerts([alert], "json"))
        assert data['count'] == 1
        assert data['alerts'][0]['threshold'] == "slow_scenario"
        assert data['alerts'][0]['severity'] == "warning"
