"""
Performance monitoring and threshold alerts.

A PerformanceMonitor accumulates timings for one session; AlertConfig
rule sets are evaluated against it. Alerts are informational only and
never change the outcome of a run.
"""
import os
import json
import time
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import psutil
import yaml

from ..core.exceptions import ConfigurationError
from ..core.results import ExecutionResult, ScenarioResult, Status, StepResult

logger = logging.getLogger(__name__)

EPSILON = 1e-9


class AlertMetric(str, Enum):
    SCENARIO_DURATION_MS = "scenario_duration_ms"
    STEP_DURATION_MS = "step_duration_ms"
    FAILURE_RATE_PERCENT = "failure_rate_percent"
    TOTAL_DURATION_MS = "total_duration_ms"
    SCENARIOS_PER_SECOND = "scenarios_per_second"
    STEPS_PER_SECOND = "steps_per_second"
    MEMORY_USAGE_MB = "memory_usage_mb"
    CUSTOM = "custom"


class AlertOperator(str, Enum):
    GREATER_THAN = ">"
    LESS_THAN = "<"
    EQUAL_TO = "=="
    NOT_EQUAL_TO = "!="

    def compare(self, value: float, threshold: float) -> bool:
        if self is AlertOperator.GREATER_THAN:
            return value > threshold
        if self is AlertOperator.LESS_THAN:
            return value < threshold
        if self is AlertOperator.EQUAL_TO:
            return abs(value - threshold) < EPSILON
        return abs(value - threshold) >= EPSILON


OPERATOR_NAMES = {
    'greater_than': AlertOperator.GREATER_THAN,
    'less_than': AlertOperator.LESS_THAN,
    'equal_to': AlertOperator.EQUAL_TO,
    'not_equal_to': AlertOperator.NOT_EQUAL_TO,
}


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class AlertThreshold:
    """
    A named rule comparing one metric with a target value.

    The message is a str.format template; it may reference {value},
    {threshold} and {name}.
    """
    name: str
    metric: AlertMetric
    operator: AlertOperator
    value: float
    severity: AlertSeverity = AlertSeverity.WARNING
    message: str = "{name} triggered (value: {value:.2f})"
    key: Optional[str] = None

    def __post_init__(self):
        if self.metric == AlertMetric.CUSTOM and not self.key:
            raise ConfigurationError(f"Threshold '{self.name}' uses a custom metric without a key")
        try:
            self.format_message(0.0)
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(f"Invalid message template for '{self.name}': {e}") from e

    @property
    def metric_name(self) -> str:
        if self.metric == AlertMetric.CUSTOM:
            return f"custom:{self.key}"
        return self.metric.value

    def format_message(self, value: float) -> str:
        return self.message.format(value=value, threshold=self.value, name=self.name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertThreshold":
        try:
            metric = str(data['metric'])
            key = data.get('key')
            if metric.startswith('custom:'):
                metric, key = 'custom', metric.split(':', 1)[1]

            operator = str(data.get('operator', '>'))
            threshold = cls(
                name=data['name'],
                metric=AlertMetric(metric),
                operator=OPERATOR_NAMES.get(operator.lower()) or AlertOperator(operator),
                value=float(data['value']),
                severity=AlertSeverity(str(data.get('severity', 'warning')).lower()),
                message=data.get('message') or cls.message,
                key=key,
            )
        except KeyError as e:
            raise ConfigurationError(f"Alert threshold is missing field {e}") from e
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid alert threshold {data!r}: {e}") from e
        return threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'metric': self.metric_name,
            'operator': self.operator.value,
            'value': self.value,
            'severity': self.severity.value,
            'message': self.message,
        }


def default_thresholds() -> List[AlertThreshold]:
    return [
        AlertThreshold(
            name="slow_scenario",
            metric=AlertMetric.SCENARIO_DURATION_MS,
            operator=AlertOperator.GREATER_THAN,
            value=30000.0,
            severity=AlertSeverity.WARNING,
            message="Average scenario duration {value:.0f}ms exceeded {threshold:.0f}ms",
        ),
        AlertThreshold(
            name="very_slow_scenario",
            metric=AlertMetric.SCENARIO_DURATION_MS,
            operator=AlertOperator.GREATER_THAN,
            value=60000.0,
            severity=AlertSeverity.CRITICAL,
            message="Average scenario duration {value:.0f}ms exceeded {threshold:.0f}ms",
        ),
        AlertThreshold(
            name="slow_step",
            metric=AlertMetric.STEP_DURATION_MS,
            operator=AlertOperator.GREATER_THAN,
            value=10000.0,
            severity=AlertSeverity.WARNING,
            message="Average step duration {value:.0f}ms exceeded {threshold:.0f}ms",
        ),
        AlertThreshold(
            name="high_failure_rate",
            metric=AlertMetric.FAILURE_RATE_PERCENT,
            operator=AlertOperator.GREATER_THAN,
            value=10.0,
            severity=AlertSeverity.WARNING,
            message="Failure rate {value:.1f}% exceeded {threshold:.1f}%",
        ),
    ]


@dataclass
class AlertConfig:
    """A named, switchable set of thresholds"""
    name: str = "default"
    enabled: bool = True
    thresholds: List[AlertThreshold] = field(default_factory=default_thresholds)
    # Names of webhook endpoints that receive this rule set's alerts
    notification_channels: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertConfig":
        if not isinstance(data, dict):
            raise ConfigurationError(f"Alert config must be a mapping, got {type(data).__name__}")
        thresholds = data.get('thresholds')
        if thresholds is not None and not isinstance(thresholds, list):
            raise ConfigurationError("Alert config 'thresholds' must be a list")
        return cls(
            name=str(data.get('name', 'default')),
            enabled=bool(data.get('enabled', True)),
            thresholds=(
                [AlertThreshold.from_dict(t) for t in thresholds]
                if thresholds is not None else default_thresholds()
            ),
            notification_channels=list(data.get('notification_channels') or []),
        )


@dataclass
class PerformanceAlert:
    timestamp: str
    severity: AlertSeverity
    threshold_name: str
    message: str
    metric: str
    value: float
    threshold_value: float
    feature: Optional[str] = None
    scenario: Optional[str] = None
    step: Optional[str] = None

    def __str__(self) -> str:
        return (
            f"[{self.severity.value.capitalize()}] {self.threshold_name}: {self.message} "
            f"(value: {self.value:.2f}, threshold: {self.threshold_value:.2f})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'severity': self.severity.value,
            'threshold': self.threshold_name,
            'message': self.message,
            'metric': self.metric,
            'value': self.value,
            'threshold_value': self.threshold_value,
            'feature': self.feature,
            'scenario': self.scenario,
            'step': self.step,
        }


@dataclass
class PerformanceSummary:
    total_duration_ms: int
    scenario_count: int
    scenarios_passed: int
    scenarios_failed: int
    scenarios_skipped: int
    step_count: int
    avg_scenario_duration_ms: float
    avg_step_duration_ms: float
    max_scenario_duration_ms: int
    max_step_duration_ms: int
    failure_rate_percent: float
    alerts_generated: int

    def __str__(self) -> str:
        return (
            f"Duration: {self.total_duration_ms}ms | "
            f"Scenarios: {self.scenario_count} ({self.scenarios_passed} passed, "
            f"{self.scenarios_failed} failed, {self.scenarios_skipped} skipped) | "
            f"Steps: {self.step_count} | "
            f"Avg Scenario: {self.avg_scenario_duration_ms:.1f}ms | "
            f"Avg Step: {self.avg_step_duration_ms:.1f}ms | "
            f"Failure Rate: {self.failure_rate_percent:.1f}% | "
            f"Alerts: {self.alerts_generated}"
        )


def _mean(values: List[int]) -> float:
    return sum(values) / len(values) if values else 0.0


def current_memory_mb() -> float:
    """Resident set size of this process in megabytes, 0.0 if it cannot be read"""
    try:
        return psutil.Process(os.getpid()).memory_info().rss / (1024 * 1024)
    except psutil.Error as e:
        logger.debug(f"Cannot read process memory: {e}")
        return 0.0


class PerformanceMonitor:
    """Accumulates timing statistics for one monitoring session"""

    def __init__(self):
        self.start_time = time.monotonic()
        self.scenario_durations: List[int] = []
        self.step_durations: List[int] = []
        self.scenario_count = 0
        self.failed_scenarios = 0
        self.skipped_scenarios = 0
        self.step_count = 0
        self.custom_metrics: Dict[str, float] = {}
        self.alerts: List[PerformanceAlert] = []
        self.feature: Optional[str] = None

    def record_scenario(self, scenario: ScenarioResult) -> None:
        self.scenario_count += 1
        self.scenario_durations.append(scenario.duration_ms)
        if scenario.status == Status.FAILED:
            self.failed_scenarios += 1
        elif scenario.status == Status.SKIPPED:
            self.skipped_scenarios += 1

        self.step_count += len(scenario.steps)
        self.step_durations.extend(step.duration_ms for step in scenario.steps)

    def record_step(self, step: StepResult) -> None:
        self.step_count += 1
        self.step_durations.append(step.duration_ms)

    def record_result(self, result: ExecutionResult) -> None:
        """Record every scenario of a feature execution"""
        self.feature = result.feature.name
        for scenario in result.scenarios:
            self.record_scenario(scenario)

    def set_metric(self, key: str, value: float) -> None:
        self.custom_metrics[key] = float(value)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time

    def _failure_rate(self) -> float:
        return self.failed_scenarios / self.scenario_count * 100.0 if self.scenario_count else 0.0

    def _rate(self, count: int) -> float:
        elapsed = self.elapsed_seconds
        return count / elapsed if elapsed > 0 else 0.0

    def get_metric_value(self, metric: AlertMetric, key: Optional[str] = None) -> float:
        if metric == AlertMetric.SCENARIO_DURATION_MS:
            return _mean(self.scenario_durations)
        if metric == AlertMetric.STEP_DURATION_MS:
            return _mean(self.step_durations)
        if metric == AlertMetric.FAILURE_RATE_PERCENT:
            return self._failure_rate()
        if metric == AlertMetric.TOTAL_DURATION_MS:
            return self.elapsed_seconds * 1000.0
        if metric == AlertMetric.SCENARIOS_PER_SECOND:
            return self._rate(self.scenario_count)
        if metric == AlertMetric.STEPS_PER_SECOND:
            return self._rate(self.step_count)
        if metric == AlertMetric.MEMORY_USAGE_MB:
            return current_memory_mb()
        return self.custom_metrics.get(key, 0.0)

    def evaluate_thresholds(self, config: AlertConfig) -> List[PerformanceAlert]:
        """Evaluate one rule set; a disabled set produces nothing"""
        if not config.enabled:
            return []

        alerts = []
        for threshold in config.thresholds:
            value = self.get_metric_value(threshold.metric, threshold.key)
            if not threshold.operator.compare(value, threshold.value):
                continue

            alert = PerformanceAlert(
                timestamp=datetime.now(timezone.utc).isoformat(),
                severity=threshold.severity,
                threshold_name=threshold.name,
                message=threshold.format_message(value),
                metric=threshold.metric_name,
                value=value,
                threshold_value=threshold.value,
                feature=self.feature,
            )
            logger.warning(f"Performance alert: {alert}")
            alerts.append(alert)

        self.alerts.extend(alerts)
        return alerts

    def get_summary(self) -> PerformanceSummary:
        return PerformanceSummary(
            total_duration_ms=int(self.elapsed_seconds * 1000),
            scenario_count=self.scenario_count,
            scenarios_passed=self.scenario_count - self.failed_scenarios - self.skipped_scenarios,
            scenarios_failed=self.failed_scenarios,
            scenarios_skipped=self.skipped_scenarios,
            step_count=self.step_count,
            avg_scenario_duration_ms=_mean(self.scenario_durations),
            avg_step_duration_ms=_mean(self.step_durations),
            max_scenario_duration_ms=max(self.scenario_durations, default=0),
            max_step_duration_ms=max(self.step_durations, default=0),
            failure_rate_percent=self._failure_rate(),
            alerts_generated=len(self.alerts),
        )


class AlertManager:
    """Holds alert rule sets and evaluates them against a monitor"""

    def __init__(self, configs: Optional[List[AlertConfig]] = None):
        self.configs: List[AlertConfig] = list(configs) if configs is not None else [AlertConfig()]

    def add_config(self, config: AlertConfig) -> None:
        self.configs.append(config)

    @classmethod
    def from_config_file(cls, path: Union[str, Path]) -> "AlertManager":
        """Load rule sets from a YAML or JSON file holding a list of configs"""
        path = Path(path)
        try:
            with open(path, 'r') as f:
                if path.suffix == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read alert config {path}: {e}") from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Malformed alert config {path}: {e}") from e

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise ConfigurationError(f"Alert config {path} must contain a list of rule sets")

        configs = [AlertConfig.from_dict(item) for item in data]
        logger.info(f"Loaded {len(configs)} alert configurations from {path}")
        return cls(configs)

    def evaluate(self, monitor: PerformanceMonitor) -> List[PerformanceAlert]:
        alerts = []
        for config in self.configs:
            alerts.extend(monitor.evaluate_thresholds(config))
        return alerts

    def format_alerts(self, alerts: List[PerformanceAlert], output_format: str = "text") -> str:
        if output_format in ("json", "yaml"):
            document = {'alerts': [a.to_dict() for a in alerts], 'count': len(alerts)}
            if output_format == "json":
                return json.dumps(document, indent=2)
            return yaml.safe_dump(document, sort_keys=False)

        if not alerts:
            return "No performance alerts triggered\n"

        counts = {severity: 0 for severity in AlertSeverity}
        lines = ["=== Performance Alerts ===", ""]
        for alert in alerts:
            counts[alert.severity] += 1
            lines.append(str(alert))
            if alert.scenario:
                lines.append(f"  Scenario: {alert.scenario}")
            lines.append("")

        lines.append(
            f"Summary: {counts[AlertSeverity.CRITICAL]} critical, "
            f"{counts[AlertSeverity.WARNING]} warning, {counts[AlertSeverity.INFO]} info"
        )
        return "\n".join(lines) + "\n"
