"""
Baseline vs. current comparison of two execution results.

Everything here is a pure function of the two results: the same pair
always yields the same ComparisonResult, in the same order.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..core.results import ExecutionResult, ScenarioResult, Status, load_report

logger = logging.getLogger(__name__)

# Relative duration changes, in percent
REGRESSION_THRESHOLD = 10.0
HIGH_SEVERITY_THRESHOLD = 50.0
STEP_REPORT_THRESHOLD = 5.0


class ComparisonStatus(str, Enum):
    REGRESSION = "regression"
    IMPROVEMENT = "improvement"
    UNCHANGED = "unchanged"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


@dataclass
class MetricsDifference:
    passed_scenarios_diff: int = 0
    failed_scenarios_diff: int = 0
    skipped_scenarios_diff: int = 0
    passed_steps_diff: int = 0
    failed_steps_diff: int = 0
    skipped_steps_diff: int = 0
    duration_diff_ms: int = 0
    duration_change_percent: float = 0.0


@dataclass
class ScenarioChange:
    scenario_name: str
    previous_status: str
    current_status: str
    previous_duration_ms: int
    current_duration_ms: int
    change_type: str


@dataclass
class StepPerformanceChange:
    step_text: str
    baseline_avg_ms: float
    current_avg_ms: float
    change_percent: float
    is_regression: bool
    occurrence_count: int


@dataclass
class RegressionItem:
    description: str
    severity: Severity
    impact_value: float
    impact_unit: str
    scenario_name: Optional[str] = None
    step_text: Optional[str] = None


@dataclass
class ImprovementItem:
    description: str
    improvement_value: float
    improvement_unit: str
    scenario_name: Optional[str] = None
    step_text: Optional[str] = None


@dataclass
class ComparisonSummary:
    baseline_timestamp: str
    current_timestamp: str
    scenario_changes_count: int
    step_changes_count: int
    regression_count: int
    improvement_count: int


@dataclass
class ComparisonResult:
    status: ComparisonStatus
    summary: ComparisonSummary
    metrics_diff: MetricsDifference
    scenario_changes: List[ScenarioChange] = field(default_factory=list)
    step_performance_changes: List[StepPerformanceChange] = field(default_factory=list)
    regressions: List[RegressionItem] = field(default_factory=list)
    improvements: List[ImprovementItem] = field(default_factory=list)

    @property
    def has_regressions(self) -> bool:
        return bool(self.regressions)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        for item in data['regressions']:
            item['severity'] = item['severity'].value
        return data


def percent_change(baseline: float, current: float) -> float:
    """Relative change in percent; a change away from a zero baseline counts as 100%"""
    if baseline == 0:
        return 0.0 if current == 0 else 100.0
    return (current - baseline) / baseline * 100.0


def _severity(change_percent: float) -> Severity:
    return Severity.HIGH if change_percent > HIGH_SEVERITY_THRESHOLD else Severity.MEDIUM


def calculate_metrics_diff(baseline: ExecutionResult, current: ExecutionResult) -> MetricsDifference:
    before, after = baseline.summary, current.summary
    duration_diff = current.duration_ms - baseline.duration_ms
    return MetricsDifference(
        passed_scenarios_diff=after.passed_scenarios - before.passed_scenarios,
        failed_scenarios_diff=after.failed_scenarios - before.failed_scenarios,
        skipped_scenarios_diff=after.skipped_scenarios - before.skipped_scenarios,
        passed_steps_diff=after.passed_steps - before.passed_steps,
        failed_steps_diff=after.failed_steps - before.failed_steps,
        skipped_steps_diff=after.skipped_steps - before.skipped_steps,
        duration_diff_ms=duration_diff,
        duration_change_percent=(
            duration_diff / baseline.duration_ms * 100.0 if baseline.duration_ms > 0 else 0.0
        ),
    )


def _scenario_change(baseline: ScenarioResult, current: ScenarioResult) -> ScenarioChange:
    if baseline.status != current.status:
        change_type = "status_changed"
    elif current.duration_ms < baseline.duration_ms:
        change_type = "duration_improved"
    elif current.duration_ms > baseline.duration_ms:
        change_type = "duration_regressed"
    else:
        change_type = "unchanged"

    return ScenarioChange(
        scenario_name=baseline.name,
        previous_status=baseline.status.value,
        current_status=current.status.value,
        previous_duration_ms=baseline.duration_ms,
        current_duration_ms=current.duration_ms,
        change_type=change_type,
    )


def _compare_scenario_pair(baseline: ScenarioResult, current: ScenarioResult,
                           regressions: List[RegressionItem],
                           improvements: List[ImprovementItem]) -> None:
    name = baseline.name
    if baseline.status == Status.PASSED and current.status == Status.FAILED:
        regressions.append(RegressionItem(
            description=f"Scenario '{name}' changed from passed to failed",
            severity=Severity.CRITICAL,
            impact_value=1.0,
            impact_unit="count",
            scenario_name=name,
        ))

    delta = current.duration_ms - baseline.duration_ms
    if delta < 0:
        improvements.append(ImprovementItem(
            description=f"Scenario '{name}' duration improved by "
                        f"{abs(percent_change(baseline.duration_ms, current.duration_ms)):.1f}%",
            improvement_value=float(-delta),
            improvement_unit="ms",
            scenario_name=name,
        ))
    elif delta > 0:
        change = percent_change(baseline.duration_ms, current.duration_ms)
        if change > REGRESSION_THRESHOLD:
            regressions.append(RegressionItem(
                description=f"Scenario '{name}' duration regressed by {change:.1f}%",
                severity=_severity(change),
                impact_value=float(delta),
                impact_unit="ms",
                scenario_name=name,
            ))


def _step_durations(result: ExecutionResult) -> Dict[str, List[int]]:
    durations: Dict[str, List[int]] = {}
    for scenario in result.scenarios:
        for step in scenario.steps:
            durations.setdefault(step.text, []).append(step.duration_ms)
    return durations


def analyze_step_performance(baseline: ExecutionResult, current: ExecutionResult,
                             regressions: List[RegressionItem],
                             improvements: List[ImprovementItem]) -> List[StepPerformanceChange]:
    """Compare mean step durations for step texts present on both sides"""
    changes = []
    current_durations = _step_durations(current)

    for text, baseline_times in _step_durations(baseline).items():
        current_times = current_durations.get(text)
        if not current_times:
            continue

        baseline_avg = sum(baseline_times) / len(baseline_times)
        current_avg = sum(current_times) / len(current_times)
        change = percent_change(baseline_avg, current_avg)
        if abs(change) <= STEP_REPORT_THRESHOLD:
            continue

        is_regression = current_avg > baseline_avg
        changes.append(StepPerformanceChange(
            step_text=text,
            baseline_avg_ms=baseline_avg,
            current_avg_ms=current_avg,
            change_percent=change,
            is_regression=is_regression,
            occurrence_count=len(current_times),
        ))

        if abs(change) <= REGRESSION_THRESHOLD:
            continue
        if is_regression:
            regressions.append(RegressionItem(
                description=f"Step '{text}' duration regressed by {change:.1f}%",
                severity=_severity(change),
                impact_value=current_avg - baseline_avg,
                impact_unit="ms",
                step_text=text,
            ))
        else:
            improvements.append(ImprovementItem(
                description=f"Step '{text}' duration improved by {abs(change):.1f}%",
                improvement_value=baseline_avg - current_avg,
                improvement_unit="ms",
                step_text=text,
            ))

    return changes


def compare_results(baseline: ExecutionResult, current: ExecutionResult) -> ComparisonResult:
    """
    Diff two execution results.

    Scenarios are matched by name (a repeated name keeps its last result).
    Any regression makes the overall status a regression, even when
    improvements were found too.
    """
    regressions: List[RegressionItem] = []
    improvements: List[ImprovementItem] = []
    scenario_changes: List[ScenarioChange] = []

    baseline_scenarios = {s.name: s for s in baseline.scenarios}
    current_scenarios = {s.name: s for s in current.scenarios}

    for name, before in baseline_scenarios.items():
        after = current_scenarios.get(name)
        if after is None:
            scenario_changes.append(ScenarioChange(
                scenario_name=name,
                previous_status=before.status.value,
                current_status="removed",
                previous_duration_ms=before.duration_ms,
                current_duration_ms=0,
                change_type="removed",
            ))
            continue

        _compare_scenario_pair(before, after, regressions, improvements)
        scenario_changes.append(_scenario_change(before, after))

    for name, after in current_scenarios.items():
        if name not in baseline_scenarios:
            scenario_changes.append(ScenarioChange(
                scenario_name=name,
                previous_status="new",
                current_status=after.status.value,
                previous_duration_ms=0,
                current_duration_ms=after.duration_ms,
                change_type="new",
            ))

    step_changes = analyze_step_performance(baseline, current, regressions, improvements)

    if regressions:
        status = ComparisonStatus.REGRESSION
    elif improvements:
        status = ComparisonStatus.IMPROVEMENT
    else:
        status = ComparisonStatus.UNCHANGED

    logger.debug(f"Comparison {status.value}: {len(regressions)} regressions, {len(improvements)} improvements")
    return ComparisonResult(
        status=status,
        summary=ComparisonSummary(
            baseline_timestamp=baseline.timestamp,
            current_timestamp=current.timestamp,
            scenario_changes_count=len(scenario_changes),
            step_changes_count=len(step_changes),
            regression_count=len(regressions),
            improvement_count=len(improvements),
        ),
        metrics_diff=calculate_metrics_diff(baseline, current),
        scenario_changes=scenario_changes,
        step_performance_changes=step_changes,
        regressions=regressions,
        improvements=improvements,
    )


def compare_report_files(baseline_path: Union[str, Path], current_path: Union[str, Path]) -> ComparisonResult:
    """Load two report documents and compare them"""
    baseline = load_report(baseline_path)
    current = load_report(current_path)
    logger.info(f"Comparing {current_path} against baseline {baseline_path}")
    return compare_results(baseline, current)


def _format_text(comparison: ComparisonResult) -> str:
    summary = comparison.summary
    metrics = comparison.metrics_diff
    lines = [
        "=== Test Result Comparison Report ===",
        "",
        f"Status: {comparison.status.value.upper()}",
        "",
        "--- Summary ---",
        f"Baseline: {summary.baseline_timestamp}",
        f"Current:  {summary.current_timestamp}",
        f"Scenarios Changed: {summary.scenario_changes_count}",
        f"Step Performance Changes: {summary.step_changes_count}",
        f"Regressions Detected: {summary.regression_count}",
        f"Improvements Detected: {summary.improvement_count}",
        "",
        "--- Metrics Change ---",
        f"Passed Scenarios:  {metrics.passed_scenarios_diff:+d}",
        f"Failed Scenarios:  {metrics.failed_scenarios_diff:+d}",
        f"Skipped Scenarios: {metrics.skipped_scenarios_diff:+d}",
        f"Passed Steps:      {metrics.passed_steps_diff:+d}",
        f"Failed Steps:      {metrics.failed_steps_diff:+d}",
        f"Skipped Steps:     {metrics.skipped_steps_diff:+d}",
        f"Duration:          {metrics.duration_diff_ms:+d}ms ({metrics.duration_change_percent:.1f}%)",
        "",
    ]

    if comparison.regressions:
        lines.append("--- Regressions (CRITICAL) ---")
        for index, item in enumerate(comparison.regressions, 1):
            lines.append(f"  {index}. {item.description}")
            lines.append(f"     Severity: {item.severity.value}")
            lines.append(f"     Impact: {item.impact_value:.1f} {item.impact_unit}")
            if item.scenario_name:
                lines.append(f"     Scenario: {item.scenario_name}")
            if item.step_text:
                lines.append(f"     Step: {item.step_text}")
            lines.append("")

    if comparison.improvements:
        lines.append("--- Improvements ---")
        for index, item in enumerate(comparison.improvements, 1):
            lines.append(f"  {index}. {item.description}")
            lines.append(f"     Value: {item.improvement_value:.1f} {item.improvement_unit}")
            if item.scenario_name:
                lines.append(f"     Scenario: {item.scenario_name}")
            if item.step_text:
                lines.append(f"     Step: {item.step_text}")
            lines.append("")

    if comparison.scenario_changes:
        lines.append("--- Scenario Changes ---")
        for change in comparison.scenario_changes:
            lines.append(f"  {change.scenario_name}: {change.previous_status} → {change.current_status}")
            lines.append(f"     Duration: {change.previous_duration_ms}ms → {change.current_duration_ms}ms")
            lines.append(f"     Change Type: {change.change_type}")
            lines.append("")

    if comparison.step_performance_changes:
        lines.append("--- Step Performance Changes ---")
        for change in comparison.step_performance_changes:
            arrow = "↑" if change.is_regression else "↓"
            lines.append(
                f"  {arrow} {change.step_text} {abs(change.change_percent):.1f}% "
                f"({change.occurrence_count}x occurrence)"
            )
            lines.append(f"     {change.baseline_avg_ms:.1f}ms → {change.current_avg_ms:.1f}ms")

    return "\n".join(lines).rstrip("\n") + "\n"


def format_comparison(comparison: ComparisonResult, output_format: str = "text") -> str:
    """Render a comparison as text, json or yaml"""
    if output_format == "json":
        return json.dumps(comparison.to_dict(), indent=2)
    if output_format == "yaml":
        return yaml.safe_dump(comparison.to_dict(), sort_keys=False, allow_unicode=True)
    return _format_text(comparison)
