import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from ..core.results import ExecutionResult, ScenarioResult, Status

logger = logging.getLogger(__name__)

SLOWEST_STEPS_LIMIT = 10
BOTTLENECK_SHARE_PERCENT = 50.0


@dataclass
class StepMetrics:
    text: str
    duration_ms: int
    percentage: float
    status: str


@dataclass
class ScenarioMetrics:
    name: str
    duration_ms: int
    step_count: int
    passed: bool
    steps: List[StepMetrics] = field(default_factory=list)
    slowest_step: Optional[str] = None


@dataclass
class SlowestStepInfo:
    """Timing of one step text aggregated over every scenario using it"""
    text: str
    total_ms: int
    calls: int
    average_ms: float


@dataclass
class ProfilingMetrics:
    total_duration_ms: int
    scenarios: List[ScenarioMetrics] = field(default_factory=list)
    slowest_steps: List[SlowestStepInfo] = field(default_factory=list)
    bottleneck_analysis: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _scenario_metrics(scenario: ScenarioResult) -> ScenarioMetrics:
    step_total = sum(step.duration_ms for step in scenario.steps)
    steps = [
        StepMetrics(
            text=step.text,
            duration_ms=step.duration_ms,
            percentage=round(step.duration_ms / step_total * 100, 2) if step_total else 0.0,
            status=step.status.value,
        )
        for step in scenario.steps
    ]
    slowest = max(scenario.steps, key=lambda s: s.duration_ms, default=None)
    return ScenarioMetrics(
        name=scenario.name,
        duration_ms=scenario.duration_ms,
        step_count=len(scenario.steps),
        passed=scenario.status == Status.PASSED,
        steps=steps,
        slowest_step=slowest.text if slowest is not None else None,
    )


def _slowest_steps(result: ExecutionResult) -> List[SlowestStepInfo]:
    totals: Dict[str, List[int]] = {}
    for scenario in result.scenarios:
        for step in scenario.steps:
            totals.setdefault(step.text, []).append(step.duration_ms)

    aggregated = [
        SlowestStepInfo(
            text=text,
            total_ms=sum(durations),
            calls=len(durations),
            average_ms=round(sum(durations) / len(durations), 2),
        )
        for text, durations in totals.items()
    ]
    aggregated.sort(key=lambda info: info.total_ms, reverse=True)
    return aggregated[:SLOWEST_STEPS_LIMIT]


def _bottleneck_analysis(result: ExecutionResult,
                         slowest_steps: List[SlowestStepInfo]) -> Dict[str, Any]:
    analysis: Dict[str, Any] = {
        'top_bottleneck': None,
        'slow_scenario': None,
        'suggestions': [],
    }
    step_total = sum(step.duration_ms for scenario in result.scenarios for step in scenario.steps)

    if slowest_steps:
        top = slowest_steps[0]
        share = top.total_ms / step_total * 100 if step_total else 0.0
        analysis['top_bottleneck'] = {
            'step': top.text,
            'total_ms': top.total_ms,
            'percentage': round(share, 2),
        }
        if share > BOTTLENECK_SHARE_PERCENT:
            analysis['suggestions'].append(
                f"Step '{top.text}' takes {share:.1f}% of total step time; "
                f"consider optimizing it or replacing fixed waits with explicit conditions"
            )

    if result.scenarios:
        slowest = max(result.scenarios, key=lambda s: s.duration_ms)
        analysis['slow_scenario'] = {'name': slowest.name, 'duration_ms': slowest.duration_ms}

    return analysis


def analyze_execution(result: ExecutionResult) -> ProfilingMetrics:
    """Build a timing breakdown of one execution result"""
    slowest_steps = _slowest_steps(result)
    metrics = ProfilingMetrics(
        total_duration_ms=result.duration_ms,
        scenarios=[_scenario_metrics(s) for s in result.scenarios],
        slowest_steps=slowest_steps,
        bottleneck_analysis=_bottleneck_analysis(result, slowest_steps),
    )
    logger.debug(f"Profiled {len(metrics.scenarios)} scenarios of '{result.feature.name}'")
    return metrics


def format_profile(metrics: ProfilingMetrics, output_format: str = "text") -> str:
    if output_format == "json":
        return json.dumps(metrics.to_dict(), indent=2)
    if output_format == "yaml":
        return yaml.safe_dump(metrics.to_dict(), sort_keys=False)

    lines = [
        "=== Performance Profile ===",
        "",
        f"Total Duration: {metrics.total_duration_ms}ms",
        "",
        "=== Scenarios ===",
    ]
    for scenario in metrics.scenarios:
        icon = "✓" if scenario.passed else "✗"
        lines.append(f"{icon} {scenario.name} ({scenario.duration_ms}ms, {scenario.step_count} steps)")
        for step in scenario.steps:
            lines.append(f"    {step.duration_ms:>6}ms {step.percentage:5.1f}%  {step.text}")

    if metrics.slowest_steps:
        lines.extend(["", "=== Slowest Steps ==="])
        for index, info in enumerate(metrics.slowest_steps, 1):
            lines.append(
                f"{index}. {info.text} - {info.total_ms}ms total, "
                f"{info.calls} calls, {info.average_ms:.1f}ms avg"
            )

    suggestions = metrics.bottleneck_analysis.get('suggestions') or []
    if suggestions:
        lines.extend(["", "=== Suggestions ==="])
        lines.extend(f"- {s}" for s in suggestions)

    return "\n".join(lines) + "\n"
