import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict

import yaml
from jinja2 import Template

from ..core.results import ExecutionResult, Status

logger = logging.getLogger(__name__)

STEP_SYMBOLS = {
    Status.PASSED: "✓",
    Status.FAILED: "✗",
    Status.SKIPPED: "⊘",
}

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{{ result.feature.name }} - Execution Report</title>
    <style>
        body { font-family: Arial, sans-serif; margin: 20px; background-color: #f5f5f5; }
        .header { background-color: #333; color: white; padding: 20px; border-radius: 5px; }
        .summary { display: flex; gap: 20px; margin: 20px 0; }
        .summary-card { background: white; padding: 15px; border-radius: 5px; flex: 1; }
        .scenario { background: white; margin: 10px 0; padding: 15px; border-radius: 5px; }
        .passed { color: #2e7d32; }
        .failed { color: #c62828; }
        .skipped { color: #757575; }
        .error { background: #ffebee; padding: 8px; margin: 4px 0 4px 20px; font-family: monospace; }
        .step { margin-left: 20px; }
    </style>
</head>
<body>
    <div class="header">
        <h1>{{ result.feature.name }}</h1>
        {% if result.feature.file %}<p>{{ result.feature.file }}</p>{% endif %}
        <p>{{ result.timestamp }} &middot; {{ result.duration_ms }}ms</p>
    </div>

    <div class="summary">
        <div class="summary-card">
            <h3>Status</h3>
            <p class="{{ result.status.value }}">{{ result.status.value|upper }}</p>
        </div>
        <div class="summary-card">
            <h3>Scenarios</h3>
            <p>{{ summary.passed_scenarios }} passed, {{ summary.failed_scenarios }} failed,
               {{ summary.skipped_scenarios }} skipped</p>
        </div>
        <div class="summary-card">
            <h3>Steps</h3>
            <p>{{ summary.passed_steps }} passed, {{ summary.failed_steps }} failed,
               {{ summary.skipped_steps }} skipped</p>
        </div>
        <div class="summary-card">
            <h3>Pass Rate</h3>
            <p>{{ pass_rate }}%</p>
        </div>
    </div>

    {% for scenario in result.scenarios %}
    <div class="scenario">
        <h2 class="{{ scenario.status.value }}">{{ scenario.name }}
            <small>({{ scenario.duration_ms }}ms)</small></h2>
        {% for step in scenario.steps %}
        <div class="step {{ step.status.value }}">
            {{ step.keyword }} {{ step.text }} <small>({{ step.duration_ms }}ms)</small>
        </div>
        {% if step.error %}
        <div class="error">{{ step.error.message }}</div>
        {% endif %}
        {% endfor %}
    </div>
    {% endfor %}
</body>
</html>
"""

JUNIT_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<testsuites name="Gherkin Engine Results" time="{{ '%.3f'|format(result.duration_ms / 1000) }}" tests="{{ summary.total_scenarios }}" failures="{{ summary.failed_scenarios }}" skipped="{{ summary.skipped_scenarios }}">
    <testsuite name="{{ result.feature.name }}" tests="{{ summary.total_scenarios }}" failures="{{ summary.failed_scenarios }}" skipped="{{ summary.skipped_scenarios }}" time="{{ '%.3f'|format(result.duration_ms / 1000) }}">
        {% for scenario in result.scenarios %}
        <testcase classname="{{ result.feature.name|replace(' ', '_') }}" name="{{ scenario.name }}" time="{{ '%.3f'|format(scenario.duration_ms / 1000) }}">
            {% if scenario.status.value == 'failed' %}
            {% for step in scenario.steps if step.status.value == 'failed' %}
            <failure message="{{ step.error.message if step.error else 'Step failed' }}">{{ step.keyword }} {{ step.text }}</failure>
            {% endfor %}
            {% elif scenario.status.value == 'skipped' %}
            <skipped/>
            {% endif %}
        </testcase>
        {% endfor %}
    </testsuite>
</testsuites>
"""


@dataclass
class TapSummary:
    """Counts read back from TAP output"""
    version: str = "13"
    total: int = 0
    passed: int = 0
    failed: int = 0

    @property
    def success(self) -> bool:
        return self.failed == 0


def to_text(result: ExecutionResult) -> str:
    lines = ["=== Execution Report ===", "", f"Feature: {result.feature.name}"]
    if result.feature.file:
        lines.append(f"File: {result.feature.file}")
    if result.feature.description:
        lines.append(f"Description: {result.feature.description}")
    lines.extend([
        f"Status: {result.status.value}",
        f"Duration: {result.duration_ms}ms",
        f"Timestamp: {result.timestamp}",
        "",
        f"Scenarios: {len(result.scenarios)}",
    ])

    for index, scenario in enumerate(result.scenarios, 1):
        lines.append(f"\n  {index}. {scenario.name} [{scenario.status.value}]")
        lines.append(f"     Duration: {scenario.duration_ms}ms")
        for step_index, step in enumerate(scenario.steps, 1):
            lines.append(f"     {STEP_SYMBOLS[step.status]} {step_index}. {step.keyword} {step.text}")
            if step.error:
                lines.append(f"        Error: {step.error.message}")
                if step.error.suggestions:
                    lines.append("        Suggestions:")
                    lines.extend(f"          - {s}" for s in step.error.suggestions)
            if step.output:
                lines.append(f"        Output: {step.output}")

    summary = result.summary
    lines.extend([
        "",
        "=== Summary ===",
        f"Scenarios: {summary.passed_scenarios} passed, {summary.failed_scenarios} failed, "
        f"{summary.skipped_scenarios} skipped (total: {summary.total_scenarios})",
        f"Steps: {summary.passed_steps} passed, {summary.failed_steps} failed, "
        f"{summary.skipped_steps} skipped (total: {summary.total_steps})",
    ])
    return "\n".join(lines) + "\n"


def to_json(result: ExecutionResult) -> str:
    return json.dumps(result.to_dict(), indent=2)


def to_yaml(result: ExecutionResult) -> str:
    return yaml.safe_dump(result.to_dict(), sort_keys=False, allow_unicode=True)


def to_tap(result: ExecutionResult) -> str:
    """TAP version 13, one test point per scenario"""
    lines = ["TAP version 13", f"1..{len(result.scenarios)}"]
    if result.feature.file:
        lines.append(f"# File: {result.feature.file}")

    for number, scenario in enumerate(result.scenarios, 1):
        if scenario.status == Status.PASSED:
            lines.append(f"ok {number} {scenario.name}")
            continue
        if scenario.status == Status.SKIPPED:
            lines.append(f"ok {number} {scenario.name} # SKIP")
            continue

        lines.append(f"not ok {number} {scenario.name}")
        failed_step = next((s for s in scenario.steps if s.status != Status.PASSED), None)
        if failed_step is not None:
            lines.extend([
                "  ---",
                "  message: |",
                f"    Step failed: {failed_step.text}",
                "  ...",
            ])

    return "\n".join(lines) + "\n"


def parse_tap_output(tap_text: str) -> TapSummary:
    summary = TapSummary()
    for line in tap_text.splitlines():
        line = line.strip()
        if line.startswith("TAP version"):
            parts = line.split()
            if len(parts) > 2:
                summary.version = parts[2]
        elif line.startswith("1.."):
            if line[3:].isdigit():
                summary.total = int(line[3:])
        elif line.startswith("ok "):
            summary.passed += 1
        elif line.startswith("not ok "):
            summary.failed += 1
    return summary


def _pass_rate(result: ExecutionResult) -> float:
    total = result.summary.total_scenarios
    return round(result.summary.passed_scenarios / total * 100, 1) if total else 0.0


def to_html(result: ExecutionResult) -> str:
    return Template(HTML_TEMPLATE, autoescape=True).render(
        result=result,
        summary=result.summary,
        pass_rate=_pass_rate(result),
    )


def to_junit(result: ExecutionResult) -> str:
    return Template(JUNIT_TEMPLATE, autoescape=True).render(result=result, summary=result.summary)


RENDERERS: Dict[str, Callable[[ExecutionResult], str]] = {
    'text': to_text,
    'json': to_json,
    'yaml': to_yaml,
    'tap': to_tap,
    'html': to_html,
    'junit': to_junit,
}

EXTENSIONS = {
    'text': 'txt',
    'json': 'json',
    'yaml': 'yaml',
    'tap': 'tap',
    'html': 'html',
    'junit': 'xml',
}


def render_result(result: ExecutionResult, format: str = "text") -> str:
    """Render an execution result in the requested format"""
    if format not in RENDERERS:
        raise ValueError(f"Unsupported report format: {format}")
    return RENDERERS[format](result)


class ReportCollector:
    """Writes execution reports to an output directory"""

    def __init__(self, output_dir: str = "test-results"):
        self.output_dir = Path(output_dir)

    def generate_report(self, result: ExecutionResult, format: str = "json") -> str:
        """
        Generate a report file in the specified format

        Args:
            result: Execution result to render
            format: One of text, json, yaml, tap, html, junit

        Returns:
            Path to generated report
        """
        content = render_result(result, format)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        report_path = self.output_dir / f"report_{timestamp}.{EXTENSIONS[format]}"
        with open(report_path, 'w', encoding='utf-8') as f:
            f.write(content)

        logger.info(f"{format.upper()} report generated: {report_path}")
        return str(report_path)
