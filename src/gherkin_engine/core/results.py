"""
Execution result model.

Feature -> Scenario -> Step tree. Step statuses are set by the caller;
scenario and feature statuses and the summary counters are always derived,
so the counters can never disagree with the tree they describe.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from .exceptions import ReportParseError

logger = logging.getLogger(__name__)


class Status(str, Enum):
    """Outcome of a step, scenario or feature"""
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


STEP_STATUSES = (Status.PASSED, Status.FAILED, Status.SKIPPED)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ErrorInfo:
    """Error attached to a failed step"""
    code: str
    message: str
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'code': self.code, 'message': self.message, 'suggestions': list(self.suggestions)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorInfo":
        return cls(
            code=data['code'],
            message=data['message'],
            suggestions=list(data.get('suggestions') or []),
        )


@dataclass
class StepResult:
    """Outcome of a single step; not modified after it is recorded"""
    text: str
    keyword: str
    status: Status
    duration_ms: int = 0
    output: Optional[str] = None
    error: Optional[ErrorInfo] = None

    def __post_init__(self):
        self.status = Status(self.status)
        if self.status not in STEP_STATUSES:
            raise ValueError(f"Invalid step status: {self.status.value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'keyword': self.keyword,
            'status': self.status.value,
            'duration_ms': self.duration_ms,
            'output': self.output,
            'error': self.error.to_dict() if self.error else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepResult":
        error = data.get('error')
        return cls(
            text=data['text'],
            keyword=data.get('keyword', ''),
            status=Status(data['status']),
            duration_ms=int(data.get('duration_ms', 0)),
            output=data.get('output'),
            error=ErrorInfo.from_dict(error) if error else None,
        )


def derive_scenario_status(steps: Iterable[StepResult]) -> Status:
    """Roll step statuses up into a scenario status.

    A scenario without steps is reported as skipped.
    """
    statuses = [step.status for step in steps]
    if Status.FAILED in statuses:
        return Status.FAILED
    if all(status == Status.SKIPPED for status in statuses):
        return Status.SKIPPED
    if Status.PASSED in statuses:
        return Status.PASSED
    return Status.PENDING


@dataclass
class ScenarioResult:
    """Outcome of one scenario; status is derived from its steps"""
    name: str
    duration_ms: int = 0
    steps: List[StepResult] = field(default_factory=list)

    def __post_init__(self):
        self.steps = list(self.steps)
        self._status = derive_scenario_status(self.steps)

    @property
    def status(self) -> Status:
        return self._status

    def add_step(self, step: StepResult) -> None:
        self.steps.append(step)
        self._status = derive_scenario_status(self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status.value,
            'duration_ms': self.duration_ms,
            'steps': [step.to_dict() for step in self.steps],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScenarioResult":
        return cls(
            name=data['name'],
            duration_ms=int(data.get('duration_ms', 0)),
            steps=[StepResult.from_dict(s) for s in data.get('steps') or []],
        )


@dataclass
class ExecutionSummary:
    """Rollup counters for one feature execution"""
    total_scenarios: int = 0
    passed_scenarios: int = 0
    failed_scenarios: int = 0
    skipped_scenarios: int = 0
    total_steps: int = 0
    passed_steps: int = 0
    failed_steps: int = 0
    skipped_steps: int = 0

    @classmethod
    def from_scenarios(cls, scenarios: Iterable[ScenarioResult]) -> "ExecutionSummary":
        summary = cls()
        for scenario in scenarios:
            summary.total_scenarios += 1
            # Pending scenarios cannot occur: step statuses are never pending
            if scenario.status == Status.PASSED:
                summary.passed_scenarios += 1
            elif scenario.status == Status.FAILED:
                summary.failed_scenarios += 1
            else:
                summary.skipped_scenarios += 1

            for step in scenario.steps:
                summary.total_steps += 1
                if step.status == Status.PASSED:
                    summary.passed_steps += 1
                elif step.status == Status.FAILED:
                    summary.failed_steps += 1
                else:
                    summary.skipped_steps += 1
        return summary

    def to_dict(self) -> Dict[str, int]:
        return {
            'total_scenarios': self.total_scenarios,
            'passed_scenarios': self.passed_scenarios,
            'failed_scenarios': self.failed_scenarios,
            'skipped_scenarios': self.skipped_scenarios,
            'total_steps': self.total_steps,
            'passed_steps': self.passed_steps,
            'failed_steps': self.failed_steps,
            'skipped_steps': self.skipped_steps,
        }


@dataclass
class FeatureInfo:
    name: str
    file: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'file': self.file, 'description': self.description}


@dataclass
class ExecutionResult:
    """Result of executing one feature file"""
    feature: FeatureInfo
    scenarios: List[ScenarioResult] = field(default_factory=list)
    duration_ms: int = 0
    timestamp: str = field(default_factory=utc_timestamp)

    def __post_init__(self):
        self.scenarios = list(self.scenarios)
        self._refresh()

    def _refresh(self) -> None:
        self._summary = ExecutionSummary.from_scenarios(self.scenarios)
        if self._summary.failed_steps > 0:
            self._status = Status.FAILED
        elif self._summary.passed_steps > 0:
            self._status = Status.PASSED
        else:
            self._status = Status.SKIPPED

    @property
    def status(self) -> Status:
        return self._status

    @property
    def summary(self) -> ExecutionSummary:
        return self._summary

    def add_scenario(self, scenario: ScenarioResult) -> None:
        self.scenarios.append(scenario)
        self._refresh()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'timestamp': self.timestamp,
            'duration_ms': self.duration_ms,
            'feature': self.feature.to_dict(),
            'scenarios': [scenario.to_dict() for scenario in self.scenarios],
            'summary': self.summary.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionResult":
        """Rebuild a result from its document form.

        Stored status and summary values are ignored and recomputed from
        the scenario tree.
        """
        feature = data['feature']
        return cls(
            feature=FeatureInfo(
                name=feature['name'],
                file=feature.get('file'),
                description=feature.get('description'),
            ),
            scenarios=[ScenarioResult.from_dict(s) for s in data.get('scenarios') or []],
            duration_ms=int(data.get('duration_ms', 0)),
            timestamp=data.get('timestamp') or utc_timestamp(),
        )


def load_report(path: Union[str, Path]) -> ExecutionResult:
    """Load an execution report written as JSON or YAML"""
    path = Path(path)
    try:
        with open(path, 'r') as f:
            if path.suffix in ('.yaml', '.yml'):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except OSError as e:
        raise ReportParseError(f"Cannot read report {path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ReportParseError(f"Malformed report {path}: {e}") from e

    if not isinstance(data, dict):
        raise ReportParseError(f"Report {path} does not contain an execution result")

    try:
        result = ExecutionResult.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ReportParseError(f"Invalid execution result in {path}: {e}") from e

    logger.debug(f"Loaded report {path} ({result.summary.total_scenarios} scenarios)")
    return result
