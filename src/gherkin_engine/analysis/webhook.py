"""
Webhook notifications for execution, comparison and alert results.

Endpoints are configured as a YAML or JSON list. Each endpoint subscribes
to a set of events and receives either the generic JSON payload or a chat
message shaped for Slack, Discord or Microsoft Teams. Delivery problems
are returned per endpoint and never change the outcome of a run.
"""
import json
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import requests
import yaml

from ..core.exceptions import ConfigurationError
from ..core.results import ExecutionResult, Status, utc_timestamp
from .alerts import PerformanceAlert
from .comparison import ComparisonResult, ComparisonStatus

logger = logging.getLogger(__name__)

RETRY_BACKOFF_SECONDS = 0.5


class WebhookEvent(str, Enum):
    START = "start"
    COMPLETION = "completion"
    FAILURE = "failure"
    SUCCESS = "success"
    REGRESSION = "regression"
    IMPROVEMENT = "improvement"
    ALERT = "alert"


class PayloadFormat(str, Enum):
    JSON = "json"
    SLACK = "slack"
    DISCORD = "discord"
    TEAMS = "teams"


DEFAULT_EVENTS = [WebhookEvent.COMPLETION, WebhookEvent.FAILURE]


@dataclass
class WebhookConfig:
    """One webhook endpoint"""
    url: str
    name: str = "default"
    events: List[WebhookEvent] = field(default_factory=lambda: list(DEFAULT_EVENTS))
    headers: Dict[str, str] = field(default_factory=dict)
    retry_count: int = 3
    timeout_seconds: int = 30
    format: PayloadFormat = PayloadFormat.JSON

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebhookConfig":
        if not isinstance(data, dict):
            raise ConfigurationError(f"Webhook config must be a mapping, got {type(data).__name__}")
        if not data.get('url'):
            raise ConfigurationError(f"Webhook '{data.get('name', 'default')}' has no url")

        try:
            events = data.get('events')
            return cls(
                url=str(data['url']),
                name=str(data.get('name', 'default')),
                events=[WebhookEvent(str(e).lower()) for e in events] if events is not None
                else list(DEFAULT_EVENTS),
                headers={str(k): str(v) for k, v in (data.get('headers') or {}).items()},
                retry_count=max(1, int(data.get('retry_count', 3))),
                timeout_seconds=int(data.get('timeout_seconds', 30)),
                format=PayloadFormat(str(data.get('format', 'json')).lower()),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid webhook config '{data.get('name', 'default')}': {e}") from e

    def accepts(self, event: WebhookEvent) -> bool:
        return event in self.events


@dataclass
class WebhookDelivery:
    """Outcome of sending one payload to one endpoint"""
    name: str
    url: str
    event: WebhookEvent
    success: bool
    attempts: int
    status_code: Optional[int] = None
    error: Optional[str] = None

    def __str__(self) -> str:
        if self.success:
            return f"✓ {self.name} ({self.event.value}): delivered after {self.attempts} attempt(s)"
        return f"✗ {self.name} ({self.event.value}): {self.error}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'url': self.url,
            'event': self.event.value,
            'success': self.success,
            'attempts': self.attempts,
            'status_code': self.status_code,
            'error': self.error,
        }


def _status_text(result: ExecutionResult) -> str:
    return "All tests passed" if result.status == Status.PASSED else "Some tests failed"


def build_payload(result: ExecutionResult, event: WebhookEvent,
                  comparison: Optional[ComparisonResult] = None,
                  alerts: Optional[List[PerformanceAlert]] = None) -> Dict[str, Any]:
    """The generic JSON payload"""
    summary = result.summary
    payload = {
        'event': event.value,
        'timestamp': utc_timestamp(),
        'feature': result.feature.name,
        'status': result.status.value,
        'summary': {
            'total_scenarios': summary.total_scenarios,
            'passed_scenarios': summary.passed_scenarios,
            'failed_scenarios': summary.failed_scenarios,
            'total_steps': summary.total_steps,
            'duration_ms': result.duration_ms,
        },
        'comparison': None,
    }
    if comparison is not None:
        payload['comparison'] = {
            'status': comparison.status.value,
            'regressions': len(comparison.regressions),
            'improvements': len(comparison.improvements),
            'duration_change_percent': comparison.metrics_diff.duration_change_percent,
        }
    if alerts is not None:
        payload['alerts'] = [alert.to_dict() for alert in alerts]
    return payload


def build_slack_payload(result: ExecutionResult) -> Dict[str, Any]:
    colors = {Status.PASSED: "good", Status.FAILED: "danger"}
    summary = result.summary
    return {
        'text': f"Test execution completed: {result.feature.name} - {_status_text(result)}",
        'username': "gherkin-engine",
        'icon_emoji': ":rocket:",
        'attachments': [{
            'color': colors.get(result.status, "warning"),
            'title': f"Test Execution: {result.feature.name}",
            'text': (f"Status: *{result.status.value}*\n"
                     f"Scenarios: {summary.passed_scenarios} passed, {summary.failed_scenarios} failed"),
            'fields': [
                {'title': "Duration", 'value': f"{result.duration_ms}ms", 'short': True},
                {'title': "Scenarios", 'value': f"{summary.passed_scenarios}/{summary.total_scenarios}",
                 'short': True},
            ],
            'footer': "gherkin-engine",
            'ts': int(time.time()),
        }],
    }


def build_discord_payload(result: ExecutionResult) -> Dict[str, Any]:
    colors = {Status.PASSED: 0x00FF00, Status.FAILED: 0xFF0000}
    summary = result.summary
    marker = ":white_check_mark:" if result.status == Status.PASSED else ":x:"
    return {
        'username': "gherkin-engine",
        'embeds': [{
            'title': f"Test Execution: {result.feature.name}",
            'description': f"**Status:** {marker} {_status_text(result)}",
            'color': colors.get(result.status, 0xFFFF00),
            'fields': [
                {'name': "Duration", 'value': f"{result.duration_ms}ms", 'inline': True},
                {'name': "Scenarios", 'value': f"{summary.passed_scenarios}/{summary.total_scenarios} passed",
                 'inline': True},
                {'name': "Failed", 'value': str(summary.failed_scenarios), 'inline': True},
            ],
            'footer': {'text': "gherkin-engine"},
            'timestamp': utc_timestamp(),
        }],
    }


def build_teams_payload(result: ExecutionResult) -> Dict[str, Any]:
    colors = {Status.PASSED: "0076D7", Status.FAILED: "D13438"}
    summary = result.summary
    return {
        '@type': "MessageCard",
        '@context': "http://schema.org/extensions",
        'themeColor': colors.get(result.status, "FFB900"),
        'summary': f"Test Execution: {result.feature.name} - {_status_text(result)}",
        'sections': [{
            'activityTitle': f"Test Execution: {result.feature.name}",
            'activitySubtitle': _status_text(result),
            'facts': [
                {'name': "Duration", 'value': f"{result.duration_ms}ms"},
                {'name': "Scenarios", 'value': f"{summary.passed_scenarios}/{summary.total_scenarios}"},
                {'name': "Passed", 'value': str(summary.passed_scenarios)},
                {'name': "Failed", 'value': str(summary.failed_scenarios)},
            ],
            'markdown': True,
        }],
    }


CHAT_BUILDERS: Dict[PayloadFormat, Callable[[ExecutionResult], Dict[str, Any]]] = {
    PayloadFormat.SLACK: build_slack_payload,
    PayloadFormat.DISCORD: build_discord_payload,
    PayloadFormat.TEAMS: build_teams_payload,
}


class WebhookManager:
    """Sends notifications to every configured endpoint subscribed to an event"""

    def __init__(self, configs: Optional[List[WebhookConfig]] = None):
        self.configs = list(configs or [])

    def add_config(self, config: WebhookConfig) -> None:
        self.configs.append(config)

    @classmethod
    def from_config_file(cls, path: Union[str, Path]) -> "WebhookManager":
        """Load endpoints from a YAML or JSON file holding a list of webhooks"""
        path = Path(path)
        try:
            with open(path, 'r') as f:
                if path.suffix == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read webhook config {path}: {e}") from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Malformed webhook config {path}: {e}") from e

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise ConfigurationError(f"Webhook config {path} must contain a list of webhooks")

        configs = [WebhookConfig.from_dict(item) for item in data]
        logger.info(f"Loaded {len(configs)} webhooks from {path}")
        return cls(configs)

    def notify_start(self, result: ExecutionResult) -> List[WebhookDelivery]:
        return self.notify(WebhookEvent.START, result)

    def notify_completion(self, result: ExecutionResult) -> List[WebhookDelivery]:
        return self.notify(WebhookEvent.COMPLETION, result)

    def notify_failure(self, result: ExecutionResult) -> List[WebhookDelivery]:
        return self.notify(WebhookEvent.FAILURE, result)

    def notify_success(self, result: ExecutionResult) -> List[WebhookDelivery]:
        return self.notify(WebhookEvent.SUCCESS, result)

    def notify_result(self, result: ExecutionResult) -> List[WebhookDelivery]:
        """Completion, followed by success or failure depending on the result"""
        deliveries = self.notify_completion(result)
        if result.status == Status.FAILED:
            deliveries.extend(self.notify_failure(result))
        elif result.status == Status.PASSED:
            deliveries.extend(self.notify_success(result))
        return deliveries

    def notify_comparison(self, comparison: ComparisonResult,
                          current: ExecutionResult) -> List[WebhookDelivery]:
        """Regression or improvement event for a comparison; nothing when unchanged"""
        if comparison.status == ComparisonStatus.REGRESSION:
            event = WebhookEvent.REGRESSION
        elif comparison.status == ComparisonStatus.IMPROVEMENT:
            event = WebhookEvent.IMPROVEMENT
        else:
            return []
        return self.notify(event, current, comparison=comparison)

    def notify_alerts(self, alerts: List[PerformanceAlert], result: ExecutionResult,
                      channels: Optional[List[str]] = None) -> List[WebhookDelivery]:
        """
        Send triggered alerts to endpoints subscribed to the alert event.

        When channels is given only endpoints with one of those names are
        used.
        """
        if not alerts:
            return []
        return self.notify(WebhookEvent.ALERT, result, alerts=alerts, channels=channels)

    def notify(self, event: WebhookEvent, result: ExecutionResult,
               comparison: Optional[ComparisonResult] = None,
               alerts: Optional[List[PerformanceAlert]] = None,
               channels: Optional[List[str]] = None) -> List[WebhookDelivery]:
        deliveries = []
        for config in self.configs:
            if not config.accepts(event):
                continue
            if channels is not None and config.name not in channels:
                continue

            if config.format == PayloadFormat.JSON:
                payload = build_payload(result, event, comparison=comparison, alerts=alerts)
            else:
                payload = CHAT_BUILDERS[config.format](result)
            deliveries.append(self.send(config, event, payload))
        return deliveries

    def send(self, config: WebhookConfig, event: WebhookEvent, payload: Dict[str, Any]) -> WebhookDelivery:
        """POST a payload, retrying with a linear backoff"""
        headers = {'Content-Type': 'application/json', **config.headers}
        body = json.dumps(payload)
        status_code = None
        error = None

        for attempt in range(1, config.retry_count + 1):
            try:
                response = requests.post(config.url, data=body, headers=headers,
                                         timeout=config.timeout_seconds)
            except requests.RequestException as e:
                status_code = None
                error = f"Request error: {e}"
            else:
                status_code = response.status_code
                if response.ok:
                    logger.info(f"Webhook '{config.name}' delivered {event.value} (HTTP {status_code})")
                    return WebhookDelivery(config.name, config.url, event, True, attempt, status_code)
                error = f"HTTP error: {status_code} - {response.text}"

            logger.warning(f"Webhook '{config.name}' attempt {attempt}/{config.retry_count} failed: {error}")
            if attempt < config.retry_count:
                time.sleep(RETRY_BACKOFF_SECONDS * attempt)

        logger.error(f"Webhook '{config.name}' gave up on {event.value}: {error}")
        return WebhookDelivery(config.name, config.url, event, False, config.retry_count, status_code, error)


def format_deliveries(deliveries: List[WebhookDelivery], output_format: str = "text") -> str:
    if output_format == "json":
        return json.dumps([d.to_dict() for d in deliveries], indent=2) + "\n"

    if not deliveries:
        return "No webhooks subscribed to this event\n"
    lines = [str(d) for d in deliveries]
    sent = sum(1 for d in deliveries if d.success)
    lines.append(f"\n{sent}/{len(deliveries)} webhooks delivered")
    return "\n".join(lines) + "\n"
