import json
from unittest.mock import MagicMock, patch

import pytest
import requests
import yaml

from gherkin_engine.analysis.alerts import AlertSeverity, PerformanceAlert
from gherkin_engine.analysis.comparison import compare_results
from gherkin_engine.analysis.webhook import (
    PayloadFormat,
    WebhookConfig,
    WebhookEvent,
    WebhookManager,
    build_discord_payload,
    build_slack_payload,
    build_teams_payload,
    format_deliveries,
)
from gherkin_engine.core import ConfigurationError
from gherkin_engine.core.results import ExecutionResult, FeatureInfo, ScenarioResult, Status, StepResult


def make_result(status=Status.PASSED, duration_ms=1000):
    return ExecutionResult(
        feature=FeatureInfo(name="Checkout"),
        scenarios=[ScenarioResult(name="Pay", duration_ms=duration_ms, steps=[
            StepResult(text='I click on "#pay"', keyword="When", status=status, duration_ms=duration_ms),
        ])],
        duration_ms=duration_ms,
    )


def response(status_code=200, text="ok"):
    return MagicMock(ok=status_code < 400, status_code=status_code, text=text)


def sent_payload(post, call=0):
    return json.loads(post.call_args_list[call].kwargs['data'])


class TestWebhookConfig:
    """Test WebhookConfig parsing"""

    def test_defaults(self):
        """Test default events and delivery settings"""
        config = WebhookConfig.from_dict({'url': 'https://hooks.example.com/ci'})

        assert config.name == "default"
        assert config.events == [WebhookEvent.COMPLETION, WebhookEvent.FAILURE]
        assert config.retry_count == 3
        assert config.timeout_seconds == 30
        assert config.format == PayloadFormat.JSON

    def test_custom(self):
        """Test events, headers and format are read"""
        config = WebhookConfig.from_dict({
            'url': 'https://hooks.slack.com/x',
            'name': 'slack',
            'events': ['Regression', 'failure'],
            'headers': {'X-Token': 'abc'},
            'retry_count': 5,
            'format': 'slack',
        })
        assert config.events == [WebhookEvent.REGRESSION, WebhookEvent.FAILURE]
        assert config.headers == {'X-Token': 'abc'}
        assert config.retry_count == 5
        assert config.format == PayloadFormat.SLACK

    def test_missing_url(self):
        """Test a webhook without a url is rejected"""
        with pytest.raises(ConfigurationError, match="has no url"):
            WebhookConfig.from_dict({'name': 'broken'})

    def test_unknown_event(self):
        """Test unknown events are configuration errors"""
        with pytest.raises(ConfigurationError):
            WebhookConfig.from_dict({'url': 'https://x', 'events': ['deploy']})


class TestWebhookManager:
    """Test WebhookManager delivery"""

    @pytest.fixture
    def manager(self):
        return WebhookManager([
            WebhookConfig(url="https://hooks.example.com/ci", name="ci",
                          events=[WebhookEvent.COMPLETION, WebhookEvent.FAILURE],
                          headers={'X-Token': 'abc'}),
            WebhookConfig(url="https://hooks.example.com/perf", name="perf",
                          events=[WebhookEvent.REGRESSION, WebhookEvent.IMPROVEMENT]),
        ])

    def test_from_config_file(self, tmp_path):
        """Test loading a list of webhooks"""
        path = tmp_path / "webhooks.yaml"
        path.write_text(yaml.safe_dump([
            {'url': 'https://a', 'name': 'a'},
            {'url': 'https://b', 'name': 'b', 'events': ['start']},
        ]))
        manager = WebhookManager.from_config_file(path)
        assert [c.name for c in manager.configs] == ["a", "b"]

    def test_malformed_config_file(self, tmp_path):
        """Test malformed webhook files raise ConfigurationError"""
        path = tmp_path / "webhooks.yaml"
        path.write_text("- url: [unclosed")
        with pytest.raises(ConfigurationError):
            WebhookManager.from_config_file(path)

    def test_completion_filters_by_event(self, manager):
        """Test only endpoints subscribed to the event are called"""
        with patch("requests.post", return_value=response()) as post:
            deliveries = manager.notify_completion(make_result())

        assert [d.name for d in deliveries] == ["ci"]
        assert deliveries[0].success == True
        assert deliveries[0].attempts == 1
        post.assert_called_once()
        assert post.call_args.args[0] == "https://hooks.example.com/ci"
        assert post.call_args.kwargs['headers'] == {'Content-Type': 'application/json', 'X-Token': 'abc'}
        assert post.call_args.kwargs['timeout'] == 30

        payload = sent_payload(post)
        assert payload['event'] == "completion"
        assert payload['feature'] == "Checkout"
        assert payload['status'] == "passed"
        assert payload['summary']['total_scenarios'] == 1
        assert payload['comparison'] is None

    def test_notify_result_failure(self, manager):
        """Test a failed result sends completion and failure events"""
        with patch("requests.post", return_value=response()):
            deliveries = manager.notify_result(make_result(Status.FAILED))

        assert [d.event for d in deliveries] == [WebhookEvent.COMPLETION, WebhookEvent.FAILURE]

    def test_retry_then_success(self, manager):
        """Test failed attempts are retried with a growing pause"""
        replies = [response(500, "busy"), response(502, "bad gateway"), response(200)]
        with patch("requests.post", side_effect=replies) as post, \
                patch("gherkin_engine.analysis.webhook.time.sleep") as sleep:
            delivery = manager.notify_completion(make_result())[0]

        assert delivery.success == True
        assert delivery.attempts == 3
        assert post.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]

    def test_gives_up_after_retries(self, manager):
        """Test an unreachable endpoint is reported, not raised"""
        with patch("requests.post", side_effect=requests.ConnectionError("refused")) as post, \
                patch("gherkin_engine.analysis.webhook.time.sleep"):
            delivery = manager.notify_completion(make_result())[0]

        assert delivery.success == False
        assert delivery.attempts == 3
        assert delivery.error.startswith("Request error: refused")
        assert post.call_count == 3

    def test_http_error_message(self):
        """Test HTTP errors keep the status and body"""
        manager = WebhookManager([WebhookConfig(url="https://x", retry_count=1)])
        with patch("requests.post", return_value=response(404, "Not Found")):
            delivery = manager.notify_completion(make_result())[0]

        assert delivery.status_code == 404
        assert delivery.error == "HTTP error: 404 - Not Found"

    def test_comparison_events(self, manager):
        """Test regressions notify regression subscribers with comparison details"""
        baseline = make_result(duration_ms=1000)
        slower = make_result(duration_ms=1600)

        with patch("requests.post", return_value=response()) as post:
            assert manager.notify_comparison(compare_results(baseline, baseline), baseline) == []
            deliveries = manager.notify_comparison(compare_results(baseline, slower), slower)

        assert [(d.name, d.event) for d in deliveries] == [("perf", WebhookEvent.REGRESSION)]
        comparison = sent_payload(post)['comparison']
        assert comparison['status'] == "regression"
        assert comparison['regressions'] >= 1

    def test_alert_channels(self):
        """Test alerts only go to the named channels"""
        manager = WebhookManager([
            WebhookConfig(url="https://a", name="oncall", events=[WebhookEvent.ALERT]),
            WebhookConfig(url="https://b", name="team", events=[WebhookEvent.ALERT]),
        ])
        alert = PerformanceAlert(
            timestamp="2024-01-01T00:00:00+00:00",
            severity=AlertSeverity.WARNING,
            threshold_name="slow_scenario",
            message="slow",
            metric="scenario_duration_ms",
            value=45000.0,
            threshold_value=30000.0,
        )
        with patch("requests.post", return_value=response()) as post:
            assert manager.notify_alerts([], make_result()) == []
            deliveries = manager.notify_alerts([alert], make_result(), channels=["oncall"])

        assert [d.name for d in deliveries] == ["oncall"]
        assert sent_payload(post)['alerts'][0]['threshold'] == "slow_scenario"

    def test_chat_format_payload(self):
        """Test chat endpoints receive their own message shape"""
        manager = WebhookManager([
            WebhookConfig(url="https://hooks.slack.com/x", format=PayloadFormat.SLACK),
        ])
        with patch("requests.post", return_value=response()) as post:
            manager.notify_failure(make_result(Status.FAILED))

        payload = sent_payload(post)
        assert payload['text'] == "Test execution completed: Checkout - Some tests failed"
        assert payload['attachments'][0]['color'] == "danger"

    def test_format_deliveries(self, manager):
        """Test the delivery summary"""
        with patch("requests.post", return_value=response()):
            deliveries = manager.notify_completion(make_result())

        text = format_deliveries(deliveries)
        assert "✓ ci (completion): delivered after 1 attempt(s)" in text
        assert "1/1 webhooks delivered" in text
        assert format_deliveries([]) == "No webhooks subscribed to this event\n"
        assert json.loads(format_deliveries(deliveries, "json"))[0]['success'] == True


class TestChatPayloads:
    """Test the Slack, Discord and Teams message builders"""

    def test_slack_passed(self):
        """Test a passing Slack message"""
        payload = build_slack_payload(make_result())
        assert "All tests passed" in payload['text']
        assert payload['attachments'][0]['color'] == "good"
        assert payload['attachments'][0]['fields'][1]['value'] == "1/1"

    def test_discord(self):
        """Test Discord embed colors and fields"""
        passed = build_discord_payload(make_result())
        failed = build_discord_payload(make_result(Status.FAILED))

        assert passed['embeds'][0]['color'] == 0x00FF00
        assert failed['embeds'][0]['color'] == 0xFF0000
        assert failed['embeds'][0]['fields'][2] == {'name': "Failed", 'value': "1", 'inline': True}

    def test_teams(self):
        """Test the Teams message card"""
        payload = build_teams_payload(make_result(Status.FAILED))
        assert payload['@type'] == "MessageCard"
        assert payload['themeColor'] == "D13438"
        assert payload['summary'] == "Test Execution: Checkout - Some tests failed"
        assert {'name': "Failed", 'value': "1"} in payload['sections'][0]['facts']
