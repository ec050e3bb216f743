import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner
from playwright.async_api import Error as PlaywrightError

from gherkin_engine.cli import cli
from gherkin_engine.core.results import ExecutionResult, FeatureInfo, ScenarioResult, Status, StepResult

FEATURE = """Feature: Search
  Scenario: Find a product
    Given I navigate to "https://shop.example.com"
    When I type "lamp" into "#search"
    Then I should see "Results"
"""


def write_report(path, scenario_ms, step_ms=100):
    result = ExecutionResult(
        feature=FeatureInfo(name="Search"),
        scenarios=[ScenarioResult(name="Find a product", duration_ms=scenario_ms, steps=[
            StepResult(text='I should see "Results"', keyword="Then", status=Status.PASSED, duration_ms=step_ms),
        ])],
        duration_ms=scenario_ms,
    )
    path.write_text(json.dumps(result.to_dict()))
    return str(path)


class TestCli:
    """Test the gherkin-engine command line"""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    @pytest.fixture
    def config_file(self, tmp_path):
        path = tmp_path / "gherkin-engine.yaml"
        path.write_text(f"reporter:\n  output_dir: {tmp_path / 'results'}\n  formats: []\n")
        return str(path)

    @pytest.fixture
    def feature_file(self, tmp_path):
        path = tmp_path / "search.feature"
        path.write_text(FEATURE)
        return str(path)

    def test_version(self, runner):
        """Test the version option"""
        result = runner.invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_list_steps_json(self, runner):
        """Test listing steps as JSON"""
        result = runner.invoke(cli, ['list-steps', '--category', 'navigation', '--format', 'json'])

        assert result.exit_code == 0
        steps = json.loads(result.output)
        assert steps
        assert all(step['category'] == "Navigation" for step in steps)

    def test_list_steps_search(self, runner):
        """Test searching steps"""
        result = runner.invoke(cli, ['list-steps', '--search', 'screenshot'])
        assert result.exit_code == 0
        assert "screenshot - Take a screenshot" in result.output
        assert "Total: 1 steps" in result.output

    def test_export_schema(self, runner):
        """Test the exported schema"""
        result = runner.invoke(cli, ['export-schema'])
        assert result.exit_code == 0
        schema = json.loads(result.output)
        assert schema['metadata']['total_steps'] == len(schema['steps'])

    def test_check_catalog(self, runner):
        """Test the built-in tables are consistent"""
        result = runner.invoke(cli, ['check-catalog'])
        assert result.exit_code == 0
        assert "consistent" in result.output

    def test_validate_valid(self, runner, feature_file):
        """Test validating a correct feature"""
        result = runner.invoke(cli, ['validate', feature_file])
        assert result.exit_code == 0
        assert "✓ Feature file is valid" in result.output

    def test_validate_invalid(self, runner, tmp_path):
        """Test validating a feature with unknown steps"""
        path = tmp_path / "bad.feature"
        path.write_text("Feature: Bad\n  Scenario: S\n    When I juggle three oranges\n")

        result = runner.invoke(cli, ['validate', str(path)])
        assert result.exit_code == 1
        assert "UNKNOWN_STEP" in result.output

    def test_run_dry_run(self, runner, config_file, feature_file):
        """Test a dry run reports matched steps without a browser"""
        result = runner.invoke(cli, ['-c', config_file, 'run', feature_file, '--dry-run', '--format', 'tap'])

        assert result.exit_code == 0
        assert "TAP version 13" in result.output
        assert "ok 1 Find a product # SKIP" in result.output

    def test_run_browser_launch_failure(self, runner, config_file, feature_file):
        """Test a browser that cannot start is reported as a command error"""
        playwright = MagicMock()
        playwright.stop = AsyncMock()
        playwright.chromium.launch = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))
        starter = MagicMock()
        starter.return_value.start = AsyncMock(return_value=playwright)

        with patch('gherkin_engine.executor.playwright_steps.async_playwright', starter):
            result = runner.invoke(cli, ['-c', config_file, 'run', feature_file])

        assert result.exit_code == 1
        assert "Could not launch chromium" in result.output
        assert not isinstance(result.exception, PlaywrightError)

    def test_run_writes_output(self, runner, config_file, feature_file, tmp_path):
        """Test the report can be written to a file"""
        output = tmp_path / "out" / "report.json"
        result = runner.invoke(cli, ['-c', config_file, 'run', feature_file, '--dry-run',
                                     '--format', 'json', '--output', str(output)])

        assert result.exit_code == 0
        data = json.loads(output.read_text())
        assert data['feature']['name'] == "Search"
        assert data['summary']['skipped_steps'] == 3

    def test_batch_dry_run(self, runner, config_file, tmp_path):
        """Test a dry-run batch over a directory"""
        features = tmp_path / "features"
        features.mkdir()
        for name in ("a", "b"):
            (features / f"{name}.feature").write_text(FEATURE)

        result = runner.invoke(cli, ['-c', config_file, 'batch', str(features), '--dry-run', '--sequential'])
        assert result.exit_code == 0
        assert "Features:  2 total" in result.output

    def test_compare_regression_exit_code(self, runner, config_file, tmp_path):
        """Test regressions exit with status 1"""
        baseline = write_report(tmp_path / "baseline.json", 1000)
        current = write_report(tmp_path / "current.json", 1600)

        result = runner.invoke(cli, ['-c', config_file, 'compare', baseline, current])
        assert result.exit_code == 1
        assert "REGRESSION" in result.output

    def test_compare_unchanged(self, runner, config_file, tmp_path):
        """Test identical reports exit with status 0"""
        baseline = write_report(tmp_path / "baseline.json", 1000)

        result = runner.invoke(cli, ['-c', config_file, 'compare', baseline, baseline, '--format', 'json'])
        assert result.exit_code == 0
        assert '"status": "unchanged"' in result.output

    def test_compare_malformed_report(self, runner, config_file, tmp_path):
        """Test unreadable reports are reported as errors"""
        broken = tmp_path / "broken.json"
        broken.write_text("{")

        result = runner.invoke(cli, ['-c', config_file, 'compare', str(broken), str(broken)])
        assert result.exit_code == 1
        assert "Malformed report" in result.output

    def test_profile(self, runner, tmp_path):
        """Test profiling a report"""
        report = write_report(tmp_path / "report.json", 1000, step_ms=900)
        result = runner.invoke(cli, ['profile', report])

        assert result.exit_code == 0
        assert "=== Performance Profile ===" in result.output

    def test_alerts(self, runner, config_file, tmp_path):
        """Test default alert rules against a slow report"""
        report = write_report(tmp_path / "report.json", 45000)
        result = runner.invoke(cli, ['-c', config_file, 'alerts', report])

        assert result.exit_code == 0
        assert "slow_scenario" in result.output
        assert "Summary: 0 critical, 1 warning, 0 info" in result.output

    def test_invalid_config_file(self, runner, tmp_path):
        """Test malformed configuration fails the command"""
        path = tmp_path / "bad.yaml"
        path.write_text("executor: [unclosed")

        result = runner.invoke(cli, ['-c', str(path), 'list-steps'])
        assert result.exit_code == 1

    def test_webhook_url(self, runner, config_file):
        """Test sending a test notification to a URL"""
        reply = MagicMock(ok=True, status_code=200, text="ok")
        with patch("requests.post", return_value=reply) as post:
            result = runner.invoke(cli, ['-c', config_file, 'webhook', '--url', 'https://hooks.example.com/ci',
                                         '--event', 'success'])

        assert result.exit_code == 0
        assert "1/1 webhooks delivered" in result.output
        assert json.loads(post.call_args.kwargs['data'])['event'] == "success"

    def test_webhook_delivery_failure(self, runner, config_file, tmp_path):
        """Test failed deliveries exit with status 1"""
        hooks = tmp_path / "webhooks.yaml"
        hooks.write_text("- url: https://hooks.example.com/ci\n  name: ci\n  retry_count: 1\n")
        reply = MagicMock(ok=False, status_code=500, text="down")
        with patch("requests.post", return_value=reply):
            result = runner.invoke(cli, ['-c', config_file, 'webhook', '--config', str(hooks)])

        assert result.exit_code == 1
        assert "✗ ci (completion): HTTP error: 500 - down" in result.output

    def test_webhook_not_configured(self, runner, config_file):
        """Test the webhook command needs a URL or a configuration"""
        result = runner.invoke(cli, ['-c', config_file, 'webhook'])
        assert result.exit_code == 1
        assert "No webhooks configured" in result.output

    def test_run_notifies_webhooks(self, runner, config_file, feature_file, tmp_path):
        """Test a run sends start and completion notifications"""
        hooks = tmp_path / "webhooks.yaml"
        hooks.write_text("- url: https://hooks.example.com/ci\n  events: [start, completion]\n")
        reply = MagicMock(ok=True, status_code=200, text="ok")
        with patch("requests.post", return_value=reply) as post:
            result = runner.invoke(cli, ['-c', config_file, 'run', feature_file, '--dry-run',
                                         '--webhooks', str(hooks)])

        assert result.exit_code == 0
        events = [json.loads(c.kwargs['data'])['event'] for c in post.call_args_list]
        assert events == ["start", "completion"]
