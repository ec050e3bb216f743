import json
import logging
from pathlib import Path
from typing import List, Optional

import click
import yaml

from . import __version__
from .core import ConfigManager, ExecutionResult, FeatureInfo, GherkinEngineError, Status, load_report
from .executor import (
    BatchConfig,
    BatchExecutor,
    ExecutorConfig,
    FeatureExecutor,
    ReportCollector,
    build_step_catalog,
    build_step_registry,
    discover_features,
    format_batch_result,
    render_result,
    validate_feature,
)
from .executor.catalog import StepInfo
from .analysis import (
    AlertManager,
    PerformanceAlert,
    PerformanceMonitor,
    analyze_execution,
    compare_report_files,
    format_comparison,
    format_profile,
)
from .analysis.webhook import (
    WebhookConfig,
    WebhookDelivery,
    WebhookEvent,
    WebhookManager,
    format_deliveries,
)

logger = logging.getLogger(__name__)

REPORT_FORMATS = ['text', 'json', 'yaml', 'tap', 'html', 'junit']
DOCUMENT_FORMATS = ['text', 'json', 'yaml']


def _executor_config(config: ConfigManager, dry_run: bool = False) -> ExecutorConfig:
    executor_config = ExecutorConfig.from_dict(config.get_module_config('executor'))
    executor_config.dry_run = dry_run
    return executor_config


def _create_executor(executor_config: ExecutorConfig) -> FeatureExecutor:
    if executor_config.dry_run:
        return FeatureExecutor(executor_config)

    # Playwright is only imported once a browser is actually needed
    from .executor.playwright_steps import create_playwright_executor
    return create_playwright_executor(executor_config)


def _webhook_manager(config: ConfigManager, webhooks_file: Optional[str] = None) -> Optional[WebhookManager]:
    webhooks_file = webhooks_file or config.get('webhooks.config_file')
    return WebhookManager.from_config_file(webhooks_file) if webhooks_file else None


def _report_failed_deliveries(deliveries: List[WebhookDelivery]) -> None:
    for delivery in deliveries:
        if not delivery.success:
            click.echo(f"⚠ Webhook '{delivery.name}' failed: {delivery.error}", err=True)


def _evaluate_alerts(manager: AlertManager, monitor: PerformanceMonitor, result: ExecutionResult,
                     webhooks: Optional[WebhookManager] = None) -> List[PerformanceAlert]:
    alerts = []
    for alert_config in manager.configs:
        triggered = monitor.evaluate_thresholds(alert_config)
        alerts.extend(triggered)
        if webhooks and triggered:
            # An empty channel list means every endpoint subscribed to alerts
            channels = alert_config.notification_channels or None
            _report_failed_deliveries(webhooks.notify_alerts(triggered, result, channels))
    return alerts


def _emit(content: str, output: Optional[str] = None) -> None:
    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        Path(output).write_text(content, encoding='utf-8')
        click.echo(f"✅ Report saved to: {output}")
    else:
        click.echo(content, nl=False)


@click.group()
@click.option('--config', '-c', type=click.Path(), help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.version_option(__version__, prog_name="Gherkin Engine")
@click.pass_context
def cli(ctx, config, verbose):
    """Gherkin Engine - run, validate and analyze Gherkin features"""
    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Load configuration
    config_path = Path(config) if config else None
    try:
        ctx.obj = ConfigManager(config_path)
    except GherkinEngineError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument('feature_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', type=click.Choice(REPORT_FORMATS),
              default='text', help='Report format')
@click.option('--output', '-o', type=click.Path(), help='Write the report to a file')
@click.option('--dry-run', is_flag=True, help='Only match steps, do not execute them')
@click.option('--alerts', 'alerts_file', type=click.Path(exists=True, dir_okay=False),
              help='Evaluate performance alerts from a rule file')
@click.option('--webhooks', 'webhooks_file', type=click.Path(exists=True, dir_okay=False),
              help='Notify the webhooks listed in this file')
@click.pass_obj
def run(config, feature_file, output_format, output, dry_run, alerts_file, webhooks_file):
    """Execute a feature file"""
    try:
        webhooks = _webhook_manager(config, webhooks_file)
        if webhooks:
            started = ExecutionResult(feature=FeatureInfo(name=Path(feature_file).stem, file=feature_file))
            _report_failed_deliveries(webhooks.notify_start(started))

        executor = _create_executor(_executor_config(config, dry_run))
        result = executor.execute_feature(feature_file)
        _emit(render_result(result, output_format), output)

        for report_format in config.get('reporter.formats') or []:
            ReportCollector(config.get('reporter.output_dir', 'test-results')).generate_report(
                result, report_format
            )

        if webhooks:
            _report_failed_deliveries(webhooks.notify_result(result))

        if alerts_file:
            monitor = PerformanceMonitor()
            monitor.record_result(result)
            manager = AlertManager.from_config_file(alerts_file)
            triggered = _evaluate_alerts(manager, monitor, result, webhooks)
            click.echo(manager.format_alerts(triggered), nl=False)
    except (GherkinEngineError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    if result.status == Status.FAILED:
        raise SystemExit(1)


@cli.command()
@click.argument('path', type=click.Path(exists=True))
@click.option('--sequential', is_flag=True, help='Run features one at a time')
@click.option('--workers', '-w', type=click.IntRange(min=1), help='Number of parallel workers')
@click.option('--format', '-f', 'output_format', type=click.Choice(DOCUMENT_FORMATS),
              help='Summary format')
@click.option('--dry-run', is_flag=True, help='Only match steps, do not execute them')
@click.pass_obj
def batch(config, path, sequential, workers, output_format, dry_run):
    """Execute every feature file under a path"""
    batch_config = BatchConfig.from_dict(config.get_module_config('batch'))
    if sequential:
        batch_config.parallel = False
    if workers:
        batch_config.max_workers = workers
    output_format = output_format or batch_config.output_format
    executor_config = _executor_config(config, dry_run)

    def run_feature(feature_path: Path):
        # Every worker gets its own executor and automation session
        return _create_executor(executor_config).execute_feature(feature_path)

    def show_progress(completed: int, total: int):
        logger.info(f"Progress: {completed}/{total} features")

    try:
        features = discover_features(path)
    except GherkinEngineError as e:
        raise click.ClickException(str(e)) from e

    if not features:
        click.echo(f"No feature files found under {path}")
        return

    result = BatchExecutor(batch_config, progress_callback=show_progress).execute(features, run_feature)
    click.echo(format_batch_result(result, output_format), nl=False)

    if not result.success:
        raise SystemExit(1)


@cli.command()
@click.argument('baseline', type=click.Path(exists=True, dir_okay=False))
@click.argument('current', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', type=click.Choice(DOCUMENT_FORMATS),
              help='Comparison format')
@click.option('--webhooks', 'webhooks_file', type=click.Path(exists=True, dir_okay=False),
              help='Notify the webhooks listed in this file of regressions or improvements')
@click.pass_obj
def compare(config, baseline, current, output_format, webhooks_file):
    """Compare two execution reports; exits with 1 on regressions"""
    try:
        comparison = compare_report_files(baseline, current)
        webhooks = _webhook_manager(config, webhooks_file)
        if webhooks:
            _report_failed_deliveries(webhooks.notify_comparison(comparison, load_report(current)))
    except GherkinEngineError as e:
        raise click.ClickException(str(e)) from e

    output_format = output_format or config.get('comparison.output_format', 'text')
    click.echo(format_comparison(comparison, output_format), nl=False)

    if comparison.has_regressions:
        raise SystemExit(1)


@cli.command()
@click.argument('feature_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', type=click.Choice(['text', 'json']),
              default='text', help='Output format')
def validate(feature_file, output_format):
    """Check every step of a feature file against the step catalog"""
    result = validate_feature(feature_file, build_step_catalog())

    if output_format == 'json':
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        if result.valid:
            click.echo("✓ Feature file is valid")
        else:
            click.echo(f"✗ Feature file has {len(result.errors)} errors:")
            for error in result.errors:
                click.echo(f"  - {error.type}: {error.message}")
                if error.suggestions:
                    click.echo("    Suggestions:")
                    for suggestion in error.suggestions:
                        click.echo(f"      * {suggestion}")

        if result.warnings:
            click.echo(f"\n{len(result.warnings)} warning(s):")
            for warning in result.warnings:
                click.echo(f"  ⚠ {warning.type}: {warning.message}")

    if not result.valid:
        raise SystemExit(1)


def _format_steps_text(steps: List[StepInfo]) -> str:
    lines = []
    category = None
    for step in sorted(steps, key=lambda s: s.category):
        if step.category != category:
            category = step.category
            lines.append(f"\n{category}:")
        lines.append(f"  {step.id} - {step.description}")
        lines.append(f"      {step.pattern}")
        for example in step.examples[:1]:
            lines.append(f"      e.g. {example}")
    lines.append(f"\nTotal: {len(steps)} steps")
    return "\n".join(lines).lstrip("\n") + "\n"


@cli.command('list-steps')
@click.option('--category', help='Only show steps in this category')
@click.option('--search', '-s', help='Search ids, descriptions and examples')
@click.option('--format', '-f', 'output_format', type=click.Choice(DOCUMENT_FORMATS),
              default='text', help='Output format')
def list_steps(category, search, output_format):
    """List the available step definitions"""
    catalog = build_step_catalog()
    steps = catalog.filter_by_category(category) if category else list(catalog.steps)
    if search:
        matches = catalog.search(search)
        steps = [s for s in steps if s in matches]

    if output_format == 'json':
        click.echo(json.dumps([s.to_dict() for s in steps], indent=2))
    elif output_format == 'yaml':
        click.echo(yaml.safe_dump([s.to_dict() for s in steps], sort_keys=False), nl=False)
    else:
        click.echo(_format_steps_text(steps), nl=False)


@cli.command('export-schema')
@click.option('--output', '-o', type=click.Path(), help='Write the schema to a file')
def export_schema(output):
    """Export the step catalog as a JSON schema document"""
    _emit(json.dumps(build_step_catalog().export_schema(), indent=2) + "\n", output)


@cli.command('check-catalog')
def check_catalog():
    """Check that every registered pattern is documented in the catalog"""
    registry = build_step_registry()
    catalog = build_step_catalog()

    missing = catalog.check_consistency(registry)
    duplicates = registry.find_duplicates()

    for entry in missing:
        click.echo(f"✗ Pattern not in catalog: {entry.identifier}: {entry.source}")
    for warning in duplicates:
        click.echo(f"⚠ {warning}")

    if missing:
        raise SystemExit(1)
    click.echo(f"✓ {len(registry)} patterns consistent with {catalog.total_steps} catalog steps")


@cli.command()
@click.argument('report', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', type=click.Choice(DOCUMENT_FORMATS),
              default='text', help='Output format')
def profile(report, output_format):
    """Show a timing breakdown of an execution report"""
    try:
        result = load_report(report)
    except GherkinEngineError as e:
        raise click.ClickException(str(e)) from e

    click.echo(format_profile(analyze_execution(result), output_format), nl=False)


@cli.command()
@click.argument('report', type=click.Path(exists=True, dir_okay=False))
@click.option('--config', 'rules_file', type=click.Path(exists=True, dir_okay=False),
              help='Alert rule file (YAML or JSON)')
@click.option('--format', '-f', 'output_format', type=click.Choice(DOCUMENT_FORMATS),
              help='Output format')
@click.option('--webhooks', 'webhooks_file', type=click.Path(exists=True, dir_okay=False),
              help='Send triggered alerts to the webhooks listed in this file')
@click.pass_obj
def alerts(config, report, rules_file, output_format, webhooks_file):
    """Evaluate performance alert rules against an execution report"""
    rules_file = rules_file or config.get('alerts.config_file')
    output_format = output_format or config.get('alerts.output_format', 'text')
    try:
        result = load_report(report)
        manager = AlertManager.from_config_file(rules_file) if rules_file else AlertManager()
        webhooks = _webhook_manager(config, webhooks_file)
    except GherkinEngineError as e:
        raise click.ClickException(str(e)) from e

    monitor = PerformanceMonitor()
    monitor.record_result(result)
    triggered = _evaluate_alerts(manager, monitor, result, webhooks)
    click.echo(manager.format_alerts(triggered, output_format), nl=False)


@cli.command()
@click.option('--config', 'webhooks_file', type=click.Path(exists=True, dir_okay=False),
              help='Webhook configuration file (YAML or JSON)')
@click.option('--url', help='Webhook URL to send to (overrides the configured URLs)')
@click.option('--event', type=click.Choice([e.value for e in WebhookEvent]), default='completion',
              help='Event to send')
@click.option('--report', type=click.Path(exists=True, dir_okay=False),
              help='Execution report to send; a test payload is used otherwise')
@click.option('--format', '-f', 'output_format', type=click.Choice(['text', 'json']),
              default='text', help='Output format')
@click.pass_obj
def webhook(config, webhooks_file, url, event, report, output_format):
    """Send a webhook notification or test a webhook configuration"""
    event = WebhookEvent(event)
    try:
        manager = _webhook_manager(config, webhooks_file)
        result = load_report(report) if report else ExecutionResult(feature=FeatureInfo(name="Webhook test"))
    except GherkinEngineError as e:
        raise click.ClickException(str(e)) from e

    if url:
        if manager and manager.configs:
            for webhook_config in manager.configs:
                webhook_config.url = url
        else:
            manager = WebhookManager([WebhookConfig(url=url, name="cli", events=[event])])
    if not manager:
        raise click.ClickException("No webhooks configured; pass --config or --url")

    deliveries = manager.notify(event, result)
    click.echo(format_deliveries(deliveries, output_format), nl=False)

    if any(not d.success for d in deliveries):
        raise SystemExit(1)


def main():
    """Main entry point"""
    cli()


if __name__ == "__main__":
    main()
