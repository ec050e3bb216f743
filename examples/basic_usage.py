"""
Basic usage examples for Gherkin Engine
"""
from pathlib import Path

from gherkin_engine.analysis import AlertManager, PerformanceMonitor, analyze_execution, format_profile
from gherkin_engine.executor import (
    BatchConfig,
    BatchExecutor,
    ExecutorConfig,
    FeatureExecutor,
    build_step_catalog,
    format_batch_result,
    render_result,
    validate_feature,
)

EXAMPLES_DIR = Path(__file__).parent
FEATURE = EXAMPLES_DIR / "features" / "search.feature"


def example_validate():
    """Check a feature against the step catalog without running it"""
    result = validate_feature(FEATURE, build_step_catalog())
    print(f"Valid: {result.valid}")
    for error in result.errors:
        print(f"  {error.type}: {error.message}")


def example_dry_run():
    """Match every step without starting a browser"""
    executor = FeatureExecutor(ExecutorConfig(dry_run=True))
    result = executor.execute_feature(FEATURE)
    print(render_result(result, "text"))


def example_browser_run():
    """Run the feature in a headless browser and evaluate alerts"""
    from gherkin_engine.executor.playwright_steps import create_playwright_executor

    executor = create_playwright_executor(ExecutorConfig(headless=True))
    result = executor.execute_feature(FEATURE)
    print(render_result(result, "tap"))
    print(format_profile(analyze_execution(result)))

    monitor = PerformanceMonitor()
    monitor.record_result(result)
    manager = AlertManager.from_config_file(EXAMPLES_DIR / "alerts.yaml")
    print(manager.format_alerts(manager.evaluate(monitor)))


def example_batch():
    """Dry-run every feature in the examples directory"""
    executor = FeatureExecutor(ExecutorConfig(dry_run=True))
    batch = BatchExecutor(BatchConfig(parallel=True, max_workers=2))
    result = batch.execute(sorted((EXAMPLES_DIR / "features").glob("*.feature")), executor.execute_feature)
    print(format_batch_result(result))


if __name__ == "__main__":
    example_validate()
    example_dry_run()
    example_batch()
