import time
import asyncio
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from behave.parser import ParserError, parse_feature

from .builtin_steps import build_step_catalog, build_step_registry
from .catalog import StepCatalog
from .scenario_context import ScenarioContext
from .step_definitions import StepHandlerRegistry, StepPatternRegistry
from .validation import suggest_steps
from ..core.exceptions import BatchFeatureError, FeatureDiscoveryError, UnmatchedStepError
from ..core.results import (
    ErrorInfo,
    ExecutionResult,
    FeatureInfo,
    ScenarioResult,
    Status,
    StepResult,
)

logger = logging.getLogger(__name__)

UNMATCHED_STEP = "UNMATCHED_STEP"
STEP_FAILED = "STEP_FAILED"


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


@dataclass
class ExecutorConfig:
    """Configuration for the feature executor"""
    browser: str = "chromium"
    headless: bool = True
    timeout: int = 30000
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1280, "height": 720})
    base_url: Optional[str] = None
    slow_mo: int = 0
    screenshot_dir: str = "screenshots"
    dry_run: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutorConfig":
        """Build from a config section, ignoring keys this class does not know"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known and v is not None})


class AutomationSession:
    """
    Supplies a fresh ScenarioContext for every scenario of one feature run.

    The base session has no automation backend attached; subclasses wire a
    browser (or anything else) into the contexts they create.
    """

    def __init__(self, config: ExecutorConfig):
        self.config = config

    async def __aenter__(self) -> "AutomationSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        pass

    async def new_context(self) -> ScenarioContext:
        return ScenarioContext(base_url=self.config.base_url or "", timeout=self.config.timeout)

    async def close(self) -> None:
        pass


SessionFactory = Callable[[ExecutorConfig], AutomationSession]


class FeatureExecutor:
    """
    Runs the scenarios of a feature file through the step registry.

    Steps run in order and a scenario stops at its first failing step; the
    steps after it are recorded as skipped. Failures are captured in the
    returned ExecutionResult rather than raised.
    """

    def __init__(
            self,
            config: Optional[Union[Dict, ExecutorConfig]] = None,
            registry: Optional[StepPatternRegistry] = None,
            handlers: Optional[StepHandlerRegistry] = None,
            catalog: Optional[StepCatalog] = None,
            session_factory: SessionFactory = AutomationSession,
    ):
        if isinstance(config, dict):
            config = ExecutorConfig.from_dict(config)
        self.config = config or ExecutorConfig()
        self.registry = registry if registry is not None else build_step_registry()
        self.handlers = handlers if handlers is not None else StepHandlerRegistry()
        self.catalog = catalog if catalog is not None else build_step_catalog()
        self.session_factory = session_factory

    def parse(self, feature_path: Union[str, Path]):
        """Parse a feature file with behave"""
        feature_path = Path(feature_path)
        if not feature_path.is_file():
            raise FeatureDiscoveryError(f"Feature file not found: {feature_path}")

        with open(feature_path, 'r', encoding='utf-8') as f:
            content = f.read()

        try:
            feature = parse_feature(content, filename=str(feature_path))
        except ParserError as e:
            raise BatchFeatureError(feature_path, f"Cannot parse feature: {e}") from e

        if feature is None:
            raise BatchFeatureError(feature_path, "File contains no feature")
        return feature

    def execute_feature(self, feature_path: Union[str, Path]) -> ExecutionResult:
        """Execute a single feature file"""
        return asyncio.run(self.execute_feature_async(feature_path))

    async def execute_feature_async(self, feature_path: Union[str, Path]) -> ExecutionResult:
        feature_path = Path(feature_path)
        feature = self.parse(feature_path)
        started = time.perf_counter()

        result = ExecutionResult(
            feature=FeatureInfo(
                name=feature.name,
                file=str(feature_path),
                description="\n".join(feature.description) or None,
            )
        )
        background = _step_lines(feature.background.steps) if feature.background else []
        logger.info(f"Executing feature: {feature.name} ({feature_path})")

        # Dry runs never need the automation backend
        session_factory = AutomationSession if self.config.dry_run else self.session_factory
        async with session_factory(self.config) as session:
            for scenario in feature.walk_scenarios():
                context = await session.new_context()
                scenario_result = await self.run_scenario(
                    scenario.name, background + _step_lines(scenario.steps), context
                )
                result.add_scenario(scenario_result)

        result.duration_ms = elapsed_ms(started)
        logger.info(
            f"Feature '{feature.name}' {result.status.value}: "
            f"{result.summary.passed_scenarios}/{result.summary.total_scenarios} scenarios passed "
            f"in {result.duration_ms}ms"
        )
        return result

    async def run_scenario(
            self,
            name: str,
            steps: Sequence[Tuple[str, str]],
            context: Optional[ScenarioContext] = None,
    ) -> ScenarioResult:
        """Run (keyword, text) steps in order, stopping at the first failure"""
        context = context if context is not None else ScenarioContext()
        scenario = ScenarioResult(name=name)
        started = time.perf_counter()
        failed = False

        for keyword, text in steps:
            if failed:
                scenario.add_step(StepResult(text=text, keyword=keyword, status=Status.SKIPPED))
                continue

            step_result = await self._execute_step(keyword, text, context)
            scenario.add_step(step_result)
            failed = step_result.status == Status.FAILED

        scenario.duration_ms = elapsed_ms(started)
        logger.debug(f"Scenario '{name}' {scenario.status.value} in {scenario.duration_ms}ms")
        return scenario

    async def _execute_step(self, keyword: str, text: str, context: ScenarioContext) -> StepResult:
        started = time.perf_counter()
        match = self.registry.match(text)

        if match is None:
            logger.warning(f"No step definition found for: {keyword} {text}")
            return StepResult(
                text=text,
                keyword=keyword,
                status=Status.FAILED,
                duration_ms=elapsed_ms(started),
                error=ErrorInfo(
                    code=UNMATCHED_STEP,
                    message=str(UnmatchedStepError(text)),
                    suggestions=suggest_steps(text, self.catalog),
                ),
            )

        if self.config.dry_run:
            return StepResult(
                text=text,
                keyword=keyword,
                status=Status.SKIPPED,
                duration_ms=elapsed_ms(started),
                output=f"matched {match.identifier}",
            )

        context.current_step = text
        parameters = [context.resolve(p) for p in match.parameters]
        try:
            output = await self.handlers.execute(match.identifier, parameters, context)
        except Exception as e:
            logger.error(f"Step failed: {keyword} {text}: {e}")
            return StepResult(
                text=text,
                keyword=keyword,
                status=Status.FAILED,
                duration_ms=elapsed_ms(started),
                error=ErrorInfo(code=STEP_FAILED, message=str(e) or type(e).__name__),
            )

        return StepResult(
            text=text,
            keyword=keyword,
            status=Status.PASSED,
            duration_ms=elapsed_ms(started),
            output=output or None,
        )


def _step_lines(steps) -> List[Tuple[str, str]]:
    return [(step.keyword.strip(), step.name) for step in steps]
