"""
Batch execution of many feature files.

The caller supplies the per-feature runner; this module only fans the
paths out over a worker pool (or runs them in order), isolates failures
to the feature that caused them, and aggregates the outcome.
"""
import os
import json
import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError, as_completed
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import yaml

from ..core.exceptions import FeatureDiscoveryError
from ..core.results import ExecutionResult, Status, utc_timestamp

logger = logging.getLogger(__name__)

MAX_DISCOVERY_DEPTH = 10

STATUS_ICONS = {Status.PASSED: "✓", Status.FAILED: "✗", Status.SKIPPED: "⊘"}

FeatureRunner = Callable[[Path], ExecutionResult]
ProgressCallback = Callable[[int, int], None]


@dataclass
class BatchConfig:
    """Configuration for batch execution"""
    parallel: bool = True
    max_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    timeout_seconds: int = 300
    continue_on_failure: bool = True
    output_format: str = "text"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known and v is not None})


@dataclass
class FeatureResult:
    """Outcome of one feature within a batch"""
    name: str
    path: str
    status: Status
    scenarios_passed: int = 0
    scenarios_failed: int = 0
    duration_ms: int = 0
    result: Optional[ExecutionResult] = None

    @classmethod
    def from_execution(cls, path: Path, result: ExecutionResult, duration_ms: int) -> "FeatureResult":
        return cls(
            name=path.stem,
            path=str(path),
            status=result.status,
            scenarios_passed=result.summary.passed_scenarios,
            scenarios_failed=result.summary.failed_scenarios,
            duration_ms=duration_ms,
            result=result,
        )

    @classmethod
    def failed(cls, path: Path, duration_ms: int = 0) -> "FeatureResult":
        """A feature whose runner never produced a result"""
        return cls(name=path.stem, path=str(path), status=Status.FAILED, duration_ms=duration_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'path': self.path,
            'status': self.status.value,
            'scenarios_passed': self.scenarios_passed,
            'scenarios_failed': self.scenarios_failed,
            'duration_ms': self.duration_ms,
            'result': self.result.to_dict() if self.result else None,
        }


@dataclass
class BatchError:
    path: str
    message: str
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, str]:
        return {'path': self.path, 'message': self.message, 'timestamp': self.timestamp}


@dataclass
class BatchResult:
    """Aggregated outcome of one batch invocation"""
    results: List[FeatureResult] = field(default_factory=list)
    errors: List[BatchError] = field(default_factory=list)
    total_duration_ms: int = 0

    @property
    def total_features(self) -> int:
        return len(self.results)

    @property
    def passed_features(self) -> int:
        return sum(1 for r in self.results if r.status == Status.PASSED)

    @property
    def failed_features(self) -> int:
        return sum(1 for r in self.results if r.status == Status.FAILED)

    @property
    def passed_scenarios(self) -> int:
        return sum(r.scenarios_passed for r in self.results)

    @property
    def failed_scenarios(self) -> int:
        return sum(r.scenarios_failed for r in self.results)

    @property
    def total_scenarios(self) -> int:
        return self.passed_scenarios + self.failed_scenarios

    @property
    def success(self) -> bool:
        return self.failed_features == 0 and not self.errors

    def sorted_results(self) -> List[FeatureResult]:
        return sorted(self.results, key=lambda r: r.path)

    def summary_dict(self) -> Dict[str, int]:
        return {
            'total_features': self.total_features,
            'passed_features': self.passed_features,
            'failed_features': self.failed_features,
            'total_scenarios': self.total_scenarios,
            'passed_scenarios': self.passed_scenarios,
            'failed_scenarios': self.failed_scenarios,
            'total_duration_ms': self.total_duration_ms,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'batch_summary': self.summary_dict(),
            'features': [r.to_dict() for r in self.results],
            'errors': [e.to_dict() for e in self.errors],
        }


class BatchProgress:
    """Lock-protected collector shared by the batch workers"""

    def __init__(self, total: int, callback: Optional[ProgressCallback] = None):
        self.total = total
        self.start_time = time.monotonic()
        self._callback = callback
        self._lock = threading.Lock()
        self._completed = 0
        self._results: List[FeatureResult] = []
        self._errors: List[BatchError] = []

    def record(self, result: FeatureResult, error: Optional[BatchError] = None) -> None:
        with self._lock:
            self._results.append(result)
            if error is not None:
                self._errors.append(error)
            self._completed += 1
            if self._callback is not None:
                self._callback(self._completed, self.total)

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def progress(self) -> float:
        """Completed fraction of the batch, 0.0 for an empty batch"""
        with self._lock:
            return self._completed / self.total if self.total else 0.0

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time

    def collect_results(self) -> List[FeatureResult]:
        with self._lock:
            return list(self._results)

    def collect_errors(self) -> List[BatchError]:
        with self._lock:
            return list(self._errors)


def _directory_key(path: Path) -> Optional[Tuple[int, int]]:
    try:
        stat = os.stat(path)
    except OSError as e:
        logger.warning(f"Could not access entry: {e}")
        return None
    return stat.st_dev, stat.st_ino


def discover_features(path: Union[str, Path]) -> List[Path]:
    """
    Find feature files under a path.

    A file path must itself be a .feature file. Directories are walked
    recursively (following symlinks, at most MAX_DISCOVERY_DEPTH levels)
    and the matches are returned sorted. A directory reached a second time
    through a link is not walked again, and a file reachable through
    several links is reported once.
    """
    base = Path(path)
    if not base.exists():
        raise FeatureDiscoveryError(f"Path does not exist: {base}")

    if base.is_file():
        if base.suffix != '.feature':
            raise FeatureDiscoveryError(f"Path is not a feature file: {base}")
        return [base]

    def _on_error(error: OSError) -> None:
        logger.warning(f"Could not access entry: {error}")

    visited = set()
    seen_files = set()
    features = []
    for root, dirs, files in os.walk(base, followlinks=True, onerror=_on_error):
        key = _directory_key(Path(root))
        if key is None or key in visited:
            logger.debug(f"Skipping already visited directory: {root}")
            dirs[:] = []
            continue
        visited.add(key)

        depth = len(Path(root).relative_to(base).parts)
        if depth >= MAX_DISCOVERY_DEPTH - 1:
            dirs[:] = []
        else:
            # Sorted so the first path to a shared directory is the one kept
            dirs[:] = sorted(d for d in dirs if _directory_key(Path(root) / d) not in visited)

        for name in files:
            if not name.endswith('.feature'):
                continue
            feature = Path(root) / name
            resolved = feature.resolve()
            if resolved in seen_files:
                continue
            seen_files.add(resolved)
            features.append(feature)

    features.sort()
    logger.info(f"Discovered {len(features)} feature files under {base}")
    return features


class BatchExecutor:
    """Runs a feature runner over many paths and aggregates the results"""

    def __init__(self, config: Optional[Union[Dict, BatchConfig]] = None,
                 progress_callback: Optional[ProgressCallback] = None):
        if isinstance(config, dict):
            config = BatchConfig.from_dict(config)
        self.config = config or BatchConfig()
        self.progress_callback = progress_callback
        self.progress: Optional[BatchProgress] = None

    def execute(self, paths: Sequence[Union[str, Path]], runner: FeatureRunner) -> BatchResult:
        """
        Execute every path with runner.

        A runner exception is recorded against its path and never stops
        the other features.
        """
        paths = [Path(p) for p in paths]
        self.progress = BatchProgress(len(paths), self.progress_callback)
        started = time.monotonic()

        if self.config.parallel and len(paths) > 1:
            unfinished = self._execute_parallel(paths, runner)
        else:
            unfinished = self._execute_sequential(paths, runner)

        results = self.progress.collect_results()
        errors = self.progress.collect_errors()

        finished = {r.path for r in results}
        for path in (p for p in unfinished if str(p) not in finished):
            logger.error(f"Feature timed out: {path}")
            results.append(FeatureResult.failed(path))
            errors.append(BatchError(
                path=str(path),
                message=f"timed out after {self.config.timeout_seconds}s",
            ))

        batch = BatchResult(
            results=results,
            errors=errors,
            total_duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            f"Batch finished: {batch.passed_features}/{batch.total_features} features passed "
            f"in {batch.total_duration_ms}ms"
        )
        return batch

    def _execute_sequential(self, paths: List[Path], runner: FeatureRunner) -> List[Path]:
        deadline = time.monotonic() + self.config.timeout_seconds
        for index, path in enumerate(paths):
            if time.monotonic() > deadline:
                return paths[index:]

            result = self._execute_one(path, runner)
            if result.status == Status.FAILED and not self.config.continue_on_failure:
                logger.warning(f"Stopping batch after failed feature: {path}")
                break
        return []

    def _execute_parallel(self, paths: List[Path], runner: FeatureRunner) -> List[Path]:
        workers = max(1, min(self.config.max_workers, len(paths)))
        logger.info(f"Executing {len(paths)} features with {workers} workers")

        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gherkin-batch")
        futures = [pool.submit(self._execute_one, path, runner) for path in paths]
        timed_out = False
        try:
            for future in as_completed(futures, timeout=self.config.timeout_seconds):
                if future.result().status == Status.FAILED and not self.config.continue_on_failure:
                    logger.warning("Stopping batch after failed feature")
                    break
        except FuturesTimeoutError:
            timed_out = True
        finally:
            # Running features cannot be interrupted; pending ones are dropped
            pool.shutdown(wait=False, cancel_futures=True)

        return paths if timed_out else []

    def _execute_one(self, path: Path, runner: FeatureRunner) -> FeatureResult:
        logger.info(f"Executing feature: {path}")
        started = time.monotonic()
        try:
            execution = runner(path)
        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.error(f"Feature execution failed: {path}: {e}")
            result = FeatureResult.failed(path, duration_ms)
            self.progress.record(result, BatchError(path=str(path), message=str(e) or type(e).__name__))
            return result

        result = FeatureResult.from_execution(path, execution, int((time.monotonic() - started) * 1000))
        self.progress.record(result)
        return result


def format_batch_result(result: BatchResult, output_format: str = "text") -> str:
    """Render a batch result as text, json or yaml"""
    if output_format == "json":
        return json.dumps(result.to_dict(), indent=2)
    if output_format == "yaml":
        return yaml.safe_dump(result.to_dict(), sort_keys=False)

    lines = [
        "=== Batch Execution Summary ===",
        "",
        f"Features:  {result.total_features} total, {result.passed_features} passed, "
        f"{result.failed_features} failed",
        f"Scenarios: {result.total_scenarios} total, {result.passed_scenarios} passed, "
        f"{result.failed_scenarios} failed",
        f"Duration:  {result.total_duration_ms}ms",
        "",
        "=== Feature Results ===",
    ]
    for feature in result.sorted_results():
        icon = STATUS_ICONS.get(feature.status, "✗")
        lines.append(f"{icon} {feature.name} - {feature.status.value} ({feature.duration_ms}ms)")
        if feature.scenarios_failed > 0:
            total = feature.scenarios_passed + feature.scenarios_failed
            lines.append(f"    Failed: {feature.scenarios_failed}/{total} scenarios")

    if result.errors:
        lines.extend(["", "=== Errors ==="])
        for error in result.errors:
            lines.append(f"✗ {error.path} - {error.message}")

    return "\n".join(lines) + "\n"
