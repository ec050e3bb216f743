from .config import ConfigManager
from .exceptions import (
    GherkinEngineError,
    ConfigurationError,
    PatternCompileError,
    UnmatchedStepError,
    StepExecutionError,
    BatchFeatureError,
    FeatureDiscoveryError,
    ReportParseError,
)
from .results import (
    Status,
    ErrorInfo,
    StepResult,
    ScenarioResult,
    ExecutionSummary,
    FeatureInfo,
    ExecutionResult,
    load_report,
)

__all__ = [
    # Configuration
    "ConfigManager",

    # Results
    "Status",
    "ErrorInfo",
    "StepResult",
    "ScenarioResult",
    "ExecutionSummary",
    "FeatureInfo",
    "ExecutionResult",
    "load_report",

    # Exceptions
    "GherkinEngineError",
    "ConfigurationError",
    "PatternCompileError",
    "UnmatchedStepError",
    "StepExecutionError",
    "BatchFeatureError",
    "FeatureDiscoveryError",
    "ReportParseError",
]
