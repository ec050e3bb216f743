"""
Gherkin Engine - step matching, execution and result analysis for Gherkin features
"""

__version__ = "0.1.0"
__author__ = "Gherkin Engine Contributors"

from .core import ConfigManager, ExecutionResult, Status, load_report
from .executor import (
    FeatureExecutor,
    ExecutorConfig,
    BatchExecutor,
    BatchConfig,
    StepCatalog,
    StepPatternRegistry,
    build_step_catalog,
    build_step_registry,
)
from .analysis import AlertManager, PerformanceMonitor, analyze_execution, compare_results

__all__ = [
    "ConfigManager",
    "ExecutionResult",
    "Status",
    "load_report",
    "FeatureExecutor",
    "ExecutorConfig",
    "BatchExecutor",
    "BatchConfig",
    "StepCatalog",
    "StepPatternRegistry",
    "build_step_catalog",
    "build_step_registry",
    "AlertManager",
    "PerformanceMonitor",
    "analyze_execution",
    "compare_results",
]
