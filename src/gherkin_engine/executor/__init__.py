from .executor import FeatureExecutor, ExecutorConfig, AutomationSession
from .step_definitions import StepPatternRegistry, StepHandlerRegistry, StepMatch, DuplicatePatternWarning
from .catalog import StepCatalog, StepInfo, ParameterInfo
from .builtin_steps import build_step_catalog, build_step_registry
from .scenario_context import ScenarioContext
from .batch import BatchExecutor, BatchConfig, BatchResult, FeatureResult, BatchError, discover_features, format_batch_result
from .report_collector import ReportCollector, render_result, parse_tap_output
from .validation import validate_feature, validate_feature_content

__all__ = [
    'FeatureExecutor',
    'ExecutorConfig',
    'AutomationSession',
    'StepPatternRegistry',
    'StepHandlerRegistry',
    'StepMatch',
    'DuplicatePatternWarning',
    'StepCatalog',
    'StepInfo',
    'ParameterInfo',
    'build_step_catalog',
    'build_step_registry',
    'ScenarioContext',
    'BatchExecutor',
    'BatchConfig',
    'BatchResult',
    'FeatureResult',
    'BatchError',
    'discover_features',
    'format_batch_result',
    'ReportCollector',
    'render_result',
    'parse_tap_output',
    'validate_feature',
    'validate_feature_content',
]
