from .comparison import (
    ComparisonResult,
    ComparisonStatus,
    Severity,
    compare_results,
    compare_report_files,
    format_comparison,
)
from .alerts import (
    AlertConfig,
    AlertManager,
    AlertMetric,
    AlertOperator,
    AlertSeverity,
    AlertThreshold,
    PerformanceAlert,
    PerformanceMonitor,
    PerformanceSummary,
)
from .profiling import ProfilingMetrics, analyze_execution, format_profile
from .webhook import (
    PayloadFormat,
    WebhookConfig,
    WebhookDelivery,
    WebhookEvent,
    WebhookManager,
    format_deliveries,
)

__all__ = [
    'ComparisonResult',
    'ComparisonStatus',
    'Severity',
    'compare_results',
    'compare_report_files',
    'format_comparison',
    'AlertConfig',
    'AlertManager',
    'AlertMetric',
    'AlertOperator',
    'AlertSeverity',
    'AlertThreshold',
    'PerformanceAlert',
    'PerformanceMonitor',
    'PerformanceSummary',
    'ProfilingMetrics',
    'analyze_execution',
    'format_profile',
    'PayloadFormat',
    'WebhookConfig',
    'WebhookDelivery',
    'WebhookEvent',
    'WebhookManager',
    'format_deliveries',
]
