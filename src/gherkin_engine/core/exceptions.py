class GherkinEngineError(Exception):
    """Base exception for Gherkin Engine"""
    pass


class ConfigurationError(GherkinEngineError):
    """Configuration-related errors"""
    pass


class PatternCompileError(GherkinEngineError):
    """A step pattern is not a valid regular expression"""

    def __init__(self, pattern: str, identifier: str, reason: str):
        self.pattern = pattern
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Invalid pattern for '{identifier}': {pattern} ({reason})")


class UnmatchedStepError(GherkinEngineError):
    """Step text matched no registered pattern"""

    def __init__(self, step_text: str):
        self.step_text = step_text
        super().__init__(f"Unknown step: {step_text}")


class StepExecutionError(GherkinEngineError):
    """Error raised by the automation backend while running a step"""
    pass


class BatchFeatureError(GherkinEngineError):
    """Error executing one feature inside a batch"""

    def __init__(self, path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class FeatureDiscoveryError(GherkinEngineError):
    """Feature file discovery failed"""
    pass


class ReportParseError(GherkinEngineError):
    """Execution report document could not be read"""
    pass
