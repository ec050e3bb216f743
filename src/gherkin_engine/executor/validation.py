"""
Static validation of feature files against the step catalog.

Checks every step line without running anything, so typos and unknown
steps are reported before a browser is ever started.
"""
import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .catalog import StepCatalog

logger = logging.getLogger(__name__)

STEP_KEYWORDS = ("Given ", "When ", "Then ", "And ", "But ")
_FEATURE = re.compile(r'^\s*Feature:', re.IGNORECASE | re.MULTILINE)
_SCENARIO = re.compile(r'^\s*Scenario(?: Outline| Template)?:', re.IGNORECASE | re.MULTILINE)


@dataclass
class ValidationIssue:
    """An error or warning found while validating a feature"""
    type: str
    message: str
    step_number: Optional[int] = None
    step_text: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'message': self.message,
            'step_number': self.step_number,
            'step_text': self.step_text,
            'suggestions': list(self.suggestions),
        }


@dataclass
class ValidationResult:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
        }


def similar_steps(step_text: str, catalog: StepCatalog, limit: int = 3) -> List[str]:
    """Ids of catalog steps sharing at least two words with the step text"""
    words = [w.lower() for w in step_text.split()]
    scored = []
    for step in catalog.steps:
        description_words = {w.lower() for w in step.description.split()}
        score = sum(1 for w in words if w in description_words)
        if score >= 2:
            scored.append((step.id, score))

    scored.sort(key=lambda item: item[1], reverse=True)
    return [step_id for step_id, _ in scored[:limit]]


def suggest_steps(step_text: str, catalog: StepCatalog) -> List[str]:
    """Human-readable hints for a step that matched nothing"""
    similar = similar_steps(step_text, catalog)
    suggestions = []
    if similar:
        suggestions.append(f"Did you mean: {' or '.join(similar)}?")

    lowered = step_text.lower()
    if "click" in lowered:
        suggestions.append("For clicking elements, try: 'I click on \"selector\"' or 'I click the \"text\" button'")
    if "type" in lowered:
        suggestions.append("For typing into fields, try: 'I type \"text\" into \"selector\"'")
    if "should" in lowered:
        suggestions.append(
            "For assertions, try: 'the element \"selector\" should be visible' "
            "or 'the page should contain \"text\"'"
        )

    if not similar:
        suggestions.append("Run 'gherkin-engine list-steps' to see all available step patterns")
    return suggestions


class FeatureValidator:
    """Validates feature text against a catalog"""

    def __init__(self, catalog: StepCatalog):
        self.catalog = catalog
        self._patterns = [
            re.compile(pattern, re.IGNORECASE)
            for step in catalog.steps
            for pattern in step.all_patterns()
        ]

    def is_known_step(self, step_text: str) -> bool:
        return any(pattern.search(step_text) for pattern in self._patterns)

    def validate_content(self, content: str) -> ValidationResult:
        result = ValidationResult()

        if not _FEATURE.search(content):
            result.errors.append(ValidationIssue(
                type="MISSING_FEATURE",
                message="Feature file must start with a 'Feature:' declaration",
            ))

        if not _SCENARIO.search(content):
            result.warnings.append(ValidationIssue(
                type="NO_SCENARIOS",
                message="Feature file contains no scenarios",
            ))

        step_number = 0
        for line in content.splitlines():
            line = line.strip()
            if not line.startswith(STEP_KEYWORDS):
                continue

            step_number += 1
            step_text = line.split(' ', 1)[1].strip()
            if self.is_known_step(step_text):
                continue

            result.errors.append(ValidationIssue(
                type="UNKNOWN_STEP",
                message=f"Step '{step_text}' does not match any registered pattern",
                step_number=step_number,
                step_text=step_text,
                suggestions=suggest_steps(step_text, self.catalog),
            ))

        logger.debug(f"Validated {step_number} steps: {len(result.errors)} errors, {len(result.warnings)} warnings")
        return result


def validate_feature_content(content: str, catalog: StepCatalog) -> ValidationResult:
    return FeatureValidator(catalog).validate_content(content)


def validate_feature(path: Union[str, Path], catalog: StepCatalog) -> ValidationResult:
    """Read and validate a feature file"""
    with open(path, 'r', encoding='utf-8') as f:
        content = f.read()
    return validate_feature_content(content, catalog)
