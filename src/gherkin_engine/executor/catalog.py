"""
Step catalog: descriptive metadata for every step the engine understands.

The catalog drives listing, searching and static validation, and can be
exported as a schema document for editors and other tooling.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .step_definitions import PatternEntry, StepPatternRegistry
from ..core.results import utc_timestamp

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "0.1.0"


@dataclass
class ParameterInfo:
    name: str
    type: str = "string"
    required: bool = True
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.type,
            'required': self.required,
            'description': self.description,
        }


@dataclass
class StepInfo:
    """Catalog entry for one step identifier"""
    id: str
    pattern: str
    category: str
    description: str
    aliases: List[str] = field(default_factory=list)
    parameters: List[ParameterInfo] = field(default_factory=list)
    examples: List[str] = field(default_factory=list)

    def all_patterns(self) -> List[str]:
        return [self.pattern, *self.aliases]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'pattern': self.pattern,
            'aliases': list(self.aliases),
            'category': self.category,
            'description': self.description,
            'parameters': [p.to_dict() for p in self.parameters],
            'examples': list(self.examples),
        }


class StepCatalog:
    """Collection of StepInfo entries with sorted, unique categories"""

    def __init__(self):
        self.steps: List[StepInfo] = []
        self.categories: List[str] = []

    def add_step(self, step: StepInfo) -> None:
        if step.category not in self.categories:
            self.categories.append(step.category)
            self.categories.sort()
        self.steps.append(step)

    def find_by_id(self, step_id: str) -> Optional[StepInfo]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def find_by_category(self, category: str) -> List[StepInfo]:
        return [step for step in self.steps if step.category == category]

    def filter_by_category(self, category: str) -> List[StepInfo]:
        """Case-insensitive category filter"""
        category = category.lower()
        return [step for step in self.steps if step.category.lower() == category]

    def search(self, query: str) -> List[StepInfo]:
        """Find steps whose id, description, category, aliases or examples contain the query"""
        query = query.lower()
        results = []
        for step in self.steps:
            haystack = [step.id, step.description, step.category, *step.aliases, *step.examples]
            if any(query in text.lower() for text in haystack):
                results.append(step)
        return results

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def export_schema(self) -> Dict[str, Any]:
        """Export the catalog as a schema document"""
        return {
            'metadata': {
                'version': SCHEMA_VERSION,
                'generated_at': utc_timestamp(),
                'total_steps': self.total_steps,
                'total_categories': len(self.categories),
            },
            'categories': list(self.categories),
            'steps': [step.to_dict() for step in self.steps],
        }

    def check_consistency(self, registry: StepPatternRegistry) -> List[PatternEntry]:
        """
        Return registry entries the catalog cannot describe.

        An entry is covered when the catalog step with the same identifier
        lists its pattern text as the main pattern or as an alias.
        """
        missing = []
        for entry in registry.entries:
            step = self.find_by_id(entry.identifier)
            if step is None or entry.source not in step.all_patterns():
                missing.append(entry)

        if missing:
            logger.warning(f"{len(missing)} registered patterns are missing from the step catalog")
        return missing
