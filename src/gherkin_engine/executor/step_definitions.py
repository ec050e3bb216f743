import re
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Sequence

from ..core.exceptions import PatternCompileError, StepExecutionError

logger = logging.getLogger(__name__)


@dataclass
class PatternEntry:
    """A compiled step pattern and the identifier it resolves to"""
    identifier: str
    pattern: Pattern

    @property
    def source(self) -> str:
        return self.pattern.pattern


@dataclass
class StepMatch:
    """Result of matching step text against the registry"""
    identifier: str
    parameters: List[str] = field(default_factory=list)


@dataclass
class DuplicatePatternWarning:
    """Same pattern text registered under more than one identifier"""
    pattern: str
    identifiers: List[str]

    def __str__(self) -> str:
        return f"Pattern '{self.pattern}' is registered for: {', '.join(self.identifiers)}"


class StepPatternRegistry:
    """
    Ordered table of step patterns.

    Entries are scanned in registration order and the first pattern found
    anywhere in the step text wins, so more specific patterns must be
    registered before the general ones they overlap with.
    """

    def __init__(self):
        self.entries: List[PatternEntry] = []

    def register(self, pattern: str, identifier: str) -> None:
        """Compile and append a pattern"""
        try:
            compiled = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise PatternCompileError(pattern, identifier, str(e)) from e

        self.entries.append(PatternEntry(identifier=identifier, pattern=compiled))
        logger.debug(f"Registered step pattern: {pattern} -> {identifier}")

    def register_aliases(self, identifier: str, pattern: str, aliases: Sequence[str] = ()) -> None:
        """Register the main pattern followed by each alias under one identifier"""
        self.register(pattern, identifier)
        for alias in aliases:
            self.register(alias, identifier)

    def match(self, text: str) -> Optional[StepMatch]:
        """Find the first entry matching the step text"""
        for entry in self.entries:
            match = entry.pattern.search(text)
            if match:
                # Groups from a branch that did not participate are left out
                parameters = [group for group in match.groups() if group is not None]
                logger.debug(f"Matched '{text}' to {entry.identifier} via {entry.source}")
                return StepMatch(identifier=entry.identifier, parameters=parameters)

        logger.debug(f"No step pattern matches: {text}")
        return None

    def find_duplicates(self) -> List[DuplicatePatternWarning]:
        """Report pattern texts registered under more than one identifier"""
        by_pattern: Dict[str, List[str]] = {}
        for entry in self.entries:
            identifiers = by_pattern.setdefault(entry.source, [])
            if entry.identifier not in identifiers:
                identifiers.append(entry.identifier)

        return [
            DuplicatePatternWarning(pattern=pattern, identifiers=identifiers)
            for pattern, identifiers in by_pattern.items()
            if len(identifiers) > 1
        ]

    def validate(self) -> List[DuplicatePatternWarning]:
        """Empty when the registry is free of ambiguous duplicates"""
        return self.find_duplicates()

    def identifiers(self) -> List[str]:
        """Distinct identifiers in first-registration order"""
        seen: List[str] = []
        for entry in self.entries:
            if entry.identifier not in seen:
                seen.append(entry.identifier)
        return seen

    def list_definitions(self) -> List[Dict[str, str]]:
        """List all registered patterns"""
        return [
            {'identifier': entry.identifier, 'pattern': entry.source}
            for entry in self.entries
        ]

    def __len__(self) -> int:
        return len(self.entries)


StepHandler = Callable[..., Any]


class StepHandlerRegistry:
    """
    Maps step identifiers to the callables that perform them.

    Handlers receive the scenario context followed by the matched
    parameters and may be plain functions or coroutines.
    """

    def __init__(self):
        self.handlers: Dict[str, StepHandler] = {}

    def add_handler(self, identifier: str, function: StepHandler) -> None:
        if identifier in self.handlers:
            logger.debug(f"Replacing handler for step: {identifier}")
        self.handlers[identifier] = function

    def handler(self, *identifiers: str):
        """Decorator registering a function for one or more identifiers"""

        def decorator(func):
            for identifier in identifiers:
                self.add_handler(identifier, func)
            return func

        return decorator

    def has_handler(self, identifier: str) -> bool:
        return identifier in self.handlers

    async def execute(self, identifier: str, parameters: Sequence[str], context: Any) -> str:
        """Run the handler for an identifier and return its output text"""
        function = self.handlers.get(identifier)
        if function is None:
            raise StepExecutionError(f"No handler registered for step '{identifier}'")

        if inspect.iscoroutinefunction(function):
            output = await function(context, *parameters)
        else:
            output = function(context, *parameters)

        return "" if output is None else str(output)

    def __len__(self) -> int:
        return len(self.handlers)
