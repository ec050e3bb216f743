import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_VARIABLE = re.compile(r'\$\{([^}]+)\}')


@dataclass
class ScenarioContext:
    """
    Runtime state owned by one scenario execution.

    Holds the automation page (if any) and the values steps store for
    later steps. A fresh context is created for every scenario.
    """
    page: Any = None
    base_url: str = ""
    timeout: int = 30000
    stored_values: Dict[str, str] = field(default_factory=dict)
    extracted: Dict[str, List[str]] = field(default_factory=dict)
    current_step: Optional[str] = None

    def store_value(self, key: str, value: Any) -> None:
        """Store a value for use in later steps"""
        self.stored_values[key] = str(value)
        logger.debug(f"Stored value '{key}'")

    def get_value(self, key: str, default: Any = None) -> Any:
        return self.stored_values.get(key, default)

    def extract(self, key: str, value: Any) -> None:
        """Append an extracted value to the list kept under key"""
        self.extracted.setdefault(key, []).append(str(value))

    def get_extracted(self, key: str) -> List[str]:
        return list(self.extracted.get(key, []))

    def resolve(self, text: str) -> str:
        """Replace ${name} references with stored values; unknown names are left as-is"""
        return _VARIABLE.sub(lambda m: self.stored_values.get(m.group(1), m.group(0)), text)

    def resolve_url(self, path: str) -> str:
        if path.startswith(('http://', 'https://')) or not self.base_url:
            return path
        return self.base_url.rstrip('/') + '/' + path.lstrip('/')
