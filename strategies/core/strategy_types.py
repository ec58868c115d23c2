"""
Strategy type definitions for price extraction strategies.

This module defines:
- Strategy kinds (TABLE, REGEX), which decide merge behaviour
- Strategy metadata (properties describing a strategy)
- Decorator for attaching metadata to strategy classes
"""

from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Type, TypeVar
import re

from extraction.page_classifier import PageClass

# Type variable for better type hints with decorator
T = TypeVar('T')


class StrategyKind(Enum):
    """How a strategy reads the page."""
    TABLE = "table"    # scans table rows, may replace implausible values
    REGEX = "regex"    # scans page text, never overwrites filled fields


class StrategyMetadata:
    """Metadata for a strategy: its kind, intended page classes and a description."""

    def __init__(self,
                 kind: StrategyKind,
                 page_classes: Iterable[PageClass],
                 description: str):
        """
        Initialize strategy metadata.

        Args:
            kind: Whether the strategy reads tables or free text
            page_classes: Page classes the strategy was written for
            description: A description of what the strategy does
        """
        self.kind = kind
        self.page_classes: FrozenSet[PageClass] = frozenset(page_classes)
        self.description = description

    def supports(self, page_class: PageClass) -> bool:
        return page_class in self.page_classes

    def to_dict(self) -> Dict[str, Any]:
        """Convert the metadata to a dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "page_classes": sorted(pc.value for pc in self.page_classes),
            "description": self.description,
        }


def strategy_metadata(
    kind: StrategyKind,
    page_classes: Iterable[PageClass],
    description: str,
) -> Callable[[Type[T]], Type[T]]:
    """
    Decorator to attach metadata to a strategy class.

    Args:
        kind: Whether the strategy reads tables or free text
        page_classes: Page classes the strategy was written for
        description: A description of what the strategy does

    Returns:
        Decorator function that attaches metadata to the class
    """
    def decorator(cls: Type[T]) -> Type[T]:
        cls._metadata = StrategyMetadata(kind=kind, page_classes=page_classes, description=description)

        # Derive a snake_case name from the class name unless one is set
        if not isinstance(cls.__dict__.get('name'), str):
            class_name = cls.__name__
            if class_name.endswith('Strategy'):
                class_name = class_name[:-8]
            cls.name = re.sub(r'(?<!^)(?=[A-Z])', '_', class_name).lower()

        return cls

    return decorator
