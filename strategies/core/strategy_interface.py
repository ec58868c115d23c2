"""
Strategy interface module defining the contract for price extraction strategies.

A strategy is a single capability: given a parsed page and its collapsed
text, return whatever prices it can find. Strategies are independent of
each other; the orchestrator decides order and merging.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional
import logging

from bs4 import BeautifulSoup

from strategies.core.strategy_context import StrategyContext
from strategies.core.strategy_types import StrategyKind, StrategyMetadata


@dataclass
class StrategyResult:
    """Partial result of one strategy run."""
    price_a: Optional[float] = None
    price_b: Optional[float] = None
    notes: List[str] = field(default_factory=list)

    @property
    def found_any(self) -> bool:
        return self.price_a is not None or self.price_b is not None


class BaseStrategy(ABC):
    """
    Abstract base class for all extraction strategies.
    Concrete strategies are decorated with @strategy_metadata and implement extract().
    """

    name: str = "base"
    _metadata: Optional[StrategyMetadata] = None

    def __init__(self, context: Optional[StrategyContext] = None):
        """
        Initialize the strategy with an optional context.

        Args:
            context: Shared parser and thresholds; defaults are used when omitted
        """
        self.context = context or StrategyContext()
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def kind(self) -> StrategyKind:
        return self._metadata.kind

    @property
    def parser(self):
        return self.context.parser

    @abstractmethod
    def extract(self, document: BeautifulSoup, page_text: str) -> StrategyResult:
        """
        Extract prices from a page.

        Args:
            document: Parsed HTML document
            page_text: Whitespace-collapsed visible text of the document

        Returns:
            StrategyResult with whatever prices were found
        """
        pass
