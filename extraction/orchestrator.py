"""
Extraction Orchestrator

Runs the strategy list for a page class in priority order and merges the
partial results into one ExtractionResult.

Merge rules:
- an empty field takes the first value any strategy finds
- a filled field is never overwritten by a regex strategy
- a table strategy may replace a filled field only when the existing value
  is implausible (>= high threshold) and the new one is plausible
- once both fields are filled no further strategy runs
"""

import logging
from typing import Optional

from bs4 import BeautifulSoup

from core.errors import NoPriceFound
from extraction.core.extraction_result import ExtractionResult, StrategyTrace
from extraction.page_classifier import PageClass
from strategies.core.strategy_context import StrategyContext
from strategies.core.strategy_factory import StrategyFactory, create_default_factory
from strategies.core.strategy_interface import BaseStrategy, StrategyResult
from strategies.core.strategy_types import StrategyKind
from strategies.core.strategy_utils import page_text as collapse_page_text, prefer_plausible

logger = logging.getLogger(__name__)

FIELDS = ('price_a', 'price_b')


class ExtractionOrchestrator:
    """Selects, runs and merges extraction strategies for one page."""

    def __init__(self, factory: Optional[StrategyFactory] = None, context: Optional[StrategyContext] = None):
        """
        Initialize the orchestrator.

        Args:
            factory: Strategy factory; a factory with all built-in strategies is created when omitted
            context: Shared strategy context, used only when a factory is created here
        """
        self.factory = factory or create_default_factory(context)
        self.high_threshold = self.factory.context.high_threshold

    def extract(self, document: BeautifulSoup, page_text: Optional[str],
                classification: PageClass, url: Optional[str] = None) -> ExtractionResult:
        """
        Extract both prices from a parsed page.

        Args:
            document: Parsed HTML document
            page_text: Collapsed page text; derived from the document when None
            classification: Page class selecting the strategy list
            url: Source URL, used in error reporting

        Returns:
            ExtractionResult with at least one price set

        Raises:
            NoPriceFound: If no strategy produced a usable price
        """
        if page_text is None:
            page_text = collapse_page_text(document)

        result = ExtractionResult()

        for strategy in self.factory.strategies_for(classification):
            entry = self._run_strategy(strategy, document, page_text, result)
            result.trace.append(entry)

            if result.is_complete:
                logger.debug(f"Both prices found after {strategy.name}, skipping remaining strategies")
                break

        if result.is_empty:
            raise NoPriceFound(
                f"No price found with strategies {result.strategies_run} ({classification.value})",
                url=url,
                trace=result.trace,
            )

        logger.debug(f"Extracted price_a={result.price_a} price_b={result.price_b} via {result.method}")
        return result

    def _run_strategy(self, strategy: BaseStrategy, document: BeautifulSoup, page_text: str,
                      result: ExtractionResult) -> StrategyTrace:
        entry = StrategyTrace(strategy=strategy.name, kind=strategy.kind.value)

        try:
            partial = strategy.extract(document, page_text)
        except Exception as e:
            logger.warning(f"Strategy {strategy.name} failed: {e}", exc_info=True)
            entry.note = f"error: {e}"
            return entry

        entry.matched_a = partial.price_a
        entry.matched_b = partial.price_b
        entry.note = "; ".join(partial.notes)
        entry.applied_a = self._merge_field(result, partial, 'price_a', strategy)
        entry.applied_b = self._merge_field(result, partial, 'price_b', strategy)
        return entry

    def _merge_field(self, result: ExtractionResult, partial: StrategyResult,
                     field_name: str, strategy: BaseStrategy) -> bool:
        candidate = getattr(partial, field_name)
        if candidate is None:
            return False

        current = getattr(result, field_name)
        if current is None:
            chosen = candidate
        elif strategy.kind is StrategyKind.REGEX:
            return False
        else:
            chosen = prefer_plausible(current, candidate, self.high_threshold)

        if chosen == current:
            return False

        setattr(result, field_name, chosen)
        result.sources[field_name] = strategy.name
        return True
