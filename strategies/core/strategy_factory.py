"""
Strategy Factory module for registering strategies and selecting the
ordered strategy list for a page class.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Type

from extraction.page_classifier import PageClass
from strategies.core.strategy_context import StrategyContext
from strategies.core.strategy_interface import BaseStrategy
from strategies.core.strategy_types import StrategyMetadata

logger = logging.getLogger(__name__)

# Strategies attempted for each expected page class, in priority order
CLASS_STRATEGY_ORDER: Dict[PageClass, Sequence[str]] = {
    PageClass.SMALL: ('regex_simple', 'table_simple'),
    PageClass.MEDIUM: ('table_standard', 'regex_standard', 'table_first'),
    PageClass.LARGE: ('table_complex', 'regex_advanced', 'table_standard'),
}


class StrategyFactory:
    """Factory for creating strategy instances and looking up strategy order."""

    def __init__(self, context: Optional[StrategyContext] = None,
                 order: Optional[Mapping[PageClass, Sequence[str]]] = None):
        """
        Initialize the strategy factory.

        Args:
            context: Shared context handed to every strategy instance
            order: Optional replacement for the class -> strategy order table
        """
        self.context = context or StrategyContext()
        self.order = dict(order or CLASS_STRATEGY_ORDER)
        self._strategy_classes: Dict[str, Type[BaseStrategy]] = {}
        self._instances: Dict[str, BaseStrategy] = {}

    def register_strategy(self, strategy_class: Type[BaseStrategy]) -> None:
        """
        Register a strategy class.

        Args:
            strategy_class: The strategy class to register

        Raises:
            ValueError: If the strategy class doesn't have valid metadata
        """
        metadata = getattr(strategy_class, '_metadata', None)
        if not isinstance(metadata, StrategyMetadata):
            raise ValueError(f"Strategy class {strategy_class.__name__} is missing valid StrategyMetadata.")

        self._strategy_classes[strategy_class.name] = strategy_class
        self._instances.pop(strategy_class.name, None)
        logger.debug(f"Registered strategy: {strategy_class.name}")

    def get_strategy(self, strategy_name: str) -> BaseStrategy:
        """
        Get a strategy instance by name. Instances are stateless and cached.

        Raises:
            ValueError: If the strategy is not registered
        """
        if strategy_name not in self._strategy_classes:
            available = sorted(self._strategy_classes)
            raise ValueError(f"Strategy '{strategy_name}' not registered. Available strategies: {available}")

        if strategy_name not in self._instances:
            self._instances[strategy_name] = self._strategy_classes[strategy_name](self.context)
        return self._instances[strategy_name]

    def get_strategy_metadata(self, strategy_name: str) -> Optional[StrategyMetadata]:
        strategy_class = self._strategy_classes.get(strategy_name)
        return strategy_class._metadata if strategy_class else None

    def strategies_for(self, page_class: PageClass) -> List[BaseStrategy]:
        """
        Get the ordered strategy instances to attempt for a page class.

        Args:
            page_class: Expected page class (usually from the city name)

        Returns:
            Strategy instances in priority order
        """
        return [self.get_strategy(name) for name in self.order[page_class]]

    @property
    def registered_names(self) -> List[str]:
        return sorted(self._strategy_classes)


def create_default_factory(context: Optional[StrategyContext] = None) -> StrategyFactory:
    """Create a factory with every built-in strategy registered."""
    from strategies import (
        RegexAdvancedStrategy, RegexSimpleStrategy, RegexStandardStrategy,
        TableComplexStrategy, TableFirstStrategy, TableSimpleStrategy,
        TableStandardStrategy,
    )

    factory = StrategyFactory(context)
    for strategy_class in (TableStandardStrategy, TableSimpleStrategy, TableComplexStrategy,
                           TableFirstStrategy, RegexStandardStrategy, RegexSimpleStrategy,
                           RegexAdvancedStrategy):
        factory.register_strategy(strategy_class)
    return factory
