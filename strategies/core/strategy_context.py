"""
Strategy Context module.

Holds the shared, read-only helpers every extraction strategy needs: the
configured price parser, the simple-row cutoff and the plausibility
threshold used by the preference rule.
"""

from dataclasses import dataclass, field

from extraction.price_parser import PriceParser


@dataclass(frozen=True)
class StrategyContext:
    """Shared settings passed to every strategy instance."""
    parser: PriceParser = field(default_factory=PriceParser)
    simple_row_max_chars: int = 100
    high_threshold: float = 1.00

    @classmethod
    def from_config(cls, config) -> 'StrategyContext':
        """Build a context from a ScraperConfig."""
        return cls(
            parser=PriceParser(config.min_price, config.max_price),
            simple_row_max_chars=config.simple_row_max_chars,
            high_threshold=config.outlier_high,
        )
