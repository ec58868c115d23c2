"""
Extraction Result Module

This module defines the merged output of one orchestration pass over a
city page: the two prices, which strategy supplied each of them, and an
ordered trace of every strategy that ran.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class StrategyTrace:
    """What a single strategy contributed during orchestration."""
    strategy: str
    kind: str
    matched_a: Optional[float] = None
    matched_b: Optional[float] = None
    applied_a: bool = False
    applied_b: bool = False
    note: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "kind": self.kind,
            "matched_a": self.matched_a,
            "matched_b": self.matched_b,
            "applied_a": self.applied_a,
            "applied_b": self.applied_b,
            "note": self.note,
        }


@dataclass
class ExtractionResult:
    """
    Merged prices for one page.

    price_a is the local default provider price, price_b the cheapest
    green tariff, both in EUR per kWh.
    """

    price_a: Optional[float] = None
    price_b: Optional[float] = None

    # Strategy that supplied each field
    sources: Dict[str, str] = field(default_factory=dict)

    # One entry per executed strategy, in execution order
    trace: List[StrategyTrace] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.price_a is not None and self.price_b is not None

    @property
    def is_empty(self) -> bool:
        return self.price_a is None and self.price_b is None

    @property
    def method(self) -> Optional[str]:
        """Strategy credited with the extraction (price A's source, else price B's)."""
        return self.sources.get('price_a') or self.sources.get('price_b')

    @property
    def strategies_run(self) -> List[str]:
        return [entry.strategy for entry in self.trace]

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the extraction result to a dictionary.

        Returns:
            Dictionary representation of the extraction result
        """
        return {
            "price_a": self.price_a,
            "price_b": self.price_b,
            "method": self.method,
            "sources": dict(self.sources),
            "trace": [entry.to_dict() for entry in self.trace],
        }
