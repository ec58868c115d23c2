"""
Outlier Validator

Annotates a price pair with a severity bucket. It never rejects a record:
prices outside the valid range are already dropped by the parser, so this
layer only flags plausible-but-suspicious values for later review.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class OutlierSeverity(Enum):
    """Severity buckets, ordered from least to most severe."""
    NORMAL = "normal"
    HIGH = "high"
    VERY_HIGH = "very_high"
    EXTREME = "extreme"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [OutlierSeverity.NORMAL, OutlierSeverity.HIGH, OutlierSeverity.VERY_HIGH, OutlierSeverity.EXTREME]


@dataclass
class OutlierVerdict:
    has_outlier: bool = False
    severity: OutlierSeverity = OutlierSeverity.NORMAL
    reasons: List[str] = field(default_factory=list)


@dataclass
class PriceOrderCheck:
    """Outcome of the default-provider vs green-tariff consistency check."""
    valid: bool = True
    should_swap: bool = False
    issue: Optional[str] = None


class OutlierValidator:
    """Assigns severity buckets to extracted prices."""

    def __init__(self, high: float = 1.00, very_high: float = 1.50, extreme: float = 2.00):
        if not high <= very_high <= extreme:
            raise ValueError("Outlier thresholds must satisfy high <= very_high <= extreme")
        self.high = high
        self.very_high = very_high
        self.extreme = extreme

    @classmethod
    def from_config(cls, config) -> 'OutlierValidator':
        return cls(config.outlier_high, config.outlier_very_high, config.outlier_extreme)

    def severity_for(self, price: Optional[float]) -> OutlierSeverity:
        """Bucket a single price."""
        if price is None:
            return OutlierSeverity.NORMAL
        if price >= self.extreme:
            return OutlierSeverity.EXTREME
        if price >= self.very_high:
            return OutlierSeverity.VERY_HIGH
        if price >= self.high:
            return OutlierSeverity.HIGH
        return OutlierSeverity.NORMAL

    def evaluate(self, price_a: Optional[float], price_b: Optional[float]) -> OutlierVerdict:
        """
        Evaluate a price pair.

        Args:
            price_a: Local default provider price (EUR/kWh) or None
            price_b: Cheapest green tariff price (EUR/kWh) or None

        Returns:
            OutlierVerdict with the most severe bucket of either field
        """
        verdict = OutlierVerdict()

        for label, price in (('price_a', price_a), ('price_b', price_b)):
            severity = self.severity_for(price)
            if severity is OutlierSeverity.NORMAL:
                continue
            verdict.has_outlier = True
            verdict.reasons.append(f"{label}={price:.4f} is {severity.value}")
            if severity.rank > verdict.severity.rank:
                verdict.severity = severity

        if verdict.severity is OutlierSeverity.EXTREME:
            # The parser's range should make this unreachable
            logger.warning(f"Extreme price reached validation: {'; '.join(verdict.reasons)}")

        return verdict


def check_price_order(price_a: Optional[float], price_b: Optional[float]) -> PriceOrderCheck:
    """
    Check that the default provider is not clearly cheaper than the cheapest
    green tariff, which usually means the two labels were mixed up.

    A pair is flagged for swapping when price A is lower than price B by more
    than 0.05 EUR and more than 10 %, or by more than 30 % outright.
    """
    if price_a is None or price_b is None:
        return PriceOrderCheck()

    difference = price_a - price_b
    relative = abs(difference) / max(price_a, price_b)

    if difference < -0.05 and relative > 0.1:
        return PriceOrderCheck(False, True, f"price_a ({price_a:.3f}) significantly cheaper than price_b ({price_b:.3f})")
    if difference < 0 and relative > 0.3:
        return PriceOrderCheck(False, True, f"price_a ({price_a:.3f}) far cheaper than price_b ({price_b:.3f})")
    return PriceOrderCheck()


def swap_if_inverted(price_a: Optional[float], price_b: Optional[float]) -> Tuple[Optional[float], Optional[float], PriceOrderCheck]:
    """Return the pair in corrected order along with the check result."""
    check = check_price_order(price_a, price_b)
    if check.should_swap:
        return price_b, price_a, check
    return price_a, price_b, check
