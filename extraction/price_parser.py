"""
Price Parser Module

Turns a short text fragment such as "0,38 Euro pro kWh" or "38,5 ct/kWh"
into a price in EUR per kWh. Patterns are tried in priority order; the
first pattern with a match that falls inside the valid range wins.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

DEFAULT_MIN_PRICE = 0.05
DEFAULT_MAX_PRICE = 2.00

_NUMBER = r'(\d+(?:[.,]\d+)?)'
_PER_KWH = r'\s*(?:pro|/|je)\s*kWh'

# (name, pattern, unit) in priority order. unit is 'eur', 'cent' or 'auto'.
PRICE_PATTERNS: List[Tuple[str, Pattern, str]] = [
    ('euro_per_kwh', re.compile(_NUMBER + r'\s*(?:€|Euro|EUR)' + _PER_KWH, re.IGNORECASE), 'eur'),
    ('cent_per_kwh', re.compile(_NUMBER + r'\s*(?:Cent|ct)\.?' + _PER_KWH, re.IGNORECASE), 'cent'),
    ('per_kwh', re.compile(_NUMBER + _PER_KWH, re.IGNORECASE), 'auto'),
    ('euro', re.compile(_NUMBER + r'\s*(?:€|Euro\b|EUR\b)', re.IGNORECASE), 'eur'),
    ('cent', re.compile(_NUMBER + r'\s*(?:Cent\b|ct\b)', re.IGNORECASE), 'cent'),
    ('decimal_comma', re.compile(r'(?<![\d.,])(\d+,\d+)(?![\d,])'), 'auto'),
    ('decimal_point', re.compile(r'(?<![\d.,])(\d+\.\d+)(?![\d.])'), 'auto'),
]

# A unit-less value at or above this is read as cents ("38,5 pro kWh")
CENT_HEURISTIC_THRESHOLD = 10.0

# Bare numbers are only considered when no unit-bearing pattern matched
BARE_PATTERNS = frozenset(('decimal_comma', 'decimal_point'))


@dataclass(frozen=True)
class ParsedPrice:
    """A validated price with the pattern that produced it."""
    value: float
    pattern: str
    unit: str
    matched_text: str


def _to_number(raw: str) -> Optional[float]:
    try:
        return float(raw.replace(',', '.'))
    except ValueError:
        return None


def _normalize(number: float, unit: str) -> float:
    if unit == 'cent':
        return number / 100
    if unit == 'auto' and number >= CENT_HEURISTIC_THRESHOLD:
        return number / 100
    return number


class PriceParser:
    """Parses EUR/kWh prices and rejects values outside a valid range."""

    def __init__(self, min_price: float = DEFAULT_MIN_PRICE, max_price: float = DEFAULT_MAX_PRICE):
        self.min_price = min_price
        self.max_price = max_price

    def is_valid(self, price: Optional[float]) -> bool:
        """Check whether a price lies inside the inclusive valid range."""
        return price is not None and self.min_price <= price <= self.max_price

    def parse_with_unit(self, text: Optional[str]) -> Optional[ParsedPrice]:
        """
        Parse a text fragment and report which pattern matched.

        Args:
            text: Text fragment, usually a table cell or a regex capture

        Returns:
            ParsedPrice, or None when no pattern yields a valid price
        """
        if not text:
            return None

        unit_matched = False
        for name, pattern, unit in PRICE_PATTERNS:
            if unit_matched and name in BARE_PATTERNS:
                break
            for match in pattern.finditer(text):
                if name not in BARE_PATTERNS:
                    unit_matched = True
                number = _to_number(match.group(1))
                if number is None:
                    continue
                price = round(_normalize(number, unit), 4)
                if self.is_valid(price):
                    return ParsedPrice(
                        value=price,
                        pattern=name,
                        unit='cent' if unit == 'cent' or (unit == 'auto' and number >= CENT_HEURISTIC_THRESHOLD) else 'eur',
                        matched_text=match.group(0),
                    )
        return None

    def parse(self, text: Optional[str]) -> Optional[float]:
        """Parse a text fragment into EUR/kWh, or None."""
        parsed = self.parse_with_unit(text)
        return parsed.value if parsed else None

    def parse_number(self, raw: str, unit: str = 'eur') -> Optional[float]:
        """
        Validate an already-captured number with a known unit.

        Used by regex strategies whose patterns capture the number and the
        unit separately.
        """
        number = _to_number(raw)
        if number is None:
            return None
        unit = unit.lower() if unit else 'auto'
        if unit in ('cent', 'ct', 'c'):
            unit = 'cent'
        elif unit in ('euro', 'eur', '€'):
            unit = 'eur'
        else:
            unit = 'auto'
        price = round(_normalize(number, unit), 4)
        return price if self.is_valid(price) else None


_default_parser = PriceParser()


def parse_price(text: Optional[str], min_price: float = DEFAULT_MIN_PRICE,
                max_price: float = DEFAULT_MAX_PRICE) -> Optional[float]:
    """Module-level shortcut for PriceParser(min_price, max_price).parse(text)."""
    if min_price == DEFAULT_MIN_PRICE and max_price == DEFAULT_MAX_PRICE:
        return _default_parser.parse(text)
    return PriceParser(min_price, max_price).parse(text)
