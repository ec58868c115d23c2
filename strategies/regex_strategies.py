"""
Regex-based extraction strategies.

These run over the collapsed page text rather than the table markup, so
they also catch prices written in running text ("Der lokale Versorger
verlangt 0,38 Euro pro kWh"). Label-to-price spans are bounded to keep a
label from pairing with a price far down the page.
"""

import re
from typing import Optional, Pattern, Sequence, Tuple

from bs4 import BeautifulSoup

from extraction.page_classifier import PageClass
from strategies.core.strategy_interface import BaseStrategy, StrategyResult
from strategies.core.strategy_types import StrategyKind, strategy_metadata

FIELD_A = 'price_a'
FIELD_B = 'price_b'

_PRICE_PER_KWH = r'(\d+(?:[.,]\d+)?)\s*(Euro|EUR|€|Cent|ct)?\.?\s*(?:pro|/|je)\s*kWh'
_SPAN = r'.{0,200}?'

# (label, field, pattern) tried in order; first validated match per field wins
LABELLED_PATTERNS: Sequence[Tuple[str, str, Pattern]] = (
    ('lokaler_versorger', FIELD_A,
     re.compile(r'lokaler?\s+Versorger[:\s]' + _SPAN + _PRICE_PER_KWH, re.IGNORECASE)),
    ('grundversorgung', FIELD_A,
     re.compile(r'Grundversorg\w*[:\s]' + _SPAN + _PRICE_PER_KWH, re.IGNORECASE)),
    ('guenstigster_oekostrom', FIELD_B,
     re.compile(r'günstigster?\s+Ökostrom\w*' + _SPAN + _PRICE_PER_KWH, re.IGNORECASE)),
    ('guenstigster_alternativtarif', FIELD_B,
     re.compile(r'günstigster?\s+Alternativtarif' + _SPAN + _PRICE_PER_KWH, re.IGNORECASE)),
)

# Looser layouts seen on large city pages
FLEXIBLE_PATTERNS: Sequence[Tuple[str, Pattern]] = (
    ('unit_slash_kwh', re.compile(r'(\d+(?:[.,]\d+)?)\s*(€|Euro|EUR|Cent|ct)\s*/\s*kWh', re.IGNORECASE)),
    ('kwh_colon', re.compile(r'kWh\s*:\s*(\d+(?:[.,]\d+)?)\s*(€|Euro|EUR|Cent|ct)', re.IGNORECASE)),
    ('preis_label', re.compile(r'Preis.{0,50}?(\d+(?:[.,]\d+)?)\s*(€|Euro|EUR|Cent|ct)\b', re.IGNORECASE)),
)


class RegexStrategy(BaseStrategy):
    """Shared helpers for text-pattern strategies."""

    def price_from_match(self, match: re.Match) -> Optional[float]:
        return self.parser.parse_number(match.group(1), match.group(2) or '')

    def apply_labelled_patterns(self, text: str, result: StrategyResult) -> None:
        for label, field_name, pattern in LABELLED_PATTERNS:
            if getattr(result, field_name) is not None:
                continue
            for match in pattern.finditer(text):
                price = self.price_from_match(match)
                if price is not None:
                    setattr(result, field_name, price)
                    result.notes.append(f"{self.name}: {label} -> {field_name}={price}")
                    break

    def extract(self, document: BeautifulSoup, page_text: str) -> StrategyResult:
        result = StrategyResult()
        self.apply_labelled_patterns(page_text, result)
        return result


@strategy_metadata(
    kind=StrategyKind.REGEX,
    page_classes={PageClass.MEDIUM},
    description="Labelled provider and green tariff patterns over page text",
)
class RegexStandardStrategy(RegexStrategy):
    pass


@strategy_metadata(
    kind=StrategyKind.REGEX,
    page_classes={PageClass.SMALL},
    description="Labelled provider and green tariff patterns for small pages",
)
class RegexSimpleStrategy(RegexStrategy):
    pass


@strategy_metadata(
    kind=StrategyKind.REGEX,
    page_classes={PageClass.LARGE},
    description="Labelled patterns, then looser unit layouts for remaining fields",
)
class RegexAdvancedStrategy(RegexStrategy):

    def extract(self, document: BeautifulSoup, page_text: str) -> StrategyResult:
        result = StrategyResult()
        self.apply_labelled_patterns(page_text, result)
        if result.price_a is not None and result.price_b is not None:
            return result

        for label, pattern in FLEXIBLE_PATTERNS:
            for match in pattern.finditer(page_text):
                price = self.price_from_match(match)
                if price is None or price in (result.price_a, result.price_b):
                    continue
                field_name = FIELD_A if result.price_a is None else FIELD_B
                setattr(result, field_name, price)
                result.notes.append(f"{self.name}: {label} -> {field_name}={price}")
                if result.price_a is not None and result.price_b is not None:
                    return result
        return result
