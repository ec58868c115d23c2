"""
Table-based extraction strategies.

City pages list the local default provider ("lokaler Versorger",
"Grundversorgung") and the cheapest green tariff ("günstigster Ökostrom")
as two-column rows: label in the first cell, "0,38 Euro pro kWh" in the
second. The same pages also carry long provider comparison rows whose
prices must not be picked up, so every table strategy only looks at
eligible rows: short, and free of competitor names and comparison markers.
"""

import re
from typing import Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from extraction.page_classifier import PageClass
from strategies.core.strategy_interface import BaseStrategy, StrategyResult
from strategies.core.strategy_types import StrategyKind, strategy_metadata
from strategies.core.strategy_utils import prefer_plausible, row_cells, row_text

LOCAL_PROVIDER_KEYWORDS = (
    'lokaler versorger', 'lokaler anbieter', 'grundversorger', 'grundversorgung',
    'ortsversorger', 'basisversorger', 'stadtwerk',
)
LOCAL_PROVIDER_KEYWORDS_EXTENDED = LOCAL_PROVIDER_KEYWORDS + ('kommunaler versorger',)

GREEN_ENERGY_KEYWORDS = ('ökostrom', 'oekostrom', 'grünstrom', 'gruenstrom', 'naturstrom')
GREEN_ENERGY_KEYWORDS_EXTENDED = GREEN_ENERGY_KEYWORDS + ('erneuerbarer strom', 'alternativtarif')

# A "cheapest tariff" row stands in for the green price when none is labelled
CHEAPEST_TARIFF_KEYWORDS = (
    'günstigster stromanbieter', 'günstigster tarif', 'günstigster anbieter', 'billigster anbieter',
)

COMPETITOR_PATTERN = re.compile(
    r'\b(?:lichtblick|e\.on|vattenfall|enbw|rwe|eprimo|yello|tibber|octopus energy)\b',
    re.IGNORECASE,
)

SECTION_MARKERS = (
    'vergleich', 'anbieter vergleichen', 'tarif vergleichen', 'mehr anbieter',
    'alle anbieter', 'weitere tarife', 'anbieter wechseln',
)

ANNUAL_COST_PATTERN = re.compile(r'(?:€|\beur\b|\beuro\b)\s*(?:/|pro|im)\s*jahr', re.IGNORECASE)

UNIT_SUFFIX_PATTERN = re.compile(r'(?:pro|/|je)\s*kWh', re.IGNORECASE)

# Headings that mark a whole table as a provider comparison (case-sensitive)
COMPARISON_TABLE_PATTERN = re.compile(r'Vergleich|(?<![-\w])Tarif')

FIELD_A = 'price_a'
FIELD_B = 'price_b'


class TableStrategy(BaseStrategy):
    """Shared row filtering and field assignment for table strategies."""

    local_keywords: Sequence[str] = LOCAL_PROVIDER_KEYWORDS
    green_keywords: Sequence[str] = GREEN_ENERGY_KEYWORDS
    use_cheapest_tariff = False

    def is_comparison_row(self, text: str, first_cell: str) -> bool:
        """Rows naming a competitor or belonging to a comparison section."""
        if COMPETITOR_PATTERN.search(first_cell):
            return True
        lowered = text.lower()
        if any(marker in lowered for marker in SECTION_MARKERS):
            return True
        return bool(ANNUAL_COST_PATTERN.search(text))

    def is_eligible_row(self, text: str, first_cell: str) -> bool:
        return len(text) < self.context.simple_row_max_chars and not self.is_comparison_row(text, first_cell)

    def price_from_cell(self, cell: str) -> Optional[float]:
        """Parse a price cell; only unit-suffixed values ("... pro kWh") count."""
        if not UNIT_SUFFIX_PATTERN.search(cell):
            return None
        return self.parser.parse(cell)

    def field_for_label(self, label: str) -> Optional[str]:
        lowered = label.lower()
        if any(keyword in lowered for keyword in self.local_keywords):
            return FIELD_A
        if any(keyword in lowered for keyword in self.green_keywords):
            return FIELD_B
        return None

    def assign(self, result: StrategyResult, field_name: str, value: float, note: str) -> None:
        """Fill a field, applying the plausibility preference to repeat candidates."""
        current = getattr(result, field_name)
        chosen = prefer_plausible(current, value, self.context.high_threshold)
        if chosen != current:
            setattr(result, field_name, chosen)
            action = 'found' if current is None else f'replaced {current} with'
            result.notes.append(f"{self.name}: {action} {field_name}={chosen} ({note})")

    def scan_rows(self, rows: Iterable[Tag], result: StrategyResult, label_anywhere: bool = False) -> None:
        """
        Match labelled price rows.

        Args:
            rows: Table rows to scan
            result: Result to fill in place
            label_anywhere: Look for the keyword in the whole row instead of
                only the first cell, and take the price from any later cell
        """
        cheapest_candidate = None

        for row in rows:
            cells = row_cells(row)
            if len(cells) < 2:
                continue
            text = row_text(row)
            first_cell = cells[0]
            if not self.is_eligible_row(text, first_cell):
                continue

            label = text if label_anywhere else first_cell
            field_name = self.field_for_label(label)

            if label_anywhere:
                price = next((p for p in (self.price_from_cell(c) for c in cells[1:]) if p is not None), None)
            else:
                price = self.price_from_cell(cells[1])

            if price is None:
                continue

            if field_name:
                self.assign(result, field_name, price, first_cell)
            elif self.use_cheapest_tariff and cheapest_candidate is None and \
                    any(keyword in first_cell.lower() for keyword in CHEAPEST_TARIFF_KEYWORDS):
                cheapest_candidate = (price, first_cell)

        if result.price_b is None and cheapest_candidate is not None:
            self.assign(result, FIELD_B, cheapest_candidate[0], f"cheapest tariff: {cheapest_candidate[1]}")

    def extract(self, document: BeautifulSoup, page_text: str) -> StrategyResult:
        result = StrategyResult()
        self.scan_rows(document.find_all('tr'), result)
        return result


@strategy_metadata(
    kind=StrategyKind.TABLE,
    page_classes={PageClass.MEDIUM, PageClass.LARGE},
    description="Labelled two-column rows across all tables, cheapest-tariff row as green fallback",
)
class TableStandardStrategy(TableStrategy):
    use_cheapest_tariff = True


@strategy_metadata(
    kind=StrategyKind.TABLE,
    page_classes={PageClass.SMALL},
    description="Labelled rows, then the first two per-kWh prices by position",
)
class TableSimpleStrategy(TableStrategy):

    def extract(self, document: BeautifulSoup, page_text: str) -> StrategyResult:
        result = StrategyResult()
        rows = document.find_all('tr')
        self.scan_rows(rows, result)

        if result.price_a is not None and result.price_b is not None:
            return result

        # Small pages often have a single unlabelled price table
        positional: List[float] = []
        for row in rows:
            cells = row_cells(row)
            if not cells:
                continue
            if not self.is_eligible_row(row_text(row), cells[0]):
                continue
            for cell in cells:
                price = self.price_from_cell(cell)
                if price is not None and price not in positional:
                    positional.append(price)
                    break

        if positional and result.price_a is None:
            candidate = positional.pop(0)
            if candidate != result.price_b:
                self.assign(result, FIELD_A, candidate, "first per-kWh row")
        if positional and result.price_b is None:
            candidate = next((p for p in positional if p != result.price_a), None)
            if candidate is not None:
                self.assign(result, FIELD_B, candidate, "next per-kWh row")
        return result


@strategy_metadata(
    kind=StrategyKind.TABLE,
    page_classes={PageClass.LARGE},
    description="Per-table scan skipping comparison tables, keyword-anywhere fallback",
)
class TableComplexStrategy(TableStrategy):
    local_keywords = LOCAL_PROVIDER_KEYWORDS_EXTENDED
    green_keywords = GREEN_ENERGY_KEYWORDS_EXTENDED

    def extract(self, document: BeautifulSoup, page_text: str) -> StrategyResult:
        result = StrategyResult()
        price_tables = []

        for index, table in enumerate(document.find_all('table')):
            if COMPARISON_TABLE_PATTERN.search(table.get_text(' ', strip=True)):
                result.notes.append(f"{self.name}: skipped comparison table {index}")
                continue
            price_tables.append(table)
            self.scan_rows(table.find_all('tr'), result)

        if result.price_a is None or result.price_b is None:
            for table in price_tables:
                self.scan_rows(table.find_all('tr'), result, label_anywhere=True)

        return result


@strategy_metadata(
    kind=StrategyKind.TABLE,
    page_classes={PageClass.MEDIUM},
    description="First table only, keyword anywhere in the row",
)
class TableFirstStrategy(TableStrategy):

    def extract(self, document: BeautifulSoup, page_text: str) -> StrategyResult:
        result = StrategyResult()
        table = document.find('table')
        if table is not None:
            self.scan_rows(table.find_all('tr'), result, label_anywhere=True)
        return result
