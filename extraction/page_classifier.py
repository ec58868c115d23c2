"""
Page Classifier Module

Two cheap classifications drive strategy selection:

- classify_by_name() looks only at the city name and is available before
  the page is fetched. It selects which strategies are attempted.
- classify_by_structure() counts tables and rows of the fetched document.
  It is recorded for diagnostics and mismatch tracking only.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


class PageClass(Enum):
    """Size class of a city page."""
    SMALL = "small"      # one short price table
    MEDIUM = "medium"    # a price table plus a comparison table
    LARGE = "large"      # many tables, many providers


# Name fragments of cities whose pages carry large provider listings
LARGE_CITY_FRAGMENTS = (
    'berlin', 'hamburg', 'münchen', 'muenchen', 'köln', 'koeln', 'frankfurt',
    'stuttgart', 'düsseldorf', 'duesseldorf', 'dortmund', 'essen', 'leipzig',
    'bremen', 'dresden', 'hannover', 'nürnberg', 'nuernberg',
)

# Compound suffixes typical of villages and small towns
SMALL_SETTLEMENT_FRAGMENTS = ('dorf', 'hausen', 'heim', 'bach', 'feld', 'burg')

SMALL_MAX_TABLES = 1
SMALL_MAX_ROWS = 3
MEDIUM_MAX_TABLES = 2
MEDIUM_MAX_ROWS = 8


@dataclass(frozen=True)
class StructuralClassification:
    """Result of counting tables and rows on a fetched page."""
    page_class: PageClass
    table_count: int
    row_count: int

    @property
    def dom_signature(self) -> str:
        return f"{self.table_count}t/{self.row_count}r"


def classify_counts(table_count: int, row_count: int) -> PageClass:
    """Map table and row counts to a page class."""
    if table_count <= SMALL_MAX_TABLES and row_count <= SMALL_MAX_ROWS:
        return PageClass.SMALL
    if table_count <= MEDIUM_MAX_TABLES and row_count <= MEDIUM_MAX_ROWS:
        return PageClass.MEDIUM
    return PageClass.LARGE


def classify_by_structure(document: BeautifulSoup) -> StructuralClassification:
    """
    Classify a parsed page by its table layout.

    Args:
        document: Parsed HTML document

    Returns:
        StructuralClassification with the class and the raw counts
    """
    table_count = len(document.find_all('table'))
    row_count = len(document.find_all('tr'))
    page_class = classify_counts(table_count, row_count)
    logger.debug(f"Structure: {table_count} tables, {row_count} rows -> {page_class.value}")
    return StructuralClassification(page_class, table_count, row_count)


def classify_by_name(name: str) -> PageClass:
    """
    Guess the page class from the city name alone.

    Large cities are checked first, so "Düsseldorf" is large even though it
    ends in "dorf". Names with more than two comma-separated parts
    ("Dorf, Ortsteil, Landkreis") are treated as small settlements.
    """
    lowered = (name or '').lower()

    if any(fragment in lowered for fragment in LARGE_CITY_FRAGMENTS):
        return PageClass.LARGE

    if any(fragment in lowered for fragment in SMALL_SETTLEMENT_FRAGMENTS):
        return PageClass.SMALL

    if len(lowered.split(',')) > 2:
        return PageClass.SMALL

    return PageClass.MEDIUM
