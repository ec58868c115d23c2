"""
Helpers shared by extraction strategies and the orchestrator.
"""

import re
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

_WHITESPACE = re.compile(r'\s+')


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(' ', text or '').strip()


def page_text(document: BeautifulSoup) -> str:
    """Visible text of a document with all whitespace collapsed."""
    for tag in document.find_all(['script', 'style', 'noscript']):
        tag.decompose()
    return collapse_whitespace(document.get_text(' ', strip=True))


def row_cells(row: Tag) -> List[str]:
    """Text of each cell in a table row."""
    return [collapse_whitespace(cell.get_text(' ', strip=True)) for cell in row.find_all(['td', 'th'])]


def row_text(row: Tag) -> str:
    return collapse_whitespace(row.get_text(' ', strip=True))


def prefer_plausible(current: Optional[float], candidate: Optional[float], high_threshold: float) -> Optional[float]:
    """
    Decide between an already-found price and a later candidate.

    The first value wins unless it is implausible (at or above the high
    threshold) and the candidate is plausible. When both are plausible or
    both implausible the first value is kept.

    Args:
        current: Value already assigned to the field, or None
        candidate: Newly found value, or None
        high_threshold: Outlier threshold separating plausible from implausible

    Returns:
        The value the field should hold
    """
    if candidate is None:
        return current
    if current is None:
        return candidate
    if current >= high_threshold and candidate < high_threshold:
        return candidate
    return current
