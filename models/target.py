"""
Target and price record value objects.

These are plain dataclasses passed between the fetch, extraction and
persistence layers. The SQLAlchemy rows live in models/price_models.py.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

_UMLAUT_MAP = str.maketrans({
    'ä': 'ae', 'ö': 'oe', 'ü': 'ue', 'ß': 'ss',
    'Ä': 'ae', 'Ö': 'oe', 'Ü': 'ue',
})
_NON_ALNUM = re.compile(r'[^a-z0-9]+')


def normalize_identifier(name: str) -> str:
    """
    Turn a city display name into the URL slug used by the source site.

    Only the part before the first comma is used ("Neustadt, Ortsteil" ->
    "neustadt"). German umlauts become digraphs, other diacritics are
    folded to ASCII, and runs of anything else collapse to one hyphen.
    """
    base = (name or '').split(',')[0].strip()
    folded = base.translate(_UMLAUT_MAP)
    folded = unicodedata.normalize('NFKD', folded).encode('ascii', 'ignore').decode('ascii')
    return _NON_ALNUM.sub('-', folded.lower()).strip('-')


def normalize_postal_code(value: Any) -> Optional[str]:
    """Return a zero-padded 5-digit postal code, or None if not parseable."""
    if value is None:
        return None
    digits = re.sub(r'\D', '', str(value).split('.')[0])
    if not digits or len(digits) > 5:
        return None
    return digits.zfill(5)


@dataclass(frozen=True)
class Target:
    """One postal-code/city entity to be processed in a run."""
    postal_code: str
    display_name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def normalized_identifier(self) -> str:
        return normalize_identifier(self.display_name)

    @property
    def coordinates(self) -> Optional[Tuple[float, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)

    def build_url(self, base_url: str, suffix: str = '.html') -> str:
        """Build the source page URL for this target."""
        return f"{base_url}{self.normalized_identifier}{suffix}"


class DataSource(Enum):
    """Where the prices of a record come from."""
    ORIGINAL = "ORIGINAL"    # scraped from the target's own page
    FALLBACK = "FALLBACK"    # copied from the nearest scraped neighbour


@dataclass
class PriceRecord:
    """One persisted price row for a postal code and month."""
    period: date
    postal_code: str
    display_name: str
    price_a: Optional[float] = None      # local default provider
    price_b: Optional[float] = None      # cheapest green tariff
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_outlier: bool = False
    outlier_severity: str = "normal"
    source_url: Optional[str] = None
    extraction_method: Optional[str] = None
    structural_class: Optional[str] = None
    expected_class: Optional[str] = None
    elapsed_ms: Optional[int] = None
    data_source: DataSource = DataSource.ORIGINAL
    source_postal_code: Optional[str] = None
    distance_km: Optional[float] = None
    extraction_details: Dict[str, Any] = field(default_factory=dict)
    scraped_at: datetime = field(default_factory=datetime.now)

    @property
    def average(self) -> Optional[float]:
        """Mean of the prices that are present."""
        prices = [p for p in (self.price_a, self.price_b) if p is not None]
        if not prices:
            return None
        return round(sum(prices) / len(prices), 4)
