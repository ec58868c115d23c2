"""
Reference data loading.

Reads the postal-code reference CSV (the OpenDataSoft "georef germany
postleitzahl" export by default) into Target objects.
"""

import csv
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from models.target import Target, normalize_postal_code

logger = logging.getLogger(__name__)

# Accepted header names per field, in lookup order
NAME_COLUMNS = ('PLZ Name (short)', 'Name', 'Ort', 'name', 'city')
POSTAL_CODE_COLUMNS = ('Postleitzahl / Post code', 'PLZ', 'plz', 'postal_code')
GEO_POINT_COLUMNS = ('geo_point_2d', 'Geo Point', 'geo_point')


def _first_value(row: Dict[str, str], columns: Sequence[str]) -> Optional[str]:
    for column in columns:
        value = row.get(column)
        if value is not None and value.strip():
            return value.strip()
    return None


def parse_geo_point(value: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """Parse a "lat, lon" field; unparsable input yields (None, None)."""
    if not value:
        return None, None
    parts = value.split(',')
    if len(parts) != 2:
        return None, None
    try:
        return float(parts[0].strip()), float(parts[1].strip())
    except ValueError:
        return None, None


def load_targets(filepath: str, delimiter: str = ';', encoding: str = 'utf-8-sig') -> List[Target]:
    """
    Read targets from a delimited file.

    Rows without a name or a valid postal code are skipped. When a postal
    code appears more than once the first row wins.

    Args:
        filepath: Path to the CSV file
        delimiter: Field delimiter (default: ';')
        encoding: File encoding; utf-8-sig strips a leading BOM

    Returns:
        Targets in file order
    """
    targets: List[Target] = []
    seen = set()
    skipped = 0

    logger.debug(f"Reading targets from {filepath}")
    with open(filepath, mode='r', encoding=encoding, newline='') as f:
        reader = csv.DictReader(f, delimiter=delimiter)
        for row in reader:
            name = _first_value(row, NAME_COLUMNS)
            postal_code = normalize_postal_code(_first_value(row, POSTAL_CODE_COLUMNS))
            if not name or not postal_code:
                skipped += 1
                continue
            if postal_code in seen:
                continue
            seen.add(postal_code)

            latitude, longitude = parse_geo_point(_first_value(row, GEO_POINT_COLUMNS))
            targets.append(Target(postal_code, name, latitude, longitude))

    logger.info(f"Loaded {len(targets)} targets from {filepath} ({skipped} rows skipped)")
    return targets
