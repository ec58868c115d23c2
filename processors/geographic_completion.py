"""
Geographic Completion

Fills postal codes that have no price record for a month with the prices of
the nearest scraped neighbour. The copied record is marked FALLBACK and
remembers where its prices came from and how far away that was.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from models.target import DataSource, PriceRecord, Target
from utils.database_manager import DatabaseManager, InsertOutcome

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Great-circle distance in kilometres between two (lat, lon) points."""
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


@dataclass
class CompletionReport:
    """Counters of one completion pass."""
    candidates: int = 0
    filled: int = 0
    no_coordinates: int = 0
    out_of_range: int = 0
    duplicates: int = 0
    filled_postal_codes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, int]:
        return {
            'candidates': self.candidates,
            'filled': self.filled,
            'no_coordinates': self.no_coordinates,
            'out_of_range': self.out_of_range,
            'duplicates': self.duplicates,
        }


class GeographicCompleter:
    """Copies the nearest scraped prices to uncovered postal codes."""

    def __init__(self, database: DatabaseManager, max_distance_km: float = 50.0):
        self.database = database
        self.max_distance_km = max_distance_km

    @classmethod
    def from_config(cls, config, database: DatabaseManager) -> 'GeographicCompleter':
        return cls(database, config.max_fallback_distance_km)

    def nearest(self, target: Target, sources: Iterable[PriceRecord]) -> Optional[Tuple[PriceRecord, float]]:
        """
        Find the closest source record within range.

        Returns:
            (record, distance_km) or None when nothing is close enough
        """
        origin = target.coordinates
        if origin is None:
            return None

        best = None
        for record in sources:
            if record.latitude is None or record.longitude is None:
                continue
            distance = haversine_km(origin, (record.latitude, record.longitude))
            if distance <= self.max_distance_km and (best is None or distance < best[1]):
                best = (record, distance)
        return best

    def complete(self, targets: Iterable[Target], period: date) -> CompletionReport:
        """
        Persist FALLBACK records for every target without a record in the period.

        Args:
            targets: Reference targets, usually the full CSV list
            period: Month to complete

        Returns:
            CompletionReport
        """
        report = CompletionReport()
        covered = self.database.existing_postal_codes(period)
        sources = self.database.fetch_records(period, DataSource.ORIGINAL)
        if not sources:
            logger.warning(f"No scraped records for {period}, nothing to complete from")
            return report

        for target in targets:
            if target.postal_code in covered:
                continue
            report.candidates += 1

            if target.coordinates is None:
                report.no_coordinates += 1
                continue

            match = self.nearest(target, sources)
            if match is None:
                report.out_of_range += 1
                continue

            source, distance = match
            record = PriceRecord(
                period=period,
                postal_code=target.postal_code,
                display_name=target.display_name,
                price_a=source.price_a,
                price_b=source.price_b,
                latitude=target.latitude,
                longitude=target.longitude,
                is_outlier=source.is_outlier,
                outlier_severity=source.outlier_severity,
                source_url=source.source_url,
                extraction_method=source.extraction_method,
                data_source=DataSource.FALLBACK,
                source_postal_code=source.postal_code,
                distance_km=round(distance, 2),
            )
            if self.database.insert(record) is InsertOutcome.DUPLICATE:
                report.duplicates += 1
                continue

            covered.add(target.postal_code)
            report.filled += 1
            report.filled_postal_codes.append(target.postal_code)
            logger.debug(f"Filled {target.postal_code} from {source.postal_code} ({distance:.1f} km)")

        logger.info(f"Geographic completion for {period}: {report.to_dict()}")
        return report
