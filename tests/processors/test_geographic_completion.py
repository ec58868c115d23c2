from datetime import date

import pytest

from models.target import DataSource, PriceRecord, Target
from processors.geographic_completion import GeographicCompleter, haversine_km

PERIOD = date(2025, 3, 1)


def scraped(postal_code, name, latitude, longitude, price_a=0.38, price_b=0.31):
    return PriceRecord(
        period=PERIOD,
        postal_code=postal_code,
        display_name=name,
        price_a=price_a,
        price_b=price_b,
        latitude=latitude,
        longitude=longitude,
        source_url=f"https://strom.example/stadt/stromanbieter-in-{name.lower()}.html",
        extraction_method='table_standard',
    )


@pytest.fixture
def completer(database):
    database.insert(scraped('87659', 'Hopferau', 47.6167, 10.6333))
    database.insert(scraped('10115', 'Berlin', 52.5323, 13.3846, price_a=0.42, price_b=0.33))
    return GeographicCompleter(database, max_distance_km=50.0)


def test_haversine_berlin_hamburg():
    assert 250 < haversine_km((52.5200, 13.4050), (53.5511, 9.9937)) < 260


def test_haversine_same_point():
    assert haversine_km((47.6167, 10.6333), (47.6167, 10.6333)) == 0


def test_fills_from_nearest_neighbour(completer, database):
    pfronten = Target('87459', 'Pfronten', 47.5833, 10.5500)

    report = completer.complete([pfronten], PERIOD)

    assert report.filled == 1
    assert report.filled_postal_codes == ['87459']
    record = [r for r in database.fetch_records(PERIOD, DataSource.FALLBACK)][0]
    assert record.postal_code == '87459'
    assert record.source_postal_code == '87659'
    assert record.price_a == 0.38
    assert record.data_source is DataSource.FALLBACK
    assert 0 < record.distance_km < 10
    assert record.latitude == 47.5833


def test_neighbour_out_of_range(completer, database):
    report = completer.complete([Target('20095', 'Hamburg', 53.5511, 9.9937)], PERIOD)
    assert report.out_of_range == 1
    assert report.filled == 0
    assert database.fetch_records(PERIOD, DataSource.FALLBACK) == []


def test_target_without_coordinates(completer):
    report = completer.complete([Target('87459', 'Pfronten')], PERIOD)
    assert report.candidates == 1
    assert report.no_coordinates == 1


def test_covered_targets_untouched(completer):
    report = completer.complete([Target('87659', 'Hopferau', 47.6167, 10.6333)], PERIOD)
    assert report.candidates == 0


def test_fallback_records_are_not_used_as_sources(completer, database):
    completer.complete([Target('87459', 'Pfronten', 47.5833, 10.5500)], PERIOD)
    sources = database.fetch_records(PERIOD, DataSource.ORIGINAL)
    assert {r.postal_code for r in sources} == {'87659', '10115'}


def test_nothing_scraped_yet(database):
    report = GeographicCompleter(database).complete([Target('87459', 'Pfronten', 47.5833, 10.5500)], PERIOD)
    assert report.to_dict() == {'candidates': 0, 'filled': 0, 'no_coordinates': 0,
                                'out_of_range': 0, 'duplicates': 0}


def test_from_config(scraper_config, database):
    completer = GeographicCompleter.from_config(scraper_config.with_overrides(max_fallback_distance_km=12.5), database)
    assert completer.max_distance_km == 12.5
