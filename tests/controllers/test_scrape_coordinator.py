from unittest.mock import MagicMock

import pytest
import responses

from controllers.scrape_coordinator import ScrapeCoordinator, TargetState
from core.errors import FatalConfigurationError
from models.target import Target
from utils.diagnostics import DiagnosticsSink

BASE_URL = 'https://strom.example/stadt/stromanbieter-in-'

CLEAN_ROWS = [
    ("lokaler Versorger", "0,38 Euro pro kWh"),
    ("günstigster Ökostrom", "0,31 Euro pro kWh"),
]


def page_url(slug):
    return f"{BASE_URL}{slug}.html"


@pytest.fixture
def pacer():
    pacer = MagicMock()
    pacer.wait.return_value = True
    return pacer


@pytest.fixture
def make_coordinator(scraper_config, database, pacer):
    def make(config=None):
        return ScrapeCoordinator(config or scraper_config, database, pacer=pacer)
    return make


@pytest.fixture
def diagnostics(scraper_config):
    return DiagnosticsSink(scraper_config.diagnostics_dir)


@responses.activate
def test_not_found_target_does_not_stop_run(make_coordinator, database, pacer, diagnostics, page_builder,
                                            scraper_config):
    responses.add(responses.GET, page_url('nirgendwo'), body="Seite nicht gefunden", status=404)
    responses.add(responses.GET, page_url('hopferau'), body=page_builder(rows=CLEAN_ROWS), status=200)
    targets = [Target('99999', 'Nirgendwo'), Target('87659', 'Hopferau', 47.6167, 10.6333)]

    summary = make_coordinator().run(targets)

    assert summary['status'] == 'completed'
    assert summary['processed'] == 2
    assert summary['success'] == 1
    assert summary['failure'] == 1
    assert summary['not_found'] == 1
    assert pacer.wait.call_count == 1
    assert len(responses.calls) == 2

    records = database.fetch_records(scraper_config.period)
    assert [r.postal_code for r in records] == ['87659']
    assert (records[0].price_a, records[0].price_b) == (0.38, 0.31)

    entries = diagnostics.read()
    assert [(e['postal_code'], e['error_kind']) for e in entries] == [('99999', 'not_found')]
    assert entries[0]['source_url'] == page_url('nirgendwo')
    assert database.count_errors(summary['session_id']) == 1

    session = database.get_session_record(summary['session_id'])
    assert session['status'] == 'completed'
    assert session['total_cities'] == 2
    assert session['successful_cities'] == 1
    assert session['failed_cities'] == 1


@responses.activate
def test_blocked_on_every_attempt(make_coordinator, database, diagnostics, page_builder, scraper_config):
    captcha = page_builder(extra_html="<div>Bitte lösen Sie das Captcha, um fortzufahren.</div>")
    responses.add(responses.GET, page_url('hopferau'), body=captcha, status=200)

    summary = make_coordinator().run([Target('87659', 'Hopferau')])

    assert summary['blocked'] == 1
    assert summary['failure'] == 1
    assert len(responses.calls) == scraper_config.max_attempts
    assert database.fetch_records(scraper_config.period) == []
    assert [e['error_kind'] for e in diagnostics.read()] == ['blocked_exhausted']


@responses.activate
def test_covered_targets_are_not_fetched_again(make_coordinator, page_builder, hopferau):
    responses.add(responses.GET, page_url('hopferau'), body=page_builder(rows=CLEAN_ROWS), status=200)

    first = make_coordinator().run([hopferau])
    second = make_coordinator().run([hopferau])

    assert first['success'] == 1
    assert second['planned'] == 0
    assert second['processed'] == 0
    assert second['status'] == 'completed'
    assert len(responses.calls) == 1


@responses.activate
def test_comparison_row_does_not_leak_into_price(make_coordinator, database, page_builder, hopferau,
                                                 scraper_config):
    comparison_label = (
        "Grundversorgung bei E.ON im direkten Vergleich mit weiteren Anbietern aus der Region "
        "inklusive Bonus, Preisgarantie und Sofortrabatt"
    )
    html = page_builder(rows=[
        (comparison_label, "0,82 Euro pro kWh"),
        ("lokaler Versorger", "0,38 Euro pro kWh"),
    ])
    responses.add(responses.GET, page_url('hopferau'), body=html, status=200)

    summary = make_coordinator().run([hopferau])

    record = database.fetch_records(scraper_config.period)[0]
    assert summary['success'] == 1
    assert record.price_a == 0.38
    assert record.expected_class == 'medium'
    assert record.extraction_method == 'table_standard'
    assert record.source_url == page_url('hopferau')
    assert record.latitude == 47.6167
    assert summary['by_class']['medium'] == {'attempted': 1, 'success': 1, 'not_found': 0}


@responses.activate
def test_stop_during_pacing_cancels_run(make_coordinator, database, pacer, page_builder):
    responses.add(responses.GET, page_url('hopferau'), body=page_builder(rows=CLEAN_ROWS), status=200)
    responses.add(responses.GET, page_url('pfronten'), body=page_builder(rows=CLEAN_ROWS), status=200)
    coordinator = make_coordinator()

    def stop_while_waiting():
        coordinator.stop()
        return False

    pacer.wait.side_effect = stop_while_waiting

    summary = coordinator.run([Target('87659', 'Hopferau'), Target('87459', 'Pfronten')])

    assert summary['status'] == 'cancelled'
    assert summary['processed'] == 1
    assert len(responses.calls) == 1
    session = database.get_session_record(summary['session_id'])
    assert session['status'] == 'failed'
    assert "cancelled" in session['error_summary']


def test_unusable_rotation_fails_session(make_coordinator, database, scraper_config, hopferau):
    config = scraper_config.with_overrides(proxy_enabled=True, include_direct=False)
    coordinator = make_coordinator(config)

    with pytest.raises(FatalConfigurationError):
        coordinator.run([hopferau])

    session = database.get_session_record(coordinator.session_id)
    assert session['status'] == 'failed'
    assert "FatalConfigurationError" in session['error_summary']


def test_work_queue_skips_covered_and_caps(make_coordinator, scraper_config):
    coordinator = make_coordinator(scraper_config.with_overrides(max_targets=2))
    targets = [Target('87659', 'Hopferau'), Target('87659', 'Hopferau'),
               Target('87459', 'Pfronten'), Target('87629', 'Füssen')]

    queue = coordinator.build_work_queue(targets)

    assert [t.postal_code for t in queue] == ['87659', '87459']


@responses.activate
def test_page_without_prices(make_coordinator, diagnostics, page_builder, hopferau):
    html = page_builder(rows=[("Informationen", "folgen in Kürze")])
    responses.add(responses.GET, page_url('hopferau'), body=html, status=200)
    coordinator = make_coordinator()

    outcome = coordinator.process_target(hopferau)

    assert outcome.state is TargetState.NO_PRICE_FOUND
    assert outcome.is_failure
    assert [entry.strategy for entry in outcome.error.trace] == ['table_standard', 'regex_standard', 'table_first']
    assert [e['error_kind'] for e in diagnostics.read()] == ['no_price_found']


@responses.activate
def test_high_price_is_stored_as_outlier(make_coordinator, database, page_builder, hopferau, scraper_config):
    html = page_builder(rows=[
        ("lokaler Versorger", "1,20 Euro pro kWh"),
        ("günstigster Ökostrom", "0,31 Euro pro kWh"),
    ])
    responses.add(responses.GET, page_url('hopferau'), body=html, status=200)

    summary = make_coordinator().run([hopferau])

    record = database.fetch_records(scraper_config.period)[0]
    assert summary['outliers'] == 1
    assert record.is_outlier
    assert record.outlier_severity == 'high'
    assert record.price_a == 1.20


@responses.activate
def test_inverted_prices_are_swapped(make_coordinator, database, page_builder, hopferau, scraper_config):
    html = page_builder(rows=[
        ("lokaler Versorger", "0,25 Euro pro kWh"),
        ("günstigster Ökostrom", "0,40 Euro pro kWh"),
    ])
    responses.add(responses.GET, page_url('hopferau'), body=html, status=200)

    summary = make_coordinator().run([hopferau])

    record = database.fetch_records(scraper_config.period)[0]
    assert summary['swapped'] == 1
    assert (record.price_a, record.price_b) == (0.40, 0.25)
    assert record.extraction_details['swapped'] is True


@responses.activate
def test_concurrent_workers(make_coordinator, database, pacer, page_builder, scraper_config):
    for slug in ('hopferau', 'pfronten', 'fuessen'):
        responses.add(responses.GET, page_url(slug), body=page_builder(rows=CLEAN_ROWS), status=200)
    targets = [Target('87659', 'Hopferau'), Target('87459', 'Pfronten'), Target('87629', 'Füssen')]

    summary = make_coordinator(scraper_config.with_overrides(max_workers=2)).run(targets)

    assert summary['status'] == 'completed'
    assert summary['success'] == 3
    assert pacer.wait.call_count == 3
    assert {r.postal_code for r in database.fetch_records(scraper_config.period)} == {'87659', '87459', '87629'}


@responses.activate
def test_small_page_stores_labelled_prices(make_coordinator, database, page_builder, scraper_config):
    html = page_builder(city="Altdorf", rows=[
        ("lokaler Versorger", "0,38 Euro pro kWh"),
        ("LichtBlick Naturstrom im direkten Vergleich mit weiteren Anbietern aus der Region "
         "inklusive Bonus und Preisgarantie", "0,82 Euro pro kWh"),
        ("günstigster Ökostrom", "0,30 Euro pro kWh"),
    ])
    responses.add(responses.GET, page_url('altdorf'), body=html, status=200)

    summary = make_coordinator().run([Target('84032', 'Altdorf')])

    record = database.fetch_records(scraper_config.period)[0]
    assert summary['swapped'] == 0
    assert (record.price_a, record.price_b) == (0.38, 0.30)
    assert record.expected_class == 'small'
    assert record.extraction_method == 'regex_simple'
