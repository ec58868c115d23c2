import json
import os
from datetime import datetime

from utils.diagnostics import DiagnosticsSink


def test_record_appends_json_lines(tmp_path):
    sink = DiagnosticsSink(str(tmp_path / 'logs'))
    sink.record('session-1', '87659', 'Hopferau', 'not_found', 'HTTP 404',
                'https://strom.example/stadt/stromanbieter-in-hopferau.html')
    sink.record('session-1', '10115', 'Berlin', 'blocked_exhausted', 'captcha', None, extra={'attempts': 3})

    path = sink.path_for()
    assert os.path.basename(path) == f"scraper-errors-{datetime.now():%Y-%m-%d}.jsonl"
    with open(path, encoding='utf-8') as f:
        lines = [json.loads(line) for line in f]

    assert [entry['postal_code'] for entry in lines] == ['87659', '10115']
    assert set(lines[0]) == {'timestamp', 'session_id', 'postal_code', 'display_name',
                             'error_kind', 'error_message', 'source_url'}
    assert lines[1]['extra'] == {'attempts': 3}


def test_read_back(tmp_path):
    sink = DiagnosticsSink(str(tmp_path))
    assert sink.read() == []
    entry = sink.record(None, '87659', 'Hopferau', 'no_price_found', 'Keine Preise')
    assert sink.read() == [entry]


def test_path_per_day(tmp_path):
    sink = DiagnosticsSink(str(tmp_path), prefix='errors')
    assert sink.path_for(datetime(2025, 3, 7)).endswith('errors-2025-03-07.jsonl')
