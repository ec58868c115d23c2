import json
import logging

import pytest
import structlog

from utils.logging import bind_run_context, get_logger, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def test_sets_root_level_and_single_handler(restore_logging):
    setup_logging("DEBUG", "text")
    assert restore_logging.level == logging.DEBUG
    assert len(restore_logging.handlers) == 1
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_unknown_level_falls_back_to_info(restore_logging):
    setup_logging("chatty")
    assert restore_logging.level == logging.INFO


def test_json_output_carries_run_context(restore_logging, capsys):
    setup_logging("INFO", "json")
    bind_run_context(session_id="session-1", period="2025-03-01")

    get_logger("tests.logging").info("target_done", postal_code="87659")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    entry = json.loads(line)
    assert entry["event"] == "target_done"
    assert entry["postal_code"] == "87659"
    assert entry["session_id"] == "session-1"
    assert entry["period"] == "2025-03-01"


def test_bind_run_context_replaces_previous(restore_logging):
    bind_run_context(session_id="a", period="2025-03-01")
    bind_run_context(session_id="b")
    assert structlog.contextvars.get_contextvars() == {"session_id": "b"}
