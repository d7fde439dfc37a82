# =============================================================================
# tests/unit/test_logging.py
# Unit Tests for logging configuration
# =============================================================================

import logging

import pytest

from practice_core.logging import LogContext, get_logger, setup_logging


def test_setup_logging_writes_file(tmp_path):
    setup_logging(level=logging.DEBUG, log_dir=tmp_path, log_filename="sync.log")
    get_logger("practice_core.offline").info("Replay started")

    for handler in logging.getLogger().handlers:
        handler.flush()

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.WARNING)

    content = (tmp_path / "sync.log").read_text()
    assert "Logging initialized" in content
    assert "practice_core.offline | INFO | Replay started" in content
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_log_context_reports_completion(caplog):
    logger = get_logger("practice_core.test")

    with caplog.at_level(logging.INFO, logger="practice_core.test"):
        with LogContext(logger, "Replaying 2 pending mutations"):
            pass

    messages = [record.getMessage() for record in caplog.records]
    assert messages[0] == "Replaying 2 pending mutations... started"
    assert messages[1].startswith("Replaying 2 pending mutations... completed")


def test_log_context_does_not_swallow(caplog):
    logger = get_logger("practice_core.test")

    with pytest.raises(RuntimeError):
        with LogContext(logger, "Replay"):
            raise RuntimeError("store exploded")

    assert any("failed" in record.getMessage() for record in caplog.records)
