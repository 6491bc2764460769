"""Tests for logging setup."""

import json
import logging
from pathlib import Path

import pytest
import structlog

from volscan.utils.logger import get_logger, log_context, setup_logging


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)


def flush() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestSetupLogging:

    def test_json_events_reach_log_file(self, tmp_path: Path):
        setup_logging(log_level="INFO", log_dir=tmp_path, log_to_console=False, json_logs=True)

        with log_context(cycle_id="abc123"):
            get_logger("test").info("cycle_started", instruments=3)
        flush()

        record = json.loads((tmp_path / "volscan.log").read_text().strip().splitlines()[-1])
        assert record["event"] == "cycle_started"
        assert record["instruments"] == 3
        assert record["cycle_id"] == "abc123"
        assert record["level"] == "info"

    def test_level_filter(self, tmp_path: Path):
        setup_logging(log_level="WARNING", log_dir=tmp_path, log_to_console=False, json_logs=True)

        get_logger("test").info("quiet")
        get_logger("test").error("loud")
        flush()

        main_log = (tmp_path / "volscan.log").read_text()
        assert "quiet" not in main_log
        assert "loud" in main_log
        assert "loud" in (tmp_path / "error.log").read_text()

    def test_context_unbound_after_block(self, tmp_path: Path):
        setup_logging(log_dir=tmp_path, log_to_console=False, json_logs=True)

        with log_context(cycle_id="abc123"):
            pass
        get_logger("test").info("after")
        flush()

        record = json.loads((tmp_path / "volscan.log").read_text().strip().splitlines()[-1])
        assert "cycle_id" not in record

    def test_no_file_logging(self, tmp_path: Path):
        setup_logging(log_dir=tmp_path / "logs", log_to_console=False, log_to_file=False)
        assert not (tmp_path / "logs").exists()
