"""Tests for structured logging setup."""

import json
import logging

import pytest
import structlog

from timesync.utils.logging_config import setup_logging


@pytest.fixture
def restore_logging():
    yield
    structlog.reset_defaults()
    logging.basicConfig(level=logging.WARNING, handlers=[logging.NullHandler()], force=True)


def test_setup_logging_writes_json_lines(tmp_path, restore_logging):
    """Test that events are written as JSON lines with the bound component"""
    log_path = tmp_path / "logs" / "client.log"
    logger = setup_logging(level="INFO", component="client", log_path=log_path)

    logger.info("synced", offset_ms=7, rtt_ms=15)
    logger.debug("hidden")

    lines = log_path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["event"] == "synced"
    assert record["component"] == "client"
    assert record["offset_ms"] == 7
    assert record["level"] == "info"
    assert "timestamp" in record


def test_module_loggers_use_configured_pipeline(tmp_path, restore_logging):
    """Test that module-level structlog loggers render through the configured handlers"""
    log_path = tmp_path / "engine.log"
    setup_logging(level="DEBUG", log_path=log_path)

    structlog.get_logger("timesync.sync.engine").debug("probe_timeout", timeout=5.0)

    record = json.loads(log_path.read_text(encoding="utf-8").strip())
    assert record["event"] == "probe_timeout"
    assert record["logger"] == "timesync.sync.engine"
    assert record["level"] == "debug"
