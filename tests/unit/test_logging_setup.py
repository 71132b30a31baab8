"""Tests for structlog configuration."""

import json

import pytest
import structlog

from chatload.shared.logging import setup_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def test_json_output(capsys):
    setup_logging("INFO", json_output=True)
    structlog.get_logger().info("room_provisioned", room_id="room-1")

    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "room_provisioned"
    assert record["room_id"] == "room-1"
    assert record["level"] == "info"
    assert "timestamp" in record


def test_level_filters_debug(capsys):
    setup_logging("WARNING", json_output=True)
    log = structlog.get_logger()
    log.debug("session_transition")
    log.info("load_test_starting")
    log.warning("channel_close_failed", user_id=3)

    err = capsys.readouterr().err
    assert "session_transition" not in err
    assert "load_test_starting" not in err
    assert "channel_close_failed" in err
