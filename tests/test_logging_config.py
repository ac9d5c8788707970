"""Tests for logging setup and secret scrubbing."""

import logging
from unittest.mock import MagicMock

import pytest
import structlog

from lpbot.logging_config import SUBSYSTEMS, sanitize_secrets, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    yield
    for name in ["lpbot"] + [f"lpbot.{s}" for s in SUBSYSTEMS]:
        target = logging.getLogger(name)
        for handler in target.handlers:
            handler.close()
        target.handlers.clear()
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    structlog.reset_defaults()


# --- sanitize_secrets tests ---

def test_sanitize_discord_token():
    token = "MTA5ODc2NTQzMjEwOTg3NjU0Mw.GaBcDe.abcdefghijklmnopqrstuvwxyz0123"
    event = sanitize_secrets(None, "info", {"event": "x", "error": f"bad token {token}"})
    assert token not in event["error"]
    assert "REDACTED" in event["error"]


def test_sanitize_lastfm_key_in_url():
    url = "http://ws.audioscrobbler.com/2.0/?api_key=0123456789abcdef0123456789abcdef&x=1"
    event = sanitize_secrets(None, "info", {"error": url, "urls": [url], "extra": {"u": url}})
    assert "0123456789abcdef" not in event["error"]
    assert "0123456789abcdef" not in event["urls"][0]
    assert "0123456789abcdef" not in event["extra"]["u"]


def test_sanitize_leaves_other_values():
    event = sanitize_secrets(None, "info", {"event": "command_completed", "elapsed_ms": 12})
    assert event == {"event": "command_completed", "elapsed_ms": 12}


# --- setup_logging tests ---

def test_setup_logging_creates_subsystem_files(tmp_path, restore_logging):
    config = MagicMock()
    config.log_dir = tmp_path / "logs"
    config.logging_level = "info"
    config.logging_subsystem_levels = {"commands": "debug"}
    config.logging_max_file_size_mb = 1
    config.logging_backup_count = 2

    setup_logging(config)

    assert (tmp_path / "logs").is_dir()
    assert logging.getLogger("lpbot.commands").level == logging.DEBUG
    assert logging.getLogger("lpbot.bot").level == logging.INFO
    handler = logging.getLogger("lpbot.database").handlers[0]
    assert handler.baseFilename.endswith("database.log")
    assert handler.maxBytes == 1024 * 1024

    structlog.get_logger("lpbot.database").info("database_opened", path="x")
    for handler in logging.getLogger("lpbot.database").handlers:
        handler.flush()
    assert "database_opened" in (tmp_path / "logs" / "database.log").read_text()


def test_setup_logging_without_config(restore_logging):
    setup_logging()
    assert logging.getLogger("lpbot").level == logging.DEBUG
    assert len(logging.getLogger().handlers) == 1
