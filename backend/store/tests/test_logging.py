import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog
from pydantic import ValidationError

from store.errors import ErrorKind
from store.logging import _redact_credentials, setup_logging
from store.settings import LoggingSettings


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


class TestSetupLogging:
    def test_configures_stdout_handler(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1

        handler = root.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)

    def test_configures_file_handler_in_log_dir(self, tmp_path):
        log_dir = tmp_path / "store"
        setup_logging(log_dir=log_dir)
        root = logging.getLogger()

        assert len(root.handlers) == 2
        file_handler = root.handlers[1]
        assert isinstance(file_handler, logging.FileHandler)
        assert Path(file_handler.baseFilename).parent == log_dir

    def test_log_file_has_datetime_in_name(self, tmp_path):
        fixed_time = datetime(2025, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("store.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=tmp_path / "store")

        assert log_path is not None
        assert log_path.name == "store_2025-03-15_10-30-45.log"

    def test_returns_none_without_log_dir(self):
        assert setup_logging() is None

    def test_writes_to_file(self, tmp_path):
        log_path = setup_logging(log_dir=tmp_path / "store")

        structlog.get_logger("test.writes_to_file").info("hello from test")

        assert log_path is not None
        assert "hello from test" in log_path.read_text()

    def test_clears_existing_handlers_on_repeated_calls(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_custom_log_level(self):
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger().level == logging.DEBUG

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        setup_logging()
        assert logging.getLogger().level == logging.DEBUG

    def test_explicit_settings_override_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        setup_logging(settings=LoggingSettings(log_level="ERROR"))
        assert logging.getLogger().level == logging.ERROR

    def test_invalid_log_level_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "bogus")
        with pytest.raises(ValidationError, match="log_level"):
            setup_logging()

    def test_invalid_log_format_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "invalid_value")
        with pytest.raises(ValidationError, match="log_format"):
            setup_logging()

    def test_json_mode_renders_store_fields(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "JSON")
        log_path = setup_logging(log_dir=tmp_path / "store")

        structlog.contextvars.bind_contextvars(request_id="r-1")
        structlog.get_logger("test.json").warning(
            "store persistence error",
            kind=ErrorKind.PERSISTENCE,
            player_id="p1",
            password="hunter2",
        )
        structlog.contextvars.clear_contextvars()

        assert log_path is not None
        content = log_path.read_text()
        parsed = json.loads(content.strip().splitlines()[0])
        assert parsed["event"] == "store persistence error"
        assert parsed["request_id"] == "r-1"
        assert parsed["kind"] == "persistence"
        assert parsed["player_id"] == "p1"
        assert parsed["password"] == "***"
        assert "hunter2" not in content


class TestRedactCredentials:
    def test_masks_top_level_password(self):
        result = _redact_credentials(None, "", {"password": "secret", "player_id": "p1"})
        assert result == {"password": "***", "player_id": "p1"}

    def test_masks_new_password(self):
        assert _redact_credentials(None, "", {"new_password": "secret"}) == {"new_password": "***"}

    def test_masks_nested_password(self):
        result = _redact_credentials(None, "", {"player": {"email": "a@x.com", "password": "secret"}})
        assert result["player"] == {"email": "a@x.com", "password": "***"}

    def test_leaves_other_fields_unchanged(self):
        assert _redact_credentials(None, "", {"count": 42}) == {"count": 42}
