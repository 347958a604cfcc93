"""Tests for structured logging setup."""

import json

import pytest
from loguru import logger

from tmux_layout import logging_config
from tmux_layout.logging_config import configure_logging, log_file_path, setup_logger, trace_id_var


@pytest.fixture
def jsonl_logger():
    """Stderr JSONL sink only; handlers are dropped afterwards."""
    setup_logger(level="DEBUG", log_to_file=False)
    yield logger
    logger.remove()


class TestJsonSink:
    """Tests for the JSONL stderr sink."""

    def test_record_shape(self, jsonl_logger, capsys):
        jsonl_logger.info("Window sequenced", operation="sequence_project", status="success",
                          window_index=2, metrics={"panes": 3})

        entry = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert entry["level"] == "info"
        assert entry["operation"] == "sequence_project"
        assert entry["operation_status"] == "success"
        assert entry["context"] == {"window_index": 2}
        assert entry["metrics"] == {"panes": 3}
        assert entry["error"] is None

    def test_trace_id_from_context_var(self, jsonl_logger, capsys):
        token = trace_id_var.set("trace-123")
        try:
            jsonl_logger.debug("Normalizing document", operation="normalize_document")
        finally:
            trace_id_var.reset(token)

        entry = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert entry["trace_id"] == "trace-123"

    def test_exception_details(self, jsonl_logger, capsys):
        try:
            raise ValueError("boom")
        except ValueError:
            jsonl_logger.exception("Unexpected failure", operation="compile_project")

        entry = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert entry["error"]["type"] == "ValueError"
        assert entry["error"]["message"] == "boom"

    def test_level_filter(self, jsonl_logger, capsys):
        setup_logger(level="WARNING", log_to_file=False)
        logger.info("hidden", operation="test")
        assert capsys.readouterr().err == ""


class TestLogFilePath:
    """Tests for log_file_path()."""

    def test_uses_user_log_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(logging_config.platformdirs, "user_log_dir",
                            lambda appname, ensure_exists: str(tmp_path / appname))
        assert log_file_path() == tmp_path / "tmux-layout" / "tmux-layout.jsonl"


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_level_from_settings(self, jsonl_logger, settings, capsys):
        settings["logging"]["level"] = "ERROR"
        configure_logging(settings, log_to_file=False)
        logger.warning("hidden", operation="test")
        logger.error("shown", operation="test")
        lines = capsys.readouterr().err.strip().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["shown"]
