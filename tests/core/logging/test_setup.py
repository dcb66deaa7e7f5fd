"""Tests for logging setup and configuration."""

import json
import logging
from pathlib import Path

import pytest

from core.logging.context import clear_log_context, get_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import (
    NOISY_LOGGERS,
    ArchivingTimedRotatingFileHandler,
    get_log_file_path,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    noisy_levels = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, noisy_level in noisy_levels.items():
        logging.getLogger(name).setLevel(noisy_level)
    clear_log_context()


class TestGetLogFilePath:
    def test_with_stage(self):
        path = get_log_file_path(Path("logs"), "changefeed", stage="reader")
        assert path.name.startswith("changefeed_reader_")
        assert path.suffix == ".log"
        assert path.parent.parent == Path("logs")

    def test_without_stage(self):
        path = get_log_file_path(Path("logs"), "changefeed")
        assert path.name.startswith("changefeed_")
        assert "_reader_" not in path.name


class TestSetupLogging:
    def test_file_and_console_handlers(self, tmp_path):
        logger = setup_logging("changefeed", log_dir=tmp_path)

        root = logging.getLogger()
        assert logger.name == "changefeed"
        assert any(isinstance(h, ArchivingTimedRotatingFileHandler) for h in root.handlers)
        console = [h for h in root.handlers if type(h) is logging.StreamHandler]
        assert len(console) == 1
        assert isinstance(console[0].formatter, ConsoleFormatter)

    def test_json_file_output(self, tmp_path):
        logger = setup_logging("changefeed", log_dir=tmp_path)
        logger.info("hello", extra={"partition_id": "2"})
        for handler in logging.getLogger().handlers:
            handler.flush()

        [log_file] = list(tmp_path.rglob("*.log"))
        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        entry = next(line for line in lines if line["message"] == "hello")
        assert entry["partition_id"] == "2"

    def test_stdout_only(self, tmp_path):
        setup_logging("changefeed", log_dir=tmp_path, log_to_stdout=True)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert list(tmp_path.iterdir()) == []

    def test_sets_context(self, tmp_path):
        setup_logging("changefeed", stage="reader", worker_id="w9", log_to_stdout=True)
        ctx = get_log_context()
        assert ctx["stage"] == "reader"
        assert ctx["worker_id"] == "w9"

    def test_noisy_loggers_suppressed(self, tmp_path):
        setup_logging("changefeed", log_dir=tmp_path, log_to_stdout=True)
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_noisy_loggers_untouched_when_disabled(self, tmp_path):
        logging.getLogger("aiohttp").setLevel(logging.NOTSET)
        setup_logging("changefeed", log_to_stdout=True, suppress_noisy=False)
        assert logging.getLogger("aiohttp").level == logging.NOTSET


class TestArchivingHandler:
    def test_creates_archive_dir(self, tmp_path):
        handler = ArchivingTimedRotatingFileHandler(tmp_path / "app.log", when="S")
        try:
            assert (tmp_path / "archive").is_dir()
        finally:
            handler.close()

    def test_rollover_moves_rotated_files(self, tmp_path):
        handler = ArchivingTimedRotatingFileHandler(
            tmp_path / "app.log", when="S", backupCount=5
        )
        try:
            handler.emit(logging.makeLogRecord({"msg": "first"}))
            handler.doRollover()
        finally:
            handler.close()

        archived = list((tmp_path / "archive").iterdir())
        assert len(archived) == 1
        assert archived[0].name.startswith("app.log.")


class TestGetLogger:
    def test_returns_named_logger(self):
        assert get_logger("changefeed.reader") is logging.getLogger("changefeed.reader")
