"""Logging setup: console output plus an optional rotating JSON file."""

import logging
import shutil
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LOG_DIR = Path("logs")
DEFAULT_ROTATION_WHEN = "H"
DEFAULT_ROTATION_INTERVAL = 1
DEFAULT_BACKUP_COUNT = 24
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# HTTP and Azure SDK loggers that log every request at INFO/DEBUG
NOISY_LOGGERS = [
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.identity",
    "urllib3",
    "aiohttp",
]

_PLAIN_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"


class ArchivingTimedRotatingFileHandler(TimedRotatingFileHandler):
    """
    Timed rotation that moves rotated files into an archive folder.

        logs/2026-01-05/changefeed_0105_1430.log
        logs/2026-01-05/archive/changefeed_0105_1430.log.2026-01-05_14
    """

    def __init__(self, filename, when="midnight", interval=1, backupCount=0,
                 encoding=None, delay=False, utc=False, archive_dir=None):
        super().__init__(filename, when, interval, backupCount, encoding, delay, utc)
        base = Path(self.baseFilename)
        self.archive_dir = Path(archive_dir) if archive_dir else base.parent / "archive"
        self.archive_dir.mkdir(parents=True, exist_ok=True)

    def doRollover(self):
        super().doRollover()
        current = Path(self.baseFilename)
        for rotated in current.parent.glob(f"{current.name}.*"):
            try:
                shutil.move(str(rotated), str(self.archive_dir / rotated.name))
            except OSError as e:
                # Logging from inside a handler would recurse
                print(f"Warning: could not archive {rotated}: {e}", file=sys.stderr)


def get_log_file_path(log_dir: Path, name: str, stage: str | None = None) -> Path:
    """{log_dir}/{YYYY-MM-DD}/{name}[_{stage}]_{MMDD}_{HHMM}.log"""
    now = datetime.now()
    prefix = f"{name}_{stage}" if stage else name
    return log_dir / f"{now:%Y-%m-%d}" / f"{prefix}_{now:%m%d_%H%M}.log"


def _console_handler(level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _file_handler(
    path: Path,
    level: int,
    json_format: bool,
    rotation_when: str,
    rotation_interval: int,
    backup_count: int,
) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = ArchivingTimedRotatingFileHandler(
        path,
        when=rotation_when,
        interval=rotation_interval,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(_PLAIN_FILE_FORMAT))
    return handler


def setup_logging(
    name: str = "changefeed",
    stage: str | None = None,
    log_dir: Path | None = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    rotation_interval: int = DEFAULT_ROTATION_INTERVAL,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    worker_id: str | None = None,
    log_to_stdout: bool = False,
) -> logging.Logger:
    """
    Configure root logging for a processor run.

    By default the console gets human-readable output at console_level and
    a rotating, auto-archiving file under log_dir gets JSON at file_level.
    With log_to_stdout=True (containers) there is no file: stdout alone
    gets JSON (or console format) at file_level.

    stage and worker_id, when given, are set on the log context so every
    record carries them.

    Returns:
        The logger called name
    """
    set_log_context(stage=stage, worker_id=worker_id)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    log_file = None
    if log_to_stdout:
        formatter = JSONFormatter() if json_format else ConsoleFormatter()
        root.addHandler(_console_handler(file_level, formatter))
    else:
        log_file = get_log_file_path(log_dir or DEFAULT_LOG_DIR, name, stage)
        root.addHandler(
            _file_handler(
                log_file, file_level, json_format, rotation_when, rotation_interval, backup_count
            )
        )
        root.addHandler(_console_handler(console_level, ConsoleFormatter()))

    if suppress_noisy:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(
        "Logging initialized",
        extra={"operation": "setup_logging", "path": str(log_file) if log_file else "stdout"},
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """Module logger; same as logging.getLogger(name)."""
    return logging.getLogger(name)
