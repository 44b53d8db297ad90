"""
AI-Mining logging.

Every module asks for its logger through :func:`get_logger`. The first call
installs the handlers on the root logger: a rich console handler (or a plain
stream handler when highlighting is off) and, if ``LOG_FILE_OUTPUT`` is set,
a size-rotated file under ``logs/``. Settings come from the ``LOG_*`` values
in :mod:`aimining.constants`.

Machine ids and holder addresses are caller supplied and end up verbatim in
log lines, so every handler formats through :class:`SanitizingFormatter`.
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
)


LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "aimining.log"

REWARD_THEME = Theme({
    "aimining.amount":          "bold cyan",
    "aimining.holder":          "cyan",
    "aimining.level_error":     "bold red",
    "aimining.level_info":      "bold green",
    "aimining.level_warning":   "bold yellow",
    "aimining.level_debug":     "dim",
    "aimining.machine":         "magenta",
    "aimining.slash":           "bold red",
    "aimining.timestamp":       "bold cyan",
})


def _warn(message: str) -> None:
    # The logging system is not up yet, so configuration problems go to stderr
    print(f"aimining.logger: {message}", file=sys.stderr)


def checked_format(log_format: Optional[str]) -> str:
    """Return *log_format* if a record formats cleanly with it, else the default."""
    default = str(LOG_FORMAT.default())
    if not log_format:
        return default
    log_format = str(log_format)
    record = logging.LogRecord("aimining", logging.INFO, "", 0, "check", (), None)
    try:
        logging.Formatter(fmt=log_format, validate=True).format(record)
    except (ValueError, KeyError, TypeError) as e:
        _warn(f"invalid LOG_FORMAT {log_format!r} ({e}), using default")
        return default
    return log_format


def checked_date_format(date_format: Optional[str]) -> str:
    """Return *date_format* if it holds at least one strftime directive, else the default."""
    default = str(LOG_DATE_FORMAT.default())
    if not date_format:
        return default
    date_format = str(date_format)
    try:
        rendered = time.strftime(date_format, time.gmtime(0))
    except ValueError:
        rendered = date_format
    if rendered == date_format:
        _warn(f"invalid LOG_DATE_FORMAT {date_format!r}, using default")
        return default
    return date_format


class SanitizingFormatter(logging.Formatter):
    """Formatter that drops ANSI escapes and control characters except tab and newline."""

    _unsafe = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"
        r"|\x1b[@-Z\\-_]"
        r"|[\x00-\x08\x0b-\x1f\x7f]"
    )

    @classmethod
    def sanitize(cls, text: str) -> str:
        return cls._unsafe.sub("", text) if text else text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class RewardLogHighlighter(RegexHighlighter):
    """Colors machine ids, holders, amounts and slashes in engine log lines."""

    base_style = "aimining."
    highlights = [
        r"(?P<level_error>\b(?:ERROR|CRITICAL)\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"machine=(?P<machine>\S+)",
        r"holder=(?P<holder>\S+)",
        r"(?P<amount>\b\d+(?:\.\d+)?\s+(?:wei|tokens)\b)",
        r"(?P<slash>\bslash(?:ed)?\b)",
        r"(?P<timestamp>^\S+ UTC)",
    ]


def _console_handler(formatter: logging.Formatter) -> logging.Handler:
    if LOG_CONSOLE_HIGHLIGHTING:
        handler: logging.Handler = RichHandler(
            console=Console(theme=REWARD_THEME, highlight=False),
            highlighter=RewardLogHighlighter(),
            keywords=[],
            rich_tracebacks=True,
            show_path=False,
            show_time=False,
            show_level=False,
            markup=False,
        )
    else:
        handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    return handler


def _file_handler(path: Path, formatter: logging.Formatter) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=str(path),
        maxBytes=LOG_MAX_FILE_SIZE,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


class LogManager:
    """Process-wide owner of the logging setup; configures the root logger once."""

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._configured = False
        return cls._instance

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install the engine's handlers on the root logger.

        Arguments left as None fall back to the ``LOG_*`` settings. Calls after
        the first are ignored.
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            # Timestamps are rendered in UTC
            formatter = SanitizingFormatter(
                fmt=checked_format(LOG_FORMAT),
                datefmt=checked_date_format(LOG_DATE_FORMAT) + " UTC",
            )
            formatter.converter = time.gmtime

            handlers = []
            if console_output:
                handlers.append(_console_handler(formatter))
            if file_output if file_output is not None else bool(LOG_FILE_OUTPUT):
                handlers.append(_file_handler(log_file or LOG_FILE_PATH, formatter))

            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()
            for handler in handlers:
                handler.setLevel(level)
                root.addHandler(handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Logger for module *name*, configuring logging on first use."""
    return _manager.get_logger(name)
