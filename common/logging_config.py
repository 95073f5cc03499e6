# common/logging_config.py
# -*- coding: utf-8 -*-
"""
Logging configuration for provisioning sessions.

Every record is written twice: once to the console, coloured by level, and
once to the session log file as a plain timestamped line:

    [2024-05-01 12:00:00]   [OK] torch 2.3.1

The number of spaces between the timestamp and the level tag is the record's
indent depth. Two custom levels sit between INFO and WARNING: STEP marks the
start of a stage and OK marks a verified success.
"""

import logging
import sys
from pathlib import Path
from typing import IO, Dict, List, Optional, Union

STEP_LEVEL = 22
OK_LEVEL = 25

logging.addLevelName(STEP_LEVEL, "STEP")
logging.addLevelName(OK_LEVEL, "OK")

LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
PLAIN_LINE_FORMAT = "[%(asctime)s] %(indent_str)s[%(level_tag)s] %(message)s"
CONSOLE_LINE_FORMAT = "%(indent_str)s%(prefix)s%(message)s"

LEVEL_TAGS: Dict[int, str] = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    STEP_LEVEL: "STEP",
    OK_LEVEL: "OK",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
}

ANSI_RESET = "\033[0m"
LEVEL_COLORS: Dict[int, str] = {
    logging.DEBUG: "\033[90m",  # grey
    logging.INFO: "\033[37m",  # white
    STEP_LEVEL: "\033[36m",  # cyan
    OK_LEVEL: "\033[32m",  # green
    logging.WARNING: "\033[33m",  # yellow
    logging.ERROR: "\033[31m",  # red
    logging.CRITICAL: "\033[1;31m",  # bold red
}


def _decorate(record: logging.LogRecord) -> None:
    """Populate the attributes both formatters rely on."""
    indent = getattr(record, "indent", 0) or 0
    record.indent_str = " " * max(int(indent), 0)
    record.level_tag = LEVEL_TAGS.get(record.levelno, record.levelname)


class PlainLineFormatter(logging.Formatter):
    """Formats records as `[timestamp] <indent>[LEVEL] message` for the log file."""

    def __init__(self) -> None:
        super().__init__(fmt=PLAIN_LINE_FORMAT, datefmt=LOG_TIMESTAMP_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        _decorate(record)
        return super().format(record)


class ColorConsoleFormatter(logging.Formatter):
    """
    A formatter for the console that colours the whole line by level.

    The `[LEVEL]` prefix is shown unless the record was logged with
    ``use_prefix=False``.
    """

    def __init__(self, use_color: bool = True) -> None:
        super().__init__(fmt=CONSOLE_LINE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        _decorate(record)
        use_prefix = getattr(record, "use_prefix", True)
        record.prefix = f"[{record.level_tag}] " if use_prefix else ""
        line = super().format(record)
        if not self.use_color:
            return line
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{ANSI_RESET}" if color else line


def setup_logging(
    log_file: Optional[Union[str, Path]] = None,
    log_level: int = logging.INFO,
    use_color: bool = True,
    console_stream: Optional[IO[str]] = None,
) -> None:
    """
    Configures the root logger for a provisioning session.

    Existing root handlers are replaced, so calling this twice does not
    duplicate output.

    Parameters:
    log_file: Optional[Union[str, Path]]
        The session log file. Its parent directory is created if needed and the
        file is opened in append mode.
    log_level: int
        The logging level to configure. Defaults to logging.INFO.
    use_color: bool
        Colour console output. Colour is also dropped when the stream is not a TTY.
    console_stream: Optional[IO[str]]
        Stream for console output. Defaults to sys.stdout.

    Raises:
    OSError
        If the log directory cannot be created. This is fatal at session start.
    """
    handlers: List[logging.Handler] = []

    if log_file:
        log_file_path = Path(log_file)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(
            log_file_path, mode="a", encoding="utf-8"
        )
        file_handler.setFormatter(PlainLineFormatter())
        handlers.append(file_handler)

    stream = console_stream if console_stream is not None else sys.stdout
    is_tty = hasattr(stream, "isatty") and stream.isatty()
    console_handler = logging.StreamHandler(stream)
    console_handler.setFormatter(
        ColorConsoleFormatter(use_color=use_color and is_tty)
    )
    handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    for handler in handlers:
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    logging.getLogger(__name__).debug(
        f"Logging configured. Level: {logging.getLevelName(log_level)}. File: {log_file}"
    )
