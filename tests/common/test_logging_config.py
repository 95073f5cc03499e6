# tests/common/test_logging_config.py
# -*- coding: utf-8 -*-
"""
Tests for the session logging configuration.
"""

import io
import logging
import re
import subprocess

from common.command_utils import log_map_server, run_command
from common.logging_config import (
    ANSI_RESET,
    OK_LEVEL,
    STEP_LEVEL,
    ColorConsoleFormatter,
    PlainLineFormatter,
    setup_logging,
)
from common.network_utils import fetch_artifact

LINE_RE = re.compile(
    r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] (?P<indent> *)\[(?P<tag>[A-Z]+)\] (?P<msg>.*)$"
)


def _flush_root():
    for handler in logging.getLogger().handlers:
        handler.flush()


def _record(level, msg, **extra):
    record = logging.LogRecord("t", level, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_custom_levels_are_registered():
    assert logging.getLevelName(STEP_LEVEL) == "STEP"
    assert logging.getLevelName(OK_LEVEL) == "OK"
    assert logging.INFO < STEP_LEVEL < OK_LEVEL < logging.WARNING


def test_file_lines_keep_call_order_and_format(tmp_path, restore_root_logging):
    log_file = tmp_path / "logs" / "install_log.txt"
    setup_logging(log_file=log_file, console_stream=io.StringIO())
    logger = logging.getLogger("tests.ordering")

    log_map_server("stage one", "step", logger)
    log_map_server("torch 2.3.1", "success", logger, indent=2)
    log_map_server("disk is slow", "warning", logger)
    log_map_server("clone failed", "error", logger, indent=4)
    log_map_server("hidden at INFO", "debug", logger)
    _flush_root()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    parsed = [LINE_RE.match(line) for line in lines]
    assert all(parsed), lines
    assert [(m["tag"], len(m["indent"]), m["msg"]) for m in parsed] == [
        ("STEP", 0, "stage one"),
        ("OK", 2, "torch 2.3.1"),
        ("WARN", 0, "disk is slow"),
        ("ERROR", 4, "clone failed"),
    ]


def test_file_lines_keep_order_across_logger_relay_and_fetcher(
    mocker, tmp_path, app_settings, restore_root_logging
):
    log_file = tmp_path / "install_log.txt"
    setup_logging(log_file=log_file, console_stream=io.StringIO())
    logger = logging.getLogger("tests.mixed")
    cached = tmp_path / "pkg.whl"
    cached.write_bytes(b"cached")

    def _child(argv, stdout=None, **kwargs):
        stdout.write(b"Collecting numpy\nInstalling numpy\n")
        return subprocess.CompletedProcess(argv, 0)

    mocker.patch("common.command_utils.subprocess.run", side_effect=_child)

    log_map_server("install-base-dependencies", "step", logger, app_settings)
    run_command(["pip", "install", "numpy"], app_settings, logger, scratch_dir=tmp_path)
    fetch_artifact("https://example.org/pkg.whl", cached, app_settings, logger)
    log_map_server("done", "success", logger, app_settings, indent=2)
    _flush_root()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    parsed = [LINE_RE.match(line) for line in lines]
    assert all(parsed), lines
    entries = [(m["tag"], len(m["indent"]), m["msg"]) for m in parsed]
    assert [(tag, indent) for tag, indent, _ in entries] == [
        ("STEP", 0),
        ("INFO", 2),
        ("INFO", 4),
        ("INFO", 4),
        ("INFO", 2),
        ("OK", 2),
    ]
    assert entries[0][2] == "install-base-dependencies"
    assert entries[1][2].endswith("Executing: pip install numpy")
    assert [entries[2][2], entries[3][2]] == ["Collecting numpy", "Installing numpy"]
    assert entries[4][2].endswith("pkg.whl already present, skipping download.")
    assert entries[5][2] == "done"


def test_log_file_is_appended_across_sessions(tmp_path, restore_root_logging):
    log_file = tmp_path / "install_log.txt"
    log_file.write_text("[2024-01-01 00:00:00] [INFO] earlier run\n", encoding="utf-8")

    setup_logging(log_file=log_file, console_stream=io.StringIO())
    logging.getLogger("tests.append").info("later run")
    _flush_root()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert lines[0].endswith("earlier run")
    assert lines[-1].endswith("[INFO] later run")


def test_setup_logging_replaces_previous_handlers(tmp_path, restore_root_logging):
    first = io.StringIO()
    second = io.StringIO()
    setup_logging(console_stream=first)
    setup_logging(console_stream=second)

    logging.getLogger("tests.replace").info("only once")

    assert first.getvalue() == ""
    assert second.getvalue().count("only once") == 1


def test_verbose_level_lets_debug_through(tmp_path, restore_root_logging):
    stream = io.StringIO()
    setup_logging(log_level=logging.DEBUG, console_stream=stream)
    log_map_server("probing", "debug", logging.getLogger("tests.debug"))
    assert "[DEBUG] probing" in stream.getvalue()


def test_console_is_plain_when_stream_is_not_a_tty(restore_root_logging):
    stream = io.StringIO()
    setup_logging(use_color=True, console_stream=stream)
    log_map_server("done", "success", logging.getLogger("tests.tty"), indent=2)
    assert stream.getvalue() == "  [OK] done\n"


def test_console_formatter_colours_by_level():
    formatter = ColorConsoleFormatter(use_color=True)
    line = formatter.format(_record(logging.ERROR, "boom"))
    assert line.startswith("\033[31m")
    assert line.endswith(ANSI_RESET)
    assert "[ERROR] boom" in line


def test_console_formatter_omits_prefix_for_relayed_output():
    formatter = ColorConsoleFormatter(use_color=False)
    line = formatter.format(
        _record(logging.INFO, "Collecting torch", indent=4, use_prefix=False)
    )
    assert line == "    Collecting torch"


def test_plain_formatter_defaults_to_no_indent():
    line = PlainLineFormatter().format(_record(logging.WARNING, "careful"))
    match = LINE_RE.match(line)
    assert match
    assert match["indent"] == ""
    assert match["tag"] == "WARN"
