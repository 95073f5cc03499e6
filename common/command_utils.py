# common/command_utils.py
# -*- coding: utf-8 -*-
"""
Utilities for executing external commands and logging their output.

Commands are described by a structured `CommandSpec` (an argument list, never
a shell string). A child's combined stdout/stderr goes to a private scratch
file rather than the parent's console, so it cannot interleave with the
structured log stream; once the child exits the captured output is relayed
to the logger line by line and the scratch file is removed.
"""

import logging
import os
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from common.environment import EnvironmentContext
from common.logging_config import OK_LEVEL, STEP_LEVEL
from provisioner.config_models import SYMBOLS_DEFAULT, AppSettings

module_logger = logging.getLogger(__name__)

SPAWN_FAILED_RETURNCODE = -1
OUTPUT_INDENT = 4

_LINE_SPLIT_RE = re.compile(r"[\r\n]+")


def log_map_server(
    message: str,
    level: str = "info",
    current_logger: Optional[logging.Logger] = None,
    app_settings: Optional[AppSettings] = None,
    exc_info: bool = False,
    indent: int = 0,
    use_prefix: bool = True,
) -> None:
    """
    Logs a message at a named level through the given (or module) logger.

    Args:
        message (str): The log message to be recorded.
        level (str): One of "debug", "info", "step", "success" (logged at OK),
            "warning", "error" or "critical". Unknown values log at INFO.
        current_logger (Optional[logging.Logger]): A logger instance to use for
            logging. If not provided, a module-level logger will be used.
        app_settings (Optional[AppSettings]): Optional application settings.
        exc_info (bool): Include exception details in the record.
        indent (int): Number of spaces placed before the level tag.
        use_prefix (bool): Show the `[LEVEL]` prefix on the console.

    Returns:
        None
    """
    effective_logger = current_logger if current_logger else module_logger
    extra = {"indent": indent, "use_prefix": use_prefix}

    if level == "warning":
        effective_logger.warning(message, exc_info=exc_info, extra=extra)
    elif level == "error":
        effective_logger.error(message, exc_info=exc_info, extra=extra)
    elif level == "critical":
        effective_logger.critical(message, exc_info=exc_info, extra=extra)
    elif level == "debug":
        effective_logger.debug(message, exc_info=exc_info, extra=extra)
    elif level in ("success", "ok"):
        effective_logger.log(
            OK_LEVEL, message, exc_info=exc_info, extra=extra
        )
    elif level == "step":
        effective_logger.log(
            STEP_LEVEL, message, exc_info=exc_info, extra=extra
        )
    else:
        effective_logger.info(message, exc_info=exc_info, extra=extra)


class CommandSpec(BaseModel):
    """A structured command line: executable plus argument list."""

    executable: str
    args: List[str] = Field(default_factory=list)
    cwd: Optional[str] = None
    env: Optional[Dict[str, str]] = None

    @classmethod
    def from_argv(
        cls, argv: List[str], cwd: Optional[Union[str, Path]] = None
    ) -> "CommandSpec":
        if not argv:
            raise ValueError("Cannot build a command from an empty argv.")
        return cls(
            executable=str(argv[0]),
            args=[str(a) for a in argv[1:]],
            cwd=str(cwd) if cwd else None,
        )

    def argv(self) -> List[str]:
        return [self.executable] + list(self.args)

    def display(self) -> str:
        return subprocess.list2cmdline(self.argv())


class CommandResult(BaseModel):
    """Combined output and exit status of a finished command."""

    output: str = ""
    returncode: int
    spawn_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


def _relay_output(
    output: str,
    app_settings: Optional[AppSettings],
    current_logger: Optional[logging.Logger],
) -> None:
    for line in _LINE_SPLIT_RE.split(output):
        if line.strip():
            log_map_server(
                line.rstrip(),
                "info",
                current_logger,
                app_settings,
                indent=OUTPUT_INDENT,
                use_prefix=False,
            )


def run_command(
    command: Union[CommandSpec, List[str]],
    app_settings: Optional[AppSettings],
    current_logger: Optional[logging.Logger] = None,
    env_context: Optional[EnvironmentContext] = None,
    scratch_dir: Optional[Union[str, Path]] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> CommandResult:
    """
    Executes a command, captures its combined output and relays it to the log.

    Args:
        command: A CommandSpec, or an argv list that is converted to one.
        app_settings: Application settings providing logging symbols.
        current_logger: A logger to use. Defaults to the module logger.
        env_context: Environment for the child. `command.env` takes precedence;
            without either the child inherits the parent environment.
        scratch_dir: Directory for the private scratch file. Defaults to the
            system temp directory.
        cwd: Working directory when `command` is an argv list.

    Returns:
        CommandResult with the captured output and exit code. A process that
        could not be started yields returncode -1 and `spawn_error`; this
        function never raises for command failures.
    """
    effective_logger = current_logger if current_logger else module_logger
    symbols = (
        app_settings.symbols
        if app_settings and app_settings.symbols
        else SYMBOLS_DEFAULT
    )
    spec = (
        command
        if isinstance(command, CommandSpec)
        else CommandSpec.from_argv(command, cwd=cwd)
    )
    if spec.env is not None:
        child_env: Optional[Dict[str, str]] = spec.env
    elif env_context is not None:
        child_env = env_context.as_env()
    else:
        child_env = None

    log_map_server(
        f"{symbols.get('gear', '⚙️')} Executing: {spec.display()} {f'(in {spec.cwd})' if spec.cwd else ''}".rstrip(),
        "info",
        effective_logger,
        app_settings,
        indent=2,
    )

    if scratch_dir:
        os.makedirs(scratch_dir, exist_ok=True)
    fd, scratch_path = tempfile.mkstemp(
        prefix="cmd_", suffix=".out", dir=scratch_dir
    )
    try:
        try:
            with os.fdopen(fd, "wb") as scratch:
                completed = subprocess.run(
                    spec.argv(),
                    stdout=scratch,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    cwd=spec.cwd,
                    env=child_env,
                    check=False,
                )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            log_map_server(
                f"{symbols.get('error', '❌')} Could not start `{spec.display()}`: {e}",
                "error",
                effective_logger,
                app_settings,
                indent=2,
            )
            return CommandResult(
                output="",
                returncode=SPAWN_FAILED_RETURNCODE,
                spawn_error=str(e),
            )

        output = Path(scratch_path).read_text(
            encoding="utf-8", errors="replace"
        )
        _relay_output(output, app_settings, effective_logger)

        if completed.returncode != 0:
            log_map_server(
                f"{symbols.get('warning', '!')} Command `{spec.display()}` exited with rc {completed.returncode}.",
                "warning",
                effective_logger,
                app_settings,
                indent=2,
            )
        return CommandResult(output=output, returncode=completed.returncode)
    finally:
        try:
            os.unlink(scratch_path)
        except FileNotFoundError:
            pass


def command_exists(
    command_name: str, env_context: Optional[EnvironmentContext] = None
) -> bool:
    """
    Check if a command exists on PATH.

    Parameters:
        command_name (str): The name of the command to check for existence.
        env_context (Optional[EnvironmentContext]): Search this context's PATH
            instead of the process PATH.

    Returns:
        bool: True if the command is found, False otherwise.
    """
    if env_context is not None:
        return env_context.which(command_name) is not None
    return shutil.which(command_name) is not None
