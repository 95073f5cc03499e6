# common/system_utils.py
# -*- coding: utf-8 -*-
"""
System-level utility functions for the provisioner.

This module includes persisting a directory on the user's PATH across
logins, and finding an interpreter that satisfies a minimum version.
"""

import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Tuple, Union

from common.command_utils import log_map_server, run_command
from common.environment import EnvironmentContext
from provisioner.config_models import SYMBOLS_DEFAULT, AppSettings

module_logger = logging.getLogger(__name__)

PATH_MARKER = "# added by mlstack-provisioner"
_VERSION_RE = re.compile(r"Python\s+(\d+)\.(\d+)(?:\.(\d+))?")


def _path_export_line(directory: str) -> str:
    return f'export PATH="$PATH:{directory}"  {PATH_MARKER}'


def persist_user_path_entry(
    directory: Union[str, Path],
    profile_file: Union[str, Path],
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Append `directory` to the user's persistent PATH via a shell profile.

    The profile gains one `export PATH=...` line, only if no line for this
    directory is already present.

    Returns:
        True if the profile was changed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols if app_settings else SYMBOLS_DEFAULT
    directory = str(directory)
    profile = Path(os.path.expanduser(str(profile_file)))
    line = _path_export_line(directory)

    existing = ""
    if profile.is_file():
        existing = profile.read_text(encoding="utf-8")
        if line in existing.splitlines():
            log_map_server(
                f"{symbols.get('info', 'ℹ️')} {directory} is already on the persistent PATH ({profile}).",
                "info",
                logger_to_use,
                app_settings,
                indent=2,
            )
            return False

    profile.parent.mkdir(parents=True, exist_ok=True)
    with open(profile, "a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(line + "\n")
    log_map_server(
        f"{symbols.get('success', '✅')} Added {directory} to the persistent PATH in {profile}.",
        "success",
        logger_to_use,
        app_settings,
        indent=2,
    )
    return True


def parse_python_version(text: str) -> Optional[Tuple[int, int]]:
    """Extract (major, minor) from `python --version` output."""
    match = _VERSION_RE.search(text or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def parse_min_version(version: str) -> Tuple[int, int]:
    major, _, minor = version.strip().partition(".")
    return int(major), int(minor or 0)


def candidate_interpreters(min_version: str) -> List[str]:
    """
    Interpreter command names to probe, most specific first: the minimum
    version itself, a handful of newer minors, then the generic names.
    """
    major, minor = parse_min_version(min_version)
    names = [f"python{major}.{m}" for m in range(minor, minor + 4)]
    return names + [f"python{major}", "python"]


def find_python_interpreter(
    min_version: str,
    env_context: EnvironmentContext,
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
    scratch_dir: Optional[Union[str, Path]] = None,
) -> Optional[str]:
    """
    Return the path of the first interpreter on the context PATH whose
    version is at least `min_version`, or None.
    """
    logger_to_use = current_logger if current_logger else module_logger
    required = parse_min_version(min_version)
    seen = set()

    for name in candidate_interpreters(min_version):
        executable = env_context.which(name)
        if not executable or executable in seen:
            continue
        seen.add(executable)
        result = run_command(
            [executable, "--version"],
            app_settings,
            logger_to_use,
            env_context=env_context,
            scratch_dir=scratch_dir,
        )
        found = parse_python_version(result.output) if result.succeeded else None
        if found and found >= required:
            return executable
    return None
