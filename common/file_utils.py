# common/file_utils.py
# -*- coding: utf-8 -*-
"""
File system utility functions: directory removal that survives transient
locks, archive extraction, and the small move/rename helpers the stages use.
"""

import logging
import os
import shutil
import stat
import sys
import tarfile
import time
import zipfile
from pathlib import Path
from typing import Callable, Optional, Union

from common.command_utils import log_map_server, run_command
from common.environment import EnvironmentContext
from provisioner.config_models import SYMBOLS_DEFAULT, AppSettings

module_logger = logging.getLogger(__name__)

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tbz2")


class DirectoryRemovalError(Exception):
    """Raised when a directory is still present after every removal attempt."""


class ArchiveExtractionError(Exception):
    """Raised when an archive cannot be unpacked."""


def _symbols(app_settings: Optional[AppSettings]):
    return (
        app_settings.symbols
        if app_settings and app_settings.symbols
        else SYMBOLS_DEFAULT
    )


def _clear_readonly_and_retry(func, path, exc) -> None:
    """rmtree error hook: make read-only entries writable and try once more."""
    error = exc if isinstance(exc, BaseException) else exc[1]
    if not isinstance(error, PermissionError) or not os.path.lexists(path):
        raise error
    writable = stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC
    os.chmod(os.path.dirname(path) or ".", writable)
    os.chmod(path, writable)
    func(path)


def _rmtree(path: Path) -> None:
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_clear_readonly_and_retry)
    else:
        shutil.rmtree(path, onerror=_clear_readonly_and_retry)


def remove_directory_recursive(
    path: Union[str, Path],
    max_retries: int,
    delay_seconds: float,
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Remove `path` and everything below it, retrying while it is locked.

    A path that does not exist is treated as already removed. Otherwise up to
    `max_retries` attempts are made, sleeping `delay_seconds` between
    consecutive attempts (never after the last one). Each failed attempt is
    logged as a warning with the underlying error.

    Parameters:
        path: Directory (or stray file) to remove.
        max_retries: Total number of attempts; at least 1.
        delay_seconds: Pause between attempts.
        app_settings: Settings providing log symbols.
        current_logger: Logger to use; defaults to the module logger.
        sleep: Injected for tests.

    Raises:
        DirectoryRemovalError: If the path still cannot be removed after the
            final attempt.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = _symbols(app_settings)
    target = Path(path)
    attempts = max(int(max_retries), 1)

    if not os.path.lexists(target):
        log_map_server(
            f"Directory {target} does not exist. Nothing to remove.",
            "debug",
            logger_to_use,
            app_settings,
        )
        return

    last_error: Optional[OSError] = None
    for attempt in range(1, attempts + 1):
        try:
            if target.is_symlink() or target.is_file():
                target.unlink()
            else:
                _rmtree(target)
            log_map_server(
                f"{symbols.get('success', '✅')} Removed {target}",
                "success",
                logger_to_use,
                app_settings,
                indent=2,
            )
            return
        except OSError as e:
            last_error = e
            log_map_server(
                f"{symbols.get('warning', '!')} Attempt {attempt}/{attempts} to remove {target} failed: {e}",
                "warning",
                logger_to_use,
                app_settings,
                indent=2,
            )
            if attempt < attempts:
                sleep(delay_seconds)

    log_map_server(
        f"{symbols.get('error', '❌')} Could not remove {target} after {attempts} attempts. Close any program using it and re-run.",
        "error",
        logger_to_use,
        app_settings,
    )
    raise DirectoryRemovalError(
        f"Could not remove {target} after {attempts} attempts: {last_error}"
    )


def _ensure_within(base: Path, member_name: str) -> None:
    resolved = (base / member_name).resolve()
    if resolved != base and base not in resolved.parents:
        raise ArchiveExtractionError(
            f"Archive member '{member_name}' would be written outside {base}"
        )


def extract_archive(
    archive: Union[str, Path],
    destination: Union[str, Path],
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
    env_context: Optional[EnvironmentContext] = None,
    scratch_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Unpack a zip, tar or 7z archive into `destination`.

    Zip and tar archives are unpacked in-process; members that would land
    outside `destination` are rejected. 7z archives are handed to the `7z`
    command through the process runner.

    Returns:
        The destination directory.

    Raises:
        ArchiveExtractionError: Unsupported format, corrupt archive, unsafe
            member, or a failing `7z` run.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = _symbols(app_settings)
    archive_path = Path(archive)
    dest = Path(destination).resolve()
    dest.mkdir(parents=True, exist_ok=True)
    name = archive_path.name.lower()

    log_map_server(
        f"{symbols.get('gear', '⚙️')} Extracting {archive_path.name} to {dest}",
        "info",
        logger_to_use,
        app_settings,
        indent=2,
    )

    try:
        if name.endswith(".zip"):
            with zipfile.ZipFile(archive_path, "r") as zip_ref:
                for member in zip_ref.namelist():
                    _ensure_within(dest, member)
                zip_ref.extractall(dest)
        elif name.endswith(TAR_SUFFIXES):
            with tarfile.open(archive_path, "r:*") as tar_ref:
                if hasattr(tarfile, "data_filter"):
                    tar_ref.extractall(dest, filter="data")
                else:
                    for member in tar_ref.getmembers():
                        _ensure_within(dest, member.name)
                    tar_ref.extractall(dest)
        elif name.endswith(".7z"):
            result = run_command(
                ["7z", "x", "-y", f"-o{dest}", str(archive_path)],
                app_settings,
                logger_to_use,
                env_context=env_context,
                scratch_dir=scratch_dir,
            )
            if not result.succeeded:
                raise ArchiveExtractionError(
                    f"7z could not extract {archive_path} (rc {result.returncode})"
                )
        else:
            raise ArchiveExtractionError(
                f"Unsupported archive format: {archive_path.name}"
            )
    except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
        log_map_server(
            f"{symbols.get('error', '❌')} Could not extract {archive_path}: {e}",
            "error",
            logger_to_use,
            app_settings,
        )
        raise ArchiveExtractionError(
            f"Could not extract {archive_path}: {e}"
        ) from e

    return dest


def flatten_single_subdirectory(directory: Union[str, Path]) -> bool:
    """
    If `directory` holds exactly one entry and it is a directory (typically a
    version-named folder such as ``aria2-1.37.0``), move its contents up one
    level and remove it.

    Returns:
        True if a level was flattened.
    """
    root = Path(directory)
    entries = list(root.iterdir())
    if len(entries) != 1 or not entries[0].is_dir():
        return False

    # Renamed first so a child sharing the folder's name cannot collide with it.
    nested = entries[0].rename(root / f".{entries[0].name}.flatten")
    for child in nested.iterdir():
        shutil.move(str(child), str(root / child.name))
    nested.rmdir()
    return True


def move_directory_if_absent(
    source: Union[str, Path],
    destination: Union[str, Path],
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Move `source` to `destination` unless that would overwrite something.

    Skips (returning False) when the source directory does not exist or when
    the destination already holds content. An empty destination directory is
    replaced.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = _symbols(app_settings)
    src = Path(source)
    dst = Path(destination)

    if not src.is_dir():
        log_map_server(
            f"{symbols.get('info', 'ℹ️')} {src.name}: not present in the source, skipping.",
            "info",
            logger_to_use,
            app_settings,
            indent=2,
        )
        return False

    if dst.exists():
        if dst.is_file() or any(dst.iterdir()):
            log_map_server(
                f"{symbols.get('info', 'ℹ️')} {src.name}: {dst} already populated, skipping.",
                "info",
                logger_to_use,
                app_settings,
                indent=2,
            )
            return False
        dst.rmdir()

    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(src), str(dst))
    log_map_server(
        f"{symbols.get('success', '✅')} Moved {src} to {dst}",
        "success",
        logger_to_use,
        app_settings,
        indent=2,
    )
    return True


def rename_artifact(
    source: Union[str, Path],
    target: Union[str, Path],
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """Rename a downloaded file to its declared name. Returns True if renamed."""
    logger_to_use = current_logger if current_logger else module_logger
    src = Path(source)
    dst = Path(target)
    if src == dst or dst.exists() or not src.exists():
        return False
    src.rename(dst)
    log_map_server(
        f"Renamed {src.name} to {dst.name}",
        "info",
        logger_to_use,
        app_settings,
        indent=2,
    )
    return True
