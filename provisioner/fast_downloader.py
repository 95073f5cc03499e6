# provisioner/fast_downloader.py
# -*- coding: utf-8 -*-
"""
Bootstrap installer for the multi-connection downloader (aria2).

The downloader cannot be installed with itself, so its release archive is
fetched over the plain single-connection path and unpacked into a staging
directory. Its contents are moved into the tools directory, configured, and
put on PATH both persistently and for the rest of the current session.
"""

import logging
import shutil
import stat
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urlparse

from common.command_utils import log_map_server
from common.environment import EnvironmentContext
from common.file_utils import (
    extract_archive,
    flatten_single_subdirectory,
    remove_directory_recursive,
)
from common.network_utils import fetch_artifact
from common.system_utils import persist_user_path_entry
from provisioner import config as static_config
from provisioner.config_models import AppSettings
from provisioner.session import InstallSession
from provisioner.tool_provisioner import (
    InstallProcedure,
    ProbeKind,
    ToolRequirement,
)

module_logger = logging.getLogger(__name__)

STAGING_DIR_NAME = "fast-downloader-staging"

DOWNLOADER_CONFIG_LINES = [
    f"max-connection-per-server={static_config.FAST_DOWNLOADER_CONNECTIONS}",
    f"split={static_config.FAST_DOWNLOADER_SPLITS}",
    f"min-split-size={static_config.FAST_DOWNLOADER_MIN_SPLIT_SIZE}",
    "disable-ipv6=true",
    "continue=true",
    "min-tls-version=TLSv1.2",
]


def downloader_install_dir(
    session: InstallSession, app_settings: AppSettings
) -> Path:
    configured = app_settings.fast_downloader.install_dir
    if configured:
        return Path(configured).expanduser().resolve()
    return session.tools_dir / "aria2"


def archive_file_name(url: str) -> str:
    name = unquote(urlparse(url).path).rsplit("/", 1)[-1]
    return name or "fast-downloader-release.zip"


def locate_binary(directory: Path, command: str) -> Optional[Path]:
    """Find the downloader executable at the top of `directory` or below it."""
    for name in (command, f"{command}.exe"):
        direct = directory / name
        if direct.is_file():
            return direct
    for name in (command, f"{command}.exe"):
        for match in sorted(directory.rglob(name)):
            if match.is_file():
                return match
    return None


def write_downloader_config(directory: Path) -> Path:
    config_file = directory / static_config.FAST_DOWNLOADER_CONFIG_FILE
    config_file.write_text(
        "\n".join(DOWNLOADER_CONFIG_LINES) + "\n", encoding="utf-8"
    )
    return config_file


def install_release_contents(
    staging: Path,
    install_dir: Path,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> List[str]:
    """
    Move the unpacked release from `staging` into `install_dir`.

    Only entries shipped in the release are replaced; anything else already
    in `install_dir` is left alone. `staging` is removed afterwards.
    """
    install_dir.mkdir(parents=True, exist_ok=True)
    moved: List[str] = []
    for entry in sorted(staging.iterdir()):
        target = install_dir / entry.name
        remove_directory_recursive(
            target,
            app_settings.removal.max_retries,
            app_settings.removal.delay_seconds,
            app_settings,
            current_logger,
        )
        shutil.move(str(entry), str(target))
        moved.append(entry.name)
    remove_directory_recursive(
        staging,
        app_settings.removal.max_retries,
        app_settings.removal.delay_seconds,
        app_settings,
        current_logger,
    )
    return moved


def bootstrap_procedure(
    session: InstallSession,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> InstallProcedure:
    """Build the install procedure for the fast downloader."""
    logger_to_use = current_logger if current_logger else module_logger
    settings = app_settings.fast_downloader
    symbols = app_settings.symbols

    def _install(env_context: EnvironmentContext) -> EnvironmentContext:
        install_dir = downloader_install_dir(session, app_settings)
        archive = session.temp_path / archive_file_name(settings.release_url)

        fetch_artifact(
            settings.release_url,
            archive,
            app_settings,
            logger_to_use,
            env_context=env_context,
            allow_fast=False,
            scratch_dir=session.scratch_dir,
        )

        staging = session.temp_path / STAGING_DIR_NAME
        # Leftovers of an interrupted earlier bootstrap.
        remove_directory_recursive(
            staging,
            app_settings.removal.max_retries,
            app_settings.removal.delay_seconds,
            app_settings,
            logger_to_use,
        )
        extract_archive(
            archive,
            staging,
            app_settings,
            logger_to_use,
            env_context=env_context,
            scratch_dir=session.scratch_dir,
        )
        if flatten_single_subdirectory(staging):
            log_map_server(
                f"Flattened nested release folder in {staging}",
                "debug",
                logger_to_use,
                app_settings,
            )
        install_release_contents(staging, install_dir, app_settings, logger_to_use)

        binary = locate_binary(install_dir, settings.command)
        if binary is None:
            log_map_server(
                f"{symbols.get('error', '❌')} {settings.command} was not found in {archive.name}.",
                "error",
                logger_to_use,
                app_settings,
                indent=2,
            )
            return env_context

        binary.chmod(
            binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
        )
        write_downloader_config(binary.parent)
        persist_user_path_entry(
            binary.parent, settings.profile_file, app_settings, logger_to_use
        )
        return env_context.with_path_entry(str(binary.parent))

    return _install


def fast_downloader_requirement(
    session: InstallSession,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> ToolRequirement:
    return ToolRequirement(
        command_name=app_settings.fast_downloader.command,
        probe=ProbeKind.ON_PATH,
        install_procedure=bootstrap_procedure(
            session, app_settings, current_logger
        ),
    )
