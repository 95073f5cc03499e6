# provisioner/stages/application_source.py
# -*- coding: utf-8 -*-
"""
Stage: acquire the application source with a fresh clone.
"""

import logging
from typing import Any, Dict, Optional

from common.command_utils import log_map_server, run_command
from common.environment import EnvironmentContext
from common.file_utils import remove_directory_recursive
from provisioner.cli_handler import ConfirmPrompt, cli_prompt_for_confirmation
from provisioner.config_models import AppSettings
from provisioner.session import InstallSession

module_logger = logging.getLogger(__name__)


class UserDeclinedError(Exception):
    """The operator refused a destructive action."""


class SourceAcquisitionError(Exception):
    """The application repository could not be cloned."""


def acquire_application_source(
    session: InstallSession,
    context: Dict[str, Any],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    prompt: ConfirmPrompt = cli_prompt_for_confirmation,
) -> str:
    """
    Clone the application into `session.app_dir`.

    An existing directory is only removed after the operator confirms (or
    `assume_yes` is set). Declining ends the session without touching it.

    Raises:
        UserDeclinedError: The operator declined the overwrite.
        DirectoryRemovalError: The old directory could not be removed.
        SourceAcquisitionError: `git clone` failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    env_context: Optional[EnvironmentContext] = context.get("env_context")
    app_dir = session.app_dir

    if app_dir.exists():
        log_map_server(
            f"{symbols.get('warning', '!')} {app_dir} already exists.",
            "warning",
            logger_to_use,
            app_settings,
            indent=2,
        )
        if app_settings.assume_yes:
            log_map_server(
                "Overwrite confirmed by --yes.",
                "info",
                logger_to_use,
                app_settings,
                indent=2,
            )
        elif not prompt(
            f"Delete {app_dir} and install a fresh copy?",
            app_settings,
            logger_to_use,
        ):
            log_map_server(
                f"{symbols.get('error', '❌')} Overwrite of {app_dir} declined. Nothing was changed.",
                "error",
                logger_to_use,
                app_settings,
            )
            raise UserDeclinedError(f"Overwrite of {app_dir} declined.")

        remove_directory_recursive(
            app_dir,
            app_settings.removal.max_retries,
            app_settings.removal.delay_seconds,
            app_settings,
            logger_to_use,
        )

    session.install_path.mkdir(parents=True, exist_ok=True)
    result = run_command(
        ["git", "clone", app_settings.app_repo_url, str(app_dir)],
        app_settings,
        logger_to_use,
        env_context=env_context,
        scratch_dir=session.scratch_dir,
    )
    if not result.succeeded:
        log_map_server(
            f"{symbols.get('error', '❌')} Cloning {app_settings.app_repo_url} failed (rc {result.returncode}).",
            "error",
            logger_to_use,
            app_settings,
        )
        raise SourceAcquisitionError(
            f"git clone of {app_settings.app_repo_url} failed."
        )

    log_map_server(
        f"{symbols.get('success', '✅')} Application source ready in {app_dir}",
        "success",
        logger_to_use,
        app_settings,
    )
    return str(app_dir)
