# provisioner/cli_handler.py
# -*- coding: utf-8 -*-
"""
Handles Command Line Interface (CLI) interactions for the provisioner.
"""

import logging
from typing import Callable, Optional

from common.command_utils import log_map_server
from provisioner.config_models import AppSettings

module_logger = logging.getLogger(__name__)

ConfirmPrompt = Callable[[str, AppSettings, Optional[logging.Logger]], bool]


def cli_prompt_for_confirmation(
    prompt_message: str,
    app_settings: AppSettings,
    current_logger_instance: Optional[logging.Logger] = None,
) -> bool:
    """
    Ask the operator to confirm a destructive action. Defaults to "No",
    including when stdin is closed (EOF), so unattended runs never destroy
    data without `--yes`.

    Returns:
        True only if the user answers "y" or "yes".
    """
    logger_to_use = (
        current_logger_instance if current_logger_instance else module_logger
    )
    symbols = app_settings.symbols
    log_map_server(
        f"Prompt: {prompt_message}",
        "debug",
        logger_to_use,
        app_settings,
    )
    try:
        user_input = (
            input(f"   {symbols.get('warning', '!')} {prompt_message} (y/N): ")
            .strip()
            .lower()
        )
    except EOFError:
        log_map_server(
            f"{symbols.get('warning', '!')} No user input (EOF), defaulting to 'N' for prompt: '{prompt_message}'",
            "warning",
            logger_to_use,
            app_settings,
        )
        return False
    confirmed = user_input in ("y", "yes")
    log_map_server(
        f"Operator answered {'yes' if confirmed else 'no'}.",
        "info",
        logger_to_use,
        app_settings,
        indent=2,
    )
    return confirmed
