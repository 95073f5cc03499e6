# provisioner/stages/runtime.py
# -*- coding: utf-8 -*-
"""
Stage: create the isolated runtime (a virtual environment inside the
application directory) from an interpreter that meets the minimum version.
"""

import logging
from typing import Any, Dict, Optional

from common.command_utils import log_map_server, run_command
from common.environment import EnvironmentContext
from common.system_utils import find_python_interpreter
from provisioner.config_models import AppSettings
from provisioner.session import InstallSession
from provisioner.tool_provisioner import (
    ToolRequirement,
    ensure_tool,
    package_manager_procedure,
)

module_logger = logging.getLogger(__name__)


class RuntimeCreationError(Exception):
    """The virtual environment could not be created."""


def interpreter_requirement(
    session: InstallSession,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> ToolRequirement:
    """The versioned interpreter command, installed by the package manager."""
    version = app_settings.runtime.python_min_version
    packages = [
        p.format(version=version) for p in app_settings.runtime.python_packages
    ]
    return ToolRequirement(
        command_name=f"python{version}",
        install_procedure=package_manager_procedure(
            packages, app_settings, current_logger, session.scratch_dir
        ),
    )


def create_isolated_runtime(
    session: InstallSession,
    context: Dict[str, Any],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> str:
    """
    Find (or install) a suitable interpreter and create the venv.

    Returns:
        Path of the venv interpreter.

    Raises:
        ToolProvisioningError: No suitable interpreter could be installed.
        RuntimeCreationError: `python -m venv` failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    env_context: Optional[EnvironmentContext] = context.get("env_context")
    if env_context is None:
        env_context = EnvironmentContext.from_environ()
    min_version = app_settings.runtime.python_min_version

    interpreter = find_python_interpreter(
        min_version,
        env_context,
        app_settings,
        logger_to_use,
        scratch_dir=session.scratch_dir,
    )
    if interpreter is None:
        log_map_server(
            f"{symbols.get('warning', '!')} No Python >= {min_version} found.",
            "warning",
            logger_to_use,
            app_settings,
            indent=2,
        )
        requirement = interpreter_requirement(
            session, app_settings, logger_to_use
        )
        env_context = ensure_tool(
            requirement, env_context, app_settings, logger_to_use
        )
        context["env_context"] = env_context
        interpreter = env_context.which(requirement.command_name)

    log_map_server(
        f"{symbols.get('success', '✅')} Using interpreter {interpreter}",
        "success",
        logger_to_use,
        app_settings,
        indent=2,
    )

    result = run_command(
        [interpreter, "-m", "venv", str(session.venv_dir)],
        app_settings,
        logger_to_use,
        env_context=env_context,
        scratch_dir=session.scratch_dir,
    )
    if not result.succeeded or not session.venv_python.exists():
        log_map_server(
            f"{symbols.get('error', '❌')} Creating the virtual environment at {session.venv_dir} failed (rc {result.returncode}).",
            "error",
            logger_to_use,
            app_settings,
        )
        raise RuntimeCreationError(
            f"Virtual environment creation at {session.venv_dir} failed."
        )

    context["interpreter"] = interpreter
    log_map_server(
        f"{symbols.get('success', '✅')} Virtual environment created at {session.venv_dir}",
        "success",
        logger_to_use,
        app_settings,
    )
    return str(session.venv_python)
