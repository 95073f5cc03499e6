# provisioner/tool_provisioner.py
# -*- coding: utf-8 -*-
"""
Guarantees that required external tools are present.

Every tool goes through the same policy: probe, install if missing, probe
again, and stop the session if it is still missing. Tools differ only in
their probe and their install procedure.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

from pydantic import BaseModel

from common.command_utils import command_exists, log_map_server, run_command
from common.environment import EnvironmentContext
from provisioner.config_models import SYMBOLS_DEFAULT, AppSettings, ToolSpec

module_logger = logging.getLogger(__name__)

InstallProcedure = Callable[[EnvironmentContext], Optional[EnvironmentContext]]


class ToolProvisioningError(Exception):
    """A required tool is still missing after its install procedure ran."""


class ProbeKind(str, Enum):
    """How a tool's presence is detected."""

    ON_PATH = "on_path"
    FIXED_PATH = "fixed_path"


class ToolRequirement(BaseModel):
    """
    A tool the session needs.

    `install_procedure` receives the current environment and may return an
    updated one (for example with the tool's directory added to PATH).
    """

    command_name: str
    probe: ProbeKind = ProbeKind.ON_PATH
    fixed_path: Optional[str] = None
    install_procedure: InstallProcedure

    def is_present(self, env_context: EnvironmentContext) -> bool:
        if self.probe is ProbeKind.FIXED_PATH:
            return bool(self.fixed_path) and Path(self.fixed_path).exists()
        return command_exists(self.command_name, env_context)


def ensure_tool(
    requirement: ToolRequirement,
    env_context: EnvironmentContext,
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> EnvironmentContext:
    """
    Make sure `requirement` is satisfied and return the resulting environment.

    Raises:
        ToolProvisioningError: If the tool is absent after its install
            procedure has run. This function never returns while the tool
            is missing.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols if app_settings else SYMBOLS_DEFAULT
    name = requirement.command_name

    if requirement.is_present(env_context):
        log_map_server(
            f"{symbols.get('success', '✅')} {name} found.",
            "success",
            logger_to_use,
            app_settings,
            indent=2,
        )
        return env_context

    log_map_server(
        f"{symbols.get('warning', '!')} {name} not found. Installing it.",
        "warning",
        logger_to_use,
        app_settings,
        indent=2,
    )

    install_error: Optional[Exception] = None
    try:
        updated = requirement.install_procedure(env_context)
        if updated is not None:
            env_context = updated
    except Exception as e:
        install_error = e
        log_map_server(
            f"{symbols.get('error', '❌')} Installing {name} failed: {e}",
            "error",
            logger_to_use,
            app_settings,
            indent=2,
        )

    if not requirement.is_present(env_context):
        log_map_server(
            f"{symbols.get('error', '❌')} {name} is still unavailable. It is required to continue.",
            "error",
            logger_to_use,
            app_settings,
        )
        raise ToolProvisioningError(
            f"Required tool '{name}' could not be installed."
        ) from install_error

    log_map_server(
        f"{symbols.get('success', '✅')} {name} installed.",
        "success",
        logger_to_use,
        app_settings,
        indent=2,
    )
    return env_context


def package_manager_procedure(
    packages: List[str],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    scratch_dir: Optional[Union[str, Path]] = None,
) -> InstallProcedure:
    """An install procedure that hands `packages` to the package manager."""

    def _install(env_context: EnvironmentContext) -> EnvironmentContext:
        result = run_command(
            list(app_settings.package_install_command) + list(packages),
            app_settings,
            current_logger,
            env_context=env_context,
            scratch_dir=scratch_dir,
        )
        if not result.succeeded:
            log_map_server(
                f"{app_settings.symbols.get('error', '❌')} Package manager could not install {', '.join(packages)} (rc {result.returncode}).",
                "error",
                current_logger,
                app_settings,
                indent=2,
            )
        return env_context

    return _install


def build_tool_requirement(
    spec: ToolSpec,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    scratch_dir: Optional[Union[str, Path]] = None,
) -> ToolRequirement:
    """Turn a configured ToolSpec into a package-manager backed requirement."""
    return ToolRequirement(
        command_name=spec.name,
        probe=ProbeKind.FIXED_PATH if spec.fixed_path else ProbeKind.ON_PATH,
        fixed_path=spec.fixed_path,
        install_procedure=package_manager_procedure(
            spec.packages or [spec.name],
            app_settings,
            current_logger,
            scratch_dir,
        ),
    )
