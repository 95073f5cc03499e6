# provisioner/main_installer.py
# -*- coding: utf-8 -*-
"""
Main entry point for the ML stack provisioner.

Handles argument parsing, logging setup, and runs the provisioning stages in
order through the Orchestrator.
"""

import argparse
import logging
import sys
from typing import List, Optional

from common.command_utils import log_map_server
from common.environment import EnvironmentContext
from common.logging_config import setup_logging
from common.orchestrator import Orchestrator
from provisioner import config as static_config
from provisioner.cli_handler import ConfirmPrompt, cli_prompt_for_confirmation
from provisioner.config_loader import load_app_settings
from provisioner.config_models import AppSettings
from provisioner.session import InstallSession
from provisioner.stages.application_source import acquire_application_source
from provisioner.stages.bootstrap_tools import bootstrap_tools
from provisioner.stages.dependencies import (
    install_accelerated_components,
    install_base_dependencies,
)
from provisioner.stages.folder_migration import migrate_preserved_folders
from provisioner.stages.plugins import install_plugin_manifest
from provisioner.stages.runtime import create_isolated_runtime

logger = logging.getLogger("provisioner")

CONFIG_ERROR_EXIT_CODE = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Provision a machine-learning application stack: tools, source, runtime, accelerated packages and plugins.",
        epilog="Example: python3 install.py /opt/mlstack /tmp/mlstack --yes",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "install_path", help="Root directory of the installation."
    )
    parser.add_argument(
        "temp_path", help="Directory for downloads and the artifact cache."
    )
    parser.add_argument(
        "--config", default=None, help="YAML configuration file."
    )
    parser.add_argument(
        "--plugin-manifest",
        default=None,
        help="Plugin manifest (YAML or CSV). Defaults to <install_path>/plugins.yaml.",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Assume 'yes' for every confirmation prompt.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging."
    )
    parser.add_argument(
        "--no-color", action="store_true", help="Disable coloured console output."
    )
    return parser.parse_args(argv)


def build_orchestrator(
    session: InstallSession,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    prompt: ConfirmPrompt = cli_prompt_for_confirmation,
    env_context: Optional[EnvironmentContext] = None,
) -> Orchestrator:
    """Queue every provisioning stage, in order. All stages are fatal."""
    logger_to_use = current_logger if current_logger else logger
    orchestrator = Orchestrator(
        app_settings,
        logger_to_use,
        context={
            "env_context": env_context or EnvironmentContext.from_environ()
        },
    )
    stage_kwargs = {"current_logger": logger_to_use}

    orchestrator.add_task(
        "bootstrap-tools", bootstrap_tools, [session], dict(stage_kwargs)
    )
    orchestrator.add_task(
        "acquire-application-source",
        acquire_application_source,
        [session],
        dict(stage_kwargs, prompt=prompt),
    )
    orchestrator.add_task(
        "create-isolated-runtime",
        create_isolated_runtime,
        [session],
        dict(stage_kwargs),
    )
    orchestrator.add_task(
        "migrate-preserved-folders",
        migrate_preserved_folders,
        [session],
        dict(stage_kwargs),
    )
    orchestrator.add_task(
        "install-base-dependencies",
        install_base_dependencies,
        [session],
        dict(stage_kwargs),
    )
    orchestrator.add_task(
        "install-accelerated-components",
        install_accelerated_components,
        [session],
        dict(stage_kwargs),
    )
    orchestrator.add_task(
        "install-plugin-manifest",
        install_plugin_manifest,
        [session],
        dict(stage_kwargs),
    )
    return orchestrator


def run_session(
    install_path: str,
    temp_path: str,
    app_settings: AppSettings,
    prompt: ConfirmPrompt = cli_prompt_for_confirmation,
    env_context: Optional[EnvironmentContext] = None,
) -> int:
    """
    Run one provisioning session.

    Returns:
        0 once the final stage has completed. A fatal stage failure exits the
        process with status 1 from inside the orchestrator.
    """
    session = InstallSession.create(install_path, temp_path, app_settings)
    setup_logging(
        log_file=session.log_file,
        log_level=logging.DEBUG if app_settings.verbose else logging.INFO,
        use_color=app_settings.use_color,
    )
    session.temp_path.mkdir(parents=True, exist_ok=True)

    symbols = app_settings.symbols
    log_map_server(
        f"{symbols.get('rocket', '🚀')} ML stack provisioner {static_config.SCRIPT_VERSION}",
        "info",
        logger,
        app_settings,
    )
    log_map_server(
        f"Install path: {session.install_path} | Temp path: {session.temp_path}",
        "info",
        logger,
        app_settings,
    )

    orchestrator = build_orchestrator(
        session, app_settings, logger, prompt, env_context
    )
    orchestrator.run()
    log_map_server(
        f"{symbols.get('sparkles', '✨')} Installation complete. Log: {session.log_file}",
        "success",
        logger,
        app_settings,
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        app_settings = load_app_settings(args, args.config)
    except SystemExit as e:
        print(str(e), file=sys.stderr)
        return CONFIG_ERROR_EXIT_CODE
    return run_session(args.install_path, args.temp_path, app_settings)


if __name__ == "__main__":
    sys.exit(main())
