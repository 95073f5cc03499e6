# provisioner/stages/plugins.py
# -*- coding: utf-8 -*-
"""
Stage: install the plugins listed in the plugin manifest.
"""

import logging
from typing import Any, Dict, List, Optional

import yaml

from common.command_utils import log_map_server, run_command
from provisioner.config_models import AppSettings
from provisioner.plugin_manifest import PluginManifestEntry, load_plugin_manifest
from provisioner.session import InstallSession
from provisioner.stages.dependencies import pip_install

module_logger = logging.getLogger(__name__)


def install_plugin(
    session: InstallSession,
    entry: PluginManifestEntry,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    env_context=None,
) -> bool:
    """
    Clone one plugin and install its dependency file.

    Returns:
        True if the plugin was cloned now. Failures are logged, never raised.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    target = session.plugins_dir / entry.install_dir_name

    if target.exists():
        log_map_server(
            f"{symbols.get('info', 'ℹ️')} {entry.name}: already present in {target}, skipping.",
            "info",
            logger_to_use,
            app_settings,
            indent=2,
        )
        return False

    session.plugins_dir.mkdir(parents=True, exist_ok=True)
    cloned = run_command(
        ["git", "clone", entry.source_repo_url, str(target)],
        app_settings,
        logger_to_use,
        env_context=env_context,
        scratch_dir=session.scratch_dir,
    )
    if not cloned.succeeded:
        log_map_server(
            f"{symbols.get('error', '❌')} {entry.name}: clone of {entry.source_repo_url} failed (rc {cloned.returncode}).",
            "error",
            logger_to_use,
            app_settings,
            indent=2,
        )
        return False

    if entry.dependency_file:
        dependency_file = target / entry.dependency_file
        if not dependency_file.is_file():
            log_map_server(
                f"{symbols.get('warning', '!')} {entry.name}: {entry.dependency_file} not found in the plugin.",
                "warning",
                logger_to_use,
                app_settings,
                indent=2,
            )
        elif not pip_install(
            session,
            ["-r", str(dependency_file)],
            app_settings,
            logger_to_use,
            env_context,
        ).success:
            log_map_server(
                f"{symbols.get('error', '❌')} {entry.name}: installing {entry.dependency_file} failed.",
                "error",
                logger_to_use,
                app_settings,
                indent=2,
            )

    log_map_server(
        f"{symbols.get('success', '✅')} {entry.name} installed.",
        "success",
        logger_to_use,
        app_settings,
        indent=2,
    )
    return True


def install_plugin_manifest(
    session: InstallSession,
    context: Dict[str, Any],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> List[str]:
    """Returns the names of the plugins cloned in this run."""
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    manifest = session.plugin_manifest

    if not manifest.is_file():
        log_map_server(
            f"{symbols.get('info', 'ℹ️')} No plugin manifest at {manifest}. Skipping plugins.",
            "info",
            logger_to_use,
            app_settings,
        )
        return []

    try:
        entries = load_plugin_manifest(manifest, logger_to_use)
    except (OSError, ValueError, yaml.YAMLError) as e:
        log_map_server(
            f"{symbols.get('error', '❌')} Could not read plugin manifest {manifest}: {e}",
            "error",
            logger_to_use,
            app_settings,
        )
        return []

    cloned: List[str] = []
    for entry in entries:
        if install_plugin(
            session,
            entry,
            app_settings,
            logger_to_use,
            context.get("env_context"),
        ):
            cloned.append(entry.name)
    return cloned
