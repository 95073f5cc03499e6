"""
Provisioning stages.

Each stage is a plain function ``stage(session, context, app_settings,
current_logger=None)`` queued on the Orchestrator by the main installer.
"""

from provisioner.stages.application_source import acquire_application_source
from provisioner.stages.bootstrap_tools import bootstrap_tools
from provisioner.stages.dependencies import (
    install_accelerated_components,
    install_base_dependencies,
)
from provisioner.stages.folder_migration import migrate_preserved_folders
from provisioner.stages.plugins import install_plugin_manifest
from provisioner.stages.runtime import create_isolated_runtime

__all__ = [
    "bootstrap_tools",
    "acquire_application_source",
    "create_isolated_runtime",
    "migrate_preserved_folders",
    "install_base_dependencies",
    "install_accelerated_components",
    "install_plugin_manifest",
]
