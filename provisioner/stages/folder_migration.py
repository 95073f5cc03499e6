# provisioner/stages/folder_migration.py
# -*- coding: utf-8 -*-
"""
Stage: move preserved folders out of the fresh clone into the install root,
where a later re-install (which replaces the clone) leaves them alone.
"""

import logging
from typing import Any, Dict, List, Optional

from common.command_utils import log_map_server
from common.file_utils import move_directory_if_absent
from provisioner.config_models import AppSettings
from provisioner.session import InstallSession

module_logger = logging.getLogger(__name__)


def migrate_preserved_folders(
    session: InstallSession,
    context: Dict[str, Any],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> List[str]:
    """Returns the names of the folders that were moved."""
    logger_to_use = current_logger if current_logger else module_logger
    moved: List[str] = []

    for folder in app_settings.preserved_folders:
        if move_directory_if_absent(
            session.app_dir / folder,
            session.install_path / folder,
            app_settings,
            logger_to_use,
        ):
            moved.append(folder)

    log_map_server(
        f"Migrated {len(moved)} of {len(app_settings.preserved_folders)} preserved folders.",
        "info",
        logger_to_use,
        app_settings,
        indent=2,
    )
    return moved
