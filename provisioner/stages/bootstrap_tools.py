# provisioner/stages/bootstrap_tools.py
# -*- coding: utf-8 -*-
"""
Stage: make sure every external tool the later stages call is available,
then pre-populate the artifact cache.
"""

import logging
from typing import Any, Dict, Optional

from common.environment import EnvironmentContext
from provisioner.config_models import AppSettings
from provisioner.fast_downloader import fast_downloader_requirement
from provisioner.session import InstallSession
from provisioner.stages.dependencies import populate_artifact_cache
from provisioner.tool_provisioner import build_tool_requirement, ensure_tool

module_logger = logging.getLogger(__name__)


def bootstrap_tools(
    session: InstallSession,
    context: Dict[str, Any],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> EnvironmentContext:
    """
    Ensure the fast downloader and the configured tools, in that order.

    The resulting environment is stored in ``context["env_context"]`` for
    the stages that follow.

    Raises:
        ToolProvisioningError: A tool could not be provisioned.
    """
    logger_to_use = current_logger if current_logger else module_logger
    env_context = context.get("env_context")
    if env_context is None:
        env_context = EnvironmentContext.from_environ()

    if app_settings.fast_downloader.required:
        env_context = ensure_tool(
            fast_downloader_requirement(session, app_settings, logger_to_use),
            env_context,
            app_settings,
            logger_to_use,
        )

    for spec in app_settings.required_tools:
        env_context = ensure_tool(
            build_tool_requirement(
                spec, app_settings, logger_to_use, session.scratch_dir
            ),
            env_context,
            app_settings,
            logger_to_use,
        )

    context["env_context"] = env_context
    populate_artifact_cache(session, app_settings, logger_to_use, env_context)
    return env_context
