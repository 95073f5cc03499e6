# provisioner/stages/dependencies.py
# -*- coding: utf-8 -*-
"""
Python package installation into the isolated runtime.

Covers the base dependency stage, the prebuilt accelerated components and
the artifact cache those components are installed from.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

from pydantic import BaseModel

from common.command_utils import log_map_server, run_command
from common.environment import EnvironmentContext
from common.file_utils import rename_artifact
from common.network_utils import DownloadTask, FetchError
from provisioner.config_models import AcceleratedComponent, AppSettings
from provisioner.session import InstallSession

module_logger = logging.getLogger(__name__)

_SUCCESSFULLY_INSTALLED = re.compile(r"Successfully installed (.+)")
_ALREADY_SATISFIED = re.compile(
    r"Requirement already satisfied: ([A-Za-z0-9._-]+)[^\n]*?\(([^)\s]+)\)"
)

PIP_ENVIRONMENT = {
    "PIP_DISABLE_PIP_VERSION_CHECK": "1",
    "PIP_NO_INPUT": "1",
}


class DependencyInstallError(Exception):
    """pip exited non-zero for a required install."""


class InstallResult(BaseModel):
    success: bool
    reported_version: Optional[str] = None


def canonical_name(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def parse_reported_version(output: str, package: str) -> Optional[str]:
    """
    Extract the version pip reports for `package`.

    Understands both "Successfully installed name-1.2.3 ..." and
    "Requirement already satisfied: name in /path (1.2.3)".
    """
    wanted = canonical_name(package)
    for match in _SUCCESSFULLY_INSTALLED.finditer(output):
        for token in match.group(1).split():
            name, sep, version = token.rpartition("-")
            if sep and canonical_name(name) == wanted:
                return version
    for match in _ALREADY_SATISFIED.finditer(output):
        if canonical_name(match.group(1)) == wanted:
            return match.group(2)
    return None


def pip_install(
    session: InstallSession,
    pip_args: List[str],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    env_context: Optional[EnvironmentContext] = None,
    package: Optional[str] = None,
) -> InstallResult:
    """Run `<venv python> -m pip install <pip_args>` without prompts."""
    pip_env = env_context if env_context is not None else EnvironmentContext.from_environ()
    for name, value in PIP_ENVIRONMENT.items():
        pip_env = pip_env.with_variable(name, value)
    result = run_command(
        [str(session.venv_python), "-m", "pip", "install"] + list(pip_args),
        app_settings,
        current_logger,
        env_context=pip_env,
        scratch_dir=session.scratch_dir,
    )
    version = (
        parse_reported_version(result.output, package)
        if package and result.succeeded
        else None
    )
    return InstallResult(success=result.succeeded, reported_version=version)


def _require(result: InstallResult, what: str, app_settings, logger) -> None:
    if result.success:
        return
    log_map_server(
        f"{app_settings.symbols.get('error', '❌')} pip could not install {what}.",
        "error",
        logger,
        app_settings,
    )
    raise DependencyInstallError(f"pip could not install {what}.")


def install_base_dependencies(
    session: InstallSession,
    context: Dict[str, Any],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Upgrade pip, install the configured extra packages, then the
    application's requirements file.

    Raises:
        DependencyInstallError: If any of these installs exits non-zero.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    env_context = context.get("env_context")
    runtime = app_settings.runtime

    upgrade = pip_install(
        session, ["--upgrade", "pip"], app_settings, logger_to_use, env_context
    )
    _require(upgrade, "pip", app_settings, logger_to_use)

    if runtime.extra_packages:
        extra_args = list(runtime.extra_packages)
        if runtime.pip_index_url:
            extra_args += ["--extra-index-url", runtime.pip_index_url]
        extras = pip_install(
            session, extra_args, app_settings, logger_to_use, env_context
        )
        _require(
            extras, ", ".join(runtime.extra_packages), app_settings, logger_to_use
        )

    requirements = session.app_dir / runtime.requirements_file
    if not requirements.is_file():
        log_map_server(
            f"{symbols.get('warning', '!')} {requirements} not found. No application requirements installed.",
            "warning",
            logger_to_use,
            app_settings,
        )
        return True

    installed = pip_install(
        session,
        ["-r", str(requirements)],
        app_settings,
        logger_to_use,
        env_context,
    )
    _require(installed, requirements.name, app_settings, logger_to_use)
    log_map_server(
        f"{symbols.get('success', '✅')} Base dependencies installed.",
        "success",
        logger_to_use,
        app_settings,
    )
    return True


def downloaded_name(url: str) -> str:
    """File name the fetcher stores a URL under (still URL-quoted)."""
    return Path(urlparse(url).path).name


def populate_artifact_cache(
    session: InstallSession,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    env_context: Optional[EnvironmentContext] = None,
) -> List[str]:
    """
    Pre-fetch the artifacts of every accelerated component that has a URL.

    A failed fetch is logged and the next artifact is attempted.

    Returns:
        Names of the components whose artifact could not be fetched.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    failed: List[str] = []
    cache = session.artifact_cache_dir

    for component in app_settings.accelerated_components:
        if not component.url:
            continue
        cached = cache / component.artifact
        if cached.exists() and not cached.with_name(cached.name + ".aria2").exists():
            log_map_server(
                f"{symbols.get('info', 'ℹ️')} {component.artifact} already cached.",
                "info",
                logger_to_use,
                app_settings,
                indent=2,
            )
            continue
        task = DownloadTask(
            source_uri=component.url,
            destination_path=cache / downloaded_name(component.url),
        )
        try:
            task.run(
                app_settings,
                logger_to_use,
                env_context=env_context,
                scratch_dir=session.scratch_dir,
            )
        except FetchError as e:
            failed.append(component.name)
            log_map_server(
                f"{symbols.get('error', '❌')} Could not cache {component.name}: {e}",
                "error",
                logger_to_use,
                app_settings,
                indent=2,
            )
    return failed


def post_process_artifacts(
    session: InstallSession,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> int:
    """Rename cached downloads (URL-quoted names) to their declared names."""
    renamed = 0
    cache = session.artifact_cache_dir
    for component in app_settings.accelerated_components:
        if not component.url:
            continue
        raw = downloaded_name(component.url)
        for candidate in (raw, unquote(raw)):
            if rename_artifact(
                cache / candidate,
                cache / component.artifact,
                app_settings,
                current_logger,
            ):
                renamed += 1
                break
    return renamed


def install_component(
    session: InstallSession,
    component: AcceleratedComponent,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
    env_context: Optional[EnvironmentContext] = None,
) -> Optional[InstallResult]:
    """
    Install one component from the cache.

    Returns:
        None if its artifact is missing, otherwise the install result.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    artifact = session.artifact_cache_dir / component.artifact

    if not artifact.is_file():
        log_map_server(
            f"{symbols.get('error', '❌')} {component.name}: artifact {artifact} is missing. Skipping.",
            "error",
            logger_to_use,
            app_settings,
            indent=2,
        )
        return None

    result = pip_install(
        session,
        [str(artifact)],
        app_settings,
        logger_to_use,
        env_context,
        package=component.package or component.name,
    )
    if not result.success:
        return result

    if result.reported_version:
        log_map_server(
            f"{symbols.get('success', '✅')} {component.name} {result.reported_version} installed.",
            "success",
            logger_to_use,
            app_settings,
            indent=2,
        )
    else:
        log_map_server(
            f"{symbols.get('error', '❌')} {component.name} installed, but pip did not report its version.",
            "error",
            logger_to_use,
            app_settings,
            indent=2,
        )
    return result


def install_accelerated_components(
    session: InstallSession,
    context: Dict[str, Any],
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> Dict[str, Optional[str]]:
    """
    Install every configured accelerated component.

    Returns:
        Mapping of installed component name to its reported version.

    Raises:
        DependencyInstallError: If a present artifact fails to install.
    """
    logger_to_use = current_logger if current_logger else module_logger
    env_context = context.get("env_context")

    if not app_settings.accelerated_components:
        log_map_server(
            "No accelerated components configured.",
            "info",
            logger_to_use,
            app_settings,
            indent=2,
        )
        return {}

    post_process_artifacts(session, app_settings, logger_to_use)

    installed: Dict[str, Optional[str]] = {}
    for component in app_settings.accelerated_components:
        result = install_component(
            session, component, app_settings, logger_to_use, env_context
        )
        if result is None:
            continue
        _require(result, component.name, app_settings, logger_to_use)
        installed[component.name] = result.reported_version
    return installed
