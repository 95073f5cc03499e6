# provisioner/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for application configuration.

This module defines the structured settings for the provisioner,
including defaults, type annotations, and descriptions.
It utilizes Pydantic for data validation and settings management.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from provisioner import config as static_config

SYMBOLS_DEFAULT: Dict[str, str] = dict(static_config.SYMBOLS)


class ToolSpec(BaseModel):
    """An external tool the session cannot proceed without."""

    name: str = Field(description="Command name used for the PATH lookup.")
    packages: List[str] = Field(
        default_factory=list,
        description="Packages handed to the package manager when the tool is missing. Defaults to [name].",
    )
    fixed_path: Optional[str] = Field(
        default=None,
        description="Probe this filesystem path instead of looking the command up on PATH.",
    )


class FastDownloaderSettings(BaseModel):
    """Settings for the optional multi-connection downloader."""

    command: str = Field(default=static_config.FAST_DOWNLOADER_COMMAND)
    release_url: str = Field(
        default=static_config.FAST_DOWNLOADER_RELEASE_URL_DEFAULT,
        description="Release archive fetched when the downloader is missing.",
    )
    install_dir: Optional[str] = Field(
        default=None,
        description="Where the downloader is unpacked. Defaults to <install_path>/tools/aria2.",
    )
    profile_file: str = Field(
        default=static_config.PROFILE_FILE_DEFAULT,
        description="Shell profile that receives the persistent PATH entry.",
    )
    required: bool = Field(
        default=True,
        description="Bootstrap the downloader when it is absent. When False a missing downloader only degrades downloads.",
    )


class RemovalSettings(BaseModel):
    """Retry policy for removing directories that may be locked."""

    max_retries: int = Field(
        default=static_config.REMOVAL_MAX_RETRIES_DEFAULT, ge=1
    )
    delay_seconds: float = Field(
        default=static_config.REMOVAL_DELAY_SECONDS_DEFAULT, ge=0
    )


class RuntimeSettings(BaseModel):
    """Interpreter and isolated runtime settings."""

    python_min_version: str = Field(
        default=static_config.PYTHON_MIN_VERSION_DEFAULT,
        description="Minimum interpreter version, as MAJOR.MINOR.",
    )
    python_packages: List[str] = Field(
        default_factory=lambda: ["python{version}", "python{version}-venv"],
        description="Packages installed when no suitable interpreter exists. Supports the {version} placeholder.",
    )
    venv_dir_name: str = Field(default=static_config.VENV_DIR_NAME_DEFAULT)
    requirements_file: str = Field(
        default=static_config.REQUIREMENTS_FILE_DEFAULT,
        description="Requirements file inside the application source.",
    )
    extra_packages: List[str] = Field(
        default_factory=list,
        description="Packages installed into the runtime before the requirements file.",
    )
    pip_index_url: Optional[str] = Field(
        default=None,
        description="Extra index URL passed to pip for the extra packages.",
    )


class AcceleratedComponent(BaseModel):
    """A prebuilt native package installed from the artifact cache."""

    name: str
    artifact: str = Field(description="File name inside the artifact cache.")
    url: Optional[str] = Field(
        default=None,
        description="Source used to pre-populate the artifact cache.",
    )
    package: Optional[str] = Field(
        default=None,
        description="Distribution name used when reporting the installed version. Defaults to name.",
    )


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="MLSTACK_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_repo_url: str = Field(
        default=static_config.APP_REPO_URL_DEFAULT,
        description="Git URL of the application source.",
    )
    app_dir_name: str = Field(
        default=static_config.APP_DIR_NAME_DEFAULT,
        description="Directory under the install path that receives the clone.",
    )
    preserved_folders: List[str] = Field(
        default_factory=lambda: list(static_config.PRESERVED_FOLDERS_DEFAULT),
        description="Folders moved from the fresh clone to the install path.",
    )
    plugins_dir: str = Field(
        default=static_config.PLUGINS_DIR_DEFAULT,
        description="Plugin directory, relative to the application source.",
    )
    plugin_manifest: Optional[str] = Field(
        default=None,
        description="Plugin manifest (YAML or CSV). Defaults to <install_path>/plugins.yaml.",
    )
    artifact_cache_dir: str = Field(
        default=static_config.ARTIFACT_CACHE_DIR_DEFAULT,
        description="Artifact cache, relative to the temp path.",
    )
    package_install_command: List[str] = Field(
        default_factory=lambda: list(
            static_config.PACKAGE_INSTALL_COMMAND_DEFAULT
        ),
        description="Package manager invocation; package names are appended.",
    )
    required_tools: List[ToolSpec] = Field(
        default_factory=lambda: [
            ToolSpec(name="git"),
            ToolSpec(name="7z", packages=["p7zip-full"]),
        ],
    )
    accelerated_components: List[AcceleratedComponent] = Field(
        default_factory=list
    )
    assume_yes: bool = Field(
        default=False,
        description="Confirm destructive prompts automatically.",
    )
    use_color: bool = Field(default=True)
    verbose: bool = Field(default=False)

    fast_downloader: FastDownloaderSettings = Field(
        default_factory=FastDownloaderSettings
    )
    removal: RemovalSettings = Field(default_factory=RemovalSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)

    symbols: Dict[str, str] = Field(
        default_factory=lambda: dict(SYMBOLS_DEFAULT)
    )
