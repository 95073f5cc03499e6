# provisioner/session.py
# -*- coding: utf-8 -*-
"""
The per-run session record.

All paths are resolved to absolute, normalized form once, when the session is
created, and never change afterwards.
"""

import os
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from provisioner import config as static_config
from provisioner.config_models import AppSettings


def _normalize(path: Union[str, Path]) -> Path:
    return Path(os.path.abspath(os.path.expanduser(str(path))))


class InstallSession(BaseModel):
    """Install and temp roots plus every path derived from them."""

    model_config = ConfigDict(frozen=True)

    install_path: Path
    temp_path: Path
    log_path: Path
    log_file: Path
    app_dir: Path
    venv_dir: Path
    artifact_cache_dir: Path
    plugins_dir: Path
    plugin_manifest: Path
    tools_dir: Path

    @classmethod
    def create(
        cls,
        install_path: Union[str, Path],
        temp_path: Union[str, Path],
        app_settings: Optional[AppSettings] = None,
    ) -> "InstallSession":
        settings = app_settings or AppSettings()
        install = _normalize(install_path)
        temp = _normalize(temp_path)
        log_path = install / static_config.LOG_DIR_NAME
        app_dir = install / settings.app_dir_name
        manifest = (
            _normalize(settings.plugin_manifest)
            if settings.plugin_manifest
            else install / static_config.PLUGIN_MANIFEST_FILE_DEFAULT
        )
        return cls(
            install_path=install,
            temp_path=temp,
            log_path=log_path,
            log_file=log_path / static_config.LOG_FILE_NAME,
            app_dir=app_dir,
            venv_dir=app_dir / settings.runtime.venv_dir_name,
            artifact_cache_dir=temp / settings.artifact_cache_dir,
            plugins_dir=app_dir / settings.plugins_dir,
            plugin_manifest=manifest,
            tools_dir=install / "tools",
        )

    @property
    def venv_python(self) -> Path:
        if os.name == "nt":
            return self.venv_dir / "Scripts" / "python.exe"
        return self.venv_dir / "bin" / "python"

    @property
    def scratch_dir(self) -> Path:
        """Where the process runner keeps its capture files."""
        return self.temp_path / "scratch"
