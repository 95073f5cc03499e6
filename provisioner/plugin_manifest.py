# provisioner/plugin_manifest.py
# -*- coding: utf-8 -*-
"""
Reader for the plugin manifest.

The manifest is external data: rows of (name, repository URL, optional
subfolder, optional dependency file). It may be YAML, either a list of
mappings or a mapping with a ``plugins`` list, or CSV with the header
``name,url,subfolder,requirements``.
"""

import csv
import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

module_logger = logging.getLogger(__name__)


class PluginManifestEntry(BaseModel):
    name: str
    source_repo_url: str = Field(
        validation_alias=AliasChoices("url", "source_repo_url", "repo")
    )
    subfolder: Optional[str] = None
    dependency_file: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "requirements", "dependency_file", "dependencies"
        ),
    )

    @field_validator("subfolder", "dependency_file", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @property
    def install_dir_name(self) -> str:
        return self.subfolder or self.name


def _rows_from_yaml(path: Path) -> Iterable[Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("plugins", [])
    if not isinstance(data, list):
        raise ValueError(
            f"Plugin manifest {path} must hold a list of plugins."
        )
    return data


def _rows_from_csv(path: Path) -> Iterable[Any]:
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        return [
            {k.strip(): v for k, v in row.items() if k}
            for row in csv.DictReader(f)
        ]


def load_plugin_manifest(
    manifest_path: Union[str, Path],
    current_logger: Optional[logging.Logger] = None,
) -> List[PluginManifestEntry]:
    """
    Parse the manifest into entries, in file order.

    Rows that are not valid entries are logged and skipped.

    Raises:
        ValueError: If the file's overall structure is wrong.
        yaml.YAMLError: If a YAML manifest cannot be parsed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    path = Path(manifest_path)
    if path.suffix.lower() == ".csv":
        rows = _rows_from_csv(path)
    else:
        rows = _rows_from_yaml(path)

    entries: List[PluginManifestEntry] = []
    for index, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            logger_to_use.warning(
                f"Plugin manifest row {index} is not a mapping. Skipping."
            )
            continue
        try:
            entries.append(PluginManifestEntry.model_validate(row))
        except ValidationError as e:
            logger_to_use.warning(
                f"Plugin manifest row {index} is invalid and was skipped: {e}"
            )
    return entries
