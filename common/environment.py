# common/environment.py
# -*- coding: utf-8 -*-
"""
An explicit, immutable view of the environment used for spawned commands.

Tools installed during a session must be visible to the steps that follow
without touching ``os.environ``. Each mutator returns a new context, which
callers thread through the session and pass to the process runner.
"""

import os
import shutil
from typing import Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class EnvironmentContext(BaseModel):
    """PATH entries plus the remaining environment variables."""

    model_config = ConfigDict(frozen=True)

    path_entries: Tuple[str, ...] = Field(default_factory=tuple)
    variables: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_environ(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> "EnvironmentContext":
        """Snapshot a mapping (``os.environ`` by default) into a context."""
        source = dict(os.environ if environ is None else environ)
        path_value = source.pop("PATH", "")
        entries = tuple(p for p in path_value.split(os.pathsep) if p)
        return cls(path_entries=entries, variables=source)

    @property
    def path(self) -> str:
        return os.pathsep.join(self.path_entries)

    def has_path_entry(self, directory: str) -> bool:
        normalized = os.path.normpath(directory)
        return any(
            os.path.normpath(entry) == normalized
            for entry in self.path_entries
        )

    def with_path_entry(
        self, directory: str, prepend: bool = False
    ) -> "EnvironmentContext":
        """Return a context whose PATH contains `directory` exactly once."""
        if self.has_path_entry(directory):
            return self
        if prepend:
            entries = (directory,) + self.path_entries
        else:
            entries = self.path_entries + (directory,)
        return self.model_copy(update={"path_entries": entries})

    def with_variable(self, name: str, value: str) -> "EnvironmentContext":
        if name == "PATH":
            raise ValueError("Use with_path_entry() to change PATH.")
        variables = dict(self.variables)
        variables[name] = value
        return self.model_copy(update={"variables": variables})

    def which(self, command_name: str) -> Optional[str]:
        """Command lookup against this context's PATH."""
        return shutil.which(command_name, path=self.path)

    def as_env(self) -> Dict[str, str]:
        """The environment mapping handed to child processes."""
        env = dict(self.variables)
        env["PATH"] = self.path
        return env
