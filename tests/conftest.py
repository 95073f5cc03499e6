# tests/conftest.py
import logging
from unittest.mock import MagicMock

import pytest

from common.environment import EnvironmentContext
from provisioner.config_models import AppSettings
from provisioner.session import InstallSession


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch):
    """Keep MLSTACK_* variables of the developer's shell out of the tests."""
    import os

    for key in list(os.environ):
        if key.startswith("MLSTACK_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def app_settings():
    return AppSettings(removal={"max_retries": 3, "delay_seconds": 0})


@pytest.fixture
def mock_logger():
    """Mock logger instance."""
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def session(tmp_path, app_settings):
    return InstallSession.create(
        tmp_path / "install", tmp_path / "temp", app_settings
    )


@pytest.fixture
def empty_env():
    """An environment in which no command can be found."""
    return EnvironmentContext(path_entries=(), variables={})


@pytest.fixture
def restore_root_logging():
    """Undo setup_logging() changes to the root logger."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in saved_handlers:
            handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)
