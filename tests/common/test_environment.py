# tests/common/test_environment.py
import os

import pytest

from common.environment import EnvironmentContext


def test_from_environ_splits_path():
    env = EnvironmentContext.from_environ(
        {"PATH": os.pathsep.join(["/usr/bin", "", "/bin"]), "HOME": "/root"}
    )
    assert env.path_entries == ("/usr/bin", "/bin")
    assert env.variables == {"HOME": "/root"}


def test_with_path_entry_returns_new_context_without_duplicates():
    env = EnvironmentContext(path_entries=("/usr/bin",))
    updated = env.with_path_entry("/opt/aria2")

    assert env.path_entries == ("/usr/bin",)
    assert updated.path_entries == ("/usr/bin", "/opt/aria2")
    assert updated.with_path_entry("/opt/aria2/") is updated
    assert updated.with_path_entry("/first", prepend=True).path_entries[0] == "/first"


def test_path_is_changed_only_through_with_path_entry():
    env = EnvironmentContext()
    with pytest.raises(ValueError):
        env.with_variable("PATH", "/x")
    assert env.with_variable("LANG", "C").as_env() == {"LANG": "C", "PATH": ""}


def test_os_environ_is_untouched(monkeypatch):
    monkeypatch.setenv("PATH", "/usr/bin")
    EnvironmentContext.from_environ().with_path_entry("/opt/new-tool")
    assert os.environ["PATH"] == "/usr/bin"
