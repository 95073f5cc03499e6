# tests/common/test_file_utils.py
# -*- coding: utf-8 -*-
"""
Tests for resilient removal, archive extraction and directory moves.
"""

import io
import tarfile
import zipfile
from unittest.mock import MagicMock

import pytest

from common.command_utils import CommandResult
from common.file_utils import (
    ArchiveExtractionError,
    DirectoryRemovalError,
    extract_archive,
    flatten_single_subdirectory,
    move_directory_if_absent,
    remove_directory_recursive,
    rename_artifact,
)


class TestRemoveDirectoryRecursive:
    def test_missing_path_is_a_no_op(self, tmp_path, app_settings, mock_logger):
        sleep = MagicMock()
        remove_directory_recursive(tmp_path / "absent", 5, 2.0, app_settings, mock_logger, sleep=sleep)
        sleep.assert_not_called()
        mock_logger.warning.assert_not_called()

    def test_removes_a_populated_tree(self, tmp_path, app_settings, mock_logger):
        target = tmp_path / "ComfyUI"
        (target / "models" / "checkpoints").mkdir(parents=True)
        (target / "models" / "checkpoints" / "a.safetensors").write_bytes(b"0")
        readonly = target / "readonly.txt"
        readonly.write_text("x")
        readonly.chmod(0o444)

        remove_directory_recursive(target, 3, 0, app_settings, mock_logger)

        assert not target.exists()

    def test_succeeds_after_transient_failures(
        self, mocker, tmp_path, app_settings, mock_logger
    ):
        target = tmp_path / "locked"
        target.mkdir()
        rmtree = mocker.patch(
            "common.file_utils._rmtree",
            side_effect=[PermissionError("in use"), PermissionError("in use"), None],
        )
        sleep = MagicMock()

        remove_directory_recursive(target, 5, 2.0, app_settings, mock_logger, sleep=sleep)

        assert rmtree.call_count == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(2.0)
        assert mock_logger.warning.call_count == 2
        assert "Attempt 1/5" in mock_logger.warning.call_args_list[0].args[0]

    def test_gives_up_after_max_retries(
        self, mocker, tmp_path, app_settings, mock_logger
    ):
        target = tmp_path / "locked"
        target.mkdir()
        rmtree = mocker.patch(
            "common.file_utils._rmtree", side_effect=PermissionError("in use")
        )
        sleep = MagicMock()

        with pytest.raises(DirectoryRemovalError):
            remove_directory_recursive(target, 3, 1.5, app_settings, mock_logger, sleep=sleep)

        assert rmtree.call_count == 3
        # No pause after the final attempt.
        assert sleep.call_count == 2
        mock_logger.error.assert_called_once()


class TestExtractArchive:
    def test_zip_is_extracted(self, tmp_path, app_settings, mock_logger):
        archive = tmp_path / "aria2.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("aria2-1.37.0/aria2c", "binary")

        dest = extract_archive(archive, tmp_path / "out", app_settings, mock_logger)

        assert (dest / "aria2-1.37.0" / "aria2c").read_text() == "binary"

    def test_zip_member_outside_destination_is_rejected(
        self, tmp_path, app_settings, mock_logger
    ):
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("../escape.txt", "x")

        with pytest.raises(ArchiveExtractionError):
            extract_archive(archive, tmp_path / "out", app_settings, mock_logger)
        assert not (tmp_path / "escape.txt").exists()

    def test_tar_gz_is_extracted(self, tmp_path, app_settings, mock_logger):
        archive = tmp_path / "tool.tar.gz"
        payload = b"#!/bin/sh\n"
        with tarfile.open(archive, "w:gz") as tf:
            info = tarfile.TarInfo("tool/bin/tool")
            info.size = len(payload)
            tf.addfile(info, io.BytesIO(payload))

        dest = extract_archive(archive, tmp_path / "out", app_settings, mock_logger)

        assert (dest / "tool" / "bin" / "tool").read_bytes() == payload

    def test_7z_goes_through_the_process_runner(
        self, mocker, tmp_path, app_settings, mock_logger
    ):
        run = mocker.patch(
            "common.file_utils.run_command", return_value=CommandResult(returncode=0)
        )
        archive = tmp_path / "nodes.7z"
        archive.write_bytes(b"7z")

        dest = extract_archive(archive, tmp_path / "out", app_settings, mock_logger)

        assert run.call_args.args[0] == ["7z", "x", "-y", f"-o{dest}", str(archive)]

    def test_failing_7z_raises(self, mocker, tmp_path, app_settings, mock_logger):
        mocker.patch(
            "common.file_utils.run_command", return_value=CommandResult(returncode=2)
        )
        archive = tmp_path / "nodes.7z"
        archive.write_bytes(b"7z")

        with pytest.raises(ArchiveExtractionError):
            extract_archive(archive, tmp_path / "out", app_settings, mock_logger)

    def test_unknown_format_raises(self, tmp_path, app_settings, mock_logger):
        archive = tmp_path / "tool.rar"
        archive.write_bytes(b"rar")
        with pytest.raises(ArchiveExtractionError):
            extract_archive(archive, tmp_path / "out", app_settings, mock_logger)


def test_flatten_single_subdirectory(tmp_path):
    nested = tmp_path / "aria2-1.37.0"
    nested.mkdir()
    (nested / "aria2c").write_text("bin")
    # A child named like its parent folder must not collide during the move.
    (nested / "aria2-1.37.0").mkdir()

    assert flatten_single_subdirectory(tmp_path) is True
    assert (tmp_path / "aria2c").is_file()
    assert (tmp_path / "aria2-1.37.0").is_dir()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["aria2-1.37.0", "aria2c"]


def test_flatten_leaves_multi_entry_directories_alone(tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "b").write_text("x")
    assert flatten_single_subdirectory(tmp_path) is False


class TestMoveDirectoryIfAbsent:
    def test_moves_into_missing_destination(self, tmp_path, app_settings, mock_logger):
        src = tmp_path / "ComfyUI" / "models"
        src.mkdir(parents=True)
        (src / "a.bin").write_bytes(b"1")
        dst = tmp_path / "models"

        assert move_directory_if_absent(src, dst, app_settings, mock_logger)
        assert (dst / "a.bin").exists()
        assert not src.exists()

    def test_populated_destination_is_never_overwritten(
        self, tmp_path, app_settings, mock_logger
    ):
        src = tmp_path / "ComfyUI" / "models"
        src.mkdir(parents=True)
        (src / "new.bin").write_bytes(b"new")
        dst = tmp_path / "models"
        dst.mkdir()
        (dst / "mine.bin").write_bytes(b"keep")

        assert move_directory_if_absent(src, dst, app_settings, mock_logger) is False
        assert (dst / "mine.bin").read_bytes() == b"keep"
        assert not (dst / "new.bin").exists()
        assert src.exists()

    def test_empty_destination_is_replaced(self, tmp_path, app_settings, mock_logger):
        src = tmp_path / "src"
        src.mkdir()
        (src / "f").write_text("x")
        dst = tmp_path / "dst"
        dst.mkdir()

        assert move_directory_if_absent(src, dst, app_settings, mock_logger)
        assert (dst / "f").exists()

    def test_missing_source_is_skipped(self, tmp_path, app_settings, mock_logger):
        assert (
            move_directory_if_absent(tmp_path / "nope", tmp_path / "dst", app_settings, mock_logger)
            is False
        )
        assert not (tmp_path / "dst").exists()


def test_rename_artifact_keeps_existing_target(tmp_path, app_settings, mock_logger):
    src = tmp_path / "x%2By.whl"
    src.write_bytes(b"new")
    dst = tmp_path / "x+y.whl"

    assert rename_artifact(src, dst, app_settings, mock_logger) is True
    assert dst.read_bytes() == b"new"

    src.write_bytes(b"newer")
    assert rename_artifact(src, dst, app_settings, mock_logger) is False
    assert dst.read_bytes() == b"new"
