# tests/common/test_network_utils.py
# -*- coding: utf-8 -*-
"""
Tests for artifact fetching: idempotence, the fast path and its fallback.
"""

import ssl
from unittest.mock import MagicMock

import pytest
import requests

from common.command_utils import CommandResult
from common.network_utils import (
    FetchError,
    ModernTLSAdapter,
    build_ssl_context,
    DownloadTask,
    create_http_session,
    download_file,
    fetch_artifact,
)


def _http_session(chunks=(b"abc", b"def"), error=None):
    response = MagicMock()
    response.iter_content.return_value = list(chunks)
    if error is not None:
        response.raise_for_status.side_effect = error
    http = MagicMock(spec=requests.Session)
    http.get.return_value.__enter__.return_value = response
    return http


def test_ssl_context_refuses_pre_tls12():
    context = build_ssl_context()
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2
    assert context.verify_mode == ssl.CERT_REQUIRED


def test_http_session_mounts_tls_adapter_with_retries():
    http = create_http_session()
    adapter = http.get_adapter("https://example.org/file.whl")
    assert isinstance(adapter, ModernTLSAdapter)
    assert adapter.max_retries.total == 3
    assert 503 in adapter.max_retries.status_forcelist
    assert http.headers["User-Agent"].startswith("mlstack-provisioner/")


def test_download_file_writes_complete_file(tmp_path, app_settings, mock_logger):
    dest = tmp_path / "cache" / "pkg.whl"
    http = _http_session()

    download_file("https://example.org/pkg.whl", dest, app_settings, mock_logger, http)

    assert dest.read_bytes() == b"abcdef"
    assert not (tmp_path / "cache" / "pkg.whl.part").exists()
    http.close.assert_not_called()


def test_download_file_failure_leaves_nothing_behind(
    tmp_path, app_settings, mock_logger
):
    dest = tmp_path / "pkg.whl"
    http = _http_session(error=requests.HTTPError("404 Client Error"))

    with pytest.raises(FetchError):
        download_file("https://example.org/pkg.whl", dest, app_settings, mock_logger, http)

    assert list(tmp_path.iterdir()) == []
    mock_logger.error.assert_called_once()


def test_fetch_skips_existing_destination(mocker, tmp_path, app_settings, mock_logger):
    dest = tmp_path / "pkg.whl"
    dest.write_bytes(b"cached")
    run = mocker.patch("common.network_utils.run_command")
    http = _http_session()

    fetched = fetch_artifact(
        "https://example.org/pkg.whl", dest, app_settings, mock_logger, session=http
    )

    assert fetched is False
    assert dest.read_bytes() == b"cached"
    run.assert_not_called()
    http.get.assert_not_called()


def test_fetch_falls_back_when_downloader_absent(
    tmp_path, app_settings, mock_logger, empty_env
):
    dest = tmp_path / "pkg.whl"
    http = _http_session()

    fetched = fetch_artifact(
        "https://example.org/pkg.whl",
        dest,
        app_settings,
        mock_logger,
        env_context=empty_env,
        session=http,
    )

    assert fetched is True
    assert dest.read_bytes() == b"abcdef"


def test_fetch_prefers_fast_downloader(mocker, tmp_path, app_settings, mock_logger):
    dest = tmp_path / "pkg.whl"
    mocker.patch("common.network_utils.command_exists", return_value=True)

    def _aria2(spec, *args, **kwargs):
        dest.write_bytes(b"fast")
        return CommandResult(returncode=0)

    run = mocker.patch("common.network_utils.run_command", side_effect=_aria2)
    http = _http_session()

    assert fetch_artifact("https://example.org/pkg.whl", dest, app_settings, mock_logger, session=http)

    argv = run.call_args.args[0].argv()
    assert argv[0] == "aria2c"
    assert "--min-tls-version=TLSv1.2" in argv
    assert argv[argv.index("-x") + 1] == "16"
    http.get.assert_not_called()
    assert dest.read_bytes() == b"fast"


def test_failed_fast_download_is_discarded_before_fallback(
    mocker, tmp_path, app_settings, mock_logger
):
    dest = tmp_path / "pkg.whl"
    control = tmp_path / "pkg.whl.aria2"
    mocker.patch("common.network_utils.command_exists", return_value=True)

    def _interrupted(spec, *args, **kwargs):
        dest.write_bytes(b"par")
        control.write_bytes(b"state")
        return CommandResult(returncode=7)

    mocker.patch("common.network_utils.run_command", side_effect=_interrupted)
    http = _http_session()

    assert fetch_artifact("https://example.org/pkg.whl", dest, app_settings, mock_logger, session=http)

    http.get.assert_called_once()
    assert dest.read_bytes() == b"abcdef"
    assert not control.exists()


def test_fast_download_is_skipped_when_not_allowed(
    mocker, tmp_path, app_settings, mock_logger
):
    run = mocker.patch("common.network_utils.run_command")
    mocker.patch("common.network_utils.command_exists", return_value=True)

    fetch_artifact(
        "https://example.org/aria2.zip",
        tmp_path / "aria2.zip",
        app_settings,
        mock_logger,
        allow_fast=False,
        session=_http_session(),
    )

    run.assert_not_called()


def test_download_task_is_a_no_op_once_complete(tmp_path, app_settings, mock_logger, empty_env, mocker):
    dest = tmp_path / "pkg.whl"
    http = _http_session()
    mocker.patch("common.network_utils.create_http_session", return_value=http)
    task = DownloadTask(source_uri="https://example.org/pkg.whl", destination_path=dest)

    assert task.run(app_settings, mock_logger, env_context=empty_env) is True
    assert task.run(app_settings, mock_logger, env_context=empty_env) is False
    assert http.get.call_count == 1


def test_fetch_resumes_download_left_by_interrupted_downloader(
    mocker, tmp_path, app_settings, mock_logger
):
    dest = tmp_path / "torch.whl"
    control = tmp_path / "torch.whl.aria2"
    dest.write_bytes(b"\0" * 8)
    control.write_bytes(b"state")
    mocker.patch("common.network_utils.command_exists", return_value=True)

    def _resume(spec, *args, **kwargs):
        assert "--continue=true" in spec.argv()
        dest.write_bytes(b"complete")
        control.unlink()
        return CommandResult(returncode=0)

    run = mocker.patch("common.network_utils.run_command", side_effect=_resume)
    http = _http_session()

    fetched = fetch_artifact(
        "https://example.org/torch.whl", dest, app_settings, mock_logger, session=http
    )

    assert fetched is True
    run.assert_called_once()
    http.get.assert_not_called()
    assert dest.read_bytes() == b"complete"


def test_incomplete_download_is_replaced_when_downloader_absent(
    tmp_path, app_settings, mock_logger, empty_env
):
    dest = tmp_path / "torch.whl"
    control = tmp_path / "torch.whl.aria2"
    dest.write_bytes(b"\0" * 8)
    control.write_bytes(b"state")
    http = _http_session()

    fetched = fetch_artifact(
        "https://example.org/torch.whl",
        dest,
        app_settings,
        mock_logger,
        env_context=empty_env,
        session=http,
    )

    assert fetched is True
    http.get.assert_called_once()
    assert dest.read_bytes() == b"abcdef"
    assert not control.exists()
