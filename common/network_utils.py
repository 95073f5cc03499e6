# common/network_utils.py
# -*- coding: utf-8 -*-
"""
Retrieval of remote artifacts.

`fetch_artifact` is idempotent: a destination that already exists is never
downloaded again. When the multi-connection downloader (aria2c) can be found
it is used through the process runner; otherwise, or if it fails, the file is
streamed with a single `requests` GET. Both paths refuse anything older than
TLS 1.2.
"""

import logging
import os
import ssl
from pathlib import Path
from typing import Optional, Union

import requests
from pydantic import BaseModel
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from common.command_utils import (
    CommandSpec,
    command_exists,
    log_map_server,
    run_command,
)
from common.environment import EnvironmentContext
from provisioner import config as static_config
from provisioner.config_models import SYMBOLS_DEFAULT, AppSettings

module_logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Raised when an artifact could not be retrieved by any path."""


def build_ssl_context() -> ssl.SSLContext:
    """A verifying client context that negotiates TLS 1.2 or newer only."""
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


class ModernTLSAdapter(HTTPAdapter):
    """HTTPAdapter whose connection pools use `build_ssl_context()`."""

    def __init__(self, *args, **kwargs):
        # init_poolmanager runs inside HTTPAdapter.__init__.
        self._ssl_context = build_ssl_context()
        super().__init__(*args, **kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["ssl_context"] = self._ssl_context
        return super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args, **kwargs):
        kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(*args, **kwargs)


def create_http_session() -> requests.Session:
    """
    Build a session with bounded retries on connection errors and
    transient HTTP statuses.
    """
    retry = Retry(
        total=static_config.HTTP_RETRY_TOTAL,
        backoff_factor=static_config.HTTP_RETRY_BACKOFF,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["GET", "HEAD"]),
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = ModernTLSAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": static_config.USER_AGENT})
    return session


def download_file(
    uri: str,
    destination: Union[str, Path],
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
    session: Optional[requests.Session] = None,
) -> None:
    """
    Stream `uri` to `destination` over a single connection.

    The body is written to `<destination>.part` and renamed into place only
    once complete, so an interrupted transfer never looks like a finished one.

    Raises:
        FetchError: On any HTTP, connection or file I/O failure.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols if app_settings else SYMBOLS_DEFAULT
    destination = Path(destination)
    partial = destination.with_name(destination.name + ".part")
    http = session if session is not None else create_http_session()

    log_map_server(
        f"{symbols.get('package', '📦')} Downloading {uri}",
        "info",
        logger_to_use,
        app_settings,
        indent=2,
    )
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with http.get(
            uri, stream=True, timeout=static_config.HTTP_TIMEOUT_SECONDS
        ) as response:
            response.raise_for_status()
            with open(partial, "wb") as f:
                for chunk in response.iter_content(
                    chunk_size=static_config.HTTP_CHUNK_SIZE
                ):
                    if chunk:
                        f.write(chunk)
        os.replace(partial, destination)
    except (requests.exceptions.RequestException, OSError) as e:
        partial.unlink(missing_ok=True)
        log_map_server(
            f"{symbols.get('error', '❌')} Download of {uri} failed: {e}",
            "error",
            logger_to_use,
            app_settings,
            indent=2,
        )
        raise FetchError(f"Download of {uri} failed: {e}") from e
    finally:
        if session is None:
            http.close()

    log_map_server(
        f"{symbols.get('success', '✅')} Saved {destination}",
        "success",
        logger_to_use,
        app_settings,
        indent=2,
    )


def _discard_partial_fast_download(destination: Path) -> None:
    destination.with_name(destination.name + ".aria2").unlink(missing_ok=True)
    destination.unlink(missing_ok=True)


def _fast_download(
    uri: str,
    destination: Path,
    app_settings: Optional[AppSettings],
    current_logger: Optional[logging.Logger],
    env_context: Optional[EnvironmentContext],
    scratch_dir: Optional[Union[str, Path]],
) -> bool:
    """Try the multi-connection downloader; False means 'use the plain path'."""
    symbols = app_settings.symbols if app_settings else SYMBOLS_DEFAULT
    downloader = (
        app_settings.fast_downloader.command
        if app_settings
        else static_config.FAST_DOWNLOADER_COMMAND
    )

    if not command_exists(downloader, env_context):
        log_map_server(
            f"{symbols.get('info', 'ℹ️')} {downloader} not available, using a single-connection download.",
            "info",
            current_logger,
            app_settings,
            indent=2,
        )
        return False

    spec = CommandSpec(
        executable=downloader,
        args=[
            "-x", str(static_config.FAST_DOWNLOADER_CONNECTIONS),
            "-s", str(static_config.FAST_DOWNLOADER_SPLITS),
            "-k", static_config.FAST_DOWNLOADER_MIN_SPLIT_SIZE,
            "--disable-ipv6=true",
            "--continue=true",
            "--min-tls-version=TLSv1.2",
            "--summary-interval=0",
            "--console-log-level=warn",
            "-d", str(destination.parent),
            "-o", destination.name,
            uri,
        ],
    )
    destination.parent.mkdir(parents=True, exist_ok=True)
    result = run_command(
        spec,
        app_settings,
        current_logger,
        env_context=env_context,
        scratch_dir=scratch_dir,
    )
    control_file = destination.with_name(destination.name + ".aria2")
    if result.succeeded and destination.exists() and not control_file.exists():
        return True

    log_map_server(
        f"{symbols.get('warning', '!')} {downloader} did not complete {destination.name} (rc {result.returncode}); falling back to a single-connection download.",
        "warning",
        current_logger,
        app_settings,
        indent=2,
    )
    _discard_partial_fast_download(destination)
    return False


def fetch_artifact(
    uri: str,
    destination: Union[str, Path],
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
    env_context: Optional[EnvironmentContext] = None,
    allow_fast: bool = True,
    scratch_dir: Optional[Union[str, Path]] = None,
    session: Optional[requests.Session] = None,
) -> bool:
    """
    Retrieve `uri` to `destination` unless it is already there.

    Args:
        uri: Source URL.
        destination: Local file path.
        app_settings: Application settings (symbols, downloader command).
        current_logger: Logger to use.
        env_context: Environment used to look up and run the fast downloader.
        allow_fast: Set False to force the single-connection path, e.g. while
            the fast downloader itself is being installed.
        scratch_dir: Scratch directory for the process runner.
        session: Optional requests session for the plain path.

    Returns:
        True if a transfer happened, False if a complete copy already existed.

    Raises:
        FetchError: If the plain path fails.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols if app_settings else SYMBOLS_DEFAULT
    destination = Path(destination)
    control_file = destination.with_name(destination.name + ".aria2")

    if destination.exists() and not control_file.exists():
        log_map_server(
            f"{symbols.get('info', 'ℹ️')} {destination.name} already present, skipping download.",
            "info",
            logger_to_use,
            app_settings,
            indent=2,
        )
        return False

    if control_file.exists():
        log_map_server(
            f"{symbols.get('info', 'ℹ️')} {destination.name} is incomplete, resuming download.",
            "info",
            logger_to_use,
            app_settings,
            indent=2,
        )

    if allow_fast and _fast_download(
        uri,
        destination,
        app_settings,
        logger_to_use,
        env_context,
        scratch_dir,
    ):
        log_map_server(
            f"{symbols.get('success', '✅')} Saved {destination}",
            "success",
            logger_to_use,
            app_settings,
            indent=2,
        )
        return True

    _discard_partial_fast_download(destination)
    download_file(uri, destination, app_settings, logger_to_use, session)
    return True


class DownloadTask(BaseModel):
    """One artifact to retrieve. Running it again once the file exists does nothing."""

    source_uri: str
    destination_path: Path

    def run(
        self,
        app_settings: Optional[AppSettings] = None,
        current_logger: Optional[logging.Logger] = None,
        env_context: Optional[EnvironmentContext] = None,
        scratch_dir: Optional[Union[str, Path]] = None,
    ) -> bool:
        return fetch_artifact(
            self.source_uri,
            self.destination_path,
            app_settings,
            current_logger,
            env_context=env_context,
            scratch_dir=scratch_dir,
        )
