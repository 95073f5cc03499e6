# provisioner/config.py
"""
Centralized constants and default values for the ML stack provisioner.

This module defines the static values the settings models fall back to:
script version, log layout, default repository and release URLs, the
fast-downloader parameters, and the logging symbols.
"""

# Represents the version of the provisioning logic.
SCRIPT_VERSION: str = "2.1.0"

# --- Log layout (relative to the install path) ---
LOG_DIR_NAME: str = "logs"
LOG_FILE_NAME: str = "install_log.txt"
LOG_TIMESTAMP_FORMAT: str = "%Y-%m-%d %H:%M:%S"

# --- Application source ---
APP_REPO_URL_DEFAULT: str = "https://github.com/comfyanonymous/ComfyUI.git"
APP_DIR_NAME_DEFAULT: str = "ComfyUI"
VENV_DIR_NAME_DEFAULT: str = "venv"
REQUIREMENTS_FILE_DEFAULT: str = "requirements.txt"

# Folders moved out of a fresh clone so that later re-installs keep them.
PRESERVED_FOLDERS_DEFAULT: list[str] = [
    "models",
    "input",
    "output",
    "user",
]

# --- Plugins ---
PLUGINS_DIR_DEFAULT: str = "custom_nodes"
PLUGIN_MANIFEST_FILE_DEFAULT: str = "plugins.yaml"

# --- Artifact cache (relative to the temp path) ---
ARTIFACT_CACHE_DIR_DEFAULT: str = "wheels"

# --- Runtime ---
PYTHON_MIN_VERSION_DEFAULT: str = "3.12"
PACKAGE_INSTALL_COMMAND_DEFAULT: list[str] = ["apt-get", "install", "-y"]

# --- Fast downloader (aria2) ---
FAST_DOWNLOADER_COMMAND: str = "aria2c"
FAST_DOWNLOADER_RELEASE_URL_DEFAULT: str = (
    "https://github.com/abcfy2/aria2-static-build/releases/download/"
    "1.37.0/aria2-x86_64-linux-musl_static.zip"
)
FAST_DOWNLOADER_CONNECTIONS: int = 16
FAST_DOWNLOADER_SPLITS: int = 16
FAST_DOWNLOADER_MIN_SPLIT_SIZE: str = "1M"
FAST_DOWNLOADER_CONFIG_FILE: str = "aria2.conf"
PROFILE_FILE_DEFAULT: str = "~/.profile"

# --- Plain HTTP fallback ---
HTTP_TIMEOUT_SECONDS: int = 120
HTTP_RETRY_TOTAL: int = 3
HTTP_RETRY_BACKOFF: float = 1.0
HTTP_CHUNK_SIZE: int = 1024 * 1024
USER_AGENT: str = f"mlstack-provisioner/{SCRIPT_VERSION}"

# --- Directory removal ---
REMOVAL_MAX_RETRIES_DEFAULT: int = 5
REMOVAL_DELAY_SECONDS_DEFAULT: float = 2.0


# --- Symbols for Logging ---
SYMBOLS: dict[str, str] = {
    "success": "✅",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "step": "➡️",
    "gear": "⚙️",
    "package": "📦",
    "rocket": "🚀",
    "sparkles": "✨",
    "critical": "🔥",
    "debug": "🐛",
}
