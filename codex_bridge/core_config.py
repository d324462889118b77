"""
Core Configuration Definitions.

This module defines the default structure and values for the bridge's
configuration system using `yacs`. It serves as the single source of truth
for all configurable parameters.

Configuration is organized into sections:
- SYSTEM: Global paths and environment settings.
- LOGGING: Log file location, rotation and levels.
- RUNNER: External process execution limits.
- CODEX: Codex CLI invocation details.
- CHANGE_MODE: Structured edit pipeline limits.
- CACHE: Chunk cache expiry policy.
"""

import os
from pathlib import Path
from yacs.config import CfgNode as CN  # type: ignore[import-untyped]
import platform


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _default_local_base_dir() -> Path:
    system = platform.system().lower()
    if system == "windows":
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            return Path(local_app_data) / "CodexBridge"
        return Path.home() / "AppData" / "Local" / "CodexBridge"
    if system == "darwin":
        return Path.home() / "Library" / "Application Support" / "CodexBridge"
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "codex-bridge"
    return Path.home() / ".local" / "share" / "codex-bridge"


_C = CN()

# -----------------------------------------------------------------------------
# System Configuration
# -----------------------------------------------------------------------------
_C.SYSTEM = CN()
# Root directory of the project
_C.SYSTEM.ROOT = str(Path(__file__).parent.parent)

# Data directory (only logs live here; nothing else is persisted)
_C.SYSTEM.DATA_DIR = os.environ.get("CODEX_BRIDGE_DATA_DIR", str(_default_local_base_dir()))

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
_C.LOGGING = CN()
# File handler level (LOG_LEVEL env var wins)
_C.LOGGING.LEVEL = "INFO"
# Console (stderr) handler level when not verbose
_C.LOGGING.CONSOLE_LEVEL = "WARNING"
# File name under SYSTEM.DATA_DIR/logs (LOG_FILE env var replaces the whole path)
_C.LOGGING.FILE_NAME = "codex_bridge.log"
_C.LOGGING.MAX_BYTES = _env_int("LOG_MAX_BYTES", 5 * 1024 * 1024)
_C.LOGGING.BACKUP_COUNT = _env_int("LOG_BACKUP_COUNT", 5)

# -----------------------------------------------------------------------------
# Process Runner
# -----------------------------------------------------------------------------
_C.RUNNER = CN()
# Hard timeout for one engine subprocess attempt (milliseconds)
_C.RUNNER.DEFAULT_TIMEOUT_MS = _env_int("CODEX_BRIDGE_TIMEOUT_MS", 600_000)

# Per-stream capture cap; bytes past the cap are read and discarded
_C.RUNNER.MAX_OUTPUT_BYTES = _env_int("CODEX_BRIDGE_MAX_OUTPUT_BYTES", 10 * 1024 * 1024)

# Read size for stdout/stderr pumps
_C.RUNNER.STREAM_READ_SIZE = 1024

# Seconds to wait after SIGTERM before escalating to SIGKILL
_C.RUNNER.TERMINATE_GRACE_SEC = 5

# -----------------------------------------------------------------------------
# Codex CLI
# -----------------------------------------------------------------------------
_C.CODEX = CN()
_C.CODEX.COMMAND = os.environ.get("CODEX_BRIDGE_CODEX_COMMAND", "codex")

# Prompts larger than this (UTF-8 bytes) go through a temp file on stdin
_C.CODEX.STDIN_PROMPT_THRESHOLD_BYTES = 100 * 1024

# Partial stdout longer than this is used instead of failing the call
_C.CODEX.SALVAGE_MIN_CHARS = 1000

_C.CODEX.CONCISE_PREFIX = (
    "Please provide a focused, concise response without unnecessary elaboration. "
)

# -----------------------------------------------------------------------------
# Change Mode
# -----------------------------------------------------------------------------
_C.CHANGE_MODE = CN()
# Rendered characters allowed per chunk
_C.CHANGE_MODE.CHUNK_MAX_CHARS = _env_int("CODEX_BRIDGE_CHUNK_MAX_CHARS", 20_000)

# A summary is prepended to chunk 1 above this many edits
_C.CHANGE_MODE.SUMMARY_MIN_EDITS = 5

# Raw output excerpt included in parse/validation diagnostics
_C.CHANGE_MODE.ERROR_EXCERPT_CHARS = 500

# -----------------------------------------------------------------------------
# Chunk Cache
# -----------------------------------------------------------------------------
_C.CACHE = CN()
_C.CACHE.TTL_SECONDS = _env_int("CODEX_BRIDGE_CACHE_TTL_SECONDS", 600)
_C.CACHE.MAX_ENTRIES = _env_int("CODEX_BRIDGE_CACHE_MAX_ENTRIES", 100)


def get_cfg_defaults():
    """
    Get a yacs CfgNode object with default values.
    Returns a clone to ensure thread-safety during initialization.
    """
    return _C.clone()
