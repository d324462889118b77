"""
Configuration Loader.

This module initializes the global configuration object (`config`) used throughout
the bridge. It leverages `yacs` to provide a hierarchical, dot-accessible
configuration structure defined in `codex_bridge.core_config`.

Usage:
    from codex_bridge.config import config
    print(config.CHANGE_MODE.CHUNK_MAX_CHARS)
"""

import os
import logging
from codex_bridge.core_config import get_cfg_defaults

CONFIG_FILE_ENV = "CODEX_BRIDGE_CONFIG"

logger = logging.getLogger(__name__)

# Load default configuration
config = get_cfg_defaults()

# Override from a YAML file if one is named (optional, for user overrides)
user_config_path = os.environ.get(CONFIG_FILE_ENV, "").strip()
if user_config_path and os.path.exists(user_config_path):
    config.merge_from_file(user_config_path)
elif user_config_path:
    logger.warning("%s points to a missing file: %s", CONFIG_FILE_ENV, user_config_path)

# Freeze config to prevent accidental changes during runtime.
config.freeze()
