"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Output and logging (Loguru)

Clean architecture principle: The core layer has no dependencies on
domain or application layers.
"""

# Configuration
from .config import (
    Config,
    BackendConfig,
    PlayerConfig,
    AIConfig,
    LoggingConfig,
    NotificationsConfig,
    load_config,
    parse_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    get_log_file,
    create_default_config,
)

# Output
from .output import log, setup_loguru

__all__ = [
    # Config
    "Config",
    "BackendConfig",
    "PlayerConfig",
    "AIConfig",
    "LoggingConfig",
    "NotificationsConfig",
    "load_config",
    "parse_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "get_log_file",
    "create_default_config",
    # Output
    "log",
    "setup_loguru",
]
