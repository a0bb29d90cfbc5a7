"""
Configuration management for SonicStream
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from loguru import logger

# Placeholder backend used when no project URL is configured.
# Auth and cloud sync are disabled against it; guest mode keeps working.
PLACEHOLDER_BACKEND_URL = "https://example.supabase.co"
PLACEHOLDER_ANON_KEY = "public-anon-key"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class BackendConfig:
    """Configuration for the remote track store (Supabase project)."""

    url: str = PLACEHOLDER_BACKEND_URL
    anon_key: str = PLACEHOLDER_ANON_KEY
    bucket: str = "audio"
    table: str = "tracks"
    timeout_seconds: float = 30.0

    @property
    def is_configured(self) -> bool:
        """True when a real project URL has been provided."""
        return bool(self.url) and self.url.rstrip("/") != PLACEHOLDER_BACKEND_URL


@dataclass
class PlayerConfig:
    """Configuration for the audio device and playback controller."""

    mpv_socket_path: Optional[str] = None
    volume: float = 0.8  # 0.0 - 1.0
    autoplay_on_upload: bool = True

    def validate(self) -> None:
        """Validate player configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if not 0.0 <= self.volume <= 1.0:
            raise ValueError(f"volume must be between 0 and 1, got {self.volume}")


@dataclass
class AIConfig:
    """Configuration for the track vibe analysis."""

    openai_api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    enabled: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/sonicstream/sonicstream.log)
    )
    console_output: bool = False  # Also print user-facing messages to stdout


@dataclass
class NotificationsConfig:
    """Configuration for user-facing notices."""

    enabled: bool = True
    show_success: bool = True
    show_errors: bool = True


@dataclass
class Config:
    """Main configuration object."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "sonicstream"
    return Path.home() / ".config" / "sonicstream"


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Current working directory
    2. XDG_CONFIG_HOME/sonicstream (or ~/.config/sonicstream)
    """
    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "sonicstream"
    return Path.home() / ".local" / "share" / "sonicstream"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# SonicStream Configuration

[backend]
# Supabase project URL and anon key. Leave the placeholders to run in
# guest/offline mode only. SUPABASE_URL and SUPABASE_ANON_KEY override these.
url = "https://example.supabase.co"
anon_key = "public-anon-key"

# Storage bucket for audio files and table for track records
bucket = "audio"
table = "tracks"

# Request timeout in seconds
timeout_seconds = 30

[player]
# Path for mpv socket (auto-detected if not specified)
# mpv_socket_path = "/tmp/sonicstream-mpv"

# Default volume (0.0 - 1.0)
volume = 0.8

# Start playing a track right after it is uploaded
autoplay_on_upload = true

[ai]
# OpenAI API key for track vibe analysis (OPENAI_API_KEY overrides this)
# openai_api_key = "your-api-key-here"
model = "gpt-4o-mini"
enabled = true

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/sonicstream/sonicstream.log)
# log_file = "/path/to/sonicstream.log"

# Also print user-facing messages to the console
console_output = false

[notifications]
enabled = true
show_success = true
show_errors = true
""".strip()


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides on top of file values."""
    url = os.environ.get("SUPABASE_URL")
    if url:
        config.backend.url = url
    anon_key = os.environ.get("SUPABASE_ANON_KEY")
    if anon_key:
        config.backend.anon_key = anon_key
    api_key = os.environ.get("OPENAI_API_KEY")
    if api_key:
        config.ai.openai_api_key = api_key
    return config


def parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML data, falling back to defaults per section."""
    config = Config()

    if "backend" in toml_data:
        backend_data = toml_data["backend"]
        config.backend = BackendConfig(
            url=backend_data.get("url", config.backend.url),
            anon_key=backend_data.get("anon_key", config.backend.anon_key),
            bucket=backend_data.get("bucket", config.backend.bucket),
            table=backend_data.get("table", config.backend.table),
            timeout_seconds=float(
                backend_data.get("timeout_seconds", config.backend.timeout_seconds)
            ),
        )

    if "player" in toml_data:
        player_data = toml_data["player"]
        config.player = PlayerConfig(
            mpv_socket_path=player_data.get("mpv_socket_path"),
            volume=float(player_data.get("volume", config.player.volume)),
            autoplay_on_upload=player_data.get(
                "autoplay_on_upload", config.player.autoplay_on_upload
            ),
        )
        try:
            config.player.validate()
        except ValueError as e:
            logger.warning(f"Invalid player configuration: {e}. Using defaults.")
            config.player = PlayerConfig()

    if "ai" in toml_data:
        ai_data = toml_data["ai"]
        config.ai = AIConfig(
            openai_api_key=ai_data.get("openai_api_key"),
            model=ai_data.get("model", config.ai.model),
            enabled=ai_data.get("enabled", config.ai.enabled),
        )

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        level = str(logging_data.get("level", config.logging.level)).upper()
        if level not in VALID_LOG_LEVELS:
            logger.warning(f"Unknown log level '{level}'. Using INFO.")
            level = "INFO"
        config.logging = LoggingConfig(
            level=level,
            log_file=logging_data.get("log_file"),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    if "notifications" in toml_data:
        notifications_data = toml_data["notifications"]
        config.notifications = NotificationsConfig(
            enabled=notifications_data.get("enabled", config.notifications.enabled),
            show_success=notifications_data.get(
                "show_success", config.notifications.show_success
            ),
            show_errors=notifications_data.get(
                "show_errors", config.notifications.show_errors
            ),
        )

    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - SUPABASE_URL
    - SUPABASE_ANON_KEY
    - OPENAI_API_KEY
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        logger.info(f"Created default configuration at: {config_path}")
        return _apply_env_overrides(Config())

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Could not read {config_path}: {e}. Using default configuration.")
        return _apply_env_overrides(Config())

    return _apply_env_overrides(parse_config(toml_data))


def get_log_file(config: Config) -> Path:
    """Resolve the log file path for a configuration."""
    if config.logging.log_file:
        return Path(config.logging.log_file).expanduser()
    return get_data_dir() / "sonicstream.log"
