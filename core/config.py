"""
Configuration Management - YAML-based configuration with environment overrides
=============================================================================

This module handles all configuration aspects including:
- Loading from YAML files
- Environment variable overrides
- Default values
- Configuration validation
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, field, asdict

from .exceptions import ConfigError


@dataclass
class DatabaseConfig:
    """
    Rule store configuration.

    The SQLite file defaults to ``<data_dir>/site_chatbot.db`` when
    ``path`` is left empty.
    """
    path: str = ""
    timeout: float = 30.0
    # YAML file imported into an empty store on first start
    seed_file: str = ""

    def validate(self) -> None:
        """Validate database configuration."""
        if self.timeout <= 0:
            raise ConfigError(f"Database timeout must be positive, got {self.timeout}")


@dataclass
class ChatbotConfig:
    """
    Chatbot behaviour configuration.

    Controls the assistant's display name, the pacing delay applied
    before each bot reply and the default priority for new rules.
    """
    assistant_name: str = "Site Assistant"
    reply_delay_ms: int = 500
    default_priority: int = 10
    max_message_length: int = 1000

    def validate(self) -> None:
        """Validate chatbot configuration."""
        if self.reply_delay_ms < 0:
            raise ConfigError("reply_delay_ms cannot be negative")

        if not 1 <= self.default_priority <= 100:
            raise ConfigError(
                f"default_priority must be between 1 and 100, got {self.default_priority}"
            )

        if self.max_message_length < 1:
            raise ConfigError("max_message_length must be at least 1")


@dataclass
class SessionConfig:
    """
    In-memory chat session limits for the web interface.
    """
    max_sessions: int = 1000
    idle_timeout_seconds: int = 1800

    def validate(self) -> None:
        """Validate session configuration."""
        if self.max_sessions < 1:
            raise ConfigError("max_sessions must be at least 1")

        if self.idle_timeout_seconds < 1:
            raise ConfigError("idle_timeout_seconds must be at least 1")


@dataclass
class UIConfig:
    """
    User interface configuration.

    Controls settings for both the web API server and the terminal chat.
    """
    web_host: str = "127.0.0.1"
    web_port: int = 8080
    web_debug: bool = False
    cors_origins: list = field(default_factory=lambda: ["*"])

    tui_theme: str = "dark"

    def validate(self) -> None:
        """Validate UI configuration."""
        if self.web_port < 1 or self.web_port > 65535:
            raise ConfigError(f"Invalid web port: {self.web_port}")


@dataclass
class Config:
    """
    Main configuration container.

    Aggregates all configuration sections into a single object
    and provides methods for loading, saving, and validating.
    """
    app_name: str = "Site Chatbot"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    chatbot: ChatbotConfig = field(default_factory=ChatbotConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    # Paths (set at runtime)
    config_dir: str = ""
    data_dir: str = ""
    log_dir: str = ""

    def validate(self) -> None:
        """
        Validate all configuration sections.

        Raises:
            ConfigError: If any configuration section is invalid
        """
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"Invalid log level: {self.log_level}")

        self.database.validate()
        self.chatbot.validate()
        self.session.validate()
        self.ui.validate()

    @property
    def database_path(self) -> str:
        """Resolved SQLite file path."""
        if self.database.path:
            return self.database.path
        return str(Path(self.data_dir or get_default_data_dir()) / "site_chatbot.db")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "app_name": self.app_name,
            "version": self.version,
            "debug": self.debug,
            "log_level": self.log_level,
            "data_dir": self.data_dir,
            "log_dir": self.log_dir,
            "database": asdict(self.database),
            "chatbot": asdict(self.chatbot),
            "session": asdict(self.session),
            "ui": asdict(self.ui),
        }


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory path.

    Returns:
        Path to the configuration directory
    """
    if "SITE_CHATBOT_CONFIG_DIR" in os.environ:
        return Path(os.environ["SITE_CHATBOT_CONFIG_DIR"])

    if "XDG_CONFIG_HOME" in os.environ:
        return Path(os.environ["XDG_CONFIG_HOME"]) / "site-chatbot"

    return Path.home() / ".config" / "site-chatbot"


def get_default_data_dir() -> Path:
    """
    Get the default data directory path.

    Returns:
        Path to the data directory
    """
    if "SITE_CHATBOT_DATA_DIR" in os.environ:
        return Path(os.environ["SITE_CHATBOT_DATA_DIR"])

    if "XDG_DATA_HOME" in os.environ:
        return Path(os.environ["XDG_DATA_HOME"]) / "site-chatbot"

    return Path.home() / ".local" / "share" / "site-chatbot"


_SECTIONS = ("database", "chatbot", "session", "ui")


def load_config(config_path: Optional[str] = None, load_env: bool = True) -> Config:
    """
    Load configuration from YAML file with environment variable overrides.

    This function loads configuration in the following order:
    1. Default values from dataclass
    2. Values from YAML file
    3. Environment variable overrides

    Args:
        config_path: Path to configuration file (optional)
        load_env: Whether to load environment variable overrides

    Returns:
        Config object with loaded values

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    config = Config()

    config.config_dir = str(get_default_config_dir())
    config.data_dir = str(get_default_data_dir())
    config.log_dir = str(Path(config.data_dir) / "logs")

    if config_path:
        yaml_path = Path(config_path)
        config.config_dir = str(yaml_path.parent)
    else:
        yaml_path = Path(config.config_dir) / "config.yaml"

    if yaml_path.exists():
        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file: {e}", {"path": str(yaml_path)})
        except OSError as e:
            raise ConfigError(f"Failed to read config file: {e}", {"path": str(yaml_path)})

        if not isinstance(yaml_config, dict):
            raise ConfigError("Config file must contain a mapping", {"path": str(yaml_path)})

        _apply_yaml_config(config, yaml_config)
    elif config_path:
        raise ConfigError("Config file not found", {"path": str(yaml_path)})

    if load_env:
        _apply_env_overrides(config)

    config.validate()

    return config


def _apply_yaml_config(config: Config, yaml_config: Dict[str, Any]) -> None:
    """
    Apply YAML configuration values to Config object.

    Unknown keys are ignored so older config files keep loading.
    """
    for key in ("app_name", "version", "debug", "log_level"):
        if key in yaml_config:
            setattr(config, key, yaml_config[key])

    # Empty paths keep the XDG defaults
    for key in ("data_dir", "log_dir"):
        if yaml_config.get(key):
            setattr(config, key, str(yaml_config[key]))

    if yaml_config.get("data_dir") and not yaml_config.get("log_dir"):
        config.log_dir = str(Path(config.data_dir) / "logs")

    for section in _SECTIONS:
        values = yaml_config.get(section)
        if not values:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")
        section_obj = getattr(config, section)
        for key, value in values.items():
            if hasattr(section_obj, key):
                setattr(section_obj, key, value)


def _apply_env_overrides(config: Config) -> None:
    """
    Apply environment variable overrides to Config object.

    Environment variables follow the pattern: SITE_CHATBOT_SECTION_KEY
    For example: SITE_CHATBOT_UI_WEB_PORT, SITE_CHATBOT_DATABASE_PATH
    """
    env_mappings = {
        "SITE_CHATBOT_DEBUG": (None, "debug", bool),
        "SITE_CHATBOT_LOG_LEVEL": (None, "log_level"),

        "SITE_CHATBOT_DATABASE_PATH": ("database", "path"),
        "SITE_CHATBOT_DATABASE_SEED_FILE": ("database", "seed_file"),

        "SITE_CHATBOT_CHATBOT_REPLY_DELAY_MS": ("chatbot", "reply_delay_ms", int),
        "SITE_CHATBOT_CHATBOT_DEFAULT_PRIORITY": ("chatbot", "default_priority", int),

        "SITE_CHATBOT_SESSION_MAX_SESSIONS": ("session", "max_sessions", int),
        "SITE_CHATBOT_SESSION_IDLE_TIMEOUT_SECONDS": ("session", "idle_timeout_seconds", int),

        "SITE_CHATBOT_UI_WEB_HOST": ("ui", "web_host"),
        "SITE_CHATBOT_UI_WEB_PORT": ("ui", "web_port", int),
        "SITE_CHATBOT_UI_WEB_DEBUG": ("ui", "web_debug", bool),
    }

    for env_var, mapping in env_mappings.items():
        value = os.environ.get(env_var)
        if value is None:
            continue

        section, key = mapping[0], mapping[1]
        converter = mapping[2] if len(mapping) > 2 else str
        target = getattr(config, section) if section else config

        if converter is bool:
            converted = value.lower() in ("true", "1", "yes", "on")
        else:
            try:
                converted = converter(value)
            except ValueError:
                raise ConfigError(f"Invalid value for {env_var}: {value!r}")

        setattr(target, key, converted)


def save_config(config: Config, config_path: Optional[str] = None) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Config object to save
        config_path: Path to save configuration (optional)

    Raises:
        ConfigError: If configuration cannot be saved
    """
    if config_path:
        yaml_path = Path(config_path)
    else:
        yaml_path = Path(config.config_dir) / "config.yaml"

    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigError(f"Failed to save config file: {e}", {"path": str(yaml_path)})


def create_default_config(config_dir: Optional[str] = None) -> Config:
    """
    Create a default configuration file with sensible defaults.

    Creates the configuration, data and log directories and writes a
    default config.yaml that can be customized.

    Args:
        config_dir: Directory to create configuration in (optional)

    Returns:
        Config object with default values
    """
    config = Config()

    if config_dir:
        config.config_dir = config_dir
        config.data_dir = str(Path(config_dir) / "data")
        config.log_dir = str(Path(config_dir) / "logs")
    else:
        config.config_dir = str(get_default_config_dir())
        config.data_dir = str(get_default_data_dir())
        config.log_dir = str(Path(config.data_dir) / "logs")

    Path(config.config_dir).mkdir(parents=True, exist_ok=True)
    Path(config.data_dir).mkdir(parents=True, exist_ok=True)
    Path(config.log_dir).mkdir(parents=True, exist_ok=True)

    save_config(config)

    return config
