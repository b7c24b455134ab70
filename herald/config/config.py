"""Configuration management for the application."""

import os
import re
import yaml
from pathlib import Path
from typing import Optional, Any, List
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from herald.exceptions import ConfigurationError


# Load environment variables from .env file
load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::([^}]*))?\}")


class EnvSettings(BaseSettings):
    """Overrides read straight from the process environment."""
    model_config = SettingsConfigDict(env_prefix="HERALD_", env_file=".env", extra="ignore")

    config_path: Optional[str] = Field(default=None, description="Path to the YAML config file")
    log_level: Optional[str] = Field(default=None, description="Overrides logging.level")


class ChannelConfig(BaseModel):
    """Outbound notification channel (Telegram Bot API)."""
    bot_token: Optional[str] = Field(default=None, description="Telegram bot token")
    chat_id: Optional[str] = Field(default=None, description="Chat that receives reminders")
    api_base_url: str = Field(default="https://api.telegram.org", description="Bot API base URL")
    timeout_seconds: float = Field(default=10.0, description="HTTP timeout per send")
    parse_mode: Optional[str] = Field(default="HTML", description="Telegram parse mode")


class DeliveryConfig(BaseModel):
    """Retry policy applied by the notification dispatcher."""
    retry_count: int = Field(default=0, ge=0, description="Extra attempts after a failed send")
    backoff_seconds: float = Field(default=1.0, ge=0, description="Delay before the first retry")
    backoff_multiplier: float = Field(default=2.0, ge=1, description="Growth factor between retries")


class PollerConfig(BaseModel):
    """Schedule and look-ahead window of one reminder domain."""
    enabled: bool = Field(default=True, description="Whether the poller is registered")
    interval_seconds: float = Field(gt=0, description="Seconds between polls")
    window_minutes: Optional[float] = Field(
        default=None,
        description="Look-ahead window; null means 'due by the end of today'"
    )


class RemindersConfig(BaseModel):
    """Reminder pollers configuration."""
    enabled: bool = Field(default=True, description="Whether reminders are enabled")
    single_flight: bool = Field(default=True, description="Skip a tick while the previous one runs")
    calendar: PollerConfig = Field(
        default_factory=lambda: PollerConfig(interval_seconds=60, window_minutes=15)
    )
    tasks: PollerConfig = Field(
        default_factory=lambda: PollerConfig(interval_seconds=60, window_minutes=None)
    )
    price_alerts: PollerConfig = Field(
        default_factory=lambda: PollerConfig(interval_seconds=300, window_minutes=0)
    )
    documents: PollerConfig = Field(
        default_factory=lambda: PollerConfig(interval_seconds=86400, window_minutes=30 * 24 * 60)
    )
    headlines_refresh_seconds: Optional[float] = Field(
        default=1800, description="Interval of the headline refresh job; null disables it"
    )


class BroadcastConfig(BaseModel):
    """Jittered broadcast loop configuration."""
    enabled: bool = Field(default=False, description="Whether the broadcast loop runs")
    startup_delay_seconds: float = Field(default=60, ge=0)
    base_interval_seconds: float = Field(default=6 * 3600, gt=0)
    jitter_max_seconds: float = Field(default=3600, ge=0)
    per_destination_delay_seconds: float = Field(default=5, ge=0)
    max_consecutive_failures: Optional[int] = Field(
        default=3, ge=1, description="Evict a destination after this many failed cycles; null keeps it"
    )
    content: List[str] = Field(default_factory=list, description="Pool of broadcast messages")


class BriefingConfig(BaseModel):
    """Briefing composition configuration."""
    timezone: str = Field(default="Europe/Lisbon", description="IANA timezone for day boundaries")
    section_timeout_seconds: Optional[float] = Field(
        default=10.0, description="Per-section fetch timeout; null waits forever"
    )
    list_limit: int = Field(default=5, ge=1, description="Maximum items in capped sections")
    anniversary_days: int = Field(default=7, ge=0, description="Look-ahead for anniversaries")


class SourcesConfig(BaseModel):
    """Where the in-memory collaborators get their initial data."""
    seed_file: Optional[str] = Field(default=None, description="YAML file with seed records")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level")
    show_timestamps: bool = Field(default=True, description="Whether to show timestamps")
    file: Optional[str] = Field(default=None, description="Optional log file path")


class AppConfig(BaseModel):
    """Application configuration."""
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    reminders: RemindersConfig = Field(default_factory=RemindersConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    briefing: BriefingConfig = Field(default_factory=BriefingConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _expand_string(value: str) -> Optional[str]:
    """Expand ${VAR} and ${VAR:default} references inside one string."""
    full = _ENV_PATTERN.fullmatch(value)
    if full:
        var_name, default_value = full.group(1), full.group(2)
        resolved = os.getenv(var_name)
        if resolved is not None:
            return resolved
        # A bare reference to an unset variable without default becomes null
        return default_value

    def replace(match: re.Match) -> str:
        resolved = os.getenv(match.group(1))
        if resolved is not None:
            return resolved
        return match.group(2) or ""

    return _ENV_PATTERN.sub(replace, value)


def expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in configuration data.

    Supports ${VAR} and ${VAR:default} syntax, either as the whole value or
    embedded in a longer string.
    """
    if isinstance(data, dict):
        return {key: expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        return _expand_string(data)
    return data


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to config YAML file. Defaults to HERALD_CONFIG_PATH,
            then to the config.yaml shipped next to this module

    Returns:
        AppConfig: Loaded configuration

    Raises:
        ConfigurationError: If the file is missing or the configuration is invalid
    """
    env = EnvSettings()
    if config_path is None:
        config_path = Path(env.config_path) if env.config_path else DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config_data = yaml.safe_load(f) or {}

    config_data = expand_env_vars(config_data)

    try:
        config = AppConfig(**config_data)
    except Exception as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if env.log_level:
        config.logging.level = env.log_level
    return config


def validate_config(config: AppConfig) -> List[str]:
    """Validate that the configuration can drive every enabled feature.

    Args:
        config: Application configuration

    Returns:
        List of validation problems (empty if valid)
    """
    errors = []

    if not config.channel.bot_token:
        errors.append("channel.bot_token is not set; notifications will be dropped")
    if not config.channel.chat_id:
        errors.append("channel.chat_id is not set; reminders have no destination")

    if config.broadcast.enabled and not config.broadcast.content:
        errors.append("Broadcast enabled but broadcast.content is empty")

    if config.sources.seed_file and not Path(config.sources.seed_file).exists():
        errors.append(f"Seed file not found: {config.sources.seed_file}")

    if config.reminders.enabled:
        pollers = [
            config.reminders.calendar,
            config.reminders.tasks,
            config.reminders.price_alerts,
            config.reminders.documents,
        ]
        if not any(poller.enabled for poller in pollers):
            errors.append("Reminders enabled but every poller is disabled")

    return errors


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance.

    Raises:
        RuntimeError: If configuration hasn't been loaded
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not loaded. Call init_config() first.")
    return _config


def init_config(config_path: Optional[Path] = None) -> AppConfig:
    """Initialize the global configuration."""
    global _config
    _config = load_config(config_path)
    return _config
