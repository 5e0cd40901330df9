"""
Configuration management for feedbot.

Uses Pydantic for validation and pydantic-settings for environment variable support.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration.

    Supports SQLite and PostgreSQL backends.

    For SQLite:
        - Only `path` is required
        - Environment variable: DB_PATH

    For PostgreSQL:
        - Set `type` to "postgresql"
        - Set `host`, `database`, `user`, `password`
        - Optional: `port`, `ssl_mode`
    """

    model_config = SettingsConfigDict(env_prefix="DB_")

    type: str = Field(default="sqlite", description="Database type: sqlite, postgresql")

    # SQLite configuration
    path: str = Field(default="data/feedbot.db", description="Database file path (SQLite)")

    # PostgreSQL configuration
    host: str | None = Field(default=None, description="Database host")
    port: int | None = Field(default=None, description="Database port (default: 5432)")
    database: str | None = Field(default=None, description="Database name")
    user: str | None = Field(default=None, description="Database user")
    password: str | None = Field(default=None, description="Database password")
    ssl_mode: str | None = Field(default=None, description="SSL mode: prefer/require/...")

    echo: bool = Field(default=False, description="Echo SQL statements")
    pool_size: int = Field(default=5, ge=1, le=100, description="Connection pool size")
    max_overflow: int = Field(default=10, ge=0, description="Max overflow connections")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Normalize and validate database type."""
        v = v.lower().strip()
        if v == "postgres":
            v = "postgresql"
        valid_types = ["sqlite", "postgresql"]
        if v not in valid_types:
            raise ValueError(f"Invalid database type: {v!r}. Must be one of {valid_types}")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int | None) -> int | None:
        """Validate port number."""
        if v is not None and not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("ssl_mode")
    @classmethod
    def validate_ssl_mode(cls, v: str | None) -> str | None:
        """Validate SSL mode."""
        if v is None:
            return None
        v = v.lower()
        valid_modes = ["disable", "allow", "prefer", "require", "verify-ca", "verify-full"]
        if v not in valid_modes:
            raise ValueError(f"Invalid ssl_mode: {v!r}. Must be one of {valid_modes}")
        return v


class SchedulerConfig(BaseSettings):
    """Poll cycle scheduler configuration."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    enabled: bool = Field(default=True, description="Enable scheduler")
    timezone: str = Field(default="UTC", description="Scheduler timezone")

    interval_minutes: int = Field(default=60, ge=1, description="Minutes between poll cycles")
    run_on_start: bool = Field(default=True, description="Run a cycle as soon as the scheduler starts")

    # Per-cycle fan-out over feeds
    max_workers: int = Field(default=4, ge=1, le=32, description="Concurrent feed workers per cycle")
    misfire_grace_time: int = Field(default=300, ge=0, description="Misfire grace time in seconds")
    coalesce: bool = Field(default=True, description="Coalesce missed ticks into one run")


class FetcherConfig(BaseSettings):
    """RSS/Atom fetcher configuration."""

    model_config = SettingsConfigDict(env_prefix="FETCHER_")

    timeout_seconds: int = Field(default=30, ge=1, le=300, description="Request timeout")
    user_agent: str = Field(
        default="feedbot/0.1.0 (+https://github.com/foxbot/feedbot)",
        description="User-Agent header",
    )

    max_retries: int = Field(default=2, ge=0, le=10)
    retry_delay_seconds: int = Field(default=5, ge=0)

    follow_redirects: bool = Field(default=True)
    max_redirects: int = Field(default=5, ge=0, le=20)


class NotifierConfig(BaseSettings):
    """Chat delivery configuration."""

    model_config = SettingsConfigDict(env_prefix="NOTIFIER_")

    token: str = Field(default="", description="Bot token (without the 'Bot ' prefix)")
    api_base: str = Field(default="https://discord.com/api/v10", description="REST API base URL")
    timeout_seconds: int = Field(default=15, ge=1, le=120, description="Request timeout")
    webhook_name: str = Field(default="feedbot", description="Name of the webhook feedbot manages")
    max_content_length: int = Field(
        default=2000, ge=100, le=4096, description="Maximum message/description length"
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>{extra[context]}",
        description="Log format",
    )

    file_enabled: bool = Field(default=True, description="Enable file logging")
    file_path: str = Field(default="logs/feedbot.log", description="Log file path")
    rotation: str = Field(default="50 MB", description="Log rotation size")
    retention: str = Field(default="14 days", description="Log retention period")

    console_enabled: bool = Field(default=True, description="Enable console logging")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FEEDBOT_",
        case_sensitive=False,
    )

    version: str = Field(default="0.1.0", description="Application version")
    app_name: str = Field(default="feedbot", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    notifier: NotifierConfig = Field(default_factory=NotifierConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    data_dir: str = Field(default="data", description="Data directory")

    def get_data_path(self, name: str) -> Path:
        """Get path to a data file."""
        path = Path(self.data_dir) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        return path


_SECTIONS: dict[str, type[BaseSettings]] = {
    "database": DatabaseConfig,
    "scheduler": SchedulerConfig,
    "fetcher": FetcherConfig,
    "notifier": NotifierConfig,
    "logging": LoggingConfig,
}

# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def load_config_from_yaml(yaml_path: str) -> Config:
    """Load configuration from a YAML file.

    Values loaded from YAML take precedence over environment variables.

    Args:
        yaml_path: Path to the YAML configuration file.

    Returns:
        Config instance loaded from the file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    import yaml

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with yaml_file.open("r", encoding="utf-8") as f:
        config_dict = yaml.safe_load(f) or {}

    main_config = {}
    for key, value in config_dict.items():
        if key in _SECTIONS:
            # Build nested sections explicitly so their env vars still apply
            main_config[key] = _SECTIONS[key](**(value or {}))
        else:
            main_config[key] = value

    return Config(**main_config)


def reload_config(yaml_path: str = "config/config.yaml") -> Config:
    """Reload configuration from the environment and an optional YAML file."""
    global _config
    _config = None

    if Path(yaml_path).exists():
        _config = load_config_from_yaml(yaml_path)
    else:
        _config = Config()

    return _config
