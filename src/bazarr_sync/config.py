"""Configuration models for bazarr-bulk-sync."""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_CONFIG_LOCATIONS = (Path("config.yaml"), Path("/config/config.yaml"))


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


class ScheduleConfig(BaseModel):
    """Recurring sync configuration."""

    enabled: bool = False
    cron_expression: str = "0 1 * * 0"  # Sunday 01:00
    timezone: str = "UTC"
    sync_movies: bool = True
    sync_shows: bool = True
    run_initial: bool = False  # Fire once right after the scheduler starts


class CacheConfig(BaseModel):
    """Skip-cache configuration."""

    enabled: bool = False
    movies_cache: str = "movies-cache"
    shows_cache: str = "shows-cache"


class SyncOptionsConfig(BaseModel):
    """Options passed to Bazarr with every sync request."""

    golden_section: bool = False
    no_framerate_fix: bool = False
    retry_delay_seconds: float = 2.0
    item_delay_seconds: float = 1.0  # Pause after each attempted subtitle


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"


class ServerSettings(BaseModel):
    """Status HTTP server configuration (scheduler mode only)."""

    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8080


class Config(BaseModel):
    """Root configuration model."""

    # port: 6767 and port: "6767" are both accepted
    model_config = ConfigDict(coerce_numbers_to_str=True)

    address: str = "127.0.0.1"
    port: str = "6767"
    protocol: str = "http"
    api_token: str = ""
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    sync_options: SyncOptionsConfig = Field(default_factory=SyncOptionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerSettings = Field(default_factory=ServerSettings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})

    @property
    def bazarr_url(self) -> str:
        """Base URL of the Bazarr web UI.

        An address that already contains a path (reverse proxy setups) is used
        as-is and the port is ignored.
        """
        address = self.address.strip().rstrip("/")
        if "/" in address:
            return f"{self.protocol}://{address}"
        return f"{self.protocol}://{address}:{self.port}"

    @property
    def api_url(self) -> str:
        """Root of the Bazarr REST API, always with a trailing slash."""
        return f"{self.bazarr_url}/api/"


def apply_env_overrides(config: Config) -> Config:
    """Override connection settings from BAZARR_* environment variables."""
    overrides: dict[str, str] = {}
    for field in ("address", "port", "protocol", "api_token"):
        value = os.environ.get(f"BAZARR_{field.upper()}")
        if value:
            overrides[field] = value
    if not overrides:
        return config
    return config.model_copy(update=overrides)


def resolve_config_path(explicit: str | Path | None = None) -> Path:
    """Find the configuration file.

    Order: explicit path, CONFIG_PATH env var, ./config.yaml, /config/config.yaml.
    """
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        return path

    env_path = os.environ.get("CONFIG_PATH")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.exists():
            return candidate

    raise ConfigError(
        "Configuration file not found. Supply one with --config, set CONFIG_PATH, "
        "or place config.yaml in the current directory"
    )


def load_config(path: str | Path | None = None) -> tuple[Config, Path]:
    """Locate, parse and validate the configuration file."""
    config_path = resolve_config_path(path)
    try:
        config = Config.from_yaml(config_path)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e
    return apply_env_overrides(config), config_path
