"""CSPP configuration management.

Configuration sources (in priority order):
1. Environment variables (CSPP_ prefix, ``__`` for nesting, e.g. CSPP_SLACK__TOKEN)
2. Legacy flat environment variables (CSPP_PORT, CSPP_SLACK_TOKEN, ...)
3. Config file (config.yaml)
4. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import structlog
import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cspp.errors import ConfigError

logger = structlog.get_logger()

DEFAULT_PORT = 8080

# Flat variable names understood by earlier deployments, mapped to the
# nested setting they populate.
LEGACY_ENV_VARS: dict[str, tuple[str, str]] = {
    "CSPP_PORT": ("server", "port"),
    "CSPP_BASE_URL": ("server", "base_url"),
    "CSPP_DATA_DIR": ("paths", "data_dir"),
    "CSPP_UPLOADS_DIR": ("paths", "uploads_dir"),
    "CSPP_PROCESSED_DIR": ("paths", "processed_dir"),
    "CSPP_DISCARD_DIR": ("paths", "discard_dir"),
    "CSPP_CREDENTIALS_DIR": ("paths", "credentials_dir"),
    "CSPP_SLACK_TOKEN": ("slack", "token"),
    "CSPP_SLACK_CHANNEL": ("slack", "channel"),
    "CSPP_SLACK_TEAM_ID": ("slack", "team_id"),
}


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT

    # Public address of the service, used in DMs and the usage page.
    # When it carries an explicit port, that port wins over `port`.
    base_url: str = ""


class PathsConfig(BaseModel):
    """Directory layout.

    Every role directory defaults to ``<data_dir>/<role>``.
    """

    data_dir: Path = Path("data")
    uploads_dir: Path | None = None
    processed_dir: Path | None = None
    discard_dir: Path | None = None
    credentials_dir: Path | None = None

    def model_post_init(self, __context: Any) -> None:
        if self.uploads_dir is None:
            self.uploads_dir = self.data_dir / "uploads"
        if self.processed_dir is None:
            self.processed_dir = self.data_dir / "processed"
        if self.discard_dir is None:
            self.discard_dir = self.data_dir / "discard"
        if self.credentials_dir is None:
            self.credentials_dir = self.data_dir / "credentials"

    def all_dirs(self) -> list[Path]:
        """Directories that must exist before the service starts."""
        return [
            self.data_dir,
            self.discard_dir,
            self.processed_dir,
            self.uploads_dir,
            self.credentials_dir,
        ]


class SlackConfig(BaseModel):
    """Slack Web API configuration."""

    token: str = ""
    channel: str = ""
    team_id: str = ""
    api_base_url: str = "https://slack.com/api"
    timeout_seconds: float = 30.0


class IngestConfig(BaseModel):
    """Uploads directory processing."""

    # Size samples taken before a dropped file is considered fully written
    stable_checks: int = 2
    stable_interval_seconds: float = 0.25

    # Enqueue manifests already sitting in the uploads dir at startup
    scan_on_startup: bool = True

    queue_size: int = 1000


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_format: bool = False


class Settings(BaseSettings):
    """CSPP application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CSPP_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats values passed in from the config file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    def public_base_url(self) -> str:
        """Base URL shown to users, with a placeholder when unset."""
        return self.server.base_url.rstrip("/") or "<service address>"


def _load_config_file(config_file: str | os.PathLike[str] | None = None) -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. Explicit path (``--config``)
    2. CSPP_CONFIG_FILE environment variable
    3. ./config.yaml
    4. /etc/cspp/config.yaml
    """
    if config_file:
        path = Path(config_file)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        with open(path) as f:
            return yaml.safe_load(f) or {}

    config_paths = [
        os.environ.get("CSPP_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/cspp/config.yaml"),
    ]

    for path in config_paths:
        if not path:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


def _legacy_env_overrides(base: dict[str, Any]) -> dict[str, Any]:
    """Overlay flat legacy environment variables onto file config."""
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in base.items()}
    for env_name, (section, field) in LEGACY_ENV_VARS.items():
        value = os.environ.get(env_name)
        if value is None or value == "":
            continue
        section_values = merged.get(section)
        if not isinstance(section_values, dict):
            section_values = {}
        section_values[field] = value
        merged[section] = section_values
    return merged


def load_settings(config_file: str | os.PathLike[str] | None = None) -> Settings:
    """Build settings from config file, legacy env vars and CSPP_ env vars."""
    file_config = _load_config_file(config_file)
    return Settings(**_legacy_env_overrides(file_config))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()


def reconcile_port_with_base_url(settings: Settings) -> Settings:
    """Make the listening port agree with an explicit port in base_url.

    Deployments behind a fixed public URL configure only CSPP_BASE_URL; the
    port in that URL is authoritative. A base URL without a port leaves the
    configured port unchanged.

    Raises:
        ConfigError: If base_url cannot be parsed.
    """
    base_url = settings.server.base_url
    if not base_url:
        return settings

    try:
        parsed = urlsplit(base_url)
        base_port = parsed.port
    except ValueError as e:
        raise ConfigError(f"Invalid base URL: {base_url}", details={"error": str(e)}) from e

    if not parsed.scheme or not parsed.netloc:
        raise ConfigError(f"Invalid base URL: {base_url}")

    if base_port is None or base_port == settings.server.port:
        return settings

    if settings.server.port != DEFAULT_PORT:
        logger.info(
            "config.port_overridden",
            configured_port=settings.server.port,
            base_url_port=base_port,
            msg="CSPP_PORT overridden by value specified in CSPP_BASE_URL",
        )
    settings.server.port = base_port
    return settings


def require_slack_credentials(settings: Settings) -> None:
    """Refuse to start without the Slack credentials the pipeline needs.

    Raises:
        ConfigError: Listing every missing variable.
    """
    missing = [
        env_name
        for env_name, attr in (
            ("CSPP_SLACK_TOKEN", "token"),
            ("CSPP_SLACK_CHANNEL", "channel"),
            ("CSPP_SLACK_TEAM_ID", "team_id"),
        )
        if not getattr(settings.slack, attr)
    ]
    if missing:
        raise ConfigError(
            "Required Slack settings are not set: " + ", ".join(missing),
            details={"missing": missing},
        )
