"""
Configuration management for playlist-gen.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

The configuration file contains:
    - Spotify API credentials (client_id, client_secret, redirect_uri)
    - Path of the SQLite database
    - Sync tuning (worker threads, HTTP timeout)
    - Directory for log files

Sensitive values can also come from the environment (or a .env file in
the working directory), which take precedence over the file:

    SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, SPOTIFY_REDIRECT_URI,
    PLAYLIST_GEN_DATABASE

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"
      client_secret: "your_client_secret_here"
      redirect_uri: "http://127.0.0.1:8888/callback"

    database:
      path: "~/.playlist-gen/playlist_gen.db"

    sync:
      max_workers: 4
      request_timeout: 10

    logging:
      directory: "~/.playlist-gen/logs"
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from playlist_gen.core.exceptions import ConfigError


# Default configuration file name (always in current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
DEFAULT_DATABASE_PATH = "~/.playlist-gen/playlist_gen.db"
DEFAULT_LOG_DIRECTORY = "~/.playlist-gen/logs"
DEFAULT_MAX_WORKERS = 4
DEFAULT_REQUEST_TIMEOUT = 10

# Environment variable -> (section, field)
ENV_OVERRIDES = {
    "SPOTIFY_CLIENT_ID": ("spotify", "client_id"),
    "SPOTIFY_CLIENT_SECRET": ("spotify", "client_secret"),
    "SPOTIFY_REDIRECT_URI": ("spotify", "redirect_uri"),
    "PLAYLIST_GEN_DATABASE": ("database", "path"),
}


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify application credentials.

    These credentials are obtained from the Spotify Developer Dashboard:
    https://developer.spotify.com/dashboard

    Attributes:
        client_id: The Spotify application client ID.
        client_secret: The Spotify application client secret.
        redirect_uri: Redirect URI registered for the application. The login
                      command builds the authorize URL with it.
    """
    client_id: str
    client_secret: str
    redirect_uri: str


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Local store configuration.

    Attributes:
        path: Absolute path of the SQLite database file (~ expanded).
    """
    path: Path


@dataclass(frozen=True)
class SyncConfig:
    """
    Sync behavior configuration.

    Attributes:
        max_workers: Number of threads used to provision playlists and push
                     their contents concurrently. Default: 4.
        request_timeout: Seconds before an HTTP request to Spotify times out.
                         Default: 10.
    """
    max_workers: int
    request_timeout: int


@dataclass(frozen=True)
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        directory: Directory where log files are written (~ expanded).
    """
    directory: Path


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Database: {config.database.path}")
        print(f"Using {config.sync.max_workers} workers")
    """
    spotify: SpotifyConfig
    database: DatabaseConfig
    sync: SyncConfig
    logging: LoggingConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml and the environment.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.
                     A missing default file is allowed as long as the
                     environment supplies the Spotify credentials.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is missing, the YAML is
                     invalid, or a field is missing or has an invalid value.

    Behavior:
        1. Load .env from the working directory (if present)
        2. Read and parse YAML content
        3. Apply environment variable overrides
        4. Validate each section, applying defaults
        5. Create and return frozen Config object
    """
    load_dotenv()

    explicit = config_path is not None
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    raw_config: dict[str, Any] = {}
    if config_path.exists():
        raw_config = _read_yaml(config_path)
    elif explicit:
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    _apply_env_overrides(raw_config)

    return Config(
        spotify=_parse_spotify_config(_section(raw_config, "spotify")),
        database=_parse_database_config(_section(raw_config, "database")),
        sync=_parse_sync_config(_section(raw_config, "sync")),
        logging=_parse_logging_config(_section(raw_config, "logging")),
    )


def _read_yaml(config_path: Path) -> dict[str, Any]:
    """Read config.yaml, wrapping I/O and syntax errors in ConfigError."""
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file parses to None
    if raw_config is None:
        return {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return raw_config


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw_config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _apply_env_overrides(raw_config: dict[str, Any]) -> None:
    for env_var, (section, field) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            target = raw_config.get(section)
            if not isinstance(target, dict):
                target = {}
                raw_config[section] = target
            target[field] = value


def _require_string(section: dict[str, Any], field: str, qualified: str) -> str:
    value = section.get(field, "")
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{qualified}' must be a non-empty string",
            details={"field": qualified}
        )
    return value.strip()


def _positive_int(section: dict[str, Any], field: str, qualified: str, default: int) -> int:
    value = section.get(field)
    if value is None:
        return default
    # bool is a subclass of int, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(
            f"'{qualified}' must be a positive integer",
            details={"field": qualified, "value": value}
        )
    return value


def _parse_spotify_config(spotify_section: dict[str, Any]) -> SpotifyConfig:
    """
    Parse and validate the Spotify configuration section.

    Raises:
        ConfigError: If client_id or client_secret is missing or empty.
    """
    client_id = _require_string(spotify_section, "client_id", "spotify.client_id")
    client_secret = _require_string(spotify_section, "client_secret", "spotify.client_secret")

    redirect_uri = DEFAULT_REDIRECT_URI
    if spotify_section.get("redirect_uri") is not None:
        redirect_uri = _require_string(spotify_section, "redirect_uri", "spotify.redirect_uri")

    return SpotifyConfig(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri
    )


def _parse_database_config(database_section: dict[str, Any]) -> DatabaseConfig:
    raw_path = DEFAULT_DATABASE_PATH
    if database_section.get("path") is not None:
        raw_path = _require_string(database_section, "path", "database.path")
    return DatabaseConfig(path=Path(raw_path).expanduser().resolve())


def _parse_sync_config(sync_section: dict[str, Any]) -> SyncConfig:
    return SyncConfig(
        max_workers=_positive_int(
            sync_section, "max_workers", "sync.max_workers", DEFAULT_MAX_WORKERS
        ),
        request_timeout=_positive_int(
            sync_section, "request_timeout", "sync.request_timeout", DEFAULT_REQUEST_TIMEOUT
        ),
    )


def _parse_logging_config(logging_section: dict[str, Any]) -> LoggingConfig:
    raw_dir = DEFAULT_LOG_DIRECTORY
    if logging_section.get("directory") is not None:
        raw_dir = _require_string(logging_section, "directory", "logging.directory")
    return LoggingConfig(directory=Path(raw_dir).expanduser().resolve())
