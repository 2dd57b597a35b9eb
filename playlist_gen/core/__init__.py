"""
Core module for playlist-gen.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - database: Thread-safe SQLite store for tracks, labels and playlists
    - logger: Logging system with multiple outputs

Usage:
    from playlist_gen.core import (
        Config, load_config,
        Database,
        setup_logging, get_logger,
        PlaylistGenError, ConfigError, DatabaseError
    )
"""

from playlist_gen.core.config import (
    Config,
    DatabaseConfig,
    LoggingConfig,
    SpotifyConfig,
    SyncConfig,
    load_config,
)
from playlist_gen.core.database import Database
from playlist_gen.core.exceptions import (
    ConfigError,
    CriteriaError,
    DatabaseError,
    PlaylistGenError,
    ResponseValidationError,
    SpotifyApiError,
    SpotifyError,
    TokenRefreshError,
)
from playlist_gen.core.logger import (
    get_logger,
    log_criteria_failure,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "DatabaseConfig",
    "SyncConfig",
    "LoggingConfig",
    "load_config",
    # Database
    "Database",
    # Exceptions
    "PlaylistGenError",
    "ConfigError",
    "DatabaseError",
    "SpotifyError",
    "SpotifyApiError",
    "ResponseValidationError",
    "TokenRefreshError",
    "CriteriaError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_criteria_failure",
    "shutdown_logging",
]
