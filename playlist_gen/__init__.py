"""
playlist-gen: Turn labels on your favorite Spotify tracks into playlists.

The user tags favorited tracks with labels. Each label is materialized as a
private Spotify playlist that playlist-gen owns and rewrites on every push.

Labels come in two kinds:
    static  Tracks are added and removed by hand.
    smart   Tracks are whatever matches a criteria expression, evaluated
            against the local store at push time, for example
            `genre ~ "jazz" and year < 1970 and not explicit`.

Architecture:
    PULL (sync/favorites.py): Spotify favorites -> local store
        - Fetch saved tracks newest first, 5 then 25 per page
        - Store albums and artists (genres looked up in batches of 50)
        - Store new tracks; stop at the first page with a known track

    PUSH (sync/playlists.py): labels -> Spotify playlists
        - Create "<label> [generated]" playlists for new labels
        - Resolve each label's tracks (static relation or compiled criteria)
        - Replace the playlist items in chunks of 50

Modules:
    core/       - Configuration, database, logging, exceptions
    spotify/    - Token management, login and the Web API client
    criteria/   - Smart label criteria parser and SQL compiler
    sync/       - Pull and push operations
    utils/      - Thread pool helper
    cli.py      - Command-line interface

Usage:
    Command Line:
        playlist-gen login
        playlist-gen pull
        playlist-gen label create "Calm" --criteria 'genre ~ "ambient"'
        playlist-gen push

    Python API:
        from playlist_gen.core import load_config, Database
        from playlist_gen.spotify import SpotifyApi, TokenManager, UserSession
        from playlist_gen.sync import pull_favorites, push_playlists

        config = load_config()
        database = Database(config.database.path)
        tokens = TokenManager(
            database, config.spotify.client_id, config.spotify.client_secret,
            config.spotify.redirect_uri
        )
        api = SpotifyApi(tokens)
        session = UserSession.from_user_row(database.get_all_users()[0])

        pull_favorites(api, database, session)
        push_playlists(api, database, session)

Dependencies:
    - spotipy: Spotify Web API client
    - requests: Token endpoint and HTTP session
    - pydantic: Response validation
    - click: CLI framework
    - rich-click: CLI colors
    - tqdm: Progress bars and tqdm-safe logging
    - pyyaml: Configuration file parsing
    - python-dotenv: .env support for credentials
"""

__version__ = "0.1.0"
__author__ = "playlist-gen"
__license__ = "MIT"

# Convenience imports for common usage
from playlist_gen.core import (
    Config,
    ConfigError,
    CriteriaError,
    Database,
    DatabaseError,
    PlaylistGenError,
    SpotifyError,
    get_logger,
    load_config,
    setup_logging,
)
from playlist_gen.criteria import compile_criteria, validate_criteria
from playlist_gen.spotify import SpotifyApi, TokenManager, UserSession
from playlist_gen.sync import pull_favorites, push_playlists

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "Database",
    "setup_logging",
    "get_logger",
    # Exceptions
    "PlaylistGenError",
    "ConfigError",
    "DatabaseError",
    "SpotifyError",
    "CriteriaError",
    # Criteria
    "compile_criteria",
    "validate_criteria",
    # Spotify
    "SpotifyApi",
    "TokenManager",
    "UserSession",
    # Sync
    "pull_favorites",
    "push_playlists",
]
