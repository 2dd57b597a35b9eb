"""
Spotify integration module for playlist-gen.

This module provides all functionality for interacting with Spotify:
    - TokenManager: Authorization URL, code exchange and token refresh
    - SpotifyApi: Authenticated, validating Web API client
    - UserSession: Per-operation token state
    - login: Authorization code flow ending in a stored user

Usage:
    from playlist_gen.spotify import SpotifyApi, TokenManager, UserSession

    tokens = TokenManager(database, client_id, client_secret, redirect_uri)
    api = SpotifyApi(tokens)
    session = UserSession.from_user_row(database.get_user(user_id))
    profile = api.current_profile(session)
"""

from playlist_gen.spotify.auth import TokenManager, expiry_from
from playlist_gen.spotify.client import (
    PLAYLIST_CHUNK_SIZE,
    SpotifyApi,
    chunked,
    track_uri,
)
from playlist_gen.spotify.login import login
from playlist_gen.spotify.models import UserSession

__all__ = [
    # Auth
    "TokenManager",
    "expiry_from",
    "login",
    # Client
    "SpotifyApi",
    "PLAYLIST_CHUNK_SIZE",
    "chunked",
    "track_uri",
    # Models
    "UserSession",
]
