"""
Synchronization between the local store and Spotify.

    - pull_favorites: Favorited tracks -> store
    - push_playlists: Labels -> Spotify playlists
"""

from playlist_gen.sync.favorites import FavoritesSync, PullResult, pull_favorites
from playlist_gen.sync.playlists import (
    PLACEHOLDER_TRACK_ID,
    PlaylistSync,
    PushResult,
    push_playlists,
)

__all__ = [
    # Pull
    "FavoritesSync",
    "PullResult",
    "pull_favorites",
    # Push
    "PLACEHOLDER_TRACK_ID",
    "PlaylistSync",
    "PushResult",
    "push_playlists",
]
