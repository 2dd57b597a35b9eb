"""Test configuration and fixtures"""

import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import spotipy

from playlist_gen.core.database import Database
from playlist_gen.spotify.auth import TokenManager
from playlist_gen.spotify.client import SpotifyApi
from playlist_gen.spotify.models import UserSession


class FakeSpotify:
    """
    Stand-in for spotipy.Spotify that serves canned data and records calls.

    `calls` holds (method, args) tuples in call order; `tokens` holds the
    bearer token of every client built by the factory.
    """

    def __init__(self):
        self.favorites = []          # saved track items, newest first
        self.genres = {}             # artist id -> genres
        self.profile = {"id": "alice", "images": [{"url": "https://img/alice.jpg"}]}
        self.failures = {}           # method name -> exception to raise
        self.failing_playlist_names = set()
        self.calls = []
        self.tokens = []
        self._lock = threading.Lock()
        self._playlist_counter = 0

    def factory(self, token):
        self.tokens.append(token)
        return self

    def _record(self, method, *args):
        self.calls.append((method, args))
        if method in self.failures:
            raise self.failures[method]

    def calls_to(self, method):
        return [args for name, args in self.calls if name == method]

    # spotipy API

    def current_user(self):
        self._record("current_user")
        return self.profile

    def current_user_saved_tracks(self, limit=20, offset=0):
        self._record("current_user_saved_tracks", limit, offset)
        return {"items": self.favorites[offset:offset + limit], "limit": limit, "offset": offset}

    def artists(self, ids):
        self._record("artists", list(ids))
        return {"artists": [
            {"id": artist_id, "name": f"Artist {artist_id}", "genres": self.genres.get(artist_id, [])}
            for artist_id in ids
        ]}

    def user_playlist_create(self, user, name, public=True, collaborative=False, description=""):
        self._record("user_playlist_create", user, name, public, description)
        if name in self.failing_playlist_names:
            raise spotipy.SpotifyException(500, -1, "boom", reason="Internal Server Error", headers={})
        with self._lock:
            self._playlist_counter += 1
            return {"id": f"playlist{self._playlist_counter}", "name": name}

    def playlist_replace_items(self, playlist_id, items):
        self._record("playlist_replace_items", playlist_id, list(items))
        return {"snapshot_id": "snap"}

    def playlist_add_items(self, playlist_id, items, position=None):
        self._record("playlist_add_items", playlist_id, list(items))
        return {"snapshot_id": "snap"}

    def playlist_remove_all_occurrences_of_items(self, playlist_id, items, snapshot_id=None):
        self._record("playlist_remove_all_occurrences_of_items", playlist_id, list(items))
        return {"snapshot_id": "snap"}


def saved_track(
    track_id,
    added_at,
    album_id="album1",
    artist_ids=("artist1",),
    explicit=False,
    release_date="2020-05-01",
    images=True
):
    """Build one item of GET /me/tracks."""
    return {
        "added_at": added_at,
        "track": {
            "id": track_id,
            "name": f"Track {track_id}",
            "explicit": explicit,
            "album": {
                "id": album_id,
                "name": f"Album {album_id}",
                "release_date": release_date,
                "images": [{"url": f"https://img/{album_id}.jpg"}] if images else [],
            },
            "artists": [{"id": artist_id, "name": f"Artist {artist_id}"} for artist_id in artist_ids],
        },
    }


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def database(temp_dir):
    """Empty store in a temporary directory"""
    db = Database(temp_dir / "playlist_gen.db")
    yield db
    db.close()


@pytest.fixture
def session(database):
    """Stored user whose token stays valid for the whole test"""
    expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
    user_id = database.upsert_user(
        spotify_id="alice",
        avatar_url=None,
        access_token="valid-token",
        refresh_token="refresh-token",
        access_token_expires_at=expires_at
    )
    return UserSession(
        user_id=user_id,
        spotify_id="alice",
        access_token="valid-token",
        refresh_token="refresh-token",
        expires_at=expires_at,
    )


@pytest.fixture
def token_manager(database):
    return TokenManager(database, "client-id", "client-secret", "http://127.0.0.1:8888/callback")


@pytest.fixture
def fake_spotify():
    return FakeSpotify()


@pytest.fixture
def api(token_manager, fake_spotify):
    """SpotifyApi whose spotipy clients are the shared FakeSpotify"""
    return SpotifyApi(token_manager, spotify_factory=fake_spotify.factory)


@pytest.fixture
def make_saved_track():
    return saved_track


@pytest.fixture
def add_track(database, session):
    """Insert a track (with its album and artists) directly into the store"""

    def _add_track(
        spotify_id,
        date_added,
        album=("album1", "Album", "2020-05-01"),
        artists=(("artist1", "Artist", []),),
        explicit=False,
        name=None
    ):
        album_id, album_name, released = album
        database.create_albums([{
            "id": album_id, "name": album_name, "thumbnail_url": None, "date_released": released
        }])
        database.create_artists([
            {"id": artist_id, "name": artist_name, "genres": genres}
            for artist_id, artist_name, genres in artists
        ])
        return database.create_track(
            session.user_id,
            {
                "spotify_id": spotify_id,
                "name": name or f"Track {spotify_id}",
                "album_id": album_id,
                "date_added": date_added,
                "explicit": explicit,
            },
            artist_ids=[artist_id for artist_id, _, _ in artists]
        )

    return _add_track
