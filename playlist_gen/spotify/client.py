"""
Spotify Web API client for playlist-gen.

Every request to the Web API goes through SpotifyApi.call(), which wraps a
request-producer (a callable receiving an authenticated spotipy.Spotify)
with the three things every call needs:

    1. Preemptive refresh: the session's token is checked and refreshed
       BEFORE the request is issued. There is no retry-after-401 loop.
    2. Error surfacing: a non-success status is logged with its body and
       raised as SpotifyApiError. Nothing is retried; spotipy's own retry
       machinery is disabled.
    3. Validation: the decoded body is validated against a pydantic schema.
       A mismatch raises ResponseValidationError.

Usage:
    api = SpotifyApi(token_manager, request_timeout=10)

    page = api.saved_tracks(session, offset=0, limit=5)
    for item in page.items:
        print(item.track.name)

    # Any endpoint, same guarantees
    profile = api.call(session, lambda sp: sp.current_user(), ProfileResponse)
"""

from typing import Any, Callable, TypeVar

import requests
import spotipy
from pydantic import BaseModel, ValidationError

from playlist_gen.core.exceptions import ResponseValidationError, SpotifyApiError
from playlist_gen.core.logger import get_logger
from playlist_gen.spotify.auth import TokenManager
from playlist_gen.spotify.models import (
    ArtistObject,
    ArtistsResponse,
    CreatePlaylistResponse,
    ProfileResponse,
    SavedTracksResponse,
    SnapshotResponse,
    UserSession,
)

logger = get_logger(__name__)


# Spotify rejects more than 50 ids per /artists request and more than
# 100 URIs per playlist items request; playlist-gen uses 50 for both.
ARTISTS_BATCH_SIZE = 50
PLAYLIST_CHUNK_SIZE = 50

SchemaT = TypeVar("SchemaT", bound=BaseModel)
SpotifyFactory = Callable[[str], spotipy.Spotify]
SpotifyRequest = Callable[[spotipy.Spotify], Any]


def track_uri(spotify_id: str) -> str:
    """Build the Spotify URI of a track from its id."""
    return f"spotify:track:{spotify_id}"


def chunked(items: list[Any], size: int) -> list[list[Any]]:
    """Split a list into consecutive chunks of at most `size` items."""
    return [items[i:i + size] for i in range(0, len(items), size)]


class SpotifyApi:
    """
    Authenticated, validating access to the Spotify Web API.

    The client is stateless with respect to users: token state lives in
    the UserSession passed to each call. One instance can therefore be
    shared by all worker threads of a sync operation.

    Attributes:
        _tokens: TokenManager used for the preemptive refresh.
        _spotify_factory: Builds a spotipy.Spotify for a bearer token.
                          Tests inject a fake here.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        request_timeout: int = 10,
        spotify_factory: SpotifyFactory | None = None
    ) -> None:
        self._tokens = token_manager
        self._timeout = request_timeout

        if spotify_factory is None:
            http = requests.Session()
            http.headers.update({"Accept": "application/json"})
            spotify_factory = lambda token: spotipy.Spotify(  # noqa: E731
                auth=token,
                requests_session=http,
                requests_timeout=request_timeout,
                retries=0,
                status_retries=0,
            )
        self._spotify_factory = spotify_factory

    # =========================================================================
    # Core request wrapper
    # =========================================================================

    def call(
        self,
        session: UserSession,
        request: SpotifyRequest,
        schema: type[SchemaT]
    ) -> SchemaT:
        """
        Issue one authenticated request and return its validated body.

        Args:
            session: Per-operation token state (refreshed in place if expired).
            request: Callable receiving an authenticated spotipy.Spotify and
                     returning the decoded JSON body.
            schema: pydantic model the body must match.

        Returns:
            The body parsed into `schema`.

        Raises:
            TokenRefreshError: If the token had expired and could not be refreshed.
            SpotifyApiError: If Spotify answered with a non-success status.
            ResponseValidationError: If the body doesn't match `schema`.
        """
        access_token = self._tokens.ensure_valid_token(session)
        return self.execute(access_token, request, schema)

    def execute(
        self,
        access_token: str,
        request: SpotifyRequest,
        schema: type[SchemaT]
    ) -> SchemaT:
        """
        Issue a request with an explicit token, without refreshing.

        Used by call() and by the login flow, which holds a freshly minted
        token before any user row exists.
        """
        spotify = self._spotify_factory(access_token)

        try:
            body = request(spotify)
        except spotipy.SpotifyException as e:
            logger.error(f"Spotify API error {e.http_status}: {e.msg}")
            raise SpotifyApiError(
                f"Spotify API error {e.http_status}: {e.msg}",
                http_status=e.http_status,
                body=e.msg,
                details={"reason": e.reason, "headers": dict(e.headers or {})}
            ) from e
        except requests.RequestException as e:
            logger.error(f"Spotify API request failed: {e}")
            raise SpotifyApiError(
                f"Spotify API request failed: {e}",
                details={"original_error": str(e)}
            ) from e

        try:
            return schema.model_validate(body)
        except ValidationError as e:
            logger.error(f"Unexpected {schema.__name__} body from Spotify: {e}")
            raise ResponseValidationError(
                f"Spotify response did not match {schema.__name__}",
                details={"schema": schema.__name__, "errors": e.errors()}
            ) from e

    # =========================================================================
    # Profile & library
    # =========================================================================

    def current_profile(self, session: UserSession) -> ProfileResponse:
        return self.call(session, lambda sp: sp.current_user(), ProfileResponse)

    def saved_tracks(self, session: UserSession, offset: int, limit: int) -> SavedTracksResponse:
        """
        Get one page of the user's favorite (saved) tracks.

        Args:
            offset: Index of the first saved track to return.
            limit: Page size (Spotify allows up to 50).
        """
        logger.debug(f"GET /me/tracks offset={offset} limit={limit}")
        return self.call(
            session,
            lambda sp: sp.current_user_saved_tracks(limit=limit, offset=offset),
            SavedTracksResponse
        )

    def lookup_artists(self, session: UserSession, artist_ids: list[str]) -> list[ArtistObject]:
        """
        Load name and genres of artists, ARTISTS_BATCH_SIZE ids per request.

        Batches are requested sequentially; an empty input makes no request.
        """
        artists: list[ArtistObject] = []
        for batch in chunked(artist_ids, ARTISTS_BATCH_SIZE):
            logger.debug(f"GET /artists ({len(batch)} ids)")
            response = self.call(session, lambda sp, ids=batch: sp.artists(ids), ArtistsResponse)
            artists.extend(response.artists)
        return artists

    # =========================================================================
    # Playlists
    # =========================================================================

    def create_playlist(
        self,
        session: UserSession,
        name: str,
        description: str,
        public: bool = False
    ) -> CreatePlaylistResponse:
        logger.debug(f"POST /users/{session.spotify_id}/playlists name={name!r}")
        return self.call(
            session,
            lambda sp: sp.user_playlist_create(
                session.spotify_id, name, public=public, description=description
            ),
            CreatePlaylistResponse
        )

    def replace_playlist_tracks(
        self,
        session: UserSession,
        playlist_id: str,
        uris: list[str]
    ) -> SnapshotResponse:
        """Replace every item of the playlist with `uris` (PUT)."""
        logger.debug(f"PUT /playlists/{playlist_id}/tracks ({len(uris)} uris)")
        return self.call(
            session,
            lambda sp: sp.playlist_replace_items(playlist_id, uris),
            SnapshotResponse
        )

    def append_playlist_tracks(
        self,
        session: UserSession,
        playlist_id: str,
        uris: list[str]
    ) -> SnapshotResponse:
        """Append `uris` to the end of the playlist (POST)."""
        logger.debug(f"POST /playlists/{playlist_id}/tracks ({len(uris)} uris)")
        return self.call(
            session,
            lambda sp: sp.playlist_add_items(playlist_id, uris),
            SnapshotResponse
        )

    def remove_playlist_tracks(
        self,
        session: UserSession,
        playlist_id: str,
        uris: list[str]
    ) -> SnapshotResponse:
        """Remove every occurrence of `uris` from the playlist (DELETE)."""
        logger.debug(f"DELETE /playlists/{playlist_id}/tracks ({len(uris)} uris)")
        return self.call(
            session,
            lambda sp: sp.playlist_remove_all_occurrences_of_items(playlist_id, uris),
            SnapshotResponse
        )
