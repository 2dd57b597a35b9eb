"""
Data models for the Spotify integration.

Two kinds of models live here:

    Response schemas (pydantic):
        Every body returned by Spotify is validated against one of these
        before the rest of the application sees it. Each schema only
        declares the fields playlist-gen actually uses; anything else in
        the payload is ignored.

    UserSession (dataclass):
        The per-operation token state. One is built from the stored user
        row at the start of a pull or push and threaded through every API
        call of that operation, so a refresh performed by the first call is
        seen by all later ones without any global state.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel


# =========================================================================
# Accounts service
# =========================================================================

class TokenResponse(BaseModel):
    """POST https://accounts.spotify.com/api/token"""

    access_token: str
    expires_in: int
    # Only present for the authorization_code grant (and sometimes on refresh)
    refresh_token: str | None = None


# =========================================================================
# Web API
# =========================================================================

class ImageObject(BaseModel):
    url: str


class ProfileResponse(BaseModel):
    """GET /v1/me"""

    id: str
    images: list[ImageObject] = []


class SimplifiedArtist(BaseModel):
    id: str


class AlbumObject(BaseModel):
    id: str
    name: str
    release_date: str
    images: list[ImageObject]


class TrackObject(BaseModel):
    id: str
    name: str
    explicit: bool
    album: AlbumObject
    artists: list[SimplifiedArtist]


class SavedTrackObject(BaseModel):
    added_at: str
    track: TrackObject


class SavedTracksResponse(BaseModel):
    """GET /v1/me/tracks"""

    items: list[SavedTrackObject]


class ArtistObject(BaseModel):
    id: str
    name: str
    genres: list[str]


class ArtistsResponse(BaseModel):
    """GET /v1/artists?ids=..."""

    artists: list[ArtistObject]


class CreatePlaylistResponse(BaseModel):
    """POST /v1/users/{user_id}/playlists"""

    id: str


class SnapshotResponse(BaseModel):
    """PUT/POST/DELETE /v1/playlists/{playlist_id}/tracks"""

    snapshot_id: str


# =========================================================================
# Per-operation token state
# =========================================================================

@dataclass
class UserSession:
    """
    Authenticated user identity plus its current OAuth tokens.

    Attributes:
        user_id: Local database id of the user.
        spotify_id: The user's Spotify id (playlist owner).
        access_token: Current bearer token.
        refresh_token: Refresh token used to mint new access tokens.
        expires_at: Absolute UTC instant after which access_token must not
                    be used. Already includes the safety margin.
    """
    user_id: int
    spotify_id: str
    access_token: str
    refresh_token: str
    expires_at: datetime

    @classmethod
    def from_user_row(cls, row: dict[str, Any]) -> "UserSession":
        """Build a session from a row returned by Database.get_user()."""
        expires_at = datetime.fromisoformat(row["access_token_expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return cls(
            user_id=row["id"],
            spotify_id=row["spotify_id"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expires_at=expires_at,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > self.expires_at
