"""
Login flow: turn an authorization code into a stored, usable user.

Steps:
    1. Exchange the code for an access/refresh token pair
    2. Fetch the current Spotify profile with the new access token
    3. Upsert the user (Spotify id, avatar, tokens)
    4. Return a UserSession ready for pull/push
"""

from playlist_gen.core.database import Database
from playlist_gen.core.logger import get_logger
from playlist_gen.spotify.auth import TokenManager, expiry_from
from playlist_gen.spotify.client import SpotifyApi
from playlist_gen.spotify.models import ProfileResponse, UserSession

logger = get_logger(__name__)


def login(
    database: Database,
    token_manager: TokenManager,
    api: SpotifyApi,
    code: str
) -> UserSession:
    """
    Complete the authorization code flow for one user.

    Args:
        database: Store where the user and its tokens are saved.
        token_manager: Performs the code exchange.
        api: Used to load the profile with the fresh token.
        code: The `code` query parameter from the redirect URL.

    Returns:
        Session of the logged-in user.

    Raises:
        TokenRefreshError: If Spotify rejects the code.
        SpotifyApiError: If the profile request fails.
        ResponseValidationError: If a response has an unexpected shape.
    """
    token = token_manager.exchange_code(code)
    expires_at = expiry_from(token.expires_in)

    profile = api.execute(token.access_token, lambda sp: sp.current_user(), ProfileResponse)
    avatar_url = profile.images[0].url if profile.images else None

    user_id = database.upsert_user(
        spotify_id=profile.id,
        avatar_url=avatar_url,
        access_token=token.access_token,
        refresh_token=token.refresh_token,
        access_token_expires_at=expires_at
    )
    logger.info(f"Logged in as Spotify user {profile.id}")

    return UserSession(
        user_id=user_id,
        spotify_id=profile.id,
        access_token=token.access_token,
        refresh_token=token.refresh_token,
        expires_at=expires_at,
    )
