"""
OAuth2 token management for the Spotify Web API.

This module owns every interaction with the Spotify accounts service:

    - Building the authorization URL the user visits to log in
    - Exchanging the authorization code for an access/refresh token pair
    - Refreshing an expired access token before an API call

Token lifecycle:
    Spotify access tokens are valid for `expires_in` seconds (usually 3600).
    When a token is minted, its absolute expiry is stored 60 seconds early,
    so a token is never used right at the edge of its validity. Before each
    API call TokenManager.ensure_valid_token() compares that instant with
    the current time and refreshes if needed.

Failure policy:
    A refresh that the accounts service rejects is fatal. The refresh token
    has been revoked or expired and only a new login can recover, so the
    error is raised to the caller and never retried.

Concurrency:
    Refreshes are not serialized. Two operations for the same user may both
    see an expired token and both refresh; the later write simply
    supersedes the earlier one.
"""

import urllib.parse
from datetime import datetime, timedelta, timezone

import requests
from pydantic import ValidationError

from playlist_gen.core.database import Database
from playlist_gen.core.exceptions import ResponseValidationError, TokenRefreshError
from playlist_gen.core.logger import get_logger
from playlist_gen.spotify.models import TokenResponse, UserSession

logger = get_logger(__name__)


TOKEN_URL = "https://accounts.spotify.com/api/token"
AUTHORIZE_URL = "https://accounts.spotify.com/authorize"

# Read favorites, write the generated playlists
SCOPES = "user-library-read playlist-modify-private playlist-modify-public"

# Tokens are considered expired this long before Spotify says they are
EXPIRY_MARGIN_SECONDS = 60


def expiry_from(expires_in: int, now: datetime | None = None) -> datetime:
    """
    Convert a relative `expires_in` into the absolute instant to store.

    Args:
        expires_in: Token validity in seconds, as returned by Spotify.
        now: Reference time (defaults to the current UTC time).

    Returns:
        The UTC instant after which the token must be refreshed.
    """
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=expires_in - EXPIRY_MARGIN_SECONDS)


class TokenManager:
    """
    Obtains and refreshes Spotify access tokens for users.

    The manager holds the application credentials and a reference to the
    store; it keeps no per-user state. Token state travels in the
    UserSession passed to each call.

    Attributes:
        client_id: Spotify application client ID.
        redirect_uri: Redirect URI used for the authorization code flow.
        timeout: Seconds before a request to the accounts service times out.

    Example:
        tokens = TokenManager(database, client_id, client_secret, redirect_uri)
        session = UserSession.from_user_row(database.get_user(user_id))
        access_token = tokens.ensure_valid_token(session)
    """

    def __init__(
        self,
        database: Database,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: int = 10
    ) -> None:
        self._database = database
        self.client_id = client_id
        self._client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def ensure_valid_token(self, session: UserSession) -> str:
        """
        Return an access token that is valid right now.

        If the session's token is past its (margin-adjusted) expiry, it is
        refreshed first: the new token is persisted with one write and the
        session is updated in place, so later calls in the same operation
        use it without re-reading the store.

        Args:
            session: Per-operation token state of the user.

        Returns:
            The bearer token to attach to the next API call.

        Raises:
            TokenRefreshError: If the accounts service rejects the refresh token.
            ResponseValidationError: If the token response has an unexpected shape.
        """
        if session.is_expired():
            logger.info("Access token expired, refreshing...")
            self.refresh(session)
        return session.access_token

    def refresh(self, session: UserSession) -> None:
        """Exchange the session's refresh token for a new access token."""
        token = self._request_token({
            "grant_type": "refresh_token",
            "refresh_token": session.refresh_token,
        })
        expires_at = expiry_from(token.expires_in)

        self._database.update_user_token(
            session.user_id,
            token.access_token,
            expires_at,
            refresh_token=token.refresh_token
        )

        session.access_token = token.access_token
        session.expires_at = expires_at
        if token.refresh_token:
            session.refresh_token = token.refresh_token

        logger.debug(f"Refreshed access token for user {session.user_id}, valid until {expires_at}")

    def authorize_url(self, state: str) -> str:
        """
        Build the URL the user opens to grant playlist-gen access.

        Args:
            state: Opaque value echoed back on the redirect, checked by the caller.
        """
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "scope": SCOPES,
            "state": state,
            "show_dialog": "true",
        }
        return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"

    def exchange_code(self, code: str) -> TokenResponse:
        """
        Exchange an authorization code for an access/refresh token pair.

        Args:
            code: The `code` query parameter from the redirect URL.

        Returns:
            The validated token response (refresh_token guaranteed present).

        Raises:
            TokenRefreshError: If Spotify rejects the code.
            ResponseValidationError: If the response lacks a refresh token.
        """
        token = self._request_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })
        if not token.refresh_token:
            raise ResponseValidationError(
                "Token response for authorization code is missing refresh_token",
                details={"url": TOKEN_URL}
            )
        return token

    def _request_token(self, data: dict[str, str]) -> TokenResponse:
        """
        POST a grant to the token endpoint using client-credential basic auth.

        Raises:
            TokenRefreshError: On network failure or a non-success status.
            ResponseValidationError: If the body doesn't match TokenResponse.
        """
        grant_type = data["grant_type"]
        try:
            response = requests.post(
                TOKEN_URL,
                data=data,
                auth=(self.client_id, self._client_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TokenRefreshError(
                f"Failed to reach Spotify token endpoint: {e}",
                details={"grant_type": grant_type, "original_error": str(e)}
            ) from e

        if not response.ok:
            logger.error(f"Spotify token endpoint returned {response.status_code}: {response.text}")
            raise TokenRefreshError(
                f"Spotify rejected the {grant_type} grant (HTTP {response.status_code})",
                details={
                    "grant_type": grant_type,
                    "http_status": response.status_code,
                    "body": response.text,
                }
            )

        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ResponseValidationError(
                f"Unexpected token response from Spotify: {e}",
                details={"url": TOKEN_URL, "grant_type": grant_type}
            ) from e
