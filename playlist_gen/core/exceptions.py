"""
Exception classes for playlist-gen.

This module defines all custom exceptions used throughout the application.
Each exception carries a human-readable message and an optional details
dictionary so that callers can log context without parsing strings.

Exception Hierarchy:
    PlaylistGenError (base)
        ConfigError - Configuration file issues
        DatabaseError - Local store issues
        SpotifyError - Spotify Web API issues
            SpotifyApiError - Non-success HTTP response
            ResponseValidationError - Response body has an unexpected shape
            TokenRefreshError - Token endpoint rejected the grant
        CriteriaError - Invalid smart label criteria
"""


class PlaylistGenError(Exception):
    """
    Base exception for all playlist-gen errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all playlist-gen errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., label, status).

    Example:
        try:
            push_playlists(api, database, session)
        except PlaylistGenError as e:
            logger.error(f"Push failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'user_id': Local user involved in the error
                     - 'http_status': Status code returned by Spotify
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(PlaylistGenError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - config.yaml not found
        - config.yaml has invalid YAML syntax
        - Required fields missing (client_id, client_secret)
        - Invalid field values (e.g., negative worker count)
    """
    pass


class DatabaseError(PlaylistGenError):
    """
    Raised when there's an issue with the local SQLite store.

    This is a CRITICAL error for pull and push operations, with one
    exception: a failure while resolving the tracks of a smart label is
    logged and the label is treated as empty for that round.

    Common causes:
        - Database file not writable
        - Schema version mismatch
        - Constraint violation (e.g., duplicate label name)
    """
    pass


class SpotifyError(PlaylistGenError):
    """
    Base class for failures talking to Spotify.

    Every subclass is CRITICAL to the enclosing sync operation: nothing
    in this package retries a failed call. The only resilience measure
    is the preemptive token refresh performed before each call.
    """
    pass


class SpotifyApiError(SpotifyError):
    """
    Raised when the Spotify Web API answers with a non-success status.

    Attributes:
        http_status: The HTTP status code (or None if unknown).
        body: The raw error message returned by Spotify.

    Example:
        raise SpotifyApiError(
            "Spotify API error 403: Insufficient client scope",
            http_status=403,
            body="Insufficient client scope",
            details={'url': 'https://api.spotify.com/v1/me/tracks'}
        )
    """

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        body: str | None = None,
        details: dict | None = None
    ) -> None:
        super().__init__(message, details)
        self.http_status = http_status
        self.body = body

    @property
    def is_auth_error(self) -> bool:
        """True if Spotify rejected the bearer token."""
        return self.http_status == 401

    @property
    def is_rate_limit(self) -> bool:
        """True if Spotify rate limited the request."""
        return self.http_status == 429


class ResponseValidationError(SpotifyError):
    """
    Raised when a Spotify response body does not match its expected schema.

    This is a decode error, distinct from SpotifyApiError: the HTTP call
    itself succeeded but the payload cannot be trusted.
    """
    pass


class TokenRefreshError(SpotifyError):
    """
    Raised when the Spotify token endpoint rejects a grant.

    For a refresh grant this means the stored refresh token is no longer
    valid. Re-running the login flow is the only recovery.
    """
    pass


class CriteriaError(PlaylistGenError):
    """
    Raised when a smart label criteria string cannot be compiled.

    This is a NON-CRITICAL error. The compiler converts it into a None
    result; it only surfaces directly where a label is being saved.

    Attributes:
        position: Character offset in the criteria text where the problem
                  was detected, or None if not applicable.
    """

    def __init__(
        self,
        message: str,
        position: int | None = None,
        details: dict | None = None
    ) -> None:
        super().__init__(message, details)
        self.position = position
