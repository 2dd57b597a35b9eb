"""Test the Spotify Web API client"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
import requests
import spotipy

from playlist_gen.core.exceptions import ResponseValidationError, SpotifyApiError
from playlist_gen.spotify.client import chunked, track_uri
from playlist_gen.spotify.models import ProfileResponse


class TestHelpers:
    """Test URI and chunking helpers"""

    def test_track_uri(self):
        assert track_uri("41MCdlvXOl62B7Kv86Bb1v") == "spotify:track:41MCdlvXOl62B7Kv86Bb1v"

    def test_chunked(self):
        assert chunked(list(range(5)), 2) == [[0, 1], [2, 3], [4]]
        assert chunked([], 50) == []
        assert len(chunked(list(range(100)), 50)) == 2


class TestCall:
    """Test the refresh, error and validation wrapper"""

    def test_uses_session_token(self, api, session, fake_spotify):
        profile = api.current_profile(session)
        assert profile.id == "alice"
        assert fake_spotify.tokens == ["valid-token"]

    def test_expired_token_refreshed_before_request(self, api, session, fake_spotify):
        session.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        response = Mock(ok=True, status_code=200)
        response.json.return_value = {"access_token": "new-token", "expires_in": 3600}

        with patch("playlist_gen.spotify.auth.requests.post", return_value=response) as post:
            api.current_profile(session)
            api.current_profile(session)

        assert post.call_count == 1
        assert fake_spotify.tokens == ["new-token", "new-token"]

    def test_error_status_raises_api_error(self, api, session, fake_spotify):
        fake_spotify.failures["current_user"] = spotipy.SpotifyException(
            429, -1, "API rate limit exceeded", headers={"Retry-After": "3"}
        )

        with pytest.raises(SpotifyApiError) as exc_info:
            api.current_profile(session)

        error = exc_info.value
        assert error.http_status == 429
        assert error.is_rate_limit
        assert error.body == "API rate limit exceeded"
        assert error.details["headers"] == {"Retry-After": "3"}
        # Nothing is retried
        assert len(fake_spotify.calls_to("current_user")) == 1

    def test_transport_failure_raises_api_error(self, api, session, fake_spotify):
        fake_spotify.failures["current_user"] = requests.ConnectionError("reset")
        with pytest.raises(SpotifyApiError) as exc_info:
            api.current_profile(session)
        assert exc_info.value.http_status is None

    def test_body_mismatch_raises_validation_error(self, api, session, fake_spotify):
        fake_spotify.profile = {"display_name": "no id here"}
        with pytest.raises(ResponseValidationError) as exc_info:
            api.current_profile(session)
        assert exc_info.value.details["schema"] == "ProfileResponse"

    def test_validation_error_is_not_an_api_error(self, api, session):
        with pytest.raises(ResponseValidationError) as exc_info:
            api.call(session, lambda sp: {"unexpected": True}, ProfileResponse)
        assert not isinstance(exc_info.value, SpotifyApiError)


class TestEndpoints:
    """Test endpoint helpers"""

    def test_saved_tracks_page(self, api, session, fake_spotify, make_saved_track):
        fake_spotify.favorites = [make_saved_track(f"t{i}", f"2024-01-{10 - i:02d}T00:00:00Z") for i in range(8)]

        page = api.saved_tracks(session, offset=5, limit=5)

        assert [item.track.id for item in page.items] == ["t5", "t6", "t7"]
        assert fake_spotify.calls_to("current_user_saved_tracks") == [(5, 5)]

    def test_lookup_artists_batches_of_fifty(self, api, session, fake_spotify):
        ids = [f"artist{i}" for i in range(120)]

        artists = api.lookup_artists(session, ids)

        assert [a.id for a in artists] == ids
        assert [len(batch[0]) for batch in fake_spotify.calls_to("artists")] == [50, 50, 20]

    def test_lookup_no_artists_makes_no_request(self, api, session, fake_spotify):
        assert api.lookup_artists(session, []) == []
        assert fake_spotify.calls == []

    def test_create_playlist(self, api, session, fake_spotify):
        response = api.create_playlist(session, "Calm [generated]", "desc")
        assert response.id == "playlist1"
        assert fake_spotify.calls_to("user_playlist_create") == [
            ("alice", "Calm [generated]", False, "desc")
        ]

    def test_playlist_item_endpoints(self, api, session, fake_spotify):
        uris = [track_uri("a"), track_uri("b")]
        api.replace_playlist_tracks(session, "p1", uris)
        api.append_playlist_tracks(session, "p1", uris)
        api.remove_playlist_tracks(session, "p1", uris[:1])

        assert [name for name, _ in fake_spotify.calls] == [
            "playlist_replace_items",
            "playlist_add_items",
            "playlist_remove_all_occurrences_of_items",
        ]
        assert fake_spotify.calls[2][1] == ("p1", ["spotify:track:a"])
