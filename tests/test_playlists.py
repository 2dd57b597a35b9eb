"""Test the playlist push"""

from unittest.mock import patch

import pytest

from playlist_gen.core.exceptions import DatabaseError, SpotifyApiError
from playlist_gen.spotify.client import track_uri
from playlist_gen.sync.playlists import (
    PLACEHOLDER_TRACK_ID,
    PlaylistSync,
    generated_playlist_description,
    generated_playlist_name,
    push_playlists,
)

PLACEHOLDER_URI = track_uri(PLACEHOLDER_TRACK_ID)


@pytest.fixture
def static_label(database, session, add_track):
    """Create a static label holding `count` tracks; returns the expected URIs, newest first"""

    def _static_label(name, count):
        label_id = database.create_label(session.user_id, name)
        for i in range(count):
            track_id = add_track(f"{name}-{i:03d}", f"2024-01-01T00:{i // 60:02d}:{i % 60:02d}Z")
            database.add_track_label(track_id, label_id)
        return [track_uri(f"{name}-{i:03d}") for i in reversed(range(count))]

    return _static_label


def item_calls(fake_spotify):
    return [
        (name, args) for name, args in fake_spotify.calls
        if name.startswith("playlist_")
    ]


class TestNaming:
    def test_generated_name_and_description(self):
        assert generated_playlist_name("Calm") == "Calm [generated]"
        assert generated_playlist_description("Calm") == 'Tracks labeled "Calm" by playlist-gen'


class TestProvisioning:
    """Test playlist creation for new labels"""

    def test_creates_private_playlist_per_label(self, api, database, session, fake_spotify):
        calm = database.create_label(session.user_id, "Calm")
        loud = database.create_label(session.user_id, "Loud", smart_criteria="explicit")

        result = push_playlists(api, database, session)

        assert result.playlists_created == 2
        created = sorted(fake_spotify.calls_to("user_playlist_create"))
        assert created == [
            ("alice", "Calm [generated]", False, 'Tracks labeled "Calm" by playlist-gen'),
            ("alice", "Loud [generated]", False, 'Tracks labeled "Loud" by playlist-gen'),
        ]
        mapped = {p["label_id"]: p["spotify_id"] for p in database.get_playlists_with_labels(session.user_id)}
        assert set(mapped) == {calm, loud}
        assert sorted(mapped.values()) == ["playlist1", "playlist2"]

    def test_existing_playlists_are_reused(self, api, database, session, fake_spotify):
        database.create_label(session.user_id, "Calm")
        push_playlists(api, database, session)
        fake_spotify.calls.clear()

        result = push_playlists(api, database, session)

        assert result.playlists_created == 0
        assert fake_spotify.calls_to("user_playlist_create") == []
        assert result.playlists_synced == 1

    def test_created_playlists_survive_sibling_failure(self, api, database, session, fake_spotify):
        good = database.create_label(session.user_id, "Good")
        database.create_label(session.user_id, "Bad")
        fake_spotify.failing_playlist_names.add("Bad [generated]")

        with pytest.raises(SpotifyApiError):
            push_playlists(api, database, session, max_workers=2)

        playlists = database.get_playlists_with_labels(session.user_id)
        assert [p["label_id"] for p in playlists] == [good]
        # No content was pushed
        assert item_calls(fake_spotify) == []


class TestContent:
    """Test chunked replacement of playlist items"""

    def test_fifty_tracks_single_replace(self, api, database, session, fake_spotify, static_label):
        uris = static_label("Fifty", 50)

        result = push_playlists(api, database, session)

        assert item_calls(fake_spotify) == [("playlist_replace_items", ("playlist1", uris))]
        assert result.tracks_pushed == 50

    def test_fifty_one_tracks_replace_then_append(self, api, database, session, fake_spotify, static_label):
        uris = static_label("More", 51)

        push_playlists(api, database, session)

        assert item_calls(fake_spotify) == [
            ("playlist_replace_items", ("playlist1", uris[:50])),
            ("playlist_add_items", ("playlist1", uris[50:])),
        ]

    def test_chunks_stay_in_order(self, api, database, session, fake_spotify, static_label):
        uris = static_label("Big", 120)

        push_playlists(api, database, session)

        calls = item_calls(fake_spotify)
        assert [name for name, _ in calls] == [
            "playlist_replace_items", "playlist_add_items", "playlist_add_items"
        ]
        assert [uri for _, (_, chunk) in calls for uri in chunk] == uris

    def test_empty_label_round_trip(self, api, database, session, fake_spotify):
        database.create_label(session.user_id, "Empty")

        result = push_playlists(api, database, session)

        assert item_calls(fake_spotify) == [
            ("playlist_replace_items", ("playlist1", [PLACEHOLDER_URI])),
            ("playlist_remove_all_occurrences_of_items", ("playlist1", [PLACEHOLDER_URI])),
        ]
        assert result.tracks_pushed == 0

    def test_smart_label_uses_criteria(self, api, database, session, fake_spotify, add_track):
        add_track("clean", "2024-01-01T00:00:00Z", explicit=False)
        add_track("dirty-old", "2024-01-02T00:00:00Z", explicit=True)
        add_track("dirty-new", "2024-01-03T00:00:00Z", explicit=True)
        database.create_label(session.user_id, "Explicit", smart_criteria="explicit")

        push_playlists(api, database, session)

        assert item_calls(fake_spotify) == [
            ("playlist_replace_items", ("playlist1", [track_uri("dirty-new"), track_uri("dirty-old")])),
        ]

    def test_invalid_criteria_pushes_empty(self, api, database, session, fake_spotify, add_track):
        add_track("t1", "2024-01-01T00:00:00Z")
        database.create_label(session.user_id, "Broken", smart_criteria='tempo > 120')

        result = push_playlists(api, database, session)

        assert result.criteria_failures == ["Broken"]
        assert item_calls(fake_spotify) == [
            ("playlist_replace_items", ("playlist1", [PLACEHOLDER_URI])),
            ("playlist_remove_all_occurrences_of_items", ("playlist1", [PLACEHOLDER_URI])),
        ]

    def test_failed_smart_query_pushes_empty(self, api, database, session, fake_spotify, caplog):
        database.create_label(session.user_id, "Genre", smart_criteria='genre = "jazz"')

        with patch.object(database, "find_tracks", side_effect=DatabaseError("disk I/O error")):
            with caplog.at_level("ERROR"):
                result = push_playlists(api, database, session)

        assert result.criteria_failures == ["Genre"]
        assert result.playlists_synced == 1
        failures = [r for r in caplog.records if getattr(r, "criteria_failed_label", None) == "Genre"]
        assert len(failures) == 1
        assert failures[0].criteria_failed_text == 'genre = "jazz"'

    def test_one_bad_label_does_not_block_others(self, api, database, session, fake_spotify, static_label):
        uris = static_label("Good", 2)
        database.create_label(session.user_id, "Broken", smart_criteria='year = "x"')

        result = push_playlists(api, database, session)

        assert result.playlists_synced == 2
        assert result.tracks_pushed == 2
        replaced = {args[0]: args[1] for name, args in item_calls(fake_spotify)
                    if name == "playlist_replace_items"}
        assert uris in replaced.values()
        assert [PLACEHOLDER_URI] in replaced.values()

    @pytest.mark.parametrize("criteria", [
        "year = 99999999999999999999",
        "(" * 500 + "explicit" + ")" * 500,
    ])
    def test_unusable_criteria_do_not_abort_push(self, api, database, session, fake_spotify,
                                                 static_label, criteria):
        uris = static_label("Good", 2)
        database.create_label(session.user_id, "Huge", smart_criteria=criteria)

        result = push_playlists(api, database, session)

        assert result.criteria_failures == ["Huge"]
        assert result.playlists_synced == 2
        replaced = [args[1] for name, args in item_calls(fake_spotify)
                    if name == "playlist_replace_items"]
        assert sorted(replaced) == sorted([uris, [PLACEHOLDER_URI]])


class TestLabelKinds:
    """A label's tracks come from its relation or its criteria, never both"""

    def test_smart_label_rejects_tracks(self, database, session, add_track):
        track_id = add_track("t1", "2024-01-01T00:00:00Z")
        smart = database.create_label(session.user_id, "Smart", smart_criteria="explicit")

        with pytest.raises(DatabaseError):
            database.add_track_label(track_id, smart)

    def test_making_label_smart_drops_relation(self, api, database, session, fake_spotify, add_track):
        track_id = add_track("t1", "2024-01-01T00:00:00Z", explicit=False)
        label_id = database.create_label(session.user_id, "Mixed")
        database.add_track_label(track_id, label_id)

        database.set_label_criteria(label_id, "explicit")

        assert database.get_label_track_spotify_ids(label_id) == []
        sync = PlaylistSync(api, database, session)
        playlist = {"label_id": label_id, "label_name": "Mixed", "smart_criteria": "explicit"}
        assert sync.resolve_label_tracks(playlist) == []

    def test_static_label_ignores_criteria_matches(self, api, database, session, add_track):
        add_track("t1", "2024-01-01T00:00:00Z", explicit=True)
        label_id = database.create_label(session.user_id, "Static")

        sync = PlaylistSync(api, database, session)
        playlist = {"label_id": label_id, "label_name": "Static", "smart_criteria": None}
        assert sync.resolve_label_tracks(playlist) == []
