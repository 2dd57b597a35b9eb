"""
Playlist push sync for playlist-gen.

Materializes every label of a user as a private Spotify playlist whose
items are exactly the label's tracks.

Phase 1, provisioning:
    Each label without a playlist gets one, named "<label> [generated]".
    The label/playlist mapping is stored as soon as its playlist exists, so
    a failure elsewhere never leaves a created playlist unrecorded.

Phase 2, content:
    For each label/playlist pair the effective track set is resolved:
        static label: its stored tracks
        smart label:  its criteria compiled and run against the store
    Both are ordered by favoriting date, newest first. The playlist items
    are then replaced:

        uris = tracks, or [placeholder] when there are none
        PUT  first chunk of 50      (replaces everything)
        POST each further chunk     (appends, in order)
        DELETE placeholder          (only when there were no tracks)

    Replacing with the placeholder and then removing it is how a playlist
    is emptied: the replace endpoint needs at least one item.

Smart label failures:
    Criteria that no longer compile, or whose query fails, are reported to
    the criteria failure log and the label is pushed as empty. Every other
    error aborts the push.
"""

import threading
from dataclasses import dataclass, field
from typing import Any

from playlist_gen.core.database import Database
from playlist_gen.core.exceptions import DatabaseError
from playlist_gen.core.logger import format_label_message, get_logger, log_criteria_failure
from playlist_gen.criteria import compile_criteria, explain_criteria
from playlist_gen.spotify.client import PLAYLIST_CHUNK_SIZE, SpotifyApi, chunked, track_uri
from playlist_gen.spotify.models import UserSession
from playlist_gen.utils import run_in_parallel

logger = get_logger(__name__)


PLACEHOLDER_TRACK_ID = "41MCdlvXOl62B7Kv86Bb1v"


def generated_playlist_name(label_name: str) -> str:
    return f"{label_name} [generated]"


def generated_playlist_description(label_name: str) -> str:
    return f'Tracks labeled "{label_name}" by playlist-gen'


@dataclass
class PushResult:
    """Summary of one playlist push."""
    playlists_created: int = 0
    playlists_synced: int = 0
    tracks_pushed: int = 0
    criteria_failures: list[str] = field(default_factory=list)


class PlaylistSync:
    """
    Pushes a user's labels to Spotify playlists.

    One instance performs one push for one user session. Worker threads
    share the instance; the only state they write is the failure list,
    which is guarded by a lock.
    """

    def __init__(
        self,
        api: SpotifyApi,
        database: Database,
        session: UserSession,
        max_workers: int = 4
    ) -> None:
        self._api = api
        self._database = database
        self._session = session
        self._max_workers = max_workers
        self._failures_lock = threading.Lock()
        self._criteria_failures: list[str] = []

    def run(self) -> PushResult:
        """
        Provision missing playlists, then push every playlist's content.

        Returns:
            PushResult summary. criteria_failures lists the smart labels
            that were pushed as empty because their criteria failed.

        Raises:
            SpotifyError: On any API, validation or token failure.
            DatabaseError: On any store failure outside smart label resolution.
        """
        result = PushResult()
        result.playlists_created = self.provision_playlists()

        playlists = self._database.get_playlists_with_labels(self._session.user_id)
        pushed = run_in_parallel(
            self.push_playlist,
            playlists,
            num_threads=self._max_workers,
            description="Pushing playlists"
        )

        result.playlists_synced = len(pushed)
        result.tracks_pushed = sum(count for _, count in pushed)
        result.criteria_failures = sorted(self._criteria_failures)

        logger.info(
            f"Pushed {result.playlists_synced} playlist(s) "
            f"({result.playlists_created} created, {result.tracks_pushed} tracks)"
        )
        return result

    # =========================================================================
    # Phase 1: provisioning
    # =========================================================================

    def provision_playlists(self) -> int:
        """Create a playlist for every label lacking one. Returns how many were created."""
        labels = self._database.get_labels_without_playlist(self._session.user_id)
        if not labels:
            return 0

        logger.info(f"Creating {len(labels)} playlist(s)")
        created = run_in_parallel(
            self._provision_label,
            labels,
            num_threads=self._max_workers,
            description="Creating playlists"
        )
        return len(created)

    def _provision_label(self, label: dict[str, Any]) -> str:
        response = self._api.create_playlist(
            self._session,
            name=generated_playlist_name(label["name"]),
            description=generated_playlist_description(label["name"]),
            public=False
        )
        self._database.create_playlist(self._session.user_id, label["id"], response.id)
        logger.debug(f"Created playlist {response.id} for label '{label['name']}'")
        return response.id

    # =========================================================================
    # Phase 2: content
    # =========================================================================

    def push_playlist(self, playlist: dict[str, Any]) -> int:
        """
        Replace one playlist's items with its label's tracks.

        Args:
            playlist: Row from Database.get_playlists_with_labels().

        Returns:
            Number of tracks now in the playlist.
        """
        playlist_id = playlist["spotify_id"]
        track_ids = self.resolve_label_tracks(playlist)

        uris = [track_uri(track_id) for track_id in track_ids]
        if not uris:
            uris = [track_uri(PLACEHOLDER_TRACK_ID)]

        chunks = chunked(uris, PLAYLIST_CHUNK_SIZE)
        self._api.replace_playlist_tracks(self._session, playlist_id, chunks[0])
        for chunk in chunks[1:]:
            self._api.append_playlist_tracks(self._session, playlist_id, chunk)

        if not track_ids:
            self._api.remove_playlist_tracks(
                self._session, playlist_id, [track_uri(PLACEHOLDER_TRACK_ID)]
            )

        logger.info(format_label_message(playlist["label_name"], len(track_ids), playlist_id))
        return len(track_ids)

    def resolve_label_tracks(self, playlist: dict[str, Any]) -> list[str]:
        """
        Spotify ids of the label's effective tracks, newest favorite first.

        Smart labels whose criteria cannot be compiled or queried resolve to
        an empty list; the failure is logged for the criteria report.
        """
        criteria = playlist["smart_criteria"]
        if criteria is None:
            return self._database.get_label_track_spotify_ids(playlist["label_id"])

        track_filter = compile_criteria(criteria)
        if track_filter is None:
            error = explain_criteria(criteria)
            self._record_failure(playlist["label_name"], criteria, str(error))
            return []

        try:
            tracks = self._database.find_tracks(self._session.user_id, track_filter)
        except DatabaseError as e:
            self._record_failure(playlist["label_name"], criteria, e.message)
            return []

        return [track["spotify_id"] for track in tracks]

    def _record_failure(self, label_name: str, criteria: str, reason: str) -> None:
        log_criteria_failure(logger, label_name, criteria, reason)
        with self._failures_lock:
            self._criteria_failures.append(label_name)


# =========================================================================
# Convenience Functions (called by CLI)
# =========================================================================

def push_playlists(
    api: SpotifyApi,
    database: Database,
    session: UserSession,
    max_workers: int = 4
) -> PushResult:
    """
    Push every label of the user to its Spotify playlist.

    Args:
        api: Spotify client.
        database: Store holding labels, tracks and playlist mappings.
        session: Token state of the user, refreshed in place if needed.
        max_workers: Threads used for provisioning and for content pushes.

    Returns:
        PushResult summary.
    """
    return PlaylistSync(api, database, session, max_workers).run()
