"""
Favorites sync (pull) for playlist-gen.

Copies the tracks a user favorited on Spotify into the local store, together
with the album and artist reference data they point at.

Workflow, per page of saved tracks (newest first):
    1. Fetch one page of /me/tracks (offset, limit)
    2. Create the page's albums if absent            } concurrently
    3. Look up and create the page's unknown artists }
    4. Build track rows for the page
    5. Insert the tracks not already stored for this user, oldest first,
       each with its artist associations
    6. If the whole page was new, continue with the next page; otherwise
       stop: everything older is assumed to be stored already

Adaptive page size:
    The first page asks for INITIAL_PAGE_SIZE tracks, so the common case
    (a few new favorites since the last pull) costs one small request.
    Later pages use PAGE_SIZE.

Idempotence:
    Running a pull twice in a row writes nothing the second time: albums
    and artists are insert-if-absent, and the first page has no new track.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from urllib.parse import quote

from playlist_gen.core.database import Database
from playlist_gen.core.logger import get_logger
from playlist_gen.spotify.client import SpotifyApi
from playlist_gen.spotify.models import AlbumObject, SavedTrackObject, UserSession

logger = get_logger(__name__)


INITIAL_PAGE_SIZE = 5
PAGE_SIZE = 25

# Albums without artwork get a generated image showing the album name
PLACEHOLDER_THUMBNAIL_URL = "https://via.placeholder.com/640.jpg?text={}"


@dataclass
class PullResult:
    """Summary of one favorites pull."""
    pages: int = 0
    albums_created: int = 0
    artists_created: int = 0
    tracks_created: int = 0


def normalize_release_date(release_date: str) -> str:
    """
    Pad Spotify's year or year-month release dates to a full YYYY-MM-DD.

    Examples:
        normalize_release_date("1997")        # "1997-01-01"
        normalize_release_date("1997-06")     # "1997-06-01"
        normalize_release_date("1997-06-16")  # "1997-06-16"
    """
    parts = release_date.split("-")
    while len(parts) < 3:
        parts.append("01")
    return "-".join(parts[:3])


def album_row(album: AlbumObject) -> dict[str, str]:
    if album.images:
        thumbnail_url = album.images[0].url
    else:
        thumbnail_url = PLACEHOLDER_THUMBNAIL_URL.format(quote(album.name, safe="!*'()"))
    return {
        "id": album.id,
        "name": album.name,
        "thumbnail_url": thumbnail_url,
        "date_released": normalize_release_date(album.release_date),
    }


def track_row(item: SavedTrackObject) -> dict:
    return {
        "spotify_id": item.track.id,
        "name": item.track.name,
        "album_id": item.track.album.id,
        "date_added": item.added_at,
        "explicit": item.track.explicit,
    }


class FavoritesSync:
    """
    Pulls a user's newly favorited tracks into the store.

    One instance performs one pull for one user session.
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

    def run(self) -> PullResult:
        """
        Pull pages until one contains an already-stored track.

        Returns:
            Counts of pages fetched and rows created.

        Raises:
            SpotifyError: On any API, validation or token failure. Pages
                          already processed stay committed.
            DatabaseError: On any store failure.
        """
        result = PullResult()
        offset = 0
        limit = INITIAL_PAGE_SIZE

        while True:
            page = self._api.saved_tracks(self._session, offset=offset, limit=limit)
            result.pages += 1

            new_count = self._sync_page(page.items, result)
            logger.debug(f"Page {result.pages} (offset={offset}, limit={limit}): {new_count} new tracks")

            if new_count != limit:
                break
            offset += limit
            limit = PAGE_SIZE

        logger.info(
            f"Pulled {result.tracks_created} new tracks "
            f"({result.albums_created} albums, {result.artists_created} artists) "
            f"in {result.pages} page(s)"
        )
        return result

    # =========================================================================
    # Private Helper Methods
    # =========================================================================

    def _sync_page(self, items: list[SavedTrackObject], result: PullResult) -> int:
        """Store one page; returns how many of its tracks were new."""
        if not items:
            return 0

        albums = {item.track.album.id: album_row(item.track.album) for item in items}
        artist_ids = list(dict.fromkeys(
            artist.id for item in items for artist in item.track.artists
        ))

        # Albums and artists are independent; tracks need both
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            albums_future = executor.submit(self._database.create_albums, list(albums.values()))
            artists_future = executor.submit(self._store_missing_artists, artist_ids)
            result.albums_created += albums_future.result()
            result.artists_created += artists_future.result()

        new_items = self._filter_new_items(items)
        for item in sorted(new_items, key=lambda i: i.added_at):
            self._database.create_track(
                self._session.user_id,
                track_row(item),
                artist_ids=[artist.id for artist in item.track.artists]
            )
            logger.debug(f"Stored: {item.track.name} ({item.track.id})")

        result.tracks_created += len(new_items)
        return len(new_items)

    def _store_missing_artists(self, artist_ids: list[str]) -> int:
        existing = self._database.get_existing_artist_ids(artist_ids)
        missing = [artist_id for artist_id in artist_ids if artist_id not in existing]
        if not missing:
            return 0

        artists = self._api.lookup_artists(self._session, missing)
        return self._database.create_artists([
            {"id": artist.id, "name": artist.name, "genres": artist.genres}
            for artist in artists
        ])

    def _filter_new_items(self, items: list[SavedTrackObject]) -> list[SavedTrackObject]:
        """Items whose track isn't stored for this user yet, deduplicated by id."""
        existing = self._database.get_existing_track_spotify_ids(
            self._session.user_id, [item.track.id for item in items]
        )
        new_items: list[SavedTrackObject] = []
        seen: set[str] = set(existing)
        for item in items:
            if item.track.id not in seen:
                seen.add(item.track.id)
                new_items.append(item)
        return new_items


# =========================================================================
# Convenience Functions (called by CLI)
# =========================================================================

def pull_favorites(
    api: SpotifyApi,
    database: Database,
    session: UserSession,
    max_workers: int = 4
) -> PullResult:
    """
    Pull the user's newly favorited tracks into the store.

    Args:
        api: Spotify client.
        database: Store to write into.
        session: Token state of the user, refreshed in place if needed.
        max_workers: Threads used for the album/artist writes of a page.

    Returns:
        PullResult summary.
    """
    return FavoritesSync(api, database, session, max_workers).run()
