"""
Thread-safe SQLite store for playlist-gen.

The store keeps one row per favorited track per user, the shared album and
artist reference data those tracks point at, and the labels/playlists the
user manages.

Schema:
    users:          Spotify identity and OAuth tokens
    albums:         Shared reference data keyed by Spotify album id
    artists:        Shared reference data keyed by Spotify artist id
    tracks:         One row per (user, spotify_id)
    track_artists:  Junction table (track_id, artist_id)
    labels:         Static (criteria NULL) or smart (criteria set) labels
    track_labels:   Junction table for static label membership
    playlists:      1:1 mapping between a label and a Spotify playlist

Usage:
    db = Database(Path("~/.playlist-gen/playlist_gen.db").expanduser())

    db.create_albums([{"id": "...", "name": "...", ...}])
    track_id = db.create_track(user_id, track_row, artist_ids=["..."])
    for playlist in db.get_playlists_with_labels(user_id):
        ...

Track queries:
    find_tracks() selects from `tracks t JOIN albums al`. Filters produced by
    the criteria compiler refer to those two aliases.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generator

from playlist_gen.core.exceptions import DatabaseError

if TYPE_CHECKING:
    from playlist_gen.criteria.compiler import TrackFilter


DATABASE_VERSION = 1


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    spotify_id TEXT UNIQUE NOT NULL,
    avatar_url TEXT,
    access_token TEXT NOT NULL,
    refresh_token TEXT NOT NULL,
    access_token_expires_at TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS albums (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    thumbnail_url TEXT,
    date_released TEXT
);

CREATE TABLE IF NOT EXISTS artists (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    genres TEXT NOT NULL DEFAULT '[]'  -- JSON array
);

CREATE TABLE IF NOT EXISTS tracks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    spotify_id TEXT NOT NULL,
    name TEXT NOT NULL,
    album_id TEXT NOT NULL,
    date_added TEXT NOT NULL,
    explicit INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (album_id) REFERENCES albums(id),
    UNIQUE(user_id, spotify_id)
);

CREATE TABLE IF NOT EXISTS track_artists (
    track_id INTEGER NOT NULL,
    artist_id TEXT NOT NULL,
    FOREIGN KEY (track_id) REFERENCES tracks(id) ON DELETE CASCADE,
    FOREIGN KEY (artist_id) REFERENCES artists(id),
    PRIMARY KEY (track_id, artist_id)
);

CREATE TABLE IF NOT EXISTS labels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    smart_criteria TEXT,
    created_at TEXT,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    UNIQUE(user_id, name)
);

CREATE TABLE IF NOT EXISTS track_labels (
    track_id INTEGER NOT NULL,
    label_id INTEGER NOT NULL,
    FOREIGN KEY (track_id) REFERENCES tracks(id) ON DELETE CASCADE,
    FOREIGN KEY (label_id) REFERENCES labels(id) ON DELETE CASCADE,
    PRIMARY KEY (track_id, label_id)
);

CREATE TABLE IF NOT EXISTS playlists (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    label_id INTEGER UNIQUE NOT NULL,
    spotify_id TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (label_id) REFERENCES labels(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_tracks_user_date ON tracks(user_id, date_added);
CREATE INDEX IF NOT EXISTS idx_track_artists_artist ON track_artists(artist_id);
CREATE INDEX IF NOT EXISTS idx_track_labels_label ON track_labels(label_id);
"""

_TRACK_SELECT = """
    SELECT t.id, t.user_id, t.spotify_id, t.name, t.album_id, t.date_added, t.explicit,
           al.name AS album_name
    FROM tracks t
    JOIN albums al ON al.id = t.album_id
"""


class Database:
    """
    Thread-safe SQLite store.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing, so sync code
    may call them from worker threads.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            raise DatabaseError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        sqlite3 errors raised inside the block roll back the open
        transaction and surface as DatabaseError.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        try:
            yield self._conn
        except sqlite3.Error as e:
            self._conn.rollback()
            raise DatabaseError(
                f"Database operation failed: {e}",
                details={"path": str(self.db_path), "original_error": str(e)}
            ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise DatabaseError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )
            conn.commit()

    def _now_iso(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    @property
    def total_changes(self) -> int:
        """Number of rows modified since the connection was opened."""
        with self._lock:
            with self._get_connection() as conn:
                return conn.total_changes

    # =========================================================================
    # Users
    # =========================================================================

    def upsert_user(
        self,
        spotify_id: str,
        avatar_url: str | None,
        access_token: str,
        refresh_token: str,
        access_token_expires_at: datetime
    ) -> int:
        """Create the user or replace its tokens. Returns the local user id."""
        now = self._now_iso()
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO users (
                        spotify_id, avatar_url, access_token, refresh_token,
                        access_token_expires_at, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(spotify_id) DO UPDATE SET
                        avatar_url = excluded.avatar_url,
                        access_token = excluded.access_token,
                        refresh_token = excluded.refresh_token,
                        access_token_expires_at = excluded.access_token_expires_at,
                        updated_at = excluded.updated_at
                """, (
                    spotify_id, avatar_url, access_token, refresh_token,
                    access_token_expires_at.isoformat(), now, now
                ))
                conn.commit()
                cursor = conn.execute("SELECT id FROM users WHERE spotify_id = ?", (spotify_id,))
                return cursor.fetchone()[0]

    def get_user(self, user_id: int) -> dict[str, Any] | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
                row = cursor.fetchone()
                return dict(row) if row else None

    def get_user_by_spotify_id(self, spotify_id: str) -> dict[str, Any] | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM users WHERE spotify_id = ?", (spotify_id,))
                row = cursor.fetchone()
                return dict(row) if row else None

    def get_all_users(self) -> list[dict[str, Any]]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM users ORDER BY id")
                return [dict(row) for row in cursor.fetchall()]

    def update_user_token(
        self,
        user_id: int,
        access_token: str,
        expires_at: datetime,
        refresh_token: str | None = None
    ) -> None:
        """
        Persist a refreshed access token and its absolute expiry.

        Spotify may rotate the refresh token on refresh; when it does the new
        one is stored in the same write, otherwise the old one is kept.
        """
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    UPDATE users SET
                        access_token = ?,
                        access_token_expires_at = ?,
                        refresh_token = COALESCE(?, refresh_token),
                        updated_at = ?
                    WHERE id = ?
                """, (access_token, expires_at.isoformat(), refresh_token, self._now_iso(), user_id))
                conn.commit()

    # =========================================================================
    # Albums & Artists (shared reference data)
    # =========================================================================

    def create_albums(self, albums: list[dict[str, Any]]) -> int:
        """
        Insert albums, skipping ids that already exist.

        Args:
            albums: Dicts with id, name, thumbnail_url, date_released.

        Returns:
            Number of albums actually inserted.
        """
        if not albums:
            return 0
        with self._lock:
            with self._get_connection() as conn:
                before = conn.total_changes
                conn.executemany("""
                    INSERT OR IGNORE INTO albums (id, name, thumbnail_url, date_released)
                    VALUES (?, ?, ?, ?)
                """, [
                    (a["id"], a["name"], a.get("thumbnail_url"), a.get("date_released"))
                    for a in albums
                ])
                conn.commit()
                return conn.total_changes - before

    def get_existing_artist_ids(self, artist_ids: list[str]) -> set[str]:
        if not artist_ids:
            return set()
        placeholders = ", ".join("?" for _ in artist_ids)
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"SELECT id FROM artists WHERE id IN ({placeholders})",
                    tuple(artist_ids)
                )
                return {row[0] for row in cursor.fetchall()}

    def create_artists(self, artists: list[dict[str, Any]]) -> int:
        """
        Insert artists, skipping ids that already exist.

        Two pulls running at once may both decide an artist is missing, so
        conflicts are ignored rather than treated as errors.

        Returns:
            Number of artists actually inserted.
        """
        if not artists:
            return 0
        with self._lock:
            with self._get_connection() as conn:
                before = conn.total_changes
                conn.executemany("""
                    INSERT OR IGNORE INTO artists (id, name, genres) VALUES (?, ?, ?)
                """, [
                    (a["id"], a["name"], json.dumps(list(a.get("genres", []))))
                    for a in artists
                ])
                conn.commit()
                return conn.total_changes - before

    def get_artist(self, artist_id: str) -> dict[str, Any] | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM artists WHERE id = ?", (artist_id,))
                row = cursor.fetchone()
                if row is None:
                    return None
                data = dict(row)
                data["genres"] = json.loads(data["genres"])
                return data

    # =========================================================================
    # Tracks
    # =========================================================================

    def get_existing_track_spotify_ids(self, user_id: int, spotify_ids: list[str]) -> set[str]:
        """Return the subset of spotify_ids already stored for this user."""
        if not spotify_ids:
            return set()
        placeholders = ", ".join("?" for _ in spotify_ids)
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"SELECT spotify_id FROM tracks WHERE user_id = ? AND spotify_id IN ({placeholders})",
                    (user_id, *spotify_ids)
                )
                return {row[0] for row in cursor.fetchall()}

    def create_track(self, user_id: int, track: dict[str, Any], artist_ids: list[str]) -> int:
        """
        Insert one track and its artist associations in a single transaction.

        The album and artists must already exist.

        Args:
            user_id: Owner of the track.
            track: Dict with spotify_id, name, album_id, date_added, explicit.
            artist_ids: Spotify ids of the track's artists.

        Returns:
            The local track id.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO tracks (user_id, spotify_id, name, album_id, date_added, explicit)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    user_id, track["spotify_id"], track["name"], track["album_id"],
                    track["date_added"], 1 if track.get("explicit") else 0
                ))
                track_id = cursor.lastrowid
                conn.executemany(
                    "INSERT OR IGNORE INTO track_artists (track_id, artist_id) VALUES (?, ?)",
                    [(track_id, artist_id) for artist_id in artist_ids]
                )
                conn.commit()
                return track_id

    def get_track_by_spotify_id(self, user_id: int, spotify_id: str) -> dict[str, Any] | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    _TRACK_SELECT + " WHERE t.user_id = ? AND t.spotify_id = ?",
                    (user_id, spotify_id)
                )
                rows = self._with_artists(conn, cursor.fetchall())
                return rows[0] if rows else None

    def count_tracks(self, user_id: int) -> int:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT COUNT(*) FROM tracks WHERE user_id = ?", (user_id,))
                return cursor.fetchone()[0]

    def get_tracks(self, user_id: int, limit: int = 20, offset: int = 0) -> list[dict[str, Any]]:
        """Page through a user's tracks, most recently favorited first."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    _TRACK_SELECT + """
                    WHERE t.user_id = ?
                    ORDER BY t.date_added DESC, t.id DESC
                    LIMIT ? OFFSET ?
                    """,
                    (user_id, limit, offset)
                )
                return self._with_artists(conn, cursor.fetchall())

    def find_tracks(self, user_id: int, track_filter: "TrackFilter | None" = None) -> list[dict[str, Any]]:
        """
        Find a user's tracks matching a compiled criteria filter.

        Args:
            user_id: Owner of the tracks.
            track_filter: Output of compile_criteria(), or None for all tracks.

        Returns:
            Matching tracks, most recently favorited first.

        Raises:
            DatabaseError: If the query fails.
        """
        sql = _TRACK_SELECT + " WHERE t.user_id = ?"
        params: tuple[Any, ...] = (user_id,)
        if track_filter is not None:
            sql += f" AND ({track_filter.sql})"
            params += tuple(track_filter.params)
        sql += " ORDER BY t.date_added DESC, t.id DESC"

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(sql, params)
                return self._with_artists(conn, cursor.fetchall())

    def _with_artists(self, conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[dict[str, Any]]:
        tracks = []
        for row in rows:
            data = dict(row)
            data["explicit"] = bool(data["explicit"])
            cursor = conn.execute("""
                SELECT a.name FROM artists a
                JOIN track_artists ta ON ta.artist_id = a.id
                WHERE ta.track_id = ?
                ORDER BY a.name
            """, (row["id"],))
            data["artists"] = [r[0] for r in cursor.fetchall()]
            tracks.append(data)
        return tracks

    # =========================================================================
    # Labels
    # =========================================================================

    def create_label(self, user_id: int, name: str, smart_criteria: str | None = None) -> int:
        """
        Create a label. Callers validate smart_criteria before saving.

        Raises:
            DatabaseError: If the user already has a label with this name.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO labels (user_id, name, smart_criteria, created_at)
                    VALUES (?, ?, ?, ?)
                """, (user_id, name, smart_criteria, self._now_iso()))
                conn.commit()
                return cursor.lastrowid

    def set_label_criteria(self, label_id: int, smart_criteria: str | None) -> None:
        """
        Turn a label smart (criteria set) or static (criteria None).

        Making a label smart drops its explicit membership rows, since smart
        labels never store them.
        """
        with self._lock:
            with self._get_connection() as conn:
                conn.execute(
                    "UPDATE labels SET smart_criteria = ? WHERE id = ?",
                    (smart_criteria, label_id)
                )
                if smart_criteria is not None:
                    conn.execute("DELETE FROM track_labels WHERE label_id = ?", (label_id,))
                conn.commit()

    def get_label(self, label_id: int) -> dict[str, Any] | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM labels WHERE id = ?", (label_id,))
                row = cursor.fetchone()
                return dict(row) if row else None

    def get_label_by_name(self, user_id: int, name: str) -> dict[str, Any] | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT * FROM labels WHERE user_id = ? AND name = ?", (user_id, name)
                )
                row = cursor.fetchone()
                return dict(row) if row else None

    def get_labels(self, user_id: int) -> list[dict[str, Any]]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT * FROM labels WHERE user_id = ? ORDER BY name", (user_id,)
                )
                return [dict(row) for row in cursor.fetchall()]

    def get_labels_without_playlist(self, user_id: int) -> list[dict[str, Any]]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT l.* FROM labels l
                    LEFT JOIN playlists p ON p.label_id = l.id
                    WHERE l.user_id = ? AND p.id IS NULL
                    ORDER BY l.id
                """, (user_id,))
                return [dict(row) for row in cursor.fetchall()]

    def add_track_label(self, track_id: int, label_id: int) -> None:
        """
        Add a track to a static label.

        Raises:
            DatabaseError: If the label is smart or does not exist.
        """
        with self._lock:
            with self._get_connection() as conn:
                self._require_static_label(conn, label_id)
                conn.execute(
                    "INSERT OR IGNORE INTO track_labels (track_id, label_id) VALUES (?, ?)",
                    (track_id, label_id)
                )
                conn.commit()

    def remove_track_label(self, track_id: int, label_id: int) -> None:
        with self._lock:
            with self._get_connection() as conn:
                self._require_static_label(conn, label_id)
                conn.execute(
                    "DELETE FROM track_labels WHERE track_id = ? AND label_id = ?",
                    (track_id, label_id)
                )
                conn.commit()

    def _require_static_label(self, conn: sqlite3.Connection, label_id: int) -> None:
        cursor = conn.execute("SELECT smart_criteria FROM labels WHERE id = ?", (label_id,))
        row = cursor.fetchone()
        if row is None:
            raise DatabaseError(f"Label not found: {label_id}", details={"label_id": label_id})
        if row[0] is not None:
            raise DatabaseError(
                "Smart labels compute their tracks from criteria and cannot hold tracks",
                details={"label_id": label_id}
            )

    def get_label_track_spotify_ids(self, label_id: int) -> list[str]:
        """Spotify ids of a static label's tracks, most recently favorited first."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT t.spotify_id FROM tracks t
                    JOIN track_labels tl ON tl.track_id = t.id
                    WHERE tl.label_id = ?
                    ORDER BY t.date_added DESC, t.id DESC
                """, (label_id,))
                return [row[0] for row in cursor.fetchall()]

    # =========================================================================
    # Playlists
    # =========================================================================

    def create_playlist(self, user_id: int, label_id: int, spotify_id: str) -> int:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO playlists (user_id, label_id, spotify_id) VALUES (?, ?, ?)
                """, (user_id, label_id, spotify_id))
                conn.commit()
                return cursor.lastrowid

    def get_playlists_with_labels(self, user_id: int) -> list[dict[str, Any]]:
        """
        Every playlist of the user joined with its label.

        Returns:
            Dicts with id, spotify_id, label_id, label_name, smart_criteria.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT p.id, p.spotify_id, p.label_id,
                           l.name AS label_name, l.smart_criteria
                    FROM playlists p
                    JOIN labels l ON l.id = p.label_id
                    WHERE p.user_id = ?
                    ORDER BY p.id
                """, (user_id,))
                return [dict(row) for row in cursor.fetchall()]
