"""Test the command-line interface"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from playlist_gen.cli import _extract_code, cli
from playlist_gen.core.database import Database
from playlist_gen.core.exceptions import TokenRefreshError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_path(temp_dir, monkeypatch):
    monkeypatch.delenv("PLAYLIST_GEN_DATABASE", raising=False)
    monkeypatch.setattr("playlist_gen.core.config.load_dotenv", lambda *args, **kwargs: False)
    path = temp_dir / "config.yaml"
    path.write_text(
        "spotify:\n"
        '  client_id: "id"\n'
        '  client_secret: "secret"\n'
        "database:\n"
        f'  path: "{temp_dir / "data" / "db.sqlite"}"\n'
        "logging:\n"
        f'  directory: "{temp_dir / "logs"}"\n',
        encoding="utf-8"
    )
    return path


@pytest.fixture
def logged_in(temp_dir, config_path):
    (temp_dir / "data").mkdir()
    db = Database(temp_dir / "data" / "db.sqlite")
    db.upsert_user("alice", None, "a", "r", datetime.now(timezone.utc) + timedelta(hours=1))
    db.close()


class TestValidate:
    def test_valid(self, runner):
        result = runner.invoke(cli, ["validate", 'genre ~ "jazz" and not explicit'])
        assert result.exit_code == 0
        assert "Valid" in result.output

    def test_invalid_points_at_error(self, runner):
        result = runner.invoke(cli, ["validate", "year > 2000 and tempo > 1"])
        assert result.exit_code == 1
        assert "Unknown attribute 'tempo'" in result.output
        assert " " * 18 + "^" in result.output


class TestLabels:
    def test_create_and_list(self, runner, config_path, logged_in):
        base = ["--config", str(config_path), "label"]

        assert runner.invoke(cli, base + ["create", "Road trip"]).exit_code == 0
        created = runner.invoke(cli, base + ["create", "Calm", "--criteria", "not explicit"])
        assert created.exit_code == 0
        assert "smart label 'Calm'" in created.output

        listed = runner.invoke(cli, base + ["list"])
        assert listed.exit_code == 0
        assert "Calm  (smart: not explicit)" in listed.output
        assert "Road trip  (static)" in listed.output

    def test_invalid_criteria_refused(self, runner, config_path, logged_in):
        result = runner.invoke(
            cli, ["--config", str(config_path), "label", "create", "Bad", "--criteria", 'artist = "x']
        )
        assert result.exit_code == 2
        assert "Unterminated string" in result.output

    def test_duplicate_label_refused(self, runner, config_path, logged_in):
        base = ["--config", str(config_path), "label", "create", "Calm"]
        runner.invoke(cli, base)
        assert runner.invoke(cli, base).exit_code == 2

    def test_nobody_logged_in(self, runner, config_path):
        result = runner.invoke(cli, ["--config", str(config_path), "label", "list"])
        assert result.exit_code == 1
        assert "Nobody is logged in" in result.output

    def test_unknown_user(self, runner, config_path, logged_in):
        result = runner.invoke(cli, ["--config", str(config_path), "--user", "bob", "label", "list"])
        assert result.exit_code == 1


class TestExtractCode:
    def test_bare_code(self):
        assert _extract_code("  abc123 \n", "state") == "abc123"

    def test_redirect_url(self):
        url = "http://127.0.0.1:8888/callback?code=abc123&state=xyz"
        assert _extract_code(url, "xyz") == "abc123"

    def test_state_mismatch(self):
        with pytest.raises(click.ClickException):
            _extract_code("http://127.0.0.1:8888/callback?code=abc&state=other", "xyz")

    def test_denied(self):
        with pytest.raises(click.ClickException, match="access_denied"):
            _extract_code("http://127.0.0.1:8888/callback?error=access_denied&state=xyz", "xyz")


@pytest.fixture
def stored_tracks(temp_dir, logged_in):
    """Five tracks for the logged-in user, t0 oldest"""
    db = Database(temp_dir / "data" / "db.sqlite")
    user_id = db.get_user_by_spotify_id("alice")["id"]
    db.create_albums([{"id": "album1", "name": "Album", "thumbnail_url": None, "date_released": "2020-01-01"}])
    db.create_artists([{"id": "artist1", "name": "Artist", "genres": []}])
    for i in range(5):
        db.create_track(
            user_id,
            {"spotify_id": f"t{i}", "name": f"Song {i}", "album_id": "album1",
             "date_added": f"2024-01-0{i + 1}T00:00:00Z", "explicit": i % 2 == 1},
            artist_ids=["artist1"]
        )
    db.close()


class TestTracks:
    def test_pages(self, runner, config_path, stored_tracks):
        base = ["--config", str(config_path), "tracks", "--limit", "2"]

        first = runner.invoke(cli, base)
        second = runner.invoke(cli, base + ["--page", "2"])
        last = runner.invoke(cli, base + ["--page", "3"])

        assert [line.split()[0] for line in first.output.splitlines()] == ["t4", "t3"]
        assert [line.split()[0] for line in second.output.splitlines()] == ["t2", "t1"]
        assert [line.split()[0] for line in last.output.splitlines()] == ["t0"]

    def test_pages_with_criteria(self, runner, config_path, stored_tracks):
        result = runner.invoke(
            cli, ["--config", str(config_path), "tracks", "--criteria", "not explicit",
                  "--limit", "2", "--page", "2"]
        )
        assert result.exit_code == 0
        assert [line.split()[0] for line in result.output.splitlines()] == ["t0"]

    def test_page_past_the_end(self, runner, config_path, stored_tracks):
        result = runner.invoke(cli, ["--config", str(config_path), "tracks", "--page", "9"])
        assert result.output.strip() == "No tracks"


class TestErrors:
    def test_revoked_refresh_token_suggests_login(self, runner, config_path, logged_in):
        with patch("playlist_gen.cli.pull_favorites", side_effect=TokenRefreshError("Refresh token revoked")):
            result = runner.invoke(cli, ["--config", str(config_path), "pull"])

        assert result.exit_code == 3
        assert "Refresh token revoked" in result.output
        assert "playlist-gen login" in result.output
