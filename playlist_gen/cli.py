"""
Command-line interface for playlist-gen.

This module implements the CLI using Click, with rich-click for the help
output colors.

Commands:
    playlist-gen login                          Authorize a Spotify account
    playlist-gen pull                           Store newly favorited tracks
    playlist-gen push                           Push every label to its playlist
    playlist-gen tracks [--criteria TEXT] [--page N]  List stored tracks
    playlist-gen validate TEXT                  Check smart label criteria
    playlist-gen label list                     List labels
    playlist-gen label create NAME [--criteria TEXT]
    playlist-gen label criteria NAME [TEXT]     Make a label smart (or static without TEXT)
    playlist-gen label add NAME TRACK_ID...     Add tracks to a static label
    playlist-gen label remove NAME TRACK_ID...  Remove tracks from a static label

Global Options:
    --config <path>     Configuration file (default: ./config.yaml)
    --user <id>         Spotify user id, needed when several users logged in
    --verbose           Show DEBUG messages on the console

Usage:
    playlist-gen login
    playlist-gen pull
    playlist-gen label create "Calm" --criteria 'genre ~ "ambient" and not explicit'
    playlist-gen label create "Road trip"
    playlist-gen label add "Road trip" 4uLU6hMCjMI75M1A2tKUQC
    playlist-gen push

Exit Codes:
    1   configuration error or invalid input
    2   database error
    3   Spotify error
    4   any other playlist-gen error
    130 interrupted
"""

import secrets
import sys
import urllib.parse
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100

from playlist_gen import __version__
from playlist_gen.core import (
    Config,
    ConfigError,
    Database,
    DatabaseError,
    PlaylistGenError,
    SpotifyError,
    TokenRefreshError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from playlist_gen.criteria import compile_criteria, explain_criteria
from playlist_gen.spotify import SpotifyApi, TokenManager, UserSession, login
from playlist_gen.sync import pull_favorites, push_playlists

logger = get_logger(__name__)


class Application:
    """
    Objects shared by the commands of one invocation.

    Built by _application() once configuration, logging and the database
    are ready. Spotify objects are created on first use.
    """

    def __init__(self, config: Config, database: Database, spotify_user: str | None) -> None:
        self.config = config
        self.database = database
        self._spotify_user = spotify_user
        self._token_manager: TokenManager | None = None
        self._api: SpotifyApi | None = None

    @property
    def token_manager(self) -> TokenManager:
        if self._token_manager is None:
            self._token_manager = TokenManager(
                self.database,
                client_id=self.config.spotify.client_id,
                client_secret=self.config.spotify.client_secret,
                redirect_uri=self.config.spotify.redirect_uri,
                timeout=self.config.sync.request_timeout
            )
        return self._token_manager

    @property
    def api(self) -> SpotifyApi:
        if self._api is None:
            self._api = SpotifyApi(self.token_manager, request_timeout=self.config.sync.request_timeout)
        return self._api

    def session(self) -> UserSession:
        """
        Token state of the selected user.

        Raises:
            ConfigError: If no user (or, without --user, more than one) is stored.
        """
        if self._spotify_user is not None:
            row = self.database.get_user_by_spotify_id(self._spotify_user)
            if row is None:
                raise ConfigError(
                    f"No logged-in user with Spotify id '{self._spotify_user}'. Run 'playlist-gen login'.",
                    details={"spotify_id": self._spotify_user}
                )
            return UserSession.from_user_row(row)

        users = self.database.get_all_users()
        if not users:
            raise ConfigError("Nobody is logged in. Run 'playlist-gen login' first.")
        if len(users) > 1:
            known = ", ".join(user["spotify_id"] for user in users)
            raise ConfigError(
                f"Several users are logged in ({known}); choose one with --user",
                details={"users": [user["spotify_id"] for user in users]}
            )
        return UserSession.from_user_row(users[0])

    def label(self, user_id: int, name: str) -> dict:
        label = self.database.get_label_by_name(user_id, name)
        if label is None:
            raise click.BadParameter(f"No label named '{name}'", param_hint="NAME")
        return label


@contextmanager
def _application(ctx: click.Context) -> Generator[Application, None, None]:
    """
    Set up configuration, logging and the database for one command.

    PlaylistGenError subclasses are reported and turned into exit codes
    here, so commands only contain their happy path.
    """
    database: Database | None = None
    logging_ready = False

    try:
        config = load_config(ctx.obj["config_path"])

        setup_logging(config.logging.directory, verbose=ctx.obj["verbose"])
        logging_ready = True
        logger.debug(f"playlist-gen {__version__}, database {config.database.path}")

        config.database.path.parent.mkdir(parents=True, exist_ok=True)
        database = Database(config.database.path)

        yield Application(config, database, ctx.obj["user"])

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.error(f"Database error: {e.message}", exc_info=True)
        sys.exit(2)

    except SpotifyError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        if isinstance(e, TokenRefreshError) or getattr(e, "is_auth_error", False):
            click.echo("Run 'playlist-gen login' again, or check client_id/client_secret", err=True)
        logger.error(f"Spotify error: {e.message}", exc_info=True)
        sys.exit(3)

    except PlaylistGenError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    finally:
        if database is not None:
            database.close()
        if logging_ready:
            shutdown_logging()


def _require_valid_criteria(criteria: str) -> None:
    error = explain_criteria(criteria)
    if error is not None:
        raise click.BadParameter(_describe_criteria_error(criteria, error), param_hint="criteria")


def _describe_criteria_error(criteria: str, error: PlaylistGenError) -> str:
    position = getattr(error, "position", None)
    if position is None:
        return error.message
    return f"{error.message}\n  {criteria}\n  {' ' * position}^"


def _extract_code(pasted: str, expected_state: str) -> str:
    """Accept either the full redirect URL or the bare code."""
    pasted = pasted.strip()
    if "?" not in pasted:
        return pasted

    query = urllib.parse.parse_qs(urllib.parse.urlparse(pasted).query)
    if "error" in query:
        raise click.ClickException(f"Authorization was denied: {query['error'][0]}")
    if query.get("state", [expected_state])[0] != expected_state:
        raise click.ClickException("State mismatch in redirect URL; start the login again")
    if "code" not in query:
        raise click.ClickException("The redirect URL does not contain a code")
    return query["code"][0]


# =========================================================================
# Commands
# =========================================================================

@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: ./config.yaml)."
)
@click.option(
    "--user", "user",
    default=None,
    help="Spotify user id to act as, when more than one user is logged in."
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show DEBUG messages on the console."
)
@click.version_option(__version__, prog_name="playlist-gen")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, user: str | None, verbose: bool) -> None:
    """
    [bold]playlist-gen[/bold]: turn labels on your favorite Spotify tracks into playlists.

    Labels are either [cyan]static[/cyan] (tracks added by hand) or
    [cyan]smart[/cyan] (tracks matching a criteria expression such as
    [green]genre ~ "jazz" and year < 1970[/green]).
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["user"] = user
    ctx.obj["verbose"] = verbose


@cli.command("login")
@click.pass_context
def login_command(ctx: click.Context) -> None:
    """Authorize playlist-gen to read your favorites and manage playlists."""
    with _application(ctx) as app:
        state = secrets.token_urlsafe(16)
        click.echo("Open this URL in your browser and approve access:\n")
        click.echo(app.token_manager.authorize_url(state))
        click.echo("\nThen paste the URL you were redirected to (or just its code).")

        pasted = click.prompt("Redirect URL")
        code = _extract_code(pasted, state)

        session = login(app.database, app.token_manager, app.api, code)
        click.echo(f"Logged in as {session.spotify_id}")


@cli.command("pull")
@click.pass_context
def pull_command(ctx: click.Context) -> None:
    """Store the tracks you favorited since the last pull."""
    with _application(ctx) as app:
        result = pull_favorites(
            app.api, app.database, app.session(), max_workers=app.config.sync.max_workers
        )
        click.echo(
            f"{result.tracks_created} new tracks, {result.albums_created} albums, "
            f"{result.artists_created} artists"
        )


@cli.command("push")
@click.pass_context
def push_command(ctx: click.Context) -> None:
    """Replace each label's playlist with the label's current tracks."""
    with _application(ctx) as app:
        result = push_playlists(
            app.api, app.database, app.session(), max_workers=app.config.sync.max_workers
        )
        click.echo(
            f"{result.playlists_synced} playlists pushed "
            f"({result.playlists_created} new, {result.tracks_pushed} tracks)"
        )
        if result.criteria_failures:
            click.echo(
                "Pushed as empty because their criteria failed: "
                + ", ".join(result.criteria_failures),
                err=True
            )


@cli.command("tracks")
@click.option("--criteria", default=None, help="Only tracks matching this criteria.")
@click.option("--limit", default=20, show_default=True, type=click.IntRange(min=1), help="Tracks per page.")
@click.option("--page", default=1, show_default=True, type=click.IntRange(min=1))
@click.pass_context
def tracks_command(ctx: click.Context, criteria: str | None, limit: int, page: int) -> None:
    """List stored tracks, most recently favorited first."""
    offset = (page - 1) * limit
    with _application(ctx) as app:
        session = app.session()
        if criteria is None:
            tracks = app.database.get_tracks(session.user_id, limit=limit, offset=offset)
        else:
            _require_valid_criteria(criteria)
            matches = app.database.find_tracks(session.user_id, compile_criteria(criteria))
            tracks = matches[offset:offset + limit]

        for track in tracks:
            marker = " [E]" if track["explicit"] else ""
            click.echo(
                f"{track['spotify_id']}  {track['date_added'][:10]}  "
                f"{', '.join(track['artists'])} - {track['name']}{marker}"
            )
        if not tracks:
            click.echo("No tracks")


@cli.command("validate")
@click.argument("criteria")
def validate_command(criteria: str) -> None:
    """Check a smart label criteria expression without saving it."""
    error = explain_criteria(criteria)
    if error is None:
        click.echo("Valid")
        return
    click.echo(_describe_criteria_error(criteria, error), err=True)
    sys.exit(1)


@cli.group("label")
def label_group() -> None:
    """Create and edit labels."""


@label_group.command("list")
@click.pass_context
def label_list_command(ctx: click.Context) -> None:
    """List labels with their kind."""
    with _application(ctx) as app:
        labels = app.database.get_labels(app.session().user_id)
        for label in labels:
            if label["smart_criteria"] is None:
                click.echo(f"{label['name']}  (static)")
            else:
                click.echo(f"{label['name']}  (smart: {label['smart_criteria']})")
        if not labels:
            click.echo("No labels")


@label_group.command("create")
@click.argument("name")
@click.option("--criteria", default=None, help="Make it a smart label with this criteria.")
@click.pass_context
def label_create_command(ctx: click.Context, name: str, criteria: str | None) -> None:
    """Create a static label, or a smart one with --criteria."""
    if criteria is not None:
        _require_valid_criteria(criteria)
    with _application(ctx) as app:
        session = app.session()
        if app.database.get_label_by_name(session.user_id, name) is not None:
            raise click.BadParameter(f"Label '{name}' already exists", param_hint="NAME")
        app.database.create_label(session.user_id, name, smart_criteria=criteria)
        click.echo(f"Created {'smart' if criteria else 'static'} label '{name}'")


@label_group.command("criteria")
@click.argument("name")
@click.argument("criteria", required=False)
@click.pass_context
def label_criteria_command(ctx: click.Context, name: str, criteria: str | None) -> None:
    """
    Set the criteria of a label.

    Without CRITERIA the label becomes static (and empty). Setting criteria
    on a static label drops its hand-picked tracks.
    """
    if criteria is not None:
        _require_valid_criteria(criteria)
    with _application(ctx) as app:
        label = app.label(app.session().user_id, name)
        app.database.set_label_criteria(label["id"], criteria)
        click.echo(f"Label '{name}' is now {'smart' if criteria else 'static'}")


@label_group.command("add")
@click.argument("name")
@click.argument("track_ids", nargs=-1, required=True)
@click.pass_context
def label_add_command(ctx: click.Context, name: str, track_ids: tuple[str, ...]) -> None:
    """Add tracks (by Spotify id) to a static label."""
    with _application(ctx) as app:
        session = app.session()
        label = app.label(session.user_id, name)
        for spotify_id in track_ids:
            track = app.database.get_track_by_spotify_id(session.user_id, spotify_id)
            if track is None:
                raise click.BadParameter(f"No stored track '{spotify_id}'", param_hint="TRACK_IDS")
            app.database.add_track_label(track["id"], label["id"])
        click.echo(f"Added {len(track_ids)} track(s) to '{name}'")


@label_group.command("remove")
@click.argument("name")
@click.argument("track_ids", nargs=-1, required=True)
@click.pass_context
def label_remove_command(ctx: click.Context, name: str, track_ids: tuple[str, ...]) -> None:
    """Remove tracks (by Spotify id) from a static label."""
    with _application(ctx) as app:
        session = app.session()
        label = app.label(session.user_id, name)
        for spotify_id in track_ids:
            track = app.database.get_track_by_spotify_id(session.user_id, spotify_id)
            if track is not None:
                app.database.remove_track_label(track["id"], label["id"])
        click.echo(f"Removed {len(track_ids)} track(s) from '{name}'")


def main() -> None:
    """Entry point for the `playlist-gen` command."""
    cli()


if __name__ == "__main__":
    main()
