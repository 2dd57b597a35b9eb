"""
Compile smart label criteria into a SQL filter over a user's tracks.

The filter is a WHERE fragment plus its bound parameters. It refers to the
aliases used by Database.find_tracks(): `t` for tracks and `al` for albums.
Literal values are always bound, never interpolated.

Attributes:

    name      text    track name
    album     text    album name
    artist    text    any of the track's artists
    genre     text    any genre of any of the track's artists
    label     text    any static label the track carries
    explicit  bool    explicit flag
    added     date    when the track was favorited
    released  date    album release date
    year      number  album release year

Operators per type:

    text     =  !=  ~          case-insensitive; ~ means "contains"
    bool     =  !=
    date     =  !=  <  <=  >  >=   value is "YYYY-MM-DD"
    number   =  !=  <  <=  >  >=

For the multi-valued text attributes (artist, genre, label), `=` and `~`
hold when ANY value matches and `!=` holds when NO value equals the literal.

Usage:
    track_filter = compile_criteria('genre ~ "rock" and not explicit')
    if track_filter is None:
        ...  # invalid criteria
    tracks = database.find_tracks(user_id, track_filter)
"""

from dataclasses import dataclass
from datetime import date
from typing import Any

from playlist_gen.core.exceptions import CriteriaError
from playlist_gen.core.logger import get_logger
from playlist_gen.criteria.nodes import And, AttributeRef, Comparison, Node, Not, Or
from playlist_gen.criteria.parser import parse_criteria

logger = get_logger(__name__)


TEXT = "text"
BOOL = "bool"
DATE = "date"
NUMBER = "number"

OPERATORS = {
    TEXT: {"=", "!=", "~"},
    BOOL: {"=", "!="},
    DATE: {"=", "!=", "<", "<=", ">", ">="},
    NUMBER: {"=", "!=", "<", "<=", ">", ">="},
}

SQL_OPERATORS = {"=": "=", "!=": "<>", "<": "<", "<=": "<=", ">": ">", ">=": ">="}

# Signed 64-bit range of an SQLite INTEGER
SQLITE_MIN_INTEGER = -(2 ** 63)
SQLITE_MAX_INTEGER = 2 ** 63 - 1


@dataclass(frozen=True)
class Attribute:
    """
    A filterable track attribute.

    Attributes:
        kind: One of TEXT, BOOL, DATE, NUMBER.
        column: SQL expression of the value. For multi-valued attributes this
                is the expression inside `exists`.
        exists: For multi-valued attributes, an EXISTS subquery template with
                a `{match}` slot for the per-value condition.
    """
    kind: str
    column: str
    exists: str | None = None


ATTRIBUTES: dict[str, Attribute] = {
    "name": Attribute(TEXT, "t.name"),
    "album": Attribute(TEXT, "al.name"),
    "artist": Attribute(
        TEXT, "ar.name",
        exists=(
            "SELECT 1 FROM track_artists ta JOIN artists ar ON ar.id = ta.artist_id "
            "WHERE ta.track_id = t.id AND {match}"
        ),
    ),
    "genre": Attribute(
        TEXT, "g.value",
        exists=(
            "SELECT 1 FROM track_artists ta JOIN artists ar ON ar.id = ta.artist_id, "
            "json_each(ar.genres) g "
            "WHERE ta.track_id = t.id AND {match}"
        ),
    ),
    "label": Attribute(
        TEXT, "lb.name",
        exists=(
            "SELECT 1 FROM track_labels tl JOIN labels lb ON lb.id = tl.label_id "
            "WHERE tl.track_id = t.id AND lb.smart_criteria IS NULL AND {match}"
        ),
    ),
    "explicit": Attribute(BOOL, "t.explicit"),
    "added": Attribute(DATE, "t.date_added"),
    "released": Attribute(DATE, "al.date_released"),
    "year": Attribute(NUMBER, "CAST(substr(al.date_released, 1, 4) AS INTEGER)"),
}


@dataclass(frozen=True)
class TrackFilter:
    """Compiled criteria: a WHERE fragment and its positional parameters."""
    sql: str
    params: tuple[Any, ...]


# =============================================================================
# Compilation
# =============================================================================

def compile_node(node: Node) -> TrackFilter:
    """
    Compile a predicate tree into a TrackFilter.

    Raises:
        CriteriaError: If the tree names an unknown attribute, applies an
                       operator the attribute doesn't support, or compares
                       against a value of the wrong type.
    """
    if isinstance(node, And):
        return _join(node.operands, "AND")
    if isinstance(node, Or):
        return _join(node.operands, "OR")
    if isinstance(node, Not):
        inner = compile_node(node.operand)
        return TrackFilter(f"NOT ({inner.sql})", inner.params)
    if isinstance(node, AttributeRef):
        attribute = _lookup(node.name, node.position)
        if attribute.kind != BOOL:
            raise CriteriaError(
                f"'{node.name}' is not a true/false attribute; compare it to a value",
                position=node.position
            )
        return TrackFilter(f"{attribute.column} = 1", ())
    if isinstance(node, Comparison):
        return _compile_comparison(node)
    raise TypeError(f"Unsupported criteria node: {node!r}")


def _join(operands: tuple[Node, ...], keyword: str) -> TrackFilter:
    parts = [compile_node(operand) for operand in operands]
    sql = f" {keyword} ".join(f"({part.sql})" for part in parts)
    params = tuple(param for part in parts for param in part.params)
    return TrackFilter(sql, params)


def _lookup(name: str, position: int) -> Attribute:
    attribute = ATTRIBUTES.get(name)
    if attribute is None:
        known = ", ".join(sorted(ATTRIBUTES))
        raise CriteriaError(f"Unknown attribute '{name}' (known: {known})", position=position)
    return attribute


def _compile_comparison(node: Comparison) -> TrackFilter:
    attribute = _lookup(node.attribute, node.position)

    if node.operator not in OPERATORS[attribute.kind]:
        raise CriteriaError(
            f"Operator '{node.operator}' cannot be used with {attribute.kind} attribute '{node.attribute}'",
            position=node.position
        )

    value = _coerce_value(node, attribute)

    if attribute.kind == TEXT:
        return _compile_text(node.operator, value, attribute)
    if attribute.kind == DATE:
        return TrackFilter(f"date({attribute.column}) {SQL_OPERATORS[node.operator]} ?", (value,))
    return TrackFilter(f"{attribute.column} {SQL_OPERATORS[node.operator]} ?", (value,))


def _coerce_value(node: Comparison, attribute: Attribute) -> Any:
    """Check the literal against the attribute type and convert it to its SQL value."""
    value = node.value
    expected = {TEXT: "a quoted string", BOOL: "true or false",
                DATE: 'a quoted date like "2020-01-31"', NUMBER: "a number"}[attribute.kind]

    if attribute.kind == BOOL:
        if isinstance(value, bool):
            return 1 if value else 0
    elif attribute.kind == NUMBER:
        if isinstance(value, int) and not isinstance(value, bool):
            if not SQLITE_MIN_INTEGER <= value <= SQLITE_MAX_INTEGER:
                raise CriteriaError(
                    f"'{node.attribute}' value {value} is out of range",
                    position=node.position
                )
            return value
    elif isinstance(value, str):
        if attribute.kind == TEXT:
            return value
        try:
            return date.fromisoformat(value).isoformat()
        except ValueError:
            pass

    raise CriteriaError(
        f"'{node.attribute}' must be compared to {expected}, got {value!r}",
        position=node.position
    )


def _compile_text(operator: str, value: str, attribute: Attribute) -> TrackFilter:
    column = attribute.column
    if operator == "~":
        match = f"instr(lower({column}), lower(?)) > 0"
    else:
        match = f"{column} = ? COLLATE NOCASE"

    if attribute.exists is None:
        if operator == "!=":
            return TrackFilter(f"{column} <> ? COLLATE NOCASE", (value,))
        return TrackFilter(match, (value,))

    subquery = attribute.exists.format(match=match)
    if operator == "!=":
        return TrackFilter(f"NOT EXISTS ({subquery})", (value,))
    return TrackFilter(f"EXISTS ({subquery})", (value,))


# =============================================================================
# Public entry points
# =============================================================================

def compile_criteria(text: str) -> TrackFilter | None:
    """
    Parse and compile criteria text.

    Returns:
        The compiled filter, or None if the text is invalid in any way
        (syntax, unknown attribute, operator or value type).
    """
    try:
        return compile_node(parse_criteria(text))
    except CriteriaError as e:
        logger.debug(f"Invalid criteria {text!r}: {e}")
        return None


def explain_criteria(text: str) -> CriteriaError | None:
    """Return the first problem with the criteria text, or None if it compiles."""
    try:
        compile_node(parse_criteria(text))
    except CriteriaError as e:
        return e
    return None


def validate_criteria(text: str) -> bool:
    """True when compile_criteria(text) would produce a filter."""
    return explain_criteria(text) is None
