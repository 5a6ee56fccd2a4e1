# ============================================================================
# MODULE CONTEXT - REQUEST PARAMETER PARSING
# ============================================================================
# STATUS: Standalone Module - PostGIS HTTP API input grammar
# PURPOSE: Parse and validate untrusted path/query parameters
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: PointLiteral, EnvelopeBounds, TileBounds, parse_point, parse_bounds,
#          parse_tile, to_int, to_bool, validate_identifier, table_identifier,
#          check_expression
# DEPENDENCIES: re, pydantic, psycopg.sql
# PATTERNS: Parse-don't-validate, failures raise MalformedInput
# ============================================================================

"""
Request Parameter Parsing

Everything that arrives in a path or query string is untrusted text. This
module turns it into typed values or raises MalformedInput:

- Point literals "x,y,srid" become PointLiteral values whose numbers are
  later bound as statement parameters.
- Table and column names must match a plain identifier grammar and are
  rendered through sql.Identifier, so they are always double-quoted.
- Numeric query parameters are coerced without ever raising.
- Free-text SQL fragments (filter, sort, group, columns) are passed through
  as written, but may not end the statement or open a comment.
"""

import re
from typing import Optional, Union

from psycopg import sql
from pydantic import BaseModel, ConfigDict

from .errors import MalformedInput

POINT_PATTERN = re.compile(r"^([+-]?\d+(?:\.\d+)?),([+-]?\d+(?:\.\d+)?),(\d{4})$")
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")
INVALID_POINT_MESSAGE = (
    "Invalid point format. Expected format: x,y,srid (e.g., 29.1234,41.5678,4326)"
)

# Tokens that would let a fragment terminate the statement or hide the rest of it
FORBIDDEN_FRAGMENT_TOKENS = (";", "--", "/*")

MAX_TILE_ZOOM = 30

TRUE_VALUES = {"true", "1", "yes", "on"}


# ============================================================================
# VALUE TYPES
# ============================================================================

class PointLiteral(BaseModel):
    """A parsed x,y,srid point."""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    srid: int


class EnvelopeBounds(BaseModel):
    """Explicit bounding envelope in EPSG:4326."""
    model_config = ConfigDict(frozen=True)

    west: float
    south: float
    east: float
    north: float


class TileBounds(BaseModel):
    """Web-mercator tile address."""
    model_config = ConfigDict(frozen=True)

    z: int
    x: int
    y: int


Bounds = Union[EnvelopeBounds, TileBounds]


# ============================================================================
# POINTS AND BOUNDS
# ============================================================================

def parse_point(literal: Optional[str]) -> PointLiteral:
    """
    Parse a point literal of the form "x,y,srid".

    x and y take an optional "+" or "-" sign; srid is exactly four digits.

    Args:
        literal: Raw path segment, e.g. "29.1234,41.5678,4326"

    Returns:
        PointLiteral with float coordinates and integer SRID

    Raises:
        MalformedInput: If the literal does not match the grammar
    """
    match = POINT_PATTERN.match(literal or "")
    if not match:
        raise MalformedInput(INVALID_POINT_MESSAGE, parameter="point")

    x, y, srid = match.groups()
    return PointLiteral(x=float(x), y=float(y), srid=int(srid))


def parse_bounds(value: Optional[str]) -> Optional[Bounds]:
    """
    Parse a bounds query parameter.

    Four values are an envelope (west,south,east,north in EPSG:4326); three
    values are a tile address (z,x,y). Any other count disables the filter.

    Raises:
        MalformedInput: If an entry is not a number, or a tile entry is not an integer
    """
    if not value:
        return None

    parts = [part.strip() for part in value.split(",")]

    if len(parts) == 4:
        try:
            west, south, east, north = (float(part) for part in parts)
        except ValueError:
            raise MalformedInput(
                "Invalid bounds. Expected west,south,east,north or z,x,y",
                parameter="bounds"
            )
        return EnvelopeBounds(west=west, south=south, east=east, north=north)

    if len(parts) == 3:
        try:
            z, x, y = (int(part) for part in parts)
        except ValueError:
            raise MalformedInput(
                "Invalid bounds. Tile bounds must be integers z,x,y",
                parameter="bounds"
            )
        return TileBounds(z=z, x=x, y=y)

    return None


def parse_tile(z: Optional[str], x: Optional[str], y: Optional[str]) -> TileBounds:
    """
    Parse and range-check tile path parameters.

    Raises:
        MalformedInput: If a coordinate is not a non-negative integer inside the zoom level's grid
    """
    try:
        tile = TileBounds(z=int(z), x=int(x), y=int(y))
    except (TypeError, ValueError):
        raise MalformedInput("Tile coordinates z, x and y must be integers", parameter="tile")

    if not 0 <= tile.z <= MAX_TILE_ZOOM:
        raise MalformedInput(f"Zoom level must be between 0 and {MAX_TILE_ZOOM}", parameter="z")

    size = 2 ** tile.z
    if not (0 <= tile.x < size and 0 <= tile.y < size):
        raise MalformedInput(
            f"Tile {tile.x}/{tile.y} is outside the grid for zoom {tile.z}",
            parameter="tile"
        )

    return tile


# ============================================================================
# SCALAR COERCION
# ============================================================================

def to_int(value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    """Coerce a query parameter to int, returning default when absent or unparseable."""
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def to_bool(value: Optional[str]) -> bool:
    """Interpret a query flag; true/1/yes/on are true, anything else false."""
    if value is None:
        return False
    return str(value).strip().lower() in TRUE_VALUES


# ============================================================================
# IDENTIFIERS AND FRAGMENTS
# ============================================================================

def validate_identifier(name: Optional[str], kind: str = "identifier") -> str:
    """
    Check that a name is a plain SQL identifier.

    Raises:
        MalformedInput: If the name is empty or contains anything but letters, digits, '_' or '$'
    """
    if not name or not IDENTIFIER_PATTERN.match(name):
        raise MalformedInput(f"Invalid {kind} name: '{name}'", parameter=kind)
    return name


def table_identifier(name: Optional[str]) -> sql.Identifier:
    """
    Build a quoted table identifier, allowing one optional schema qualifier.

    "parcels" renders as "parcels", "geo.parcels" as "geo"."parcels".
    """
    parts = (name or "").split(".")
    if len(parts) > 2:
        raise MalformedInput(f"Invalid table name: '{name}'", parameter="table")
    for part in parts:
        validate_identifier(part, "table")
    return sql.Identifier(*parts)


def check_expression(value: Optional[str], parameter: str) -> Optional[str]:
    """
    Vet a free-text SQL fragment.

    Returns:
        The fragment stripped of surrounding whitespace, or None when empty

    Raises:
        MalformedInput: If the fragment contains a statement separator or comment opener
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    for token in FORBIDDEN_FRAGMENT_TOKENS:
        if token in value:
            raise MalformedInput(
                f"Parameter '{parameter}' may not contain '{token}'",
                parameter=parameter
            )
    return value
