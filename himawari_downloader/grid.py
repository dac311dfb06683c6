"""
Tile grid geometry for Himawari full-disk images.

The full disk is published as a square grid of ``resolution x resolution``
PNG tiles, each ``chunk_size`` pixels on a side. Tiles are addressed by
``(column, row)`` and enumerated column-major-outer: all rows of column 0,
then all rows of column 1, and so on.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, NamedTuple, Tuple

from PIL import Image

from .errors import InvalidArgumentError


# Grid resolutions (tiles per axis) the service publishes
VALID_RESOLUTIONS = (1, 2, 4, 8, 16, 20)

# Pixel size of one published tile
DEFAULT_CHUNK_SIZE = 550

DEFAULT_RESOLUTION = 1

# Formats accepted in addition to ISO-8601
TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y%m%d%H%M%S",
)


class TileCoordinate(NamedTuple):
    """Grid position of one tile."""

    column: int
    row: int

    def offset(self, chunk_size: int) -> Tuple[int, int]:
        """Return the (x, y) pixel offset of this tile in the composite."""
        return self.column * chunk_size, self.row * chunk_size


def validate_resolution(resolution: int) -> int:
    """
    Validate a grid resolution.

    Args:
        resolution: Number of tiles per axis

    Returns:
        The resolution, unchanged

    Raises:
        InvalidArgumentError: If resolution is not a published grid size
    """
    if isinstance(resolution, bool) or resolution not in VALID_RESOLUTIONS:
        allowed = ", ".join(str(r) for r in VALID_RESOLUTIONS)
        raise InvalidArgumentError(
            f"Invalid resolution {resolution!r}, must be one of: {allowed}"
        )
    return resolution


def validate_chunk_size(chunk_size: int) -> int:
    """
    Validate a tile size in pixels.

    Raises:
        InvalidArgumentError: If chunk_size is not a positive integer
    """
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
        raise InvalidArgumentError(
            f"Chunk size must be a positive integer, got {chunk_size!r}"
        )
    return chunk_size


def grid_coordinates(resolution: int) -> Iterator[TileCoordinate]:
    """
    Enumerate all tile coordinates of a grid, column-major-outer.

    Examples:
        >>> [tuple(c) for c in grid_coordinates(2)]
        [(0, 0), (0, 1), (1, 0), (1, 1)]
    """
    for column in range(resolution):
        for row in range(resolution):
            yield TileCoordinate(column, row)


def tile_path(resolution: int, chunk_size: int, timestamp: datetime,
              coordinate: TileCoordinate) -> str:
    """
    Build the tile path relative to the service base URL.

    The timestamp is formatted as-is; no time zone conversion is done.

    Examples:
        >>> tile_path(1, 550, datetime(2021, 1, 1), TileCoordinate(0, 0))
        '1d/550/2021/01/01/000000_0_0.png'
    """
    stamp = timestamp.strftime("%Y/%m/%d/%H%M%S")
    return (f"{resolution}d/{chunk_size}/"
            f"{stamp}_{coordinate.column}_{coordinate.row}.png")


def parse_timestamp(value: str) -> datetime:
    """
    Parse a capture time string.

    Accepts ISO-8601 (with ``T`` or a space, optional ``Z`` or offset) and
    the formats in TIMESTAMP_FORMATS.

    Args:
        value: Time string, e.g. "2021-01-01 00:00:00"

    Returns:
        Parsed datetime

    Raises:
        ValueError: If the string matches no known format
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass

    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    raise ValueError(f"Unrecognised timestamp: {value!r}")


@dataclass(frozen=True)
class GridRequest:
    """
    One full-disk image request.

    Validated on construction, so holding a GridRequest means the grid is
    legal and no network call has been made yet.
    """

    resolution: int
    timestamp: datetime
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self):
        validate_resolution(self.resolution)
        validate_chunk_size(self.chunk_size)

    @property
    def tile_count(self) -> int:
        return self.resolution ** 2

    def coordinates(self) -> Iterator[TileCoordinate]:
        return grid_coordinates(self.resolution)

    def tile_path(self, coordinate: TileCoordinate) -> str:
        return tile_path(self.resolution, self.chunk_size, self.timestamp, coordinate)


@dataclass(frozen=True)
class Tile:
    """A decoded tile and the grid position it was fetched for."""

    coordinate: TileCoordinate
    image: Image.Image

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size
