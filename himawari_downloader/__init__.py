"""
Himawari Downloader - Download Himawari full-disk satellite images.

Fetches the tile grid a full-disk image is published as and composes the
tiles into one image.
"""

__version__ = "1.0.0"

from .composer import compose
from .config import DownloaderConfig
from .datasources import HimawariDataSource
from .downloader import TileDownloader
from .errors import (
    HimawariError,
    InvalidArgumentError,
    TransientNetworkError,
    MetadataFormatError,
    TileDecodeError,
    CompositionError,
    RetryCancelledError
)
from .grid import (
    VALID_RESOLUTIONS,
    DEFAULT_CHUNK_SIZE,
    GridRequest,
    Tile,
    TileCoordinate,
    grid_coordinates,
    parse_timestamp,
    validate_resolution
)
from .himawari import build_image, download_image_to, fetch_tiles, resolve_latest
from .retry import RetryPolicy, is_timeout

__all__ = [
    # Version info
    '__version__',

    # Main classes
    'TileDownloader',
    'DownloaderConfig',
    'HimawariDataSource',
    'RetryPolicy',

    # Data model
    'GridRequest',
    'Tile',
    'TileCoordinate',
    'VALID_RESOLUTIONS',
    'DEFAULT_CHUNK_SIZE',

    # Main functions
    'resolve_latest',
    'fetch_tiles',
    'compose',
    'build_image',
    'download_image_to',

    # Helpers
    'grid_coordinates',
    'parse_timestamp',
    'validate_resolution',
    'is_timeout',

    # Errors
    'HimawariError',
    'InvalidArgumentError',
    'TransientNetworkError',
    'MetadataFormatError',
    'TileDecodeError',
    'CompositionError',
    'RetryCancelledError',
]
