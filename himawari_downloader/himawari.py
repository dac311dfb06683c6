"""
Core entry points: resolve, fetch, compose, build.

Each function accepts an explicit ``downloader``; without one a shared
default TileDownloader configured from the environment is used.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional

from PIL import Image

from . import composer
from .config import DownloaderConfig
from .downloader import TileDownloader
from .grid import (
    DEFAULT_CHUNK_SIZE, DEFAULT_RESOLUTION, Tile, validate_chunk_size, validate_resolution
)

logger = logging.getLogger(__name__)

_default_downloader: Optional[TileDownloader] = None


def get_default_downloader() -> TileDownloader:
    """Return the shared downloader, creating it on first use."""
    global _default_downloader
    if _default_downloader is None:
        _default_downloader = TileDownloader(DownloaderConfig.from_env())
    return _default_downloader


def resolve_latest(downloader: Optional[TileDownloader] = None) -> datetime:
    """Capture time of the most recent complete grid."""
    return (downloader or get_default_downloader()).resolve_latest()


def fetch_tiles(resolution: int = DEFAULT_RESOLUTION,
                chunk_size: int = DEFAULT_CHUNK_SIZE,
                timestamp: Optional[datetime] = None,
                downloader: Optional[TileDownloader] = None) -> Iterator[Tile]:
    """
    Lazily fetch every tile of a grid in column-major-outer order.

    The grid is validated first; the latest timestamp is resolved only when
    none is given.
    """
    validate_resolution(resolution)
    validate_chunk_size(chunk_size)
    downloader = downloader or get_default_downloader()
    if timestamp is None:
        timestamp = downloader.resolve_latest()
    return downloader.fetch_tiles(resolution, chunk_size, timestamp)


def compose(resolution: int, chunk_size: int, tiles: Iterable[Tile]) -> Image.Image:
    """
    Compose a full grid of tiles into one image.

    See composer.compose; tiles may arrive in any order.
    """
    return composer.compose(resolution, chunk_size, tiles)


def build_image(resolution: int = DEFAULT_RESOLUTION,
                chunk_size: int = DEFAULT_CHUNK_SIZE,
                timestamp: Optional[datetime] = None,
                downloader: Optional[TileDownloader] = None,
                max_workers: Optional[int] = None,
                progress_callback: Optional[Callable[[int, int], None]] = None
                ) -> Image.Image:
    """
    Download a full-disk grid and compose it into one image.

    Args:
        resolution: Tiles per axis (1, 2, 4, 8, 16 or 20)
        chunk_size: Tile size in pixels
        timestamp: Capture time, latest when None
        downloader: Downloader to use (defaults to the shared one)
        max_workers: Concurrent downloads, defaults to the downloader config;
            1 fetches lazily and sequentially
        progress_callback: Optional callback function (completed, total)

    Returns:
        Composite image, owned by the caller

    Raises:
        InvalidArgumentError: Before any request, if the grid is illegal
    """
    validate_resolution(resolution)
    validate_chunk_size(chunk_size)

    downloader = downloader or get_default_downloader()
    if timestamp is None:
        timestamp = downloader.resolve_latest()

    workers = max_workers or downloader.config.max_workers
    logger.info("Building %dx%d grid of %dpx tiles for %s",
                resolution, resolution, chunk_size, timestamp)

    if workers > 1:
        tiles = downloader.fetch_tiles_concurrent(
            resolution, chunk_size, timestamp,
            max_workers=workers, progress_callback=progress_callback
        )
    else:
        tiles = _with_progress(
            downloader.fetch_tiles(resolution, chunk_size, timestamp),
            resolution ** 2, progress_callback
        )

    return compose(resolution, chunk_size, tiles)


def _with_progress(tiles: Iterator[Tile], total: int,
                   progress_callback: Optional[Callable[[int, int], None]]) -> Iterator[Tile]:
    if progress_callback is None:
        yield from tiles
        return
    for completed, tile in enumerate(tiles, start=1):
        progress_callback(completed, total)
        yield tile


def download_image_to(filename: str, **options) -> Image.Image:
    """
    Build an image and save it; the file format follows the extension.

    Args:
        filename: Output path
        **options: Passed to build_image

    Returns:
        The saved image
    """
    image = build_image(**options)
    image.save(filename)
    logger.info("Saved %s", filename)
    return image
