"""
Tile downloader for Himawari full-disk images.

Resolves the latest capture time and fetches grid tiles from the NICT
service, either lazily one at a time or concurrently with a thread pool.
Every request goes through the configured RetryPolicy.
"""

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from io import BytesIO
from typing import Callable, Dict, Iterator, List, Optional

import requests
from PIL import Image

from .config import DownloaderConfig
from .datasources import HimawariDataSource
from .errors import MetadataFormatError, TileDecodeError
from .grid import GridRequest, Tile, TileCoordinate, parse_timestamp
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class TileDownloader:
    """
    Downloads full-disk tiles and metadata from the Himawari service.

    Features:
    - Lazy, sequential tile sequence in column-major-outer order
    - Optional concurrent download with a thread pool
    - Unlimited retry on timeouts by default, bounded retry on request
    """

    def __init__(self, config: Optional[DownloaderConfig] = None,
                 data_source: Optional[HimawariDataSource] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize tile downloader.

        Args:
            config: Downloader settings (defaults to DownloaderConfig())
            data_source: Endpoint description (defaults to config.base_url)
            retry_policy: Retry strategy (defaults to config.retry_policy())
            session: HTTP session to reuse
        """
        self.config = config or DownloaderConfig()
        self.data_source = data_source or HimawariDataSource(self.config.base_url)
        self.retry_policy = retry_policy or self.config.retry_policy()

        # Configure session
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': self.config.user_agent
        })

    def _get_bytes(self, url: str) -> bytes:
        """Issue one GET and return the body; HTTP errors raise."""
        response = self.session.get(url, timeout=self.config.timeout)
        response.raise_for_status()
        return response.content

    def _fetch(self, url: str, stop_event: Optional[threading.Event] = None) -> bytes:
        """GET a URL under the retry policy."""
        logger.debug("GET %s", url)
        return self.retry_policy.call(self._get_bytes, url, stop_event=stop_event)

    def resolve_latest(self) -> datetime:
        """
        Get the capture time of the most recent complete grid.

        Returns:
            Capture time as published, without zone conversion

        Raises:
            MetadataFormatError: If latest.json is malformed
        """
        data = self._fetch(self.data_source.get_metadata_url())

        try:
            payload = json.loads(data)
        except ValueError as e:
            raise MetadataFormatError(f"latest.json is not valid JSON: {e}") from e

        if not isinstance(payload, dict) or 'date' not in payload:
            raise MetadataFormatError("latest.json has no 'date' field")

        date = payload['date']
        if not isinstance(date, str):
            raise MetadataFormatError(f"latest.json 'date' is not a string: {date!r}")

        try:
            timestamp = parse_timestamp(date)
        except ValueError as e:
            raise MetadataFormatError(str(e)) from e

        logger.info("Latest capture time: %s", timestamp)
        return timestamp

    def _decode_tile(self, data: bytes, coordinate: TileCoordinate,
                     chunk_size: int) -> Tile:
        try:
            img = Image.open(BytesIO(data))
            img.load()
        except OSError as e:
            raise TileDecodeError(f"Could not decode tile {tuple(coordinate)}: {e}") from e

        if img.size != (chunk_size, chunk_size):
            raise TileDecodeError(
                f"Tile {tuple(coordinate)} is {img.size[0]}x{img.size[1]}, "
                f"expected {chunk_size}x{chunk_size}"
            )
        return Tile(coordinate, img)

    def fetch_tile(self, request: GridRequest, coordinate: TileCoordinate,
                   stop_event: Optional[threading.Event] = None) -> Tile:
        """
        Download and decode a single tile.

        Args:
            request: Validated grid request
            coordinate: Tile to fetch
            stop_event: When set, timeouts are no longer retried

        Returns:
            Decoded tile
        """
        url = self.data_source.get_tile_url(request, coordinate)
        data = self._fetch(url, stop_event)
        return self._decode_tile(data, coordinate, request.chunk_size)

    def fetch_tiles(self, resolution: int, chunk_size: int,
                    timestamp: datetime) -> Iterator[Tile]:
        """
        Lazily download all tiles of a grid, one request at a time.

        The request is validated before this returns, so an invalid
        resolution fails without any network activity.

        Args:
            resolution: Tiles per axis
            chunk_size: Tile size in pixels
            timestamp: Capture time

        Returns:
            Single-pass iterator over resolution**2 tiles, column-major-outer

        Raises:
            InvalidArgumentError: If resolution or chunk_size is illegal
        """
        request = GridRequest(resolution, timestamp, chunk_size)
        return self._iter_tiles(request)

    def _iter_tiles(self, request: GridRequest) -> Iterator[Tile]:
        for coordinate in request.coordinates():
            yield self.fetch_tile(request, coordinate)

    def fetch_tiles_concurrent(self, resolution: int, chunk_size: int,
                               timestamp: datetime,
                               max_workers: Optional[int] = None,
                               progress_callback: Optional[Callable[[int, int], None]] = None
                               ) -> List[Tile]:
        """
        Download all tiles of a grid with a thread pool.

        Each tile is retried independently. The call returns only once every
        tile has arrived. The first fatal error is re-raised at once: queued
        tiles are cancelled and tiles still retrying timeouts stop at their
        next attempt, without being waited for.

        Args:
            resolution: Tiles per axis
            chunk_size: Tile size in pixels
            timestamp: Capture time
            max_workers: Pool size (defaults to config.max_workers)
            progress_callback: Optional callback function (completed, total)

        Returns:
            List of resolution**2 tiles in column-major-outer order
        """
        request = GridRequest(resolution, timestamp, chunk_size)
        workers = max_workers or self.config.max_workers
        coordinates = list(request.coordinates())
        total = request.tile_count
        results: Dict[TileCoordinate, Tile] = {}
        stop = threading.Event()

        logger.info("Downloading %d tiles with %d workers", total, workers)

        executor = ThreadPoolExecutor(max_workers=workers)
        try:
            futures = {executor.submit(self.fetch_tile, request, c, stop): c
                       for c in coordinates}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
                if progress_callback:
                    progress_callback(len(results), total)
        except BaseException:
            # Workers still retrying timeouts exit at their next attempt
            stop.set()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

        return [results[c] for c in coordinates]

    def close(self):
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self) -> "TileDownloader":
        return self

    def __exit__(self, *exc_info):
        self.close()
