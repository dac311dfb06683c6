"""
Tests for TileDownloader: latest-time resolution and tile fetching.
"""

import json
import threading
import time
from datetime import datetime
from unittest.mock import Mock

import pytest
import requests

from himawari_downloader.config import DownloaderConfig
from himawari_downloader.downloader import TileDownloader
from himawari_downloader.errors import (
    InvalidArgumentError, MetadataFormatError, TileDecodeError, TransientNetworkError
)
from himawari_downloader.grid import Tile, TileCoordinate

from .helpers import (
    BASE_URL, TIMESTAMP, grid_routes, latest_route, make_png, make_response,
    tile_color, tile_url
)


class TestResolveLatest:
    """Tests for TileDownloader.resolve_latest."""

    def test_parses_date(self, session, downloader):
        session.routes.update(latest_route("2021-01-01 03:20:00"))
        assert downloader.resolve_latest() == datetime(2021, 1, 1, 3, 20)
        assert session.calls == [f"{BASE_URL}/latest.json"]

    def test_retries_timeout(self, session, downloader):
        url = f"{BASE_URL}/latest.json"
        body = json.dumps({"date": "2021-01-01 00:00:00"}).encode()
        session.routes[url] = [
            requests.exceptions.ConnectTimeout(),
            requests.exceptions.ReadTimeout(),
            make_response(body),
        ]
        assert downloader.resolve_latest() == TIMESTAMP
        assert len(session.calls) == 3

    @pytest.mark.parametrize("body", [
        b"not json",
        b"[1, 2, 3]",
        b'{"file": "x.png"}',
        b'{"date": 20210101}',
        b'{"date": "sometime"}',
    ])
    def test_malformed_metadata(self, session, downloader, body):
        """Test malformed metadata is fatal and not retried."""
        session.routes[f"{BASE_URL}/latest.json"] = make_response(body)
        with pytest.raises(MetadataFormatError):
            downloader.resolve_latest()
        assert len(session.calls) == 1

    def test_http_error(self, session, downloader):
        session.routes[f"{BASE_URL}/latest.json"] = make_response(status=503)
        with pytest.raises(requests.HTTPError):
            downloader.resolve_latest()

    def test_bounded_retry_exhausted(self, session):
        session.routes[f"{BASE_URL}/latest.json"] = requests.exceptions.ReadTimeout()
        config = DownloaderConfig(base_url=BASE_URL, max_retries=2)
        downloader = TileDownloader(config, session=session)
        with pytest.raises(TransientNetworkError):
            downloader.resolve_latest()
        assert len(session.calls) == 2


class TestFetchTiles:
    """Tests for TileDownloader.fetch_tiles."""

    @pytest.mark.parametrize("resolution", [0, 3, 5, 21])
    def test_invalid_resolution_no_requests(self, session, downloader, resolution):
        with pytest.raises(InvalidArgumentError):
            downloader.fetch_tiles(resolution, 550, TIMESTAMP)
        assert session.calls == []

    def test_lazy(self, session, downloader):
        """Test nothing is fetched until the sequence is consumed."""
        session.routes.update(grid_routes(2, 8))
        tiles = downloader.fetch_tiles(2, 8, TIMESTAMP)
        assert session.calls == []
        next(tiles)
        assert len(session.calls) == 1

    def test_single_tile_url(self, session, downloader):
        session.routes.update(grid_routes(1, 550))
        tiles = list(downloader.fetch_tiles(1, 550, TIMESTAMP))

        assert session.calls == [f"{BASE_URL}/1d/550/2021/01/01/000000_0_0.png"]
        assert len(tiles) == 1
        assert tiles[0].coordinate == TileCoordinate(0, 0)
        assert tiles[0].size == (550, 550)

    def test_order_and_count(self, session, downloader):
        session.routes.update(grid_routes(4, 8))
        tiles = list(downloader.fetch_tiles(4, 8, TIMESTAMP))

        expected = [(c, r) for c in range(4) for r in range(4)]
        assert [tuple(t.coordinate) for t in tiles] == expected
        assert session.calls == [tile_url(4, 8, c) for c in expected]
        assert all(t.size == (8, 8) for t in tiles)

    def test_single_pass(self, session, downloader):
        session.routes.update(grid_routes(1, 8))
        tiles = downloader.fetch_tiles(1, 8, TIMESTAMP)
        assert len(list(tiles)) == 1
        assert list(tiles) == []

    def test_decodes_pixels(self, session, downloader):
        session.routes.update(grid_routes(2, 8))
        for tile in downloader.fetch_tiles(2, 8, TIMESTAMP):
            assert tile.image.convert('RGB').getpixel((3, 3)) == tile_color(tile.coordinate)

    def test_timeout_retried_pixels_unchanged(self, session, downloader):
        session.routes.update(grid_routes(2, 8))
        url = tile_url(2, 8, (1, 0))
        session.routes[url] = [
            requests.exceptions.ReadTimeout(),
            requests.exceptions.ReadTimeout(),
            make_response(make_png(8, tile_color((1, 0)))),
        ]

        tiles = list(downloader.fetch_tiles(2, 8, TIMESTAMP))

        assert len(tiles) == 4
        assert session.calls.count(url) == 3
        assert tiles[2].coordinate == (1, 0)
        assert tiles[2].image.getpixel((0, 0)) == tile_color((1, 0))

    def test_http_error_stops_sequence(self, session, downloader):
        session.routes.update(grid_routes(2, 8))
        session.routes[tile_url(2, 8, (0, 1))] = make_response(status=500)

        tiles = downloader.fetch_tiles(2, 8, TIMESTAMP)
        assert next(tiles).coordinate == (0, 0)
        with pytest.raises(requests.HTTPError):
            next(tiles)
        assert len(session.calls) == 2

    def test_missing_tile(self, session, downloader):
        with pytest.raises(requests.HTTPError):
            list(downloader.fetch_tiles(1, 8, TIMESTAMP))

    def test_undecodable_bytes(self, session, downloader):
        session.routes[tile_url(1, 8, (0, 0))] = make_response(b"<html>oops</html>")
        with pytest.raises(TileDecodeError):
            list(downloader.fetch_tiles(1, 8, TIMESTAMP))

    def test_wrong_tile_size(self, session, downloader):
        session.routes[tile_url(1, 8, (0, 0))] = make_response(make_png(16))
        with pytest.raises(TileDecodeError, match="expected 8x8"):
            list(downloader.fetch_tiles(1, 8, TIMESTAMP))

    def test_request_timeout_setting(self):
        session = Mock()
        session.headers = {}
        session.get.return_value = make_response(make_png(8))
        downloader = TileDownloader(DownloaderConfig(base_url=BASE_URL, timeout=7), session=session)

        list(downloader.fetch_tiles(1, 8, TIMESTAMP))

        session.get.assert_called_once_with(tile_url(1, 8, (0, 0)), timeout=7)
        assert 'User-Agent' in session.headers


class TestFetchTilesConcurrent:
    """Tests for TileDownloader.fetch_tiles_concurrent."""

    def test_returns_grid_order(self, session, downloader):
        session.routes.update(grid_routes(4, 8))
        tiles = downloader.fetch_tiles_concurrent(4, 8, TIMESTAMP, max_workers=4)

        assert [tuple(t.coordinate) for t in tiles] == [(c, r) for c in range(4) for r in range(4)]
        assert sorted(session.calls) == sorted(tile_url(4, 8, (c, r)) for c in range(4) for r in range(4))
        assert all(isinstance(t, Tile) for t in tiles)

    def test_progress(self, session, downloader):
        session.routes.update(grid_routes(2, 8))
        progress = Mock()
        downloader.fetch_tiles_concurrent(2, 8, TIMESTAMP, max_workers=2, progress_callback=progress)

        assert progress.call_count == 4
        progress.assert_called_with(4, 4)

    def test_retry_per_tile(self, session, downloader):
        session.routes.update(grid_routes(2, 8))
        url = tile_url(2, 8, (1, 1))
        session.routes[url] = [requests.exceptions.ConnectTimeout(),
                               make_response(make_png(8, tile_color((1, 1))))]

        tiles = downloader.fetch_tiles_concurrent(2, 8, TIMESTAMP, max_workers=4)

        assert session.calls.count(url) == 2
        assert tiles[3].image.getpixel((0, 0)) == tile_color((1, 1))

    def test_fatal_error_propagates(self, session, downloader):
        session.routes.update(grid_routes(2, 8))
        session.routes[tile_url(2, 8, (1, 0))] = make_response(status=500)

        with pytest.raises(requests.HTTPError):
            downloader.fetch_tiles_concurrent(2, 8, TIMESTAMP, max_workers=2)

    def test_fatal_error_not_blocked_by_retrying_tile(self, session, downloader):
        """Test an HTTP 500 surfaces while another tile keeps timing out."""
        session.routes.update(grid_routes(2, 8))
        session.routes[tile_url(2, 8, (0, 0))] = make_response(status=500)
        stuck_url = tile_url(2, 8, (1, 1))
        session.routes[stuck_url] = requests.exceptions.ReadTimeout()
        outcome = {}

        def run():
            try:
                downloader.fetch_tiles_concurrent(2, 8, TIMESTAMP, max_workers=4)
            except Exception as e:
                outcome['error'] = e

        worker = threading.Thread(target=run, daemon=True)
        worker.start()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert isinstance(outcome.get('error'), requests.HTTPError)

        # The retrying tile stops at its next attempt
        time.sleep(0.2)
        calls = session.calls.count(stuck_url)
        time.sleep(0.2)
        assert session.calls.count(stuck_url) == calls

    def test_invalid_resolution_no_requests(self, session, downloader):
        with pytest.raises(InvalidArgumentError):
            downloader.fetch_tiles_concurrent(6, 8, TIMESTAMP, max_workers=2)
        assert session.calls == []


class TestSession:
    """Tests for session lifecycle."""

    def test_context_manager_closes(self, session):
        with TileDownloader(DownloaderConfig(base_url=BASE_URL), session=session):
            pass
        assert session.closed
