"""
Test helpers: in-memory PNG tiles and a fake HTTP session.
"""

import json
from datetime import datetime
from io import BytesIO
from unittest.mock import Mock

import requests
from PIL import Image

from himawari_downloader.grid import TileCoordinate, grid_coordinates, tile_path

BASE_URL = "http://himawari.test/img/D531106"
TIMESTAMP = datetime(2021, 1, 1, 0, 0, 0)


def tile_color(coordinate):
    """Distinct RGB colour for each grid position."""
    column, row = coordinate
    return (10 + column * 40, 10 + row * 40, 200)


def make_png(size, color=(255, 0, 0), mode='RGB'):
    buf = BytesIO()
    Image.new(mode, (size, size), color).save(buf, format='PNG')
    return buf.getvalue()


def make_response(content=b'', status=200):
    response = Mock()
    response.content = content
    response.status_code = status
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    else:
        response.raise_for_status.return_value = None
    return response


class FakeSession:
    """
    Stands in for requests.Session, routing GETs by URL.

    A route is a response, an exception, or a list of them served in turn
    (the last entry repeats).
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.timeouts = []
        self.headers = {}
        self.closed = False

    def get(self, url, timeout=None):
        self.calls.append(url)
        self.timeouts.append(timeout)
        if url not in self.routes:
            return make_response(status=404)
        outcome = self.routes[url]
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


def tile_url(resolution, chunk_size, coordinate, timestamp=TIMESTAMP):
    return f"{BASE_URL}/{tile_path(resolution, chunk_size, timestamp, TileCoordinate(*coordinate))}"


def grid_routes(resolution, chunk_size, timestamp=TIMESTAMP):
    """Routes serving a full grid of coloured tiles."""
    return {
        tile_url(resolution, chunk_size, c, timestamp): make_response(make_png(chunk_size, tile_color(c)))
        for c in grid_coordinates(resolution)
    }


def latest_route(date="2021-01-01 00:00:00"):
    body = json.dumps({"date": date, "file": "PI_H08_20210101_0000_TRC_FLDK_R10_PGPFD.png"})
    return {f"{BASE_URL}/latest.json": make_response(body.encode())}
