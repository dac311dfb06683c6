"""
Endpoint description for the Himawari full-disk image service.

Builds the metadata and tile URLs; the downloader owns the HTTP session.
"""

from typing import Optional

from .grid import GridRequest, TileCoordinate


class HimawariDataSource:
    """
    Himawari-8/9 full-disk true colour imagery published by NICT.

    Tiles are served as ``{base}/{resolution}d/{chunk_size}/YYYY/MM/DD/HHMMSS_{col}_{row}.png``
    and the capture time of the newest complete grid as ``{base}/latest.json``.
    """

    BASE_URL = "http://himawari8-dl.nict.go.jp/himawari8/img/D531106"
    METADATA_FILE = "latest.json"
    TILE_FORMAT = "png"
    USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

    def __init__(self, base_url: Optional[str] = None):
        """
        Initialize the data source.

        Args:
            base_url: Service root, defaults to the public NICT endpoint
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    def get_name(self) -> str:
        return "himawari"

    def get_description(self) -> str:
        return f"Himawari full disk true colour ({self.base_url})"

    def get_metadata_url(self) -> str:
        """URL of the JSON document naming the latest capture time."""
        return f"{self.base_url}/{self.METADATA_FILE}"

    def get_tile_url(self, request: GridRequest, coordinate: TileCoordinate) -> str:
        """
        Build the URL of one tile.

        Args:
            request: Grid request; its timestamp is used without zone conversion
            coordinate: Tile grid position

        Returns:
            URL to fetch the tile
        """
        return f"{self.base_url}/{request.tile_path(coordinate)}"

    def __repr__(self) -> str:
        return f"HimawariDataSource(base_url={self.base_url!r})"
