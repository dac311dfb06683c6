"""
Shared fixtures.
"""

import pytest

from himawari_downloader.config import DownloaderConfig
from himawari_downloader.downloader import TileDownloader

from .helpers import BASE_URL, FakeSession


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def downloader(session):
    return TileDownloader(DownloaderConfig(base_url=BASE_URL), session=session)
