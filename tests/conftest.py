import pytest

from helpers import SOURCE_URL, FakeApi, FakeFetcher, png_bytes
from studio_engine.config import SETTINGS
from studio_engine.processing.source import RasterSource


@pytest.fixture
def fetcher():
    return FakeFetcher({SOURCE_URL: png_bytes()})


@pytest.fixture
def raster_source(fetcher):
    return RasterSource(fetcher=fetcher, settings=SETTINGS)


@pytest.fixture
def api():
    return FakeApi()
