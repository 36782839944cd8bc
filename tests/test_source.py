import base64
import io

import pytest
from PIL import Image

from helpers import SOURCE_URL, png_bytes
from studio_engine.errors import LoadFailure
from studio_engine.processing.source import RasterSource, decode, preview_size


@pytest.mark.parametrize(
    "size, expected",
    [
        ((1400, 900), (700, 450)),
        ((1400, 450), (700, 225)),
        ((300, 200), (300, 200)),
        ((700, 1800), (175, 450)),
    ],
)
def test_preview_size_fits_bounds_without_upscaling(size, expected):
    assert preview_size(*size, bounds=(700, 450)) == expected


def test_load_from_url_builds_native_and_preview(raster_source, fetcher):
    fetcher.images["https://cdn.example/big.png"] = png_bytes((1400, 900))

    loaded = raster_source.load("https://cdn.example/big.png")

    assert loaded.native.size == (1400, 900)
    assert loaded.preview.size == (700, 450)
    assert loaded.preview_scale == pytest.approx(0.5)


def test_load_from_bytes_and_data_url(raster_source):
    data = png_bytes((10, 5))
    data_url = "data:image/png;base64," + base64.b64encode(data).decode()

    assert raster_source.load(data).native.size == (10, 5)
    assert raster_source.load(data_url).native.get_pixel(0, 0) == (120, 80, 40, 255)


def test_load_converts_to_rgba():
    out = io.BytesIO()
    Image.new("L", (3, 3), 200).save(out, "PNG")

    img = decode(out.getvalue())

    assert img.mode == "RGBA"
    assert img.getpixel((1, 1)) == (200, 200, 200, 255)


def test_undecodable_bytes_fail_to_load(raster_source):
    with pytest.raises(LoadFailure):
        raster_source.load(b"definitely not an image")


def test_unreachable_reference_fails_to_load(raster_source):
    with pytest.raises(LoadFailure):
        raster_source.load("https://cdn.example/missing.png")


def test_url_references_go_through_fetcher(raster_source, fetcher):
    raster_source.load(SOURCE_URL)

    assert fetcher.requested == [SOURCE_URL]
