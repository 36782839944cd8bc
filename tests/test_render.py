import io

from PIL import Image
import pytest

from studio_engine.errors import EncodeFailure
from studio_engine.processing.adjustments import AdjustmentSettings, apply_adjustments
from studio_engine.processing.buffer import PixelBuffer
from studio_engine.processing.render import FullResExporter, PreviewRenderer, encode
from studio_engine.processing.stack import FilterStack


def test_encode_writes_png():
    buf = PixelBuffer.blank(3, 2, (1, 2, 3, 4))

    data = encode(buf)

    assert data.startswith(b"\x89PNG")
    assert PixelBuffer.from_image(Image.open(io.BytesIO(data))) == buf


def test_encode_failure_is_reported():
    with pytest.raises(EncodeFailure):
        encode(PixelBuffer.blank(1, 1), format="NOT-A-FORMAT")


def test_preview_renderer_recomputes_from_source():
    preview = PixelBuffer.blank(4, 4, (100, 100, 100, 255))
    renderer = PreviewRenderer(preview)
    stack = FilterStack()
    stack.add("invert")

    first = renderer.render(AdjustmentSettings(), stack)
    second = renderer.render(AdjustmentSettings(), stack)

    assert first == second
    assert first.get_pixel(0, 0) == (155, 155, 155, 255)
    assert preview.get_pixel(0, 0) == (100, 100, 100, 255)


def test_full_res_exporter_runs_off_thread():
    native = PixelBuffer.blank(8, 8, (10, 20, 30, 255))
    exporter = FullResExporter()
    settings = AdjustmentSettings(brightness=150)

    future = exporter.export(native, settings, [])

    assert future.result(timeout=10) == encode(apply_adjustments(native, settings))
    exporter.shutdown()
