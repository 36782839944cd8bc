import numpy as np
from PIL import Image

from studio_engine.processing.buffer import PixelBuffer, luminance, to_channel


def test_to_channel_rounds_half_up_and_clamps():
    values = np.array([-3.0, 0.49, 0.5, 1.5, 254.5, 300.0])

    assert to_channel(values).tolist() == [0, 0, 1, 2, 255, 255]


def test_luminance_weights():
    rgb = np.array([[255.0, 0.0, 0.0], [0.0, 255.0, 0.0], [0.0, 0.0, 255.0]])

    assert np.allclose(luminance(rgb), [0.299 * 255, 0.587 * 255, 0.114 * 255])


def test_from_image_converts_to_rgba():
    buf = PixelBuffer.from_image(Image.new("RGB", (3, 2), (10, 20, 30)))

    assert buf.size == (3, 2)
    assert buf.get_pixel(2, 1) == (10, 20, 30, 255)
    assert buf.samples.shape == (3 * 2 * 4,)


def test_get_region_reads_outside_as_transparent():
    buf = PixelBuffer.blank(2, 2, (9, 9, 9, 255))

    region = buf.get_region(-1, -1, 2, 2)

    assert region.get_pixel(0, 0) == (0, 0, 0, 0)
    assert region.get_pixel(1, 1) == (9, 9, 9, 255)


def test_put_region_is_clipped():
    buf = PixelBuffer.blank(3, 3)
    patch = PixelBuffer.blank(2, 2, (1, 2, 3, 4))

    buf.put_region(patch, 2, 2)

    assert buf.get_pixel(2, 2) == (1, 2, 3, 4)
    assert buf.get_pixel(1, 1) == (0, 0, 0, 0)


def test_equality_compares_dimensions_and_bytes():
    a = PixelBuffer.blank(2, 3, (5, 5, 5, 255))

    assert a == a.copy()
    assert a != PixelBuffer.blank(3, 2, (5, 5, 5, 255))
    changed = a.copy()
    changed.set_pixel(0, 0, (6, 5, 5, 255))
    assert a != changed
