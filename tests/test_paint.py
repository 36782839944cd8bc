import numpy as np
import pytest

from studio_engine.processing.buffer import PixelBuffer
from studio_engine.processing.paint import (
    PaintOverlayEngine,
    PaintState,
    PaintTool,
    export_mask,
    export_merged_overlay,
    interpolate,
    pointer_to_pixel,
)


def gradient(width=20, height=20):
    data = np.zeros((height, width, 4), dtype=np.uint8)
    ys, xs = np.mgrid[0:height, 0:width]
    data[..., 0] = xs * 10
    data[..., 1] = ys * 10
    data[..., 3] = 255
    return PixelBuffer(data)


def test_interpolate_steps_two_pixels():
    assert list(interpolate((0, 0), (10, 0))) == [(2, 0), (4, 0), (6, 0), (8, 0), (10, 0)]
    assert list(interpolate((3, 3), (3, 3))) == [(3, 3)]


def test_pointer_to_pixel_scales_display_to_buffer():
    assert pointer_to_pixel(50, 25, (100, 50), (1000, 500)) == (500, 250)


@pytest.mark.parametrize("brush, radius", [(24, 12), (5, 2), (3, 2), (1, 2)])
def test_brush_radius(brush, radius):
    engine = PaintOverlayEngine(PixelBuffer.blank(4, 4), brush_size=brush)

    assert engine.radius == radius


def test_clone_without_source_is_ignored():
    engine = PaintOverlayEngine(gradient(), tool=PaintTool.CLONE)

    assert engine.pointer_down(10, 10) is False
    assert engine.state is PaintState.IDLE
    assert not engine.has_paint


def test_clone_tracks_offset_from_stroke_start():
    base = gradient()
    engine = PaintOverlayEngine(base, tool=PaintTool.CLONE, brush_size=4)
    engine.set_source(5, 5)

    assert engine.pointer_down(10, 10)
    assert engine.overlay.get_region(8, 8, 4, 4) == base.get_region(3, 3, 4, 4)

    engine.pointer_move(12, 10)
    assert engine.clone_sample_point(12, 10) == (7, 5)
    assert engine.overlay.get_region(10, 8, 4, 4) == base.get_region(5, 3, 4, 4)

    engine.pointer_up()
    assert engine.state is PaintState.IDLE


def test_colorize_stamps_opaque_color():
    engine = PaintOverlayEngine(PixelBuffer.blank(20, 20, (255, 255, 255, 255)), brush_size=6, colorize_color="#ff0000")

    engine.stroke([(10, 10)])

    assert engine.overlay.get_pixel(10, 10) == (255, 0, 0, 255)
    assert engine.overlay.get_pixel(0, 0) == (0, 0, 0, 0)


def test_highlight_is_translucent():
    engine = PaintOverlayEngine(
        PixelBuffer.blank(20, 20),
        tool=PaintTool.HIGHLIGHT,
        brush_size=6,
        highlight_color=(255, 235, 59),
        highlight_opacity=0.5,
    )

    engine.stroke([(10, 10)])

    assert engine.overlay.get_pixel(10, 10) == (255, 235, 59, 128)


def test_configure_only_between_strokes():
    engine = PaintOverlayEngine(PixelBuffer.blank(20, 20), brush_size=6)
    engine.pointer_down(5, 5)

    engine.configure(tool="highlight", brush_size=40)

    assert engine.tool is PaintTool.COLORIZE
    assert engine.brush_size == 6


def test_configure_rejects_non_numeric_brush_options():
    engine = PaintOverlayEngine(PixelBuffer.blank(20, 20), brush_size=6)

    with pytest.raises(ValueError):
        engine.configure(tool="highlight", brush_size=[4])
    with pytest.raises(ValueError):
        engine.configure(opacity="half")

    assert engine.tool is PaintTool.COLORIZE
    assert engine.brush_size == 6


def test_mask_marks_painted_quadrant():
    overlay = PixelBuffer.blank(4, 4)
    overlay.data[:2, :2] = (255, 235, 59, 128)

    mask = export_mask(overlay)

    assert mask.get_pixel(0, 0) == (255, 255, 255, 255)
    assert mask.get_pixel(1, 1) == (255, 255, 255, 255)
    assert mask.get_pixel(2, 0) == (0, 0, 0, 255)
    assert mask.get_pixel(3, 3) == (0, 0, 0, 255)


def test_mask_threshold_excludes_faint_alpha():
    overlay = PixelBuffer.blank(2, 1)
    overlay.set_pixel(0, 0, (255, 0, 0, 10))
    overlay.set_pixel(1, 0, (255, 0, 0, 11))

    mask = export_mask(overlay, threshold=10)

    assert mask.get_pixel(0, 0) == (0, 0, 0, 255)
    assert mask.get_pixel(1, 0) == (255, 255, 255, 255)


def test_export_merged_overlay_composites_over_base():
    base = PixelBuffer.blank(2, 1, (0, 0, 255, 255))
    overlay = PixelBuffer.blank(2, 1)
    overlay.set_pixel(0, 0, (255, 0, 0, 255))

    merged = export_merged_overlay(base, overlay)

    assert merged.get_pixel(0, 0) == (255, 0, 0, 255)
    assert merged.get_pixel(1, 0) == (0, 0, 255, 255)


def test_export_merged_overlay_requires_matching_size():
    with pytest.raises(ValueError):
        export_merged_overlay(PixelBuffer.blank(2, 2), PixelBuffer.blank(3, 2))
