import pytest

from studio_engine.processing.buffer import PixelBuffer
from studio_engine.processing.filters import (
    FILTERS,
    FilterKind,
    apply_filter,
    blend,
    blur,
    fade_to_black,
    grayscale,
    sepia,
    vignette,
    vintage,
)
from studio_engine.processing.stack import FilterStack, FilterStackEntry, apply_filter_stack


def colored():
    buf = PixelBuffer.blank(6, 6, (60, 30, 10, 255))
    buf.set_pixel(3, 3, (200, 100, 50, 255))
    return buf


def test_every_filter_kind_is_registered():
    assert set(FILTERS) == set(FilterKind)


@pytest.mark.parametrize("kind", list(FilterKind))
def test_filters_keep_size_and_do_not_mutate(kind):
    buf = colored()
    before = buf.copy()

    out = apply_filter(buf, kind)

    assert out.size == buf.size
    assert buf == before


def test_grayscale_uses_luminance():
    out = grayscale(PixelBuffer.blank(1, 1, (60, 30, 10, 255)))

    assert out.get_pixel(0, 0) == (37, 37, 37, 255)


@pytest.mark.parametrize(
    "transform, expected",
    [
        (sepia, (224, 217, 210, 255)),
        (vintage, (186, 213, 204, 255)),
    ],
)
def test_channel_mixing_recipes(transform, expected):
    out = transform(PixelBuffer.blank(1, 1, (100, 100, 100, 255)))

    assert out.get_pixel(0, 0) == expected


@pytest.mark.parametrize(
    "transform, center, near, corner",
    [
        (vignette, 200, 115, 0),
        (fade_to_black, 200, 117, 0),
    ],
)
def test_radial_attenuation(transform, center, near, corner):
    out = transform(PixelBuffer.blank(4, 4, (200, 200, 200, 255)))

    assert out.get_pixel(2, 2) == (center, center, center, 255)
    assert out.get_pixel(1, 2) == (near, near, near, 255)
    assert out.get_pixel(0, 0) == (corner, corner, corner, 255)


def test_blur_averages_interior_and_keeps_border():
    buf = PixelBuffer.blank(6, 6, (0, 0, 0, 255))
    buf.set_pixel(2, 2, (250, 250, 250, 255))

    out = blur(buf)

    assert out.get_pixel(2, 2) == (10, 10, 10, 255)
    assert out.get_pixel(3, 3) == (10, 10, 10, 255)
    assert out.get_pixel(0, 0) == (0, 0, 0, 255)


def test_blend_endpoints():
    a = PixelBuffer.blank(1, 1, (0, 0, 0, 255))
    b = PixelBuffer.blank(1, 1, (100, 51, 255, 255))

    assert blend(a, b, 0) == a
    assert blend(a, b, 1) == b
    assert blend(a, b, 0.5).get_pixel(0, 0) == (50, 26, 128, 255)


def test_empty_or_zero_stack_is_noop():
    buf = colored()

    assert apply_filter_stack(buf, []) == buf
    assert apply_filter_stack(buf, [FilterStackEntry(FilterKind.SEPIA, 0), FilterStackEntry("invert", 0)]) == buf


def test_stack_order_matters():
    buf = colored()
    gray_then_sepia = [FilterStackEntry("grayscale", 100), FilterStackEntry("sepia", 50)]
    sepia_then_gray = [FilterStackEntry("sepia", 50), FilterStackEntry("grayscale", 100)]

    first = apply_filter_stack(buf, gray_then_sepia)
    second = apply_filter_stack(buf, sepia_then_gray)

    assert first.get_pixel(0, 0) == (60, 59, 58, 255)
    assert second.get_pixel(0, 0) == (62, 62, 62, 255)
    assert first != second


def test_entry_amount_is_clamped_and_kind_coerced():
    entry = FilterStackEntry("highContrast", 140)

    assert entry.kind is FilterKind.HIGH_CONTRAST
    assert entry.amount == 100


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        FilterStackEntry("lomo")


def test_filter_stack_editing():
    stack = FilterStack()
    first = stack.add("warm")
    second = stack.add("cool", 40)

    assert stack.move_up(first.id) is False
    assert stack.move_down(first.id) is True
    assert [e.id for e in stack] == [second.id, first.id]
    assert stack.move_down(first.id) is False

    stack.set_amount(second.id, 75)
    assert stack.get(second.id).amount == 75

    stack.remove(first.id)
    assert len(stack) == 1
    with pytest.raises(KeyError):
        stack.remove(first.id)


def test_non_numeric_amount_is_rejected():
    stack = FilterStack()
    entry = stack.add("sepia")

    with pytest.raises(ValueError):
        stack.add("warm", None)
    with pytest.raises(ValueError):
        stack.set_amount(entry.id, "half")


def test_pure_red_stack_order():
    red = PixelBuffer.blank(1, 1, (255, 0, 0, 255))

    gray = apply_filter_stack(red, [FilterStackEntry("grayscale", 100)])
    gray_then_sepia = apply_filter_stack(red, [FilterStackEntry("grayscale", 100), FilterStackEntry("sepia", 50)])
    sepia_then_gray = apply_filter_stack(red, [FilterStackEntry("sepia", 50), FilterStackEntry("grayscale", 100)])

    assert gray.get_pixel(0, 0) == (76, 76, 76, 255)
    assert gray_then_sepia.get_pixel(0, 0) == (123, 121, 118, 255)
    assert sepia_then_gray.get_pixel(0, 0) == (161, 161, 161, 255)
