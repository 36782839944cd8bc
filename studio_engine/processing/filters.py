from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Tuple

import numpy as np

from .buffer import PixelBuffer, luminance, to_channel

MID_GRAY = 128.0

SEPIA_MATRIX = np.array(
    [
        [1.07, 0.74, 0.43],
        [0.97, 0.86, 0.34],
        [0.82, 0.72, 0.56],
    ]
)
VINTAGE_MATRIX = np.array(
    [
        [1.1, 0.6, 0.3],
        [0.85, 0.95, 0.5],
        [0.6, 0.7, 0.9],
    ]
)
VINTAGE_FADE = 0.92
VINTAGE_LIFT = np.array([0.1, 0.08, 0.06]) * 255 * (1 - VINTAGE_FADE)

VIGNETTE_STRENGTH = 1.2
FADE_TO_BLACK_REACH = 0.85
BLUR_RADIUS = 2
MAX_BLUR_RADIUS = 5


class FilterKind(str, Enum):
    GRAYSCALE = "grayscale"
    SEPIA = "sepia"
    VINTAGE = "vintage"
    WARM = "warm"
    COOL = "cool"
    VIVID = "vivid"
    HIGH_CONTRAST = "highContrast"
    VIGNETTE = "vignette"
    FADE = "fade"
    NOIR = "noir"
    MATTE = "matte"
    INVERT = "invert"
    BLUR = "blur"
    FADE_TO_BLACK = "fadeToBlack"
    DRAMATIC = "dramatic"


RgbTransform = Callable[[np.ndarray], np.ndarray]


def _map_rgb(buffer: PixelBuffer, transform: RgbTransform) -> PixelBuffer:
    out = buffer.copy()
    out.data[..., :3] = transform(buffer.data[..., :3].astype(np.float64))
    return out


def _contrast(rgb: np.ndarray, factor: float) -> np.ndarray:
    return to_channel((rgb - MID_GRAY) * factor + MID_GRAY)


def _saturate_around_mean(rgb: np.ndarray, factor) -> np.ndarray:
    avg = rgb.mean(axis=-1, keepdims=True)
    return to_channel(avg + (rgb - avg) * factor)


def _radial_distance(width: int, height: int) -> Tuple[np.ndarray, float]:
    cx, cy = width / 2.0, height / 2.0
    ys, xs = np.mgrid[0:height, 0:width]
    dist = np.sqrt((xs - cx) ** 2 + (ys - cy) ** 2)
    return dist, float(np.sqrt(cx * cx + cy * cy))


def _attenuate(buffer: PixelBuffer, factor: np.ndarray) -> PixelBuffer:
    return _map_rgb(buffer, lambda rgb: to_channel(rgb * factor[..., None]))


def grayscale(buffer: PixelBuffer) -> PixelBuffer:
    def transform(rgb: np.ndarray) -> np.ndarray:
        lum = to_channel(luminance(rgb))
        return np.repeat(lum[..., None], 3, axis=-1)

    return _map_rgb(buffer, transform)


def sepia(buffer: PixelBuffer) -> PixelBuffer:
    return _map_rgb(buffer, lambda rgb: to_channel(rgb @ SEPIA_MATRIX.T))


def vintage(buffer: PixelBuffer) -> PixelBuffer:
    def transform(rgb: np.ndarray) -> np.ndarray:
        mixed = to_channel(rgb @ VINTAGE_MATRIX.T).astype(np.float64)
        return to_channel(mixed * VINTAGE_FADE + VINTAGE_LIFT)

    return _map_rgb(buffer, transform)


def warm(buffer: PixelBuffer) -> PixelBuffer:
    return _map_rgb(buffer, lambda rgb: to_channel(rgb * np.array([1.15, 1.0, 0.88])))


def cool(buffer: PixelBuffer) -> PixelBuffer:
    return _map_rgb(buffer, lambda rgb: to_channel(rgb * np.array([0.9, 1.0, 1.12])))


def vivid(buffer: PixelBuffer) -> PixelBuffer:
    def transform(rgb: np.ndarray) -> np.ndarray:
        high = rgb.max(axis=-1) / 255.0
        low = rgb.min(axis=-1) / 255.0
        sat = np.where(high > 0, (high - low) / np.where(high > 0, high, 1.0), 0.0)
        boost = 1 + 0.35 * sat
        return _saturate_around_mean(rgb, boost[..., None])

    return _map_rgb(buffer, transform)


def high_contrast(buffer: PixelBuffer) -> PixelBuffer:
    return _map_rgb(buffer, lambda rgb: _contrast(rgb, 1.4))


def vignette(buffer: PixelBuffer) -> PixelBuffer:
    dist, max_dist = _radial_distance(buffer.width, buffer.height)
    factor = 1 - np.minimum(1.0, dist / max_dist * VIGNETTE_STRENGTH)
    return _attenuate(buffer, factor)


def fade(buffer: PixelBuffer) -> PixelBuffer:
    return _map_rgb(buffer, lambda rgb: to_channel((rgb - MID_GRAY) * 0.88 + MID_GRAY + 18))


def noir(buffer: PixelBuffer) -> PixelBuffer:
    gray = grayscale(buffer)
    return _map_rgb(gray, lambda rgb: _contrast(rgb, 1.5))


def matte(buffer: PixelBuffer) -> PixelBuffer:
    def transform(rgb: np.ndarray) -> np.ndarray:
        muted = _saturate_around_mean(rgb, 0.5).astype(np.float64)
        return to_channel(muted + 12)

    return _map_rgb(buffer, transform)


def invert(buffer: PixelBuffer) -> PixelBuffer:
    out = buffer.copy()
    out.data[..., :3] = 255 - buffer.data[..., :3]
    return out


def blur(buffer: PixelBuffer, radius: int = BLUR_RADIUS) -> PixelBuffer:
    """Box blur of the color channels; a ``radius`` wide border is left as is."""

    r = min(max(1, int(radius)), MAX_BLUR_RADIUS)
    out = buffer.copy()
    height, width = buffer.height, buffer.width
    if width <= 2 * r or height <= 2 * r:
        return out
    rgb = buffer.data[..., :3].astype(np.float64)
    acc = np.zeros((height - 2 * r, width - 2 * r, 3), dtype=np.float64)
    for dy in range(2 * r + 1):
        for dx in range(2 * r + 1):
            acc += rgb[dy : height - 2 * r + dy, dx : width - 2 * r + dx]
    out.data[r : height - r, r : width - r, :3] = to_channel(acc / (2 * r + 1) ** 2)
    return out


def fade_to_black(buffer: PixelBuffer) -> PixelBuffer:
    dist, max_dist = _radial_distance(buffer.width, buffer.height)
    factor = np.maximum(0.0, 1 - dist / (max_dist * FADE_TO_BLACK_REACH))
    return _attenuate(buffer, factor)


def dramatic(buffer: PixelBuffer) -> PixelBuffer:
    def transform(rgb: np.ndarray) -> np.ndarray:
        contrasted = _contrast(rgb, 1.25).astype(np.float64)
        return _saturate_around_mean(contrasted, 1.15)

    return _map_rgb(buffer, transform)


FILTERS: Dict[FilterKind, Callable[[PixelBuffer], PixelBuffer]] = {
    FilterKind.GRAYSCALE: grayscale,
    FilterKind.SEPIA: sepia,
    FilterKind.VINTAGE: vintage,
    FilterKind.WARM: warm,
    FilterKind.COOL: cool,
    FilterKind.VIVID: vivid,
    FilterKind.HIGH_CONTRAST: high_contrast,
    FilterKind.VIGNETTE: vignette,
    FilterKind.FADE: fade,
    FilterKind.NOIR: noir,
    FilterKind.MATTE: matte,
    FilterKind.INVERT: invert,
    FilterKind.BLUR: blur,
    FilterKind.FADE_TO_BLACK: fade_to_black,
    FilterKind.DRAMATIC: dramatic,
}


def apply_filter(buffer: PixelBuffer, kind: FilterKind) -> PixelBuffer:
    return FILTERS[FilterKind(kind)](buffer)


def blend(original: PixelBuffer, filtered: PixelBuffer, amount: float) -> PixelBuffer:
    """Linear interpolation ``original * (1 - a) + filtered * a`` per channel."""

    t = min(1.0, max(0.0, amount))
    mixed = original.data.astype(np.float64) * (1 - t) + filtered.data.astype(np.float64) * t
    return PixelBuffer(to_channel(mixed))
