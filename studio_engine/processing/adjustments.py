from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Mapping

import numpy as np

from .buffer import PixelBuffer, luminance, to_channel

MID_GRAY = 128.0

SHARPEN_KERNEL = np.array(
    [
        [0, -1, 0],
        [-1, 5, -1],
        [0, -1, 0],
    ],
    dtype=np.float64,
)
BOX_KERNEL = np.ones((3, 3), dtype=np.float64) / 9.0

# Slider limits of the studio UI; temperature and tint are signed.
_RANGES = {
    "brightness": (0.0, 200.0),
    "contrast": (0.0, 200.0),
    "saturation": (0.0, 200.0),
    "sharpness": (0.0, 200.0),
    "temperature": (-100.0, 100.0),
    "tint": (-100.0, 100.0),
    "highlights": (0.0, 200.0),
    "shadows": (0.0, 200.0),
    "vibrance": (0.0, 200.0),
}


@dataclass(frozen=True)
class AdjustmentSettings:
    brightness: float = 100
    contrast: float = 100
    saturation: float = 100
    sharpness: float = 100
    temperature: float = 0
    tint: float = 0
    highlights: float = 100
    shadows: float = 100
    vibrance: float = 100

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], base: "AdjustmentSettings | None" = None) -> "AdjustmentSettings":
        """Build settings from a (partial) mapping, ignoring unknown keys.

        Raises ``ValueError`` when a known key carries a non-numeric value.
        """

        current = base or cls()
        updates = {}
        for field in fields(cls):
            if field.name in payload:
                try:
                    updates[field.name] = float(payload[field.name])
                except (TypeError, ValueError):
                    raise ValueError(f"{field.name} must be a number") from None
        return replace(current, **updates).clamped()

    def clamped(self) -> "AdjustmentSettings":
        values = {}
        for name, (low, high) in _RANGES.items():
            values[name] = min(high, max(low, getattr(self, name)))
        return replace(self, **values)

    @property
    def is_neutral(self) -> bool:
        return self == AdjustmentSettings()

    def to_dict(self) -> dict:
        return asdict(self)


def _interior_convolve(samples: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """3x3 correlation over the interior pixels of an (h, w, c) float array."""

    height, width = samples.shape[:2]
    acc = np.zeros((height - 2, width - 2, samples.shape[2]), dtype=np.float64)
    for dy in range(3):
        for dx in range(3):
            weight = kernel[dy, dx]
            if weight:
                acc += weight * samples[dy : height - 2 + dy, dx : width - 2 + dx]
    return acc


def apply_light(buffer: PixelBuffer, brightness: float, contrast: float, saturation: float) -> PixelBuffer:
    """Brightness, contrast and saturation as one multiplicative pass."""

    rgb = buffer.data[..., :3].astype(np.float64)
    rgb = np.clip(rgb * (brightness / 100.0), 0, 255)
    rgb = np.clip((rgb - MID_GRAY) * (contrast / 100.0) + MID_GRAY, 0, 255)
    gray = luminance(rgb)[..., None]
    rgb = gray + (rgb - gray) * (saturation / 100.0)
    out = buffer.copy()
    out.data[..., :3] = to_channel(rgb)
    return out


def sharpen(buffer: PixelBuffer, amount: float) -> PixelBuffer:
    out = buffer.copy()
    if buffer.width < 3 or buffer.height < 3 or amount <= 0:
        return out
    samples = buffer.data.astype(np.float64)
    original = samples[1:-1, 1:-1]
    convolved = _interior_convolve(samples, SHARPEN_KERNEL)
    out.data[1:-1, 1:-1] = to_channel(original + (convolved - original) * amount)
    return out


def box_blur(buffer: PixelBuffer, amount: float) -> PixelBuffer:
    out = buffer.copy()
    if buffer.width < 3 or buffer.height < 3 or amount <= 0:
        return out
    samples = buffer.data.astype(np.float64)
    original = samples[1:-1, 1:-1]
    mean = _interior_convolve(samples, BOX_KERNEL)
    out.data[1:-1, 1:-1] = to_channel(original * (1 - amount) + mean * amount)
    return out


def apply_sharpness(buffer: PixelBuffer, sharpness: float) -> PixelBuffer:
    if sharpness > 100:
        return sharpen(buffer, (sharpness - 100) / 100.0)
    if sharpness < 100:
        return box_blur(buffer, (100 - sharpness) / 100.0)
    return buffer.copy()


def _scale_channels(buffer: PixelBuffer, red: float, green: float, blue: float) -> PixelBuffer:
    rgb = buffer.data[..., :3].astype(np.float64) * np.array([red, green, blue])
    out = buffer.copy()
    out.data[..., :3] = to_channel(rgb)
    return out


def apply_temperature(buffer: PixelBuffer, temperature: float) -> PixelBuffer:
    t = temperature / 100.0
    return _scale_channels(buffer, 1 + t * 0.5, 1.0, 1 - t * 0.5)


def apply_tint(buffer: PixelBuffer, tint: float) -> PixelBuffer:
    t = tint / 100.0
    return _scale_channels(buffer, 1 + t * 0.3, 1 - t * 0.4, 1 + t * 0.3)


def _rescale_luminance(buffer: PixelBuffer, factor: float, weight_of_bright: bool) -> PixelBuffer:
    rgb = buffer.data[..., :3].astype(np.float64)
    lum = luminance(rgb)
    weight = lum / 255.0 if weight_of_bright else 1.0 - lum / 255.0
    target = lum * (1 + (factor - 1) * weight)
    safe = np.where(lum > 1e-6, lum, 1.0)
    scale = np.where(lum > 1e-6, target / safe, 1.0)
    out = buffer.copy()
    out.data[..., :3] = to_channel(rgb * scale[..., None])
    return out


def apply_highlights(buffer: PixelBuffer, highlights: float) -> PixelBuffer:
    return _rescale_luminance(buffer, highlights / 100.0, weight_of_bright=True)


def apply_shadows(buffer: PixelBuffer, shadows: float) -> PixelBuffer:
    return _rescale_luminance(buffer, shadows / 100.0, weight_of_bright=False)


def apply_vibrance(buffer: PixelBuffer, vibrance: float) -> PixelBuffer:
    """Saturation boost that fades out for pixels that are already saturated."""

    rgb = buffer.data[..., :3].astype(np.float64)
    sat = (rgb.max(axis=-1) - rgb.min(axis=-1)) / 255.0
    boost = 1 + (vibrance / 100.0 - 1) * np.maximum(0.0, 1 - sat)
    avg = rgb.mean(axis=-1, keepdims=True)
    out = buffer.copy()
    out.data[..., :3] = to_channel(avg + (rgb - avg) * boost[..., None])
    return out


def apply_adjustments(buffer: PixelBuffer, settings: AdjustmentSettings) -> PixelBuffer:
    """Run the seven adjustment stages in their fixed order.

    Stages whose sliders sit at their neutral value are skipped; the input
    buffer is never modified.
    """

    out = buffer.copy()
    if (settings.brightness, settings.contrast, settings.saturation) != (100, 100, 100):
        out = apply_light(out, settings.brightness, settings.contrast, settings.saturation)
    if settings.sharpness != 100:
        out = apply_sharpness(out, settings.sharpness)
    if settings.temperature != 0:
        out = apply_temperature(out, settings.temperature)
    if settings.tint != 0:
        out = apply_tint(out, settings.tint)
    if settings.highlights != 100:
        out = apply_highlights(out, settings.highlights)
    if settings.shadows != 100:
        out = apply_shadows(out, settings.shadows)
    if settings.vibrance != 100:
        out = apply_vibrance(out, settings.vibrance)
    return out
