from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .buffer import PixelBuffer

QUARTER_TURNS = (0, 90, 180, 270)


@dataclass(frozen=True)
class CropRotate:
    """Clockwise quarter-turn followed by a crop.

    The crop rectangle is normalized to the *rotated* image: ``(x, y, w, h)``
    as fractions of its width and height.
    """

    rotation: int = 0
    crop: Tuple[float, float, float, float] = (0.0, 0.0, 1.0, 1.0)

    def __post_init__(self) -> None:
        if self.rotation % 360 not in QUARTER_TURNS:
            raise ValueError(f"rotation must be a multiple of 90, got {self.rotation}")
        object.__setattr__(self, "rotation", self.rotation % 360)

    @property
    def is_identity(self) -> bool:
        return self.rotation == 0 and self.crop == (0.0, 0.0, 1.0, 1.0)


def rotated_size(width: int, height: int, rotation: int) -> Tuple[int, int]:
    return (height, width) if rotation % 180 else (width, height)


def rotate_quarter(buffer: PixelBuffer, rotation: int) -> PixelBuffer:
    turns = (rotation % 360) // 90
    return PixelBuffer(np.rot90(buffer.data, k=-turns).copy())


def crop(buffer: PixelBuffer, x: int, y: int, width: int, height: int) -> PixelBuffer:
    """Cut a pixel rectangle, clamped to the buffer and at least 1x1."""

    width = max(1, min(int(width), buffer.width))
    height = max(1, min(int(height), buffer.height))
    x = max(0, min(int(x), buffer.width - width))
    y = max(0, min(int(y), buffer.height - height))
    return buffer.get_region(x, y, width, height)


def apply_crop_rotate(buffer: PixelBuffer, transform: CropRotate) -> PixelBuffer:
    rotated = rotate_quarter(buffer, transform.rotation)
    fx, fy, fw, fh = transform.crop
    return crop(
        rotated,
        round(fx * rotated.width),
        round(fy * rotated.height),
        round(fw * rotated.width),
        round(fh * rotated.height),
    )
