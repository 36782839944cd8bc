from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np
from PIL import Image


Rgba = Tuple[int, int, int, int]


def to_channel(values: np.ndarray) -> np.ndarray:
    """Round half up and clamp float samples into the 8-bit channel range."""

    return np.clip(np.floor(values + 0.5), 0, 255).astype(np.uint8)


def luminance(rgb: np.ndarray) -> np.ndarray:
    return 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]


class PixelBuffer:
    """Width x height grid of RGBA samples stored row-major.

    The samples live in a ``(height, width, 4)`` ``uint8`` array so transforms
    can work on whole planes at once, while ``get_pixel``/``set_pixel`` and the
    region helpers keep the engine independent of any particular drawing API.
    """

    __slots__ = ("data",)

    def __init__(self, data: np.ndarray) -> None:
        if data.ndim != 3 or data.shape[2] != 4:
            raise ValueError(f"Expected an (h, w, 4) sample array, got shape {data.shape}")
        self.data = np.ascontiguousarray(data, dtype=np.uint8)

    @classmethod
    def blank(cls, width: int, height: int, color: Sequence[int] = (0, 0, 0, 0)) -> "PixelBuffer":
        data = np.empty((height, width, 4), dtype=np.uint8)
        data[...] = color
        return cls(data)

    @classmethod
    def from_image(cls, img: Image.Image) -> "PixelBuffer":
        return cls(np.array(img.convert("RGBA"), dtype=np.uint8))

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.data)

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def samples(self) -> np.ndarray:
        return self.data.reshape(-1)

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.data.copy())

    def get_pixel(self, x: int, y: int) -> Rgba:
        r, g, b, a = self.data[y, x]
        return int(r), int(g), int(b), int(a)

    def set_pixel(self, x: int, y: int, rgba: Sequence[int]) -> None:
        self.data[y, x] = rgba

    def get_region(self, x: int, y: int, width: int, height: int) -> "PixelBuffer":
        """Copy a rectangle; samples outside the buffer read as transparent black."""

        out = np.zeros((height, width, 4), dtype=np.uint8)
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + width), min(self.height, y + height)
        if x0 < x1 and y0 < y1:
            out[y0 - y : y1 - y, x0 - x : x1 - x] = self.data[y0:y1, x0:x1]
        return PixelBuffer(out)

    def put_region(self, region: "PixelBuffer", x: int, y: int) -> None:
        """Replace samples with ``region`` placed at ``(x, y)``, clipped to the buffer."""

        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + region.width), min(self.height, y + region.height)
        if x0 < x1 and y0 < y1:
            self.data[y0:y1, x0:x1] = region.data[y0 - y : y1 - y, x0 - x : x1 - x]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.data.shape == other.data.shape and bool(np.array_equal(self.data, other.data))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"
