"""Loading of the image being edited.

A reference is either a URL (fetched through ``SourceFetcher``), a ``data:``
URL or raw encoded bytes. Each load yields two buffers: the native-resolution
one used at commit time and a preview capped to the configured bounds.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import SETTINGS, StudioSettings
from ..errors import LoadFailure
from ..infrastructure.network import FETCHER, SourceFetcher
from .buffer import PixelBuffer

log = logging.getLogger(__name__)

ImageRef = Union[str, bytes]


def preview_size(width: int, height: int, bounds: Tuple[int, int]) -> Tuple[int, int]:
    """Fit ``width`` x ``height`` inside ``bounds`` keeping aspect; never upscale."""

    max_w, max_h = bounds
    scale = min(1.0, max_w / width, max_h / height)
    return max(1, round(width * scale)), max(1, round(height * scale))


def decode(data: bytes) -> Image.Image:
    """Decode encoded bytes into an upright RGBA image."""

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            upright = ImageOps.exif_transpose(img)
            rgba = upright.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise LoadFailure(f"Could not decode image: {exc}") from exc
    if rgba.width == 0 or rgba.height == 0:
        raise LoadFailure("Image has zero dimensions")
    return rgba


def _decode_data_url(ref: str) -> bytes:
    header, _, payload = ref.partition(",")
    if ";base64" not in header:
        raise LoadFailure("Only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise LoadFailure(f"Malformed data URL: {exc}") from exc


@dataclass(frozen=True)
class LoadedImage:
    ref: str
    native: PixelBuffer
    preview: PixelBuffer

    @property
    def native_size(self) -> Tuple[int, int]:
        return self.native.size

    @property
    def preview_scale(self) -> float:
        return self.preview.width / self.native.width


class RasterSource:
    def __init__(self, fetcher: SourceFetcher | None = None, settings: StudioSettings = SETTINGS) -> None:
        self.fetcher = fetcher or FETCHER
        self.settings = settings

    def read_bytes(self, ref: ImageRef) -> bytes:
        if isinstance(ref, (bytes, bytearray)):
            return bytes(ref)
        if ref.startswith("data:"):
            return _decode_data_url(ref)
        return self.fetcher.fetch(ref, timeout=self.settings.load_timeout)

    def open_image(self, ref: ImageRef) -> Image.Image:
        return decode(self.read_bytes(ref))

    def load(self, ref: ImageRef) -> LoadedImage:
        img = self.open_image(ref)
        preview = img
        target = preview_size(img.width, img.height, self.settings.preview_bounds)
        if target != img.size:
            preview = img.resize(target, Image.Resampling.LANCZOS)
        label = ref if isinstance(ref, str) and not ref.startswith("data:") else "<inline>"
        log.debug("Loaded %s at %dx%d (preview %dx%d)", label, img.width, img.height, *target)
        return LoadedImage(
            ref=label,
            native=PixelBuffer.from_image(img),
            preview=PixelBuffer.from_image(preview),
        )
