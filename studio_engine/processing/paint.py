"""Brush-based local edits painted onto a transparent overlay buffer.

The engine is an explicit ``IDLE -> DRAWING -> IDLE`` state machine driven by
pointer events expressed in base-image pixel coordinates. Moves are densified
to roughly 2 px steps so fast strokes stay continuous.
"""

from __future__ import annotations

import functools
import logging
import math
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor, ImageDraw

from ..config import SETTINGS
from .buffer import PixelBuffer, to_channel

log = logging.getLogger(__name__)

Point = Tuple[int, int]
Rgb = Tuple[int, int, int]

STEP_PX = 2
MIN_RADIUS = 2


class PaintTool(str, Enum):
    CLONE = "clone"
    COLORIZE = "colorize"
    HIGHLIGHT = "highlight"


class PaintState(Enum):
    IDLE = "idle"
    DRAWING = "drawing"


def parse_color(value: str | Sequence[int]) -> Rgb:
    if isinstance(value, str):
        rgb = ImageColor.getrgb(value)
    else:
        rgb = tuple(int(channel) for channel in value)
    return rgb[0], rgb[1], rgb[2]


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def pointer_to_pixel(x: float, y: float, display_size: Tuple[float, float], buffer_size: Tuple[int, int]) -> Point:
    """Map a pointer position on a scaled display of the image to a buffer pixel."""

    display_w, display_h = display_size
    width, height = buffer_size
    return int(math.floor(x * width / display_w)), int(math.floor(y * height / display_h))


def interpolate(start: Point, end: Point, step: int = STEP_PX) -> Iterable[Point]:
    """Points from just after ``start`` up to ``end``, about ``step`` px apart."""

    dx, dy = end[0] - start[0], end[1] - start[1]
    steps = max(1, int(math.hypot(dx, dy) // step))
    for i in range(1, steps + 1):
        t = i / steps
        yield _round(start[0] + dx * t), _round(start[1] + dy * t)


@functools.lru_cache(maxsize=32)
def _disc(radius: int) -> np.ndarray:
    size = 2 * radius + 1
    stamp = Image.new("L", (size, size), 0)
    ImageDraw.Draw(stamp).ellipse((0, 0, size - 1, size - 1), fill=255)
    return np.asarray(stamp) > 0


def export_merged_overlay(buffer: PixelBuffer, overlay: PixelBuffer) -> PixelBuffer:
    """Flatten ``overlay`` over ``buffer`` with source-over compositing."""

    if buffer.size != overlay.size:
        raise ValueError(f"Overlay size {overlay.size} does not match base size {buffer.size}")
    merged = Image.alpha_composite(buffer.to_image(), overlay.to_image())
    return PixelBuffer.from_image(merged)


def export_mask(overlay: PixelBuffer, threshold: int | None = None) -> PixelBuffer:
    """White where the overlay was painted (alpha above ``threshold``), black elsewhere."""

    limit = SETTINGS.mask_threshold if threshold is None else threshold
    touched = overlay.data[..., 3] > limit
    mask = np.zeros_like(overlay.data)
    mask[..., 3] = 255
    mask[touched, :3] = 255
    return PixelBuffer(mask)


class PaintOverlayEngine:
    def __init__(
        self,
        base: PixelBuffer,
        tool: PaintTool = PaintTool.COLORIZE,
        brush_size: int = 24,
        colorize_color: str | Sequence[int] = "#ff0000",
        highlight_color: str | Sequence[int] = "#ffeb3b",
        highlight_opacity: float = 0.5,
        mask_threshold: int | None = None,
    ) -> None:
        self.base = base
        self.overlay = PixelBuffer.blank(base.width, base.height)
        self.tool = PaintTool(tool)
        self.brush_size = brush_size
        self.colorize_color = parse_color(colorize_color)
        self.highlight_color = parse_color(highlight_color)
        self.highlight_opacity = highlight_opacity
        self.mask_threshold = SETTINGS.mask_threshold if mask_threshold is None else mask_threshold
        self.clone_source: Optional[Point] = None
        self._state = PaintState.IDLE
        self._last: Optional[Point] = None
        self._stroke_start: Optional[Point] = None

    @property
    def state(self) -> PaintState:
        return self._state

    @property
    def radius(self) -> int:
        return max(MIN_RADIUS, int(self.brush_size) // 2)

    @property
    def has_paint(self) -> bool:
        return bool(self.overlay.data[..., 3].any())

    def configure(
        self,
        *,
        tool: PaintTool | str | None = None,
        brush_size: int | None = None,
        color: str | Sequence[int] | None = None,
        opacity: float | None = None,
    ) -> None:
        """Change brush options; only allowed between strokes."""

        if self._state is not PaintState.IDLE:
            return
        try:
            size = None if brush_size is None else int(brush_size)
            alpha = None if opacity is None else float(opacity)
        except (TypeError, ValueError):
            raise ValueError("brush_size and opacity must be numbers") from None
        if tool is not None:
            self.tool = PaintTool(tool)
        if size is not None:
            self.brush_size = max(1, size)
        if color is not None:
            if self.tool is PaintTool.HIGHLIGHT:
                self.highlight_color = parse_color(color)
            else:
                self.colorize_color = parse_color(color)
        if alpha is not None:
            self.highlight_opacity = min(1.0, max(0.0, alpha))

    def set_source(self, x: int, y: int) -> None:
        self.clone_source = (int(x), int(y))

    def pointer_down(self, x: int, y: int) -> bool:
        if self._state is PaintState.DRAWING:
            return False
        if self.tool is PaintTool.CLONE and self.clone_source is None:
            log.debug("Clone stroke ignored: no source anchor set")
            return False
        point = (int(x), int(y))
        self._state = PaintState.DRAWING
        self._last = point
        self._stroke_start = point
        self.stamp(*point)
        return True

    def pointer_move(self, x: int, y: int) -> None:
        if self._state is not PaintState.DRAWING or self._last is None:
            return
        point = (int(x), int(y))
        for px, py in interpolate(self._last, point):
            self.stamp(px, py)
        self._last = point

    def pointer_up(self) -> None:
        self._state = PaintState.IDLE
        self._last = None
        self._stroke_start = None

    def stroke(self, points: Sequence[Point]) -> bool:
        """Replay a whole stroke: down on the first point, move through the rest, up."""

        if not points:
            return False
        if not self.pointer_down(*points[0]):
            return False
        for x, y in points[1:]:
            self.pointer_move(x, y)
        self.pointer_up()
        return True

    def stamp(self, x: int, y: int) -> None:
        if self.tool is PaintTool.CLONE:
            self._stamp_clone(x, y)
        elif self.tool is PaintTool.COLORIZE:
            self._stamp_colorize(x, y)
        else:
            self._stamp_highlight(x, y)

    def clone_sample_point(self, x: int, y: int) -> Optional[Point]:
        if self.clone_source is None or self._stroke_start is None:
            return None
        sx, sy = self.clone_source
        x0, y0 = self._stroke_start
        return sx + (x - x0), sy + (y - y0)

    def _stamp_clone(self, x: int, y: int) -> None:
        sample = self.clone_sample_point(x, y)
        if sample is None:
            return
        r = self.radius
        patch = self.base.get_region(sample[0] - r, sample[1] - r, 2 * r, 2 * r)
        self.overlay.put_region(patch, x - r, y - r)

    def _disc_window(self, x: int, y: int):
        r = self.radius
        disc = _disc(r)
        x0, y0 = max(0, x - r), max(0, y - r)
        x1, y1 = min(self.overlay.width, x + r + 1), min(self.overlay.height, y + r + 1)
        if x0 >= x1 or y0 >= y1:
            return None
        mask = disc[y0 - (y - r) : y1 - (y - r), x0 - (x - r) : x1 - (x - r)]
        return (slice(y0, y1), slice(x0, x1)), mask

    def _stamp_colorize(self, x: int, y: int) -> None:
        window = self._disc_window(x, y)
        if window is None:
            return
        (rows, cols), mask = window
        region = self.overlay.data[rows, cols].astype(np.float64)
        backdrop = region[..., :3]
        backdrop_alpha = region[..., 3:] / 255.0
        source = np.array(self.colorize_color, dtype=np.float64)
        color = source * (1 - backdrop_alpha) + backdrop_alpha * backdrop * source / 255.0
        painted = np.concatenate([to_channel(color), np.full(mask.shape + (1,), 255, np.uint8)], axis=-1)
        target = self.overlay.data[rows, cols]
        target[mask] = painted[mask]

    def _stamp_highlight(self, x: int, y: int) -> None:
        window = self._disc_window(x, y)
        if window is None:
            return
        (rows, cols), mask = window
        region = self.overlay.data[rows, cols].astype(np.float64)
        backdrop = region[..., :3]
        backdrop_alpha = region[..., 3:] / 255.0
        alpha = self.highlight_opacity
        source = np.array(self.highlight_color, dtype=np.float64)
        out_alpha = alpha + backdrop_alpha * (1 - alpha)
        safe_alpha = np.where(out_alpha > 0, out_alpha, 1.0)
        color = (source * alpha + backdrop * backdrop_alpha * (1 - alpha)) / safe_alpha
        painted = np.concatenate([to_channel(color), to_channel(out_alpha * 255)], axis=-1)
        target = self.overlay.data[rows, cols]
        target[mask] = painted[mask]

    def clear(self) -> None:
        self.pointer_up()
        self.overlay = PixelBuffer.blank(self.base.width, self.base.height)

    def export_merged(self) -> PixelBuffer:
        return export_merged_overlay(self.base, self.overlay)

    def export_mask(self) -> PixelBuffer:
        return export_mask(self.overlay, self.mask_threshold)
