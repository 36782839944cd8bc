"""Placement and rasterization of bitmap and text overlays.

Element geometry is stored normalized to the base image (centre position and
box size as fractions of width/height), so one element list composites the
same way onto the preview and the native-resolution buffer.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..config import SETTINGS, StudioSettings
from .buffer import PixelBuffer

log = logging.getLogger(__name__)

Vec = Tuple[float, float]
ImageLoader = Callable[[str], Image.Image]

MIN_SIZE = 0.05
MAX_SIZE = 0.8


def _new_id() -> str:
    return str(uuid.uuid4())


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def normalize_rotation(degrees: float) -> float:
    """Map an angle into the half-open interval (-180, 180]."""

    value = math.fmod(degrees, 360.0)
    if value > 180:
        value -= 360
    elif value <= -180:
        value += 360
    return value + 0.0


@dataclass(frozen=True)
class OverlayElement:
    id: str = field(default_factory=_new_id)
    pos: Vec = (0.5, 0.5)
    size: Vec = (0.2, 0.2)
    rotation: float = 0.0

    type = "element"

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["type"] = self.type
        return payload


@dataclass(frozen=True)
class ImageElement(OverlayElement):
    url: str = ""
    name: str = ""

    type = "image"


@dataclass(frozen=True)
class TextElement(OverlayElement):
    text: str = ""
    font_size: float = 0.05
    font_family: str = "sans-serif"
    color: str = "#ffffff"

    type = "text"


def element_from_dict(payload: Mapping) -> OverlayElement:
    """Build an element from its JSON form; raises ``ValueError`` on bad input."""

    kind = payload.get("type")
    common = {}
    if "id" in payload:
        common["id"] = str(payload["id"])
    if "pos" in payload:
        common["pos"] = vector(payload["pos"], "pos")
    if "size" in payload:
        common["size"] = vector(payload["size"], "size")
    if "rotation" in payload:
        common["rotation"] = normalize_rotation(number(payload["rotation"], "rotation"))
    if kind == "image":
        if not payload.get("url"):
            raise ValueError("image element requires a url")
        return ImageElement(url=str(payload["url"]), name=str(payload.get("name", "")), **common)
    if kind == "text":
        return TextElement(
            text=str(payload.get("text", "")),
            font_size=number(payload.get("font_size", 0.05), "font_size"),
            font_family=str(payload.get("font_family", "sans-serif")),
            color=str(payload.get("color", "#ffffff")),
            **common,
        )
    raise ValueError(f"Unknown overlay element type: {kind!r}")


def number(value, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number") from None


def vector(value, name: str) -> Vec:
    try:
        if isinstance(value, Mapping):
            keys = ("x", "y") if name == "pos" else ("w", "h")
            return float(value[keys[0]]), float(value[keys[1]])
        x, y = value
        return float(x), float(y)
    except (KeyError, TypeError, ValueError):
        raise ValueError(f"{name} must be an [x, y] pair or a mapping") from None


# ---------------------------------------------------------------------------
# Gestures
# ---------------------------------------------------------------------------


class GestureKind(Enum):
    DRAG = "drag"
    RESIZE = "resize"
    ROTATE = "rotate"


@dataclass(frozen=True)
class Gesture:
    kind: GestureKind
    element_id: str
    pointer: Vec
    pos: Vec
    size: Vec
    rotation: float
    pointer_angle: float = 0.0


class OverlayCompositor:
    """Element list plus a single active-gesture slot.

    Pointer coordinates are in the space of the display box the base image is
    shown in (``display_size``); deltas are converted to normalized units.
    """

    def __init__(self, display_size: Vec = (1.0, 1.0), elements: Iterable[OverlayElement] = ()) -> None:
        self.display_size = display_size
        self._elements: List[OverlayElement] = list(elements)
        self._gesture: Optional[Gesture] = None

    @property
    def elements(self) -> Tuple[OverlayElement, ...]:
        return tuple(self._elements)

    @property
    def gesture(self) -> Optional[Gesture]:
        return self._gesture

    @property
    def is_idle(self) -> bool:
        return self._gesture is None

    def _index(self, element_id: str) -> int:
        for index, element in enumerate(self._elements):
            if element.id == element_id:
                return index
        raise KeyError(element_id)

    def get(self, element_id: str) -> OverlayElement:
        return self._elements[self._index(element_id)]

    def add(self, element: OverlayElement) -> OverlayElement:
        self._elements.append(element)
        return element

    def update(self, element_id: str, **patch) -> OverlayElement:
        index = self._index(element_id)
        if "pos" in patch:
            x, y = patch["pos"]
            patch["pos"] = (_clamp(x, 0.0, 1.0), _clamp(y, 0.0, 1.0))
        if "size" in patch:
            w, h = patch["size"]
            patch["size"] = (_clamp(w, MIN_SIZE, MAX_SIZE), _clamp(h, MIN_SIZE, MAX_SIZE))
        if "rotation" in patch:
            patch["rotation"] = normalize_rotation(patch["rotation"])
        updated = replace(self._elements[index], **patch)
        self._elements[index] = updated
        return updated

    def remove(self, element_id: str) -> OverlayElement:
        if self._gesture and self._gesture.element_id == element_id:
            self.release()
        return self._elements.pop(self._index(element_id))

    def _pointer_angle(self, element: OverlayElement, pointer: Vec) -> float:
        box_w, box_h = self.display_size
        cx, cy = element.pos[0] * box_w, element.pos[1] * box_h
        return math.degrees(math.atan2(pointer[1] - cy, pointer[0] - cx))

    def _begin(self, kind: GestureKind, element_id: str, pointer: Vec) -> bool:
        if self._gesture is not None:
            return False
        element = self.get(element_id)
        angle = self._pointer_angle(element, pointer) if kind is GestureKind.ROTATE else 0.0
        self._gesture = Gesture(
            kind=kind,
            element_id=element_id,
            pointer=(float(pointer[0]), float(pointer[1])),
            pos=element.pos,
            size=element.size,
            rotation=element.rotation,
            pointer_angle=angle,
        )
        return True

    def begin_drag(self, element_id: str, pointer: Vec) -> bool:
        return self._begin(GestureKind.DRAG, element_id, pointer)

    def begin_resize(self, element_id: str, pointer: Vec) -> bool:
        return self._begin(GestureKind.RESIZE, element_id, pointer)

    def begin_rotate(self, element_id: str, pointer: Vec) -> bool:
        return self._begin(GestureKind.ROTATE, element_id, pointer)

    def pointer_move(self, pointer: Vec) -> Optional[OverlayElement]:
        gesture = self._gesture
        if gesture is None:
            return None
        box_w, box_h = self.display_size
        dx = (pointer[0] - gesture.pointer[0]) / box_w
        dy = (pointer[1] - gesture.pointer[1]) / box_h
        if gesture.kind is GestureKind.DRAG:
            return self.update(gesture.element_id, pos=(gesture.pos[0] + dx, gesture.pos[1] + dy))
        if gesture.kind is GestureKind.RESIZE:
            d = (dx + dy) / 2
            return self.update(gesture.element_id, size=(gesture.size[0] + d, gesture.size[1] + d))
        angle = self._pointer_angle(self.get(gesture.element_id), pointer)
        return self.update(gesture.element_id, rotation=gesture.rotation + angle - gesture.pointer_angle)

    def release(self) -> None:
        self._gesture = None

    def composite(
        self,
        buffer: PixelBuffer,
        target_id: Optional[str] = None,
        loader: Optional[ImageLoader] = None,
    ) -> PixelBuffer:
        return composite_overlays(buffer, self._elements, target_id=target_id, loader=loader)


# ---------------------------------------------------------------------------
# Rasterization
# ---------------------------------------------------------------------------


def _load_font(family: str, pixel_size: int, settings: StudioSettings) -> ImageFont.ImageFont:
    for candidate in (family, settings.default_font):
        try:
            return ImageFont.truetype(candidate, pixel_size)
        except OSError:
            continue
    return ImageFont.load_default(size=pixel_size)


def _render_image(element: ImageElement, base_size: Tuple[int, int], loader: ImageLoader) -> Image.Image:
    width = max(1, round(element.size[0] * base_size[0]))
    height = max(1, round(element.size[1] * base_size[1]))
    bitmap = loader(element.url).convert("RGBA")
    return bitmap.resize((width, height), Image.Resampling.LANCZOS)


def _render_text(element: TextElement, base_size: Tuple[int, int], settings: StudioSettings) -> Image.Image:
    pixel_size = max(1, round(element.font_size * base_size[1]))
    font = _load_font(element.font_family, pixel_size, settings)
    probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    left, top, right, bottom = probe.textbbox((0, 0), element.text, font=font, anchor="mm")
    # The layer centre is the text anchor, so size it symmetrically around it.
    width = 2 * math.ceil(max(-left, right, 0)) + 2
    height = 2 * math.ceil(max(-top, bottom, 0)) + 2
    layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    ImageDraw.Draw(layer).text((width / 2, height / 2), element.text, font=font, fill=element.color, anchor="mm")
    return layer


def _place(canvas: Image.Image, sprite: Image.Image, element: OverlayElement) -> Image.Image:
    if element.rotation:
        sprite = sprite.rotate(-element.rotation, resample=Image.Resampling.BICUBIC, expand=True)
    cx = element.pos[0] * canvas.width
    cy = element.pos[1] * canvas.height
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    layer.paste(sprite, (round(cx - sprite.width / 2), round(cy - sprite.height / 2)))
    return Image.alpha_composite(canvas, layer)


def composite_overlays(
    buffer: PixelBuffer,
    elements: Sequence[OverlayElement],
    target_id: Optional[str] = None,
    loader: Optional[ImageLoader] = None,
    settings: StudioSettings = SETTINGS,
) -> PixelBuffer:
    """Flatten overlay elements onto ``buffer`` in list order.

    With ``target_id`` only that element is drawn; ``KeyError`` if it is not in
    ``elements``.
    """

    if target_id is not None:
        elements = [element for element in elements if element.id == target_id]
        if not elements:
            raise KeyError(target_id)

    canvas = buffer.to_image()
    for element in elements:
        if isinstance(element, ImageElement):
            if loader is None:
                log.warning("Skipping image overlay %s: no bitmap loader", element.id)
                continue
            sprite = _render_image(element, canvas.size, loader)
        elif isinstance(element, TextElement):
            if not element.text:
                continue
            sprite = _render_text(element, canvas.size, settings)
        else:
            continue
        canvas = _place(canvas, sprite, element)
    return PixelBuffer.from_image(canvas)
