"""Per-image editing sessions.

An ``EditSession`` owns everything needed to edit one project item: the loaded
image (native and preview buffers), adjustment settings, the filter stack, the
paint overlay and the overlay element list. Commits render at native
resolution on the exporter's worker, upload the encoded bytes and record a new
version. Any failure leaves the editing state exactly as it was.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

from PIL import Image

from .config import SETTINGS, StudioSettings
from .errors import CommitFailure, StudioError
from .processing.adjustments import AdjustmentSettings
from .processing.buffer import PixelBuffer
from .processing.geometry import CropRotate, apply_crop_rotate
from .processing.overlay import OverlayCompositor, composite_overlays
from .processing.paint import PaintOverlayEngine, PaintTool, export_mask, export_merged_overlay, pointer_to_pixel
from .processing.render import FullResExporter, PreviewRenderer, encode, render_edits
from .processing.source import ImageRef, LoadedImage, RasterSource, preview_size
from .processing.stack import FilterStack

log = logging.getLogger(__name__)


class StudioApi(Protocol):
    def upload(self, data: bytes, filename: str = ...) -> str: ...

    def add_version(self, item_id: str, url: str) -> int: ...

    def remove_version(self, item_id: str, number: int) -> None: ...

    def create_inpaint_job(self, prompt: str, image_ref: str, mask_ref: str) -> str: ...


class EditMode(str, Enum):
    ADJUST = "adjust"
    FILTERS = "filters"
    PAINT = "paint"
    INPAINT = "inpaint"
    OVERLAYS = "overlays"
    OVERLAY = "overlay"
    CROP_ROTATE = "crop_rotate"


@dataclass(frozen=True)
class Version:
    number: int
    url: str

    def to_dict(self) -> dict:
        return {"number": self.number, "url": self.url}


@dataclass(frozen=True)
class InpaintJob:
    job_id: str
    image_url: str
    mask_url: str

    def to_dict(self) -> dict:
        return {"job_id": self.job_id, "image_url": self.image_url, "mask_url": self.mask_url}


CommitResult = Union[Version, InpaintJob]


class EditSession:
    def __init__(
        self,
        item_id: str,
        source_ref: str,
        api: StudioApi,
        raster_source: RasterSource | None = None,
        exporter: FullResExporter | None = None,
        settings: StudioSettings = SETTINGS,
        versions: Sequence[Version] = (),
    ) -> None:
        self.id = str(uuid.uuid4())
        self.item_id = item_id
        self.api = api
        self.settings = settings
        self.source = raster_source or RasterSource(settings=settings)
        self.exporter = exporter or FullResExporter()
        self.lock = threading.RLock()
        self._commit_lock = threading.Lock()
        self.versions: List[Version] = list(versions) or [Version(0, source_ref)]
        self.current_ref = source_ref
        self._install(self.source.load(source_ref))

    # -- lifecycle ---------------------------------------------------------

    def _install(self, image: LoadedImage) -> None:
        self.image = image
        self.adjustments = AdjustmentSettings()
        self.filters = FilterStack()
        self.renderer = PreviewRenderer(image.preview)
        self.paint = PaintOverlayEngine(image.native, mask_threshold=self.settings.mask_threshold)
        self.overlays = OverlayCompositor(display_size=image.preview.size)

    def switch_image(self, ref: str) -> None:
        """Drop every tool state and reload from ``ref``."""

        image = self.source.load(ref)
        self._install(image)
        self.current_ref = ref

    def close(self) -> None:
        self.exporter.shutdown()

    # -- interactive path --------------------------------------------------

    def update_adjustments(self, payload: dict) -> AdjustmentSettings:
        self.adjustments = AdjustmentSettings.from_mapping(payload, base=self.adjustments)
        return self.adjustments

    def render_preview(self) -> PixelBuffer:
        return self.renderer.render(self.adjustments, self.filters)

    def render_overlay_preview(self) -> PixelBuffer:
        return composite_overlays(self.image.preview, self.overlays.elements, loader=self.open_bitmap, settings=self.settings)

    def open_bitmap(self, ref: str) -> Image.Image:
        return self.source.open_image(ref)

    def paint_stroke(
        self,
        points: Sequence[Tuple[float, float]],
        *,
        tool: PaintTool | str | None = None,
        brush_size: int | None = None,
        color: str | None = None,
        opacity: float | None = None,
        source: Optional[Tuple[float, float]] = None,
        display_size: Optional[Tuple[float, float]] = None,
    ) -> bool:
        """Apply one stroke; points are in native pixels unless ``display_size`` is given."""

        def to_pixel(point):
            if display_size is None:
                return int(point[0]), int(point[1])
            return pointer_to_pixel(point[0], point[1], display_size, self.paint.base.size)

        self.paint.configure(tool=tool, brush_size=brush_size, color=color, opacity=opacity)
        if source is not None:
            self.paint.set_source(*to_pixel(source))
        return self.paint.stroke([to_pixel(point) for point in points])

    # -- commits -----------------------------------------------------------

    def _produce(self, mode: EditMode, element_id: str | None, crop_rotate: CropRotate | None) -> Callable[[], PixelBuffer]:
        native = self.image.native
        if mode in (EditMode.ADJUST, EditMode.FILTERS):
            settings, entries = self.adjustments, tuple(self.filters)
            return lambda: render_edits(native, settings, entries)
        if mode is EditMode.PAINT:
            if self.paint.tool is PaintTool.HIGHLIGHT:
                raise ValueError("Highlight strokes are committed as an inpaint mask")
            overlay = self.paint.overlay.copy()
            return lambda: export_merged_overlay(native, overlay)
        if mode is EditMode.INPAINT:
            overlay = self.paint.overlay.copy()
            threshold = self.paint.mask_threshold
            return lambda: export_mask(overlay, threshold)
        if mode in (EditMode.OVERLAYS, EditMode.OVERLAY):
            if mode is EditMode.OVERLAY and element_id is None:
                raise ValueError("element_id is required for a single overlay commit")
            if mode is EditMode.OVERLAY:
                self.overlays.get(element_id)
            elements = self.overlays.elements
            target = element_id if mode is EditMode.OVERLAY else None
            return lambda: composite_overlays(
                native, elements, target_id=target, loader=self.open_bitmap, settings=self.settings
            )
        if mode is EditMode.CROP_ROTATE:
            transform = crop_rotate or CropRotate()
            return lambda: apply_crop_rotate(native, transform)
        raise ValueError(f"Unsupported commit mode: {mode}")

    def commit(
        self,
        mode: EditMode | str,
        *,
        element_id: str | None = None,
        prompt: str | None = None,
        crop_rotate: CropRotate | None = None,
    ) -> CommitResult:
        """Render, upload and record the edit of ``mode``.

        Blocks until the native pass finishes. ``lock`` is held only while the
        inputs are captured and while the result is installed, so previews and
        gestures keep running during the render and the upload. Commits of one
        session run one at a time. Tool state is only reset once every
        collaborator call has succeeded.
        """

        mode = EditMode(mode)
        if mode is EditMode.INPAINT and not (prompt or "").strip():
            raise ValueError("An inpaint commit needs a prompt")

        with self._commit_lock:
            with self.lock:
                produce = self._produce(mode, element_id, crop_rotate)
                image, base_ref = self.image, self.current_ref

            rendered: Dict[str, PixelBuffer] = {}

            def job() -> bytes:
                rendered["output"] = produce()
                return encode(rendered["output"])

            data = self.exporter.submit(job).result()
            try:
                url = self.api.upload(data, f"{self.item_id}-{mode.value}.png")
                if mode is EditMode.INPAINT:
                    job_id = self.api.create_inpaint_job(prompt or "", base_ref, url)
                    result: CommitResult = InpaintJob(job_id=job_id, image_url=base_ref, mask_url=url)
                else:
                    result = Version(self.api.add_version(self.item_id, url), url)
            except CommitFailure:
                log.exception("Commit of %s for item %s failed", mode.value, self.item_id)
                raise
            except StudioError as exc:
                log.exception("Commit of %s for item %s failed", mode.value, self.item_id)
                raise CommitFailure(str(exc)) from exc

            with self.lock:
                if self.image is image:
                    self._after_commit(mode, result, rendered["output"], element_id)
                else:
                    # switch_image ran meanwhile; the version is recorded but the new image stays.
                    log.warning("Image of session %s changed during a %s commit", self.id, mode.value)
                    if isinstance(result, Version):
                        self.versions.append(result)
        log.info("Committed %s for item %s: %s", mode.value, self.item_id, result)
        return result

    def _after_commit(self, mode: EditMode, result: CommitResult, output: PixelBuffer, element_id: str | None) -> None:
        if isinstance(result, InpaintJob):
            self.paint.clear()
            return

        # The output becomes the new base. State of the committed mode is
        # dropped; the other tools carry over onto the new base.
        self.versions.append(result)
        adjustments, entries = self.adjustments, self.filters.entries
        paint = self.paint
        if mode is EditMode.OVERLAYS:
            elements = ()
        elif mode is EditMode.OVERLAY:
            elements = tuple(e for e in self.overlays.elements if e.id != element_id)
        else:
            elements = self.overlays.elements

        target = preview_size(output.width, output.height, self.settings.preview_bounds)
        preview = output.to_image().resize(target, Image.Resampling.LANCZOS)
        self._install(LoadedImage(ref=result.url, native=output, preview=PixelBuffer.from_image(preview)))
        self.current_ref = result.url

        if mode not in (EditMode.ADJUST, EditMode.FILTERS):
            self.adjustments = adjustments
            self.filters = FilterStack(entries)
        if mode is not EditMode.PAINT and paint.overlay.size == output.size:
            paint.base = output
            self.paint = paint
        for element in elements:
            self.overlays.add(element)

    def remove_version(self, number: int) -> None:
        if number < 1:
            raise ValueError("The original image cannot be removed")
        if not any(v.number == number for v in self.versions):
            raise KeyError(number)
        self.api.remove_version(self.item_id, number)
        self.versions = [v for v in self.versions if v.number != number]

    def summary(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "current": self.current_ref,
            "native_size": list(self.image.native.size),
            "preview_size": list(self.image.preview.size),
            "adjustments": self.adjustments.to_dict(),
            "filters": self.filters.to_list(),
            "overlays": [element.to_dict() for element in self.overlays.elements],
            "paint": {"tool": self.paint.tool.value, "has_paint": self.paint.has_paint},
            "versions": [v.to_dict() for v in self.versions],
        }


SessionFactory = Callable[[str, str], EditSession]


class SessionRegistry:
    """In-process map of open sessions; nothing outlives the process.

    Sessions left untouched for ``session_ttl`` seconds are closed, and
    opening one past ``max_sessions`` closes the least recently used. A TTL or
    cap of zero or less switches that bound off.
    """

    def __init__(
        self,
        factory: SessionFactory,
        settings: StudioSettings = SETTINGS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self.settings = settings
        self._clock = clock
        self._sessions: Dict[str, EditSession] = {}
        self._touched: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _pop(self, session_id: str) -> EditSession:
        self._touched.pop(session_id, None)
        return self._sessions.pop(session_id)

    def _expire(self, now: float) -> List[EditSession]:
        ttl = self.settings.session_ttl
        if ttl <= 0:
            return []
        stale = [sid for sid, touched in self._touched.items() if now - touched > ttl]
        return [self._pop(sid) for sid in stale]

    def _close_evicted(self, evicted: List[EditSession]) -> None:
        for session in evicted:
            log.info("Closing idle session %s for item %s", session.id, session.item_id)
            session.close()

    def open(self, item_id: str, source_ref: ImageRef) -> EditSession:
        session = self._factory(item_id, source_ref)
        with self._lock:
            now = self._clock()
            evicted = self._expire(now)
            cap = self.settings.max_sessions
            while cap > 0 and len(self._sessions) >= cap:
                oldest = min(self._touched, key=self._touched.__getitem__)
                evicted.append(self._pop(oldest))
            self._sessions[session.id] = session
            self._touched[session.id] = now
        self._close_evicted(evicted)
        return session

    def get(self, session_id: str) -> EditSession:
        with self._lock:
            now = self._clock()
            evicted = self._expire(now)
            session = self._sessions.get(session_id)
            if session is not None:
                self._touched[session_id] = now
        self._close_evicted(evicted)
        if session is None:
            raise KeyError(session_id)
        return session

    def close(self, session_id: str) -> None:
        with self._lock:
            session = self._pop(session_id)
        session.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
