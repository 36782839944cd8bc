from __future__ import annotations

import io
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable

from ..errors import EncodeFailure
from .adjustments import AdjustmentSettings, apply_adjustments
from .buffer import PixelBuffer
from .stack import FilterStackEntry, apply_filter_stack

log = logging.getLogger(__name__)


def encode(buffer: PixelBuffer, format: str = "PNG") -> bytes:
    """Serialize ``buffer`` to an image container; failures are ``EncodeFailure``."""

    out = io.BytesIO()
    try:
        buffer.to_image().save(out, format, optimize=True)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeFailure(f"Could not encode {buffer!r} as {format}: {exc}") from exc
    return out.getvalue()


def render_edits(
    buffer: PixelBuffer,
    settings: AdjustmentSettings,
    entries: Iterable[FilterStackEntry],
) -> PixelBuffer:
    """Adjustments first, then the filter stack."""

    return apply_filter_stack(apply_adjustments(buffer, settings), entries)


class PreviewRenderer:
    """Recomputes the preview from the unmodified preview buffer on every call."""

    def __init__(self, preview: PixelBuffer) -> None:
        self.preview = preview

    def render(self, settings: AdjustmentSettings, entries: Iterable[FilterStackEntry]) -> PixelBuffer:
        return render_edits(self.preview, settings, entries)


class FullResExporter:
    """Runs native-resolution passes off the interactive path, one at a time."""

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="studio-export")

    def submit(self, job: Callable[[], bytes]) -> "Future[bytes]":
        return self._executor.submit(job)

    def export(
        self,
        native: PixelBuffer,
        settings: AdjustmentSettings,
        entries: Iterable[FilterStackEntry],
    ) -> "Future[bytes]":
        entries = tuple(entries)

        def job() -> bytes:
            log.debug("Rendering %r with %d filter(s)", native, len(entries))
            return encode(render_edits(native, settings, entries))

        return self.submit(job)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
