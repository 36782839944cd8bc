"""Raster editing components: buffers, adjustments, filters, paint and overlays."""

from .adjustments import AdjustmentSettings, apply_adjustments
from .buffer import PixelBuffer, luminance
from .filters import FILTERS, FilterKind, apply_filter, blend
from .geometry import CropRotate, apply_crop_rotate, crop, rotate_quarter
from .overlay import (
    ImageElement,
    OverlayCompositor,
    OverlayElement,
    TextElement,
    composite_overlays,
    element_from_dict,
    normalize_rotation,
)
from .paint import PaintOverlayEngine, PaintTool, export_mask, export_merged_overlay
from .render import FullResExporter, PreviewRenderer, encode, render_edits
from .source import LoadedImage, RasterSource, decode, preview_size
from .stack import FilterStack, FilterStackEntry, apply_filter_stack

__all__ = [
    "AdjustmentSettings",
    "apply_adjustments",
    "PixelBuffer",
    "luminance",
    "FILTERS",
    "FilterKind",
    "apply_filter",
    "blend",
    "CropRotate",
    "apply_crop_rotate",
    "crop",
    "rotate_quarter",
    "ImageElement",
    "OverlayCompositor",
    "OverlayElement",
    "TextElement",
    "composite_overlays",
    "element_from_dict",
    "normalize_rotation",
    "PaintOverlayEngine",
    "PaintTool",
    "export_mask",
    "export_merged_overlay",
    "FullResExporter",
    "PreviewRenderer",
    "encode",
    "render_edits",
    "LoadedImage",
    "RasterSource",
    "decode",
    "preview_size",
    "FilterStack",
    "FilterStackEntry",
    "apply_filter_stack",
]
