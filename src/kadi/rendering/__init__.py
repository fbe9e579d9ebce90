"""
Rendering Package

Exports the document composer, the stamp overlay and the raster
capabilities they rely on.
"""

from .composer import (
    Composition,
    DocumentComposer,
    RenderError,
    RenderStage,
    render_document,
    render_with_deadline,
)
from .layout import (
    GeometryError,
    LayoutError,
    LayoutOverflowError,
    PageFlow,
    allocate_box,
    measure_wrapped_height,
    split_two_column,
    wrap_text,
)
from .numbers import format_amount, number_to_french
from .overlay import apply_stamp_to_pdf
from .qr import QrEmbedder, QrResult
from .stamp import StampRenderer, StampResult, StampStatus

__all__ = [
    "Composition",
    "DocumentComposer",
    "RenderError",
    "RenderStage",
    "render_document",
    "render_with_deadline",
    "GeometryError",
    "LayoutError",
    "LayoutOverflowError",
    "PageFlow",
    "allocate_box",
    "measure_wrapped_height",
    "split_two_column",
    "wrap_text",
    "format_amount",
    "number_to_french",
    "apply_stamp_to_pdf",
    "QrEmbedder",
    "QrResult",
    "StampRenderer",
    "StampResult",
    "StampStatus",
]
