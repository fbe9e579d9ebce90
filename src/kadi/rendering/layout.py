"""
Layout primitives for fixed-size pages.

Geometry is expressed in points with `y` growing downward from the top of
the page; callers convert to the PDF bottom-left origin only when drawing.

- Text metrics: greedy word wrap and wrapped-height measurement using
  reportlab glyph widths
- Box allocation: deterministic top-down flow
- PageFlow: cursor tracking and page-break policy
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from reportlab.pdfbase import pdfmetrics

logger = logging.getLogger(__name__)

LEADING_FACTOR = 1.2
ELLIPSIS = "…"


class LayoutError(Exception):
    """Base class for layout failures that abort a render."""


class GeometryError(LayoutError):
    """Negative or otherwise invalid geometry, usually a configuration bug."""


class LayoutOverflowError(LayoutError):
    """An atomic block is taller than the usable height of a fresh page."""

    def __init__(self, label: str, height: float, usable: float):
        self.label = label
        self.height = height
        self.usable = usable
        super().__init__(
            f"Block '{label}' needs {height:.1f}pt but a page only offers {usable:.1f}pt"
        )


@dataclass(frozen=True)
class FontSpec:
    name: str
    size: float

    @property
    def line_height(self) -> float:
        return self.size * LEADING_FACTOR

    def width(self, text: str) -> float:
        return pdfmetrics.stringWidth(text, self.name, self.size)


@dataclass(frozen=True)
class Box:
    x: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True)
class PlacedBox(Box):
    page: int = 0
    label: str = ""

    def overlaps(self, other: "PlacedBox") -> bool:
        """True when both boxes share interior area on the same page (shared edges are fine)."""
        if self.page != other.page:
            return False
        eps = 1e-6
        return (
            self.x < other.right - eps and other.x < self.right - eps
            and self.top < other.bottom - eps and other.top < self.bottom - eps
        )


# ============================================================
# TEXT METRICS
# ============================================================

def _break_word(word: str, width: float, font: FontSpec) -> List[str]:
    """Split a word wider than `width` into chunks that fit (at least one char each)."""
    chunks: List[str] = []
    current = ""
    for ch in word:
        candidate = current + ch
        if current and font.width(candidate) > width:
            chunks.append(current)
            current = ch
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def wrap_text(text: Optional[str], width: float, font: FontSpec) -> List[str]:
    """
    Greedy word wrap.

    Args:
        text: Text to wrap; explicit newlines start new lines
        width: Available line width in points
        font: Font used for glyph metrics

    Returns:
        Wrapped lines (always at least one, possibly empty)
    """
    if width <= 0:
        raise GeometryError(f"Cannot wrap text into a non-positive width ({width})")

    lines: List[str] = []
    for paragraph in str(text or "").split("\n"):
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if font.width(candidate) <= width:
                current = candidate
                continue
            if current:
                lines.append(current)
                current = ""
            if font.width(word) <= width:
                current = word
            else:
                chunks = _break_word(word, width, font)
                lines.extend(chunks[:-1])
                current = chunks[-1]
        lines.append(current)

    return lines or [""]


def measure_wrapped_height(text: Optional[str], width: float, font: FontSpec) -> float:
    """Height of `text` wrapped at `width`; never less than one line."""
    return max(1, len(wrap_text(text, width, font))) * font.line_height


def fit_text(text: Optional[str], width: float, font: FontSpec) -> str:
    """Truncate a single line with an ellipsis so it fits `width`."""
    text = " ".join(str(text or "").split())
    if font.width(text) <= width:
        return text
    while text and font.width(text + ELLIPSIS) > width:
        text = text[:-1]
    return (text.rstrip() + ELLIPSIS) if text else ""


# ============================================================
# GEOMETRY
# ============================================================

def allocate_box(x: float, y: float, width: float, min_height: float) -> Tuple[Box, float]:
    """
    Allocate a box at (x, y) and return it with the next cursor position.

    Raises:
        GeometryError: if width or height is negative
    """
    if width < 0 or min_height < 0:
        raise GeometryError(f"Negative box geometry: width={width}, height={min_height}")
    box = Box(x=x, top=y, width=width, height=min_height)
    return box, box.bottom


def split_two_column(total_width: float, gap: float) -> float:
    """Width of each of two symmetric columns separated by `gap`."""
    width = (total_width - gap) / 2
    if width < 0:
        raise GeometryError(f"Gap {gap} leaves no room for two columns in {total_width}")
    return width


class PageFlow:
    """
    Top-down vertical flow over a sequence of identical pages.

    The bottom of each page is reserved for a footer band of
    `footer_height`; content never enters it. When a block does not fit in
    what is left of the page, `on_page_break` is called (to finish the
    current page) and the cursor returns to the top margin.
    """

    def __init__(
        self,
        page_width: float,
        page_height: float,
        margin: float,
        footer_height: float = 0.0,
        on_page_break: Optional[Callable[[int], None]] = None,
    ):
        if min(page_width, page_height, margin, footer_height) < 0:
            raise GeometryError("Page dimensions, margin and footer height must be non-negative")

        self.page_width = page_width
        self.page_height = page_height
        self.margin = margin
        self.footer_height = footer_height
        self.on_page_break = on_page_break

        self.top_limit = margin
        self.bottom_limit = page_height - margin - footer_height
        if self.bottom_limit <= self.top_limit:
            raise GeometryError("Margins and footer leave no usable page height")

        self.page = 0
        self.cursor = self.top_limit
        self.boxes: List[PlacedBox] = []

    @property
    def content_left(self) -> float:
        return self.margin

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin

    @property
    def content_right(self) -> float:
        return self.page_width - self.margin

    @property
    def usable_height(self) -> float:
        return self.bottom_limit - self.top_limit

    @property
    def remaining(self) -> float:
        return self.bottom_limit - self.cursor

    def new_page(self) -> None:
        if self.on_page_break is not None:
            self.on_page_break(self.page)
        self.page += 1
        self.cursor = self.top_limit
        logger.debug(f"Started page {self.page + 1}")

    def ensure_room(self, height: float, label: str = "block") -> bool:
        """
        Make sure a block of `height` fits below the cursor.

        Returns:
            True if a new page had to be started

        Raises:
            LayoutOverflowError: if the block cannot fit even on a fresh page
        """
        if height < 0:
            raise GeometryError(f"Negative block height for '{label}': {height}")
        if height > self.usable_height:
            raise LayoutOverflowError(label, height, self.usable_height)
        if self.remaining < height:
            self.new_page()
            return True
        return False

    def advance(self, gap: float) -> None:
        """Move the cursor down by `gap`, stopping at the bottom limit."""
        self.cursor = min(self.cursor + max(0.0, gap), self.bottom_limit)

    def place(
        self,
        height: float,
        x: Optional[float] = None,
        width: Optional[float] = None,
        label: str = "",
    ) -> PlacedBox:
        """Allocate a full-width (or given-width) block at the cursor and advance past it."""
        self.ensure_room(height, label or "block")
        x = self.content_left if x is None else x
        width = self.content_width if width is None else width
        box, next_y = allocate_box(x, self.cursor, width, height)
        placed = PlacedBox(box.x, box.top, box.width, box.height, page=self.page, label=label)
        self.boxes.append(placed)
        self.cursor = next_y
        return placed

    def place_columns(
        self,
        height: float,
        columns: Sequence[Tuple[float, float]],
        labels: Sequence[str] = (),
    ) -> List[PlacedBox]:
        """Allocate side-by-side boxes of equal height sharing one row."""
        row_label = "+".join(labels) or "columns"
        self.ensure_room(height, row_label)
        placed: List[PlacedBox] = []
        for index, (x, width) in enumerate(columns):
            box, _ = allocate_box(x, self.cursor, width, height)
            label = labels[index] if index < len(labels) else ""
            placed.append(PlacedBox(box.x, box.top, box.width, box.height, page=self.page, label=label))
        self.boxes.extend(placed)
        self.cursor += height
        return placed

    def to_pdf_y(self, top: float, height: float = 0.0) -> float:
        """Convert a top-down coordinate to the PDF bottom-left origin."""
        return self.page_height - top - height

    def footer_box(self) -> PlacedBox:
        """The reserved footer band of the current page (not part of the flow)."""
        return PlacedBox(
            self.content_left,
            self.bottom_limit,
            self.content_width,
            self.footer_height,
            page=self.page,
            label="footer",
        )
