"""
Stamp Overlay

Stamps an already-rendered PDF: the business stamp raster is drawn on a
transparent reportlab page of the same size and merged onto each target page
with PyPDF2. Placement stays clear of the footer band (and its QR code).
"""

import io
import logging
from typing import Optional, Tuple

from PIL import Image
from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..models import BusinessProfile
from ..settings import RenderSettings
from .stamp import StampRenderer

logger = logging.getLogger(__name__)

POSITIONS = ("bottom-left", "bottom-right", "top-left", "top-right", "center")
DEFAULT_POSITION = "bottom-left"
MIN_SIZE = 10
# Extra lift so a bottom-right stamp does not touch the footer QR code
QR_CLEARANCE = 25


def stamp_position(
    page_size: Tuple[float, float],
    draw_size: Tuple[float, float],
    position: str,
    margin: float,
    footer_reserved: float,
) -> Tuple[float, float]:
    """
    Lower-left corner (PDF coordinates) of the stamp on a page.

    The result always sits inside the horizontal margins, above the reserved
    footer band and below the top margin.
    """
    width, height = page_size
    draw_w, draw_h = draw_size

    safe_bottom = footer_reserved + margin
    safe_top = height - margin - draw_h
    left = margin
    right = width - draw_w - margin

    if position == "bottom-right":
        x, y = right, safe_bottom + QR_CLEARANCE
    elif position == "top-left":
        x, y = left, safe_top
    elif position == "top-right":
        x, y = right, safe_top
    elif position == "center":
        x, y = (width - draw_w) / 2, (height - draw_h) / 2
    else:
        x, y = left, safe_bottom

    x = max(margin, min(x, width - margin - draw_w))
    y = max(safe_bottom, min(y, safe_top))
    return x, y


def _overlay_page(
    png: bytes,
    page_size: Tuple[float, float],
    origin: Tuple[float, float],
    draw_size: Tuple[float, float],
    opacity: float,
):
    packet = io.BytesIO()
    can = canvas.Canvas(packet, pagesize=page_size)
    can.saveState()
    try:
        can.setFillAlpha(opacity)
        can.drawImage(ImageReader(io.BytesIO(png)), origin[0], origin[1],
                      draw_size[0], draw_size[1], mask="auto")
    finally:
        can.restoreState()
    can.save()
    packet.seek(0)
    return PdfReader(packet).pages[0]


def apply_stamp_to_pdf(
    pdf_bytes: bytes,
    profile: Optional[BusinessProfile],
    settings: Optional[RenderSettings] = None,
    renderer: Optional[StampRenderer] = None,
    position: Optional[str] = None,
    size: Optional[float] = None,
    opacity: Optional[float] = None,
    margin: Optional[float] = None,
    pages: str = "all",
) -> bytes:
    """
    Merge the business stamp onto the pages of an existing PDF.

    Args:
        pdf_bytes: PDF to stamp
        profile: Business profile; `stamp_enabled=False` disables stamping
        settings: Render settings (overlay defaults and stamp look)
        renderer: Stamp renderer, built from `settings` when omitted
        position: bottom-left, bottom-right, top-left, top-right or center
                  (defaults to the profile preference, then settings)
        size: Stamp width in points (profile preference, then settings)
        opacity: 0..1
        margin: Distance kept from the page edges
        pages: "all" or "last"

    Returns:
        The stamped PDF, or `pdf_bytes` unchanged when stamping is disabled,
        the stamp cannot be rendered or the PDF has no pages
    """
    profile = profile or BusinessProfile()
    if not profile.stamp_enabled:
        logger.debug("Stamp disabled for profile, leaving PDF untouched")
        return pdf_bytes

    settings = settings or RenderSettings()
    overlay = settings.overlay
    renderer = renderer or StampRenderer(settings.stamp)

    position = position or profile.stamp_position or overlay.position
    if position not in POSITIONS:
        logger.warning(f"Unknown stamp position '{position}', using {DEFAULT_POSITION}")
        position = DEFAULT_POSITION

    draw_w = size or profile.stamp_size or overlay.size
    if not draw_w or draw_w <= MIN_SIZE:
        draw_w = overlay.size
    opacity = overlay.opacity if opacity is None else opacity
    opacity = max(0.0, min(1.0, float(opacity)))
    margin = overlay.margin if margin is None else margin

    # The overlay stamp never carries the logo
    result = renderer.render(profile.model_copy(update={"logo": None}))
    if not result.ok:
        logger.warning(f"Stamp overlay skipped ({result.status.value}): {result.reason}")
        return pdf_bytes

    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        total = len(reader.pages)
        if not total:
            logger.warning("PDF has no pages, nothing to stamp")
            return pdf_bytes

        with Image.open(io.BytesIO(result.png)) as img:
            draw_h = draw_w * img.height / img.width

        targets = {total - 1} if pages == "last" else set(range(total))
        writer = PdfWriter()
        for index, page in enumerate(reader.pages):
            if index in targets:
                page_size = (float(page.mediabox.width), float(page.mediabox.height))
                origin = stamp_position(
                    page_size, (draw_w, draw_h), position, margin, overlay.footer_reserved_height
                )
                logger.debug(
                    f"Stamping page {index + 1}/{total} at ({origin[0]:.1f}, {origin[1]:.1f}) "
                    f"size={draw_w:.0f}pt position={position}"
                )
                page.merge_page(_overlay_page(result.png, page_size, origin, (draw_w, draw_h), opacity))
            writer.add_page(page)

        output = io.BytesIO()
        writer.write(output)

    except Exception as e:
        logger.error(f"Error applying stamp to PDF: {e}", exc_info=True)
        return pdf_bytes

    logger.info(f"Applied stamp to {len(targets)} page(s) ({position})")
    return output.getvalue()
