"""
Circular Business Stamp Rasterizer

Draws a round stamp (PNG, transparent background) with Pillow:
- Two concentric rings
- Business name curved along the top arc
- Tax id / phone curved along the bottom arc, upright when read from below
- Centered block: optional logo, role title, optional address

Arc text is placed glyph by glyph through an explicit transform stack; every
glyph is drawn inside its own scope so rotation and translation never leak
into the next glyph.
"""

import io
import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont, features

from ..models import BusinessProfile
from ..settings import StampSettings

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "TAMPON"
DEFAULT_NAME = "ENTREPRISE"
TITLE_MAX_CHARS = 18
ADDRESS_MAX_CHARS = 34

# Geometry for the reference 520px canvas; scaled for other sizes.
REFERENCE_SIZE = 520
OUTER_RADIUS = 240
OUTER_WIDTH = 10
INNER_RADIUS = 185
INNER_WIDTH = 6
ARC_RADIUS = 205
TOP_FONT_SIZE = 32
TOP_SPACING = 2.2
BOTTOM_FONT_SIZE = 22
BOTTOM_SPACING = 2.0
LOGO_SIZE = 120
LOGO_OFFSET_Y = -35
TITLE_FONT_SIZE = 34
TITLE_Y = 40
ADDRESS_FONT_SIZE = 18
ADDRESS_Y = 130


class StampStatus(str, Enum):
    RENDERED = "rendered"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True)
class StampResult:
    status: StampStatus
    png: Optional[bytes] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is StampStatus.RENDERED and bool(self.png)


@dataclass(frozen=True)
class StampText:
    """Text content of a stamp, derived from a business profile."""
    name: str
    bottom: str
    title: str
    address: str


def truncate(text: Optional[str], max_chars: int) -> str:
    """Hard-truncate to `max_chars` characters, ending with an ellipsis."""
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars - 1] + "…"


def stamp_text(profile: Optional[BusinessProfile], title: Optional[str] = None) -> StampText:
    profile = profile or BusinessProfile()

    if profile.ifu:
        id_line = f"IFU: {profile.ifu}"
    elif profile.rccm:
        id_line = f"RCCM: {profile.rccm}"
    else:
        id_line = ""
    phone = (profile.phone or "").replace(" ", "")
    phone_line = f"TEL: {phone}" if phone else ""

    centre_title = (title or "").strip() or profile.stamp_title or DEFAULT_TITLE
    return StampText(
        name=(profile.business_name or DEFAULT_NAME).upper(),
        bottom=" • ".join(part for part in (id_line, phone_line) if part).upper(),
        title=truncate(centre_title.upper(), TITLE_MAX_CHARS),
        address=truncate((profile.address or "").upper(), ADDRESS_MAX_CHARS),
    )


# ============================================================
# TRANSFORM STACK
# ============================================================

Matrix = Tuple[float, float, float, float, float, float]
IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


def _multiply(m: Matrix, n: Matrix) -> Matrix:
    """Compose m then n (n applied in m's local frame)."""
    a, b, c, d, e, f = m
    a2, b2, c2, d2, e2, f2 = n
    return (
        a * a2 + c * b2,
        b * a2 + d * b2,
        a * c2 + c * d2,
        b * c2 + d * d2,
        a * e2 + c * f2 + e,
        b * e2 + d * f2 + f,
    )


class TransformStack:
    """
    2D affine transform stack in raster coordinates (y grows downward,
    positive angles turn clockwise on screen).

    Use `scope()` to enter a local frame; the previous transform is restored
    on every exit path.
    """

    def __init__(self):
        self._stack: List[Matrix] = [IDENTITY]

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def current(self) -> Matrix:
        return self._stack[-1]

    def push(self) -> None:
        self._stack.append(self.current)

    def pop(self) -> None:
        if len(self._stack) == 1:
            raise RuntimeError("Transform stack underflow")
        self._stack.pop()

    @contextmanager
    def scope(self) -> Iterator["TransformStack"]:
        self.push()
        try:
            yield self
        finally:
            self.pop()

    def translate(self, dx: float, dy: float) -> None:
        self._stack[-1] = _multiply(self.current, (1.0, 0.0, 0.0, 1.0, dx, dy))

    def rotate(self, radians: float) -> None:
        cos, sin = math.cos(radians), math.sin(radians)
        self._stack[-1] = _multiply(self.current, (cos, sin, -sin, cos, 0.0, 0.0))

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        a, b, c, d, e, f = self.current
        return a * x + c * y + e, b * x + d * y + f

    @property
    def angle(self) -> float:
        """Rotation of the current frame, in radians."""
        a, b = self.current[0], self.current[1]
        return math.atan2(b, a)


# ============================================================
# DRAWING
# ============================================================

def _draw_glyph(
    image: Image.Image,
    transforms: TransformStack,
    glyph: str,
    font: ImageFont.ImageFont,
    color: str,
) -> None:
    """Draw one glyph centered at the local origin of the current frame."""
    left, top, right, bottom = font.getbbox(glyph)
    side = int(max(right - left, bottom - top, getattr(font, "size", 12)) * 2) + 8
    tile = Image.new("RGBA", (side, side), (0, 0, 0, 0))
    ImageDraw.Draw(tile).text(
        (side / 2, side / 2), glyph, font=font, fill=color, anchor="mm",
        stroke_width=1, stroke_fill=color,
    )

    degrees = math.degrees(transforms.angle)
    # PIL rotates counter-clockwise for positive angles
    rotated = tile.rotate(-degrees, resample=Image.Resampling.BICUBIC, expand=True)

    cx, cy = transforms.apply(0.0, 0.0)
    dest = (int(round(cx - rotated.width / 2)), int(round(cy - rotated.height / 2)))
    image.alpha_composite(_clip(rotated, dest, image.size), _clamp(dest))


def _clamp(dest: Tuple[int, int]) -> Tuple[int, int]:
    return max(0, dest[0]), max(0, dest[1])


def _clip(tile: Image.Image, dest: Tuple[int, int], size: Tuple[int, int]) -> Image.Image:
    """Crop a tile so it can be composited at `dest` without leaving the canvas."""
    x, y = dest
    left, top = max(0, -x), max(0, -y)
    right = min(tile.width, size[0] - x)
    bottom = min(tile.height, size[1] - y)
    if right <= left or bottom <= top:
        return Image.new("RGBA", (1, 1), (0, 0, 0, 0))
    return tile.crop((left, top, right, bottom))


def draw_arc_text(
    image: Image.Image,
    transforms: TransformStack,
    text: str,
    center: Tuple[float, float],
    radius: float,
    reference_angle: float,
    spacing_deg: float,
    font: ImageFont.ImageFont,
    color: str,
    reverse: bool = False,
) -> int:
    """
    Draw `text` along a circle of `radius` around `center`.

    The run is centered on `reference_angle` (0 = top of the circle). The
    reversed variant runs along the bottom arc in the opposite direction and
    flips each glyph so it reads upright from below.

    Returns:
        Number of glyphs drawn
    """
    glyphs = list(text or "")
    if not glyphs:
        return 0

    step = math.radians(spacing_deg)
    half_run = len(glyphs) * step / 2
    angle = reference_angle + half_run if reverse else reference_angle - half_run

    drawn = 0
    for glyph in glyphs:
        with transforms.scope():
            transforms.translate(*center)
            transforms.rotate(angle)
            transforms.translate(0.0, -radius)
            if reverse:
                transforms.rotate(math.pi)
            if not glyph.isspace():
                _draw_glyph(image, transforms, glyph, font, color)
                drawn += 1
        angle += -step if reverse else step

    return drawn


class StampRenderer:
    """
    Rasterizes the circular business stamp.

    Stateless apart from its settings; safe to share between concurrent
    renders.
    """

    def __init__(self, settings: Optional[StampSettings] = None):
        self.settings = settings or StampSettings()

    @staticmethod
    def is_available() -> bool:
        """Whether the FreeType text backend needed for scalable glyphs is present."""
        try:
            return bool(features.check("freetype2"))
        except Exception as e:
            logger.debug(f"FreeType check failed: {e}")
            return False

    def _font(self, size: int) -> ImageFont.ImageFont:
        if self.settings.font_path:
            return ImageFont.truetype(self.settings.font_path, size)
        return ImageFont.load_default(size=size)

    def _scaled(self, value: float) -> int:
        return max(1, int(round(value * self.settings.canvas_size / REFERENCE_SIZE)))

    def render(
        self,
        profile: Optional[BusinessProfile],
        logo: Optional[bytes] = None,
        title: Optional[str] = None,
    ) -> StampResult:
        """
        Render the stamp for a profile.

        Args:
            profile: Business profile (None renders a generic stamp)
            logo: Optional logo bytes; defaults to the profile logo
            title: Optional centered title override

        Returns:
            StampResult; never raises
        """
        if not self.is_available():
            logger.warning("Stamp backend unavailable (Pillow built without FreeType)")
            return StampResult(StampStatus.UNAVAILABLE, reason="freetype2 not available")

        try:
            png = self._render_png(profile, logo if logo is not None else getattr(profile, "logo", None), title)
        except Exception as e:
            logger.warning(f"Stamp rasterization failed: {e}", exc_info=True)
            return StampResult(StampStatus.FAILED, reason=str(e))

        return StampResult(StampStatus.RENDERED, png=png)

    def _render_png(
        self,
        profile: Optional[BusinessProfile],
        logo: Optional[bytes],
        title: Optional[str],
    ) -> bytes:
        size = self.settings.canvas_size
        color = self.settings.color
        image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)
        center = (size / 2, size / 2)

        for radius, width in ((OUTER_RADIUS, OUTER_WIDTH), (INNER_RADIUS, INNER_WIDTH)):
            r = self._scaled(radius)
            draw.ellipse(
                (center[0] - r, center[1] - r, center[0] + r, center[1] + r),
                outline=color,
                width=self._scaled(width),
            )

        text = stamp_text(profile, title)
        transforms = TransformStack()
        arc_radius = self._scaled(ARC_RADIUS)

        draw_arc_text(
            image, transforms, text.name, center, arc_radius,
            reference_angle=0.0, spacing_deg=TOP_SPACING,
            font=self._font(self._scaled(TOP_FONT_SIZE)), color=color,
        )
        if text.bottom:
            draw_arc_text(
                image, transforms, text.bottom, center, arc_radius,
                reference_angle=math.pi, spacing_deg=BOTTOM_SPACING,
                font=self._font(self._scaled(BOTTOM_FONT_SIZE)), color=color, reverse=True,
            )

        if logo:
            self._paste_logo(image, logo, center)

        draw = ImageDraw.Draw(image)
        draw.text(
            (center[0], center[1] + self._scaled(TITLE_Y)), text.title,
            font=self._font(self._scaled(TITLE_FONT_SIZE)), fill=color, anchor="mm",
            stroke_width=1, stroke_fill=color,
        )
        if text.address:
            draw.text(
                (center[0], center[1] + self._scaled(ADDRESS_Y)), text.address,
                font=self._font(self._scaled(ADDRESS_FONT_SIZE)), fill=color, anchor="mm",
            )

        output = io.BytesIO()
        image.save(output, format="PNG")
        logger.debug(f"Rendered stamp {size}x{size} for '{text.name}'")
        return output.getvalue()

    def _paste_logo(self, image: Image.Image, logo: bytes, center: Tuple[float, float]) -> None:
        try:
            with Image.open(io.BytesIO(logo)) as source:
                source.load()
                logo_img = source.convert("RGBA")
        except Exception as e:
            logger.warning(f"Could not decode stamp logo, skipping: {e}")
            return

        logo_size = self._scaled(LOGO_SIZE)
        logo_img.thumbnail((logo_size, logo_size))
        x = int(center[0] - logo_img.width / 2)
        y = int(center[1] + self._scaled(LOGO_OFFSET_Y) - logo_img.height / 2)
        image.alpha_composite(logo_img, (x, y))
