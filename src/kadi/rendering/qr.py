"""
QR code embedding for the document footer.

Encodes the contact deep link into a small PNG. Encoding problems never
propagate: the caller gets a result without image and lays out a
text-only footer instead.
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from PIL import Image

from ..settings import ContactSettings, QrSettings

logger = logging.getLogger(__name__)

ERROR_CORRECTION_LEVELS = ("L", "M", "Q", "H")


def build_contact_link(e164: str, prefill_text: Optional[str]) -> str:
    """Messaging deep link with a pre-filled message."""
    number = "".join(ch for ch in str(e164 or "") if ch.isdigit())
    return f"https://wa.me/{number}?text={quote(prefill_text or '', safe='')}"


@dataclass(frozen=True)
class QrResult:
    data: str
    png: Optional[bytes] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return bool(self.png)


class QrEmbedder:
    """Encodes short strings into QR rasters sized for footer placement."""

    def __init__(self, settings: Optional[QrSettings] = None):
        self.settings = settings or QrSettings()

    @staticmethod
    def is_available() -> bool:
        try:
            import qrcode  # noqa: F401
        except ImportError:
            return False
        return True

    def contact_link(self, contact: ContactSettings) -> str:
        return build_contact_link(contact.e164, contact.prefill_text)

    def encode(self, data: str) -> QrResult:
        """
        Encode `data` as a PNG QR code.

        Returns:
            QrResult with `png` set on success, or a reason on failure
        """
        try:
            import qrcode
        except ImportError:
            logger.warning("qrcode is not installed, footer will be text-only")
            return QrResult(data=data, reason="qrcode not installed")

        try:
            png = self._build_png(qrcode, data)
        except Exception as e:
            logger.warning(f"QR encoding failed for {data!r}: {e}")
            return QrResult(data=data, reason=str(e))

        logger.debug(f"Encoded QR ({len(png)} bytes) for {data}")
        return QrResult(data=data, png=png)

    def _build_png(self, qrcode_module, data: str) -> bytes:
        if not data:
            raise ValueError("Nothing to encode")

        level = self.settings.error_correction.upper()
        if level not in ERROR_CORRECTION_LEVELS:
            raise ValueError(f"Unknown error correction level: {level}")

        qr = qrcode_module.QRCode(
            error_correction=getattr(qrcode_module.constants, f"ERROR_CORRECT_{level}"),
            box_size=10,
            border=self.settings.border,
        )
        qr.add_data(data)
        qr.make(fit=True)

        raw = io.BytesIO()
        qr.make_image(fill_color="black", back_color="white").save(raw, format="PNG")
        raw.seek(0)

        with Image.open(raw) as img:
            width = self.settings.pixel_width
            sized = img.convert("RGB").resize((width, width), Image.Resampling.NEAREST)

        output = io.BytesIO()
        sized.save(output, format="PNG")
        return output.getvalue()
