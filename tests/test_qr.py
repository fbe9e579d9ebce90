"""
QR Embedder Tests

Test the contact deep link and the no-image fallback.
"""

import io
import sys
from pathlib import Path
from unittest.mock import patch

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from PIL import Image

from kadi.rendering.qr import QrEmbedder, build_contact_link
from kadi.settings import ContactSettings, QrSettings


def test_contact_link_encodes_prefill():
    link = build_contact_link("22679239027", "Bonjour KADI, je veux créer un document")
    assert link == (
        "https://wa.me/22679239027?text="
        "Bonjour%20KADI%2C%20je%20veux%20cr%C3%A9er%20un%20document"
    )


def test_contact_link_keeps_digits_only():
    assert build_contact_link("+226 79 23 90 27", None) == "https://wa.me/22679239027?text="


def test_contact_link_from_settings():
    link = QrEmbedder().contact_link(ContactSettings())
    assert link.startswith("https://wa.me/22679239027?text=Bonjour")


@pytest.mark.skipif(not QrEmbedder.is_available(), reason="qrcode not installed")
def test_encode_png():
    result = QrEmbedder(QrSettings(pixel_width=220)).encode("https://wa.me/22679239027")
    assert result.ok
    with Image.open(io.BytesIO(result.png)) as img:
        assert img.size == (220, 220)


def test_unknown_level_fails_softly():
    result = QrEmbedder(QrSettings(error_correction="Z")).encode("https://wa.me/22679239027")
    assert not result.ok
    assert result.png is None
    assert result.reason


def test_empty_payload_fails_softly():
    result = QrEmbedder().encode("")
    assert not result.ok


def test_missing_library():
    """Test that a missing qrcode install yields no image instead of an error."""
    with patch.dict(sys.modules, {"qrcode": None}):
        assert QrEmbedder.is_available() is False
        result = QrEmbedder().encode("https://wa.me/22679239027")
    assert not result.ok
    assert "not installed" in result.reason
