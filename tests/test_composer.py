"""
Document Composer Tests

End-to-end renders checked through the layout report and the text
extracted from the PDF:
- Discharge with both attestations and an empty stamp box
- Stamp and QR degradation
- Smart rows, pagination and layout overflow
"""

import io
import sys
import time
import logging
import itertools
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Configure logging
logging.basicConfig(level=logging.INFO)

from PIL import Image
from PyPDF2 import PdfReader

from kadi.models import BusinessProfile, DocumentKind, DocumentSpec
from kadi.rendering import composer as composer_module
from kadi.rendering.composer import (
    QR_GAP,
    DocumentComposer,
    RenderError,
    RenderStage,
    render_with_deadline,
)
from kadi.rendering.layout import FontSpec, measure_wrapped_height
from kadi.rendering.qr import QrResult
from kadi.rendering.stamp import StampResult, StampStatus
from kadi.settings import RenderSettings


def _png(size=64, color=(11, 87, 208, 255)) -> bytes:
    output = io.BytesIO()
    Image.new("RGBA", (size, size), color).save(output, format="PNG")
    return output.getvalue()


def _text(pdf_bytes: bytes) -> str:
    reader = PdfReader(io.BytesIO(pdf_bytes))
    return " ".join(" ".join((page.extract_text() or "") for page in reader.pages).split())


def _page_count(pdf_bytes: bytes) -> int:
    return len(PdfReader(io.BytesIO(pdf_bytes)).pages)


def _fake_qr(png=None, error=None):
    qr = MagicMock()
    if error is not None:
        qr.encode.side_effect = error
    else:
        qr.encode.return_value = QrResult(data="link", png=png, reason="" if png else "forced failure")
    return qr


def _fake_stamp(png=None):
    renderer = MagicMock()
    if png:
        renderer.render.return_value = StampResult(StampStatus.RENDERED, png=png)
    else:
        renderer.render.return_value = StampResult(StampStatus.UNAVAILABLE, reason="forced")
    return renderer


def _discharge(**overrides) -> DocumentSpec:
    data = {
        "kind": "discharge",
        "doc_number": "DEV-2025-JAN-0001",
        "date": "2025-01-10",
        "place": "Ouagadougou",
        "party1": {"name": "Awa KONE", "id_type": "CNIB", "id_number": "B1234567", "phone": "70112233"},
        "party2": {"name": "Issa DIALLO", "phone": "76554433"},
        "object": "avance sur salaire",
        "amount": 150000,
        "amount_words": "cent cinquante mille",
    }
    data.update(overrides)
    return DocumentSpec.model_validate(data)


def _invoice(items, **overrides) -> DocumentSpec:
    data = {
        "kind": "invoice",
        "doc_number": "FAC-2025-0042",
        "date": "2025-02-03",
        "party1": {"name": "Quincaillerie du Faso"},
        "party2": {"name": "Issa DIALLO"},
        "items": items,
        "finance": {"subtotal": 1000, "vat": 180, "gross": 1180},
    }
    data.update(overrides)
    return DocumentSpec.model_validate(data)


class ComposerTestCase(unittest.TestCase):

    def setUp(self):
        self.settings = RenderSettings()
        self.page = self.settings.page

    def composer(self, stamp_png=None, qr_png=None):
        return DocumentComposer(self.settings, stamp_renderer=_fake_stamp(stamp_png), qr_embedder=_fake_qr(qr_png))

    def assert_no_overlap(self, composition):
        boxes = list(composition.boxes) + list(composition.footer_boxes)
        for a, b in itertools.combinations(boxes, 2):
            self.assertFalse(a.overlaps(b), f"{a.label} overlaps {b.label}")

    def assert_inside_content_area(self, composition):
        bottom_limit = self.page.height - self.page.margin - self.page.footer_height
        for box in composition.boxes:
            self.assertGreaterEqual(box.top, self.page.margin - 1e-6, box.label)
            self.assertLessEqual(box.bottom, bottom_limit + 1e-6, box.label)
            self.assertGreaterEqual(box.x, self.page.margin - 1e-6, box.label)
            self.assertLessEqual(box.right, self.page.width - self.page.margin + 1e-6, box.label)


class TestDischarge(ComposerTestCase):

    def test_end_to_end_without_profile(self):
        """Test a discharge with no business profile and a working QR."""
        composition = self.composer(qr_png=_png()).compose(_discharge())
        text = _text(composition.pdf_bytes)

        self.assertEqual(composition.page_count, 1)
        self.assertEqual(_page_count(composition.pdf_bytes), 1)
        for expected in ("Awa KONE", "Issa DIALLO", "150 000", "cent cinquante mille",
                         "avance sur salaire", "DEV-2025-JAN-0001", "2025-01-10", "TAMPON",
                         "WhatsApp +226 79 23 90 27"):
            self.assertIn(expected, text)

        self.assertEqual(len(composition.find("attestation-1")), 1)
        self.assertEqual(len(composition.find("attestation-2")), 1)
        self.assertFalse(composition.stamp_embedded)
        self.assertTrue(composition.qr_embedded)
        self.assert_no_overlap(composition)
        self.assert_inside_content_area(composition)

    def test_end_to_end_text_only_footer(self):
        composition = self.composer(qr_png=None).compose(_discharge())
        self.assertFalse(composition.qr_embedded)
        self.assertIn("Awa KONE", _text(composition.pdf_bytes))

    def test_attestations_are_reciprocal(self):
        builder = composer_module._DocumentBuilder(self.settings, _discharge(), None, None)
        received, given = builder.attestation_paragraphs()
        self.assertIn("Awa KONE, déclare avoir reçu de Issa DIALLO", received)
        self.assertIn("Issa DIALLO, déclare avoir remis à Awa KONE", given)
        for paragraph in (received, given):
            self.assertIn("150 000 FCFA (cent cinquante mille francs CFA)", paragraph)
            self.assertIn("avance sur salaire", paragraph)

    def test_amount_words_generated_when_missing(self):
        builder = composer_module._DocumentBuilder(self.settings, _discharge(amount_words=None), None, None)
        received, _ = builder.attestation_paragraphs()
        self.assertIn("(cent cinquante mille francs CFA)", received)

    def test_negative_amount_digits_match_words(self):
        """Test that an unusable amount prints as 0 in both digits and words."""
        builder = composer_module._DocumentBuilder(self.settings, _discharge(amount=-5000, amount_words=None), None, None)
        received, given = builder.attestation_paragraphs()
        for paragraph in (received, given):
            self.assertIn("0 FCFA (zéro francs CFA)", paragraph)
            self.assertNotIn("moins", paragraph)

    def test_fractional_amount_words_are_rounded(self):
        builder = composer_module._DocumentBuilder(self.settings, _discharge(amount=1180.6, amount_words=None), None, None)
        received, _ = builder.attestation_paragraphs()
        self.assertIn("1 181 FCFA (mille cent quatre-vingt-un francs CFA)", received)

    def test_missing_fields_use_placeholder(self):
        spec = DocumentSpec(kind=DocumentKind.DISCHARGE)
        builder = composer_module._DocumentBuilder(self.settings, spec, None, None)
        received, _ = builder.attestation_paragraphs()
        self.assertIn("Je soussigné(e) —", received)
        composition = self.composer().compose(spec)
        self.assertEqual(len(composition.find("party1")), 1)
        self.assertEqual(len(composition.find("party2")), 1)

    def test_payment_method_and_witness(self):
        spec = _discharge(payment_method="Orange Money", witness={"name": "Moussa SAWADOGO"})
        composition = self.composer().compose(spec)
        text = _text(composition.pdf_bytes)
        self.assertIn("Orange Money", text)
        self.assertIn("Moussa SAWADOGO", text)
        self.assertEqual(len(composition.find("witness")), 1)


class TestStampBox(ComposerTestCase):

    def test_same_geometry_with_and_without_profile(self):
        """Test that the stamp box does not move when the stamp raster is present."""
        profile = BusinessProfile(business_name="Quincaillerie du Faso", ifu="00098765A")
        empty = self.composer(stamp_png=_png(520)).compose(_discharge())
        stamped = self.composer(stamp_png=_png(520)).compose(_discharge(), profile)

        self.assertFalse(empty.stamp_embedded)
        self.assertTrue(stamped.stamp_embedded)
        self.assertEqual(empty.stamp_box, stamped.stamp_box)
        self.assertEqual(empty.stamp_box.width, self.settings.stamp.box_width)
        self.assertEqual(empty.stamp_box.height, self.settings.stamp.box_height)
        self.assertIn("TAMPON", _text(empty.pdf_bytes))

    def test_unavailable_stamp_degrades_to_empty_box(self):
        composition = self.composer(stamp_png=None).compose(_discharge(), BusinessProfile(business_name="X"))
        self.assertFalse(composition.stamp_embedded)
        self.assertEqual(len(composition.find("stamp")), 1)

    def test_raising_renderer_is_absorbed(self):
        renderer = MagicMock()
        renderer.render.side_effect = RuntimeError("backend crashed")
        composer = DocumentComposer(self.settings, stamp_renderer=renderer, qr_embedder=_fake_qr())
        composition = composer.compose(_discharge(), BusinessProfile(business_name="X"))
        self.assertFalse(composition.stamp_embedded)


class TestFooter(ComposerTestCase):

    def test_qr_failure_widens_footer_text(self):
        """Test that the text-only footer takes over the QR allowance."""
        with_qr = self.composer(qr_png=_png()).compose(_discharge())
        without_qr = self.composer(qr_png=None).compose(_discharge())

        allowance = self.settings.qr.display_size + QR_GAP
        self.assertAlmostEqual(without_qr.footer_text_width - with_qr.footer_text_width, allowance)
        self.assertEqual(_page_count(without_qr.pdf_bytes), 1)
        self.assertIn("Scannez", with_qr.footer_text)
        self.assertNotIn("Scannez", without_qr.footer_text)

    def test_raising_qr_embedder_is_absorbed(self):
        composer = DocumentComposer(
            self.settings, stamp_renderer=_fake_stamp(), qr_embedder=_fake_qr(error=ValueError("bad data"))
        )
        composition = composer.compose(_discharge())
        self.assertFalse(composition.qr_embedded)
        self.assertTrue(composition.pdf_bytes.startswith(b"%PDF"))

    def test_footer_on_every_page(self):
        items = [{"designation": f"Article {i}", "quantity": 1, "unit_price": 500} for i in range(70)]
        composition = self.composer(qr_png=_png()).compose(_invoice(items))
        self.assertGreater(composition.page_count, 1)
        self.assertEqual(len(composition.footer_boxes), composition.page_count)
        self.assertEqual([box.page for box in composition.footer_boxes], list(range(composition.page_count)))


class TestTable(ComposerTestCase):

    def test_invoice_text_and_totals(self):
        items = [
            {"designation": "Ciment 50 kg", "quantity": 2, "unit_price": 400},
            {"designation": "Transport", "amount": 200},
        ]
        composition = self.composer().compose(_invoice(items))
        text = _text(composition.pdf_bytes)
        for expected in ("FACTURE", "FAC-2025-0042", "Ciment 50 kg", "800", "TVA", "180 FCFA",
                         "TOTAL", "1 180 FCFA", "mille cent quatre-vingts francs CFA"):
            self.assertIn(expected, text)
        self.assertNotIn("Total TTC", text)
        self.assert_no_overlap(composition)

    def test_long_designation_grows_row(self):
        long_text = "Fourniture et installation d'un système solaire complet " * 6
        items = [{"designation": "Vis"}, {"designation": long_text}]
        composition = self.composer().compose(_invoice(items))

        short_row = composition.find("row-1")[0]
        long_row = composition.find("row-2")[0]
        table = self.settings.table
        self.assertEqual(short_row.height, table.min_row_height)

        fixed = table.index_width + table.quantity_width + table.unit_price_width + table.amount_width
        inner = self.page.width - 2 * self.page.margin - fixed - 2 * table.cell_padding
        needed = measure_wrapped_height(long_text, inner, FontSpec(self.settings.fonts.regular, self.settings.fonts.body_size))
        self.assertGreater(long_row.height, short_row.height)
        self.assertGreaterEqual(long_row.height, needed)

    def test_multi_page_table_repeats_header(self):
        items = [
            {"designation": f"Prestation numéro {i} " + "détail " * (i % 7), "quantity": i, "unit_price": 1250}
            for i in range(1, 61)
        ]
        composition = self.composer(qr_png=_png()).compose(_invoice(items))

        self.assertGreaterEqual(composition.page_count, 2)
        self.assertEqual(_page_count(composition.pdf_bytes), composition.page_count)
        header_pages = {box.page for box in composition.find("table-header")}
        row_pages = {box.page for box in composition.boxes if box.label.startswith("row-")}
        self.assertEqual(header_pages, row_pages)
        self.assertEqual(len([b for b in composition.boxes if b.label.startswith("row-")]), 60)
        self.assert_no_overlap(composition)
        self.assert_inside_content_area(composition)

    def test_empty_table_still_renders(self):
        composition = self.composer().compose(_invoice([], finance={}))
        self.assertEqual(len(composition.find("row-1")), 1)
        self.assertEqual(len(composition.find("table-header")), 1)

    def test_closing_words_use_rounded_total(self):
        """Test that the amount in words matches the rounded total digits."""
        spec = _invoice([{"designation": "Article"}], finance={"subtotal": 1000, "vat": 180.6, "gross": 1180.6})
        text = _text(self.composer().render(spec))
        self.assertIn("1 181 FCFA", text)
        self.assertIn("mille cent quatre-vingt-un francs CFA", text)

    def test_titles(self):
        for kind, variant, title in (
            ("quote", "regular", "DEVIS"),
            ("invoice", "proforma", "FACTURE PROFORMA"),
            ("receipt", "regular", "REÇU"),
        ):
            spec = _invoice([{"designation": "Article"}], kind=kind, variant=variant)
            self.assertEqual(spec.title, title)
            reader = PdfReader(io.BytesIO(self.composer().render(spec)))
            self.assertEqual(reader.metadata.title, f"{title} FAC-2025-0042")


class TestIssuerHeader(ComposerTestCase):

    def test_profile_identity_printed(self):
        """Test that the issuer name, contact and tax lines appear on itemized documents."""
        profile = BusinessProfile(
            business_name="Quincaillerie du Faso", email="contact@qf.bf", address="Secteur 15", ifu="00098765A"
        )
        composition = self.composer().compose(_invoice([{"designation": "Article"}]), profile)
        text = _text(composition.pdf_bytes)

        for expected in ("Quincaillerie du Faso", "contact@qf.bf", "Secteur 15", "IFU : 00098765A"):
            self.assertIn(expected, text)
        self.assertNotIn("RCCM", text)
        self.assertEqual(len(composition.find("issuer")), 1)
        self.assert_no_overlap(composition)

    def test_brand_name_without_profile(self):
        composition = self.composer().compose(_invoice([{"designation": "Article"}]))
        self.assertEqual(len(composition.find("issuer")), 1)
        self.assertIn("KADI", _text(composition.pdf_bytes))

    def test_logo_drawn_or_skipped(self):
        """Test that a valid logo renders and an undecodable one is skipped."""
        spec = _invoice([{"designation": "Article"}])
        for logo in (_png(120), b"not an image"):
            profile = BusinessProfile(business_name="Quincaillerie du Faso", logo=logo)
            composition = self.composer().compose(spec, profile)
            self.assertTrue(composition.pdf_bytes.startswith(b"%PDF"))
            self.assertIn("Quincaillerie du Faso", _text(composition.pdf_bytes))

    def test_stamp_box_independent_of_profile(self):
        spec = _invoice([{"designation": "Article"}])
        profile = BusinessProfile(business_name="Quincaillerie du Faso", address="Secteur 15",
                                  phone="70112233", email="contact@qf.bf", ifu="00098765A", rccm="BF-OUA-2020")
        plain = self.composer().compose(spec)
        with_profile = self.composer().compose(spec, profile)
        self.assertEqual(plain.stamp_box, with_profile.stamp_box)
        self.assertEqual(plain.find("issuer"), with_profile.find("issuer"))

    def test_discharge_has_no_issuer_band(self):
        profile = BusinessProfile(business_name="Quincaillerie du Faso")
        composition = self.composer().compose(_discharge(), profile)
        self.assertEqual(composition.find("issuer"), [])


class TestFailures(ComposerTestCase):

    def test_row_taller_than_page_raises_layout(self):
        items = [{"designation": "mot " * 4000}]
        with self.assertRaises(RenderError) as info:
            self.composer().compose(_invoice(items))
        self.assertEqual(info.exception.stage, RenderStage.LAYOUT)

    def test_unexpected_error_raises_asset(self):
        with patch.object(composer_module._DocumentBuilder, "build", side_effect=ValueError("corrupt image")):
            with self.assertRaises(RenderError) as info:
                self.composer().compose(_discharge())
        self.assertEqual(info.exception.stage, RenderStage.ASSET)

    def test_deadline(self):
        slow = MagicMock()
        slow.render.side_effect = lambda spec, profile: time.sleep(0.5)
        with self.assertRaises(RenderError) as info:
            render_with_deadline(slow, _discharge(), timeout=0.05)
        self.assertEqual(info.exception.stage, RenderStage.DEADLINE)

    def test_deadline_success(self):
        pdf_bytes = render_with_deadline(self.composer(), _discharge(), timeout=30)
        self.assertTrue(pdf_bytes.startswith(b"%PDF"))


if __name__ == "__main__":
    unittest.main()
