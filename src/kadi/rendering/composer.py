"""
Document Composer

Assembles quotes, invoices, receipts and discharges into paginated A4 PDFs:
- Title, issuer header (itemized kinds), number/date line and the two party boxes
- Itemized table with content-sized rows, or the discharge attestations
- Signature boxes, stamp box and a footer band with a QR call-to-action

The stamp and QR rasters are optional: when either cannot be produced the
document is still rendered, with an empty stamp box or a text-only footer.
All functions accept model inputs and return PDF bytes.
"""

import io
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple

from reportlab.lib.colors import HexColor
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..models import PLACEHOLDER, BusinessProfile, DocumentKind, DocumentSpec, Party, display
from ..settings import RenderSettings
from .layout import (
    ELLIPSIS,
    FontSpec,
    LayoutError,
    LayoutOverflowError,
    PageFlow,
    PlacedBox,
    fit_text,
    measure_wrapped_height,
    split_two_column,
    wrap_text,
)
from .numbers import format_amount, format_phone_local, number_to_french, round_amount
from .qr import QrEmbedder, QrResult
from .stamp import DEFAULT_TITLE, StampRenderer, StampResult

logger = logging.getLogger(__name__)

HEADER_FILL = HexColor("#F2F2F2")
MUTED = HexColor("#444444")

COLUMN_GAP = 20
BOX_PADDING = 8
SECTION_GAP = 14
SIGNATURE_HEIGHT = 80
TOTALS_WIDTH = 260
QR_GAP = 10
ISSUER_HEIGHT = 76
LOGO_FIT = 70
LOGO_GAP = 15

PARTY_TITLES = {
    DocumentKind.DISCHARGE: ("Partie 1 (Bénéficiaire / Réception)", "Partie 2 (Remettant / Paiement)"),
}
DEFAULT_PARTY_TITLES = ("Émetteur", "Client")

SIGNATURE_TITLES = {
    DocumentKind.DISCHARGE: ("Partie 1 (Reçu)", "Partie 2 (Remis)"),
}
DEFAULT_SIGNATURE_TITLES = ("Signature émetteur", "Signature client")

TOTAL_LABELS = (
    ("subtotal", "Sous-total"),
    ("discount", "Remise"),
    ("net", "Net"),
    ("vat", "TVA"),
    ("gross", "Total TTC"),
    ("deposit", "Acompte"),
    ("due", "Net à payer"),
)

# Grammatical gender follows the document noun
CLOSING_PHRASES = {
    DocumentKind.QUOTE: "Arrêté le présent devis",
    DocumentKind.INVOICE: "Arrêtée la présente facture",
    DocumentKind.RECEIPT: "Arrêté le présent reçu",
}


class RenderStage(str, Enum):
    LAYOUT = "layout"
    ASSET = "asset"
    DEADLINE = "deadline"


class RenderError(Exception):
    """A render that could not complete; no partial document is produced."""

    def __init__(self, stage: RenderStage, message: str):
        self.stage = stage
        super().__init__(f"[{stage.value}] {message}")


@dataclass(frozen=True)
class Composition:
    """Rendered PDF plus the layout report used for diagnostics."""
    pdf_bytes: bytes
    page_count: int
    boxes: Tuple[PlacedBox, ...]
    footer_boxes: Tuple[PlacedBox, ...]
    stamp_box: PlacedBox
    stamp_embedded: bool
    qr_embedded: bool
    footer_text: str
    footer_text_width: float

    def find(self, label: str) -> List[PlacedBox]:
        return [box for box in self.boxes if box.label == label]


@contextmanager
def canvas_state(pdf: canvas.Canvas) -> Iterator[canvas.Canvas]:
    """Save the canvas graphics state and restore it on every exit path."""
    pdf.saveState()
    try:
        yield pdf
    finally:
        pdf.restoreState()


def _format_quantity(value: float) -> str:
    if float(value).is_integer():
        return format_amount(value)
    return f"{value:g}".replace(".", ",")


class _DocumentBuilder:
    """Per-call drawing state for one document. Never reused."""

    def __init__(
        self,
        settings: RenderSettings,
        spec: DocumentSpec,
        stamp_png: Optional[bytes],
        qr_png: Optional[bytes],
        profile: Optional[BusinessProfile] = None,
    ):
        self.settings = settings
        self.spec = spec
        self.profile = profile or BusinessProfile()
        self.stamp_png = stamp_png
        self.qr_png = qr_png

        fonts = settings.fonts
        self.title_font = FontSpec(fonts.bold, fonts.title_size)
        self.body = FontSpec(fonts.regular, fonts.body_size)
        self.body_bold = FontSpec(fonts.bold, fonts.body_size)
        self.heading = FontSpec(fonts.bold, fonts.body_size + 1)
        self.small = FontSpec(fonts.regular, fonts.small_size)
        self.total_font = FontSpec(fonts.bold, fonts.body_size + 2)

        page = settings.page
        self.buffer = io.BytesIO()
        self.pdf = canvas.Canvas(self.buffer, pagesize=(page.width, page.height))
        self.pdf.setTitle(f"{spec.title} {spec.doc_number or ''}".strip())
        self.pdf.setAuthor(settings.contact.brand)
        self.pdf.setCreator(settings.contact.brand)

        self.flow = PageFlow(
            page.width, page.height, page.margin, page.footer_height,
            on_page_break=self._finish_page,
        )

        self.currency = spec.currency or settings.currency.code
        if self.currency == settings.currency.code:
            self.currency_words = settings.currency.words
        else:
            self.currency_words = self.currency

        self.footer_boxes: List[PlacedBox] = []
        self.footer_text = ""
        self.footer_text_width = 0.0
        self.stamp_box: Optional[PlacedBox] = None
        self.columns: List[Tuple[str, float, str]] = []

    # ------------------------------------------------------------------
    # drawing helpers
    # ------------------------------------------------------------------

    def _baseline(self, top: float, font: FontSpec) -> float:
        return self.flow.to_pdf_y(top + font.size)

    def _text(
        self,
        text: str,
        x: float,
        top: float,
        font: FontSpec,
        align: str = "left",
        width: float = 0.0,
    ) -> None:
        self.pdf.setFont(font.name, font.size)
        y = self._baseline(top, font)
        if align == "right":
            self.pdf.drawRightString(x + width, y, text)
        elif align == "center":
            self.pdf.drawCentredString(x + width / 2, y, text)
        else:
            self.pdf.drawString(x, y, text)

    def _lines(self, lines: Sequence[str], x: float, top: float, font: FontSpec) -> float:
        for index, line in enumerate(lines):
            self._text(line, x, top + index * font.line_height, font)
        return top + len(lines) * font.line_height

    def _rect(self, box: PlacedBox, fill=None) -> None:
        with canvas_state(self.pdf) as pdf:
            y = self.flow.to_pdf_y(box.top, box.height)
            if fill is not None:
                pdf.setFillColor(fill)
                pdf.rect(box.x, y, box.width, box.height, stroke=1, fill=1)
            else:
                pdf.rect(box.x, y, box.width, box.height, stroke=1, fill=0)

    def _vline(self, x: float, top: float, height: float) -> None:
        self.pdf.line(x, self.flow.to_pdf_y(top), x, self.flow.to_pdf_y(top + height))

    def _rule(self, gap_before: float = 6, gap_after: float = 12) -> None:
        self.flow.advance(gap_before)
        y = self.flow.to_pdf_y(self.flow.cursor)
        self.pdf.line(self.flow.content_left, y, self.flow.content_right, y)
        self.flow.advance(gap_after)

    # ------------------------------------------------------------------
    # sections
    # ------------------------------------------------------------------

    def build(self) -> Composition:
        self._title_block()
        if self.spec.kind.is_tabular:
            self._issuer_header()
        self._number_date_line()
        self._party_boxes()

        if self.spec.kind.is_tabular:
            self._items_table()
            self._totals_box()
            self._closing_lines()
        else:
            self._attestations()

        self._issued_at()
        self._signature_boxes()
        self._stamp_box()

        self._draw_footer()
        self.pdf.showPage()
        self.pdf.save()

        return Composition(
            pdf_bytes=self.buffer.getvalue(),
            page_count=self.flow.page + 1,
            boxes=tuple(self.flow.boxes),
            footer_boxes=tuple(self.footer_boxes),
            stamp_box=self.stamp_box,
            stamp_embedded=bool(self.stamp_png),
            qr_embedded=bool(self.qr_png),
            footer_text=self.footer_text,
            footer_text_width=self.footer_text_width,
        )

    def _title_block(self) -> None:
        box = self.flow.place(self.title_font.line_height + 6, label="title")
        self._text(self.spec.title, box.x, box.top, self.title_font, align="center", width=box.width)

    def _issuer_lines(self) -> List[str]:
        profile = self.profile
        fields = (
            ("Adresse", profile.address),
            ("Tél", profile.phone),
            ("Email", profile.email),
            ("IFU", profile.ifu),
            ("RCCM", profile.rccm),
        )
        return [f"{label} : {value}" for label, value in fields if value]

    def _logo_reader(self) -> Optional[ImageReader]:
        if not self.profile.logo:
            return None
        try:
            reader = ImageReader(io.BytesIO(self.profile.logo))
            reader.getSize()
        except Exception as e:
            logger.warning(f"Could not decode header logo, skipping: {e}")
            return None
        return reader

    def _issuer_header(self) -> None:
        """Issuer identity band: optional logo, business name, contact and tax lines."""
        box = self.flow.place(ISSUER_HEIGHT, label="issuer")
        name_font = FontSpec(self.settings.fonts.bold, self.settings.fonts.body_size + 3)
        line_font = FontSpec(self.settings.fonts.regular, self.settings.fonts.body_size - 1)

        text_x = box.x
        logo = self._logo_reader()
        if logo is not None:
            self.pdf.drawImage(
                logo, box.x, self.flow.to_pdf_y(box.top, LOGO_FIT), LOGO_FIT, LOGO_FIT,
                preserveAspectRatio=True, anchor="nw", mask="auto",
            )
            text_x += LOGO_FIT + LOGO_GAP
        text_width = box.right - text_x

        name = self.profile.business_name or self.settings.contact.brand
        self._text(fit_text(name, text_width, name_font), text_x, box.top, name_font)

        top = box.top + name_font.line_height + 3
        capacity = int((box.bottom - top) // line_font.line_height)
        lines: List[str] = []
        for line in self._issuer_lines():
            lines.extend(wrap_text(line, text_width, line_font))
        if len(lines) > capacity:
            lines = lines[:capacity]
            lines[-1] = fit_text(lines[-1] + " " + ELLIPSIS, text_width, line_font)
        self._lines(lines, text_x, top, line_font)

        self.flow.advance(4)

    def _number_date_line(self) -> None:
        box = self.flow.place(self.body.line_height, label="number-date")
        self._text(f"N° : {display(self.spec.doc_number)}", box.x, box.top, self.body)
        self._text(f"Date : {display(self.spec.date)}", box.x, box.top, self.body, align="right", width=box.width)
        self._rule()

    def _party_lines(self, party: Party) -> List[str]:
        identity = " ".join(part for part in (party.id_type, party.id_number) if part)
        return [
            f"Nom : {display(party.name)}",
            f"Pièce : {display(identity)}",
            f"Téléphone : {display(party.phone)}",
            f"Adresse : {display(party.address)}",
        ]

    def _party_boxes(self) -> None:
        column = split_two_column(self.flow.content_width, COLUMN_GAP)
        inner = column - 2 * BOX_PADDING
        titles = PARTY_TITLES.get(self.spec.kind, DEFAULT_PARTY_TITLES)

        contents = []
        for title, party in zip(titles, (self.spec.party1, self.spec.party2)):
            title_lines = wrap_text(title, inner, self.body_bold)
            body_lines: List[str] = []
            for line in self._party_lines(party):
                body_lines.extend(wrap_text(line, inner, self.body))
            contents.append((title_lines, body_lines))

        # Both boxes share the taller height so the grid stays aligned
        height = max(
            len(t) * self.body_bold.line_height + len(b) * self.body.line_height
            for t, b in contents
        ) + 2 * BOX_PADDING + 4

        left = self.flow.content_left
        boxes = self.flow.place_columns(
            height,
            [(left, column), (left + column + COLUMN_GAP, column)],
            labels=("party1", "party2"),
        )
        for box, (title_lines, body_lines) in zip(boxes, contents):
            self._rect(box)
            top = self._lines(title_lines, box.x + BOX_PADDING, box.top + BOX_PADDING, self.body_bold)
            self._lines(body_lines, box.x + BOX_PADDING, top + 4, self.body)

        self.flow.advance(SECTION_GAP + 4)

    # ---------------------------- table ---------------------------------

    def _table_columns(self) -> List[Tuple[str, float, str]]:
        table = self.settings.table
        fixed = table.index_width + table.quantity_width + table.unit_price_width + table.amount_width
        designation = self.flow.content_width - fixed
        if designation <= 2 * table.cell_padding:
            raise LayoutError(f"Table columns leave no room for the designation ({designation:.1f}pt)")
        return [
            ("#", table.index_width, "left"),
            ("Désignation", designation, "left"),
            ("Qté", table.quantity_width, "right"),
            ("PU", table.unit_price_width, "right"),
            ("Montant", table.amount_width, "right"),
        ]

    def _draw_row(self, box: PlacedBox, cells: Sequence[Sequence[str]], font: FontSpec, v_pad: float) -> None:
        pad = self.settings.table.cell_padding
        x = box.x
        for index, ((_, width, align), lines) in enumerate(zip(self.columns, cells)):
            if index:
                self._vline(x, box.top, box.height)
            for n, line in enumerate(lines):
                self._text(line, x + pad, box.top + v_pad + n * font.line_height, font,
                           align=align, width=width - 2 * pad)
            x += width

    def _table_header(self) -> None:
        table = self.settings.table
        box = self.flow.place(table.header_height, label="table-header")
        self._rect(box, fill=HEADER_FILL)
        v_pad = max(0.0, (table.header_height - self.body_bold.line_height) / 2)
        self._draw_row(box, [[title] for title, _, _ in self.columns], self.body_bold, v_pad)

    def _items_table(self) -> None:
        table = self.settings.table
        self.columns = self._table_columns()
        designation_inner = self.columns[1][1] - 2 * table.cell_padding
        v_pad = max(0.0, (table.min_row_height - self.body.line_height) / 2)

        items = list(self.spec.items)
        rows = []
        for index, item in enumerate(items, start=1):
            lines = wrap_text(item.designation or PLACEHOLDER, designation_inner, self.body)
            text_height = measure_wrapped_height(item.designation or PLACEHOLDER, designation_inner, self.body)
            height = max(table.min_row_height, text_height + 2 * v_pad)
            cells = [
                [str(index)],
                lines,
                [_format_quantity(item.quantity)],
                [format_amount(item.unit_price)],
                [format_amount(item.line_total)],
            ]
            rows.append((height, cells))
        if not rows:
            rows.append((table.min_row_height, [[""], [PLACEHOLDER], [""], [""], [""]]))

        # Keep the header with the first row
        first_height = rows[0][0]
        self.flow.ensure_room(table.header_height + first_height, "table-header+row-1")
        self._table_header()

        for index, (height, cells) in enumerate(rows, start=1):
            label = f"row-{index}"
            if table.header_height + height > self.flow.usable_height:
                raise LayoutOverflowError(label, table.header_height + height, self.flow.usable_height)
            if self.flow.ensure_room(height, label):
                self._table_header()
            box = self.flow.place(height, label=label)
            self._rect(box)
            self._draw_row(box, cells, self.body, v_pad)

        logger.debug(f"Laid out {len(items)} table row(s)")
        self.flow.advance(SECTION_GAP + 4)

    def _totals_rows(self) -> List[Tuple[str, float]]:
        finance = self.spec.finance
        total_field = finance.total_field
        rows = []
        for field_name, label in TOTAL_LABELS:
            value = getattr(finance, field_name)
            if value is None or field_name == total_field:
                continue
            rows.append((label, value))
        return rows

    def _totals_box(self) -> None:
        finance = self.spec.finance
        rows = self._totals_rows()
        total_label = "NET À PAYER" if finance.due is not None else "TOTAL"
        total_value = finance.total

        row_h = self.body.line_height + 4
        total_h = self.total_font.line_height + 8
        height = len(rows) * row_h + total_h + 2 * BOX_PADDING

        x = self.flow.content_right - TOTALS_WIDTH
        box = self.flow.place(height, x=x, width=TOTALS_WIDTH, label="totals")
        self._rect(box)

        inner_x = box.x + 12
        inner_w = box.width - 24
        top = box.top + BOX_PADDING
        for label, value in rows:
            self._text(label, inner_x, top + 2, self.body)
            self._text(f"{format_amount(value)} {self.currency}", inner_x, top + 2, self.body,
                       align="right", width=inner_w)
            top += row_h

        amount_text = PLACEHOLDER if total_value is None else f"{format_amount(total_value)} {self.currency}"
        self._text(total_label, inner_x, top + 4, self.total_font)
        self._text(amount_text, inner_x, top + 4, self.total_font, align="right", width=inner_w)

        self.flow.advance(SECTION_GAP + 4)

    def _closing_lines(self) -> None:
        total = self.spec.finance.total
        width = self.flow.content_width
        if total is not None:
            sentence = (
                f"{CLOSING_PHRASES[self.spec.kind]} à la somme de : "
                f"{number_to_french(round_amount(total)) or PLACEHOLDER} {self.currency_words}."
            )
            lines = wrap_text(sentence, width, self.body_bold)
            box = self.flow.place(len(lines) * self.body_bold.line_height, label="amount-words")
            self._lines(lines, box.x, box.top, self.body_bold)
            self.flow.advance(SECTION_GAP)

        box = self.flow.place(self.body.line_height, label="thanks")
        self._text("Merci pour votre confiance.", box.x, box.top, self.body, align="center", width=box.width)
        self.flow.advance(SECTION_GAP)

    # ---------------------------- discharge ------------------------------

    def attestation_paragraphs(self) -> Tuple[str, str]:
        spec = self.spec
        first = display(spec.party1.name)
        second = display(spec.party2.name)
        purpose = display(spec.object)

        if spec.amount is None:
            digits = PLACEHOLDER
            words = spec.amount_words or PLACEHOLDER
        else:
            # Digits and words come from the same rounded, non-negative value
            value = round_amount(spec.amount)
            digits = format_amount(value)
            words = spec.amount_words or number_to_french(value) or PLACEHOLDER
        amount = f"{digits} {self.currency} ({words} {self.currency_words})"

        return (
            f"Je soussigné(e) {first}, déclare avoir reçu de {second} la somme de "
            f"{amount} au titre de : {purpose}.",
            f"Je soussigné(e) {second}, déclare avoir remis à {first} la somme de "
            f"{amount} au titre de : {purpose}.",
        )

    def _paragraph(self, text: str, label: str, font: Optional[FontSpec] = None) -> None:
        font = font or self.body
        lines = wrap_text(text, self.flow.content_width, font)
        box = self.flow.place(measure_wrapped_height(text, self.flow.content_width, font), label=label)
        self._lines(lines, box.x, box.top, font)

    def _attestations(self) -> None:
        self._paragraph("Déclarations", "attestations-heading", self.heading)
        self.flow.advance(4)
        for index, paragraph in enumerate(self.attestation_paragraphs(), start=1):
            self._paragraph(paragraph, f"attestation-{index}")
            self.flow.advance(10)

        if self.spec.payment_method:
            self._paragraph(f"Mode de paiement : {self.spec.payment_method}.", "payment-method")
            self.flow.advance(6)

        witness = self.spec.witness
        if witness is not None and not witness.is_empty:
            self._paragraph(
                f"Témoin : {display(witness.name)} • Téléphone : {display(witness.phone)}",
                "witness",
            )
            self.flow.advance(6)

        self.flow.advance(SECTION_GAP - 6)

    # ---------------------------- closing --------------------------------

    def _issued_at(self) -> None:
        if not self.spec.place:
            return
        box = self.flow.place(self.body.line_height, label="issued-at")
        self._text(f"Fait à {self.spec.place}, le {display(self.spec.date)}",
                   box.x, box.top, self.body, align="right", width=box.width)
        self.flow.advance(SECTION_GAP)

    def _signature_boxes(self) -> None:
        titles = SIGNATURE_TITLES.get(self.spec.kind, DEFAULT_SIGNATURE_TITLES)
        column = split_two_column(self.flow.content_width, COLUMN_GAP)
        heading_h = self.heading.line_height + 6

        # Heading and boxes move together
        self.flow.ensure_room(heading_h + SIGNATURE_HEIGHT, "signatures")
        heading = self.flow.place(heading_h, label="signatures-heading")
        self._text("Signatures", heading.x, heading.top, self.heading)

        left = self.flow.content_left
        boxes = self.flow.place_columns(
            SIGNATURE_HEIGHT,
            [(left, column), (left + column + COLUMN_GAP, column)],
            labels=("signature1", "signature2"),
        )
        for box, title in zip(boxes, titles):
            self._rect(box)
            self._text(title, box.x + 10, box.top + 10, self.body)
            with canvas_state(self.pdf) as pdf:
                pdf.setFillColor(MUTED)
                self._text("Nom + Signature", box.x + 10, box.top + 28, FontSpec(self.small.name, self.small.size + 1))

        self.flow.advance(SECTION_GAP)

    def _stamp_box(self) -> None:
        stamp = self.settings.stamp
        x = self.flow.content_right - stamp.box_width
        box = self.flow.place(stamp.box_height, x=x, width=stamp.box_width, label="stamp")
        self.stamp_box = box
        self._rect(box)

        label_font = FontSpec(self.settings.fonts.bold, self.settings.fonts.small_size + 1)
        self._text(DEFAULT_TITLE, box.x, box.top + 6, label_font, align="center", width=box.width)

        if not self.stamp_png:
            return

        label_h = 6 + label_font.line_height
        side = min(box.width - 2 * BOX_PADDING, box.height - label_h - 2 * BOX_PADDING)
        if side <= 0:
            return
        image_x = box.x + (box.width - side) / 2
        image_top = box.top + label_h + BOX_PADDING
        self.pdf.drawImage(
            ImageReader(io.BytesIO(self.stamp_png)),
            image_x, self.flow.to_pdf_y(image_top, side), side, side,
            mask="auto",
        )

    # ---------------------------- footer ---------------------------------

    def _footer_text(self) -> str:
        contact = self.settings.contact
        phone = format_phone_local(contact.local_number)
        parts = [f"Généré par {contact.brand}", f"WhatsApp +{contact.country_code} {phone}"]
        if self.qr_png:
            parts.append("Scannez pour essayer")
        return " • ".join(parts)

    def _draw_footer(self) -> None:
        band = self.flow.footer_box()
        self.footer_boxes.append(band)
        qr_size = self.settings.qr.display_size

        rule_y = self.flow.to_pdf_y(band.top + 6)
        self.pdf.line(band.x, rule_y, band.right, rule_y)

        text_width = band.width - (qr_size + QR_GAP if self.qr_png else 0)
        text = fit_text(self._footer_text(), text_width, self.small)
        with canvas_state(self.pdf) as pdf:
            pdf.setFillColor(MUTED)
            self._text(text, band.x, band.top + 6 + (qr_size - self.small.size) / 2, self.small)
        self.footer_text = text
        self.footer_text_width = text_width

        if self.qr_png:
            qr_top = band.top + 10
            self.pdf.drawImage(
                ImageReader(io.BytesIO(self.qr_png)),
                band.right - qr_size, self.flow.to_pdf_y(qr_top, qr_size), qr_size, qr_size,
            )

    def _finish_page(self, page_index: int) -> None:
        self._draw_footer()
        self.pdf.showPage()


class DocumentComposer:
    """
    Renders DocumentSpec values to PDF bytes.

    Holds only read-only settings and the two optional raster capabilities,
    so one instance can serve concurrent renders.
    """

    def __init__(
        self,
        settings: Optional[RenderSettings] = None,
        stamp_renderer: Optional[StampRenderer] = None,
        qr_embedder: Optional[QrEmbedder] = None,
    ):
        self.settings = settings or RenderSettings()
        self.stamp_renderer = stamp_renderer or StampRenderer(self.settings.stamp)
        self.qr_embedder = qr_embedder or QrEmbedder(self.settings.qr)

    def _stamp_png(self, profile: Optional[BusinessProfile]) -> Optional[bytes]:
        if profile is None:
            return None
        try:
            result: StampResult = self.stamp_renderer.render(profile)
        except Exception as e:
            logger.warning(f"Stamp renderer raised, rendering an empty stamp box: {e}", exc_info=True)
            return None
        if not result.ok:
            logger.warning(f"Stamp not embedded ({result.status.value}): {result.reason}")
            return None
        return result.png

    def _qr_png(self) -> Optional[bytes]:
        try:
            link = self.qr_embedder.contact_link(self.settings.contact)
            result: QrResult = self.qr_embedder.encode(link)
        except Exception as e:
            logger.warning(f"QR embedder raised, footer falls back to text: {e}", exc_info=True)
            return None
        if not result.ok:
            logger.warning(f"QR not embedded, footer falls back to text: {result.reason}")
            return None
        return result.png

    def compose(self, spec: DocumentSpec, profile: Optional[BusinessProfile] = None) -> Composition:
        """
        Render a document and return the PDF with its layout report.

        Args:
            spec: Document to render
            profile: Optional business profile (drives the stamp)

        Returns:
            Composition holding the complete PDF bytes

        Raises:
            RenderError: with stage 'layout' when a block cannot be placed,
                         or 'asset' for any other drawing/serialization failure
        """
        stamp_png = self._stamp_png(profile)
        qr_png = self._qr_png()

        try:
            composition = _DocumentBuilder(self.settings, spec, stamp_png, qr_png, profile).build()
        except LayoutError as e:
            logger.error(f"Layout failed for {spec.title} {display(spec.doc_number)}: {e}")
            raise RenderError(RenderStage.LAYOUT, str(e)) from e
        except Exception as e:
            logger.error(f"Rendering failed for {spec.title} {display(spec.doc_number)}: {e}", exc_info=True)
            raise RenderError(RenderStage.ASSET, str(e)) from e

        logger.info(
            f"Rendered {spec.title} {display(spec.doc_number)}: "
            f"{composition.page_count} page(s), {len(composition.pdf_bytes)} bytes, "
            f"stamp={'yes' if composition.stamp_embedded else 'no'}, "
            f"qr={'yes' if composition.qr_embedded else 'no'}"
        )
        return composition

    def render(self, spec: DocumentSpec, profile: Optional[BusinessProfile] = None) -> bytes:
        """Render a document to PDF bytes."""
        return self.compose(spec, profile).pdf_bytes


def render_document(
    spec: DocumentSpec,
    profile: Optional[BusinessProfile] = None,
    settings: Optional[RenderSettings] = None,
) -> bytes:
    """
    Convenience wrapper around DocumentComposer.render

    Args:
        spec: Document to render
        profile: Optional business profile
        settings: Render settings; resolved from settings.yaml when omitted

    Returns:
        PDF bytes
    """
    composer = DocumentComposer(settings or RenderSettings.from_config())
    return composer.render(spec, profile)


def render_with_deadline(
    composer: DocumentComposer,
    spec: DocumentSpec,
    profile: Optional[BusinessProfile] = None,
    timeout: float = 30.0,
) -> bytes:
    """
    Render with a wall-clock budget.

    The worker thread is not interrupted on timeout; its result is simply
    discarded.

    Raises:
        RenderError: stage 'deadline' when `timeout` seconds elapse first
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kadi-render")
    future = executor.submit(composer.render, spec, profile)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeout as e:
        logger.error(f"Render of {spec.title} {display(spec.doc_number)} exceeded {timeout}s")
        raise RenderError(RenderStage.DEADLINE, f"render exceeded {timeout}s") from e
    finally:
        executor.shutdown(wait=False)
