"""
Render Settings

Immutable rendering configuration resolved once from settings.yaml and
passed explicitly to the composer, stamp renderer and QR embedder.
"""

from dataclasses import dataclass, field
from typing import Optional

from reportlab.lib.pagesizes import A4, LETTER

from .config_loader import Config

PAGE_SIZES = {
    "A4": A4,
    "LETTER": LETTER,
}


@dataclass(frozen=True)
class PageSettings:
    width: float = A4[0]
    height: float = A4[1]
    margin: float = 50.0
    footer_height: float = 70.0


@dataclass(frozen=True)
class FontSettings:
    regular: str = "Helvetica"
    bold: str = "Helvetica-Bold"
    title_size: float = 18.0
    body_size: float = 10.0
    small_size: float = 8.0


@dataclass(frozen=True)
class TableSettings:
    header_height: float = 26.0
    min_row_height: float = 26.0
    cell_padding: float = 8.0
    index_width: float = 30.0
    quantity_width: float = 55.0
    unit_price_width: float = 80.0
    amount_width: float = 90.0


@dataclass(frozen=True)
class StampSettings:
    color: str = "#0B57D0"
    canvas_size: int = 520
    box_width: float = 170.0
    box_height: float = 150.0
    font_path: Optional[str] = None


@dataclass(frozen=True)
class QrSettings:
    error_correction: str = "M"
    border: int = 1
    pixel_width: int = 220
    display_size: float = 55.0


@dataclass(frozen=True)
class ContactSettings:
    brand: str = "KADI"
    country_code: str = "226"
    local_number: str = "79239027"
    prefill_text: str = "Bonjour KADI, je veux créer un document"

    @property
    def e164(self) -> str:
        return f"{self.country_code}{self.local_number}"


@dataclass(frozen=True)
class CurrencySettings:
    code: str = "FCFA"
    words: str = "francs CFA"


@dataclass(frozen=True)
class OverlaySettings:
    size: float = 170.0
    position: str = "bottom-left"
    opacity: float = 0.9
    margin: float = 18.0
    footer_reserved_height: float = 85.0


@dataclass(frozen=True)
class RenderSettings:
    """All rendering knobs, read-only after construction."""

    page: PageSettings = field(default_factory=PageSettings)
    fonts: FontSettings = field(default_factory=FontSettings)
    table: TableSettings = field(default_factory=TableSettings)
    stamp: StampSettings = field(default_factory=StampSettings)
    qr: QrSettings = field(default_factory=QrSettings)
    contact: ContactSettings = field(default_factory=ContactSettings)
    currency: CurrencySettings = field(default_factory=CurrencySettings)
    overlay: OverlaySettings = field(default_factory=OverlaySettings)

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> "RenderSettings":
        """
        Build settings from the YAML configuration.

        Args:
            cfg: Config instance (defaults to the process-wide singleton)

        Returns:
            Frozen RenderSettings with defaults for every missing key
        """
        cfg = cfg or Config()

        page_size = str(cfg.get('page.size', 'A4')).upper()
        width, height = PAGE_SIZES.get(page_size, A4)
        page = PageSettings(
            width=width,
            height=height,
            margin=float(cfg.get('page.margin', PageSettings.margin)),
            footer_height=float(cfg.get('page.footer_height', PageSettings.footer_height)),
        )

        fonts = FontSettings(
            regular=cfg.get('fonts.regular', FontSettings.regular),
            bold=cfg.get('fonts.bold', FontSettings.bold),
            title_size=float(cfg.get('fonts.title_size', FontSettings.title_size)),
            body_size=float(cfg.get('fonts.body_size', FontSettings.body_size)),
            small_size=float(cfg.get('fonts.small_size', FontSettings.small_size)),
        )

        columns = cfg.get('table.columns', {}) or {}
        table = TableSettings(
            header_height=float(cfg.get('table.header_height', TableSettings.header_height)),
            min_row_height=float(cfg.get('table.min_row_height', TableSettings.min_row_height)),
            cell_padding=float(cfg.get('table.cell_padding', TableSettings.cell_padding)),
            index_width=float(columns.get('index', TableSettings.index_width)),
            quantity_width=float(columns.get('quantity', TableSettings.quantity_width)),
            unit_price_width=float(columns.get('unit_price', TableSettings.unit_price_width)),
            amount_width=float(columns.get('amount', TableSettings.amount_width)),
        )

        stamp = StampSettings(
            color=cfg.get('stamp.color', StampSettings.color),
            canvas_size=int(cfg.get('stamp.canvas_size', StampSettings.canvas_size)),
            box_width=float(cfg.get('stamp.box_width', StampSettings.box_width)),
            box_height=float(cfg.get('stamp.box_height', StampSettings.box_height)),
            font_path=cfg.get('stamp.font_path') or None,
        )

        qr = QrSettings(
            error_correction=str(cfg.get('qr.error_correction', QrSettings.error_correction)).upper(),
            border=int(cfg.get('qr.border', QrSettings.border)),
            pixel_width=int(cfg.get('qr.pixel_width', QrSettings.pixel_width)),
            display_size=float(cfg.get('qr.display_size', QrSettings.display_size)),
        )

        contact = ContactSettings(
            brand=cfg.get('contact.brand', ContactSettings.brand),
            country_code=str(cfg.get('contact.country_code', ContactSettings.country_code)),
            local_number=str(cfg.get('contact.local_number', ContactSettings.local_number)),
            prefill_text=cfg.get('contact.prefill_text', ContactSettings.prefill_text),
        )

        currency = CurrencySettings(
            code=cfg.get('currency.code', CurrencySettings.code),
            words=cfg.get('currency.words', CurrencySettings.words),
        )

        overlay = OverlaySettings(
            size=float(cfg.get('overlay.size', OverlaySettings.size)),
            position=cfg.get('overlay.position', OverlaySettings.position),
            opacity=float(cfg.get('overlay.opacity', OverlaySettings.opacity)),
            margin=float(cfg.get('overlay.margin', OverlaySettings.margin)),
            footer_reserved_height=float(
                cfg.get('overlay.footer_reserved_height', OverlaySettings.footer_reserved_height)
            ),
        )

        return cls(
            page=page,
            fonts=fonts,
            table=table,
            stamp=stamp,
            qr=qr,
            contact=contact,
            currency=currency,
            overlay=overlay,
        )
