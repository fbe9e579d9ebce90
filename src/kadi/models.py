"""
KADI Docs Data Models

Pydantic definitions for the documents handed to the renderer.
Models are frozen: the renderer treats them as read-only display data and
performs no business-rule validation beyond type coercion.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PLACEHOLDER = "—"

# First present field wins the emphasized total row
TOTAL_PRECEDENCE = ("due", "gross", "net", "subtotal")


def display(value: Optional[object]) -> str:
    """Return the text to print for an optional field (em-dash when missing)."""
    if value is None:
        return PLACEHOLDER
    text = str(value).strip()
    return text or PLACEHOLDER


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


# ============================================================
# ENUMS
# ============================================================

class DocumentKind(str, Enum):
    """Kinds of business document the composer knows how to lay out."""
    QUOTE = "quote"
    INVOICE = "invoice"
    RECEIPT = "receipt"
    DISCHARGE = "discharge"

    @property
    def is_tabular(self) -> bool:
        return self is not DocumentKind.DISCHARGE


class InvoiceVariant(str, Enum):
    """Invoice sub-variant."""
    REGULAR = "regular"
    PROFORMA = "proforma"


# ============================================================
# PARTIES & LINES
# ============================================================

class Party(BaseModel):
    """One side of a document: issuer, client, or discharge party."""
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    id_type: Optional[str] = Field(default=None, description="Identity document kind (CNIB, passport...)")
    id_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator('*', mode='before')
    @classmethod
    def strip_text(cls, v):
        if v is not None and not isinstance(v, str):
            v = str(v)
        return _blank_to_none(v)

    @property
    def is_empty(self) -> bool:
        return not any((self.name, self.id_type, self.id_number, self.phone, self.address))


class LineItem(BaseModel):
    """A single row of an itemized document."""
    model_config = ConfigDict(frozen=True)

    designation: Optional[str] = None
    quantity: float = 1
    unit_price: float = 0
    amount: Optional[float] = None

    @field_validator('designation', mode='before')
    @classmethod
    def strip_designation(cls, v):
        return _blank_to_none(v)

    @field_validator('quantity', 'unit_price', mode='before')
    @classmethod
    def default_numbers(cls, v):
        """Treat missing numbers as zero rather than rejecting the row."""
        return 0 if v is None or v == "" else v

    @property
    def line_total(self) -> float:
        if self.amount is not None:
            return self.amount
        return self.quantity * self.unit_price


class FinancialSummary(BaseModel):
    """
    Totals block, rendered exactly as given.

    The renderer never recomputes these values; a field left as None is
    simply not printed.
    """
    model_config = ConfigDict(frozen=True)

    subtotal: Optional[float] = None
    discount: Optional[float] = None
    net: Optional[float] = None
    vat: Optional[float] = None
    gross: Optional[float] = None
    deposit: Optional[float] = None
    due: Optional[float] = None

    @property
    def total_field(self) -> Optional[str]:
        """Name of the field shown on the emphasized total row."""
        for name in TOTAL_PRECEDENCE:
            if getattr(self, name) is not None:
                return name
        return None

    @property
    def total(self) -> Optional[float]:
        name = self.total_field
        return getattr(self, name) if name else None


# ============================================================
# TOP-LEVEL MODELS
# ============================================================

class DocumentSpec(BaseModel):
    """
    Full description of one document to render.

    Tabular kinds (quote, invoice, receipt) use `items` and `finance`;
    the discharge kind uses `object`, `amount` and `amount_words`.
    """
    model_config = ConfigDict(frozen=True)

    kind: DocumentKind
    variant: InvoiceVariant = InvoiceVariant.REGULAR
    doc_number: Optional[str] = None
    date: Optional[str] = None
    place: Optional[str] = None
    currency: Optional[str] = None

    party1: Party = Field(default_factory=Party)
    party2: Party = Field(default_factory=Party)

    items: List[LineItem] = Field(default_factory=list)
    finance: FinancialSummary = Field(default_factory=FinancialSummary)

    object: Optional[str] = None
    amount: Optional[float] = None
    amount_words: Optional[str] = None
    payment_method: Optional[str] = None
    witness: Optional[Party] = None

    @field_validator(
        'doc_number', 'date', 'place', 'currency', 'object', 'amount_words', 'payment_method',
        mode='before'
    )
    @classmethod
    def strip_text(cls, v):
        if v is not None and not isinstance(v, str):
            v = str(v)
        return _blank_to_none(v)

    @field_validator('party1', 'party2', mode='before')
    @classmethod
    def default_party(cls, v):
        return {} if v is None else v

    @field_validator('items', mode='before')
    @classmethod
    def default_items(cls, v):
        return [] if v is None else v

    @property
    def title(self) -> str:
        if self.kind is DocumentKind.INVOICE and self.variant is InvoiceVariant.PROFORMA:
            return "FACTURE PROFORMA"
        return {
            DocumentKind.QUOTE: "DEVIS",
            DocumentKind.INVOICE: "FACTURE",
            DocumentKind.RECEIPT: "REÇU",
            DocumentKind.DISCHARGE: "DÉCHARGE",
        }[self.kind]


class BusinessProfile(BaseModel):
    """Issuer profile used for the document header and the stamp. Read-only."""
    model_config = ConfigDict(frozen=True)

    business_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    ifu: Optional[str] = None
    rccm: Optional[str] = None
    stamp_title: Optional[str] = None
    logo: Optional[bytes] = Field(default=None, repr=False)

    # Overlay preferences (kadi.rendering.overlay)
    stamp_enabled: bool = True
    stamp_size: Optional[float] = None
    stamp_position: Optional[str] = None

    @field_validator(
        'business_name', 'address', 'phone', 'email', 'ifu', 'rccm', 'stamp_title', 'stamp_position',
        mode='before'
    )
    @classmethod
    def strip_text(cls, v):
        if v is not None and not isinstance(v, str):
            v = str(v)
        return _blank_to_none(v)
