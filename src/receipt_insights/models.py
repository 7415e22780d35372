"""Domain and extraction models for receipt tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

StdUnit = Literal["kg", "L", "pcs"]
QuantitySource = Literal["extracted", "pattern", "arithmetic", "learned"]

ALL_STORES = "ALL"
UNKNOWN_STORE = "Inconnu"


def _new_receipt_id() -> str:
    return f"rcpt-{uuid4().hex}"


class _Record(BaseModel):
    """Base for records exchanged with the extraction service and storage.

    Fields are snake_case in Python and camelCase on the wire.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


@dataclass
class ReceiptImage:
    """An uploaded receipt file."""

    filename: str
    content_type: str
    data: bytes


class ReceiptLine(_Record):
    """A receipt line as returned by the extraction service."""

    id: str | None = None
    raw_label: str
    normalized_label: str | None = None
    quantity: float | None = None
    unit: str | None = None
    unit_price: float | None = None
    line_total: float | None = None
    vat_rate: float | None = None
    barcode: str | None = None
    category: str | None = None


class EnrichedLine(ReceiptLine):
    """A receipt line after quantity inference and unit normalization."""

    category: str = Field(min_length=1)  # type: ignore[assignment]
    std_unit: StdUnit
    std_qty: float = Field(gt=0)
    standard_unit_price: float | None = None
    quantity_source: QuantitySource = "extracted"


class ExtractedReceipt(_Record):
    """Structured receipt data extracted from an image by the LLM."""

    store_name: str | None = None
    store_id: str | None = None
    purchase_at: datetime | None = None
    currency: str | None = None
    total: float | None = None
    subtotal: float | None = None
    tax_total: float | None = None
    lines: list[ReceiptLine] = Field(default_factory=list)
    ocr_text: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class Receipt(_Record):
    """Full receipt record as persisted for a user."""

    id: str = Field(default_factory=_new_receipt_id)
    store_name: str | None = None
    store_id: str | None = None
    purchase_at: datetime | None = None
    currency: str | None = None
    total: float | None = None
    subtotal: float | None = None
    tax_total: float | None = None
    lines: list[EnrichedLine] = Field(default_factory=list)
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    ocr_text: str | None = None
    status: str = "parsed"


class LearnedPackEntry(_Record):
    """A confirmed multi-unit pack size for a product, per store or global."""

    product_key: str = Field(min_length=1)
    store_name: str = ALL_STORES
    quantity: int = Field(gt=1)
    updated_at: datetime


@dataclass(frozen=True)
class StandardQuantity:
    """Quantity expressed in a standard unit (kg, L or pieces)."""

    std_unit: StdUnit
    std_qty: float


@dataclass(frozen=True)
class ProductPurchase:
    """One purchased line, flattened out of its receipt."""

    product_key: str
    raw_label: str
    quantity: float
    normalized_label: str | None = None
    purchase_at: datetime | None = None
    store_name: str | None = None
    unit_price: float | None = None
    line_total: float | None = None
    currency: str | None = None


@dataclass(frozen=True)
class LastPurchase:
    """Most recent purchase details for a product."""

    last_purchased_at: datetime | None
    last_unit_price: float | None
    last_store_name: str | None


@dataclass
class ProductTotals:
    """Accumulated spend and quantity for a product."""

    total_spend: float = 0.0
    total_qty: float = 0.0


@dataclass(frozen=True)
class MonthlyTotal:
    """Receipt spend for one calendar month (YYYY-MM)."""

    month: str
    total: float


@dataclass(frozen=True)
class ReceiptKpis:
    """Headline figures over a set of receipts."""

    total_spend: float
    avg_basket: float
    count_receipts: int
    count_items: int


@dataclass(frozen=True)
class LineChange:
    """A quantity correction proposed for one receipt line."""

    index: int
    label: str
    before_qty: float | None
    after_qty: float | None


@dataclass
class ProposedChange:
    """Quantity corrections proposed for one stored receipt."""

    receipt_id: str
    store_name: str | None
    new_lines: list[EnrichedLine]
    details: list[LineChange] = field(default_factory=list)

    @property
    def lines_updated(self) -> int:
        return len(self.details)
