"""Domain and API models for document intake.

``DocumentRecord`` is the one authoritative schema for an extracted
document. Vendor output is coerced into it field by field, with total
defaults, so consumers never see partial or aliased data.
"""

import re
import unicodedata
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
BALANCE_TOLERANCE = Decimal("0.02")


class DocumentType(str, Enum):
    TICKET = "TICKET"
    FACTURA = "FACTURA"
    ALBARAN = "ALBARAN"
    PRESUPUESTO = "PRESUPUESTO"
    OTRO = "OTRO"


class Mode(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    REVIEW_SINGLE = "review_single"
    REVIEW_BATCH = "review_batch"
    SUCCESS = "success"
    ERROR = "error"


_TYPE_SYNONYMS: dict[str, DocumentType] = {
    "TICKET": DocumentType.TICKET,
    "RECIBO": DocumentType.TICKET,
    "RECEIPT": DocumentType.TICKET,
    "FACTURA": DocumentType.FACTURA,
    "FACTURA SIMPLIFICADA": DocumentType.TICKET,
    "INVOICE": DocumentType.FACTURA,
    "ALBARAN": DocumentType.ALBARAN,
    "DELIVERY NOTE": DocumentType.ALBARAN,
    "PRESUPUESTO": DocumentType.PRESUPUESTO,
    "QUOTE": DocumentType.PRESUPUESTO,
    "ESTIMATE": DocumentType.PRESUPUESTO,
}


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_document_type(raw: object) -> DocumentType:
    """Map free-form model output onto the document type enum (OTRO if unknown)."""
    if isinstance(raw, DocumentType):
        return raw
    if not isinstance(raw, str):
        return DocumentType.OTRO
    key = " ".join(_strip_accents(raw).upper().split())
    return _TYPE_SYNONYMS.get(key, DocumentType.OTRO)


def parse_amount(raw: object) -> Decimal:
    """Parse a monetary amount from a number or a locale-formatted string.

    Handles "1.234,56 €", "1,234.56", "12,5", "EUR 12.50". A single
    separator followed by exactly three digits is read as a thousands
    separator. Anything unparseable becomes 0.
    """
    if raw is None or isinstance(raw, bool):
        return ZERO
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)):
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        cleaned = re.sub(r"[^0-9,.\-]", "", raw)
        if not re.search(r"\d", cleaned):
            return ZERO
        if "," in cleaned and "." in cleaned:
            decimal_sep = "," if cleaned.rfind(",") > cleaned.rfind(".") else "."
            thousands_sep = "." if decimal_sep == "," else ","
            cleaned = cleaned.replace(thousands_sep, "").replace(decimal_sep, ".")
        else:
            for sep in (",", "."):
                if sep not in cleaned:
                    continue
                head, _, tail = cleaned.rpartition(sep)
                if cleaned.count(sep) > 1 or len(tail) == 3:
                    cleaned = cleaned.replace(sep, "")
                else:
                    cleaned = head.replace(sep, "") + "." + tail
        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            return ZERO
    else:
        return ZERO

    if not value.is_finite():
        return ZERO
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal, currency: str = "€") -> str:
    """Render an amount in Spanish notation, e.g. ``1.234,56 €``."""
    text = f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{text} {currency}"


_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DMY_DATE = re.compile(r"^(\d{1,2})[-./](\d{1,2})[-./](\d{4})$")


def normalize_date(raw: object) -> str:
    """Rewrite recognised date shapes to DD/MM/YYYY; keep anything else verbatim."""
    if raw is None:
        return ""
    text = str(raw).strip()
    match = _ISO_DATE.match(text)
    if match:
        year, month, day = match.groups()
        return f"{int(day):02d}/{int(month):02d}/{year}"
    match = _DMY_DATE.match(text)
    if match:
        day, month, year = match.groups()
        return f"{int(day):02d}/{int(month):02d}/{year}"
    return text


class DocumentRecord(BaseModel):
    """Normalized extraction result. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    document_type: DocumentType = DocumentType.OTRO
    document_number: str = ""
    date: str = ""
    supplier: str = ""
    concept: str = ""
    tax_base: Decimal = ZERO
    taxes: Decimal = ZERO
    total: Decimal = ZERO

    @field_validator("document_type", mode="before")
    @classmethod
    def _coerce_type(cls, v: object) -> DocumentType:
        return normalize_document_type(v)

    @field_validator("document_number", "supplier", "concept", mode="before")
    @classmethod
    def _coerce_text(cls, v: object) -> str:
        if v is None:
            return ""
        if isinstance(v, (list, tuple)):
            return ", ".join(str(part).strip() for part in v if part is not None)
        return str(v).strip()

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, v: object) -> str:
        return normalize_date(v)

    @field_validator("tax_base", "taxes", "total", mode="before")
    @classmethod
    def _coerce_amount(cls, v: object) -> Decimal:
        return parse_amount(v)

    @property
    def is_balanced(self) -> bool:
        """Soft check that total ≈ tax_base + taxes (never enforced)."""
        return abs(self.total - (self.tax_base + self.taxes)) <= BALANCE_TOLERANCE

    def to_payload(self) -> dict:
        """Every field in both display and numeric form, for webhook delivery."""
        return {
            "document_type": self.document_type.value,
            "document_number": self.document_number,
            "date": self.date,
            "supplier": self.supplier,
            "concept": self.concept,
            "tax_base": format_amount(self.tax_base),
            "taxes": format_amount(self.taxes),
            "total": format_amount(self.total),
            "tax_base_numeric": float(self.tax_base),
            "taxes_numeric": float(self.taxes),
            "total_numeric": float(self.total),
        }


@dataclass(frozen=True)
class InputFile:
    """One uploaded file: name, declared media type and raw content."""

    name: str
    media_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def is_pdf(self) -> bool:
        return self.media_type == "application/pdf" or (
            not self.media_type and self.name.lower().endswith(".pdf")
        )


# --- API views -------------------------------------------------------------


class ProgressView(BaseModel):
    current: int = 0
    total: int = 0


class SingleView(BaseModel):
    file_name: str
    media_type: str
    preview_url: str | None
    record: dict | None
    balanced: bool | None = None


class BatchItemView(BaseModel):
    id: str
    file_name: str
    media_type: str
    preview_url: str | None
    record: dict
    balanced: bool
    submitted: bool


class WorkflowSnapshot(BaseModel):
    mode: Mode
    single: SingleView | None = None
    items: list[BatchItemView] = []
    progress: ProgressView = ProgressView()
    error: str | None = None
    is_sending: bool = False
    can_resume: bool = False
