"""Domain models for CRM records, data sources and ingestion results.

CRM exports use camelCase keys (``customerId``, ``totalSales`` …).  Every
model here accepts both the camelCase alias and the snake_case attribute
name, and dumps camelCase with ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from crm_rag.errors import RecordValidationError, UnsupportedKindError


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RecordKind(str, Enum):
    """Discriminator for the three record shapes."""

    CUSTOMER = "customer"
    QUOTE = "quote"
    WORK_HISTORY = "work_history"


class SourceType(str, Enum):
    """Declared format of a data source.  Only ``json`` has a reader."""

    JSON = "json"
    CSV = "csv"
    EXCEL = "excel"


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Labels used by the shop's CRM export.
_QUOTE_STATUS_LABELS: dict[str, QuoteStatus] = {
    "下書き": QuoteStatus.DRAFT,
    "承認待ち": QuoteStatus.PENDING,
    "承認済み": QuoteStatus.APPROVED,
    "却下": QuoteStatus.REJECTED,
}


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class Customer(CamelModel):
    """A customer of the shop."""

    kind: ClassVar[RecordKind] = RecordKind.CUSTOMER

    customer_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    phone: str = ""
    email: str | None = None
    address: str | None = None
    total_sales: int = Field(default=0, ge=0)
    visit_count: int = Field(default=0, ge=0)
    registered_at: str | None = None
    notes: str | None = None

    @property
    def record_id(self) -> str:
        return self.customer_id


class LineItem(CamelModel):
    description: str
    unit_price: int = Field(ge=0)
    quantity: int = Field(ge=1)
    total_price: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_total(self) -> LineItem:
        if self.total_price != self.unit_price * self.quantity:
            raise ValueError(
                f"line item {self.description!r}: totalPrice {self.total_price} "
                f"!= unitPrice {self.unit_price} x quantity {self.quantity}"
            )
        return self


class Quote(CamelModel):
    """A repair quote issued to a customer."""

    kind: ClassVar[RecordKind] = RecordKind.QUOTE

    quote_id: str = Field(min_length=1)
    customer_id: str = Field(min_length=1)
    vehicle_info: str = ""
    items: list[LineItem] = Field(default_factory=list)
    total_amount: int = Field(default=0, ge=0)
    status: QuoteStatus = QuoteStatus.DRAFT
    quote_date: str | None = None
    notes: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalise_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            label = value.strip()
            return _QUOTE_STATUS_LABELS.get(label, label.lower())
        return value

    @model_validator(mode="after")
    def _check_total(self) -> Quote:
        if self.items and self.total_amount != self.items_total:
            raise ValueError(
                f"totalAmount {self.total_amount} != sum of line items {self.items_total}"
            )
        return self

    @property
    def items_total(self) -> int:
        return sum(item.total_price for item in self.items)

    @property
    def record_id(self) -> str:
        return self.quote_id


class PartUsed(CamelModel):
    part_name: str
    quantity: int = Field(default=1, ge=1)
    unit_price: int = Field(default=0, ge=0)
    total_price: int = Field(default=0, ge=0)


class WorkHistory(CamelModel):
    """A completed job in the workshop."""

    kind: ClassVar[RecordKind] = RecordKind.WORK_HISTORY

    work_id: str = Field(min_length=1)
    customer_id: str = Field(min_length=1)
    vehicle_info: str = ""
    work_type: str = ""
    description: str | None = None
    technician: str = ""
    work_date: str | None = None
    parts_used: list[PartUsed] = Field(default_factory=list)
    labor_cost: int = Field(default=0, ge=0)
    parts_cost: int = Field(default=0, ge=0)
    total_cost: int = Field(default=0, ge=0)
    rating: int | None = Field(default=None, ge=1, le=5)
    notes: str | None = None

    @model_validator(mode="after")
    def _check_total(self) -> WorkHistory:
        # Exports round each cost independently, allow one unit of drift.
        if abs(self.labor_cost + self.parts_cost - self.total_cost) > 1:
            raise ValueError(
                f"totalCost {self.total_cost} != laborCost {self.labor_cost} "
                f"+ partsCost {self.parts_cost}"
            )
        return self

    @property
    def record_id(self) -> str:
        return self.work_id


CrmRecord = Union[Customer, Quote, WorkHistory]

RECORD_MODELS: dict[RecordKind, type[CamelModel]] = {
    RecordKind.CUSTOMER: Customer,
    RecordKind.QUOTE: Quote,
    RecordKind.WORK_HISTORY: WorkHistory,
}


def require_every_kind(table: Mapping[RecordKind, Any], what: str) -> None:
    """Raise :class:`RuntimeError` unless *table* has an entry for every kind."""
    missing = set(RecordKind) - set(table)
    if missing:
        raise RuntimeError(f"no {what} for record kind(s): {sorted(k.value for k in missing)}")


require_every_kind(RECORD_MODELS, "model")


def coerce_kind(kind: RecordKind | str) -> RecordKind:
    """Return *kind* as a :class:`RecordKind` or raise :class:`UnsupportedKindError`."""
    if isinstance(kind, RecordKind):
        return kind
    try:
        return RecordKind(kind)
    except ValueError:
        raise UnsupportedKindError(kind) from None


def validate_record(raw: Any, kind: RecordKind | str) -> CrmRecord:
    """Parse one raw record of *kind*.

    Raises
    ------
    RecordValidationError
        When *raw* is not an object or misses / mistypes required fields.
    UnsupportedKindError
        When *kind* is not a known record kind.
    """
    kind = coerce_kind(kind)
    model = RECORD_MODELS[kind]
    if not isinstance(raw, dict):
        raise RecordValidationError(kind.value, None, f"expected an object, got {type(raw).__name__}")
    try:
        return model.model_validate(raw)  # type: ignore[return-value]
    except ValidationError as exc:
        raise RecordValidationError(kind.value, _raw_record_id(raw, kind), _summarise(exc)) from exc


def _raw_record_id(raw: dict[str, Any], kind: RecordKind) -> str | None:
    field = {
        RecordKind.CUSTOMER: "customer_id",
        RecordKind.QUOTE: "quote_id",
        RecordKind.WORK_HISTORY: "work_id",
    }[kind]
    value = raw.get(to_camel(field), raw.get(field))
    return str(value) if value not in (None, "") else None


def _summarise(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "<record>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


# ---------------------------------------------------------------------------
# Sources and ingestion bookkeeping
# ---------------------------------------------------------------------------


class DataSource(CamelModel):
    """Where to read records from."""

    type: SourceType
    path: str = Field(min_length=1)


class IngestionRequest(CamelModel):
    """One source together with the kind of records it holds."""

    source: DataSource
    data_type: RecordKind


class IngestionFailure(CamelModel):
    """A request or record that could not be indexed.

    Attributes
    ----------
    source_path:
        Path of the source the failure belongs to.
    data_type:
        Record kind declared for that source.
    stage:
        ``load``, ``validate``, ``format``, ``embed``, ``upsert`` or
        ``cancelled``.  ``load`` and ``cancelled`` apply to a whole request,
        the others to one record.
    record_id:
        Identifier of the offending record, when known.
    error_type:
        Exception class name.
    message:
        Human-readable error message.
    """

    source_path: str
    data_type: RecordKind
    stage: str
    record_id: str | None = None
    error_type: str = ""
    message: str = ""

    @property
    def is_request_level(self) -> bool:
        return self.stage in ("load", "cancelled")


class IngestionResult(CamelModel):
    """Aggregate outcome of :meth:`IngestionOrchestrator.ingest_bulk`.

    ``total`` always equals ``sum(by_type.values())`` and counts only the
    records that were actually upserted.
    """

    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    failures: list[IngestionFailure] = Field(default_factory=list)
    skipped: int = 0
    cancelled: bool = False

    @classmethod
    def from_counts(
        cls,
        counts: dict[RecordKind, int],
        failures: list[IngestionFailure],
        *,
        cancelled: bool = False,
    ) -> IngestionResult:
        by_type = {kind.value: n for kind, n in counts.items() if n}
        skipped = sum(1 for f in failures if not f.is_request_level)
        return cls(
            total=sum(by_type.values()),
            by_type=by_type,
            failures=list(failures),
            skipped=skipped,
            cancelled=cancelled,
        )

    def summary(self) -> str:
        """Return ``"N succeeded, M skipped"`` plus failed-request count."""
        failed_requests = sum(1 for f in self.failures if f.is_request_level)
        text = f"{self.total} succeeded, {self.skipped} skipped"
        if failed_requests:
            text += f", {failed_requests} request(s) failed"
        return text
