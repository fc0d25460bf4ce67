"""Render CRM records as plain-text blocks.

The same text is embedded at ingestion time and shown to the LLM (and the
user) as a retrieved source, so the layout must stay stable: one
``Label: value`` line per field under a bracketed title.  Optional fields
that are absent are left out instead of being rendered blank.
"""

from __future__ import annotations

import re
from typing import Callable

from crm_rag.errors import UnsupportedKindError
from crm_rag.ingestion.models import (
    CrmRecord,
    Customer,
    Quote,
    RecordKind,
    WorkHistory,
    coerce_kind,
    require_every_kind,
)

CURRENCY_SUFFIX = "円"

_AMOUNT_RE = re.compile(r"(\d{1,3}(?:,\d{3})+|\d+)" + CURRENCY_SUFFIX)


def format_amount(amount: int) -> str:
    """``450000`` → ``"450,000円"``."""
    return f"{amount:,}{CURRENCY_SUFFIX}"


def parse_amount(text: str) -> int:
    """Inverse of :func:`format_amount`; reads the first amount in *text*."""
    match = _AMOUNT_RE.search(text)
    if match is None:
        raise ValueError(f"No amount found in {text!r}")
    return int(match.group(1).replace(",", ""))


def _fields(pairs: list[tuple[str, object]]) -> list[str]:
    return [f"{label}: {value}" for label, value in pairs if value is not None and value != ""]


def _format_customer(customer: Customer) -> str:
    lines = ["[Customer Information]"]
    lines += _fields(
        [
            ("Customer ID", customer.customer_id),
            ("Name", customer.name),
            ("Phone", customer.phone),
            ("Email", customer.email),
            ("Address", customer.address),
            ("Total Sales", format_amount(customer.total_sales)),
            ("Visit Count", customer.visit_count),
            ("Registered", customer.registered_at),
            ("Notes", customer.notes),
        ]
    )
    return "\n".join(lines)


def _format_quote(quote: Quote) -> str:
    lines = ["[Quote Information]"]
    lines += _fields(
        [
            ("Quote ID", quote.quote_id),
            ("Customer ID", quote.customer_id),
            ("Vehicle", quote.vehicle_info),
        ]
    )
    if quote.items:
        lines.append("Line Items:")
    for item in quote.items:
        lines.append(
            f"  - {item.description}: {format_amount(item.total_price)} "
            f"({format_amount(item.unit_price)} x {item.quantity})"
        )
    lines += _fields(
        [
            ("Total Amount", format_amount(quote.total_amount)),
            ("Status", quote.status.value),
            ("Quote Date", quote.quote_date),
            ("Notes", quote.notes),
        ]
    )
    return "\n".join(lines)


def _format_work_history(work: WorkHistory) -> str:
    lines = ["[Work History]"]
    lines += _fields(
        [
            ("Work ID", work.work_id),
            ("Customer ID", work.customer_id),
            ("Vehicle", work.vehicle_info),
            ("Work Type", work.work_type),
            ("Description", work.description),
            ("Technician", work.technician),
            ("Work Date", work.work_date),
        ]
    )
    if work.parts_used:
        lines.append("Parts Used:")
    for part in work.parts_used:
        lines.append(f"  - {part.part_name} x{part.quantity}: {format_amount(part.total_price)}")
    lines += _fields(
        [
            ("Labor Cost", format_amount(work.labor_cost)),
            ("Parts Cost", format_amount(work.parts_cost)),
            ("Total Cost", format_amount(work.total_cost)),
            ("Rating", f"{work.rating}-star" if work.rating is not None else None),
            ("Notes", work.notes),
        ]
    )
    return "\n".join(lines)


_FORMATTERS: dict[RecordKind, tuple[type, Callable[..., str]]] = {
    RecordKind.CUSTOMER: (Customer, _format_customer),
    RecordKind.QUOTE: (Quote, _format_quote),
    RecordKind.WORK_HISTORY: (WorkHistory, _format_work_history),
}
require_every_kind(_FORMATTERS, "formatter")


def format_record(record: CrmRecord, kind: RecordKind | str) -> str:
    """Render *record* as a text block for embedding and display.

    Raises
    ------
    UnsupportedKindError
        When *kind* is unknown or *record* is not an instance of the model
        registered for *kind*.
    """
    model, render = _FORMATTERS[coerce_kind(kind)]
    if not isinstance(record, model):
        raise UnsupportedKindError(f"{kind} (got {type(record).__name__})")
    return render(record)
