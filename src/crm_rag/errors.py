"""Exception hierarchy shared by the ingestion and query paths.

Ingestion errors raised for a single source or record are caught by the
orchestrator and reported as :class:`~crm_rag.ingestion.models.IngestionFailure`
entries; only :class:`EmptyIngestionError` and :class:`AggregateIngestionError`
escape :meth:`IngestionOrchestrator.ingest_bulk`.  Query-side validation errors
are raised before any embedding, search, or generation call is made.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from crm_rag.ingestion.models import IngestionFailure


class CrmRagError(Exception):
    """Base class for every error raised by this package."""


# ── Ingestion ─────────────────────────────────────────────────────────


class IngestionError(CrmRagError):
    """Base class for failures while loading or indexing CRM records."""


class SourceNotFoundError(IngestionError):
    """The source file does not exist or could not be read."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        message = f"Source not found: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class MalformedSourceError(IngestionError):
    """The source was read but is not a JSON array of objects."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Malformed source {path}: {reason}")


class UnsupportedSourceTypeError(IngestionError):
    """The declared source type is recognised but has no reader."""

    def __init__(self, source_type: str) -> None:
        self.source_type = source_type
        super().__init__(f"{source_type} sources are not implemented")


class RecordValidationError(IngestionError):
    """A single raw record does not match the shape of its kind."""

    def __init__(self, kind: str, record_id: str | None, detail: str) -> None:
        self.kind = kind
        self.record_id = record_id
        self.detail = detail
        ref = record_id or "<no id>"
        super().__init__(f"Invalid {kind} record {ref}: {detail}")


class EmptyIngestionError(IngestionError, ValueError):
    """``ingest_bulk`` was called without any requests."""

    def __init__(self) -> None:
        super().__init__("No ingestion requests supplied")


class AggregateIngestionError(IngestionError):
    """Every request in a batch failed; carries the per-request failures."""

    def __init__(self, failures: list[IngestionFailure]) -> None:
        self.failures = failures
        super().__init__(f"All {len(failures)} ingestion request(s) failed")


# ── Formatting ────────────────────────────────────────────────────────


class UnsupportedKindError(CrmRagError, ValueError):
    """The formatter or validator was given an unknown record kind."""

    def __init__(self, kind: Any) -> None:
        self.kind = kind
        super().__init__(f"Unsupported record kind: {kind!r}")


# ── Query ─────────────────────────────────────────────────────────────


class QueryValidationError(CrmRagError, ValueError):
    """Base class for caller errors detected before retrieval starts."""


class EmptyQueryError(QueryValidationError):
    """The query text is missing or blank."""

    def __init__(self) -> None:
        super().__init__("Query text must be a non-empty string")


class InvalidHistoryError(QueryValidationError):
    """The conversation history is not an ordered list of turns."""


class RetrievalFailedError(CrmRagError):
    """Embedding the query or searching the index failed."""


class GenerationFailedError(CrmRagError):
    """The answer-generation model call failed."""
