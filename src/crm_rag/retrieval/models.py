"""Domain models for retrieval options, matches and metadata filters."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from crm_rag.config import settings
from crm_rag.ingestion.models import RecordKind


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"type"``).
    operator:
        Comparison operator, one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class RetrieveOptions(BaseModel):
    """Per-call retrieval knobs.  JSON aliases: ``topK``, ``minScore``, ``dataTypes``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    top_k: int = Field(default_factory=lambda: settings.default_top_k, ge=1)
    min_score: float = Field(default_factory=lambda: settings.default_min_score, ge=0.0, le=1.0)
    data_types: list[RecordKind] | None = None

    def filters(self) -> list[MetadataFilter] | None:
        if not self.data_types:
            return None
        return [MetadataFilter.one_of("type", [kind.value for kind in self.data_types])]


class RetrievedMatch(BaseModel):
    """One record returned by the retriever.

    ``metadata`` is the original record (camelCase keys) plus ``type``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float = Field(ge=0.0, le=1.0)
    document_id: str | None = None

    @property
    def data_type(self) -> str | None:
        return self.metadata.get("type")

    def __str__(self) -> str:  # noqa: D105
        first_line = self.content.splitlines()[0] if self.content else ""
        return f"[{self.document_id or '?'} {self.score:.3f}] {first_line}"
