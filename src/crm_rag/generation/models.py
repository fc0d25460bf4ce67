"""Models for the query path: conversation turns and responses."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from crm_rag.errors import InvalidHistoryError
from crm_rag.retrieval.models import RetrievedMatch


class ConversationTurn(BaseModel):
    """One message of a multi-turn conversation."""

    role: Literal["user", "assistant"]
    content: str


class QueryResponse(BaseModel):
    """Answer plus the records it was grounded on."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    answer: str
    sources: list[RetrievedMatch] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)


class IndexStatus(BaseModel):
    """Read-only view of the index."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_documents: int
    collection_name: str
    is_initialized: bool


def parse_history(history: Any) -> list[ConversationTurn]:
    """Validate *history* and return it as turns in the original order.

    Accepts a list or tuple whose elements are :class:`ConversationTurn`
    instances or ``{"role": ..., "content": ...}`` mappings.

    Raises
    ------
    InvalidHistoryError
        When *history* is not a list/tuple or an element is malformed.
    """
    if not isinstance(history, (list, tuple)):
        raise InvalidHistoryError(
            f"Conversation history must be a list of turns, got {type(history).__name__}"
        )
    turns: list[ConversationTurn] = []
    for i, item in enumerate(history):
        if isinstance(item, ConversationTurn):
            turns.append(item)
            continue
        try:
            turns.append(ConversationTurn.model_validate(item))
        except ValidationError as exc:
            raise InvalidHistoryError(
                f"Conversation turn {i} is malformed: needs role 'user' or 'assistant' and string content"
            ) from exc
    return turns
