"""Query service: single-turn and multi-turn question answering.

Inputs are validated before any embedding, search, or generation call,
so a bad request never costs a model call.

For multi-turn queries the content of the most recent user turns
(``history_turns_for_retrieval``, oldest first) is prepended to the
question to form the retrieval query; follow-ups like "how many visits
did that customer make?" need the earlier turn to find the customer.  The
generation prompt always receives the full history.
"""

from __future__ import annotations

import logging
from typing import Any

from crm_rag.config import settings
from crm_rag.errors import EmptyQueryError
from crm_rag.generation.models import ConversationTurn, IndexStatus, QueryResponse, parse_history
from crm_rag.generation.synthesizer import AnswerSynthesizer
from crm_rag.retrieval.base import VectorStoreBase
from crm_rag.retrieval.models import RetrieveOptions
from crm_rag.retrieval.retriever import Retriever

logger = logging.getLogger(__name__)


def _require_text(text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise EmptyQueryError()
    return text.strip()


def build_retrieval_query(text: str, history: list[ConversationTurn], turns: int) -> str:
    """Fold the last *turns* user messages into the retrieval query."""
    if turns <= 0:
        return text
    recent = [t.content.strip() for t in history if t.role == "user" and t.content.strip()]
    return "\n".join([*recent[-turns:], text])


class QueryService:
    """Compose :class:`Retriever` and :class:`AnswerSynthesizer`.

    Parameters
    ----------
    retriever:
        Finds the records relevant to a question.
    synthesizer:
        Turns records and history into an answer.
    store:
        The index, used read-only by :meth:`status`.
    history_turns_for_retrieval:
        How many recent user turns are folded into the retrieval query.
    """

    def __init__(
        self,
        retriever: Retriever,
        synthesizer: AnswerSynthesizer,
        store: VectorStoreBase,
        *,
        history_turns_for_retrieval: int = settings.history_turns_for_retrieval,
    ) -> None:
        self._retriever = retriever
        self._synthesizer = synthesizer
        self._store = store
        self.history_turns_for_retrieval = history_turns_for_retrieval

    async def query(self, text: Any, options: RetrieveOptions | None = None) -> QueryResponse:
        """Answer a standalone question."""
        text = _require_text(text)
        matches = await self._retriever.retrieve(text, options)
        return await self._synthesizer.synthesize(text, [], matches)

    async def query_conversation(
        self,
        text: Any,
        history: Any,
        options: RetrieveOptions | None = None,
    ) -> QueryResponse:
        """Answer a follow-up question in the context of *history*.

        Raises
        ------
        EmptyQueryError
            When *text* is missing or blank.
        InvalidHistoryError
            When *history* is not a list of well-formed turns.
        RetrievalFailedError, GenerationFailedError
            When a model or index call fails.
        """
        text = _require_text(text)
        turns = parse_history(history)
        retrieval_query = build_retrieval_query(text, turns, self.history_turns_for_retrieval)
        logger.debug("Conversation query with %d prior turn(s)", len(turns))
        matches = await self._retriever.retrieve(retrieval_query, options)
        return await self._synthesizer.synthesize(text, turns, matches)

    async def status(self) -> IndexStatus:
        """Report document count and readiness without touching the data."""
        ready = await self._store.health_check()
        total = await self._store.count() if ready else 0
        return IndexStatus(
            total_documents=total,
            collection_name=self._store.collection_name,
            is_initialized=ready,
        )
