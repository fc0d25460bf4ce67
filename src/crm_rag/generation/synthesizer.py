"""Answer synthesis from retrieved CRM records."""

from __future__ import annotations

import logging

from crm_rag.errors import GenerationFailedError
from crm_rag.generation.llm import AnswerGenerator
from crm_rag.generation.models import ConversationTurn, QueryResponse
from crm_rag.generation.prompts import build_answer_prompt
from crm_rag.retrieval.models import RetrievedMatch

logger = logging.getLogger(__name__)


def compute_confidence(matches: list[RetrievedMatch]) -> float:
    """Score of the best match, clamped to [0, 1]; ``0.0`` without matches."""
    if not matches:
        return 0.0
    return min(1.0, max(0.0, max(m.score for m in matches)))


class AnswerSynthesizer:
    """Build a grounded prompt, call the generator, attach confidence."""

    def __init__(self, generator: AnswerGenerator) -> None:
        self._generator = generator

    async def synthesize(
        self,
        query: str,
        history: list[ConversationTurn],
        matches: list[RetrievedMatch],
    ) -> QueryResponse:
        """Generate an answer for *query*.

        Raises
        ------
        GenerationFailedError
            When the generation model call fails.
        """
        prompt = build_answer_prompt(query, matches, history)
        try:
            answer = await self._generator.generate(prompt)
        except Exception as exc:
            logger.exception("Answer generation failed")
            raise GenerationFailedError(f"Answer generation failed: {exc}") from exc

        return QueryResponse(
            answer=answer,
            sources=matches,
            confidence=compute_confidence(matches),
        )
