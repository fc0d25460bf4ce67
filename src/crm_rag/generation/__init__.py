"""
Generation: grounded answers from retrieved CRM records.

Public API
----------
- :class:`QueryService`: ``query``, ``query_conversation`` and ``status``.
- :class:`AnswerSynthesizer`: prompt building, generation and confidence.
- :class:`ConversationTurn`, :class:`QueryResponse`, :class:`IndexStatus`.
"""

from crm_rag.generation.models import ConversationTurn, IndexStatus, QueryResponse
from crm_rag.generation.service import QueryService
from crm_rag.generation.synthesizer import AnswerSynthesizer, compute_confidence

__all__ = [
    "AnswerSynthesizer",
    "ConversationTurn",
    "IndexStatus",
    "QueryResponse",
    "QueryService",
    "compute_confidence",
]
