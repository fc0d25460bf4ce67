"""Semantic retriever: embed a query and rank stored CRM records.

Usage::

    retriever = Retriever(store, embedder)
    matches = await retriever.retrieve("VIP customers", RetrieveOptions(top_k=3))
    for m in matches:
        print(m.score, m.content.splitlines()[0])
"""

from __future__ import annotations

import logging
from typing import Any

from crm_rag.errors import RetrievalFailedError
from crm_rag.ingestion.embedder import TextEmbedder
from crm_rag.retrieval.base import VectorStoreBase
from crm_rag.retrieval.models import RetrievedMatch, RetrieveOptions

logger = logging.getLogger(__name__)


class Retriever:
    """High-level retriever that wraps any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    embedder:
        Embedding capability used for the query text.  Must be the same
        model that embedded the stored records.
    """

    def __init__(self, store: VectorStoreBase, embedder: TextEmbedder) -> None:
        self._store = store
        self._embedder = embedder

    async def retrieve(
        self,
        query: str,
        options: RetrieveOptions | None = None,
    ) -> list[RetrievedMatch]:
        """Return matches for *query*, most similar first.

        Matches scoring below ``options.min_score`` (or not above zero) are
        dropped and at most ``options.top_k`` are returned.  Equal scores
        keep the order the store returned them in.  An empty list is a
        valid result.

        Raises
        ------
        RetrievalFailedError
            When embedding the query or searching the store fails.
        """
        options = options or RetrieveOptions()
        try:
            embedding = await self._embedder.embed(query)
            raw_hits = await self._store.similarity_search(
                embedding, k=options.top_k, filters=options.filters()
            )
        except Exception as exc:
            logger.exception("Retrieval failed for query %.80r", query)
            raise RetrievalFailedError(f"Retrieval failed: {exc}") from exc

        matches = self._to_matches(raw_hits, options.min_score)
        # sorted() is stable, so ties keep the store's order.
        matches = sorted(matches, key=lambda m: m.score, reverse=True)[: options.top_k]
        logger.debug("Retrieved %d match(es) for %.80r", len(matches), query)
        return matches

    @staticmethod
    def _to_matches(raw_hits: list[dict[str, Any]], min_score: float) -> list[RetrievedMatch]:
        matches: list[RetrievedMatch] = []
        for hit in raw_hits:
            score = float(hit.get("score") or 0.0)
            if score <= 0.0 or score < min_score:
                continue
            matches.append(
                RetrievedMatch(
                    content=hit.get("content", ""),
                    metadata=hit.get("metadata") or {},
                    score=min(score, 1.0),
                    document_id=hit.get("id"),
                )
            )
        return matches
