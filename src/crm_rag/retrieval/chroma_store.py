"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import chromadb

from crm_rag.config import settings
from crm_rag.retrieval.base import VectorStoreBase
from crm_rag.retrieval.models import MetadataFilter

logger = logging.getLogger(__name__)

# Chroma metadata values must be scalars; the full payload travels as JSON.
PAYLOAD_KEY = "_payload"

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
}


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _flatten_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Keep scalar keys for filtering and pack everything into ``_payload``."""
    flat = {
        key: value
        for key, value in metadata.items()
        if isinstance(value, (str, int, float, bool)) and key != PAYLOAD_KEY
    }
    flat[PAYLOAD_KEY] = json.dumps(metadata, ensure_ascii=False)
    return flat


def _restore_metadata(stored: dict[str, Any] | None) -> dict[str, Any]:
    if not stored:
        return {}
    payload = stored.get(PAYLOAD_KEY)
    if payload is None:
        return dict(stored)
    return json.loads(payload)


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store using cosine distance.

    The synchronous Chroma HTTP client is driven from worker threads
    (``asyncio.to_thread``); the server handles concurrent writes.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
    ) -> None:
        super().__init__(collection_name)
        self._host = host
        self._port = port
        self._client = chromadb.HttpClient(host=host, port=port)
        self._collection = self._client.get_or_create_collection(
            collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    # -- VectorStoreBase overrides --------------------------------------------

    async def upsert(
        self,
        doc_id: str,
        embedding: list[float],
        content: str,
        metadata: dict[str, Any],
    ) -> None:
        await asyncio.to_thread(
            self._collection.upsert,
            ids=[doc_id],
            embeddings=[embedding],
            documents=[content],
            metadatas=[_flatten_metadata(metadata)],
        )

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        where = _build_chroma_where(filters) if filters else None

        results = await asyncio.to_thread(
            self._collection.query,
            query_embeddings=[query_embedding],
            n_results=k,
            where=where,
            include=["documents", "metadatas", "distances"],
        )

        hits: list[dict[str, Any]] = []
        ids = results.get("ids", [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        for doc_id, content, meta, dist in zip(ids, docs, metas, distances):
            # Cosine distance is in [0, 2]; similarity clamps to [0, 1].
            score = min(1.0, max(0.0, 1.0 - dist))
            hits.append(
                {
                    "id": doc_id,
                    "content": content or "",
                    "score": score,
                    "metadata": _restore_metadata(meta),
                }
            )
        return hits

    async def count(self) -> int:
        return await asyncio.to_thread(self._collection.count)

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self._client.heartbeat)
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
