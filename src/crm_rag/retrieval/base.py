"""Abstract base class for vector-store backends.

Adding a new backend (Pinecone, Weaviate, Qdrant …) only requires
subclassing :class:`VectorStoreBase` and implementing the abstract
methods.  The rest of the ingestion and retrieval stack is
backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from crm_rag.retrieval.models import MetadataFilter


class VectorStoreBase(ABC):
    """Backend-agnostic, asynchronous vector-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.

    Attributes
    ----------
    supports_concurrent_writes:
        ``False`` makes the ingestion orchestrator serialise upserts.
    """

    supports_concurrent_writes: bool = True

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    async def upsert(
        self,
        doc_id: str,
        embedding: list[float],
        content: str,
        metadata: dict[str, Any],
    ) -> None:
        """Insert or replace the document stored under *doc_id*."""
        ...

    @abstractmethod
    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        """Return the top-*k* results matching *query_embedding*.

        Each result dict **must** contain at least:

        * ``"id"`` – document identifier
        * ``"content"`` – the formatted record text
        * ``"score"`` – similarity in [0, 1] (higher = more similar)
        * ``"metadata"`` – the payload stored with the document
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored documents."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...
