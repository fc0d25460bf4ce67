"""
Retrieval: vector search over indexed CRM records.

This module wraps the vector store behind a clean interface so that the
ingestion and query layers never need to know which DB is backing them.

Public surface
--------------
- :class:`Retriever`: embed a query and return ranked matches.
- :class:`VectorStoreBase`: abstract backend (subclass for Pinecone, etc.).
- :class:`ChromaVectorStore`: default Chroma backend.
- :class:`RetrievedMatch`, :class:`RetrieveOptions`, :class:`MetadataFilter`: data models.
"""

from crm_rag.retrieval.base import VectorStoreBase
from crm_rag.retrieval.models import MetadataFilter, RetrievedMatch, RetrieveOptions
from crm_rag.retrieval.retriever import Retriever

__all__ = [
    "ChromaVectorStore",
    "MetadataFilter",
    "RetrieveOptions",
    "RetrievedMatch",
    "Retriever",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from crm_rag.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
