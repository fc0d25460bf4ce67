"""Build the production object graph from settings.

There is no process-wide service instance: callers (the HTTP app, the
sample-data script) build a :class:`Components` bundle once and pass it to
whatever needs it.
"""

from __future__ import annotations

from dataclasses import dataclass

from crm_rag.config import Settings, settings as default_settings
from crm_rag.generation.llm import ChatModelGenerator
from crm_rag.generation.service import QueryService
from crm_rag.generation.synthesizer import AnswerSynthesizer
from crm_rag.ingestion.embedder import HuggingFaceTextEmbedder
from crm_rag.ingestion.loader import SourceLoader
from crm_rag.ingestion.orchestrator import IngestionOrchestrator
from crm_rag.retrieval.retriever import Retriever


@dataclass
class Components:
    """Ingestion and query entry points sharing one store and embedder."""

    orchestrator: IngestionOrchestrator
    query_service: QueryService


def build_components(config: Settings | None = None) -> Components:
    """Wire Chroma, the HuggingFace embedder and the chat model together."""
    from crm_rag.retrieval.chroma_store import ChromaVectorStore

    config = config or default_settings
    store = ChromaVectorStore(
        config.chroma_collection,
        host=config.chroma_host,
        port=config.chroma_port,
    )
    embedder = HuggingFaceTextEmbedder(config.embedding_model)

    orchestrator = IngestionOrchestrator(
        SourceLoader(),
        embedder,
        store,
        concurrency=config.ingest_concurrency,
    )
    query_service = QueryService(
        Retriever(store, embedder),
        AnswerSynthesizer(ChatModelGenerator()),
        store,
        history_turns_for_retrieval=config.history_turns_for_retrieval,
    )
    return Components(orchestrator=orchestrator, query_service=query_service)
