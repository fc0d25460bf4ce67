"""Embedding capability and its sentence-transformer implementation."""

from __future__ import annotations

from typing import Protocol

from langchain_huggingface import HuggingFaceEmbeddings

from crm_rag.config import settings


class TextEmbedder(Protocol):
    """Anything that turns text into a dense vector."""

    async def embed(self, text: str) -> list[float]: ...


def get_embedding_function(model_name: str = settings.embedding_model) -> HuggingFaceEmbeddings:
    """Return the configured sentence-transformer embedding function."""
    return HuggingFaceEmbeddings(
        model_name=model_name,
        encode_kwargs={"normalize_embeddings": True},
    )


class HuggingFaceTextEmbedder:
    """:class:`TextEmbedder` backed by ``langchain_huggingface``.

    The model is loaded on first use so that building the application does
    not download weights.
    """

    def __init__(self, model_name: str = settings.embedding_model) -> None:
        self.model_name = model_name
        self._embeddings: HuggingFaceEmbeddings | None = None

    async def embed(self, text: str) -> list[float]:
        if self._embeddings is None:
            self._embeddings = get_embedding_function(self.model_name)
        return await self._embeddings.aembed_query(text)
