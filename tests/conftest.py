"""Shared pytest configuration and fixtures.

The fakes below stand in for the external capabilities (vector store,
embedding model, chat model) so no test needs Chroma, model weights, or
network access.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any

import pytest

from crm_rag.retrieval.base import VectorStoreBase
from crm_rag.retrieval.models import MetadataFilter


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fakes ──────────────────────────────────────────────────────────────


class FakeVectorStore(VectorStoreBase):
    """In-memory store.

    With canned ``hits`` the search returns them verbatim (after type
    filtering); otherwise it ranks stored documents by cosine similarity.
    """

    def __init__(
        self,
        hits: list[dict[str, Any]] | None = None,
        *,
        concurrent_writes: bool = True,
        fail_ids: set[str] | None = None,
        healthy: bool = True,
    ) -> None:
        super().__init__("test-collection")
        self.supports_concurrent_writes = concurrent_writes
        self._hits = hits
        self._fail_ids = fail_ids or set()
        self._healthy = healthy
        self.docs: dict[str, dict[str, Any]] = {}
        self.upsert_log: list[str] = []
        self.search_calls: list[dict[str, Any]] = []
        self.active_writes = 0
        self.max_active_writes = 0

    async def upsert(self, doc_id: str, embedding: list[float], content: str, metadata: dict[str, Any]) -> None:
        self.active_writes += 1
        self.max_active_writes = max(self.max_active_writes, self.active_writes)
        try:
            await asyncio.sleep(0)
            if doc_id in self._fail_ids:
                raise RuntimeError(f"index rejected {doc_id}")
            self.docs[doc_id] = {"embedding": embedding, "content": content, "metadata": metadata}
            self.upsert_log.append(doc_id)
        finally:
            self.active_writes -= 1

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        self.search_calls.append({"embedding": query_embedding, "k": k, "filters": filters})
        if self._hits is not None:
            hits = [h for h in self._hits if _matches(h.get("metadata", {}), filters)]
            return hits[:k]
        ranked = [
            {
                "id": doc_id,
                "content": doc["content"],
                "score": _cosine(query_embedding, doc["embedding"]),
                "metadata": doc["metadata"],
            }
            for doc_id, doc in self.docs.items()
            if _matches(doc["metadata"], filters)
        ]
        ranked.sort(key=lambda h: h["score"], reverse=True)
        return ranked[:k]

    async def count(self) -> int:
        return len(self.docs)

    async def health_check(self) -> bool:
        return self._healthy


def _matches(metadata: dict[str, Any], filters: list[MetadataFilter] | None) -> bool:
    for f in filters or []:
        value = metadata.get(f.field)
        if f.operator == "eq" and value != f.value:
            return False
        if f.operator == "in" and value not in f.value:
            return False
    return True


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return max(0.0, dot / norm) if norm else 0.0


VOCABULARY = ("Customer", "Quote", "Work", "山田", "佐藤", "バンパー", "塗装", "車検")


class FakeEmbedder:
    """Bag-of-words over :data:`VOCABULARY` plus a constant bias term."""

    def __init__(self, *, fail_on: str | None = None, fail_always: bool = False) -> None:
        self.calls: list[str] = []
        self._fail_on = fail_on
        self._fail_always = fail_always

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        await asyncio.sleep(0)
        if self._fail_always or (self._fail_on and self._fail_on in text):
            raise RuntimeError("embedding backend unavailable")
        return [float(text.count(word)) for word in VOCABULARY] + [0.1]


class FakeGenerator:
    """Returns a fixed answer and keeps every prompt it was given."""

    def __init__(self, answer: str = "Generated answer.", *, fail: bool = False) -> None:
        self.answer = answer
        self.prompts: list[list[Any]] = []
        self._fail = fail

    async def generate(self, messages: list[Any]) -> str:
        self.prompts.append(messages)
        if self._fail:
            raise RuntimeError("model timed out")
        return self.answer


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture()
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture()
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def customer_raw() -> dict[str, Any]:
    return {
        "customerId": "CUST-001",
        "name": "山田太郎",
        "phone": "090-1234-5678",
        "email": "yamada@example.com",
        "address": "東京都渋谷区1-2-3",
        "totalSales": 450000,
        "visitCount": 3,
        "registeredAt": "2023-01-15",
        "notes": "リピーター顧客",
    }


@pytest.fixture()
def quote_raw() -> dict[str, Any]:
    return {
        "quoteId": "Q-2024-001",
        "customerId": "CUST-001",
        "vehicleInfo": "トヨタ プリウス (2020年式)",
        "items": [
            {"description": "フロントバンパー修理", "unitPrice": 50000, "quantity": 1, "totalPrice": 50000},
            {"description": "ドアミラー", "unitPrice": 12500, "quantity": 2, "totalPrice": 25000},
        ],
        "totalAmount": 75000,
        "status": "承認済み",
        "quoteDate": "2024-01-20",
        "notes": "急ぎ対応",
    }


@pytest.fixture()
def work_raw() -> dict[str, Any]:
    return {
        "workId": "WORK-001",
        "customerId": "CUST-001",
        "vehicleInfo": "トヨタ プリウス (2020年式)",
        "workType": "板金塗装",
        "description": "フロントバンパー修理および塗装",
        "technician": "山本職人",
        "workDate": "2024-01-25",
        "partsUsed": [{"partName": "塗料", "quantity": 1, "unitPrice": 15000, "totalPrice": 15000}],
        "laborCost": 30000,
        "partsCost": 15000,
        "totalCost": 45000,
        "rating": 5,
        "notes": "仕上がり良好",
    }


@pytest.fixture()
def make_store() -> type[FakeVectorStore]:
    """The fake store class, for tests that need non-default behaviour."""
    return FakeVectorStore


@pytest.fixture()
def make_embedder() -> type[FakeEmbedder]:
    return FakeEmbedder


@pytest.fixture()
def make_generator() -> type[FakeGenerator]:
    return FakeGenerator
