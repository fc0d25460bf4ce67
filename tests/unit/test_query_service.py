"""Unit tests for prompt building, answer synthesis and the query service."""

from __future__ import annotations

from typing import Any

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from crm_rag.errors import EmptyQueryError, GenerationFailedError, InvalidHistoryError, RetrievalFailedError
from crm_rag.generation.models import ConversationTurn, parse_history
from crm_rag.generation.prompts import NO_RECORDS, build_answer_prompt, format_sources
from crm_rag.generation.service import QueryService, build_retrieval_query
from crm_rag.generation.synthesizer import AnswerSynthesizer, compute_confidence
from crm_rag.retrieval.models import RetrievedMatch, RetrieveOptions
from crm_rag.retrieval.retriever import Retriever

HITS: list[dict[str, Any]] = [
    {
        "id": "customer:CUST-001",
        "content": "[Customer Information]\nCustomer ID: CUST-001\nName: 山田太郎\nVisit Count: 3",
        "score": 0.85,
        "metadata": {"type": "customer", "customerId": "CUST-001"},
    },
    {
        "id": "work_history:WORK-001",
        "content": "[Work History]\nWork ID: WORK-001",
        "score": 0.6,
        "metadata": {"type": "work_history", "workId": "WORK-001"},
    },
]

HISTORY = [
    {"role": "user", "content": "山田太郎さんについて教えて"},
    {"role": "assistant", "content": "山田太郎さんは累計売上450,000円のお客様です。"},
]


def _match(score: float, doc_id: str = "x") -> RetrievedMatch:
    return RetrievedMatch(content=doc_id, score=score, document_id=doc_id)


@pytest.fixture()
def hit_store(make_store):
    return make_store(hits=HITS)


@pytest.fixture()
def service(hit_store, fake_embedder, fake_generator) -> QueryService:
    return QueryService(
        Retriever(hit_store, fake_embedder),
        AnswerSynthesizer(fake_generator),
        hit_store,
        history_turns_for_retrieval=2,
    )


# ═══════════════════════════════════════════════════════════════════════
# Confidence
# ═══════════════════════════════════════════════════════════════════════


class TestConfidence:
    def test_zero_without_matches(self) -> None:
        assert compute_confidence([]) == 0.0

    def test_top_score(self) -> None:
        assert compute_confidence([_match(0.6), _match(0.85)]) == 0.85

    def test_within_unit_interval(self) -> None:
        for score in (0.01, 0.5, 1.0):
            assert 0.0 < compute_confidence([_match(score)]) <= 1.0


# ═══════════════════════════════════════════════════════════════════════
# History parsing and prompt construction
# ═══════════════════════════════════════════════════════════════════════


class TestHistory:
    def test_parses_dicts_in_order(self) -> None:
        turns = parse_history(HISTORY)
        assert [t.role for t in turns] == ["user", "assistant"]
        assert turns[1].content.startswith("山田太郎さんは")

    def test_accepts_turn_objects_and_tuples(self) -> None:
        turns = parse_history((ConversationTurn(role="user", content="hi"),))
        assert turns[0].content == "hi"

    def test_empty_history_is_valid(self) -> None:
        assert parse_history([]) == []

    @pytest.mark.parametrize("history", ["invalid", None, {"role": "user", "content": "x"}, 3])
    def test_non_sequence_rejected(self, history: Any) -> None:
        with pytest.raises(InvalidHistoryError, match="must be a list"):
            parse_history(history)

    @pytest.mark.parametrize(
        "turn",
        [{"role": "user"}, {"content": "x"}, {"role": "system", "content": "x"}, {"role": "user", "content": 5}, "text"],
    )
    def test_malformed_turn_rejected(self, turn: Any) -> None:
        with pytest.raises(InvalidHistoryError, match="turn 1"):
            parse_history([HISTORY[0], turn])


class TestPrompt:
    def test_layout_system_history_question(self) -> None:
        matches = [RetrievedMatch(content=h["content"], metadata=h["metadata"], score=h["score"]) for h in HITS]
        messages = build_answer_prompt("その顧客の来店回数は？", matches, parse_history(HISTORY))

        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == HISTORY[0]["content"]
        assert isinstance(messages[2], AIMessage)
        assert messages[2].content == HISTORY[1]["content"]
        assert isinstance(messages[-1], HumanMessage)
        assert len(messages) == 4

        final = messages[-1].content
        assert "Question: その顧客の来店回数は？" in final
        assert "[1] type=customer, score=0.850" in final
        assert "Visit Count: 3" in final
        assert final.index("[1]") < final.index("[2]")

    def test_without_history(self) -> None:
        messages = build_answer_prompt("q", [])
        assert len(messages) == 2
        assert NO_RECORDS in messages[-1].content

    def test_format_sources_numbering(self) -> None:
        text = format_sources([_match(0.9, "a"), _match(0.8, "b")])
        assert text.startswith("[1] type=record, score=0.900\na")
        assert "[2] type=record, score=0.800\nb" in text


class TestRetrievalQuery:
    def test_folds_recent_user_turns(self) -> None:
        turns = parse_history(
            [
                {"role": "user", "content": "first"},
                {"role": "assistant", "content": "reply"},
                {"role": "user", "content": "second"},
                {"role": "user", "content": "third"},
            ]
        )
        assert build_retrieval_query("now", turns, 2) == "second\nthird\nnow"

    def test_zero_turns_disables_folding(self) -> None:
        assert build_retrieval_query("now", parse_history(HISTORY), 0) == "now"

    def test_assistant_turns_are_ignored(self) -> None:
        assert build_retrieval_query("now", parse_history(HISTORY), 5) == f"{HISTORY[0]['content']}\nnow"


# ═══════════════════════════════════════════════════════════════════════
# Query service
# ═══════════════════════════════════════════════════════════════════════


class TestQuery:
    @pytest.mark.asyncio
    async def test_returns_answer_sources_confidence(self, service, fake_generator) -> None:
        response = await service.query("VIP顧客を教えてください", RetrieveOptions(top_k=5, min_score=0.5))

        assert response.answer == "Generated answer."
        assert [s.document_id for s in response.sources] == ["customer:CUST-001", "work_history:WORK-001"]
        assert response.confidence == 0.85
        assert len(fake_generator.prompts) == 1

    @pytest.mark.asyncio
    async def test_query_text_is_stripped(self, service, fake_embedder) -> None:
        await service.query("  見積金額の平均は？  ")
        assert fake_embedder.calls == ["見積金額の平均は？"]

    @pytest.mark.asyncio
    async def test_no_sources_means_zero_confidence(self, service, fake_generator) -> None:
        response = await service.query("q", RetrieveOptions(min_score=0.99))
        assert response.sources == []
        assert response.confidence == 0.0
        assert NO_RECORDS in fake_generator.prompts[0][-1].content

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", None, 42])
    async def test_empty_query_rejected_before_any_call(
        self, service, fake_embedder, fake_generator, text: Any
    ) -> None:
        with pytest.raises(EmptyQueryError):
            await service.query(text)
        assert fake_embedder.calls == []
        assert fake_generator.prompts == []

    @pytest.mark.asyncio
    async def test_generation_failure_propagates(self, hit_store, fake_embedder, make_generator) -> None:
        service = QueryService(
            Retriever(hit_store, fake_embedder), AnswerSynthesizer(make_generator(fail=True)), hit_store
        )
        with pytest.raises(GenerationFailedError, match="model timed out"):
            await service.query("q")

    @pytest.mark.asyncio
    async def test_retrieval_failure_propagates(self, hit_store, make_embedder, fake_generator) -> None:
        service = QueryService(
            Retriever(hit_store, make_embedder(fail_always=True)), AnswerSynthesizer(fake_generator), hit_store
        )
        with pytest.raises(RetrievalFailedError):
            await service.query("q")
        assert fake_generator.prompts == []


class TestQueryConversation:
    @pytest.mark.asyncio
    async def test_history_reaches_prompt_in_order(self, service, fake_generator) -> None:
        response = await service.query_conversation("その顧客の来店回数は？", HISTORY, RetrieveOptions(top_k=5))

        assert response.confidence == 0.85
        prompt = fake_generator.prompts[0]
        assert [type(m) for m in prompt] == [SystemMessage, HumanMessage, AIMessage, HumanMessage]
        assert prompt[1].content == HISTORY[0]["content"]
        assert prompt[2].content == HISTORY[1]["content"]
        assert "Question: その顧客の来店回数は？" in prompt[3].content

    @pytest.mark.asyncio
    async def test_previous_user_turn_folded_into_retrieval(self, service, fake_embedder) -> None:
        await service.query_conversation("その顧客の来店回数は？", HISTORY)
        assert fake_embedder.calls == [f"{HISTORY[0]['content']}\nその顧客の来店回数は？"]

    @pytest.mark.asyncio
    async def test_same_inputs_give_same_retrieval(self, service, hit_store) -> None:
        first = await service.query_conversation("来店回数は？", HISTORY)
        second = await service.query_conversation("来店回数は？", HISTORY)
        assert hit_store.search_calls[0] == hit_store.search_calls[1]
        assert first.sources == second.sources

    @pytest.mark.asyncio
    async def test_empty_history_behaves_like_query(self, service, fake_embedder) -> None:
        await service.query_conversation("q", [])
        assert fake_embedder.calls == ["q"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("history", ["not-a-list", None, [{"role": "user"}]])
    async def test_invalid_history_rejected_before_any_call(
        self, service, fake_embedder, fake_generator, hit_store, history: Any
    ) -> None:
        with pytest.raises(InvalidHistoryError):
            await service.query_conversation("テストクエリ", history)
        assert fake_embedder.calls == []
        assert hit_store.search_calls == []
        assert fake_generator.prompts == []

    @pytest.mark.asyncio
    async def test_empty_query_checked_first(self, service) -> None:
        with pytest.raises(EmptyQueryError):
            await service.query_conversation("", "not-a-list")


class TestStatus:
    @pytest.mark.asyncio
    async def test_reports_count_and_collection(self, fake_store, fake_embedder, fake_generator) -> None:
        await fake_store.upsert("customer:C-1", [1.0], "c", {"type": "customer"})
        service = QueryService(Retriever(fake_store, fake_embedder), AnswerSynthesizer(fake_generator), fake_store)

        status = await service.status()

        assert status.total_documents == 1
        assert status.collection_name == "test-collection"
        assert status.is_initialized is True
        assert status.model_dump(by_alias=True) == {
            "totalDocuments": 1,
            "collectionName": "test-collection",
            "isInitialized": True,
        }

    @pytest.mark.asyncio
    async def test_unreachable_store(self, make_store, fake_embedder, fake_generator) -> None:
        store = make_store(healthy=False)
        service = QueryService(Retriever(store, fake_embedder), AnswerSynthesizer(fake_generator), store)
        status = await service.status()
        assert status.is_initialized is False
        assert status.total_documents == 0
