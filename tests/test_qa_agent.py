from __future__ import annotations

from conftest import FakeChat, FakeEmbedder
from rag_agents.qa_agent import QuestionAnsweringAgent
from retrieval_core.retrieval import Found, NoRelevantResults, RetrievalPipeline, StoreError
from retrieval_core.vector_store import VectorStore


def _agent(store: VectorStore, chat: FakeChat, threshold: float = 0.0, **embedder_kwargs) -> QuestionAnsweringAgent:
    embedder = FakeEmbedder(table={"where is east?": [1.0, 0.2]}, **embedder_kwargs)
    return QuestionAnsweringAgent(
        store=store,
        embedder=embedder,
        chat=chat,
        pipeline=RetrievalPipeline(top_k=2, min_relevance_score=threshold),
    )


def test_answer_uses_retrieved_context(three_entry_store: VectorStore, fake_chat: FakeChat) -> None:
    agent = _agent(three_entry_store, fake_chat)

    result = agent.ask("where is east?")

    assert result.used_rag
    assert isinstance(result.outcome, Found)
    assert [s.text for s in result.sources] == ["east", "north-east"]
    system, user = fake_chat.requests[0]
    assert system.role == "system"
    assert "east\n\n---\n\nnorth-east" in system.content
    assert (user.role, user.content) == ("user", "where is east?")
    assert agent.history.turns[0].use_rag


def test_threshold_miss_falls_back_to_plain_question(three_entry_store: VectorStore, fake_chat: FakeChat) -> None:
    agent = _agent(three_entry_store, fake_chat, threshold=0.99)

    result = agent.ask("where is east?")

    assert not result.used_rag
    assert isinstance(result.outcome, NoRelevantResults)
    assert "relevance threshold" in result.fallback_reason
    assert [m.role for m in fake_chat.requests[0]] == ["user"]
    assert result.answer == "an answer"
    assert agent.history.turns[0].sources == []


def test_empty_store_falls_back(fake_chat: FakeChat) -> None:
    result = _agent(VectorStore(), fake_chat).ask("where is east?")
    assert isinstance(result.outcome, StoreError)
    assert "index unavailable" in result.fallback_reason


def test_embedding_failure_falls_back(three_entry_store: VectorStore, fake_chat: FakeChat) -> None:
    result = _agent(three_entry_store, fake_chat, fail_on=("east",)).ask("where is east?")
    assert result.outcome is None
    assert result.fallback_reason.startswith("question embedding failed")
    assert result.answer == "an answer"


def test_retrieval_disabled(three_entry_store: VectorStore, fake_chat: FakeChat) -> None:
    agent = _agent(three_entry_store, fake_chat)
    result = agent.ask("where is east?", use_rag=False)

    assert result.fallback_reason == "retrieval disabled"
    assert agent.embedder.calls == []
    assert not agent.history.turns[0].use_rag


def test_previous_turns_are_sent_with_later_questions(three_entry_store: VectorStore, fake_chat: FakeChat) -> None:
    agent = _agent(three_entry_store, fake_chat)
    agent.ask("where is east?")
    agent.ask("and north?", use_rag=False)

    second = fake_chat.requests[1]
    assert [(m.role, m.content) for m in second] == [
        ("user", "where is east?"),
        ("assistant", "an answer"),
        ("user", "and north?"),
    ]
