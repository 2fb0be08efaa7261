from __future__ import annotations

import json
from pathlib import Path

import pytest

from rag_agents.history import ConversationHistory, SourceChunk
from retrieval_core.models import SearchResult


def _source(text: str = "passage", score: float = 0.9) -> SearchResult:
    return SearchResult(id=0, text=text, score=score, metadata={"chunk_index": "0"})


def test_turns_become_alternating_messages() -> None:
    history = ConversationHistory()
    history.add_turn("q1", "a1", sources=[_source()])
    history.add_turn("q2", "a2", use_rag=False)

    messages = history.messages_for_llm()

    assert [(m.role, m.content) for m in messages] == [
        ("user", "q1"),
        ("assistant", "a1"),
        ("user", "q2"),
        ("assistant", "a2"),
    ]
    assert history.size() == 2
    assert [t.question for t in history.last_turns(1)] == ["q2"]
    assert history.last_turns(0) == []


def test_save_and_load(tmp_path: Path) -> None:
    history = ConversationHistory()
    history.add_turn("What is RAG?", "Retrieval augmented generation.", sources=[_source("RAG text", 0.75)])
    path = history.save(tmp_path / "nested" / "history.json")

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert set(raw) == {"turns", "created_at", "last_modified"}

    restored = ConversationHistory()
    restored.load(path)
    assert restored.size() == 1
    turn = restored.turns[0]
    assert turn.answer == "Retrieval augmented generation."
    assert turn.sources == [SourceChunk(text="RAG text", score=0.75, metadata={"chunk_index": "0"})]
    assert restored.created_at == history.created_at


def test_load_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        ConversationHistory().load(tmp_path / "none.json")


def test_stats_and_clear() -> None:
    history = ConversationHistory()
    history.add_turn("q1", "a1", sources=[_source(), _source()])
    history.add_turn("q2", "a2", use_rag=False)

    stats = history.stats()
    assert stats["total_turns"] == 2
    assert stats["with_rag"] == 1
    assert stats["without_rag"] == 1
    assert stats["total_sources"] == 2

    history.clear()
    assert history.size() == 0


def test_format_sources() -> None:
    long_text = "x" * 200
    rendered = ConversationHistory.format_sources(
        [SourceChunk(text=long_text, score=0.123456, metadata={"source_file": "a.rtf"})]
    )
    assert "1. [Relevance: 0.1235]" in rendered
    assert "Metadata: source_file=a.rtf" in rendered
    assert "x" * 150 + "..." in rendered
    assert "x" * 151 not in rendered

    assert "none" in ConversationHistory.format_sources([])
