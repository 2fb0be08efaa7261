"""
Conversation history for the question answering agent.

Turns are kept in memory and can be persisted to a JSON file so a later
session can continue the same conversation.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Sequence

from pydantic import BaseModel, Field

from retrieval_core.models import SearchResult

from .chat_client import ChatMessage

_log = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
PREVIEW_CHARS = 150


def _now() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


class SourceChunk(BaseModel):
    """A retrieved passage used to answer a question."""

    text: str
    score: float
    metadata: Dict[str, str] = Field(default_factory=dict)


class ConversationTurn(BaseModel):
    timestamp: str
    question: str
    answer: str
    sources: List[SourceChunk] = Field(default_factory=list)
    use_rag: bool = True


class ConversationData(BaseModel):
    """Persisted form of a conversation."""

    turns: List[ConversationTurn] = Field(default_factory=list)
    created_at: str
    last_modified: str


class ConversationHistory:
    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []
        self.created_at = _now()

    def add_turn(
        self,
        question: str,
        answer: str,
        sources: Sequence[SearchResult] = (),
        use_rag: bool = True,
    ) -> ConversationTurn:
        turn = ConversationTurn(
            timestamp=_now(),
            question=question,
            answer=answer,
            sources=[SourceChunk(text=s.text, score=s.score, metadata=dict(s.metadata)) for s in sources],
            use_rag=use_rag,
        )
        self._turns.append(turn)
        return turn

    def messages_for_llm(self) -> List[ChatMessage]:
        """Prior turns as alternating user/assistant messages, without sources."""
        messages: list[ChatMessage] = []
        for turn in self._turns:
            messages.append(ChatMessage(role="user", content=turn.question))
            messages.append(ChatMessage(role="assistant", content=turn.answer))
        return messages

    def last_turns(self, n: int) -> List[ConversationTurn]:
        if n <= 0:
            return []
        return list(self._turns[-n:])

    @property
    def turns(self) -> List[ConversationTurn]:
        return list(self._turns)

    def size(self) -> int:
        return len(self._turns)

    def clear(self) -> None:
        self._turns.clear()
        self.created_at = _now()

    def save(self, path: Path | str) -> Path:
        path = Path(path)
        data = ConversationData(turns=self._turns, created_at=self.created_at, last_modified=_now())
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(data.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
        _log.info("Conversation history saved: %s (%d turns)", path, len(self._turns))
        return path

    def load(self, path: Path | str) -> None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"History file not found: {path}")

        data = ConversationData.model_validate_json(path.read_text(encoding="utf-8"))
        self._turns = list(data.turns)
        self.created_at = data.created_at
        _log.info("Conversation history loaded: %s (%d turns)", path, len(self._turns))

    def stats(self) -> Dict[str, object]:
        with_rag = sum(1 for t in self._turns if t.use_rag)
        return {
            "total_turns": len(self._turns),
            "with_rag": with_rag,
            "without_rag": len(self._turns) - with_rag,
            "total_sources": sum(len(t.sources) for t in self._turns),
            "created_at": self.created_at,
        }

    @staticmethod
    def format_sources(sources: Sequence[SourceChunk]) -> str:
        """Human-readable list of sources with score, metadata and a text preview."""
        if not sources:
            return "\nSources: none (answered without retrieval)"

        lines = ["", "", "Sources:"]
        for idx, source in enumerate(sources, 1):
            lines.append("")
            lines.append(f"{idx}. [Relevance: {source.score:.4f}]")
            if source.metadata:
                meta = ", ".join(f"{k}={v}" for k, v in source.metadata.items())
                lines.append(f"   Metadata: {meta}")
            preview = source.text
            if len(preview) > PREVIEW_CHARS:
                preview = preview[:PREVIEW_CHARS] + "..."
            lines.append(f"   Text: {preview}")
        return "\n".join(lines) + "\n"


__all__ = [
    "ConversationData",
    "ConversationHistory",
    "ConversationTurn",
    "SourceChunk",
]
