from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from retrieval_core.embeddings import EmbeddingProvider
from retrieval_core.errors import EmbeddingError
from retrieval_core.models import SearchResult
from retrieval_core.retrieval import (
    Found,
    NoRelevantResults,
    RetrievalOutcome,
    RetrievalPipeline,
    StoreError,
)
from retrieval_core.vector_store import VectorStore

from .chat_client import SYSTEM_PROMPT_TEMPLATE, ChatClient, ChatMessage
from .history import ConversationHistory

_log = logging.getLogger(__name__)


@dataclass
class AnswerResult:
    """Answer to one question plus how retrieval went."""

    answer: str
    sources: List[SearchResult]
    used_rag: bool
    outcome: Optional[RetrievalOutcome] = None
    fallback_reason: Optional[str] = None


def _fallback_reason(outcome: RetrievalOutcome) -> str:
    if isinstance(outcome, NoRelevantResults):
        return (
            f"no passage reached the relevance threshold {outcome.threshold:.4f} "
            f"(best score {outcome.best_score:.4f})"
        )
    if isinstance(outcome, StoreError):
        return f"index unavailable ({outcome.kind.value}): {outcome.message}"
    return ""


@dataclass
class QuestionAnsweringAgent:
    """
    Answers questions with retrieved context, falling back to a plain question.

    The fallback is taken whenever retrieval yields no usable context: the
    question embedding failed, the store is empty or incompatible, or no
    passage scored above the relevance threshold.
    """

    store: VectorStore
    embedder: EmbeddingProvider
    chat: ChatClient
    pipeline: RetrievalPipeline = field(default_factory=RetrievalPipeline)
    history: ConversationHistory = field(default_factory=ConversationHistory)

    def retrieve(self, question: str) -> tuple[Optional[RetrievalOutcome], Optional[str]]:
        """Return the retrieval outcome, or a reason when the question could not be embedded."""
        try:
            query_embedding = self.embedder.embed(question)
        except EmbeddingError as exc:
            _log.warning("Could not embed question, answering without retrieval: %s", exc)
            return None, f"question embedding failed: {exc.message}"
        return self.pipeline.search(self.store, query_embedding), None

    def _messages(self, question: str, context: Optional[str]) -> List[ChatMessage]:
        messages: list[ChatMessage] = []
        if context is not None:
            messages.append(ChatMessage(role="system", content=SYSTEM_PROMPT_TEMPLATE.format(context=context)))
        messages.extend(self.history.messages_for_llm())
        messages.append(ChatMessage(role="user", content=question))
        return messages

    def ask(self, question: str, use_rag: bool = True) -> AnswerResult:
        outcome: Optional[RetrievalOutcome] = None
        reason: Optional[str] = None if use_rag else "retrieval disabled"

        if use_rag:
            outcome, reason = self.retrieve(question)
            if outcome is not None and not isinstance(outcome, Found):
                reason = _fallback_reason(outcome)

        if isinstance(outcome, Found):
            _log.info("Answering with %d retrieved passages", len(outcome.results))
            answer = self.chat.complete(self._messages(question, outcome.context))
            sources = list(outcome.results)
        else:
            if use_rag:
                _log.info("Falling back to a plain question: %s", reason)
            answer = self.chat.complete(self._messages(question, None))
            sources = []

        used_rag = bool(sources)
        self.history.add_turn(question, answer, sources=sources, use_rag=used_rag)
        return AnswerResult(
            answer=answer,
            sources=sources,
            used_rag=used_rag,
            outcome=outcome,
            fallback_reason=None if used_rag else reason,
        )


__all__ = ["AnswerResult", "QuestionAnsweringAgent"]
