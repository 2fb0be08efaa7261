from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Union

from .chunking import ChunkingStrategy, chunk_text
from .embeddings import BatchEmbeddings, BatchFailurePolicy, EmbeddingProvider, embed_batch
from .errors import ArityMismatch, DimensionMismatch
from .models import Chunk, SearchResult
from .vector_store import VectorStore

_log = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"


class StoreErrorKind(str, Enum):
    EMPTY_STORE = "empty_store"
    DIMENSION_MISMATCH = "dimension_mismatch"


@dataclass(frozen=True)
class Found:
    """Retrieval produced usable context."""

    context: str
    results: List[SearchResult]


@dataclass(frozen=True)
class NoRelevantResults:
    """
    The store answered, but nothing reached the relevance threshold.

    ``best_score`` is the top score seen before filtering, so callers can
    report how close retrieval came.
    """

    best_score: float
    threshold: float
    candidates: List[SearchResult] = field(default_factory=list)


@dataclass(frozen=True)
class StoreError:
    """The store could not be searched for this query."""

    kind: StoreErrorKind
    message: str


RetrievalOutcome = Union[Found, NoRelevantResults, StoreError]


def build_context(results: Sequence[SearchResult], separator: str = CONTEXT_SEPARATOR) -> str:
    """Join result texts, in the given order, into one prompt-ready block."""
    return separator.join(r.text for r in results)


def chunk_metadata(chunk: Chunk, source: Optional[str] = None) -> Dict[str, str]:
    """Metadata stored next to each chunk's embedding."""
    metadata = {
        "chunk_index": str(chunk.index),
        "start_pos": str(chunk.start_offset),
        "end_pos": str(chunk.end_offset),
    }
    if source is not None:
        metadata["source_file"] = source
    return metadata


@dataclass
class RetrievalPipeline:
    """Populates a store from chunks and turns query vectors into prompt context."""

    top_k: int = 5
    min_relevance_score: float = 0.0
    separator: str = CONTEXT_SEPARATOR

    def populate(
        self,
        store: VectorStore,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Sequence[float]],
        source: Optional[str] = None,
    ) -> int:
        """
        Add one entry per chunk, in chunk order.

        ``embeddings`` must already be in the same order as ``chunks``.
        Returns the number of entries added.
        """
        if len(chunks) != len(embeddings):
            raise ArityMismatch(len(chunks), len(embeddings))

        added = store.add_batch(
            [c.text for c in chunks],
            embeddings,
            [chunk_metadata(c, source) for c in chunks],
        )
        _log.info("Added %d chunks to the index (size now %d)", len(added), store.size())
        return len(added)

    def search(
        self,
        store: VectorStore,
        query_embedding: Sequence[float],
        k: Optional[int] = None,
        min_relevance_score: Optional[float] = None,
    ) -> RetrievalOutcome:
        """Search ``store`` and classify the result for the caller."""
        k = self.top_k if k is None else k
        threshold = self.min_relevance_score if min_relevance_score is None else min_relevance_score

        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")

        if store.size() == 0:
            return StoreError(StoreErrorKind.EMPTY_STORE, "The index contains no entries")

        try:
            results = store.search(query_embedding, k)
        except DimensionMismatch as exc:
            _log.warning("Query rejected by the index: %s", exc)
            return StoreError(StoreErrorKind.DIMENSION_MISMATCH, str(exc))

        # The default threshold of exactly 0 means no filtering.
        if threshold == 0.0:
            filtered = list(results)
        else:
            filtered = [r for r in results if r.score >= threshold]

        if not filtered:
            best = results[0].score
            _log.info(
                "No result reached the relevance threshold %.4f (best score %.4f)", threshold, best
            )
            return NoRelevantResults(best_score=best, threshold=threshold, candidates=list(results))

        _log.debug("Retrieved %d of %d results above threshold %.4f", len(filtered), len(results), threshold)
        return Found(context=build_context(filtered, self.separator), results=filtered)


@dataclass
class IndexingReport:
    chunks: List[Chunk]
    embeddings: BatchEmbeddings
    added: int


def index_document(
    text: str,
    embedder: EmbeddingProvider,
    store: VectorStore,
    strategy: ChunkingStrategy | str = ChunkingStrategy.SLIDING_WINDOW,
    chunk_params: Optional[Dict[str, int]] = None,
    source: Optional[str] = None,
    failure_policy: BatchFailurePolicy | str = BatchFailurePolicy.PLACEHOLDER,
    dimension: Optional[int] = None,
    pipeline: Optional[RetrievalPipeline] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> IndexingReport:
    """
    Segment ``text``, embed every chunk and add the chunks to ``store``.

    When no chunk of the batch could be embedded, placeholder vectors take
    the dimension of a populated store, otherwise ``dimension``.
    """
    pipeline = pipeline or RetrievalPipeline()
    chunks = chunk_text(text, strategy, **(chunk_params or {}))
    if not chunks:
        _log.warning("No chunks produced; nothing to index")
        return IndexingReport(chunks=[], embeddings=BatchEmbeddings(embeddings=[]), added=0)

    # Placeholders must match an already populated store.
    if store.dimension:
        dimension = store.dimension

    batch = embed_batch(
        embedder,
        [c.text for c in chunks],
        policy=failure_policy,
        dimension=dimension,
        on_progress=on_progress,
    )
    added = pipeline.populate(store, chunks, batch.embeddings, source=source)
    return IndexingReport(chunks=chunks, embeddings=batch, added=added)


__all__ = [
    "CONTEXT_SEPARATOR",
    "Found",
    "IndexingReport",
    "NoRelevantResults",
    "RetrievalOutcome",
    "RetrievalPipeline",
    "StoreError",
    "StoreErrorKind",
    "build_context",
    "chunk_metadata",
    "index_document",
]
