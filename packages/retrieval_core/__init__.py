"""
Retrieval core for the RTF RAG project.

This package contains:
- Data models for chunks, index entries and search results
- Text segmentation (sliding window and paragraph strategies)
- The flat vector store with JSON persistence
- The retrieval pipeline that turns query vectors into prompt context
- The embedding provider interface and its Ollama implementation
"""

from .chunking import ChunkingStrategy, chunk_by_paragraphs, chunk_sliding_window, chunk_text
from .errors import ArityMismatch, CorruptIndex, DimensionMismatch, EmbeddingError, IndexNotFound, RetrievalError
from .models import Chunk, IndexData, IndexEntry, SearchResult
from .retrieval import (
    Found,
    NoRelevantResults,
    RetrievalOutcome,
    RetrievalPipeline,
    StoreError,
    StoreErrorKind,
)
from .vector_store import VectorStore

__all__ = [
    "ArityMismatch",
    "Chunk",
    "ChunkingStrategy",
    "CorruptIndex",
    "DimensionMismatch",
    "EmbeddingError",
    "Found",
    "IndexData",
    "IndexEntry",
    "IndexNotFound",
    "NoRelevantResults",
    "RetrievalError",
    "RetrievalOutcome",
    "RetrievalPipeline",
    "SearchResult",
    "StoreError",
    "StoreErrorKind",
    "VectorStore",
    "chunk_by_paragraphs",
    "chunk_sliding_window",
    "chunk_text",
]
