"""
Error types raised by the retrieval core.

All of them are local and synchronous; nothing here is retried by the core.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class RetrievalError(Exception):
    """Base class for retrieval core errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class DimensionMismatch(RetrievalError, ValueError):
    """Embedding length disagrees with the store dimension."""

    def __init__(self, expected: int, actual: int, what: str = "embedding") -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{what.capitalize()} dimension mismatch. Expected {expected}, got {actual}",
            {"expected": expected, "actual": actual},
        )


class ArityMismatch(RetrievalError, ValueError):
    """Parallel batch inputs have different lengths."""

    def __init__(self, texts: int, embeddings: int) -> None:
        super().__init__(
            "Number of texts and embeddings must match",
            {"texts": texts, "embeddings": embeddings},
        )


class IndexNotFound(RetrievalError, FileNotFoundError):
    """Index file does not exist."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Index file not found: {path}")


class CorruptIndex(RetrievalError, ValueError):
    """Index file exists but violates the persisted structure."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Corrupt index file {path}: {reason}", {"path": str(path)})


class EmbeddingError(RetrievalError):
    """The embedding provider failed to produce a vector."""


__all__ = [
    "ArityMismatch",
    "CorruptIndex",
    "DimensionMismatch",
    "EmbeddingError",
    "IndexNotFound",
    "RetrievalError",
]
