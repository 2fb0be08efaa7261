"""Test configuration ensuring local packages are importable."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
PACKAGES = ROOT / "packages"
if str(PACKAGES) not in sys.path:
    sys.path.insert(0, str(PACKAGES))

from retrieval_core.errors import EmbeddingError  # noqa: E402
from retrieval_core.vector_store import VectorStore  # noqa: E402


class FakeEmbedder:
    """Deterministic embedder: looks texts up in a table, fails on request."""

    def __init__(self, table: Dict[str, List[float]] | None = None, fail_on: tuple[str, ...] = (), dim: int = 3):
        self.table = table or {}
        self.fail_on = fail_on
        self.dim = dim
        self.calls: list[str] = []
        self.closed = False

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingError(f"provider failed for {text[:20]!r}")
        if text in self.table:
            return list(self.table[text])
        # Stable pseudo-embedding derived from the text.
        return [float((sum(map(ord, text)) * (i + 1)) % 7 + 1) for i in range(self.dim)]

    def close(self) -> None:
        self.closed = True


class FakeChat:
    def __init__(self, answer: str = "an answer") -> None:
        self.answer = answer
        self.requests: list[list] = []

    def complete(self, messages) -> str:
        self.requests.append(list(messages))
        return self.answer

    def close(self) -> None:
        pass


@pytest.fixture
def three_entry_store() -> VectorStore:
    store = VectorStore()
    store.add("east", [1.0, 0.0], {"name": "east"})
    store.add("north", [0.0, 1.0], {"name": "north"})
    store.add("north-east", [0.7, 0.7], {"name": "north-east"})
    return store


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_chat() -> FakeChat:
    return FakeChat()
