from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import numpy as np
from pydantic import ValidationError

from .errors import ArityMismatch, CorruptIndex, DimensionMismatch, IndexNotFound
from .models import IndexData, IndexEntry, SearchResult

_log = logging.getLogger(__name__)

# Bytes per stored float64 component, used for the size estimate in stats().
_BYTES_PER_COMPONENT = 8


def cosine_scores(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of ``query`` against every row of ``matrix``.

    Rows (or a query) with zero norm score 0.0 instead of NaN.
    """
    dots = matrix @ query
    denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    scores = np.zeros(len(matrix), dtype=np.float64)
    np.divide(dots, denominators, out=scores, where=denominators != 0.0)
    return np.clip(scores, -1.0, 1.0)


class VectorStore:
    """
    Flat in-memory vector index with JSON persistence.

    Every entry shares one embedding dimension, fixed by the first ``add``
    after creation or ``clear``. Search is an exhaustive cosine scan over all
    entries.
    """

    def __init__(self) -> None:
        self._entries: list[IndexEntry] = []
        self._dimension: int = 0
        # Stacked embeddings, rebuilt lazily after mutations.
        self._matrix: np.ndarray | None = None

    @property
    def dimension(self) -> int:
        """Embedding dimension of the store, 0 while unconstrained."""
        return self._dimension

    @property
    def entries(self) -> tuple[IndexEntry, ...]:
        return tuple(self._entries)

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def add(
        self,
        text: str,
        embedding: Sequence[float],
        metadata: Mapping[str, str] | None = None,
    ) -> IndexEntry:
        """Append one entry; its id is the current store size."""
        if len(embedding) == 0:
            raise DimensionMismatch(self._dimension, 0)
        if self._entries and len(embedding) != self._dimension:
            raise DimensionMismatch(self._dimension, len(embedding))

        entry = IndexEntry(
            id=len(self._entries),
            text=text,
            embedding=tuple(float(x) for x in embedding),
            metadata=dict(metadata or {}),
        )
        if not self._entries:
            self._dimension = len(entry.embedding)
        self._entries.append(entry)
        self._matrix = None
        return entry

    def add_batch(
        self,
        texts: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        metadata: Sequence[Mapping[str, str]] | None = None,
    ) -> List[IndexEntry]:
        """
        Add texts with their embeddings in order.

        Not atomic: entries added before a failing position stay in the store.
        Missing metadata positions default to an empty mapping.
        """
        if len(texts) != len(embeddings):
            raise ArityMismatch(len(texts), len(embeddings))

        metadata = metadata or []
        added: list[IndexEntry] = []
        for i, (text, embedding) in enumerate(zip(texts, embeddings)):
            meta = metadata[i] if i < len(metadata) else {}
            added.append(self.add(text, embedding, meta))
        return added

    def _embedding_matrix(self) -> np.ndarray:
        if self._matrix is None:
            self._matrix = np.asarray([e.embedding for e in self._entries], dtype=np.float64)
        return self._matrix

    def search(self, query_embedding: Sequence[float], k: int = 5) -> List[SearchResult]:
        """
        Return the ``k`` entries most similar to ``query_embedding``.

        Results are ordered by descending cosine similarity; equal scores keep
        insertion order (lower id first).
        """
        if not self._entries:
            return []
        if len(query_embedding) != self._dimension:
            raise DimensionMismatch(self._dimension, len(query_embedding), what="query embedding")
        if k <= 0:
            return []

        query = np.asarray(query_embedding, dtype=np.float64)
        scores = cosine_scores(query, self._embedding_matrix())
        # Stable sort on negated scores keeps ids ascending within ties.
        order = np.argsort(-scores, kind="stable")[:k]

        results: list[SearchResult] = []
        for idx in order:
            entry = self._entries[int(idx)]
            results.append(
                SearchResult(
                    id=entry.id,
                    text=entry.text,
                    score=float(scores[idx]),
                    metadata=dict(entry.metadata),
                )
            )
        return results

    def save(self, path: Path | str) -> Path:
        """Write the index as pretty-printed JSON and return the path."""
        path = Path(path)
        data = IndexData(
            entries=list(self._entries),
            dimension=self._dimension,
            total_entries=len(self._entries),
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(data.model_dump(mode="json", by_alias=True), f, ensure_ascii=False, indent=2)

        _log.info("Index saved to %s (%d entries, dimension: %d)", path, len(self._entries), self._dimension)
        return path

    @staticmethod
    def _read_index_data(path: Path) -> IndexData:
        if not path.exists():
            raise IndexNotFound(path)

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CorruptIndex(path, f"not valid JSON ({exc})") from exc

        try:
            data = IndexData.model_validate(raw)
        except ValidationError as exc:
            raise CorruptIndex(path, f"unexpected structure ({exc.error_count()} validation errors)") from exc

        if data.total_entries != len(data.entries):
            raise CorruptIndex(
                path, f"totalEntries is {data.total_entries} but {len(data.entries)} entries are stored"
            )
        for position, entry in enumerate(data.entries):
            if entry.id != position:
                raise CorruptIndex(
                    path, f"entry at position {position} has id {entry.id}; ids must run 0..n-1 in order"
                )
            if len(entry.embedding) != data.dimension:
                raise CorruptIndex(
                    path,
                    f"entry {entry.id} has {len(entry.embedding)} components, dimension is {data.dimension}",
                )
        return data

    def load(self, path: Path | str) -> None:
        """
        Replace the store contents with the index stored at ``path``.

        The file is fully validated first, so a failed load leaves the store
        unchanged.
        """
        path = Path(path)
        data = self._read_index_data(path)

        self.clear()
        self._entries.extend(data.entries)
        self._dimension = data.dimension

        _log.info("Index loaded from %s (%d entries, dimension: %d)", path, len(self._entries), self._dimension)

    @classmethod
    def from_file(cls, path: Path | str) -> "VectorStore":
        store = cls()
        store.load(path)
        return store

    def clear(self) -> None:
        """Remove every entry and reset the dimension to unconstrained."""
        self._entries.clear()
        self._dimension = 0
        self._matrix = None

    def stats(self) -> Dict[str, float]:
        """Return entry count, dimension and approximate embedding memory in MB."""
        size_bytes = len(self._entries) * self._dimension * _BYTES_PER_COMPONENT
        return {
            "total_entries": len(self._entries),
            "dimension": self._dimension,
            "size_mb": round(size_bytes / 1024 / 1024, 3),
        }


__all__ = ["VectorStore", "cosine_scores"]
