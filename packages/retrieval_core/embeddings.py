from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

import httpx

from .errors import EmbeddingError

_log = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"


class EmbeddingProvider(Protocol):
    """Anything that maps a text to a fixed-length vector."""

    def embed(self, text: str) -> List[float]: ...


class BatchFailurePolicy(str, Enum):
    """What to do when one item of a batch cannot be embedded."""

    PLACEHOLDER = "placeholder"
    ABORT = "abort"


@dataclass
class BatchEmbeddings:
    """Embeddings in input order plus the positions that got a zero placeholder."""

    embeddings: List[List[float]]
    failed: List[int] = field(default_factory=list)

    @property
    def has_placeholders(self) -> bool:
        return bool(self.failed)


class OllamaEmbedder:
    """Embedding provider backed by the Ollama ``/api/embeddings`` endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_EMBEDDING_MODEL,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = client or httpx.Client(timeout=timeout)

    def embed(self, text: str) -> List[float]:
        url = f"{self.base_url}/api/embeddings"
        try:
            response = self._client.post(url, json={"model": self.model, "prompt": text})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise EmbeddingError(
                f"Failed to generate embedding: HTTP {exc.response.status_code}",
                {"model": self.model, "url": url},
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Error calling Ollama API: {exc}", {"url": url}) from exc
        except ValueError as exc:
            raise EmbeddingError(f"Ollama returned a non-JSON body: {exc}", {"url": url}) from exc

        embedding = payload.get("embedding") if isinstance(payload, dict) else None
        if not embedding:
            raise EmbeddingError("Ollama response contained no embedding", {"model": self.model})
        return [float(x) for x in embedding]

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OllamaEmbedder":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def embed_batch(
    provider: EmbeddingProvider,
    texts: Sequence[str],
    policy: BatchFailurePolicy | str = BatchFailurePolicy.PLACEHOLDER,
    dimension: Optional[int] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> BatchEmbeddings:
    """
    Embed ``texts`` one by one, keeping input order.

    With the placeholder policy a failed item is replaced by a zero vector
    the length of the first successful embedding (``dimension`` when every
    item failed) and its position is reported in ``failed``. With the abort
    policy the first failure is raised.
    """
    policy = BatchFailurePolicy(policy)
    total = len(texts)
    results: list[Optional[List[float]]] = []
    failed: list[int] = []
    learned: Optional[int] = None

    for i, text in enumerate(texts):
        try:
            vector = provider.embed(text)
        except EmbeddingError as exc:
            if policy is BatchFailurePolicy.ABORT:
                raise EmbeddingError(
                    f"Embedding failed for chunk {i}, aborting batch: {exc.message}",
                    {"chunk": i, "total": total},
                ) from exc
            _log.warning("Error generating embedding for chunk %d: %s; using zero placeholder", i, exc)
            failed.append(i)
            results.append(None)
        else:
            if learned is None:
                learned = len(vector)
            results.append(vector)

        if on_progress is not None:
            on_progress(i + 1, total)

    placeholder_size = learned if learned is not None else dimension
    if failed:
        if placeholder_size is None:
            raise EmbeddingError(
                "Every embedding in the batch failed and no dimension is configured for placeholders",
                {"total": total},
            )
        _log.warning("%d of %d embeddings replaced by zero vectors", len(failed), total)

    embeddings = [vec if vec is not None else [0.0] * placeholder_size for vec in results]
    return BatchEmbeddings(embeddings=embeddings, failed=failed)


__all__ = [
    "BatchEmbeddings",
    "BatchFailurePolicy",
    "EmbeddingProvider",
    "OllamaEmbedder",
    "embed_batch",
]
