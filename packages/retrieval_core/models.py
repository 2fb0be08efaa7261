from __future__ import annotations

from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Chunk(BaseModel):
    """A bounded span of cleaned source text selected as a retrieval unit."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Trimmed chunk text sent to the embedding provider.")
    index: int = Field(..., ge=0, description="Emission sequence number within the document.")
    start_offset: int = Field(..., ge=0, description="Start position in the cleaned text.")
    end_offset: int = Field(..., description="End position (exclusive) in the cleaned text.")

    @model_validator(mode="after")
    def _check_span(self) -> "Chunk":
        if self.start_offset >= self.end_offset:
            raise ValueError(
                f"start_offset ({self.start_offset}) must be below end_offset ({self.end_offset})"
            )
        return self


class IndexEntry(BaseModel):
    """Stored record of the vector index."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, description="Dense insertion id, stable for the store lifetime.")
    text: str = Field(..., description="Chunk text returned as retrieval context.")
    embedding: Tuple[float, ...] = Field(..., description="Embedding vector of the text.")
    metadata: Dict[str, str] = Field(
        default_factory=dict,
        description="Free-form string metadata (chunk position, source file, ...).",
    )


class IndexData(BaseModel):
    """Persisted form of a vector index."""

    model_config = ConfigDict(populate_by_name=True)

    entries: List[IndexEntry] = Field(default_factory=list)
    dimension: int = Field(..., ge=0)
    total_entries: int = Field(..., ge=0, alias="totalEntries")


class SearchResult(BaseModel):
    """A stored entry scored against a query vector."""

    id: int
    text: str
    score: float = Field(..., description="Cosine similarity in [-1, 1].")
    metadata: Dict[str, str] = Field(default_factory=dict)


__all__ = ["Chunk", "IndexData", "IndexEntry", "SearchResult"]
