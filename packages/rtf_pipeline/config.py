from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from retrieval_core.chunking import ChunkingStrategy
from retrieval_core.embeddings import BatchFailurePolicy


class RagSettings(BaseSettings):
    """Configuration for indexing documents and answering questions."""

    project_root: Path = Field(
        default_factory=Path.cwd,
        description="Directory relative paths are resolved against.",
    )

    index_path: Path = Field(
        default_factory=lambda: Path("embeddings_index.json"),
        description="Vector index file written by `index` and read by `search`/`ask`.",
    )
    history_path: Path = Field(
        default_factory=lambda: Path("conversation_history.json"),
        description="Conversation history file used by `ask --history`.",
    )

    # Segmentation
    chunk_strategy: ChunkingStrategy = Field(default=ChunkingStrategy.SLIDING_WINDOW)
    chunk_size: int = Field(default=500, gt=0, description="Sliding window length in characters.")
    chunk_overlap: int = Field(default=50, ge=0, description="Sliding window overlap in characters.")
    max_chunk_size: int = Field(default=1000, gt=0, description="Paragraph strategy upper bound.")
    min_chunk_size: int = Field(default=100, ge=1, description="Paragraph strategy lower bound.")

    # Retrieval
    top_k: int = Field(default=5, gt=0)
    min_relevance_score: float = Field(
        default=0.0,
        ge=-1.0,
        le=1.0,
        description="Results scoring below this are dropped; 0 disables the filter.",
    )

    # Embedding provider (Ollama)
    ollama_url: str = Field(default="http://localhost:11434")
    embedding_model: str = Field(default="nomic-embed-text")
    embedding_dimension: int = Field(
        default=768,
        gt=0,
        description="Placeholder vector length when no chunk of a batch could be embedded.",
    )
    embedding_timeout: float = Field(default=60.0, gt=0)
    embedding_failure_policy: BatchFailurePolicy = Field(default=BatchFailurePolicy.PLACEHOLDER)

    # Chat provider (OpenRouter, OpenAI-compatible API)
    openrouter_api_key: Optional[str] = Field(default=None)
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")
    chat_model: str = Field(default="nex-agi/deepseek-v3.1-nex-n1:free")
    chat_timeout: float = Field(default=60.0, gt=0)

    class Config:
        env_prefix = "RTF_RAG_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @model_validator(mode="after")
    def _check_chunk_bounds(self) -> "RagSettings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        if self.min_chunk_size >= self.max_chunk_size:
            raise ValueError(
                f"min_chunk_size ({self.min_chunk_size}) must be smaller than max_chunk_size ({self.max_chunk_size})"
            )
        return self

    def chunk_params(self) -> Dict[str, int]:
        """Keyword arguments for the configured chunking strategy."""
        if self.chunk_strategy is ChunkingStrategy.PARAGRAPH:
            return {"max_chunk_size": self.max_chunk_size, "min_chunk_size": self.min_chunk_size}
        return {"chunk_size": self.chunk_size, "overlap": self.chunk_overlap}

    def resolve_paths(self) -> "RagSettings":
        """Return a copy with all relative paths resolved against project_root."""

        def _resolve(path: Path) -> Path:
            if path.is_absolute():
                return path
            return self.project_root / path

        return self.model_copy(
            update={
                "index_path": _resolve(self.index_path),
                "history_path": _resolve(self.history_path),
            }
        )


def get_settings(**overrides: object) -> RagSettings:
    """Return settings with resolved paths; keyword overrides win over the environment."""
    return RagSettings(**overrides).resolve_paths()


__all__ = ["RagSettings", "get_settings"]
