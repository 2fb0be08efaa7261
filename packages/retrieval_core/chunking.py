from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, List

from .models import Chunk

_log = logging.getLogger(__name__)


class ChunkingStrategy(str, Enum):
    """Available segmentation strategies."""

    SLIDING_WINDOW = "sliding_window"
    PARAGRAPH = "paragraph"


# C0 controls except tab, newline and carriage return.
CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
WHITESPACE_PATTERN = re.compile(r"\s+")
SENTENCE_SPLIT_PATTERN = re.compile(r"(?<=[.!?])\s+")

# Characters accepted as a clean break when shortening a window.
SENTENCE_TERMINALS = ".!?\n"
# How far back from the tentative window end we look for a clean break.
BREAK_LOOKBACK = 100

DEFAULT_CHUNK_SIZE = 500
DEFAULT_OVERLAP = 50
DEFAULT_MAX_CHUNK_SIZE = 1000
DEFAULT_MIN_CHUNK_SIZE = 100


def strip_control_chars(text: str) -> str:
    """Remove C0 control characters, keeping tab and line breaks."""
    return CONTROL_CHARS_PATTERN.sub("", text)


def clean_text(text: str) -> str:
    """Strip control characters and collapse every whitespace run to one space."""
    return WHITESPACE_PATTERN.sub(" ", strip_control_chars(text)).strip()


def _find_break(text: str, start: int, end: int) -> int:
    """
    Return the end position to use for a window ``text[start:end]``.

    Looks at the last ``BREAK_LOOKBACK`` characters of the window for the
    rightmost sentence terminal and cuts just after it. Falls back to ``end``.
    """
    search_start = max(start, end - BREAK_LOOKBACK)
    window = text[search_start:end]
    last = max(window.rfind(ch) for ch in SENTENCE_TERMINALS)
    if last >= 0:
        return search_start + last + 1
    return end


def chunk_sliding_window(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> List[Chunk]:
    """
    Split text into fixed-size windows that overlap by ``overlap`` characters.

    Whitespace is normalised first, so offsets refer to the cleaned text.
    Windows prefer to end right after a sentence terminal found near their
    tentative end.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(f"overlap must be in [0, chunk_size), got {overlap} for chunk_size={chunk_size}")

    cleaned = clean_text(text)
    length = len(cleaned)
    chunks: list[Chunk] = []

    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        actual_end = _find_break(cleaned, start, end) if end < length else end

        window = cleaned[start:actual_end].strip()
        if window:
            chunks.append(
                Chunk(
                    text=window,
                    index=len(chunks),
                    start_offset=start,
                    end_offset=actual_end,
                )
            )

        if actual_end < length:
            # Always move forward, even when the overlap covers the whole window.
            start = max(start + 1, actual_end - overlap)
        else:
            start = actual_end

    _log.debug("Sliding window produced %d chunks from %d characters", len(chunks), length)
    return chunks


def _split_sentences(paragraph: str) -> List[str]:
    return [s for s in SENTENCE_SPLIT_PATTERN.split(paragraph) if s]


def _split_long_paragraph(
    paragraph: str,
    offset: int,
    max_chunk_size: int,
    min_chunk_size: int,
) -> List[tuple[str, int, int]]:
    """Pack the sentences of an oversized paragraph into bounded pieces."""
    pieces: list[tuple[str, int, int]] = []
    buffer = ""
    buffer_start = offset

    def _flush() -> None:
        piece = buffer.strip()
        if len(piece) >= min_chunk_size:
            pieces.append((piece, buffer_start, buffer_start + len(buffer)))

    for sentence in _split_sentences(paragraph):
        candidate = f"{buffer} {sentence}" if buffer else sentence
        if len(candidate) > max_chunk_size and buffer:
            _flush()
            buffer_start += len(buffer)
            buffer = sentence
        else:
            buffer = candidate

    if buffer:
        _flush()
    return pieces


def chunk_by_paragraphs(
    text: str,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
) -> List[Chunk]:
    """
    Split text on line breaks and keep paragraphs within the size bounds.

    Short paragraphs are dropped, long ones are re-split on sentence
    boundaries. Offsets are a running sum of paragraph lengths and do not
    count the separators removed by the split, so they only approximate the
    positions in the source text.
    """
    if min_chunk_size < 1:
        raise ValueError(f"min_chunk_size must be at least 1, got {min_chunk_size}")
    if min_chunk_size >= max_chunk_size:
        raise ValueError(
            f"min_chunk_size ({min_chunk_size}) must be below max_chunk_size ({max_chunk_size})"
        )

    cleaned = strip_control_chars(text)
    paragraphs = [p.strip() for p in cleaned.split("\n")]

    chunks: list[Chunk] = []
    offset = 0

    for paragraph in paragraphs:
        if not paragraph:
            continue

        length = len(paragraph)
        if length > max_chunk_size:
            for piece, start, end in _split_long_paragraph(paragraph, offset, max_chunk_size, min_chunk_size):
                chunks.append(Chunk(text=piece, index=len(chunks), start_offset=start, end_offset=end))
        elif length >= min_chunk_size:
            chunks.append(
                Chunk(text=paragraph, index=len(chunks), start_offset=offset, end_offset=offset + length)
            )

        # Dropped paragraphs still advance the offset.
        offset += length

    _log.debug("Paragraph chunking produced %d chunks from %d paragraphs", len(chunks), len(paragraphs))
    return chunks


def chunk_text(
    text: str,
    strategy: ChunkingStrategy | str = ChunkingStrategy.SLIDING_WINDOW,
    **params: Any,
) -> List[Chunk]:
    """
    Segment ``text`` with the selected strategy.

    ``params`` are forwarded to the strategy function: ``chunk_size`` and
    ``overlap`` for the sliding window, ``max_chunk_size`` and
    ``min_chunk_size`` for paragraphs.
    """
    strategy = ChunkingStrategy(strategy)
    if strategy is ChunkingStrategy.PARAGRAPH:
        return chunk_by_paragraphs(text, **params)
    return chunk_sliding_window(text, **params)


__all__ = [
    "ChunkingStrategy",
    "chunk_by_paragraphs",
    "chunk_sliding_window",
    "chunk_text",
    "clean_text",
    "strip_control_chars",
]
