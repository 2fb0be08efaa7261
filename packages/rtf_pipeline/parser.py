from __future__ import annotations

import logging
from pathlib import Path

from striprtf.striprtf import rtf_to_text

_log = logging.getLogger(__name__)

RTF_SUFFIXES = {".rtf"}


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        # Older RTF writers emit raw cp1252 bytes.
        return path.read_text(encoding="cp1252")


def extract_text(path: Path | str) -> str:
    """
    Return the plain text of a document.

    RTF files are converted with striprtf; any other file is read as text.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Document not found: {path}")
    if not path.is_file():
        raise ValueError(f"Not a regular file: {path}")

    try:
        raw = _read_source(path)
    except UnicodeDecodeError as exc:
        raise ValueError(f"Cannot decode {path}: {exc}") from exc

    if path.suffix.lower() in RTF_SUFFIXES:
        _log.info("Converting RTF document: %s", path)
        text = rtf_to_text(raw)
    else:
        text = raw

    _log.info("Extracted %d characters from %s", len(text), path.name)
    return text


__all__ = ["extract_text"]
