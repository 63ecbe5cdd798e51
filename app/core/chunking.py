"""Text chunking for knowledge documents."""

import re
from typing import Any

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def _windows(text: str, max_chars: int, overlap: int) -> list[str]:
    """Overlapping fixed-size windows over one oversized paragraph."""
    pieces = []
    start = 0
    while start < len(text):
        end = min(start + max_chars, len(text))
        pieces.append(text[start:end])
        if end >= len(text):
            break
        start = end - overlap
    return pieces


def chunk_text(
    text: str,
    max_chars: int = 1000,
    overlap: int = 100,
    metadata: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """
    Split text into chunks, packing whole paragraphs where they fit.

    Paragraphs longer than max_chars are cut into overlapping windows so
    context carries across the cut.

    Args:
        text: Document text
        max_chars: Maximum characters per chunk
        overlap: Characters shared by consecutive windows of a long paragraph
        metadata: Optional metadata copied into each chunk

    Returns:
        List of chunk dicts with chunk_index, content and metadata

    Raises:
        ValueError: If max_chars <= overlap
    """
    if max_chars <= overlap:
        raise ValueError(f"max_chars ({max_chars}) must be greater than overlap ({overlap})")

    paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(text or "") if p.strip()]

    contents: list[str] = []
    current = ""
    for paragraph in paragraphs:
        if current and len(current) + len(paragraph) + 2 > max_chars:
            contents.append(current)
            current = ""

        if len(paragraph) > max_chars:
            contents.extend(_windows(paragraph, max_chars, overlap))
            continue

        current = f"{current}\n\n{paragraph}" if current else paragraph

    if current:
        contents.append(current)

    return [
        {"chunk_index": i, "content": content, "metadata": dict(metadata or {})}
        for i, content in enumerate(contents)
    ]
