"""Paragraph-boundary chunking for oversized knowledge documents."""

from __future__ import annotations

PARAGRAPH_SEPARATOR = "\n\n"
DEFAULT_CHUNK_LENGTH = 2000


def chunk_content(content: str, max_length: int = DEFAULT_CHUNK_LENGTH) -> list[str]:
    """Split *content* into segments of at most *max_length* characters.

    Paragraphs (separated by a blank line) are accumulated greedily and a
    new segment starts whenever the next paragraph would push the running
    segment past *max_length*.  A paragraph is never split, so a single
    paragraph longer than *max_length* becomes its own oversized segment.

    ``PARAGRAPH_SEPARATOR.join(chunk_content(c))`` always reproduces ``c``.
    """
    if len(content) <= max_length:
        return [content]

    chunks: list[str] = []
    current: list[str] = []
    current_length = 0

    for paragraph in content.split(PARAGRAPH_SEPARATOR):
        added = len(paragraph) + (len(PARAGRAPH_SEPARATOR) if current else 0)
        if current and current_length + added > max_length:
            chunks.append(PARAGRAPH_SEPARATOR.join(current))
            current = [paragraph]
            current_length = len(paragraph)
        else:
            current.append(paragraph)
            current_length += added

    if current:
        chunks.append(PARAGRAPH_SEPARATOR.join(current))
    return chunks
