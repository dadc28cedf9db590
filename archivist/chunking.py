"""Paragraph-aware text chunking.

Provides:
- chunk_text: greedy paragraph packing bounded by a character limit, with a character
  overlap carried from each emitted chunk into the next one.
- hard_split: fixed-size slicing used for paragraphs (or pages) longer than the limit.

Sizes are measured with len(), a cheap proxy for token counts.
"""
import re
from typing import Iterator, List

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def hard_split(text: str, size: int) -> List[str]:
    """Slice text into exact `size`-character pieces plus a final remainder.

    Args:
        text: Input string.
        size: Slice length in characters (must be positive).

    Returns:
        List[str]: Non-empty slices, in order.
    """
    if size <= 0:
        raise ValueError("size must be positive")
    return [text[i:i + size] for i in range(0, len(text), size)]


def split_paragraphs(text: str) -> List[str]:
    """Split on blank lines, trimming paragraphs and dropping empty ones."""
    return [p.strip() for p in _PARAGRAPH_BREAK.split(text or "") if p.strip()]


def chunk_text(text: str, max_chars: int, overlap_chars: int) -> Iterator[str]:
    """Lazily pack paragraphs into chunks of at most `max_chars` characters.

    Paragraphs are accumulated (joined by a blank line) while the buffer fits. On overflow
    the buffer is emitted and the next buffer is seeded with the last `overlap_chars`
    characters of the emitted chunk, shortened if needed so the seed plus the paragraph still
    fits. A paragraph that alone exceeds `max_chars` flushes the buffer and is hard-split
    into exact slices with no overlap.

    Args:
        text: Extracted document text.
        max_chars: Upper bound on chunk length.
        overlap_chars: Characters carried over between consecutive packed chunks.

    Yields:
        str: Non-empty chunks in document order. Calling again restarts from the beginning.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if overlap_chars < 0 or overlap_chars >= max_chars:
        raise ValueError("overlap_chars must be in [0, max_chars)")

    buf = ""
    for para in split_paragraphs(text):
        if len(para) > max_chars:
            if buf:
                yield buf
            yield from hard_split(para, max_chars)
            buf = ""
            continue

        candidate = f"{buf}\n\n{para}" if buf else para
        if len(candidate) <= max_chars:
            buf = candidate
            continue

        yield buf
        # room left for the overlap seed once the paragraph and separator are in
        room = max_chars - len(para) - 1
        keep = min(overlap_chars, room)
        tail = buf[len(buf) - keep:] if keep > 0 else ""
        buf = f"{tail}\n{para}" if tail else para

    if buf:
        yield buf
