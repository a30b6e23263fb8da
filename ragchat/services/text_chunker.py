"""
Text Chunker Service - fixed-size text splitting with overlap.

This module splits document text into overlapping chunks that:
- Are at most CHUNK_SIZE characters long
- Break on whitespace when a boundary exists in the second half of the window
- Overlap the previous chunk by CHUNK_OVERLAP characters
"""
from typing import List, Optional

from ragchat.core.config import settings


def find_split_point(window: str, chunk_size: int) -> int:
    """
    Find the last whitespace position in a window of text.

    Args:
        window: The candidate chunk text
        chunk_size: Configured chunk size; the boundary must lie past its midpoint

    Returns:
        Index of the whitespace character, or -1 if no acceptable boundary exists
    """
    for pos in range(len(window) - 1, -1, -1):
        if window[pos].isspace():
            # Only accept if we're past halfway
            return pos if pos > chunk_size / 2 else -1
    return -1


def chunk_text(
    text: str,
    chunk_size: Optional[int] = None,
    overlap: Optional[int] = None,
    min_length: Optional[int] = None,
    max_chunks: Optional[int] = None,
) -> List[str]:
    """
    Split text into overlapping chunks.

    Walks the text in a sliding window. When the window ends before the text
    does, it is trimmed back to the last whitespace boundary (if that boundary
    lies past the midpoint) and the next window starts `overlap` characters
    before the boundary; otherwise the window is hard-cut and the next one
    starts `overlap` characters before its end.

    Args:
        text: The text to chunk
        chunk_size: Maximum chunk length (default: CHUNK_SIZE)
        overlap: Characters shared with the previous chunk (default: CHUNK_OVERLAP)
        min_length: Shorter (trimmed) fragments are dropped (default: MIN_CHUNK_LENGTH)
        max_chunks: Only the first N chunks are returned (default: MAX_CHUNKS_PER_DOCUMENT)

    Returns:
        List of trimmed text chunks

    Example:
        >>> chunk_text("The warranty period is 12 months from purchase date.")
        ['The warranty period is 12 months from purchase date.']
    """
    chunk_size = chunk_size or settings.CHUNK_SIZE
    overlap = settings.CHUNK_OVERLAP if overlap is None else overlap
    min_length = settings.MIN_CHUNK_LENGTH if min_length is None else min_length
    max_chunks = max_chunks or settings.MAX_CHUNKS_PER_DOCUMENT

    # A split just past the midpoint must still move the window forward
    if overlap * 2 >= chunk_size:
        raise ValueError("overlap must be less than half of chunk_size")

    if not text:
        return []

    chunks: List[str] = []
    start = 0

    while start < len(text):
        end = min(start + chunk_size, len(text))
        window = text[start:end]

        if end < len(text):
            split_pos = find_split_point(window, chunk_size)
            if split_pos >= 0:
                window = window[:split_pos + 1]
                start += split_pos + 1 - overlap
            else:
                # No boundary, hard cut
                start = end - overlap
        else:
            start = len(text)

        piece = window.strip()
        if len(piece) >= min_length:
            chunks.append(piece)

    # Bounds embedding cost per document; the remainder is discarded
    return chunks[:max_chunks]
