"""
Retrieval ranker: brute-force cosine similarity over a user's chunks.

There is no index; every query scores every candidate. This is exact top-K
and fine at small scale, but cost grows linearly with the number of chunks.
"""
import logging
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ragchat.core.config import settings
from ragchat.services.store import StoredChunk

logger = logging.getLogger(__name__)


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """
    Compute the cosine similarity between two embedding vectors.

    Vectors of different length, with non-numeric or nested elements, or with
    zero magnitude, score 0 rather than raising so that malformed stored
    embeddings simply drop out of the results.
    """
    if len(vector_a) != len(vector_b) or len(vector_a) == 0:
        return 0.0

    try:
        a = np.asarray(vector_a, dtype=float)
        b = np.asarray(vector_b, dtype=float)
    except (TypeError, ValueError):
        return 0.0
    if a.ndim != 1 or b.ndim != 1:
        return 0.0

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def rank_chunks(
    query_vector: Sequence[float],
    candidates: Iterable[StoredChunk],
    top_k: Optional[int] = None,
    threshold: Optional[float] = None,
) -> List[str]:
    """
    Select the chunk texts most similar to the query.

    Args:
        query_vector: Embedding of the query
        candidates: Chunks with their stored embeddings
        top_k: Maximum number of results (default: RETRIEVAL_TOP_K)
        threshold: Minimum similarity to keep a chunk (default: RETRIEVAL_THRESHOLD)

    Returns:
        Chunk contents ordered by descending similarity; ties keep input order
    """
    top_k = settings.RETRIEVAL_TOP_K if top_k is None else top_k
    threshold = settings.RETRIEVAL_THRESHOLD if threshold is None else threshold

    scored = []
    for chunk in candidates:
        if chunk is None or not chunk.content:
            continue
        score = cosine_similarity(query_vector, chunk.embedding)
        if score >= threshold:
            scored.append((score, chunk.content))

    # sorted() is stable, so equal scores keep their original order
    scored = sorted(scored, key=lambda item: item[0], reverse=True)
    logger.debug(f"{len(scored)} chunks above similarity threshold {threshold}")
    return [content for _score, content in scored[:top_k]]
