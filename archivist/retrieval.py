"""Flat-scan retrieval over stored chunks.

This module implements:
- Tokenization used by the short-query keyword gate
- Cosine similarity with an epsilon guard for all-zero vectors
- retrieve: score every chunk, gate short keyword-style queries, stable-sort by score,
  and keep at most one chunk per document

Everything here is pure and synchronous; the caller embeds the query and loads the chunks.
"""
import re
from typing import List, Sequence

import numpy as np

from archivist.store import RetrievedChunk

EPSILON = 1e-8
SHORT_QUERY_MAX_TOKENS = 2
SHORT_QUERY_TOP_K = 12


def tokenize(s: str) -> List[str]:
    """Lowercase alphanumeric tokens longer than one character.

    Args:
        s: Input string.

    Returns:
        List[str]: Tokens in order of appearance.
    """
    return [t for t in re.findall(r"[a-z0-9]+", (s or "").lower()) if len(t) > 1]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b| + EPSILON)."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    return float(np.dot(va, vb) / (np.linalg.norm(va) * np.linalg.norm(vb) + EPSILON))


def is_short_query(query_text: str) -> bool:
    """Short, keyword-style queries get the keyword gate and a wider result set."""
    return len(tokenize(query_text)) <= SHORT_QUERY_MAX_TOKENS


def keyword_gate(query_text: str, chunks: Sequence[RetrievedChunk]) -> List[int]:
    """Indexes of chunks containing at least one query token, or all indexes if none match."""
    tokens = tokenize(query_text)
    everything = list(range(len(chunks)))
    if not tokens:
        return everything
    matched = [i for i, c in enumerate(chunks) if any(t in c.text.lower() for t in tokens)]
    return matched or everything


def retrieve(
    query_vector: Sequence[float],
    query_text: str,
    chunks: Sequence[RetrievedChunk],
    top_k: int,
    short_query_top_k: int = SHORT_QUERY_TOP_K,
) -> List[RetrievedChunk]:
    """Rank chunks against a query vector and pick a diverse, capped selection.

    Args:
        query_vector: Embedding of the query text.
        query_text: Raw query, used for the keyword gate.
        chunks: Candidate pool in insertion order (ties keep this order).
        top_k: Number of chunks wanted.
        short_query_top_k: Minimum result size for short, keyword-gated queries.

    Returns:
        List[RetrievedChunk]: Best-first, at most one chunk per document.

    Notes:
        Steps:
        1) Cosine similarity against every chunk.
        2) Queries of <= 2 tokens keep only chunks containing a query token
           (falling back to the whole pool when nothing matches).
        3) Stable sort by score, descending.
        4) Greedy walk that skips documents already represented.
    """
    if not chunks or top_k <= 0:
        return []

    short = is_short_query(query_text)
    pool = keyword_gate(query_text, chunks) if short else list(range(len(chunks)))
    limit = max(top_k, short_query_top_k) if short else top_k

    scores = {i: cosine_similarity(query_vector, chunks[i].embedding) for i in pool}
    ranked = sorted(pool, key=lambda i: scores[i], reverse=True)

    selected: List[RetrievedChunk] = []
    seen_docs = set()
    for i in ranked:
        chunk = chunks[i]
        if chunk.doc_id in seen_docs:
            continue
        seen_docs.add(chunk.doc_id)
        selected.append(chunk)
        if len(selected) >= limit:
            break
    return selected
