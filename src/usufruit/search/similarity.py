"""Vector similarity helpers for semantic search."""

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        ValueError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector length mismatch: {va.shape[0]} != {vb.shape[0]}")

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def rank_by_similarity(
    query: Sequence[float],
    candidates: list[tuple[str, list[float]]],
    threshold: float,
) -> list[tuple[str, float]]:
    """
    Score candidates against the query and keep those at or above threshold.

    Candidates whose vector length does not match the query are skipped.
    Results are sorted by descending score, ties by id.
    """
    scored = []
    for candidate_id, vector in candidates:
        try:
            score = cosine_similarity(query, vector)
        except ValueError:
            continue
        if score >= threshold:
            scored.append((candidate_id, score))
    scored.sort(key=lambda item: (-item[1], item[0]))
    return scored
