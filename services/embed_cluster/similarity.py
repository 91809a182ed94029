"""
Vector Similarity
Cosine similarity between embedding vectors
"""

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when the vectors differ in length or either one has zero norm,
    so degenerate embeddings never match anything.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def running_mean(centroid: Sequence[float], vector: Sequence[float], count_before: int) -> list[float]:
    """
    Fold one more vector into a mean of count_before vectors.

    new[i] = (old[i] * count_before + vector[i]) / (count_before + 1)
    """
    old = np.asarray(centroid, dtype=np.float64)
    new = np.asarray(vector, dtype=np.float64)
    return ((old * count_before + new) / (count_before + 1)).tolist()
