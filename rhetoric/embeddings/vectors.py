"""Vector helpers: L2 normalisation and zero-guarded cosine similarity."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

Vector = Sequence[float]


def _safe_float(value: float) -> float:
    if np.isnan(value) or np.isinf(value):
        return 0.0
    return float(value)


def normalize_vector(vector: Vector) -> list[float]:
    """Scale *vector* to unit length. A zero vector is returned unchanged."""
    arr = np.asarray(vector, dtype=np.float64)
    magnitude = float(np.linalg.norm(arr))
    if magnitude == 0:
        return [float(v) for v in arr]
    return (arr / magnitude).tolist()


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero magnitude.

    Raises:
        ValueError: The vectors have different dimensions.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vectors must have the same dimensions ({va.shape[0]} != {vb.shape[0]})")
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0:
        return 0.0
    return _safe_float(float(np.dot(va, vb)) / denom)


def similarity_matrix(queries: Sequence[Vector], corpus: Sequence[Vector]) -> np.ndarray:
    """Cosine similarities, shape ``(len(queries), len(corpus))``.

    Rows or columns belonging to zero vectors come out as 0.0.
    """
    if len(queries) == 0 or len(corpus) == 0:
        return np.zeros((len(queries), len(corpus)))
    q = np.asarray(queries, dtype=np.float64)
    c = np.asarray(corpus, dtype=np.float64)
    if q.shape[1] != c.shape[1]:
        raise ValueError(f"Vectors must have the same dimensions ({q.shape[1]} != {c.shape[1]})")
    q_norm = np.linalg.norm(q, axis=1, keepdims=True)
    c_norm = np.linalg.norm(c, axis=1, keepdims=True)
    q_norm[q_norm == 0.0] = 1.0
    c_norm[c_norm == 0.0] = 1.0
    scores = (q / q_norm) @ (c / c_norm).T
    return np.nan_to_num(scores, nan=0.0, posinf=0.0, neginf=0.0)
