"""Cosine similarity over embedding vectors (brute force, numpy)."""

from typing import Sequence

import numpy as np


def as_unit_rows(vectors: Sequence[Sequence[float]], dimension: int) -> np.ndarray:
    """
    Stack vectors into a float32 matrix with L2-normalized rows.

    Zero vectors stay zero, so their cosine with anything is 0.
    """
    if not vectors:
        return np.zeros((0, dimension), dtype=np.float32)
    matrix = np.asarray(vectors, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    np.divide(matrix, norms, out=matrix, where=norms > 0)
    return matrix


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between two vectors, clamped to [-1, 1].

    Mismatched lengths or zero vectors score 0.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        return 0.0
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


def cosine_scores(unit_rows: np.ndarray, query: Sequence[float]) -> np.ndarray:
    """Cosine of the query against every row of a unit-normalized matrix."""
    q = np.asarray(query, dtype=np.float32)
    norm = np.linalg.norm(q)
    if norm == 0 or unit_rows.shape[0] == 0:
        return np.zeros(unit_rows.shape[0], dtype=np.float32)
    return np.clip(unit_rows @ (q / norm), -1.0, 1.0)
