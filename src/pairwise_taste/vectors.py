"""
Vector helpers shared by the strength model, weight learner and selectors.

Feature vectors arrive from the catalogue as plain sequences and may be
missing, ragged, or longer than expected. Everything here degrades to zeros
instead of raising so scoring keeps working on partially hydrated items.
"""

import logging
from typing import Iterable, Sequence

import numpy as np
from scipy.special import expit

from .config import COSINE_EPSILON

logger = logging.getLogger(__name__)

VectorLike = Sequence[float] | np.ndarray | None


def as_vector(values: VectorLike | Iterable[float], dim: int = 0) -> np.ndarray:
    """
    Coerce ``values`` to a 1-D float array.

    ``None`` or unparseable input becomes a zero vector of length ``dim``.
    Non-finite entries are replaced with 0.
    """
    if values is None:
        return np.zeros(dim, dtype=np.float64)
    try:
        vec = np.asarray(values if isinstance(values, np.ndarray) else list(values), dtype=np.float64)
    except (TypeError, ValueError):
        logger.warning("Malformed feature vector %r; treating as zeros", values)
        return np.zeros(dim, dtype=np.float64)
    if vec.ndim != 1:
        vec = vec.reshape(-1)
    return np.nan_to_num(vec, nan=0.0, posinf=0.0, neginf=0.0)


def pad_to(vec: np.ndarray, length: int) -> np.ndarray:
    """Right-pad ``vec`` with zeros up to ``length`` (never truncates)."""
    if len(vec) >= length:
        return vec
    return np.pad(vec, (0, length - len(vec)))


def align(a: np.ndarray, b: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    length = max(len(a), len(b))
    return pad_to(a, length), pad_to(b, length)


def difference(a: VectorLike, b: VectorLike) -> np.ndarray:
    """Element-wise ``a - b``; missing elements count as 0."""
    va, vb = as_vector(a), as_vector(b)
    va, vb = align(va, vb)
    return va - vb


def dot(a: VectorLike, b: VectorLike) -> float:
    va, vb = align(as_vector(a), as_vector(b))
    return float(va @ vb)


def cosine(a: VectorLike, b: VectorLike, eps: float = COSINE_EPSILON) -> float:
    """Cosine similarity; a zero-norm side yields 0 instead of dividing by zero."""
    va, vb = align(as_vector(a), as_vector(b))
    denom = np.linalg.norm(va) * np.linalg.norm(vb) + eps
    return float(va @ vb / denom)


def sigmoid(z: float) -> float:
    return float(expit(z))


def stack(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Stack ragged vectors into an (n, D) matrix, zero-padding to the widest."""
    width = max((len(v) for v in vectors), default=0)
    matrix = np.zeros((len(vectors), width), dtype=np.float64)
    for row, vec in enumerate(vectors):
        matrix[row, :len(vec)] = vec
    return matrix
