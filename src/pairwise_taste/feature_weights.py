"""
Online content weight learner.

A single weight vector per session is fit by logistic regression on the
difference of the two shown items' feature vectors. Because it scores
features rather than ids, it generalizes the learned taste to items that were
never compared directly.

The vector grows (zero-padded) when a wider feature vector shows up and never
shrinks; growth is bounded by ``max_dim``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from .config import MAX_FEATURE_DIM, WEIGHT_L2, WEIGHT_LEARNING_RATE
from .vectors import VectorLike, align, as_vector, pad_to, sigmoid

if TYPE_CHECKING:
    from .state import UserState

logger = logging.getLogger(__name__)


class ContentWeightLearner:
    def __init__(
        self,
        learning_rate: float = WEIGHT_LEARNING_RATE,
        l2: float = WEIGHT_L2,
        max_dim: int = MAX_FEATURE_DIM,
    ):
        self.learning_rate = learning_rate
        self.l2 = l2
        self.max_dim = max_dim

    def _coerce(self, features: VectorLike, dim: int) -> np.ndarray:
        vec = as_vector(features, dim)
        if len(vec) > self.max_dim:
            logger.warning(
                f"Feature vector of length {len(vec)} exceeds max_dim={self.max_dim}; truncating"
            )
            vec = vec[:self.max_dim]
        return vec

    def grow(self, weights: np.ndarray, dim: int) -> np.ndarray:
        """Zero-pad ``weights`` up to ``dim`` (capped at ``max_dim``)."""
        return pad_to(weights, min(dim, self.max_dim))

    def update(self, state: UserState, x_a: VectorLike, x_b: VectorLike, a_won: bool) -> float:
        """
        One logistic SGD step on ``d = x_a - x_b`` with target ``a_won``.

        Returns the pre-update probability that A wins. A missing vector on
        either side is treated as zeros of the other side's width.
        """
        a = self._coerce(x_a, len(state.weights))
        b = self._coerce(x_b, len(state.weights))
        a, b = align(a, b)
        delta = a - b

        weights = self.grow(state.weights, len(delta))
        delta = pad_to(delta, len(weights))

        p = sigmoid(float(weights @ delta))
        y = 1.0 if a_won else 0.0
        state.weights = weights + self.learning_rate * ((y - p) * delta - self.l2 * weights)
        return p

    def score(self, state: UserState, features: VectorLike) -> float:
        """``w . features`` with zero-padding on whichever side is shorter."""
        vec = self._coerce(features, len(state.weights))
        w, v = align(state.weights, vec)
        return float(w @ v)

    def top_features(self, state: UserState, n: int = 5) -> list[tuple[int, float]]:
        """Indices of the strongest positive weights, largest first."""
        if n <= 0 or len(state.weights) == 0:
            return []
        order = np.argsort(-state.weights, kind="stable")
        return [(int(i), float(state.weights[i])) for i in order[:n] if state.weights[i] > 0]
