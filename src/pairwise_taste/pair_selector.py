"""
Active-learning pair selection.

The next comparison is anchored on a *pivot*: the most uncertain item among
those ranked closest to the median strength. Its opponent maximizes

    min(u_pivot, u_j) * (1 - cos(x_pivot, x_j)) * exp(-|logit_pivot - logit_j|)

i.e. still-uncertain, feature-contrasting, and close enough in strength that
the outcome is not a foregone conclusion. Pairs already shown are never
offered again.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

import numpy as np

from .config import COSINE_EPSILON, MAX_RECENT_TITLES, PAIR_WINDOW_SIZE
from .state import UserState
from .strength import StrengthModel
from .vectors import VectorLike, as_vector, stack

logger = logging.getLogger(__name__)


class PairSelector:
    def __init__(
        self,
        model: StrengthModel,
        window: int = PAIR_WINDOW_SIZE,
        avoid_recent: bool = True,
        exploration_noise: float = 0.0,
        rng: np.random.Generator | None = None,
        max_recent: int = MAX_RECENT_TITLES,
    ):
        self.model = model
        self.window = window
        self.avoid_recent = avoid_recent
        self.exploration_noise = exploration_noise
        self.rng = rng if rng is not None else np.random.default_rng()
        self.max_recent = max_recent

    def select(
        self,
        state: UserState,
        eligible_ids: Sequence[str],
        features_by_id: Mapping[str, VectorLike],
    ) -> tuple[str, str] | None:
        """
        Pick the next pair and record it in ``state``.

        Returns None when no unshown pair can be formed from ``eligible_ids``.
        """
        ids = [i for i in dict.fromkeys(eligible_ids) if not state.is_excluded(i)]
        if len(ids) < 2:
            return None

        pools = []
        if self.avoid_recent and state.recently_shown:
            recent = set(state.recently_shown)
            fresh_ids = [i for i in ids if i not in recent]
            if len(fresh_ids) >= 2:
                pools.append(fresh_ids)
        pools.append(ids)

        for pool in pools:
            pair = self._best_pair(state, pool, features_by_id)
            if pair is not None:
                state.remember_shown(*pair)
                logger.debug(f"Selected pair {pair[0]} vs {pair[1]} from {len(pool)} candidates")
                return pair

        logger.debug(f"No unshown pair left among {len(ids)} eligible items")
        return None

    def _pivot_order(self, ids: list[str], logits: np.ndarray, uncertainty: np.ndarray) -> list[int]:
        """Window around the median strength first, then everything else; each by uncertainty."""
        ranking = logits
        if self.exploration_noise > 0:
            ranking = logits + self.exploration_noise * uncertainty * self.rng.standard_normal(len(ids))

        by_strength = np.argsort(-ranking, kind="stable")
        mid = len(ids) // 2
        half = self.window // 2
        window = by_strength[max(0, mid - half):mid + half]
        in_window = set(window.tolist())
        rest = np.array([i for i in by_strength if i not in in_window], dtype=int)

        # ties on uncertainty keep strength order
        def by_uncertainty(indices: np.ndarray) -> list[int]:
            return [int(i) for i in indices[np.argsort(-uncertainty[indices], kind="stable")]]

        return by_uncertainty(window) + by_uncertainty(rest)

    def _best_pair(
        self,
        state: UserState,
        ids: list[str],
        features_by_id: Mapping[str, VectorLike],
    ) -> tuple[str, str] | None:
        logits = np.array([self.model.logit(state, i) for i in ids])
        uncertainty = np.array([self.model.uncertainty(state, i) for i in ids])
        features = stack([as_vector(features_by_id.get(i)) for i in ids])
        norms = np.linalg.norm(features, axis=1)

        for p in self._pivot_order(ids, logits, uncertainty):
            shown = np.array([j == p or state.has_shown_pair(ids[p], ids[j]) for j in range(len(ids))])
            if shown.all():
                continue

            cos = features @ features[p] / (norms * norms[p] + COSINE_EPSILON)
            scores = (
                np.minimum(uncertainty[p], uncertainty)
                * (1.0 - cos)
                * np.exp(-np.abs(logits[p] - logits))
            )
            scores[shown] = -np.inf
            best = int(np.argmax(scores))
            return ids[p], ids[best]

        return None
