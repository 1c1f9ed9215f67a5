"""
Pairwise strength models.

Both strategies keep one ``Rating`` per item inside ``UserState.ratings`` and
are interchangeable behind ``StrengthModel``:

- BTL: ``P(i beats j) = sigmoid(theta_i - theta_j)``, SGD on the log-likelihood
  with a small L2 shrink, plus a per-item Fisher information accumulator that
  drives uncertainty.
- Elo: expected score on a base-10 logistic with scale 400 and a K-factor that
  decays with the item's comparison count.

Strengths are not comparable across strategies, but ``logit`` puts both on a
log-odds scale for the selector and for recommendation relevance.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from .vectors import sigmoid

if TYPE_CHECKING:
    from .engine_config import EngineConfig
    from .state import UserState

logger = logging.getLogger(__name__)


@dataclass
class Rating:
    strength: float
    comparisons: int = 0
    wins: int = 0
    losses: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Rating":
        return cls(
            strength=float(payload["strength"]),
            comparisons=int(payload.get("comparisons", 0)),
            wins=int(payload.get("wins", 0)),
            losses=int(payload.get("losses", 0)),
        )


class StrengthModel:
    """Common bookkeeping for the strength strategies."""

    name = "base"
    default_strength = 0.0

    def rating(self, state: UserState, item_id: str) -> Rating:
        """Return the item's Rating, creating it with defaults on first reference."""
        rating = state.ratings.get(item_id)
        if rating is None:
            rating = Rating(strength=self.default_strength)
            state.ratings[item_id] = rating
        return rating

    def strength(self, state: UserState, item_id: str) -> float:
        """Read-only strength lookup; unknown items report the default."""
        rating = state.ratings.get(item_id)
        return rating.strength if rating is not None else self.default_strength

    def comparisons(self, state: UserState, item_id: str) -> int:
        rating = state.ratings.get(item_id)
        return rating.comparisons if rating is not None else 0

    def seed(self, state: UserState, item_id: str, prior: float) -> None:
        """Set a prior for an item that has not been compared yet.

        ``prior`` is on the log-odds scale of ``logit`` so catalogues can
        share one value across strategies.
        """
        if item_id not in state.ratings:
            state.ratings[item_id] = Rating(strength=self._from_logit(float(prior)))

    def _from_logit(self, value: float) -> float:
        return value

    def win_probability(self, state: UserState, a: str, b: str) -> float:
        return sigmoid(self.logit(state, a) - self.logit(state, b))

    def update(self, state: UserState, winner_id: str, loser_id: str) -> float:
        raise NotImplementedError

    def uncertainty(self, state: UserState, item_id: str) -> float:
        raise NotImplementedError

    def logit(self, state: UserState, item_id: str) -> float:
        raise NotImplementedError

    @staticmethod
    def _record(winner: Rating, loser: Rating) -> None:
        winner.comparisons += 1
        winner.wins += 1
        loser.comparisons += 1
        loser.losses += 1


class BTLStrengthModel(StrengthModel):
    name = "btl"
    default_strength = 0.0

    def __init__(self, learning_rate: float, l2: float, epsilon: float):
        self.learning_rate = learning_rate
        self.l2 = l2
        self.epsilon = epsilon

    def update(self, state: UserState, winner_id: str, loser_id: str) -> float:
        winner = self.rating(state, winner_id)
        loser = self.rating(state, loser_id)
        ti, tj = winner.strength, loser.strength

        p = sigmoid(ti - tj)
        grad = 1.0 - p
        winner.strength = ti + self.learning_rate * (grad - self.l2 * ti)
        loser.strength = tj - self.learning_rate * (grad + self.l2 * tj)

        # p(1-p) is the local Fisher information; both sides gain the same amount
        fisher = p * (1.0 - p)
        state.info[winner_id] = state.info.get(winner_id, 0.0) + fisher
        state.info[loser_id] = state.info.get(loser_id, 0.0) + fisher

        self._record(winner, loser)
        return p

    def uncertainty(self, state: UserState, item_id: str) -> float:
        return 1.0 / math.sqrt(state.info.get(item_id, 0.0) + self.epsilon)

    def logit(self, state: UserState, item_id: str) -> float:
        return self.strength(state, item_id)


class EloStrengthModel(StrengthModel):
    name = "elo"

    def __init__(self, base_k: float, scale: float, default_rating: float):
        self.base_k = base_k
        self.scale = scale
        self.default_strength = default_rating

    def expected(self, rating_a: float, rating_b: float) -> float:
        return 1.0 / (1.0 + 10.0 ** ((rating_b - rating_a) / self.scale))

    def k_factor(self, comparisons: int) -> float:
        """New items move fast, well-observed items move slowly."""
        return self.base_k / math.sqrt(1 + comparisons)

    def update(self, state: UserState, winner_id: str, loser_id: str) -> float:
        winner = self.rating(state, winner_id)
        loser = self.rating(state, loser_id)

        expected_win = self.expected(winner.strength, loser.strength)
        k_win = self.k_factor(winner.comparisons)
        k_lose = self.k_factor(loser.comparisons)
        winner.strength += k_win * (1.0 - expected_win)
        loser.strength -= k_lose * (1.0 - expected_win)

        self._record(winner, loser)
        return expected_win

    def uncertainty(self, state: UserState, item_id: str) -> float:
        return 1.0 / math.sqrt(1 + self.comparisons(state, item_id))

    def logit(self, state: UserState, item_id: str) -> float:
        return (self.strength(state, item_id) - self.default_strength) * math.log(10) / self.scale

    def _from_logit(self, value: float) -> float:
        return self.default_strength + value * self.scale / math.log(10)


def build_strength_model(config: EngineConfig) -> StrengthModel:
    if config.strategy == "btl":
        return BTLStrengthModel(config.btl_learning_rate, config.btl_l2, config.btl_epsilon)
    if config.strategy == "elo":
        return EloStrengthModel(config.elo_base_k, config.elo_scale, config.elo_default_rating)
    raise ValueError(f"Unknown strength strategy: {config.strategy}")
