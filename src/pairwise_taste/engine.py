"""
Preference engine facade.

Wires the strength model, content weight learner, pair selector and MMR
selector around one ``UserState``. The engine itself is stateless between
calls apart from its config and random source, so one instance can serve
any number of sessions as long as each state has a single writer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from .config import POSTER_BASE
from .engine_config import EngineConfig
from .feature_weights import ContentWeightLearner
from .mmr import mmr_select
from .pair_selector import PairSelector
from .state import SessionPhase, UserState
from .strength import build_strength_model
from .vectors import VectorLike, as_vector, cosine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Item:
    """A hydrated catalogue entry. The engine only reads ``id`` and ``features``."""

    id: str
    features: tuple[float, ...] = ()
    title: str = ""
    poster_url: str | None = None
    trailer_key: str | None = None
    prior_strength: float | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Item":
        item_id = payload.get("id", payload.get("imdbId"))
        if item_id is None or str(item_id).strip() == "":
            raise ValueError("catalogue entry has no id")

        raw_features = payload.get("featureVector", payload.get("features"))
        features = tuple(float(x) for x in as_vector(raw_features))

        poster_url = payload.get("posterUrl")
        if not poster_url and payload.get("posterPath"):
            poster_url = POSTER_BASE + str(payload["posterPath"])

        prior = payload.get("priorStrength")
        return cls(
            id=str(item_id),
            features=features,
            title=str(payload.get("title") or ""),
            poster_url=poster_url or None,
            trailer_key=payload.get("trailerKey") or None,
            prior_strength=float(prior) if prior is not None else None,
        )


@dataclass
class Recommendation:
    id: str
    title: str
    score: float
    poster_url: str | None = None
    trailer_key: str | None = None
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "score": self.score,
            "posterUrl": self.poster_url,
            "trailerKey": self.trailer_key,
            "reason": self.reason,
        }


@dataclass
class _Scored:
    item: Item
    score: float
    vector: np.ndarray = field(repr=False)


class PreferenceEngine:
    def __init__(self, config: EngineConfig | None = None, rng: np.random.Generator | None = None):
        self.config = config or EngineConfig()
        self.model = build_strength_model(self.config)
        self.learner = ContentWeightLearner(
            learning_rate=self.config.weight_learning_rate,
            l2=self.config.weight_l2,
            max_dim=self.config.max_feature_dim,
        )
        self.selector = PairSelector(
            self.model,
            window=self.config.pair_window,
            avoid_recent=self.config.avoid_recent,
            exploration_noise=self.config.exploration_noise,
            rng=rng,
            max_recent=self.config.max_recent,
        )

    # State lifecycle ---------------------------------------------------
    def new_state(self) -> UserState:
        return UserState.fresh(
            strategy=self.model.name,
            dim=self.config.feature_dim,
            max_recent=self.config.max_recent,
        )

    def reset_state(self) -> UserState:
        return self.new_state()

    def reset(self, state: UserState) -> UserState:
        """Clear ``state`` in place (the only destructive operation)."""
        state.reset(dim=self.config.feature_dim)
        state.strategy = self.model.name
        logger.info("Session state reset")
        return state

    def _check_strategy(self, state: UserState) -> None:
        if state.strategy != self.model.name:
            raise ValueError(
                f"State was built for the {state.strategy!r} strategy but this engine uses {self.model.name!r}"
            )

    def seed_priors(self, state: UserState, pool: Iterable[Item]) -> None:
        """Apply catalogue prior strengths to items the session has not rated yet."""
        for item in pool:
            if item.prior_strength is not None:
                self.model.seed(state, item.id, item.prior_strength)

    # Operations --------------------------------------------------------
    def apply_outcome(
        self,
        state: UserState,
        winner_id: str,
        loser_id: str,
        winner_features: VectorLike = None,
        loser_features: VectorLike = None,
    ) -> UserState:
        """Fold one user decision into the strength model and the weight vector."""
        if winner_id == loser_id:
            raise ValueError(f"Cannot compare an item with itself: {winner_id!r}")
        self._check_strategy(state)

        p_model = self.model.update(state, winner_id, loser_id)
        p_content = self.learner.update(state, winner_features, loser_features, a_won=True)

        state.rounds += 1
        if state.phase is SessionPhase.FRESH:
            state.phase = SessionPhase.ELICITING

        logger.debug(
            f"Round {state.rounds}: {winner_id} beat {loser_id} "
            f"(model p={p_model:.3f}, content p={p_content:.3f})"
        )
        return state

    def select_next_pair(
        self,
        state: UserState,
        eligible_ids: Sequence[str],
        features_by_id: Mapping[str, VectorLike],
    ) -> tuple[str, str] | None:
        self._check_strategy(state)
        pair = None
        if self.config.max_rounds is None or state.rounds < self.config.max_rounds:
            pair = self.selector.select(state, eligible_ids, features_by_id)

        if pair is None:
            if state.phase is not SessionPhase.RECOMMENDING:
                state.phase = SessionPhase.EXHAUSTED
            logger.info(f"No pair available after {state.rounds} rounds")
            return None

        state.phase = SessionPhase.ELICITING
        return pair

    def relevance(self, state: UserState, item: Item) -> float:
        return (
            self.config.content_weight * self.learner.score(state, item.features)
            + self.config.strength_weight * self.model.logit(state, item.id)
        )

    def select_recommendations(
        self,
        state: UserState,
        pool: Iterable[Item],
        k: int | None = None,
        lam: float | None = None,
    ) -> list[Recommendation]:
        """Score the unseen, unblocked pool and return a diversified top-k."""
        self._check_strategy(state)
        k = self.config.rec_limit if k is None else k
        lam = self.config.mmr_lambda if lam is None else lam

        scored: list[_Scored] = []
        seen_ids: set[str] = set()
        for item in pool:
            if item.id in seen_ids or state.is_excluded(item.id):
                continue
            seen_ids.add(item.id)
            scored.append(_Scored(item, self.relevance(state, item), as_vector(item.features)))

        # stable: equal scores keep pool order
        scored.sort(key=lambda s: s.score, reverse=True)
        chosen = mmr_select(
            scored,
            relevance=lambda s: s.score,
            similarity=lambda a, b: cosine(a.vector, b.vector),
            k=k,
            lam=lam,
        )

        state.phase = SessionPhase.RECOMMENDING
        logger.debug(f"Selected {len(chosen)}/{len(scored)} recommendations (k={k}, lambda={lam})")
        return [
            Recommendation(
                id=s.item.id,
                title=s.item.title,
                score=s.score,
                poster_url=s.item.poster_url,
                trailer_key=s.item.trailer_key,
                reason=self.config.reason,
            )
            for s in chosen
        ]

    @staticmethod
    def similarity(a: Item, b: Item) -> float:
        return cosine(a.features, b.features)

    def mark_seen(self, state: UserState, item_id: str) -> None:
        state.mark_seen(item_id)

    def block(self, state: UserState, item_id: str) -> None:
        state.block(item_id)
