from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from .config import ELO_DEFAULT_RATING, MAX_RECENT_TITLES, SESSION_SCHEMA_VERSION
from .strength import Rating

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    FRESH = "fresh"
    ELICITING = "eliciting"
    EXHAUSTED = "exhausted"
    RECOMMENDING = "recommending"


def pair_key(a: str, b: str) -> tuple[str, str]:
    """Order-independent key for a shown pair."""
    return (a, b) if a <= b else (b, a)


@dataclass
class UserState:
    """
    Mutable aggregate owned by exactly one session.

    Holds the per-item ratings and information, the shared content weight
    vector, and the seen/blocked/shown bookkeeping. Storage is the caller's
    concern; ``to_dict``/``from_dict`` define the persisted shape.
    """

    strategy: str = "btl"
    ratings: dict[str, Rating] = field(default_factory=dict)
    info: dict[str, float] = field(default_factory=dict)
    weights: np.ndarray = field(default_factory=lambda: np.zeros(0))
    seen: set[str] = field(default_factory=set)
    blocked: set[str] = field(default_factory=set)
    recently_shown: list[str] = field(default_factory=list)
    pairs_shown: set[tuple[str, str]] = field(default_factory=set)
    phase: SessionPhase = SessionPhase.FRESH
    rounds: int = 0
    max_recent: int = MAX_RECENT_TITLES

    @classmethod
    def fresh(cls, strategy: str = "btl", dim: int = 0, max_recent: int = MAX_RECENT_TITLES) -> "UserState":
        return cls(strategy=strategy, weights=np.zeros(dim), max_recent=max_recent)

    def reset(self, dim: int = 0) -> None:
        """Clear every owned collection and restore defaults. Explicit only."""
        self.ratings.clear()
        self.info.clear()
        self.weights = np.zeros(dim)
        self.seen.clear()
        self.blocked.clear()
        self.recently_shown.clear()
        self.pairs_shown.clear()
        self.phase = SessionPhase.FRESH
        self.rounds = 0

    # Shown-history bookkeeping -----------------------------------------
    def remember_shown(self, a: str, b: str) -> None:
        """Front-insert both ids, de-duplicate, keep the most recent ``max_recent``."""
        merged: list[str] = []
        for item_id in (a, b, *self.recently_shown):
            if item_id not in merged:
                merged.append(item_id)
        self.recently_shown = merged[:self.max_recent]
        self.pairs_shown.add(pair_key(a, b))

    def has_shown_pair(self, a: str, b: str) -> bool:
        return pair_key(a, b) in self.pairs_shown

    def mark_seen(self, item_id: str) -> None:
        self.seen.add(item_id)

    def block(self, item_id: str) -> None:
        self.blocked.add(item_id)

    def is_excluded(self, item_id: str) -> bool:
        return item_id in self.seen or item_id in self.blocked

    def check_invariants(self) -> None:
        for item_id, rating in self.ratings.items():
            if rating.comparisons != rating.wins + rating.losses:
                raise ValueError(
                    f"Rating for {item_id} has comparisons={rating.comparisons} "
                    f"but wins+losses={rating.wins + rating.losses}"
                )
        if len(self.recently_shown) > self.max_recent:
            raise ValueError(f"recently_shown exceeds {self.max_recent} entries")
        if len(set(self.recently_shown)) != len(self.recently_shown):
            raise ValueError("recently_shown contains duplicates")

    # Persistence shape ---------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SESSION_SCHEMA_VERSION,
            "strategy": self.strategy,
            "phase": self.phase.value,
            "rounds": self.rounds,
            "ratings": {k: v.to_dict() for k, v in self.ratings.items()},
            "info": dict(self.info),
            "weights": [float(w) for w in self.weights],
            "seen": sorted(self.seen),
            "blocked": sorted(self.blocked),
            "recentlyShown": list(self.recently_shown),
            "pairsShown": [list(p) for p in sorted(self.pairs_shown)],
            "maxRecent": self.max_recent,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "UserState":
        version = payload.get("schema_version")
        if version != SESSION_SCHEMA_VERSION:
            raise ValueError(f"Unsupported session schema version {version!r}")
        strategy = payload.get("strategy", "btl")
        default_strength = ELO_DEFAULT_RATING if strategy == "elo" else 0.0
        try:
            ratings = {
                str(k): Rating.from_dict({"strength": default_strength, **v})
                for k, v in payload.get("ratings", {}).items()
            }
            pairs = {pair_key(str(a), str(b)) for a, b in payload.get("pairsShown", [])}
            state = cls(
                strategy=strategy,
                ratings=ratings,
                info={str(k): float(v) for k, v in payload.get("info", {}).items()},
                weights=np.asarray(payload.get("weights", []), dtype=np.float64),
                seen={str(x) for x in payload.get("seen", [])},
                blocked={str(x) for x in payload.get("blocked", [])},
                recently_shown=[str(x) for x in payload.get("recentlyShown", [])],
                pairs_shown=pairs,
                phase=SessionPhase(payload.get("phase", SessionPhase.FRESH.value)),
                rounds=int(payload.get("rounds", 0)),
                max_recent=int(payload.get("maxRecent", MAX_RECENT_TITLES)),
            )
        except (TypeError, ValueError, KeyError) as exc:
            raise ValueError(f"Malformed session snapshot: {exc}") from exc
        state.check_invariants()
        return state
