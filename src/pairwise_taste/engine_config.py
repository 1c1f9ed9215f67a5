from dataclasses import asdict, dataclass
from typing import Any

from .config import (
    BTL_INFO_EPSILON,
    BTL_L2,
    BTL_LEARNING_RATE,
    DEFAULT_REASON,
    DEFAULT_REC_LIMIT,
    DEFAULT_STRATEGY,
    ELO_BASE_K,
    ELO_DEFAULT_RATING,
    ELO_SCALE,
    ENGINE_PRESETS,
    MAX_FEATURE_DIM,
    MAX_RECENT_TITLES,
    MMR_LAMBDA,
    PAIR_WINDOW_SIZE,
    RELEVANCE_CONTENT_WEIGHT,
    RELEVANCE_STRENGTH_WEIGHT,
    STRENGTH_STRATEGIES,
    WEIGHT_L2,
    WEIGHT_LEARNING_RATE,
)


@dataclass
class EngineConfig:
    """
    Tunable constants for one preference engine.

    A single config object is shared by every surface that drives the engine
    (interactive loop, server, CLI) so the constants cannot drift apart.
    """

    # Strength model
    strategy: str = DEFAULT_STRATEGY
    btl_learning_rate: float = BTL_LEARNING_RATE
    btl_l2: float = BTL_L2
    btl_epsilon: float = BTL_INFO_EPSILON
    elo_base_k: float = ELO_BASE_K
    elo_scale: float = ELO_SCALE
    elo_default_rating: float = ELO_DEFAULT_RATING

    # Content weight learner
    weight_learning_rate: float = WEIGHT_LEARNING_RATE
    weight_l2: float = WEIGHT_L2
    max_feature_dim: int = MAX_FEATURE_DIM
    # Catalogue-wide feature dimension D; 0 means "grow on demand"
    feature_dim: int = 0

    # Pair selection
    pair_window: int = PAIR_WINDOW_SIZE
    max_recent: int = MAX_RECENT_TITLES
    avoid_recent: bool = True
    exploration_noise: float = 0.0
    max_rounds: int | None = None

    # Recommendation
    mmr_lambda: float = MMR_LAMBDA
    content_weight: float = RELEVANCE_CONTENT_WEIGHT
    strength_weight: float = RELEVANCE_STRENGTH_WEIGHT
    rec_limit: int = DEFAULT_REC_LIMIT
    reason: str = DEFAULT_REASON

    def __post_init__(self) -> None:
        self.strategy = str(self.strategy).lower()
        self.validate()

    def validate(self) -> None:
        if self.strategy not in STRENGTH_STRATEGIES:
            raise ValueError(f"strategy must be one of {STRENGTH_STRATEGIES}, got {self.strategy!r}")
        if self.btl_learning_rate <= 0 or self.weight_learning_rate <= 0:
            raise ValueError("learning rates must be positive")
        if self.btl_l2 < 0 or self.weight_l2 < 0:
            raise ValueError("l2 penalties must be non-negative")
        if self.btl_epsilon <= 0:
            raise ValueError("btl_epsilon must be positive")
        if self.elo_base_k <= 0 or self.elo_scale <= 0:
            raise ValueError("elo_base_k and elo_scale must be positive")
        if self.max_feature_dim <= 0:
            raise ValueError("max_feature_dim must be positive")
        if not (0 <= self.feature_dim <= self.max_feature_dim):
            raise ValueError("feature_dim must be in [0, max_feature_dim]")
        if self.pair_window < 2:
            raise ValueError("pair_window must be at least 2")
        if self.max_recent < 0:
            raise ValueError("max_recent must be non-negative")
        if self.exploration_noise < 0:
            raise ValueError("exploration_noise must be non-negative")
        if self.max_rounds is not None and self.max_rounds <= 0:
            raise ValueError("max_rounds must be positive when set")
        if not (0.0 <= self.mmr_lambda <= 1.0):
            raise ValueError("mmr_lambda must be in [0, 1]")
        if self.rec_limit <= 0:
            raise ValueError("rec_limit must be positive")

    @classmethod
    def preset(cls, name: str, **overrides: Any) -> "EngineConfig":
        """Build a config from a named preset (``interactive`` or ``server``)."""
        if name not in ENGINE_PRESETS:
            raise ValueError(f"Unknown preset {name!r}; expected one of {sorted(ENGINE_PRESETS)}")
        return cls(**{**ENGINE_PRESETS[name], **overrides})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
