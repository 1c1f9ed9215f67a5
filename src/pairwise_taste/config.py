"""
Configuration constants for the pairwise taste engine.

This module centralizes all magic numbers and configurable parameters.
Values that operators tune can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _clamp(key: str, val, min_val, max_val):
    if val < min_val:
        logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
        return min_val
    if max_val is not None and val > max_val:
        logger.warning(f"{key}={val} is above maximum {max_val}, using {max_val}")
        return max_val
    return val


def _get_float_env(key: str, default: float, min_val: float = 0.0, max_val: float | None = None) -> float:
    """Float option from the environment, clamped to ``[min_val, max_val]``; unparseable values fall back to ``default``."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return _clamp(key, float(raw), min_val, max_val)
    except ValueError:
        logger.warning(f"Ignoring {key}='{raw}' (not a number); using {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1, max_val: int | None = None) -> int:
    """Integer counterpart of ``_get_float_env``."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return _clamp(key, int(raw), min_val, max_val)
    except ValueError:
        logger.warning(f"Ignoring {key}='{raw}' (not an integer); using {default}")
        return default


def _get_str_env(key: str, default: str, choices: tuple[str, ...]) -> str:
    """Read a string option restricted to ``choices`` (case-insensitive)."""
    val = os.environ.get(key, default).strip().lower()
    if val not in choices:
        logger.warning(f"Invalid {key}='{val}', expected one of {choices}; using default {default}")
        return default
    return val


# Database Configuration
DB_PATH = Path(os.environ.get("PAIRWISE_TASTE_DB", "data/pairwise_taste.db"))
SESSION_SCHEMA_VERSION = 1
SESSION_MAX_AGE_DAYS = _get_int_env("PAIRWISE_TASTE_SESSION_MAX_AGE_DAYS", 30, min_val=1)

# Strength model selection
STRENGTH_STRATEGIES = ("btl", "elo")
DEFAULT_STRATEGY = _get_str_env("PAIRWISE_TASTE_STRATEGY", "btl", STRENGTH_STRATEGIES)

# Bradley-Terry-Luce parameters
BTL_LEARNING_RATE = 0.35
BTL_L2 = 1e-3
BTL_INFO_EPSILON = 1e-6  # keeps uncertainty finite before the first comparison

# Elo parameters
ELO_DEFAULT_RATING = 1200.0
ELO_BASE_K = 32.0
ELO_SCALE = 400.0

# Content weight learner
WEIGHT_LEARNING_RATE = _get_float_env("PAIRWISE_TASTE_WEIGHT_LR", 0.08, min_val=1e-6)
WEIGHT_L2 = _get_float_env("PAIRWISE_TASTE_WEIGHT_L2", 1e-4, min_val=0.0)
MAX_FEATURE_DIM = _get_int_env("PAIRWISE_TASTE_MAX_FEATURE_DIM", 4096, min_val=1)

# Pair selection
PAIR_WINDOW_SIZE = 24
MAX_RECENT_TITLES = 8
COSINE_EPSILON = 1e-9
TARGET_CHOICES = 12  # onboarding length used by the play/simulate commands

# Recommendation
DEFAULT_REC_LIMIT = 12
MMR_LAMBDA = _get_float_env("PAIRWISE_TASTE_MMR_LAMBDA", 0.75, min_val=0.0, max_val=1.0)
RELEVANCE_CONTENT_WEIGHT = 0.5
RELEVANCE_STRENGTH_WEIGHT = 0.4
DEFAULT_REASON = "Based on your pairwise picks"

# Catalogue
POSTER_BASE = "https://image.tmdb.org/t/p/w500"

# Presets for the two ways the engine is driven.
# interactive: in-browser BTL loop; server: Elo-backed API.
ENGINE_PRESETS = {
    "interactive": {
        "strategy": "btl",
        "weight_learning_rate": 0.6,
        "weight_l2": 1e-3,
        "mmr_lambda": 0.75,
    },
    "server": {
        "strategy": "elo",
        "weight_learning_rate": 0.08,
        "weight_l2": 1e-4,
        "mmr_lambda": 0.7,
    },
}
