"""Maximal Marginal Relevance selection."""

import logging
import math
from itertools import combinations
from typing import Callable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def mmr_select(
    candidates: Sequence[T],
    relevance: Callable[[T], float],
    similarity: Callable[[T, T], float],
    k: int = 5,
    lam: float = 0.75,
) -> list[T]:
    """
    Greedily pick up to ``k`` candidates trading relevance against redundancy.

    Each step takes the candidate maximizing
    ``lam * relevance(c) - (1 - lam) * max(similarity(c, s) for s in selected)``.
    Ties go to the earlier candidate in input order, so the result is
    deterministic for a fixed input.
    """
    if not (0.0 <= lam <= 1.0):
        raise ValueError(f"lam must be in [0, 1], got {lam}")
    if k <= 0:
        return []

    rel = [relevance(c) for c in candidates]
    pool = list(range(len(candidates)))
    selected: list[int] = []

    while len(selected) < k and pool:
        best_pos, best_val = None, -math.inf
        for pos, idx in enumerate(pool):
            redundancy = max(
                (similarity(candidates[idx], candidates[s]) for s in selected),
                default=0.0,
            )
            value = lam * rel[idx] - (1.0 - lam) * redundancy
            if value > best_val:
                best_pos, best_val = pos, value
        if best_pos is None:
            # every remaining value is NaN or -inf
            logger.warning(f"MMR stopped early with {len(selected)}/{k} items: no comparable scores left")
            break
        selected.append(pool.pop(best_pos))

    return [candidates[i] for i in selected]


def intra_list_similarity(items: Sequence[T], similarity: Callable[[T, T], float]) -> float:
    """Mean pairwise similarity of a result list (lower means more diverse)."""
    pairs = list(combinations(items, 2))
    if not pairs:
        return 0.0
    return sum(similarity(a, b) for a, b in pairs) / len(pairs)
