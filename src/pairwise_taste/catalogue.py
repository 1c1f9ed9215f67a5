"""
Loading of hydrated item pools.

Hydration (scraping, TMDb lookups, feature construction) happens upstream;
this module only reads the resulting JSON and turns it into ``Item`` records.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from .engine import Item

logger = logging.getLogger(__name__)


def parse_pool(entries: Iterable[dict[str, Any]]) -> list[Item]:
    """Build Items from raw dicts; entries without an id are skipped, duplicate ids keep the first."""
    pool: list[Item] = []
    known: set[str] = set()
    skipped = 0
    for entry in entries:
        try:
            item = Item.from_dict(entry)
        except (ValueError, TypeError, AttributeError) as exc:
            skipped += 1
            logger.warning(f"Skipping catalogue entry: {exc}")
            continue
        if item.id in known:
            logger.debug(f"Duplicate catalogue id {item.id}; keeping first entry")
            continue
        known.add(item.id)
        pool.append(item)

    if skipped:
        logger.warning(f"Skipped {skipped} malformed catalogue entries")
    return pool


def load_pool(path: str | Path) -> list[Item]:
    """Read a pool from a JSON list or an ``{"items": [...]}`` object."""
    payload = json.loads(Path(path).read_text())
    if isinstance(payload, dict):
        payload = payload.get("items", [])
    if not isinstance(payload, list):
        raise ValueError(f"Catalogue at {path} must be a list of items")

    pool = parse_pool(payload)
    logger.info(f"Loaded {len(pool)} items from {path}")
    feature_dimension(pool)
    return pool


def features_by_id(pool: Iterable[Item]) -> dict[str, tuple[float, ...]]:
    return {item.id: item.features for item in pool}


def feature_dimension(pool: Iterable[Item]) -> int:
    """Widest feature vector in the pool; warns when the pool disagrees on D."""
    dims = {len(item.features) for item in pool}
    if len(dims) > 1:
        logger.warning(f"Catalogue mixes feature dimensions {sorted(dims)}; shorter vectors are zero-padded")
    return max(dims, default=0)
