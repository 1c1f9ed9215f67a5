import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("PAIRWISE_TASTE_DB", str(db_path))
    import pairwise_taste.config as config

    importlib.reload(config)
    return config


@pytest.fixture
def fresh_db(monkeypatch, tmp_path):
    """
    Reload config/database modules with a temp DB and cleanly close the pool after use.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("PAIRWISE_TASTE_DB", str(db_path))

    import pairwise_taste.config as config
    import pairwise_taste.database as database

    importlib.reload(config)
    importlib.reload(database)

    yield database
    database.close_pool()


@pytest.fixture
def catalogue_entries():
    """A small hydrated pool with two clear taste clusters."""
    return [
        {"id": "tt01", "title": "Heat", "featureVector": [1.0, 0.0, 0.0, 0.2], "posterPath": "/heat.jpg"},
        {"id": "tt02", "title": "Ronin", "featureVector": [0.9, 0.1, 0.0, 0.1], "trailerKey": "abc"},
        {"id": "tt03", "title": "Amelie", "featureVector": [0.0, 1.0, 0.1, 0.0]},
        {"id": "tt04", "title": "Chocolat", "featureVector": [0.1, 0.9, 0.0, 0.0]},
        {"id": "tt05", "title": "Alien", "featureVector": [0.2, 0.0, 1.0, 0.0], "priorStrength": 0.3},
        {"id": "tt06", "title": "Solaris", "featureVector": [0.0, 0.1, 0.9, 0.3]},
    ]


@pytest.fixture
def pool(catalogue_entries):
    from pairwise_taste.catalogue import parse_pool

    return parse_pool(catalogue_entries)
