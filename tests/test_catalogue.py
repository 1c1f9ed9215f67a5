import json
import logging

import pytest

from pairwise_taste.catalogue import feature_dimension, features_by_id, load_pool, parse_pool


def test_parse_pool_skips_malformed_and_duplicate_entries(caplog):
    entries = [
        {"id": "a", "featureVector": [1, 0]},
        {"title": "missing id"},
        {"id": "a", "featureVector": [0, 1]},
        {"id": "b", "featureVector": "not-a-vector"},
    ]

    with caplog.at_level(logging.WARNING):
        pool = parse_pool(entries)

    assert [item.id for item in pool] == ["a", "b"]
    assert pool[0].features == (1.0, 0.0)
    assert pool[1].features == ()
    assert "Skipped 1 malformed catalogue entries" in caplog.text


def test_load_pool_accepts_list_or_items_object(tmp_path, catalogue_entries):
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps(catalogue_entries))
    as_object = tmp_path / "object.json"
    as_object.write_text(json.dumps({"items": catalogue_entries}))

    assert [i.id for i in load_pool(as_list)] == [i.id for i in load_pool(as_object)]
    assert len(load_pool(as_list)) == 6


def test_load_pool_rejects_non_list(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"items": "nope"}))

    with pytest.raises(ValueError):
        load_pool(path)


def test_feature_dimension_warns_on_mixed_widths(caplog):
    pool = parse_pool([{"id": "a", "features": [1]}, {"id": "b", "features": [1, 2, 3]}])

    with caplog.at_level(logging.WARNING):
        assert feature_dimension(pool) == 3

    assert "mixes feature dimensions" in caplog.text
    assert feature_dimension([]) == 0


def test_features_by_id(pool):
    feats = features_by_id(pool)
    assert feats["tt03"] == (0.0, 1.0, 0.1, 0.0)
    assert len(feats) == len(pool)
