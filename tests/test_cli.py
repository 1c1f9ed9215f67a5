import argparse
import json
import logging
import sys

import numpy as np
import pytest

from pairwise_taste import cli
from pairwise_taste.engine import PreferenceEngine
from pairwise_taste.engine_config import EngineConfig


@pytest.fixture
def catalogue_file(tmp_path, catalogue_entries):
    path = tmp_path / "catalogue.json"
    path.write_text(json.dumps(catalogue_entries))
    return path


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["prog", *argv])
    cli.main()


def _stdout_json(capsys):
    return json.loads(capsys.readouterr().out)


def test_cli_dispatch_status(monkeypatch):
    called = {}

    def fake_status(args):
        called["command"] = args.command
        called["session"] = args.session

    monkeypatch.setattr(cli, "cmd_status", fake_status)
    _run(monkeypatch, "--session", "alice", "status")

    assert called == {"command": "status", "session": "alice"}


def test_cli_parses_recommend_args(monkeypatch):
    captured = {}

    def fake_recommend(args):
        captured.update(vars(args))

    monkeypatch.setattr(cli, "cmd_recommend", fake_recommend)
    _run(
        monkeypatch,
        "--strategy", "elo",
        "recommend", "pool.json",
        "--limit", "5",
        "--lambda", "0.4",
        "--format", "json",
        "--diversity-report",
    )

    assert captured["strategy"] == "elo"
    assert captured["limit"] == 5
    assert captured["mmr_lambda"] == 0.4
    assert captured["format"] == "json"
    assert captured["diversity_report"] is True


def test_build_config_applies_preset_and_overrides():
    args = argparse.Namespace(strategy="btl", preset="server", max_rounds=4)
    cfg = cli._build_config(args)

    assert cfg.strategy == "btl"
    assert cfg.mmr_lambda == 0.7
    assert cfg.max_rounds == 4


def test_pair_vote_recommend_flow(fresh_db, monkeypatch, capsys, catalogue_file):
    _run(monkeypatch, "pair", str(catalogue_file))
    shown = _stdout_json(capsys)
    a, b = shown["a"]["id"], shown["b"]["id"]

    _run(monkeypatch, "vote", str(catalogue_file), a, b, "--winner", "A")
    _run(monkeypatch, "feedback", "tt06", "--action", "block")
    _run(monkeypatch, "recommend", str(catalogue_file), "--format", "json", "--limit", "3", "--diversity-report")

    payload = _stdout_json(capsys)
    ids = [item["id"] for item in payload["items"]]
    assert len(ids) == 3
    assert "tt06" not in ids
    assert "intraListSimilarity" in payload

    stored = fresh_db.load_session_state("default")
    assert stored["rounds"] == 1
    assert stored["blocked"] == ["tt06"]


def test_status_and_reset(fresh_db, monkeypatch, caplog, catalogue_file):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, "vote", str(catalogue_file), "tt01", "tt03", "--winner", "B")
    _run(monkeypatch, "status")
    assert "Rounds: 1" in caplog.text

    _run(monkeypatch, "reset", "--forget")
    assert fresh_db.load_session_state("default") is None


def test_invalid_vote_exits_with_code_2(fresh_db, monkeypatch, catalogue_file):
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "vote", str(catalogue_file), "tt01", "tt01", "--winner", "A")
    assert exc.value.code == 2

    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "vote", str(catalogue_file), "tt01", "nope", "--winner", "A")
    assert exc.value.code == 2


def test_play_reads_answers_from_input(fresh_db, monkeypatch, caplog, catalogue_file):
    caplog.set_level(logging.INFO)
    answers = iter(["a", "x", "B", "q"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

    _run(monkeypatch, "play", str(catalogue_file), "--rounds", "5", "--limit", "2")

    stored = fresh_db.load_session_state("default")
    assert stored["rounds"] == 2
    # the pair answered "x" was asked again rather than skipped
    assert len(stored["pairsShown"]) == 3
    assert "Intra-list similarity" in caplog.text


def test_run_simulation_exhausts_small_pool(pool):
    rng = np.random.default_rng(3)
    engine = PreferenceEngine(EngineConfig(strategy="btl"), rng=rng)

    result = cli.run_simulation(pool, engine, rounds=50, rng=rng, show_progress=False)

    # six items give fifteen distinct pairs
    assert result["rounds"] == 15
    assert result["items"] == 6
    assert result["phase"] == "exhausted"
    assert result["kendall_tau"] is None or -1.0 <= result["kendall_tau"] <= 1.0


def test_simulate_command_reports_json(monkeypatch, capsys, catalogue_file):
    _run(monkeypatch, "simulate", str(catalogue_file), "--rounds", "4", "--seed", "1")

    result = _stdout_json(capsys)
    assert result["rounds"] == 4


def test_status_with_other_strategy_keeps_stored_session(fresh_db, monkeypatch, catalogue_file):
    _run(monkeypatch, "vote", str(catalogue_file), "tt01", "tt03", "--winner", "A")

    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "--strategy", "elo", "status")
    assert exc.value.code == 2

    stored = fresh_db.load_session_state("default")
    assert stored["strategy"] == "btl"
    assert stored["rounds"] == 1


def test_reset_forget_works_across_strategies(fresh_db, monkeypatch, catalogue_file):
    _run(monkeypatch, "vote", str(catalogue_file), "tt01", "tt03", "--winner", "A")
    _run(monkeypatch, "--strategy", "elo", "reset", "--forget")

    assert fresh_db.load_session_state("default") is None
