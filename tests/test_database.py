from datetime import datetime, timedelta

from pairwise_taste.state import UserState


def _snapshot(rounds=0):
    state = UserState.fresh("btl", dim=2)
    state.rounds = rounds
    return state.to_dict()


def test_init_db_creates_expected_tables(fresh_db):
    db = fresh_db
    db.init_db()

    with db.get_db(read_only=True) as conn:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }

    assert "session_states" in tables


def test_nested_transactions_commit_once(fresh_db):
    db = fresh_db
    db.init_db()

    with db.get_db() as conn:
        conn.execute(
            "INSERT INTO session_states (session_id, state_data) VALUES (?, ?)", ("outer", "{}")
        )
        with db.get_db() as inner:
            inner.execute(
                "INSERT INTO session_states (session_id, state_data) VALUES (?, ?)", ("inner", "{}")
            )

    with db.get_db(read_only=True) as conn:
        count = conn.execute("SELECT COUNT(*) FROM session_states").fetchone()[0]
        assert count == 2


def test_outer_failure_rolls_back(fresh_db):
    db = fresh_db
    db.init_db()

    try:
        with db.get_db() as conn:
            conn.execute(
                "INSERT INTO session_states (session_id, state_data) VALUES (?, ?)", ("doomed", "{}")
            )
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert db.load_session_state("doomed") is None


def test_save_and_load_session_state(fresh_db):
    db = fresh_db
    db.init_db()

    db.save_session_state("alice", _snapshot(rounds=3))
    loaded = db.load_session_state("alice")

    assert loaded["rounds"] == 3
    assert UserState.from_dict(loaded).rounds == 3
    assert db.load_session_state("nobody") is None


def test_load_ignores_schema_mismatch_and_stale_rows(fresh_db):
    db = fresh_db
    db.init_db()
    db.save_session_state("old-schema", _snapshot())
    db.save_session_state("stale", _snapshot())

    old = (datetime.now() - timedelta(days=90)).isoformat()
    with db.get_db() as conn:
        conn.execute("UPDATE session_states SET schema_version = 0 WHERE session_id = 'old-schema'")
        conn.execute("UPDATE session_states SET updated_at = ? WHERE session_id = 'stale'", (old,))

    assert db.load_session_state("old-schema") is None
    assert db.load_session_state("stale", max_age_days=30) is None
    assert db.load_session_state("stale", max_age_days=365) is not None


def test_load_ignores_corrupt_json(fresh_db):
    db = fresh_db
    db.init_db()
    db.save_session_state("broken", _snapshot())
    with db.get_db() as conn:
        conn.execute("UPDATE session_states SET state_data = '{not json' WHERE session_id = 'broken'")

    assert db.load_session_state("broken") is None


def test_purge_delete_and_list(fresh_db):
    db = fresh_db
    db.init_db()
    db.save_session_state("keep", _snapshot(rounds=1))
    db.save_session_state("stale", _snapshot())
    db.save_session_state("gone", _snapshot())

    old = (datetime.now() - timedelta(days=90)).isoformat()
    with db.get_db() as conn:
        conn.execute("UPDATE session_states SET updated_at = ? WHERE session_id = 'stale'", (old,))

    assert db.purge_stale_sessions(max_age_days=30) == 1
    assert db.delete_session_state("gone") is True
    assert db.delete_session_state("gone") is False

    sessions = db.list_sessions()
    assert [row["session_id"] for row in sessions] == ["keep"]
    assert sessions[0]["strategy"] == "btl"
    assert sessions[0]["rounds"] == 1


def test_parse_timestamp_naive_drops_timezone(fresh_db):
    parsed = fresh_db.parse_timestamp_naive("2024-01-01T12:00:00+02:00")
    assert parsed.tzinfo is None
    assert parsed.hour == 12
