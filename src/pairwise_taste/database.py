import sqlite3
import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta

from .config import DB_PATH, SESSION_MAX_AGE_DAYS, SESSION_SCHEMA_VERSION

logger = logging.getLogger(__name__)


def parse_timestamp_naive(timestamp_str: str) -> datetime:
    """Parse an ISO timestamp and drop any tzinfo so comparisons stay naive."""
    parsed = datetime.fromisoformat(timestamp_str)
    return parsed.replace(tzinfo=None)


class ConnectionPool:
    """
    Per-thread SQLite connections for the session store.

    SQLite connections are not shared between threads, so each thread opens
    its own on first use. ``enter``/``leave`` count nested ``get_db`` blocks
    so only the outermost one ends the transaction.
    """

    def __init__(self, db_path, max_size: int = 50):
        self.db_path = db_path
        self.max_size = max_size
        self._local = threading.local()
        self._lock = threading.Lock()
        self._open: dict[int, sqlite3.Connection] = {}

    def _open_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=5.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def _reap(self) -> None:
        live = {t.ident for t in threading.enumerate()}
        for ident in [i for i in self._open if i not in live]:
            self._open.pop(ident).close()
            logger.debug(f"Closed session store connection of finished thread {ident}")

    def acquire(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn

        with self._lock:
            if len(self._open) >= self.max_size:
                self._reap()
            if len(self._open) >= self.max_size:
                raise RuntimeError(
                    f"Session store already holds {self.max_size} connections; "
                    f"are threads exiting without closing the pool?"
                )
            conn = self._open_connection()
            self._open[threading.get_ident()] = conn

        self._local.conn = conn
        self._local.depth = 0
        logger.debug(f"Opened session store connection ({len(self._open)} open)")
        return conn

    def enter(self) -> bool:
        """Open one nesting level; True when this is the outermost block."""
        depth = getattr(self._local, "depth", 0)
        self._local.depth = depth + 1
        return depth == 0

    def leave(self) -> None:
        self._local.depth = max(0, getattr(self._local, "depth", 1) - 1)

    def close_all(self):
        with self._lock:
            for ident, conn in self._open.items():
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Could not close session store connection of thread {ident}: {e}")
            self._open.clear()
            self._local = threading.local()
        logger.debug("Session store pool closed")


_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> ConnectionPool:
    global _pool
    with _pool_lock:
        if _pool is None:
            DB_PATH.parent.mkdir(exist_ok=True, parents=True)
            _pool = ConnectionPool(DB_PATH)
        return _pool


@contextmanager
def get_db(read_only: bool = False):
    """
    Yield this thread's connection inside a transaction.

    Nested blocks share the outer transaction: only the outermost block
    commits (unless ``read_only``) or rolls back on error.
    """
    pool = _get_pool()
    conn = pool.acquire()
    outermost = pool.enter()
    try:
        yield conn
        if outermost and not read_only:
            conn.commit()
    except Exception:
        if outermost:
            conn.rollback()
        raise
    finally:
        pool.leave()


def close_pool():
    """Close every pooled connection; safe to call more than once."""
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.close_all()
            _pool = None


def init_db() -> None:
    DB_PATH.parent.mkdir(exist_ok=True, parents=True)
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS session_states (
                session_id TEXT PRIMARY KEY,
                state_data TEXT NOT NULL,   -- JSON UserState snapshot
                strategy TEXT,
                rounds INTEGER DEFAULT 0,
                schema_version INTEGER,
                updated_at TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_session_states_updated ON session_states(updated_at);
        """)


def save_session_state(session_id: str, state_data: dict) -> None:
    """Upsert a session snapshot with a naive timestamp and the current schema version."""
    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO session_states
                (session_id, state_data, strategy, rounds, schema_version, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            session_id,
            json.dumps(state_data),
            state_data.get("strategy"),
            int(state_data.get("rounds", 0)),
            SESSION_SCHEMA_VERSION,
            datetime.now().isoformat(),
        ))


def load_session_state(session_id: str, max_age_days: int = SESSION_MAX_AGE_DAYS) -> dict | None:
    """
    Load a session snapshot if it exists, matches the schema and is recent enough.

    Returns None otherwise; the caller starts a fresh state.
    """
    with get_db(read_only=True) as conn:
        row = conn.execute("""
            SELECT state_data, schema_version, updated_at
            FROM session_states
            WHERE session_id = ?
        """, (session_id,)).fetchone()

    if not row:
        return None

    if row['schema_version'] != SESSION_SCHEMA_VERSION:
        logger.debug(
            f"Session {session_id} snapshot ignored - schema version mismatch "
            f"({row['schema_version']} != {SESSION_SCHEMA_VERSION})"
        )
        return None

    updated_at = parse_timestamp_naive(row['updated_at'])
    if datetime.now() - updated_at > timedelta(days=max_age_days):
        logger.debug(f"Session {session_id} snapshot ignored - older than {max_age_days} days")
        return None

    try:
        return json.loads(row['state_data'])
    except json.JSONDecodeError as e:
        logger.warning(f"Corrupt snapshot for session {session_id}: {e}")
        return None


def delete_session_state(session_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM session_states WHERE session_id = ?", (session_id,))
        return cursor.rowcount > 0


def purge_stale_sessions(max_age_days: int = SESSION_MAX_AGE_DAYS) -> int:
    """
    Delete snapshots that are too old or carry an outdated schema version.

    Returns:
        Count of sessions deleted
    """
    cutoff = (datetime.now() - timedelta(days=max_age_days)).isoformat()
    with get_db() as conn:
        cursor = conn.execute("""
            DELETE FROM session_states
            WHERE updated_at < ? OR schema_version IS NULL OR schema_version != ?
        """, (cutoff, SESSION_SCHEMA_VERSION))
        return cursor.rowcount


def list_sessions(limit: int = 20) -> list[dict]:
    with get_db(read_only=True) as conn:
        rows = conn.execute("""
            SELECT session_id, strategy, rounds, updated_at
            FROM session_states
            ORDER BY updated_at DESC
            LIMIT ?
        """, (limit,)).fetchall()
        return [dict(row) for row in rows]
