"""
Per-session wrappers around the engine.

A ``Session`` owns one ``UserState`` and the listeners interested in it.
Listeners are registered on the session, not at module level, and are
dropped when the session is closed. ``SessionRegistry`` keys sessions by an
opaque id and hands out one lock per session so a server can serialize
writers without any sharing between sessions.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Sequence

from . import database
from .engine import Item, PreferenceEngine, Recommendation
from .state import UserState

logger = logging.getLogger(__name__)

Listener = Callable[["Session"], None]

FEEDBACK_ACTIONS = ("seen", "block")


class Session:
    def __init__(self, session_id: str, engine: PreferenceEngine, state: UserState | None = None):
        self.session_id = session_id
        self.engine = engine
        self.state = state if state is not None else engine.new_state()
        self._listeners: list[Listener] = []
        # changed since the last save
        self.dirty = False

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register ``callback`` for preference updates; returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback(self)

    def close(self) -> None:
        self._listeners.clear()

    def next_pair(self, pool: Sequence[Item]) -> tuple[Item, Item] | None:
        by_id = {item.id: item for item in pool}
        self.dirty = True
        self.engine.seed_priors(self.state, pool)
        pair = self.engine.select_next_pair(
            self.state,
            [item.id for item in pool],
            {item.id: item.features for item in pool},
        )
        if pair is None:
            return None
        return by_id[pair[0]], by_id[pair[1]]

    def vote(self, item_a: Item, item_b: Item, winner: str) -> None:
        """Record a decision on a shown pair; ``winner`` is ``"A"`` or ``"B"``."""
        winner = winner.upper()
        if winner not in ("A", "B"):
            raise ValueError(f"winner must be 'A' or 'B', got {winner!r}")
        won, lost = (item_a, item_b) if winner == "A" else (item_b, item_a)
        self.engine.apply_outcome(self.state, won.id, lost.id, won.features, lost.features)
        self.dirty = True
        self._notify()

    def recommendations(self, pool: Sequence[Item], k: int | None = None, lam: float | None = None) -> list[Recommendation]:
        recs = self.engine.select_recommendations(self.state, pool, k=k, lam=lam)
        self.dirty = True
        return recs

    def feedback(self, item_id: str, action: str) -> None:
        if action not in FEEDBACK_ACTIONS:
            raise ValueError(f"action must be one of {FEEDBACK_ACTIONS}, got {action!r}")
        if action == "seen":
            self.engine.mark_seen(self.state, item_id)
        else:
            self.engine.block(self.state, item_id)
        self.dirty = True
        self._notify()

    def reset(self) -> None:
        self.engine.reset(self.state)
        self.dirty = True
        self._notify()


class SessionRegistry:
    def __init__(self, engine: PreferenceEngine, persist: bool = False):
        self.engine = engine
        self.persist = persist
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _load(self, session_id: str) -> Session:
        state = None
        if self.persist:
            payload = database.load_session_state(session_id)
            if payload is not None:
                try:
                    state = UserState.from_dict(payload)
                except ValueError as exc:
                    logger.warning(f"Discarding snapshot for session {session_id}: {exc}")
            if state is not None and state.strategy != self.engine.model.name:
                raise ValueError(
                    f"Session {session_id!r} was stored for the {state.strategy!r} strategy; "
                    f"rerun with --strategy {state.strategy} or reset it with --forget"
                )
        return Session(session_id, self.engine, state)

    def get(self, session_id: str) -> Session:
        with self._registry_lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = self._load(session_id)
                self._sessions[session_id] = session
                self._locks[session_id] = threading.Lock()
            return session

    @contextmanager
    def hold(self, session_id: str) -> Iterator[Session]:
        """Exclusive access to one session; a changed session is saved on clean exit when persisting."""
        session = self.get(session_id)
        with self._locks[session_id]:
            yield session
            if self.persist and session.dirty:
                database.save_session_state(session_id, session.state.to_dict())
                session.dirty = False

    def close(self, session_id: str) -> None:
        with self._registry_lock:
            session = self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
        if session is not None:
            session.close()

    def __len__(self) -> int:
        return len(self._sessions)
