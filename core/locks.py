"""
Concurrency helpers

Database-level row locks (SELECT ... FOR UPDATE) serialize concurrent
requests touching the same nomination or round. On SQLite the FOR UPDATE
clause is ignored and the database lock does the same job.

KeyedLock is the one in-process lock: it keeps two threads from refreshing
the same external user record at once.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable

from sqlalchemy.orm import Session, Query

from models import Nomination, RoundGameMode


def with_nomination_lock(nomination_id: int, db: Session) -> Query:
    """
    Lock one Nomination row

    Use when:
    - reading a nomination's state and writing it back in the same transaction

    Example:
        nomination = with_nomination_lock(nomination_id, db).first()
        if not nomination:
            raise NominationNotFound(nomination_id)
        nomination.moderator_state = state

    Returns:
        Query object (call .first() or .one())

    Notes:
        - nowait=False waits for the lock instead of failing
        - must run inside a transaction
    """
    return db.query(Nomination).filter(
        Nomination.id == nomination_id
    ).with_for_update(nowait=False)


def lock_multiple_nominations(nomination_ids: list[int], db: Session) -> Query:
    """
    Lock several Nominations (bulk re-ordering)

    Returns:
        Query object (call .all())
    """
    return db.query(Nomination).filter(
        Nomination.id.in_(nomination_ids)
    ).with_for_update(nowait=False)


def with_round_game_mode_lock(round_id: int, game_mode: int, db: Session) -> Query:
    """
    Lock the per-mode settings row of a Round

    Returns:
        Query object (call .first())
    """
    return db.query(RoundGameMode).filter(
        RoundGameMode.round_id == round_id,
        RoundGameMode.game_mode == game_mode
    ).with_for_update(nowait=False)


class KeyedLock:
    """
    One mutex per key, created on demand

    Example:
        with user_locks.acquire(user_id):
            refresh_user(user_id)

    Entries are dropped once nobody holds or waits on them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @contextmanager
    def acquire(self, key: Hashable):
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        """Number of keys currently held or waited on; for inspection only"""
        with self._guard:
            return len(self._locks)
