"""Non-blocking, TTL-aware lock stores.

A lock is taken with `try_acquire(key, ttl_seconds)`, which returns False
instead of waiting when someone else holds it. Holders that die without
releasing stop blocking others once the TTL runs out.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from seva.clock import SystemClock
from seva.domain.models import Lock

logger = logging.getLogger(__name__)


class InMemoryLockStore:
    """Lock store for a single process."""

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()
        self._held: Dict[str, Tuple[str, datetime]] = {}
        self.owner = uuid.uuid4().hex

    def try_acquire(self, key: str, ttl_seconds: int) -> bool:
        now = self.clock.now()
        current = self._held.get(key)
        if current is not None and current[1] > now:
            return False
        self._held[key] = (self.owner, now + timedelta(seconds=ttl_seconds))
        return True

    def release(self, key: str) -> None:
        current = self._held.get(key)
        if current is not None and current[0] == self.owner:
            del self._held[key]

    def is_held(self, key: str) -> bool:
        current = self._held.get(key)
        return current is not None and current[1] > self.clock.now()


class DatabaseLockStore:
    """Lock store backed by the `locks` table, shared by every process on the database.

    Uses its own session so acquiring or releasing never commits the caller's work.
    """

    def __init__(self, session_factory, clock=None, owner: str | None = None):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.owner = owner or uuid.uuid4().hex

    def try_acquire(self, key: str, ttl_seconds: int) -> bool:
        now = self.clock.now()
        expires_at = now + timedelta(seconds=ttl_seconds)
        session: Session = self.session_factory()
        try:
            # Take over an expired row first; a live row means someone else holds it
            taken = (
                session.query(Lock)
                .filter(Lock.key == key, Lock.expires_at <= now)
                .update({Lock.owner: self.owner, Lock.expires_at: expires_at}, synchronize_session=False)
            )
            if not taken:
                session.add(Lock(key=key, owner=self.owner, expires_at=expires_at))
            session.commit()
            return True
        except IntegrityError:
            session.rollback()
            logger.debug("Lock %s is held elsewhere", key)
            return False
        finally:
            session.close()

    def release(self, key: str) -> None:
        session: Session = self.session_factory()
        try:
            session.query(Lock).filter(Lock.key == key, Lock.owner == self.owner).delete(
                synchronize_session=False
            )
            session.commit()
        finally:
            session.close()

    def is_held(self, key: str) -> bool:
        session: Session = self.session_factory()
        try:
            row = session.get(Lock, key)
            return row is not None and row.expires_at > self.clock.now()
        finally:
            session.close()
