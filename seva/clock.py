"""Clock abstraction so "now" can be pinned in tests."""

from __future__ import annotations

from datetime import datetime, timedelta

from seva.domain.models import utcnow


class SystemClock:
    """Naive UTC wall clock."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """Clock frozen at a given instant; `advance` moves it forward."""

    def __init__(self, at: datetime):
        self._now = at

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now
