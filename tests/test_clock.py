"""Tests for the clocks and naive UTC timestamps."""

from datetime import datetime, timedelta, timezone

from conftest import NOW
from seva.clock import FixedClock, SystemClock
from seva.domain.models import Booking


def test_system_clock_is_naive_utc():
    now = SystemClock().now()
    assert now.tzinfo is None
    assert abs(now - datetime.now(timezone.utc).replace(tzinfo=None)) < timedelta(minutes=1)


def test_fixed_clock_advances():
    clock = FixedClock(NOW)
    assert clock.advance(hours=2) == NOW + timedelta(hours=2)
    assert clock.now() == NOW + timedelta(hours=2)


def test_created_at_defaults_to_naive_utc(db_session):
    booking = Booking(title="Walk-in", start=NOW, end=NOW + timedelta(hours=1))
    db_session.add(booking)
    db_session.commit()

    assert booking.created_at.tzinfo is None
    assert abs(booking.created_at - SystemClock().now()) < timedelta(minutes=1)
