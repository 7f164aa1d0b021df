"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from seva.clock import FixedClock
from seva.domain.models import (
    Assignment,
    AssignmentState,
    Base,
    Booking,
    BookingItem,
    BookingStatus,
    LocationType,
    ProgramCategory,
    ProgramType,
    Staff,
)

# Wednesday; its Monday-start week runs 2025-03-10 .. 2025-03-16
NOW = datetime(2025, 3, 12, 10, 0)
# Saturday morning of the same week
SLOT = datetime(2025, 3, 15, 9, 0)


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


@pytest.fixture
def db_session():
    """Create in-memory database session for testing."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def make_staff(db_session):
    """Factory: add one staff member."""

    def _make(name, skills="PATH", jatha=None, is_active=True):
        staff = Staff(name=name, skills=skills, jatha=jatha, is_active=is_active)
        db_session.add(staff)
        db_session.commit()
        return staff

    return _make


@pytest.fixture
def make_program(db_session):
    """Factory: add one program type."""

    def _make(
        name="Sukhmani Sahib",
        category=ProgramCategory.OTHER,
        min_pathers=0,
        min_kirtanis=0,
        comp_weight=1,
        requires_full_jatha=False,
        people_required=None,
    ):
        program = ProgramType(
            name=name,
            category=category,
            min_pathers=min_pathers,
            min_kirtanis=min_kirtanis,
            duration_minutes=60,
            comp_weight=comp_weight,
            requires_full_jatha=requires_full_jatha,
            people_required=people_required,
        )
        db_session.add(program)
        db_session.commit()
        return program

    return _make


@pytest.fixture
def make_booking(db_session):
    """Factory: add a booking with one item per program type, bypassing the cap check."""

    def _make(programs, start=SLOT, hours=2, status=BookingStatus.PENDING, created_at=NOW, title="Family program"):
        booking = Booking(
            title=title,
            start=start,
            end=start + timedelta(hours=hours),
            status=status,
            location=LocationType.GURDWARA,
            created_at=created_at,
        )
        for program in programs:
            booking.items.append(BookingItem(program_type=program))
        db_session.add(booking)
        db_session.commit()
        return booking

    return _make


@pytest.fixture
def make_assignment(db_session):
    """Factory: put a staff member on a booking item, inheriting the booking window by default."""

    def _make(item, staff, state=AssignmentState.PROPOSED, start=None, end=None):
        own = start is not None
        assignment = Assignment(
            booking=item.booking,
            booking_item=item,
            staff=staff,
            start=start if own else item.booking.start,
            end=end if own else item.booking.end,
            has_own_window=own,
            state=state,
            created_at=NOW,
        )
        db_session.add(assignment)
        db_session.commit()
        return assignment

    return _make
