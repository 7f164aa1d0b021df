"""SQLAlchemy models for sevadar scheduling."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import FrozenSet

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Skill(str, enum.Enum):
    PATH = "PATH"
    KIRTAN = "KIRTAN"


class ProgramCategory(str, enum.Enum):
    PATH = "PATH"
    KIRTAN = "KIRTAN"
    OTHER = "OTHER"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class AssignmentState(str, enum.Enum):
    PROPOSED = "PROPOSED"
    CONFIRMED = "CONFIRMED"


class LocationType(str, enum.Enum):
    GURDWARA = "GURDWARA"
    OUTSIDE_GURDWARA = "OUTSIDE_GURDWARA"


class Jatha(str, enum.Enum):
    A = "A"
    B = "B"


# Bookings that still hold staff time and earn fairness credit
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

ROLE_ORDER = (Skill.PATH, Skill.KIRTAN)

# Headcount beyond the role minimums; any skilled sevadar may fill it
FLEX = "FLEX"


def utcnow() -> datetime:
    """Naive UTC now, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_skills(raw: str | None) -> FrozenSet[Skill]:
    """Parse a ';'-separated skill string (case-insensitive) into a set of Skills."""
    if not raw:
        return frozenset()
    skills = set()
    for token in str(raw).replace(",", ";").split(";"):
        token = token.strip().upper()
        if token:
            skills.add(Skill(token))
    return frozenset(skills)


def format_skills(skills) -> str:
    return ";".join(sorted(Skill(s).value for s in skills))


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Staff(Base):
    """A sevadar with skills, an optional jatha tag and an active flag."""

    __tablename__ = "staff"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    skills = Column(String(50), nullable=False, default="")  # "KIRTAN;PATH"
    jatha = Column(Enum(Jatha), nullable=True)
    email = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    assignments = relationship("Assignment", back_populates="staff")

    @property
    def skill_set(self) -> FrozenSet[Skill]:
        return parse_skills(self.skills)

    def has_skill(self, skill: Skill) -> bool:
        return Skill(skill) in self.skill_set

    def __repr__(self) -> str:
        return f"<Staff(id={self.id}, name='{self.name}', skills='{self.skills}', jatha={self.jatha})>"


class ProgramType(Base):
    """Catalog entry describing a program and its staffing minimums."""

    __tablename__ = "program_types"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    category = Column(Enum(ProgramCategory), nullable=False, default=ProgramCategory.OTHER)
    min_pathers = Column(Integer, nullable=False, default=0)
    min_kirtanis = Column(Integer, nullable=False, default=0)
    duration_minutes = Column(Integer, nullable=False, default=60)
    comp_weight = Column(Integer, nullable=False, default=1)
    # Total headcount wanted; None means the role minimums alone
    people_required = Column(Integer, nullable=True)
    requires_full_jatha = Column(Boolean, nullable=False, default=False)  # rotation-style programs

    items = relationship("BookingItem", back_populates="program_type")

    def minimum_for(self, role: Skill) -> int:
        role = Skill(role)
        if role is Skill.PATH:
            return max(0, self.min_pathers or 0)
        if role is Skill.KIRTAN:
            return max(0, self.min_kirtanis or 0)
        raise ValueError(f"Unknown role {role}")

    @property
    def flex_target(self) -> int:
        """Headcount the item should reach once role minimums are covered."""
        return max(0, self.people_required or 0)

    def __repr__(self) -> str:
        return f"<ProgramType(id={self.id}, name='{self.name}', category={self.category})>"


class Booking(Base):
    """A facility booking over a half-open window [start, end)."""

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False, default="")
    start = Column(DateTime, nullable=False)
    end = Column(DateTime, nullable=False)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING)
    location = Column(Enum(LocationType), nullable=False, default=LocationType.GURDWARA)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    approved_at = Column(DateTime, nullable=True)

    items = relationship(
        "BookingItem", back_populates="booking", order_by="BookingItem.id", cascade="all, delete-orphan"
    )
    assignments = relationship("Assignment", back_populates="booking", order_by="Assignment.id")

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, start={self.start}, end={self.end}, status={self.status})>"


class BookingItem(Base):
    """One program instance within a booking."""

    __tablename__ = "booking_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    program_type_id = Column(Integer, ForeignKey("program_types.id"), nullable=False)
    notes = Column(Text, nullable=True)

    booking = relationship("Booking", back_populates="items")
    program_type = relationship("ProgramType", back_populates="items")
    assignments = relationship("Assignment", back_populates="booking_item", order_by="Assignment.id")

    def __repr__(self) -> str:
        return f"<BookingItem(id={self.id}, booking={self.booking_id}, program={self.program_type_id})>"


class Assignment(Base):
    """Staff placed on a booking item over an effective window."""

    __tablename__ = "assignments"
    __table_args__ = (
        UniqueConstraint("booking_item_id", "staff_id", "start", "end", name="uq_assignment_item_staff_window"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    booking_item_id = Column(Integer, ForeignKey("booking_items.id"), nullable=False)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False)
    # Effective window; copied from the booking unless has_own_window
    start = Column(DateTime, nullable=False)
    end = Column(DateTime, nullable=False)
    has_own_window = Column(Boolean, nullable=False, default=False)
    state = Column(Enum(AssignmentState), nullable=False, default=AssignmentState.PROPOSED)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    booking = relationship("Booking", back_populates="assignments")
    booking_item = relationship("BookingItem", back_populates="assignments")
    staff = relationship("Staff", back_populates="assignments")

    def __repr__(self) -> str:
        return (
            f"<Assignment(id={self.id}, item={self.booking_item_id}, staff={self.staff_id}, "
            f"state={self.state})>"
        )


class Lock(Base):
    """Row-backed advisory lock with an expiry."""

    __tablename__ = "locks"

    key = Column(String(100), primary_key=True)
    owner = Column(String(100), nullable=False)
    expires_at = Column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Lock(key='{self.key}', owner='{self.owner}', expires_at={self.expires_at})>"
