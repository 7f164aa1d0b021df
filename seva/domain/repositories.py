"""Repository classes for data access.

Repositories never commit on their own except for the bulk loaders; writes
made by scheduling operations are committed by `seva.domain.db.transaction`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session, joinedload

from .models import (
    ACTIVE_BOOKING_STATUSES,
    Assignment,
    AssignmentState,
    Booking,
    BookingItem,
    BookingStatus,
    ProgramType,
    Staff,
)


class StaffRepository:
    """Repository for staff data access."""

    @staticmethod
    def get_all(session: Session) -> List[Staff]:
        """Get all staff ordered by name."""
        return session.query(Staff).order_by(Staff.name, Staff.id).all()

    @staticmethod
    def get_active(session: Session) -> List[Staff]:
        """Get all active staff ordered by name."""
        return (
            session.query(Staff)
            .filter(Staff.is_active.is_(True))
            .order_by(Staff.name, Staff.id)
            .all()
        )

    @staticmethod
    def get_by_id(session: Session, staff_id: int) -> Optional[Staff]:
        return session.get(Staff, staff_id)

    @staticmethod
    def bulk_create(session: Session, staff: List[Staff]) -> None:
        """Create multiple staff records."""
        session.add_all(staff)
        session.commit()


class ProgramTypeRepository:
    """Repository for program catalog access."""

    @staticmethod
    def get_by_id(session: Session, program_type_id: int) -> Optional[ProgramType]:
        return session.get(ProgramType, program_type_id)

    @staticmethod
    def get_many(session: Session, ids: Iterable[int]) -> List[ProgramType]:
        ids = list(ids)
        if not ids:
            return []
        return session.query(ProgramType).filter(ProgramType.id.in_(ids)).all()

    @staticmethod
    def bulk_create(session: Session, programs: List[ProgramType]) -> None:
        session.add_all(programs)
        session.commit()


class BookingRepository:
    """Repository for booking data access."""

    @staticmethod
    def get_by_id(session: Session, booking_id: int) -> Optional[Booking]:
        return session.get(Booking, booking_id)

    @staticmethod
    def get_with_items(session: Session, booking_id: int) -> Optional[Booking]:
        """Get a booking with items, program types and assignments loaded."""
        return (
            session.query(Booking)
            .options(
                joinedload(Booking.items).joinedload(BookingItem.program_type),
                joinedload(Booking.items).joinedload(BookingItem.assignments).joinedload(Assignment.staff),
            )
            .filter(Booking.id == booking_id)
            .first()
        )

    @staticmethod
    def get_overlapping(
        session: Session,
        start: datetime,
        end: datetime,
        statuses: Sequence[BookingStatus] = ACTIVE_BOOKING_STATUSES,
        exclude_booking_id: Optional[int] = None,
    ) -> List[Booking]:
        """Get bookings whose window overlaps [start, end)."""
        query = (
            session.query(Booking)
            .options(joinedload(Booking.items).joinedload(BookingItem.program_type))
            .filter(Booking.start < end, Booking.end > start)
            .filter(Booking.status.in_(list(statuses)))
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start, Booking.id).all()

    @staticmethod
    def get_stale_pending(session: Session, cutoff: datetime) -> List[Booking]:
        """Get PENDING bookings created before the cutoff."""
        return (
            session.query(Booking)
            .filter(Booking.status == BookingStatus.PENDING, Booking.created_at < cutoff)
            .all()
        )


class BookingItemRepository:
    """Repository for booking item access."""

    @staticmethod
    def get_by_id(session: Session, item_id: int) -> Optional[BookingItem]:
        return session.get(BookingItem, item_id)


class AssignmentRepository:
    """Repository for assignment data access."""

    @staticmethod
    def get_by_id(session: Session, assignment_id: int) -> Optional[Assignment]:
        return session.get(Assignment, assignment_id)

    @staticmethod
    def get_by_booking(session: Session, booking_id: int) -> List[Assignment]:
        return (
            session.query(Assignment)
            .filter(Assignment.booking_id == booking_id)
            .order_by(Assignment.id)
            .all()
        )

    @staticmethod
    def find_on_item(session: Session, booking_item_id: int, staff_id: int) -> Optional[Assignment]:
        """Get the assignment of a staff member on an item, if any."""
        return (
            session.query(Assignment)
            .filter(Assignment.booking_item_id == booking_item_id, Assignment.staff_id == staff_id)
            .order_by(Assignment.id)
            .first()
        )

    @staticmethod
    def get_overlapping(session: Session, start: datetime, end: datetime) -> List[Assignment]:
        """Get live assignments whose effective window overlaps [start, end).

        Assignments of cancelled or expired bookings are not live.
        """
        return (
            session.query(Assignment)
            .join(Booking, Assignment.booking_id == Booking.id)
            .filter(Assignment.start < end, Assignment.end > start)
            .filter(Assignment.state.in_([AssignmentState.PROPOSED, AssignmentState.CONFIRMED]))
            .filter(Booking.status.in_(list(ACTIVE_BOOKING_STATUSES)))
            .all()
        )

    @staticmethod
    def get_credit_history(session: Session, staff_ids: Optional[Iterable[int]] = None) -> List[Assignment]:
        """Get CONFIRMED assignments on PENDING/CONFIRMED bookings, oldest first."""
        query = (
            session.query(Assignment)
            .join(Booking, Assignment.booking_id == Booking.id)
            .options(joinedload(Assignment.booking_item).joinedload(BookingItem.program_type))
            .filter(Assignment.state == AssignmentState.CONFIRMED)
            .filter(Booking.status.in_(list(ACTIVE_BOOKING_STATUSES)))
        )
        if staff_ids is not None:
            staff_ids = list(staff_ids)
            if not staff_ids:
                return []
            query = query.filter(Assignment.staff_id.in_(staff_ids))
        return query.order_by(Assignment.start, Assignment.id).all()

    @staticmethod
    def create(session: Session, assignment: Assignment) -> Assignment:
        """Stage a new assignment and flush so it gets an id."""
        session.add(assignment)
        session.flush()
        return assignment
