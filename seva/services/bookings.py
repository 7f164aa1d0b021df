"""Booking lifecycle around the staffing core: create, edit, approve, cancel, expire."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from seva.access import ActorRole, require
from seva.clock import SystemClock
from seva.config import SchedulerConfig
from seva.domain.db import transaction
from seva.domain.models import (
    ACTIVE_BOOKING_STATUSES,
    AssignmentState,
    Booking,
    BookingItem,
    BookingStatus,
    LocationType,
    ProgramCategory,
    Skill,
)
from seva.domain.repositories import (
    AssignmentRepository,
    BookingRepository,
    ProgramTypeRepository,
    StaffRepository,
)
from seva.errors import BusinessRuleViolation, NotFoundError, ValidationError
from seva.services.availability import busy_staff_ids
from seva.services.constraints import check_category_caps, check_staff_capacity, skill_counts

logger = logging.getLogger(__name__)

EXPIRE_LOCK_KEY = "housekeeping:expire-pending"


@dataclass
class BookingCreated:
    booking_id: int
    item_ids: List[int] = field(default_factory=list)


@dataclass
class ApprovalResult:
    booking_id: int
    confirmed: int


@dataclass
class SweepResult:
    skipped: bool
    expired: int = 0
    reason: Optional[str] = None


@dataclass
class ItemStaffing:
    item_id: int
    program: str
    category: ProgramCategory
    needed_path: int
    needed_kirtan: int
    assigned_path: int
    assigned_kirtan: int
    staff_ids: List[int] = field(default_factory=list)
    people_required: Optional[int] = None


def _validate_window(start: datetime, end: datetime) -> None:
    if start is None or end is None:
        raise ValidationError("Booking needs a start and an end")
    if end <= start:
        raise ValidationError(f"Booking end {end} must be after start {start}")


def _get_booking(session: Session, booking_id: int) -> Booking:
    booking = BookingRepository.get_with_items(session, booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    return booking


def create_booking(
    session: Session,
    start: datetime,
    end: datetime,
    program_type_ids: Sequence[int],
    title: str = "",
    location: LocationType = LocationType.GURDWARA,
    cfg: SchedulerConfig | None = None,
    clock=None,
    actor: ActorRole = ActorRole.SYSTEM,
) -> BookingCreated:
    """
    Create a PENDING booking with one item per program type.

    The venue-wide category caps and the roster's staffing capacity are
    checked against every active booking overlapping the window before
    anything is written.

    Raises:
        ValidationError: On an empty window, no programs, or unknown program types
        BusinessRuleViolation: If a category cap would be exceeded or the active
            roster could not staff the window
    """
    require(actor, "create_booking")
    cfg = cfg or SchedulerConfig()
    clock = clock or SystemClock()
    _validate_window(start, end)
    if not program_type_ids:
        raise ValidationError("At least one program must be selected.")

    with transaction(session, "create booking"):
        programs = {p.id: p for p in ProgramTypeRepository.get_many(session, set(program_type_ids))}
        missing = sorted(set(program_type_ids) - set(programs))
        if missing:
            raise ValidationError(f"Invalid program types: {missing}")

        existing = BookingRepository.get_overlapping(session, start, end)
        check_category_caps(
            existing,
            [programs[pid].category for pid in program_type_ids],
            kirtan_cap=cfg.kirtan_cap,
            path_cap=cfg.path_cap,
        )
        check_staff_capacity(existing, [programs[pid] for pid in program_type_ids], StaffRepository.get_active(session))

        booking = Booking(
            title=title,
            start=start,
            end=end,
            status=BookingStatus.PENDING,
            location=LocationType(location),
            created_at=clock.now(),
        )
        for pid in program_type_ids:
            booking.items.append(BookingItem(program_type=programs[pid]))
        session.add(booking)
        session.flush()
        created = BookingCreated(booking_id=booking.id, item_ids=[i.id for i in booking.items])

    logger.info("Created booking %s with %d item(s)", created.booking_id, len(created.item_ids))
    return created


def reschedule_booking(
    session: Session,
    booking_id: int,
    start: datetime,
    end: datetime,
    cfg: SchedulerConfig | None = None,
    actor: ActorRole = ActorRole.SYSTEM,
) -> None:
    """
    Move a booking to a new window.

    Category caps and staffing capacity are re-checked against the other
    bookings at the new time.
    Assignments that inherit the booking window move with it, so each of
    their staff must be free at the new time.

    Raises:
        NotFoundError: If the booking does not exist
        ValidationError: On an empty window
        BusinessRuleViolation: If a cap is exceeded, an assigned sevadar is busy,
            an own-window assignment would fall outside, or the booking is inactive
    """
    require(actor, "create_booking")
    cfg = cfg or SchedulerConfig()
    _validate_window(start, end)

    with transaction(session, f"reschedule booking {booking_id}"):
        booking = _get_booking(session, booking_id)
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            raise BusinessRuleViolation(
                f"Booking {booking_id} is {booking.status.value} and cannot be edited",
                reason="booking_inactive",
            )

        others = BookingRepository.get_overlapping(session, start, end, exclude_booking_id=booking.id)
        check_category_caps(
            others,
            [item.program_type.category for item in booking.items],
            kirtan_cap=cfg.kirtan_cap,
            path_cap=cfg.path_cap,
        )
        check_staff_capacity(others, [item.program_type for item in booking.items], StaffRepository.get_active(session))

        own_rows = [a.id for a in booking.assignments]
        busy = busy_staff_ids(session, start, end, exclude_assignment_ids=own_rows)
        for a in booking.assignments:
            if a.has_own_window:
                if a.start < start or a.end > end:
                    raise BusinessRuleViolation(
                        f"Assignment {a.id} has its own window {a.start} - {a.end} outside the new booking time",
                        reason="own_window_outside",
                    )
                continue
            if a.staff_id in busy:
                raise BusinessRuleViolation(
                    f"{a.staff.name} is busy at the new time",
                    reason="staff_busy",
                )
            a.start, a.end = start, end

        booking.start, booking.end = start, end
        session.flush()

    logger.info("Rescheduled booking %s to %s - %s", booking_id, start, end)


def _confirmed_clash(session: Session, booking: Booking) -> Optional[str]:
    """Describe the first CONFIRMED overlap approving this booking would create, if any."""
    promoting = [a for a in booking.assignments if a.state == AssignmentState.PROPOSED]
    promoting_ids = {a.id for a in promoting}
    for a in promoting:
        for other in AssignmentRepository.get_overlapping(session, a.start, a.end):
            if other.id == a.id or other.staff_id != a.staff_id:
                continue
            if other.state == AssignmentState.CONFIRMED or other.id in promoting_ids:
                return (
                    f"{a.staff.name} would be confirmed twice between "
                    f"{max(a.start, other.start)} and {min(a.end, other.end)}"
                )
    return None


def approve_booking(
    session: Session,
    booking_id: int,
    clock=None,
    actor: ActorRole = ActorRole.SYSTEM,
) -> ApprovalResult:
    """
    Approve a booking and lock in its proposed assignments.

    Raises:
        NotFoundError: If the booking does not exist
        BusinessRuleViolation: If the booking is cancelled/expired or a staff
            member would hold two overlapping confirmed assignments
    """
    require(actor, "approve")
    clock = clock or SystemClock()

    with transaction(session, f"approve booking {booking_id}"):
        booking = _get_booking(session, booking_id)
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            raise BusinessRuleViolation(
                f"Booking {booking_id} is {booking.status.value} and cannot be approved",
                reason="booking_inactive",
            )
        clash = _confirmed_clash(session, booking)
        if clash:
            raise BusinessRuleViolation(clash, reason="confirmed_overlap")

        confirmed = 0
        for a in booking.assignments:
            if a.state == AssignmentState.PROPOSED:
                a.state = AssignmentState.CONFIRMED
                confirmed += 1
        booking.status = BookingStatus.CONFIRMED
        booking.approved_at = clock.now()
        session.flush()

    logger.info("Approved booking %s; %d assignment(s) confirmed", booking_id, confirmed)
    return ApprovalResult(booking_id=booking_id, confirmed=confirmed)


def cancel_booking(session: Session, booking_id: int, actor: ActorRole = ActorRole.SYSTEM) -> None:
    """
    Cancel a booking. Its assignments are kept but stop blocking staff and earning credit.

    Raises:
        NotFoundError: If the booking does not exist
        BusinessRuleViolation: If the booking already expired
    """
    require(actor, "cancel")
    with transaction(session, f"cancel booking {booking_id}"):
        booking = BookingRepository.get_by_id(session, booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        if booking.status == BookingStatus.EXPIRED:
            raise BusinessRuleViolation(f"Booking {booking_id} already expired", reason="booking_inactive")
        booking.status = BookingStatus.CANCELLED
    logger.info("Cancelled booking %s", booking_id)


def expire_stale_pending(
    session: Session,
    lock_store,
    cfg: SchedulerConfig | None = None,
    clock=None,
    actor: ActorRole = ActorRole.SYSTEM,
) -> SweepResult:
    """
    Expire PENDING bookings older than the configured age.

    Several schedulers may fire at once; only the one that gets the lock
    sweeps, the others skip instead of waiting. The lock is always released.
    """
    require(actor, "expire")
    cfg = cfg or SchedulerConfig()
    clock = clock or SystemClock()

    if not lock_store.try_acquire(EXPIRE_LOCK_KEY, cfg.sweep_lock_ttl_seconds):
        logger.warning("Expire sweep skipped: another run is in progress")
        return SweepResult(skipped=True, reason="Another run is in progress")

    try:
        cutoff = clock.now() - timedelta(hours=cfg.pending_expiry_hours)
        with transaction(session, "expire pending bookings"):
            stale = BookingRepository.get_stale_pending(session, cutoff)
            for booking in stale:
                booking.status = BookingStatus.EXPIRED
            expired = len(stale)
    finally:
        lock_store.release(EXPIRE_LOCK_KEY)

    logger.info("Expire sweep: %d booking(s) expired", expired)
    return SweepResult(skipped=False, expired=expired)


def booking_staffing(session: Session, booking_id: int) -> List[ItemStaffing]:
    """Required vs. assigned PATH/KIRTAN counts for each item of a booking."""
    booking = _get_booking(session, booking_id)
    rows = []
    for item in booking.items:
        pt = item.program_type
        counts = skill_counts(a.staff for a in item.assignments)
        rows.append(
            ItemStaffing(
                item_id=item.id,
                program=pt.name,
                category=ProgramCategory(pt.category),
                needed_path=pt.minimum_for(Skill.PATH),
                needed_kirtan=pt.minimum_for(Skill.KIRTAN),
                assigned_path=counts[Skill.PATH],
                assigned_kirtan=counts[Skill.KIRTAN],
                staff_ids=[a.staff_id for a in item.assignments],
                people_required=pt.people_required,
            )
        )
    return rows
