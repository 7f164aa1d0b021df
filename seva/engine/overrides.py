"""Manual changes to assignments: swap, override, placement, and replacement candidates.

Every mutation re-validates the rules auto-assign obeys and runs in one
transaction. The store's uniqueness constraint on (item, staff, window) has
the last word: if a concurrent edit wins the race, the commit fails and the
caller gets a retryable ConcurrencyConflict.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from seva.access import ActorRole, require
from seva.clock import SystemClock
from seva.config import SchedulerConfig
from seva.domain.db import transaction
from seva.domain.models import (
    ACTIVE_BOOKING_STATUSES,
    Assignment,
    AssignmentState,
    BookingItem,
    BookingStatus,
    Jatha,
    ProgramCategory,
    Skill,
    Staff,
)
from seva.domain.repositories import (
    AssignmentRepository,
    BookingItemRepository,
    StaffRepository,
)
from seva.engine.auto_assign import CreatedAssignment
from seva.errors import BusinessRuleViolation, NotFoundError, ValidationError
from seva.services.availability import busy_staff_ids
from seva.services.constraints import check_jatha_fit, check_skill_feasibility, item_jatha
from seva.services.fairness import credit_snapshot
from seva.services.ranking import NO_CREDITS, ranking_key

logger = logging.getLogger(__name__)

CONFIRMED_WARNING = "Booking already confirmed; change will affect confirmed schedule."


@dataclass
class SwapResult:
    a_id: int
    b_id: int
    a_staff_id: int
    b_staff_id: int


@dataclass
class OverrideResult:
    assignment_id: int
    booking_item_id: int
    from_staff_id: int
    to_staff_id: int
    warning: Optional[str] = None


@dataclass
class Candidate:
    staff_id: int
    name: str
    jatha: Optional[Jatha]
    skills: List[Skill] = field(default_factory=list)
    credits_window: int = 0
    credits_lifetime: int = 0
    is_current: bool = False


def _ensure_booking_active(item: BookingItem) -> None:
    if item.booking.status not in ACTIVE_BOOKING_STATUSES:
        raise BusinessRuleViolation(
            f"Booking {item.booking_id} is {item.booking.status.value}; its assignments are frozen",
            reason="booking_inactive",
        )


def _ensure_free(session: Session, staff: Staff, start: datetime, end: datetime, exclude: Iterable[int]) -> None:
    if staff.id in busy_staff_ids(session, start, end, exclude_assignment_ids=exclude):
        raise BusinessRuleViolation(
            f"{staff.name} is busy between {start} and {end}",
            reason="staff_busy",
        )


def _ensure_not_on_item(item: BookingItem, staff: Staff, exclude: Iterable[int]) -> None:
    excluded = set(exclude)
    if any(a.staff_id == staff.id and a.id not in excluded for a in item.assignments):
        raise BusinessRuleViolation(
            f"{staff.name} is already assigned to this item",
            reason="duplicate_assignment",
        )


def _ensure_item_feasible(item: BookingItem, replacements: Dict[int, Staff]) -> None:
    """Re-check skill minimums as if assignment rows already carried their new staff."""
    before = [a.staff for a in item.assignments]
    after = [replacements.get(a.id, a.staff) for a in item.assignments]
    check_skill_feasibility(item.program_type, before, after, context=f"(item {item.id})")
    if item.program_type.requires_full_jatha:
        # A rotation member is only ever replaced from the same jatha
        for a in item.assignments:
            incoming = replacements.get(a.id)
            if incoming is not None and incoming.jatha != a.staff.jatha:
                check_jatha_fit(incoming, a.staff.jatha)


def swap(
    session: Session,
    a_id: int,
    b_id: int,
    booking_id: Optional[int] = None,
    actor: ActorRole = ActorRole.SYSTEM,
) -> SwapResult:
    """
    Exchange the staff of two existing assignments.

    Preconditions are checked in order and the first failure wins: both
    assignments exist; with `booking_id`, both belong to that booking; with
    `booking_id` both are still PROPOSED, without it both programs share a
    category; and they are not the same (item, start, end) slot, which
    needs a per-row override instead.

    Raises:
        ValidationError: If a_id == b_id
        NotFoundError: If either assignment is missing
        BusinessRuleViolation: If a precondition, availability or skill minimum fails
        ConcurrencyConflict: If a concurrent edit took one of the slots (retryable)
    """
    require(actor, "swap")
    if a_id == b_id:
        raise ValidationError("Provide two different assignment ids")

    with transaction(session, f"swap {a_id}<->{b_id}"):
        a = AssignmentRepository.get_by_id(session, a_id)
        b = AssignmentRepository.get_by_id(session, b_id)
        if a is None:
            raise NotFoundError("Assignment", a_id)
        if b is None:
            raise NotFoundError("Assignment", b_id)

        if booking_id is not None:
            if a.booking_id != booking_id or b.booking_id != booking_id:
                raise BusinessRuleViolation(
                    f"Both assignments must belong to booking {booking_id}",
                    reason="booking_mismatch",
                )
            if a.state != AssignmentState.PROPOSED or b.state != AssignmentState.PROPOSED:
                raise BusinessRuleViolation(
                    "Only proposed assignments can be swapped within a booking",
                    reason="state_not_proposed",
                )
        else:
            cat_a = ProgramCategory(a.booking_item.program_type.category)
            cat_b = ProgramCategory(b.booking_item.program_type.category)
            if cat_a != cat_b:
                raise BusinessRuleViolation(
                    "Assignments must have the same program category",
                    reason="category_mismatch",
                )

        if (a.booking_item_id, a.start, a.end) == (b.booking_item_id, b.start, b.end):
            raise BusinessRuleViolation(
                "Both assignments are the same item and time slot; use per-row override instead",
                reason="use_override",
            )

        _ensure_booking_active(a.booking_item)
        _ensure_booking_active(b.booking_item)

        staff_a, staff_b = a.staff, b.staff
        if staff_a.id != staff_b.id:
            rows = (a.id, b.id)
            _ensure_free(session, staff_b, a.start, a.end, exclude=rows)
            _ensure_free(session, staff_a, b.start, b.end, exclude=rows)
            _ensure_not_on_item(a.booking_item, staff_b, exclude=rows)
            _ensure_not_on_item(b.booking_item, staff_a, exclude=rows)
            replacements = {a.id: staff_b, b.id: staff_a}
            _ensure_item_feasible(a.booking_item, replacements)
            if b.booking_item_id != a.booking_item_id:
                _ensure_item_feasible(b.booking_item, replacements)

            a.staff, b.staff = staff_b, staff_a
            session.flush()

        result = SwapResult(a_id=a.id, b_id=b.id, a_staff_id=staff_b.id, b_staff_id=staff_a.id)

    logger.info("Swapped staff on assignments %s and %s", a_id, b_id)
    return result


def override(
    session: Session,
    booking_item_id: int,
    from_staff_id: int,
    to_staff_id: int,
    booking_id: Optional[int] = None,
    actor: ActorRole = ActorRole.SYSTEM,
) -> OverrideResult:
    """
    Replace one staff member with another on a single item.

    Raises:
        ValidationError: If from and to are the same person
        NotFoundError: If the item, the from-assignment or the to-staff is missing
        BusinessRuleViolation: If to-staff is inactive, already on the item, busy,
            or the replacement would drop a skill below the program minimum
        ConcurrencyConflict: If a concurrent edit took the slot (retryable)
    """
    require(actor, "override")
    if from_staff_id == to_staff_id:
        raise ValidationError("from and to staff must differ")

    with transaction(session, f"override item {booking_item_id}"):
        item = BookingItemRepository.get_by_id(session, booking_item_id)
        if item is None or (booking_id is not None and item.booking_id != booking_id):
            raise NotFoundError("BookingItem", booking_item_id)
        existing = AssignmentRepository.find_on_item(session, booking_item_id, from_staff_id)
        if existing is None:
            raise NotFoundError("Assignment", f"of staff {from_staff_id} on item {booking_item_id}")
        to_staff = StaffRepository.get_by_id(session, to_staff_id)
        if to_staff is None:
            raise NotFoundError("Staff", to_staff_id)

        _ensure_booking_active(item)
        if not to_staff.is_active:
            raise BusinessRuleViolation(f"{to_staff.name} is not active", reason="staff_inactive")
        _ensure_not_on_item(item, to_staff, exclude=())
        _ensure_free(session, to_staff, existing.start, existing.end, exclude=(existing.id,))
        _ensure_item_feasible(item, {existing.id: to_staff})

        existing.staff = to_staff
        session.flush()

        confirmed = (
            existing.state == AssignmentState.CONFIRMED or item.booking.status == BookingStatus.CONFIRMED
        )
        result = OverrideResult(
            assignment_id=existing.id,
            booking_item_id=booking_item_id,
            from_staff_id=from_staff_id,
            to_staff_id=to_staff_id,
            warning=CONFIRMED_WARNING if confirmed else None,
        )

    logger.info("Item %s: staff %s replaced by %s", booking_item_id, from_staff_id, to_staff_id)
    return result


def assign_staff(
    session: Session,
    booking_item_id: int,
    staff_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    clock=None,
    actor: ActorRole = ActorRole.SYSTEM,
) -> CreatedAssignment:
    """
    Manually place one staff member on an item as a PROPOSED assignment.

    With `start`/`end` the assignment gets its own window inside the
    booking (e.g. one rotation of a continuous program); otherwise it
    inherits the booking window.

    Raises:
        ValidationError: If only one of start/end is given, or the window is empty
        NotFoundError: If the item or staff member is missing
        BusinessRuleViolation: If the staff member is inactive, already on the item, busy,
            or outside the jatha a rotation item is drawn from
    """
    require(actor, "assign")
    if (start is None) != (end is None):
        raise ValidationError("Give both start and end for an own window, or neither")
    if start is not None and end <= start:
        raise ValidationError(f"Window end {end} must be after start {start}")
    clock = clock or SystemClock()

    with transaction(session, f"assign staff {staff_id} to item {booking_item_id}"):
        item = BookingItemRepository.get_by_id(session, booking_item_id)
        if item is None:
            raise NotFoundError("BookingItem", booking_item_id)
        staff = StaffRepository.get_by_id(session, staff_id)
        if staff is None:
            raise NotFoundError("Staff", staff_id)

        _ensure_booking_active(item)
        if not staff.is_active:
            raise BusinessRuleViolation(f"{staff.name} is not active", reason="staff_inactive")
        _ensure_not_on_item(item, staff, exclude=())
        if item.program_type.requires_full_jatha:
            check_jatha_fit(staff, item_jatha(item))

        booking = item.booking
        own_window = start is not None
        win_start, win_end = (start, end) if own_window else (booking.start, booking.end)
        _ensure_free(session, staff, win_start, win_end, exclude=())

        assignment = AssignmentRepository.create(
            session,
            Assignment(
                booking=booking,
                booking_item=item,
                staff=staff,
                start=win_start,
                end=win_end,
                has_own_window=own_window,
                state=AssignmentState.PROPOSED,
                created_at=clock.now(),
            ),
        )
        created = CreatedAssignment(
            assignment_id=assignment.id,
            booking_item_id=item.id,
            staff_id=staff.id,
            role=None,
            start=win_start,
            end=win_end,
        )

    logger.info("Placed staff %s on item %s", staff_id, booking_item_id)
    return created


def replacement_candidates(
    session: Session,
    assignment_id: int,
    cfg: SchedulerConfig | None = None,
    clock=None,
) -> List[Candidate]:
    """
    List who could take over an assignment, fairness order, current assignee included.

    Candidates are active, free in the assignment's window and not already
    on the same item. Read-only.
    """
    cfg = cfg or SchedulerConfig()
    clock = clock or SystemClock()
    assignment = AssignmentRepository.get_by_id(session, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment", assignment_id)

    busy = busy_staff_ids(session, assignment.start, assignment.end, exclude_assignment_ids=(assignment.id,))
    on_item = {a.staff_id for a in assignment.booking_item.assignments if a.id != assignment.id}
    pool = [
        s for s in StaffRepository.get_active(session)
        if s.id == assignment.staff_id or (s.id not in busy and s.id not in on_item)
    ]
    credits = credit_snapshot(session, [s.id for s in pool], clock.now(), cfg.fairness_window_weeks)
    pool.sort(key=lambda s: ranking_key(s, credits))

    return [
        Candidate(
            staff_id=s.id,
            name=s.name,
            jatha=Jatha(s.jatha) if s.jatha else None,
            skills=sorted(s.skill_set, key=lambda k: k.value),
            credits_window=credits.get(s.id, NO_CREDITS).window,
            credits_lifetime=credits.get(s.id, NO_CREDITS).lifetime,
            is_current=s.id == assignment.staff_id,
        )
        for s in pool
    ]
