"""Assignment engine: greedy, fairness-ordered auto-assignment for one booking."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple, Union

from sqlalchemy.orm import Session

from seva.access import ActorRole, require
from seva.clock import SystemClock
from seva.config import SchedulerConfig
from seva.domain.db import transaction
from seva.domain.models import (
    ACTIVE_BOOKING_STATUSES,
    FLEX,
    ROLE_ORDER,
    Assignment,
    AssignmentState,
    Booking,
    BookingItem,
    Jatha,
    ProgramCategory,
    Skill,
    Staff,
)
from seva.domain.repositories import AssignmentRepository, BookingRepository, StaffRepository
from seva.errors import BusinessRuleViolation, NotFoundError
from seva.notify import LoggingNotifier, send_assignment_notifications
from seva.services.availability import AvailabilityIndex, BusyOverlay
from seva.services.constraints import eligible_jathas, item_jatha, unmet_needs
from seva.services.fairness import Credits, credit_snapshot
from seva.services.ranking import rank_candidates, rank_jathas

logger = logging.getLogger(__name__)

# Who gets served first when items of one booking share the pool
CATEGORY_ORDER = {
    ProgramCategory.PATH: 0,
    ProgramCategory.KIRTAN: 1,
    ProgramCategory.OTHER: 2,
}

# Role minimums first, then extra headcount
FILL_ORDER = ROLE_ORDER + (FLEX,)


@dataclass
class CreatedAssignment:
    assignment_id: int
    booking_item_id: int
    staff_id: int
    role: Optional[str]  # PATH, KIRTAN or FLEX; None for manual placements
    start: datetime
    end: datetime


@dataclass
class Shortage:
    item_id: int
    role: str  # PATH, KIRTAN or FLEX
    needed: int


@dataclass
class AssignResult:
    booking_id: int
    created: List[CreatedAssignment] = field(default_factory=list)
    shortages: List[Shortage] = field(default_factory=list)

    @property
    def fully_staffed(self) -> bool:
        return not self.shortages


def _role_name(role: Union[Skill, str]) -> str:
    return role.value if isinstance(role, Skill) else role


def processing_order(items: List[BookingItem]) -> List[BookingItem]:
    """PATH items first, then KIRTAN, then OTHER; creation order within a category."""
    return sorted(items, key=lambda i: (CATEGORY_ORDER[ProgramCategory(i.program_type.category)], i.id))


class _Pass:
    """State of one planning pass over a booking."""

    def __init__(self, booking: Booking, index: AvailabilityIndex, pool: List[Staff], credits: Dict[int, Credits]):
        self.booking = booking
        self.index = index
        self.pool = pool
        self.credits = credits
        self.overlay = BusyOverlay()
        self.used: Set[Tuple[int, int]] = set()  # (item_id, staff_id)
        self.staff_by_id = {s.id: s for s in pool}

    def busy(self) -> Set[int]:
        return self.index.busy_staff_ids(self.booking.start, self.booking.end, self.overlay)

    def on_item(self, item: BookingItem) -> Set[int]:
        ids = {a.staff_id for a in item.assignments}
        ids.update(sid for iid, sid in self.used if iid == item.id)
        return ids


class AssignmentEngine:
    """
    Auto-assigns staff to the unmet roles of a booking's items.

    Items are served in a fixed order (see processing_order), roles within an
    item PATH then KIRTAN, then FLEX up to the program's headcount. A
    rotation item draws every role from one jatha. Each unmet unit takes the head of the fairness
    ranking over staff who are still free. When the pool runs dry the true
    remaining gap for that role is reported as a shortage; shortages are a
    normal outcome, not an error.
    """

    def __init__(self, cfg: SchedulerConfig | None = None, clock=None, notifier=None):
        self.cfg = cfg or SchedulerConfig()
        self.clock = clock or SystemClock()
        self.notifier = notifier if notifier is not None else LoggingNotifier()

    def run(self, session: Session, booking_id: int, actor: ActorRole = ActorRole.SYSTEM) -> AssignResult:
        """
        Auto-assign one booking in a single transaction, then notify.

        Raises:
            NotFoundError: If the booking does not exist
            BusinessRuleViolation: If the booking is cancelled or expired
            ConcurrencyConflict: If a concurrent edit claimed the same slot
            StorageError: On any other persistence failure (nothing is kept)
        """
        require(actor, "auto_assign")
        with transaction(session, f"auto-assign booking {booking_id}"):
            booking = BookingRepository.get_with_items(session, booking_id)
            if booking is None:
                raise NotFoundError("Booking", booking_id)
            if booking.status not in ACTIVE_BOOKING_STATUSES:
                raise BusinessRuleViolation(
                    f"Booking {booking_id} is {booking.status.value}; only pending or confirmed bookings are staffed",
                    reason="booking_inactive",
                )
            result = self.plan(session, booking)

        logger.info(
            "Auto-assign booking %s: %d created, %d shortage(s)",
            booking_id, len(result.created), len(result.shortages),
        )
        for s in result.shortages:
            logger.warning("Booking %s item %s short %d %s", booking_id, s.item_id, s.needed, s.role)
        send_assignment_notifications(self.notifier, booking_id, result.created)
        return result

    def plan(self, session: Session, booking: Booking) -> AssignResult:
        """Create PROPOSED assignments for a loaded booking. Caller owns the transaction."""
        pool = StaffRepository.get_active(session)
        credits = credit_snapshot(
            session, [s.id for s in pool], self.clock.now(), self.cfg.fairness_window_weeks
        )
        state = _Pass(booking, AvailabilityIndex.load(session, booking.start, booking.end), pool, credits)
        result = AssignResult(booking_id=booking.id)

        for item in processing_order(list(booking.items)):
            if unmet_needs(item).total == 0:
                continue
            candidates = state.pool
            if item.program_type.requires_full_jatha:
                candidates = self._jatha_pool(state, item)
                if candidates is None:
                    needs = unmet_needs(item)
                    for role in FILL_ORDER:
                        if needs.for_role(role) > 0:
                            result.shortages.append(Shortage(item.id, _role_name(role), needs.for_role(role)))
                    continue
            for role in FILL_ORDER:
                # Recomputed per role so a dual-skilled pick for PATH also counts for KIRTAN
                needed = unmet_needs(item).for_role(role)
                if needed > 0:
                    self._fill(session, state, item, role, needed, candidates, result)
        return result

    def _fill(self, session, state: _Pass, item, role, needed: int, pool: List[Staff], result: AssignResult):
        for unit in range(needed):
            ranked = rank_candidates(pool, role, state.busy(), state.on_item(item), state.credits)
            if not ranked:
                result.shortages.append(Shortage(item_id=item.id, role=_role_name(role), needed=needed - unit))
                return
            result.created.append(self._place(session, state, item, state.staff_by_id[ranked[0]], role))

    def _jatha_pool(self, state: _Pass, item: BookingItem) -> Optional[List[Staff]]:
        """Members of the one jatha a rotation item draws all its roles from; None if no jatha can serve it."""
        pinned = item_jatha(item)
        if pinned is not None:
            # Topping up an item already drawn from a jatha stays within it
            return [s for s in state.pool if s.jatha is not None and Jatha(s.jatha) == pinned]

        needs = unmet_needs(item)
        roles = [r for r in ROLE_ORDER if needs.for_role(r) > 0]
        unavailable = state.busy() | state.on_item(item)
        groups = eligible_jathas(state.pool, roles, unavailable, self.cfg.jatha_size)
        if not groups:
            logger.info("No full jatha free for item %s", item.id)
            return None
        tag = rank_jathas(groups, state.credits)[0]
        logger.debug("Item %s draws from jatha %s", item.id, tag.value)
        return groups[tag]

    def _place(self, session, state: _Pass, item: BookingItem, staff: Staff, role) -> CreatedAssignment:
        booking = state.booking
        assignment = Assignment(
            booking=booking,
            booking_item=item,
            staff=staff,
            start=booking.start,
            end=booking.end,
            has_own_window=False,
            state=AssignmentState.PROPOSED,
            created_at=self.clock.now(),
        )
        AssignmentRepository.create(session, assignment)
        state.overlay.add(staff.id, assignment.start, assignment.end)
        state.used.add((item.id, staff.id))
        return CreatedAssignment(
            assignment_id=assignment.id,
            booking_item_id=item.id,
            staff_id=staff.id,
            role=_role_name(role),
            start=assignment.start,
            end=assignment.end,
        )


def auto_assign(
    session: Session,
    booking_id: int,
    cfg: SchedulerConfig | None = None,
    clock=None,
    notifier=None,
    actor: ActorRole = ActorRole.SYSTEM,
) -> AssignResult:
    """Convenience wrapper around AssignmentEngine.run."""
    return AssignmentEngine(cfg, clock, notifier).run(session, booking_id, actor)
