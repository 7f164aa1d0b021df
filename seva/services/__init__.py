"""Services for staffing rules, fairness and the booking lifecycle."""

from .availability import AvailabilityIndex, BusyOverlay, busy_staff_ids
from .bookings import (
    approve_booking,
    booking_staffing,
    cancel_booking,
    create_booking,
    expire_stale_pending,
    reschedule_booking,
)
from .constraints import check_category_caps, check_skill_feasibility, unmet_needs
from .fairness import build_report, credit_snapshot
from .ranking import rank_candidates

__all__ = [
    "AvailabilityIndex",
    "BusyOverlay",
    "busy_staff_ids",
    "approve_booking",
    "booking_staffing",
    "cancel_booking",
    "create_booking",
    "expire_stale_pending",
    "reschedule_booking",
    "check_category_caps",
    "check_skill_feasibility",
    "unmet_needs",
    "build_report",
    "credit_snapshot",
    "rank_candidates",
]
