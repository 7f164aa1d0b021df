"""Domain models and data access layer."""

from .models import (
    Assignment,
    AssignmentState,
    Base,
    Booking,
    BookingItem,
    BookingStatus,
    Jatha,
    LocationType,
    Lock,
    ProgramCategory,
    ProgramType,
    Skill,
    Staff,
)
from .repositories import (
    AssignmentRepository,
    BookingItemRepository,
    BookingRepository,
    ProgramTypeRepository,
    StaffRepository,
)

__all__ = [
    "Assignment",
    "AssignmentState",
    "Base",
    "Booking",
    "BookingItem",
    "BookingStatus",
    "Jatha",
    "LocationType",
    "Lock",
    "ProgramCategory",
    "ProgramType",
    "Skill",
    "Staff",
    "AssignmentRepository",
    "BookingItemRepository",
    "BookingRepository",
    "ProgramTypeRepository",
    "StaffRepository",
]
