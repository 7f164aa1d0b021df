"""Assignment engine and the manual change protocol."""

from .auto_assign import AssignmentEngine, AssignResult, Shortage, auto_assign
from .overrides import assign_staff, override, replacement_candidates, swap

__all__ = [
    "AssignmentEngine",
    "AssignResult",
    "Shortage",
    "auto_assign",
    "assign_staff",
    "override",
    "replacement_candidates",
    "swap",
]
