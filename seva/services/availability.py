"""Availability index: which staff are already committed in a time window."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from seva.domain.repositories import AssignmentRepository
from seva.errors import ValidationError


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap: [a_start, a_end) and [b_start, b_end)."""
    return a_start < b_end and a_end > b_start


class BusyOverlay:
    """Staff picked earlier in the same planning pass, with the windows they now occupy."""

    def __init__(self):
        self._entries: List[Tuple[int, datetime, datetime]] = []

    def add(self, staff_id: int, start: datetime, end: datetime) -> None:
        self._entries.append((staff_id, start, end))

    def busy_ids(self, start: datetime, end: datetime) -> Set[int]:
        return {sid for sid, s, e in self._entries if overlaps(s, e, start, end)}

    def __len__(self) -> int:
        return len(self._entries)


class AvailabilityIndex:
    """
    In-memory snapshot of live assignments around a planning window.

    Loaded once, then queried any number of times during a pass without going
    back to the database. Only assignments overlapping [start, end) are
    loaded, so queries must stay inside that window.
    """

    def __init__(self, intervals: Iterable[Tuple[int, int, datetime, datetime]], start: datetime, end: datetime):
        # (assignment_id, staff_id, start, end)
        self._intervals = list(intervals)
        self.start = start
        self.end = end

    @classmethod
    def load(cls, session: Session, start: datetime, end: datetime) -> "AvailabilityIndex":
        rows = AssignmentRepository.get_overlapping(session, start, end)
        return cls(((a.id, a.staff_id, a.start, a.end) for a in rows), start, end)

    def busy_staff_ids(
        self,
        start: datetime,
        end: datetime,
        overlay: Optional[BusyOverlay] = None,
        exclude_assignment_ids: Iterable[int] = (),
    ) -> Set[int]:
        if start < self.start or end > self.end:
            raise ValidationError(
                f"Query window {start} - {end} is outside the loaded window {self.start} - {self.end}"
            )
        excluded = set(exclude_assignment_ids)
        busy = {
            staff_id
            for assignment_id, staff_id, s, e in self._intervals
            if assignment_id not in excluded and overlaps(s, e, start, end)
        }
        if overlay is not None:
            busy |= overlay.busy_ids(start, end)
        return busy


def busy_staff_ids(
    session: Session,
    start: datetime,
    end: datetime,
    overlay: Optional[BusyOverlay] = None,
    exclude_assignment_ids: Iterable[int] = (),
) -> Set[int]:
    """
    Return ids of staff with a live assignment overlapping [start, end).

    Args:
        session: Database session
        start: Window start (inclusive)
        end: Window end (exclusive)
        overlay: Extra in-pass commitments to treat as busy
        exclude_assignment_ids: Assignments to ignore, e.g. rows being rewritten

    Returns:
        Set of staff ids
    """
    if end <= start:
        raise ValidationError(f"Window end {end} must be after start {start}")
    index = AvailabilityIndex.load(session, start, end)
    return index.busy_staff_ids(start, end, overlay, exclude_assignment_ids)
