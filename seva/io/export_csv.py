"""CSV export utilities for assignments and the fairness report."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pandas as pd
from sqlalchemy.orm import Session

from seva.domain.models import Assignment
from seva.domain.repositories import AssignmentRepository
from seva.services.fairness import FairnessReport, report_to_frame

logger = logging.getLogger(__name__)

ASSIGNMENT_COLUMNS = [
    "assignment_id", "booking_id", "booking_item_id", "program", "staff_id", "staff_name",
    "start", "end", "has_own_window", "state",
]


def export_assignments_csv(session: Session, csv_path: str | Path, booking_id: Optional[int] = None) -> int:
    """
    Export assignments to CSV.

    Args:
        session: Database session
        csv_path: Output path
        booking_id: Only this booking's assignments (optional)

    Returns:
        Number of assignments exported
    """
    if booking_id is not None:
        rows = AssignmentRepository.get_by_booking(session, booking_id)
    else:
        rows = session.query(Assignment).order_by(Assignment.start, Assignment.id).all()

    df = pd.DataFrame.from_records(
        [
            {
                "assignment_id": a.id,
                "booking_id": a.booking_id,
                "booking_item_id": a.booking_item_id,
                "program": a.booking_item.program_type.name,
                "staff_id": a.staff_id,
                "staff_name": a.staff.name,
                "start": a.start.isoformat(),
                "end": a.end.isoformat(),
                "has_own_window": bool(a.has_own_window),
                "state": a.state.value,
            }
            for a in rows
        ],
        columns=ASSIGNMENT_COLUMNS,
    )
    df.to_csv(csv_path, index=False)
    logger.info("Exported %d assignments to %s", len(df), csv_path)
    return len(df)


def export_fairness_csv(report: FairnessReport, csv_path: str | Path) -> int:
    """Write a fairness report as one row per staff member per program. Returns the row count."""
    df = report_to_frame(report)
    df.to_csv(csv_path, index=False)
    logger.info("Exported fairness report (%d rows) to %s", len(df), csv_path)
    return len(df)
