"""Fairness credit aggregation for the ranker and for reporting.

Credit is earned only for work that is locked in: CONFIRMED assignments
whose booking is still PENDING or CONFIRMED. Each assignment is worth its
program's comp_weight. Totals are recomputed from history on every call
rather than maintained incrementally, so edits to old bookings never drift.
Nothing here writes or locks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
from sqlalchemy.orm import Session

from seva.clock import SystemClock
from seva.domain.models import Jatha, ProgramCategory, ProgramType, Skill, Staff
from seva.domain.repositories import AssignmentRepository, StaffRepository
from seva.errors import ValidationError

DEFAULT_WINDOW_WEEKS = 8

CREDIT_COLUMNS = ["staff_id", "when", "program_id", "program_name", "category", "weight"]


@dataclass(frozen=True)
class Credits:
    window: int
    lifetime: int


@dataclass
class ProgramBreakdown:
    program_id: int
    name: str
    category: ProgramCategory
    weight: int
    count_lifetime: int = 0
    credits_lifetime: int = 0
    count_window: int = 0
    credits_window: int = 0


@dataclass
class StaffFairnessRow:
    staff_id: int
    name: str
    jatha: Optional[Jatha]
    skills: List[Skill]
    last_assigned_at: Optional[datetime] = None
    credits_lifetime: int = 0
    credits_window: int = 0
    programs: List[ProgramBreakdown] = field(default_factory=list)


@dataclass
class FairnessReport:
    rows: List[StaffFairnessRow]
    window_start: datetime
    window_end: datetime


def fairness_window(now: datetime, window_weeks: int = DEFAULT_WINDOW_WEEKS) -> Tuple[datetime, datetime]:
    """
    Rolling window of whole Monday-start weeks ending with the current week.

    Returns:
        (window_start, window_end), both inclusive
    """
    if isinstance(window_weeks, bool) or not isinstance(window_weeks, int) or window_weeks <= 0:
        raise ValidationError(f"window_weeks must be a positive integer, got {window_weeks!r}")
    week_start = datetime(now.year, now.month, now.day) - timedelta(days=now.weekday())
    window_end = week_start + timedelta(weeks=1) - timedelta(microseconds=1)
    window_start = week_start - timedelta(weeks=window_weeks - 1)
    return window_start, window_end


def _weight(program: ProgramType) -> int:
    # Zero is a valid weight; only a missing one falls back to 1
    return 1 if program.comp_weight is None else int(program.comp_weight)


def load_credit_frame(session: Session, staff_ids: Optional[Iterable[int]] = None) -> pd.DataFrame:
    """Load credit-earning assignments as one row per assignment."""
    records = [
        {
            "staff_id": a.staff_id,
            "when": a.start,
            "program_id": a.booking_item.program_type.id,
            "program_name": a.booking_item.program_type.name,
            "category": ProgramCategory(a.booking_item.program_type.category),
            "weight": _weight(a.booking_item.program_type),
        }
        for a in AssignmentRepository.get_credit_history(session, staff_ids)
    ]
    return pd.DataFrame.from_records(records, columns=CREDIT_COLUMNS)


def _mark_window(df: pd.DataFrame, window_start: datetime, window_end: datetime) -> pd.DataFrame:
    df = df.copy()
    df["when"] = pd.to_datetime(df["when"])
    df["in_window"] = df["when"].between(window_start, window_end, inclusive="both")
    df["window_weight"] = df["weight"].where(df["in_window"], 0)
    return df


def credit_snapshot(
    session: Session,
    staff_ids: Iterable[int],
    now: Optional[datetime] = None,
    window_weeks: int = DEFAULT_WINDOW_WEEKS,
) -> Dict[int, Credits]:
    """
    Credits per staff member as of `now`, for the ranker.

    Staff without any credit-earning history get zero credits.
    """
    staff_ids = list(staff_ids)
    now = now or SystemClock().now()
    window_start, window_end = fairness_window(now, window_weeks)
    snapshot = {sid: Credits(window=0, lifetime=0) for sid in staff_ids}
    df = load_credit_frame(session, staff_ids)
    if df.empty:
        return snapshot

    df = _mark_window(df, window_start, window_end)
    totals = df.groupby("staff_id").agg(lifetime=("weight", "sum"), window=("window_weight", "sum"))
    for sid, row in totals.iterrows():
        snapshot[int(sid)] = Credits(window=int(row["window"]), lifetime=int(row["lifetime"]))
    return snapshot


def _matches_filters(s: Staff, skill: Optional[Skill], jatha: Optional[Jatha], name: Optional[str]) -> bool:
    if skill is not None and not s.has_skill(skill):
        return False
    if jatha is not None and s.jatha != Jatha(jatha):
        return False
    if name and name.strip().lower() not in s.name.lower():
        return False
    return True


def build_report(
    session: Session,
    window_weeks: int = DEFAULT_WINDOW_WEEKS,
    skill: Optional[Skill] = None,
    jatha: Optional[Jatha] = None,
    name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FairnessReport:
    """
    Build the per-staff fairness report.

    Args:
        session: Database session
        window_weeks: Whole weeks in the rolling window (current week included)
        skill: Only staff holding this skill
        jatha: Only staff in this jatha
        name: Case-insensitive substring of the staff name
        now: Reference instant (defaults to the system clock)

    Returns:
        FairnessReport with rows heaviest first by window credit, then lifetime
    """
    now = now or SystemClock().now()
    window_start, window_end = fairness_window(now, window_weeks)
    skill = Skill(skill) if skill else None
    jatha = Jatha(jatha) if jatha else None

    staff = [s for s in StaffRepository.get_active(session) if _matches_filters(s, skill, jatha, name)]
    if not staff:
        return FairnessReport(rows=[], window_start=window_start, window_end=window_end)

    rows: Dict[int, StaffFairnessRow] = {
        s.id: StaffFairnessRow(
            staff_id=s.id,
            name=s.name,
            jatha=Jatha(s.jatha) if s.jatha else None,
            skills=sorted(s.skill_set, key=lambda k: k.value),
        )
        for s in staff
    }

    df = load_credit_frame(session, rows.keys())
    if not df.empty:
        df = _mark_window(df, window_start, window_end)

        totals = df.groupby("staff_id").agg(
            lifetime=("weight", "sum"),
            window=("window_weight", "sum"),
            last=("when", "max"),
        )
        for sid, t in totals.iterrows():
            row = rows[int(sid)]
            row.credits_lifetime = int(t["lifetime"])
            row.credits_window = int(t["window"])
            row.last_assigned_at = t["last"].to_pydatetime()

        per_program = df.groupby(["staff_id", "program_id"]).agg(
            name=("program_name", "first"),
            category=("category", "first"),
            weight=("weight", "first"),
            count_lifetime=("weight", "size"),
            credits_lifetime=("weight", "sum"),
            count_window=("in_window", "sum"),
            credits_window=("window_weight", "sum"),
        )
        for (sid, pid), p in per_program.iterrows():
            rows[int(sid)].programs.append(
                ProgramBreakdown(
                    program_id=int(pid),
                    name=str(p["name"]),
                    category=ProgramCategory(p["category"]),
                    weight=int(p["weight"]),
                    count_lifetime=int(p["count_lifetime"]),
                    credits_lifetime=int(p["credits_lifetime"]),
                    count_window=int(p["count_window"]),
                    credits_window=int(p["credits_window"]),
                )
            )

    for row in rows.values():
        row.programs.sort(key=lambda p: (-p.credits_window, -p.credits_lifetime, p.name))

    ordered = sorted(rows.values(), key=lambda r: (-r.credits_window, -r.credits_lifetime, r.name, r.staff_id))
    return FairnessReport(rows=ordered, window_start=window_start, window_end=window_end)


def report_to_frame(report: FairnessReport) -> pd.DataFrame:
    """Flatten a report to one row per staff member per program (for CSV export)."""
    records = []
    for row in report.rows:
        base = {
            "staff_id": row.staff_id,
            "name": row.name,
            "jatha": row.jatha.value if row.jatha else "",
            "skills": ";".join(s.value for s in row.skills),
            "credits_window": row.credits_window,
            "credits_lifetime": row.credits_lifetime,
            "last_assigned_at": row.last_assigned_at.isoformat() if row.last_assigned_at else "",
        }
        if not row.programs:
            records.append({**base, "program": "", "count_window": 0, "program_credits_window": 0,
                            "count_lifetime": 0, "program_credits_lifetime": 0})
            continue
        for p in row.programs:
            records.append({
                **base,
                "program": p.name,
                "count_window": p.count_window,
                "program_credits_window": p.credits_window,
                "count_lifetime": p.count_lifetime,
                "program_credits_lifetime": p.credits_lifetime,
            })
    return pd.DataFrame.from_records(records)
