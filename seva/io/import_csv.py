"""CSV import utilities to load staff and the program catalog into the database."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd
from sqlalchemy.orm import Session

from seva.domain.models import Jatha, ProgramCategory, ProgramType, Staff, format_skills, parse_skills
from seva.domain.repositories import ProgramTypeRepository, StaffRepository

logger = logging.getLogger(__name__)

TRUE_VALUES = ["TRUE", "T", "1", "YES", "Y"]


def _flag(value, default: bool) -> bool:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return default
    return str(value).strip().upper() in TRUE_VALUES


def _text(value) -> str | None:
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def _int(value, default):
    if value is None or pd.isna(value) or str(value).strip() == "":
        return default
    return int(value)


def import_staff_csv(session: Session, csv_path: str | Path) -> int:
    """
    Import staff from CSV into database.

    Expected columns: name, skills (e.g. "PATH;KIRTAN"), and optionally
    id, jatha, email, phone, is_active.

    Args:
        session: Database session
        csv_path: Path to staff CSV

    Returns:
        Number of staff imported
    """
    df = pd.read_csv(csv_path, dtype=str)

    # Normalize column names
    df.columns = df.columns.str.lower().str.strip()
    if "name" not in df.columns or "skills" not in df.columns:
        raise ValueError(f"{csv_path}: staff CSV needs 'name' and 'skills' columns")

    staff = []
    for _, row in df.iterrows():
        jatha = _text(row.get("jatha"))
        member = Staff(
            name=str(row["name"]).strip(),
            skills=format_skills(parse_skills(_text(row.get("skills")))),
            jatha=Jatha(jatha.upper()) if jatha else None,
            email=_text(row.get("email")),
            phone=_text(row.get("phone")),
            is_active=_flag(row.get("is_active"), default=True),
        )
        if _text(row.get("id")):
            member.id = int(row["id"])
        staff.append(member)

    StaffRepository.bulk_create(session, staff)
    logger.info("Imported %d staff from %s", len(staff), csv_path)
    return len(staff)


def import_program_types_csv(session: Session, csv_path: str | Path) -> int:
    """
    Import the program catalog from CSV into database.

    Expected columns: name, category, min_pathers, min_kirtanis, and
    optionally id, duration_minutes, comp_weight, people_required,
    requires_full_jatha.

    Returns:
        Number of program types imported
    """
    df = pd.read_csv(csv_path, dtype=str)
    df.columns = df.columns.str.lower().str.strip()
    if "name" not in df.columns:
        raise ValueError(f"{csv_path}: program CSV needs a 'name' column")

    if "category" in df.columns:
        df["category"] = df["category"].fillna("OTHER").str.upper().str.strip()

    programs = []
    for _, row in df.iterrows():
        program = ProgramType(
            name=str(row["name"]).strip(),
            category=ProgramCategory(row.get("category") or "OTHER"),
            min_pathers=_int(row.get("min_pathers"), 0),
            min_kirtanis=_int(row.get("min_kirtanis"), 0),
            duration_minutes=_int(row.get("duration_minutes"), 60),
            comp_weight=_int(row.get("comp_weight"), 1),
            people_required=_int(row.get("people_required"), None),
            requires_full_jatha=_flag(row.get("requires_full_jatha"), default=False),
        )
        if _text(row.get("id")):
            program.id = int(row["id"])
        programs.append(program)

    ProgramTypeRepository.bulk_create(session, programs)
    logger.info("Imported %d program types from %s", len(programs), csv_path)
    return len(programs)
