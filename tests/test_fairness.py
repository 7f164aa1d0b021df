"""Tests for fairness credit aggregation and the fairness report."""

from datetime import datetime

import pytest

from conftest import NOW
from seva.domain.models import AssignmentState, BookingStatus, Jatha, ProgramCategory, Skill
from seva.errors import ValidationError
from seva.services.fairness import build_report, credit_snapshot, fairness_window, report_to_frame

CONFIRMED = AssignmentState.CONFIRMED


@pytest.fixture
def confirmed_on(make_booking, make_assignment):
    """Factory: a CONFIRMED assignment of `staff` on a booking of `program` at `when`."""

    def _make(staff, program, when, status=BookingStatus.CONFIRMED, state=CONFIRMED):
        booking = make_booking([program], start=when, status=status)
        return make_assignment(booking.items[0], staff, state=state)

    return _make


def test_window_covers_whole_monday_weeks():
    start, end = fairness_window(NOW, 8)
    assert start == datetime(2025, 1, 20)
    assert end == datetime(2025, 3, 16, 23, 59, 59, 999999)

    start, end = fairness_window(datetime(2025, 3, 10), 1)
    assert start == datetime(2025, 3, 10)


@pytest.mark.parametrize("weeks", [0, -1, 2.5, "8", True])
def test_window_weeks_must_be_positive_int(weeks):
    with pytest.raises(ValidationError):
        fairness_window(NOW, weeks)


def test_cancelled_booking_earns_nothing(make_staff, make_program, confirmed_on, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    kirtan = make_program("Asa di Var", ProgramCategory.KIRTAN, min_kirtanis=1, comp_weight=2)

    confirmed_on(amrit, kirtan, datetime(2025, 2, 1, 9))
    confirmed_on(amrit, kirtan, datetime(2025, 2, 15, 9), status=BookingStatus.PENDING)
    confirmed_on(amrit, kirtan, datetime(2025, 3, 15, 9))
    confirmed_on(amrit, kirtan, datetime(2025, 3, 1, 9), status=BookingStatus.CANCELLED)

    snapshot = credit_snapshot(db_session, [amrit.id], now=NOW, window_weeks=8)
    assert snapshot[amrit.id].window == 6
    assert snapshot[amrit.id].lifetime == 6


def test_zero_weight_program_earns_no_credit(make_staff, make_program, confirmed_on, db_session):
    amrit = make_staff("Amrit", "PATH")
    langar = make_program("Langar seva", comp_weight=0)
    path = make_program("Sehaj Path", ProgramCategory.PATH, comp_weight=1)

    confirmed_on(amrit, langar, datetime(2025, 3, 11, 9))
    snapshot = credit_snapshot(db_session, [amrit.id], now=NOW)
    assert (snapshot[amrit.id].window, snapshot[amrit.id].lifetime) == (0, 0)

    confirmed_on(amrit, path, datetime(2025, 3, 10, 9))
    snapshot = credit_snapshot(db_session, [amrit.id], now=NOW)
    assert (snapshot[amrit.id].window, snapshot[amrit.id].lifetime) == (1, 1)


def test_window_containment_is_closed(make_staff, make_program, confirmed_on, db_session):
    amrit = make_staff("Amrit", "PATH")
    path = make_program("Sehaj Path", ProgramCategory.PATH, min_pathers=1)

    confirmed_on(amrit, path, datetime(2025, 1, 20, 0, 0))  # first instant of the window
    confirmed_on(amrit, path, datetime(2025, 1, 19, 22, 0))  # just before
    confirmed_on(amrit, path, datetime(2025, 3, 16, 22, 0))  # last day of the current week
    confirmed_on(amrit, path, datetime(2025, 3, 20, 9, 0))  # next week

    snapshot = credit_snapshot(db_session, [amrit.id], now=NOW)
    assert snapshot[amrit.id].window == 2
    assert snapshot[amrit.id].lifetime == 4


def test_proposed_assignments_earn_nothing(make_staff, make_program, confirmed_on, db_session):
    amrit = make_staff("Amrit", "PATH")
    program = make_program()
    confirmed_on(amrit, program, datetime(2025, 3, 11, 9), state=AssignmentState.PROPOSED)

    assert credit_snapshot(db_session, [amrit.id], now=NOW)[amrit.id].lifetime == 0


def test_staff_without_history_get_zero(make_staff, db_session):
    amrit = make_staff("Amrit")
    snapshot = credit_snapshot(db_session, [amrit.id, 999], now=NOW)
    assert snapshot[amrit.id].window == 0
    assert snapshot[999].lifetime == 0


def test_report_rows_and_breakdown(make_staff, make_program, confirmed_on, db_session):
    amrit = make_staff("Amrit", "KIRTAN", jatha=Jatha.A)
    baljit = make_staff("Baljit", "PATH;KIRTAN")
    make_staff("Charan", "PATH")
    make_staff("Dormant", "PATH", is_active=False)
    kirtan = make_program("Asa di Var", ProgramCategory.KIRTAN, comp_weight=2)
    path = make_program("Sehaj Path", ProgramCategory.PATH)

    confirmed_on(amrit, kirtan, datetime(2024, 11, 2, 9))
    confirmed_on(baljit, kirtan, datetime(2025, 3, 1, 9))
    confirmed_on(baljit, path, datetime(2025, 3, 2, 9))
    confirmed_on(baljit, path, datetime(2025, 3, 8, 9))

    report = build_report(db_session, window_weeks=8, now=NOW)
    assert report.window_start == datetime(2025, 1, 20)
    assert [r.name for r in report.rows] == ["Baljit", "Amrit", "Charan"]

    top = report.rows[0]
    assert (top.credits_window, top.credits_lifetime) == (4, 4)
    assert top.last_assigned_at == datetime(2025, 3, 8, 9)
    assert [(p.name, p.count_window, p.credits_window) for p in top.programs] == [
        ("Asa di Var", 1, 2),
        ("Sehaj Path", 2, 2),
    ]
    assert top.skills == [Skill.KIRTAN, Skill.PATH]

    amrit_row = report.rows[1]
    assert (amrit_row.credits_window, amrit_row.credits_lifetime) == (0, 2)
    assert amrit_row.programs[0].count_lifetime == 1

    charan = report.rows[2]
    assert charan.last_assigned_at is None
    assert charan.programs == []


def test_report_filters(make_staff, db_session):
    make_staff("Amrit Kaur", "KIRTAN", jatha=Jatha.A)
    make_staff("Baljit Singh", "PATH", jatha=Jatha.B)
    make_staff("Amarjit", "PATH")

    assert [r.name for r in build_report(db_session, skill=Skill.PATH, now=NOW).rows] == ["Amarjit", "Baljit Singh"]
    assert [r.name for r in build_report(db_session, jatha=Jatha.A, now=NOW).rows] == ["Amrit Kaur"]
    assert [r.name for r in build_report(db_session, name="am", now=NOW).rows] == ["Amarjit", "Amrit Kaur"]
    assert build_report(db_session, name="zzz", now=NOW).rows == []


def test_report_rejects_bad_window(db_session):
    with pytest.raises(ValidationError):
        build_report(db_session, window_weeks=0, now=NOW)


def test_report_flattens_for_export(make_staff, make_program, confirmed_on, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    make_staff("Baljit", "PATH")
    confirmed_on(amrit, make_program("Asa di Var", ProgramCategory.KIRTAN), datetime(2025, 3, 1, 9))

    df = report_to_frame(build_report(db_session, now=NOW))
    assert len(df) == 2
    assert list(df["name"]) == ["Amrit", "Baljit"]
    assert df.iloc[0]["program"] == "Asa di Var"
    assert df.iloc[1]["program"] == ""
