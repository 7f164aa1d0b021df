"""Tests for swap, override, manual placement and replacement candidates."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import SLOT
from seva.access import ActorRole
from seva.domain.models import Assignment, AssignmentState, BookingStatus, Jatha, ProgramCategory
from seva.engine.overrides import CONFIRMED_WARNING, assign_staff, override, replacement_candidates, swap
from seva.errors import (
    BusinessRuleViolation,
    ConcurrencyConflict,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)

KIRTAN = ProgramCategory.KIRTAN


def _staff_of(db_session, *assignment_ids):
    db_session.expire_all()
    return [db_session.get(Assignment, aid).staff_id for aid in assignment_ids]


@pytest.fixture
def two_kirtans(make_staff, make_program, make_booking, make_assignment):
    """Two bookings on different days, one kirtani on each."""
    amrit = make_staff("Amrit", "KIRTAN")
    baljit = make_staff("Baljit", "KIRTAN")
    program = make_program("Asa di Var", KIRTAN, min_kirtanis=1)
    first = make_booking([program])
    second = make_booking([program], start=SLOT + timedelta(days=1))
    a = make_assignment(first.items[0], amrit)
    b = make_assignment(second.items[0], baljit)
    return amrit, baljit, a, b


def test_swap_exchanges_staff(two_kirtans, db_session):
    amrit, baljit, a, b = two_kirtans

    result = swap(db_session, a.id, b.id)

    assert (result.a_staff_id, result.b_staff_id) == (baljit.id, amrit.id)
    assert _staff_of(db_session, a.id, b.id) == [baljit.id, amrit.id]


def test_swap_is_symmetric(two_kirtans, db_session):
    amrit, baljit, a, b = two_kirtans

    swap(db_session, b.id, a.id)

    assert _staff_of(db_session, a.id, b.id) == [baljit.id, amrit.id]


def test_swap_same_id_rejected(two_kirtans, db_session):
    _, _, a, _ = two_kirtans
    with pytest.raises(ValidationError):
        swap(db_session, a.id, a.id)


def test_swap_missing_assignment(two_kirtans, db_session):
    _, _, a, _ = two_kirtans
    with pytest.raises(NotFoundError):
        swap(db_session, a.id, 9999)


def test_swap_same_slot_needs_override(make_staff, make_program, make_booking, make_assignment, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    baljit = make_staff("Baljit", "KIRTAN")
    booking = make_booking([make_program("Asa di Var", KIRTAN, min_kirtanis=2)])
    a = make_assignment(booking.items[0], amrit)
    b = make_assignment(booking.items[0], baljit)

    with pytest.raises(BusinessRuleViolation) as exc:
        swap(db_session, a.id, b.id, booking_id=booking.id)
    assert exc.value.reason == "use_override"
    assert "use per-row override instead" in str(exc.value)
    assert _staff_of(db_session, a.id, b.id) == [amrit.id, baljit.id]


def test_swap_same_item_different_windows(make_staff, make_program, make_booking, make_assignment, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    baljit = make_staff("Baljit", "KIRTAN")
    booking = make_booking([make_program("Akhand Kirtan", KIRTAN, min_kirtanis=1)], hours=4)
    item = booking.items[0]
    a = make_assignment(item, amrit, start=SLOT, end=SLOT + timedelta(hours=2))
    b = make_assignment(item, baljit, start=SLOT + timedelta(hours=2), end=SLOT + timedelta(hours=4))

    swap(db_session, a.id, b.id, booking_id=booking.id)

    assert _staff_of(db_session, a.id, b.id) == [baljit.id, amrit.id]


def test_swap_category_mismatch(make_staff, make_program, make_booking, make_assignment, db_session):
    amrit = make_staff("Amrit", "PATH;KIRTAN")
    baljit = make_staff("Baljit", "PATH;KIRTAN")
    path = make_booking([make_program("Sehaj Path", ProgramCategory.PATH)])
    kirtan = make_booking([make_program("Asa di Var", KIRTAN)], start=SLOT + timedelta(days=1))
    a = make_assignment(path.items[0], amrit)
    b = make_assignment(kirtan.items[0], baljit)

    with pytest.raises(BusinessRuleViolation) as exc:
        swap(db_session, a.id, b.id)
    assert exc.value.reason == "category_mismatch"


def test_swap_scoped_to_booking(two_kirtans, db_session):
    _, _, a, b = two_kirtans
    with pytest.raises(BusinessRuleViolation) as exc:
        swap(db_session, a.id, b.id, booking_id=a.booking_id)
    assert exc.value.reason == "booking_mismatch"


def test_scoped_swap_needs_proposed(make_staff, make_program, make_booking, make_assignment, db_session):
    amrit = make_staff("Amrit", "PATH;KIRTAN")
    baljit = make_staff("Baljit", "PATH;KIRTAN")
    booking = make_booking([make_program("Sehaj Path"), make_program("Asa di Var", KIRTAN)])
    a = make_assignment(booking.items[0], amrit, state=AssignmentState.CONFIRMED)
    b = make_assignment(booking.items[1], baljit)

    with pytest.raises(BusinessRuleViolation) as exc:
        swap(db_session, a.id, b.id, booking_id=booking.id)
    assert exc.value.reason == "state_not_proposed"


def test_swap_rechecks_skill_minimums(make_staff, make_program, make_booking, make_assignment, db_session):
    pather = make_staff("Pritam", "PATH")
    kirtani = make_staff("Kulwant", "KIRTAN")
    path = make_program("Sehaj Path", ProgramCategory.PATH, min_pathers=1)
    kirtan = make_program("Asa di Var", KIRTAN, min_kirtanis=1)
    booking = make_booking([path, kirtan])
    a = make_assignment(booking.items[0], pather)
    b = make_assignment(booking.items[1], kirtani)

    with pytest.raises(BusinessRuleViolation) as exc:
        swap(db_session, a.id, b.id, booking_id=booking.id)
    assert exc.value.reason == "skill_feasibility"
    assert _staff_of(db_session, a.id, b.id) == [pather.id, kirtani.id]


def test_swap_rejects_busy_incoming_staff(two_kirtans, make_program, make_booking, make_assignment, db_session):
    amrit, baljit, a, b = two_kirtans
    # Baljit is also booked on the first day, at the same time as Amrit's slot
    elsewhere = make_booking([make_program("Langar seva")], start=SLOT + timedelta(hours=1))
    make_assignment(elsewhere.items[0], baljit)

    with pytest.raises(BusinessRuleViolation) as exc:
        swap(db_session, a.id, b.id)
    assert exc.value.reason == "staff_busy"
    assert _staff_of(db_session, a.id, b.id) == [amrit.id, baljit.id]


def test_swap_on_cancelled_booking_rejected(two_kirtans, db_session):
    _, _, a, b = two_kirtans
    a.booking.status = BookingStatus.CANCELLED
    db_session.commit()

    with pytest.raises(BusinessRuleViolation) as exc:
        swap(db_session, a.id, b.id)
    assert exc.value.reason == "booking_inactive"


def test_swap_conflict_at_commit_is_retryable(two_kirtans, db_session, monkeypatch):
    amrit, baljit, a, b = two_kirtans
    a_id, b_id = a.id, b.id

    def lost_race():
        raise IntegrityError("UPDATE assignments", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(db_session, "commit", lost_race)

    with pytest.raises(ConcurrencyConflict) as exc:
        swap(db_session, a_id, b_id)
    assert exc.value.retryable is True
    assert _staff_of(db_session, a_id, b_id) == [amrit.id, baljit.id]


def test_override_replaces_staff(make_staff, make_program, make_booking, make_assignment, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    baljit = make_staff("Baljit", "KIRTAN")
    booking = make_booking([make_program("Asa di Var", KIRTAN, min_kirtanis=1)])
    row = make_assignment(booking.items[0], amrit)

    result = override(db_session, booking.items[0].id, amrit.id, baljit.id, actor=ActorRole.SECRETARY)

    assert result.assignment_id == row.id
    assert result.warning is None
    assert _staff_of(db_session, row.id) == [baljit.id]


def test_override_warns_on_confirmed_booking(make_staff, make_program, make_booking, make_assignment, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    baljit = make_staff("Baljit", "KIRTAN")
    booking = make_booking([make_program("Asa di Var", KIRTAN)], status=BookingStatus.CONFIRMED)
    make_assignment(booking.items[0], amrit, state=AssignmentState.CONFIRMED)

    result = override(db_session, booking.items[0].id, amrit.id, baljit.id)

    assert result.warning == CONFIRMED_WARNING


def test_override_cannot_drop_last_pather(make_staff, make_program, make_booking, make_assignment, db_session):
    dual = make_staff("Xavier", "PATH;KIRTAN")
    kirtani = make_staff("Yuvraj", "KIRTAN")
    booking = make_booking([make_program("Akhand Path", ProgramCategory.PATH, min_pathers=1)])
    row = make_assignment(booking.items[0], dual)

    with pytest.raises(BusinessRuleViolation) as exc:
        override(db_session, booking.items[0].id, dual.id, kirtani.id)
    assert exc.value.reason == "skill_feasibility"
    assert _staff_of(db_session, row.id) == [dual.id]


@pytest.mark.parametrize(
    "setup, reason",
    [
        ("inactive", "staff_inactive"),
        ("on_item", "duplicate_assignment"),
        ("busy", "staff_busy"),
    ],
)
def test_override_rejections(setup, reason, make_staff, make_program, make_booking, make_assignment, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    baljit = make_staff("Baljit", "KIRTAN", is_active=setup != "inactive")
    program = make_program("Asa di Var", KIRTAN)
    booking = make_booking([program])
    make_assignment(booking.items[0], amrit)
    if setup == "on_item":
        make_assignment(booking.items[0], baljit)
    if setup == "busy":
        other = make_booking([program], start=SLOT + timedelta(minutes=30))
        make_assignment(other.items[0], baljit)

    with pytest.raises(BusinessRuleViolation) as exc:
        override(db_session, booking.items[0].id, amrit.id, baljit.id)
    assert exc.value.reason == reason


def test_override_lookup_errors(make_staff, make_program, make_booking, make_assignment, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    baljit = make_staff("Baljit", "KIRTAN")
    booking = make_booking([make_program()])
    item_id = booking.items[0].id
    make_assignment(booking.items[0], amrit)

    with pytest.raises(ValidationError):
        override(db_session, item_id, amrit.id, amrit.id)
    with pytest.raises(NotFoundError):
        override(db_session, item_id, baljit.id, amrit.id)
    with pytest.raises(NotFoundError):
        override(db_session, item_id, amrit.id, 9999)
    with pytest.raises(NotFoundError):
        override(db_session, 9999, amrit.id, baljit.id)
    with pytest.raises(NotFoundError):
        override(db_session, item_id, amrit.id, baljit.id, booking_id=booking.id + 1)


def test_override_keeps_rotation_in_one_jatha(make_staff, make_program, make_booking, make_assignment, db_session):
    members = [make_staff(f"A{i}", "KIRTAN", jatha=Jatha.A) for i in range(3)]
    outsider = make_staff("B0", "KIRTAN", jatha=Jatha.B)
    rotation = make_program("Akhand Kirtan", KIRTAN, min_kirtanis=3, requires_full_jatha=True)
    booking = make_booking([rotation])
    for m in members:
        make_assignment(booking.items[0], m)

    with pytest.raises(BusinessRuleViolation) as exc:
        override(db_session, booking.items[0].id, members[0].id, outsider.id)
    assert exc.value.reason == "jatha_mixed"


def test_assign_staff_keeps_rotation_in_one_jatha(make_staff, make_program, make_booking, make_assignment, db_session):
    members = [make_staff(f"A{i}", "KIRTAN", jatha=Jatha.A) for i in range(4)]
    loner = make_staff("Loner", "KIRTAN")
    outsider = make_staff("B0", "KIRTAN", jatha=Jatha.B)
    rotation = make_program("Akhand Kirtan", KIRTAN, min_kirtanis=3, requires_full_jatha=True)
    booking = make_booking([rotation])
    item_id = booking.items[0].id
    for m in members[:3]:
        make_assignment(booking.items[0], m)

    for stranger in (loner, outsider):
        with pytest.raises(BusinessRuleViolation) as exc:
            assign_staff(db_session, item_id, stranger.id)
        assert exc.value.reason == "jatha_mixed"

    created = assign_staff(db_session, item_id, members[3].id)
    assert created.staff_id == members[3].id


def test_override_within_jatha_despite_untagged_member(
    make_staff, make_program, make_booking, make_assignment, db_session
):
    members = [make_staff(f"A{i}", "KIRTAN", jatha=Jatha.A) for i in range(4)]
    loner = make_staff("Loner", "KIRTAN")
    rotation = make_program("Akhand Kirtan", KIRTAN, min_kirtanis=3, requires_full_jatha=True)
    booking = make_booking([rotation])
    item_id = booking.items[0].id
    for m in members[1:]:
        make_assignment(booking.items[0], m)
    # Placed directly, as an older manual placement would have been
    make_assignment(booking.items[0], loner)

    result = override(db_session, item_id, members[1].id, members[0].id)

    assert result.to_staff_id == members[0].id
    db_session.expire_all()
    assert db_session.get(Assignment, result.assignment_id).staff_id == members[0].id


def test_assign_staff_inherits_booking_window(make_staff, make_program, make_booking, db_session, clock):
    amrit = make_staff("Amrit", "KIRTAN")
    booking = make_booking([make_program()])

    created = assign_staff(db_session, booking.items[0].id, amrit.id, clock=clock)

    row = db_session.get(Assignment, created.assignment_id)
    assert (row.start, row.end, row.has_own_window) == (booking.start, booking.end, False)
    assert row.state == AssignmentState.PROPOSED
    assert created.role is None


def test_assign_staff_with_own_window(make_staff, make_program, make_booking, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    booking = make_booking([make_program()], hours=4)
    item_id = booking.items[0].id

    first = assign_staff(db_session, item_id, amrit.id, start=SLOT, end=SLOT + timedelta(hours=1))
    assert db_session.get(Assignment, first.assignment_id).has_own_window is True

    # Same item again is a duplicate even in a different window
    with pytest.raises(BusinessRuleViolation) as exc:
        assign_staff(db_session, item_id, amrit.id, start=SLOT + timedelta(hours=2), end=SLOT + timedelta(hours=3))
    assert exc.value.reason == "duplicate_assignment"


def test_assign_staff_validation(make_staff, make_program, make_booking, make_assignment, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    program = make_program()
    booking = make_booking([program])
    item_id = booking.items[0].id

    with pytest.raises(ValidationError):
        assign_staff(db_session, item_id, amrit.id, start=SLOT)
    with pytest.raises(ValidationError):
        assign_staff(db_session, item_id, amrit.id, start=SLOT, end=SLOT)
    with pytest.raises(NotFoundError):
        assign_staff(db_session, item_id, 9999)

    other = make_booking([program], start=SLOT + timedelta(hours=1))
    make_assignment(other.items[0], amrit)
    with pytest.raises(BusinessRuleViolation) as exc:
        assign_staff(db_session, item_id, amrit.id)
    assert exc.value.reason == "staff_busy"


def test_placement_requires_permission(make_staff, make_program, make_booking, db_session):
    amrit = make_staff("Amrit", "KIRTAN")
    booking = make_booking([make_program()])

    with pytest.raises(PermissionDenied):
        assign_staff(db_session, booking.items[0].id, amrit.id, actor="GUEST")


def test_replacement_candidates(make_staff, make_program, make_booking, make_assignment, db_session, clock):
    amrit = make_staff("Amrit", "KIRTAN")
    baljit = make_staff("Baljit", "KIRTAN")
    charan = make_staff("Charan", "PATH")
    daljit = make_staff("Daljit", "KIRTAN")
    make_staff("Ekam", "KIRTAN", is_active=False)
    program = make_program("Asa di Var", KIRTAN)
    booking = make_booking([program])
    row = make_assignment(booking.items[0], baljit)
    make_assignment(booking.items[0], charan)
    other = make_booking([program], start=SLOT + timedelta(hours=1))
    make_assignment(other.items[0], daljit)

    candidates = replacement_candidates(db_session, row.id, clock=clock)

    assert [c.staff_id for c in candidates] == [amrit.id, baljit.id]
    assert [c.is_current for c in candidates] == [False, True]
