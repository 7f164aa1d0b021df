"""Tests for the fairness ranker."""

from seva.domain.models import FLEX, Jatha, Skill, Staff
from seva.services.fairness import Credits
from seva.services.ranking import rank_candidates, rank_jathas


def _staff(sid, name, skills="KIRTAN", jatha=None, active=True):
    return Staff(id=sid, name=name, skills=skills, jatha=jatha, is_active=active)


def test_least_window_credit_first():
    pool = [_staff(1, "Amrit"), _staff(2, "Baljit"), _staff(3, "Charan")]
    credits = {1: Credits(window=4, lifetime=10), 2: Credits(window=1, lifetime=30), 3: Credits(window=1, lifetime=5)}

    assert rank_candidates(pool, Skill.KIRTAN, set(), set(), credits) == [3, 2, 1]


def test_name_then_id_break_ties():
    pool = [_staff(5, "Gurpreet"), _staff(4, "Gurpreet"), _staff(6, "Daljit")]

    assert rank_candidates(pool, Skill.KIRTAN, set(), set(), {}) == [6, 4, 5]


def test_filters_ineligible():
    pool = [
        _staff(1, "Amrit", skills="PATH"),
        _staff(2, "Baljit"),
        _staff(3, "Charan", active=False),
        _staff(4, "Daljit"),
        _staff(5, "Ekam"),
    ]

    ranked = rank_candidates(pool, Skill.KIRTAN, busy={2}, on_item={4}, credits={})
    assert ranked == [5]


def test_ranking_is_deterministic():
    pool = [_staff(i, f"Sevadar {i % 3}") for i in range(1, 10)]
    credits = {i: Credits(window=i % 2, lifetime=i % 4) for i in range(1, 10)}

    first = rank_candidates(pool, Skill.KIRTAN, set(), set(), credits)
    assert all(rank_candidates(list(reversed(pool)), Skill.KIRTAN, set(), set(), credits) == first for _ in range(3))


def test_jathas_ranked_by_summed_credits():
    groups = {
        Jatha.A: [_staff(1, "A1", jatha=Jatha.A), _staff(2, "A2", jatha=Jatha.A)],
        Jatha.B: [_staff(3, "B1", jatha=Jatha.B), _staff(4, "B2", jatha=Jatha.B)],
    }
    credits = {1: Credits(2, 2), 2: Credits(1, 1), 3: Credits(1, 5)}

    assert rank_jathas(groups, credits) == [Jatha.B, Jatha.A]
    assert rank_jathas(groups, {}) == [Jatha.A, Jatha.B]


def test_flex_takes_any_skilled_sevadar():
    pool = [_staff(1, "Amrit", skills="PATH"), _staff(2, "Baljit"), _staff(3, "Charan", skills="")]
    credits = {2: Credits(window=0, lifetime=3)}

    assert rank_candidates(pool, FLEX, set(), set(), credits) == [1, 2]
