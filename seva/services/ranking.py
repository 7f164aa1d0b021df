"""Fairness ranking of eligible candidates."""

from __future__ import annotations

from typing import Iterable, List, Mapping, Set, Tuple, Union

from seva.domain.models import FLEX, Jatha, Skill, Staff
from seva.services.fairness import Credits

NO_CREDITS = Credits(window=0, lifetime=0)


def holds_role(staff: Staff, role: Union[Skill, str]) -> bool:
    if role == FLEX:
        return bool(staff.skill_set)
    return staff.has_skill(role)


def is_eligible(staff: Staff, role: Union[Skill, str], busy: Set[int], on_item: Set[int]) -> bool:
    """Active, holds the role's skill (any skill for FLEX), free, and not already on the item."""
    return (
        bool(staff.is_active)
        and holds_role(staff, role)
        and staff.id not in busy
        and staff.id not in on_item
    )


def ranking_key(staff: Staff, credits: Mapping[int, Credits]) -> Tuple:
    c = credits.get(staff.id, NO_CREDITS)
    return (c.window, c.lifetime, staff.name, staff.id)


def rank_candidates(
    pool: Iterable[Staff],
    role: Union[Skill, str],
    busy: Set[int],
    on_item: Set[int],
    credits: Mapping[int, Credits],
) -> List[int]:
    """
    Order eligible staff least-credit first.

    Staff who have done the least recent seva come first: window credit is
    the primary key, lifetime credit breaks ties, then name and id. Pure:
    identical inputs always give the same order.

    Args:
        pool: Candidate staff
        role: Skill the slot needs, or FLEX for extra headcount
        busy: Staff committed elsewhere in the slot's window
        on_item: Staff already assigned to the item
        credits: Credit snapshot by staff id; missing staff count as zero

    Returns:
        Staff ids, best candidate first
    """
    eligible = [s for s in pool if is_eligible(s, role, busy, on_item)]
    eligible.sort(key=lambda s: ranking_key(s, credits))
    return [s.id for s in eligible]


def rank_jathas(groups: Mapping[Jatha, List[Staff]], credits: Mapping[int, Credits]) -> List[Jatha]:
    """Order jathas by the summed credits of their members, then by tag."""

    def _key(tag: Jatha):
        members = groups[tag]
        window = sum(credits.get(s.id, NO_CREDITS).window for s in members)
        lifetime = sum(credits.get(s.id, NO_CREDITS).lifetime for s in members)
        return (window, lifetime, Jatha(tag).value)

    return sorted(groups, key=_key)
