"""Constraint checking for staffing and venue capacity."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

from seva.domain.models import FLEX, Booking, BookingItem, Jatha, ProgramCategory, ProgramType, Skill, Staff
from seva.errors import BusinessRuleViolation

KIRTAN_CAP = 2  # two ragi jathas
PATH_CAP = 1  # one granthi
JATHA_SIZE = 3


@dataclass(frozen=True)
class UnmetNeeds:
    needed_path: int
    needed_kirtan: int
    needed_flex: int = 0

    def for_role(self, role: Union[Skill, str]) -> int:
        if role == FLEX:
            return self.needed_flex
        return self.needed_path if Skill(role) is Skill.PATH else self.needed_kirtan

    @property
    def total(self) -> int:
        return self.needed_path + self.needed_kirtan + self.needed_flex


def skill_counts(staff: Iterable[Staff]) -> Dict[Skill, int]:
    """Count staff per skill. Someone with both skills counts once for each."""
    counts = {Skill.PATH: 0, Skill.KIRTAN: 0}
    for s in staff:
        for skill in s.skill_set:
            counts[skill] += 1
    return counts


def unmet_needs(item: BookingItem) -> UnmetNeeds:
    """
    Compute how many more PATH and KIRTAN assignees an item needs.

    An assignee holding both skills counts toward both roles. This is a
    policy choice: one dual-skilled sevadar can cover a PATH and a KIRTAN
    minimum on the same item.

    FLEX is the headcount still missing toward the program's
    `people_required` once the open role slots are filled.
    """
    staff = [a.staff for a in item.assignments]
    counts = skill_counts(staff)
    pt = item.program_type
    needed_path = max(0, pt.minimum_for(Skill.PATH) - counts[Skill.PATH])
    needed_kirtan = max(0, pt.minimum_for(Skill.KIRTAN) - counts[Skill.KIRTAN])
    headcount = len({s.id for s in staff})
    return UnmetNeeds(
        needed_path=needed_path,
        needed_kirtan=needed_kirtan,
        needed_flex=max(0, pt.flex_target - headcount - needed_path - needed_kirtan),
    )


def check_skill_feasibility(
    program_type: ProgramType,
    before: Iterable[Staff],
    after: Iterable[Staff],
    context: str = "",
) -> None:
    """
    Check that changing an item's assignees does not drop a role below its minimum.

    A role is rejected when the new count is under the program minimum and
    lower than the current count. Items that are already short stay
    editable as long as the edit does not make them shorter.

    Raises:
        BusinessRuleViolation: If PATH or KIRTAN coverage would fall below the minimum
    """
    current = skill_counts(before)
    counts = skill_counts(after)
    for role in (Skill.PATH, Skill.KIRTAN):
        need = program_type.minimum_for(role)
        if counts[role] < need and counts[role] < current[role]:
            where = f" {context}" if context else ""
            raise BusinessRuleViolation(
                f"Change would leave {program_type.name}{where} with {counts[role]} {role.value} "
                f"sevadar(s); at least {need} required",
                reason="skill_feasibility",
            )


def tally_categories(bookings: Iterable[Booking]) -> Dict[ProgramCategory, int]:
    """Count items per program category across bookings."""
    counts: Dict[ProgramCategory, int] = defaultdict(int)
    for booking in bookings:
        for item in booking.items:
            counts[ProgramCategory(item.program_type.category)] += 1
    return counts


def check_category_caps(
    existing_overlapping_bookings: Iterable[Booking],
    requested_categories: Sequence[ProgramCategory],
    kirtan_cap: int = KIRTAN_CAP,
    path_cap: int = PATH_CAP,
) -> None:
    """
    Check venue-wide concurrency caps for a new or edited booking.

    Only so many kirtan and path stations can run at once, regardless of
    staffing. Callers pass the bookings overlapping the candidate window.

    Raises:
        BusinessRuleViolation: If a category cap would be exceeded
    """
    counts = tally_categories(existing_overlapping_bookings)
    wanted: Dict[ProgramCategory, int] = defaultdict(int)
    for category in requested_categories:
        wanted[ProgramCategory(category)] += 1

    kirtans = counts[ProgramCategory.KIRTAN] + wanted[ProgramCategory.KIRTAN]
    if kirtans > kirtan_cap:
        raise BusinessRuleViolation(
            f"Conflict: max {kirtan_cap} Kirtans can run at the same time. "
            "Please adjust time or call Secretary/Granthi.",
            reason="kirtan_cap",
        )
    paths = counts[ProgramCategory.PATH] + wanted[ProgramCategory.PATH]
    if paths > path_cap:
        raise BusinessRuleViolation(
            f"Conflict: max {path_cap} Path can run at the same time. "
            "Please adjust time or call Secretary/Granthi.",
            reason="path_cap",
        )


@dataclass
class StaffRequirement:
    path: int = 0
    kirtan: int = 0
    flex: int = 0

    def add(self, program: ProgramType) -> None:
        path = program.minimum_for(Skill.PATH)
        kirtan = program.minimum_for(Skill.KIRTAN)
        self.path += path
        self.kirtan += kirtan
        self.flex += max(0, program.flex_target - path - kirtan)


def check_staff_capacity(
    existing_overlapping_bookings: Iterable[Booking],
    requested_programs: Sequence[ProgramType],
    pool: Iterable[Staff],
) -> None:
    """
    Check the active roster could ever staff everything running in a window.

    Role minimums and extra headcount of every overlapping item plus the
    requested programs are summed, then matched against the roster:
    PATH-only sevadars cover PATH first, KIRTAN-only cover KIRTAN first,
    dual-skilled staff fill what is left of either, and whoever remains
    counts toward the extra headcount. Unskilled staff never count.

    Raises:
        BusinessRuleViolation: If the roster is too small for the window
    """
    need = StaffRequirement()
    for booking in existing_overlapping_bookings:
        for item in booking.items:
            need.add(item.program_type)
    for program in requested_programs:
        need.add(program)

    path_only = kirtan_only = both = 0
    for s in pool:
        if not s.is_active:
            continue
        skills = s.skill_set
        if Skill.PATH in skills and Skill.KIRTAN in skills:
            both += 1
        elif Skill.PATH in skills:
            path_only += 1
        elif Skill.KIRTAN in skills:
            kirtan_only += 1

    path_left = max(0, need.path - path_only)
    path_only -= need.path - path_left
    kirtan_left = max(0, need.kirtan - kirtan_only)
    kirtan_only -= need.kirtan - kirtan_left
    dual_used = path_left + kirtan_left
    spare = path_only + kirtan_only + both - dual_used

    if dual_used > both or need.flex > spare:
        raise BusinessRuleViolation(
            "Not enough sevadars for this time: overlapping programs need "
            f"{need.path} pather(s), {need.kirtan} kirtani(s) and {need.flex} more, "
            "more than the active roster can cover.",
            reason="staff_capacity",
        )


def eligible_jathas(
    staff: Iterable[Staff],
    roles: Union[Skill, Iterable[Skill]],
    unavailable: Set[int],
    size: int = JATHA_SIZE,
) -> Dict[Jatha, List[Staff]]:
    """
    Return the jathas that can be drawn for the given roles, with their free members.

    A jatha qualifies only if, for every role, at least `size` of its active
    members holding that skill are free. Smaller groups are never used, not
    even partially. Members are returned whatever their skills, so one group
    can cover every role of an item.
    """
    roles = [Skill(roles)] if isinstance(roles, (Skill, str)) else [Skill(r) for r in roles]
    groups: Dict[Jatha, List[Staff]] = defaultdict(list)
    for s in staff:
        if s.jatha is None or not s.is_active or not s.skill_set:
            continue
        if s.id in unavailable:
            continue
        groups[Jatha(s.jatha)].append(s)

    def _qualifies(members: List[Staff]) -> bool:
        if not roles:
            return len(members) >= size
        return all(sum(1 for s in members if s.has_skill(role)) >= size for role in roles)

    return {tag: members for tag, members in groups.items() if _qualifies(members)}


def item_jatha(item: BookingItem) -> Optional[Jatha]:
    """The jatha a rotation item is already drawn from, or None if it has no single one."""
    tags = {a.staff.jatha for a in item.assignments} - {None}
    return Jatha(tags.pop()) if len(tags) == 1 else None


def check_jatha_fit(staff: Staff, jatha: Optional[Jatha]) -> None:
    """
    Check a sevadar may join a rotation item drawn from `jatha`.

    With no jatha fixed yet any tagged member fits.

    Raises:
        BusinessRuleViolation: If the sevadar is untagged or from another jatha
    """
    if staff.jatha is None:
        raise BusinessRuleViolation(
            f"{staff.name} does not belong to a jatha; this program is staffed by one jatha",
            reason="jatha_mixed",
        )
    if jatha is not None and Jatha(staff.jatha) != Jatha(jatha):
        raise BusinessRuleViolation(
            f"{staff.name} is in jatha {Jatha(staff.jatha).value}; this item is staffed by jatha {Jatha(jatha).value}",
            reason="jatha_mixed",
        )
