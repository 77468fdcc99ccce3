"""Day-numbered deliverable campaign: per-user grid and department rollups."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .models import Deliverable, User

FIRST_DAY = 45
LAST_DAY = 70
DAY_RANGE = range(FIRST_DAY, LAST_DAY + 1)
NO_DEPARTMENT = "No Department"
AT_RISK_BELOW = 50


def _rate(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


@dataclass(slots=True)
class UserDeliverableSummary:
    user: User
    cells: Dict[int, Optional[Deliverable]]
    submitted_count: int
    missing_count: int
    completion_rate: int

    @property
    def missing_days(self) -> List[int]:
        return [day for day, cell in self.cells.items() if cell is None]


@dataclass(slots=True)
class GroupSummary:
    name: str
    users: List[UserDeliverableSummary] = field(default_factory=list)
    slots_per_user: int = len(DAY_RANGE)

    @property
    def total_members(self) -> int:
        return len(self.users)

    @property
    def total_submissions(self) -> int:
        return sum(user.submitted_count for user in self.users)

    @property
    def total_possible(self) -> int:
        return self.total_members * self.slots_per_user

    @property
    def completion_rate(self) -> int:
        # sum of sums, never the mean of member rates
        return _rate(self.total_submissions, self.total_possible)


@dataclass(slots=True)
class DeliverableGrid:
    days: List[int]
    users: List[UserDeliverableSummary]
    groups: List[GroupSummary]

    def overall(self) -> Dict[str, int]:
        everyone = GroupSummary(name="all", users=self.users, slots_per_user=len(self.days))
        return {
            "total_users": everyone.total_members,
            "total_submissions": everyone.total_submissions,
            "total_possible": everyone.total_possible,
            "completion_rate": everyone.completion_rate,
            "users_completed": sum(1 for user in self.users if user.completion_rate == 100),
            "users_at_risk": sum(1 for user in self.users if user.completion_rate < AT_RISK_BELOW),
        }


def group_by_user(records: Iterable[Deliverable]) -> Dict[str, Dict[int, Deliverable]]:
    by_user: Dict[str, Dict[int, Deliverable]] = {}
    for record in records:
        by_user.setdefault(record.user_id, {})[record.day_number] = record
    return by_user


def summarize_user(
    user: User,
    deliverables: Mapping[int, Deliverable],
    day_range: range = DAY_RANGE,
) -> UserDeliverableSummary:
    cells = {day: deliverables.get(day) for day in day_range}
    submitted = sum(1 for cell in cells.values() if cell is not None)
    slots = len(day_range)
    return UserDeliverableSummary(
        user=user,
        cells=cells,
        submitted_count=submitted,
        missing_count=slots - submitted,
        completion_rate=_rate(submitted, slots),
    )


def build_grid(
    deliverables_by_user: Mapping[str, Mapping[int, Deliverable]],
    all_users: Iterable[User],
    day_range: range = DAY_RANGE,
) -> DeliverableGrid:
    """Summarise every user, including those who submitted nothing.

    Groups are keyed by department name and sorted by completion rate,
    highest first.
    """

    summaries = [
        summarize_user(user, deliverables_by_user.get(user.id, {}), day_range)
        for user in all_users
    ]

    groups: Dict[str, GroupSummary] = {}
    for summary in summaries:
        name = summary.user.department_name or NO_DEPARTMENT
        group = groups.setdefault(name, GroupSummary(name=name, slots_per_user=len(day_range)))
        group.users.append(summary)

    ordered = sorted(groups.values(), key=lambda group: group.completion_rate, reverse=True)
    return DeliverableGrid(days=list(day_range), users=summaries, groups=ordered)


__all__ = [
    "FIRST_DAY",
    "LAST_DAY",
    "DAY_RANGE",
    "UserDeliverableSummary",
    "GroupSummary",
    "DeliverableGrid",
    "group_by_user",
    "summarize_user",
    "build_grid",
]
