"""Streaks, trailing compliance and the manager's weekly attendance grid.

Everything here is a pure function of already-fetched records. Saturdays and
Sundays are never required days: they neither break nor extend a streak and
never appear in a compliance denominator. Test mode only affects submission
gating in :mod:`standup_tracker.status` and is not a parameter here.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, List, Optional, Set

from .models import LeaveRecord, StandupRecord, User
from .status import CUTOFF, StatusResult, TodayStatus, compute_today_status, to_local

MAX_LOOKBACK_DAYS = 60
WEEKLY_WINDOW_DAYS = 7
MONTHLY_WINDOW_DAYS = 30
GRID_DAYS = 7
ATTENTION_MISSED_DAYS = 3


def _is_weekday(day: date) -> bool:
    return day.weekday() < 5


# region Streaks
@dataclass(slots=True)
class StreakState:
    cursor: date
    count: int = 0
    termination: str = "gap"


def walk_streak(submitted_dates: Set[date], as_of: date) -> StreakState:
    """Walk backwards from ``as_of`` counting consecutive submitted weekdays."""

    state = StreakState(cursor=as_of)
    if not submitted_dates:
        state.termination = "empty"
        return state

    # today still counts as open until it is submitted
    if _is_weekday(as_of) and as_of not in submitted_dates:
        state.cursor -= timedelta(days=1)

    for _ in range(MAX_LOOKBACK_DAYS):
        if not _is_weekday(state.cursor):
            state.cursor -= timedelta(days=1)
            continue
        if state.cursor not in submitted_dates:
            return state
        state.count += 1
        state.cursor -= timedelta(days=1)

    state.termination = "lookback"
    return state


def compute_streak(submitted_dates: Iterable[date], as_of: date) -> int:
    return walk_streak(set(submitted_dates), as_of).count


def streak_badge(streak: int) -> Optional[str]:
    if streak >= 30:
        return "trophy"
    if streak >= 7:
        return "star"
    return None


# endregion


# region Compliance
@dataclass(slots=True)
class ComplianceWindow:
    length_days: int
    weekdays: List[date]
    matched: int
    percentage: int


def weekday_dates(window_length_days: int, as_of: date) -> List[date]:
    """Weekdays of the inclusive range ``[as_of - window, as_of]``.

    A non-positive window is empty.
    """

    if window_length_days <= 0:
        return []
    start = as_of - timedelta(days=window_length_days)
    days = (start + timedelta(days=offset) for offset in range(window_length_days + 1))
    return [day for day in days if _is_weekday(day)]


def compliance_window(
    submitted_dates: Iterable[date], window_length_days: int, as_of: date
) -> ComplianceWindow:
    submitted = set(submitted_dates)
    weekdays = weekday_dates(window_length_days, as_of)
    matched = sum(1 for day in weekdays if day in submitted)
    percentage = round(matched / len(weekdays) * 100) if weekdays else 0
    return ComplianceWindow(
        length_days=window_length_days,
        weekdays=weekdays,
        matched=matched,
        percentage=percentage,
    )


def compute_compliance_rate(
    submitted_dates: Iterable[date], window_length_days: int, as_of: date
) -> int:
    return compliance_window(submitted_dates, window_length_days, as_of).percentage


# endregion


# region Team views
@dataclass(slots=True)
class MemberStatus:
    user: User
    status: TodayStatus
    submitted_at: Optional[datetime] = None
    submission_type: Optional[str] = None


@dataclass(slots=True)
class TeamStatus:
    members: List[MemberStatus]
    counts: Dict[str, int]
    submission_rate: int

    @property
    def total(self) -> int:
        return len(self.members)


def summarize_team_status(
    members: Iterable[User],
    standups_today: Iterable[StandupRecord],
    leaves_today: Iterable[LeaveRecord],
    now: datetime,
    test_mode: bool = False,
    tz: Optional[tzinfo] = None,
) -> TeamStatus:
    """Today's status for every member plus the team counters."""

    by_user = {record.user_id: record for record in standups_today}
    on_leave = {leave.user_id: leave for leave in leaves_today if leave.is_approved}

    rows: List[MemberStatus] = []
    for user in members:
        standup = by_user.get(user.id)
        result: StatusResult = compute_today_status(
            now, standup, on_leave.get(user.id), test_mode=test_mode, tz=tz
        )
        rows.append(
            MemberStatus(
                user=user,
                status=result.status,
                submitted_at=result.submitted_at,
                submission_type=standup.submission_type.value if standup else None,
            )
        )

    tally = Counter(row.status.value for row in rows)
    counts = {status.value: tally.get(status.value, 0) for status in TodayStatus}
    submitted = counts[TodayStatus.SUBMITTED.value]
    rate = round(submitted / len(rows) * 100) if rows else 0
    return TeamStatus(members=rows, counts=counts, submission_rate=rate)


@dataclass(slots=True)
class MemberWeek:
    user: User
    days: Dict[date, TodayStatus] = field(default_factory=dict)
    compliance: int = 0

    @property
    def missed_days(self) -> int:
        return sum(1 for status in self.days.values() if status is TodayStatus.MISSED)


@dataclass(slots=True)
class WeeklyGrid:
    days: List[date]
    members: List[MemberWeek]

    @property
    def team_compliance(self) -> int:
        if not self.members:
            return 0
        return round(sum(member.compliance for member in self.members) / len(self.members))

    def daily_rates(self) -> Dict[date, int]:
        rates: Dict[date, int] = {}
        for day in self.days:
            submitted = sum(
                1 for member in self.members if member.days.get(day) is TodayStatus.SUBMITTED
            )
            rates[day] = round(submitted / len(self.members) * 100) if self.members else 0
        return rates


def _day_status(
    day: date,
    submitted: bool,
    on_leave: bool,
    local_now: datetime,
) -> TodayStatus:
    if not _is_weekday(day):
        return TodayStatus.WEEKEND
    if on_leave:
        return TodayStatus.ON_LEAVE
    if submitted:
        return TodayStatus.SUBMITTED
    if day == local_now.date() and local_now.time() < CUTOFF:
        return TodayStatus.PENDING
    return TodayStatus.MISSED


def build_weekly_grid(
    members: Iterable[User],
    standups: Iterable[StandupRecord],
    approved_leaves: Iterable[LeaveRecord],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> WeeklyGrid:
    """Per-member day statuses for the seven days ending today."""

    local_now = to_local(now, tz)
    as_of = local_now.date()
    days = [as_of - timedelta(days=offset) for offset in range(GRID_DAYS - 1, -1, -1)]

    submitted_by_user: Dict[str, Set[date]] = {}
    for record in standups:
        if not record.is_submitted:
            continue
        submitted_by_user.setdefault(record.user_id, set()).add(record.date)
    leave_by_user: Dict[str, Set[date]] = {}
    for leave in approved_leaves:
        if leave.is_approved:
            leave_by_user.setdefault(leave.user_id, set()).add(leave.date)

    rows: List[MemberWeek] = []
    for user in members:
        submitted = submitted_by_user.get(user.id, set())
        leave_days = leave_by_user.get(user.id, set())
        week = MemberWeek(user=user)
        for day in days:
            week.days[day] = _day_status(day, day in submitted, day in leave_days, local_now)
        week.compliance = compute_compliance_rate(submitted, WEEKLY_WINDOW_DAYS, as_of)
        rows.append(week)
    return WeeklyGrid(days=days, members=rows)


def needs_attention(
    grid: WeeklyGrid, standups_today: Iterable[StandupRecord]
) -> Dict[str, List[User]]:
    """Members with too many missed days this week, and members reporting blockers today."""

    users = {member.user.id: member.user for member in grid.members}
    poor = [member.user for member in grid.members if member.missed_days >= ATTENTION_MISSED_DAYS]
    blocked = [
        users[record.user_id]
        for record in standups_today
        if record.has_blockers and record.user_id in users
    ]
    return {"poor_compliance": poor, "blockers": blocked}


# endregion


__all__ = [
    "MAX_LOOKBACK_DAYS",
    "WEEKLY_WINDOW_DAYS",
    "MONTHLY_WINDOW_DAYS",
    "StreakState",
    "walk_streak",
    "compute_streak",
    "streak_badge",
    "ComplianceWindow",
    "weekday_dates",
    "compliance_window",
    "compute_compliance_rate",
    "MemberStatus",
    "TeamStatus",
    "summarize_team_status",
    "MemberWeek",
    "WeeklyGrid",
    "build_weekly_grid",
    "needs_attention",
]
