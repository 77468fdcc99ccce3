"""Daily submission window and today's status for a single member."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, tzinfo
from enum import Enum
from typing import Optional

from .models import LeaveRecord, StandupRecord

WINDOW_OPEN = time(8, 0)
CUTOFF = time(10, 0)


class TodayStatus(str, Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    MISSED = "missed"
    ON_LEAVE = "on_leave"
    WEEKEND = "weekend"


@dataclass(slots=True)
class StatusResult:
    status: TodayStatus
    submitted_at: Optional[datetime] = None


def to_local(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Return ``now`` in the viewer's zone; naive values are already local."""

    if tz is None or now.tzinfo is None:
        return now
    return now.astimezone(tz)


def is_weekend(now: datetime, test_mode: bool = False, tz: Optional[tzinfo] = None) -> bool:
    if test_mode:
        return False
    return to_local(now, tz).weekday() >= 5


def compute_today_status(
    now: datetime,
    submission: Optional[StandupRecord],
    approved_leave: Optional[LeaveRecord],
    test_mode: bool = False,
    tz: Optional[tzinfo] = None,
) -> StatusResult:
    """Derive today's status, first matching rule wins.

    Weekend beats leave, leave beats a submission, and an absent submission
    is ``missed`` only once the local clock reaches the cutoff.
    """

    local = to_local(now, tz)
    if is_weekend(local, test_mode):
        return StatusResult(TodayStatus.WEEKEND)
    if approved_leave is not None and approved_leave.is_approved:
        return StatusResult(TodayStatus.ON_LEAVE)
    if submission is not None:
        return StatusResult(TodayStatus.SUBMITTED, submitted_at=submission.submitted_at)
    if not test_mode and local.time() >= CUTOFF:
        return StatusResult(TodayStatus.MISSED)
    return StatusResult(TodayStatus.PENDING)


def within_submission_window(now: datetime, tz: Optional[tzinfo] = None) -> bool:
    return WINDOW_OPEN <= to_local(now, tz).time() < CUTOFF


def can_submit(
    status: TodayStatus,
    test_mode: bool,
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> bool:
    if test_mode:
        return True
    return status == TodayStatus.PENDING and within_submission_window(now, tz)


def time_remaining(now: datetime, test_mode: bool = False, tz: Optional[tzinfo] = None) -> Optional[str]:
    """Countdown to today's cutoff, or ``None`` when there is nothing to count."""

    if test_mode:
        return None
    local = to_local(now, tz)
    cutoff = datetime.combine(local.date(), CUTOFF, tzinfo=local.tzinfo)
    if local >= cutoff:
        return None
    minutes_left = int((cutoff - local).total_seconds()) // 60
    hours, minutes = divmod(minutes_left, 60)
    return f"{hours}h {minutes}m remaining"


__all__ = [
    "TodayStatus",
    "StatusResult",
    "WINDOW_OPEN",
    "CUTOFF",
    "to_local",
    "is_weekend",
    "compute_today_status",
    "within_submission_window",
    "can_submit",
    "time_remaining",
]
