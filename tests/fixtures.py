from __future__ import annotations

from datetime import date, datetime

from standup_tracker.db import Database

# 2024-06-03 is a Monday
MON = date(2024, 6, 3)
TUE = date(2024, 6, 4)
WED = date(2024, 6, 5)
THU = date(2024, 6, 6)
FRI = date(2024, 6, 7)
SAT = date(2024, 6, 8)
SUN = date(2024, 6, 9)
NEXT_MON = date(2024, 6, 10)


def at(day: date, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, second)


STANDUP_FIELDS = {
    "yesterday_work": "Finished the login form",
    "today_plan": "Wire up the dashboard",
    "blockers": "None",
    "next_steps": "Review with design",
}


def seed_standup(
    database: Database,
    user_id: str,
    day: date,
    blockers: str = "none",
    status: str = "submitted",
) -> None:
    database.record_standup(
        {
            "user_id": user_id,
            "date": day.isoformat(),
            "submitted_at": at(day, 9).isoformat(),
            "yesterday_work": "work",
            "today_plan": "plan",
            "blockers": blockers,
            "next_steps": "next",
            "status": status,
            "submission_type": "text",
        }
    )
