"""MCP server exposing read-only Standup Tracker reports."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .db import Database
from .service import StandupService

mcp = FastMCP("standup-tracker")

_settings = load_settings()
_service = StandupService(_settings, Database(_settings.database_path))


def _now() -> datetime:
    return datetime.now(_settings.timezone)


def _ensure_date(day_str: Optional[str] = None):
    if not day_str:
        return _service.local_now(_now()).date()
    return datetime.strptime(day_str, "%Y-%m-%d").date()


@mcp.tool()
async def get_team_status(department_id: int) -> dict:
    """Return today's submission status for every member of a department."""

    team = _service.team_status(department_id, _now(), _settings.test_mode)
    return {
        "counts": team.counts,
        "submission_rate": team.submission_rate,
        "members": {row.user.full_name: row.status.value for row in team.members},
    }


@mcp.tool()
async def get_weekly_compliance(department_id: int) -> dict:
    """Return each member's compliance over the last week."""

    grid = _service.weekly_grid(department_id, _now())
    return {
        "team_compliance": grid.team_compliance,
        "members": {member.user.full_name: member.compliance for member in grid.members},
    }


@mcp.tool()
async def get_member_streak(user_id: str, date: Optional[str] = None) -> dict:
    """Return a member's current streak and 30-day compliance."""

    day = _ensure_date(date)
    return {
        "date": day.isoformat(),
        "streak": _service.get_streak(user_id, day),
        "compliance_rate": _service.get_compliance(user_id, day).percentage,
    }


@mcp.tool()
async def get_deliverable_report() -> dict:
    """Return deliverable completion by department."""

    grid = _service.deliverable_grid()
    return {
        "overall": grid.overall(),
        "departments": {group.name: group.completion_rate for group in grid.groups},
    }


__all__ = [
    "mcp",
    "get_team_status",
    "get_weekly_compliance",
    "get_member_streak",
    "get_deliverable_report",
]


if __name__ == "__main__":  # pragma: no cover
    mcp.run()
