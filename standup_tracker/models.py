"""Dataclasses representing Standup Tracker domain records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

STANDUP_SUBMITTED = "submitted"


class Role(str, Enum):
    MEMBER = "member"
    MANAGER = "manager"
    SUPERADMIN = "superadmin"


class SubmissionMethod(str, Enum):
    TEXT = "text"
    AUDIO = "audio"
    IMAGE = "image"


class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    TRANSFERRED = "transferred"
    SOFT_DELETED = "soft_deleted"
    RESTORED = "restored"


@dataclass(slots=True)
class Department:
    id: int
    name: str


@dataclass(slots=True)
class User:
    id: str
    full_name: str
    email: str | None = None
    role: Role = Role.MEMBER
    department_id: int | None = None
    department_name: str | None = None
    is_active: bool = True


@dataclass(slots=True)
class StandupRecord:
    user_id: str
    date: date
    submitted_at: datetime
    yesterday_work: str = ""
    today_plan: str = ""
    blockers: str = ""
    next_steps: str = ""
    status: str = STANDUP_SUBMITTED
    submission_type: SubmissionMethod = SubmissionMethod.TEXT

    @property
    def has_blockers(self) -> bool:
        return bool(self.blockers and self.blockers.strip())

    @property
    def is_submitted(self) -> bool:
        return self.status == STANDUP_SUBMITTED


@dataclass(slots=True)
class LeaveRecord:
    user_id: str
    date: date
    status: LeaveStatus = LeaveStatus.PENDING
    reason: str | None = None
    id: int | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == LeaveStatus.APPROVED


@dataclass(slots=True)
class Deliverable:
    user_id: str
    day_number: int
    drive_link: str
    linkedin_link: str | None = None
    notes: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class TodoItem:
    id: int
    user_id: str
    date: date
    task_text: str
    position: int
    is_completed: bool = False


@dataclass(slots=True)
class AuditEntry:
    """One superadmin change to a user profile."""

    action: AuditAction
    target_id: str
    actor_id: Optional[str] = None
    target_type: str = "user"
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


__all__ = [
    "Role",
    "SubmissionMethod",
    "LeaveStatus",
    "AuditAction",
    "STANDUP_SUBMITTED",
    "Department",
    "User",
    "StandupRecord",
    "LeaveRecord",
    "Deliverable",
    "TodoItem",
    "AuditEntry",
]
