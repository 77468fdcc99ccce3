"""Core orchestration logic for Standup Tracker.

Each query reads its records once, then hands them to the pure functions in
:mod:`.status`, :mod:`.compliance` and :mod:`.deliverables`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from .compliance import (
    MAX_LOOKBACK_DAYS,
    MONTHLY_WINDOW_DAYS,
    ComplianceWindow,
    TeamStatus,
    WeeklyGrid,
    build_weekly_grid,
    compliance_window,
    compute_streak,
    needs_attention,
    streak_badge,
    summarize_team_status,
)
from .config import ClientPreferences, Settings
from .db import Database, Row
from .deliverables import (
    DAY_RANGE,
    FIRST_DAY,
    LAST_DAY,
    DeliverableGrid,
    UserDeliverableSummary,
    build_grid,
    group_by_user,
    summarize_user,
)
from .models import (
    STANDUP_SUBMITTED,
    AuditAction,
    AuditEntry,
    Deliverable,
    Department,
    LeaveRecord,
    LeaveStatus,
    Role,
    StandupRecord,
    SubmissionMethod,
    TodoItem,
    User,
)
from .status import StatusResult, can_submit, compute_today_status, time_remaining, to_local
from .validation import (
    DeliverableInput,
    ValidationError,
    media_extension,
    validate_standup,
    validate_todo,
)
from .webhook import (
    WebhookClient,
    WebhookNotConfiguredError,
    build_media_payload,
    media_object_name,
)

logger = logging.getLogger(__name__)

HISTORY_DAYS = 7
AUDIT_LOG_LIMIT = 100


class SubmissionClosedError(RuntimeError):
    """Raised when a standup is submitted outside the open window."""


class NotFoundError(LookupError):
    """Raised when a referenced user, leave request or todo does not exist."""


# region Row conversion
def _parse_day(value: str) -> date:
    return date.fromisoformat(value)


def user_from_row(row: Row) -> User:
    return User(
        id=row["id"],
        full_name=row["full_name"],
        email=row["email"],
        role=Role(row["role"]),
        department_id=row["department_id"],
        department_name=row["department_name"],
        is_active=bool(row["is_active"]),
    )


def standup_from_row(row: Row) -> StandupRecord:
    return StandupRecord(
        user_id=row["user_id"],
        date=_parse_day(row["date"]),
        submitted_at=datetime.fromisoformat(row["submitted_at"]),
        yesterday_work=row["yesterday_work"] or "",
        today_plan=row["today_plan"] or "",
        blockers=row["blockers"] or "",
        next_steps=row["next_steps"] or "",
        status=row["status"],
        submission_type=SubmissionMethod(row["submission_type"]),
    )


def leave_from_row(row: Row) -> LeaveRecord:
    return LeaveRecord(
        id=row["id"],
        user_id=row["user_id"],
        date=_parse_day(row["date"]),
        status=LeaveStatus(row["status"]),
        reason=row["reason"],
    )


def deliverable_from_row(row: Row) -> Deliverable:
    created = row["created_at"]
    return Deliverable(
        user_id=row["user_id"],
        day_number=row["day_number"],
        drive_link=row["drive_link"],
        linkedin_link=row["linkedin_link"],
        notes=row["notes"],
        created_at=datetime.fromisoformat(created) if created else None,
    )


def todo_from_row(row: Row) -> TodoItem:
    return TodoItem(
        id=row["id"],
        user_id=row["user_id"],
        date=_parse_day(row["date"]),
        task_text=row["task_text"],
        position=row["position"],
        is_completed=bool(row["is_completed"]),
    )


def _json_column(value: Optional[str]) -> Optional[Dict[str, Any]]:
    return json.loads(value) if value else None


def audit_from_row(row: Row) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        actor_id=row["actor_id"],
        action=AuditAction(row["action"]),
        target_type=row["target_type"],
        target_id=row["target_id"],
        old_values=_json_column(row["old_values"]),
        new_values=_json_column(row["new_values"]),
        metadata=_json_column(row["metadata"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _profile(user: User) -> Dict[str, Any]:
    return {
        "full_name": user.full_name,
        "email": user.email,
        "role": user.role.value,
        "department_id": user.department_id,
        "is_active": user.is_active,
    }


# endregion


class StandupService:
    """High-level service that reads records and exposes dashboard helpers."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        webhook: Optional[WebhookClient] = None,
    ) -> None:
        self.settings = settings
        self.database = database
        self.webhook = webhook

    def local_now(self, now: Optional[datetime] = None) -> datetime:
        return to_local(now or datetime.now(self.settings.timezone), self.settings.timezone)

    # region Users and departments
    def create_department(self, name: str) -> Department:
        department_id = self.database.create_department(name.strip())
        return Department(id=department_id, name=name.strip())

    def list_departments(self) -> List[Department]:
        return [Department(id=row["id"], name=row["name"]) for row in self.database.get_departments()]

    def _audit(
        self,
        action: AuditAction,
        user_id: str,
        actor_id: Optional[str],
        *,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            action=action,
            target_id=user_id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=new_values,
            metadata=metadata,
            created_at=datetime.now(timezone.utc),
        )
        entry.id = self.database.record_audit(
            {
                "actor_id": entry.actor_id,
                "action": entry.action.value,
                "target_type": entry.target_type,
                "target_id": entry.target_id,
                "old_values": entry.old_values,
                "new_values": entry.new_values,
                "metadata": entry.metadata,
                "created_at": entry.created_at.isoformat(),
            }
        )
        logger.info("Audit %s on user %s by %s", action.value, user_id, actor_id or "system")
        return entry

    def save_user(self, user: User, actor_id: Optional[str] = None) -> User:
        """Create or update a profile and record the change in the audit log."""

        existing = self.database.get_user(user.id)
        self.database.upsert_user(
            {
                "id": user.id,
                "full_name": user.full_name,
                "email": user.email,
                "role": user.role.value,
                "department_id": user.department_id,
                "is_active": int(user.is_active),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        saved = self.get_user(user.id)
        if existing is None:
            self._audit(
                AuditAction.CREATED,
                user.id,
                actor_id,
                new_values={
                    "email": saved.email,
                    "full_name": saved.full_name,
                    "role": saved.role.value,
                    "department": saved.department_name or "N/A",
                },
            )
        else:
            before = _profile(user_from_row(existing))
            after = _profile(saved)
            changed = [name for name in after if before[name] != after[name]]
            self._audit(
                AuditAction.UPDATED,
                user.id,
                actor_id,
                old_values=before,
                new_values=after,
                metadata={"updated_fields": changed},
            )
        return saved

    def get_user(self, user_id: str) -> User:
        row = self.database.get_user(user_id)
        if row is None:
            raise NotFoundError(f"user {user_id} not found")
        return user_from_row(row)

    def list_users(self, active_only: bool = True) -> List[User]:
        return [user_from_row(row) for row in self.database.get_users(active_only=active_only)]

    def deactivate_user(self, user_id: str, actor_id: Optional[str] = None) -> None:
        if not self.database.set_user_active(user_id, False):
            raise NotFoundError(f"user {user_id} not found")
        logger.info("Deactivated user %s", user_id)
        self._audit(
            AuditAction.SOFT_DELETED,
            user_id,
            actor_id,
            metadata={"deleted_at": datetime.now(timezone.utc).isoformat()},
        )

    def restore_user(self, user_id: str, actor_id: Optional[str] = None) -> User:
        if not self.database.set_user_active(user_id, True):
            raise NotFoundError(f"user {user_id} not found")
        logger.info("Restored user %s", user_id)
        self._audit(
            AuditAction.RESTORED,
            user_id,
            actor_id,
            metadata={"restored_at": datetime.now(timezone.utc).isoformat()},
        )
        return self.get_user(user_id)

    def transfer_user(
        self,
        user_id: str,
        department_id: int,
        reason: str,
        actor_id: Optional[str] = None,
    ) -> User:
        """Move a user to another department; a reason is mandatory."""

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Please provide a reason for the transfer")
        user = self.get_user(user_id)
        if self.database.get_department(department_id) is None:
            raise NotFoundError(f"department {department_id} not found")
        if user.department_id == department_id:
            raise ValidationError("User is already in this department")
        self.database.set_user_department(user_id, department_id)
        self._audit(
            AuditAction.TRANSFERRED,
            user_id,
            actor_id,
            old_values={"department_id": user.department_id},
            new_values={"department_id": department_id},
            metadata={"reason": reason},
        )
        return self.get_user(user_id)

    def audit_log(self, limit: int = AUDIT_LOG_LIMIT) -> List[AuditEntry]:
        """Most recent audit entries first, never more than ``AUDIT_LOG_LIMIT``."""

        limit = max(1, min(limit, AUDIT_LOG_LIMIT))
        return [audit_from_row(row) for row in self.database.get_audit_logs(limit)]

    def team_members(self, department_id: int) -> List[User]:
        return [user_from_row(row) for row in self.database.get_department_members(department_id)]

    # endregion

    # region Member dashboard
    def today_status(self, user_id: str, now: datetime, test_mode: bool = False) -> StatusResult:
        today = self.local_now(now).date()
        standup = self.database.get_standup(user_id, today)
        leave = self.database.get_approved_leave(user_id, today)
        return compute_today_status(
            now,
            standup_from_row(standup) if standup else None,
            leave_from_row(leave) if leave else None,
            test_mode=test_mode,
            tz=self.settings.timezone,
        )

    def get_streak(self, user_id: str, as_of: date) -> int:
        # the walk may step back one day before its bounded loop starts
        start = as_of - timedelta(days=MAX_LOOKBACK_DAYS + 1)
        dates = self.database.get_submitted_dates(user_id, start, as_of)
        return compute_streak({_parse_day(value) for value in dates}, as_of)

    def get_compliance(
        self, user_id: str, as_of: date, window_days: int = MONTHLY_WINDOW_DAYS
    ) -> ComplianceWindow:
        rows = self.database.get_user_standups(user_id, as_of - timedelta(days=max(window_days, 0)))
        dates = {_parse_day(row["date"]) for row in rows if row["status"] == STANDUP_SUBMITTED}
        return compliance_window(dates, window_days, as_of)

    def get_history(self, user_id: str, as_of: date, days: int = HISTORY_DAYS) -> List[StandupRecord]:
        rows = self.database.get_user_standups(user_id, as_of - timedelta(days=days))
        return [standup_from_row(row) for row in rows]

    def member_dashboard(
        self,
        user_id: str,
        now: datetime,
        preferences: Optional[ClientPreferences] = None,
    ) -> Dict[str, Any]:
        preferences = preferences or ClientPreferences(test_mode=self.settings.test_mode)
        tz = self.settings.timezone
        user = self.get_user(user_id)
        today = self.local_now(now).date()
        result = self.today_status(user_id, now, preferences.test_mode)
        streak = self.get_streak(user_id, today)
        compliance = self.get_compliance(user_id, today)
        method = preferences.preferred_method
        return {
            "user": asdict(user),
            "date": today.isoformat(),
            "status": result.status.value,
            "submitted_at": result.submitted_at.isoformat() if result.submitted_at else None,
            "time_remaining": time_remaining(now, preferences.test_mode, tz),
            "can_submit": can_submit(result.status, preferences.test_mode, now, tz),
            "test_mode": preferences.test_mode,
            "preferred_method": method.value,
            "show_instructions": preferences.show_instructions(method),
            "streak": streak,
            "streak_badge": streak_badge(streak),
            "compliance_rate": compliance.percentage,
        }

    # endregion

    # region Submissions
    def _ensure_open(self, user_id: str, now: datetime, test_mode: bool) -> date:
        result = self.today_status(user_id, now, test_mode)
        if not can_submit(result.status, test_mode, now, self.settings.timezone):
            raise SubmissionClosedError(
                f"Submissions are closed for today (status: {result.status.value})"
            )
        return self.local_now(now).date()

    def submit_text(
        self,
        user_id: str,
        fields: Mapping[str, Optional[str]],
        now: datetime,
        test_mode: bool = False,
    ) -> StandupRecord:
        standup = validate_standup(fields)
        today = self._ensure_open(user_id, now, test_mode)
        record = StandupRecord(
            user_id=user_id,
            date=today,
            submitted_at=now,
            yesterday_work=standup.yesterday_work,
            today_plan=standup.today_plan,
            blockers=standup.blockers,
            next_steps=standup.next_steps,
        )
        self.database.record_standup(
            {
                "user_id": record.user_id,
                "date": record.date.isoformat(),
                "submitted_at": record.submitted_at.isoformat(),
                "yesterday_work": record.yesterday_work,
                "today_plan": record.today_plan,
                "blockers": record.blockers,
                "next_steps": record.next_steps,
                "status": record.status,
                "submission_type": record.submission_type.value,
            }
        )
        logger.info("Recorded text standup for %s on %s", user_id, today)
        return record

    def plan_media_upload(
        self,
        user_id: str,
        media_type: SubmissionMethod,
        content_type: str,
        size: int,
        now: datetime,
    ) -> Dict[str, str]:
        """Validate an upload and return where the client should store it."""

        extension = media_extension(media_type, content_type, size)
        today = self.local_now(now).date()
        return {
            "bucket": self.settings.storage_bucket,
            "object_name": media_object_name(user_id, today, media_type, extension, now),
        }

    async def submit_media(
        self,
        user_id: str,
        media_type: SubmissionMethod,
        media_url: str,
        media_filename: str,
        now: datetime,
        test_mode: bool = False,
    ) -> Dict[str, Any]:
        """Hand an uploaded recording or photo to the webhook, which creates the standup."""

        if self.webhook is None:
            raise WebhookNotConfiguredError("media webhook not configured")
        if media_type == SubmissionMethod.TEXT:
            raise ValueError("text standups are submitted with submit_text")
        today = self._ensure_open(user_id, now, test_mode)
        payload = build_media_payload(
            user_id,
            today,
            media_url,
            media_type,
            media_filename,
            self.settings.storage_bucket,
        )
        logger.info("Sending %s standup for %s to webhook", media_type.value, user_id)
        return await self.webhook.trigger(payload)

    # endregion

    # region Manager views
    def team_status(self, department_id: int, now: datetime, test_mode: bool = False) -> TeamStatus:
        today = self.local_now(now).date()
        members = self.team_members(department_id)
        standups = [standup_from_row(row) for row in self.database.get_standups_by_date(today)]
        leaves = [
            leave_from_row(row) for row in self.database.get_approved_leaves_between(today, today)
        ]
        return summarize_team_status(
            members, standups, leaves, now, test_mode=test_mode, tz=self.settings.timezone
        )

    def weekly_grid(self, department_id: int, now: datetime) -> WeeklyGrid:
        today = self.local_now(now).date()
        # compliance looks one day further back than the grid shows
        start = today - timedelta(days=7)
        members = self.team_members(department_id)
        standups = [standup_from_row(row) for row in self.database.get_standups_between(start, today)]
        leaves = [leave_from_row(row) for row in self.database.get_approved_leaves_between(start, today)]
        return build_weekly_grid(members, standups, leaves, now, tz=self.settings.timezone)

    def attention(self, department_id: int, now: datetime) -> Dict[str, List[User]]:
        grid = self.weekly_grid(department_id, now)
        today = self.local_now(now).date()
        standups = [standup_from_row(row) for row in self.database.get_standups_by_date(today)]
        return needs_attention(grid, standups)

    def get_standup(self, user_id: str, day: date) -> StandupRecord:
        row = self.database.get_standup(user_id, day)
        if row is None:
            raise NotFoundError(f"no standup for {user_id} on {day.isoformat()}")
        return standup_from_row(row)

    # endregion

    # region Leave
    def request_leave(self, user_id: str, day: date, reason: Optional[str] = None) -> LeaveRecord:
        self.get_user(user_id)
        leave_id = self.database.request_leave(user_id, day, reason)
        return LeaveRecord(id=leave_id, user_id=user_id, date=day, reason=reason)

    def decide_leave(self, leave_id: int, approve: bool) -> LeaveRecord:
        status = LeaveStatus.APPROVED if approve else LeaveStatus.REJECTED
        if not self.database.set_leave_status(leave_id, status.value):
            raise NotFoundError(f"leave request {leave_id} not found")
        logger.info("Leave request %s %s", leave_id, status.value)
        return leave_from_row(self.database.get_leave(leave_id))

    def pending_leaves(self, department_id: int) -> List[LeaveRecord]:
        return [leave_from_row(row) for row in self.database.get_pending_leaves(department_id)]

    # endregion

    # region Deliverables
    def submit_deliverable(self, user_id: str, deliverable: DeliverableInput) -> Deliverable:
        self.database.record_deliverable(
            {
                "user_id": user_id,
                "day_number": deliverable.day_number,
                "drive_link": deliverable.drive_link,
                "linkedin_link": deliverable.linkedin_link,
                "notes": deliverable.notes,
            }
        )
        return Deliverable(
            user_id=user_id,
            day_number=deliverable.day_number,
            drive_link=deliverable.drive_link,
            linkedin_link=deliverable.linkedin_link,
            notes=deliverable.notes,
        )

    def deliverable_grid(self) -> DeliverableGrid:
        records = [deliverable_from_row(row) for row in self.database.get_deliverables(FIRST_DAY, LAST_DAY)]
        return build_grid(group_by_user(records), self.list_users(), DAY_RANGE)

    def my_deliverables(self, user_id: str) -> UserDeliverableSummary:
        user = self.get_user(user_id)
        rows = self.database.get_deliverables(FIRST_DAY, LAST_DAY, user_id=user_id)
        records = {row["day_number"]: deliverable_from_row(row) for row in rows}
        return summarize_user(user, records, DAY_RANGE)

    # endregion

    # region Todos
    def list_todos(self, user_id: str, day: date) -> List[TodoItem]:
        return [todo_from_row(row) for row in self.database.get_todos(user_id, day)]

    def add_todo(self, user_id: str, day: date, task_text: str) -> TodoItem:
        existing = self.list_todos(user_id, day)
        text = validate_todo(task_text, len(existing))
        position = max((todo.position for todo in existing), default=0) + 1
        todo_id = self.database.add_todo(user_id, day, text, position)
        return TodoItem(id=todo_id, user_id=user_id, date=day, task_text=text, position=position)

    def set_todo_completed(self, user_id: str, todo_id: int, completed: bool) -> None:
        if not self.database.set_todo_completed(todo_id, user_id, completed):
            raise NotFoundError(f"todo {todo_id} not found")

    def delete_todo(self, user_id: str, todo_id: int) -> None:
        if not self.database.delete_todo(todo_id, user_id):
            raise NotFoundError(f"todo {todo_id} not found")

    def all_todos(self, day: date) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for row in self.database.get_todos_by_date(day):
            item = asdict(todo_from_row(row))
            item["date"] = item["date"].isoformat()
            grouped.setdefault(row["full_name"], []).append(item)
        return grouped

    # endregion


__all__ = [
    "StandupService",
    "SubmissionClosedError",
    "NotFoundError",
    "user_from_row",
    "standup_from_row",
    "leave_from_row",
    "deliverable_from_row",
    "todo_from_row",
    "audit_from_row",
    "AUDIT_LOG_LIMIT",
]
