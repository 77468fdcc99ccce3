"""FastAPI application exposing the Standup Tracker REST API."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .compliance import TeamStatus, WeeklyGrid
from .config import ClientPreferences, Settings, load_settings
from .db import Database
from .deliverables import DeliverableGrid, GroupSummary, UserDeliverableSummary
from .models import Role, SubmissionMethod, User
from .service import AUDIT_LOG_LIMIT, NotFoundError, StandupService, SubmissionClosedError
from .validation import ValidationError, validate_deliverable
from .webhook import WebhookClient, WebhookError, WebhookNotConfiguredError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# region Request bodies
class DepartmentIn(BaseModel):
    name: str


class UserIn(BaseModel):
    id: str
    full_name: str
    email: Optional[str] = None
    role: Role = Role.MEMBER
    department_id: Optional[int] = None
    is_active: bool = True


class StandupIn(BaseModel):
    yesterday_work: Optional[str] = None
    today_plan: Optional[str] = None
    blockers: Optional[str] = None
    next_steps: Optional[str] = None


class UploadPlanIn(BaseModel):
    media_type: SubmissionMethod
    content_type: str
    size: int


class MediaIn(BaseModel):
    media_type: SubmissionMethod
    media_url: str
    media_filename: str


class LeaveIn(BaseModel):
    day: date
    reason: Optional[str] = None


class LeaveDecisionIn(BaseModel):
    approve: bool


class TransferIn(BaseModel):
    department_id: int
    reason: str


class DeliverableIn(BaseModel):
    day_number: int
    drive_link: str
    linkedin_link: Optional[str] = None
    notes: Optional[str] = None
    agreed: bool = False


class TodoIn(BaseModel):
    task_text: str


class TodoUpdateIn(BaseModel):
    is_completed: bool


# endregion


# region Serializers
def _user(user: User) -> Dict[str, Any]:
    data = asdict(user)
    data["role"] = user.role.value
    return data


def _team_status(team: TeamStatus) -> Dict[str, Any]:
    return {
        "total": team.total,
        "counts": team.counts,
        "submission_rate": team.submission_rate,
        "members": [
            {
                "user": _user(row.user),
                "status": row.status.value,
                "submitted_at": row.submitted_at.isoformat() if row.submitted_at else None,
                "submission_type": row.submission_type,
            }
            for row in team.members
        ],
    }


def _weekly_grid(grid: WeeklyGrid) -> Dict[str, Any]:
    return {
        "days": [day.isoformat() for day in grid.days],
        "team_compliance": grid.team_compliance,
        "daily_rates": {day.isoformat(): rate for day, rate in grid.daily_rates().items()},
        "members": [
            {
                "user": _user(member.user),
                "days": {day.isoformat(): value.value for day, value in member.days.items()},
                "missed_days": member.missed_days,
                "compliance": member.compliance,
            }
            for member in grid.members
        ],
    }


def _deliverable_summary(summary: UserDeliverableSummary) -> Dict[str, Any]:
    return {
        "user": _user(summary.user),
        "submitted_count": summary.submitted_count,
        "missing_count": summary.missing_count,
        "completion_rate": summary.completion_rate,
        "missing_days": summary.missing_days,
        "cells": {
            str(day): (
                {"drive_link": cell.drive_link, "linkedin_link": cell.linkedin_link}
                if cell
                else None
            )
            for day, cell in summary.cells.items()
        },
    }


def _group(group: GroupSummary) -> Dict[str, Any]:
    return {
        "name": group.name,
        "total_members": group.total_members,
        "total_submissions": group.total_submissions,
        "total_possible": group.total_possible,
        "completion_rate": group.completion_rate,
        "users": [_deliverable_summary(user) for user in group.users],
    }


def _deliverable_grid(grid: DeliverableGrid) -> Dict[str, Any]:
    return {
        "days": grid.days,
        "overall": grid.overall(),
        "groups": [_group(group) for group in grid.groups],
    }


# endregion


def create_app(
    settings: Optional[Settings] = None,
    *,
    clock: Optional[Clock] = None,
    webhook: Optional[WebhookClient] = None,
) -> FastAPI:
    settings = settings or load_settings()
    database = Database(settings.database_path)
    if webhook is None and settings.webhook_enabled:
        webhook = WebhookClient(
            settings.webhook_url,
            timeout=settings.webhook_timeout,
            attempts=settings.webhook_retry_attempts,
            retry_delay=settings.webhook_retry_delay,
        )
    service = StandupService(settings, database, webhook)

    def now() -> datetime:
        return clock() if clock else datetime.now(settings.timezone)

    async def verify_api_key(x_api_key: str = Header(..., alias="X-API-Key")) -> None:
        if x_api_key != settings.api_key:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid api key")

    def date_dependency(value: Optional[str] = Query(None, alias="date")) -> date:
        if not value:
            return service.local_now(now()).date()
        try:
            return datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD") from exc

    def actor_dependency(x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id")) -> Optional[str]:
        return x_actor_id

    def test_mode_dependency(test_mode: Optional[bool] = None) -> bool:
        return settings.test_mode if test_mode is None else test_mode

    app = FastAPI(title="Standup Tracker API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - io bound
        if webhook is not None:
            await webhook.close()

    # region Error mapping
    @app.exception_handler(ValidationError)
    async def validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(SubmissionClosedError)
    async def submission_closed(_: Request, exc: SubmissionClosedError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(sqlite3.IntegrityError)
    async def conflict(_: Request, exc: sqlite3.IntegrityError) -> JSONResponse:
        logger.info("Rejected duplicate record: %s", exc)
        return JSONResponse(status_code=409, content={"detail": "record already exists"})

    @app.exception_handler(WebhookNotConfiguredError)
    async def webhook_missing(_: Request, exc: WebhookNotConfiguredError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(WebhookError)
    async def webhook_failed(_: Request, exc: WebhookError) -> JSONResponse:
        logger.error("Media processing failed: %s", exc)
        if exc.timed_out:
            detail = "Processing is taking longer than expected. Please refresh in a minute."
            return JSONResponse(status_code=504, content={"detail": detail})
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    # endregion

    def get_service() -> StandupService:
        return service

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    # region Admin
    @app.get("/api/departments")
    async def list_departments(
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return {"departments": [asdict(dept) for dept in svc.list_departments()]}

    @app.post("/api/departments", status_code=201)
    async def create_department(
        body: DepartmentIn,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return asdict(svc.create_department(body.name))

    @app.get("/api/users")
    async def list_users(
        include_inactive: bool = False,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        users = svc.list_users(active_only=not include_inactive)
        return {"users": [_user(user) for user in users]}

    @app.post("/api/users", status_code=201)
    async def save_user(
        body: UserIn,
        actor_id: Optional[str] = Depends(actor_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        user = svc.save_user(User(**body.model_dump()), actor_id)
        return _user(user)

    @app.delete("/api/users/{user_id}", status_code=204)
    async def deactivate_user(
        user_id: str,
        actor_id: Optional[str] = Depends(actor_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> None:
        svc.deactivate_user(user_id, actor_id)

    @app.post("/api/users/{user_id}/restore")
    async def restore_user(
        user_id: str,
        actor_id: Optional[str] = Depends(actor_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return _user(svc.restore_user(user_id, actor_id))

    @app.post("/api/users/{user_id}/transfer")
    async def transfer_user(
        user_id: str,
        body: TransferIn,
        actor_id: Optional[str] = Depends(actor_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return _user(svc.transfer_user(user_id, body.department_id, body.reason, actor_id))

    @app.get("/api/audit-logs")
    async def audit_logs(
        limit: int = Query(AUDIT_LOG_LIMIT, ge=1, le=AUDIT_LOG_LIMIT),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return {"logs": [asdict(entry) for entry in svc.audit_log(limit)]}

    # endregion

    # region Member
    @app.get("/api/members/{user_id}/dashboard")
    async def member_dashboard(
        user_id: str,
        test_mode: bool = Depends(test_mode_dependency),
        preferred_method: SubmissionMethod = SubmissionMethod.TEXT,
        audio_instruction_views: int = 0,
        image_instruction_views: int = 0,
        hide_instructions: bool = False,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        preferences = ClientPreferences(
            test_mode=test_mode,
            preferred_method=preferred_method,
            audio_instruction_views=audio_instruction_views,
            image_instruction_views=image_instruction_views,
            hide_instructions=hide_instructions,
        )
        return svc.member_dashboard(user_id, now(), preferences)

    @app.get("/api/members/{user_id}/history")
    async def member_history(
        user_id: str,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        today = svc.local_now(now()).date()
        return {"history": [asdict(record) for record in svc.get_history(user_id, today)]}

    @app.post("/api/members/{user_id}/standups", status_code=201)
    async def submit_standup(
        user_id: str,
        body: StandupIn,
        test_mode: bool = Depends(test_mode_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        record = svc.submit_text(user_id, body.model_dump(), now(), test_mode)
        return asdict(record)

    @app.post("/api/members/{user_id}/media/upload-plan")
    async def plan_upload(
        user_id: str,
        body: UploadPlanIn,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return svc.plan_media_upload(user_id, body.media_type, body.content_type, body.size, now())

    @app.post("/api/members/{user_id}/media", status_code=202)
    async def submit_media(
        user_id: str,
        body: MediaIn,
        test_mode: bool = Depends(test_mode_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        result = await svc.submit_media(
            user_id, body.media_type, body.media_url, body.media_filename, now(), test_mode
        )
        return {"status": "processed", "result": result}

    @app.post("/api/members/{user_id}/leave", status_code=201)
    async def request_leave(
        user_id: str,
        body: LeaveIn,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return asdict(svc.request_leave(user_id, body.day, body.reason))

    @app.get("/api/members/{user_id}/deliverables")
    async def my_deliverables(
        user_id: str,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return _deliverable_summary(svc.my_deliverables(user_id))

    @app.post("/api/members/{user_id}/deliverables", status_code=201)
    async def submit_deliverable(
        user_id: str,
        body: DeliverableIn,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        deliverable = validate_deliverable(
            body.day_number, body.drive_link, body.linkedin_link, body.notes, body.agreed
        )
        return asdict(svc.submit_deliverable(user_id, deliverable))

    @app.get("/api/members/{user_id}/todos")
    async def list_todos(
        user_id: str,
        d: date = Depends(date_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return {"date": d.isoformat(), "todos": [asdict(todo) for todo in svc.list_todos(user_id, d)]}

    @app.post("/api/members/{user_id}/todos", status_code=201)
    async def add_todo(
        user_id: str,
        body: TodoIn,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        today = svc.local_now(now()).date()
        return asdict(svc.add_todo(user_id, today, body.task_text))

    @app.patch("/api/members/{user_id}/todos/{todo_id}", status_code=204)
    async def update_todo(
        user_id: str,
        todo_id: int,
        body: TodoUpdateIn,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> None:
        svc.set_todo_completed(user_id, todo_id, body.is_completed)

    @app.delete("/api/members/{user_id}/todos/{todo_id}", status_code=204)
    async def delete_todo(
        user_id: str,
        todo_id: int,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> None:
        svc.delete_todo(user_id, todo_id)

    # endregion

    # region Manager
    @app.get("/api/teams/{department_id}/status")
    async def team_status(
        department_id: int,
        test_mode: bool = Depends(test_mode_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return _team_status(svc.team_status(department_id, now(), test_mode))

    @app.get("/api/teams/{department_id}/weekly")
    async def team_weekly(
        department_id: int,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return _weekly_grid(svc.weekly_grid(department_id, now()))

    @app.get("/api/teams/{department_id}/attention")
    async def team_attention(
        department_id: int,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        flagged = svc.attention(department_id, now())
        return {key: [_user(user) for user in users] for key, users in flagged.items()}

    @app.get("/api/teams/{department_id}/leave")
    async def pending_leave(
        department_id: int,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return {"pending": [asdict(leave) for leave in svc.pending_leaves(department_id)]}

    @app.post("/api/leave/{leave_id}/decision")
    async def decide_leave(
        leave_id: int,
        body: LeaveDecisionIn,
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return asdict(svc.decide_leave(leave_id, body.approve))

    @app.get("/api/standup")
    async def get_standup(
        user: str,
        d: date = Depends(date_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return {"date": d.isoformat(), "standup": asdict(svc.get_standup(user, d))}

    @app.get("/api/deliverables")
    async def deliverable_report(
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return _deliverable_grid(svc.deliverable_grid())

    @app.get("/api/todos")
    async def all_todos(
        d: date = Depends(date_dependency),
        _: None = Depends(verify_api_key),
        svc: StandupService = Depends(get_service),
    ) -> dict[str, object]:
        return {"date": d.isoformat(), "todos": svc.all_todos(d)}

    # endregion

    return app


__all__ = ["create_app"]
