from __future__ import annotations

import json
import sqlite3
from datetime import date, timedelta

import httpx
import pytest

from standup_tracker.config import ClientPreferences
from standup_tracker.models import AuditAction, LeaveStatus, SubmissionMethod, User
from standup_tracker.service import NotFoundError, StandupService, SubmissionClosedError
from standup_tracker.status import TodayStatus
from standup_tracker.validation import ValidationError, validate_deliverable
from standup_tracker.webhook import WebhookClient, WebhookError, WebhookNotConfiguredError
from tests.fixtures import FRI, MON, NEXT_MON, SAT, STANDUP_FIELDS, THU, TUE, WED, at, seed_standup


class TestSubmissions:
    def test_text_submission_inside_window(self, service, team):
        record = service.submit_text("u-alice", STANDUP_FIELDS, at(WED, 9, 15))
        assert record.date == WED
        status = service.today_status("u-alice", at(WED, 9, 30))
        assert status.status is TodayStatus.SUBMITTED
        assert status.submitted_at == at(WED, 9, 15)

    def test_second_submission_is_rejected(self, service, team):
        service.submit_text("u-alice", STANDUP_FIELDS, at(WED, 9), test_mode=True)
        with pytest.raises(sqlite3.IntegrityError):
            service.submit_text("u-alice", STANDUP_FIELDS, at(WED, 9, 30), test_mode=True)

    def test_closed_after_cutoff(self, service, team):
        with pytest.raises(SubmissionClosedError, match="missed"):
            service.submit_text("u-alice", STANDUP_FIELDS, at(WED, 10, 5))

    def test_closed_before_window(self, service, team):
        with pytest.raises(SubmissionClosedError, match="pending"):
            service.submit_text("u-alice", STANDUP_FIELDS, at(WED, 7, 30))

    def test_closed_on_weekend(self, service, team):
        with pytest.raises(SubmissionClosedError, match="weekend"):
            service.submit_text("u-alice", STANDUP_FIELDS, at(SAT, 9))

    def test_test_mode_opens_weekend(self, service, team):
        record = service.submit_text("u-alice", STANDUP_FIELDS, at(SAT, 22), test_mode=True)
        assert record.date == SAT

    def test_incomplete_form(self, service, team):
        with pytest.raises(ValidationError):
            service.submit_text("u-alice", {"yesterday_work": "x"}, at(WED, 9))

    def test_upload_plan(self, service, team):
        plan = service.plan_media_upload("u-alice", SubmissionMethod.IMAGE, "image/png", 2048, at(WED, 9))
        assert plan["bucket"] == "daily-standups"
        assert plan["object_name"].startswith("u-alice/2024-06-05/standup-image-")
        assert plan["object_name"].endswith(".png")


class TestMediaSubmission:
    async def test_requires_webhook(self, service, team):
        with pytest.raises(WebhookNotConfiguredError):
            await service.submit_media(
                "u-alice", SubmissionMethod.AUDIO, "https://cdn/x.webm", "x.webm", at(WED, 9)
            )

    async def test_payload_sent_to_webhook(self, settings, database, team):
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        webhook = WebhookClient("https://hooks.example.com/x", transport=httpx.MockTransport(handler))
        service = StandupService(settings, database, webhook)
        result = await service.submit_media(
            "u-alice",
            SubmissionMethod.AUDIO,
            "https://cdn.example.com/u-alice/2024-06-05/standup-audio-1.webm",
            "u-alice/2024-06-05/standup-audio-1.webm",
            at(WED, 9),
        )
        await webhook.close()

        assert result == {"ok": True}
        assert seen == [
            {
                "user_id": "u-alice",
                "date": "2024-06-05",
                "media_url": "https://cdn.example.com/u-alice/2024-06-05/standup-audio-1.webm",
                "media_type": "audio",
                "media_filename": "u-alice/2024-06-05/standup-audio-1.webm",
                "bucket": "daily-standups",
            }
        ]

    async def test_webhook_failure_surfaces(self, settings, database, team):
        async def no_wait(_: float) -> None:
            return None

        webhook = WebhookClient(
            "https://hooks.example.com/x",
            sleep=no_wait,
            transport=httpx.MockTransport(lambda request: httpx.Response(502)),
        )
        service = StandupService(settings, database, webhook)
        with pytest.raises(WebhookError, match="after 3 attempts"):
            await service.submit_media(
                "u-alice", SubmissionMethod.IMAGE, "https://cdn/x.png", "x.png", at(WED, 9)
            )
        await webhook.close()

    async def test_window_checked_before_webhook(self, settings, database, team):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200)

        webhook = WebhookClient("https://hooks.example.com/x", transport=httpx.MockTransport(handler))
        service = StandupService(settings, database, webhook)
        with pytest.raises(SubmissionClosedError):
            await service.submit_media(
                "u-alice", SubmissionMethod.IMAGE, "https://cdn/x.png", "x.png", at(WED, 11)
            )
        await webhook.close()
        assert calls == 0


class TestMemberDashboard:
    def test_dashboard(self, service, database, team):
        for day in (MON, TUE, WED):
            seed_standup(database, "u-alice", day)
        dashboard = service.member_dashboard("u-alice", at(THU, 8, 30))
        assert dashboard["status"] == "pending"
        assert dashboard["can_submit"] is True
        assert dashboard["time_remaining"] == "1h 30m remaining"
        assert dashboard["streak"] == 3
        assert dashboard["streak_badge"] is None
        assert dashboard["user"]["department_name"] == "Engineering"
        # weekdays from 2024-05-07 to 2024-06-06 number 23
        assert dashboard["compliance_rate"] == 13

    def test_dashboard_in_test_mode(self, service, team):
        prefs = ClientPreferences(test_mode=True, preferred_method=SubmissionMethod.AUDIO)
        dashboard = service.member_dashboard("u-alice", at(SAT, 20), prefs)
        assert dashboard["status"] == "pending"
        assert dashboard["can_submit"] is True
        assert dashboard["time_remaining"] is None
        assert dashboard["preferred_method"] == "audio"
        assert dashboard["show_instructions"] is True

    def test_on_leave(self, service, team):
        leave = service.request_leave("u-alice", WED, "dentist")
        assert service.today_status("u-alice", at(WED, 11)).status is TodayStatus.MISSED
        service.decide_leave(leave.id, approve=True)
        assert service.today_status("u-alice", at(WED, 11)).status is TodayStatus.ON_LEAVE

    def test_history(self, service, database, team):
        for day in (MON, WED, FRI):
            seed_standup(database, "u-alice", day)
        history = service.get_history("u-alice", NEXT_MON)
        assert [record.date for record in history] == [FRI, WED, MON]

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.member_dashboard("ghost", at(WED, 9))


class TestManagerViews:
    def test_team_status_excludes_managers_and_inactive(self, service, database, team):
        seed_standup(database, "u-alice", WED)
        service.deactivate_user("u-bob")
        status = service.team_status(team["department"].id, at(WED, 9, 30))
        assert [row.user.id for row in status.members] == ["u-alice"]
        assert status.submission_rate == 100

    def test_team_status_counts(self, service, database, team):
        seed_standup(database, "u-alice", WED)
        status = service.team_status(team["department"].id, at(WED, 10, 30))
        assert status.counts["submitted"] == 1
        assert status.counts["missed"] == 1
        assert status.submission_rate == 50

    def test_weekly_grid_and_attention(self, service, database, team):
        for day in (MON, TUE, WED, THU, FRI):
            seed_standup(database, "u-alice", day, blockers="")
        seed_standup(database, "u-bob", FRI, blockers="Waiting for review")
        grid = service.weekly_grid(team["department"].id, at(FRI, 12))
        alice, bob = grid.members
        # Friday 2024-05-31 is inside the seven-day compliance window
        assert alice.compliance == 83
        assert bob.missed_days == 4
        flagged = service.attention(team["department"].id, at(FRI, 12))
        assert [user.id for user in flagged["poor_compliance"]] == ["u-bob"]
        assert [user.id for user in flagged["blockers"]] == ["u-bob"]

    def test_leave_flow(self, service, team):
        leave = service.request_leave("u-bob", THU)
        pending = service.pending_leaves(team["department"].id)
        assert [item.id for item in pending] == [leave.id]
        decided = service.decide_leave(leave.id, approve=False)
        assert decided.status is LeaveStatus.REJECTED
        assert service.pending_leaves(team["department"].id) == []
        with pytest.raises(NotFoundError):
            service.decide_leave(9999, approve=True)

    def test_get_standup(self, service, database, team):
        seed_standup(database, "u-alice", WED)
        assert service.get_standup("u-alice", WED).today_plan == "plan"
        with pytest.raises(NotFoundError):
            service.get_standup("u-alice", THU)


class TestDeliverables:
    def test_grid_includes_everyone(self, service, team):
        service.submit_deliverable(
            "u-alice", validate_deliverable(45, "https://drive.example.com/a", agreed=True)
        )
        grid = service.deliverable_grid()
        counts = {summary.user.id: summary.submitted_count for summary in grid.users}
        assert counts == {"u-alice": 1, "u-bob": 0, "u-mgr": 0}
        assert grid.groups[0].total_possible == 78

    def test_duplicate_day_rejected(self, service, team):
        deliverable = validate_deliverable(50, "https://drive.example.com/a", agreed=True)
        service.submit_deliverable("u-alice", deliverable)
        with pytest.raises(sqlite3.IntegrityError):
            service.submit_deliverable("u-alice", deliverable)

    def test_my_deliverables(self, service, team):
        service.submit_deliverable(
            "u-bob", validate_deliverable(70, "https://drive.example.com/b", agreed=True)
        )
        summary = service.my_deliverables("u-bob")
        assert summary.submitted_count == 1
        assert summary.missing_count == 25
        assert 70 not in summary.missing_days


class TestTodos:
    def test_todo_lifecycle(self, service, team):
        first = service.add_todo("u-alice", WED, "Write tests")
        second = service.add_todo("u-alice", WED, "Ship it")
        assert (first.position, second.position) == (1, 2)
        service.set_todo_completed("u-alice", first.id, True)
        todos = service.list_todos("u-alice", WED)
        assert [todo.is_completed for todo in todos] == [True, False]
        service.delete_todo("u-alice", second.id)
        assert len(service.list_todos("u-alice", WED)) == 1
        with pytest.raises(NotFoundError):
            service.delete_todo("u-bob", first.id)

    def test_five_per_day(self, service, team):
        for index in range(5):
            service.add_todo("u-alice", WED, f"task {index}")
        with pytest.raises(ValidationError):
            service.add_todo("u-alice", WED, "task 6")
        assert len(service.list_todos("u-alice", THU)) == 0

    def test_all_todos_grouped_by_name(self, service, team):
        service.add_todo("u-bob", WED, "Review PR")
        service.add_todo("u-alice", WED, "Plan sprint")
        grouped = service.all_todos(WED)
        assert list(grouped) == ["Alice Adams", "Bob Brown"]
        assert grouped["Bob Brown"][0]["task_text"] == "Review PR"


class TestStreakHistory:
    def test_streak_at_past_date_ignores_later_submissions(self, service, database, team):
        day = date(2024, 1, 1)
        while day <= date(2024, 5, 31):
            if day.weekday() < 5:
                seed_standup(database, "u-alice", day)
            day += timedelta(days=1)
        # 2024-01-01 is a Monday, so 2024-01-19 closes the third full week
        assert service.get_streak("u-alice", date(2024, 1, 19)) == 15
        # sixty calendar days back from 2024-05-31 hold 44 weekdays
        assert service.get_streak("u-alice", date(2024, 5, 31)) == 44

    def test_unsubmitted_rows_do_not_count(self, service, database, team):
        seed_standup(database, "u-alice", MON)
        seed_standup(database, "u-alice", TUE, status="processing")
        seed_standup(database, "u-alice", WED)
        assert service.get_streak("u-alice", WED) == 1


class TestTodoPositions:
    def test_position_after_delete(self, service, team):
        first, second, third = (service.add_todo("u-alice", WED, f"task {n}") for n in range(3))
        service.delete_todo("u-alice", first.id)
        added = service.add_todo("u-alice", WED, "task 3")
        assert added.position == 4
        positions = [todo.position for todo in service.list_todos("u-alice", WED)]
        assert positions == [2, 3, 4]


class TestAuditLog:
    def test_created_and_updated(self, service, team):
        entries = service.audit_log()
        assert [entry.action for entry in entries] == [AuditAction.CREATED] * 3
        assert entries[-1].target_id == "u-alice"
        assert entries[-1].new_values["department"] == "Engineering"

        alice = team["alice"]
        alice.full_name = "Alice Archer"
        service.save_user(alice, actor_id="u-admin")
        latest = service.audit_log(limit=1)[0]
        assert latest.action is AuditAction.UPDATED
        assert latest.actor_id == "u-admin"
        assert latest.old_values["full_name"] == "Alice Adams"
        assert latest.new_values["full_name"] == "Alice Archer"
        assert latest.metadata == {"updated_fields": ["full_name"]}

    def test_deactivate_and_restore(self, service, team):
        service.deactivate_user("u-bob", actor_id="u-admin")
        assert [user.id for user in service.list_users()] == ["u-alice", "u-mgr"]
        restored = service.restore_user("u-bob", actor_id="u-admin")
        assert restored.is_active is True

        restore, delete = service.audit_log(limit=2)
        assert delete.action is AuditAction.SOFT_DELETED
        assert "deleted_at" in delete.metadata
        assert restore.action is AuditAction.RESTORED
        assert "restored_at" in restore.metadata
        with pytest.raises(NotFoundError):
            service.restore_user("ghost")

    def test_transfer_requires_reason(self, service, team):
        sales = service.create_department("Sales")
        with pytest.raises(ValidationError, match="reason"):
            service.transfer_user("u-bob", sales.id, "  ")
        with pytest.raises(ValidationError, match="already"):
            service.transfer_user("u-bob", team["department"].id, "no-op")
        with pytest.raises(NotFoundError):
            service.transfer_user("u-bob", 999, "Reorg")

        moved = service.transfer_user("u-bob", sales.id, "Reorg", actor_id="u-admin")
        assert moved.department_name == "Sales"
        assert [user.id for user in service.team_members(team["department"].id)] == ["u-alice"]
        entry = service.audit_log(limit=1)[0]
        assert entry.action is AuditAction.TRANSFERRED
        assert entry.old_values == {"department_id": team["department"].id}
        assert entry.new_values == {"department_id": sales.id}
        assert entry.metadata == {"reason": "Reorg"}

    def test_limit_is_capped(self, service, team):
        for index in range(101):
            service.save_user(User(id=f"u-{index}", full_name=f"User {index}"))
        assert len(service.audit_log(limit=500)) == 100
        assert len(service.audit_log(limit=5)) == 5
