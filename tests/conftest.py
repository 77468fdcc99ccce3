from __future__ import annotations

from pathlib import Path

import pytest

from standup_tracker.config import Settings
from standup_tracker.db import Database
from standup_tracker.models import Role, User
from standup_tracker.service import StandupService


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(api_key="test-key", database_path=tmp_path / "standups.db")


@pytest.fixture
def database(settings: Settings) -> Database:
    return Database(settings.database_path)


@pytest.fixture
def service(settings: Settings, database: Database) -> StandupService:
    return StandupService(settings, database)


@pytest.fixture
def team(service: StandupService) -> dict:
    """One department with two members and a manager."""

    dept = service.create_department("Engineering")
    alice = service.save_user(
        User(id="u-alice", full_name="Alice Adams", role=Role.MEMBER, department_id=dept.id)
    )
    bob = service.save_user(
        User(id="u-bob", full_name="Bob Brown", role=Role.MEMBER, department_id=dept.id)
    )
    manager = service.save_user(
        User(id="u-mgr", full_name="Maya Manager", role=Role.MANAGER, department_id=dept.id)
    )
    return {"department": dept, "alice": alice, "bob": bob, "manager": manager}
