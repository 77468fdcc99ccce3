"""Configuration helpers for Standup Tracker."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from .models import SubmissionMethod

INSTRUCTION_VIEW_LIMIT = 3


@dataclass(slots=True)
class Settings:
    """Runtime configuration values loaded from environment variables."""

    api_key: str
    database_path: Path
    webhook_url: Optional[str] = None
    webhook_timeout: float = 30.0
    webhook_retry_attempts: int = 3
    webhook_retry_delay: float = 2.0
    storage_bucket: str = "daily-standups"
    timezone: ZoneInfo = ZoneInfo("UTC")
    test_mode: bool = False

    @property
    def webhook_enabled(self) -> bool:
        return bool(self.webhook_url)


@dataclass(slots=True)
class ClientPreferences:
    """Per-viewer toggles the browser used to keep in local storage."""

    test_mode: bool = False
    preferred_method: SubmissionMethod = SubmissionMethod.TEXT
    audio_instruction_views: int = 0
    image_instruction_views: int = 0
    hide_instructions: bool = False

    def show_instructions(self, method: SubmissionMethod) -> bool:
        if self.hide_instructions or method == SubmissionMethod.TEXT:
            return False
        if method == SubmissionMethod.AUDIO:
            views = self.audio_instruction_views
        else:
            views = self.image_instruction_views
        return views < INSTRUCTION_VIEW_LIMIT


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from the environment, optionally from a specific file."""

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    api_key = os.getenv("API_KEY")
    if not api_key:
        raise RuntimeError("API_KEY must be configured")

    retry_attempts = int(os.getenv("WEBHOOK_RETRY_ATTEMPTS", "3"))
    if retry_attempts < 1:
        raise RuntimeError("WEBHOOK_RETRY_ATTEMPTS must be at least 1")

    db_path = Path(os.getenv("DATABASE_PATH", "standup_tracker.db")).expanduser()

    return Settings(
        api_key=api_key,
        database_path=db_path,
        webhook_url=os.getenv("WEBHOOK_URL") or None,
        webhook_timeout=float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "30")),
        webhook_retry_attempts=retry_attempts,
        webhook_retry_delay=float(os.getenv("WEBHOOK_RETRY_DELAY_SECONDS", "2")),
        storage_bucket=os.getenv("STORAGE_BUCKET", "daily-standups"),
        timezone=ZoneInfo(os.getenv("TIMEZONE", "UTC")),
        test_mode=_env_flag("TEST_MODE"),
    )


__all__ = ["Settings", "ClientPreferences", "INSTRUCTION_VIEW_LIMIT", "load_settings"]
