from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest

from standup_tracker.config import ClientPreferences, load_settings
from standup_tracker.models import SubmissionMethod


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in (
        "API_KEY",
        "DATABASE_PATH",
        "WEBHOOK_URL",
        "WEBHOOK_RETRY_ATTEMPTS",
        "TIMEZONE",
        "TEST_MODE",
    ):
        # register every name so values loaded from .env files are undone afterwards
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


def test_missing_api_key(tmp_path):
    with pytest.raises(RuntimeError, match="API_KEY"):
        load_settings(str(tmp_path / "missing.env"))


def test_loads_from_env_file(tmp_path):
    env_file = tmp_path / "tracker.env"
    env_file.write_text(
        "API_KEY=secret\n"
        "WEBHOOK_URL=https://hooks.example.com/x\n"
        "WEBHOOK_RETRY_ATTEMPTS=5\n"
        "TIMEZONE=Europe/Berlin\n"
        "TEST_MODE=true\n"
    )
    settings = load_settings(str(env_file))
    assert settings.api_key == "secret"
    assert settings.webhook_enabled
    assert settings.webhook_retry_attempts == 5
    assert settings.webhook_retry_delay == 2.0
    assert settings.webhook_timeout == 30.0
    assert settings.storage_bucket == "daily-standups"
    assert settings.timezone == ZoneInfo("Europe/Berlin")
    assert settings.test_mode is True


def test_webhook_disabled_without_url(monkeypatch, tmp_path):
    monkeypatch.setenv("API_KEY", "secret")
    settings = load_settings(str(tmp_path / "missing.env"))
    assert not settings.webhook_enabled
    assert settings.test_mode is False


def test_instruction_prompts():
    prefs = ClientPreferences(audio_instruction_views=2, image_instruction_views=3)
    assert prefs.show_instructions(SubmissionMethod.AUDIO)
    assert not prefs.show_instructions(SubmissionMethod.IMAGE)
    assert not prefs.show_instructions(SubmissionMethod.TEXT)
    hidden = ClientPreferences(hide_instructions=True)
    assert not hidden.show_instructions(SubmissionMethod.AUDIO)


def test_zero_retry_attempts_rejected(monkeypatch, tmp_path):
    monkeypatch.setenv("API_KEY", "secret")
    monkeypatch.setenv("WEBHOOK_RETRY_ATTEMPTS", "0")
    with pytest.raises(RuntimeError, match="WEBHOOK_RETRY_ATTEMPTS"):
        load_settings(str(tmp_path / "missing.env"))
