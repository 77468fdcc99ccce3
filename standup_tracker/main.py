"""Entrypoint for running the Standup Tracker API via `python -m standup_tracker.main`."""

from __future__ import annotations

import logging
import os

import uvicorn

from .api import create_app
from .config import load_settings


def run() -> None:
    log_level = os.getenv("LOG_LEVEL", "info")
    logging.basicConfig(level=log_level.upper(), handlers=[logging.StreamHandler()])
    env_file = os.getenv("STANDUP_TRACKER_ENV")
    settings = load_settings(env_file)
    if not settings.webhook_enabled:
        logging.getLogger("standup_tracker").warning(
            "WEBHOOK_URL is not set. Audio and image standups will be rejected."
        )
    app = create_app(settings)
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level=log_level,
    )


if __name__ == "__main__":  # pragma: no cover
    run()
