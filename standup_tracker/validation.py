"""Input checks for standup, deliverable, media and todo submissions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Optional

from .deliverables import FIRST_DAY, LAST_DAY
from .models import SubmissionMethod

STANDUP_FIELDS = ("yesterday_work", "today_plan", "blockers", "next_steps")
URL_PATTERN = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
IMAGE_TYPES = {"image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png"}
AUDIO_TYPES = {"audio/webm": "webm"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_TODOS_PER_DAY = 5


class ValidationError(ValueError):
    """Raised when submitted form data is incomplete or malformed."""


@dataclass(slots=True)
class StandupFields:
    yesterday_work: str
    today_plan: str
    blockers: str
    next_steps: str


@dataclass(slots=True)
class DeliverableInput:
    day_number: int
    drive_link: str
    linkedin_link: Optional[str] = None
    notes: Optional[str] = None


def validate_standup(data: Mapping[str, Optional[str]]) -> StandupFields:
    missing = [name for name in STANDUP_FIELDS if not (data.get(name) or "").strip()]
    if missing:
        raise ValidationError(f"Please fill in all fields: {', '.join(missing)}")
    return StandupFields(**{name: (data[name] or "").strip() for name in STANDUP_FIELDS})


def is_url(value: str) -> bool:
    return bool(URL_PATTERN.match(value.strip()))


def validate_deliverable(
    day_number: int,
    drive_link: str,
    linkedin_link: Optional[str] = None,
    notes: Optional[str] = None,
    agreed: bool = False,
) -> DeliverableInput:
    if not FIRST_DAY <= day_number <= LAST_DAY:
        raise ValidationError(f"Day number must be between {FIRST_DAY} and {LAST_DAY}")
    if not is_url(drive_link or ""):
        raise ValidationError("Please enter a valid URL")
    if linkedin_link and not is_url(linkedin_link):
        raise ValidationError("Please enter a valid URL")
    if not agreed:
        raise ValidationError("You must confirm that you have followed the instructions")
    return DeliverableInput(
        day_number=day_number,
        drive_link=drive_link.strip(),
        linkedin_link=linkedin_link.strip() if linkedin_link else None,
        notes=notes or None,
    )


def media_extension(media_type: SubmissionMethod, content_type: str, size: int) -> str:
    """Return the file extension for an accepted upload."""

    content_type = content_type.lower()
    if media_type == SubmissionMethod.IMAGE:
        if content_type not in IMAGE_TYPES:
            raise ValidationError("Please upload a JPG or PNG image")
        if size > MAX_IMAGE_BYTES:
            raise ValidationError("Image size must be less than 5MB")
        return IMAGE_TYPES[content_type]
    if media_type == SubmissionMethod.AUDIO:
        if content_type not in AUDIO_TYPES:
            raise ValidationError("Audio must be recorded as audio/webm")
        return AUDIO_TYPES[content_type]
    raise ValidationError("Text standups are not media submissions")


def validate_todo(task_text: str, existing_count: int) -> str:
    text = (task_text or "").strip()
    if not text:
        raise ValidationError("Please enter a task")
    if existing_count >= MAX_TODOS_PER_DAY:
        raise ValidationError(f"Maximum {MAX_TODOS_PER_DAY} tasks per day")
    return text


__all__ = [
    "ValidationError",
    "StandupFields",
    "DeliverableInput",
    "MAX_TODOS_PER_DAY",
    "validate_standup",
    "validate_deliverable",
    "media_extension",
    "validate_todo",
    "is_url",
]
