"""HTTP client for the media-processing webhook (transcription and field extraction)."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .models import SubmissionMethod

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class WebhookError(RuntimeError):
    """Raised once every attempt to reach the webhook has failed."""

    def __init__(self, attempts: int, last_error: str, timed_out: bool = False) -> None:
        super().__init__(f"Webhook failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
        self.timed_out = timed_out


class WebhookNotConfiguredError(RuntimeError):
    """Raised when a media submission is attempted without a webhook URL."""


class _AttemptError(Exception):
    def __init__(self, message: str, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


def media_object_name(
    user_id: str,
    day: date,
    media_type: SubmissionMethod,
    extension: str,
    now: datetime,
) -> str:
    """Storage path for an uploaded standup, ``{user}/{date}/standup-{kind}-{ms}.{ext}``."""

    millis = int(now.timestamp() * 1000)
    return f"{user_id}/{day.isoformat()}/standup-{media_type.value}-{millis}.{extension}"


def build_media_payload(
    user_id: str,
    day: date,
    media_url: str,
    media_type: SubmissionMethod,
    media_filename: str,
    bucket: str,
) -> Dict[str, str]:
    return {
        "user_id": user_id,
        "date": day.isoformat(),
        "media_url": media_url,
        "media_type": media_type.value,
        "media_filename": media_filename,
        "bucket": bucket,
    }


class WebhookClient:
    """Posts JSON payloads with a fixed number of attempts and a fixed delay between them."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        attempts: int = 3,
        retry_delay: float = 2.0,
        sleep: Sleep = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if attempts < 1:
            raise ValueError("webhook attempts must be at least 1")
        self.url = url
        self.timeout = timeout
        self.attempts = attempts
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post_once(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await asyncio.wait_for(
                self._client.post(self.url, json=payload), timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise _AttemptError(f"Request timeout after {self.timeout:g}s", timed_out=True) from exc
        except httpx.HTTPError as exc:
            raise _AttemptError(str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            raise _AttemptError(f"HTTP {response.status_code}: {response.reason_phrase}")
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"result": data}

    async def trigger(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        last_error = _AttemptError("no attempt made")
        for attempt in range(1, self.attempts + 1):
            try:
                return await self._post_once(payload)
            except _AttemptError as exc:
                last_error = exc
                logger.warning("Webhook attempt %s failed: %s", attempt, exc)
            if attempt < self.attempts:
                logger.info("Retrying webhook in %ss", self.retry_delay)
                await self._sleep(self.retry_delay)

        raise WebhookError(self.attempts, str(last_error), timed_out=last_error.timed_out)


__all__ = [
    "WebhookClient",
    "WebhookError",
    "WebhookNotConfiguredError",
    "build_media_payload",
    "media_object_name",
]
