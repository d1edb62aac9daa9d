from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from urllib.parse import urlparse

import requests

from app.core.config import Settings

LOGGER = logging.getLogger(__name__)


class AcquisitionError(Exception):
    """A remote image could not be fetched (network, timeout, status, empty body)."""

    def __init__(self, url: str, kind: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.kind = kind
        self.status_code = status_code

    @property
    def short_label(self) -> str:
        if self.kind == "http_status" and self.status_code is not None:
            return f"HTTP {self.status_code}"
        return self.kind.replace("_", " ")


@dataclass(frozen=True)
class FetchPolicy:
    timeout_seconds: float = 10.0
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "FetchPolicy":
        return cls(
            timeout_seconds=settings.image_fetch_timeout_seconds,
            max_attempts=settings.image_fetch_max_attempts,
            retry_delay_seconds=settings.image_fetch_retry_delay_seconds,
        )


def is_absolute_http_url(url: str | None) -> bool:
    if not url:
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _attempt(url: str, timeout: float) -> bytes:
    try:
        resp = requests.get(url, timeout=timeout, headers={"Accept": "image/*"})
    except requests.Timeout as exc:
        raise AcquisitionError(url, "timeout", f"Timed out after {timeout:.1f}s") from exc
    except requests.RequestException as exc:
        raise AcquisitionError(url, "network", f"Network failure: {exc.__class__.__name__}") from exc

    if not 200 <= resp.status_code < 300:
        raise AcquisitionError(
            url,
            "http_status",
            f"Unexpected status {resp.status_code}",
            status_code=resp.status_code,
        )
    body = resp.content
    if not body:
        raise AcquisitionError(url, "empty_body", "Empty response received")
    return body


def fetch_image(url: str, *, policy: FetchPolicy | None = None, deadline: float | None = None) -> bytes:
    """Fetch raw image bytes with bounded retries.

    ``deadline`` is an absolute ``time.monotonic()`` value. No attempt is started
    once it has passed, and a retry delay that would cross it is not slept.
    """
    policy = policy or FetchPolicy()
    if not is_absolute_http_url(url):
        raise AcquisitionError(str(url), "invalid_url", "Image URL must be an absolute http(s) URL")
    url = url.strip()

    last_error: AcquisitionError | None = None
    for attempt in range(1, policy.max_attempts + 1):
        timeout = policy.timeout_seconds
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AcquisitionError(url, "deadline", "Slot deadline exhausted") from last_error
            timeout = min(timeout, remaining)

        try:
            return _attempt(url, timeout)
        except AcquisitionError as exc:
            last_error = exc
            LOGGER.warning("Image fetch attempt %d/%d failed: %s", attempt, policy.max_attempts, exc)

        if attempt == policy.max_attempts:
            break
        if deadline is not None and time.monotonic() + policy.retry_delay_seconds >= deadline:
            break
        time.sleep(policy.retry_delay_seconds)

    if last_error is None:
        raise AcquisitionError(url, "network", "No fetch attempts configured")
    raise last_error
