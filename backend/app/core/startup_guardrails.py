from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import Settings
from app.services.report_layout import (
    DEFAULT_GEOMETRY,
    TITLE_MIN_FONT_SIZE,
    CompositionInvariantError,
    PageGeometry,
    title_fits,
    validate_geometry,
)


class StartupGuardrailError(RuntimeError):
    pass


def validate_startup_guardrails(settings: Settings, geometry: PageGeometry = DEFAULT_GEOMETRY) -> None:
    errors: list[str] = []

    if settings.image_fetch_max_attempts < 1:
        errors.append("IMAGE_FETCH_MAX_ATTEMPTS must be at least 1")
    if settings.image_fetch_timeout_seconds <= 0:
        errors.append("IMAGE_FETCH_TIMEOUT_SECONDS must be positive")
    if settings.image_fetch_retry_delay_seconds < 0:
        errors.append("IMAGE_FETCH_RETRY_DELAY_SECONDS must not be negative")
    if settings.asset_slot_budget_seconds <= 0 or settings.report_deadline_seconds <= 0:
        errors.append("ASSET_SLOT_BUDGET_SECONDS and REPORT_DEADLINE_SECONDS must be positive")
    elif settings.report_deadline_seconds < settings.image_fetch_timeout_seconds:
        errors.append("REPORT_DEADLINE_SECONDS must allow at least one full fetch attempt")
    if not 1 <= settings.image_jpeg_quality <= 95:
        errors.append("IMAGE_JPEG_QUALITY must be between 1 and 95")
    if not settings.report_default_title.strip():
        errors.append("REPORT_DEFAULT_TITLE must not be empty")

    try:
        ZoneInfo(settings.report_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        errors.append(f"REPORT_TIMEZONE '{settings.report_timezone}' is not a known timezone")

    if settings.storage_mode == "local" and not settings.is_local_dev:
        errors.append("STORAGE_MODE=local is only allowed in development")

    try:
        validate_geometry(geometry)
        if settings.report_default_title.strip() and not title_fits(settings.report_default_title, geometry):
            errors.append(f"REPORT_DEFAULT_TITLE does not fit the header at {TITLE_MIN_FONT_SIZE:g}pt")
    except CompositionInvariantError as exc:
        errors.append(str(exc))

    if errors:
        raise StartupGuardrailError("; ".join(errors))
