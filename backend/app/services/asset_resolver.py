from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Mapping

from app.core.config import Settings, get_settings
from app.core.enums import SCREENING_SLOTS, AssetStatus, SlotName
from app.services.image_normalizer import DecodeError, normalize_image
from app.services.image_source import AcquisitionError, FetchPolicy, fetch_image
from app.services.placeholder import (
    synthesize_brand_logo,
    synthesize_hospital_monogram,
    synthesize_placeholder,
    synthesize_section_icon,
)
from app.services.report_layout import DEFAULT_GEOMETRY, PageGeometry

LOGGER = logging.getLogger(__name__)

DECLARED_SLOTS: tuple[SlotName, ...] = (
    *SCREENING_SLOTS,
    SlotName.HOSPITAL_LOGO,
    SlotName.SECTION_ICON,
    SlotName.BRAND_LOGO,
)
MAX_ERROR_LABEL = 18


@dataclass(frozen=True)
class ResolvedAsset:
    slot: SlotName
    status: AssetStatus
    data: bytes = field(repr=False)
    width: int
    height: int
    origin: str

    @property
    def is_placeholder(self) -> bool:
        return self.status == AssetStatus.PLACEHOLDER


@dataclass(frozen=True)
class _SlotJob:
    slot: SlotName
    url: str
    width: int
    height: int


def _placeholder(slot: SlotName, label: str, width: int, height: int, quality: int, origin: str) -> ResolvedAsset:
    return ResolvedAsset(
        slot=slot,
        status=AssetStatus.PLACEHOLDER,
        data=synthesize_placeholder(label, width, height, quality=quality),
        width=width,
        height=height,
        origin=origin,
    )


def _error_label(exc: Exception) -> str:
    if isinstance(exc, AcquisitionError):
        text = exc.short_label
    elif isinstance(exc, DecodeError):
        text = "unreadable image"
    else:
        text = exc.__class__.__name__
    return text[:MAX_ERROR_LABEL]


def _resolve_slot(job: _SlotJob, policy: FetchPolicy, deadline: float, quality: int) -> ResolvedAsset:
    try:
        raw = fetch_image(job.url, policy=policy, deadline=deadline)
        data = normalize_image(raw, job.width, job.height, quality=quality)
    except (AcquisitionError, DecodeError) as exc:
        LOGGER.warning("Slot %s degraded to placeholder: %s", job.slot.value, exc)
        return _placeholder(
            job.slot,
            f"{job.slot.value}: {_error_label(exc)}",
            job.width,
            job.height,
            quality,
            origin=f"{job.url} ({exc})",
        )
    return ResolvedAsset(
        slot=job.slot,
        status=AssetStatus.OK,
        data=data,
        width=job.width,
        height=job.height,
        origin=job.url,
    )


def _static_assets(
    geometry: PageGeometry,
    settings: Settings,
    hospital_logo_url: str | None,
) -> dict[SlotName, ResolvedAsset]:
    quality = settings.image_jpeg_quality
    assets: dict[SlotName, ResolvedAsset] = {}

    icon_w, icon_h = geometry.slot_pixel_size(SlotName.SECTION_ICON.value)
    assets[SlotName.SECTION_ICON] = ResolvedAsset(
        slot=SlotName.SECTION_ICON,
        status=AssetStatus.OK,
        data=synthesize_section_icon(icon_w, icon_h, quality=quality),
        width=icon_w,
        height=icon_h,
        origin="builtin",
    )

    if not settings.brand_logo_url:
        brand_w, brand_h = geometry.slot_pixel_size(SlotName.BRAND_LOGO.value)
        assets[SlotName.BRAND_LOGO] = ResolvedAsset(
            slot=SlotName.BRAND_LOGO,
            status=AssetStatus.OK,
            data=synthesize_brand_logo(settings.report_powered_by, brand_w, brand_h, quality=quality),
            width=brand_w,
            height=brand_h,
            origin="builtin",
        )

    if not hospital_logo_url:
        logo_w, logo_h = geometry.slot_pixel_size(SlotName.HOSPITAL_LOGO.value)
        assets[SlotName.HOSPITAL_LOGO] = ResolvedAsset(
            slot=SlotName.HOSPITAL_LOGO,
            status=AssetStatus.PLACEHOLDER,
            data=synthesize_hospital_monogram(logo_w, logo_h, quality=quality),
            width=logo_w,
            height=logo_h,
            origin="no hospital logo configured",
        )
    return assets


def resolve_assets(
    images: Mapping[SlotName, str | None],
    hospital_logo_url: str | None = None,
    *,
    geometry: PageGeometry = DEFAULT_GEOMETRY,
    settings: Settings | None = None,
    deadline_seconds: float | None = None,
) -> dict[SlotName, ResolvedAsset]:
    """Resolve every declared slot to exactly one asset.

    Fetched slots run concurrently, one task per slot. The call returns once
    every task is terminal or the overall deadline passes; slots still in
    flight at that point are replaced by placeholders.
    """
    settings = settings or get_settings()
    policy = FetchPolicy.from_settings(settings)
    quality = settings.image_jpeg_quality
    started = time.monotonic()
    overall_deadline = started + (deadline_seconds if deadline_seconds is not None else settings.report_deadline_seconds)
    slot_deadline = min(started + settings.asset_slot_budget_seconds, overall_deadline)

    resolved = _static_assets(geometry, settings, hospital_logo_url)

    jobs: list[_SlotJob] = []
    provided = {SlotName(key): url for key, url in (images or {}).items()}
    wanted: dict[SlotName, str | None] = {slot: provided.get(slot) for slot in SCREENING_SLOTS}
    if hospital_logo_url:
        wanted[SlotName.HOSPITAL_LOGO] = hospital_logo_url
    if settings.brand_logo_url:
        wanted[SlotName.BRAND_LOGO] = settings.brand_logo_url

    for slot, url in wanted.items():
        width, height = geometry.slot_pixel_size(slot.value)
        if not url or not url.strip():
            LOGGER.info("Slot %s has no source image", slot.value)
            resolved[slot] = _placeholder(slot, f"{slot.value} Missing", width, height, quality, origin="not provided")
            continue
        jobs.append(_SlotJob(slot=slot, url=url.strip(), width=width, height=height))

    if jobs:
        executor = ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="report-asset")
        try:
            futures: dict[Future, _SlotJob] = {
                executor.submit(_resolve_slot, job, policy, slot_deadline, quality): job for job in jobs
            }
            done, pending = wait(futures, timeout=max(0.0, overall_deadline - time.monotonic()))
            for future in done:
                job = futures[future]
                try:
                    resolved[job.slot] = future.result()
                except Exception as exc:
                    LOGGER.exception("Slot %s failed unexpectedly", job.slot.value)
                    resolved[job.slot] = _placeholder(
                        job.slot,
                        f"{job.slot.value}: {_error_label(exc)}",
                        job.width,
                        job.height,
                        quality,
                        origin=f"{job.url} ({exc.__class__.__name__})",
                    )
            for future in pending:
                job = futures[future]
                future.cancel()
                LOGGER.warning("Slot %s still pending at report deadline", job.slot.value)
                resolved[job.slot] = _placeholder(
                    job.slot,
                    f"{job.slot.value}: deadline exceeded",
                    job.width,
                    job.height,
                    quality,
                    origin=f"{job.url} (deadline exceeded)",
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    LOGGER.info(
        "Resolved %d report assets in %.2fs (%d placeholders)",
        len(resolved),
        time.monotonic() - started,
        sum(1 for asset in resolved.values() if asset.is_placeholder),
    )
    return {slot: resolved[slot] for slot in DECLARED_SLOTS}
