"""Bind report records, lay out the screening page and encode it to PDF.

``generate_screening_report`` is the single entry point. Network trouble and
broken images never fail a report; they turn into placeholder images. Only
``CompositionInvariantError`` and ``EncodingError`` propagate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import Settings, get_settings
from app.core.enums import SCREENING_SLOTS, ComposerState, SlotName
from app.schemas.report import DoctorRecord, HospitalRecord, PatientRecord, ScreeningReportCreate
from app.services.asset_resolver import DECLARED_SLOTS, ResolvedAsset, resolve_assets
from app.services.report_encoder import Document, encode_document
from app.services.report_layout import (
    COLORS,
    COLUMNS_PER_SECTION,
    DEFAULT_GEOMETRY,
    EXAMINER_ROWS,
    STYLES,
    SUBJECT_ROWS,
    TITLE_MIN_FONT_SIZE,
    CompositionInvariantError,
    ComposedPage,
    Overflow,
    PageCanvas,
    PageGeometry,
    validate_geometry,
)

LOGGER = logging.getLogger(__name__)

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

SUBJECT_HEADING = "Subject Details"
EXAMINER_HEADING = "Examiner Details"
REMARKS_LABEL = "Remarks:"
DISCLAIMER_TITLE = "Disclaimer:"
DISCLAIMER = (
    "The Breast screening report we provide is based on what we can see in the images. It might change "
    "over time, depending on how the pictures are taken and how well we can see."
)
POWERED_BY_LABEL = "Powered By"

SECTION_HEADINGS: Mapping[str, str] = {
    "left": "Left Breast Screening Visuals",
    "right": "Right Breast Screening Visuals",
}
SECTION_SLOTS: Mapping[str, tuple[SlotName, ...]] = {
    "left": (SlotName.LEFT_TOP, SlotName.LEFT_CENTER, SlotName.LEFT_BOTTOM),
    "right": (SlotName.RIGHT_TOP, SlotName.RIGHT_CENTER, SlotName.RIGHT_BOTTOM),
}
COLUMN_CAPTIONS: tuple[str, ...] = ("I. Top Side Image", "II. Left Side Image", "III. Right Side Image")

HEADER_IMAGE_BOXES: Mapping[SlotName, str] = {
    SlotName.BRAND_LOGO: "header.brand_logo",
    SlotName.HOSPITAL_LOGO: "header.hospital_logo",
}


def _clean(value: str | None) -> str:
    return (value or "").strip()


@dataclass(frozen=True)
class ReportBinding:
    """Every printable field of the report, already resolved to its display text."""

    title: str
    date: str
    name: str
    address: str
    contact: str
    gender: str
    age: str
    weight: str
    height: str
    hospital_name: str
    hospital_address: str
    doctor_name: str
    designation: str
    screening_place: str

    def subject_rows(self) -> list[tuple[str, str, str]]:
        return [(key, label, getattr(self, key)) for key, label in SUBJECT_ROWS]

    def examiner_rows(self) -> list[tuple[str, str, str]]:
        return [(key, label, getattr(self, key)) for key, label in EXAMINER_ROWS]


def format_report_date(moment: datetime, tz_name: str = "UTC") -> str:
    """Render ``moment`` as ``19 Oct 2026, 2:05 pm UTC`` in ``tz_name``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    try:
        zone_info = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise CompositionInvariantError(f"Unknown report timezone '{tz_name}'") from exc
    local = moment.astimezone(zone_info)
    hour = local.hour % 12 or 12
    meridiem = "pm" if local.hour >= 12 else "am"
    zone = local.tzname() or tz_name
    return f"{local.day} {MONTHS[local.month - 1]} {local.year}, {hour}:{local.minute:02d} {meridiem} {zone}"


def _doctor_name(doctor: DoctorRecord) -> str:
    name = _clean(doctor.name)
    if name:
        return name
    joined = " ".join(part for part in (_clean(doctor.first_name), _clean(doctor.last_name)) if part)
    return joined or "Unknown Doctor"


def bind_report_fields(
    request: ScreeningReportCreate,
    *,
    settings: Settings,
    generated_at: datetime | None = None,
) -> ReportBinding:
    patient = request.patient or PatientRecord()
    doctor = request.doctor or DoctorRecord()
    hospital = request.hospital or HospitalRecord()

    first_name = _clean(patient.first_name) or "Unknown"
    last_name = _clean(patient.last_name)
    age = _clean(patient.age)
    weight = _clean(patient.weight)
    hospital_name = _clean(hospital.name) or "Unknown Hospital"
    moment = generated_at or request.generated_at or datetime.now(timezone.utc)

    return ReportBinding(
        title=_clean(request.title) or settings.report_default_title,
        date=format_report_date(moment, settings.report_timezone),
        name=" ".join(part for part in (first_name, last_name) if part),
        address=_clean(patient.address) or "Not specified",
        contact=_clean(patient.contact) or "Not provided",
        gender=_clean(patient.gender) or "Not specified",
        age=f"{age} Years" if age else "N/A",
        weight=f"{weight} kg" if weight else "N/A",
        height=_clean(patient.height) or "N/A",
        hospital_name=hospital_name,
        hospital_address=_clean(hospital.address) or "Address not provided",
        doctor_name=_doctor_name(doctor),
        designation=_clean(doctor.specialization) or "General Practitioner",
        screening_place=hospital_name,
    )


def _place_asset(canvas: PageCanvas, box_name: str, asset: ResolvedAsset) -> None:
    canvas.place_image(box_name, asset.data, (asset.width, asset.height))


def _compose_header(canvas: PageCanvas, binding: ReportBinding, assets: Mapping[SlotName, ResolvedAsset]) -> None:
    for slot, box_name in HEADER_IMAGE_BOXES.items():
        _place_asset(canvas, box_name, assets[slot])
    canvas.place_text("header.title", binding.title, STYLES["title"], min_font_size=TITLE_MIN_FONT_SIZE)
    canvas.place_text("header.date", binding.date, STYLES["date"], overflow=Overflow.TRUNCATE)
    canvas.draw_rule("header.rule", color=COLORS["rule"])


def _compose_panel(canvas: PageCanvas, prefix: str, heading: str, rows: list[tuple[str, str, str]]) -> None:
    canvas.draw_rect(f"{prefix}.panel", fill_color=COLORS["panel"], radius=4)
    canvas.draw_rect(f"{prefix}.header", fill_color=COLORS["panel_header"])
    canvas.place_text(f"{prefix}.header_text", heading, STYLES["panel_header"])
    for key, label, value in rows:
        canvas.place_text(f"{prefix}.{key}.label", label, STYLES["label"])
        canvas.place_text(f"{prefix}.{key}.value", value, STYLES["value"], overflow=Overflow.TRUNCATE)


def _compose_section(canvas: PageCanvas, prefix: str, assets: Mapping[SlotName, ResolvedAsset]) -> None:
    geometry = canvas.geometry
    badge = geometry.box(f"{prefix}.badge")
    canvas.draw_rect(
        badge,
        fill_color=COLORS["inverse"],
        stroke_color=COLORS["badge_border"],
        line_width=1.5,
        radius=badge.height / 2,
    )
    _place_asset(canvas, f"{prefix}.icon", assets[SlotName.SECTION_ICON])
    canvas.place_text(f"{prefix}.heading", SECTION_HEADINGS[prefix], STYLES["section_heading"])

    slots = SECTION_SLOTS[prefix]
    if len(slots) != COLUMNS_PER_SECTION:
        raise CompositionInvariantError(f"Section '{prefix}' maps {len(slots)} slots to {COLUMNS_PER_SECTION} columns")
    for column, slot in enumerate(slots):
        canvas.place_text(f"{prefix}.caption.{column}", COLUMN_CAPTIONS[column], STYLES["caption"])
        _place_asset(canvas, f"{prefix}.image.{column}", assets[slot])
        canvas.draw_rect(f"{prefix}.image.{column}", stroke_color=COLORS["image_border"], line_width=1.0)


def _compose_footer(canvas: PageCanvas, powered_by: str) -> None:
    canvas.place_text("remarks.label", REMARKS_LABEL, STYLES["remarks_label"])
    canvas.draw_rule("remarks.rule.0")
    canvas.draw_rule("remarks.rule.1")

    canvas.draw_rect("footer", fill_color=COLORS["footer"], radius=3)
    canvas.place_text("footer.disclaimer_title", DISCLAIMER_TITLE, STYLES["disclaimer_title"])
    canvas.place_paragraph("footer.disclaimer", DISCLAIMER, STYLES["disclaimer"])
    canvas.place_text("footer.powered_by_label", POWERED_BY_LABEL, STYLES["powered_by_label"])
    canvas.place_text("footer.powered_by_mark", powered_by, STYLES["powered_by_mark"], overflow=Overflow.TRUNCATE)


def compose_report_page(
    binding: ReportBinding,
    assets: Mapping[SlotName, ResolvedAsset],
    geometry: PageGeometry = DEFAULT_GEOMETRY,
    *,
    powered_by: str = "",
) -> ComposedPage:
    missing = [slot.value for slot in DECLARED_SLOTS if slot not in assets]
    if missing:
        raise CompositionInvariantError(f"Unresolved report slots: {', '.join(missing)}")

    canvas = PageCanvas(geometry)
    _compose_header(canvas, binding, assets)
    _compose_panel(canvas, "subject", SUBJECT_HEADING, binding.subject_rows())
    _compose_panel(canvas, "examiner", EXAMINER_HEADING, binding.examiner_rows())
    for prefix in SECTION_SLOTS:
        _compose_section(canvas, prefix, assets)
    _compose_footer(canvas, powered_by)
    return canvas.finish()


@dataclass(frozen=True)
class RenderedReport:
    pdf_bytes: bytes
    assets: Mapping[SlotName, ResolvedAsset]
    binding: ReportBinding

    @property
    def placeholder_slots(self) -> list[str]:
        return [slot.value for slot in SCREENING_SLOTS if self.assets[slot].is_placeholder]


_TRANSITIONS: Mapping[ComposerState, ComposerState] = {
    ComposerState.INITIALIZED: ComposerState.ASSETS_RESOLVING,
    ComposerState.ASSETS_RESOLVING: ComposerState.COMPOSING,
    ComposerState.COMPOSING: ComposerState.ENCODED,
}


class ScreeningReportGenerator:
    """One-shot generator: resolve assets, compose the page, encode the PDF."""

    def __init__(
        self,
        request: ScreeningReportCreate,
        *,
        settings: Settings | None = None,
        geometry: PageGeometry = DEFAULT_GEOMETRY,
        deadline_seconds: float | None = None,
    ) -> None:
        self.request = request
        self.settings = settings or get_settings()
        self.geometry = geometry
        self.deadline_seconds = deadline_seconds
        self.state = ComposerState.INITIALIZED
        self._assets: dict[SlotName, ResolvedAsset] | None = None
        self._page: ComposedPage | None = None

    def _advance(self, target: ComposerState) -> None:
        if _TRANSITIONS.get(self.state) != target:
            raise CompositionInvariantError(f"Illegal generator transition {self.state.value} -> {target.value}")
        self.state = target

    def resolve(self) -> dict[SlotName, ResolvedAsset]:
        self._advance(ComposerState.ASSETS_RESOLVING)
        validate_geometry(self.geometry)
        self._assets = resolve_assets(
            self.request.images,
            self.request.hospital.logo_url if self.request.hospital else None,
            geometry=self.geometry,
            settings=self.settings,
            deadline_seconds=self.deadline_seconds,
        )
        return self._assets

    def compose(self, binding: ReportBinding) -> ComposedPage:
        self._advance(ComposerState.COMPOSING)
        self._page = compose_report_page(
            binding,
            self._assets or {},
            self.geometry,
            powered_by=self.settings.report_powered_by,
        )
        return self._page

    def encode(self, title: str) -> bytes:
        self._advance(ComposerState.ENCODED)
        if self._page is None:
            raise CompositionInvariantError("No composed page to encode")
        document = Document(
            pages=(self._page,),
            title=title,
            author=self.settings.report_author,
            producer=self.settings.report_producer,
        )
        return encode_document(document)

    def run(self) -> RenderedReport:
        binding = bind_report_fields(self.request, settings=self.settings)
        assets = self.resolve()
        self.compose(binding)
        pdf_bytes = self.encode(binding.title)
        LOGGER.info(
            "Generated screening report '%s' (%d bytes, placeholders: %s)",
            binding.title,
            len(pdf_bytes),
            ", ".join(slot.value for slot, asset in assets.items() if asset.is_placeholder) or "none",
        )
        return RenderedReport(pdf_bytes=pdf_bytes, assets=assets, binding=binding)


def render_screening_report(
    request: ScreeningReportCreate,
    *,
    settings: Settings | None = None,
    geometry: PageGeometry = DEFAULT_GEOMETRY,
    deadline_seconds: float | None = None,
) -> RenderedReport:
    generator = ScreeningReportGenerator(
        request,
        settings=settings,
        geometry=geometry,
        deadline_seconds=deadline_seconds,
    )
    return generator.run()


def generate_screening_report(
    request: ScreeningReportCreate,
    *,
    settings: Settings | None = None,
    geometry: PageGeometry = DEFAULT_GEOMETRY,
    deadline_seconds: float | None = None,
) -> bytes:
    return render_screening_report(
        request,
        settings=settings,
        geometry=geometry,
        deadline_seconds=deadline_seconds,
    ).pdf_bytes
