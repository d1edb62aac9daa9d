from __future__ import annotations

from datetime import datetime, timedelta, timezone
from io import BytesIO

import pytest
from pydantic import ValidationError
from pypdf import PdfReader

from app.core.enums import SCREENING_SLOTS, ComposerState, SlotName
from app.schemas.report import ScreeningReportCreate
from app.services.asset_resolver import resolve_assets
from app.services.report_composer import (
    ScreeningReportGenerator,
    bind_report_fields,
    compose_report_page,
    format_report_date,
    generate_screening_report,
    render_screening_report,
)
from app.services.report_layout import CompositionInvariantError

FIXED_AT = datetime(2026, 10, 19, 14, 5, tzinfo=timezone.utc)

SAMPLE = {
    "title": "BREAST SCREENING REPORT",
    "generated_at": FIXED_AT.isoformat(),
    "patient": {
        "first_name": "Jane",
        "last_name": "Doe",
        "address": "123 Main St, Anytown, CA 90210",
        "contact": "+1 555-123-4567",
        "gender": "Female",
        "age": 42,
        "weight": "65",
        "height": "165 cm",
    },
    "doctor": {"name": "Dr. Sarah Johnson", "specialization": "Oncologist"},
    "hospital": {"name": "Memorial Medical Center", "address": "456 Hospital Blvd, Anytown, CA 90210"},
}


def _request(**overrides) -> ScreeningReportCreate:
    return ScreeningReportCreate.model_validate({**SAMPLE, **overrides})


def test_empty_records_bind_to_fixed_fallbacks(fast_settings):
    binding = bind_report_fields(ScreeningReportCreate(), settings=fast_settings, generated_at=FIXED_AT)

    assert binding.title == "BREAST SCREENING REPORT"
    assert binding.date == "19 Oct 2026, 2:05 pm UTC"
    assert binding.name == "Unknown"
    assert binding.address == "Not specified"
    assert binding.contact == "Not provided"
    assert binding.gender == "Not specified"
    assert binding.age == "N/A"
    assert binding.weight == "N/A"
    assert binding.height == "N/A"
    assert binding.doctor_name == "Unknown Doctor"
    assert binding.designation == "General Practitioner"
    assert binding.hospital_name == "Unknown Hospital"
    assert binding.hospital_address == "Address not provided"
    assert binding.screening_place == "Unknown Hospital"


def test_null_records_are_treated_as_empty(fast_settings):
    request = ScreeningReportCreate.model_validate({"patient": None, "doctor": None, "hospital": None})
    binding = bind_report_fields(request, settings=fast_settings, generated_at=FIXED_AT)
    assert binding.name == "Unknown"
    assert binding.doctor_name == "Unknown Doctor"


def test_present_values_bind_with_units(fast_settings):
    binding = bind_report_fields(_request(), settings=fast_settings)

    assert binding.name == "Jane Doe"
    assert binding.age == "42 Years"
    assert binding.weight == "65 kg"
    assert binding.height == "165 cm"
    assert binding.doctor_name == "Dr. Sarah Johnson"
    assert binding.designation == "Oncologist"
    assert binding.screening_place == "Memorial Medical Center"
    assert binding.date == "19 Oct 2026, 2:05 pm UTC"


@pytest.mark.parametrize(
    ("doctor", "expected"),
    [
        ({"first_name": "Sarah", "last_name": "Johnson"}, "Sarah Johnson"),
        ({"first_name": "Sarah"}, "Sarah"),
        ({"name": "  ", "last_name": "Johnson"}, "Johnson"),
        ({}, "Unknown Doctor"),
    ],
)
def test_doctor_name_fallback_chain(fast_settings, doctor, expected):
    binding = bind_report_fields(_request(doctor=doctor), settings=fast_settings)
    assert binding.doctor_name == expected


@pytest.mark.parametrize(("title", "expected"), [(None, "BREAST SCREENING REPORT"), ("", "BREAST SCREENING REPORT"), ("   ", "BREAST SCREENING REPORT"), ("Follow-up Screening", "Follow-up Screening")])
def test_title_defaulting(fast_settings, title, expected):
    binding = bind_report_fields(_request(title=title), settings=fast_settings)
    assert binding.title == expected


@pytest.mark.parametrize(
    ("moment", "tz_name", "expected"),
    [
        (datetime(2026, 10, 19, 14, 5, tzinfo=timezone.utc), "UTC", "19 Oct 2026, 2:05 pm UTC"),
        (datetime(2026, 1, 3, 0, 0, tzinfo=timezone.utc), "UTC", "3 Jan 2026, 12:00 am UTC"),
        (datetime(2026, 7, 9, 12, 30, tzinfo=timezone.utc), "UTC", "9 Jul 2026, 12:30 pm UTC"),
        (datetime(2026, 10, 19, 14, 5), "UTC", "19 Oct 2026, 2:05 pm UTC"),
        (datetime(2026, 10, 19, 14, 5, tzinfo=timezone.utc), "Asia/Kolkata", "19 Oct 2026, 7:35 pm IST"),
        (datetime(2026, 10, 19, 19, 5, tzinfo=timezone(timedelta(hours=5))), "UTC", "19 Oct 2026, 2:05 pm UTC"),
    ],
)
def test_report_date_format(moment, tz_name, expected):
    assert format_report_date(moment, tz_name) == expected


def test_unknown_timezone_is_a_composition_error():
    with pytest.raises(CompositionInvariantError):
        format_report_date(FIXED_AT, "Mars/Olympus_Mons")


def test_composed_page_contents(fast_settings):
    assets = resolve_assets({}, None, settings=fast_settings)
    binding = bind_report_fields(_request(), settings=fast_settings)

    page = compose_report_page(binding, assets, powered_by="D3S Healthcare")

    texts = page.texts()
    for expected in (
        "BREAST SCREENING REPORT",
        "19 Oct 2026, 2:05 pm UTC",
        "Subject Details",
        "Examiner Details",
        "Jane Doe",
        "42 Years",
        "Left Breast Screening Visuals",
        "Right Breast Screening Visuals",
        "Remarks:",
        "Disclaimer:",
        "Powered By",
        "D3S Healthcare",
    ):
        assert expected in texts
    assert texts.count("I. Top Side Image") == 2
    assert texts.count("III. Right Side Image") == 2
    # 2 header logos, 2 badge icons, 6 screening images.
    assert len(page.images()) == 10
    names = [image.name for image in page.images()]
    assert names.index("left.image.0") < names.index("right.image.0")


def test_long_caller_values_are_truncated(fast_settings):
    assets = resolve_assets({}, None, settings=fast_settings)
    request = _request(patient={"first_name": "Jane", "address": "Flat 12, " * 30})
    page = compose_report_page(bind_report_fields(request, settings=fast_settings), assets)
    address = [text for text in page.texts() if text.startswith("Flat 12,")]
    assert len(address) == 1 and address[0].endswith("...")


def test_long_title_renders_verbatim(fast_settings):
    assets = resolve_assets({}, None, settings=fast_settings)
    title = "ANNUAL BILATERAL BREAST SCREENING REPORT"
    page = compose_report_page(bind_report_fields(_request(title=title), settings=fast_settings), assets)
    assert title in page.texts()


def test_title_wider_than_the_header_is_rejected():
    with pytest.raises(ValidationError, match="too wide"):
        _request(title="W" * 60)


def test_missing_slot_is_a_composition_error(fast_settings):
    assets = resolve_assets({}, None, settings=fast_settings)
    assets.pop(SlotName.RIGHT_CENTER)
    binding = bind_report_fields(_request(), settings=fast_settings)
    with pytest.raises(CompositionInvariantError, match="rightCenter"):
        compose_report_page(binding, assets)


def test_generator_rejects_illegal_transitions(fast_settings):
    generator = ScreeningReportGenerator(_request(), settings=fast_settings)
    assert generator.state == ComposerState.INITIALIZED
    binding = bind_report_fields(_request(), settings=fast_settings)
    with pytest.raises(CompositionInvariantError, match="INITIALIZED -> COMPOSING"):
        generator.compose(binding)

    generator.run()
    assert generator.state == ComposerState.ENCODED
    with pytest.raises(CompositionInvariantError):
        generator.run()


def test_generation_is_deterministic(fast_settings):
    first = generate_screening_report(_request(), settings=fast_settings)
    second = generate_screening_report(_request(), settings=fast_settings)
    assert first.startswith(b"%PDF")
    assert first == second


def test_pdf_carries_text_and_metadata(fast_settings):
    pdf = generate_screening_report(_request(title=None, patient=None), settings=fast_settings)
    reader = PdfReader(BytesIO(pdf))
    assert len(reader.pages) == 1
    text = reader.pages[0].extract_text()
    assert "BREAST SCREENING REPORT" in text
    assert "Unknown" in text
    assert "Left Breast Screening Visuals" in text
    assert reader.metadata.title == "BREAST SCREENING REPORT"
    assert reader.metadata.author == fast_settings.report_author


def test_all_404_scenario_still_produces_report(image_server, fast_settings):
    images = {slot.value: f"https://img.example.com/{slot.value}.png" for slot in SCREENING_SLOTS}
    for url in images.values():
        image_server.add(url, 404)

    rendered = render_screening_report(_request(images=images), settings=fast_settings)

    assert rendered.pdf_bytes.startswith(b"%PDF")
    assert len(rendered.assets) == 9
    assert rendered.placeholder_slots == [slot.value for slot in SCREENING_SLOTS]


def test_partially_broken_urls(image_server, fast_settings, make_image):
    good = "https://img.example.com/good.png"
    image_server.add(good, make_image((500, 400)))
    images = {"leftTop": good, "leftCenter": "https://img.example.com/missing.png", "rightTop": "nonsense"}

    rendered = render_screening_report(_request(images=images), settings=fast_settings)

    assert "leftTop" not in rendered.placeholder_slots
    assert {"leftCenter", "rightTop", "rightBottom"} <= set(rendered.placeholder_slots)
