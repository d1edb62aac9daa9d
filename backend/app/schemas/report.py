from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.enums import ReportStatus, SlotName
from app.services.report_layout import TITLE_MIN_FONT_SIZE, title_fits


def _coerce_text(value):
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    return value


class _RecordModel(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value):
        return _coerce_text(value)


class PatientRecord(_RecordModel):
    first_name: str | None = Field(default=None, max_length=120)
    last_name: str | None = Field(default=None, max_length=120)
    address: str | None = Field(default=None, max_length=500)
    contact: str | None = Field(default=None, max_length=120)
    gender: str | None = Field(default=None, max_length=32)
    age: str | None = Field(default=None, max_length=16)
    weight: str | None = Field(default=None, max_length=16)
    height: str | None = Field(default=None, max_length=32)


class DoctorRecord(_RecordModel):
    name: str | None = Field(default=None, max_length=200)
    first_name: str | None = Field(default=None, max_length=120)
    last_name: str | None = Field(default=None, max_length=120)
    specialization: str | None = Field(default=None, max_length=200)


class HospitalRecord(_RecordModel):
    name: str | None = Field(default=None, max_length=200)
    address: str | None = Field(default=None, max_length=500)
    logo_url: str | None = Field(default=None, max_length=2048)


class ScreeningReportCreate(BaseModel):
    title: str | None = Field(default=None, max_length=120)
    generated_at: datetime | None = None
    patient: PatientRecord = Field(default_factory=PatientRecord)
    doctor: DoctorRecord = Field(default_factory=DoctorRecord)
    hospital: HospitalRecord = Field(default_factory=HospitalRecord)
    images: dict[SlotName, str | None] = Field(default_factory=dict)

    @field_validator("patient", "doctor", "hospital", mode="before")
    @classmethod
    def _missing_record_is_empty(cls, value):
        return {} if value is None else value

    @field_validator("title")
    @classmethod
    def _title_fits_header(cls, value: str | None) -> str | None:
        if value and value.strip() and not title_fits(value):
            raise ValueError(f"Title is too wide for the report header at {TITLE_MIN_FONT_SIZE:g}pt")
        return value

    @field_validator("images")
    @classmethod
    def _screening_slots_only(cls, value: dict[SlotName, str | None]) -> dict[SlotName, str | None]:
        allowed = {
            SlotName.LEFT_TOP,
            SlotName.LEFT_CENTER,
            SlotName.LEFT_BOTTOM,
            SlotName.RIGHT_TOP,
            SlotName.RIGHT_CENTER,
            SlotName.RIGHT_BOTTOM,
        }
        unexpected = sorted(slot.value for slot in value if slot not in allowed)
        if unexpected:
            raise ValueError(f"Unsupported image slots: {', '.join(unexpected)}")
        return value


class ScreeningReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    report_id: str
    title: str
    patient_name: str
    status: ReportStatus
    pdf_download_url: str | None
    annotated_pdf_download_url: str | None = None
    placeholder_slots: list[str]
    remarks: str | None = None
    created_at: datetime
    reviewed_at: datetime | None = None


class ReportAnnotationCreate(BaseModel):
    overlay: str = Field(min_length=32)
    remarks: str | None = Field(default=None, max_length=2000)
