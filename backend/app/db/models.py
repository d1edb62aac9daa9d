from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.enums import ReportStatus
from app.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ScreeningReport(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "screening_reports"

    title: Mapped[str] = mapped_column(String(120), nullable=False)
    patient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    doctor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    hospital_name: Mapped[str] = mapped_column(String(255), nullable=False)

    pdf_object_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    annotated_object_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    placeholder_slots: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    status: Mapped[str] = mapped_column(String(32), default=ReportStatus.GENERATED.value, nullable=False)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_screening_reports_status_created", "status", "created_at"),)


class AuditLog(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "audit_logs"

    action: Mapped[str] = mapped_column(String(128), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    metadata_json: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
