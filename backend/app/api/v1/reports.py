from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response
from fastapi.responses import FileResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.enums import ReportStatus
from app.core.rate_limit import limiter
from app.db.base import utc_now
from app.db.models import ScreeningReport
from app.db.session import get_db
from app.schemas.report import ReportAnnotationCreate, ScreeningReportCreate, ScreeningReportRead
from app.services.audit import record_report_failure, write_audit_log
from app.services.report_annotation import AnnotationError, apply_overlay, decode_overlay_data_url
from app.services.report_composer import RenderedReport, render_screening_report
from app.services.report_encoder import EncodingError
from app.services.report_layout import CompositionInvariantError
from app.services.report_storage import ReportNotStoredError, build_download_url, load_pdf, upload_pdf

router = APIRouter(prefix="/reports/screening", tags=["screening-reports"])
settings = get_settings()


def _build_pdf_url(request: Request, report_id: str, *, annotated: bool = False) -> str:
    base = str(request.base_url).rstrip("/")
    url = f"{base}/api/v1/reports/screening/{report_id}/pdf"
    return f"{url}?annotated=true" if annotated else url


def _download_url(
    request: Request,
    row: ScreeningReport,
    object_key: str | None,
    cfg: Settings,
    *,
    annotated: bool = False,
) -> str | None:
    if not object_key:
        return None
    if Path(object_key).is_absolute():
        return _build_pdf_url(request, row.id, annotated=annotated)
    return build_download_url(object_key=object_key, settings=cfg)


def _to_read(request: Request, row: ScreeningReport, cfg: Settings) -> ScreeningReportRead:
    return ScreeningReportRead(
        report_id=row.id,
        title=row.title,
        patient_name=row.patient_name,
        status=ReportStatus(row.status),
        pdf_download_url=_download_url(request, row, row.pdf_object_key, cfg),
        annotated_pdf_download_url=_download_url(request, row, row.annotated_object_key, cfg, annotated=True),
        placeholder_slots=list(row.placeholder_slots or []),
        remarks=row.remarks,
        created_at=row.created_at,
        reviewed_at=row.reviewed_at,
    )


def _parse_request(payload: dict) -> ScreeningReportCreate:
    try:
        return ScreeningReportCreate.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc


def _render(parsed: ScreeningReportCreate, cfg: Settings) -> RenderedReport:
    try:
        return render_screening_report(parsed, settings=cfg)
    except (CompositionInvariantError, EncodingError) as exc:
        record_report_failure(reason=exc.__class__.__name__, metadata={"error": str(exc)})
        raise HTTPException(status_code=500, detail=f"Report generation failed: {exc}") from exc


def _get_row(db: Session, report_id: str) -> ScreeningReport:
    row = db.get(ScreeningReport, report_id)
    if not row:
        raise HTTPException(status_code=404, detail="Report not found")
    return row


@router.post("", response_model=ScreeningReportRead)
@limiter.limit(settings.rate_limit_generate_per_ip)
def create_screening_report(
    request: Request,
    response: Response,
    payload: dict = Body(...),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    parsed = _parse_request(payload)
    rendered = _render(parsed, cfg)
    binding = rendered.binding

    row = ScreeningReport(
        title=binding.title,
        patient_name=binding.name,
        doctor_name=binding.doctor_name,
        hospital_name=binding.hospital_name,
        placeholder_slots=rendered.placeholder_slots,
        status=ReportStatus.GENERATED.value,
    )
    db.add(row)
    db.flush()

    object_key = upload_pdf(report_id=row.id, pdf_bytes=rendered.pdf_bytes, settings=cfg)
    row.pdf_object_key = object_key

    write_audit_log(
        db,
        action="REPORT_GENERATED",
        resource_type="screening_report",
        resource_id=row.id,
        metadata={
            "pdf_object_key": object_key,
            "placeholder_slots": rendered.placeholder_slots,
            "byte_size": len(rendered.pdf_bytes),
        },
    )

    db.commit()
    db.refresh(row)
    return _to_read(request, row, cfg)


@router.post("/preview")
@limiter.limit(settings.rate_limit_generate_per_ip)
def preview_screening_report(
    request: Request,
    response: Response,
    payload: dict = Body(...),
    cfg: Settings = Depends(get_settings),
):
    parsed = _parse_request(payload)
    rendered = _render(parsed, cfg)
    return Response(
        content=rendered.pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": 'inline; filename="screening-report-preview.pdf"',
            "X-Placeholder-Slots": ",".join(rendered.placeholder_slots),
        },
    )


@router.get("/{report_id}/pdf")
@limiter.limit(settings.rate_limit_read_per_ip)
def get_screening_report_pdf(
    request: Request,
    response: Response,
    report_id: str,
    annotated: bool = Query(default=False),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    row = _get_row(db, report_id)
    object_key = row.annotated_object_key if annotated else row.pdf_object_key
    if not object_key:
        raise HTTPException(status_code=404, detail="Report PDF not available")

    variant = "annotated-report" if annotated else "screening-report"
    filename = f"{variant}-{row.id}.pdf"
    content_disposition = f'inline; filename="{filename}"'

    local_path = Path(object_key)
    if local_path.is_absolute() and local_path.exists():
        return FileResponse(
            path=str(local_path),
            media_type="application/pdf",
            filename=filename,
            headers={"Content-Disposition": content_disposition},
        )

    try:
        pdf_bytes = load_pdf(object_key=object_key, settings=cfg)
    except ReportNotStoredError as exc:
        raise HTTPException(status_code=404, detail="Report PDF not available") from exc
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": content_disposition},
    )


@router.get("/{report_id}", response_model=ScreeningReportRead)
@limiter.limit(settings.rate_limit_read_per_ip)
def get_screening_report(
    request: Request,
    response: Response,
    report_id: str,
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    return _to_read(request, _get_row(db, report_id), cfg)


@router.post("/{report_id}/annotate", response_model=ScreeningReportRead)
@limiter.limit(settings.rate_limit_generate_per_ip)
def annotate_screening_report(
    request: Request,
    response: Response,
    report_id: str,
    payload: dict = Body(...),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    try:
        parsed = ReportAnnotationCreate.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc

    row = _get_row(db, report_id)
    if not row.pdf_object_key:
        raise HTTPException(status_code=400, detail="Report file not found")

    try:
        overlay = decode_overlay_data_url(parsed.overlay)
        original = load_pdf(object_key=row.pdf_object_key, settings=cfg)
        annotated = apply_overlay(original, overlay)
    except AnnotationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ReportNotStoredError as exc:
        raise HTTPException(status_code=404, detail="Report PDF not available") from exc
    except EncodingError as exc:
        raise HTTPException(status_code=500, detail=f"Failed to merge overlay with PDF: {exc}") from exc

    object_key = upload_pdf(report_id=row.id, pdf_bytes=annotated, settings=cfg, variant="annotated")
    row.annotated_object_key = object_key
    row.remarks = parsed.remarks or None
    row.status = ReportStatus.REVIEWED.value
    row.reviewed_at = utc_now()

    write_audit_log(
        db,
        action="REPORT_ANNOTATED",
        resource_type="screening_report",
        resource_id=row.id,
        metadata={"annotated_object_key": object_key, "has_remarks": bool(row.remarks)},
    )

    db.commit()
    db.refresh(row)
    return _to_read(request, row, cfg)
