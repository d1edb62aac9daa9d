from __future__ import annotations

import logging
from pathlib import Path
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings

LOGGER = logging.getLogger(__name__)


class ReportNotStoredError(LookupError):
    pass


def _write_local(*, name: str, pdf_bytes: bytes, settings: Settings) -> str:
    settings.local_report_dir.mkdir(parents=True, exist_ok=True)
    local_path = (settings.local_report_dir / name).resolve()
    local_path.write_bytes(pdf_bytes)
    return str(local_path)


def upload_pdf(*, report_id: str, pdf_bytes: bytes, settings: Settings, variant: str = "report") -> str:
    """Store ``pdf_bytes`` and return the object key (an absolute path when stored locally)."""
    name = f"{report_id}-{variant}-{uuid4().hex}.pdf"
    if settings.resolved_storage_mode == "local":
        return _write_local(name=name, pdf_bytes=pdf_bytes, settings=settings)

    key = f"reports/{name}"
    s3 = boto3.client("s3", region_name=settings.aws_region)
    try:
        s3.put_object(
            Bucket=settings.s3_report_bucket,
            Key=key,
            Body=pdf_bytes,
            ContentType="application/pdf",
        )
        return key
    except (BotoCoreError, ClientError) as exc:
        LOGGER.warning("S3 upload for report %s failed, storing locally: %s", report_id, exc)
        return _write_local(name=name, pdf_bytes=pdf_bytes, settings=settings)


def load_pdf(*, object_key: str, settings: Settings) -> bytes:
    local_path = Path(object_key)
    if local_path.is_absolute():
        if not local_path.exists():
            raise ReportNotStoredError(f"Stored report {object_key} is missing")
        return local_path.read_bytes()

    s3 = boto3.client("s3", region_name=settings.aws_region)
    try:
        obj = s3.get_object(Bucket=settings.s3_report_bucket, Key=object_key)
        return obj["Body"].read()
    except (BotoCoreError, ClientError) as exc:
        raise ReportNotStoredError(f"Stored report {object_key} is not available") from exc


def build_download_url(*, object_key: str, settings: Settings) -> str:
    if Path(object_key).is_absolute():
        return object_key
    s3 = boto3.client("s3", region_name=settings.aws_region)
    try:
        return s3.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": settings.s3_report_bucket, "Key": object_key},
            ExpiresIn=settings.presigned_expiration_seconds,
        )
    except (BotoCoreError, ClientError):
        return f"s3://{settings.s3_report_bucket}/{object_key}"
