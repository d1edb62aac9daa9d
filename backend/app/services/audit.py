from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import AuditLog
from app.db.session import SessionLocal

LOGGER = logging.getLogger(__name__)


def write_audit_log(
    db: Session,
    *,
    action: str,
    resource_type: str,
    resource_id: str | None,
    metadata: dict,
) -> AuditLog:
    log = AuditLog(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        metadata_json=metadata,
    )
    db.add(log)
    db.flush()
    return log


def record_report_failure(*, reason: str, metadata: dict | None = None) -> None:
    try:
        with SessionLocal() as db:
            write_audit_log(
                db,
                action="REPORT_FAILED",
                resource_type="screening_report",
                resource_id=None,
                metadata={"reason": reason, **(metadata or {})},
            )
            db.commit()
    except SQLAlchemyError:
        # A failed report must surface its own error, not an audit write issue.
        LOGGER.exception("Could not record report failure '%s'", reason)
