from app.db.models import AuditLog, ScreeningReport

__all__ = [
    "ScreeningReport",
    "AuditLog",
]
