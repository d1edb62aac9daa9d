from sqlalchemy import inspect

from app.core.config import get_settings
from app.db.base import Base
from app.db.session import engine

REQUIRED_TABLES = ("screening_reports", "audit_logs")


def init_db() -> None:
    cfg = get_settings()
    existing = set(inspect(engine).get_table_names())
    missing = [name for name in REQUIRED_TABLES if name not in existing]
    if not missing:
        return
    # Local demo mode and SQLite create the schema on boot; elsewhere the schema must be provisioned.
    if cfg.is_local_dev or str(cfg.database_url).startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
        return
    raise RuntimeError(f"Database schema is missing tables: {', '.join(missing)}")


if __name__ == "__main__":
    init_db()
