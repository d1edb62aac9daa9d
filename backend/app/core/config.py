from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Screening Report API"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite:///./screening_reports.db"
    aws_region: str = "us-east-1"
    s3_report_bucket: str = "screening-reports"

    storage_mode: Literal["auto", "local", "s3"] = "auto"
    local_storage_dir: Path = REPO_ROOT / "backend" / "artifacts"
    presigned_expiration_seconds: int = Field(default=3600)

    cors_allowed_origins: str = "http://localhost:3000"

    rate_limit_enabled: bool = True
    rate_limit_generate_per_ip: str = "30/minute"
    rate_limit_read_per_ip: str = "180/minute"

    # Remote image acquisition.
    image_fetch_timeout_seconds: float = 10.0
    image_fetch_max_attempts: int = 3
    image_fetch_retry_delay_seconds: float = 1.0
    asset_slot_budget_seconds: float = 35.0
    report_deadline_seconds: float = 45.0

    image_jpeg_quality: int = 90

    report_default_title: str = "BREAST SCREENING REPORT"
    report_timezone: str = "UTC"
    report_producer: str = "Screening Report Service"
    report_author: str = "Screening Report Service"
    report_powered_by: str = "D3S Healthcare"
    brand_logo_url: str | None = None

    @property
    def is_local_dev(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def resolved_storage_mode(self) -> Literal["local", "s3"]:
        if self.storage_mode != "auto":
            return self.storage_mode
        return "local" if self.is_local_dev else "s3"

    @property
    def local_storage_dir_resolved(self) -> Path:
        path = Path(self.local_storage_dir)
        if path.is_absolute():
            return path
        # If a relative path is provided via env, make it repo-root relative.
        return (REPO_ROOT / path).resolve()

    @property
    def local_report_dir(self) -> Path:
        return self.local_storage_dir_resolved / "reports"

    @property
    def cors_allowed_origins_list(self) -> list[str]:
        raw = self.cors_allowed_origins.strip()
        if not raw:
            return []
        if raw.startswith("["):
            parsed = json.loads(raw)
            if not isinstance(parsed, list):
                raise ValueError("CORS_ALLOWED_ORIGINS JSON must be an array")
            return [str(x) for x in parsed]
        return [part.strip() for part in raw.split(",") if part.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
