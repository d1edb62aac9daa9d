from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.config import get_settings


settings = get_settings()


def client_ip_key(request: Request) -> str:
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=client_ip_key, headers_enabled=True, enabled=settings.rate_limit_enabled)
