from __future__ import annotations

import os
import tempfile
import threading
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

TEST_STORAGE_DIR = Path(tempfile.mkdtemp(prefix="screening-artifacts-"))

os.environ["DATABASE_URL"] = "sqlite:///./test_screening_reports.db"
os.environ["ENVIRONMENT"] = "development"
os.environ["STORAGE_MODE"] = "local"
os.environ["LOCAL_STORAGE_DIR"] = str(TEST_STORAGE_DIR)
os.environ["CORS_ALLOWED_ORIGINS"] = "http://localhost:3000"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["IMAGE_FETCH_RETRY_DELAY_SECONDS"] = "0"
os.environ.pop("BRAND_LOGO_URL", None)

from app.core.config import Settings, get_settings
get_settings.cache_clear()
from app.core.rate_limit import limiter
from app.db.base import Base
from app.db.session import engine
from app.main import app

TEST_DB_PATH = Path("test_screening_reports.db")


class FakeResponse:
    def __init__(self, status_code: int, content: bytes = b"") -> None:
        self.status_code = status_code
        self.content = content


class FakeImageServer:
    """Stands in for ``requests.get``: each URL replays a scripted list of outcomes.

    An outcome is ``bytes`` (200 with that body), an ``int`` (that status, empty
    body), an exception instance (raised) or a ``threading.Event`` (block until set,
    then answer with the next outcome). The last outcome repeats once the list is used up.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list] = {}
        self.calls: list[dict] = []
        self.sleeps: list[float] = []
        self._lock = threading.Lock()

    def add(self, url: str, *outcomes) -> None:
        self.routes[url] = list(outcomes)

    def calls_for(self, url: str) -> list[dict]:
        return [call for call in self.calls if call["url"] == url]

    def _next(self, url: str):
        with self._lock:
            outcomes = self.routes.get(url)
            if not outcomes:
                return 404
            return outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]

    def get(self, url, timeout=None, headers=None, **kwargs):
        with self._lock:
            self.calls.append({"url": url, "timeout": timeout, "headers": dict(headers or {})})
        outcome = self._next(url)
        if isinstance(outcome, threading.Event):
            outcome.wait(timeout=5)
            outcome = self._next(url)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, int):
            return FakeResponse(outcome)
        return FakeResponse(200, outcome)

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def make_image_bytes(
    size: tuple[int, int] = (64, 48),
    *,
    fmt: str = "PNG",
    mode: str = "RGB",
    seed: int = 0,
) -> bytes:
    width, height = size
    rng = np.random.RandomState(seed)
    channels = 4 if mode == "RGBA" else 3
    arr = rng.randint(0, 255, (height, width, channels), dtype=np.uint8)
    img = Image.fromarray(arr)
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    storage = getattr(limiter, "_storage", None)
    if storage and hasattr(storage, "reset"):
        storage.reset()
    yield


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def image_server(monkeypatch) -> FakeImageServer:
    server = FakeImageServer()
    monkeypatch.setattr("app.services.image_source.requests.get", server.get)
    monkeypatch.setattr("app.services.image_source.time.sleep", server.sleep)
    return server


@pytest.fixture()
def make_image():
    return make_image_bytes


@pytest.fixture()
def fast_settings() -> Settings:
    return Settings(
        image_fetch_timeout_seconds=2.0,
        image_fetch_max_attempts=3,
        image_fetch_retry_delay_seconds=0.0,
        asset_slot_budget_seconds=10.0,
        report_deadline_seconds=10.0,
        brand_logo_url=None,
    )


@pytest.fixture(scope="session", autouse=True)
def cleanup_db_file():
    yield
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()
