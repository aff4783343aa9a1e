import io
from typing import Any

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from photocheck.config import Country
from photocheck.main import app, get_orchestrator, get_rate_limiter, get_session_store
from photocheck.schemas import FaceDetectionResult, OcrResult
from photocheck.services.clients.base import BaseFaceDetectionClient, BaseOcrClient, BaseScoringClient
from photocheck.services.intake import IntakeAccepted, accept_file
from photocheck.services.orchestrator import AnalysisOrchestrator
from photocheck.services.rate_limit import AnalysisRateLimiter
from photocheck.services.sessions import SessionStore

WELL_FORMED_SCORE = {
    "overallScore": 72,
    "checks": [
        {"category": "Background", "status": "warning", "message": "slightly off-white"},
    ],
}


class FakeFaceClient(BaseFaceDetectionClient):
    def __init__(self, result: FaceDetectionResult | None = None, error: Exception | None = None) -> None:
        self.result = result or FaceDetectionResult(face_detected=True, face_count=1)
        self.error = error
        self.calls: list[str] = []

    async def detect(self, image_data_url: str) -> FaceDetectionResult:
        self.calls.append(image_data_url)
        if self.error is not None:
            raise self.error
        return self.result


class FakeOcrClient(BaseOcrClient):
    def __init__(self, text: str = "PASSPORT", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[str] = []

    async def extract_text(self, image_data_url: str) -> OcrResult:
        self.calls.append(image_data_url)
        if self.error is not None:
            raise self.error
        return OcrResult(text=self.text, language="eng")


class FakeScoringClient(BaseScoringClient):
    def __init__(self, payload: Any = None, error: Exception | None = None) -> None:
        self.payload = WELL_FORMED_SCORE if payload is None else payload
        self.error = error
        self.calls: list[tuple[dict[str, Any], Country]] = []

    async def score(self, analysis_data: dict[str, Any], country: Country) -> dict[str, Any]:
        self.calls.append((analysis_data, country))
        if self.error is not None:
            raise self.error
        return self.payload


def make_jpeg(size_bytes: int | None = None) -> bytes:
    """Encode a small JPEG, optionally padded after the end marker to an exact size."""
    buf = io.BytesIO()
    Image.new("RGB", (60, 80), (240, 240, 240)).save(buf, format="JPEG")
    data = buf.getvalue()
    if size_bytes is not None and size_bytes > len(data):
        data += b"\x00" * (size_bytes - len(data))
    return data


def make_orchestrator(
    face: FakeFaceClient | None = None,
    ocr: FakeOcrClient | None = None,
    scoring: FakeScoringClient | None = None,
) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(
        face or FakeFaceClient(),
        ocr or FakeOcrClient(),
        scoring or FakeScoringClient(),
        delay_seconds=0,
    )


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture()
def uploaded_image(jpeg_bytes: bytes):
    outcome = accept_file(jpeg_bytes, content_type="image/jpeg", filename="photo.jpg")
    assert isinstance(outcome, IntakeAccepted)
    return outcome.image


@pytest.fixture()
def japan() -> Country:
    return Country(code="JP", name="Japan", flag="🇯🇵")


@pytest.fixture()
def fake_face() -> FakeFaceClient:
    return FakeFaceClient()


@pytest.fixture()
def fake_ocr() -> FakeOcrClient:
    return FakeOcrClient()


@pytest.fixture()
def fake_scoring() -> FakeScoringClient:
    return FakeScoringClient()


@pytest.fixture()
def session_store() -> SessionStore:
    return SessionStore()


@pytest.fixture()
def client(fake_face, fake_ocr, fake_scoring, session_store):
    orchestrator = make_orchestrator(fake_face, fake_ocr, fake_scoring)
    limiter = AnalysisRateLimiter(rate_per_min=600, burst=100, daily_limit=1000)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def jpeg_factory():
    return make_jpeg


@pytest.fixture()
def fakes():
    """Expose the fake collaborator classes to tests that build their own."""
    return {"face": FakeFaceClient, "ocr": FakeOcrClient, "scoring": FakeScoringClient}
