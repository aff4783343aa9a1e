from photocheck.config import MAX_IMAGE_SIZE_BYTES
from photocheck.main import app, get_rate_limiter
from photocheck.schemas import FaceDetectionResult
from photocheck.services.rate_limit import AnalysisRateLimiter


def _analyze(client, data: bytes, country_code: str = "JP", content_type: str = "image/jpeg"):
    return client.post(
        "/api/analyze",
        files={"photo": ("photo.jpg", data, content_type)},
        data={"country_code": country_code},
    )


class TestPages:
    def test_landing_has_faq(self, client) -> None:
        page = client.get("/")
        assert page.status_code == 200
        assert "Frequently Asked Questions" in page.text
        assert "Is my photo stored on your servers?" in page.text

    def test_checker_sets_session_cookie(self, client) -> None:
        response = client.get("/checker")
        assert response.status_code == 200
        assert "photocheck_session" in response.cookies
        assert "Check Compliance" in response.text


class TestHealthAndCountries:
    def test_health(self, client) -> None:
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["max_image_mb"] == 1

    def test_countries_are_listed_alphabetically(self, client) -> None:
        body = client.get("/api/countries").json()
        assert len(body) == 53
        assert body[0] == {"code": "AR", "name": "Argentina", "flag": "🇦🇷"}

    def test_countries_filter(self, client) -> None:
        body = client.get("/api/countries", params={"q": "KOREA"}).json()
        assert [country["code"] for country in body] == ["KR"]


class TestAnalyzeEndpoint:
    def test_success(self, client, jpeg_bytes) -> None:
        response = _analyze(client, jpeg_bytes)
        assert response.status_code == 200
        body = response.json()
        assert body["country"]["code"] == "JP"
        assert body["result"]["overallScore"] == 72
        assert body["result"]["recommendations"] == []
        assert "X-RateLimit-Remaining-Minute" in response.headers

    def test_unknown_country(self, client, jpeg_bytes) -> None:
        assert _analyze(client, jpeg_bytes, country_code="ZZ").status_code == 404

    def test_invalid_type(self, client) -> None:
        response = _analyze(client, b"plain text", content_type="text/plain")
        assert response.status_code == 400

    def test_too_large(self, client, jpeg_factory) -> None:
        response = _analyze(client, jpeg_factory(MAX_IMAGE_SIZE_BYTES + 1))
        assert response.status_code == 413

    def test_no_face(self, client, jpeg_bytes, fake_face) -> None:
        fake_face.result = FaceDetectionResult(face_detected=False)
        response = _analyze(client, jpeg_bytes)
        assert response.status_code == 422
        assert response.json()["error"] == "no_face"

    def test_scoring_failure(self, client, jpeg_bytes, fake_scoring) -> None:
        fake_scoring.payload = {"error": "nope"}
        response = _analyze(client, jpeg_bytes)
        assert response.status_code == 502
        assert response.json()["error"] == "analysis_failed"

    def test_rate_limited(self, client, jpeg_bytes) -> None:
        limiter = AnalysisRateLimiter(rate_per_min=1, burst=1, daily_limit=10)
        app.dependency_overrides[get_rate_limiter] = lambda: limiter
        assert _analyze(client, jpeg_bytes).status_code == 200
        response = _analyze(client, jpeg_bytes)
        assert response.status_code == 429
        assert response.json()["reason"] == "rate_limit"
        assert "Retry-After" in response.headers
