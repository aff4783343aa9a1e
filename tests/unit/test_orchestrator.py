import asyncio

from photocheck.schemas import FaceDetectionResult
from photocheck.services.clients.exceptions import PayloadTooLargeError, ScoringServiceError
from photocheck.services.orchestrator import (
    AnalysisOrchestrator,
    AnalysisSucceeded,
    FaceRejected,
    ScoringFailed,
    UnexpectedFailure,
    normalize_scoring_payload,
)


def _orchestrator(fakes, face=None, ocr=None, scoring=None, **kwargs) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(
        face or fakes["face"](),
        ocr or fakes["ocr"](),
        scoring or fakes["scoring"](),
        **{"delay_seconds": 0, **kwargs},
    )


class TestAnalysisOrchestrator:
    def test_success_normalizes_payload(self, fakes, uploaded_image, japan) -> None:
        outcome = asyncio.run(_orchestrator(fakes).run(uploaded_image, japan))
        assert isinstance(outcome, AnalysisSucceeded)
        assert outcome.result.overall_score == 72
        assert outcome.result.checks[0].status == "warning"
        assert outcome.result.recommendations == []
        assert outcome.result.country_specific_notes == []

    def test_calls_run_in_order_with_combined_payload(self, fakes, uploaded_image, japan) -> None:
        face, ocr, scoring = fakes["face"](), fakes["ocr"](text="P<JPN"), fakes["scoring"]()
        asyncio.run(_orchestrator(fakes, face, ocr, scoring).run(uploaded_image, japan))
        assert face.calls == [uploaded_image.data_url]
        assert ocr.calls == [uploaded_image.data_url]
        analysis_data, country = scoring.calls[0]
        assert country == japan
        assert analysis_data["ocr"]["text"] == "P<JPN"
        assert analysis_data["face_detection"]["face_detected"] is True
        assert analysis_data["face_detection"]["image_width"] == 60

    def test_no_face_stops_before_ocr(self, fakes, uploaded_image, japan) -> None:
        face = fakes["face"](FaceDetectionResult(face_detected=False))
        ocr, scoring = fakes["ocr"](), fakes["scoring"]()
        outcome = asyncio.run(_orchestrator(fakes, face, ocr, scoring).run(uploaded_image, japan))
        assert outcome == FaceRejected(reason="no_face")
        assert ocr.calls == []
        assert scoring.calls == []

    def test_face_service_error_counts_as_no_face(self, fakes, uploaded_image, japan) -> None:
        face = fakes["face"](FaceDetectionResult(face_detected=True, error="INVALID_IMAGE_URL", error_code="service_error"))
        outcome = asyncio.run(_orchestrator(fakes, face).run(uploaded_image, japan))
        assert outcome == FaceRejected(reason="no_face")

    def test_face_payload_too_large(self, fakes, uploaded_image, japan) -> None:
        face = fakes["face"](FaceDetectionResult(error="IMAGE_FILE_TOO_LARGE", error_code="payload_too_large"))
        outcome = asyncio.run(_orchestrator(fakes, face).run(uploaded_image, japan))
        assert outcome == FaceRejected(reason="payload_too_large")

    def test_scoring_error_marker(self, fakes, uploaded_image, japan) -> None:
        scoring = fakes["scoring"]({"error": "could not judge"})
        outcome = asyncio.run(_orchestrator(fakes, scoring=scoring).run(uploaded_image, japan))
        assert isinstance(outcome, ScoringFailed)
        assert "could not judge" in outcome.detail

    def test_malformed_scoring_payload(self, fakes, uploaded_image, japan) -> None:
        scoring = fakes["scoring"]({"overallScore": "high", "checks": "none"})
        outcome = asyncio.run(_orchestrator(fakes, scoring=scoring).run(uploaded_image, japan))
        assert isinstance(outcome, ScoringFailed)

    def test_scoring_service_error(self, fakes, uploaded_image, japan) -> None:
        scoring = fakes["scoring"](error=ScoringServiceError("Gemini returned invalid JSON"))
        outcome = asyncio.run(_orchestrator(fakes, scoring=scoring).run(uploaded_image, japan))
        assert outcome == ScoringFailed(detail="Gemini returned invalid JSON")

    def test_unexpected_exception_is_caught(self, fakes, uploaded_image, japan) -> None:
        ocr = fakes["ocr"](error=RuntimeError("tesseract crashed"))
        outcome = asyncio.run(_orchestrator(fakes, ocr=ocr).run(uploaded_image, japan))
        assert isinstance(outcome, UnexpectedFailure)
        assert not outcome.payload_too_large

    def test_body_limit_exception_is_flagged(self, fakes, uploaded_image, japan) -> None:
        face = fakes["face"](error=RuntimeError("Body exceeded 1 MB limit"))
        outcome = asyncio.run(_orchestrator(fakes, face).run(uploaded_image, japan))
        assert isinstance(outcome, UnexpectedFailure)
        assert outcome.payload_too_large

    def test_payload_too_large_error_is_flagged(self, fakes, uploaded_image, japan) -> None:
        ocr = fakes["ocr"](error=PayloadTooLargeError("too big"))
        outcome = asyncio.run(_orchestrator(fakes, ocr=ocr).run(uploaded_image, japan))
        assert isinstance(outcome, UnexpectedFailure)
        assert outcome.payload_too_large

    def test_waits_before_first_call(self, fakes, uploaded_image, japan) -> None:
        events: list[str] = []

        async def fake_sleep(seconds: float) -> None:
            events.append(f"sleep:{seconds}")

        face = fakes["face"]()
        orchestrator = _orchestrator(fakes, face, delay_seconds=3.0, sleep=fake_sleep)
        asyncio.run(orchestrator.run(uploaded_image, japan))
        assert events == ["sleep:3.0"]
        assert len(face.calls) == 1

    def test_zero_delay_skips_sleep(self, fakes, uploaded_image, japan) -> None:
        async def failing_sleep(seconds: float) -> None:
            raise AssertionError("sleep should not be called")

        outcome = asyncio.run(_orchestrator(fakes, sleep=failing_sleep).run(uploaded_image, japan))
        assert isinstance(outcome, AnalysisSucceeded)


class TestNormalizeScoringPayload:
    def test_defaults_optional_lists(self) -> None:
        result = normalize_scoring_payload({"overallScore": 50, "checks": [], "recommendations": None})
        assert result.recommendations == []
        assert result.country_specific_notes == []

    def test_keeps_optional_lists(self) -> None:
        result = normalize_scoring_payload(
            {
                "overallScore": 88.4,
                "checks": [{"category": "Eyes", "status": "WARN", "message": "half closed", "suggestion": "open eyes"}],
                "recommendations": ["Retake in daylight"],
                "countrySpecificNotes": ["No glasses allowed"],
            }
        )
        assert result.checks[0].status == "warning"
        assert result.recommendations == ["Retake in daylight"]
        assert result.country_specific_notes == ["No glasses allowed"]

    def test_score_out_of_range_is_rejected(self) -> None:
        assert isinstance(normalize_scoring_payload({"overallScore": 140, "checks": []}), str)

    def test_unknown_status_is_rejected(self) -> None:
        payload = {"overallScore": 40, "checks": [{"category": "X", "status": "maybe", "message": "?"}]}
        assert isinstance(normalize_scoring_payload(payload), str)

    def test_non_object_is_rejected(self) -> None:
        assert normalize_scoring_payload(["not", "a", "dict"]) == "scoring payload is not an object"
