from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal

from pydantic import ValidationError

from photocheck.config import MAX_IMAGE_SIZE_MB, Country
from photocheck.schemas import ComplianceResult
from photocheck.services.clients.base import BaseFaceDetectionClient, BaseOcrClient, BaseScoringClient
from photocheck.services.clients.exceptions import PayloadTooLargeError, ScoringServiceError
from photocheck.services.intake import UploadedImage

LOG = logging.getLogger("photocheck.orchestrator")

BODY_LIMIT_MARKER = "Body exceeded 1 MB limit"

TOO_LARGE_MESSAGE = f"Image is too large. Please reduce its size to under {MAX_IMAGE_SIZE_MB}MB."
NO_FACE_MESSAGE = "No human face detected. Please upload a clear photo of a person."
SCORING_FAILED_MESSAGE = "Analysis failed. Please try again with a different photo."
UNEXPECTED_MESSAGE = "An unexpected error occurred during analysis."


@dataclass(frozen=True)
class AnalysisSucceeded:
    result: ComplianceResult


@dataclass(frozen=True)
class FaceRejected:
    reason: Literal["payload_too_large", "no_face"]

    @property
    def message(self) -> str:
        return TOO_LARGE_MESSAGE if self.reason == "payload_too_large" else NO_FACE_MESSAGE


@dataclass(frozen=True)
class ScoringFailed:
    detail: str

    @property
    def message(self) -> str:
        return SCORING_FAILED_MESSAGE


@dataclass(frozen=True)
class UnexpectedFailure:
    detail: str
    payload_too_large: bool = False

    @property
    def message(self) -> str:
        return TOO_LARGE_MESSAGE if self.payload_too_large else UNEXPECTED_MESSAGE


AnalysisOutcome = AnalysisSucceeded | FaceRejected | ScoringFailed | UnexpectedFailure


def normalize_scoring_payload(payload: Any) -> ComplianceResult | str:
    """Validate a raw scoring payload.

    Returns the normalized result, or a short reason string when the payload
    is an error marker or does not have the expected shape.
    """
    if not isinstance(payload, dict):
        return "scoring payload is not an object"
    if "error" in payload:
        return f"scoring service reported: {payload.get('error')}"
    try:
        return ComplianceResult.model_validate(payload)
    except ValidationError as exc:
        return f"malformed scoring payload ({exc.error_count()} errors)"


class AnalysisOrchestrator:
    def __init__(
        self,
        face_client: BaseFaceDetectionClient,
        ocr_client: BaseOcrClient,
        scoring_client: BaseScoringClient,
        *,
        delay_seconds: float = 3.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.face_client = face_client
        self.ocr_client = ocr_client
        self.scoring_client = scoring_client
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    async def run(self, image: UploadedImage, country: Country) -> AnalysisOutcome:
        try:
            return await self._run(image, country)
        except Exception as exc:
            too_large = isinstance(exc, PayloadTooLargeError) or BODY_LIMIT_MARKER in str(exc)
            LOG.exception("analysis_unexpected_error country=%s payload_too_large=%s", country.code, too_large)
            return UnexpectedFailure(detail=f"{type(exc).__name__}: {exc}", payload_too_large=too_large)

    async def _run(self, image: UploadedImage, country: Country) -> AnalysisOutcome:
        if self.delay_seconds > 0:
            await self._sleep(self.delay_seconds)

        face = await self.face_client.detect(image.data_url)
        if face.error_code == "payload_too_large":
            LOG.info("analysis_face_rejected reason=payload_too_large country=%s", country.code)
            return FaceRejected(reason="payload_too_large")
        if face.error or not face.face_detected:
            LOG.info("analysis_face_rejected reason=no_face country=%s error=%s", country.code, face.error)
            return FaceRejected(reason="no_face")
        face = face.model_copy(update={"image_width": image.width, "image_height": image.height})

        ocr = await self.ocr_client.extract_text(image.data_url)

        analysis_data = {
            "ocr": ocr.model_dump(),
            "face_detection": face.model_dump(),
        }
        try:
            payload = await self.scoring_client.score(analysis_data, country)
        except ScoringServiceError as exc:
            LOG.warning("analysis_scoring_failed country=%s detail=%s", country.code, exc)
            return ScoringFailed(detail=str(exc))

        normalized = normalize_scoring_payload(payload)
        if isinstance(normalized, str):
            LOG.warning("analysis_scoring_failed country=%s detail=%s", country.code, normalized)
            return ScoringFailed(detail=normalized)

        LOG.info(
            "analysis_succeeded country=%s score=%.1f checks=%d",
            country.code,
            normalized.overall_score,
            len(normalized.checks),
        )
        return AnalysisSucceeded(result=normalized)
