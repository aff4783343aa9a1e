from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from photocheck.config import Country
from photocheck.schemas import FaceDetectionResult, OcrResult


class BaseFaceDetectionClient(ABC):
    """Contract for face-detection services."""

    @abstractmethod
    async def detect(self, image_data_url: str) -> FaceDetectionResult:
        """Detect faces in the image.

        Service-side failures are reported through ``error`` / ``error_code``
        on the returned result instead of being raised.
        """


class BaseOcrClient(ABC):
    """Contract for text-extraction services."""

    @abstractmethod
    async def extract_text(self, image_data_url: str) -> OcrResult:
        """Return the text found in the image."""


class BaseScoringClient(ABC):
    """Contract for generative compliance scoring services."""

    @abstractmethod
    async def score(self, analysis_data: dict[str, Any], country: Country) -> dict[str, Any]:
        """Return the raw scoring payload.

        The payload is either ComplianceResult-shaped or carries an ``error``
        key. Raises ScoringServiceError when the service cannot be reached or
        its output cannot be decoded.
        """
