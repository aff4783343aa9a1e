from __future__ import annotations

import logging
from typing import Any

import httpx

from photocheck.schemas import FaceDetectionResult
from photocheck.services.clients.base import BaseFaceDetectionClient
from photocheck.services.clients.exceptions import CollaboratorNotConfiguredError
from photocheck.services.image_ops import base64_payload

LOG = logging.getLogger("photocheck.clients")

RETURN_ATTRIBUTES = "headpose,blur,eyestatus,facequality,mouthstatus,eyegaze"
TOO_LARGE_MARKERS = ("IMAGE_FILE_TOO_LARGE", "Body exceeded 1 MB limit", "Request Entity Too Large")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error_message"):
        return str(body["error_message"])
    return f"HTTP {response.status_code}"


def _is_too_large(status_code: int, message: str) -> bool:
    return status_code == 413 or any(marker in message for marker in TOO_LARGE_MARKERS)


class FacePlusPlusClient(BaseFaceDetectionClient):
    """Face detection backed by the Face++ ``detect`` endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        api_secret: str,
        detect_url: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key or not api_secret:
            raise CollaboratorNotConfiguredError("FACEPP_API_KEY and FACEPP_API_SECRET must be set")
        self._api_key = api_key
        self._api_secret = api_secret
        self._detect_url = detect_url
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def detect(self, image_data_url: str) -> FaceDetectionResult:
        form = {
            "api_key": self._api_key,
            "api_secret": self._api_secret,
            "image_base64": base64_payload(image_data_url),
            "return_attributes": RETURN_ATTRIBUTES,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport) as client:
                response = await client.post(self._detect_url, data=form)
        except httpx.HTTPError as exc:
            LOG.warning("face_detection_unreachable error=%s", type(exc).__name__)
            return FaceDetectionResult(error=f"Face detection request failed: {exc}", error_code="service_error")

        if response.status_code >= 400:
            message = _error_message(response)
            code = "payload_too_large" if _is_too_large(response.status_code, message) else "service_error"
            LOG.warning("face_detection_failed status=%s error_code=%s message=%s", response.status_code, code, message)
            return FaceDetectionResult(error=message, error_code=code)

        try:
            body: dict[str, Any] = response.json()
        except ValueError:
            return FaceDetectionResult(error="Face detection returned a non-JSON body", error_code="service_error")

        if body.get("error_message"):
            message = str(body["error_message"])
            code = "payload_too_large" if _is_too_large(response.status_code, message) else "service_error"
            return FaceDetectionResult(error=message, error_code=code)

        faces = [face for face in body.get("faces") or [] if isinstance(face, dict)]
        face_count = int(body.get("face_num", len(faces)) or 0)
        LOG.info("face_detection_done face_count=%d", face_count)
        return FaceDetectionResult(
            face_detected=face_count > 0,
            face_count=face_count,
            faces=faces,
        )
