from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from typing import Literal

from photocheck.config import MAX_IMAGE_SIZE_BYTES, MAX_IMAGE_SIZE_MB
from photocheck.services.image_ops import encode_data_url, image_dimensions, parse_data_url

LOG = logging.getLogger("photocheck.intake")

IntakeSource = Literal["browse", "drop", "paste"]

INVALID_TYPE_MESSAGE = "Invalid file type. Please upload an image."
TOO_LARGE_MESSAGE = f"Image size exceeds {MAX_IMAGE_SIZE_MB}MB. Please reduce its size."
UNREADABLE_MESSAGE = "Could not read the image. Please try another file."

_GENERIC_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


@dataclass(frozen=True)
class UploadedImage:
    data_url: str
    media_type: str
    size_bytes: int
    filename: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class IntakeAccepted:
    image: UploadedImage


@dataclass(frozen=True)
class IntakeRejected:
    reason: Literal["invalid_type", "too_large"]
    message: str
    level: Literal["warning", "error"]


@dataclass(frozen=True)
class IntakeUnreadable:
    message: str = UNREADABLE_MESSAGE


IntakeOutcome = IntakeAccepted | IntakeRejected | IntakeUnreadable


def infer_media_type(content_type: str | None, filename: str | None) -> str:
    declared = (content_type or "").split(";", 1)[0].strip().lower()
    if declared not in _GENERIC_TYPES:
        return declared
    guessed, _ = mimetypes.guess_type(filename or "")
    return (guessed or declared or "application/octet-stream").lower()


def accept_file(
    file_bytes: bytes,
    *,
    content_type: str | None,
    filename: str | None = None,
    source: IntakeSource = "browse",
) -> IntakeOutcome:
    media_type = infer_media_type(content_type, filename)
    if not media_type.startswith("image/"):
        LOG.info("intake_rejected reason=invalid_type media_type=%s source=%s", media_type, source)
        return IntakeRejected(reason="invalid_type", message=INVALID_TYPE_MESSAGE, level="error")

    if len(file_bytes) > MAX_IMAGE_SIZE_BYTES:
        LOG.info("intake_rejected reason=too_large size=%d source=%s", len(file_bytes), source)
        return IntakeRejected(reason="too_large", message=TOO_LARGE_MESSAGE, level="warning")

    if not file_bytes:
        LOG.info("intake_unreadable reason=empty source=%s", source)
        return IntakeUnreadable()

    # Dimensions are best-effort; the face service judges the pixels.
    width, height = image_dimensions(file_bytes) or (None, None)
    LOG.info(
        "intake_accepted media_type=%s size=%d width=%s height=%s source=%s",
        media_type,
        len(file_bytes),
        width,
        height,
        source,
    )
    return IntakeAccepted(
        image=UploadedImage(
            data_url=encode_data_url(file_bytes, media_type),
            media_type=media_type,
            size_bytes=len(file_bytes),
            filename=filename,
            width=width,
            height=height,
        )
    )


def accept_data_url(data_url: str, *, source: IntakeSource = "paste") -> IntakeOutcome:
    stripped = (data_url or "").strip()
    declared = stripped[5:].split(";", 1)[0].split(",", 1)[0].lower() if stripped.startswith("data:") else ""
    if declared and not declared.startswith("image/"):
        LOG.info("intake_rejected reason=invalid_type media_type=%s source=%s", declared, source)
        return IntakeRejected(reason="invalid_type", message=INVALID_TYPE_MESSAGE, level="error")

    try:
        media_type, file_bytes = parse_data_url(stripped)
    except ValueError:
        LOG.info("intake_unreadable reason=bad_data_url source=%s", source)
        return IntakeUnreadable()
    return accept_file(file_bytes, content_type=media_type, source=source)
