from __future__ import annotations

import base64
import binascii
import os
import re
from io import BytesIO

import cv2
import numpy as np
from PIL import Image, ImageOps

MAX_DECODE_MEGAPIXELS = max(1.0, float(os.getenv("PHOTOCHECK_MAX_DECODE_MEGAPIXELS", "36")))
MAX_DECODE_PIXELS = int(MAX_DECODE_MEGAPIXELS * 1_000_000)
Image.MAX_IMAGE_PIXELS = MAX_DECODE_PIXELS

DATA_URL_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[\w-]+=[^;,]*)*)(?P<b64>;base64)?,(?P<data>.*)$",
    re.DOTALL,
)


class ImageTooLargeError(ValueError):
    pass


def encode_data_url(file_bytes: bytes, media_type: str) -> str:
    payload = base64.b64encode(file_bytes).decode("ascii")
    return f"data:{media_type};base64,{payload}"


def parse_data_url(data_url: str) -> tuple[str, bytes]:
    match = DATA_URL_PATTERN.match((data_url or "").strip())
    if match is None or not match.group("b64"):
        raise ValueError("Not a base64 data URL.")
    media_type = match.group("mime") or "application/octet-stream"
    try:
        file_bytes = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Data URL payload is not valid base64.") from exc
    return media_type.lower(), file_bytes


def base64_payload(data_url: str) -> str:
    _, _, payload = data_url.partition(",")
    return payload


def _enforce_decode_pixel_limit(width: int, height: int) -> None:
    if int(width) * int(height) > MAX_DECODE_PIXELS:
        raise ImageTooLargeError(
            "Image resolution is too large to process safely. "
            f"Maximum decode limit is {MAX_DECODE_MEGAPIXELS:.0f} megapixels."
        )


def decode_image_bytes(file_bytes: bytes) -> np.ndarray:
    try:
        pil_img = Image.open(BytesIO(file_bytes))
        _enforce_decode_pixel_limit(*pil_img.size)
        # Applies EXIF orientation so rotated phone shots read upright.
        pil_img = ImageOps.exif_transpose(pil_img).convert("RGB")
        return cv2.cvtColor(np.asarray(pil_img), cv2.COLOR_RGB2BGR)
    except Image.DecompressionBombError as exc:
        raise ImageTooLargeError(
            "Image resolution is too large to process safely. "
            f"Maximum decode limit is {MAX_DECODE_MEGAPIXELS:.0f} megapixels."
        ) from exc
    except ValueError:
        raise
    except OSError:
        pass

    bgr = cv2.imdecode(np.frombuffer(file_bytes, dtype=np.uint8), cv2.IMREAD_COLOR)
    if bgr is None:
        raise ValueError("Unable to decode image. Please upload a valid JPG/PNG/WEBP image.")
    _enforce_decode_pixel_limit(bgr.shape[1], bgr.shape[0])
    return bgr


def to_grayscale(bgr_image: np.ndarray) -> np.ndarray:
    return cv2.cvtColor(bgr_image, cv2.COLOR_BGR2GRAY)


def image_dimensions(file_bytes: bytes) -> tuple[int, int] | None:
    try:
        with Image.open(BytesIO(file_bytes)) as pil_img:
            return pil_img.size
    except (OSError, ValueError, Image.DecompressionBombError):
        return None
