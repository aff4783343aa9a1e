from __future__ import annotations

import asyncio
import logging

import pytesseract

from photocheck.schemas import OcrResult
from photocheck.services.clients.base import BaseOcrClient
from photocheck.services.clients.exceptions import PayloadTooLargeError
from photocheck.services.image_ops import ImageTooLargeError, decode_image_bytes, parse_data_url, to_grayscale

LOG = logging.getLogger("photocheck.clients")


class TesseractOcrClient(BaseOcrClient):
    """Text extraction through the Tesseract engine."""

    def __init__(self, *, lang: str = "eng", tesseract_cmd: str | None = None) -> None:
        self._lang = lang
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def _extract(self, image_data_url: str) -> str:
        _, file_bytes = parse_data_url(image_data_url)
        try:
            gray = to_grayscale(decode_image_bytes(file_bytes))
        except ImageTooLargeError as exc:
            raise PayloadTooLargeError(str(exc)) from exc
        return pytesseract.image_to_string(gray, lang=self._lang)

    async def extract_text(self, image_data_url: str) -> OcrResult:
        text = await asyncio.to_thread(self._extract, image_data_url)
        text = text.strip()
        LOG.info("ocr_done chars=%d lang=%s", len(text), self._lang)
        return OcrResult(text=text, language=self._lang)
