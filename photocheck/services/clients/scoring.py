from __future__ import annotations

import json
import logging
from typing import Any

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from photocheck.config import Country
from photocheck.services.clients.base import BaseScoringClient
from photocheck.services.clients.exceptions import CollaboratorNotConfiguredError, ScoringServiceError
from photocheck.services.prompts import SYSTEM_PROMPT, build_scoring_prompt

LOG = logging.getLogger("photocheck.clients")


class GeminiScoringClient(BaseScoringClient):
    """Compliance scoring through a Gemini generative model."""

    def __init__(
        self,
        *,
        api_key: str,
        model_name: str,
        temperature: float = 0.2,
        model: Any | None = None,
    ) -> None:
        self.model_name = model_name
        self.temperature = temperature
        if model is not None:
            self._model = model
            return
        if not api_key:
            raise CollaboratorNotConfiguredError("GEMINI_API_KEY must be set")
        genai.configure(api_key=api_key)
        self._model = genai.GenerativeModel(model_name, system_instruction=SYSTEM_PROMPT)

    async def score(self, analysis_data: dict[str, Any], country: Country) -> dict[str, Any]:
        prompt = build_scoring_prompt(analysis_data, country)
        try:
            response = await self._model.generate_content_async(
                prompt,
                generation_config=genai.GenerationConfig(
                    response_mime_type="application/json",
                    temperature=self.temperature,
                ),
            )
            text = response.text
        except google_exceptions.GoogleAPIError as exc:
            raise ScoringServiceError(f"Gemini API error: {exc}") from exc
        except ValueError as exc:
            # Raised by response.text when the candidate was blocked or empty.
            raise ScoringServiceError(f"Gemini returned no usable text: {exc}") from exc

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOG.warning("scoring_invalid_json model=%s chars=%d", self.model_name, len(text or ""))
            raise ScoringServiceError("Gemini returned invalid JSON") from exc

        if not isinstance(payload, dict):
            raise ScoringServiceError("Gemini returned a non-object JSON payload")
        LOG.info("scoring_done model=%s country=%s", self.model_name, country.code)
        return payload
