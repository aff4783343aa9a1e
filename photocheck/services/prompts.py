from __future__ import annotations

import json
from typing import Any

from photocheck.config import Country

SYSTEM_PROMPT = (
    "You are an expert reviewer of passport and ID photos. You judge a photo against the "
    "official passport photo rules of one country, using only the face-detection metadata "
    "and OCR text you are given. Answer with JSON only."
)

RESPONSE_SHAPE = {
    "overallScore": "number from 0 to 100",
    "checks": [
        {
            "category": "short criterion name, e.g. Background, Head Position, Lighting, Expression, Eyes, Glasses, Text or Watermarks",
            "status": "pass | warning | fail",
            "message": "finding for this criterion",
            "suggestion": "how to fix it (required for warning and fail)",
            "warningMessage": "optional finding wording used when status is warning",
            "failMessage": "optional finding wording used when status is fail",
        }
    ],
    "recommendations": ["general advice, may be empty"],
    "countrySpecificNotes": ["rules that apply specifically to this country, may be empty"],
}

USER_PROMPT_TEMPLATE = """Country: {country_name} ({country_code})

Assess whether this photo would be accepted for a {country_name} passport.
Cover at least: face visibility and count, head pose and centering, eyes open and
gaze, neutral expression, image sharpness, lighting and shadows, and any visible
text, logos or watermarks (use the OCR text for the last one).

Face detection result:
{face_detection}

OCR result:
{ocr}

Respond with a single JSON object of exactly this shape:
{response_shape}

If the data is insufficient to judge the photo, respond with {{"error": "<reason>"}}."""


def build_scoring_prompt(analysis_data: dict[str, Any], country: Country) -> str:
    return USER_PROMPT_TEMPLATE.format(
        country_name=country.name,
        country_code=country.code,
        face_detection=json.dumps(analysis_data.get("face_detection"), indent=2, default=str),
        ocr=json.dumps(analysis_data.get("ocr"), indent=2, default=str),
        response_shape=json.dumps(RESPONSE_SHAPE, indent=2),
    )
