from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

BASE_DIR = Path(__file__).resolve().parents[1]
COUNTRY_DATA_PATH = BASE_DIR / "photocheck" / "data" / "countries.yaml"

MAX_IMAGE_SIZE_MB = 1
MAX_IMAGE_SIZE_BYTES = MAX_IMAGE_SIZE_MB * 1024 * 1024
FACEPP_DETECT_URL = "https://api-us.faceplusplus.com/facepp/v3/detect"


class Country(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    flag: str


class CountryTable(BaseModel):
    countries: list[Country] = Field(default_factory=list)


class ServiceSettings(BaseModel):
    facepp_api_key: str = ""
    facepp_api_secret: str = ""
    facepp_detect_url: str = FACEPP_DETECT_URL
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    tesseract_cmd: str | None = None
    ocr_lang: str = "eng"
    http_timeout_seconds: float = 30.0
    analysis_delay_seconds: float = 3.0
    notification_seconds: float = 5.0
    session_idle_minutes: int = 30
    rate_per_min: int = 10
    burst: int = 20
    daily_limit: int = 200
    max_inflight: int = 3
    trust_x_forwarded_for: bool = True


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def load_country_table() -> CountryTable:
    with COUNTRY_DATA_PATH.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle)
    return CountryTable(**raw)


@lru_cache(maxsize=1)
def load_service_settings() -> ServiceSettings:
    return ServiceSettings(
        facepp_api_key=os.getenv("FACEPP_API_KEY", ""),
        facepp_api_secret=os.getenv("FACEPP_API_SECRET", ""),
        facepp_detect_url=os.getenv("FACEPP_DETECT_URL", FACEPP_DETECT_URL),
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        tesseract_cmd=os.getenv("PHOTOCHECK_TESSERACT_CMD") or None,
        ocr_lang=os.getenv("PHOTOCHECK_OCR_LANG", "eng"),
        http_timeout_seconds=max(1.0, float(os.getenv("PHOTOCHECK_HTTP_TIMEOUT_SECONDS", "30"))),
        analysis_delay_seconds=max(0.0, float(os.getenv("PHOTOCHECK_ANALYSIS_DELAY_SECONDS", "3"))),
        notification_seconds=max(0.0, float(os.getenv("PHOTOCHECK_NOTIFICATION_SECONDS", "5"))),
        session_idle_minutes=max(1, int(os.getenv("PHOTOCHECK_SESSION_IDLE_MINUTES", "30"))),
        rate_per_min=max(1, int(os.getenv("PHOTOCHECK_RATE_PER_MIN", "10"))),
        burst=max(1, int(os.getenv("PHOTOCHECK_BURST", "20"))),
        daily_limit=max(1, int(os.getenv("PHOTOCHECK_DAILY_LIMIT", "200"))),
        max_inflight=max(1, int(os.getenv("PHOTOCHECK_MAX_INFLIGHT", "3"))),
        trust_x_forwarded_for=_env_flag("PHOTOCHECK_TRUST_XFF", "1"),
    )
