from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


CheckStatus = Literal["pass", "warning", "fail"]
NotificationLevel = Literal["info", "warning", "error"]

_STATUS_ALIASES = {"warn": "warning", "passed": "pass", "failed": "fail"}


class CheckItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: str
    status: CheckStatus
    message: str
    suggestion: str | None = None
    warning_message: str | None = Field(default=None, alias="warningMessage")
    fail_message: str | None = Field(default=None, alias="failMessage")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _STATUS_ALIASES.get(lowered, lowered)
        return value


class ComplianceResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    overall_score: float = Field(alias="overallScore", ge=0, le=100)
    checks: list[CheckItem]
    recommendations: list[str] = Field(default_factory=list)
    country_specific_notes: list[str] = Field(default_factory=list, alias="countrySpecificNotes")

    @field_validator("recommendations", "country_specific_notes", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class FaceDetectionResult(BaseModel):
    face_detected: bool = False
    face_count: int = 0
    faces: list[dict[str, Any]] = Field(default_factory=list)
    image_width: int | None = None
    image_height: int | None = None
    error: str | None = None
    error_code: Literal["payload_too_large", "service_error"] | None = None


class OcrResult(BaseModel):
    text: str
    language: str


class CountryInfo(BaseModel):
    code: str
    name: str
    flag: str


class NotificationOut(BaseModel):
    id: int
    message: str
    level: NotificationLevel


class SessionSnapshot(BaseModel):
    step: str
    has_image: bool
    image_media_type: str | None = None
    country: CountryInfo | None = None
    can_analyze: bool
    result: ComplianceResult | None = None
    notification: NotificationOut | None = None


class AnalyzeResponse(BaseModel):
    country: CountryInfo
    result: ComplianceResult
