from __future__ import annotations

import math
from dataclasses import dataclass, field

from photocheck.config import Country
from photocheck.schemas import CheckItem, CheckStatus, ComplianceResult

PASS_SUGGESTION = "No issues detected. Meets requirements."

SCORE_BANDS: tuple[tuple[float, CheckStatus, str], ...] = (
    (80, "pass", "Excellent compliance!"),
    (60, "warning", "Good, with minor issues"),
    (0, "fail", "Needs improvement"),
)


@dataclass(frozen=True)
class CheckView:
    category: str
    status: CheckStatus
    message: str
    suggestion: str | None


@dataclass(frozen=True)
class ReportView:
    country: Country
    score: int
    score_display: str
    band: CheckStatus
    verdict: str
    passed: int
    warnings: int
    failed: int
    total: int
    checks: list[CheckView] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    country_notes: list[str] = field(default_factory=list)

    @property
    def show_recommendations(self) -> bool:
        return bool(self.recommendations)

    @property
    def show_country_notes(self) -> bool:
        return bool(self.country_notes)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_band(score: float) -> tuple[CheckStatus, str]:
    for threshold, band, verdict in SCORE_BANDS:
        if score >= threshold:
            return band, verdict
    return SCORE_BANDS[-1][1], SCORE_BANDS[-1][2]


def display_message(check: CheckItem) -> str:
    if check.status == "fail":
        return check.fail_message or check.message
    if check.status == "warning":
        return check.warning_message or check.message
    return check.message


def build_check_view(check: CheckItem) -> CheckView:
    suggestion = PASS_SUGGESTION if check.status == "pass" else check.suggestion
    return CheckView(
        category=check.category,
        status=check.status,
        message=display_message(check),
        suggestion=suggestion,
    )


def build_report(result: ComplianceResult, country: Country) -> ReportView:
    score = round_half_up(result.overall_score)
    band, verdict = score_band(result.overall_score)
    statuses = [check.status for check in result.checks]
    return ReportView(
        country=country,
        score=score,
        score_display=f"{score}%",
        band=band,
        verdict=verdict,
        passed=statuses.count("pass"),
        warnings=statuses.count("warning"),
        failed=statuses.count("fail"),
        total=len(statuses),
        checks=[build_check_view(check) for check in result.checks],
        recommendations=list(result.recommendations),
        country_notes=list(result.country_specific_notes),
    )
