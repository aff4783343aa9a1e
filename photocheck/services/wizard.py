from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable

from photocheck.config import Country
from photocheck.schemas import ComplianceResult
from photocheck.services.intake import (
    IntakeAccepted,
    IntakeOutcome,
    IntakeRejected,
    IntakeUnreadable,
    UploadedImage,
)
from photocheck.services.notifications import DEFAULT_LIFETIME_SECONDS, NotificationCenter
from photocheck.services.orchestrator import (
    AnalysisOutcome,
    AnalysisSucceeded,
    FaceRejected,
    ScoringFailed,
    UnexpectedFailure,
)

LOG = logging.getLogger("photocheck.wizard")


class WizardStep(str, Enum):
    UPLOAD = "upload"
    COUNTRY = "country"
    ANALYZING = "analyzing"
    RESULTS = "results"


class WizardEvent(str, Enum):
    IMAGE_ACCEPTED = "image_accepted"
    IMAGE_REMOVED = "image_removed"
    UPLOAD_FAILED = "upload_failed"
    COUNTRY_SELECTED = "country_selected"
    ANALYSIS_STARTED = "analysis_started"
    ANALYSIS_SUCCEEDED = "analysis_succeeded"
    PHOTO_REJECTED = "photo_rejected"
    ANALYSIS_FAILED = "analysis_failed"
    RESET = "reset"


TRANSITIONS: dict[tuple[WizardStep, WizardEvent], WizardStep] = {
    (WizardStep.UPLOAD, WizardEvent.IMAGE_ACCEPTED): WizardStep.COUNTRY,
    (WizardStep.COUNTRY, WizardEvent.IMAGE_ACCEPTED): WizardStep.COUNTRY,
    (WizardStep.COUNTRY, WizardEvent.IMAGE_REMOVED): WizardStep.UPLOAD,
    (WizardStep.UPLOAD, WizardEvent.UPLOAD_FAILED): WizardStep.UPLOAD,
    (WizardStep.COUNTRY, WizardEvent.UPLOAD_FAILED): WizardStep.UPLOAD,
    (WizardStep.COUNTRY, WizardEvent.COUNTRY_SELECTED): WizardStep.COUNTRY,
    (WizardStep.COUNTRY, WizardEvent.ANALYSIS_STARTED): WizardStep.ANALYZING,
    (WizardStep.ANALYZING, WizardEvent.ANALYSIS_SUCCEEDED): WizardStep.RESULTS,
    (WizardStep.ANALYZING, WizardEvent.PHOTO_REJECTED): WizardStep.UPLOAD,
    (WizardStep.ANALYZING, WizardEvent.ANALYSIS_FAILED): WizardStep.COUNTRY,
    (WizardStep.RESULTS, WizardEvent.RESET): WizardStep.UPLOAD,
}


class InvalidTransition(RuntimeError):
    def __init__(self, step: WizardStep, event: WizardEvent) -> None:
        super().__init__(f"Cannot apply '{event.value}' while on step '{step.value}'.")
        self.step = step
        self.event = event


def transition(step: WizardStep, event: WizardEvent) -> WizardStep:
    try:
        return TRANSITIONS[(step, event)]
    except KeyError:
        raise InvalidTransition(step, event) from None


class WizardSession:
    """Per-browser wizard state: current step plus the data the steps collect."""

    def __init__(
        self,
        session_id: str,
        *,
        notification_seconds: float = DEFAULT_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_id = session_id
        self.step = WizardStep.UPLOAD
        self.image: UploadedImage | None = None
        self.country: Country | None = None
        self.result: ComplianceResult | None = None
        self.notifications = NotificationCenter(notification_seconds, clock=clock)
        self._clock = clock
        self.last_seen = clock()

    def touch(self) -> None:
        self.last_seen = self._clock()

    def _fire(self, event: WizardEvent) -> None:
        previous = self.step
        self.step = transition(self.step, event)
        LOG.debug(
            "wizard_transition session=%s from=%s event=%s to=%s",
            self.session_id,
            previous.value,
            event.value,
            self.step.value,
        )

    @property
    def can_analyze(self) -> bool:
        return self.image is not None and self.country is not None and self.step is WizardStep.COUNTRY

    @property
    def can_select_country(self) -> bool:
        return self.image is not None and self.step is WizardStep.COUNTRY

    def handle_intake(self, outcome: IntakeOutcome) -> None:
        if isinstance(outcome, IntakeAccepted):
            self.accept_image(outcome.image)
        elif isinstance(outcome, IntakeRejected):
            self.reject_upload(outcome)
        elif isinstance(outcome, IntakeUnreadable):
            self.fail_upload(outcome.message)

    def accept_image(self, image: UploadedImage) -> None:
        self._fire(WizardEvent.IMAGE_ACCEPTED)
        self.image = image
        self.result = None
        self.notifications.clear()

    def reject_upload(self, rejection: IntakeRejected) -> None:
        # Validation failures only notify; the current photo and step stay as they were.
        if self.step not in (WizardStep.UPLOAD, WizardStep.COUNTRY):
            raise InvalidTransition(self.step, WizardEvent.UPLOAD_FAILED)
        self.notifications.show(rejection.message, rejection.level)

    def fail_upload(self, message: str) -> None:
        self._fire(WizardEvent.UPLOAD_FAILED)
        self.image = None
        self.result = None
        self.notifications.show(message, "error")

    def remove_image(self) -> None:
        self._fire(WizardEvent.IMAGE_REMOVED)
        self.image = None
        self.result = None
        self.notifications.clear()

    def select_country(self, country: Country) -> None:
        if self.image is None:
            raise InvalidTransition(self.step, WizardEvent.COUNTRY_SELECTED)
        self._fire(WizardEvent.COUNTRY_SELECTED)
        self.country = country

    def begin_analysis(self) -> tuple[UploadedImage, Country]:
        if not self.can_analyze:
            raise InvalidTransition(self.step, WizardEvent.ANALYSIS_STARTED)
        self._fire(WizardEvent.ANALYSIS_STARTED)
        self.result = None
        self.notifications.clear()
        return self.image, self.country

    def apply_outcome(self, outcome: AnalysisOutcome) -> None:
        if isinstance(outcome, AnalysisSucceeded):
            self._fire(WizardEvent.ANALYSIS_SUCCEEDED)
            self.result = outcome.result
        elif isinstance(outcome, FaceRejected):
            self._fire(WizardEvent.PHOTO_REJECTED)
            self.image = None
            self.notifications.show(outcome.message, "error")
        elif isinstance(outcome, (ScoringFailed, UnexpectedFailure)):
            self._fire(WizardEvent.ANALYSIS_FAILED)
            self.notifications.show(outcome.message, "error")
        else:
            raise TypeError(f"Unsupported analysis outcome: {outcome!r}")

    def reset(self) -> None:
        self._fire(WizardEvent.RESET)
        self.image = None
        self.country = None
        self.result = None
        self.notifications.clear()
