from __future__ import annotations

import logging
import threading
from functools import lru_cache
from pathlib import Path
from typing import Any

from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from photocheck.config import MAX_IMAGE_SIZE_BYTES, MAX_IMAGE_SIZE_MB, ServiceSettings, load_service_settings
from photocheck.schemas import AnalyzeResponse, CountryInfo, NotificationOut, SessionSnapshot
from photocheck.services.clients.exceptions import CollaboratorNotConfiguredError
from photocheck.services.clients.face_detection import FacePlusPlusClient
from photocheck.services.clients.ocr import TesseractOcrClient
from photocheck.services.clients.scoring import GeminiScoringClient
from photocheck.services.countries import UnknownCountryError, filter_countries, get_country
from photocheck.services.intake import IntakeAccepted, IntakeRejected, accept_data_url, accept_file
from photocheck.services.orchestrator import (
    AnalysisOrchestrator,
    AnalysisSucceeded,
    FaceRejected,
    ScoringFailed,
    UnexpectedFailure,
)
from photocheck.services.presentation import build_report
from photocheck.services.rate_limit import AnalysisRateLimiter, RateDecision, client_key, session_key
from photocheck.services.sessions import SESSION_COOKIE, SessionStore
from photocheck.services.wizard import InvalidTransition, WizardSession, WizardStep

BASE_DIR = Path(__file__).resolve().parents[1]
WEB_DIR = BASE_DIR / "web"
TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
LOG = logging.getLogger("photocheck.api")

UPLOAD_READ_CHUNK_BYTES = 256 * 1024
RATE_LIMITED_MESSAGE = "Too many analysis requests. Please retry later."

FAQ_ITEMS = [
    {
        "question": "Is my photo stored on your servers?",
        "answer": "No. Your photo is held in memory only while you use the checker and is discarded "
        "when you start over or close your session.",
    },
    {
        "question": "How accurate is the AI analysis?",
        "answer": "The checker combines face detection, text extraction and an AI review of each "
        "country's rules. It is a strong first pass, but the issuing office has the final say.",
    },
    {
        "question": "Is this service free?",
        "answer": "Yes. Upload a photo, pick a country and get your compliance report at no cost.",
    },
]

app = FastAPI(title="Passport Photo Compliance Checker", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


def get_settings() -> ServiceSettings:
    return load_service_settings()


@lru_cache(maxsize=1)
def _session_store() -> SessionStore:
    settings = load_service_settings()
    return SessionStore(
        idle_seconds=settings.session_idle_minutes * 60,
        notification_seconds=settings.notification_seconds,
    )


def get_session_store() -> SessionStore:
    return _session_store()


@lru_cache(maxsize=1)
def _rate_limiter() -> AnalysisRateLimiter:
    settings = load_service_settings()
    return AnalysisRateLimiter(settings.rate_per_min, settings.burst, settings.daily_limit)


def get_rate_limiter() -> AnalysisRateLimiter:
    return _rate_limiter()


@lru_cache(maxsize=1)
def _inflight_guard() -> threading.BoundedSemaphore:
    return threading.BoundedSemaphore(load_service_settings().max_inflight)


@lru_cache(maxsize=1)
def _build_orchestrator() -> AnalysisOrchestrator:
    settings = load_service_settings()
    return AnalysisOrchestrator(
        face_client=FacePlusPlusClient(
            api_key=settings.facepp_api_key,
            api_secret=settings.facepp_api_secret,
            detect_url=settings.facepp_detect_url,
            timeout_seconds=settings.http_timeout_seconds,
        ),
        ocr_client=TesseractOcrClient(lang=settings.ocr_lang, tesseract_cmd=settings.tesseract_cmd),
        scoring_client=GeminiScoringClient(
            api_key=settings.gemini_api_key,
            model_name=settings.gemini_model,
        ),
        delay_seconds=settings.analysis_delay_seconds,
    )


def get_orchestrator() -> AnalysisOrchestrator:
    try:
        return _build_orchestrator()
    except CollaboratorNotConfiguredError as exc:
        LOG.error("orchestrator_unavailable reason=%s", exc)
        raise HTTPException(status_code=503, detail="Photo analysis is not configured on this server.") from exc


def _resolve_client_ip(request: Request, settings: ServiceSettings) -> str:
    if settings.trust_x_forwarded_for:
        xff = request.headers.get("x-forwarded-for", "")
        if xff:
            first = xff.split(",")[0].strip()
            if first:
                return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _load_session(request: Request, store: SessionStore) -> tuple[WizardSession, bool]:
    return store.get_or_create(request.cookies.get(SESSION_COOKIE))


def _attach_cookie(response: Response, session: WizardSession, created: bool) -> Response:
    if created:
        response.set_cookie(SESSION_COOKIE, session.session_id, httponly=True, samesite="lax")
    return response


def _back_to_checker(session: WizardSession, created: bool) -> Response:
    return _attach_cookie(RedirectResponse("/checker", status_code=303), session, created)


def _conflict(exc: InvalidTransition) -> HTTPException:
    return HTTPException(status_code=409, detail=str(exc))


def _content_length_exceeds_limit(request: Request, max_bytes: int) -> bool:
    header = request.headers.get("content-length")
    if not header:
        return False
    try:
        return int(header) > max_bytes
    except ValueError:
        return False


async def _read_upload_capped(photo: UploadFile, cap_bytes: int) -> bytes:
    # Reads one byte past the cap so intake can still tell "too large" apart.
    chunks = bytearray()
    while len(chunks) <= cap_bytes:
        chunk = await photo.read(UPLOAD_READ_CHUNK_BYTES)
        if not chunk:
            break
        chunks.extend(chunk)
    return bytes(chunks[: cap_bytes + 1])


def _snapshot(session: WizardSession) -> SessionSnapshot:
    notification = session.notifications.current()
    return SessionSnapshot(
        step=session.step.value,
        has_image=session.image is not None,
        image_media_type=session.image.media_type if session.image else None,
        country=CountryInfo(**session.country.model_dump()) if session.country else None,
        can_analyze=session.can_analyze,
        result=session.result,
        notification=NotificationOut(id=notification.id, message=notification.message, level=notification.level)
        if notification
        else None,
    )


async def _run_session_analysis(session: WizardSession, orchestrator: AnalysisOrchestrator) -> None:
    image, country = session.image, session.country
    outcome = await orchestrator.run(image, country)
    session.apply_outcome(outcome)
    LOG.info(
        "session_analysis_done session=%s outcome=%s step=%s",
        session.session_id,
        type(outcome).__name__,
        session.step.value,
    )


@app.get("/api/health")
def health(settings: ServiceSettings = Depends(get_settings)) -> dict[str, Any]:
    return {
        "status": "ok",
        "max_image_mb": MAX_IMAGE_SIZE_MB,
        "analyze_limits": {
            "rate_per_min": settings.rate_per_min,
            "burst": settings.burst,
            "daily_limit": settings.daily_limit,
            "max_inflight": settings.max_inflight,
            "trust_x_forwarded_for": settings.trust_x_forwarded_for,
        },
    }


@app.get("/api/countries", response_model=list[CountryInfo])
def countries(q: str = "") -> list[CountryInfo]:
    return [CountryInfo(**country.model_dump()) for country in filter_countries(q)]


@app.get("/api/session", response_model=SessionSnapshot)
async def session_snapshot(request: Request, store: SessionStore = Depends(get_session_store)) -> Response:
    session, created = _load_session(request, store)
    payload = JSONResponse(content=_snapshot(session).model_dump(mode="json", by_alias=True))
    return _attach_cookie(payload, session, created)


@app.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze(
    request: Request,
    response: Response,
    photo: UploadFile = File(...),
    country_code: str = Form(...),
    settings: ServiceSettings = Depends(get_settings),
    limiter: AnalysisRateLimiter = Depends(get_rate_limiter),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> Any:
    client_ip = _resolve_client_ip(request, settings)
    decision = limiter.check(client_key(client_ip))
    if not decision.allowed:
        retry_after = str(decision.retry_after or 1)
        LOG.warning("analyze_rejected ip=%s reason=%s retry_after=%s", client_ip, decision.reason, retry_after)
        return JSONResponse(
            status_code=429,
            content={"detail": RATE_LIMITED_MESSAGE, "reason": decision.reason},
            headers={"Retry-After": retry_after, **limiter.headers(decision)},
        )

    guard = _inflight_guard()
    if not guard.acquire(blocking=False):
        LOG.warning("analyze_rejected ip=%s reason=max_inflight", client_ip)
        return JSONResponse(
            status_code=429,
            content={"detail": "Server is busy processing other analyze requests. Please retry shortly."},
            headers={"Retry-After": "5", **limiter.headers(decision)},
        )

    response.headers.update(limiter.headers(decision))
    try:
        try:
            country = get_country(country_code)
        except UnknownCountryError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

        # Multipart framing adds a little on top of the file itself.
        if _content_length_exceeds_limit(request, MAX_IMAGE_SIZE_BYTES + 64 * 1024):
            raise HTTPException(status_code=413, detail=f"Request body is too large. Hard limit is {MAX_IMAGE_SIZE_MB}MB.")

        file_bytes = await _read_upload_capped(photo, MAX_IMAGE_SIZE_BYTES)
        intake = accept_file(file_bytes, content_type=photo.content_type, filename=photo.filename, source="browse")
        if isinstance(intake, IntakeRejected):
            raise HTTPException(status_code=413 if intake.reason == "too_large" else 400, detail=intake.message)
        if not isinstance(intake, IntakeAccepted):
            raise HTTPException(status_code=400, detail=intake.message)

        outcome = await orchestrator.run(intake.image, country)
    finally:
        await photo.close()
        guard.release()

    if isinstance(outcome, AnalysisSucceeded):
        return AnalyzeResponse(country=CountryInfo(**country.model_dump()), result=outcome.result)
    if isinstance(outcome, FaceRejected):
        status_code = 413 if outcome.reason == "payload_too_large" else 422
        return JSONResponse(status_code=status_code, content={"error": outcome.reason, "detail": outcome.message})
    if isinstance(outcome, ScoringFailed):
        return JSONResponse(status_code=502, content={"error": "analysis_failed", "detail": outcome.message})
    if isinstance(outcome, UnexpectedFailure) and outcome.payload_too_large:
        return JSONResponse(status_code=413, content={"error": "payload_too_large", "detail": outcome.message})
    LOG.error("analyze_failed ip=%s country=%s", client_ip, country.code)
    return JSONResponse(status_code=500, content={"error": "analysis_failed", "detail": "Internal error"})


@app.get("/", response_class=HTMLResponse)
async def landing(request: Request) -> Response:
    return templates.TemplateResponse(request, "landing.html", {"faq_items": FAQ_ITEMS})


@app.get("/checker", response_class=HTMLResponse)
async def checker(request: Request, q: str = "", store: SessionStore = Depends(get_session_store)) -> Response:
    session, created = _load_session(request, store)
    report = None
    if session.step is WizardStep.RESULTS and session.result is not None and session.country is not None:
        report = build_report(session.result, session.country)
    page = templates.TemplateResponse(
        request,
        "checker.html",
        {
            "session": session,
            "step": session.step.value,
            "countries": filter_countries(q),
            "search": q,
            "report": report,
            "notification": session.notifications.current(),
            "max_image_mb": MAX_IMAGE_SIZE_MB,
        },
    )
    return _attach_cookie(page, session, created)


@app.post("/checker/upload")
async def checker_upload(
    request: Request,
    photo: UploadFile | None = File(None),
    data_url: str | None = Form(None),
    source: str = Form("browse"),
    store: SessionStore = Depends(get_session_store),
) -> Response:
    session, created = _load_session(request, store)
    intake_source = source if source in {"browse", "drop", "paste"} else "browse"
    try:
        if data_url:
            outcome = accept_data_url(data_url, source=intake_source)
        elif photo is not None and photo.filename:
            try:
                file_bytes = await _read_upload_capped(photo, MAX_IMAGE_SIZE_BYTES)
            finally:
                await photo.close()
            outcome = accept_file(
                file_bytes,
                content_type=photo.content_type,
                filename=photo.filename,
                source=intake_source,
            )
        else:
            raise HTTPException(status_code=400, detail="No image was provided.")
        session.handle_intake(outcome)
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return _back_to_checker(session, created)


@app.post("/checker/remove")
async def checker_remove(request: Request, store: SessionStore = Depends(get_session_store)) -> Response:
    session, created = _load_session(request, store)
    try:
        session.remove_image()
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return _back_to_checker(session, created)


@app.post("/checker/country")
async def checker_country(
    request: Request,
    code: str = Form(...),
    store: SessionStore = Depends(get_session_store),
) -> Response:
    session, created = _load_session(request, store)
    try:
        session.select_country(get_country(code))
    except UnknownCountryError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return _back_to_checker(session, created)


@app.post("/checker/analyze")
async def checker_analyze(
    request: Request,
    background_tasks: BackgroundTasks,
    store: SessionStore = Depends(get_session_store),
    settings: ServiceSettings = Depends(get_settings),
    limiter: AnalysisRateLimiter = Depends(get_rate_limiter),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> Response:
    session, created = _load_session(request, store)
    if not session.can_analyze:
        raise HTTPException(status_code=409, detail="Upload a photo and select a country before checking compliance.")

    client_ip = _resolve_client_ip(request, settings)
    decision: RateDecision = limiter.check(client_key(client_ip), session_key(session.session_id))
    if not decision.allowed:
        LOG.warning(
            "checker_analyze_rejected session=%s ip=%s reason=%s limited_by=%s",
            session.session_id,
            client_ip,
            decision.reason,
            decision.limited_by,
        )
        session.notifications.show(RATE_LIMITED_MESSAGE, "warning")
        redirect = _back_to_checker(session, created)
        redirect.headers["Retry-After"] = str(decision.retry_after or 1)
        return redirect

    try:
        session.begin_analysis()
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    LOG.info("checker_analyze_started session=%s country=%s", session.session_id, session.country.code)
    background_tasks.add_task(_run_session_analysis, session, orchestrator)
    return _back_to_checker(session, created)


@app.post("/checker/reset")
async def checker_reset(request: Request, store: SessionStore = Depends(get_session_store)) -> Response:
    session, created = _load_session(request, store)
    try:
        session.reset()
    except InvalidTransition as exc:
        raise _conflict(exc) from exc
    return _back_to_checker(session, created)


@app.post("/checker/notification/dismiss")
async def checker_dismiss_notification(
    request: Request,
    notification_id: int = Form(...),
    store: SessionStore = Depends(get_session_store),
) -> Response:
    session, created = _load_session(request, store)
    session.notifications.dismiss(notification_id)
    return _back_to_checker(session, created)


@app.get("/checker/report", response_class=HTMLResponse)
async def checker_report(request: Request, store: SessionStore = Depends(get_session_store)) -> Response:
    session, created = _load_session(request, store)
    if session.step is not WizardStep.RESULTS or session.result is None or session.country is None:
        return _back_to_checker(session, created)
    page = templates.TemplateResponse(
        request,
        "report.html",
        {"report": build_report(session.result, session.country), "image": session.image},
    )
    return _attach_cookie(page, session, created)


if WEB_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(WEB_DIR)), name="static")
