from __future__ import annotations

import asyncio
import json
import logging
import re
import time
import uuid
from typing import Any, Awaitable, TypeVar

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import identity, route_guard
from .analysis import AnalysisFailed, ChatFailed, analyze_resume, chat_with_ai
from .callback_flow import CallbackPoller, exchange_authorization_code
from .client_storage import CONFIG_NOTICE_DISMISSED_KEY, OAUTH_VERIFIER_KEY, ClientStorage, SqliteClientStorage
from .config import (
    get_app_url,
    get_env_int,
    get_max_chat_message_length,
    get_max_resume_bytes,
    is_gemini_configured,
    is_supabase_configured,
)
from .data_store import (
    DataStoreError,
    DataStoreNotConfigured,
    fetch_profile,
    fetch_progress,
    fetch_roadmap,
    list_progress,
    list_resume_checks,
    list_roadmaps,
    persist_analysis,
    upsert_profile,
    upsert_progress,
)
from .identity import ProviderError, ProviderNotConfigured, User
from .records import completion_percentage, parse_skills, toggle_step
from .resume_ingest import IngestionError, ResumeUpload, ingest_resume
from .session import (
    DEMO_EMAIL,
    DEMO_PASSWORD,
    InvalidCredentials,
    SessionResolution,
    lookup_provider_user,
    read_fallback_session,
    resolve_current_user,
    sign_in,
    sign_out,
    sign_up,
)

BROWSER_SESSION_COOKIE = "careerpath_session"
DASHBOARD_RECENT_CHECKS = 5
DEFAULT_RESUME_CHECK_LIMIT = 20

ERROR_CODE_BY_STATUS = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    413: "PAYLOAD_TOO_LARGE",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    502: "UPSTREAM_FAILURE",
    503: "NOT_CONFIGURED",
}

CHAT_GREETING = (
    "Hi! I'm CareerPath AI. Ask me about career planning, learning paths, "
    "interview preparation or your resume."
)

# Replaced in tests so the poll-and-retry windows do not wait on the wall clock.
CALLBACK_SLEEP = asyncio.sleep

# Page-loader default that tells a store outage apart from a missing row.
SECTION_UNAVAILABLE: Any = object()

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("careerpath.api")

T = TypeVar("T")


class CredentialsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        normalized = value.strip()
        if "@" not in normalized:
            raise ValueError("email is invalid")
        return normalized


class ChatRequest(BaseModel):
    message: str | None = None
    conversationHistory: list[str] | None = None


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(default=None, max_length=80)
    bio: str | None = Field(default=None, max_length=2_000)
    goals: str | None = Field(default=None, max_length=2_000)
    skills: list[str] | str | None = None


class UserPayload(BaseModel):
    id: str
    email: str | None
    displayName: str | None
    avatarUrl: str | None
    source: str


class AuthResponse(BaseModel):
    success: bool
    user: UserPayload
    sessionActive: bool = True


class AuthMeResponse(BaseModel):
    requestId: str
    user: UserPayload


class LogoutResponse(BaseModel):
    success: bool


class OAuthStartResponse(BaseModel):
    success: bool
    provider: str
    url: str


class ResumeAnalysis(BaseModel):
    ats_score: int
    strengths: list[str]
    weaknesses: list[str]
    feedback: str


class AnalyzeResumeResponse(BaseModel):
    success: bool
    analysis: ResumeAnalysis
    saved: bool


class ChatResponse(BaseModel):
    success: bool
    response: str


class ConfigStatusResponse(BaseModel):
    supabaseConfigured: bool
    geminiConfigured: bool
    showConfigNotification: bool


def validate_browser_session_id(session_id: str) -> bool:
    if not session_id:
        return False
    return bool(re.fullmatch(r"[A-Za-z0-9][A-Za-z0-9._:-]{2,127}", session_id))


def build_client_storage(scope_id: str) -> ClientStorage:
    return SqliteClientStorage(scope_id=scope_id)


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", str(uuid.uuid4()))


def get_browser_session_id(request: Request) -> str:
    return getattr(request.state, "session_id", "anonymous")


def get_storage(request: Request) -> ClientStorage:
    storage = getattr(request.state, "storage", None)
    if storage is None:
        storage = build_client_storage(get_browser_session_id(request))
        request.state.storage = storage
    return storage


def set_error_context(request: Request, *, error_code: str, exception_type: str) -> None:
    request.state.error_code = error_code
    request.state.exception_type = exception_type


def build_error_payload(*, code: str, message: str, request_id: str) -> dict[str, str]:
    return {
        "error": message,
        "code": code,
        "requestId": request_id,
    }


def raise_api_error(
    *,
    status_code: int,
    code: str,
    message: str,
    extra: dict[str, Any] | None = None,
) -> None:
    detail: dict[str, Any] = {"code": code, "message": message}
    if isinstance(extra, dict):
        detail.update(extra)
    raise HTTPException(status_code=status_code, detail=detail)


def format_user(user: User) -> UserPayload:
    return UserPayload(
        id=user.id,
        email=user.email,
        displayName=user.display_name,
        avatarUrl=user.avatar_url,
        source=user.source,
    )


async def resolve_session(request: Request) -> SessionResolution:
    cached = getattr(request.state, "session_resolution", None)
    if isinstance(cached, SessionResolution):
        return cached
    resolution = await resolve_current_user(get_storage(request))
    request.state.session_resolution = resolution
    return resolution


async def require_user(request: Request) -> SessionResolution:
    resolution = await resolve_session(request)
    if resolution.user is None:
        raise_api_error(status_code=401, code="UNAUTHORIZED", message="Unauthorized")
    return resolution


async def load_section(label: str, loader: Awaitable[T], default: T) -> T:
    """Run one page-loader fetch; data store failures degrade to ``default``."""
    try:
        return await loader
    except DataStoreError as exc:
        logger.warning(json.dumps({"event": "page_section_unavailable", "section": label, "reason": str(exc)}, ensure_ascii=False))
        return default


def raise_data_store_error(exc: DataStoreError) -> None:
    if isinstance(exc, DataStoreNotConfigured):
        raise_api_error(status_code=503, code="NOT_CONFIGURED", message="Supabase not configured")
    raise_api_error(status_code=502, code="UPSTREAM_FAILURE", message="Data store request failed")


def log_request_event(
    *,
    path: str,
    method: str,
    status: int,
    duration_ms: int,
    request_id: str,
    session_id: str,
    error_code: str | None,
    exception_type: str | None,
) -> None:
    logger.info(
        json.dumps(
            {
                "path": path,
                "method": method,
                "status": status,
                "duration_ms": duration_ms,
                "requestId": request_id,
                "sessionId": session_id,
                "error_code": error_code,
                "exception_type": exception_type,
            },
            ensure_ascii=False,
        )
    )


app = FastAPI(title="CareerPath API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_app_url()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    inbound_session_id = request.cookies.get(BROWSER_SESSION_COOKIE, "").strip()
    if not validate_browser_session_id(inbound_session_id):
        inbound_session_id = ""
    session_id = inbound_session_id or str(uuid.uuid4())

    request.state.request_id = request_id
    request.state.session_id = session_id
    request.state.storage = build_client_storage(session_id)
    request.state.session_resolution = None
    request.state.error_code = None
    request.state.exception_type = None

    started_at = time.perf_counter()

    def finalize(response: Response) -> Response:
        duration_ms = int((time.perf_counter() - started_at) * 1000)
        response.headers["x-request-id"] = request_id
        response.set_cookie(BROWSER_SESSION_COOKIE, session_id, httponly=True, samesite="lax")
        log_request_event(
            path=request.url.path,
            method=request.method,
            status=response.status_code,
            duration_ms=duration_ms,
            request_id=request_id,
            session_id=session_id,
            error_code=getattr(request.state, "error_code", None),
            exception_type=getattr(request.state, "exception_type", None),
        )
        return response

    if request.method.upper() in {"GET", "HEAD"}:
        decision = await route_guard.evaluate(request.url.path, lambda: resolve_session(request))
        if decision.action == "redirect" and decision.location:
            request.state.exception_type = f"RouteGuard:{decision.reason}"
            return finalize(RedirectResponse(decision.location, status_code=307))

    response = await call_next(request)
    return finalize(response)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/auth/callback", response_model=None)
async def auth_callback(
    request: Request,
    code: str | None = Query(default=None),
    next: str | None = Query(default=None),
) -> RedirectResponse:
    location = await exchange_authorization_code(get_storage(request), code=code, next_path=next)
    return RedirectResponse(location, status_code=307)


@app.get("/auth/callback/complete", response_model=None)
async def auth_callback_complete(
    request: Request,
    code: str | None = Query(default=None),
    error: str | None = Query(default=None),
) -> RedirectResponse:
    storage = get_storage(request)

    async def check_session() -> bool:
        user, _ = await lookup_provider_user(storage)
        return user is not None

    poller = CallbackPoller(
        check_session=check_session,
        has_cached_session=lambda: read_fallback_session(storage) is not None,
        sleep=CALLBACK_SLEEP,
    )
    outcome = await poller.run(code=code, error=error)
    logger.info(
        json.dumps(
            {
                "event": "auth_callback_complete",
                "requestId": get_request_id(request),
                "state": outcome.state.value,
                "errorCode": outcome.error_code,
                "transitions": [state.value for state in outcome.transitions],
            },
            ensure_ascii=False,
        )
    )
    return RedirectResponse(outcome.redirect_to, status_code=307)


@app.get("/login")
def login_page(
    request: Request,
    error: str | None = Query(default=None),
    redirectTo: str | None = Query(default=None),
) -> dict[str, Any]:
    configured = is_supabase_configured()
    return {
        "page": "login",
        "requestId": get_request_id(request),
        "supabaseConfigured": configured,
        "error": error,
        "redirectTo": redirectTo,
        "oauthProviders": sorted(identity.SUPPORTED_OAUTH_PROVIDERS) if configured else [],
        "demoAccount": None if configured else {"email": DEMO_EMAIL, "password": DEMO_PASSWORD},
    }


def _login_redirect_for_page() -> RedirectResponse:
    return RedirectResponse("/login", status_code=307)


@app.get("/dashboard", response_model=None)
async def dashboard_page(request: Request) -> dict[str, Any] | RedirectResponse:
    resolution = await resolve_session(request)
    if resolution.user is None:
        return _login_redirect_for_page()

    user = resolution.user
    token = resolution.access_token
    profile = await load_section("profile", fetch_profile(user_id=user.id, access_token=token), None)
    checks = await load_section(
        "resume_checks",
        list_resume_checks(user_id=user.id, access_token=token, limit=DASHBOARD_RECENT_CHECKS),
        [],
    )
    progress = await load_section("progress", list_progress(user_id=user.id, access_token=token), [])

    average_completion = 0
    if progress:
        average_completion = int(round(sum(item.completion_percentage for item in progress) / len(progress)))

    return {
        "page": "dashboard",
        "requestId": get_request_id(request),
        "user": format_user(user).model_dump(),
        "profile": profile.to_dict() if profile else None,
        "recentResumeChecks": [item.to_dict() for item in checks],
        "progress": [item.to_dict() for item in progress],
        "stats": {
            "latestAtsScore": checks[0].ats_score if checks else None,
            "roadmapsStarted": len(progress),
            "roadmapsCompleted": sum(1 for item in progress if item.completion_percentage >= 100),
            "averageCompletion": average_completion,
            "streakCount": profile.streak_count if profile else 0,
        },
    }


@app.get("/profile", response_model=None)
async def profile_page(request: Request) -> dict[str, Any] | RedirectResponse:
    resolution = await resolve_session(request)
    if resolution.user is None:
        return _login_redirect_for_page()

    user = resolution.user
    profile = await load_section(
        "profile",
        fetch_profile(user_id=user.id, access_token=resolution.access_token),
        None,
    )
    if profile is not None:
        form = {
            "username": profile.username or "",
            "bio": profile.bio or "",
            "goals": profile.goals or "",
            "skills": ", ".join(profile.skills),
        }
    else:
        form = {"username": user.display_name or "", "bio": "", "goals": "", "skills": ""}

    return {
        "page": "profile",
        "requestId": get_request_id(request),
        "user": format_user(user).model_dump(),
        "profile": profile.to_dict() if profile else None,
        "form": form,
    }


@app.get("/roadmaps", response_model=None)
async def roadmaps_page(request: Request) -> dict[str, Any] | RedirectResponse:
    resolution = await resolve_session(request)
    if resolution.user is None:
        return _login_redirect_for_page()

    user = resolution.user
    token = resolution.access_token
    roadmaps = await load_section("roadmaps", list_roadmaps(access_token=token), [])
    progress = await load_section("progress", list_progress(user_id=user.id, access_token=token), [])
    progress_by_roadmap = {item.roadmap_id: item for item in progress}

    items = []
    for roadmap in roadmaps:
        entry = roadmap.to_dict()
        entry["stepCount"] = len(roadmap.steps)
        tracked = progress_by_roadmap.get(roadmap.id)
        entry["completionPercentage"] = tracked.completion_percentage if tracked else 0
        items.append(entry)

    return {
        "page": "roadmaps",
        "requestId": get_request_id(request),
        "user": format_user(user).model_dump(),
        "roadmaps": items,
        "categories": sorted({roadmap.category for roadmap in roadmaps}),
    }


@app.get("/roadmaps/{roadmap_id}", response_model=None)
async def roadmap_detail_page(roadmap_id: str, request: Request) -> dict[str, Any] | RedirectResponse:
    resolution = await resolve_session(request)
    if resolution.user is None:
        return _login_redirect_for_page()

    user = resolution.user
    token = resolution.access_token
    roadmap = await load_section(
        "roadmap",
        fetch_roadmap(roadmap_id=roadmap_id, access_token=token),
        SECTION_UNAVAILABLE,
    )
    if roadmap is SECTION_UNAVAILABLE:
        return {
            "page": "roadmap",
            "requestId": get_request_id(request),
            "user": format_user(user).model_dump(),
            "roadmap": None,
            "roadmapUnavailable": True,
            "progress": None,
            "completedSteps": [],
            "completionPercentage": 0,
        }
    if roadmap is None:
        raise_api_error(status_code=404, code="ROADMAP_NOT_FOUND", message="Roadmap not found")

    progress = await load_section(
        "progress",
        fetch_progress(user_id=user.id, roadmap_id=roadmap_id, access_token=token),
        None,
    )
    return {
        "page": "roadmap",
        "requestId": get_request_id(request),
        "user": format_user(user).model_dump(),
        "roadmap": roadmap.to_dict(),
        "progress": progress.to_dict() if progress else None,
        "completedSteps": progress.completed_steps if progress else [],
        "completionPercentage": progress.completion_percentage if progress else 0,
        "roadmapUnavailable": False,
    }


@app.get("/resume", response_model=None)
async def resume_page(request: Request) -> dict[str, Any] | RedirectResponse:
    resolution = await resolve_session(request)
    if resolution.user is None:
        return _login_redirect_for_page()

    user = resolution.user
    checks = await load_section(
        "resume_checks",
        list_resume_checks(user_id=user.id, access_token=resolution.access_token),
        [],
    )
    return {
        "page": "resume",
        "requestId": get_request_id(request),
        "user": format_user(user).model_dump(),
        "acceptedTypes": ["application/pdf", "text/plain"],
        "history": [item.to_dict() for item in checks],
    }


@app.get("/chat", response_model=None)
async def chat_page(request: Request) -> dict[str, Any] | RedirectResponse:
    resolution = await resolve_session(request)
    if resolution.user is None:
        return _login_redirect_for_page()

    return {
        "page": "chat",
        "requestId": get_request_id(request),
        "user": format_user(resolution.user).model_dump(),
        "greeting": CHAT_GREETING,
        "assistantAvailable": is_gemini_configured(),
    }


@app.post("/api/auth/login", response_model=AuthResponse)
async def auth_login(payload: CredentialsRequest, request: Request) -> AuthResponse:
    try:
        user = await sign_in(get_storage(request), email=payload.email, password=payload.password)
    except InvalidCredentials as exc:
        raise_api_error(status_code=401, code="INVALID_CREDENTIALS", message=str(exc))
    except ProviderError as exc:
        logger.warning(json.dumps({"event": "sign_in_failed", "reason": str(exc)}, ensure_ascii=False))
        raise_api_error(status_code=502, code="UPSTREAM_FAILURE", message="Identity provider request failed")

    return AuthResponse(success=True, user=format_user(user))


@app.post("/api/auth/signup", response_model=AuthResponse)
async def auth_signup(payload: CredentialsRequest, request: Request) -> AuthResponse:
    try:
        user, session_active = await sign_up(get_storage(request), email=payload.email, password=payload.password)
    except ProviderError as exc:
        if exc.status_code is not None and 400 <= exc.status_code < 500:
            raise_api_error(status_code=400, code="SIGNUP_REJECTED", message=str(exc))
        logger.warning(json.dumps({"event": "sign_up_failed", "reason": str(exc)}, ensure_ascii=False))
        raise_api_error(status_code=502, code="UPSTREAM_FAILURE", message="Identity provider request failed")

    return AuthResponse(success=True, user=format_user(user), sessionActive=session_active)


@app.post("/api/auth/logout", response_model=LogoutResponse)
async def auth_logout(request: Request) -> LogoutResponse:
    await sign_out(get_storage(request))
    return LogoutResponse(success=True)


@app.get("/api/auth/me", response_model=AuthMeResponse)
async def auth_me(request: Request) -> AuthMeResponse:
    resolution = await require_user(request)
    return AuthMeResponse(requestId=get_request_id(request), user=format_user(resolution.user))


@app.get("/api/auth/oauth/{provider}", response_model=OAuthStartResponse)
def auth_oauth_start(provider: str, request: Request) -> OAuthStartResponse:
    safe_provider = provider.strip().lower()
    if safe_provider not in identity.SUPPORTED_OAUTH_PROVIDERS:
        raise_api_error(status_code=400, code="UNSUPPORTED_PROVIDER", message=f"Unsupported provider: {provider}")

    verifier, challenge = identity.create_pkce_pair()
    redirect_to = f"{get_app_url()}/auth/callback?next=/dashboard"
    try:
        url = identity.build_authorize_url(provider=safe_provider, redirect_to=redirect_to, code_challenge=challenge)
    except ProviderNotConfigured:
        raise_api_error(
            status_code=503,
            code="NOT_CONFIGURED",
            message="Supabase not configured. Please add your Supabase credentials to the environment",
        )

    get_storage(request).set(OAUTH_VERIFIER_KEY, verifier)
    return OAuthStartResponse(success=True, provider=safe_provider, url=url)


@app.post("/api/analyze-resume", response_model=AnalyzeResumeResponse)
async def analyze_resume_endpoint(request: Request) -> AnalyzeResumeResponse:
    resolution = await require_user(request)
    user = resolution.user

    form = await request.form()
    item = form.get("resume")
    upload: ResumeUpload | None = None
    if isinstance(item, UploadFile):
        content = await item.read()
        if len(content) > get_max_resume_bytes():
            raise_api_error(status_code=413, code="PAYLOAD_TOO_LARGE", message="File too large")
        upload = ResumeUpload(content=content, content_type=item.content_type or "", filename=item.filename)

    try:
        resume_text = ingest_resume(upload)
    except IngestionError as exc:
        raise_api_error(status_code=400, code=exc.code, message=str(exc))

    try:
        result = await analyze_resume(resume_text)
    except AnalysisFailed as exc:
        raise_api_error(status_code=500, code="ANALYSIS_FAILED", message=str(exc))

    outcome = await persist_analysis(user_id=user.id, result=result, access_token=resolution.access_token)
    logger.info(
        json.dumps(
            {
                "event": "resume_analyzed",
                "requestId": get_request_id(request),
                "userId": user.id,
                "score": result.score,
                "fallbackUsed": result.fallback_used,
                "saved": outcome.saved,
            },
            ensure_ascii=False,
        )
    )
    return AnalyzeResumeResponse(
        success=True,
        analysis=ResumeAnalysis(**result.to_payload()),
        saved=outcome.saved,
    )


@app.post("/api/chat", response_model=ChatResponse)
async def chat_endpoint(request: Request) -> ChatResponse:
    await require_user(request)

    raw_body = await request.body()
    try:
        payload = ChatRequest.model_validate_json(raw_body) if raw_body.strip() else ChatRequest()
    except ValidationError:
        raise_api_error(status_code=400, code="BAD_REQUEST", message="Invalid chat request body")

    message = payload.message or ""
    if not message.strip():
        raise_api_error(status_code=400, code="BAD_REQUEST", message="Message is required")
    if len(message) > get_max_chat_message_length():
        raise_api_error(status_code=400, code="BAD_REQUEST", message="Message is too long")

    try:
        reply = await chat_with_ai(message, payload.conversationHistory or [])
    except ChatFailed as exc:
        raise_api_error(status_code=500, code="CHAT_FAILED", message=str(exc))

    return ChatResponse(success=True, response=reply)


@app.get("/api/resume-checks")
async def resume_checks_endpoint(
    request: Request,
    limit: int = Query(default=DEFAULT_RESUME_CHECK_LIMIT, ge=1, le=100),
) -> dict[str, Any]:
    resolution = await require_user(request)
    try:
        checks = await list_resume_checks(
            user_id=resolution.user.id,
            access_token=resolution.access_token,
            limit=limit,
        )
    except DataStoreError as exc:
        raise_data_store_error(exc)
    return {
        "requestId": get_request_id(request),
        "items": [item.to_dict() for item in checks],
    }


@app.put("/api/profile")
async def update_profile_endpoint(payload: ProfileUpdateRequest, request: Request) -> dict[str, Any]:
    resolution = await require_user(request)

    updates: dict[str, Any] = {}
    for field_name in ("username", "bio", "goals"):
        value = getattr(payload, field_name)
        if value is not None:
            updates[field_name] = value.strip()
    if payload.skills is not None:
        updates["skills"] = parse_skills(payload.skills)

    try:
        profile = await upsert_profile(
            user_id=resolution.user.id,
            updates=updates,
            access_token=resolution.access_token,
        )
    except DataStoreError as exc:
        raise_data_store_error(exc)
    return {"success": True, "requestId": get_request_id(request), "profile": profile.to_dict()}


@app.post("/api/roadmaps/{roadmap_id}/steps/{step_id}/toggle")
async def toggle_roadmap_step_endpoint(roadmap_id: str, step_id: str, request: Request) -> dict[str, Any]:
    resolution = await require_user(request)
    user = resolution.user
    token = resolution.access_token

    try:
        roadmap = await fetch_roadmap(roadmap_id=roadmap_id, access_token=token)
        if roadmap is None:
            raise_api_error(status_code=404, code="ROADMAP_NOT_FOUND", message="Roadmap not found")
        if step_id not in roadmap.step_ids:
            raise_api_error(status_code=404, code="STEP_NOT_FOUND", message="Step not found")

        current = await fetch_progress(user_id=user.id, roadmap_id=roadmap_id, access_token=token)
        completed = toggle_step(current.completed_steps if current else [], step_id)
        progress = await upsert_progress(
            user_id=user.id,
            roadmap_id=roadmap_id,
            completed_steps=completed,
            completion_percentage=completion_percentage(completed, roadmap.step_ids),
            access_token=token,
        )
    except DataStoreError as exc:
        raise_data_store_error(exc)

    return {
        "success": True,
        "requestId": get_request_id(request),
        "progress": progress.to_dict(),
        "completed": step_id in progress.completed_steps,
    }


@app.get("/api/config/status", response_model=ConfigStatusResponse)
def config_status(request: Request) -> ConfigStatusResponse:
    supabase_configured = is_supabase_configured()
    dismissed = get_storage(request).get(CONFIG_NOTICE_DISMISSED_KEY) is not None
    return ConfigStatusResponse(
        supabaseConfigured=supabase_configured,
        geminiConfigured=is_gemini_configured(),
        showConfigNotification=not supabase_configured and not dismissed,
    )


@app.post("/api/config/notification/dismiss", response_model=ConfigStatusResponse)
def dismiss_config_notification(request: Request) -> ConfigStatusResponse:
    get_storage(request).set(CONFIG_NOTICE_DISMISSED_KEY, "true")
    return config_status(request)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    request_id = get_request_id(request)

    code = ERROR_CODE_BY_STATUS.get(exc.status_code, "REQUEST_ERROR")
    message = "Request failed"
    extra: dict[str, Any] = {}

    if isinstance(exc.detail, str):
        message = exc.detail
    elif isinstance(exc.detail, dict):
        custom_code = str(exc.detail.get("code", "")).strip()
        custom_message = str(exc.detail.get("message", "")).strip()
        if custom_code:
            code = custom_code
        if custom_message:
            message = custom_message

        for key, value in exc.detail.items():
            if key in {"code", "message", "error", "requestId"}:
                continue
            extra[key] = value

    payload: dict[str, Any] = build_error_payload(code=code, message=message, request_id=request_id)
    if extra:
        payload.update(extra)

    set_error_context(request, error_code=code, exception_type="HTTPException")
    return JSONResponse(status_code=exc.status_code, content=payload)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    request_id = get_request_id(request)
    first_error = exc.errors()[0] if exc.errors() else None
    message = first_error.get("msg", "Request validation failed") if first_error else "Request validation failed"
    set_error_context(request, error_code="VALIDATION_ERROR", exception_type="RequestValidationError")
    return JSONResponse(
        status_code=422,
        content=build_error_payload(code="VALIDATION_ERROR", message=message, request_id=request_id),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = get_request_id(request)
    logger.error(
        json.dumps(
            {"event": "unhandled_exception", "requestId": request_id, "exception_type": type(exc).__name__},
            ensure_ascii=False,
        )
    )
    set_error_context(request, error_code="INTERNAL_ERROR", exception_type="UnhandledException")
    return JSONResponse(
        status_code=500,
        content=build_error_payload(
            code="INTERNAL_ERROR",
            message="Internal server error",
            request_id=request_id,
        ),
    )


def run() -> None:
    import uvicorn

    uvicorn.run("careerpath.main:app", host="0.0.0.0", port=get_env_int("PORT", 8000, min_value=1, max_value=65535))
