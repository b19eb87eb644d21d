from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal
from urllib.parse import urlencode

from .identity import ProviderError
from .session import SessionResolution

logger = logging.getLogger("careerpath.route_guard")

PROTECTED_PREFIXES = ("/dashboard", "/profile", "/roadmaps", "/resume", "/chat")
LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"

EXCLUDED_PATHS = {
    "/api",
    "/favicon.ico",
    "/health",
    "/openapi.json",
    "/docs",
    "/docs/oauth2-redirect",
    "/redoc",
}
EXCLUDED_PREFIXES = ("/api/", "/static/", "/_next/")


@dataclass
class GuardDecision:
    action: Literal["allow", "redirect"]
    reason: str
    location: str | None = None


def is_guarded_path(path: str) -> bool:
    if path in EXCLUDED_PATHS:
        return False
    return not path.startswith(EXCLUDED_PREFIXES)


def is_protected_path(path: str) -> bool:
    return path.startswith(PROTECTED_PREFIXES)


def decide(path: str, *, authenticated: bool) -> GuardDecision:
    if is_protected_path(path) and not authenticated:
        return GuardDecision(
            action="redirect",
            reason="login_required",
            location=f"{LOGIN_PATH}?{urlencode({'redirectTo': path})}",
        )
    if path == LOGIN_PATH and authenticated:
        return GuardDecision(action="redirect", reason="already_authenticated", location=DASHBOARD_PATH)
    return GuardDecision(action="allow", reason="pass_through")


async def evaluate(path: str, resolve: Callable[[], Awaitable[SessionResolution]]) -> GuardDecision:
    """Gate one page request.

    Fails open: when the session check itself breaks (provider outage or any
    internal error) the request is let through and the failure is logged.
    """
    if not is_guarded_path(path):
        return GuardDecision(action="allow", reason="excluded")
    if not is_protected_path(path) and path != LOGIN_PATH:
        return GuardDecision(action="allow", reason="public")

    try:
        resolution = await resolve()
    except Exception as exc:
        logger.error(json.dumps({"event": "route_guard_error", "path": path, "reason": str(exc)}, ensure_ascii=False))
        return GuardDecision(action="allow", reason="fail_open")

    if isinstance(resolution.error, ProviderError):
        logger.error(
            json.dumps(
                {"event": "route_guard_error", "path": path, "reason": str(resolution.error)},
                ensure_ascii=False,
            )
        )
        return GuardDecision(action="allow", reason="fail_open")

    return decide(path, authenticated=resolution.user is not None)
