from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable
from urllib.parse import urlencode

from . import identity
from .client_storage import OAUTH_VERIFIER_KEY, ClientStorage
from .config import is_supabase_configured
from .identity import ProviderError, ProviderNotConfigured
from .session import store_provider_session

logger = logging.getLogger("careerpath.auth_callback")

DEFAULT_NEXT_PATH = "/dashboard"
FIRST_CHECK_DELAY_SECONDS = 1.0
RETRY_CHECK_DELAY_SECONDS = 2.0


def login_redirect(error_code: str, **extra: str) -> str:
    return f"/login?{urlencode({'error': error_code, **extra})}"


def sanitize_next_path(raw: str | None) -> str:
    value = (raw or "").strip()
    if not value.startswith("/") or value.startswith("//") or "\\" in value:
        return DEFAULT_NEXT_PATH
    return value


async def exchange_authorization_code(storage: ClientStorage, *, code: str | None, next_path: str | None) -> str:
    """Server half of the OAuth callback. Returns the redirect location."""
    if not is_supabase_configured():
        logger.error(json.dumps({"event": "auth_callback_not_configured"}))
        return login_redirect("supabase_not_configured")

    if not code:
        logger.info(json.dumps({"event": "auth_callback_no_code"}))
        return login_redirect("no_code")

    destination = sanitize_next_path(next_path)
    code_verifier = storage.get(OAUTH_VERIFIER_KEY) or ""
    try:
        session = await identity.exchange_code_for_session(auth_code=code, code_verifier=code_verifier)
    except (ProviderError, ProviderNotConfigured) as exc:
        logger.error(json.dumps({"event": "auth_callback_failed", "reason": str(exc)}, ensure_ascii=False))
        return login_redirect("auth_failed")

    storage.delete(OAUTH_VERIFIER_KEY)
    store_provider_session(storage, session)
    logger.info(json.dumps({"event": "auth_callback_success", "next": destination}, ensure_ascii=False))
    return destination


class CallbackState(str, Enum):
    START = "start"
    WAITING = "waiting"
    CHECK_SESSION = "check_session"
    WAITING_RETRY = "waiting_retry"
    CHECK_SESSION_RETRY = "check_session_retry"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class CallbackOutcome:
    state: CallbackState
    redirect_to: str
    error_code: str | None = None
    transitions: list[CallbackState] = field(default_factory=list)


@dataclass
class CallbackPoller:
    """Poll-and-retry half of the OAuth callback.

    Waits ``first_delay`` for the server exchange to land, checks for a
    session, and on an empty answer waits ``retry_delay`` and checks exactly
    once more. ``check_session`` returns whether a provider session exists and
    raises ``ProviderError`` when the provider itself fails.
    """

    check_session: Callable[[], Awaitable[bool]]
    has_cached_session: Callable[[], bool]
    provider_configured: Callable[[], bool] = is_supabase_configured
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    first_delay: float = FIRST_CHECK_DELAY_SECONDS
    retry_delay: float = RETRY_CHECK_DELAY_SECONDS
    success_path: str = DEFAULT_NEXT_PATH

    async def run(self, *, code: str | None, error: str | None) -> CallbackOutcome:
        transitions = [CallbackState.START]

        def fail(error_code: str) -> CallbackOutcome:
            transitions.append(CallbackState.FAILED)
            return CallbackOutcome(
                state=CallbackState.FAILED,
                redirect_to=login_redirect(error_code),
                error_code=error_code,
                transitions=transitions,
            )

        def succeed() -> CallbackOutcome:
            transitions.append(CallbackState.SUCCESS)
            return CallbackOutcome(
                state=CallbackState.SUCCESS,
                redirect_to=self.success_path,
                transitions=transitions,
            )

        try:
            if error:
                logger.warning(json.dumps({"event": "oauth_error", "error": error}, ensure_ascii=False))
                return fail("oauth_failed")

            if not code:
                if self.has_cached_session():
                    return succeed()
                return fail("no_session")

            if not self.provider_configured():
                return fail("config_error")

            transitions.append(CallbackState.WAITING)
            await self.sleep(self.first_delay)

            transitions.append(CallbackState.CHECK_SESSION)
            try:
                found = await self.check_session()
            except ProviderNotConfigured:
                return fail("config_error")
            except ProviderError as exc:
                logger.warning(json.dumps({"event": "session_check_failed", "reason": str(exc)}, ensure_ascii=False))
                return fail("session_failed")
            if found:
                return succeed()

            transitions.append(CallbackState.WAITING_RETRY)
            await self.sleep(self.retry_delay)

            transitions.append(CallbackState.CHECK_SESSION_RETRY)
            try:
                found = await self.check_session()
            except ProviderNotConfigured:
                return fail("config_error")
            except ProviderError as exc:
                # A failing retry counts as an empty answer.
                logger.warning(json.dumps({"event": "session_retry_failed", "reason": str(exc)}, ensure_ascii=False))
                found = False
            if found:
                return succeed()
            return fail("no_session")
        except Exception as exc:
            logger.exception(json.dumps({"event": "auth_callback_unexpected", "reason": str(exc)}, ensure_ascii=False))
            return fail("unexpected_error")
