from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from . import identity
from .client_storage import FALLBACK_SESSION_KEY, PROVIDER_SESSION_KEY, ClientStorage
from .config import get_fallback_session_ttl_seconds, is_supabase_configured
from .identity import ProviderError, ProviderNotConfigured, ProviderSession, User

logger = logging.getLogger("careerpath.session")

DEMO_EMAIL = "demo@careerpath.ai"
DEMO_PASSWORD = "demo123"
DEMO_USER_ID = "mock-user-id"
DEMO_DISPLAY_NAME = "Demo User"

Clock = Callable[[], datetime]


class InvalidCredentials(Exception):
    pass


@dataclass
class FallbackSession:
    user: User
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass
class SessionResolution:
    user: User | None
    error: Exception | None = None
    access_token: str | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_utc(value: str) -> datetime | None:
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        if raw.endswith("Z"):
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        else:
            parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def store_fallback_session(
    storage: ClientStorage,
    user: User,
    *,
    ttl_seconds: int | None = None,
    now: Clock = _utc_now,
) -> FallbackSession:
    ttl = ttl_seconds if ttl_seconds is not None else get_fallback_session_ttl_seconds()
    session = FallbackSession(user=user, expires_at=now() + timedelta(seconds=ttl))
    storage.set(
        FALLBACK_SESSION_KEY,
        json.dumps(
            {"user": user.to_dict(), "expires_at": session.expires_at.isoformat()},
            ensure_ascii=False,
        ),
    )
    return session


def clear_fallback_session(storage: ClientStorage) -> None:
    storage.delete(FALLBACK_SESSION_KEY)


def read_fallback_session(storage: ClientStorage, *, now: Clock = _utc_now) -> FallbackSession | None:
    """Return the cached fallback session, purging it when expired or unreadable."""
    raw = storage.get(FALLBACK_SESSION_KEY)
    if raw is None:
        return None

    try:
        payload = json.loads(raw)
        session = FallbackSession(
            user=User.from_dict(payload["user"]),
            expires_at=_parse_utc(str(payload["expires_at"])) or datetime.min.replace(tzinfo=timezone.utc),
        )
    except (ValueError, KeyError, TypeError):
        clear_fallback_session(storage)
        return None

    if not session.is_valid(now()):
        clear_fallback_session(storage)
        return None
    return session


def store_provider_session(storage: ClientStorage, session: ProviderSession) -> None:
    storage.set(PROVIDER_SESSION_KEY, session.to_json())


def clear_provider_session(storage: ClientStorage) -> None:
    storage.delete(PROVIDER_SESSION_KEY)


def read_provider_session(storage: ClientStorage) -> ProviderSession | None:
    raw = storage.get(PROVIDER_SESSION_KEY)
    if raw is None:
        return None
    try:
        return ProviderSession.from_json(raw)
    except (ValueError, KeyError, TypeError):
        clear_provider_session(storage)
        return None


async def lookup_provider_user(storage: ClientStorage, *, now: Clock = _utc_now) -> tuple[User | None, str | None]:
    """Ask the identity provider who owns the stored session.

    Raises ``ProviderNotConfigured`` or ``ProviderError``; a token the provider
    rejects is dropped and reported as no user.
    """
    if not is_supabase_configured():
        raise ProviderNotConfigured("Supabase not configured")

    session = read_provider_session(storage)
    if session is None:
        return None, None

    if session.expires_at <= now():
        if not session.refresh_token:
            clear_provider_session(storage)
            return None, None
        try:
            session = await identity.refresh_session(refresh_token=session.refresh_token)
        except ProviderError as exc:
            if exc.status_code is not None and 400 <= exc.status_code < 500:
                clear_provider_session(storage)
                return None, None
            raise
        store_provider_session(storage, session)

    user = await identity.fetch_user(access_token=session.access_token)
    if user is None:
        clear_provider_session(storage)
        return None, None
    return user, session.access_token


async def resolve_current_user(storage: ClientStorage, *, now: Clock = _utc_now) -> SessionResolution:
    fallback = read_fallback_session(storage, now=now)
    if fallback is not None:
        return SessionResolution(user=fallback.user)

    try:
        user, access_token = await lookup_provider_user(storage, now=now)
    except ProviderNotConfigured as exc:
        return SessionResolution(user=None, error=exc)
    except ProviderError as exc:
        logger.warning(json.dumps({"event": "session_lookup_failed", "reason": str(exc)}, ensure_ascii=False))
        return SessionResolution(user=None, error=exc)
    return SessionResolution(user=user, access_token=access_token)


async def sign_in(storage: ClientStorage, *, email: str, password: str) -> User:
    if not is_supabase_configured():
        if email.strip().lower() == DEMO_EMAIL and password == DEMO_PASSWORD:
            user = User(id=DEMO_USER_ID, email=DEMO_EMAIL, display_name=DEMO_DISPLAY_NAME, source="fallback")
            store_fallback_session(storage, user)
            return user
        raise InvalidCredentials(f"Invalid credentials. Try {DEMO_EMAIL} / {DEMO_PASSWORD}")

    try:
        session = await identity.sign_in_with_password(email=email, password=password)
    except ProviderError as exc:
        if exc.status_code is not None and 400 <= exc.status_code < 500:
            raise InvalidCredentials(str(exc)) from exc
        raise
    store_provider_session(storage, session)
    return session.user


async def sign_up(storage: ClientStorage, *, email: str, password: str) -> tuple[User, bool]:
    """Create an account; the flag says whether a session is active right away."""
    if not is_supabase_configured():
        local_part = email.split("@", 1)[0]
        user = User(
            id=f"mock-user-{int(time.time() * 1000)}",
            email=email,
            display_name=local_part,
            source="fallback",
        )
        store_fallback_session(storage, user)
        return user, True

    user, session = await identity.sign_up(email=email, password=password)
    if session is not None:
        store_provider_session(storage, session)
    return user, session is not None


async def sign_out(storage: ClientStorage) -> None:
    clear_fallback_session(storage)
    if not is_supabase_configured():
        return

    session = read_provider_session(storage)
    clear_provider_session(storage)
    if session is None:
        return
    try:
        await identity.sign_out(access_token=session.access_token)
    except ProviderError as exc:
        logger.warning(json.dumps({"event": "provider_sign_out_failed", "reason": str(exc)}, ensure_ascii=False))
