from __future__ import annotations

import base64
import hashlib
import json
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from .config import get_supabase_anon_key, get_supabase_url, is_supabase_configured

logger = logging.getLogger("careerpath.identity")

SUPPORTED_OAUTH_PROVIDERS = {"google", "github"}


class ProviderNotConfigured(RuntimeError):
    pass


class ProviderError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class User:
    id: str
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    source: str = "provider"

    @classmethod
    def from_provider(cls, payload: dict[str, Any]) -> "User":
        metadata = payload.get("user_metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        display_name = None
        for key in ("username", "full_name", "name"):
            value = metadata.get(key)
            if isinstance(value, str) and value.strip():
                display_name = value.strip()
                break
        avatar_url = metadata.get("avatar_url")
        return cls(
            id=str(payload.get("id", "")),
            email=payload.get("email") or None,
            display_name=display_name,
            avatar_url=avatar_url if isinstance(avatar_url, str) else None,
            source="provider",
        )

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "User":
        return cls(
            id=str(payload["id"]),
            email=payload.get("email"),
            display_name=payload.get("display_name"),
            avatar_url=payload.get("avatar_url"),
            source=str(payload.get("source", "provider")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "source": self.source,
        }


@dataclass
class ProviderSession:
    access_token: str
    refresh_token: str
    expires_at: datetime
    user: User
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_token_response(cls, payload: dict[str, Any]) -> "ProviderSession":
        access_token = str(payload.get("access_token", "")).strip()
        if not access_token:
            raise ProviderError("identity provider returned no access token")

        expires_at_raw = payload.get("expires_at")
        try:
            if isinstance(expires_at_raw, (int, float)):
                expires_at = datetime.fromtimestamp(float(expires_at_raw), tz=timezone.utc)
            else:
                expires_in = int(payload.get("expires_in") or 3600)
                expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise ProviderError(f"identity provider returned an invalid expiry: {exc}") from exc

        user_payload = payload.get("user")
        if not isinstance(user_payload, dict):
            raise ProviderError("identity provider returned no user")

        return cls(
            access_token=access_token,
            refresh_token=str(payload.get("refresh_token", "")),
            expires_at=expires_at,
            user=User.from_provider(user_payload),
            raw=payload,
        )

    def to_json(self) -> str:
        return json.dumps(
            {
                "access_token": self.access_token,
                "refresh_token": self.refresh_token,
                "expires_at": self.expires_at.astimezone(timezone.utc).isoformat(),
                "user": self.user.to_dict(),
            },
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, raw: str) -> "ProviderSession":
        payload = json.loads(raw)
        return cls(
            access_token=str(payload["access_token"]),
            refresh_token=str(payload.get("refresh_token", "")),
            expires_at=datetime.fromisoformat(str(payload["expires_at"])),
            user=User.from_dict(payload["user"]),
        )


def create_pkce_pair() -> tuple[str, str]:
    verifier = secrets.token_urlsafe(48)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


def _require_configured() -> None:
    if not is_supabase_configured():
        raise ProviderNotConfigured("Supabase not configured")


def _build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=f"{get_supabase_url()}/auth/v1",
        headers={"apikey": get_supabase_anon_key()},
    )


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"identity provider returned {response.status_code}"
    if isinstance(payload, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"identity provider returned {response.status_code}"


async def _request(
    method: str,
    path: str,
    *,
    params: dict[str, str] | None = None,
    json_body: dict[str, Any] | None = None,
    access_token: str | None = None,
) -> httpx.Response:
    _require_configured()
    headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
    try:
        async with _build_client() as client:
            return await client.request(method, path, params=params, json=json_body, headers=headers)
    except httpx.HTTPError as exc:
        logger.warning(json.dumps({"event": "identity_unreachable", "path": path, "reason": str(exc)}))
        raise ProviderError(f"identity provider unreachable: {exc}") from exc


def _json_or_error(response: httpx.Response) -> dict[str, Any]:
    if response.status_code >= 400:
        raise ProviderError(_error_message(response), status_code=response.status_code)
    try:
        payload = response.json()
    except ValueError as exc:
        raise ProviderError("identity provider returned a non-json body") from exc
    if not isinstance(payload, dict):
        raise ProviderError("identity provider returned a non-object body")
    return payload


async def exchange_code_for_session(*, auth_code: str, code_verifier: str) -> ProviderSession:
    response = await _request(
        "POST",
        "/token",
        params={"grant_type": "pkce"},
        json_body={"auth_code": auth_code, "code_verifier": code_verifier},
    )
    return ProviderSession.from_token_response(_json_or_error(response))


async def sign_in_with_password(*, email: str, password: str) -> ProviderSession:
    response = await _request(
        "POST",
        "/token",
        params={"grant_type": "password"},
        json_body={"email": email, "password": password},
    )
    return ProviderSession.from_token_response(_json_or_error(response))


async def refresh_session(*, refresh_token: str) -> ProviderSession:
    response = await _request(
        "POST",
        "/token",
        params={"grant_type": "refresh_token"},
        json_body={"refresh_token": refresh_token},
    )
    return ProviderSession.from_token_response(_json_or_error(response))


async def sign_up(*, email: str, password: str) -> tuple[User, ProviderSession | None]:
    """Register an account. The session is ``None`` while email confirmation is pending."""
    response = await _request("POST", "/signup", json_body={"email": email, "password": password})
    payload = _json_or_error(response)
    if payload.get("access_token"):
        session = ProviderSession.from_token_response(payload)
        return session.user, session
    user_payload = payload.get("user") if isinstance(payload.get("user"), dict) else payload
    return User.from_provider(user_payload), None


async def fetch_user(*, access_token: str) -> User | None:
    response = await _request("GET", "/user", access_token=access_token)
    if response.status_code in {401, 403}:
        return None
    return User.from_provider(_json_or_error(response))


async def sign_out(*, access_token: str) -> None:
    response = await _request("POST", "/logout", access_token=access_token)
    if response.status_code in {401, 403, 404}:
        return
    if response.status_code >= 400:
        raise ProviderError(_error_message(response), status_code=response.status_code)


def build_authorize_url(*, provider: str, redirect_to: str, code_challenge: str) -> str:
    _require_configured()
    if provider not in SUPPORTED_OAUTH_PROVIDERS:
        raise ValueError(f"unsupported oauth provider: {provider}")
    query = urlencode(
        {
            "provider": provider,
            "redirect_to": redirect_to,
            "code_challenge": code_challenge,
            "code_challenge_method": "s256",
        }
    )
    return f"{get_supabase_url()}/auth/v1/authorize?{query}"
