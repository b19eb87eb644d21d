from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "data" / "careerpath.sqlite3"
DEFAULT_APP_URL = "http://localhost:3003"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"

# Values shipped in the sample .env files; treated the same as a missing URL.
PLACEHOLDER_MARKERS = ("placeholder", "your_supabase_project_url")


def get_env_int(name: str, default: int, *, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = os.getenv(name, "").strip()
    try:
        value = int(raw) if raw else int(default)
    except (TypeError, ValueError):
        value = int(default)

    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def get_env_float(name: str, default: float, *, min_value: float, max_value: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        value = float(raw) if raw else float(default)
    except (TypeError, ValueError):
        value = float(default)
    return max(min_value, min(max_value, value))


def get_db_path() -> Path:
    configured_path = os.getenv("CAREERPATH_DB_PATH", "").strip()
    if configured_path:
        path = Path(configured_path)
        if not path.is_absolute():
            path = (Path(__file__).resolve().parents[1] / path).resolve()
        return path
    return DEFAULT_DB_PATH


def get_supabase_url() -> str:
    return os.getenv("SUPABASE_URL", "").strip().rstrip("/")


def get_supabase_anon_key() -> str:
    return os.getenv("SUPABASE_ANON_KEY", "").strip()


def is_valid_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def is_supabase_configured() -> bool:
    url = get_supabase_url()
    if not url or not get_supabase_anon_key():
        return False
    if any(marker in url for marker in PLACEHOLDER_MARKERS):
        return False
    return is_valid_http_url(url)


def get_gemini_api_key() -> str:
    return os.getenv("GEMINI_API_KEY", "").strip()


def get_gemini_model() -> str:
    return os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL).strip() or DEFAULT_GEMINI_MODEL


def is_gemini_configured() -> bool:
    return bool(get_gemini_api_key())


def get_model_timeout_seconds() -> float:
    return get_env_float("CAREERPATH_MODEL_TIMEOUT_SECONDS", 60.0, min_value=5.0, max_value=300.0)


def get_app_url() -> str:
    raw = os.getenv("CAREERPATH_APP_URL", "").strip().rstrip("/")
    return raw or DEFAULT_APP_URL


def get_chat_history_limit() -> int:
    return get_env_int("CAREERPATH_CHAT_HISTORY_LIMIT", 20, min_value=0, max_value=200)


def get_fallback_session_ttl_seconds() -> int:
    return get_env_int(
        "CAREERPATH_FALLBACK_SESSION_TTL_SECONDS",
        24 * 3600,
        min_value=60,
        max_value=30 * 24 * 3600,
    )


def get_max_chat_message_length() -> int:
    return get_env_int("CAREERPATH_MAX_CHAT_MESSAGE_LENGTH", 4_000, min_value=100)


def get_max_resume_bytes() -> int:
    return get_env_int("CAREERPATH_MAX_RESUME_BYTES", 5 * 1024 * 1024, min_value=1_024)
