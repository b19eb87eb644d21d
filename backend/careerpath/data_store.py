from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

import httpx

from .analysis import AnalysisResult
from .config import get_supabase_anon_key, get_supabase_url, is_supabase_configured
from .records import Profile, ResumeCheck, Roadmap, RoadmapProgress

logger = logging.getLogger("careerpath.data_store")

DEFAULT_RESUME_CHECK_LIMIT = 20
MAX_RESUME_CHECK_LIMIT = 100

T = TypeVar("T")


class DataStoreError(RuntimeError):
    pass


class DataStoreNotConfigured(DataStoreError):
    pass


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_row(factory: Callable[[dict[str, Any]], T], row: dict[str, Any], label: str) -> T:
    try:
        return factory(row)
    except (KeyError, TypeError, ValueError) as exc:
        raise DataStoreError(f"data store returned a malformed {label}: {exc}") from exc


def _build_client(access_token: str | None) -> httpx.AsyncClient:
    anon_key = get_supabase_anon_key()
    return httpx.AsyncClient(
        base_url=f"{get_supabase_url()}/rest/v1",
        headers={
            "apikey": anon_key,
            "Authorization": f"Bearer {access_token or anon_key}",
        },
    )


async def _request(
    method: str,
    path: str,
    *,
    access_token: str | None,
    params: dict[str, str] | None = None,
    json_body: Any = None,
    prefer: str | None = None,
) -> list[dict[str, Any]]:
    if not is_supabase_configured():
        raise DataStoreNotConfigured("Supabase not configured")

    headers = {"Prefer": prefer} if prefer else None
    try:
        async with _build_client(access_token) as client:
            response = await client.request(method, path, params=params, json=json_body, headers=headers)
    except httpx.HTTPError as exc:
        raise DataStoreError(f"data store unreachable: {exc}") from exc

    if response.status_code >= 400:
        raise DataStoreError(f"data store returned {response.status_code}: {response.text[:200]}")
    if not response.content:
        return []
    try:
        payload = response.json()
    except ValueError as exc:
        raise DataStoreError("data store returned a non-json body") from exc
    if isinstance(payload, dict):
        return [payload]
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    raise DataStoreError("data store returned an unexpected body")


async def insert_resume_check(*, user_id: str, result: AnalysisResult, access_token: str | None) -> ResumeCheck:
    rows = await _request(
        "POST",
        "/resume_checks",
        access_token=access_token,
        json_body={
            "user_id": user_id,
            "ats_score": result.score,
            "feedback": result.feedback,
            "strengths": result.strengths,
            "weaknesses": result.weaknesses,
        },
        prefer="return=representation",
    )
    if not rows:
        raise DataStoreError("data store did not return the inserted resume check")
    return _parse_row(ResumeCheck.from_row, rows[0], "resume check")


async def list_resume_checks(
    *,
    user_id: str,
    access_token: str | None,
    limit: int = DEFAULT_RESUME_CHECK_LIMIT,
) -> list[ResumeCheck]:
    safe_limit = max(1, min(MAX_RESUME_CHECK_LIMIT, int(limit)))
    rows = await _request(
        "GET",
        "/resume_checks",
        access_token=access_token,
        params={
            "user_id": f"eq.{user_id}",
            "order": "created_at.desc",
            "limit": str(safe_limit),
        },
    )
    return [_parse_row(ResumeCheck.from_row, row, "resume check") for row in rows]


async def fetch_profile(*, user_id: str, access_token: str | None) -> Profile | None:
    rows = await _request(
        "GET",
        "/profiles",
        access_token=access_token,
        params={"id": f"eq.{user_id}", "limit": "1"},
    )
    return _parse_row(Profile.from_row, rows[0], "profile") if rows else None


async def upsert_profile(*, user_id: str, updates: dict[str, Any], access_token: str | None) -> Profile:
    body = {**updates, "id": user_id, "updated_at": _utc_now_iso()}
    rows = await _request(
        "POST",
        "/profiles",
        access_token=access_token,
        json_body=body,
        prefer="resolution=merge-duplicates,return=representation",
    )
    if not rows:
        raise DataStoreError("data store did not return the saved profile")
    return _parse_row(Profile.from_row, rows[0], "profile")


async def list_roadmaps(*, access_token: str | None) -> list[Roadmap]:
    rows = await _request("GET", "/roadmaps", access_token=access_token, params={"order": "created_at.asc"})
    return [_parse_row(Roadmap.from_row, row, "roadmap") for row in rows]


async def fetch_roadmap(*, roadmap_id: str, access_token: str | None) -> Roadmap | None:
    rows = await _request(
        "GET",
        "/roadmaps",
        access_token=access_token,
        params={"id": f"eq.{roadmap_id}", "limit": "1"},
    )
    return _parse_row(Roadmap.from_row, rows[0], "roadmap") if rows else None


async def list_progress(*, user_id: str, access_token: str | None) -> list[RoadmapProgress]:
    rows = await _request(
        "GET",
        "/user_progress",
        access_token=access_token,
        params={"user_id": f"eq.{user_id}"},
    )
    return [_parse_row(RoadmapProgress.from_row, row, "progress row") for row in rows]


async def fetch_progress(*, user_id: str, roadmap_id: str, access_token: str | None) -> RoadmapProgress | None:
    rows = await _request(
        "GET",
        "/user_progress",
        access_token=access_token,
        params={"user_id": f"eq.{user_id}", "roadmap_id": f"eq.{roadmap_id}", "limit": "1"},
    )
    return _parse_row(RoadmapProgress.from_row, rows[0], "progress row") if rows else None


async def upsert_progress(
    *,
    user_id: str,
    roadmap_id: str,
    completed_steps: list[str],
    completion_percentage: int,
    access_token: str | None,
) -> RoadmapProgress:
    rows = await _request(
        "POST",
        "/user_progress",
        access_token=access_token,
        params={"on_conflict": "user_id,roadmap_id"},
        json_body={
            "user_id": user_id,
            "roadmap_id": roadmap_id,
            "completed_steps": completed_steps,
            "completion_percentage": completion_percentage,
            "updated_at": _utc_now_iso(),
        },
        prefer="resolution=merge-duplicates,return=representation",
    )
    if not rows:
        raise DataStoreError("data store did not return the saved progress")
    return _parse_row(RoadmapProgress.from_row, rows[0], "progress row")


@dataclass
class SaveOutcome:
    saved: bool
    record_id: str | None = None
    reason: str | None = None


async def persist_analysis(*, user_id: str, result: AnalysisResult, access_token: str | None) -> SaveOutcome:
    """Best-effort side write: a storage failure is logged and reported, never raised."""
    try:
        record = await insert_resume_check(user_id=user_id, result=result, access_token=access_token)
    except DataStoreError as exc:
        logger.warning(
            json.dumps(
                {"event": "resume_check_save_failed", "userId": user_id, "reason": str(exc)},
                ensure_ascii=False,
            )
        )
        return SaveOutcome(saved=False, reason=str(exc))
    return SaveOutcome(saved=True, record_id=record.id)
