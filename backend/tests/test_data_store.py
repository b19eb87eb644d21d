from __future__ import annotations

import asyncio
import json

import httpx
import pytest

import careerpath.data_store as data_store_module
from careerpath.analysis import AnalysisResult
from careerpath.data_store import (
    DataStoreError,
    DataStoreNotConfigured,
    fetch_profile,
    list_progress,
    list_resume_checks,
    list_roadmaps,
    persist_analysis,
)
from careerpath.records import completion_percentage, parse_skills, toggle_step

SUPABASE_URL = "https://demo-project.supabase.co"


@pytest.fixture(autouse=True)
def configured_store(monkeypatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", SUPABASE_URL)
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-test-key")


def mock_store(monkeypatch, handler) -> list[tuple[httpx.Request, str | None]]:
    seen: list[tuple[httpx.Request, str | None]] = []

    def build_client(access_token: str | None) -> httpx.AsyncClient:
        def recording_handler(request: httpx.Request) -> httpx.Response:
            seen.append((request, access_token))
            return handler(request)

        return httpx.AsyncClient(transport=httpx.MockTransport(recording_handler), base_url=f"{SUPABASE_URL}/rest/v1")

    monkeypatch.setattr(data_store_module, "_build_client", build_client)
    return seen


def sample_result() -> AnalysisResult:
    return AnalysisResult(score=70, feedback="ok", strengths=["a"], weaknesses=["b"])


def test_unconfigured_store_raises(monkeypatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "")
    with pytest.raises(DataStoreNotConfigured):
        asyncio.run(fetch_profile(user_id="user-1", access_token=None))


def test_malformed_rows_are_data_store_errors(monkeypatch) -> None:
    mock_store(monkeypatch, lambda request: httpx.Response(200, json=[{"ats_score": 80}]))
    with pytest.raises(DataStoreError, match="malformed resume check"):
        asyncio.run(list_resume_checks(user_id="user-1", access_token=None))
    with pytest.raises(DataStoreError, match="malformed progress row"):
        asyncio.run(list_progress(user_id="user-1", access_token=None))
    with pytest.raises(DataStoreError, match="malformed profile"):
        asyncio.run(fetch_profile(user_id="user-1", access_token=None))


def test_list_resume_checks_filters_orders_and_caps(monkeypatch) -> None:
    seen = mock_store(
        monkeypatch,
        lambda request: httpx.Response(
            200,
            json=[
                {
                    "id": "c1",
                    "user_id": "user-1",
                    "ats_score": 81,
                    "feedback": "fine",
                    "strengths": ["x"],
                    "weaknesses": [],
                    "created_at": "2026-02-01T00:00:00Z",
                }
            ],
        ),
    )
    checks = asyncio.run(list_resume_checks(user_id="user-1", access_token="token-1", limit=500))
    assert checks[0].ats_score == 81

    request, token = seen[0]
    assert token == "token-1"
    assert request.url.params["user_id"] == "eq.user-1"
    assert request.url.params["order"] == "created_at.desc"
    assert request.url.params["limit"] == "100"


def test_roadmap_steps_are_normalized(monkeypatch) -> None:
    mock_store(
        monkeypatch,
        lambda request: httpx.Response(
            200,
            json=[
                {
                    "id": "rm-1",
                    "title": "Data",
                    "category": "analytics",
                    "created_at": "2026-01-01T00:00:00Z",
                    "steps": [
                        {"title": "SQL", "resources": [{"title": "Docs", "url": "https://example.com"}, {"url": "x"}]},
                        "not a step",
                    ],
                }
            ],
        ),
    )
    roadmaps = asyncio.run(list_roadmaps(access_token=None))
    assert len(roadmaps[0].steps) == 1
    step = roadmaps[0].steps[0]
    assert step.id == "1"
    assert [resource.title for resource in step.resources] == ["Docs"]
    assert step.resources[0].type == "article"


def test_persist_analysis_reports_saved(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["prefer"] == "return=representation"
        body = json.loads(request.content)
        return httpx.Response(201, json=[{**body, "id": "check-9", "created_at": "2026-02-01T00:00:00Z"}])

    mock_store(monkeypatch, handler)
    outcome = asyncio.run(persist_analysis(user_id="user-1", result=sample_result(), access_token="token-1"))
    assert outcome.saved is True
    assert outcome.record_id == "check-9"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"message": "db down"}),
        httpx.Response(201, json=[]),
        httpx.Response(201, json=[{"unexpected": True}]),
    ],
)
def test_persist_analysis_never_raises(monkeypatch, response: httpx.Response) -> None:
    mock_store(monkeypatch, lambda request: response)
    outcome = asyncio.run(persist_analysis(user_id="user-1", result=sample_result(), access_token=None))
    assert outcome.saved is False
    assert outcome.reason


def test_transport_error_is_data_store_error(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    mock_store(monkeypatch, handler)
    with pytest.raises(DataStoreError, match="unreachable"):
        asyncio.run(fetch_profile(user_id="user-1", access_token=None))


def test_record_helpers() -> None:
    assert parse_skills(" Python, ,SQL ") == ["Python", "SQL"]
    assert parse_skills(["Go", " ", "Rust "]) == ["Go", "Rust"]
    assert parse_skills(None) == []

    assert toggle_step(["s1"], "s2") == ["s1", "s2"]
    assert toggle_step(["s1", "s2"], "s1") == ["s2"]

    assert completion_percentage(["s1"], ["s1", "s2", "s3"]) == 33
    assert completion_percentage(["s1", "ghost"], ["s1", "s2"]) == 50
    assert completion_percentage([], []) == 0
