#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
import uuid
from http.cookiejar import CookieJar
from typing import Any
from urllib import error, request

DEMO_EMAIL = "demo@careerpath.ai"
DEMO_PASSWORD = "demo123"


class NoRedirect(request.HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


def build_opener() -> request.OpenerDirector:
    return request.build_opener(request.HTTPCookieProcessor(CookieJar()), NoRedirect())


def call(
    opener: request.OpenerDirector,
    base_url: str,
    method: str,
    path: str,
    payload: dict[str, Any] | None = None,
    *,
    body: bytes | None = None,
    content_type: str | None = None,
) -> tuple[int, dict[str, Any] | str, dict[str, str]]:
    headers = {"Accept": "application/json"}
    if payload is not None:
        body = json.dumps(payload).encode("utf-8")
        headers["Content-Type"] = "application/json"
    elif content_type:
        headers["Content-Type"] = content_type

    req = request.Request(f"{base_url.rstrip('/')}{path}", data=body, headers=headers, method=method)
    try:
        with opener.open(req, timeout=90) as resp:
            raw = resp.read().decode("utf-8")
            parsed = json.loads(raw) if raw and raw.startswith(("{", "[")) else raw
            return resp.status, parsed, dict(resp.headers)
    except error.HTTPError as exc:
        raw = exc.read().decode("utf-8")
        parsed_error: dict[str, Any] | str
        try:
            parsed_error = json.loads(raw)
        except ValueError:
            parsed_error = raw
        return exc.code, parsed_error, dict(exc.headers or {})


def multipart_body(field: str, filename: str, content: bytes, content_type: str) -> tuple[bytes, str]:
    boundary = f"careerpath-{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field}"; filename="{filename}"\r\n'
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + content + tail, f"multipart/form-data; boundary={boundary}"


def main() -> int:
    parser = argparse.ArgumentParser(description="Minimal API smoke test for the CareerPath backend")
    parser.add_argument("--base-url", default="http://127.0.0.1:8000", help="Backend base URL")
    parser.add_argument("--email", default=DEMO_EMAIL, help="Account email (demo account when Supabase is unset)")
    parser.add_argument("--password", default=DEMO_PASSWORD, help="Account password")
    parser.add_argument("--with-model", action="store_true", help="Also call the analysis and chat endpoints")
    args = parser.parse_args()

    opener = build_opener()

    status, health, _ = call(opener, args.base_url, "GET", "/health")
    if status != 200:
        print(f"[FAIL] /health => {status} {health}")
        return 1

    status, _, headers = call(opener, args.base_url, "GET", "/dashboard")
    location = headers.get("location") or headers.get("Location") or ""
    if status not in {302, 307} or not location.startswith("/login"):
        print(f"[FAIL] guard did not redirect /dashboard => {status} {location}")
        return 1

    status, login, _ = call(
        opener,
        args.base_url,
        "POST",
        "/api/auth/login",
        {"email": args.email, "password": args.password},
    )
    if status != 200 or not isinstance(login, dict) or not login.get("success"):
        print(f"[FAIL] /api/auth/login => {status} {login}")
        return 1

    for path in ("/api/auth/me", "/api/config/status", "/dashboard", "/roadmaps", "/resume", "/chat"):
        status, data, _ = call(opener, args.base_url, "GET", path)
        if status != 200:
            print(f"[FAIL] {path} => {status} {data}")
            return 1

    status, data, _ = call(opener, args.base_url, "POST", "/api/chat", {})
    if status != 400:
        print(f"[FAIL] /api/chat without message => {status} {data}")
        return 1

    if args.with_model:
        body, content_type = multipart_body(
            "resume",
            "resume.txt",
            "Backend engineer, 5 years Python, FastAPI, SQL, Docker.".encode("utf-8"),
            "text/plain",
        )
        status, analysis, _ = call(
            opener,
            args.base_url,
            "POST",
            "/api/analyze-resume",
            body=body,
            content_type=content_type,
        )
        if status != 200 or not isinstance(analysis, dict) or "analysis" not in analysis:
            print(f"[FAIL] /api/analyze-resume => {status} {analysis}")
            return 1
        print(f"[INFO] ats_score={analysis['analysis']['ats_score']} saved={analysis['saved']}")

        status, chat, _ = call(
            opener,
            args.base_url,
            "POST",
            "/api/chat",
            {"message": "Which skill should I learn next?", "conversationHistory": []},
        )
        if status != 200:
            print(f"[FAIL] /api/chat => {status} {chat}")
            return 1

    status, data, _ = call(opener, args.base_url, "POST", "/api/auth/logout")
    if status != 200:
        print(f"[FAIL] /api/auth/logout => {status} {data}")
        return 1

    print("[PASS] smoke checks completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
