from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from .config import get_chat_history_limit, get_gemini_api_key, get_gemini_model, get_model_timeout_seconds

logger = logging.getLogger("careerpath.analysis")

MAX_LIST_ITEMS = 5
DEFAULT_ATS_SCORE = 75

# Used when the model answered with a brace-delimited block that is not valid JSON.
MALFORMED_JSON_STRENGTHS = ["Professional experience included", "Educational background present"]
MALFORMED_JSON_WEAKNESSES = ["Could benefit from more specific achievements", "Consider adding more technical skills"]
# Used when the model answered without any JSON object at all.
MISSING_JSON_STRENGTHS = ["Professional resume format", "Relevant experience"]
MISSING_JSON_WEAKNESSES = ["Could be more specific", "Add quantifiable achievements"]

ANALYSIS_FAILED_MESSAGE = "Failed to analyze resume. Please try again."
CHAT_FAILED_MESSAGE = "Failed to get AI response. Please try again."

ANALYSIS_PROMPT_TEMPLATE = """
Analyze the following resume and provide:
1. An ATS (Applicant Tracking System) score out of 100
2. A list of strengths (max 5 points)
3. A list of weaknesses/areas for improvement (max 5 points)
4. Overall feedback and recommendations

Please format your response as JSON with this structure:
{{
  "ats_score": number,
  "strengths": ["strength1", "strength2", ...],
  "weaknesses": ["weakness1", "weakness2", ...],
  "feedback": "detailed feedback and recommendations"
}}

Resume content:
{resume_text}
"""

CHAT_PROMPT_TEMPLATE = """
You are CareerPath AI, a helpful career guidance assistant. You specialize in:
- Career advice and planning
- Technical skill development
- Interview preparation
- Resume and portfolio guidance
- Learning path recommendations
- Industry insights for tech careers

Keep your responses helpful, encouraging, and actionable. If the user asks about specific technologies or career paths, provide practical advice and learning resources.

Previous conversation:
{history}

User question: {message}
"""


class ModelError(RuntimeError):
    pass


class AnalysisFailed(RuntimeError):
    def __init__(self, message: str = ANALYSIS_FAILED_MESSAGE):
        super().__init__(message)


class ChatFailed(RuntimeError):
    def __init__(self, message: str = CHAT_FAILED_MESSAGE):
        super().__init__(message)


class StructuredParseError(ValueError):
    def __init__(self, message: str, *, reason: Literal["absent", "malformed"]):
        super().__init__(message)
        self.reason = reason


@dataclass
class AnalysisResult:
    score: int
    feedback: str
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    fallback_used: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "ats_score": self.score,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "feedback": self.feedback,
        }


def build_analysis_prompt(resume_text: str) -> str:
    return ANALYSIS_PROMPT_TEMPLATE.format(resume_text=resume_text)


def trim_history(history: list[str], *, limit: int) -> list[str]:
    if limit <= 0:
        return []
    return list(history[-limit:])


def build_chat_prompt(message: str, history: list[str], *, limit: int | None = None) -> str:
    safe_limit = get_chat_history_limit() if limit is None else limit
    turns = trim_history(history, limit=safe_limit)
    return CHAT_PROMPT_TEMPLATE.format(history="\n".join(turns), message=message)


def extract_structured(text: str) -> dict[str, Any]:
    """Pull the JSON object out of a free-text model answer.

    Greedy scan from the first ``{`` to the last ``}``; raises
    ``StructuredParseError`` when there is no such span or it does not parse
    to an object.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise StructuredParseError("no json object in model response", reason="absent")

    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise StructuredParseError(f"malformed json in model response: {exc}", reason="malformed") from exc

    if not isinstance(parsed, dict):
        raise StructuredParseError("model response json is not an object", reason="malformed")
    return parsed


def clamp_score(value: float | int, *, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, int(round(float(value)))))


def normalize_score(raw: object) -> int:
    if isinstance(raw, bool):
        return DEFAULT_ATS_SCORE
    if isinstance(raw, (int, float)):
        return clamp_score(raw)
    if isinstance(raw, str):
        try:
            return clamp_score(float(raw.strip()))
        except ValueError:
            return DEFAULT_ATS_SCORE
    return DEFAULT_ATS_SCORE


def normalize_points(raw: object, *, limit: int = MAX_LIST_ITEMS) -> list[str]:
    if not isinstance(raw, list):
        return []
    result: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        value = item.strip()
        if not value:
            continue
        result.append(value)
        if len(result) >= limit:
            break
    return result


def build_result(parsed: dict[str, Any], raw_text: str) -> AnalysisResult:
    feedback = parsed.get("feedback")
    if not isinstance(feedback, str) or not feedback.strip():
        feedback = raw_text
    return AnalysisResult(
        score=normalize_score(parsed.get("ats_score")),
        strengths=normalize_points(parsed.get("strengths")),
        weaknesses=normalize_points(parsed.get("weaknesses")),
        feedback=feedback,
    )


def fallback_result(raw_text: str, *, reason: Literal["absent", "malformed"] = "malformed") -> AnalysisResult:
    if reason == "absent":
        strengths, weaknesses = MISSING_JSON_STRENGTHS, MISSING_JSON_WEAKNESSES
    else:
        strengths, weaknesses = MALFORMED_JSON_STRENGTHS, MALFORMED_JSON_WEAKNESSES
    return AnalysisResult(
        score=DEFAULT_ATS_SCORE,
        strengths=list(strengths),
        weaknesses=list(weaknesses),
        feedback=raw_text,
        fallback_used=True,
    )


def interpret_response(raw_text: str) -> AnalysisResult:
    try:
        parsed = extract_structured(raw_text)
    except StructuredParseError as exc:
        logger.info(json.dumps({"event": "analysis_fallback", "reason": exc.reason}, ensure_ascii=False))
        return fallback_result(raw_text, reason=exc.reason)
    return build_result(parsed, raw_text)


async def generate_content(prompt: str) -> str:
    api_key = get_gemini_api_key()
    if not api_key:
        raise ModelError("GEMINI_API_KEY is not configured")

    endpoint = f"https://generativelanguage.googleapis.com/v1beta/models/{get_gemini_model()}:generateContent"
    body = {"contents": [{"parts": [{"text": prompt}]}]}

    try:
        async with httpx.AsyncClient(timeout=get_model_timeout_seconds()) as client:
            response = await client.post(endpoint, params={"key": api_key}, json=body)
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPError as exc:
        raise ModelError(f"Gemini request failed: {exc}") from exc
    except ValueError as exc:
        raise ModelError("Gemini returned a non-json body") from exc

    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    if not isinstance(candidates, list) or not candidates:
        raise ModelError("Gemini returned empty candidates")

    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") if isinstance(first.get("content"), dict) else {}
    parts = content.get("parts", [])
    if not isinstance(parts, list) or not parts:
        raise ModelError("Gemini returned empty parts")

    text = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
    if not text.strip():
        raise ModelError("Gemini response text is empty")
    return text


async def analyze_resume(resume_text: str) -> AnalysisResult:
    try:
        raw_text = await generate_content(build_analysis_prompt(resume_text))
    except ModelError as exc:
        logger.error(json.dumps({"event": "analysis_failed", "reason": str(exc)}, ensure_ascii=False))
        raise AnalysisFailed() from exc
    return interpret_response(raw_text)


async def chat_with_ai(message: str, conversation_history: list[str] | None = None) -> str:
    try:
        return await generate_content(build_chat_prompt(message, conversation_history or []))
    except ModelError as exc:
        logger.error(json.dumps({"event": "chat_failed", "reason": str(exc)}, ensure_ascii=False))
        raise ChatFailed() from exc
