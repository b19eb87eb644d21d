from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int)) and str(item).strip()]


def parse_skills(raw: list[str] | str | None) -> list[str]:
    """Accept a list or a comma separated string; trims entries and drops blanks."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    return [item.strip() for item in items if isinstance(item, str) and item.strip()]


@dataclass
class Profile:
    id: str
    created_at: str
    username: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    skills: list[str] = field(default_factory=list)
    goals: str | None = None
    streak_count: int = 0
    last_login_date: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Profile":
        return cls(
            id=str(row["id"]),
            created_at=str(row.get("created_at") or ""),
            username=_optional_str(row.get("username")),
            avatar_url=_optional_str(row.get("avatar_url")),
            bio=_optional_str(row.get("bio")),
            skills=_str_list(row.get("skills")),
            goals=_optional_str(row.get("goals")),
            streak_count=int(row.get("streak_count") or 0),
            last_login_date=_optional_str(row.get("last_login_date")),
            updated_at=_optional_str(row.get("updated_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RoadmapResource:
    title: str
    url: str | None = None
    type: str = "article"


@dataclass
class RoadmapStep:
    id: str
    title: str
    description: str | None = None
    resources: list[RoadmapResource] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: dict[str, Any], *, index: int) -> "RoadmapStep":
        resources: list[RoadmapResource] = []
        raw_resources = raw.get("resources")
        if isinstance(raw_resources, list):
            for item in raw_resources:
                if not isinstance(item, dict) or not _optional_str(item.get("title")):
                    continue
                resources.append(
                    RoadmapResource(
                        title=str(item["title"]).strip(),
                        url=_optional_str(item.get("url")),
                        type=_optional_str(item.get("type")) or "article",
                    )
                )
        return cls(
            id=_optional_str(raw.get("id")) or str(index + 1),
            title=_optional_str(raw.get("title")) or f"Step {index + 1}",
            description=_optional_str(raw.get("description")),
            resources=resources,
        )


@dataclass
class Roadmap:
    id: str
    title: str
    category: str
    created_at: str
    description: str | None = None
    steps: list[RoadmapStep] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Roadmap":
        raw_steps = row.get("steps")
        steps = [
            RoadmapStep.from_raw(item, index=index)
            for index, item in enumerate(raw_steps if isinstance(raw_steps, list) else [])
            if isinstance(item, dict)
        ]
        return cls(
            id=str(row["id"]),
            title=str(row.get("title") or ""),
            category=str(row.get("category") or "general"),
            created_at=str(row.get("created_at") or ""),
            description=_optional_str(row.get("description")),
            steps=steps,
        )

    @property
    def step_ids(self) -> list[str]:
        return [step.id for step in self.steps]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RoadmapProgress:
    user_id: str
    roadmap_id: str
    completed_steps: list[str] = field(default_factory=list)
    completion_percentage: int = 0
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RoadmapProgress":
        return cls(
            user_id=str(row["user_id"]),
            roadmap_id=str(row["roadmap_id"]),
            completed_steps=_str_list(row.get("completed_steps")),
            completion_percentage=int(row.get("completion_percentage") or 0),
            created_at=_optional_str(row.get("created_at")),
            updated_at=_optional_str(row.get("updated_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ResumeCheck:
    id: str
    user_id: str
    ats_score: int
    feedback: str
    created_at: str
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ResumeCheck":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            ats_score=int(row.get("ats_score") or 0),
            feedback=str(row.get("feedback") or ""),
            created_at=str(row.get("created_at") or ""),
            strengths=_str_list(row.get("strengths")),
            weaknesses=_str_list(row.get("weaknesses")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def toggle_step(completed_steps: list[str], step_id: str) -> list[str]:
    if step_id in completed_steps:
        return [item for item in completed_steps if item != step_id]
    return [*completed_steps, step_id]


def completion_percentage(completed_steps: list[str], step_ids: list[str]) -> int:
    if not step_ids:
        return 0
    done = len(set(completed_steps) & set(step_ids))
    return int(round(done * 100 / len(step_ids)))
