"""
GenBridge SG — Profile value objects.

``PublicProfile`` is the boundary type for every profile row that enters the
matching engine: its validators trim, deduplicate and prune so that internal
logic never sees null lists, blank skills or proficiency entries for skills
the user does not offer.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

PROFICIENCY_LEVELS: tuple[str, ...] = ("beginner", "intermediate", "advanced", "expert")
EXCHANGE_DURATIONS: tuple[str, ...] = ("30", "60", "90", "120")
AGE_GROUPS: tuple[str, ...] = ("18-25", "26-35", "36-45", "46-55", "56-65", "65+")
LANGUAGES: tuple[str, ...] = ("en", "zh")

MAX_SKILLS = 20
MAX_SKILL_LENGTH = 50

# Singapore numbers: optional +65, then 8 digits starting with 3, 6, 8 or 9.
_SG_PHONE_RE = re.compile(r"^(\+65)?[3689]\d{7}$")


def normalize_skills(skills: Any) -> list[str]:
    """Trim, drop blanks and deduplicate (case-sensitive, first wins)."""
    if not skills:
        return []
    seen: set[str] = set()
    result: list[str] = []
    for raw in skills:
        if raw is None:
            continue
        skill = str(raw).strip()
        if not skill or skill in seen:
            continue
        seen.add(skill)
        result.append(skill)
    return result


def prune_proficiency(proficiency: Any, offered: list[str]) -> dict[str, str]:
    """Keep only valid levels for skills that are actually offered."""
    if not isinstance(proficiency, dict):
        return {}
    offered_set = set(offered)
    return {
        skill: level
        for skill, level in proficiency.items()
        if skill in offered_set and level in PROFICIENCY_LEVELS
    }


def normalize_phone_number(value: str) -> str:
    """Strip spaces/dashes and validate a Singapore phone number."""
    compact = re.sub(r"[\s-]", "", value)
    if not _SG_PHONE_RE.match(compact):
        raise ValueError("Phone number must be a valid Singapore number (e.g. +65 9123 4567)")
    if not compact.startswith("+65"):
        compact = f"+65{compact}"
    return compact


def credibility_level(score: int) -> str:
    """Human-readable band for a credibility score."""
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Building"
    if score >= 20:
        return "Getting Started"
    return "New"


class PublicProfile(BaseModel):
    """Non-sensitive profile data, as returned by the public aggregate."""

    user_id: UUID
    full_name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    age_group: Optional[str] = None
    avatar_url: Optional[str] = None
    skills_offered: list[str] = []
    skills_wanted: list[str] = []
    skills_proficiency: dict[str, str] = {}
    credibility_score: int = 0
    skill_exchange_duration: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("skills_offered", "skills_wanted", mode="before")
    @classmethod
    def _normalize_skill_list(cls, v: Any) -> list[str]:
        return normalize_skills(v)

    @field_validator("credibility_score", mode="before")
    @classmethod
    def _clamp_credibility(cls, v: Any) -> int:
        if v is None:
            return 0
        return max(0, min(100, int(v)))

    @field_validator("skill_exchange_duration", mode="before")
    @classmethod
    def _known_duration(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v)
        return v if v in EXCHANGE_DURATIONS else None

    @model_validator(mode="before")
    @classmethod
    def _prune_proficiency(cls, data: Any) -> Any:
        if isinstance(data, dict):
            offered = normalize_skills(data.get("skills_offered"))
            return {
                **data,
                "skills_proficiency": prune_proficiency(
                    data.get("skills_proficiency"), offered
                ),
            }
        # ORM rows: read the attributes we need into a plain dict.
        offered = normalize_skills(getattr(data, "skills_offered", None))
        return {
            "user_id": data.user_id,
            "full_name": getattr(data, "full_name", None),
            "bio": getattr(data, "bio", None),
            "location": getattr(data, "location", None),
            "age_group": getattr(data, "age_group", None),
            "avatar_url": getattr(data, "avatar_url", None),
            "skills_offered": offered,
            "skills_wanted": getattr(data, "skills_wanted", None),
            "skills_proficiency": prune_proficiency(
                getattr(data, "skills_proficiency", None), offered
            ),
            "credibility_score": getattr(data, "credibility_score", None),
            "skill_exchange_duration": getattr(data, "skill_exchange_duration", None),
        }

    @property
    def has_skills(self) -> bool:
        return bool(self.skills_offered or self.skills_wanted)

    @property
    def credibility_level(self) -> str:
        return credibility_level(self.credibility_score)


class ProfileResponse(PublicProfile):
    """The owner's full view of their own profile."""

    id: UUID
    credits: int = 0
    phone_number: Optional[str] = None
    preferred_language: str = "en"
    is_complete: bool = False
    created_at: datetime


class ProfileUpdate(BaseModel):
    """Owner-submitted profile changes; unknown skills are normalised."""

    full_name: Optional[str] = Field(None, max_length=100)
    bio: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=100)
    age_group: Optional[Literal["18-25", "26-35", "36-45", "46-55", "56-65", "65+"]] = None
    phone_number: Optional[str] = None
    skills_offered: Optional[list[str]] = None
    skills_wanted: Optional[list[str]] = None
    skills_proficiency: Optional[dict[str, Literal["beginner", "intermediate", "advanced", "expert"]]] = None
    skill_exchange_duration: Optional[Literal["30", "60", "90", "120"]] = None
    joining_reason: Optional[str] = Field(None, max_length=1000)

    @field_validator("full_name", "bio", "location", "joining_reason", mode="before")
    @classmethod
    def _strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("skills_offered", "skills_wanted", mode="before")
    @classmethod
    def _validate_skills(cls, v: Any) -> Optional[list[str]]:
        if v is None:
            return None
        skills = normalize_skills(v)
        if len(skills) > MAX_SKILLS:
            raise ValueError(f"Maximum {MAX_SKILLS} skills")
        for skill in skills:
            if len(skill) > MAX_SKILL_LENGTH:
                raise ValueError(f"Skill name too long: {skill[:20]}...")
        return skills

    @field_validator("phone_number")
    @classmethod
    def _validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return normalize_phone_number(v)


class LanguageUpdate(BaseModel):
    language: Literal["en", "zh"]


class BrowseResponse(BaseModel):
    profiles: list[PublicProfile]
    rateLimit: dict  # {remaining: int, resetIn: int}
