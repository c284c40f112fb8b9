"""
GenBridge SG — Skill Matching Engine

Scores every candidate profile against the caller's skill lists and builds
the ranked swipe queue:

  teach  = my_offered ∩ their_wanted     (case-insensitive, my casing kept)
  learn  = their_offered ∩ my_wanted     (case-insensitive, their casing kept)
  score  = |teach| + |learn| + (PERFECT_MATCH_BONUS if teach and learn)

A candidate is only queued when at least one intersection is nonempty.  The
queue is sorted by score descending; Python's sort is stable, so candidates
with equal scores keep the order the profile source returned them in.

Also hosts the browse-page filters (free-text search, skill category,
age group) since they run over the same ``PublicProfile`` values.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Sequence

import structlog

from app.schemas.profile import PublicProfile

logger = structlog.get_logger("genbridge.matching_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

PERFECT_MATCH_BONUS = 5

# Keyword lists used by the browse category filter.  A profile belongs to a
# category when any of its skills contains any keyword (substring match).
SKILL_CATEGORIES: dict[str, tuple[str, ...]] = {
    "technology": (
        "coding", "programming", "web", "design", "computer", "software",
        "app", "data", "ai", "python", "javascript",
    ),
    "arts": (
        "art", "paint", "draw", "craft", "pottery", "knit", "crochet", "sew",
        "jewelry", "sculpture",
    ),
    "music": (
        "music", "piano", "guitar", "violin", "sing", "drum", "instrument",
        "compose", "song",
    ),
    "languages": (
        "language", "english", "mandarin", "malay", "tamil", "japanese",
        "korean", "french", "spanish", "german",
    ),
    "cooking": (
        "cook", "bake", "cuisine", "recipe", "food", "kitchen", "pastry",
        "culinary",
    ),
    "fitness": (
        "fitness", "yoga", "gym", "sport", "swim", "run", "exercise",
        "martial", "dance", "basketball", "tennis",
    ),
    "business": (
        "business", "finance", "marketing", "accounting", "invest",
        "entrepreneur", "management", "sales",
    ),
    "education": (
        "math", "science", "tutor", "teach", "exam", "study", "academic",
        "history", "geography",
    ),
}


@dataclass(frozen=True)
class MatchCandidate:
    """One scored entry of the swipe queue (never persisted)."""

    profile: PublicProfile
    matching_skills_i_can_teach: tuple[str, ...]
    matching_skills_they_can_teach: tuple[str, ...]
    match_score: int

    @property
    def user_id(self) -> uuid.UUID:
        return self.profile.user_id

    @property
    def display_name(self) -> str:
        return self.profile.full_name or "Anonymous"

    @property
    def is_perfect_match(self) -> bool:
        """Both sides can teach the other something they want."""
        return bool(self.matching_skills_i_can_teach and self.matching_skills_they_can_teach)

    def to_dict(self) -> dict:
        return {
            "profile": self.profile.model_dump(mode="json"),
            "matchingSkillsICanTeach": list(self.matching_skills_i_can_teach),
            "matchingSkillsTheyCanTeach": list(self.matching_skills_they_can_teach),
            "matchScore": self.match_score,
            "isPerfectMatch": self.is_perfect_match,
        }


class MatchingService:
    """Pure skill-overlap scoring and ranking.

    Holds no state and performs no I/O; the candidate list is fetched by the
    caller and passed in.
    """

    # ── Scoring ───────────────────────────────────────────────────────────

    @staticmethod
    def _intersect(ours: Sequence[str], theirs: Iterable[str]) -> tuple[str, ...]:
        """Entries of ``ours`` whose lower-case form appears in ``theirs``."""
        theirs_lower = {skill.lower() for skill in theirs}
        return tuple(skill for skill in ours if skill.lower() in theirs_lower)

    def score_candidate(
        self,
        my_offered: Sequence[str],
        my_wanted: Sequence[str],
        profile: PublicProfile,
    ) -> MatchCandidate | None:
        """Score one candidate, or return ``None`` when nothing overlaps."""
        if not profile.skills_offered and not profile.skills_wanted:
            return None

        can_teach = self._intersect(my_offered, profile.skills_wanted)
        can_learn = self._intersect(profile.skills_offered, my_wanted)

        if not can_teach and not can_learn:
            return None

        score = len(can_teach) + len(can_learn)
        if can_teach and can_learn:
            score += PERFECT_MATCH_BONUS

        return MatchCandidate(
            profile=profile,
            matching_skills_i_can_teach=can_teach,
            matching_skills_they_can_teach=can_learn,
            match_score=score,
        )

    def rank_candidates(
        self,
        my_offered: Sequence[str],
        my_wanted: Sequence[str],
        profiles: Iterable[PublicProfile],
        exclude_user_id: uuid.UUID | None = None,
    ) -> list[MatchCandidate]:
        """Build the swipe queue: every overlapping candidate, best first."""
        candidates: list[MatchCandidate] = []
        considered = 0

        for profile in profiles:
            if exclude_user_id is not None and profile.user_id == exclude_user_id:
                continue
            considered += 1
            candidate = self.score_candidate(my_offered, my_wanted, profile)
            if candidate is not None:
                candidates.append(candidate)

        candidates.sort(key=lambda c: c.match_score, reverse=True)

        logger.info(
            "candidates_ranked",
            considered=considered,
            matched=len(candidates),
            perfect=sum(1 for c in candidates if c.is_perfect_match),
        )
        return candidates

    # ── Browse filters ────────────────────────────────────────────────────

    @staticmethod
    def filter_profiles(
        profiles: Iterable[PublicProfile],
        search: str | None = None,
        category: str | None = None,
        age_group: str | None = None,
    ) -> list[PublicProfile]:
        """Apply the browse-page filters.

        ``category`` and ``age_group`` accept ``"all"`` (or ``None``) to
        disable the filter; unknown categories are ignored.
        """
        query = (search or "").strip().lower()
        keywords = SKILL_CATEGORIES.get(category or "all")
        results: list[PublicProfile] = []

        for profile in profiles:
            if query:
                in_name = query in (profile.full_name or "").lower()
                in_offered = any(query in s.lower() for s in profile.skills_offered)
                in_wanted = any(query in s.lower() for s in profile.skills_wanted)
                if not (in_name or in_offered or in_wanted):
                    continue

            if keywords:
                all_skills = [*profile.skills_offered, *profile.skills_wanted]
                if not any(k in s.lower() for s in all_skills for k in keywords):
                    continue

            if age_group and age_group != "all" and profile.age_group != age_group:
                continue

            results.append(profile)

        return results
