"""Unit tests for MatchingService — skill-overlap scoring and browse filters."""
import uuid

import pytest

from app.services.matching_service import PERFECT_MATCH_BONUS, MatchingService


@pytest.fixture
def service():
    return MatchingService()


class TestScoreCandidate:
    """Tests for the per-candidate score."""

    def test_worked_example_perfect_match(self, service, make_profile):
        """Guitar teacher wanting Yoga vs Yoga teacher wanting Guitar scores 7."""
        profile = make_profile("Ah Ma", offered=["Yoga"], wanted=["guitar"])
        candidate = service.score_candidate(["Guitar"], ["yoga"], profile)
        assert candidate is not None
        assert candidate.matching_skills_i_can_teach == ("Guitar",)
        assert candidate.matching_skills_they_can_teach == ("Yoga",)
        assert candidate.match_score == 1 + 1 + PERFECT_MATCH_BONUS == 7
        assert candidate.is_perfect_match

    def test_one_sided_overlap(self, service, make_profile):
        profile = make_profile(offered=["Baking", "Knitting"], wanted=[])
        candidate = service.score_candidate([], ["baking", "KNITTING"], profile)
        assert candidate.match_score == 2
        assert not candidate.is_perfect_match
        # Their casing is kept for skills they teach.
        assert candidate.matching_skills_they_can_teach == ("Baking", "Knitting")

    def test_no_overlap_returns_none(self, service, make_profile):
        profile = make_profile(offered=["Chess"], wanted=["Tennis"])
        assert service.score_candidate(["Python"], ["Piano"], profile) is None

    def test_profile_without_skills_is_skipped(self, service, make_profile):
        assert service.score_candidate(["Python"], ["Piano"], make_profile()) is None


class TestRankCandidates:
    """Tests for queue construction."""

    def test_sorted_descending_with_stable_ties(self, service, make_profile):
        a = make_profile("A", offered=["Yoga"])
        b = make_profile("B", offered=["Yoga"], wanted=["Guitar"])
        c = make_profile("C", offered=["Yoga"])
        queue = service.rank_candidates(["Guitar"], ["Yoga"], [a, b, c])
        assert [q.display_name for q in queue] == ["B", "A", "C"]

    def test_excludes_self(self, service, make_profile, sample_user_id):
        me = make_profile("Me", offered=["Yoga"], user_id=sample_user_id)
        other = make_profile("Other", offered=["Yoga"])
        queue = service.rank_candidates([], ["Yoga"], [me, other], exclude_user_id=sample_user_id)
        assert [q.user_id for q in queue] == [other.user_id]

    def test_non_overlapping_candidates_dropped(self, service, make_profile):
        queue = service.rank_candidates(
            ["Python"], ["Cooking"],
            [make_profile(offered=["Chess"]), make_profile(wanted=["Python"])],
        )
        assert len(queue) == 1

    def test_to_dict_shape(self, service, make_profile):
        profile = make_profile("Ah Kong", offered=["Erhu"], wanted=["Python"])
        (candidate,) = service.rank_candidates(["Python"], ["Erhu"], [profile])
        data = candidate.to_dict()
        assert data["matchScore"] == 7
        assert data["isPerfectMatch"] is True
        assert data["profile"]["full_name"] == "Ah Kong"


class TestFilterProfiles:
    """Tests for the browse filters."""

    def test_search_matches_name_and_skills(self, make_profile):
        profiles = [
            make_profile("Mei Ling", offered=["Cooking"]),
            make_profile("Raj", wanted=["Python"]),
            make_profile("Hafiz", offered=["Photography"]),
        ]
        assert len(MatchingService.filter_profiles(profiles, search="mei")) == 1
        assert len(MatchingService.filter_profiles(profiles, search="PYTH")) == 1
        assert len(MatchingService.filter_profiles(profiles, search="  ")) == 3

    def test_category_uses_keyword_substrings(self, make_profile):
        profiles = [
            make_profile(offered=["Guitar lessons"]),
            make_profile(offered=["Home cooking"]),
        ]
        music = MatchingService.filter_profiles(profiles, category="music")
        assert [p.skills_offered for p in music] == [["Guitar lessons"]]
        assert len(MatchingService.filter_profiles(profiles, category="all")) == 2
        assert len(MatchingService.filter_profiles(profiles, category="unknown")) == 2

    def test_age_group(self, make_profile):
        profiles = [make_profile(age_group="65+"), make_profile(age_group="18-25")]
        assert len(MatchingService.filter_profiles(profiles, age_group="65+")) == 1
        assert len(MatchingService.filter_profiles(profiles, age_group="all")) == 2
