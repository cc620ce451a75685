"""Tests for DiscoveryRanker — similarity score, ranking and store-backed
discovery/search."""
from datetime import timedelta

import pytest
from unittest.mock import patch

from featur.config import get_settings
from featur.database import utcnow
from featur.models import UserProfile
from featur.services.discovery_service import DiscoveryRanker
from featur.services.swipe_service import SwipeRecorder


@pytest.fixture
def ranker():
    return DiscoveryRanker()


def _profile(user_id, styles=(), interests=()):
    return UserProfile(
        id=user_id,
        display_name=user_id.title(),
        content_styles=list(styles),
        interests=list(interests),
    )


class TestSimilarityScore:
    """Two-term weighted set intersection."""

    def test_worked_example(self, ranker):
        """{Music, Comedy}/{Gaming} vs {Music}/{Gaming, Travel} scores 2×1 + 1×1 = 3."""
        p1 = _profile("p1", ["Music", "Comedy"], ["Gaming"])
        p2 = _profile("p2", ["Music"], ["Gaming", "Travel"])
        assert ranker.similarity_score(p1, p2) == 3

    def test_symmetric(self, ranker):
        """score(A, B) == score(B, A)."""
        a = _profile("a", ["Dance", "Music", "Art"], ["Travel", "Food"])
        b = _profile("b", ["Music", "Art"], ["Food", "Cars", "Travel"])
        assert ranker.similarity_score(a, b) == ranker.similarity_score(b, a) == 6

    def test_no_overlap_is_zero(self, ranker):
        """Disjoint profiles score 0, including empty lists."""
        assert ranker.similarity_score(_profile("a", ["Tech"]), _profile("b", ["Pet"])) == 0
        assert ranker.similarity_score(_profile("a"), _profile("b")) == 0

    def test_custom_weights(self):
        """Weights are injectable."""
        ranker = DiscoveryRanker(style_weight=5, interest_weight=0)
        p1 = _profile("p1", ["Music", "Comedy"], ["Gaming"])
        p2 = _profile("p2", ["Music"], ["Gaming", "Travel"])
        assert ranker.similarity_score(p1, p2) == 5


class TestRankCandidates:
    """Pure ranking over an in-memory candidate list."""

    def test_orders_by_score_and_keeps_ties_stable(self, ranker):
        """Highest score first; equal scores keep input order."""
        me = _profile("me", ["Music"], ["Gaming"])
        candidates = [
            _profile("zero"),
            _profile("tie_first", ["Music"]),
            _profile("best", ["Music"], ["Gaming"]),
            _profile("tie_second", ["Music"]),
        ]

        ranked = ranker.rank_candidates(me, candidates, limit=10)

        assert [(p.id, s) for p, s in ranked] == [
            ("best", 3),
            ("tie_first", 2),
            ("tie_second", 2),
            ("zero", 0),
        ]

    def test_excludes_self_and_excluded_ids(self, ranker):
        """The requester and excluded ids never appear."""
        me = _profile("me", ["Music"])
        candidates = [_profile("me", ["Music"]), _profile("a", ["Music"]), _profile("b")]

        ranked = ranker.rank_candidates(me, candidates, limit=10, excluded_ids={"a"})

        assert [p.id for p, _ in ranked] == ["b"]

    def test_truncates_to_limit(self, ranker):
        """Never more than ``limit`` results."""
        me = _profile("me")
        candidates = [_profile(f"u{i}") for i in range(30)]
        assert len(ranker.rank_candidates(me, candidates, limit=5)) == 5
        assert ranker.rank_candidates(me, candidates, limit=0) == []


class TestDiscover:
    """Store-backed discovery."""

    async def test_ranked_results(self, ranker, db_session, make_user, alice_and_bob):
        """Active candidates ranked by score, requester excluded."""
        await make_user("carol", content_styles=["Music", "Comedy"], interests=["Gaming"])
        await make_user("dave", content_styles=["Tech"])
        await make_user("erin", content_styles=["Music"], is_active=False)

        result = await ranker.discover("alice", db_session)

        assert result["status"] == "ok"
        ids = [r["profile"]["id"] for r in result["results"]]
        assert ids == ["carol", "bob", "dave"]
        assert [r["score"] for r in result["results"]] == [5, 3, 0]

    async def test_excludes_swiped_by_default(self, ranker, db_session, make_user, alice_and_bob):
        """Users already swiped on are left out unless asked for."""
        await make_user("carol")
        await SwipeRecorder().record_swipe("alice", "bob", "pass", db_session)

        default = await ranker.discover("alice", db_session)
        including = await ranker.discover("alice", db_session, exclude_swiped=False)

        assert [r["profile"]["id"] for r in default["results"]] == ["carol"]
        assert {r["profile"]["id"] for r in including["results"]} == {"bob", "carol"}

    async def test_full_exclusion_list_applied(self, ranker, db_session, make_user):
        """Every excluded id is honoured, however long the list."""
        await make_user("me", content_styles=["Music"])
        for i in range(25):
            await make_user(f"user{i:02d}", content_styles=["Music"])

        excluded = [f"user{i:02d}" for i in range(24)]
        result = await ranker.discover("me", db_session, excluded_ids=excluded)

        assert [r["profile"]["id"] for r in result["results"]] == ["user24"]

    async def test_limit_and_self_exclusion(self, ranker, db_session, make_user):
        """At most ``limit`` results and never the requester."""
        await make_user("me", content_styles=["Music"])
        for i in range(8):
            await make_user(f"user{i}", content_styles=["Music"])

        result = await ranker.discover("me", db_session, limit=3)

        ids = [r["profile"]["id"] for r in result["results"]]
        assert len(ids) == 3
        assert "me" not in ids

    async def test_unknown_user_is_invalid(self, ranker, db_session):
        """Discovery for a missing profile reports invalid."""
        result = await ranker.discover("ghost", db_session)
        assert result["status"] == "invalid"
        assert result["results"] == []

    async def test_only_newest_pool_is_scored(self, ranker, db_session, make_user):
        """Profiles older than the candidate pool are not considered."""
        now = utcnow()
        await make_user("me", content_styles=["Music"], created_at=now - timedelta(days=9))
        await make_user("veteran", content_styles=["Music"], created_at=now - timedelta(days=5))
        await make_user("new1", created_at=now - timedelta(days=2))
        await make_user("new2", created_at=now - timedelta(days=1))

        with patch.object(get_settings(), "DISCOVERY_CANDIDATE_POOL", 2):
            result = await ranker.discover("me", db_session)

        assert {r["profile"]["id"] for r in result["results"]} == {"new1", "new2"}


class TestSearch:
    """Text and content-style search."""

    async def test_matches_name_bio_and_interests(self, ranker, db_session, make_user):
        """Case-insensitive match on any of the text fields."""
        await make_user("u1", display_name="DJ Nova", content_styles=["Music"])
        await make_user("u2", display_name="Chef Rae", bio="I love NOVA scotia lobster")
        await make_user("u3", display_name="Pixel", interests=["bossa nova"])
        await make_user("u4", display_name="Other")

        results = await ranker.search_profiles("nova", db_session)

        assert {p["id"] for p in results} == {"u1", "u2", "u3"}

    async def test_content_style_any_of(self, ranker, db_session, make_user):
        """A profile matches if it carries any requested style."""
        await make_user("u1", content_styles=["Music"])
        await make_user("u2", content_styles=["Dance", "Art"])
        await make_user("u3", content_styles=["Tech"])

        results = await ranker.search_profiles("", db_session, content_styles=["Music", "Art"])

        assert {p["id"] for p in results} == {"u1", "u2"}

    async def test_wildcards_are_literal(self, ranker, db_session, make_user):
        """``%`` in the query is matched literally."""
        await make_user("u1", display_name="100% Real")
        await make_user("u2", display_name="Real")

        results = await ranker.search_profiles("100%", db_session)

        assert [p["id"] for p in results] == ["u1"]
