"""Tests for the leaderboard module."""
from datetime import datetime, timezone

import pytest

from codefolio.adapters import PlatformSnapshot
from codefolio.db import Database
from codefolio.leaderboard import (
    RankingType,
    build_entry,
    leaderboard_page,
    load_entries,
    parse_ranking_type,
    percentile,
    rank_entries,
)
from codefolio.platforms import Platform

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    database = Database(db_path=tmp_path / "test.db")
    yield database
    database.close()


def _make_entry(user_id, **overrides):
    """Create a minimal leaderboard entry."""
    base = {
        "userId": user_id,
        "username": user_id,
        "codingScore": 0,
        "totalProblems": 0,
        "leetcodeRating": 0,
        "codeforcesRating": 0,
        "codechefRating": 0,
        "githubContributions": 0,
        "currentStreak": 0,
    }
    base.update(overrides)
    return base


def _snapshot(platform, **fields):
    return PlatformSnapshot(platform=platform, handle="h", fetched_at=NOW, **fields)


class TestBuildEntry:
    def test_collects_platform_metrics(self):
        snapshots = {
            Platform.LEETCODE: _snapshot(Platform.LEETCODE, problems_solved=120, rating=1834.6),
            Platform.CODEFORCES: _snapshot(Platform.CODEFORCES, problems_solved=40, rating=1500),
            Platform.GITHUB: _snapshot(Platform.GITHUB, contributions=321),
        }
        entry = build_entry({"user_id": "u1", "username": "alice"}, snapshots, current_streak=4)
        assert entry["userId"] == "u1"
        assert entry["username"] == "alice"
        assert entry["totalProblems"] == 160
        assert entry["leetcodeRating"] == 1835
        assert entry["codeforcesRating"] == 1500
        assert entry["codechefRating"] == 0
        assert entry["githubContributions"] == 321
        assert entry["currentStreak"] == 4
        assert entry["codingScore"] == entry["score"]["total"]
        assert entry["codingScore"] > 0

    def test_no_snapshots(self):
        entry = build_entry({"user_id": "u1"}, {}, current_streak=0)
        assert entry["username"] == "u1"
        assert entry["codingScore"] == 0
        assert entry["totalProblems"] == 0
        assert entry["githubContributions"] == 0

    def test_negative_problem_counts_ignored(self):
        snapshots = {Platform.CODECHEF: _snapshot(Platform.CODECHEF, problems_solved=-5)}
        assert build_entry({"user_id": "u1"}, snapshots, 0)["totalProblems"] == 0


class TestRankEntries:
    def test_ranks_by_coding_score(self):
        entries = [
            _make_entry("low", codingScore=100),
            _make_entry("high", codingScore=900),
            _make_entry("mid", codingScore=500),
        ]
        ranked = rank_entries(entries)
        assert [e["userId"] for e in ranked] == ["high", "mid", "low"]
        assert [e["rank"] for e in ranked] == [1, 2, 3]

    @pytest.mark.parametrize("ranking_type,key", [
        (RankingType.PROBLEMS, "totalProblems"),
        (RankingType.LEETCODE, "leetcodeRating"),
        (RankingType.CODEFORCES, "codeforcesRating"),
        (RankingType.CODECHEF, "codechefRating"),
        (RankingType.GITHUB, "githubContributions"),
    ])
    def test_ranks_by_metric(self, ranking_type, key):
        entries = [
            _make_entry("a", codingScore=900, **{key: 10}),
            _make_entry("b", codingScore=100, **{key: 50}),
        ]
        assert [e["userId"] for e in rank_entries(entries, ranking_type)] == ["b", "a"]

    def test_tie_broken_by_score_then_username(self):
        entries = [
            _make_entry("c", username="carol", totalProblems=10, codingScore=200),
            _make_entry("b", username="bob", totalProblems=10, codingScore=300),
            _make_entry("a", username="alice", totalProblems=10, codingScore=200),
        ]
        ranked = rank_entries(entries, RankingType.PROBLEMS)
        assert [e["username"] for e in ranked] == ["bob", "alice", "carol"]

    def test_empty(self):
        assert rank_entries([]) == []


class TestPercentile:
    def test_top_of_ten(self):
        assert percentile(1, 10) == 90

    def test_last(self):
        assert percentile(4, 4) == 0

    def test_rounding(self):
        assert percentile(2, 3) == 33

    def test_unranked(self):
        assert percentile(0, 10) == 0
        assert percentile(1, 0) == 0


class TestParseRankingType:
    def test_valid(self):
        assert parse_ranking_type("github") is RankingType.GITHUB

    def test_invalid(self):
        with pytest.raises(ValueError, match="Unknown ranking type"):
            parse_ranking_type("xp")


class TestLeaderboardPage:
    def _entries(self, n):
        return [_make_entry(f"u{i:02d}", codingScore=1000 - i) for i in range(n)]

    def test_pagination(self):
        result = leaderboard_page(self._entries(25), page=2, limit=10)
        assert [e["rank"] for e in result["leaderboard"]] == list(range(11, 21))
        assert result["pagination"] == {"page": 2, "limit": 10, "totalUsers": 25, "totalPages": 3}
        assert result["sortBy"] == "codingScore"

    def test_page_past_end(self):
        result = leaderboard_page(self._entries(5), page=3, limit=10)
        assert result["leaderboard"] == []
        assert result["pagination"]["totalPages"] == 1

    def test_top_three(self):
        result = leaderboard_page(self._entries(5), page=2, limit=2)
        assert [e["userId"] for e in result["topThree"]] == ["u00", "u01", "u02"]

    def test_current_user_percentile(self):
        result = leaderboard_page(self._entries(10), user_id="u01")
        assert result["currentUser"]["rank"] == 2
        assert result["currentUser"]["percentile"] == 80

    def test_unknown_current_user(self):
        assert leaderboard_page(self._entries(3), user_id="ghost")["currentUser"] is None

    def test_no_entries(self):
        result = leaderboard_page([], user_id="u1")
        assert result["leaderboard"] == []
        assert result["topThree"] == []
        assert result["pagination"]["totalPages"] == 0

    def test_invalid_type(self):
        with pytest.raises(ValueError):
            leaderboard_page(self._entries(3), ranking_type="karma")


class TestLoadEntries:
    def test_one_entry_per_active_user(self, db):
        db.ensure_user("u1", "alice")
        db.set_platform_link("u1", Platform.LEETCODE, "alice_lc")
        db.save_snapshot(
            "u1",
            _snapshot(Platform.LEETCODE, problems_solved=80, daily_counts={"2026-03-09": 2, "2026-03-10": 1}),
            NOW,
        )
        db.ensure_user("u2", "bob")

        entries = {e["userId"]: e for e in load_entries(db, "2026-03-10")}
        assert set(entries) == {"u1", "u2"}
        assert entries["u1"]["totalProblems"] == 80
        assert entries["u1"]["currentStreak"] == 2
        assert entries["u2"]["codingScore"] == 0

    def test_unlinked_snapshot_ignored(self, db):
        db.ensure_user("u1")
        db.set_platform_link("u1", Platform.CODEFORCES, "tourist")
        db.save_snapshot("u1", _snapshot(Platform.CODEFORCES, problems_solved=30), NOW)
        db.remove_platform_link("u1", Platform.CODEFORCES)
        assert load_entries(db, "2026-03-10")[0]["totalProblems"] == 0
