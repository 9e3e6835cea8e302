"""Tests for the MCP server tool functions."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from codefolio.config import Settings
from codefolio.contests import Contest, upsert_contests
from codefolio.db import Database
from codefolio.mcp_server import (
    complete_daily_challenge,
    get_calendar,
    get_challenge_history,
    get_challenge_streak,
    get_contest_calendar,
    get_daily_challenge,
    get_leaderboard,
    get_score,
    link_platforms,
    list_contest_reminders,
    list_contests,
    remove_contest_reminder,
    set_contest_reminder,
    skip_daily_challenge,
)
from codefolio.platforms import Platform


@pytest.fixture
def env(tmp_path):
    """Point the tools at a temporary database and settings."""
    db_path = tmp_path / "test.db"
    settings = Settings(export_dir=tmp_path / "exports", user_id="alice")
    with patch("codefolio.mcp_server._get_db", side_effect=lambda: Database(db_path=db_path)), \
            patch("codefolio.mcp_server._get_settings", return_value=settings):
        yield db_path


class TestLinkPlatforms:
    def test_links_default_user(self, env):
        result = link_platforms({"leetcode": "alice_lc", "github": "alice"})
        assert result["links"] == {"leetcode": "alice_lc", "github": "alice"}

    def test_unknown_platform_is_error(self, env):
        result = link_platforms({"kattis": "alice"})
        assert result["type"] == "UnknownPlatform"
        assert "kattis" in result["error"]


class TestReports:
    def test_calendar_drops_weeks(self, env):
        result = get_calendar()
        assert "calendar" in result
        assert "weeks" not in result

    def test_score(self, env):
        assert get_score()["score"]["total"] == 0

    def test_leaderboard(self, env):
        link_platforms({"leetcode": "alice_lc"})
        result = get_leaderboard()
        assert result["currentUser"]["userId"] == "alice"
        assert result["pagination"]["totalUsers"] == 1

    def test_leaderboard_bad_type(self, env):
        assert "error" in get_leaderboard(ranking_type="karma")


class TestChallengeTools:
    def test_daily_challenge_flow(self, env):
        first = get_daily_challenge()
        assert first["challenge"]["status"] == "assigned"
        skipped = skip_daily_challenge()
        assert skipped["challenge"]["id"] != first["challenge"]["id"]
        history = get_challenge_history()["history"]
        assert len(history) == 2
        assert get_challenge_streak()["current"] == 0

    def test_complete_unverified(self, env):
        get_daily_challenge()
        result = complete_daily_challenge()
        assert result["type"] == "VerificationFailed"

    def test_complete_without_challenge(self, env):
        assert complete_daily_challenge()["type"] == "InvalidTransition"


class TestContestTools:
    def _seed(self, db_path, start):
        db = Database(db_path=db_path)
        upsert_contests(db, [Contest("weekly-500", "Weekly 500", Platform.LEETCODE, start, 90)])
        db.close()

    def test_list_and_remind(self, env):
        self._seed(env, datetime.now(timezone.utc) + timedelta(days=2))
        assert [c["contestId"] for c in list_contests()["contests"]] == ["weekly-500"]
        assert list_contests(platform="codeforces")["contests"] == []

        reminder = set_contest_reminder("weekly-500")
        assert reminder["fired"] is False
        assert len(list_contest_reminders()["reminders"]) == 1
        assert remove_contest_reminder("weekly-500") == {"removed": True}

    def test_remind_unknown_contest(self, env):
        assert set_contest_reminder("nope")["type"] == "ContestNotFound"

    def test_remind_started_contest(self, env):
        self._seed(env, datetime.now(timezone.utc) - timedelta(hours=1))
        assert set_contest_reminder("weekly-500")["type"] == "ContestAlreadyStarted"

    def test_calendar(self, env):
        self._seed(env, datetime(2026, 3, 14, 8, 0, tzinfo=timezone.utc))
        result = get_contest_calendar(2026, 3)
        assert [c["contestId"] for c in result["days"]["2026-03-14"]] == ["weekly-500"]

    def test_calendar_bad_month(self, env):
        assert "error" in get_contest_calendar(2026, 13)


class TestRunHelper:
    @patch("codefolio.mcp_server._get_settings")
    @patch("codefolio.mcp_server._get_db")
    def test_closes_db_on_error(self, mock_get_db, mock_get_settings):
        mock_db = MagicMock()
        mock_get_db.return_value = mock_db
        mock_get_settings.return_value = Settings()
        result = link_platforms({"kattis": "x"})
        assert "error" in result
        mock_db.close.assert_called_once()

    @patch("codefolio.mcp_server._get_db")
    @patch("codefolio.mcp_server._get_settings", side_effect=ValueError("bad thresholds"))
    def test_invalid_config(self, mock_get_settings, mock_get_db):
        result = get_score()
        assert result["error"].startswith("Invalid config")
        mock_get_db.assert_not_called()
