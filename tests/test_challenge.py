"""Tests for the daily challenge engine."""

import random
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from codefolio.challenge import (
    ChallengeStatus,
    ChallengeStreak,
    DailyChallengeEngine,
    difficulty_for_streak,
    next_streak,
)
from codefolio.db import Database
from codefolio.errors import InvalidTransition, NoEligibleProblem, VerificationFailed
from codefolio.platforms import Platform
from codefolio.problems import Problem

USER = "u1"
DAY = "2026-03-10"
NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


def _lc(pid, difficulty="Easy", topic="Arrays"):
    return Problem(pid, pid.title(), Platform.LEETCODE, difficulty, topic)


@pytest.fixture
def db(tmp_path):
    """Create a temporary database with one user linked to LeetCode."""
    database = Database(db_path=tmp_path / "test.db")
    database.ensure_user(USER)
    database.set_platform_link(USER, Platform.LEETCODE, "alice")
    yield database
    database.close()


@pytest.fixture
def source():
    mock = MagicMock()
    mock.has_accepted_submission.return_value = False
    mock.solved_problems.return_value = set()
    return mock


def _engine(db, source, problems=None, **kwargs):
    if problems is not None:
        kwargs["problems"] = problems
    return DailyChallengeEngine(db, source, rng=random.Random(7), **kwargs)


class TestDifficultyForStreak:
    @pytest.mark.parametrize("streak,difficulty", [
        (0, "Easy"), (2, "Easy"), (3, "Medium"), (6, "Medium"), (7, "Hard"), (40, "Hard"),
    ])
    def test_ladder(self, streak, difficulty):
        assert difficulty_for_streak(streak) == difficulty

    def test_ceiling(self):
        assert difficulty_for_streak(10, ceiling="Medium") == "Medium"
        assert difficulty_for_streak(10, ceiling="Easy") == "Easy"
        assert difficulty_for_streak(0, ceiling="Medium") == "Easy"


class TestNextStreak:
    def test_first_completion(self):
        state = next_streak(ChallengeStreak(), "2026-03-10")
        assert (state.current, state.longest, state.total_completed) == (1, 1, 1)
        assert state.last_completed_date == "2026-03-10"

    def test_consecutive_day_extends(self):
        prev = ChallengeStreak(2, 5, 9, "2026-03-09", ["2026-03-08", "2026-03-09"])
        state = next_streak(prev, "2026-03-10")
        assert state.current == 3
        assert state.longest == 5
        assert state.total_completed == 10

    def test_gap_resets(self):
        prev = ChallengeStreak(4, 4, 4, "2026-03-07", ["2026-03-04", "2026-03-05", "2026-03-06", "2026-03-07"])
        state = next_streak(prev, "2026-03-10")
        assert state.current == 1
        assert state.longest == 4


class TestGetToday:
    def test_assigns_once_per_day(self, db, source):
        engine = _engine(db, source)
        first = engine.get_today(USER, DAY, NOW)
        second = engine.get_today(USER, DAY, NOW)
        assert first["challenge"]["id"] == second["challenge"]["id"]
        assert first["challenge"]["status"] == "assigned"
        assert len(db.get_challenges_for_date(USER, DAY)) == 1

    def test_prefers_linked_platform(self, db, source):
        problems = (_lc("a1"), Problem("4A", "Watermelon", Platform.CODEFORCES, "Easy", "Arrays"))
        for offset in range(1, 3):
            result = _engine(db, source, problems).get_today(USER, f"2026-03-0{offset}", NOW)
            assert result["challenge"]["platform"] == "leetcode"

    def test_falls_back_to_all_platforms(self, tmp_path, source):
        database = Database(db_path=tmp_path / "nolinks.db")
        try:
            problems = (Problem("4A", "Watermelon", Platform.CODEFORCES, "Easy", "Arrays"),)
            result = _engine(database, source, problems).get_today("nobody", DAY, NOW)
            assert result["challenge"]["problemId"] == "4A"
            source.has_accepted_submission.assert_not_called()
        finally:
            database.close()

    def test_new_streak_gets_easy(self, db, source):
        problems = (_lc("e1"), _lc("m1", "Medium"), _lc("h1", "Hard"))
        result = _engine(db, source, problems).get_today(USER, DAY, NOW)
        assert result["challenge"]["difficulty"] == "Easy"

    def test_long_streak_falls_back_to_easier(self, db, source):
        db.save_challenge_streak(USER, 7, 7, 7, "2026-03-09")
        problems = (_lc("e1"), _lc("m1", "Medium"))
        result = _engine(db, source, problems).get_today(USER, DAY, NOW)
        assert result["challenge"]["difficulty"] == "Medium"

    def test_harder_problem_within_ceiling_assigns(self, db, source):
        problems = (_lc("m1", "Medium"),)
        result = _engine(db, source, problems).get_today(USER, DAY, NOW)
        assert result["challenge"]["problemId"] == "m1"

    def test_ceiling_holds_after_easy_problems_run_out(self, db, source):
        problems = (_lc("e1"), _lc("e2"), _lc("m1", "Medium"), _lc("h1", "Hard"))
        engine = _engine(db, source, problems, difficulty_ceiling="Easy")
        assigned = [
            engine.get_today(USER, f"2026-03-{day:02d}", NOW)["challenge"] for day in range(1, 8)
        ]
        assert {c["difficulty"] for c in assigned} == {"Easy"}
        ids = [c["problemId"] for c in assigned]
        # reuse cycles through the easy problems, least recently assigned first
        assert ids[2:4] == ids[0:2]

    def test_long_streak_respects_ceiling(self, db, source):
        db.save_challenge_streak(USER, 9, 9, 9, "2026-03-09")
        problems = (_lc("e1"), _lc("h1", "Hard"))
        engine = _engine(db, source, problems, difficulty_ceiling="Medium")
        assert engine.get_today(USER, DAY, NOW)["challenge"]["problemId"] == "e1"
        assert engine.get_today(USER, "2026-03-11", NOW)["challenge"]["problemId"] == "e1"

    def test_nothing_within_ceiling_raises(self, db, source):
        problems = (_lc("h1", "Hard"),)
        engine = _engine(db, source, problems, difficulty_ceiling="Medium")
        with pytest.raises(NoEligibleProblem):
            engine.get_today(USER, DAY, NOW)
        assert db.get_challenges_for_date(USER, DAY) == []

    def test_solved_problems_excluded(self, db, source):
        source.solved_problems.return_value = {"E1"}
        problems = (_lc("e1"), _lc("e2"))
        result = _engine(db, source, problems).get_today(USER, DAY, NOW)
        assert result["challenge"]["problemId"] == "e2"
        source.solved_problems.assert_called_once_with(Platform.LEETCODE, "alice")

    def test_everything_solved_still_assigns(self, db, source):
        source.solved_problems.return_value = {"e1"}
        result = _engine(db, source, (_lc("e1"),)).get_today(USER, DAY, NOW)
        assert result["challenge"]["problemId"] == "e1"

    def test_solved_lookup_failure_excludes_nothing(self, db, source):
        source.solved_problems.side_effect = RuntimeError("judge down")
        result = _engine(db, source, (_lc("e1"),)).get_today(USER, DAY, NOW)
        assert result["challenge"]["problemId"] == "e1"

    def test_recent_history_excluded(self, db, source):
        problems = (_lc("p1"), _lc("p2"))
        engine = _engine(db, source, problems)
        day1 = engine.get_today(USER, "2026-03-01", NOW)["challenge"]["problemId"]
        day2 = engine.get_today(USER, "2026-03-02", NOW)["challenge"]["problemId"]
        assert day1 != day2
        # both used inside the lookback window: least recently assigned comes back
        day3 = engine.get_today(USER, "2026-03-03", NOW)["challenge"]["problemId"]
        assert day3 == day1

    def test_least_practiced_topic_next(self, db, source):
        source.has_accepted_submission.return_value = True
        problems = (_lc("a1"), _lc("a2"), _lc("s1", topic="Strings"), _lc("s2", topic="Strings"))
        engine = _engine(db, source, problems)
        first = engine.get_today(USER, "2026-03-01", NOW)["challenge"]
        second = engine.get_today(USER, "2026-03-02", NOW)["challenge"]
        assert first["status"] == "completed"
        assert second["topic"] != first["topic"]

    def test_passive_check_auto_completes(self, db, source):
        source.has_accepted_submission.return_value = True
        result = _engine(db, source).get_today(USER, DAY, NOW)
        assert result["challenge"]["status"] == "completed"
        assert result["challenge"]["autoCompleted"] is True
        assert result["streak"]["current"] == 1
        assert source.has_accepted_submission.call_count == 1
        args = source.has_accepted_submission.call_args.args
        assert args[0] is Platform.LEETCODE
        assert args[1] == "alice"
        assert args[2] == result["challenge"]["problemId"]
        assert args[3] == NOW

    def test_one_submission_read_per_evaluation(self, db, source):
        engine = _engine(db, source)
        engine.get_today(USER, DAY, NOW)
        engine.get_today(USER, DAY, NOW)
        assert source.has_accepted_submission.call_count == 2

    def test_source_failure_is_not_verified(self, db, source):
        source.has_accepted_submission.side_effect = RuntimeError("judge down")
        result = _engine(db, source).get_today(USER, DAY, NOW)
        assert result["challenge"]["status"] == "assigned"

    def test_completed_challenge_not_rechecked(self, db, source):
        source.has_accepted_submission.return_value = True
        engine = _engine(db, source)
        engine.get_today(USER, DAY, NOW)
        engine.get_today(USER, DAY, NOW)
        assert source.has_accepted_submission.call_count == 1


class TestComplete:
    def test_without_evidence(self, db, source):
        engine = _engine(db, source)
        engine.get_today(USER, DAY, NOW)
        with pytest.raises(VerificationFailed):
            engine.complete(USER, DAY, NOW)
        assert db.get_live_challenge(USER, DAY)["status"] == "assigned"
        assert engine.streak(USER).total_completed == 0

    def test_with_evidence(self, db, source):
        engine = _engine(db, source)
        engine.get_today(USER, DAY, NOW)
        source.has_accepted_submission.return_value = True
        result = engine.complete(USER, DAY, NOW)
        assert result["success"] is True
        assert result["streak"]["current"] == 1
        row = db.get_live_challenge(USER, DAY)
        assert row["status"] == "completed"
        assert row["auto_completed"] == 0

    def test_twice_is_invalid(self, db, source):
        engine = _engine(db, source)
        engine.get_today(USER, DAY, NOW)
        source.has_accepted_submission.return_value = True
        engine.complete(USER, DAY, NOW)
        with pytest.raises(InvalidTransition):
            engine.complete(USER, DAY, NOW)
        assert engine.streak(USER).total_completed == 1

    def test_nothing_assigned(self, db, source):
        with pytest.raises(InvalidTransition):
            _engine(db, source).complete(USER, DAY, NOW)

    def test_source_error_is_verification_failure(self, db, source):
        engine = _engine(db, source)
        engine.get_today(USER, DAY, NOW)
        source.has_accepted_submission.side_effect = RuntimeError("judge down")
        with pytest.raises(VerificationFailed):
            engine.complete(USER, DAY, NOW)


class TestSkip:
    def test_two_skips(self, db, source):
        engine = _engine(db, source)
        engine.get_today(USER, DAY, NOW)
        engine.skip(USER, DAY, NOW)
        result = engine.skip(USER, DAY, NOW)

        records = db.get_challenges_for_date(USER, DAY)
        statuses = sorted(r["status"] for r in records)
        assert statuses == ["assigned", "skipped", "skipped"]
        assert len({r["problem_id"] for r in records}) == 3
        assert result["challenge"]["status"] == "assigned"
        streak = engine.streak(USER)
        assert (streak.current, streak.total_completed) == (0, 0)

    def test_skipped_problem_not_in_exclusion_history(self, db, source):
        problems = (_lc("p1"), _lc("p2"))
        engine = _engine(db, source, problems)
        first = engine.get_today(USER, "2026-03-01", NOW)["challenge"]["problemId"]
        replacement = engine.skip(USER, "2026-03-01", NOW)["challenge"]["problemId"]
        assert replacement != first
        # only the replacement counts as history, so the skipped one is fresh tomorrow
        tomorrow = engine.get_today(USER, "2026-03-02", NOW)["challenge"]["problemId"]
        assert tomorrow == first

    def test_skip_after_complete_is_invalid(self, db, source):
        source.has_accepted_submission.return_value = True
        engine = _engine(db, source)
        engine.get_today(USER, DAY, NOW)
        with pytest.raises(InvalidTransition):
            engine.skip(USER, DAY, NOW)

    def test_skip_without_challenge(self, db, source):
        with pytest.raises(InvalidTransition):
            _engine(db, source).skip(USER, DAY, NOW)


class TestStreak:
    def test_consecutive_days_then_gap(self, db, source):
        source.has_accepted_submission.return_value = True
        engine = _engine(db, source)
        engine.get_today(USER, "2026-03-01", NOW)
        engine.get_today(USER, "2026-03-02", NOW)
        assert engine.streak(USER).current == 2
        engine.get_today(USER, "2026-03-04", NOW)
        streak = engine.streak(USER)
        assert streak.current == 1
        assert streak.longest == 2
        assert streak.total_completed == 3
        assert streak.completion_dates == ["2026-03-01", "2026-03-02", "2026-03-04"]

    def test_lazy_break_on_rollover(self, db, source):
        source.has_accepted_submission.return_value = True
        engine = _engine(db, source)
        engine.get_today(USER, "2026-03-01", NOW)
        source.has_accepted_submission.return_value = False
        result = engine.get_today(USER, "2026-03-05", NOW)
        assert result["streak"]["current"] == 0
        assert result["streak"]["longest"] == 1
        assert db.get_challenge_streak(USER)["current_streak"] == 0

    def test_lapsed_streak_reads_zero(self, db, source):
        db.save_challenge_streak(USER, 3, 3, 3, "2026-03-01")
        engine = _engine(db, source)
        assert engine.streak(USER, "2026-03-05").current == 0
        assert engine.streak(USER, "2026-03-02").current == 3


class TestTopicsAndHistory:
    def test_topics_totals_from_bank(self, db, source):
        source.has_accepted_submission.return_value = True
        problems = (_lc("a1"), _lc("a2"), _lc("s1", topic="Strings"))
        engine = _engine(db, source, problems)
        completed_topic = engine.get_today(USER, DAY, NOW)["challenge"]["topic"]
        topics = engine.topics(USER)
        assert set(topics) == {"Arrays", "Strings"}
        assert topics["Arrays"]["total"] == 2
        assert topics["Strings"]["total"] == 1
        assert topics[completed_topic]["completed"] == 1

    def test_history_includes_skipped_newest_first(self, db, source):
        engine = _engine(db, source)
        engine.get_today(USER, "2026-03-01", NOW)
        engine.get_today(USER, "2026-03-02", NOW)
        engine.skip(USER, "2026-03-02", NOW)
        history = engine.history(USER, limit=10)
        assert [h["date"] for h in history] == ["2026-03-02", "2026-03-02", "2026-03-01"]
        assert history[0]["status"] == "assigned"
        assert history[1]["status"] == ChallengeStatus.SKIPPED.value

    def test_history_non_positive_limit_is_empty(self, db, source):
        engine = _engine(db, source)
        engine.get_today(USER, DAY, NOW)
        assert engine.history(USER, limit=0) == []
        assert engine.history(USER, limit=-5) == []
        assert len(engine.history(USER, limit=1)) == 1


class TestConcurrentRollover:
    def test_two_connections_share_one_challenge(self, tmp_path, source):
        db_path = tmp_path / "shared.db"
        setup = Database(db_path=db_path)
        setup.ensure_user(USER)
        setup.set_platform_link(USER, Platform.LEETCODE, "alice")
        setup.close()

        # both engines pick a problem before either inserts
        barrier = threading.Barrier(2, timeout=10)

        class RacingEngine(DailyChallengeEngine):
            def _select_problem(self, user_id, day, current_streak):
                problem = super()._select_problem(user_id, day, current_streak)
                barrier.wait()
                return problem

        ids, errors = [], []

        def assign():
            database = Database(db_path=db_path)
            try:
                engine = RacingEngine(database, source, problems=(_lc("p1"), _lc("p2")),
                                      rng=random.Random(7))
                ids.append(engine.get_today(USER, DAY, NOW)["challenge"]["id"])
            except Exception as exc:
                errors.append(exc)
            finally:
                database.close()

        threads = [threading.Thread(target=assign) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(ids) == 2
        assert ids[0] == ids[1]
        check = Database(db_path=db_path)
        try:
            assert len(check.get_challenges_for_date(USER, DAY)) == 1
        finally:
            check.close()
