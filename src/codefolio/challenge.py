"""Daily challenge engine for codefolio.

One problem per user per calendar day:

    NONE -> ASSIGNED -> COMPLETED
                     -> SKIPPED (a fresh ASSIGNED record replaces it)

Completion is verified against the platform's submission history. The
engine keeps its own streak, separate from the contribution calendar.
"""

from __future__ import annotations

import logging
import random
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum

from codefolio.adapters import SubmissionSource, parse_timestamp
from codefolio.db import Database, iso_utc
from codefolio.errors import InvalidTransition, NoEligibleProblem, VerificationFailed
from codefolio.platforms import Platform, parse_platform
from codefolio.problems import (
    DIFFICULTIES,
    PROBLEMS,
    Problem,
    all_topics,
    problems_for_topic,
    topic_sizes,
)
from codefolio.streaks import get_streak_from_dates, is_streak_alive

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 14

# (minimum streak, difficulty), checked top down
DIFFICULTY_LADDER: tuple[tuple[int, str], ...] = (
    (7, "Hard"),
    (3, "Medium"),
    (0, "Easy"),
)


class ChallengeStatus(str, Enum):
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass
class DailyChallenge:
    id: int
    user_id: str
    date: str
    platform: Platform
    problem_id: str
    title: str
    url: str
    difficulty: str
    topic: str
    status: ChallengeStatus
    auto_completed: bool
    assigned_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict) -> DailyChallenge:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            date=row["date"],
            platform=parse_platform(row["platform"]),
            problem_id=row["problem_id"],
            title=row["title"],
            url=row["url"] or "",
            difficulty=row["difficulty"],
            topic=row["topic"],
            status=ChallengeStatus(row["status"]),
            auto_completed=bool(row["auto_completed"]),
            assigned_at=parse_timestamp(row["assigned_at"]),
            completed_at=parse_timestamp(row["completed_at"]),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "platform": self.platform.value,
            "problemId": self.problem_id,
            "title": self.title,
            "url": self.url,
            "difficulty": self.difficulty,
            "topic": self.topic,
            "status": self.status.value,
            "autoCompleted": self.auto_completed,
            "assignedAt": self.assigned_at.isoformat() if self.assigned_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class ChallengeStreak:
    current: int = 0
    longest: int = 0
    total_completed: int = 0
    last_completed_date: str | None = None
    completion_dates: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "current": self.current,
            "longest": self.longest,
            "totalCompleted": self.total_completed,
            "lastCompletedDate": self.last_completed_date,
            "completionDates": list(self.completion_dates),
        }


def difficulty_for_streak(streak: int, ceiling: str = "Hard") -> str:
    """Pick the ladder difficulty for a streak, never above ceiling."""
    wanted = next(level for minimum, level in DIFFICULTY_LADDER if streak >= minimum)
    return DIFFICULTIES[min(DIFFICULTIES.index(wanted), DIFFICULTIES.index(ceiling))]


def next_streak(state: ChallengeStreak, completed_on: str) -> ChallengeStreak:
    """Streak after completing a challenge dated completed_on.

    Continues when the previous completion was the day before, otherwise
    restarts at 1.
    """
    dates = sorted(set(state.completion_dates) | {completed_on})
    current = get_streak_from_dates(dates, completed_on)
    last = max(filter(None, [state.last_completed_date, completed_on]))
    return ChallengeStreak(
        current=current,
        longest=max(state.longest, current),
        total_completed=state.total_completed + 1,
        last_completed_date=last,
        completion_dates=dates,
    )


class DailyChallengeEngine:
    """Per-user daily challenge state machine backed by the database."""

    def __init__(
        self,
        db: Database,
        submissions: SubmissionSource,
        problems: tuple[Problem, ...] = PROBLEMS,
        rng: random.Random | None = None,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        difficulty_ceiling: str = "Hard",
    ) -> None:
        self.db = db
        self.submissions = submissions
        self.problems = problems
        self.rng = rng or random.Random()
        self.lookback_days = lookback_days
        self.difficulty_ceiling = difficulty_ceiling

    # ── Streak ─────────────────────────────────────────────────────────────

    def _load_streak(self, user_id: str) -> ChallengeStreak:
        row = self.db.get_challenge_streak(user_id)
        dates = self.db.get_completion_dates(user_id)
        if row is None:
            return ChallengeStreak(completion_dates=dates)
        return ChallengeStreak(
            current=row["current_streak"],
            longest=row["longest_streak"],
            total_completed=row["total_completed"],
            last_completed_date=row["last_completed_date"],
            completion_dates=dates,
        )

    def _save_streak(self, user_id: str, state: ChallengeStreak) -> None:
        self.db.save_challenge_streak(
            user_id,
            state.current,
            state.longest,
            state.total_completed,
            state.last_completed_date,
        )

    def _break_stale_streak(self, user_id: str, today: str) -> ChallengeStreak:
        """Reset the current streak when the last completion is older than yesterday."""
        state = self._load_streak(user_id)
        if state.current > 0 and not is_streak_alive(state.last_completed_date, today):
            logger.debug("Challenge streak for %s broken (last completion %s)",
                         user_id, state.last_completed_date)
            state.current = 0
            self._save_streak(user_id, state)
        return state

    def streak(self, user_id: str, today: str | None = None) -> ChallengeStreak:
        """Detailed streak. With today given, a lapsed streak reads as 0."""
        state = self._load_streak(user_id)
        if today and state.current > 0 and not is_streak_alive(state.last_completed_date, today):
            state.current = 0
        return state

    # ── Selection ─────────────────────────────────────────────────────────

    def _candidate_pool(self, user_id: str) -> list[Problem]:
        """Problems on linked platforms (or the whole bank) within the difficulty ceiling."""
        allowed = DIFFICULTIES[:DIFFICULTIES.index(self.difficulty_ceiling) + 1]
        within = [p for p in self.problems if p.difficulty in allowed]
        if not within:
            raise NoEligibleProblem(
                f"No problems at or below {self.difficulty_ceiling} difficulty"
            )
        linked = set(self.db.get_platform_links(user_id))
        pool = [p for p in within if p.platform in linked]
        return pool or within

    def _solved_keys(self, user_id: str, pool: list[Problem]) -> set[tuple[str, str]]:
        """(platform, lowercased id) of problems the user already solved upstream.

        A failing source only costs its platform: nothing is excluded for it.
        """
        links = self.db.get_platform_links(user_id)
        solved: set[tuple[str, str]] = set()
        for platform in {p.platform for p in pool}:
            handle = links.get(platform)
            if not handle:
                continue
            try:
                ids = self.submissions.solved_problems(platform, handle)
            except Exception as exc:
                logger.warning("Solved-problem lookup failed for %s: %s", platform.value, exc)
                continue
            solved.update((platform.value, str(pid).strip().lower()) for pid in ids)
        return solved

    def _select_problem(self, user_id: str, day: str, current_streak: int) -> Problem:
        pool = self._candidate_pool(user_id)
        since = (date.fromisoformat(day) - timedelta(days=self.lookback_days)).isoformat()
        recent = self.db.get_recent_problem_keys(user_id, since)
        skipped_today = {
            (row["platform"], row["problem_id"])
            for row in self.db.get_challenges_for_date(user_id, day)
            if row["status"] == ChallengeStatus.SKIPPED.value
        }
        solved = self._solved_keys(user_id, pool)
        excluded = recent | skipped_today
        fresh = tuple(
            p for p in pool
            if (p.platform.value, p.problem_id) not in excluded
            and (p.platform.value, p.problem_id.lower()) not in solved
        )

        if fresh:
            completed = self.db.count_completed_by_topic(user_id)
            topics = all_topics(fresh)
            # least practiced first, ties in random order
            self.rng.shuffle(topics)
            topics.sort(key=lambda t: completed.get(t, 0))

            target = difficulty_for_streak(current_streak, self.difficulty_ceiling)
            easier_first = list(reversed(DIFFICULTIES[:DIFFICULTIES.index(target) + 1]))
            for topic in topics:
                in_topic = problems_for_topic(topic, fresh)
                for difficulty in easier_first:
                    cell = [p for p in in_topic if p.difficulty == difficulty]
                    if cell:
                        return self.rng.choice(cell)
            # only harder-than-target problems left, all still within the ceiling
            return self.rng.choice(problems_for_topic(topics[0], fresh))

        # Everything was used recently: reuse the least recently assigned problem,
        # preferring ones not skipped today and not already solved.
        last_dates = self.db.get_last_assignment_dates(user_id)
        not_skipped = [p for p in pool if (p.platform.value, p.problem_id) not in skipped_today]
        unsolved = [p for p in not_skipped if (p.platform.value, p.problem_id.lower()) not in solved]
        candidates = unsolved or not_skipped or pool
        return min(candidates, key=lambda p: last_dates.get((p.platform.value, p.problem_id), ""))

    def _rollover(self, user_id: str, day: str, now: datetime) -> DailyChallenge:
        state = self._break_stale_streak(user_id, day)
        problem = self._select_problem(user_id, day, state.current)
        try:
            challenge_id = self.db.insert_challenge(
                user_id,
                day,
                problem.platform.value,
                problem.problem_id,
                problem.title,
                problem.url,
                problem.difficulty,
                problem.topic,
                iso_utc(now),
            )
        except sqlite3.IntegrityError:
            # another connection assigned today's challenge first
            row = self.db.get_live_challenge(user_id, day)
            if row is None:
                raise
            logger.debug("Challenge for %s on %s was assigned concurrently", user_id, day)
            return DailyChallenge.from_row(row)
        logger.info("Assigned %s/%s to %s for %s", problem.platform.value,
                    problem.problem_id, user_id, day)
        return DailyChallenge.from_row(self.db.get_challenge(challenge_id))

    # ── Verification ──────────────────────────────────────────────────────

    def _is_solved(self, user_id: str, challenge: DailyChallenge) -> bool:
        handle = self.db.get_platform_links(user_id).get(challenge.platform)
        if not handle:
            return False
        return self.submissions.has_accepted_submission(
            challenge.platform, handle, challenge.problem_id, challenge.assigned_at
        )

    def _mark_completed(
        self, user_id: str, challenge: DailyChallenge, now: datetime, auto: bool
    ) -> ChallengeStreak:
        """ASSIGNED -> COMPLETED and streak update, in one transaction."""
        with self.db.transaction():
            moved = self.db.transition_challenge(
                challenge.id,
                ChallengeStatus.ASSIGNED.value,
                ChallengeStatus.COMPLETED.value,
                completed_at=iso_utc(now),
                auto_completed=auto,
            )
            if not moved:
                raise InvalidTransition(f"Challenge {challenge.id} is no longer assigned")
            state = next_streak(self._load_streak(user_id), challenge.date)
            self.db.add_completion(user_id, challenge.date, challenge.problem_id, challenge.topic)
            self._save_streak(user_id, state)
        logger.info("Challenge %s completed by %s (auto=%s)", challenge.id, user_id, auto)
        return state

    # ── Operations ────────────────────────────────────────────────────────

    def get_today(self, user_id: str, today: str, now: datetime | None = None) -> dict:
        """Return today's challenge, assigning one if needed.

        An assigned challenge is checked against the submission source once;
        source errors leave it assigned.
        """
        now = now or datetime.now(timezone.utc)
        row = self.db.get_live_challenge(user_id, today)
        challenge = DailyChallenge.from_row(row) if row else self._rollover(user_id, today, now)

        if challenge.status is ChallengeStatus.ASSIGNED:
            try:
                solved = self._is_solved(user_id, challenge)
            except Exception as exc:
                logger.warning("Submission check failed for challenge %s: %s", challenge.id, exc)
                solved = False
            if solved:
                try:
                    self._mark_completed(user_id, challenge, now, auto=True)
                except InvalidTransition:
                    logger.debug("Challenge %s completed concurrently", challenge.id)
                challenge = DailyChallenge.from_row(self.db.get_challenge(challenge.id))

        return {
            "challenge": challenge.to_dict(),
            "streak": self.streak(user_id, today).to_dict(),
        }

    def complete(self, user_id: str, today: str, now: datetime | None = None) -> dict:
        """Verify and complete today's challenge.

        Raises InvalidTransition when there is no assigned challenge and
        VerificationFailed when no accepted submission is found.
        """
        now = now or datetime.now(timezone.utc)
        row = self.db.get_live_challenge(user_id, today)
        if row is None:
            raise InvalidTransition(f"No challenge assigned for {today}")
        challenge = DailyChallenge.from_row(row)
        if challenge.status is not ChallengeStatus.ASSIGNED:
            raise InvalidTransition(f"Challenge for {today} is already {challenge.status.value}")

        try:
            solved = self._is_solved(user_id, challenge)
        except Exception as exc:
            logger.warning("Submission check failed for challenge %s: %s", challenge.id, exc)
            raise VerificationFailed(
                f"Could not verify {challenge.problem_id} on {challenge.platform.value}: {exc}"
            ) from exc
        if not solved:
            raise VerificationFailed(
                f"No accepted submission for {challenge.problem_id} on "
                f"{challenge.platform.value} since the challenge was assigned"
            )
        state = self._mark_completed(user_id, challenge, now, auto=False)
        return {"success": True, "streak": state.to_dict()}

    def skip(self, user_id: str, today: str, now: datetime | None = None) -> dict:
        """Skip today's challenge and assign a different one.

        The skipped problem does not count toward history exclusion or the
        streak.
        """
        now = now or datetime.now(timezone.utc)
        row = self.db.get_live_challenge(user_id, today)
        if row is None or row["status"] != ChallengeStatus.ASSIGNED.value:
            state = row["status"] if row else "unassigned"
            raise InvalidTransition(f"Cannot skip a challenge that is {state}")
        moved = self.db.transition_challenge(
            row["id"], ChallengeStatus.ASSIGNED.value, ChallengeStatus.SKIPPED.value
        )
        if not moved:
            raise InvalidTransition(f"Challenge {row['id']} is no longer assigned")
        logger.info("Challenge %s skipped by %s", row["id"], user_id)
        replacement = self._rollover(user_id, today, now)
        return {"success": True, "challenge": replacement.to_dict()}

    def topics(self, user_id: str) -> dict[str, dict[str, int]]:
        """Per-topic {completed, total}; total is the bank size for the topic."""
        completed = self.db.count_completed_by_topic(user_id)
        return {
            topic: {"completed": completed.get(topic, 0), "total": total}
            for topic, total in topic_sizes(self.problems).items()
        }

    def history(self, user_id: str, limit: int = 30) -> list[dict]:
        if limit <= 0:
            return []
        rows = self.db.get_challenge_history(user_id, limit)
        return [DailyChallenge.from_row(row).to_dict() for row in rows]
