"""Leaderboard ranking for codefolio.

Entries are recomputed from each user's stored snapshots; scores are never
read back from storage.
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import date
from enum import Enum

from codefolio.adapters import PlatformSnapshot
from codefolio.contributions import DEFAULT_LEVEL_THRESHOLDS, DEFAULT_WINDOW_DAYS, build_calendar, calendar_window
from codefolio.db import Database
from codefolio.platforms import Platform
from codefolio.score import calculate_score, score_inputs_from_snapshots

DEFAULT_PAGE_SIZE = 100
TOP_COUNT = 3


class RankingType(str, Enum):
    CODING_SCORE = "codingScore"
    PROBLEMS = "problems"
    LEETCODE = "leetcode"
    CODEFORCES = "codeforces"
    CODECHEF = "codechef"
    GITHUB = "github"


# entry key each ranking type sorts on
SORT_KEYS: dict[RankingType, str] = {
    RankingType.CODING_SCORE: "codingScore",
    RankingType.PROBLEMS: "totalProblems",
    RankingType.LEETCODE: "leetcodeRating",
    RankingType.CODEFORCES: "codeforcesRating",
    RankingType.CODECHEF: "codechefRating",
    RankingType.GITHUB: "githubContributions",
}


def parse_ranking_type(value: str | RankingType) -> RankingType:
    try:
        return RankingType(value)
    except ValueError:
        valid = ", ".join(r.value for r in RankingType)
        raise ValueError(f"Unknown ranking type {value!r}; expected one of: {valid}") from None


def build_entry(
    user: Mapping,
    snapshots: Mapping[Platform, PlatformSnapshot],
    current_streak: int,
) -> dict:
    """Construct a leaderboard entry from a user row and their snapshots.

    user must contain 'user_id'; 'username' defaults to the id.
    """
    score = calculate_score(score_inputs_from_snapshots(snapshots.values(), current_streak))

    def rating(platform: Platform) -> int:
        snapshot = snapshots.get(platform)
        return round(snapshot.rating) if snapshot else 0

    github = snapshots.get(Platform.GITHUB)
    return {
        "userId": user["user_id"],
        "username": user.get("username") or user["user_id"],
        "codingScore": score.to_dict()["total"],
        "score": score.to_dict(),
        "totalProblems": sum(max(0, s.problems_solved) for s in snapshots.values()),
        "leetcodeRating": rating(Platform.LEETCODE),
        "codeforcesRating": rating(Platform.CODEFORCES),
        "codechefRating": rating(Platform.CODECHEF),
        "githubContributions": github.contributions if github else 0,
        "currentStreak": current_streak,
    }


def load_entries(
    db: Database,
    today: str | date,
    window_days: int = DEFAULT_WINDOW_DAYS,
    thresholds: tuple[int, ...] = DEFAULT_LEVEL_THRESHOLDS,
) -> list[dict]:
    """Build one entry per active user from stored snapshots."""
    start, end = calendar_window(today, window_days)
    entries = []
    for user in db.get_all_users():
        snapshots = db.get_snapshots(user["user_id"])
        calendar = build_calendar(snapshots.values(), start, end, thresholds)
        entries.append(build_entry(user, snapshots, calendar.stats.current_streak))
    return entries


def rank_entries(entries: list[dict], ranking_type: RankingType = RankingType.CODING_SCORE) -> list[dict]:
    """Sort entries by the ranking type's metric descending. Adds 'rank' key (1-based).

    Tie-break: codingScore desc, then username asc.
    """
    key = SORT_KEYS[ranking_type]
    sorted_entries = sorted(
        entries,
        key=lambda e: (
            -e.get(key, 0),
            -e.get("codingScore", 0),
            e.get("username", ""),
        ),
    )
    for i, entry in enumerate(sorted_entries):
        entry["rank"] = i + 1
    return sorted_entries


def percentile(rank: int, total: int) -> int:
    """Share of users ranked below, as a rounded percentage. 0 when unranked."""
    if rank <= 0 or total <= 0:
        return 0
    return round((total - rank) / total * 100)


def leaderboard_page(
    entries: list[dict],
    ranking_type: RankingType | str = RankingType.CODING_SCORE,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    user_id: str | None = None,
) -> dict:
    """Rank entries and cut out one page.

    Returns the page, the top three, the caller's rank and percentile (None
    when the caller has no entry) and pagination info.
    """
    ranking_type = parse_ranking_type(ranking_type)
    page = max(1, int(page))
    limit = max(1, int(limit))
    ranked = rank_entries(entries, ranking_type)
    total = len(ranked)

    current_user = None
    if user_id is not None:
        mine = next((e for e in ranked if e["userId"] == user_id), None)
        if mine is not None:
            current_user = {**mine, "percentile": percentile(mine["rank"], total)}

    skip = (page - 1) * limit
    return {
        "leaderboard": ranked[skip:skip + limit],
        "topThree": ranked[:TOP_COUNT],
        "currentUser": current_user,
        "sortBy": ranking_type.value,
        "pagination": {
            "page": page,
            "limit": limit,
            "totalUsers": total,
            "totalPages": math.ceil(total / limit),
        },
    }
