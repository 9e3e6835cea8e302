"""Coding score engine for codefolio.

Pure functions that turn a platform-stats snapshot plus the calendar's
current streak into a bounded composite score in [0, 1000]. Each component
is a linear curve capped at its maximum, so every input is monotonic.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from codefolio.adapters import PlatformSnapshot
from codefolio.platforms import RATING_REFERENCE_MAX, Platform

# Component caps
PROBLEMS_CAP = 400.0
RATINGS_CAP = 300.0
ACTIVITY_CAP = 150.0
CONSISTENCY_CAP = 150.0
TOTAL_CAP = 1000.0

# Curve slopes
POINTS_PER_PROBLEM = 0.5
POINTS_PER_CONTRIBUTION = 0.1
RATING_POINTS_PER_PLATFORM = 100.0

# Consistency sub-components
POINTS_PER_STREAK_DAY = 2.0
STREAK_CAP = 100.0
POINTS_PER_CONTEST = 5.0
CONTESTS_CAP = 50.0


@dataclass(frozen=True)
class ScoreInputs:
    problems_solved: int = 0
    ratings: Mapping[Platform, float] = field(default_factory=dict)
    contributions: int = 0
    current_streak: int = 0
    contests_participated: int = 0


@dataclass(frozen=True)
class UserScore:
    problems: float
    ratings: float
    activity: float
    consistency: float
    total: float

    def to_dict(self) -> dict[str, int]:
        """Integer view used at every output boundary."""
        return {
            "problems": round(self.problems),
            "ratings": round(self.ratings),
            "activity": round(self.activity),
            "consistency": round(self.consistency),
            "total": round(self.total),
        }


def _clamp_non_negative(value: float) -> float:
    """Treat negative values as 0."""
    return max(0.0, float(value))


def problems_component(problems_solved: int) -> float:
    return min(PROBLEMS_CAP, _clamp_non_negative(problems_solved) * POINTS_PER_PROBLEM)


def normalized_rating(platform: Platform, rating: float) -> float:
    """Rescale a raw rating against the platform's reference max (0-100).

    Platforms without a reference max contribute 0.
    """
    reference = RATING_REFERENCE_MAX.get(platform)
    if not reference:
        return 0.0
    scaled = _clamp_non_negative(rating) / reference * RATING_POINTS_PER_PLATFORM
    return min(RATING_POINTS_PER_PLATFORM, scaled)


def ratings_component(ratings: Mapping[Platform, float]) -> float:
    total = sum(normalized_rating(platform, rating) for platform, rating in ratings.items())
    return min(RATINGS_CAP, total)


def activity_component(contributions: int) -> float:
    return min(ACTIVITY_CAP, _clamp_non_negative(contributions) * POINTS_PER_CONTRIBUTION)


def consistency_component(current_streak: int, contests_participated: int) -> float:
    """Streak bonus (max 100) plus contest participation (max 50)."""
    streak_points = min(STREAK_CAP, _clamp_non_negative(current_streak) * POINTS_PER_STREAK_DAY)
    contest_points = min(CONTESTS_CAP, _clamp_non_negative(contests_participated) * POINTS_PER_CONTEST)
    return min(CONSISTENCY_CAP, streak_points + contest_points)


def calculate_score(inputs: ScoreInputs) -> UserScore:
    """Calculate the composite coding score.

    1. Each component follows its own capped linear curve.
    2. Total is the component sum, clamped to [0, TOTAL_CAP].
    """
    problems = problems_component(inputs.problems_solved)
    ratings = ratings_component(inputs.ratings)
    activity = activity_component(inputs.contributions)
    consistency = consistency_component(inputs.current_streak, inputs.contests_participated)
    total = min(TOTAL_CAP, max(0.0, problems + ratings + activity + consistency))
    return UserScore(
        problems=problems,
        ratings=ratings,
        activity=activity,
        consistency=consistency,
        total=total,
    )


def score_inputs_from_snapshots(
    snapshots: Iterable[PlatformSnapshot], current_streak: int
) -> ScoreInputs:
    """Sum per-platform totals into ScoreInputs.

    current_streak comes from the contribution calendar's streak analysis.
    """
    problems = 0
    contributions = 0
    contests = 0
    ratings: dict[Platform, float] = {}
    for snapshot in snapshots:
        problems += max(0, snapshot.problems_solved)
        contributions += max(0, snapshot.contributions)
        contests += max(0, snapshot.contests_participated)
        if snapshot.rating > 0:
            ratings[snapshot.platform] = snapshot.rating
    return ScoreInputs(
        problems_solved=problems,
        ratings=ratings,
        contributions=contributions,
        current_streak=current_streak,
        contests_participated=contests,
    )
