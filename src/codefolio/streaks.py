"""Streak analysis for codefolio.

Works on the ordered per-day aggregate counts of a contribution calendar
(oldest first, last entry is "today") and on plain sets of ISO dates for the
daily challenge streak.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta


@dataclass(frozen=True)
class StreakStats:
    current_streak: int
    longest_streak: int
    active_days: int


def _parse_date(d: str) -> date:
    """Parse a YYYY-MM-DD string to a date object."""
    return date.fromisoformat(d)


def current_streak(counts: Sequence[int]) -> int:
    """Length of the most recent run of positive days.

    Rules:
    - Scan backward from the last entry (today)
    - If today is 0 it is skipped once; an unfinished day does not break the streak
    - Any zero after that ends the scan
    """
    idx = len(counts) - 1
    if idx >= 0 and counts[idx] <= 0:
        idx -= 1
    streak = 0
    while idx >= 0 and counts[idx] > 0:
        streak += 1
        idx -= 1
    return streak


def longest_streak(counts: Iterable[int]) -> int:
    """Longest run of consecutive positive entries."""
    longest = 0
    run = 0
    for count in counts:
        if count > 0:
            run += 1
            longest = max(longest, run)
        else:
            run = 0
    return longest


def analyze_counts(counts: Sequence[int]) -> StreakStats:
    """Compute current/longest streak and active days from ordered day counts.

    An empty sequence yields all zeros.
    """
    return StreakStats(
        current_streak=current_streak(counts),
        longest_streak=longest_streak(counts),
        active_days=sum(1 for c in counts if c > 0),
    )


def get_streak_from_dates(sorted_dates: list[str], reference_date: str) -> int:
    """Given a sorted list of active dates and a reference date,
    count consecutive days backwards from reference_date."""
    if not sorted_dates:
        return 0

    ref = _parse_date(reference_date)
    date_set = {_parse_date(d) for d in sorted_dates}

    if ref not in date_set:
        return 0

    streak = 0
    current = ref
    while current in date_set:
        streak += 1
        current -= timedelta(days=1)

    return streak


def is_streak_alive(last_active_date: str | None, today: str) -> bool:
    """A date-based streak survives while the last active day is today or yesterday."""
    if not last_active_date:
        return False
    gap = (_parse_date(today) - _parse_date(last_active_date)).days
    return 0 <= gap <= 1
