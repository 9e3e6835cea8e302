"""Contribution calendar: merges per-platform day counts into one heatmap.

Pure functions over already-fetched snapshots. No I/O.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta

from codefolio.adapters import PlatformSnapshot
from codefolio.errors import InvalidDateRange
from codefolio.platforms import Platform
from codefolio.streaks import analyze_counts

DEFAULT_WINDOW_DAYS = 371  # 53 weeks
MAX_WINDOW_DAYS = 366 * 5

# count >= threshold[i] -> level i + 1
DEFAULT_LEVEL_THRESHOLDS: tuple[int, ...] = (1, 2, 5, 10)
MAX_LEVEL = 4


@dataclass(frozen=True)
class ActivityDay:
    date: str  # YYYY-MM-DD
    counts: Mapping[Platform, int] = field(default_factory=dict)
    aggregate_count: int = 0
    level: int = 0
    placeholder: bool = False

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "count": self.aggregate_count,
            "level": self.level,
            "platforms": {p.value: c for p, c in self.counts.items()},
        }


@dataclass(frozen=True)
class CalendarStats:
    total_contributions: int
    active_days: int
    longest_streak: int
    current_streak: int

    def to_dict(self) -> dict:
        return {
            "totalContributions": self.total_contributions,
            "activeDays": self.active_days,
            "longestStreak": self.longest_streak,
            "currentStreak": self.current_streak,
        }


@dataclass(frozen=True)
class ContributionCalendar:
    """Ordered days of the window, oldest first. The last day is today."""

    days: tuple[ActivityDay, ...]

    @property
    def start(self) -> str | None:
        return self.days[0].date if self.days else None

    @property
    def end(self) -> str | None:
        return self.days[-1].date if self.days else None

    @property
    def stats(self) -> CalendarStats:
        counts = [d.aggregate_count for d in self.days]
        streaks = analyze_counts(counts)
        return CalendarStats(
            total_contributions=sum(counts),
            active_days=streaks.active_days,
            longest_streak=streaks.longest_streak,
            current_streak=streaks.current_streak,
        )

    def platform_totals(self) -> dict[Platform, int]:
        """Units contributed per platform within the window."""
        totals: dict[Platform, int] = {}
        for day in self.days:
            for platform, count in day.counts.items():
                totals[platform] = totals.get(platform, 0) + count
        return totals

    def weeks(self) -> list[list[ActivityDay]]:
        return calendar_weeks(self.days)

    def to_dict(self) -> dict:
        return {
            "calendar": [d.to_dict() for d in self.days],
            "stats": self.stats.to_dict(),
        }


def _parse_day(value: str | date, label: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidDateRange(f"Malformed {label} date: {value!r}") from None


def level_for_count(count: int, thresholds: Sequence[int] = DEFAULT_LEVEL_THRESHOLDS) -> int:
    """Quantize an aggregate count to a heatmap level 0-4.

    Default buckets: 0 -> 0, 1 -> 1, 2-4 -> 2, 5-9 -> 3, 10+ -> 4.
    """
    level = 0
    for threshold in thresholds[:MAX_LEVEL]:
        if count >= threshold:
            level += 1
    return level


def validate_thresholds(thresholds: Sequence[int]) -> tuple[int, ...]:
    """Thresholds must be MAX_LEVEL strictly increasing positive ints."""
    if isinstance(thresholds, (str, bytes)):
        raise ValueError(f"Level thresholds must be a list of integers, got {thresholds!r}")
    try:
        values = tuple(int(t) for t in thresholds)
    except (TypeError, ValueError):
        raise ValueError(f"Level thresholds must be a list of integers, got {thresholds!r}") from None
    if len(values) != MAX_LEVEL:
        raise ValueError(f"Expected {MAX_LEVEL} level thresholds, got {len(values)}")
    if values[0] < 1 or any(b <= a for a, b in zip(values, values[1:])):
        raise ValueError(f"Level thresholds must be positive and strictly increasing: {values}")
    return values


def calendar_window(today: str | date, window_days: int = DEFAULT_WINDOW_DAYS) -> tuple[date, date]:
    """Return (start, end) of the trailing window ending at today, inclusive."""
    if not isinstance(window_days, int) or window_days < 1 or window_days > MAX_WINDOW_DAYS:
        raise InvalidDateRange(f"Window must be 1-{MAX_WINDOW_DAYS} days, got {window_days!r}")
    end = _parse_day(today, "end")
    return end - timedelta(days=window_days - 1), end


def build_calendar(
    snapshots: Iterable[PlatformSnapshot],
    start: str | date,
    end: str | date,
    thresholds: Sequence[int] = DEFAULT_LEVEL_THRESHOLDS,
) -> ContributionCalendar:
    """Merge platform day counts into one calendar covering start..end.

    Every date in the range gets exactly one ActivityDay. Dates outside the
    range are ignored; negative counts count as 0. A platform with no data
    for a date simply contributes nothing to it.
    """
    start_day = _parse_day(start, "start")
    end_day = _parse_day(end, "end")
    if start_day > end_day:
        raise InvalidDateRange(f"Start {start_day} is after end {end_day}")
    if (end_day - start_day).days + 1 > MAX_WINDOW_DAYS:
        raise InvalidDateRange(f"Window exceeds {MAX_WINDOW_DAYS} days")

    start_key, end_key = start_day.isoformat(), end_day.isoformat()
    merged: dict[str, dict[Platform, int]] = {}
    for snapshot in snapshots:
        for day, count in snapshot.daily_counts.items():
            if not start_key <= day <= end_key or count <= 0:
                continue
            per_platform = merged.setdefault(day, {})
            per_platform[snapshot.platform] = per_platform.get(snapshot.platform, 0) + count

    days: list[ActivityDay] = []
    cursor = start_day
    while cursor <= end_day:
        key = cursor.isoformat()
        counts = merged.get(key, {})
        ordered = {p: counts[p] for p in Platform if p in counts}
        aggregate = sum(ordered.values())
        days.append(
            ActivityDay(
                date=key,
                counts=ordered,
                aggregate_count=aggregate,
                level=level_for_count(aggregate, thresholds),
            )
        )
        cursor += timedelta(days=1)
    return ContributionCalendar(days=tuple(days))


def calendar_weeks(days: Sequence[ActivityDay]) -> list[list[ActivityDay]]:
    """Group days into Sunday-first weeks, padding partial first/last weeks.

    Padding days are placeholders (placeholder=True, count 0) and exist only
    for grid alignment.
    """
    if not days:
        return []
    first = date.fromisoformat(days[0].date)
    last = date.fromisoformat(days[-1].date)
    lead = (first.weekday() + 1) % 7  # Sunday = 0
    trail = 6 - (last.weekday() + 1) % 7

    cells: list[ActivityDay] = [
        ActivityDay(date=(first - timedelta(days=lead - i)).isoformat(), placeholder=True)
        for i in range(lead)
    ]
    cells.extend(days)
    cells.extend(
        ActivityDay(date=(last + timedelta(days=i + 1)).isoformat(), placeholder=True)
        for i in range(trail)
    )
    return [cells[i:i + 7] for i in range(0, len(cells), 7)]
