"""Contest listings: storage, upcoming filter and a month calendar view."""

from __future__ import annotations

import calendar
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from codefolio.adapters import parse_timestamp
from codefolio.db import Database, iso_utc
from codefolio.errors import ContestNotFound, UnknownPlatform
from codefolio.platforms import Platform, parse_platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Contest:
    contest_id: str
    name: str
    platform: Platform
    start_time: datetime
    duration_minutes: int = 0
    url: str = ""

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    def has_started(self, now: datetime) -> bool:
        return now >= self.start_time

    def to_dict(self) -> dict:
        return {
            "contestId": self.contest_id,
            "name": self.name,
            "platform": self.platform.value,
            "url": self.url,
            "startTime": self.start_time.isoformat(),
            "durationMinutes": self.duration_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Contest:
        """Build from camelCase or snake_case keys. Raises ValueError on missing fields."""
        contest_id = data.get("contestId", data.get("contest_id"))
        start = parse_timestamp(data.get("startTime", data.get("start_time")))
        if not contest_id or start is None:
            raise ValueError(f"Contest needs an id and a start time: {data!r}")
        return cls(
            contest_id=str(contest_id),
            name=str(data.get("name", contest_id)),
            platform=parse_platform(data["platform"]),
            start_time=start,
            duration_minutes=int(data.get("durationMinutes", data.get("duration_minutes", 0)) or 0),
            url=str(data.get("url", "") or ""),
        )

    @classmethod
    def from_row(cls, row: dict) -> Contest:
        return cls(
            contest_id=row["contest_id"],
            name=row["name"],
            platform=parse_platform(row["platform"]),
            start_time=parse_timestamp(row["start_time"]),
            duration_minutes=row["duration_minutes"] or 0,
            url=row["url"] or "",
        )


def upsert_contests(db: Database, contests: Iterable[Contest]) -> int:
    """Insert or update contests by id. Returns how many were written."""
    count = 0
    for contest in contests:
        db.upsert_contest(
            contest.contest_id,
            contest.name,
            contest.platform.value,
            contest.url,
            iso_utc(contest.start_time),
            contest.duration_minutes,
        )
        count += 1
    return count


def load_contests_file(path: Path) -> list[Contest]:
    """Read a JSON list of contests. Invalid entries are logged and skipped."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("contests", [])
    contests = []
    for entry in raw:
        try:
            contests.append(Contest.from_dict(entry))
        except (KeyError, TypeError, ValueError, UnknownPlatform) as exc:
            logger.warning("Skipping contest entry: %s", exc)
    return contests


def get_contest(db: Database, contest_id: str) -> Contest:
    row = db.get_contest(contest_id)
    if row is None:
        raise ContestNotFound(f"Unknown contest: {contest_id}")
    return Contest.from_row(row)


def upcoming_contests(
    db: Database,
    platform: Platform | None = None,
    now: datetime | None = None,
    limit: int = 50,
) -> list[Contest]:
    """Contests that have not started yet, soonest first."""
    now = now or datetime.now(timezone.utc)
    rows = db.get_upcoming_contests(iso_utc(now), platform.value if platform else None, limit)
    return [Contest.from_row(row) for row in rows]


def month_contests(db: Database, year: int, month: int, platform: Platform | None = None) -> list[Contest]:
    """Contests starting within the given month (UTC)."""
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc) if month == 12 else datetime(
        year, month + 1, 1, tzinfo=timezone.utc
    )
    rows = db.get_contests_between(iso_utc(start), iso_utc(end), platform.value if platform else None)
    return [Contest.from_row(row) for row in rows]


def contests_calendar(contests: Iterable[Contest], year: int, month: int) -> dict[str, list[Contest]]:
    """Group contests by UTC start date, one key per day of the month."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be 1-12, got {month}")
    days_in_month = calendar.monthrange(year, month)[1]
    grouped: dict[str, list[Contest]] = {
        f"{year:04d}-{month:02d}-{day:02d}": [] for day in range(1, days_in_month + 1)
    }
    for contest in sorted(contests, key=lambda c: (c.start_time, c.contest_id)):
        key = contest.start_time.astimezone(timezone.utc).date().isoformat()
        if key in grouped:
            grouped[key].append(contest)
    return grouped
