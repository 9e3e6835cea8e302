"""Platform adapter contract and the parallel snapshot fetcher.

Each adapter turns one platform's raw stats into a PlatformSnapshot. Scraping
itself lives outside this package; the only concrete adapter here reads
per-platform export files from disk:

    <export_dir>/<platform>/<handle>.json
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

from codefolio.errors import UpstreamUnavailable
from codefolio.platforms import Platform, parse_platform

logger = logging.getLogger(__name__)


@dataclass
class PlatformSnapshot:
    """Normalized stats for one platform account at fetch time."""

    platform: Platform
    handle: str
    daily_counts: dict[str, int] = field(default_factory=dict)  # YYYY-MM-DD -> units
    problems_solved: int = 0
    rating: float = 0.0
    contests_participated: int = 0
    contributions: int = 0
    fetched_at: datetime | None = None

    def is_stale(self, now: datetime, max_age: timedelta) -> bool:
        """True if the snapshot is older than max_age (or has no timestamp)."""
        if self.fetched_at is None:
            return True
        return now - self.fetched_at > max_age

    def to_dict(self) -> dict:
        return {
            "platform": self.platform.value,
            "handle": self.handle,
            "dailyCounts": dict(self.daily_counts),
            "problemsSolved": self.problems_solved,
            "rating": self.rating,
            "contestsParticipated": self.contests_participated,
            "contributions": self.contributions,
            "fetchedAt": self.fetched_at.isoformat() if self.fetched_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> PlatformSnapshot:
        return cls(
            platform=parse_platform(data["platform"]),
            handle=data.get("handle", ""),
            daily_counts=_parse_daily_counts(data.get("dailyCounts", {})),
            problems_solved=int(data.get("problemsSolved", 0) or 0),
            rating=float(data.get("rating", 0) or 0),
            contests_participated=int(data.get("contestsParticipated", 0) or 0),
            contributions=int(data.get("contributions", 0) or 0),
            fetched_at=parse_timestamp(data.get("fetchedAt")),
        )


class PlatformAdapter(Protocol):
    platform: Platform

    def fetch(self, handle: str) -> PlatformSnapshot: ...


class SubmissionSource(Protocol):
    def has_accepted_submission(
        self, platform: Platform, handle: str, problem_id: str, since: datetime
    ) -> bool: ...

    def solved_problems(self, platform: Platform, handle: str) -> set[str]: ...


@dataclass
class FetchResult:
    snapshots: dict[Platform, PlatformSnapshot]
    failures: list[UpstreamUnavailable]


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string or epoch seconds into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _normalize_day(key: object) -> str | None:
    """Map a calendar key to YYYY-MM-DD, or None when it is not a date.

    Accepts ISO dates (with or without a time part), unpadded Y-M-D, and
    epoch seconds or milliseconds as used by some platform calendars.
    """
    if isinstance(key, bool):
        return None
    if isinstance(key, (int, float)):
        text = str(int(key))
    else:
        text = str(key).strip()
    if text.isdigit() and len(text) > 8:
        seconds = int(text)
        if seconds > 10**11:
            seconds //= 1000
        return datetime.fromtimestamp(seconds, tz=timezone.utc).date().isoformat()
    text = text.split("T")[0]
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%Y-%m-%d").date().isoformat()
    except ValueError:
        return None


def _parse_daily_counts(raw: object) -> dict[str, int]:
    """Accept either [{"date": ..., "count": ...}] or {"YYYY-MM-DD": count}."""
    counts: dict[str, int] = {}
    if isinstance(raw, dict):
        items = raw.items()
    elif isinstance(raw, list):
        items = [
            (entry.get("date", ""), entry.get("count", 0))
            for entry in raw
            if isinstance(entry, dict)
        ]
    else:
        return counts
    for day, count in items:
        if day in ("", None):
            continue
        normalized = _normalize_day(day)
        if normalized is None:
            logger.warning("Skipping calendar entry with unreadable date %r", day)
            continue
        day = normalized
        try:
            value = int(count)
        except (TypeError, ValueError):
            continue
        counts[day] = counts.get(day, 0) + value
    return counts


class ExportFileAdapter:
    """Adapter backed by a JSON export file for one platform."""

    def __init__(self, platform: Platform, export_dir: Path) -> None:
        self.platform = platform
        self.export_dir = export_dir

    def _path(self, handle: str) -> Path:
        return self.export_dir / self.platform.value / f"{handle}.json"

    def _load(self, handle: str) -> dict:
        path = self._path(handle)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise UpstreamUnavailable(self.platform.value, f"no export at {path}") from None
        except (json.JSONDecodeError, OSError) as exc:
            raise UpstreamUnavailable(self.platform.value, f"unreadable export: {exc}") from exc
        if not isinstance(raw, dict):
            raise UpstreamUnavailable(self.platform.value, "export is not a JSON object")
        return raw

    def fetch(self, handle: str) -> PlatformSnapshot:
        """Parse the export file into a snapshot.

        fetchedAt falls back to the file's modification time.
        """
        raw = self._load(handle)
        fetched_at = parse_timestamp(raw.get("fetchedAt"))
        if fetched_at is None:
            mtime = self._path(handle).stat().st_mtime
            fetched_at = datetime.fromtimestamp(mtime, tz=timezone.utc)
        return PlatformSnapshot(
            platform=self.platform,
            handle=handle,
            daily_counts=_parse_daily_counts(raw.get("calendar", [])),
            problems_solved=int(raw.get("problemsSolved", 0) or 0),
            rating=float(raw.get("rating", 0) or 0),
            contests_participated=int(raw.get("contestsParticipated", 0) or 0),
            contributions=int(raw.get("contributions", 0) or 0),
            fetched_at=fetched_at,
        )

    def _accepted(self, handle: str) -> list[dict]:
        raw = self._load(handle)
        return [
            entry
            for entry in raw.get("submissions", [])
            if isinstance(entry, dict)
            and str(entry.get("status", "")).lower() in {"accepted", "ac", "ok"}
        ]

    def accepted_since(self, handle: str, problem_id: str, since: datetime) -> bool:
        """True if the export lists an accepted submission for problem_id at or after since."""
        wanted = problem_id.strip().lower()
        for entry in self._accepted(handle):
            if str(entry.get("problemId", "")).strip().lower() != wanted:
                continue
            submitted = parse_timestamp(entry.get("timestamp"))
            if submitted is not None and submitted >= since:
                return True
        return False

    def solved_problem_ids(self, handle: str) -> set[str]:
        """Lowercased ids of every problem with an accepted submission, at any time."""
        ids = {str(entry.get("problemId", "")).strip().lower() for entry in self._accepted(handle)}
        ids.discard("")
        return ids


class ExportSubmissionSource:
    """SubmissionSource reading the same export files as ExportFileAdapter."""

    def __init__(self, export_dir: Path) -> None:
        self.export_dir = export_dir

    def has_accepted_submission(
        self, platform: Platform, handle: str, problem_id: str, since: datetime
    ) -> bool:
        return ExportFileAdapter(platform, self.export_dir).accepted_since(handle, problem_id, since)

    def solved_problems(self, platform: Platform, handle: str) -> set[str]:
        return ExportFileAdapter(platform, self.export_dir).solved_problem_ids(handle)


def export_adapters(export_dir: Path) -> dict[Platform, PlatformAdapter]:
    """One ExportFileAdapter per supported platform."""
    return {platform: ExportFileAdapter(platform, export_dir) for platform in Platform}


def fetch_snapshots(
    links: Mapping[Platform, str],
    adapters: Mapping[Platform, PlatformAdapter],
    max_workers: int = 4,
    deadline_seconds: float | None = None,
) -> FetchResult:
    """Fetch every linked platform in parallel.

    A failing adapter only costs its own platform: the error is logged and
    collected as UpstreamUnavailable, the other snapshots are returned. With
    deadline_seconds set, fetches still running at the deadline count as
    failures.
    """
    snapshots: dict[Platform, PlatformSnapshot] = {}
    failures: list[UpstreamUnavailable] = []

    jobs: dict[Platform, str] = {}
    for platform, handle in links.items():
        if platform not in adapters:
            failures.append(UpstreamUnavailable(platform.value, "no adapter configured"))
            continue
        jobs[platform] = handle
    if not jobs:
        return FetchResult(snapshots=snapshots, failures=failures)

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(jobs))))
    try:
        futures = {
            executor.submit(adapters[platform].fetch, handle): platform
            for platform, handle in jobs.items()
        }
        done, pending = wait(futures, timeout=deadline_seconds)
        for future in pending:
            platform = futures[future]
            future.cancel()
            failures.append(UpstreamUnavailable(platform.value, "timed out"))
        for future in done:
            platform = futures[future]
            try:
                snapshot = future.result()
            except UpstreamUnavailable as exc:
                failures.append(exc)
            except Exception as exc:
                failures.append(UpstreamUnavailable(platform.value, str(exc) or type(exc).__name__))
            else:
                snapshots[platform] = snapshot
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    for failure in failures:
        logger.warning("Platform fetch failed for %s: %s", failure.platform, failure.reason)
    return FetchResult(snapshots=snapshots, failures=failures)


def stale_platforms(
    snapshots: Mapping[Platform, PlatformSnapshot], now: datetime, max_age: timedelta
) -> list[Platform]:
    """Platforms whose snapshot is older than max_age, in enum order."""
    return [p for p in Platform if p in snapshots and snapshots[p].is_stale(now, max_age)]
