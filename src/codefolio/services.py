"""Read/write operations shared by the CLI and the MCP server.

Each function takes an open Database plus Settings and returns a plain dict
ready for display or JSON.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from codefolio.adapters import (
    ExportSubmissionSource,
    PlatformAdapter,
    SubmissionSource,
    export_adapters,
    fetch_snapshots,
    stale_platforms,
)
from codefolio.challenge import DailyChallengeEngine
from codefolio.config import Settings
from codefolio.contests import (
    contests_calendar,
    load_contests_file,
    month_contests,
    upcoming_contests,
    upsert_contests,
)
from codefolio.contributions import build_calendar, calendar_window
from codefolio.db import Database
from codefolio.leaderboard import leaderboard_page, load_entries
from codefolio.platforms import Platform, normalize_links, parse_platform
from codefolio.reminders import Notifier, ReminderScheduler
from codefolio.score import calculate_score, score_inputs_from_snapshots

logger = logging.getLogger(__name__)


def _today(today: str | None) -> str:
    return today or date.today().isoformat()


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


# ── Platforms ────────────────────────────────────────────────────────────


def link_platforms(db: Database, user_id: str, links: object, username: str | None = None) -> dict:
    """Link handles to the user. Raises UnknownPlatform for unsupported keys."""
    normalized = normalize_links(links)
    db.ensure_user(user_id, username)
    for platform, handle in normalized.items():
        db.set_platform_link(user_id, platform, handle)
    return {"ok": True, "links": {p.value: h for p, h in db.get_platform_links(user_id).items()}}


def unlink_platform(db: Database, user_id: str, platform: str) -> dict:
    removed = db.remove_platform_link(user_id, parse_platform(platform))
    return {"ok": removed, "platform": platform}


def sync_user(
    db: Database,
    settings: Settings,
    user_id: str,
    adapters: Mapping[Platform, PlatformAdapter] | None = None,
    now: datetime | None = None,
) -> dict:
    """Fetch every linked platform and store the results.

    Failed platforms keep their previous snapshot.
    """
    now = _now(now)
    links = db.get_platform_links(user_id)
    if adapters is None:
        adapters = export_adapters(settings.export_dir)
    result = fetch_snapshots(
        links,
        adapters,
        max_workers=settings.fetch_workers,
        deadline_seconds=settings.fetch_deadline_seconds,
    )
    for snapshot in result.snapshots.values():
        db.save_snapshot(user_id, snapshot, now)
    for failure in result.failures:
        db.record_fetch_failure(user_id, parse_platform(failure.platform), failure.reason, now)
    logger.info("Synced %d of %d platforms for %s", len(result.snapshots), len(links), user_id)
    return {
        "ok": not result.failures,
        "synced": [p.value for p in Platform if p in result.snapshots],
        "failed": [{"platform": f.platform, "reason": f.reason} for f in result.failures],
    }


# ── Calendar, score, leaderboard ─────────────────────────────────────────


def calendar_report(
    db: Database,
    settings: Settings,
    user_id: str,
    today: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Contribution calendar over the trailing window, with staleness flags."""
    start, end = calendar_window(_today(today), settings.window_days)
    snapshots = db.get_snapshots(user_id)
    calendar = build_calendar(snapshots.values(), start, end, settings.level_thresholds)
    stale = stale_platforms(snapshots, _now(now), timedelta(hours=settings.stale_after_hours))
    report = calendar.to_dict()
    report["platformTotals"] = {p.value: n for p, n in calendar.platform_totals().items()}
    report["stale"] = bool(stale)
    report["stale_platforms"] = [p.value for p in stale]
    report["weeks"] = [
        [{**day.to_dict(), "placeholder": day.placeholder} for day in week]
        for week in calendar.weeks()
    ]
    return report


def score_report(db: Database, settings: Settings, user_id: str, today: str | None = None) -> dict:
    start, end = calendar_window(_today(today), settings.window_days)
    snapshots = db.get_snapshots(user_id)
    streak = build_calendar(snapshots.values(), start, end, settings.level_thresholds).stats.current_streak
    inputs = score_inputs_from_snapshots(snapshots.values(), streak)
    return {
        "score": calculate_score(inputs).to_dict(),
        "inputs": {
            "problemsSolved": inputs.problems_solved,
            "ratings": {p.value: r for p, r in inputs.ratings.items()},
            "contributions": inputs.contributions,
            "currentStreak": inputs.current_streak,
            "contestsParticipated": inputs.contests_participated,
        },
    }


def leaderboard_report(
    db: Database,
    settings: Settings,
    user_id: str | None,
    ranking_type: str = "codingScore",
    page: int = 1,
    limit: int = 100,
    today: str | None = None,
) -> dict:
    entries = load_entries(db, _today(today), settings.window_days, settings.level_thresholds)
    return leaderboard_page(entries, ranking_type, page, limit, user_id)


# ── Daily challenge ──────────────────────────────────────────────────────


def challenge_engine(
    db: Database, settings: Settings, submissions: SubmissionSource | None = None
) -> DailyChallengeEngine:
    return DailyChallengeEngine(
        db,
        submissions or ExportSubmissionSource(settings.export_dir),
        lookback_days=settings.challenge_lookback_days,
        difficulty_ceiling=settings.difficulty_ceiling,
    )


# ── Contests and reminders ───────────────────────────────────────────────


def import_contests(db: Database, path: Path) -> dict:
    contests = load_contests_file(path)
    return {"ok": True, "imported": upsert_contests(db, contests)}


def list_contests(
    db: Database, platform: str | None = None, now: datetime | None = None, limit: int = 50
) -> dict:
    chosen = parse_platform(platform) if platform else None
    contests = upcoming_contests(db, chosen, _now(now), limit)
    return {"contests": [c.to_dict() for c in contests]}


def contest_calendar_report(
    db: Database, year: int, month: int, platform: str | None = None
) -> dict:
    chosen = parse_platform(platform) if platform else None
    grouped = contests_calendar(month_contests(db, year, month, chosen), year, month)
    return {
        "year": year,
        "month": month,
        "days": {day: [c.to_dict() for c in contests] for day, contests in grouped.items()},
    }


def reminder_scheduler(db: Database, settings: Settings, notifier: Notifier) -> ReminderScheduler:
    return ReminderScheduler(db, notifier, offset_hours=settings.reminder_offset_hours)
