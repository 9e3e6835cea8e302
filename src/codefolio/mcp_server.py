"""MCP server for codefolio.

Exposes calendar, score, leaderboard, daily challenge and contest operations
as MCP tools. Run via: python3 -m codefolio.mcp_server
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

from mcp.server.fastmcp import FastMCP

from codefolio import services
from codefolio.errors import CodefolioError

logger = logging.getLogger(__name__)

mcp = FastMCP(name="codefolio")


def _get_db():
    from codefolio.db import Database
    return Database()


def _get_settings():
    from codefolio.config import load_settings
    return load_settings()


def _user(settings, user_id: str) -> str:
    return user_id or settings.user_id


class _LogNotifier:
    """Reminders fired from MCP have no terminal; they go to the log."""

    def notify(self, user_id: str, contest) -> None:
        logger.info("Reminder for %s: %s starts %s", user_id, contest.name, contest.start_time.isoformat())


def _run(operation) -> dict[str, Any]:
    """Open db and settings, run operation(db, settings), map domain errors to {'error': ...}."""
    try:
        settings = _get_settings()
    except ValueError as exc:
        return {"error": f"Invalid config: {exc}"}
    db = _get_db()
    try:
        return operation(db, settings)
    except CodefolioError as exc:
        return {"error": str(exc), "type": type(exc).__name__}
    finally:
        db.close()


@mcp.tool()
def link_platforms(links: dict[str, str], user_id: str = "") -> dict[str, Any]:
    """Link platform handles, e.g. {"leetcode": "alice", "github": "alice"}."""
    return _run(lambda db, s: services.link_platforms(db, _user(s, user_id), links))


@mcp.tool()
def sync(user_id: str = "") -> dict[str, Any]:
    """Fetch fresh stats for every linked platform."""
    return _run(lambda db, s: services.sync_user(db, s, _user(s, user_id)))


@mcp.tool()
def get_calendar(user_id: str = "") -> dict[str, Any]:
    """Get the contribution calendar, streak stats and staleness flags."""
    def op(db, s):
        report = services.calendar_report(db, s, _user(s, user_id))
        report.pop("weeks", None)
        return report
    return _run(op)


@mcp.tool()
def get_score(user_id: str = "") -> dict[str, Any]:
    """Get the coding score (0-1000) and its four components."""
    return _run(lambda db, s: services.score_report(db, s, _user(s, user_id)))


@mcp.tool()
def get_leaderboard(
    ranking_type: str = "codingScore", page: int = 1, limit: int = 100, user_id: str = ""
) -> dict[str, Any]:
    """Ranked leaderboard page.

    ranking_type: codingScore, problems, leetcode, codeforces, codechef or github.
    """
    def op(db, s):
        try:
            return services.leaderboard_report(db, s, _user(s, user_id), ranking_type, page, limit)
        except ValueError as exc:
            return {"error": str(exc)}
    return _run(op)


@mcp.tool()
def get_daily_challenge(user_id: str = "") -> dict[str, Any]:
    """Get today's challenge (assigning one if needed) and the challenge streak."""
    today = date.today().isoformat()
    return _run(lambda db, s: services.challenge_engine(db, s).get_today(_user(s, user_id), today))


@mcp.tool()
def complete_daily_challenge(user_id: str = "") -> dict[str, Any]:
    """Verify today's challenge against submissions and mark it completed."""
    today = date.today().isoformat()
    return _run(lambda db, s: services.challenge_engine(db, s).complete(_user(s, user_id), today))


@mcp.tool()
def skip_daily_challenge(user_id: str = "") -> dict[str, Any]:
    """Skip today's challenge and get a different one."""
    today = date.today().isoformat()
    return _run(lambda db, s: services.challenge_engine(db, s).skip(_user(s, user_id), today))


@mcp.tool()
def get_challenge_topics(user_id: str = "") -> dict[str, Any]:
    """Completed vs available problems per topic."""
    return _run(lambda db, s: {"topics": services.challenge_engine(db, s).topics(_user(s, user_id))})


@mcp.tool()
def get_challenge_history(limit: int = 30, user_id: str = "") -> dict[str, Any]:
    """Most recent challenges, newest first."""
    return _run(
        lambda db, s: {"history": services.challenge_engine(db, s).history(_user(s, user_id), limit)}
    )


@mcp.tool()
def get_challenge_streak(user_id: str = "") -> dict[str, Any]:
    """Challenge streak details."""
    today = date.today().isoformat()
    return _run(lambda db, s: services.challenge_engine(db, s).streak(_user(s, user_id), today).to_dict())


@mcp.tool()
def list_contests(platform: str = "", limit: int = 50) -> dict[str, Any]:
    """Upcoming contests, optionally for one platform."""
    return _run(lambda db, s: services.list_contests(db, platform or None, limit=limit))


@mcp.tool()
def get_contest_calendar(year: int, month: int, platform: str = "") -> dict[str, Any]:
    """Contests of one month grouped by day."""
    def op(db, s):
        try:
            return services.contest_calendar_report(db, year, month, platform or None)
        except ValueError as exc:
            return {"error": str(exc)}
    return _run(op)


@mcp.tool()
def set_contest_reminder(contest_id: str, user_id: str = "") -> dict[str, Any]:
    """Get reminded ahead of a contest start."""
    def op(db, s):
        scheduler = services.reminder_scheduler(db, s, _LogNotifier())
        return scheduler.set_reminder(_user(s, user_id), contest_id).to_dict()
    return _run(op)


@mcp.tool()
def remove_contest_reminder(contest_id: str, user_id: str = "") -> dict[str, Any]:
    """Cancel a reminder that has not fired yet."""
    def op(db, s):
        scheduler = services.reminder_scheduler(db, s, _LogNotifier())
        return {"removed": scheduler.remove_reminder(_user(s, user_id), contest_id)}
    return _run(op)


@mcp.tool()
def list_contest_reminders(include_fired: bool = False, user_id: str = "") -> dict[str, Any]:
    """Reminders the user has set."""
    def op(db, s):
        scheduler = services.reminder_scheduler(db, s, _LogNotifier())
        return {"reminders": [r.to_dict() for r in scheduler.reminders_for(_user(s, user_id), include_fired)]}
    return _run(op)


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
