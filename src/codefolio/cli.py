"""CLI commands for codefolio."""

from __future__ import annotations

import argparse
import json
import logging
from datetime import date
from pathlib import Path

from rich.logging import RichHandler

from codefolio import services
from codefolio.config import Settings, load_config, load_settings, set_config_value
from codefolio.db import Database
from codefolio.display import (
    ConsoleNotifier,
    console,
    print_calendar,
    print_challenge,
    print_contest_calendar,
    print_contests,
    print_error,
    print_history,
    print_leaderboard,
    print_links,
    print_reminders,
    print_score,
    print_streak,
    print_sync_result,
    print_topics,
)
from codefolio.errors import CodefolioError
from codefolio.leaderboard import RankingType
from codefolio.platforms import Platform

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.WARNING) -> None:
    """Route log records through rich. Only the CLI configures handlers."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="codefolio",
        description="Track coding activity across judges and GitHub",
    )
    parser.add_argument("--user", "-u", default=None, help="User id (default from config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    link_p = subparsers.add_parser("link", help="Link platform handles")
    link_p.add_argument("pairs", nargs="*", metavar="PLATFORM=HANDLE")
    link_p.add_argument("--remove", metavar="PLATFORM", default=None, help="Unlink a platform")
    link_p.add_argument("--username", default=None, help="Display name on the leaderboard")

    subparsers.add_parser("sync", help="Fetch fresh stats for every linked platform")
    cal_p = subparsers.add_parser("calendar", help="Show the contribution heatmap")
    cal_p.add_argument("--json", action="store_true", help="Print raw JSON")
    subparsers.add_parser("score", help="Show the coding score breakdown")

    lb_p = subparsers.add_parser("leaderboard", help="Ranked leaderboard")
    lb_p.add_argument("--sort", choices=[r.value for r in RankingType], default=RankingType.CODING_SCORE.value)
    lb_p.add_argument("--page", type=int, default=1)
    lb_p.add_argument("--limit", type=int, default=100)

    ch_p = subparsers.add_parser("challenge", help="Daily challenge")
    ch_sub = ch_p.add_subparsers(dest="challenge_command")
    ch_sub.add_parser("today", help="Show (or assign) today's challenge")
    ch_sub.add_parser("complete", help="Verify and complete today's challenge")
    ch_sub.add_parser("skip", help="Skip today's challenge for a new one")
    ch_sub.add_parser("topics", help="Progress per topic")
    hist_p = ch_sub.add_parser("history", help="Recent challenges")
    hist_p.add_argument("--limit", type=int, default=30)
    ch_sub.add_parser("streak", help="Challenge streak details")

    ct_p = subparsers.add_parser("contests", help="Contest listings")
    ct_sub = ct_p.add_subparsers(dest="contests_command")
    ct_list = ct_sub.add_parser("list", help="Upcoming contests")
    ct_list.add_argument("--platform", choices=[p.value for p in Platform], default=None)
    ct_list.add_argument("--limit", type=int, default=50)
    ct_cal = ct_sub.add_parser("calendar", help="Contests of one month")
    today = date.today()
    ct_cal.add_argument("--year", type=int, default=today.year)
    ct_cal.add_argument("--month", type=int, choices=range(1, 13), default=today.month)
    ct_cal.add_argument("--platform", choices=[p.value for p in Platform], default=None)
    ct_import = ct_sub.add_parser("import", help="Load contests from a JSON file")
    ct_import.add_argument("path", type=Path)

    rm_p = subparsers.add_parser("remind", help="Contest reminders")
    rm_sub = rm_p.add_subparsers(dest="remind_command")
    rm_set = rm_sub.add_parser("set", help="Remind me before a contest")
    rm_set.add_argument("contest_id")
    rm_remove = rm_sub.add_parser("remove", help="Cancel a pending reminder")
    rm_remove.add_argument("contest_id")
    rm_list = rm_sub.add_parser("list", help="List my reminders")
    rm_list.add_argument("--all", action="store_true", help="Include fired reminders")
    rm_sub.add_parser("tick", help="Send every reminder that is due")

    cfg_p = subparsers.add_parser("config", help="Show or change settings")
    cfg_sub = cfg_p.add_subparsers(dest="config_command")
    cfg_sub.add_parser("show", help="Print effective settings")
    cfg_set = cfg_sub.add_parser("set", help="Persist one setting")
    cfg_set.add_argument("key")
    cfg_set.add_argument("value")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)
    command = args.command or "calendar"

    if command == "config":
        try:
            if args.config_command == "set":
                do_config_set(args.key, args.value)
            else:
                do_config_show()
        except ValueError as exc:
            print_error(str(exc))
            raise SystemExit(1) from None
        return

    try:
        settings = load_settings()
    except ValueError as exc:
        print_error(f"Invalid config: {exc}")
        raise SystemExit(1) from None
    user_id = args.user or settings.user_id

    db = Database()
    try:
        if command == "link":
            do_link(db, user_id, args.pairs, remove=args.remove, username=args.username)
        elif command == "sync":
            do_sync(db, settings, user_id)
        elif command == "calendar":
            do_calendar(db, settings, user_id, as_json=getattr(args, "json", False))
        elif command == "score":
            do_score(db, settings, user_id)
        elif command == "leaderboard":
            do_leaderboard(db, settings, user_id, ranking_type=args.sort, page=args.page, limit=args.limit)
        elif command == "challenge":
            sub = args.challenge_command or "today"
            if sub == "history":
                do_challenge_history(db, settings, user_id, limit=args.limit)
            else:
                CHALLENGE_COMMANDS[sub](db, settings, user_id)
        elif command == "contests":
            sub = args.contests_command or "list"
            if sub == "import":
                do_contests_import(db, args.path)
            elif sub == "calendar":
                do_contests_calendar(db, args.year, args.month, platform=args.platform)
            else:
                do_contests_list(db, platform=getattr(args, "platform", None), limit=getattr(args, "limit", 50))
        elif command == "remind":
            sub = args.remind_command or "list"
            if sub == "set":
                do_remind_set(db, settings, user_id, args.contest_id)
            elif sub == "remove":
                do_remind_remove(db, settings, user_id, args.contest_id)
            elif sub == "tick":
                do_remind_tick(db, settings)
            else:
                do_remind_list(db, settings, user_id, include_fired=getattr(args, "all", False))
    except CodefolioError as exc:
        logger.debug("Command %s failed", command, exc_info=True)
        print_error(str(exc))
        raise SystemExit(1) from None
    finally:
        db.close()


# ── Platforms ────────────────────────────────────────────────────────────


def _parse_pairs(pairs: list[str]) -> list[tuple[str, str] | str]:
    return [tuple(p.split("=", 1)) if "=" in p else p for p in pairs]


def do_link(
    db: Database,
    user_id: str,
    pairs: list[str],
    remove: str | None = None,
    username: str | None = None,
) -> dict:
    """Link handles given as PLATFORM=HANDLE, or unlink one platform."""
    if remove:
        services.unlink_platform(db, user_id, remove)
    result = services.link_platforms(db, user_id, _parse_pairs(pairs), username=username)
    print_links(result)
    return result


def do_sync(db: Database, settings: Settings, user_id: str) -> dict:
    if not db.get_platform_links(user_id):
        console.print("[grey50]No platforms linked. Run: codefolio link leetcode=<handle>[/]")
        return {"ok": False, "reason": "no_links"}
    result = services.sync_user(db, settings, user_id)
    print_sync_result(result)
    return result


# ── Calendar, score, leaderboard ─────────────────────────────────────────


def do_calendar(db: Database, settings: Settings, user_id: str, as_json: bool = False) -> dict:
    report = services.calendar_report(db, settings, user_id)
    if as_json:
        console.print_json(json.dumps({k: v for k, v in report.items() if k != "weeks"}))
    else:
        print_calendar(report)
    return report


def do_score(db: Database, settings: Settings, user_id: str) -> dict:
    report = services.score_report(db, settings, user_id)
    print_score(report)
    return report


def do_leaderboard(
    db: Database,
    settings: Settings,
    user_id: str,
    ranking_type: str = RankingType.CODING_SCORE.value,
    page: int = 1,
    limit: int = 100,
) -> dict:
    result = services.leaderboard_report(db, settings, user_id, ranking_type, page, limit)
    print_leaderboard(result)
    return result


# ── Daily challenge ──────────────────────────────────────────────────────


def do_challenge_today(db: Database, settings: Settings, user_id: str) -> dict:
    db.ensure_user(user_id)
    result = services.challenge_engine(db, settings).get_today(user_id, date.today().isoformat())
    print_challenge(result)
    return result


def do_challenge_complete(db: Database, settings: Settings, user_id: str) -> dict:
    result = services.challenge_engine(db, settings).complete(user_id, date.today().isoformat())
    console.print("[green]Challenge completed![/]")
    print_streak(result["streak"])
    return result


def do_challenge_skip(db: Database, settings: Settings, user_id: str) -> dict:
    today = date.today().isoformat()
    engine = services.challenge_engine(db, settings)
    result = engine.skip(user_id, today)
    print_challenge({"challenge": result["challenge"], "streak": engine.streak(user_id, today).to_dict()})
    return result


def do_challenge_topics(db: Database, settings: Settings, user_id: str) -> dict:
    topics = services.challenge_engine(db, settings).topics(user_id)
    print_topics(topics)
    return topics


def do_challenge_history(db: Database, settings: Settings, user_id: str, limit: int = 30) -> list[dict]:
    history = services.challenge_engine(db, settings).history(user_id, limit)
    print_history(history)
    return history


def do_challenge_streak(db: Database, settings: Settings, user_id: str) -> dict:
    streak = services.challenge_engine(db, settings).streak(user_id, date.today().isoformat()).to_dict()
    print_streak(streak)
    return streak


CHALLENGE_COMMANDS = {
    "today": do_challenge_today,
    "complete": do_challenge_complete,
    "skip": do_challenge_skip,
    "topics": do_challenge_topics,
    "streak": do_challenge_streak,
}


# ── Contests and reminders ───────────────────────────────────────────────


def do_contests_list(db: Database, platform: str | None = None, limit: int = 50) -> dict:
    result = services.list_contests(db, platform, limit=limit)
    print_contests(result)
    return result


def do_contests_calendar(db: Database, year: int, month: int, platform: str | None = None) -> dict:
    result = services.contest_calendar_report(db, year, month, platform)
    print_contest_calendar(result)
    return result


def do_contests_import(db: Database, path: Path) -> dict:
    try:
        result = services.import_contests(db, path)
    except (OSError, json.JSONDecodeError) as exc:
        print_error(f"Cannot read {path}: {exc}")
        return {"ok": False, "reason": str(exc)}
    console.print(f"[green]Imported {result['imported']} contests.[/]")
    return result


def do_remind_set(db: Database, settings: Settings, user_id: str, contest_id: str) -> dict:
    db.ensure_user(user_id)
    scheduler = services.reminder_scheduler(db, settings, ConsoleNotifier())
    reminder = scheduler.set_reminder(user_id, contest_id).to_dict()
    console.print(f"[green]Reminder set for {reminder['reminderTime'].replace('T', ' ')[:16]} UTC[/]")
    return reminder


def do_remind_remove(db: Database, settings: Settings, user_id: str, contest_id: str) -> dict:
    scheduler = services.reminder_scheduler(db, settings, ConsoleNotifier())
    removed = scheduler.remove_reminder(user_id, contest_id)
    if removed:
        console.print("[green]Reminder removed.[/]")
    else:
        console.print("[grey50]No pending reminder for that contest.[/]")
    return {"ok": removed}


def do_remind_list(db: Database, settings: Settings, user_id: str, include_fired: bool = False) -> list[dict]:
    scheduler = services.reminder_scheduler(db, settings, ConsoleNotifier())
    reminders = [r.to_dict() for r in scheduler.reminders_for(user_id, include_fired)]
    print_reminders(reminders)
    return reminders


def do_remind_tick(db: Database, settings: Settings) -> dict:
    fired = services.reminder_scheduler(db, settings, ConsoleNotifier()).tick()
    return {"fired": [r.to_dict() for r in fired]}


# ── Config ───────────────────────────────────────────────────────────────


def do_config_show(config_path: Path | None = None) -> dict:
    settings = load_settings(config_path)
    data = {k: (str(v) if isinstance(v, Path) else v) for k, v in vars(settings).items()}
    console.print_json(json.dumps(data))
    return {"settings": data, "file": load_config(config_path)}


def do_config_set(key: str, raw_value: str, config_path: Path | None = None) -> dict:
    """Persist one setting. Values are parsed as JSON when possible."""
    try:
        value = json.loads(raw_value)
    except json.JSONDecodeError:
        value = raw_value
    set_config_value(key, value, config_path)
    console.print(f"[green]{key} = {value!r}[/]")
    return {"ok": True, "key": key, "value": value}
