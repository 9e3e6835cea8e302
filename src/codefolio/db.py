"""SQLite database layer for codefolio."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from codefolio.adapters import PlatformSnapshot
from codefolio.platforms import Platform, parse_platform

DEFAULT_DB_PATH = Path.home() / ".codefolio" / "data.db"


def iso_utc(moment: datetime) -> str:
    """Canonical stored form of a timestamp: UTC, second precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="seconds")


class Database:
    """SQLite database manager with WAL mode."""

    def __init__(self, db_path: Path | None = None, timeout: float = 10.0) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), timeout=timeout)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._in_transaction = False
        self.init_db()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                username TEXT NOT NULL,
                active BOOLEAN DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS platform_links (
                user_id TEXT NOT NULL,
                platform TEXT NOT NULL,
                handle TEXT NOT NULL,
                PRIMARY KEY (user_id, platform)
            );

            CREATE TABLE IF NOT EXISTS platform_snapshots (
                user_id TEXT NOT NULL,
                platform TEXT NOT NULL,
                payload TEXT,
                fetched_at TEXT,
                fetch_status TEXT DEFAULT 'pending',
                error_message TEXT,
                last_attempt_at TEXT,
                PRIMARY KEY (user_id, platform)
            );

            CREATE TABLE IF NOT EXISTS daily_challenges (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                platform TEXT NOT NULL,
                problem_id TEXT NOT NULL,
                title TEXT NOT NULL,
                url TEXT,
                difficulty TEXT NOT NULL,
                topic TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'assigned',
                auto_completed BOOLEAN DEFAULT 0,
                assigned_at TEXT NOT NULL,
                completed_at TEXT
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_daily_challenges_live
                ON daily_challenges (user_id, date) WHERE status != 'skipped';

            CREATE TABLE IF NOT EXISTS challenge_streaks (
                user_id TEXT PRIMARY KEY,
                current_streak INTEGER DEFAULT 0,
                longest_streak INTEGER DEFAULT 0,
                total_completed INTEGER DEFAULT 0,
                last_completed_date TEXT
            );

            CREATE TABLE IF NOT EXISTS challenge_completions (
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                problem_id TEXT NOT NULL,
                topic TEXT NOT NULL,
                PRIMARY KEY (user_id, date)
            );

            CREATE TABLE IF NOT EXISTS contests (
                contest_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                platform TEXT NOT NULL,
                url TEXT,
                start_time TEXT NOT NULL,
                duration_minutes INTEGER DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS contest_reminders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                contest_id TEXT NOT NULL,
                reminder_time TEXT NOT NULL,
                fired BOOLEAN DEFAULT 0,
                fired_at TEXT,
                created_at TEXT NOT NULL,
                UNIQUE (user_id, contest_id)
            );

            CREATE INDEX IF NOT EXISTS idx_contest_reminders_due
                ON contest_reminders (fired, reminder_time);
        """)
        self.conn.commit()

    def _commit(self) -> None:
        """Commit unless an explicit transaction() is open."""
        if not self._in_transaction:
            self.conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block under BEGIN IMMEDIATE; commit on success, roll back on error.

        IMMEDIATE takes the database write lock up front, so concurrent
        transactions on other connections serialize instead of interleaving.
        """
        if self._in_transaction:
            raise RuntimeError("Nested transactions are not supported")
        if self.conn.in_transaction:
            self.conn.commit()
        self.conn.execute("BEGIN IMMEDIATE")
        self._in_transaction = True
        try:
            yield self.conn
        except BaseException:
            self.conn.rollback()
            raise
        else:
            self.conn.commit()
        finally:
            self._in_transaction = False

    # ── Users and platform links ──────────────────────────────────────────

    def ensure_user(self, user_id: str, username: str | None = None) -> None:
        """Insert the user if missing; update the username if one is given."""
        self.conn.execute(
            "INSERT INTO users (user_id, username) VALUES (?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET username = COALESCE(?, users.username)",
            (user_id, username or user_id, username),
        )
        self._commit()

    def get_user(self, user_id: str) -> dict | None:
        row = self.conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    def get_all_users(self) -> list[dict]:
        """Return all active users."""
        rows = self.conn.execute(
            "SELECT * FROM users WHERE active = 1 ORDER BY user_id"
        ).fetchall()
        return [dict(row) for row in rows]

    def set_platform_link(self, user_id: str, platform: Platform, handle: str) -> None:
        self.conn.execute(
            "INSERT INTO platform_links (user_id, platform, handle) VALUES (?, ?, ?) "
            "ON CONFLICT(user_id, platform) DO UPDATE SET handle = excluded.handle",
            (user_id, platform.value, handle),
        )
        self._commit()

    def remove_platform_link(self, user_id: str, platform: Platform) -> bool:
        """Unlink a platform and forget its snapshot. Returns False if it was not linked."""
        cur = self.conn.execute(
            "DELETE FROM platform_links WHERE user_id = ? AND platform = ?",
            (user_id, platform.value),
        )
        self.conn.execute(
            "DELETE FROM platform_snapshots WHERE user_id = ? AND platform = ?",
            (user_id, platform.value),
        )
        self._commit()
        return cur.rowcount > 0

    def get_platform_links(self, user_id: str) -> dict[Platform, str]:
        rows = self.conn.execute(
            "SELECT platform, handle FROM platform_links WHERE user_id = ?", (user_id,)
        ).fetchall()
        return {parse_platform(row["platform"]): row["handle"] for row in rows}

    # ── Platform snapshots ────────────────────────────────────────────────

    def save_snapshot(self, user_id: str, snapshot: PlatformSnapshot, attempted_at: datetime) -> None:
        """Store a successful fetch, replacing the previous snapshot."""
        self.conn.execute(
            "INSERT INTO platform_snapshots "
            "(user_id, platform, payload, fetched_at, fetch_status, error_message, last_attempt_at) "
            "VALUES (?, ?, ?, ?, 'success', NULL, ?) "
            "ON CONFLICT(user_id, platform) DO UPDATE SET payload = excluded.payload, "
            "fetched_at = excluded.fetched_at, fetch_status = 'success', error_message = NULL, "
            "last_attempt_at = excluded.last_attempt_at",
            (
                user_id,
                snapshot.platform.value,
                json.dumps(snapshot.to_dict()),
                iso_utc(snapshot.fetched_at or attempted_at),
                iso_utc(attempted_at),
            ),
        )
        self._commit()

    def record_fetch_failure(
        self, user_id: str, platform: Platform, error: str, attempted_at: datetime
    ) -> None:
        """Mark the latest fetch as failed. The last good payload is kept."""
        self.conn.execute(
            "INSERT INTO platform_snapshots "
            "(user_id, platform, fetch_status, error_message, last_attempt_at) "
            "VALUES (?, ?, 'failed', ?, ?) "
            "ON CONFLICT(user_id, platform) DO UPDATE SET fetch_status = 'failed', "
            "error_message = excluded.error_message, last_attempt_at = excluded.last_attempt_at",
            (user_id, platform.value, error, iso_utc(attempted_at)),
        )
        self._commit()

    def get_snapshots(self, user_id: str) -> dict[Platform, PlatformSnapshot]:
        """Latest stored snapshot per linked platform (platforms never fetched are absent)."""
        rows = self.conn.execute(
            "SELECT s.payload FROM platform_snapshots s "
            "JOIN platform_links l ON l.user_id = s.user_id AND l.platform = s.platform "
            "WHERE s.user_id = ? AND s.payload IS NOT NULL",
            (user_id,),
        ).fetchall()
        snapshots = [PlatformSnapshot.from_dict(json.loads(row["payload"])) for row in rows]
        return {s.platform: s for s in snapshots}

    def get_fetch_status(self, user_id: str) -> list[dict]:
        rows = self.conn.execute(
            "SELECT platform, fetched_at, fetch_status, error_message, last_attempt_at "
            "FROM platform_snapshots WHERE user_id = ? ORDER BY platform",
            (user_id,),
        ).fetchall()
        return [dict(row) for row in rows]

    # ── Daily challenges ──────────────────────────────────────────────────

    def get_live_challenge(self, user_id: str, date: str) -> dict | None:
        """The non-skipped challenge for (user, date), if any."""
        row = self.conn.execute(
            "SELECT * FROM daily_challenges WHERE user_id = ? AND date = ? AND status != 'skipped'",
            (user_id, date),
        ).fetchone()
        return dict(row) if row else None

    def get_challenge(self, challenge_id: int) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM daily_challenges WHERE id = ?", (challenge_id,)
        ).fetchone()
        return dict(row) if row else None

    def insert_challenge(
        self,
        user_id: str,
        date: str,
        platform: str,
        problem_id: str,
        title: str,
        url: str,
        difficulty: str,
        topic: str,
        assigned_at: str,
    ) -> int:
        """Insert an assigned challenge.

        Raises sqlite3.IntegrityError when the user already has a live
        challenge for date; the failed implicit transaction is rolled back so
        the write lock is released.
        """
        try:
            cur = self.conn.execute(
                "INSERT INTO daily_challenges "
                "(user_id, date, platform, problem_id, title, url, difficulty, topic, status, assigned_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'assigned', ?)",
                (user_id, date, platform, problem_id, title, url, difficulty, topic, assigned_at),
            )
        except sqlite3.IntegrityError:
            if not self._in_transaction:
                self.conn.rollback()
            raise
        self._commit()
        return int(cur.lastrowid)

    def transition_challenge(
        self,
        challenge_id: int,
        from_status: str,
        to_status: str,
        completed_at: str | None = None,
        auto_completed: bool = False,
    ) -> bool:
        """Compare-and-set the challenge status. Returns False if it was not from_status."""
        cur = self.conn.execute(
            "UPDATE daily_challenges SET status = ?, completed_at = ?, auto_completed = ? "
            "WHERE id = ? AND status = ?",
            (to_status, completed_at, auto_completed, challenge_id, from_status),
        )
        self._commit()
        return cur.rowcount == 1

    def get_challenges_for_date(self, user_id: str, date: str) -> list[dict]:
        rows = self.conn.execute(
            "SELECT * FROM daily_challenges WHERE user_id = ? AND date = ? ORDER BY id",
            (user_id, date),
        ).fetchall()
        return [dict(row) for row in rows]

    def get_challenge_history(self, user_id: str, limit: int = 30) -> list[dict]:
        """Most recent challenge records first, skipped ones included."""
        rows = self.conn.execute(
            "SELECT * FROM daily_challenges WHERE user_id = ? ORDER BY date DESC, id DESC LIMIT ?",
            (user_id, limit),
        ).fetchall()
        return [dict(row) for row in rows]

    def get_recent_problem_keys(self, user_id: str, since_date: str) -> set[tuple[str, str]]:
        """(platform, problem_id) of non-skipped challenges dated since_date or later."""
        rows = self.conn.execute(
            "SELECT platform, problem_id FROM daily_challenges "
            "WHERE user_id = ? AND date >= ? AND status != 'skipped'",
            (user_id, since_date),
        ).fetchall()
        return {(row["platform"], row["problem_id"]) for row in rows}

    def get_last_assignment_dates(self, user_id: str) -> dict[tuple[str, str], str]:
        """Most recent non-skipped assignment date per (platform, problem_id)."""
        rows = self.conn.execute(
            "SELECT platform, problem_id, MAX(date) AS last_date FROM daily_challenges "
            "WHERE user_id = ? AND status != 'skipped' GROUP BY platform, problem_id",
            (user_id,),
        ).fetchall()
        return {(row["platform"], row["problem_id"]): row["last_date"] for row in rows}

    def count_completed_by_topic(self, user_id: str) -> dict[str, int]:
        rows = self.conn.execute(
            "SELECT topic, COUNT(*) AS n FROM daily_challenges "
            "WHERE user_id = ? AND status = 'completed' GROUP BY topic",
            (user_id,),
        ).fetchall()
        return {row["topic"]: row["n"] for row in rows}

    # ── Challenge streaks ─────────────────────────────────────────────────

    def get_challenge_streak(self, user_id: str) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM challenge_streaks WHERE user_id = ?", (user_id,)
        ).fetchone()
        return dict(row) if row else None

    def save_challenge_streak(
        self,
        user_id: str,
        current_streak: int,
        longest_streak: int,
        total_completed: int,
        last_completed_date: str | None,
    ) -> None:
        self.conn.execute(
            "INSERT INTO challenge_streaks "
            "(user_id, current_streak, longest_streak, total_completed, last_completed_date) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET current_streak = excluded.current_streak, "
            "longest_streak = excluded.longest_streak, total_completed = excluded.total_completed, "
            "last_completed_date = excluded.last_completed_date",
            (user_id, current_streak, longest_streak, total_completed, last_completed_date),
        )
        self._commit()

    def add_completion(self, user_id: str, date: str, problem_id: str, topic: str) -> None:
        self.conn.execute(
            "INSERT INTO challenge_completions (user_id, date, problem_id, topic) VALUES (?, ?, ?, ?)",
            (user_id, date, problem_id, topic),
        )
        self._commit()

    def get_completion_dates(self, user_id: str) -> list[str]:
        rows = self.conn.execute(
            "SELECT date FROM challenge_completions WHERE user_id = ? ORDER BY date",
            (user_id,),
        ).fetchall()
        return [row["date"] for row in rows]

    # ── Contests and reminders ────────────────────────────────────────────

    def upsert_contest(
        self,
        contest_id: str,
        name: str,
        platform: str,
        url: str,
        start_time: str,
        duration_minutes: int,
    ) -> None:
        self.conn.execute(
            "INSERT INTO contests (contest_id, name, platform, url, start_time, duration_minutes) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(contest_id) DO UPDATE SET name = excluded.name, "
            "platform = excluded.platform, url = excluded.url, "
            "start_time = excluded.start_time, duration_minutes = excluded.duration_minutes",
            (contest_id, name, platform, url, start_time, duration_minutes),
        )
        self._commit()

    def get_contest(self, contest_id: str) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM contests WHERE contest_id = ?", (contest_id,)
        ).fetchone()
        return dict(row) if row else None

    def get_contests_between(self, start: str, end: str, platform: str | None = None) -> list[dict]:
        """Contests starting in [start, end), ordered by start time."""
        query = "SELECT * FROM contests WHERE start_time >= ? AND start_time < ?"
        params: list = [start, end]
        if platform:
            query += " AND platform = ?"
            params.append(platform)
        rows = self.conn.execute(query + " ORDER BY start_time, contest_id", params).fetchall()
        return [dict(row) for row in rows]

    def get_upcoming_contests(self, now: str, platform: str | None = None, limit: int = 50) -> list[dict]:
        query = "SELECT * FROM contests WHERE start_time > ?"
        params: list = [now]
        if platform:
            query += " AND platform = ?"
            params.append(platform)
        query += " ORDER BY start_time, contest_id LIMIT ?"
        params.append(limit)
        rows = self.conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def get_reminder(self, user_id: str, contest_id: str) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM contest_reminders WHERE user_id = ? AND contest_id = ?",
            (user_id, contest_id),
        ).fetchone()
        return dict(row) if row else None

    def insert_reminder(self, user_id: str, contest_id: str, reminder_time: str, created_at: str) -> bool:
        """Insert a reminder. Returns False if one already exists for (user, contest)."""
        cur = self.conn.execute(
            "INSERT OR IGNORE INTO contest_reminders (user_id, contest_id, reminder_time, created_at) "
            "VALUES (?, ?, ?, ?)",
            (user_id, contest_id, reminder_time, created_at),
        )
        self._commit()
        return cur.rowcount == 1

    def delete_unfired_reminder(self, user_id: str, contest_id: str) -> bool:
        cur = self.conn.execute(
            "DELETE FROM contest_reminders WHERE user_id = ? AND contest_id = ? AND fired = 0",
            (user_id, contest_id),
        )
        self._commit()
        return cur.rowcount > 0

    def get_due_reminders(self, now: str) -> list[dict]:
        rows = self.conn.execute(
            "SELECT * FROM contest_reminders WHERE fired = 0 AND reminder_time <= ? "
            "ORDER BY reminder_time, id",
            (now,),
        ).fetchall()
        return [dict(row) for row in rows]

    def claim_reminder(self, reminder_id: int, fired_at: str) -> bool:
        """Atomically flip fired 0 -> 1. Returns False if another tick got there first."""
        cur = self.conn.execute(
            "UPDATE contest_reminders SET fired = 1, fired_at = ? WHERE id = ? AND fired = 0",
            (fired_at, reminder_id),
        )
        self._commit()
        return cur.rowcount == 1

    def get_user_reminders(self, user_id: str, include_fired: bool = False) -> list[dict]:
        query = "SELECT * FROM contest_reminders WHERE user_id = ?"
        if not include_fired:
            query += " AND fired = 0"
        rows = self.conn.execute(query + " ORDER BY reminder_time, id", (user_id,)).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()
