"""Contest reminders that fire at most once per (user, contest)."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from codefolio.adapters import parse_timestamp
from codefolio.contests import Contest, get_contest
from codefolio.db import Database, iso_utc
from codefolio.errors import ContestAlreadyStarted

logger = logging.getLogger(__name__)

DEFAULT_OFFSET_HOURS = 16.0


class Notifier(Protocol):
    def notify(self, user_id: str, contest: Contest) -> None: ...


@dataclass
class ContestReminder:
    id: int
    user_id: str
    contest_id: str
    reminder_time: datetime
    fired: bool = False
    fired_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict) -> ContestReminder:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            contest_id=row["contest_id"],
            reminder_time=parse_timestamp(row["reminder_time"]),
            fired=bool(row["fired"]),
            fired_at=parse_timestamp(row["fired_at"]),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contestId": self.contest_id,
            "reminderTime": self.reminder_time.isoformat(),
            "fired": self.fired,
            "firedAt": self.fired_at.isoformat() if self.fired_at else None,
        }


class ReminderScheduler:
    """Stores opt-in reminders and dispatches the due ones on tick()."""

    def __init__(
        self,
        db: Database,
        notifier: Notifier,
        offset_hours: float = DEFAULT_OFFSET_HOURS,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.offset = timedelta(hours=offset_hours)

    def set_reminder(self, user_id: str, contest_id: str, now: datetime | None = None) -> ContestReminder:
        """Opt in to a reminder ahead of the contest start.

        Raises ContestNotFound or ContestAlreadyStarted. Setting the same
        reminder twice returns the existing one unchanged.
        """
        now = now or datetime.now(timezone.utc)
        contest = get_contest(self.db, contest_id)
        if contest.has_started(now):
            raise ContestAlreadyStarted(f"{contest.name} started at {contest.start_time.isoformat()}")

        existing = self.db.get_reminder(user_id, contest_id)
        if existing is None:
            self.db.insert_reminder(
                user_id, contest_id, iso_utc(contest.start_time - self.offset), iso_utc(now)
            )
            existing = self.db.get_reminder(user_id, contest_id)
        return ContestReminder.from_row(existing)

    def remove_reminder(self, user_id: str, contest_id: str) -> bool:
        """Delete an unfired reminder. Fired reminders are kept."""
        return self.db.delete_unfired_reminder(user_id, contest_id)

    def reminders_for(self, user_id: str, include_fired: bool = False) -> list[ContestReminder]:
        return [
            ContestReminder.from_row(row)
            for row in self.db.get_user_reminders(user_id, include_fired)
        ]

    def tick(self, now: datetime | None = None) -> list[ContestReminder]:
        """Fire every due, unfired reminder and return the ones this call fired.

        Each reminder is claimed and dispatched inside one write transaction,
        so overlapping ticks (threads or processes, each with its own
        connection) never notify twice. A failed dispatch rolls the claim
        back and the reminder is retried on the next tick.
        """
        now = now or datetime.now(timezone.utc)
        fired: list[ContestReminder] = []
        for row in self.db.get_due_reminders(iso_utc(now)):
            reminder = ContestReminder.from_row(row)
            try:
                with self.db.transaction():
                    if not self.db.claim_reminder(reminder.id, iso_utc(now)):
                        logger.debug("Reminder %s already fired elsewhere", reminder.id)
                        continue
                    contest = get_contest(self.db, reminder.contest_id)
                    self.notifier.notify(reminder.user_id, contest)
            except sqlite3.Error:
                raise
            except Exception as exc:
                logger.warning("Dispatch failed for reminder %s: %s", reminder.id, exc)
                continue
            reminder.fired = True
            reminder.fired_at = parse_timestamp(iso_utc(now))
            fired.append(reminder)
            logger.info("Reminder %s sent to %s for %s", reminder.id, reminder.user_id, reminder.contest_id)
        return fired
