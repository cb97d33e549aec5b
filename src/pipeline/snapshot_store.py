"""Snapshot store: idempotent period baselines.

Lifecycle of one (period, period_key) snapshot:
  absent -> materialized            (first observation during the period)
  materialized -> with late joiners (append-only, one entry per new user)
Existing entries are never edited.
"""

import logging
import sqlite3
from datetime import datetime
from zoneinfo import ZoneInfo

from src.core.config import DEFAULT_TIMEZONE
from src.core.db import (
    append_snapshot_user,
    find_snapshot,
    insert_snapshot,
    list_snapshots,
    remove_user_from_snapshots,
)
from src.core.errors import PersistenceError
from src.core.periods import period_key, previous_period_key, to_zone
from src.core.schemas import (
    DifficultyStats,
    LeaderboardSnapshot,
    Period,
    SnapshotUserStats,
    UserStats,
)

logger = logging.getLogger(__name__)


def to_snapshot_entry(
    username: str,
    name: str | None,
    stats: DifficultyStats,
) -> SnapshotUserStats:
    return SnapshotUserStats(
        username=username,
        name=name,
        jobs_applied=stats.jobs_applied,
        easy=stats.easy,
        medium=stats.medium,
        hard=stats.hard,
        total=stats.total,
        xp=stats.xp,
    )


class SnapshotStore:
    """Materializes and reads period baselines.

    Usage::

        store = SnapshotStore(conn, ZoneInfo("America/Los_Angeles"))
        weekly = store.ensure_current_snapshot(Period.WEEKLY, current_stats)
        last_week = store.load_previous(Period.WEEKLY)
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        tz: ZoneInfo | None = None,
    ) -> None:
        self._conn = conn
        self._tz = tz or ZoneInfo(DEFAULT_TIMEZONE)

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def current_key(self, period: Period, now: datetime | None = None) -> str:
        return period_key(period, now, self._tz)

    def ensure_current_snapshot(
        self,
        period: Period,
        current_stats: list[UserStats],
        now: datetime | None = None,
    ) -> LeaderboardSnapshot:
        """Return this period's snapshot, creating it from ``current_stats`` if absent.

        Creation is insert-if-absent on (period, period_key). Losing a race to
        another writer is not an error: the winner's snapshot is re-read.
        """
        key = self.current_key(period, now)
        try:
            existing = find_snapshot(self._conn, period, key)
            if existing is not None:
                return existing

            created_at = to_zone(now, self._tz) if now is not None else datetime.now(self._tz)
            snapshot = LeaderboardSnapshot(
                period=period,
                period_key=key,
                created_at=created_at,
                users=[to_snapshot_entry(s.username, s.name, s) for s in current_stats],
            )
            if insert_snapshot(self._conn, snapshot):
                logger.info(
                    "Created %s snapshot for %s with %d users",
                    period.value, key, len(snapshot.users),
                )
            else:
                logger.info("%s snapshot for %s already exists - re-reading", period.value, key)
            stored = find_snapshot(self._conn, period, key)
        except sqlite3.Error as e:
            msg = f"Failed to ensure {period.value} snapshot for {key}: {e}"
            raise PersistenceError(msg) from e

        if stored is None:
            msg = f"{period.value} snapshot for {key} vanished after insert"
            raise PersistenceError(msg)
        return stored

    def ensure_current_snapshots(
        self,
        current_stats: list[UserStats],
        now: datetime | None = None,
    ) -> dict[Period, LeaderboardSnapshot | None]:
        """Ensure weekly, monthly and yearly snapshots. Failures yield None."""
        results: dict[Period, LeaderboardSnapshot | None] = {}
        for period in Period:
            try:
                results[period] = self.ensure_current_snapshot(period, current_stats, now)
            except PersistenceError:
                logger.exception("Error ensuring %s snapshot", period.value)
                results[period] = None
        return results

    def load_by_key(self, period: Period, key: str) -> LeaderboardSnapshot | None:
        """Point lookup. None means the period was never captured."""
        try:
            return find_snapshot(self._conn, period, key)
        except sqlite3.Error as e:
            msg = f"Failed to load {period.value} snapshot {key}: {e}"
            raise PersistenceError(msg) from e

    def load_current(self, period: Period, now: datetime | None = None) -> LeaderboardSnapshot | None:
        return self.load_by_key(period, self.current_key(period, now))

    def load_previous(self, period: Period, now: datetime | None = None) -> LeaderboardSnapshot | None:
        return self.load_by_key(period, previous_period_key(period, now, self._tz))

    def history(self, period: Period | None = None) -> list[LeaderboardSnapshot]:
        """All stored baselines, oldest key first within each period."""
        try:
            return list_snapshots(self._conn, period)
        except sqlite3.Error as e:
            msg = f"Failed to list snapshots: {e}"
            raise PersistenceError(msg) from e

    def add_user_baseline(
        self,
        period: Period,
        username: str,
        name: str | None,
        stats: DifficultyStats,
        now: datetime | None = None,
    ) -> bool:
        """Append a late joiner's baseline to the current snapshot.

        No-op when the snapshot has not been materialized yet (the user will
        be captured with everyone else) or already holds the username.
        """
        key = self.current_key(period, now)
        entry = to_snapshot_entry(username, name, stats)
        try:
            appended = append_snapshot_user(self._conn, period, key, entry)
        except sqlite3.Error as e:
            msg = f"Failed to add '{username}' to {period.value} snapshot {key}: {e}"
            raise PersistenceError(msg) from e
        if appended:
            logger.info("Added '%s' baseline to %s snapshot %s", username, period.value, key)
        return appended

    def add_user_baseline_all(
        self,
        username: str,
        name: str | None,
        stats: DifficultyStats,
        now: datetime | None = None,
    ) -> dict[Period, bool]:
        """Apply add_user_baseline to every granularity independently."""
        return {
            period: self.add_user_baseline(period, username, name, stats, now)
            for period in Period
        }

    def purge_user(self, username: str) -> int:
        """Remove a user's entries from all snapshots. Returns snapshots changed."""
        try:
            changed = remove_user_from_snapshots(self._conn, username)
        except sqlite3.Error as e:
            msg = f"Failed to purge '{username}' from snapshots: {e}"
            raise PersistenceError(msg) from e
        logger.info("Purged '%s' from %d snapshots", username, changed)
        return changed
