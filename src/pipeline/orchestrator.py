"""Orchestrator: wires roster, stats fetch, snapshots, and progress.

Refresh data flow:
  1. Roster scan
  2. Bounded stats fetch (batches, per-user error isolation)
  3. All-time and jobs rankings
  4. Ensure weekly / monthly / yearly baselines (lazy, idempotent)
  5. Backfill baselines for users missing from a materialized snapshot
  6. Per-period progress rankings
The resulting LeaderboardState replaces the previous one wholesale.
"""

import json
import logging
import sqlite3
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.core.config import Settings
from src.core.errors import PersistenceError
from src.core.periods import now_in_zone, time_until_next_reset, to_zone
from src.core.schemas import (
    JobRecord,
    LeaderboardSnapshot,
    Period,
    UserStats,
)
from src.pipeline.progress import compute_period_progress, compute_prev_stats
from src.pipeline.roster import RosterManager
from src.pipeline.scorer import rank_by_jobs, rank_users
from src.pipeline.snapshot_store import SnapshotStore
from src.platforms.base import StatsSource
from src.platforms.leetcode.client import fetch_all_stats

logger = logging.getLogger(__name__)


class LeaderboardState(BaseModel):
    """Everything the presentation layer needs after one refresh."""

    model_config = ConfigDict(frozen=True)

    all_time: list[UserStats] = Field(default_factory=list)
    jobs: list[UserStats] = Field(default_factory=list)
    progress: dict[Period, list[UserStats]] = Field(default_factory=dict)
    snapshots: dict[Period, LeaderboardSnapshot | None] = Field(default_factory=dict)
    reset_in_ms: dict[Period, int] = Field(default_factory=dict)
    refreshed_at: datetime | None = None

    def has_baseline(self, period: Period) -> bool:
        return self.snapshots.get(period) is not None

    def tab(self, name: str) -> list[UserStats]:
        """Rows for a tab: 'all', 'jobs', 'weekly', 'monthly' or 'yearly'."""
        if name == "all":
            return self.all_time
        if name == "jobs":
            return self.jobs
        return self.progress.get(Period(name), [])


class LeaderboardService:
    """Application service holding the current LeaderboardState.

    Usage::

        service = LeaderboardService(settings, conn, LeetCodeStatsClient())
        state = await service.refresh()
        await service.add_user("alice")
    """

    def __init__(
        self,
        settings: Settings,
        conn: sqlite3.Connection,
        source: StatsSource,
    ) -> None:
        self._settings = settings
        self._source = source
        self._tz = settings.leaderboard.tz
        self.snapshots = SnapshotStore(conn, self._tz)
        self.roster = RosterManager(conn, source, self.snapshots)
        self._state = LeaderboardState()

    @property
    def state(self) -> LeaderboardState:
        return self._state

    def _now(self, now: datetime | None) -> datetime:
        return to_zone(now, self._tz) if now is not None else now_in_zone(self._tz)

    async def refresh(self, now: datetime | None = None) -> LeaderboardState:
        """Fetch fresh stats and rebuild every tab.

        A persistence failure leaves the previous state in place.
        """
        now = self._now(now)
        try:
            users = self.roster.list_users()
        except PersistenceError:
            logger.exception("Refresh aborted: roster unavailable")
            return self._state

        logger.info("Refreshing %d users", len(users))
        current = await fetch_all_stats(self._source, users, self._settings.fetch)
        healthy = [s for s in current if not s.has_error]
        failed = len(current) - len(healthy)
        if failed:
            logger.warning("%d of %d users could not be fetched", failed, len(current))

        snapshots = self.snapshots.ensure_current_snapshots(healthy, now)
        for period, snapshot in list(snapshots.items()):
            if snapshot is not None:
                snapshots[period] = self._backfill(period, snapshot, healthy, now)

        progress = {
            period: compute_period_progress(current, snapshots[period])
            for period in Period
        }

        self._state = LeaderboardState(
            all_time=rank_users(current),
            jobs=rank_by_jobs(current),
            progress=progress,
            snapshots=snapshots,
            reset_in_ms={p: time_until_next_reset(p, now, self._tz) for p in Period},
            refreshed_at=now,
        )
        return self._state

    def _backfill(
        self,
        period: Period,
        snapshot: LeaderboardSnapshot,
        healthy: list[UserStats],
        now: datetime,
    ) -> LeaderboardSnapshot:
        """Give users missing from a materialized snapshot a baseline as of now."""
        missing = [s for s in healthy if snapshot.entry_for(s.username) is None]
        if not missing:
            return snapshot
        try:
            for s in missing:
                self.snapshots.add_user_baseline(period, s.username, s.name, s, now)
            reloaded = self.snapshots.load_by_key(period, snapshot.period_key)
        except PersistenceError:
            logger.exception("Could not backfill %s baselines", period.value)
            return snapshot
        return reloaded or snapshot

    def previous_leaderboard(
        self,
        period: Period,
        now: datetime | None = None,
    ) -> list[UserStats] | None:
        """Ranked leaderboard of the period before the current one.

        The current period's baseline marks the end of the previous period.
        None when that baseline was never captured.
        """
        now = self._now(now)
        try:
            end = self.snapshots.load_current(period, now)
            if end is None:
                return None
            start = self.snapshots.load_previous(period, now)
            roster = {u.username for u in self.roster.list_users()}
        except PersistenceError:
            logger.exception("Could not load %s history", period.value)
            return None
        if start is None:
            logger.info("No %s baseline before %s - crediting from zero", period.value, end.period_key)
        return compute_prev_stats(end, start, roster)

    def time_until_reset(self, period: Period, now: datetime | None = None) -> int:
        return time_until_next_reset(period, self._now(now), self._tz)

    # -- intents ------------------------------------------------------------

    async def add_user(self, username: str, name: str | None = None) -> LeaderboardState:
        await self.roster.add_user(username, name)
        return await self.refresh()

    async def remove_user(self, username: str, purge_snapshots: bool = False) -> LeaderboardState:
        self.roster.remove_user(username, purge_snapshots=purge_snapshots)
        return await self.refresh()

    async def add_job(
        self,
        username: str,
        title: str,
        company: str,
        url: str = "",
    ) -> JobRecord:
        job = self.roster.add_job(username, title, company, url)
        await self.refresh()
        return job

    async def advance_job(self, job_id: int) -> JobRecord:
        return self.roster.advance_job(job_id)

    async def delete_job(self, job_id: int) -> JobRecord:
        job = self.roster.delete_job(job_id)
        await self.refresh()
        return job


def _row(s: UserStats) -> dict[str, object]:
    return {
        "rank": s.rank,
        "username": s.username,
        "name": s.name,
        "jobs_applied": s.jobs_applied,
        "easy": s.easy,
        "medium": s.medium,
        "hard": s.hard,
        "total": s.total,
        "xp": s.xp,
        "error": s.error,
    }


def export_state_json(state: LeaderboardState) -> str:
    """Export every tab of a state as a JSON string."""
    data: dict[str, object] = {
        "refreshed_at": state.refreshed_at.isoformat() if state.refreshed_at else None,
        "all": [_row(s) for s in state.all_time],
        "jobs": [_row(s) for s in state.jobs],
    }
    for period in Period:
        snapshot = state.snapshots.get(period)
        data[period.value] = {
            "period_key": snapshot.period_key if snapshot else None,
            "has_baseline": state.has_baseline(period),
            "reset_in_ms": state.reset_in_ms.get(period),
            "users": [_row(s) for s in state.progress.get(period, [])],
        }
    return json.dumps(data, indent=2)
