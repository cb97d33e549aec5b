"""Roster and job log management.

The ``jobs_applied`` counter on each user is denormalized: job inserts and
deletes update it in the same transaction, and reconcile_job_counts()
repairs drift from a full scan of the job log.
"""

import logging
import sqlite3
from datetime import datetime

from src.core import db
from src.core.errors import (
    InputValidationError,
    PersistenceError,
    StatsUnavailableError,
    UserNotFoundError,
)
from src.core.schemas import (
    JobRecord,
    JobStatus,
    TransientFailure,
    User,
    UserNotFound,
    UserStats,
)
from src.pipeline.snapshot_store import SnapshotStore
from src.platforms.base import StatsSource

logger = logging.getLogger(__name__)


def _required(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        msg = f"{field} is required"
        raise InputValidationError(msg)
    return value.strip()


class RosterManager:
    """CRUD over the user roster and the job-application log."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        source: StatsSource,
        snapshots: SnapshotStore,
    ) -> None:
        self._conn = conn
        self._source = source
        self._snapshots = snapshots

    # -- users --------------------------------------------------------------

    def list_users(self) -> list[User]:
        try:
            return db.list_users(self._conn)
        except sqlite3.Error as e:
            msg = f"Failed to load roster: {e}"
            raise PersistenceError(msg) from e

    def get_user(self, username: str) -> User | None:
        try:
            return db.get_user(self._conn, username)
        except sqlite3.Error as e:
            msg = f"Failed to load user '{username}': {e}"
            raise PersistenceError(msg) from e

    async def add_user(
        self,
        username: str,
        name: str | None = None,
        now: datetime | None = None,
    ) -> UserStats:
        """Validate a username against the stats source and add it to the roster.

        The user's stats at join time become their baseline in every
        already-materialized current snapshot, so they start at zero progress.
        """
        username = _required(username, "username")
        name = name.strip() if name and name.strip() else None
        if self.get_user(username) is not None:
            msg = f"User '{username}' is already on the leaderboard"
            raise InputValidationError(msg)

        result = await self._source.fetch(username, 0)
        if isinstance(result, UserNotFound):
            raise UserNotFoundError(username)
        if isinstance(result, TransientFailure):
            msg = f"Could not verify '{username}': {result.message}"
            raise StatsUnavailableError(msg)

        user = User(username=username, name=name)
        try:
            inserted = db.insert_user(self._conn, user)
        except sqlite3.Error as e:
            msg = f"Failed to add user '{username}': {e}"
            raise PersistenceError(msg) from e
        if not inserted:
            msg = f"User '{username}' is already on the leaderboard"
            raise InputValidationError(msg)
        logger.info("Added user '%s' (%d solved)", username, result.total)

        stats = UserStats(
            username=username,
            name=name,
            jobs_applied=0,
            easy=result.easy,
            medium=result.medium,
            hard=result.hard,
            total=result.total,
            xp=result.xp,
        )
        try:
            self._snapshots.add_user_baseline_all(username, name, stats, now)
        except PersistenceError:
            logger.exception("Could not record join baseline for '%s'", username)
        return stats

    def rename_user(self, username: str, name: str | None) -> None:
        username = _required(username, "username")
        new_name = name.strip() if name and name.strip() else None
        try:
            updated = db.update_user_name(self._conn, username, new_name)
        except sqlite3.Error as e:
            msg = f"Failed to rename '{username}': {e}"
            raise PersistenceError(msg) from e
        if not updated:
            msg = f"User '{username}' is not on the leaderboard"
            raise InputValidationError(msg)

    def remove_user(self, username: str, purge_snapshots: bool = False) -> bool:
        """Remove a user and their job log.

        Snapshot entries are history and stay unless ``purge_snapshots`` is set.
        Returns False if the user was not on the roster.
        """
        username = _required(username, "username")
        try:
            removed = db.delete_user(self._conn, username)
        except sqlite3.Error as e:
            msg = f"Failed to remove '{username}': {e}"
            raise PersistenceError(msg) from e
        if removed:
            logger.info("Removed user '%s'", username)
            if purge_snapshots:
                self._snapshots.purge_user(username)
        return removed

    # -- jobs ---------------------------------------------------------------

    def list_jobs(self, username: str | None = None) -> list[JobRecord]:
        try:
            return db.list_jobs(self._conn, username)
        except sqlite3.Error as e:
            msg = f"Failed to load jobs: {e}"
            raise PersistenceError(msg) from e

    def add_job(
        self,
        username: str,
        title: str,
        company: str,
        url: str = "",
    ) -> JobRecord:
        """Log a new application with status Applied and bump the owner's counter."""
        job = JobRecord(
            username=_required(username, "username"),
            title=_required(title, "title"),
            company=_required(company, "company"),
            url=(url or "").strip(),
        )
        if self.get_user(job.username) is None:
            msg = f"User '{job.username}' is not on the leaderboard"
            raise InputValidationError(msg)
        try:
            job_id = db.insert_job(self._conn, job)
        except sqlite3.Error as e:
            msg = f"Failed to add job for '{job.username}': {e}"
            raise PersistenceError(msg) from e
        logger.info("Logged job %d for '%s': %s @ %s", job_id, job.username, job.title, job.company)
        return job.model_copy(update={"id": job_id})

    def advance_job(self, job_id: int) -> JobRecord:
        """Move a job one status forward (Offer wraps to Applied)."""
        try:
            job = db.get_job(self._conn, job_id)
            if job is None:
                msg = f"Job {job_id} does not exist"
                raise InputValidationError(msg)
            new_status: JobStatus = job.status.next()
            db.update_job_status(self._conn, job_id, new_status)
        except sqlite3.Error as e:
            msg = f"Failed to update job {job_id}: {e}"
            raise PersistenceError(msg) from e
        logger.debug("Job %d: %s -> %s", job_id, job.status.value, new_status.value)
        return job.model_copy(update={"status": new_status})

    def delete_job(self, job_id: int) -> JobRecord:
        """Delete a job and decrement the owner's counter (never below zero)."""
        try:
            job = db.delete_job(self._conn, job_id)
        except sqlite3.Error as e:
            msg = f"Failed to delete job {job_id}: {e}"
            raise PersistenceError(msg) from e
        if job is None:
            msg = f"Job {job_id} does not exist"
            raise InputValidationError(msg)
        logger.info("Deleted job %d for '%s'", job_id, job.username)
        return job

    def reconcile_job_counts(self) -> dict[str, int]:
        """Reset every user's counter to the true number of job records.

        Returns the users whose counter changed, with their corrected count.
        """
        try:
            counts = db.count_jobs_by_user(self._conn)
            changed: dict[str, int] = {}
            for user in db.list_users(self._conn):
                actual = counts.get(user.username, 0)
                if user.jobs_applied != actual:
                    db.set_jobs_applied(self._conn, user.username, actual)
                    changed[user.username] = actual
        except sqlite3.Error as e:
            msg = f"Failed to reconcile job counts: {e}"
            raise PersistenceError(msg) from e
        if changed:
            logger.info("Reconciled job counts for %d users", len(changed))
        return changed
