"""SQLite storage for the roster, job log, and leaderboard snapshots.

Each table plays the role of one document collection. Snapshot user lists
are stored as a JSON document column; ``UNIQUE(period, period_key)`` is the
insert-if-absent guard that keeps snapshot creation idempotent.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path

from src.core.schemas import (
    JobRecord,
    JobStatus,
    LeaderboardSnapshot,
    Period,
    SnapshotUserStats,
    User,
)

_USERS_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    username      TEXT    PRIMARY KEY,
    name          TEXT,
    jobs_applied  INTEGER NOT NULL DEFAULT 0,
    created_at    TEXT    NOT NULL
);
"""

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    username    TEXT    NOT NULL,
    title       TEXT    NOT NULL,
    company     TEXT    NOT NULL,
    url         TEXT    NOT NULL DEFAULT '',
    status      TEXT    NOT NULL DEFAULT 'Applied',
    created_at  TEXT    NOT NULL
);
"""

_SNAPSHOTS_TABLE = """
CREATE TABLE IF NOT EXISTS leaderboard_snapshots (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    period      TEXT NOT NULL,
    period_key  TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    users_json  TEXT NOT NULL,
    UNIQUE(period, period_key)
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_USERS_TABLE)
    conn.execute(_JOBS_TABLE)
    conn.execute(_SNAPSHOTS_TABLE)
    conn.commit()
    return conn


# ---------------------------------------------------------------------------
# users
# ---------------------------------------------------------------------------


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        username=row["username"],
        name=row["name"],
        jobs_applied=max(0, row["jobs_applied"] or 0),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def insert_user(conn: sqlite3.Connection, user: User) -> bool:
    """Insert a roster entry. Returns False if the username already exists."""
    try:
        conn.execute(
            "INSERT INTO users (username, name, jobs_applied, created_at) VALUES (?, ?, ?, ?)",
            (user.username, user.name, user.jobs_applied, user.created_at.isoformat()),
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        return False


def get_user(conn: sqlite3.Connection, username: str) -> User | None:
    row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
    return _row_to_user(row) if row is not None else None


def list_users(conn: sqlite3.Connection) -> list[User]:
    """Full roster scan, oldest first."""
    rows = conn.execute("SELECT * FROM users ORDER BY created_at, username").fetchall()
    return [_row_to_user(r) for r in rows]


def update_user_name(conn: sqlite3.Connection, username: str, name: str | None) -> bool:
    cursor = conn.execute("UPDATE users SET name = ? WHERE username = ?", (name, username))
    conn.commit()
    return cursor.rowcount > 0


def set_jobs_applied(conn: sqlite3.Connection, username: str, count: int) -> None:
    conn.execute(
        "UPDATE users SET jobs_applied = ? WHERE username = ?",
        (max(0, count), username),
    )
    conn.commit()


def delete_user(conn: sqlite3.Connection, username: str) -> bool:
    """Delete a user and their job log. Returns False if the user did not exist."""
    with conn:
        conn.execute("DELETE FROM jobs WHERE username = ?", (username,))
        cursor = conn.execute("DELETE FROM users WHERE username = ?", (username,))
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# jobs
# ---------------------------------------------------------------------------


def _row_to_job(row: sqlite3.Row) -> JobRecord:
    return JobRecord(
        id=row["id"],
        username=row["username"],
        title=row["title"],
        company=row["company"],
        url=row["url"],
        status=JobStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def insert_job(conn: sqlite3.Connection, job: JobRecord) -> int:
    """Insert a job and bump the owner's counter in one transaction. Returns the row ID."""
    with conn:
        cursor = conn.execute(
            """
            INSERT INTO jobs (username, title, company, url, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                job.username,
                job.title,
                job.company,
                job.url,
                job.status.value,
                job.created_at.isoformat(),
            ),
        )
        conn.execute(
            "UPDATE users SET jobs_applied = jobs_applied + 1 WHERE username = ?",
            (job.username,),
        )
    return cursor.lastrowid or 0


def get_job(conn: sqlite3.Connection, job_id: int) -> JobRecord | None:
    row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
    return _row_to_job(row) if row is not None else None


def list_jobs(conn: sqlite3.Connection, username: str | None = None) -> list[JobRecord]:
    """Return jobs, newest first, optionally for one user."""
    if username is None:
        rows = conn.execute("SELECT * FROM jobs ORDER BY created_at DESC, id DESC").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM jobs WHERE username = ? ORDER BY created_at DESC, id DESC",
            (username,),
        ).fetchall()
    return [_row_to_job(r) for r in rows]


def update_job_status(conn: sqlite3.Connection, job_id: int, status: JobStatus) -> None:
    conn.execute("UPDATE jobs SET status = ? WHERE id = ?", (status.value, job_id))
    conn.commit()


def delete_job(conn: sqlite3.Connection, job_id: int) -> JobRecord | None:
    """Delete a job and decrement the owner's counter (floored at zero).

    Returns the deleted job, or None if it did not exist.
    """
    job = get_job(conn, job_id)
    if job is None:
        return None
    with conn:
        conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
        conn.execute(
            "UPDATE users SET jobs_applied = MAX(0, jobs_applied - 1) WHERE username = ?",
            (job.username,),
        )
    return job


def count_jobs_by_user(conn: sqlite3.Connection) -> dict[str, int]:
    """Full job-log scan: number of job records per username."""
    rows = conn.execute("SELECT username, COUNT(*) AS n FROM jobs GROUP BY username").fetchall()
    return {r["username"]: r["n"] for r in rows}


# ---------------------------------------------------------------------------
# leaderboard snapshots
# ---------------------------------------------------------------------------


def _row_to_snapshot(row: sqlite3.Row) -> LeaderboardSnapshot:
    users = [SnapshotUserStats.model_validate(u) for u in json.loads(row["users_json"])]
    return LeaderboardSnapshot(
        id=row["id"],
        period=Period(row["period"]),
        period_key=row["period_key"],
        created_at=datetime.fromisoformat(row["created_at"]),
        users=users,
    )


def _users_json(users: list[SnapshotUserStats]) -> str:
    return json.dumps([u.model_dump(mode="json") for u in users])


def find_snapshot(
    conn: sqlite3.Connection,
    period: Period,
    period_key: str,
) -> LeaderboardSnapshot | None:
    """Equality lookup on (period, period_key), capped at one result."""
    row = conn.execute(
        """
        SELECT * FROM leaderboard_snapshots
        WHERE period = ? AND period_key = ?
        LIMIT 1
        """,
        (period.value, period_key),
    ).fetchone()
    return _row_to_snapshot(row) if row is not None else None


def insert_snapshot(conn: sqlite3.Connection, snapshot: LeaderboardSnapshot) -> bool:
    """Insert a snapshot unless one already exists for its (period, period_key).

    Returns True if a new row was inserted, False if it was a duplicate.
    """
    try:
        conn.execute(
            """
            INSERT INTO leaderboard_snapshots (period, period_key, created_at, users_json)
            VALUES (?, ?, ?, ?)
            """,
            (
                snapshot.period.value,
                snapshot.period_key,
                snapshot.created_at.isoformat(),
                _users_json(snapshot.users),
            ),
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        conn.rollback()
        return False


def append_snapshot_user(
    conn: sqlite3.Connection,
    period: Period,
    period_key: str,
    entry: SnapshotUserStats,
) -> bool:
    """Append a baseline entry unless the username is already present.

    The read and the write happen inside one immediate transaction so
    existing entries are never replaced. Returns True if appended.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        row = conn.execute(
            "SELECT id, users_json FROM leaderboard_snapshots WHERE period = ? AND period_key = ?",
            (period.value, period_key),
        ).fetchone()
        if row is None:
            conn.rollback()
            return False
        users = json.loads(row["users_json"])
        if any(u.get("username") == entry.username for u in users):
            conn.rollback()
            return False
        users.append(entry.model_dump(mode="json"))
        conn.execute(
            "UPDATE leaderboard_snapshots SET users_json = ? WHERE id = ?",
            (json.dumps(users), row["id"]),
        )
        conn.commit()
        return True
    except sqlite3.Error:
        conn.rollback()
        raise


def list_snapshots(conn: sqlite3.Connection, period: Period | None = None) -> list[LeaderboardSnapshot]:
    """Return snapshots ordered by period and key."""
    if period is None:
        rows = conn.execute(
            "SELECT * FROM leaderboard_snapshots ORDER BY period, period_key",
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM leaderboard_snapshots WHERE period = ? ORDER BY period_key",
            (period.value,),
        ).fetchall()
    return [_row_to_snapshot(r) for r in rows]


def remove_user_from_snapshots(conn: sqlite3.Connection, username: str) -> int:
    """Drop a username's entries from every snapshot. Returns snapshots changed."""
    changed = 0
    with conn:
        rows = conn.execute("SELECT id, users_json FROM leaderboard_snapshots").fetchall()
        for row in rows:
            users = json.loads(row["users_json"])
            kept = [u for u in users if u.get("username") != username]
            if len(kept) != len(users):
                conn.execute(
                    "UPDATE leaderboard_snapshots SET users_json = ? WHERE id = ?",
                    (json.dumps(kept), row["id"]),
                )
                changed += 1
    return changed
